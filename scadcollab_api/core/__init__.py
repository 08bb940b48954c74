"""Core collaboration logic: sessions, presence, team chat and generation."""

from .client import CollabClient
from .client_cache import ClientSessionCache
from .editor import OpenScadWorkspace, SourceEditor, parse_parameters
from .extraction import extract_code
from .message_channel import MessageChannel, UnreadCounter, order_comments
from .orchestrator import GenerationOrchestrator
from .presence import PresenceTracker
from .providers import (
    ChatCompletionsProvider,
    ChatCompletionsVisionProvider,
    ChatTurn,
    GeminiTextProvider,
)
from .retry import RenderRetryPolicy, run_with_retry
from .session_store import SessionStore
from .share_tokens import ShareTokenManager
from .sketcher import SketchGenerator, parse_sketches
from .user_profiles import UserProfileStore

__all__ = [
    "SessionStore",
    "PresenceTracker",
    "MessageChannel",
    "UnreadCounter",
    "order_comments",
    "GenerationOrchestrator",
    "SourceEditor",
    "OpenScadWorkspace",
    "parse_parameters",
    "extract_code",
    "RenderRetryPolicy",
    "run_with_retry",
    "GeminiTextProvider",
    "ChatCompletionsProvider",
    "ChatCompletionsVisionProvider",
    "ChatTurn",
    "ShareTokenManager",
    "ClientSessionCache",
    "CollabClient",
    "UserProfileStore",
    "SketchGenerator",
    "parse_sketches",
]

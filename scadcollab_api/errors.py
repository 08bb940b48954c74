"""Domain error taxonomy shared by the store, presence, chat and generation layers."""


class CollabError(Exception):
    """Base class for all domain errors."""


class StoreUnavailable(CollabError):
    """The backing document store could not be reached."""


class NotFound(CollabError):
    """A session (or another document) does not exist.

    Callers generally treat this as "start fresh" rather than as a failure.
    """

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection} document not found: {doc_id}")


class VersionConflict(CollabError):
    """A compare-and-set write lost against a concurrent writer."""

    def __init__(self, doc_id: str, expected: int, actual: int):
        self.doc_id = doc_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Version conflict on {doc_id}: expected {expected}, found {actual}")


class SessionNotShared(CollabError):
    """A non-owner tried to attach to a session that is not shared."""


class ProviderNotConfigured(CollabError):
    """The credential for a generation provider is missing."""

    def __init__(self, provider: str, setting: str):
        self.provider = provider
        self.setting = setting
        super().__init__(f"{provider} API key is not configured (set {setting.upper()})")


class ProviderError(CollabError):
    """A generation provider answered with a non-success HTTP status."""

    def __init__(self, provider: str, status_code: int, body: str):
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} API error: {status_code} - {body}")


class SyntaxCheckFailed(CollabError):
    """The source did not pass the editor's syntax check."""


class RenderFailed(CollabError):
    """The renderer could not produce a preview or export."""


class SketchParseError(CollabError):
    """The sketch provider did not return the expected JSON structure."""

"""
Telemetry Context

Request- and generation-scoped properties kept in contextvars so that every
telemetry event emitted inside a request or a background generation task
carries the same correlation id, user and session.
"""

import uuid
from contextvars import ContextVar
from typing import Any

_request_context: ContextVar[dict[str, Any]] = ContextVar("request_context", default={})


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracing."""
    return str(uuid.uuid4())


def set_request_context(
    request_id: str,
    user_id: str | None = None,
    session_id: str | None = None,
    **kwargs: Any,
) -> None:
    """Replace the context for the current task.

    Args:
        request_id: Correlation ID for request tracing
        user_id: Acting user, "anonymous" when unknown
        session_id: Collaborative session the request targets
        **kwargs: Additional context properties
    """
    _request_context.set(
        {
            "request_id": request_id,
            "user_id": user_id or "anonymous",
            "session_id": session_id,
            **kwargs,
        }
    )


def bind_context(**properties: Any) -> None:
    """Add properties to the current context without dropping existing ones.

    Background tasks copy the context at creation, so binding inside a
    generation task never leaks into the request that spawned it.
    """
    _request_context.set({**_request_context.get(), **properties})


def get_request_context() -> dict[str, Any]:
    """Get the current context (empty outside of a request or task)."""
    return _request_context.get()


def clear_request_context() -> None:
    """Clear the context for the current task."""
    _request_context.set({})

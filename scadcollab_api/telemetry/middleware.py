"""
Telemetry Middleware for FastAPI

Tracks every HTTP request and binds the acting user and target session to
the telemetry context for the duration of the request.
"""

import re
import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .context import clear_request_context, generate_correlation_id, set_request_context
from .events import TelemetryEvents
from .tracker import track_event, track_exception

_SESSION_PATH = re.compile(r"^/sessions/([^/]+)")


def session_id_from_request(request: Request) -> str | None:
    """The session a request targets: X-Session-ID header, else the URL path."""
    header = request.headers.get("X-Session-ID")
    if header:
        return header
    match = _SESSION_PATH.match(request.url.path)
    return match.group(1) if match else None


class TelemetryMiddleware(BaseHTTPMiddleware):
    """
    Emits request_received / request_completed / request_failed events.

    The acting user is read from the X-User-ID header, since this service
    trusts its frontend for identity. Responses carry X-Request-ID.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        request_id = generate_correlation_id()
        set_request_context(
            request_id=request_id,
            user_id=request.headers.get("X-User-ID"),
            session_id=session_id_from_request(request),
        )
        request.state.request_id = request_id
        endpoint = {"endpoint": request.url.path, "method": request.method}

        try:
            track_event(TelemetryEvents.REQUEST_RECEIVED, endpoint)
            response = await call_next(request)
            track_event(
                TelemetryEvents.REQUEST_COMPLETED,
                {
                    **endpoint,
                    "status_code": response.status_code,
                    "duration_ms": (time.perf_counter() - start) * 1000,
                },
            )
            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            track_exception(e, {**endpoint, "duration_ms": duration_ms})
            track_event(
                TelemetryEvents.REQUEST_FAILED,
                {**endpoint, "duration_ms": duration_ms, "error_type": type(e).__name__},
            )
            raise

        finally:
            clear_request_context()

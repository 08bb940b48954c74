"""
Development Logger

Keeps the most recent telemetry events in memory so they can be inspected
or exported as JSONL while developing without Application Insights.
"""

import json
import logging
from collections import deque
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

_MAX_EVENTS = 1000

_debug_enabled = False
_event_buffer: deque[dict[str, Any]] = deque(maxlen=_MAX_EVENTS)


def set_debug(enabled: bool) -> None:
    """Echo every event to the module logger at DEBUG level."""
    global _debug_enabled
    _debug_enabled = enabled


def is_debug_enabled() -> bool:
    return _debug_enabled


def log_dev_event(event_name: str, properties: dict[str, Any]) -> None:
    """Record an event; the oldest events fall off once the buffer is full."""
    _event_buffer.append(
        {
            "timestamp": datetime.now(UTC).isoformat(),
            "event_name": event_name,
            "properties": properties,
        }
    )
    if _debug_enabled:
        logger.debug(f"[Telemetry] {event_name}: {json.dumps(properties, default=str)}")


def get_dev_logs(event_name: str | None = None) -> list[dict[str, Any]]:
    """Buffered events, optionally only those with ``event_name``."""
    if event_name is None:
        return list(_event_buffer)
    return [e for e in _event_buffer if e["event_name"] == event_name]


def export_dev_logs() -> str:
    """All buffered events as JSON Lines."""
    return "\n".join(json.dumps(event, default=str) for event in _event_buffer)


def clear_dev_logs() -> None:
    _event_buffer.clear()

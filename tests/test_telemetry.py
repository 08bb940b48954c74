"""Tests for telemetry context propagation and the development log."""

import pytest

from scadcollab_api.telemetry import (
    TelemetryEvents,
    bind_context,
    clear_dev_logs,
    clear_request_context,
    export_dev_logs,
    get_dev_logs,
    get_request_context,
    set_request_context,
    track_event,
    track_exception,
)


@pytest.fixture(autouse=True)
def clean_telemetry():
    clear_dev_logs()
    clear_request_context()
    yield
    clear_dev_logs()
    clear_request_context()


class TestRequestContext:
    """Test contextvar-backed request context."""

    def test_set_and_bind(self):
        set_request_context("req-1", user_id="u1")
        bind_context(session_id="s1")

        context = get_request_context()
        assert context == {"request_id": "req-1", "user_id": "u1", "session_id": "s1"}

    def test_anonymous_user(self):
        set_request_context("req-1")

        assert get_request_context()["user_id"] == "anonymous"


class TestTrackEvent:
    """Test event recording without an exporter."""

    def test_event_carries_context(self):
        set_request_context("req-9", user_id="u1", session_id="s1")

        track_event(TelemetryEvents.SESSION_CREATED, {"session_id": "s2"})

        (event,) = get_dev_logs(TelemetryEvents.SESSION_CREATED)
        assert event["properties"]["request_id"] == "req-9"
        assert event["properties"]["session_id"] == "s2"
        assert event["properties"]["app_id"] == "scadcollab-api"

    def test_exception_properties(self):
        track_exception(ValueError("bad prompt"))

        (event,) = get_dev_logs("exception")
        assert event["properties"]["error_type"] == "ValueError"
        assert event["properties"]["error_message"] == "bad prompt"

    def test_export_jsonl(self):
        track_event(TelemetryEvents.APP_STARTED)
        track_event(TelemetryEvents.APP_STOPPED)

        lines = export_dev_logs().splitlines()

        assert len(lines) == 2
        assert TelemetryEvents.APP_STOPPED in lines[1]


@pytest.mark.asyncio
class TestTelemetryMiddleware:
    """Test per-request events."""

    async def test_request_events_with_session(self, client):
        await client.get("/sessions/abc123", headers={"X-User-ID": "u7"})

        (completed,) = get_dev_logs(TelemetryEvents.REQUEST_COMPLETED)
        assert completed["properties"]["status_code"] == 404
        assert completed["properties"]["session_id"] == "abc123"
        assert completed["properties"]["user_id"] == "u7"

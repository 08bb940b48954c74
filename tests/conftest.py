"""Pytest configuration and fixtures."""

import os
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

# Set test environment variables BEFORE importing anything that loads settings
os.environ["STORE_BACKEND"] = "memory"
os.environ["OPTIMISTIC_CONCURRENCY"] = "false"
os.environ["TELEMETRY_APP_INSIGHTS_CONNECTION_STRING"] = ""
for key in ("GEMINI_API_KEY", "GROQ_API_KEY", "SKETCHER_API_KEY"):
    os.environ.pop(key, None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from scadcollab_api.errors import RenderFailed, SyntaxCheckFailed
from scadcollab_api.storage import MemoryBackend


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class FakeEditor:
    """In-memory SourceEditor recording every call.

    ``render_failures`` is how many renders fail before one succeeds.
    """

    def __init__(self, source: str = "", render_failures: int = 0, syntax_error: bool = False):
        self._source = source
        self.render_failures = render_failures
        self.syntax_error = syntax_error
        self.render_calls: list[dict] = []
        self.syntax_checks = 0
        self.sources: list[str] = []

    @property
    def source(self) -> str:
        return self._source

    def set_source(self, source: str) -> None:
        self._source = source
        self.sources.append(source)

    async def check_syntax(self) -> None:
        self.syntax_checks += 1
        if self.syntax_error:
            raise SyntaxCheckFailed("Parser error in line 1")

    async def render(self, preview: bool = True, immediate: bool = False) -> None:
        self.render_calls.append({"preview": preview, "immediate": immediate})
        if len(self.render_calls) <= self.render_failures:
            raise RenderFailed(f"render failed on attempt {len(self.render_calls)}")

    async def export(self) -> bytes:
        return b"solid model\nendsolid model\n"


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def anyio_backend():
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def backend(clock):
    """Fresh in-memory document store per test."""
    return MemoryBackend(clock=clock)


@pytest.fixture
def store(backend):
    from scadcollab_api.core import SessionStore

    store = SessionStore(backend, optimistic_concurrency=False)
    yield store
    store.close()


@pytest.fixture
def channel(backend):
    from scadcollab_api.core import MessageChannel

    channel = MessageChannel(backend)
    yield channel
    channel.close()


@pytest.fixture
def editor():
    return FakeEditor()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def text_provider():
    """Text provider answering with a fenced OpenSCAD block."""
    provider = AsyncMock()
    provider.complete.return_value = "Here you go:\n```openscad\ngear(teeth=20);\n```\n"
    return provider


@pytest.fixture
def vision_provider():
    provider = AsyncMock()
    provider.complete.return_value = "```openscad\ncube([10, 20, 5]);\n```"
    return provider


@pytest_asyncio.fixture(scope="function")
async def services(backend, text_provider, vision_provider):
    """API services on the in-memory backend with fake providers and editors."""
    from scadcollab_api.api.dependencies import Services
    from scadcollab_api.core import SketchGenerator

    sketch_provider = AsyncMock()
    services = Services.build(
        backend,
        sketcher=SketchGenerator(sketch_provider),
        editor_factory=FakeEditor,
        text_provider=text_provider,
        vision_provider=vision_provider,
    )
    yield services
    await services.shutdown()


@pytest_asyncio.fixture(scope="function")
async def client(services, backend):
    """HTTP client against the app with test services injected."""
    from scadcollab_api.api.dependencies import get_services
    from scadcollab_api.main import app
    from scadcollab_api.storage import get_backend

    app.dependency_overrides[get_services] = lambda: services
    app.dependency_overrides[get_backend] = lambda: backend
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

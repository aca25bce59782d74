# @TASK P0-T0.3 - Test configuration
# @TASK P2-T2.4 - In-memory worker transport and fake clock fixtures
import asyncio
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio

# Set test environment variables before importing engine modules
os.environ.setdefault("EMBEDDING_BACKEND", "keyword")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from smartnotes.models import Note  # noqa: E402
from smartnotes.search.ai_engine import AIEngine  # noqa: E402
from smartnotes.search.cache import EmbeddingCache  # noqa: E402
from smartnotes.search.capability import EngineConfig  # noqa: E402
from smartnotes.search.dispatch import DispatchChannel  # noqa: E402
from smartnotes.search.embeddings import KeywordEmbeddingBackend  # noqa: E402
from smartnotes.search.lifecycle import EngineLifecycle  # noqa: E402
from smartnotes.search.params import DEFAULT_SEARCH_PARAMS  # noqa: E402
from smartnotes.search.worker import handle_request  # noqa: E402
from smartnotes.services.performance import PerformanceMonitor  # noqa: E402

Handler = Callable[[dict[str, Any]], dict[str, Any] | None]


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def keyword_worker_handler() -> Handler:
    """Reply like a real worker process running the keyword backend."""
    backend = KeywordEmbeddingBackend(384)
    return lambda message: handle_request(backend, message)


class FakeTransport:
    """In-memory worker transport.

    Each sent message is passed to *handler*; a non-``None`` return value
    is delivered back as the reply on the next event loop iteration.
    """

    def __init__(self, handler: Handler | None = None, fail_on_start: bool = False) -> None:
        self.handler = handler or keyword_worker_handler()
        self.fail_on_start = fail_on_start
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.on_message: Callable[[dict[str, Any]], None] | None = None

    def start(self, on_message: Callable[[dict[str, Any]], None]) -> None:
        if self.fail_on_start:
            raise OSError("cannot spawn worker")
        self.on_message = on_message

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)
        reply = self.handler(message)
        if reply is not None:
            asyncio.get_running_loop().call_soon(self.on_message, reply)

    def deliver(self, message: dict[str, Any]) -> None:
        """Push a reply as if the worker had posted it."""
        self.on_message(message)

    def close(self) -> None:
        self.closed = True

    def actions(self) -> list[str]:
        return [message["action"] for message in self.sent]


def silent_handler(message: dict[str, Any]) -> None:
    """A worker that never answers."""
    return None


def make_notes() -> list[Note]:
    return [
        Note(id="n1", title="My Garden Plans", content="Plant tomatoes and basil in the garden this spring."),
        Note(id="n2", title="Project roadmap", content="Plan the quarterly release and the planning meeting."),
        Note(id="n3", title="Recipes", content="Pasta with basil pesto and fresh tomatoes."),
        Note(id="n4", title="Travel", content="Flights to Lisbon are booked for May."),
    ]


def make_lifecycle(
    transport: FakeTransport | None = None,
    config: EngineConfig | None = None,
    load_timeout: float = 1.0,
    request_timeout: float = 1.0,
) -> tuple[EngineLifecycle, FakeTransport]:
    """Build a lifecycle whose channel uses an in-memory transport."""
    transport = transport or FakeTransport()
    config = config or EngineConfig(model="all-MiniLM-L6-v2", batch_size=16, worker_count=1)

    def channel_factory(engine_config: EngineConfig) -> DispatchChannel:
        return DispatchChannel(transport, timeout=request_timeout)

    return EngineLifecycle(config, channel_factory, load_timeout=load_timeout), transport


def make_engine(
    transport: FakeTransport | None = None,
    config: EngineConfig | None = None,
    clock: FakeClock | None = None,
) -> tuple[AIEngine, FakeTransport]:
    lifecycle, transport = make_lifecycle(transport, config)
    cache = EmbeddingCache(clock=clock or FakeClock())
    engine = AIEngine(lifecycle, cache=cache, metrics=PerformanceMonitor(), params=dict(DEFAULT_SEARCH_PARAMS))
    return engine, transport


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notes() -> list[Note]:
    return make_notes()


@pytest_asyncio.fixture(scope="function")
async def ready_engine() -> AsyncGenerator[AIEngine, None]:
    """An initialized engine in the ``ready`` state backed by the keyword worker."""
    engine, _transport = make_engine()
    await engine.initialize()
    yield engine
    await engine.aclose()


@pytest.fixture
def disabled_engine() -> tuple[AIEngine, FakeTransport]:
    """An engine configured with the fallback model (not yet initialized)."""
    return make_engine(config=EngineConfig(model="fallback", batch_size=8, worker_count=0))

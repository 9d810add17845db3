"""
Shared pytest fixtures and configuration.
"""

import asyncio
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from drift.actions.notifications import Notifier
from drift.api.app import create_app
from drift.config import Config
from drift.inference.scoring import ScoringEngine
from drift.storage import KeyValueStore
from drift.transport.bridge import EngineClient, EngineHost
from drift.transport.channel import Link


class ScriptedEngine(ScoringEngine):
    """
    Test double: returns queued scores in order (then repeats the last one).
    `load_gate` lets a test hold the engine in LOADING; `fail_load` makes
    the load fail; `predict_delay` holds each predict for that many seconds.
    """

    name = "scripted"

    def __init__(self, scores: Optional[List[float]] = None, window_size: int = 10):
        super().__init__(window_size)
        self.scores = list(scores or [0.0])
        self.calls: List[List[List[float]]] = []
        self.load_gate: Optional[asyncio.Event] = None
        self.fail_load = False
        self.predict_delay = 0.0

    async def _load(self) -> str:
        if self.load_gate is not None:
            await self.load_gate.wait()
        if self.fail_load:
            raise RuntimeError("weights missing")
        return "scripted-v1"

    async def _score(self, rows):
        self.calls.append(rows)
        if self.predict_delay:
            await asyncio.sleep(self.predict_delay)
        if len(self.scores) > 1:
            return self.scores.pop(0)
        return self.scores[0]


async def eventually(predicate, timeout: float = 2.0) -> None:
    """Poll *predicate* until it is truthy; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def store():
    """Purely in-memory key-value store."""
    return KeyValueStore()


@pytest.fixture
def notifier():
    return Notifier(desktop=False)


@pytest_asyncio.fixture
async def engine_pair():
    """
    Factory: wire a ScoringEngine to an EngineClient over a fresh Link.
    Everything started through it is stopped at teardown.
    """
    started = []

    async def _make(engine: ScoringEngine, timeout_s: float = 1.0, autoload: bool = False):
        link = Link()
        client = EngineClient(link, timeout_s=timeout_s)
        host = EngineHost(engine, link, autoload=autoload)
        await client.start()
        await host.start()
        started.append((client, host))
        return client, host

    yield _make

    for client, host in started:
        await client.stop()
        await host.stop()


@pytest.fixture
def app_config(tmp_path):
    return Config(
        data_dir=tmp_path,
        desktop_notifications=False,
        scorer="rule",
    )


@pytest.fixture
def app(app_config):
    """Create a fresh app instance per test; the alarm stays unarmed."""
    return create_app(app_config, arm_alarm=False)


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        await eventually(lambda: app.state.pipeline.state.model_ready)
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac

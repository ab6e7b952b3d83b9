from __future__ import annotations

import asyncio
import inspect
import sys
from collections import defaultdict
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from symbiont.app.bus.envelope import Envelope
from symbiont.app.bus.errors import EnvelopeError
from symbiont.app.core.config import settings
from symbiont.app.core.rate_limiter import limiter
from symbiont.app.main import create_app
from symbiont.app.models import Base

Responder = Callable[[dict[str, Any]], Any]


class FakeSubscription:
    def __init__(self, bus: "FakeBus", topic: str, handler: Callable[[bytes], Awaitable[None]]) -> None:
        self.bus = bus
        self.topic = topic
        self.handler = handler
        self.closed = False
        self._error: BaseException | None = None
        self._done = asyncio.Event()

    async def wait(self) -> None:
        await self._done.wait()
        if self._error is not None:
            raise self._error

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        subscribers = self.bus.subscriptions.get(self.topic, [])
        if self in subscribers:
            subscribers.remove(self)
        self._done.set()

    def fail(self, exc: BaseException) -> None:
        self._error = exc
        subscribers = self.bus.subscriptions.get(self.topic, [])
        if self in subscribers:
            subscribers.remove(self)
        self._done.set()


class FakeBus:
    """In-memory bus delivering every publish to the current subscribers.

    ``responders`` maps a request topic to ``fn(payload) -> reply payload``
    (sync or async). A responder returning ``None`` never replies; one that
    raises replies with ``error`` set.
    """

    def __init__(self) -> None:
        self.published: list[tuple[str, bytes]] = []
        self.subscriptions: dict[str, list[FakeSubscription]] = defaultdict(list)
        self.responders: dict[str, Responder] = {}
        self.connected = False
        self.publish_error: Exception | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        for subscribers in list(self.subscriptions.values()):
            for subscription in list(subscribers):
                await subscription.close()
        self.connected = False

    async def subscribe(self, topic: str, handler: Callable[[bytes], Awaitable[None]]) -> FakeSubscription:
        subscription = FakeSubscription(self, topic, handler)
        self.subscriptions[topic].append(subscription)
        return subscription

    async def publish(self, topic: str, data: bytes) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, data))
        for subscription in list(self.subscriptions.get(topic, [])):
            self._spawn(subscription.handler(data))

        responder = self.responders.get(topic)
        if responder is None:
            return
        try:
            request = Envelope.decode(data)
        except EnvelopeError:
            return
        if request.reply_to:
            self._spawn(self._respond(responder, request))

    def envelopes(self, topic: str) -> list[Envelope]:
        return [Envelope.decode(data) for published_topic, data in self.published if published_topic == topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self.subscriptions.get(topic, []))

    async def _respond(self, responder: Responder, request: Envelope) -> None:
        try:
            result = responder(request.payload)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            reply = request.reply(error=str(exc))
        else:
            if result is None:
                return
            reply = request.reply(result)
        await self.publish(request.reply_to, reply.encode())

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture()
def fake_bus() -> FakeBus:
    return FakeBus()


@pytest.fixture()
def app(monkeypatch: pytest.MonkeyPatch, fake_bus: FakeBus) -> Iterator[TestClient]:
    monkeypatch.setattr(settings, "EMBEDDING_TIMEOUT", 0.3)
    monkeypatch.setattr(settings, "SEARCH_TIMEOUT", 0.3)
    monkeypatch.setattr(limiter, "enabled", False)

    with TestClient(create_app(bus=fake_bus)) as client:
        yield client


@pytest.fixture()
def engine() -> Iterator:
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)

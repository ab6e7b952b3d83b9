from __future__ import annotations

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from symbiont.app.bus.client import RedisBus, RedisSubscription
from symbiont.app.bus.errors import BusConnectionError


class FakePubSub:
    def __init__(self, messages: list[dict], *, fail: bool = False) -> None:
        self.messages = messages
        self.fail = fail
        self.unsubscribed: list[str] = []
        self.closed = False

    async def listen(self):
        for message in self.messages:
            yield message
        if self.fail:
            raise RedisConnectionError("connection reset")
        await asyncio.Event().wait()

    async def unsubscribe(self, topic: str) -> None:
        self.unsubscribed.append(topic)

    async def aclose(self) -> None:
        self.closed = True


def test_subscription_delivers_messages_and_survives_handler_errors() -> None:
    received: list[bytes] = []

    async def handler(data: bytes) -> None:
        if data == b"bad":
            raise ValueError("cannot handle")
        received.append(data)

    async def scenario() -> None:
        pubsub = FakePubSub(
            [
                {"type": "subscribe", "data": 1},
                {"type": "message", "data": b"bad"},
                {"type": "message", "data": b"good"},
            ]
        )
        subscription = RedisSubscription("topic", pubsub, handler)
        subscription.start()
        await asyncio.sleep(0.01)
        assert received == [b"good"]

        await subscription.close()
        await subscription.wait()
        assert pubsub.unsubscribed == ["topic"]
        assert pubsub.closed

    asyncio.run(scenario())


def test_lost_connection_surfaces_from_wait() -> None:
    async def handler(data: bytes) -> None:
        return None

    async def scenario() -> None:
        subscription = RedisSubscription("topic", FakePubSub([], fail=True), handler)
        subscription.start()
        with pytest.raises(BusConnectionError):
            await subscription.wait()

    asyncio.run(scenario())


def test_publish_requires_connection() -> None:
    async def scenario() -> None:
        with pytest.raises(BusConnectionError):
            await RedisBus("redis://localhost:6379/0").publish("topic", b"{}")

    asyncio.run(scenario())

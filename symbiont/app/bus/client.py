"""Redis publish/subscribe transport used as the message bus.

One :class:`RedisBus` is created per process, connected explicitly and
injected into every component that publishes or subscribes. Delivery is at
most once per currently connected subscriber; nothing is persisted.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import BusConnectionError, BusError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[bytes], Awaitable[None]]


class Subscription(Protocol):
    topic: str

    async def wait(self) -> None:
        """Return once closed; raise ``BusConnectionError`` if the link was lost."""

    async def close(self) -> None:
        ...


class Bus(Protocol):
    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def publish(self, topic: str, data: bytes) -> None:
        ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> Subscription:
        ...


class RedisSubscription:
    """A live binding of ``handler`` to one Redis channel."""

    def __init__(self, topic: str, pubsub: redis.client.PubSub, handler: MessageHandler) -> None:
        self.topic = topic
        self._pubsub = pubsub
        self._handler = handler
        self._closing = False
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._reader(), name=f"bus-subscription:{self.topic}")

    async def _reader(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await self._handler(message["data"])
                except Exception:
                    logger.exception("Handler for %s failed", self.topic)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            if self._closing:
                return
            logger.error("Lost bus connection while reading %s: %s", self.topic, exc)
            raise BusConnectionError(f"subscription to {self.topic} lost: {exc}") from exc

    async def wait(self) -> None:
        if self._task is None:
            return
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._closing:
                raise

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except (asyncio.CancelledError, BusConnectionError):
                pass
        try:
            await self._pubsub.unsubscribe(self.topic)
            await self._pubsub.aclose()
        except RedisError as exc:
            logger.debug("Ignoring error while closing subscription %s: %s", self.topic, exc)


class RedisBus:
    """Process-wide bus connection with an explicit connect/close lifecycle."""

    def __init__(self, url: str, *, health_check_interval: int = 30) -> None:
        self.url = url
        self.health_check_interval = health_check_interval
        self._client: redis.Redis | None = None
        self._subscriptions: set[RedisSubscription] = set()

    async def connect(self) -> None:
        client = redis.from_url(self.url, health_check_interval=self.health_check_interval)
        try:
            await client.ping()
        except RedisError as exc:
            await client.aclose()
            raise BusConnectionError(f"cannot reach bus at {self.url}: {exc}") from exc
        self._client = client
        logger.info("Connected to bus at %s", self.url)

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
        self._subscriptions.clear()
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Closed bus connection")

    async def publish(self, topic: str, data: bytes) -> None:
        client = self._require_client()
        try:
            await client.publish(topic, data)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise BusConnectionError(f"publish to {topic} failed: {exc}") from exc
        except RedisError as exc:
            raise BusError(f"publish to {topic} rejected: {exc}") from exc

    async def subscribe(self, topic: str, handler: MessageHandler) -> RedisSubscription:
        client = self._require_client()
        pubsub = client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(topic)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise BusConnectionError(f"subscribe to {topic} failed: {exc}") from exc
        subscription = RedisSubscription(topic, pubsub, handler)
        subscription.start()
        self._subscriptions.add(subscription)
        logger.debug("Subscribed to %s", topic)
        return subscription

    def _require_client(self) -> redis.Redis:
        if self._client is None:
            raise BusConnectionError("bus is not connected")
        return self._client

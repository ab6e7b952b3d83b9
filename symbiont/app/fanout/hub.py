"""Broadcast upstream bus events to a changing set of live listeners."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Type

from pydantic import BaseModel

from ..bus import topics
from ..bus.client import Bus, Subscription
from ..bus.envelope import Envelope
from ..bus.errors import EnvelopeError
from ..core.metrics import record_deliveries, record_deregistration, set_listener_count
from ..core.schemas import GeneratedTextEvent

logger = logging.getLogger(__name__)

_CLOSED = object()


class ListenerClosed(Exception):
    def __init__(self, reason: str | None) -> None:
        super().__init__(f"listener closed ({reason})")
        self.reason = reason


class Listener:
    """A registration with its own bounded event buffer.

    Iterating a listener yields events until it is deregistered.
    """

    def __init__(self, buffer_size: int) -> None:
        self.id = uuid.uuid4().hex
        self.closed = False
        self.close_reason: str | None = None
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=buffer_size)

    @property
    def buffered(self) -> int:
        return self._queue.qsize()

    def _offer(self, event: BaseModel) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def _close(self, reason: str) -> None:
        if self.closed:
            return
        self.closed = True
        self.close_reason = reason
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> Any:
        item = await self._queue.get()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise ListenerClosed(self.close_reason)
        return item

    def __aiter__(self) -> "Listener":
        return self

    async def __anext__(self) -> Any:
        try:
            return await self.get()
        except ListenerClosed:
            raise StopAsyncIteration from None


class EventFanoutHub:
    """Hold one upstream subscription and copy each event to every listener.

    A listener that cannot keep up is deregistered rather than allowed to
    stall delivery to the others. Listeners only see events published after
    they registered. The registry is only touched from the event loop thread.
    """

    def __init__(
        self,
        bus: Bus,
        topic: str = topics.TEXT_GENERATED,
        *,
        event_model: Type[BaseModel] = GeneratedTextEvent,
        buffer_size: int = 32,
    ) -> None:
        self.bus = bus
        self.topic = topic
        self.event_model = event_model
        self.buffer_size = buffer_size
        self._listeners: Dict[str, Listener] = {}
        self._subscription: Subscription | None = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = await self.bus.subscribe(self.topic, self._on_message)
            logger.info("Fanout hub listening on %s", self.topic)

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
        for listener in list(self._listeners.values()):
            self.deregister(listener, reason="shutdown")

    async def wait_closed(self) -> None:
        if self._subscription is not None:
            await self._subscription.wait()

    def register(self) -> Listener:
        listener = Listener(self.buffer_size)
        self._listeners[listener.id] = listener
        set_listener_count(self.topic, len(self._listeners))
        logger.info("Registered listener %s (%d live)", listener.id, len(self._listeners))
        return listener

    def deregister(self, listener: Listener, reason: str = "disconnect") -> bool:
        """Remove ``listener``; returns ``False`` if it was already gone."""

        if self._listeners.pop(listener.id, None) is None:
            return False
        listener._close(reason)
        set_listener_count(self.topic, len(self._listeners))
        record_deregistration(self.topic, reason)
        logger.info(
            "Deregistered listener %s (%s, %d live)", listener.id, reason, len(self._listeners)
        )
        return True

    def on_upstream_event(self, event: BaseModel) -> int:
        """Deliver ``event`` to every registered listener and return how many took it."""

        delivered = 0
        for listener in list(self._listeners.values()):
            if listener._offer(event):
                delivered += 1
            else:
                logger.warning("Listener %s fell behind; dropping it", listener.id)
                self.deregister(listener, reason="overflow")
        record_deliveries(self.topic, delivered)
        return delivered

    async def _on_message(self, data: bytes) -> None:
        try:
            event = Envelope.decode(data).parse_payload(self.event_model)
        except EnvelopeError as exc:
            logger.warning("Dropping malformed event on %s: %s", self.topic, exc)
            return
        self.on_upstream_event(event)

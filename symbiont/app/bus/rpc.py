"""Correlated request/reply on top of fire-and-forget publish/subscribe."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel

from ..core.metrics import record_call
from .client import Bus, Subscription
from .envelope import Envelope
from .errors import CallError, CallTimeout, EnvelopeError, RemoteCallError
from .topics import INBOX_PREFIX

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PendingCall:
    token: str
    topic: str
    future: asyncio.Future[Envelope]


class CorrelatedCallClient:
    """Turn an asynchronous request topic into a bounded awaitable call.

    Replies for every call arrive on a single inbox topic owned by the client,
    so an individual call never creates a bus subscription of its own. The
    pending-call registry is only touched from the event loop thread.
    """

    def __init__(self, bus: Bus, *, inbox_prefix: str = INBOX_PREFIX) -> None:
        self.bus = bus
        self.inbox = f"{inbox_prefix}.{uuid.uuid4().hex}"
        self._pending: Dict[str, PendingCall] = {}
        self._subscription: Subscription | None = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = await self.bus.subscribe(self.inbox, self._on_reply)

    async def close(self) -> None:
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_exception(CallError(pending.topic, "client closed"))
        self._pending.clear()
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def wait_closed(self) -> None:
        if self._subscription is not None:
            await self._subscription.wait()

    async def call(
        self,
        topic: str,
        payload: BaseModel | Dict[str, Any],
        timeout: float,
        *,
        task_id: str | None = None,
    ) -> Dict[str, Any]:
        """Publish a request and wait for its reply payload or the timeout."""

        if self._subscription is None:
            raise RuntimeError("CorrelatedCallClient.start() must be awaited before call()")

        loop = asyncio.get_running_loop()
        token = uuid.uuid4().hex
        pending = PendingCall(token=token, topic=topic, future=loop.create_future())
        self._pending[token] = pending

        request = Envelope.create(payload, task_id=task_id, reply_to=self.inbox, correlation_id=token)
        start = time.perf_counter()
        outcome = "error"
        try:
            await self.bus.publish(topic, request.encode())
            reply = await asyncio.wait_for(pending.future, timeout=timeout)
            if reply.error:
                raise RemoteCallError(topic, reply.error)
            outcome = "ok"
            return reply.payload
        except asyncio.TimeoutError as exc:
            outcome = "timeout"
            logger.warning(
                "Call to %s timed out after %.2fs (task_id=%s)", topic, timeout, request.task_id
            )
            raise CallTimeout(topic, timeout) from exc
        finally:
            self._pending.pop(token, None)
            record_call(topic, outcome, time.perf_counter() - start)

    async def _on_reply(self, data: bytes) -> None:
        try:
            reply = Envelope.decode(data)
        except EnvelopeError as exc:
            logger.warning("Dropping malformed reply on %s: %s", self.inbox, exc)
            return

        token = reply.correlation_id
        pending = self._pending.get(token) if token else None
        if pending is None:
            logger.debug("Discarding reply for unknown or expired token %s", token)
            return
        if pending.future.done():
            logger.debug("Discarding duplicate reply for token %s", token)
            return
        pending.future.set_result(reply)

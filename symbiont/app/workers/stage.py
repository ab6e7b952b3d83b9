"""Generic consume-transform-publish loop shared by every pipeline stage."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Type

from pydantic import BaseModel

from ..bus.client import Bus
from ..bus.envelope import Envelope
from ..bus.errors import BusConnectionError, EnvelopeError
from ..core.metrics import record_stage_result

logger = logging.getLogger(__name__)

StageResult = BaseModel | Dict[str, Any] | None
StageHandler = Callable[[Any, str], Awaitable[StageResult]]
Processor = Callable[[Envelope], Awaitable[None]]


class StageWorker:
    """Bind a handler to a bus topic and keep it running.

    Each inbound message is processed in its own task so a slow message never
    holds up the subscription. A failure inside a handler is logged and the
    message is dropped; losing the bus connection is the only error that ends
    :meth:`run` or :meth:`serve`.
    """

    def __init__(self, bus: Bus, name: str, *, drain_timeout: float = 5.0) -> None:
        self.bus = bus
        self.name = name
        self.drain_timeout = drain_timeout

    async def run(
        self,
        input_topic: str,
        handler: StageHandler,
        output_topic: str | None = None,
        *,
        input_model: Type[BaseModel] | None = None,
    ) -> None:
        """Consume ``input_topic`` and publish each non-empty result to ``output_topic``.

        The outbound envelope keeps the inbound task id. When ``output_topic``
        is ``None`` the stage is terminal and results are discarded.
        """

        async def process(envelope: Envelope) -> None:
            payload = self._parse(envelope, input_model)
            if payload is None:
                return

            start = time.perf_counter()
            try:
                result = await handler(payload, envelope.task_id)
            except Exception:
                logger.exception("Stage %s failed on task %s", self.name, envelope.task_id)
                record_stage_result(self.name, "failed", time.perf_counter() - start)
                return

            if result is None:
                logger.debug("Stage %s produced nothing for task %s", self.name, envelope.task_id)
                record_stage_result(self.name, "skipped", time.perf_counter() - start)
                return
            if output_topic is None:
                record_stage_result(self.name, "completed", time.perf_counter() - start)
                return

            await self.bus.publish(output_topic, envelope.forward(result).encode())
            record_stage_result(self.name, "published", time.perf_counter() - start)
            logger.debug("Stage %s forwarded task %s to %s", self.name, envelope.task_id, output_topic)

        await self._consume(input_topic, process)

    async def serve(
        self,
        request_topic: str,
        handler: StageHandler,
        *,
        request_model: Type[BaseModel] | None = None,
    ) -> None:
        """Answer correlated requests on ``request_topic``.

        Every request carrying a ``reply_to`` gets exactly one reply: the
        handler result, or an error string when the payload is invalid or the
        handler raised.
        """

        async def process(envelope: Envelope) -> None:
            if not envelope.reply_to:
                logger.warning(
                    "Stage %s dropping request without reply_to (task %s)", self.name, envelope.task_id
                )
                record_stage_result(self.name, "malformed")
                return

            start = time.perf_counter()
            try:
                payload = envelope.parse_payload(request_model) if request_model else envelope.payload
                result = await handler(payload, envelope.task_id)
                reply = envelope.reply(result)
                outcome = "replied"
            except EnvelopeError as exc:
                logger.warning("Stage %s rejecting request %s: %s", self.name, envelope.task_id, exc)
                reply = envelope.reply(error=str(exc))
                outcome = "malformed"
            except Exception as exc:
                logger.exception("Stage %s failed on request %s", self.name, envelope.task_id)
                reply = envelope.reply(error=str(exc) or exc.__class__.__name__)
                outcome = "failed"

            await self.bus.publish(envelope.reply_to, reply.encode())
            record_stage_result(self.name, outcome, time.perf_counter() - start)

        await self._consume(request_topic, process)

    def _parse(self, envelope: Envelope, model: Type[BaseModel] | None) -> Any:
        if model is None:
            return envelope.payload
        try:
            return envelope.parse_payload(model)
        except EnvelopeError as exc:
            logger.warning("Stage %s dropping message: %s", self.name, exc)
            record_stage_result(self.name, "malformed")
            return None

    async def _consume(self, topic: str, process: Processor) -> None:
        loop = asyncio.get_running_loop()
        fatal: asyncio.Future[None] = loop.create_future()
        in_flight: set[asyncio.Task[None]] = set()

        async def guarded(envelope: Envelope) -> None:
            try:
                await process(envelope)
            except BusConnectionError as exc:
                logger.error("Stage %s lost the bus while publishing: %s", self.name, exc)
                if not fatal.done():
                    fatal.set_exception(exc)
            except Exception:
                logger.exception("Stage %s could not publish result of task %s", self.name, envelope.task_id)
                record_stage_result(self.name, "failed")

        async def on_message(data: bytes) -> None:
            try:
                envelope = Envelope.decode(data)
            except EnvelopeError as exc:
                logger.warning("Stage %s dropping undecodable message on %s: %s", self.name, topic, exc)
                record_stage_result(self.name, "malformed")
                return
            task = asyncio.create_task(guarded(envelope), name=f"{self.name}:{envelope.task_id}")
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        subscription = await self.bus.subscribe(topic, on_message)
        logger.info("Stage %s consuming %s", self.name, topic)
        reader = asyncio.ensure_future(subscription.wait())
        try:
            done, _ = await asyncio.wait({reader, fatal}, return_when=asyncio.FIRST_COMPLETED)
            for future in done:
                future.result()
        finally:
            reader.cancel()
            await subscription.close()
            await self._drain(in_flight)
            if not fatal.done():
                fatal.cancel()
            logger.info("Stage %s stopped consuming %s", self.name, topic)

    async def _drain(self, in_flight: set[asyncio.Task[None]]) -> None:
        if not in_flight:
            return
        _, pending = await asyncio.wait(set(in_flight), timeout=self.drain_timeout)
        if pending:
            logger.warning("Stage %s cancelling %d unfinished messages", self.name, len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeBus, wait_until
from symbiont.app.api.routes_events import EventStreamResponse, event_stream
from symbiont.app.bus import topics
from symbiont.app.bus.envelope import Envelope
from symbiont.app.core.schemas import GeneratedTextEvent
from symbiont.app.core.sse import KEEPALIVE_COMMENT
from symbiont.app.fanout.hub import EventFanoutHub, ListenerClosed


def _event(n: int) -> GeneratedTextEvent:
    return GeneratedTextEvent(original_task_id=f"task-{n}", generated_text=f"text {n}", timestamp_ms=n)


class FakeRequest:
    def __init__(self) -> None:
        self.disconnected = False

    async def is_disconnected(self) -> bool:
        return self.disconnected


def test_every_listener_gets_each_event(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        first, second = hub.register(), hub.register()

        assert hub.on_upstream_event(_event(1)) == 2
        assert (await first.get()).original_task_id == "task-1"
        assert (await second.get()).original_task_id == "task-1"

    asyncio.run(scenario())


def test_no_replay_for_late_listeners(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        early = hub.register()
        hub.on_upstream_event(_event(1))
        late = hub.register()
        hub.on_upstream_event(_event(2))

        assert (await early.get()).timestamp_ms == 1
        assert (await late.get()).timestamp_ms == 2
        assert late.buffered == 0

    asyncio.run(scenario())


def test_slow_listener_is_dropped_without_stalling_others(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus, buffer_size=2)
        slow, fast = hub.register(), hub.register()

        delivered = []
        for n in range(3):
            delivered.append(hub.on_upstream_event(_event(n)))
            await fast.get()

        assert delivered == [2, 2, 1]
        assert slow.closed and slow.close_reason == "overflow"
        assert hub.listener_count == 1
        with pytest.raises(ListenerClosed):
            await slow.get()

    asyncio.run(scenario())


def test_deregister_ends_iteration_and_is_idempotent(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        listener = hub.register()

        assert hub.deregister(listener) is True
        assert hub.deregister(listener) is False
        assert [event async for event in listener] == []
        assert hub.on_upstream_event(_event(1)) == 0

    asyncio.run(scenario())


def test_hub_uses_one_upstream_subscription(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus, topics.TEXT_GENERATED)
        await hub.start()
        listeners = [hub.register() for _ in range(5)]
        assert fake_bus.subscriber_count(topics.TEXT_GENERATED) == 1

        await fake_bus.publish(topics.TEXT_GENERATED, b"not an envelope")
        await fake_bus.publish(topics.TEXT_GENERATED, Envelope.create(_event(7), task_id="task-7").encode())
        await wait_until(lambda: all(listener.buffered == 1 for listener in listeners))
        assert (await listeners[0].get()).generated_text == "text 7"

        await hub.stop()
        assert fake_bus.subscriber_count(topics.TEXT_GENERATED) == 0
        assert all(listener.close_reason == "shutdown" for listener in listeners)
        assert hub.listener_count == 0

    asyncio.run(scenario())


def test_event_stream_sends_keepalives_and_events(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        request = FakeRequest()
        listener = hub.register()
        stream = event_stream(request, hub, listener, keepalive=0.02)

        assert await stream.__anext__() == KEEPALIVE_COMMENT

        hub.on_upstream_event(_event(3))
        frame = await stream.__anext__()
        assert frame.startswith("data: ")
        assert '"original_task_id":"task-3"' in frame
        assert frame.endswith("\n\n")

        request.disconnected = True
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert hub.listener_count == 0
        assert listener.close_reason == "disconnect"

    asyncio.run(scenario())


def test_event_stream_ends_when_listener_is_dropped(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        listener = hub.register()
        stream = event_stream(FakeRequest(), hub, listener, keepalive=1.0)

        hub.deregister(listener, reason="overflow")
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        assert listener.close_reason == "overflow"

    asyncio.run(scenario())


def test_failed_write_drops_listener_with_write_failure(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        hub = EventFanoutHub(fake_bus)
        listener = hub.register()
        response = EventStreamResponse(
            hub, listener, event_stream(FakeRequest(), hub, listener, keepalive=1.0)
        )
        hub.on_upstream_event(_event(1))
        sent: list[dict] = []

        async def send(message: dict) -> None:
            if message["type"] == "http.response.body":
                raise OSError("broken pipe")
            sent.append(message)

        with pytest.raises(OSError):
            await response.stream_response(send)
        assert [message["type"] for message in sent] == ["http.response.start"]
        assert hub.listener_count == 0
        assert listener.close_reason == "write_failure"

    asyncio.run(scenario())

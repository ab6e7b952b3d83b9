from __future__ import annotations

import asyncio

import pytest

from conftest import FakeBus, wait_until
from symbiont.app.bus.envelope import Envelope
from symbiont.app.bus.errors import CallError, CallTimeout, RemoteCallError
from symbiont.app.bus.rpc import CorrelatedCallClient


def test_call_returns_reply_payload(fake_bus: FakeBus) -> None:
    fake_bus.responders["tasks.echo"] = lambda payload: {"echo": payload["value"]}

    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        reply = await client.call("tasks.echo", {"value": 7}, timeout=1.0, task_id="req-1")
        assert reply == {"echo": 7}
        assert client.pending_count == 0

        request = fake_bus.envelopes("tasks.echo")[0]
        assert request.task_id == "req-1"
        assert request.reply_to == client.inbox
        assert request.correlation_id

    asyncio.run(scenario())


def test_call_times_out_and_releases_token(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        loop = asyncio.get_running_loop()
        started = loop.time()
        with pytest.raises(CallTimeout) as excinfo:
            await client.call("tasks.nobody", {}, timeout=0.05)
        elapsed = loop.time() - started
        assert 0.05 <= elapsed < 0.05 + 0.1
        assert excinfo.value.topic == "tasks.nobody"
        assert client.pending_count == 0

    asyncio.run(scenario())


def test_late_reply_is_discarded(fake_bus: FakeBus) -> None:
    async def slow(payload: dict) -> dict:
        await asyncio.sleep(0.1)
        return {"late": True}

    fake_bus.responders["tasks.slow"] = slow

    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        with pytest.raises(CallTimeout):
            await client.call("tasks.slow", {}, timeout=0.02)
        await wait_until(lambda: len(fake_bus.envelopes(client.inbox)) == 1)
        await asyncio.sleep(0.01)
        assert client.pending_count == 0

    asyncio.run(scenario())


def test_only_first_reply_is_accepted(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        call = asyncio.create_task(client.call("tasks.manual", {}, timeout=1.0))
        await wait_until(lambda: bool(fake_bus.envelopes("tasks.manual")))
        request = fake_bus.envelopes("tasks.manual")[0]

        await fake_bus.publish(client.inbox, request.reply({"n": 1}).encode())
        await fake_bus.publish(client.inbox, request.reply({"n": 2}).encode())

        assert await call == {"n": 1}

    asyncio.run(scenario())


def test_unknown_and_malformed_replies_are_ignored(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        call = asyncio.create_task(client.call("tasks.manual", {}, timeout=1.0))
        await wait_until(lambda: bool(fake_bus.envelopes("tasks.manual")))
        request = fake_bus.envelopes("tasks.manual")[0]

        await fake_bus.publish(client.inbox, b"garbage")
        stranger = Envelope.create({"n": 0}, task_id="x", correlation_id="not-a-token")
        await fake_bus.publish(client.inbox, stranger.encode())
        await asyncio.sleep(0.01)
        assert not call.done()

        await fake_bus.publish(client.inbox, request.reply({"n": 1}).encode())
        assert await call == {"n": 1}

    asyncio.run(scenario())


def test_error_reply_raises_remote_call_error(fake_bus: FakeBus) -> None:
    def failing(payload: dict) -> dict:
        raise RuntimeError("model offline")

    fake_bus.responders["tasks.fail"] = failing

    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        with pytest.raises(RemoteCallError) as excinfo:
            await client.call("tasks.fail", {}, timeout=1.0)
        assert excinfo.value.error == "model offline"

    asyncio.run(scenario())


def test_concurrent_calls_are_independent(fake_bus: FakeBus) -> None:
    async def delayed_echo(payload: dict) -> dict:
        await asyncio.sleep(payload["delay"])
        return {"value": payload["value"]}

    fake_bus.responders["tasks.echo"] = delayed_echo

    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        results = await asyncio.gather(
            client.call("tasks.echo", {"value": "slow", "delay": 0.05}, timeout=1.0),
            client.call("tasks.echo", {"value": "fast", "delay": 0.0}, timeout=1.0),
            client.call("tasks.echo", {"value": "lost", "delay": 0.5}, timeout=0.05),
            return_exceptions=True,
        )
        assert results[0] == {"value": "slow"}
        assert results[1] == {"value": "fast"}
        assert isinstance(results[2], CallTimeout)
        assert fake_bus.subscriber_count(client.inbox) == 1

    asyncio.run(scenario())


def test_close_fails_outstanding_calls(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        await client.start()
        call = asyncio.create_task(client.call("tasks.nobody", {}, timeout=5.0))
        await wait_until(lambda: client.pending_count == 1)

        await client.close()

        with pytest.raises(CallError):
            await call
        assert fake_bus.subscriber_count(client.inbox) == 0

    asyncio.run(scenario())


def test_call_requires_start(fake_bus: FakeBus) -> None:
    async def scenario() -> None:
        client = CorrelatedCallClient(fake_bus)
        with pytest.raises(RuntimeError):
            await client.call("tasks.echo", {}, timeout=0.1)

    asyncio.run(scenario())

"""Exceptions raised by the bus layer."""
from __future__ import annotations


class BusError(Exception):
    """Base class for bus failures."""


class BusConnectionError(BusError):
    """The bus is unreachable; the owning process cannot make progress."""


class EnvelopeError(BusError):
    """A message could not be decoded into an envelope or payload."""


class CallError(BusError):
    """A correlated call did not produce a usable reply."""

    def __init__(self, topic: str, message: str) -> None:
        super().__init__(f"{topic}: {message}")
        self.topic = topic


class CallTimeout(CallError):
    def __init__(self, topic: str, timeout: float) -> None:
        super().__init__(topic, f"no reply within {timeout:g}s")
        self.timeout = timeout


class RemoteCallError(CallError):
    """The responder replied with an error instead of a payload."""

    def __init__(self, topic: str, error: str) -> None:
        super().__init__(topic, error)
        self.error = error

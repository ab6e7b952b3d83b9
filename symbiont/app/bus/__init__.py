"""Message bus transport, envelope and request/reply helpers."""
from . import topics
from .client import Bus, RedisBus, Subscription
from .envelope import Envelope, current_timestamp_ms, generate_task_id
from .errors import (
    BusConnectionError,
    BusError,
    CallError,
    CallTimeout,
    EnvelopeError,
    RemoteCallError,
)
from .rpc import CorrelatedCallClient

__all__ = [
    "Bus",
    "BusConnectionError",
    "BusError",
    "CallError",
    "CallTimeout",
    "CorrelatedCallClient",
    "Envelope",
    "EnvelopeError",
    "RedisBus",
    "RemoteCallError",
    "Subscription",
    "current_timestamp_ms",
    "generate_task_id",
    "topics",
]

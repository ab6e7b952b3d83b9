"""Message envelope shared by every bus topic."""
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import EnvelopeError

M = TypeVar("M", bound=BaseModel)


def current_timestamp_ms() -> int:
    return int(time.time() * 1000)


def generate_task_id() -> str:
    return str(uuid.uuid4())


def _dump(payload: BaseModel | Dict[str, Any] | None) -> Dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return dict(payload)


class Envelope(BaseModel):
    """A message instance: task id, payload and production timestamp.

    ``task_id`` is created once by the caller and copied unchanged by every
    stage that forwards the message. ``reply_to`` and ``correlation_id`` are
    only set on requests, ``error`` only on replies.
    """

    model_config = ConfigDict(frozen=True)

    task_id: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    produced_at: int = Field(default_factory=current_timestamp_ms)
    reply_to: str | None = None
    correlation_id: str | None = None
    error: str | None = None

    @classmethod
    def create(
        cls,
        payload: BaseModel | Dict[str, Any] | None,
        *,
        task_id: str | None = None,
        reply_to: str | None = None,
        correlation_id: str | None = None,
    ) -> "Envelope":
        """Start a new pipeline hop, generating a task id when none is given."""

        return cls(
            task_id=task_id or generate_task_id(),
            payload=_dump(payload),
            reply_to=reply_to,
            correlation_id=correlation_id,
        )

    def forward(self, payload: BaseModel | Dict[str, Any]) -> "Envelope":
        """Return the next hop's envelope, keeping the task id."""

        return Envelope(task_id=self.task_id, payload=_dump(payload))

    def reply(
        self,
        payload: BaseModel | Dict[str, Any] | None = None,
        *,
        error: str | None = None,
    ) -> "Envelope":
        """Build the reply to this request, echoing its correlation id."""

        return Envelope(
            task_id=self.task_id,
            payload=_dump(payload),
            correlation_id=self.correlation_id,
            error=error,
        )

    def parse_payload(self, model: Type[M]) -> M:
        try:
            return model.model_validate(self.payload)
        except ValidationError as exc:
            raise EnvelopeError(
                f"payload of task {self.task_id} does not match {model.__name__}: {exc}"
            ) from exc

    def encode(self) -> bytes:
        return self.model_dump_json(exclude_none=True).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes | str) -> "Envelope":
        try:
            return cls.model_validate_json(data)
        except ValidationError as exc:
            raise EnvelopeError(f"malformed envelope: {exc}") from exc

"""Task submission endpoints that publish work onto the bus."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, HttpUrl, TypeAdapter, ValidationError

from ..bus import topics
from ..bus.client import Bus
from ..bus.envelope import Envelope
from ..bus.errors import BusError
from ..core.config import settings
from ..core.rate_limiter import limiter
from ..core.schemas import GenerateTextTask, PerceiveUrlTask
from .deps import get_bus

logger = logging.getLogger(__name__)

router = APIRouter()

_http_url = TypeAdapter(HttpUrl)


class SubmitUrlRequest(BaseModel):
    url: str


class GenerateTextRequest(BaseModel):
    task_id: str
    prompt: str | None = None
    max_length: int


class TaskResponse(BaseModel):
    message: str
    task_id: str | None = None


def _reply(status_code: int, message: str, task_id: str | None = None) -> JSONResponse:
    return JSONResponse(
        TaskResponse(message=message, task_id=task_id).model_dump(), status_code=status_code
    )


@router.post("/submit-url", response_model=TaskResponse, summary="Queue a URL for ingestion")
@limiter.limit(settings.RATE_LIMIT_SUBMIT)
async def submit_url(request: Request, body: SubmitUrlRequest, bus: Bus = Depends(get_bus)) -> JSONResponse:
    url = body.url.strip()
    if not url:
        return _reply(status.HTTP_400_BAD_REQUEST, "URL cannot be empty")
    try:
        _http_url.validate_python(url)
    except ValidationError:
        logger.warning("Rejected invalid URL submission: %s", url)
        return _reply(status.HTTP_400_BAD_REQUEST, "URL must be an absolute http(s) URL")

    envelope = Envelope.create(PerceiveUrlTask(url=url))
    try:
        await bus.publish(topics.PERCEIVE_URL, envelope.encode())
    except BusError as exc:
        logger.error("Failed to publish ingestion task %s: %s", envelope.task_id, exc)
        return _reply(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to publish task to processing queue")

    logger.info("Queued ingestion of %s as task %s", url, envelope.task_id)
    return _reply(
        status.HTTP_200_OK,
        f"Task to scrape URL '{url}' submitted successfully.",
        envelope.task_id,
    )


@router.post("/generate-text", response_model=TaskResponse, summary="Queue a text generation task")
@limiter.limit(settings.RATE_LIMIT_GENERATE)
async def generate_text(
    request: Request, body: GenerateTextRequest, bus: Bus = Depends(get_bus)
) -> JSONResponse:
    task_id = body.task_id.strip()
    if not task_id:
        return _reply(status.HTTP_400_BAD_REQUEST, "task_id cannot be empty")
    if not 1 <= body.max_length <= settings.MAX_GENERATION_LENGTH:
        return _reply(
            status.HTTP_400_BAD_REQUEST,
            f"max_length must be between 1 and {settings.MAX_GENERATION_LENGTH}",
            task_id,
        )

    envelope = Envelope.create(
        GenerateTextTask(prompt=body.prompt, max_length=body.max_length), task_id=task_id
    )
    try:
        await bus.publish(topics.GENERATE_TEXT, envelope.encode())
    except BusError as exc:
        logger.error("Failed to publish generation task %s: %s", task_id, exc)
        return _reply(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to publish generation task to queue",
            task_id,
        )

    return _reply(
        status.HTTP_200_OK,
        f"Text generation task (id: {task_id}) submitted successfully.",
        task_id,
    )

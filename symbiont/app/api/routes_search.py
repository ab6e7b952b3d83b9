"""Semantic search endpoint backed by the search orchestrator."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..bus.envelope import generate_task_id
from ..core.config import settings
from ..core.rate_limiter import limiter
from ..core.schemas import ScoredMatch
from ..search.orchestrator import SearchError, SemanticSearchOrchestrator
from .deps import get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class SemanticSearchBody(BaseModel):
    query_text: str
    top_k: int = 5


class SemanticSearchResponse(BaseModel):
    search_request_id: str
    results: List[ScoredMatch] = Field(default_factory=list)
    error_message: str | None = None


def _reply(status_code: int, response: SemanticSearchResponse) -> JSONResponse:
    return JSONResponse(response.model_dump(mode="json"), status_code=status_code)


@router.post("/semantic", response_model=SemanticSearchResponse, summary="Search ingested sentences")
@limiter.limit(settings.RATE_LIMIT_SEARCH)
async def semantic_search(
    request: Request,
    body: SemanticSearchBody,
    orchestrator: SemanticSearchOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Embed the query, search the vector memory and return the matches.

    An unavailable embedding or search stage yields 503 with
    ``error_message`` set; no matches is a 200 with an empty list.
    """

    request_id = generate_task_id()
    query = body.query_text.strip()
    if not query:
        return _reply(
            status.HTTP_400_BAD_REQUEST,
            SemanticSearchResponse(search_request_id=request_id, error_message="query_text cannot be empty"),
        )
    if not 1 <= body.top_k <= settings.SEARCH_MAX_TOP_K:
        return _reply(
            status.HTTP_400_BAD_REQUEST,
            SemanticSearchResponse(
                search_request_id=request_id,
                error_message=f"top_k must be between 1 and {settings.SEARCH_MAX_TOP_K}",
            ),
        )

    try:
        results = await orchestrator.search(query, body.top_k, request_id=request_id)
    except SearchError as exc:
        return _reply(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            SemanticSearchResponse(search_request_id=request_id, error_message=str(exc)),
        )

    return _reply(
        status.HTTP_200_OK,
        SemanticSearchResponse(search_request_id=request_id, results=results),
    )

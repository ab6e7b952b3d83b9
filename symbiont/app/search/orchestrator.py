"""Two-step semantic search: embed the query, then search the vector memory."""
from __future__ import annotations

import logging
from typing import List

from pydantic import ValidationError

from ..bus import topics
from ..bus.envelope import generate_task_id
from ..bus.errors import BusError
from ..bus.rpc import CorrelatedCallClient
from ..core.schemas import (
    QueryEmbeddingReply,
    QueryEmbeddingRequest,
    ScoredMatch,
    SemanticSearchReply,
    SemanticSearchRequest,
)

logger = logging.getLogger(__name__)


class SearchError(Exception):
    """A search could not be answered; distinct from an empty result."""


class EmbeddingUnavailable(SearchError):
    pass


class SearchUnavailable(SearchError):
    pass


class SemanticSearchOrchestrator:
    def __init__(
        self,
        client: CorrelatedCallClient,
        *,
        embedding_timeout: float,
        search_timeout: float,
    ) -> None:
        self.client = client
        self.embedding_timeout = embedding_timeout
        self.search_timeout = search_timeout

    async def search(
        self, query_text: str, top_k: int, request_id: str | None = None
    ) -> List[ScoredMatch]:
        """Return up to ``top_k`` matches for ``query_text``.

        The search request is only sent once a complete embedding has come
        back, and each step is bounded by its own timeout.
        """

        request_id = request_id or generate_task_id()
        embedding = await self._embed_query(query_text, request_id)

        try:
            raw = await self.client.call(
                topics.SEMANTIC_SEARCH,
                SemanticSearchRequest(embedding=embedding, top_k=top_k),
                self.search_timeout,
                task_id=request_id,
            )
            reply = SemanticSearchReply.model_validate(raw)
        except BusError as exc:
            logger.warning("Semantic search failed for request %s: %s", request_id, exc)
            raise SearchUnavailable(f"search service unavailable: {exc}") from exc
        except ValidationError as exc:
            logger.warning("Malformed search reply for request %s: %s", request_id, exc)
            raise SearchUnavailable("search service returned a malformed reply") from exc

        logger.info("Search request %s returned %d results", request_id, len(reply.results))
        return reply.results

    async def _embed_query(self, query_text: str, request_id: str) -> List[float]:
        try:
            raw = await self.client.call(
                topics.EMBEDDING_FOR_QUERY,
                QueryEmbeddingRequest(query_text=query_text),
                self.embedding_timeout,
                task_id=request_id,
            )
            reply = QueryEmbeddingReply.model_validate(raw)
        except BusError as exc:
            logger.warning("Query embedding failed for request %s: %s", request_id, exc)
            raise EmbeddingUnavailable(f"embedding service unavailable: {exc}") from exc
        except ValidationError as exc:
            logger.warning("Malformed embedding reply for request %s: %s", request_id, exc)
            raise EmbeddingUnavailable("embedding service returned a malformed reply") from exc

        if not reply.embedding:
            raise EmbeddingUnavailable("embedding service returned an empty vector")
        return reply.embedding

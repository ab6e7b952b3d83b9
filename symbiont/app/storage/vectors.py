"""pgvector-backed sentence memory used by the vector-memory stage."""
from __future__ import annotations

import logging
from typing import List, Sequence

from sqlalchemy import Select, select, text
from sqlalchemy.orm import Session, sessionmaker

from ..bus.envelope import current_timestamp_ms
from ..core.schemas import MatchPayload, ScoredMatch, TextWithEmbeddings
from ..models import Base, SentenceVector

logger = logging.getLogger(__name__)


class DimensionMismatch(ValueError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"expected {expected}-dimensional vector, got {actual}")
        self.expected = expected
        self.actual = actual


def _build_search_statement(vector: Sequence[float], limit: int) -> Select:
    """Return the nearest-neighbour statement ordered by cosine distance."""

    distance = SentenceVector.vector.cosine_distance(vector)
    return (
        select(
            SentenceVector.id.label("point_id"),
            SentenceVector.document_id,
            SentenceVector.source_url,
            SentenceVector.sentence_text,
            SentenceVector.sentence_order,
            SentenceVector.model_name,
            SentenceVector.processed_at_ms,
            distance.label("distance"),
        )
        .order_by(distance)
        .limit(limit)
    )


class VectorStore:
    def __init__(self, session_factory: sessionmaker[Session], *, dimension: int) -> None:
        self.session_factory = session_factory
        self.dimension = dimension

    def ensure_schema(self) -> None:
        with self.session_factory() as session:
            bind = session.get_bind()
            if bind.dialect.name == "postgresql":
                session.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                session.commit()
            Base.metadata.create_all(bind, tables=[SentenceVector.__table__])

    def upsert(self, task_id: str, document: TextWithEmbeddings) -> int:
        """Store one row per sentence, replacing any earlier rows for ``task_id``."""

        for item in document.embeddings:
            self._check_dimension(item.embedding)

        processed_at = current_timestamp_ms()
        session = self.session_factory()
        try:
            session.query(SentenceVector).filter(SentenceVector.document_id == task_id).delete(
                synchronize_session=False
            )
            session.add_all(
                SentenceVector(
                    document_id=task_id,
                    source_url=document.url,
                    sentence_text=item.sentence_text,
                    sentence_order=order,
                    model_name=document.model_name,
                    processed_at_ms=processed_at,
                    vector=list(item.embedding),
                )
                for order, item in enumerate(document.embeddings)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info("Stored %d sentence vectors for task %s", len(document.embeddings), task_id)
        return len(document.embeddings)

    def search(self, embedding: Sequence[float], top_k: int) -> List[ScoredMatch]:
        """Return at most ``top_k`` matches by descending cosine similarity."""

        self._check_dimension(embedding)
        with self.session_factory() as session:
            rows = session.execute(_build_search_statement(list(embedding), top_k)).all()

        matches = [
            ScoredMatch(
                point_id=str(row.point_id),
                score=1.0 - float(row.distance or 0.0),
                payload=MatchPayload(
                    document_id=row.document_id,
                    source_url=row.source_url,
                    sentence_text=row.sentence_text,
                    sentence_order=row.sentence_order,
                    model_name=row.model_name,
                    processed_at_ms=row.processed_at_ms,
                ),
            )
            for row in rows
        ]
        return rank_matches(matches, top_k)

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatch(self.dimension, len(vector))


def rank_matches(matches: Sequence[ScoredMatch], top_k: int) -> List[ScoredMatch]:
    return sorted(matches, key=lambda match: match.score, reverse=True)[:top_k]

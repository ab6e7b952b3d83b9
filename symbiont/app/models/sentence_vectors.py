"""Sentence vectors kept by the vector-memory stage."""
from __future__ import annotations

import uuid

from sqlalchemy import BigInteger, Column, Index, Integer, String, Text, Uuid

from pgvector.sqlalchemy import Vector

from ..core.config import settings
from . import Base


class SentenceVector(Base):
    """One embedded sentence of an ingested document."""

    __tablename__ = "sentence_vectors"
    __table_args__ = (
        Index(
            "ix_sentence_vectors_vector_cosine",
            "vector",
            postgresql_using="hnsw",
            postgresql_with={"m": 16, "ef_construction": 64},
            postgresql_ops={"vector": "vector_cosine_ops"},
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(String, nullable=False, index=True)
    source_url = Column(Text, nullable=False)
    sentence_text = Column(Text, nullable=False)
    sentence_order = Column(Integer, nullable=False, default=0)
    model_name = Column(String, nullable=False)
    processed_at_ms = Column(BigInteger, nullable=False)
    vector = Column(Vector(settings.EMBEDDING_DIM), nullable=False)

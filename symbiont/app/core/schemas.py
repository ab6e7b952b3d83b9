"""Payload schemas exchanged between stages over the bus.

Producers and consumers agree on these models out of band; the bus itself
never validates them. The envelope carries ``task_id`` so payloads do not
repeat it.
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class PerceiveUrlTask(BaseModel):
    url: str


class RawTextDiscovered(BaseModel):
    url: str
    text: str


class TokenizedText(BaseModel):
    url: str
    sentences: List[str] = Field(default_factory=list)
    tokens: List[str] = Field(default_factory=list)


class SentenceEmbedding(BaseModel):
    sentence_text: str
    embedding: List[float]


class TextWithEmbeddings(BaseModel):
    url: str
    embeddings: List[SentenceEmbedding] = Field(default_factory=list)
    model_name: str


class QueryEmbeddingRequest(BaseModel):
    query_text: str


class QueryEmbeddingReply(BaseModel):
    embedding: List[float]
    model_name: str | None = None


class SemanticSearchRequest(BaseModel):
    embedding: List[float]
    top_k: int = Field(..., ge=1)


class MatchPayload(BaseModel):
    """Metadata stored alongside every sentence vector."""

    document_id: str
    source_url: str
    sentence_text: str
    sentence_order: int
    model_name: str
    processed_at_ms: int


class ScoredMatch(BaseModel):
    point_id: str
    score: float
    payload: MatchPayload


class SemanticSearchReply(BaseModel):
    results: List[ScoredMatch] = Field(default_factory=list)


class GenerateTextTask(BaseModel):
    prompt: str | None = None
    max_length: int = Field(..., ge=1)


class GeneratedTextEvent(BaseModel):
    original_task_id: str
    generated_text: str
    timestamp_ms: int

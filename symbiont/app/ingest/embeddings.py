"""Sentence embedding utilities."""
from __future__ import annotations

import logging
import threading
from typing import List, Sequence

from sentence_transformers import SentenceTransformer

from ..core.config import settings

logger = logging.getLogger(__name__)
_model_lock = threading.Lock()
_cached_model: SentenceTransformer | None = None
_cached_model_name: str | None = None


class EmbeddingMismatch(ValueError):
    """The model returned a different number of vectors than sentences given."""


def get_model(model_name: str | None = None) -> SentenceTransformer:
    """Return a cached sentence-transformers model instance."""

    name = model_name or settings.EMBEDDING_MODEL_NAME

    global _cached_model, _cached_model_name
    with _model_lock:
        if _cached_model is None or _cached_model_name != name:
            logger.info("Loading embedding model: %s", name)
            _cached_model = SentenceTransformer(name)
            _cached_model_name = name
    return _cached_model


def embed_sentences(
    sentences: Sequence[str],
    *,
    model_name: str | None = None,
    embedding_dim: int | None = None,
) -> List[List[float]]:
    """Embed each sentence, keeping one vector per input in input order."""

    if not sentences:
        return []

    model = get_model(model_name)
    vectors = model.encode(
        list(sentences),
        batch_size=32,
        convert_to_numpy=True,
        show_progress_bar=False,
        normalize_embeddings=False,
    )
    if len(vectors) != len(sentences):
        raise EmbeddingMismatch(
            f"model returned {len(vectors)} embeddings for {len(sentences)} sentences"
        )

    target_dim = embedding_dim or settings.EMBEDDING_DIM
    return [_fit_vector(row.tolist(), target_dim) for row in vectors]


def embed_query(text: str, *, model_name: str | None = None) -> List[float]:
    cleaned = " ".join(text.split())
    if not cleaned:
        return []
    return embed_sentences([cleaned], model_name=model_name)[0]


def _fit_vector(vector: Sequence[float], target_dim: int) -> List[float]:
    values = list(vector)
    if len(values) == target_dim:
        return values
    if len(values) > target_dim:
        logger.debug("Truncating embedding vector from %s to %s dimensions", len(values), target_dim)
        return values[:target_dim]
    return values + [0.0] * (target_dim - len(values))

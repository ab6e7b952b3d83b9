"""SQLAlchemy declarative base for the storage stages."""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Imported after Base so the model modules can import it without a cycle.
from .graph import (  # noqa: E402,F401
    DocumentSentence,
    DocumentToken,
    GraphDocument,
    GraphSentence,
    GraphToken,
)
from .sentence_vectors import SentenceVector  # noqa: E402,F401


__all__ = [
    "Base",
    "DocumentSentence",
    "DocumentToken",
    "GraphDocument",
    "GraphSentence",
    "GraphToken",
    "SentenceVector",
]

"""Document, sentence and token nodes with the edges between them."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship

from . import Base


class GraphDocument(Base):
    __tablename__ = "graph_documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    task_id = Column(String, nullable=False, unique=True)
    source_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sentences = relationship(
        "DocumentSentence",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentSentence.order",
    )
    tokens = relationship("DocumentToken", back_populates="document", cascade="all, delete-orphan")


class GraphSentence(Base):
    """A sentence node, shared by every document that contains the same text."""

    __tablename__ = "graph_sentences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    text = Column(Text, nullable=False, unique=True)


class GraphToken(Base):
    """A token node keyed by its lower-cased text."""

    __tablename__ = "graph_tokens"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    text_lc = Column(String, nullable=False, unique=True)
    text_original_case = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class DocumentSentence(Base):
    __tablename__ = "graph_document_sentences"
    __table_args__ = (UniqueConstraint("document_id", "sentence_id", "order"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("graph_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sentence_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("graph_sentences.id", ondelete="CASCADE"),
        nullable=False,
    )
    order = Column(Integer, nullable=False)

    document = relationship("GraphDocument", back_populates="sentences")
    sentence = relationship("GraphSentence")


class DocumentToken(Base):
    __tablename__ = "graph_document_tokens"
    __table_args__ = (UniqueConstraint("document_id", "token_id"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("graph_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("graph_tokens.id", ondelete="CASCADE"),
        nullable=False,
    )

    document = relationship("GraphDocument", back_populates="tokens")
    token = relationship("GraphToken")

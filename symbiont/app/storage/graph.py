"""Relational knowledge graph written by the graph-write stage."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Sequence, Type

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from ..core.schemas import TokenizedText
from ..models import Base, DocumentSentence, DocumentToken, GraphDocument, GraphSentence, GraphToken

logger = logging.getLogger(__name__)

GRAPH_TABLES = [
    GraphDocument.__table__,
    GraphSentence.__table__,
    GraphToken.__table__,
    DocumentSentence.__table__,
    DocumentToken.__table__,
]

_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


@dataclass(slots=True)
class GraphWriteSummary:
    task_id: str
    sentences: int
    tokens: int


class GraphStore:
    """Merge tokenized documents into the graph tables.

    Writing the same document twice leaves the graph unchanged: nodes are
    keyed by task id, sentence text and lower-cased token text. Nodes and
    edges are written with ON CONFLICT inserts, so concurrent writers that
    introduce the same sentence or token do not collide.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def ensure_schema(self) -> None:
        with self.session_factory() as session:
            Base.metadata.create_all(session.get_bind(), tables=GRAPH_TABLES)

    def save(self, task_id: str, document: TokenizedText) -> GraphWriteSummary:
        session = self.session_factory()
        try:
            summary = self._merge(session, task_id, document)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        logger.info(
            "Graph updated for task %s: %d sentences, %d tokens",
            task_id,
            summary.sentences,
            summary.tokens,
        )
        return summary

    def _merge(self, session: Session, task_id: str, document: TokenizedText) -> GraphWriteSummary:
        insert = _insert_for(session)
        node = _merge_node(
            session, insert, GraphDocument, "task_id", {"task_id": task_id, "source_url": document.url}
        )

        sentence_count = 0
        for order, text in enumerate(document.sentences):
            text = text.strip()
            if not text:
                continue
            sentence = _merge_node(session, insert, GraphSentence, "text", {"text": text})
            session.execute(
                insert(DocumentSentence)
                .values(document_id=node.id, sentence_id=sentence.id, order=order)
                .on_conflict_do_nothing(
                    index_elements=_columns(DocumentSentence, "document_id", "sentence_id", "order")
                )
            )
            sentence_count += 1

        token_count = 0
        for raw in document.tokens:
            text = raw.strip()
            if not text:
                continue
            token = _merge_node(
                session,
                insert,
                GraphToken,
                "text_lc",
                {"text_lc": text.lower(), "text_original_case": text},
                update=("text_original_case",),
            )
            session.execute(
                insert(DocumentToken)
                .values(document_id=node.id, token_id=token.id)
                .on_conflict_do_nothing(index_elements=_columns(DocumentToken, "document_id", "token_id"))
            )
            token_count += 1

        return GraphWriteSummary(task_id=task_id, sentences=sentence_count, tokens=token_count)


def _columns(model: Type[Base], *names: str) -> list:
    return [model.__table__.c[name] for name in names]


def _insert_for(session: Session) -> Callable[..., Any]:
    dialect = session.get_bind().dialect.name
    try:
        return _UPSERT_INSERTS[dialect]
    except KeyError:
        raise ValueError(f"graph store does not support the {dialect!r} dialect") from None


def build_node_merge(
    insert: Callable[..., Any],
    model: Type[Base],
    key: str,
    values: Dict[str, Any],
    *,
    update: Sequence[str] = (),
) -> Any:
    """Insert a node keyed by ``key`` unless it exists, optionally refreshing ``update`` columns."""

    stmt = insert(model).values(**values)
    if update:
        return stmt.on_conflict_do_update(
            index_elements=_columns(model, key), set_={name: stmt.excluded[name] for name in update}
        )
    return stmt.on_conflict_do_nothing(index_elements=_columns(model, key))


def _merge_node(
    session: Session,
    insert: Callable[..., Any],
    model: Type[Base],
    key: str,
    values: Dict[str, Any],
    *,
    update: Sequence[str] = (),
) -> Any:
    session.execute(build_node_merge(insert, model, key, values, update=update))
    return session.scalars(
        select(model)
        .where(getattr(model, key) == values[key])
        .execution_options(populate_existing=True)
    ).one()

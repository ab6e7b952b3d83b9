"""Handlers for each pipeline stage.

Every factory returns an ``async (payload, task_id)`` callable suitable for
:meth:`StageWorker.run` or :meth:`StageWorker.serve`. Blocking work (model
inference, database writes) is pushed to a thread.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence

from ..bus.envelope import current_timestamp_ms
from ..core.schemas import (
    GeneratedTextEvent,
    GenerateTextTask,
    PerceiveUrlTask,
    QueryEmbeddingReply,
    QueryEmbeddingRequest,
    RawTextDiscovered,
    SemanticSearchReply,
    SemanticSearchRequest,
    SentenceEmbedding,
    TextWithEmbeddings,
    TokenizedText,
)
from ..generation import TextGenerator
from ..ingest.embeddings import EmbeddingMismatch
from ..ingest.tokenizer import split_sentences, tokenize_document
from ..storage import GraphStore, VectorStore

logger = logging.getLogger(__name__)

Scraper = Callable[[str], Awaitable[str]]
SentenceEmbedder = Callable[[Sequence[str]], List[List[float]]]
QueryEmbedder = Callable[[str], List[float]]


def ingest_handler(scrape: Scraper):
    async def handle(task: PerceiveUrlTask, task_id: str) -> RawTextDiscovered | None:
        logger.info("Scraping %s for task %s", task.url, task_id)
        text = await scrape(task.url)
        if not text.strip():
            return None
        return RawTextDiscovered(url=task.url, text=text)

    return handle


def tokenize_handler():
    async def handle(raw: RawTextDiscovered, task_id: str) -> TokenizedText | None:
        document = tokenize_document(raw.text)
        if not document.sentences:
            logger.warning("No sentences found for task %s", task_id)
            return None
        return TokenizedText(url=raw.url, sentences=document.sentences, tokens=document.tokens)

    return handle


def embed_handler(embed_sentences: SentenceEmbedder, model_name: str):
    async def handle(raw: RawTextDiscovered, task_id: str) -> TextWithEmbeddings | None:
        sentences = split_sentences(raw.text)
        if not sentences:
            logger.warning("No sentences to embed for task %s", task_id)
            return None

        vectors = await asyncio.to_thread(embed_sentences, sentences)
        if len(vectors) != len(sentences):
            raise EmbeddingMismatch(
                f"{len(vectors)} embeddings for {len(sentences)} sentences in task {task_id}"
            )
        logger.info("Embedded %d sentences for task %s", len(sentences), task_id)
        return TextWithEmbeddings(
            url=raw.url,
            embeddings=[
                SentenceEmbedding(sentence_text=sentence, embedding=vector)
                for sentence, vector in zip(sentences, vectors)
            ],
            model_name=model_name,
        )

    return handle


def query_embedding_handler(embed_query: QueryEmbedder, model_name: str):
    async def handle(request: QueryEmbeddingRequest, task_id: str) -> QueryEmbeddingReply:
        if not request.query_text.strip():
            raise ValueError("query_text is empty")
        vector = await asyncio.to_thread(embed_query, request.query_text)
        if not vector:
            raise ValueError("embedding model returned an empty vector")
        return QueryEmbeddingReply(embedding=vector, model_name=model_name)

    return handle


def graph_write_handler(store: GraphStore):
    async def handle(document: TokenizedText, task_id: str):
        return await asyncio.to_thread(store.save, task_id, document)

    return handle


def vector_write_handler(store: VectorStore):
    async def handle(document: TextWithEmbeddings, task_id: str):
        if not document.embeddings:
            return None
        return await asyncio.to_thread(store.upsert, task_id, document)

    return handle


def vector_search_handler(store: VectorStore):
    async def handle(request: SemanticSearchRequest, task_id: str) -> SemanticSearchReply:
        results = await asyncio.to_thread(store.search, request.embedding, request.top_k)
        logger.info("Search %s matched %d sentences", task_id, len(results))
        return SemanticSearchReply(results=results)

    return handle


def generate_handler(generator: TextGenerator):
    async def handle(task: GenerateTextTask, task_id: str) -> GeneratedTextEvent:
        text = await generator.generate(task.prompt, task.max_length)
        return GeneratedTextEvent(
            original_task_id=task_id,
            generated_text=text,
            timestamp_ms=current_timestamp_ms(),
        )

    return handle

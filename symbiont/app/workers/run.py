"""Command line entrypoint that runs one or more stage services in a process."""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Awaitable, Callable, Dict, List, Sequence

from prometheus_client import start_http_server

from ..bus import topics
from ..bus.client import Bus, RedisBus
from ..bus.errors import BusConnectionError
from ..core.config import Settings, settings
from ..core.db import get_session_factory
from ..core.logging import configure_logging
from ..core.schemas import (
    GenerateTextTask,
    PerceiveUrlTask,
    QueryEmbeddingRequest,
    RawTextDiscovered,
    SemanticSearchRequest,
    TextWithEmbeddings,
    TokenizedText,
)
from ..generation import get_generator
from ..ingest import embeddings
from ..ingest.scraper import scrape_url
from ..storage import GraphStore, VectorStore
from . import stages
from .stage import StageWorker

logger = logging.getLogger(__name__)

ServiceBuilder = Callable[[Bus, Settings], Awaitable[List[Awaitable[None]]]]


def _worker(bus: Bus, name: str, config: Settings) -> StageWorker:
    return StageWorker(bus, name, drain_timeout=config.STAGE_DRAIN_TIMEOUT)


async def _ingest(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    worker = _worker(bus, "ingest", config)
    return [
        worker.run(
            topics.PERCEIVE_URL,
            stages.ingest_handler(scrape_url),
            topics.RAW_TEXT_DISCOVERED,
            input_model=PerceiveUrlTask,
        )
    ]


async def _tokenize(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    worker = _worker(bus, "tokenize", config)
    return [
        worker.run(
            topics.RAW_TEXT_DISCOVERED,
            stages.tokenize_handler(),
            topics.TEXT_TOKENIZED,
            input_model=RawTextDiscovered,
        )
    ]


async def _embed(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    model_name = config.EMBEDDING_MODEL_NAME
    pipeline = _worker(bus, "embed", config)
    responder = _worker(bus, "embed-query", config)
    return [
        pipeline.run(
            topics.RAW_TEXT_DISCOVERED,
            stages.embed_handler(embeddings.embed_sentences, model_name),
            topics.TEXT_WITH_EMBEDDINGS,
            input_model=RawTextDiscovered,
        ),
        responder.serve(
            topics.EMBEDDING_FOR_QUERY,
            stages.query_embedding_handler(embeddings.embed_query, model_name),
            request_model=QueryEmbeddingRequest,
        ),
    ]


async def _graph_write(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    store = GraphStore(get_session_factory())
    await asyncio.to_thread(store.ensure_schema)
    worker = _worker(bus, "graph-write", config)
    return [
        worker.run(
            topics.TEXT_TOKENIZED,
            stages.graph_write_handler(store),
            input_model=TokenizedText,
        )
    ]


async def _vector_memory(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    store = VectorStore(get_session_factory(), dimension=config.EMBEDDING_DIM)
    await asyncio.to_thread(store.ensure_schema)
    writer = _worker(bus, "vector-write", config)
    searcher = _worker(bus, "vector-search", config)
    return [
        writer.run(
            topics.TEXT_WITH_EMBEDDINGS,
            stages.vector_write_handler(store),
            input_model=TextWithEmbeddings,
        ),
        searcher.serve(
            topics.SEMANTIC_SEARCH,
            stages.vector_search_handler(store),
            request_model=SemanticSearchRequest,
        ),
    ]


async def _generate(bus: Bus, config: Settings) -> List[Awaitable[None]]:
    worker = _worker(bus, "generate", config)
    return [
        worker.run(
            topics.GENERATE_TEXT,
            stages.generate_handler(get_generator(config)),
            topics.TEXT_GENERATED,
            input_model=GenerateTextTask,
        )
    ]


SERVICES: Dict[str, ServiceBuilder] = {
    "ingest": _ingest,
    "tokenize": _tokenize,
    "embed": _embed,
    "graph-write": _graph_write,
    "vector-memory": _vector_memory,
    "generate": _generate,
}


async def run_services(names: Sequence[str], *, config: Settings = settings, bus: Bus | None = None) -> None:
    """Run the named services on one shared bus connection until cancelled.

    Raises ``BusConnectionError`` as soon as any service loses the bus.
    """

    bus = bus or RedisBus(config.REDIS_URL)
    await bus.connect()
    try:
        coroutines: List[Awaitable[None]] = []
        for name in names:
            coroutines.extend(await SERVICES[name](bus, config))
        logger.info("Started services: %s", ", ".join(names))

        tasks = [asyncio.ensure_future(coro) for coro in coroutines]
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: [task.cancel() for task in tasks])
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handlers unavailable for %s", sig)

        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                raise result
        logger.info("Services stopped")
    finally:
        await bus.close()


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="symbiont-worker", description="Run Symbiont stage services.")
    parser.add_argument(
        "services",
        nargs="+",
        choices=[*SERVICES, "all"],
        help="services to run in this process",
    )
    parser.add_argument("--log-level", default=None, help="override LOG_LEVEL")
    parser.add_argument("--metrics-port", type=int, default=None, help="override WORKER_METRICS_PORT")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level or settings.LOG_LEVEL)

    names = list(SERVICES) if "all" in args.services else list(dict.fromkeys(args.services))

    metrics_port = args.metrics_port if args.metrics_port is not None else settings.WORKER_METRICS_PORT
    if metrics_port:
        start_http_server(metrics_port)
        logger.info("Serving worker metrics on port %d", metrics_port)

    try:
        asyncio.run(run_services(names))
    except BusConnectionError as exc:
        logger.critical("Bus connection lost, exiting: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())

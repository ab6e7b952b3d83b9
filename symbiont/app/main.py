"""FastAPI application entry point for the Symbiont gateway."""
from __future__ import annotations

import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from .api import routes_admin, routes_events, routes_search, routes_tasks
from .bus import topics
from .bus.client import Bus, RedisBus
from .bus.errors import BusConnectionError
from .bus.rpc import CorrelatedCallClient
from .core.config import settings
from .core.logging import configure_logging
from .core.middleware import RequestLoggingMiddleware
from .core.rate_limiter import limiter, rate_limit_handler
from .fanout.hub import EventFanoutHub
from .search.orchestrator import SemanticSearchOrchestrator

logger = logging.getLogger(__name__)


async def _watch_subscription(name: str, wait: Callable[[], Awaitable[None]]) -> None:
    try:
        await wait()
    except BusConnectionError as exc:
        logger.critical("Gateway lost its %s subscription (%s); shutting down", name, exc)
        signal.raise_signal(signal.SIGTERM)


def create_app(bus: Bus | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``bus`` replaces the Redis bus, which is otherwise created and connected
    when the application starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active_bus = bus or RedisBus(settings.REDIS_URL)
        await active_bus.connect()

        client = CorrelatedCallClient(active_bus)
        await client.start()
        hub = EventFanoutHub(active_bus, topics.TEXT_GENERATED, buffer_size=settings.FANOUT_BUFFER_SIZE)
        await hub.start()

        app.state.bus = active_bus
        app.state.call_client = client
        app.state.hub = hub
        app.state.orchestrator = SemanticSearchOrchestrator(
            client,
            embedding_timeout=settings.EMBEDDING_TIMEOUT,
            search_timeout=settings.SEARCH_TIMEOUT,
        )

        watchdogs = [
            asyncio.create_task(_watch_subscription("reply inbox", client.wait_closed)),
            asyncio.create_task(_watch_subscription("event", hub.wait_closed)),
        ]
        logger.info("%s gateway started", settings.PROJECT_NAME)
        try:
            yield
        finally:
            for task in watchdogs:
                task.cancel()
            await hub.stop()
            await client.close()
            await active_bus.close()
            logger.info("%s gateway stopped", settings.PROJECT_NAME)

    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(routes_tasks.router, prefix="/api", tags=["tasks"])
    app.include_router(routes_events.router, prefix="/api", tags=["events"])
    app.include_router(routes_search.router, prefix="/api/search", tags=["search"])

    return app


app = create_app()


def run() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None)


if __name__ == "__main__":
    run()

"""Dependency accessors for components created in the application lifespan."""
from __future__ import annotations

from fastapi import Request

from ..bus.client import Bus
from ..fanout.hub import EventFanoutHub
from ..search.orchestrator import SemanticSearchOrchestrator


def get_bus(request: Request) -> Bus:
    return request.app.state.bus


def get_orchestrator(request: Request) -> SemanticSearchOrchestrator:
    return request.app.state.orchestrator


def get_hub(request: Request) -> EventFanoutHub:
    return request.app.state.hub

"""API routers for the gateway."""
from . import routes_admin, routes_events, routes_search, routes_tasks

__all__ = ["routes_admin", "routes_events", "routes_search", "routes_tasks"]

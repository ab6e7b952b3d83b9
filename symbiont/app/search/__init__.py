from .orchestrator import (
    EmbeddingUnavailable,
    SearchError,
    SearchUnavailable,
    SemanticSearchOrchestrator,
)

__all__ = [
    "EmbeddingUnavailable",
    "SearchError",
    "SearchUnavailable",
    "SemanticSearchOrchestrator",
]

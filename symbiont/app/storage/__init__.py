from .graph import GraphStore, GraphWriteSummary
from .vectors import DimensionMismatch, VectorStore, rank_matches

__all__ = ["DimensionMismatch", "GraphStore", "GraphWriteSummary", "VectorStore", "rank_matches"]

"""Retrieval module: variant search, confidence scoring and context assembly."""

from .context import AssembledContext, assemble_context, build_prompt_context
from .retriever import RetrievalResult, VectorRetriever, mean_similarity, quality_filter
from .scoring import score_confidence

__all__ = [
    "AssembledContext",
    "assemble_context",
    "build_prompt_context",
    "RetrievalResult",
    "VectorRetriever",
    "mean_similarity",
    "quality_filter",
    "score_confidence"
]

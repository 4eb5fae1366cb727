"""Embedding module: provider client and bounded embedding cache."""

from .client import EmbeddingClient, EmbeddingProvider, parse_embedding_response
from .cache import BoundedCache, EmbeddingCache, normalize_text, to_vector

__all__ = [
    "EmbeddingClient",
    "EmbeddingProvider",
    "parse_embedding_response",
    "BoundedCache",
    "EmbeddingCache",
    "normalize_text",
    "to_vector"
]

"""Indexing module: per-corpus chunk store with exact cosine search."""

from .chunk_store import ChunkStore
from .models import Corpus, Document, Fragment, SearchHit
from .similarity import cosine_similarity, normalize_vectors

__all__ = [
    "ChunkStore",
    "Corpus",
    "Document",
    "Fragment",
    "SearchHit",
    "cosine_similarity",
    "normalize_vectors"
]

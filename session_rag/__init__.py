"""
Session RAG

In-process retrieval engine: sentence chunking, cached embeddings, per-corpus
exact cosine search, query expansion, confidence scoring and context assembly.
"""

from .rag_system import RAGSystem, IngestResult, QueryResult
from .chunking import DocumentChunker
from .config import EngineConfig
from .embedding import EmbeddingCache, EmbeddingClient
from .expansion import CompletionClient, QueryExpander
from .indexing import ChunkStore
from .retrieval import VectorRetriever, assemble_context, score_confidence
from .errors import (
    RAGError,
    CorpusNotFound,
    IngestionFailed,
    EmbeddingProviderError,
    ExpansionUnavailable,
    EmbeddingDimensionMismatch,
    InvalidDocumentBatch,
    StoreClosed
)

__version__ = "0.1.0"

__all__ = [
    "RAGSystem",
    "IngestResult",
    "QueryResult",
    "DocumentChunker",
    "EngineConfig",
    "EmbeddingCache",
    "EmbeddingClient",
    "CompletionClient",
    "QueryExpander",
    "ChunkStore",
    "VectorRetriever",
    "assemble_context",
    "score_confidence",
    "RAGError",
    "CorpusNotFound",
    "IngestionFailed",
    "EmbeddingProviderError",
    "ExpansionUnavailable",
    "EmbeddingDimensionMismatch",
    "InvalidDocumentBatch",
    "StoreClosed"
]

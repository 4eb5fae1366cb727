"""
Error Types

Exceptions raised by the retrieval engine and its provider clients.
"""

from typing import Optional


class RAGError(Exception):
    """Base class for all engine errors."""


class CorpusNotFound(RAGError):
    """Raised when a corpus id is unknown or has already been reaped."""

    def __init__(self, corpus_id: str):
        super().__init__(f"Corpus not found: {corpus_id}")
        self.corpus_id = corpus_id


class IngestionFailed(RAGError):
    """One file of an upload batch could not be chunked, embedded or stored."""

    def __init__(self, filename: str, cause: Optional[BaseException] = None):
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(f"Failed to process file {filename}: {reason}")
        self.filename = filename
        self.cause = cause


class EmbeddingProviderError(RAGError):
    """The embedding provider failed, timed out or returned an unusable vector."""


class ExpansionUnavailable(RAGError):
    """The completion provider could not produce query variations."""


class EmbeddingDimensionMismatch(RAGError):
    """A vector's length differs from the dimension already used by a corpus."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class InvalidDocumentBatch(RAGError):
    """An upload batch failed validation before any processing started."""

    def __init__(self, errors):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class StoreClosed(RAGError):
    """The chunk store was used after close()."""

"""Chunking module for sentence-based document splitting."""

from .chunker import DocumentChunker, chunk_text

__all__ = ["DocumentChunker", "chunk_text"]

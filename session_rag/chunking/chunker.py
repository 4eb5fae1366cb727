"""
Document Chunking Module

Provides sentence-based document chunking with word overlap between chunks.
"""

import re
from typing import List, Dict, Any, Optional

import tiktoken
from loguru import logger


_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


class DocumentChunker:
    """
    Chunks documents into sentence-aligned pieces with a soft overlap.

    Sentences are accumulated until the next one would push the chunk past
    chunk_size characters. Each new chunk starts with the last
    chunk_overlap // 10 words of the previous chunk.
    """

    def __init__(
        self,
        chunk_size: int = 600,
        chunk_overlap: int = 100,
        count_mode: str = "word",  # "word" or "token"
        encoding_name: str = "cl100k_base"  # OpenAI's encoding
    ):
        """
        Initialize the chunker.

        Args:
            chunk_size: Maximum characters per chunk (a single longer
                sentence still becomes one chunk)
            chunk_overlap: Overlap hint; chunk_overlap // 10 trailing words
                are carried into the next chunk
            count_mode: "word" counts whitespace-separated words, "token"
                counts tiktoken tokens
            encoding_name: Tokenizer encoding (for token mode)
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0:
            raise ValueError(f"chunk_overlap must not be negative, got {chunk_overlap}")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.count_mode = count_mode
        self.encoding = None

        if count_mode == "token":
            try:
                self.encoding = tiktoken.get_encoding(encoding_name)
            except Exception as e:
                logger.warning(f"Failed to load tokenizer ({e}), falling back to word counts")
                self.count_mode = "word"

    @property
    def overlap_words(self) -> int:
        return self.chunk_overlap // 10

    @staticmethod
    def split_sentences(text: str) -> List[str]:
        """Split text after '.', '!' or '?' and normalize inner whitespace."""
        sentences = []
        for part in _SENTENCE_BOUNDARY.split(text):
            sentence = " ".join(part.split())
            if sentence:
                sentences.append(sentence)
        return sentences

    def chunk_text(self, text: str, doc_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Chunk a single text into overlapping pieces.

        Args:
            text: Text to chunk
            doc_id: Optional document identifier

        Returns:
            List of chunk dictionaries with metadata
        """
        chunks: List[Dict[str, Any]] = []
        current = ""
        carried = 0

        for sentence in self.split_sentences(text):
            if current and len(current) + 1 + len(sentence) > self.chunk_size:
                chunks.append(self._make_chunk(current, carried, len(chunks), doc_id))

                # Start new chunk with overlap from previous chunk
                tail = current.split()[-self.overlap_words:] if self.overlap_words else []
                current = " ".join(tail + [sentence])
                carried = len(tail)
            else:
                current = f"{current} {sentence}" if current else sentence

        if current:
            chunks.append(self._make_chunk(current, carried, len(chunks), doc_id))

        return chunks

    def _make_chunk(
        self,
        text: str,
        overlap_words: int,
        chunk_idx: int,
        doc_id: Optional[str]
    ) -> Dict[str, Any]:
        return {
            "chunk_id": f"{doc_id}_chunk_{chunk_idx}" if doc_id else f"chunk_{chunk_idx}",
            "text": text,
            "char_count": len(text),
            "token_count": self.count_units(text),
            "overlap_words": overlap_words,
            "doc_id": doc_id,
            "chunk_index": chunk_idx
        }

    def count_units(self, text: str) -> int:
        """Approximate size of text in words or tokens, depending on count_mode."""
        if self.count_mode == "token" and self.encoding is not None:
            return len(self.encoding.encode(text))
        return len(text.split())

    def get_stats(self, chunks: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Get statistics about chunked documents.

        Args:
            chunks: List of chunks

        Returns:
            Statistics dictionary
        """
        sizes = [c["char_count"] for c in chunks]
        avg_size = sum(sizes) / len(sizes) if sizes else 0

        return {
            "total_chunks": len(chunks),
            "avg_chunk_size": avg_size,
            "min_chunk_size": min(sizes) if sizes else 0,
            "max_chunk_size": max(sizes) if sizes else 0,
            "total_units": sum(c["token_count"] for c in chunks),
            "count_mode": self.count_mode
        }


def chunk_text(text: str, max_chunk_size: int = 600, overlap: int = 100) -> List[Dict[str, Any]]:
    """Chunk text with a throwaway DocumentChunker."""
    return DocumentChunker(chunk_size=max_chunk_size, chunk_overlap=overlap).chunk_text(text)

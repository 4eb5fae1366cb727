"""Records kept by the chunk store."""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass
class Corpus:
    id: str
    created_at: float
    last_accessed: float
    document_count: int = 0
    fragment_count: int = 0
    embedding_dim: Optional[int] = None

    @property
    def has_content(self) -> bool:
        return self.fragment_count > 0


@dataclass
class Document:
    id: str
    corpus_id: str
    filename: str
    content_preview: str
    fragment_count: int
    word_count: int
    created_at: float


@dataclass(frozen=True, eq=False)
class Fragment:
    id: str
    document_id: str
    corpus_id: str
    content: str
    embedding: np.ndarray
    chunk_index: int
    token_count: int
    overlap_words: int
    created_at: float


@dataclass(frozen=True)
class SearchHit:
    """A fragment matched by a search, with its cosine similarity."""

    fragment: Fragment
    filename: str
    similarity: float

    @property
    def content(self) -> str:
        return self.fragment.content

    @property
    def document_id(self) -> str:
        return self.fragment.document_id

    @property
    def chunk_index(self) -> int:
        return self.fragment.chunk_index

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.fragment.id,
            "document_id": self.fragment.document_id,
            "filename": self.filename,
            "content": self.fragment.content,
            "chunk_index": self.fragment.chunk_index,
            "similarity": self.similarity
        }

"""
Chunk Store Module

In-process store of corpora, documents and embedded fragments, with exact
cosine-similarity search over each corpus.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence

import faiss
import numpy as np
from loguru import logger

from ..errors import CorpusNotFound, EmbeddingDimensionMismatch, StoreClosed
from .models import Corpus, Document, Fragment, SearchHit
from .similarity import normalize_vectors


@dataclass
class _CorpusEntry:
    corpus: Corpus
    index: Optional[faiss.Index] = None
    fragments: List[Fragment] = field(default_factory=list)
    documents: Dict[str, Document] = field(default_factory=dict)


class ChunkStore:
    """
    Maps corpus ids to their documents and fragments.

    Every corpus owns a flat (exact) inner-product FAISS index over
    L2-normalized fragment embeddings, so a search is a brute-force cosine
    scan of that corpus. All reads and writes go through one re-entrant
    lock; a document's fragments and the counters that describe them become
    visible together or not at all.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Source of timestamps in seconds
        """
        self.clock = clock
        self._corpora: Dict[str, _CorpusEntry] = {}
        self._lock = threading.RLock()
        self._closed = False

    # ------------------------------------------------------------------
    # Corpus lifecycle
    # ------------------------------------------------------------------

    def create_corpus(self) -> Corpus:
        now = self.clock()
        corpus = Corpus(id=str(uuid.uuid4()), created_at=now, last_accessed=now)
        with self._lock:
            self._check_open()
            self._corpora[corpus.id] = _CorpusEntry(corpus=corpus)
        logger.debug(f"Created corpus {corpus.id}")
        return replace(corpus)

    def get_corpus(self, corpus_id: str) -> Optional[Corpus]:
        """Snapshot of a corpus, or None if it does not exist."""
        with self._lock:
            self._check_open()
            entry = self._corpora.get(corpus_id)
            return replace(entry.corpus) if entry else None

    def touch(self, corpus_id: str) -> Corpus:
        """Update a corpus' last access time and return a snapshot of it."""
        with self._lock:
            entry = self._get_entry(corpus_id)
            entry.corpus.last_accessed = self.clock()
            return replace(entry.corpus)

    def get_documents(self, corpus_id: str) -> List[Document]:
        with self._lock:
            entry = self._get_entry(corpus_id)
            return [replace(doc) for doc in entry.documents.values()]

    def remove(self, corpus_id: str) -> bool:
        """Delete a corpus with all of its documents and fragments."""
        with self._lock:
            self._check_open()
            entry = self._corpora.pop(corpus_id, None)
        if entry is None:
            return False
        logger.debug(
            f"Removed corpus {corpus_id} "
            f"({entry.corpus.document_count} documents, {entry.corpus.fragment_count} fragments)"
        )
        return True

    def evict_expired(self, max_idle: float) -> int:
        """
        Remove corpora not accessed within the last max_idle seconds.

        Returns:
            Number of corpora removed
        """
        cutoff = self.clock() - max_idle
        with self._lock:
            self._check_open()
            expired = [
                corpus_id for corpus_id, entry in self._corpora.items()
                if entry.corpus.last_accessed < cutoff
            ]
            for corpus_id in expired:
                del self._corpora[corpus_id]

        if expired:
            logger.info(f"Evicted {len(expired)} idle corpora")
        return len(expired)

    def close(self) -> None:
        """Drop all data. The store cannot be used afterwards."""
        with self._lock:
            self._corpora.clear()
            self._closed = True
        logger.debug("Chunk store closed")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store(
        self,
        corpus_id: str,
        filename: str,
        chunks: Sequence[Dict[str, Any]],
        embeddings: Sequence[Any],
        word_count: int = 0,
        preview_chars: int = 200
    ) -> Document:
        """
        Add one document's chunks and embeddings to a corpus.

        Args:
            corpus_id: Owning corpus
            filename: Source filename, used for attribution
            chunks: Chunk dicts from DocumentChunker.chunk_text
            embeddings: One vector per chunk
            word_count: Word count of the whole document
            preview_chars: Length of the stored content preview

        Returns:
            The stored document

        Raises:
            CorpusNotFound: corpus_id is unknown
            EmbeddingDimensionMismatch: vectors disagree with each other or
                with the corpus; nothing is written
        """
        if len(chunks) != len(embeddings):
            raise ValueError(f"Chunks ({len(chunks)}) and embeddings ({len(embeddings)}) length mismatch")
        if not chunks:
            raise ValueError("Cannot store a document without chunks")

        vectors = [np.array(e, dtype=np.float32).ravel() for e in embeddings]
        dim = vectors[0].shape[0]
        for vector in vectors[1:]:
            if vector.shape[0] != dim:
                raise EmbeddingDimensionMismatch(dim, vector.shape[0])
        matrix = np.vstack(vectors)
        normalized = normalize_vectors(matrix)

        now = self.clock()
        document = Document(
            id=str(uuid.uuid4()),
            corpus_id=corpus_id,
            filename=filename,
            content_preview=chunks[0]["text"][:preview_chars],
            fragment_count=len(chunks),
            word_count=word_count,
            created_at=now
        )
        fragments = []
        for chunk, vector in zip(chunks, vectors):
            vector.setflags(write=False)
            fragments.append(Fragment(
                id=str(uuid.uuid4()),
                document_id=document.id,
                corpus_id=corpus_id,
                content=chunk["text"],
                embedding=vector,
                chunk_index=chunk["chunk_index"],
                token_count=chunk.get("token_count", len(chunk["text"].split())),
                overlap_words=chunk.get("overlap_words", 0),
                created_at=now
            ))

        with self._lock:
            entry = self._get_entry(corpus_id)
            corpus = entry.corpus
            if corpus.embedding_dim is not None and corpus.embedding_dim != dim:
                raise EmbeddingDimensionMismatch(corpus.embedding_dim, dim)

            index = entry.index if entry.index is not None else faiss.IndexFlatIP(dim)
            index.add(normalized)

            entry.index = index
            entry.fragments.extend(fragments)
            entry.documents[document.id] = document
            corpus.embedding_dim = dim
            corpus.document_count += 1
            corpus.fragment_count += len(fragments)
            result = replace(document)

        logger.debug(f"Stored {filename} in corpus {corpus_id}: {len(fragments)} fragments")
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        corpus_id: str,
        query_embedding: Any,
        threshold: float = 0.0,
        max_results: int = 5
    ) -> List[SearchHit]:
        """
        Find the corpus fragments most similar to a query embedding.

        Args:
            corpus_id: Corpus to search
            query_embedding: Query vector
            threshold: Minimum cosine similarity to keep
            max_results: Maximum number of hits

        Returns:
            Hits sorted by descending similarity (insertion order on ties)
        """
        query = np.asarray(query_embedding, dtype=np.float32).reshape(1, -1)

        with self._lock:
            entry = self._get_entry(corpus_id)
            if entry.index is None or not entry.fragments or max_results <= 0:
                return []
            if query.shape[1] != entry.corpus.embedding_dim:
                raise EmbeddingDimensionMismatch(entry.corpus.embedding_dim, query.shape[1])

            scores, indices = entry.index.search(normalize_vectors(query), entry.index.ntotal)
            fragments = list(entry.fragments)
            filenames = {doc_id: doc.filename for doc_id, doc in entry.documents.items()}

        matches = []
        for idx, score in zip(indices[0], scores[0]):
            if idx == -1:  # FAISS returns -1 for missing results
                continue
            similarity = min(1.0, max(-1.0, float(score)))
            if similarity >= threshold:
                matches.append((similarity, int(idx)))

        matches.sort(key=lambda m: (-m[0], m[1]))

        hits = []
        for similarity, idx in matches[:max_results]:
            fragment = fragments[idx]
            hits.append(SearchHit(
                fragment=fragment,
                filename=filenames[fragment.document_id],
                similarity=similarity
            ))
        return hits

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                "corpora": len(self._corpora),
                "documents": sum(len(e.documents) for e in self._corpora.values()),
                "fragments": sum(len(e.fragments) for e in self._corpora.values()),
                "closed": self._closed
            }

    def _get_entry(self, corpus_id: str) -> _CorpusEntry:
        self._check_open()
        entry = self._corpora.get(corpus_id)
        if entry is None:
            raise CorpusNotFound(corpus_id)
        return entry

    def _check_open(self) -> None:
        if self._closed:
            raise StoreClosed("Chunk store has been closed")

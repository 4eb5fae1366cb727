"""
Session RAG System - Main Module

Provides the high-level interface integrating all components: ingestion of
upload batches into a corpus, querying with confidence and attribution, and
idle-corpus eviction.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger
from tqdm import tqdm

from .chunking import DocumentChunker
from .config import EngineConfig
from .embedding import EmbeddingCache, EmbeddingClient, EmbeddingProvider
from .errors import IngestionFailed, InvalidDocumentBatch, StoreClosed
from .expansion import CompletionClient, CompletionProvider, QueryExpander
from .indexing import ChunkStore, Document, SearchHit
from .retrieval import VectorRetriever, assemble_context, build_prompt_context, score_confidence


@dataclass
class IngestResult:
    corpus_id: str
    documents_processed: int = 0
    total_fragments: int = 0
    total_words: int = 0
    failures: List[IngestionFailed] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "corpus_id": self.corpus_id,
            "documents_processed": self.documents_processed,
            "total_fragments": self.total_fragments,
            "total_words": self.total_words,
            "failures": [{"filename": f.filename, "error": str(f.cause)} for f in self.failures]
        }


@dataclass
class QueryResult:
    context: str
    sources: List[str]
    fragments: List[SearchHit]
    confidence: int
    variant: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "sources": list(self.sources),
            "fragments": [hit.to_dict() for hit in self.fragments],
            "confidence": self.confidence,
            "variant": self.variant
        }


class RAGSystem:
    """
    Complete RAG engine integrating chunking, embedding, storage and retrieval.

    Simple async API for ingesting document batches into isolated corpora
    and answering queries against them.
    """

    def __init__(
        self,
        # Collaborators
        embedding_provider: Optional[EmbeddingProvider] = None,
        completion_provider: Optional[CompletionProvider] = None,
        store: Optional[ChunkStore] = None,
        config: Optional[EngineConfig] = None,
        # Default provider config (used when no provider is given)
        embedding_api_url: str = "https://api.openai.com/v1/embeddings",
        embedding_model: str = "text-embedding-3-small",
        completion_api_url: str = "https://api.openai.com/v1/chat/completions",
        completion_model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        enable_query_expansion: bool = True,
        # Other
        verbose: bool = False
    ):
        """
        Initialize RAG system.

        Args:
            embedding_provider: Embedding provider; defaults to an
                EmbeddingClient for embedding_api_url
            completion_provider: Completion provider for query expansion;
                defaults to a CompletionClient for completion_api_url
            store: Chunk store to use; a private one is created if omitted
            config: Engine configuration
            embedding_api_url: URL for embedding API
            embedding_model: Model name for embeddings
            completion_api_url: URL for chat completions API
            completion_model: Model name for query expansion
            api_key: API key for both default clients ($OPENAI_API_KEY if None)
            enable_query_expansion: Use the completion provider for query
                variations; when False only the heuristic fallback is used
            verbose: Log progress at INFO level and show progress bars
        """
        self.verbose = verbose
        self.config = config or EngineConfig()

        self._log("🔧 Initializing document chunker...")
        self.chunker = DocumentChunker(
            chunk_size=self.config.chunking.chunk_size,
            chunk_overlap=self.config.chunking.chunk_overlap,
            count_mode=self.config.chunking.count_mode,
            encoding_name=self.config.chunking.encoding_name
        )

        self._log("🔧 Initializing embedding cache...")
        if embedding_provider is None:
            embedding_provider = EmbeddingClient(
                api_url=embedding_api_url,
                model_name=embedding_model,
                api_key=api_key
            )
        self.embedding_provider = embedding_provider
        self.embedding_cache = EmbeddingCache(
            embedding_provider,
            max_size=self.config.cache.embedding_cache_size,
            timeout=self.config.retrieval.embedding_timeout
        )

        self._log("🔧 Initializing query expander...")
        if enable_query_expansion and completion_provider is None:
            completion_provider = CompletionClient(
                api_url=completion_api_url,
                model_name=completion_model,
                api_key=api_key
            )
        self.completion_provider = completion_provider if enable_query_expansion else None
        self.expander = QueryExpander(
            self.completion_provider,
            max_variations=self.config.retrieval.max_variations,
            cache_size=self.config.cache.variation_cache_size,
            timeout=self.config.retrieval.completion_timeout
        )

        self.store = store if store is not None else ChunkStore()
        self.retriever = VectorRetriever(
            self.store,
            self.embedding_cache,
            self.expander,
            config=self.config.retrieval
        )

        self._reaper_task: Optional[asyncio.Task] = None

        self._log("✅ RAG system initialized")

    def _log(self, message: str):
        """Log progress at INFO if verbose, DEBUG otherwise."""
        logger.log("INFO" if self.verbose else "DEBUG", message)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def validate_documents(
        self,
        documents: Sequence[Dict[str, Any]],
        text_field: str = "text",
        name_field: str = "filename"
    ) -> None:
        """
        Check an upload batch before processing it.

        Raises:
            InvalidDocumentBatch: listing every problem found
        """
        limits = self.config.ingestion
        errors = []

        if not documents:
            raise InvalidDocumentBatch(["No files provided"])

        if len(documents) > limits.max_files:
            errors.append(
                f"You can upload a maximum of {limits.max_files} files at once. "
                "Please select fewer files and try again."
            )

        for i, doc in enumerate(documents):
            name = doc.get(name_field)
            text = doc.get(text_field)
            if not name or not isinstance(name, str):
                errors.append(f"File {i + 1} has no filename")
                continue
            if not isinstance(text, str):
                errors.append(f"{name} has no text content")
                continue
            if len(text) > limits.max_chars_per_file:
                errors.append(f"{name} is too large (max {limits.max_chars_per_file} characters)")

        if errors:
            raise InvalidDocumentBatch(errors)

    async def ingest(
        self,
        documents: Sequence[Dict[str, Any]],
        corpus_id: Optional[str] = None,
        text_field: str = "text",
        name_field: str = "filename"
    ) -> IngestResult:
        """
        Ingest an upload batch: chunk, embed and store every file.

        Files are processed concurrently. A failing file is reported in
        IngestResult.failures and leaves no trace in the store; the other
        files are unaffected.

        Args:
            documents: Document dicts holding a filename and raw text
            corpus_id: Existing corpus to extend; a new one is created if None
            text_field: Field name containing text
            name_field: Field name containing the filename

        Returns:
            Ingestion statistics

        Raises:
            InvalidDocumentBatch: the batch failed validation
            CorpusNotFound: corpus_id was given but does not exist
        """
        self.validate_documents(documents, text_field, name_field)

        if corpus_id is None:
            corpus_id = self.store.create_corpus().id
        else:
            self.store.touch(corpus_id)

        self._log(f"📚 Ingesting {len(documents)} files into corpus {corpus_id}")

        outcomes = await asyncio.gather(
            *(self._ingest_file(corpus_id, doc[name_field], doc[text_field]) for doc in documents),
            return_exceptions=True
        )

        result = IngestResult(corpus_id=corpus_id)
        for outcome in outcomes:
            if isinstance(outcome, IngestionFailed):
                result.failures.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is None:
                continue
            result.documents_processed += 1
            result.total_fragments += outcome.fragment_count
            result.total_words += outcome.word_count

        self._log(
            f"✅ Ingestion complete: {result.documents_processed} documents, "
            f"{result.total_fragments} fragments, {len(result.failures)} failures"
        )
        return result

    async def _ingest_file(self, corpus_id: str, filename: str, text: str) -> Optional[Document]:
        """Chunk, embed and store one file; None if it has no text."""
        if not text.strip():
            logger.warning(f"No text content found in file: {filename}")
            return None

        try:
            chunks = self.chunker.chunk_text(text, doc_id=filename)
            embeddings = await self._embed_chunks(chunks, filename)
            document = self.store.store(
                corpus_id,
                filename,
                chunks,
                embeddings,
                word_count=len(text.split()),
                preview_chars=self.config.ingestion.preview_chars
            )
        except Exception as e:
            logger.error(f"Error processing file {filename}: {e}")
            raise IngestionFailed(filename, e) from e

        chunk_stats = self.chunker.get_stats(chunks)
        self._log(
            f"  Processed {filename}: {chunk_stats['total_chunks']} chunks, "
            f"{document.word_count} words (avg chunk {chunk_stats['avg_chunk_size']:.0f} chars)"
        )
        return document

    async def _embed_chunks(self, chunks: List[Dict[str, Any]], filename: str) -> List[np.ndarray]:
        """Embed chunks in small concurrent batches with a pause in between."""
        batch_size = max(1, self.config.ingestion.batch_size)
        pause = self.config.ingestion.batch_pause
        embeddings: List[np.ndarray] = []

        for start in tqdm(
            range(0, len(chunks), batch_size),
            desc=f"Embedding {filename}",
            disable=not self.verbose
        ):
            batch = chunks[start:start + batch_size]
            embeddings.extend(await asyncio.gather(
                *(self.embedding_cache.get_embedding(chunk["text"]) for chunk in batch)
            ))

            # Small delay between batches to respect rate limits
            if start + batch_size < len(chunks) and pause > 0:
                await asyncio.sleep(pause)

        return embeddings

    # ------------------------------------------------------------------
    # Querying
    # ------------------------------------------------------------------

    async def query(self, corpus_id: str, text: str, max_results: int = 5) -> QueryResult:
        """
        Answer a query with context, sources and a confidence score.

        Args:
            corpus_id: Corpus to search
            text: User query
            max_results: Maximum fragments per search

        Returns:
            QueryResult

        Raises:
            CorpusNotFound: unknown or reaped corpus
            EmbeddingProviderError: the query could not be embedded
        """
        if not text or not text.strip():
            raise ValueError("Query text must not be empty")

        retrieval = await self.retriever.retrieve(corpus_id, text, max_results)
        assembled = assemble_context(
            retrieval.hits,
            max_chars=self.config.context.max_context_chars,
            min_partial=self.config.context.min_partial_chars
        )
        confidence = score_confidence(retrieval.hits, self.config.confidence)

        logger.info(
            f"Query on corpus {corpus_id}: {len(retrieval.hits)} fragments, "
            f"sources={assembled.sources}, confidence={confidence}"
        )

        return QueryResult(
            context=assembled.context,
            sources=assembled.sources,
            fragments=retrieval.hits,
            confidence=confidence,
            variant=retrieval.variant
        )

    def build_prompt(self, result: QueryResult) -> str:
        """Prompt context for a chat model, or "" when nothing was found."""
        return build_prompt_context(result.context, result.sources)

    def has_content(self, corpus_id: str) -> bool:
        """True if the corpus exists and holds at least one fragment."""
        try:
            corpus = self.store.get_corpus(corpus_id)
        except StoreClosed:
            return False
        return corpus is not None and corpus.has_content

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def evict_expired(self, max_idle: Optional[float] = None) -> int:
        """
        Remove corpora idle for longer than max_idle seconds.

        Returns:
            Number of corpora removed
        """
        if max_idle is None:
            max_idle = self.config.corpus_max_idle
        return self.store.evict_expired(max_idle)

    def start_reaper(
        self,
        interval: Optional[float] = None,
        max_idle: Optional[float] = None
    ) -> asyncio.Task:
        """Start evicting idle corpora every interval seconds on the running loop."""
        if self._reaper_task is not None and not self._reaper_task.done():
            return self._reaper_task

        interval = interval if interval is not None else self.config.reaper_interval
        self._reaper_task = asyncio.get_running_loop().create_task(
            self._reaper_loop(interval, max_idle)
        )
        self._log(f"🧹 Reaper started (interval={interval}s)")
        return self._reaper_task

    async def stop_reaper(self) -> None:
        task, self._reaper_task = self._reaper_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _reaper_loop(self, interval: float, max_idle: Optional[float]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.evict_expired(max_idle)
            except StoreClosed:
                return

    # ------------------------------------------------------------------
    # Stats and lifecycle
    # ------------------------------------------------------------------

    def corpus_stats(self, corpus_id: str) -> Optional[Dict[str, Any]]:
        """Statistics for one corpus, or None if it does not exist."""
        corpus = self.store.get_corpus(corpus_id)
        if corpus is None:
            return None
        return {
            "corpus_id": corpus.id,
            "document_count": corpus.document_count,
            "fragment_count": corpus.fragment_count,
            "embedding_dim": corpus.embedding_dim,
            "created_at": corpus.created_at,
            "last_accessed": corpus.last_accessed
        }

    def get_stats(self) -> Dict[str, Any]:
        """Get system statistics."""
        stats = {
            "chunker_config": {
                "chunk_size": self.chunker.chunk_size,
                "chunk_overlap": self.chunker.chunk_overlap,
                "count_mode": self.chunker.count_mode
            },
            "store_stats": self.store.get_stats(),
            "embedding_cache": self.embedding_cache.stats(),
            "variation_cache": self.expander.cache_stats()
        }

        if hasattr(self.embedding_provider, "get_info"):
            stats["embedding_info"] = self.embedding_provider.get_info()
        if self.completion_provider is not None and hasattr(self.completion_provider, "get_info"):
            stats["completion_info"] = self.completion_provider.get_info()

        return stats

    def clear_caches(self) -> None:
        self.embedding_cache.clear()
        self.expander.clear_cache()

    async def close(self) -> None:
        """Stop the reaper and drop all stored data."""
        await self.stop_reaper()
        self.store.close()
        self._log("RAG system closed")

    async def __aenter__(self) -> "RAGSystem":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

"""
Vector Retrieval Module

Multi-variant, multi-threshold semantic search over a corpus.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from ..config import RetrievalConfig
from ..embedding.cache import EmbeddingCache
from ..errors import EmbeddingProviderError
from ..expansion.expander import QueryExpander
from ..indexing.chunk_store import ChunkStore
from ..indexing.models import SearchHit


@dataclass
class RetrievalResult:
    hits: List[SearchHit] = field(default_factory=list)
    variant: str = ""  # query wording that produced the hits
    variants: List[str] = field(default_factory=list)

    @property
    def sources(self) -> List[str]:
        """Distinct filenames of the hits, in rank order."""
        seen: List[str] = []
        for hit in self.hits:
            if hit.filename not in seen:
                seen.append(hit.filename)
        return seen

    @property
    def mean_similarity(self) -> float:
        return mean_similarity(self.hits)


class VectorRetriever:
    """
    Performs semantic search for a query and its paraphrases.

    Each query variant is embedded, searched with a descending ladder of
    similarity thresholds and pruned with a quality-gap filter. The variant
    whose filtered hits have the highest mean similarity wins; on a tie the
    earlier variant (the original query first) is kept.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedding_cache: EmbeddingCache,
        expander: QueryExpander,
        config: Optional[RetrievalConfig] = None
    ):
        """
        Initialize retriever.

        Args:
            store: ChunkStore holding the corpora
            embedding_cache: EmbeddingCache for query embeddings
            expander: QueryExpander producing query variants
            config: Threshold ladder and quality-gap settings
        """
        self.store = store
        self.embedding_cache = embedding_cache
        self.expander = expander
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        corpus_id: str,
        query: str,
        max_results: int = 5,
        thresholds: Optional[Sequence[float]] = None
    ) -> RetrievalResult:
        """
        Retrieve the best-supported fragments for a query.

        Args:
            corpus_id: Corpus to search
            query: User query
            max_results: Maximum hits per search
            thresholds: Descending similarity ladder (defaults to config)

        Returns:
            RetrievalResult of the winning variant

        Raises:
            CorpusNotFound: unknown or reaped corpus
            EmbeddingProviderError: the original query could not be embedded
        """
        corpus = self.store.touch(corpus_id)
        query = query.strip()

        if not corpus.has_content:
            logger.debug(f"Corpus {corpus_id} has no fragments, skipping search")
            return RetrievalResult(hits=[], variant=query, variants=[query])

        variants = await self.expander.expand(query)
        logger.debug(f"Query variations: {variants}")

        outcomes = await asyncio.gather(
            *(self.search_variant(corpus_id, v, max_results, thresholds) for v in variants),
            return_exceptions=True
        )

        best_hits: List[SearchHit] = []
        best_variant = variants[0]
        best_mean: Optional[float] = None

        # Iterate in variant order so ties keep the earlier variant
        for i, (variant, outcome) in enumerate(zip(variants, outcomes)):
            if isinstance(outcome, BaseException):
                if i == 0 or not isinstance(outcome, EmbeddingProviderError):
                    raise outcome
                logger.warning(f"Skipping variation {variant!r}: {outcome}")
                continue

            if not outcome:
                continue

            avg = mean_similarity(outcome)
            if best_mean is None or avg > best_mean:
                best_hits = outcome
                best_variant = variant
                best_mean = avg
                logger.debug(f"New best variation: {variant!r} (avg similarity: {avg:.3f})")

        logger.info(f"Retrieved {len(best_hits)} fragments from corpus {corpus_id} using {best_variant!r}")
        return RetrievalResult(hits=best_hits, variant=best_variant, variants=variants)

    async def search_variant(
        self,
        corpus_id: str,
        variant: str,
        max_results: int = 5,
        thresholds: Optional[Sequence[float]] = None
    ) -> List[SearchHit]:
        """Embed one query variant, run the threshold ladder and filter the hits."""
        embedding = await self.embedding_cache.get_embedding(variant)
        hits = self.search_with_ladder(corpus_id, embedding, max_results, thresholds)
        filtered = quality_filter(hits, self.config.quality_gap, self.config.quality_floor)
        if len(filtered) != len(hits):
            logger.debug(f"Quality filter for {variant!r}: {len(hits)} -> {len(filtered)} fragments")
        return filtered

    def search_with_ladder(
        self,
        corpus_id: str,
        embedding: np.ndarray,
        max_results: int = 5,
        thresholds: Optional[Sequence[float]] = None
    ) -> List[SearchHit]:
        """
        Search at each threshold in turn until one yields enough hits.

        The first threshold with at least min_results hits is used; if none
        does, the hits of the last (loosest) threshold are returned.
        """
        ladder = list(thresholds if thresholds is not None else self.config.thresholds)
        if not ladder:
            raise ValueError("Threshold ladder must not be empty")

        hits: List[SearchHit] = []
        for threshold in ladder:
            hits = self.store.search(corpus_id, embedding, threshold, max_results)
            if len(hits) >= self.config.min_results:
                logger.debug(f"Using threshold {threshold} (found {len(hits)} fragments)")
                break
        return hits


def quality_filter(
    hits: Sequence[SearchHit],
    gap: float = 0.15,
    floor: float = 0.25
) -> List[SearchHit]:
    """Drop hits below max(floor, top similarity - gap)."""
    if not hits:
        return []
    top = max(hit.similarity for hit in hits)
    cutoff = max(floor, top - gap)
    return [hit for hit in hits if hit.similarity >= cutoff]


def mean_similarity(hits: Sequence[SearchHit]) -> float:
    if not hits:
        return 0.0
    return sum(hit.similarity for hit in hits) / len(hits)

"""
Engine Configuration

Tunable parameters for chunking, caching, ingestion, retrieval, confidence
scoring and context assembly. The retrieval and confidence constants were
tuned against 1536-dimensional OpenAI embeddings; other embedding models
may need different values.
"""

from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class ChunkingConfig:
    chunk_size: int = 400  # characters
    chunk_overlap: int = 50  # carried as chunk_overlap // 10 words
    count_mode: str = "word"  # "word" or "token"
    encoding_name: str = "cl100k_base"


@dataclass
class CacheConfig:
    embedding_cache_size: int = 1000
    variation_cache_size: int = 100


@dataclass
class IngestionConfig:
    batch_size: int = 5  # embedding calls issued together
    batch_pause: float = 0.1  # seconds between batches
    max_files: int = 5
    max_chars_per_file: int = 10 * 1024 * 1024
    preview_chars: int = 200


@dataclass
class RetrievalConfig:
    thresholds: Tuple[float, ...] = (0.5, 0.4, 0.3, 0.25)
    min_results: int = 2  # results needed to accept a threshold
    quality_gap: float = 0.15
    quality_floor: float = 0.25
    max_variations: int = 3
    embedding_timeout: float = 30.0
    completion_timeout: float = 15.0


@dataclass
class ConfidenceConfig:
    empty_score: int = 30
    min_score: int = 40
    max_score: int = 95
    # (minimum top similarity, bonus), checked in order
    top_bonuses: Tuple[Tuple[float, int], ...] = ((0.6, 15), (0.5, 10), (0.4, 5))
    # (maximum spread between top and bottom similarity, bonus)
    consistency_bonuses: Tuple[Tuple[float, int], ...] = ((0.10, 10), (0.15, 5))
    breadth_min_results: int = 3
    breadth_bonus: int = 5


@dataclass
class ContextConfig:
    max_context_chars: int = 2000
    min_partial_chars: int = 100


@dataclass
class EngineConfig:
    """All engine settings in one place."""

    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    corpus_max_idle: float = 24 * 60 * 60  # seconds
    reaper_interval: float = 60 * 60  # seconds

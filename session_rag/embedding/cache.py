"""
Embedding Cache Module

Bounded, insertion-ordered caches shared by the embedding and query
expansion paths.
"""

import asyncio
import threading
from collections import OrderedDict
from typing import Any, Dict, Generic, Hashable, Optional, TypeVar

import numpy as np
from loguru import logger

from ..errors import EmbeddingProviderError
from .client import EmbeddingProvider

V = TypeVar("V")


def normalize_text(text: str) -> str:
    """Cache key for a text: surrounding whitespace removed, lowercased."""
    return text.strip().lower()


class BoundedCache(Generic[V]):
    """
    Thread-safe mapping that evicts its oldest insertion once full.
    """

    def __init__(self, max_size: int):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self.max_size = max_size
        self._data: "OrderedDict[Hashable, V]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._data:
                self._data[key] = value
                return
            self._data[key] = value
            while len(self._data) > self.max_size:
                self._data.popitem(last=False)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


class EmbeddingCache:
    """
    Memoizes provider embeddings by normalized text.

    Failed lookups are never cached: a provider error or timeout propagates
    as EmbeddingProviderError and the next call asks the provider again.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_size: int = 1000,
        timeout: Optional[float] = 30.0
    ):
        """
        Args:
            provider: Embedding provider to call on a miss
            max_size: Maximum number of cached vectors
            timeout: Seconds to wait for the provider (None waits forever)
        """
        self.provider = provider
        self.timeout = timeout
        self._cache: BoundedCache[np.ndarray] = BoundedCache(max_size)
        self._stats_lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    async def get_embedding(self, text: str) -> np.ndarray:
        """
        Get the embedding of a text, calling the provider on a miss.

        Returns:
            Read-only float32 vector
        """
        key = normalize_text(text)
        cached = self._cache.get(key)
        with self._stats_lock:
            if cached is not None:
                self.hits += 1
            else:
                self.misses += 1
        if cached is not None:
            return cached

        try:
            raw = await asyncio.wait_for(self.provider.embed(text.strip()), self.timeout)
        except EmbeddingProviderError:
            raise
        except asyncio.TimeoutError as e:
            raise EmbeddingProviderError(f"Embedding request timed out after {self.timeout}s") from e
        except Exception as e:
            raise EmbeddingProviderError(f"Embedding provider failed: {e}") from e

        vector = to_vector(raw)
        self._cache.put(key, vector)
        return vector

    def clear(self) -> None:
        self._cache.clear()
        with self._stats_lock:
            self.hits = 0
            self.misses = 0
        logger.debug("Embedding cache cleared")

    def stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            hits, misses = self.hits, self.misses
        return {
            "size": len(self._cache),
            "max_size": self._cache.max_size,
            "hits": hits,
            "misses": misses
        }


def to_vector(raw: Any) -> np.ndarray:
    """Convert a provider response into a read-only 1-D float32 vector."""
    try:
        vector = np.array(raw, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise EmbeddingProviderError(f"Embedding is not numeric: {e}") from e

    if vector.ndim != 1 or vector.size == 0:
        raise EmbeddingProviderError(f"Embedding must be a non-empty vector, got shape {vector.shape}")
    if not np.all(np.isfinite(vector)):
        raise EmbeddingProviderError("Embedding contains NaN or infinite values")

    vector.setflags(write=False)
    return vector

"""Shared test fixtures and deterministic provider stubs."""

import asyncio
import json
import math
import re
from typing import Dict, List, Optional, Sequence

import pytest

from session_rag.config import EngineConfig
from session_rag.indexing import ChunkStore, Fragment, SearchHit


# Words mapped onto a handful of concept dimensions. Texts sharing concepts
# get high cosine similarity; unknown words are ignored.
CONCEPTS = {
    "return": 0, "returns": 0, "returned": 0, "refund": 0, "refunds": 0,
    "window": 1, "within": 1, "days": 1, "period": 1, "long": 1,
    "shipping": 2, "ship": 2, "ships": 2, "delivery": 2, "deliver": 2,
    "packaging": 3, "box": 3, "original": 3,
    "warranty": 4, "guarantee": 4, "repair": 4,
    "price": 5, "cost": 5, "pay": 5, "payment": 5,
    "hours": 6, "open": 6, "closed": 6,
    "boom": 7,
}


class KeywordEmbedder:
    """Bag-of-concepts embedding provider."""

    def __init__(self, dim: int = 8, delay: float = 0.0, fail_on: Optional[str] = None):
        self.dim = dim
        self.delay = delay
        self.fail_on = fail_on
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_on and self.fail_on in text.lower():
                raise RuntimeError(f"provider rejected {text[:20]!r}")
            vector = [0.0] * self.dim
            for word in re.findall(r"[a-z0-9]+", text.lower()):
                idx = CONCEPTS.get(word)
                if idx is not None and idx < self.dim:
                    vector[idx] += 1.0
            return vector
        finally:
            self.in_flight -= 1


class TableEmbedder:
    """Returns preset vectors per text; optional per-text delays and failures."""

    def __init__(
        self,
        table: Dict[str, Sequence[float]],
        delays: Optional[Dict[str, float]] = None,
        failing: Sequence[str] = ()
    ):
        self.table = table
        self.delays = delays or {}
        self.failing = set(failing)
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.delays:
            await asyncio.sleep(self.delays[text])
        if text in self.failing:
            raise RuntimeError(f"cannot embed {text!r}")
        return list(self.table[text])


class StubCompleter:
    """Completion provider returning canned answers or raising."""

    def __init__(self, response: str = "", error: Optional[Exception] = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response

    @classmethod
    def with_variations(cls, *variations: str) -> "StubCompleter":
        return cls(response=json.dumps({"variations": list(variations)}))


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def unit(cos: float, axis: int = 0, dim: int = 3) -> List[float]:
    """Unit vector whose cosine with the basis vector e_axis is cos."""
    vector = [0.0] * dim
    vector[axis] = cos
    vector[(axis + 1) % dim] = math.sqrt(max(0.0, 1.0 - cos * cos))
    return vector


def make_chunks(*texts: str) -> List[dict]:
    return [{"text": text, "chunk_index": i} for i, text in enumerate(texts)]


def make_hit(content: str, filename: str = "doc.txt", similarity: float = 0.5) -> SearchHit:
    fragment = Fragment(
        id=f"frag-{content[:8]}",
        document_id=f"doc-{filename}",
        corpus_id="corpus",
        content=content,
        embedding=None,
        chunk_index=0,
        token_count=len(content.split()),
        overlap_words=0,
        created_at=0.0
    )
    return SearchHit(fragment=fragment, filename=filename, similarity=similarity)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> ChunkStore:
    chunk_store = ChunkStore(clock=clock)
    yield chunk_store
    chunk_store.close()


@pytest.fixture
def fast_config() -> EngineConfig:
    """Engine config without inter-batch pauses."""
    config = EngineConfig()
    config.ingestion.batch_pause = 0.0
    return config


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()

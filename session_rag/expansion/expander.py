"""
Query Expander Module

Generates alternative phrasings of a user query so retrieval can try
several wordings of the same question.

Example:
    "What file formats are supported?"
    → "What types of files can I upload?", "Which document formats are
      accepted?", "What file extensions are allowed?"
"""

import asyncio
import json
import re
from typing import Iterable, List, Optional

from loguru import logger

from ..embedding.cache import BoundedCache, normalize_text
from ..errors import ExpansionUnavailable
from .client import CompletionProvider


_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-•*])\s*")


class QueryExpander:
    """
    Expands user queries with paraphrases from a completion provider.

    The original query always comes first. When the provider is missing or
    fails, a cheap heuristic fallback is used instead, so retrieval keeps
    working with reduced recall.
    """

    def __init__(
        self,
        provider: Optional[CompletionProvider] = None,
        max_variations: int = 3,
        cache_size: int = 100,
        timeout: Optional[float] = 15.0
    ):
        """
        Initialize query expander.

        Args:
            provider: Completion provider; None always uses the fallback
            max_variations: Number of paraphrases to keep besides the original
            cache_size: Maximum number of cached expansions
            timeout: Seconds to wait for the provider (None waits forever)
        """
        self.provider = provider
        self.max_variations = max_variations
        self.timeout = timeout
        self._cache: BoundedCache[tuple] = BoundedCache(cache_size)

    async def expand(self, query: str) -> List[str]:
        """
        Expand a user question into semantically equivalent queries.

        Args:
            query: Original user question

        Returns:
            [query, variation1, ...] with duplicates removed
        """
        query = query.strip()
        if not query:
            return [query]

        key = normalize_text(query)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Using cached variations for: {query[:80]}")
            return list(cached)

        try:
            variations = await self._generate(query)
        except ExpansionUnavailable as e:
            logger.warning(f"Query expansion unavailable, using fallback: {e}")
            result = fallback_variations(query)
        else:
            result = dedupe_queries([query] + variations)[:1 + self.max_variations]
            logger.debug(f"Generated {len(result) - 1} variations for: {query[:80]}")

        self._cache.put(key, tuple(result))
        return result

    async def _generate(self, query: str) -> List[str]:
        if self.provider is None:
            raise ExpansionUnavailable("No completion provider configured")

        prompt = build_expansion_prompt(query, self.max_variations)
        try:
            raw = await asyncio.wait_for(self.provider.complete(prompt), self.timeout)
        except ExpansionUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise ExpansionUnavailable(f"Completion timed out after {self.timeout}s") from e
        except Exception as e:
            raise ExpansionUnavailable(f"Completion provider failed: {e}") from e

        if not isinstance(raw, str):
            raise ExpansionUnavailable(f"Completion provider returned {type(raw).__name__}, not text")
        variations = parse_variations(raw)
        if not variations:
            raise ExpansionUnavailable("No valid variations generated")
        return variations

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict:
        return {"size": len(self._cache), "max_size": self._cache.max_size}


def build_expansion_prompt(query: str, count: int = 3) -> str:
    return f"""Generate {count} alternative ways to ask this question: "{query}"

Focus on:
- Different phrasings and word choices
- More specific or more general versions
- Common ways users might express the same need
- Synonyms and related terms

Examples:
- "What file formats are supported?" → "What types of files can I upload?", "Which document formats are accepted?", "What file extensions are allowed?"
- "How do I get started?" → "What should I do first?", "How do I begin using this?", "Where do I start?"

Return ONLY a JSON object of the form {{"variations": ["...", "...", "..."]}}."""


def parse_variations(raw: str) -> List[str]:
    """
    Extract variations from a completion.

    Accepts a JSON object with a "variations" list, a bare JSON list, or a
    plain numbered/bulleted list. Unusable input yields an empty list.
    """
    raw = (raw or "").strip()
    if not raw:
        return []

    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        parsed = parsed.get("variations") or []
    if isinstance(parsed, list):
        return [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
    if parsed is not None:
        return []

    variations = []
    for line in raw.splitlines():
        candidate = _LIST_MARKER.sub("", line).strip().strip('"[]').strip()
        # Avoid too short fragments
        if len(candidate) > 5:
            variations.append(candidate)
    return variations


def dedupe_queries(queries: Iterable[str]) -> List[str]:
    """Drop case-insensitive duplicates, keeping the first occurrence."""
    seen = set()
    result = []
    for query in queries:
        key = normalize_text(query)
        if key and key not in seen:
            seen.add(key)
            result.append(query.strip())
    return result


def fallback_variations(query: str) -> List[str]:
    """Original query, plus "what"/"how" rewrites when it has neither word."""
    variations = [query]
    lower = query.lower()
    if "what" not in lower and "how" not in lower:
        variations.append(f"what {query}")
        variations.append(f"how {query}")
    return variations

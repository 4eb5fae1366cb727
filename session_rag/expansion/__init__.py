"""Query expansion: completion client and paraphrase generation."""

from .client import CompletionClient, CompletionProvider
from .expander import (
    QueryExpander,
    build_expansion_prompt,
    dedupe_queries,
    fallback_variations,
    parse_variations
)

__all__ = [
    "CompletionClient",
    "CompletionProvider",
    "QueryExpander",
    "build_expansion_prompt",
    "dedupe_queries",
    "fallback_variations",
    "parse_variations"
]

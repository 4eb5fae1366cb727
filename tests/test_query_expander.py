"""Tests for query expansion."""

import pytest

from session_rag.errors import ExpansionUnavailable
from session_rag.expansion import (
    QueryExpander,
    build_expansion_prompt,
    dedupe_queries,
    fallback_variations,
    parse_variations
)

from conftest import StubCompleter


class TestQueryExpander:

    @pytest.mark.asyncio
    async def test_original_query_comes_first(self):
        provider = StubCompleter.with_variations(
            "How long do I have to return an item?",
            "What is the refund period?",
            "When does the return window close?"
        )
        expander = QueryExpander(provider)

        variants = await expander.expand("  What is the return window?  ")

        assert variants == [
            "What is the return window?",
            "How long do I have to return an item?",
            "What is the refund period?",
            "When does the return window close?"
        ]
        assert '"What is the return window?"' in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_expansions_are_cached(self):
        provider = StubCompleter.with_variations("Another way to ask")
        expander = QueryExpander(provider)

        first = await expander.expand("Shipping times")
        second = await expander.expand("shipping times ")

        assert first == second
        assert len(provider.prompts) == 1
        assert expander.cache_stats()["size"] == 1

    @pytest.mark.asyncio
    async def test_duplicates_of_original_are_dropped(self):
        provider = StubCompleter.with_variations("SHIPPING TIMES", "How fast is delivery?", "how fast is delivery?")
        expander = QueryExpander(provider)

        variants = await expander.expand("Shipping times")

        assert variants == ["Shipping times", "How fast is delivery?"]

    @pytest.mark.asyncio
    async def test_variation_count_is_capped(self):
        provider = StubCompleter.with_variations(*[f"Variation number {i}" for i in range(6)])
        expander = QueryExpander(provider, max_variations=2)

        variants = await expander.expand("Original question")

        assert len(variants) == 3

    @pytest.mark.asyncio
    async def test_provider_failure_uses_fallback(self):
        expander = QueryExpander(StubCompleter(error=RuntimeError("503")))

        variants = await expander.expand("return policy")

        assert variants == ["return policy", "what return policy", "how return policy"]

    @pytest.mark.asyncio
    async def test_fallback_keeps_questions_with_what_or_how(self):
        expander = QueryExpander(StubCompleter(error=ExpansionUnavailable("no key")))

        assert await expander.expand("What is the return window?") == ["What is the return window?"]
        assert await expander.expand("How do refunds work") == ["How do refunds work"]

    @pytest.mark.asyncio
    async def test_fallback_is_cached(self):
        provider = StubCompleter(response="[]", delay=1.0)
        expander = QueryExpander(provider, timeout=0.05)

        first = await expander.expand("return window")
        second = await expander.expand("Return Window ")

        assert first == second == ["return window", "what return window", "how return window"]
        assert len(provider.prompts) == 1

    @pytest.mark.asyncio
    async def test_cleared_cache_retries_provider(self):
        provider = StubCompleter(error=RuntimeError("down"))
        expander = QueryExpander(provider)
        await expander.expand("delivery")

        provider.error = None
        provider.response = '{"variations": ["When will my order arrive?"]}'
        expander.clear_cache()
        variants = await expander.expand("delivery")

        assert variants == ["delivery", "When will my order arrive?"]
        assert len(provider.prompts) == 2

    @pytest.mark.asyncio
    async def test_non_text_completion_uses_fallback(self):
        expander = QueryExpander(StubCompleter(response=RuntimeError("rate limited")))

        variants = await expander.expand("return window")

        assert variants == ["return window", "what return window", "how return window"]

    @pytest.mark.asyncio
    async def test_timeout_uses_fallback(self):
        expander = QueryExpander(StubCompleter(response="[]", delay=1.0), timeout=0.01)

        variants = await expander.expand("delivery")

        assert variants == ["delivery", "what delivery", "how delivery"]

    @pytest.mark.asyncio
    async def test_no_provider_uses_fallback(self):
        assert await QueryExpander(None).expand("pricing") == ["pricing", "what pricing", "how pricing"]

    @pytest.mark.asyncio
    async def test_unparseable_response_uses_fallback(self):
        expander = QueryExpander(StubCompleter(response='{"answer": "nothing useful"}'))

        assert await expander.expand("pricing") == ["pricing", "what pricing", "how pricing"]

    @pytest.mark.asyncio
    async def test_empty_query(self):
        provider = StubCompleter.with_variations("unused")

        assert await QueryExpander(provider).expand("   ") == [""]
        assert provider.prompts == []


class TestParseVariations:

    def test_json_object(self):
        assert parse_variations('{"variations": ["a b c d e f", " g h "]}') == ["a b c d e f", "g h"]

    def test_json_list(self):
        assert parse_variations('["first one", "second one"]') == ["first one", "second one"]

    def test_numbered_list(self):
        raw = "1. What types of files can I upload?\n2) Which formats are accepted?\n- Allowed extensions?\nok"

        assert parse_variations(raw) == [
            "What types of files can I upload?",
            "Which formats are accepted?",
            "Allowed extensions?"
        ]

    @pytest.mark.parametrize("raw", ["", "   ", "42", '"just a string"', '{"variations": null}'])
    def test_unusable_input(self, raw):
        assert parse_variations(raw) == []


def test_dedupe_queries():
    assert dedupe_queries(["A", " a ", "b", "", "B"]) == ["A", "b"]


def test_fallback_variations():
    assert fallback_variations("refunds") == ["refunds", "what refunds", "how refunds"]
    assert fallback_variations("Somehow broken") == ["Somehow broken"]


def test_build_expansion_prompt_mentions_count():
    prompt = build_expansion_prompt("Where do I start?", 4)

    assert prompt.startswith('Generate 4 alternative ways to ask this question: "Where do I start?"')
    assert '"variations"' in prompt

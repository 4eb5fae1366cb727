"""Tests for confidence scoring and context assembly."""

import random

import pytest

from session_rag.config import ConfidenceConfig
from session_rag.retrieval import assemble_context, build_prompt_context, score_confidence

from conftest import make_hit


class TestScoreConfidence:

    def test_empty_results(self):
        assert score_confidence([]) == 30

    @pytest.mark.parametrize("similarities, expected", [
        ([0.9], 95),               # 90 + 15, clamped
        ([0.3], 40),               # 30, raised to the floor
        ([0.45], 50),              # 45 + 5
        ([0.625], 78),             # 63 (half rounds up) + 15
        ([0.5, 0.5, 0.5], 75),     # 50 + 10 + 10 + 5
        ([0.62, 0.55, 0.5], 81),   # 56 + 15 + 5 + 5
        ([0.55, 0.31], 53),        # 43 + 10, spread too wide
    ])
    def test_known_scores(self, similarities, expected):
        assert score_confidence(similarities) == expected

    def test_accepts_search_hits(self):
        hits = [make_hit("a", similarity=0.55), make_hit("b", similarity=0.5)]

        assert score_confidence(hits) == score_confidence([0.55, 0.5])

    def test_bounds_hold_for_any_results(self):
        rng = random.Random(3)
        for _ in range(300):
            similarities = [rng.uniform(-1.0, 1.0) for _ in range(rng.randint(1, 6))]
            assert 40 <= score_confidence(similarities) <= 95

    def test_corroboration_never_lowers_score(self):
        for similarity in [0.26, 0.3, 0.42, 0.5, 0.58, 0.7]:
            assert score_confidence([similarity] * 3) >= score_confidence([similarity])

    def test_custom_config(self):
        config = ConfidenceConfig(empty_score=0, min_score=10, max_score=100)

        assert score_confidence([], config) == 0
        assert score_confidence([0.05], config) == 10
        assert score_confidence([0.95, 0.95, 0.95], config) == 100


class TestAssembleContext:

    def test_empty(self):
        assembled = assemble_context([])

        assert assembled.context == ""
        assert assembled.sources == []

    def test_joins_hits_in_rank_order(self):
        hits = [make_hit("first", "a.txt"), make_hit("second", "b.txt"), make_hit("third", "a.txt")]

        assembled = assemble_context(hits)

        assert assembled.context == "first\n\nsecond\n\nthird"
        assert assembled.sources == ["a.txt", "b.txt"]

    def test_partial_fragment_when_space_remains(self):
        hits = [make_hit("x" * 150, "a.txt"), make_hit("y" * 300, "b.txt")]

        assembled = assemble_context(hits, max_chars=400)

        # 152 used, 248 remain: 238 characters of the second hit plus "..."
        assert assembled.context == "x" * 150 + "\n\n" + "y" * 238 + "..."
        assert len(assembled.context) <= 400
        assert assembled.sources == ["a.txt", "b.txt"]

    def test_no_partial_when_little_space_remains(self):
        hits = [make_hit("x" * 150, "a.txt"), make_hit("y" * 300, "b.txt"), make_hit("z", "c.txt")]

        assembled = assemble_context(hits, max_chars=200)

        assert assembled.context == "x" * 150
        assert assembled.sources == ["a.txt"]

    def test_never_exceeds_limit(self):
        rng = random.Random(11)
        for _ in range(100):
            hits = [make_hit("w" * rng.randint(1, 900), f"{i}.txt") for i in range(rng.randint(1, 6))]
            assert len(assemble_context(hits).context) <= 2000


class TestBuildPromptContext:

    def test_empty_context(self):
        assert build_prompt_context("", ["a.txt"]) == ""

    def test_wraps_context_with_sources(self):
        prompt = build_prompt_context("Returns within 30 days.", ["a.txt", "b.txt"])

        assert prompt.startswith("Based on the following information from uploaded documents:\n\nReturns within 30 days.")
        assert "Sources: a.txt, b.txt" in prompt
        assert prompt.endswith("what additional information might be needed.")

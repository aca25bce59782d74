# @TASK P2-T2.2 - Vector helper tests
# @TEST tests/test_vectors.py

"""Tests for the keyword-hash embedding and cosine similarity."""

from __future__ import annotations

import math

import pytest

from smartnotes.search.vectors import cosine_similarity, hash_string, keyword_embedding


def _norm(vector: list[float]) -> float:
    return math.sqrt(sum(value * value for value in vector))


# ---------------------------------------------------------------------------
# 1. hash_string
# ---------------------------------------------------------------------------


class TestHashString:
    def test_known_values(self):
        assert hash_string("") == 0
        assert hash_string("a") == 97
        assert hash_string("ab") == 97 * 31 + 98

    def test_wraps_to_32_bits_and_is_non_negative(self):
        value = hash_string("the quick brown fox jumps over the lazy dog" * 10)

        assert 0 <= value <= 2**31

    def test_is_deterministic(self):
        assert hash_string("garden") == hash_string("garden")


# ---------------------------------------------------------------------------
# 2. keyword_embedding
# ---------------------------------------------------------------------------


class TestKeywordEmbedding:
    @pytest.mark.parametrize(
        "text",
        [
            "Plant tomatoes in the garden",
            "a b c",
            "",
            "   ",
            "Ünïcödé wörds über alles",
            "repeat repeat repeat",
        ],
    )
    def test_length_384_and_unit_or_zero_norm(self, text: str):
        vector = keyword_embedding(text)

        assert len(vector) == 384
        norm = _norm(vector)
        assert norm == pytest.approx(1.0) or norm == 0.0

    def test_short_tokens_only_gives_zero_vector(self):
        assert _norm(keyword_embedding("a an to of is")) == 0.0

    def test_case_insensitive(self):
        assert keyword_embedding("Garden PLANS") == keyword_embedding("garden plans")

    def test_same_token_accumulates_in_one_bucket(self):
        vector = keyword_embedding("garden garden")

        non_zero = [value for value in vector if value]
        assert non_zero == [pytest.approx(1.0)]

    def test_custom_dimensions(self):
        assert len(keyword_embedding("hello world", dimensions=16)) == 16


# ---------------------------------------------------------------------------
# 3. cosine_similarity
# ---------------------------------------------------------------------------


class TestCosineSimilarity:
    def test_self_similarity_is_one(self):
        vector = keyword_embedding("notes about gardening and tomatoes")

        assert cosine_similarity(vector, vector) == pytest.approx(1.0)

    def test_zero_vector_gives_zero(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0

    def test_empty_vector_gives_zero(self):
        assert cosine_similarity([], [1.0, 2.0]) == 0.0

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_unequal_lengths_compare_overlapping_prefix(self):
        """Only the first min(len(a), len(b)) components are used."""
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0, 5.0]) == pytest.approx(1.0)
        assert cosine_similarity([0.0, 0.0, 1.0], [1.0, 1.0]) == 0.0

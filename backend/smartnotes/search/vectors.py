# @TASK P2-T2.2 - Vector helpers (keyword-hash embedding, cosine similarity)
# @TEST tests/test_vectors.py

"""Vector math used by the embedding provider and semantic search."""

from __future__ import annotations

import re
from collections.abc import Sequence

import numpy as np

KEYWORD_EMBEDDING_DIMENSIONS = 384

_NON_WORD_RE = re.compile(r"\W+")


def hash_string(text: str) -> int:
    """Stable 32-bit rolling hash (``h = h * 31 + c``), returned as its absolute value.

    Unlike the builtin ``hash`` this does not change between processes.
    """
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


def keyword_embedding(text: str, dimensions: int = KEYWORD_EMBEDDING_DIMENSIONS) -> list[float]:
    """Bag-of-words embedding used when no semantic backend is usable.

    Tokens are split on non-word characters; tokens of 2 characters or
    fewer are dropped.  Each token adds 1 at ``hash_string(token) % dimensions``
    and the vector is L2-normalised.  Returns an all-zero vector when no
    token qualifies.
    """
    vector = np.zeros(dimensions, dtype=np.float64)
    for token in _NON_WORD_RE.split(text.lower()):
        if len(token) > 2:
            vector[hash_string(token) % dimensions] += 1.0

    magnitude = np.linalg.norm(vector)
    if magnitude > 0:
        vector /= magnitude
    return vector.tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the overlapping prefix of *a* and *b*.

    Vectors of unequal length are compared on their first
    ``min(len(a), len(b))`` components only.  Returns 0.0 when either
    prefix is empty or has zero norm.
    """
    length = min(len(a), len(b))
    if length == 0:
        return 0.0

    va = np.asarray(a[:length], dtype=np.float64)
    vb = np.asarray(b[:length], dtype=np.float64)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(va, vb) / (norm_a * norm_b))

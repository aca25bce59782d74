"""Centralized search parameter management.

All search algorithm parameters (fusion weights, thresholds, result limits)
live in one dictionary.  Deployments can override individual values through
the ``SEARCH_PARAMS`` setting (a JSON object); unknown keys are ignored.

Usage in search engines::

    from smartnotes.search.params import get_search_params
    params = get_search_params()
    fused = params["semantic_weight"] * semantic_score + params["text_weight"] * text_score
"""

from __future__ import annotations

from typing import Any

DEFAULT_SEARCH_PARAMS: dict[str, float | int] = {
    # Fusion
    "semantic_weight": 0.7,
    "text_weight": 0.3,
    # Semantic (cosine similarity scaled to 0-100)
    "semantic_min_score": 20,
    # Lexical
    "title_exact_boost": 100,
    "title_token_boost": 50,
    "content_token_boost": 10,
    "content_token_window": 100,
    # Output
    "max_results": 10,
    "snippet_length": 200,
}


def get_search_params(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return current search parameters, merging overrides with defaults.

    When *overrides* is ``None`` the ``SEARCH_PARAMS`` setting is used.
    """
    if overrides is None:
        from smartnotes.config import get_settings

        overrides = get_settings().SEARCH_PARAMS

    merged = {**DEFAULT_SEARCH_PARAMS}
    if isinstance(overrides, dict):
        for key in DEFAULT_SEARCH_PARAMS:
            if key in overrides:
                merged[key] = overrides[key]
    return merged

# @TASK P2-T2.9 - Lexical (keyword/substring) scorer
# @TEST tests/test_lexical.py

"""Keyword scoring over an in-memory note collection.

Pure and synchronous: no I/O, no state.  It is the floor every search
falls back to.

Scoring (case-insensitive):
- whole query is a substring of the title: +100
- for each query token, each title token containing it: +50
- for each query token, each of the first 100 content tokens containing it: +10
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from smartnotes.models import Note
from smartnotes.search.params import DEFAULT_SEARCH_PARAMS
from smartnotes.search.results import SearchResult, SearchType


class LexicalScorer:
    """Substring-based scorer used as the unconditional search fallback."""

    def __init__(self, params: dict[str, Any] | None = None) -> None:
        self._params = {**DEFAULT_SEARCH_PARAMS, **(params or {})}

    def score(self, query: str, note: Note) -> int:
        """Return the lexical score of *note* for *query* (0 means no match)."""
        query_lower = query.strip().lower()
        if not query_lower:
            return 0

        title_lower = note.title.lower()
        query_tokens = query_lower.split()
        title_tokens = title_lower.split()
        content_tokens = note.content.lower().split()[: int(self._params["content_token_window"])]

        score = 0
        if query_lower in title_lower:
            score += self._params["title_exact_boost"]

        for token in query_tokens:
            score += self._params["title_token_boost"] * sum(1 for word in title_tokens if token in word)
            score += self._params["content_token_boost"] * sum(1 for word in content_tokens if token in word)
        return score

    def search(self, query: str, notes: Iterable[Note], limit: int | None = None) -> list[SearchResult]:
        """Rank *notes* by lexical score, dropping non-matches.

        Ties keep the input order of *notes*.
        """
        if not query or not query.strip():
            return []

        max_results = int(self._params["max_results"]) if limit is None else limit
        snippet_length = int(self._params["snippet_length"])

        results = []
        for note in notes:
            score = self.score(query, note)
            if score <= 0:
                continue
            results.append(
                SearchResult(
                    note_id=note.id,
                    title=note.title,
                    snippet=note.content[:snippet_length],
                    score=score,
                    search_type=SearchType.TEXT,
                )
            )

        results.sort(key=lambda result: result.score, reverse=True)
        return results[:max_results]

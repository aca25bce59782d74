# @TASK P2-T2.10 - Semantic search and hybrid search orchestrator (weighted fusion)
# @TEST tests/test_semantic.py
# @TEST tests/test_hybrid_search.py

"""Semantic and hybrid search over an in-memory note collection.

Semantic search: cosine similarity between the query embedding and each
note embedding, scaled to 0-100.
Hybrid search: semantic and lexical searches run concurrently and their
top-10 lists are fused with weights 0.7 / 0.3.  When semantic search
yields nothing, lexical scores pass through unweighted.

Any failure degrades to lexical-only results; the caller never sees an
exception from :meth:`HybridSearchEngine.search`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from smartnotes.models import Note
from smartnotes.search.lexical import LexicalScorer
from smartnotes.search.lifecycle import EngineLifecycle
from smartnotes.search.params import get_search_params
from smartnotes.search.provider import EmbeddingProvider
from smartnotes.search.results import SearchResult, SearchType
from smartnotes.search.vectors import cosine_similarity
from smartnotes.services.performance import (
    AI_SEARCH,
    SEARCH_DURATION,
    SEARCH_ERROR,
    MetricsRecorder,
    record_metric_safely,
)

logger = logging.getLogger(__name__)

UpdateNote = Callable[[str, list[float]], Awaitable[Any] | Any]


class HybridSearchEngine:
    """Hybrid search engine combining semantic and lexical scoring.

    Args:
        lifecycle: Engine lifecycle; semantic search only runs when it is ready.
        provider: Embedding provider for the query and note contents.
        lexical: Lexical scorer (a default one is built when omitted).
        metrics: Optional performance collaborator.
        params: Search parameters (defaults to :func:`get_search_params`).
        timer: Monotonic clock in seconds, used for duration metrics.
    """

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        provider: EmbeddingProvider,
        lexical: LexicalScorer | None = None,
        metrics: MetricsRecorder | None = None,
        params: dict[str, Any] | None = None,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._lifecycle = lifecycle
        self._provider = provider
        self._params = params if params is not None else get_search_params()
        self._lexical = lexical or LexicalScorer(self._params)
        self._metrics = metrics
        self._timer = timer

    async def search(
        self,
        query: str,
        notes: Iterable[Note],
        update_note: UpdateNote | None = None,
    ) -> list[SearchResult]:
        """Run semantic and lexical search concurrently and fuse the results.

        Semantic search is skipped (treated as empty) unless the lifecycle
        reports semantic availability.  A failure of either side only
        empties that side; an unexpected failure of the whole call falls
        back to lexical results.
        """
        if not query or not query.strip():
            return []

        notes = list(notes)
        start = self._timer()
        try:
            if self._lifecycle.semantic_available:
                semantic_task = self.search_semantic(query, notes, update_note)
            else:
                semantic_task = self._no_results()
            lexical_task = asyncio.to_thread(self._lexical.search, query, notes)

            semantic, lexical = await asyncio.gather(semantic_task, lexical_task, return_exceptions=True)
            if isinstance(semantic, BaseException):
                logger.warning("Semantic search failed for query %r: %s", query, semantic)
                semantic = []
            if isinstance(lexical, BaseException):
                logger.warning("Text search failed for query %r: %s", query, lexical)
                lexical = []

            merged = self.fuse_results(
                semantic,
                lexical,
                semantic_weight=self._params["semantic_weight"],
                text_weight=self._params["text_weight"],
                limit=int(self._params["max_results"]),
            )
        except Exception:
            logger.warning("Search error, using text fallback for query %r", query, exc_info=True)
            record_metric_safely(self._metrics, SEARCH_ERROR, 1)
            return self._lexical.search(query, notes)
        finally:
            duration_ms = (self._timer() - start) * 1000
            record_metric_safely(self._metrics, SEARCH_DURATION, duration_ms)

        logger.info("Search completed in %.2fms (%d results)", duration_ms, len(merged))
        return merged

    async def search_semantic(
        self,
        query: str,
        notes: Iterable[Note],
        update_note: UpdateNote | None = None,
    ) -> list[SearchResult]:
        """Rank notes by cosine similarity to *query* (score = similarity * 100).

        Notes that already carry an embedding reuse it.  For the others an
        embedding is generated (at most ``batch_size`` at a time) and, if it
        did not come from the keyword fallback, passed to *update_note*.
        """
        start = self._timer()
        query_embedding = await self._provider.generate_embedding(query)
        limiter = asyncio.Semaphore(self._lifecycle.config.batch_size)
        min_score = self._params["semantic_min_score"]
        snippet_length = int(self._params["snippet_length"])

        async def score_note(note: Note) -> SearchResult | None:
            embedding = note.embedding
            if not embedding:
                async with limiter:
                    outcome = await self._provider.try_generate(note.content)
                embedding = outcome.embedding
                if update_note is not None and not outcome.is_fallback and embedding:
                    await self._notify_update(update_note, note.id, embedding)

            score = cosine_similarity(query_embedding, embedding) * 100
            if score <= min_score:
                return None
            return SearchResult(
                note_id=note.id,
                title=note.title,
                snippet=note.content[:snippet_length],
                score=score,
                search_type=SearchType.SEMANTIC,
            )

        scored = await asyncio.gather(*(score_note(note) for note in notes))
        results = [result for result in scored if result is not None]
        results.sort(key=lambda result: result.score, reverse=True)

        record_metric_safely(self._metrics, AI_SEARCH, (self._timer() - start) * 1000)
        return results[: int(self._params["max_results"])]

    @staticmethod
    def fuse_results(
        semantic_results: list[SearchResult],
        text_results: list[SearchResult],
        semantic_weight: float = 0.7,
        text_weight: float = 0.3,
        limit: int = 10,
    ) -> list[SearchResult]:
        """Merge semantic and text results by weighted score sum.

        ``fused(d) = semantic_weight * semantic_score(d) + text_weight * text_score(d)``

        When *semantic_results* is empty the weights become 0 / 1.0, so text
        scores pass through unchanged.  Entries with a semantic
        contribution are tagged ``hybrid``; the rest keep ``text``.

        Returns:
            At most *limit* results sorted by fused score descending.
        """
        if not semantic_results:
            semantic_weight, text_weight = 0.0, 1.0

        merged: dict[str, SearchResult] = {}
        for result in semantic_results:
            merged[result.note_id] = result.model_copy(
                update={"score": result.score * semantic_weight, "search_type": SearchType.HYBRID}
            )

        for result in text_results:
            existing = merged.get(result.note_id)
            if existing is not None:
                merged[result.note_id] = existing.model_copy(
                    update={"score": existing.score + result.score * text_weight}
                )
            else:
                merged[result.note_id] = result.model_copy(update={"score": result.score * text_weight})

        ranked = sorted(merged.values(), key=lambda result: result.score, reverse=True)
        return ranked[:limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _no_results() -> list[SearchResult]:
        return []

    @staticmethod
    async def _notify_update(update_note: UpdateNote, note_id: str, embedding: list[float]) -> None:
        """Hand a freshly computed embedding to the note store."""
        try:
            outcome = update_note(note_id, embedding)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("Failed to store embedding for note %s", note_id)

# @TASK P2-T2.8 - Embedding provider (cache → worker → keyword fallback)
# @TEST tests/test_provider.py

"""Embedding provider that never fails outward.

Order of resolution for :meth:`EmbeddingProvider.try_generate`:

1. cache hit;
2. keyword-hash embedding when the engine is not ready;
3. ``embed`` request to the worker (result stored in the cache);
4. keyword-hash embedding when that request fails.

The fallback branch is explicit: every call returns an
:class:`EmbeddingOutcome` saying where the vector came from and, for
fallbacks, why.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum

from smartnotes.search.cache import EmbeddingCache
from smartnotes.search.errors import (
    ChannelClosedError,
    DispatchCancelledError,
    DispatchError,
    DispatchTimeoutError,
    WorkerReplyError,
)
from smartnotes.search.lifecycle import EngineLifecycle
from smartnotes.search.messages import WorkerAction
from smartnotes.search.vectors import KEYWORD_EMBEDDING_DIMENSIONS, keyword_embedding
from smartnotes.services.performance import (
    AI_EMBEDDING,
    AI_ERROR,
    CRITICAL_EMBEDDING_MS,
    MetricsRecorder,
    record_metric_safely,
)

logger = logging.getLogger(__name__)


class EmbeddingSource(StrEnum):
    CACHE = "cache"
    WORKER = "worker"
    FALLBACK = "fallback"


class FallbackReason(StrEnum):
    NOT_READY = "not_ready"
    TIMEOUT = "timeout"
    WORKER_ERROR = "worker_error"
    CHANNEL_CLOSED = "channel_closed"
    CANCELLED = "cancelled"
    INVALID_REPLY = "invalid_reply"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True, slots=True)
class EmbeddingOutcome:
    embedding: list[float]
    source: EmbeddingSource
    fallback_reason: FallbackReason | None = None

    @property
    def is_fallback(self) -> bool:
        return self.source is EmbeddingSource.FALLBACK


class EmbeddingProvider:
    """Resolve embeddings through cache, worker and keyword fallback.

    Args:
        lifecycle: Engine lifecycle; gates worker dispatch and owns the channel.
        cache: Embedding cache shared by all callers of this provider.
        metrics: Optional performance collaborator.
        fallback_dimensions: Length of keyword-hash fallback vectors.
    """

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        cache: EmbeddingCache,
        metrics: MetricsRecorder | None = None,
        fallback_dimensions: int = KEYWORD_EMBEDDING_DIMENSIONS,
    ) -> None:
        self._lifecycle = lifecycle
        self._cache = cache
        self._metrics = metrics
        self._fallback_dimensions = fallback_dimensions

    @property
    def cache(self) -> EmbeddingCache:
        return self._cache

    async def generate_embedding(self, text: str) -> list[float]:
        """Return an embedding for *text*. Never raises for backend failures."""
        outcome = await self.try_generate(text)
        return outcome.embedding

    async def try_generate(self, text: str) -> EmbeddingOutcome:
        cached = self._cache.lookup(text)
        if cached is not None:
            return EmbeddingOutcome(cached, EmbeddingSource.CACHE)

        channel = self._lifecycle.channel
        if not self._lifecycle.semantic_available or channel is None:
            return self._fallback(text, FallbackReason.NOT_READY)

        start = time.perf_counter()
        try:
            result = await channel.request(WorkerAction.EMBED, {"text": text})
        except DispatchTimeoutError:
            return self._failed(text, FallbackReason.TIMEOUT)
        except ChannelClosedError:
            return self._failed(text, FallbackReason.CHANNEL_CLOSED)
        except DispatchCancelledError:
            return self._fallback(text, FallbackReason.CANCELLED)
        except WorkerReplyError as exc:
            logger.warning("Embedding generation failed: %s", exc)
            return self._failed(text, FallbackReason.WORKER_ERROR)
        except DispatchError as exc:
            logger.warning("Embedding dispatch failed: %s", exc)
            return self._failed(text, FallbackReason.WORKER_ERROR)
        except Exception:
            logger.exception("Unexpected error while generating embedding")
            return self._failed(text, FallbackReason.UNEXPECTED)

        embedding = result.get("embedding") if isinstance(result, dict) else None
        if not isinstance(embedding, list):
            logger.warning("Worker returned no embedding: %r", result)
            return self._failed(text, FallbackReason.INVALID_REPLY)

        duration_ms = (time.perf_counter() - start) * 1000
        record_metric_safely(self._metrics, AI_EMBEDDING, duration_ms)
        if duration_ms > CRITICAL_EMBEDDING_MS:
            logger.warning("Slow embedding generation: %.2fms", duration_ms)

        self._cache.store(text, embedding)
        return EmbeddingOutcome(embedding, EmbeddingSource.WORKER)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _failed(self, text: str, reason: FallbackReason) -> EmbeddingOutcome:
        record_metric_safely(self._metrics, AI_ERROR, 1)
        return self._fallback(text, reason)

    def _fallback(self, text: str, reason: FallbackReason) -> EmbeddingOutcome:
        return EmbeddingOutcome(
            keyword_embedding(text, self._fallback_dimensions),
            EmbeddingSource.FALLBACK,
            reason,
        )

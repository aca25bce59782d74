# @TASK P2-T2.8 - Embedding provider tests
# @TEST tests/test_provider.py

"""Tests for EmbeddingProvider: cache -> worker -> keyword fallback."""

from __future__ import annotations

import asyncio

import pytest

from smartnotes.search.cache import EmbeddingCache
from smartnotes.search.provider import EmbeddingProvider, EmbeddingSource, FallbackReason
from smartnotes.search.vectors import keyword_embedding
from smartnotes.services.performance import AI_EMBEDDING, AI_ERROR, PerformanceMonitor
from tests.conftest import FakeClock, make_lifecycle, silent_handler


async def _ready_provider(request_timeout: float = 1.0):
    lifecycle, transport = make_lifecycle(request_timeout=request_timeout)
    await lifecycle.initialize()
    metrics = PerformanceMonitor()
    provider = EmbeddingProvider(lifecycle, EmbeddingCache(clock=FakeClock()), metrics=metrics)
    transport.sent.clear()
    return provider, transport, metrics


# ---------------------------------------------------------------------------
# 1. Cache and readiness
# ---------------------------------------------------------------------------


class TestCacheAndReadiness:
    @pytest.mark.asyncio
    async def test_cache_hit_served_without_worker(self):
        lifecycle, transport = make_lifecycle()
        cache = EmbeddingCache(clock=FakeClock())
        cache.store("garden", [0.1, 0.2, 0.3])
        provider = EmbeddingProvider(lifecycle, cache)

        outcome = await provider.try_generate("garden")

        assert outcome.source is EmbeddingSource.CACHE
        assert outcome.embedding == [0.1, 0.2, 0.3]
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_not_ready_uses_keyword_fallback(self):
        lifecycle, transport = make_lifecycle()
        metrics = PerformanceMonitor()
        provider = EmbeddingProvider(lifecycle, EmbeddingCache(clock=FakeClock()), metrics=metrics)

        outcome = await provider.try_generate("garden plans")

        assert outcome.is_fallback
        assert outcome.fallback_reason is FallbackReason.NOT_READY
        assert outcome.embedding == keyword_embedding("garden plans")
        assert transport.sent == []
        assert metrics.get_metrics() == {}

    @pytest.mark.asyncio
    async def test_fallback_mode_uses_keyword_fallback(self):
        provider, transport, _ = await _ready_provider()
        provider._lifecycle.enable_fallback_mode("test")

        outcome = await provider.try_generate("garden plans")

        assert outcome.fallback_reason is FallbackReason.NOT_READY
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_fallback_results_are_not_cached(self):
        lifecycle, _ = make_lifecycle()
        cache = EmbeddingCache(clock=FakeClock())
        provider = EmbeddingProvider(lifecycle, cache)

        await provider.generate_embedding("garden plans")

        assert len(cache) == 0


# ---------------------------------------------------------------------------
# 2. Worker path
# ---------------------------------------------------------------------------


class TestWorker:
    @pytest.mark.asyncio
    async def test_worker_embedding_is_cached(self):
        provider, transport, metrics = await _ready_provider()

        first = await provider.try_generate("garden plans")
        second = await provider.try_generate("garden plans")

        assert first.source is EmbeddingSource.WORKER
        assert second.source is EmbeddingSource.CACHE
        assert first.embedding == second.embedding
        assert transport.actions() == ["embed"]
        assert len(metrics.get_metrics()[AI_EMBEDDING]) == 1

    @pytest.mark.asyncio
    async def test_generate_embedding_returns_vector(self):
        provider, _, _ = await _ready_provider()

        embedding = await provider.generate_embedding("garden plans")

        assert len(embedding) == 384


# ---------------------------------------------------------------------------
# 3. Worker failures
# ---------------------------------------------------------------------------


class TestWorkerFailures:
    @pytest.mark.asyncio
    async def test_worker_error_falls_back(self):
        provider, transport, metrics = await _ready_provider()
        transport.handler = lambda m: {"correlation_id": m["correlation_id"], "error": "encode failed"}

        outcome = await provider.try_generate("garden plans")

        assert outcome.fallback_reason is FallbackReason.WORKER_ERROR
        assert outcome.embedding == keyword_embedding("garden plans")
        assert metrics.get_metrics()[AI_ERROR] == [1.0]
        assert len(provider.cache) == 0

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self):
        provider, transport, metrics = await _ready_provider(request_timeout=0.05)
        transport.handler = silent_handler

        outcome = await provider.try_generate("garden plans")

        assert outcome.fallback_reason is FallbackReason.TIMEOUT
        assert metrics.get_metrics()[AI_ERROR] == [1.0]

    @pytest.mark.asyncio
    async def test_reply_without_embedding_falls_back(self):
        provider, transport, metrics = await _ready_provider()
        transport.handler = lambda m: {"correlation_id": m["correlation_id"], "result": {"vector": [1.0]}}

        outcome = await provider.try_generate("garden plans")

        assert outcome.fallback_reason is FallbackReason.INVALID_REPLY
        assert metrics.get_metrics() == {AI_ERROR: [1.0]}

    @pytest.mark.asyncio
    async def test_cancelled_request_falls_back(self):
        provider, transport, metrics = await _ready_provider(request_timeout=5)
        transport.handler = silent_handler
        channel = provider._lifecycle.channel

        task = asyncio.create_task(provider.try_generate("garden plans"))
        await asyncio.sleep(0)
        assert channel.cancel(transport.sent[-1]["correlation_id"]) is True
        outcome = await task

        assert outcome.fallback_reason is FallbackReason.CANCELLED
        assert outcome.embedding == keyword_embedding("garden plans")
        assert channel.pending_count == 0
        assert AI_ERROR not in metrics.get_metrics()

    @pytest.mark.asyncio
    async def test_cancelled_request_does_not_cancel_caller(self):
        provider, transport, _ = await _ready_provider(request_timeout=5)
        transport.handler = silent_handler

        task = asyncio.create_task(provider.generate_embedding("garden plans"))
        await asyncio.sleep(0)
        provider._lifecycle.channel.cancel(transport.sent[-1]["correlation_id"])

        assert await task == keyword_embedding("garden plans")
        assert not task.cancelled()

    @pytest.mark.asyncio
    async def test_failing_metrics_recorder_does_not_break_fallback(self):
        provider, transport, metrics = await _ready_provider()
        transport.handler = lambda m: {"correlation_id": m["correlation_id"], "error": "boom"}

        def broken(name, value):
            raise RuntimeError("metrics down")

        metrics.record_metric = broken

        outcome = await provider.try_generate("garden plans")

        assert outcome.is_fallback

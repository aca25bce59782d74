# @TASK P2-T2.12 - AI engine facade (wiring + inbound operations)

"""Single entry point used by the application layer.

:func:`build_ai_engine` wires capability selection, lifecycle, cache,
provider, hybrid search and suggestions from :class:`Settings`.  Tests
build :class:`AIEngine` directly with a fake channel factory and clock.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from smartnotes.config import Settings, get_settings
from smartnotes.models import Note
from smartnotes.search.cache import EmbeddingCache
from smartnotes.search.capability import DeviceSignals, EngineConfig, resolve_engine_config
from smartnotes.search.dispatch import DispatchChannel
from smartnotes.search.embeddings import BackendSpec
from smartnotes.search.engine import HybridSearchEngine, UpdateNote
from smartnotes.search.lifecycle import EngineLifecycle
from smartnotes.search.params import get_search_params
from smartnotes.search.provider import EmbeddingProvider
from smartnotes.search.results import SearchResult
from smartnotes.search.suggestions import Suggestion, SuggestionService
from smartnotes.search.worker import ProcessWorkerTransport
from smartnotes.services.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


class AIEngine:
    """Hybrid search, embeddings and suggestions behind one object."""

    def __init__(
        self,
        lifecycle: EngineLifecycle,
        cache: EmbeddingCache | None = None,
        metrics: PerformanceMonitor | None = None,
        params: dict[str, Any] | None = None,
    ) -> None:
        self.lifecycle = lifecycle
        self.cache = cache or EmbeddingCache()
        self.metrics = metrics or PerformanceMonitor()
        self.provider = EmbeddingProvider(lifecycle, self.cache, metrics=self.metrics)
        self.search_engine = HybridSearchEngine(lifecycle, self.provider, metrics=self.metrics, params=params)
        self.suggestions = SuggestionService(lifecycle, self.provider)

    async def initialize(self) -> bool:
        return await self.lifecycle.initialize()

    async def search(
        self,
        query: str,
        notes: Iterable[Note],
        update_note: UpdateNote | None = None,
    ) -> list[SearchResult]:
        return await self.search_engine.search(query, notes, update_note=update_note)

    async def generate_embedding(self, text: str) -> list[float]:
        return await self.provider.generate_embedding(text)

    async def generate_suggestions(self, text: str, notes: Iterable[Note] | None = None) -> list[Suggestion]:
        return await self.suggestions.generate(text, notes)

    def status(self) -> dict[str, Any]:
        return {**self.lifecycle.snapshot(), "cache": self.cache.stats()}

    async def aclose(self) -> None:
        await self.lifecycle.aclose()


def build_ai_engine(
    settings: Settings | None = None,
    signals: DeviceSignals | None = None,
) -> AIEngine:
    """Build an :class:`AIEngine` backed by worker processes."""
    settings = settings or get_settings()
    config = resolve_engine_config(settings, signals)
    logger.info("Selected AI config: %s", config.model_dump())

    base_spec = BackendSpec(
        backend=settings.EMBEDDING_BACKEND,
        model=config.model,
        service_url=settings.EMBEDDING_SERVICE_URL,
        api_key=settings.OPENAI_API_KEY,
        openai_model=settings.OPENAI_EMBEDDING_MODEL,
        dimensions=settings.EMBEDDING_DIMENSION,
    )

    def channel_factory(engine_config: EngineConfig) -> DispatchChannel:
        transport = ProcessWorkerTransport(
            replace(base_spec, model=engine_config.model),
            process_count=engine_config.worker_count,
            load_timeout=settings.MODEL_LOAD_TIMEOUT_SECONDS,
        )
        return DispatchChannel(transport, timeout=settings.WORKER_REQUEST_TIMEOUT_SECONDS)

    lifecycle = EngineLifecycle(config, channel_factory, load_timeout=settings.MODEL_LOAD_TIMEOUT_SECONDS)
    cache = EmbeddingCache(
        max_entries=settings.CACHE_MAX_ENTRIES,
        evict_count=settings.CACHE_EVICT_COUNT,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
    )
    metrics = PerformanceMonitor(history_size=settings.METRICS_HISTORY_SIZE)
    return AIEngine(lifecycle, cache=cache, metrics=metrics, params=get_search_params(settings.SEARCH_PARAMS))

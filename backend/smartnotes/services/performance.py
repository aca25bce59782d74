"""Performance metrics: best-effort recording and auto-optimization.

The engine reports durations and error counts through
:class:`MetricsRecorder`.  Recording is best-effort: a failing recorder is
logged and never changes a search result.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from smartnotes.search.lifecycle import EngineLifecycle

logger = logging.getLogger(__name__)

SEARCH_DURATION = "search.duration"
SEARCH_ERROR = "search.error"
AI_EMBEDDING = "ai.embedding"
AI_SEARCH = "ai.search"
AI_ERROR = "ai.error"

SLOW_EMBEDDING_MS = 3000.0
CRITICAL_EMBEDDING_MS = 5000.0
MAX_ERROR_RATE = 0.2
MIN_BATCH_SIZE = 4


class MetricsRecorder(Protocol):
    def record_metric(self, name: str, value: float) -> None: ...


def record_metric_safely(recorder: MetricsRecorder | None, name: str, value: float) -> None:
    """Record one metric, logging (not raising) any recorder failure."""
    if recorder is None:
        return
    try:
        recorder.record_metric(name, value)
    except Exception:
        logger.exception("Failed to record metric %s", name)


class PerformanceMonitor:
    """Keep the last ``history_size`` values per metric and tune the engine from them."""

    def __init__(self, history_size: int = 100) -> None:
        self._history_size = history_size
        self._metrics: dict[str, deque[float]] = {}

    def record_metric(self, name: str, value: float) -> None:
        values = self._metrics.get(name)
        if values is None:
            values = self._metrics[name] = deque(maxlen=self._history_size)
        values.append(float(value))

    def get_metrics(self) -> dict[str, list[float]]:
        return {name: list(values) for name, values in self._metrics.items()}

    def get_average(self, name: str) -> float:
        values = self._metrics.get(name)
        if not values:
            return 0.0
        return sum(values) / len(values)

    def get_error_rate(self) -> float:
        """Failed embedding requests over all embedding requests in the current window.

        Each worker request records either ``ai.embedding`` or ``ai.error``,
        so the two histories together count the attempts.
        """
        errors = len(self._metrics.get(AI_ERROR, ()))
        attempts = errors + len(self._metrics.get(AI_EMBEDDING, ()))
        if not errors:
            return 0.0
        return errors / attempts

    def get_report(self) -> dict[str, Any]:
        averages: dict[str, float] = {}
        totals: dict[str, float] = {}
        for name, values in self._metrics.items():
            if values:
                averages[name] = sum(values) / len(values)
                totals[name] = sum(values)

        avg_embedding = averages.get(AI_EMBEDDING, 0.0)
        if avg_embedding > CRITICAL_EMBEDDING_MS:
            health = "critical"
        elif avg_embedding > SLOW_EMBEDDING_MS:
            health = "warning"
        else:
            health = "good"

        return {"averages": averages, "totals": totals, "health": health}

    def optimize(self, lifecycle: EngineLifecycle) -> list[str]:
        """Adjust the engine from recent metrics. Returns the actions taken."""
        actions: list[str] = []

        avg_embedding = self.get_average(AI_EMBEDDING)
        if avg_embedding > SLOW_EMBEDDING_MS:
            current = lifecycle.config.batch_size
            reduced = max(MIN_BATCH_SIZE, current // 2)
            if reduced != current:
                logger.warning("AI performance degraded (avg %.0fms), reducing batch size to %d", avg_embedding, reduced)
                lifecycle.reconfigure(batch_size=reduced)
                actions.append("reduce_batch_size")

        error_rate = self.get_error_rate()
        if error_rate > MAX_ERROR_RATE and not lifecycle.fallback_mode:
            lifecycle.enable_fallback_mode(f"error rate {error_rate:.0%}")
            actions.append("enable_fallback_mode")

        return actions

    async def run_auto_optimization(self, lifecycle: EngineLifecycle, interval: float = 30.0) -> None:
        """Call :meth:`optimize` every *interval* seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                self.optimize(lifecycle)
            except Exception:
                logger.exception("Auto-optimization pass failed")

    def reset(self) -> None:
        self._metrics.clear()

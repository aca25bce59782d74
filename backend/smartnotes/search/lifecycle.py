# @TASK P2-T2.7 - Engine lifecycle state machine
# @TEST tests/test_lifecycle.py

"""Engine lifecycle: ``loading`` → ``ready`` | ``disabled`` | ``error``.

* ``disabled``: the capability tier selected the fallback model.  This is
  not a failure.
* ``error``: worker start, model load (30s hard timeout) or the self-test
  embedding failed.  The fallback flag is set and no retry happens for
  the rest of the process lifetime.

``initialize`` always ends in a usable state and never raises.  Only the
lifecycle mutates its status; the provider and orchestrator read it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from smartnotes.search.capability import EngineConfig
from smartnotes.search.dispatch import DispatchChannel
from smartnotes.search.errors import EngineError
from smartnotes.search.messages import WorkerAction

logger = logging.getLogger(__name__)

DEFAULT_LOAD_TIMEOUT = 30.0
SELF_TEST_TEXT = "test"

ChannelFactory = Callable[[EngineConfig], DispatchChannel]


class EngineStatus(StrEnum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    DISABLED = "disabled"


class EngineLifecycle:
    """Owns engine status, fallback flag, config and the worker channel.

    Args:
        config: Engine config chosen by the capability selector.
        channel_factory: Builds the dispatch channel for *config*.  May
            raise :class:`~smartnotes.search.errors.WorkerUnavailableError`.
        load_timeout: Hard limit in seconds for model loading.
    """

    def __init__(
        self,
        config: EngineConfig,
        channel_factory: ChannelFactory,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
    ) -> None:
        self._config = config
        self._channel_factory = channel_factory
        self._load_timeout = load_timeout
        self._status = EngineStatus.LOADING
        self._fallback_mode = False
        self._initialized = False
        self._channel: DispatchChannel | None = None
        self._last_error: str | None = None
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def fallback_mode(self) -> bool:
        return self._fallback_mode

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def channel(self) -> DispatchChannel | None:
        return self._channel

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def semantic_available(self) -> bool:
        """True when embeddings may be dispatched to the worker."""
        return (
            self._status is EngineStatus.READY
            and not self._fallback_mode
            and self._channel is not None
            and not self._channel.closed
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": str(self._status),
            "fallback_mode": self._fallback_mode,
            "config": self._config.model_dump(),
            "last_error": self._last_error,
            "pending_requests": self._channel.pending_count if self._channel else 0,
        }

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Bring the engine to ``ready``, ``disabled`` or ``error``. Always returns True."""
        async with self._init_lock:
            if self._initialized:
                return True

            if self._config.is_fallback:
                logger.info("AI disabled, using fallback search")
                self._status = EngineStatus.DISABLED
                self._initialized = True
                return True

            try:
                await asyncio.wait_for(self._load_model(), timeout=self._load_timeout)
                await self._self_test()
            except (EngineError, TimeoutError) as exc:
                self._enter_error(exc)
            except Exception as exc:
                logger.exception("Unexpected error during AI engine initialization")
                self._enter_error(exc)
            else:
                self._status = EngineStatus.READY
                logger.info("AI engine ready (model=%s)", self._config.model)

            if self._status is EngineStatus.ERROR:
                await self.aclose()
            self._initialized = True
            return True

    def reconfigure(self, **changes: Any) -> EngineConfig:
        """Apply explicit config changes, e.g. ``reconfigure(batch_size=8)``."""
        updated = EngineConfig.model_validate({**self._config.model_dump(), **changes})
        if updated != self._config:
            logger.info("AI engine reconfigured: %s -> %s", self._config.model_dump(), updated.model_dump())
        self._config = updated
        return updated

    def enable_fallback_mode(self, reason: str = "") -> None:
        if not self._fallback_mode:
            logger.warning("AI fallback mode enabled%s", f": {reason}" if reason else "")
        self._fallback_mode = True

    async def aclose(self) -> None:
        """Release the worker channel at application shutdown."""
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load_model(self) -> None:
        """Send one ``initialize`` per worker process and wait for all replies."""
        logger.info("Loading model: %s", self._config.model)
        self._channel = self._channel_factory(self._config)
        payload = {"model": self._config.model}
        replies = await asyncio.gather(
            *(
                self._channel.request(WorkerAction.INITIALIZE, payload)
                for _ in range(max(1, self._config.worker_count))
            ),
            return_exceptions=True,
        )
        for reply in replies:
            if isinstance(reply, BaseException):
                raise reply

    async def _self_test(self) -> None:
        result = await self._channel.request(WorkerAction.EMBED, {"text": SELF_TEST_TEXT})
        embedding = result.get("embedding") if isinstance(result, dict) else None
        if not embedding:
            raise EngineError("Self-test embedding was empty")

    def _enter_error(self, exc: BaseException) -> None:
        message = str(exc) or type(exc).__name__
        logger.warning("AI initialization failed, using fallback: %s", message)
        self._status = EngineStatus.ERROR
        self._last_error = message
        self._fallback_mode = True

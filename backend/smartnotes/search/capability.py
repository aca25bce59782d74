# @TASK P2-T2.1 - Device capability detection and engine config selection
# @TEST tests/test_capability.py

"""Pick an embedding model tier from host capabilities.

``select_engine_config`` is a pure function of :class:`DeviceSignals`.
``detect_device_signals`` is the only part that touches the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import psutil
from pydantic import BaseModel, Field

from smartnotes.config import Settings

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "fallback"
HEAVY_MODEL = "all-mpnet-base-v2"
BALANCED_MODEL = "all-MiniLM-L6-v2"

DEFAULT_MEMORY_GB = 4.0
DEFAULT_CPU_CORES = 4
DEFAULT_NETWORK_TYPE = "4g"

_BYTES_PER_GB = 1024**3


class EngineConfig(BaseModel):
    """Embedding engine parameters chosen at startup."""

    model: str
    batch_size: int = Field(ge=1)
    worker_count: int = Field(ge=0)

    @property
    def is_fallback(self) -> bool:
        return self.model == FALLBACK_MODEL


@dataclass(frozen=True, slots=True)
class DeviceSignals:
    """Host signals used for tier selection. ``None`` means unknown."""

    memory_gb: float | None = None
    cpu_cores: int | None = None
    network_type: str | None = None


def select_engine_config(signals: DeviceSignals) -> EngineConfig:
    """Map device signals to an :class:`EngineConfig`.

    Unknown signals are treated as a mid-tier device (4 GB, 4 cores, 4g).
    """
    memory = signals.memory_gb if signals.memory_gb is not None else DEFAULT_MEMORY_GB
    cores = signals.cpu_cores if signals.cpu_cores is not None else DEFAULT_CPU_CORES
    network = signals.network_type or DEFAULT_NETWORK_TYPE

    if memory >= 8 and cores >= 4 and network == "4g":
        return EngineConfig(model=HEAVY_MODEL, batch_size=32, worker_count=2)
    if memory >= 4:
        return EngineConfig(model=BALANCED_MODEL, batch_size=16, worker_count=1)
    return EngineConfig(model=FALLBACK_MODEL, batch_size=8, worker_count=0)


def detect_device_signals(settings: Settings) -> DeviceSignals:
    """Read memory and core count from the host, honouring settings overrides."""
    memory_gb = settings.DEVICE_MEMORY_GB
    if memory_gb is None:
        memory_gb = round(psutil.virtual_memory().total / _BYTES_PER_GB, 1)

    cpu_cores = settings.DEVICE_CPU_CORES
    if cpu_cores is None:
        cpu_cores = psutil.cpu_count(logical=True)

    signals = DeviceSignals(
        memory_gb=memory_gb,
        cpu_cores=cpu_cores,
        network_type=settings.DEVICE_NETWORK_TYPE or None,
    )
    logger.info(
        "Device specs: %sGB RAM, %s cores, %s connection",
        signals.memory_gb,
        signals.cpu_cores,
        signals.network_type,
    )
    return signals


def resolve_engine_config(settings: Settings, signals: DeviceSignals | None = None) -> EngineConfig:
    """Select the engine config for this process, applying ``AI_MODEL_OVERRIDE``."""
    if signals is None:
        signals = detect_device_signals(settings)

    override = settings.AI_MODEL_OVERRIDE.strip()
    if override == FALLBACK_MODEL:
        return EngineConfig(model=FALLBACK_MODEL, batch_size=8, worker_count=0)

    config = select_engine_config(signals)
    if override and not config.is_fallback:
        config = config.model_copy(update={"model": override})
    return config

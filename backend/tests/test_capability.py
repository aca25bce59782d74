# @TASK P2-T2.1 - Capability selector tests
# @TEST tests/test_capability.py

"""Tests for device capability detection and engine config selection."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from smartnotes.config import Settings
from smartnotes.search.capability import (
    BALANCED_MODEL,
    FALLBACK_MODEL,
    HEAVY_MODEL,
    DeviceSignals,
    EngineConfig,
    detect_device_signals,
    resolve_engine_config,
    select_engine_config,
)

# ---------------------------------------------------------------------------
# 1. Tier selection
# ---------------------------------------------------------------------------


class TestSelectEngineConfig:
    def test_high_end_device_gets_heavy_model(self):
        config = select_engine_config(DeviceSignals(memory_gb=16, cpu_cores=8, network_type="4g"))

        assert config == EngineConfig(model=HEAVY_MODEL, batch_size=32, worker_count=2)

    def test_slow_network_drops_to_balanced(self):
        config = select_engine_config(DeviceSignals(memory_gb=16, cpu_cores=8, network_type="3g"))

        assert config.model == BALANCED_MODEL
        assert config.batch_size == 16
        assert config.worker_count == 1

    def test_few_cores_drops_to_balanced(self):
        config = select_engine_config(DeviceSignals(memory_gb=8, cpu_cores=2, network_type="4g"))

        assert config.model == BALANCED_MODEL

    def test_low_memory_gets_fallback(self):
        config = select_engine_config(DeviceSignals(memory_gb=2, cpu_cores=8, network_type="4g"))

        assert config == EngineConfig(model=FALLBACK_MODEL, batch_size=8, worker_count=0)
        assert config.is_fallback

    def test_missing_signals_assume_mid_tier(self):
        """Unknown memory/cores/network default to 4GB, 4 cores, 4g."""
        config = select_engine_config(DeviceSignals())

        assert config.model == BALANCED_MODEL

    def test_config_rejects_zero_batch_size(self):
        with pytest.raises(ValidationError):
            EngineConfig(model="m", batch_size=0, worker_count=1)


# ---------------------------------------------------------------------------
# 2. Host detection and overrides
# ---------------------------------------------------------------------------


class TestDetectDeviceSignals:
    def test_settings_override_detection(self):
        settings = Settings(DEVICE_MEMORY_GB=12, DEVICE_CPU_CORES=6, DEVICE_NETWORK_TYPE="3g")

        signals = detect_device_signals(settings)

        assert signals == DeviceSignals(memory_gb=12, cpu_cores=6, network_type="3g")

    def test_reads_host_when_not_configured(self):
        settings = Settings(DEVICE_MEMORY_GB=None, DEVICE_CPU_CORES=None)
        memory = MagicMock(total=8 * 1024**3)

        with (
            patch("smartnotes.search.capability.psutil.virtual_memory", return_value=memory),
            patch("smartnotes.search.capability.psutil.cpu_count", return_value=4),
        ):
            signals = detect_device_signals(settings)

        assert signals.memory_gb == 8.0
        assert signals.cpu_cores == 4


class TestResolveEngineConfig:
    def test_model_override_keeps_tier_parameters(self):
        settings = Settings(AI_MODEL_OVERRIDE="paraphrase-MiniLM-L3-v2")

        config = resolve_engine_config(settings, DeviceSignals(memory_gb=16, cpu_cores=8, network_type="4g"))

        assert config.model == "paraphrase-MiniLM-L3-v2"
        assert config.batch_size == 32

    def test_fallback_override_disables_semantic(self):
        settings = Settings(AI_MODEL_OVERRIDE="fallback")

        config = resolve_engine_config(settings, DeviceSignals(memory_gb=16, cpu_cores=8, network_type="4g"))

        assert config.is_fallback
        assert config.worker_count == 0

    def test_override_does_not_revive_fallback_tier(self):
        settings = Settings(AI_MODEL_OVERRIDE="all-mpnet-base-v2")

        config = resolve_engine_config(settings, DeviceSignals(memory_gb=1))

        assert config.is_fallback

from __future__ import annotations

import pytest

from storepub.core.clock import ManualClock
from storepub.core.config import PollingConfig, RetryConfig, Settings
from storepub.output.log import MemoryLogSink, PublishLogger


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fast_settings() -> Settings:
    """No simulated latency and short polling; backoff stays at its default."""
    return Settings(
        retry=RetryConfig(base_delay_ms=1000, max_retries=3),
        polling=PollingConfig(max_attempts=3, delay_seconds=0.0, simulated_delay_seconds=0.0),
    )


@pytest.fixture
def sink() -> MemoryLogSink:
    return MemoryLogSink()


@pytest.fixture
def logger(sink: MemoryLogSink) -> PublishLogger:
    return PublishLogger(sink)

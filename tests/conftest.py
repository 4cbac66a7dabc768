"""Shared fixtures: a Diagnostics instance with short windows and timeouts."""

from typing import Callable, List, Optional

import pytest

from statewatch.config import DiagnosticsConfig
from statewatch.runtime import Diagnostics


@pytest.fixture
def fast_config() -> DiagnosticsConfig:
    return DiagnosticsConfig(
        dispatch_window=0.02,
        grace_period=0.02,
        wait_timeout=0.1,
        poll_timeout=0.2,
        poll_interval=0.01,
        must_return_timeout=0.1,
        retry_backoff=0.01,
    )


@pytest.fixture
def diagnostics(fast_config):
    d = Diagnostics(fast_config)
    yield d
    d.close()


@pytest.fixture
def sink_messages(diagnostics) -> Callable[..., List[str]]:
    """Messages the diagnostics' StructuredLogger sink received."""

    def _messages(level: Optional[str] = None) -> List[str]:
        return [entry.message for entry in diagnostics.sink.get_entries(level)]

    return _messages

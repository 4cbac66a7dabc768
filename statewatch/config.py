"""Runtime configuration for statewatch.

Defaults match the reference timings:
- Dispatch aggregation window: 100 ms
- Unobserved-failure grace period: 50 ms
- Rolling history / breadcrumb trail: 10 entries
- Capture depth cap: 12
"""

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_MAX_DEPTH = 12
DEFAULT_HISTORY_LIMIT = 10
DEFAULT_DISPATCH_WINDOW = 0.1
DEFAULT_GRACE_PERIOD = 0.05
DEFAULT_BREADCRUMB_LIMIT = 10

ENV_PREFIX = "STATEWATCH_"


class DiagnosticsConfig(BaseModel):
    """Tunables for a Diagnostics instance."""

    max_depth: int = Field(DEFAULT_MAX_DEPTH, description="Capture depth cap")
    history_limit: int = Field(
        DEFAULT_HISTORY_LIMIT, description="Rolling history length per target"
    )
    dispatch_window: float = Field(
        DEFAULT_DISPATCH_WINDOW, description="Seconds identical reports are batched"
    )
    grace_period: float = Field(
        DEFAULT_GRACE_PERIOD, description="Seconds to attach a catcher after failure"
    )
    breadcrumb_limit: int = Field(
        DEFAULT_BREADCRUMB_LIMIT, description="Breadcrumbs kept for error context"
    )
    wait_timeout: float = Field(5.0, description="Default wait_until timeout")
    poll_timeout: float = Field(10.0, description="Default poll_until timeout")
    poll_interval: float = Field(0.1, description="Interval between poll_until calls")
    must_return_timeout: float = Field(5.0, description="Default must_return deadline")
    retry_limit: int = Field(3, description="Default catch_or_retry attempt limit")
    retry_backoff: float = Field(1.0, description="Default catch_or_retry wait")

    @field_validator("max_depth", "history_limit", "breadcrumb_limit", "retry_limit")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator(
        "dispatch_window",
        "grace_period",
        "wait_timeout",
        "poll_timeout",
        "poll_interval",
        "must_return_timeout",
        "retry_backoff",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "DiagnosticsConfig":
        """Build a config from ``STATEWATCH_*`` environment variables.

        ``STATEWATCH_DISPATCH_WINDOW=0.25`` sets ``dispatch_window``; unknown
        variables are ignored.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(ENV_PREFIX + name.upper())
            if raw is not None and raw != "":
                values[name] = raw
        return cls(**values)

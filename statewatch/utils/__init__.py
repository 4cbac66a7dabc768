"""Utility modules for statewatch."""

from .errors import (
    StateWatchError,
    CaptureFailure,
    MissingSnapshot,
    InvalidPath,
    UnobservedAsyncFailure,
    RetryExhausted,
    WaitTimeout,
)

__all__ = [
    "StateWatchError",
    "CaptureFailure",
    "MissingSnapshot",
    "InvalidPath",
    "UnobservedAsyncFailure",
    "RetryExhausted",
    "WaitTimeout",
]

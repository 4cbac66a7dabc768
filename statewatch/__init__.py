"""statewatch: snapshot, diff and watch live in-process state."""

__version__ = "0.1.0"

from .capture import capture, classify, diff
from .config import DiagnosticsConfig
from .dispatch import DispatchLevel
from .outcome import Guard, Informer, TargetExaminer, WaitHandle, with_retry
from .runtime import Diagnostics, ExamineContext, get_diagnostics, reset_diagnostics
from .utils.errors import (
    CaptureFailure,
    InvalidPath,
    MissingSnapshot,
    RetryExhausted,
    StateWatchError,
    UnobservedAsyncFailure,
    WaitTimeout,
)

__all__ = [
    "__version__",
    "capture",
    "classify",
    "diff",
    "DiagnosticsConfig",
    "DispatchLevel",
    "Guard",
    "Informer",
    "TargetExaminer",
    "WaitHandle",
    "with_retry",
    "Diagnostics",
    "ExamineContext",
    "get_diagnostics",
    "reset_diagnostics",
    "CaptureFailure",
    "InvalidPath",
    "MissingSnapshot",
    "RetryExhausted",
    "StateWatchError",
    "UnobservedAsyncFailure",
    "WaitTimeout",
]

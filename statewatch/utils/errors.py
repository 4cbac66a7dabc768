"""Error hierarchy for statewatch.

Only a few of these ever reach the caller as raised exceptions. Most are
recorded on an outcome, attached to a dispatched report, or swallowed into a
degraded capture value.
"""

from typing import Any, Optional, Sequence


class StateWatchError(Exception):
    """Base exception for all statewatch errors."""

    pass


class CaptureFailure(StateWatchError):
    """Raised when a value cannot be captured at all.

    Field-level copy failures never raise; they degrade to the field's string
    form. This error only escapes when a live value handed to a diff cannot
    be captured in the first place.
    """

    def __init__(self, message: str, value_type: Optional[str] = None):
        super().__init__(message)
        self.value_type = value_type


class MissingSnapshot(StateWatchError):
    """Raised when a snapshot id is unknown to the store."""

    def __init__(self, snapshot_id: Any, message: Optional[str] = None):
        super().__init__(message or f"missing snapshot: {snapshot_id!r}")
        self.snapshot_id = snapshot_id


class InvalidPath(StateWatchError):
    """Raised when an injection path does not resolve to a container."""

    def __init__(self, message: str, path: Optional[Sequence[Any]] = None):
        super().__init__(message)
        self.path = list(path) if path is not None else None


class UnobservedAsyncFailure(StateWatchError):
    """Failure of an informer or guard that nobody caught in time.

    This is recorded and reported as a warning, never raised into user code.
    """

    def __init__(
        self,
        message: str = "The error catcher wasn't used.",
        error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.error = error


class RetryExhausted(StateWatchError):
    """Raised when a retried operation failed on every attempt."""

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        snapshot_id: Optional[int] = None,
        last_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.attempts = attempts
        self.snapshot_id = snapshot_id
        self.last_error = last_error


class WaitTimeout(StateWatchError):
    """Raised or reported when a wait/poll/deadline expires."""

    def __init__(
        self,
        message: str = "Timeout",
        timeout: Optional[float] = None,
        snapshot_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.timeout = timeout
        self.snapshot_id = snapshot_id

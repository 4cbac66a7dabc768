"""Async outcome wrappers and retry/wait controllers."""

from .base import AsyncOutcome, OutcomeState
from .examiner import TargetExaminer
from .guard import Guard
from .informer import Informer
from .observe import ReturnHistory, execution_timer, observe_return
from .retry import catch_or_retry, with_retry
from .throttle import Throttle, throttle
from .wait import WaitHandle, must_return, poll_until, succeed_until, wait_until

__all__ = [
    "AsyncOutcome",
    "OutcomeState",
    "Guard",
    "Informer",
    "TargetExaminer",
    "ReturnHistory",
    "execution_timer",
    "observe_return",
    "catch_or_retry",
    "with_retry",
    "Throttle",
    "throttle",
    "WaitHandle",
    "must_return",
    "poll_until",
    "succeed_until",
    "wait_until",
]

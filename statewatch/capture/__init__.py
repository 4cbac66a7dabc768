"""Value capture, structural diffing, and snapshot storage."""

from .graph import (
    CYCLE,
    DescriptorRegistry,
    NodeKind,
    capture,
    capture_strict,
    classify,
    is_external_descriptor,
    safe_repr,
)
from .differ import ABSENT, DiffEntry, diff, format_diff
from .paths import deep_equal, find_value, inject
from .store import HistoryEntry, Snapshot, SnapshotStore

__all__ = [
    "CYCLE",
    "DescriptorRegistry",
    "NodeKind",
    "capture",
    "capture_strict",
    "classify",
    "is_external_descriptor",
    "safe_repr",
    "ABSENT",
    "DiffEntry",
    "diff",
    "format_diff",
    "deep_equal",
    "find_value",
    "inject",
    "HistoryEntry",
    "Snapshot",
    "SnapshotStore",
]

"""Snapshot storage with monotonic ids and per-target rolling history.

Two kinds of records are kept:
- Snapshots: id -> captured copy, kept for the lifetime of the store
- History: per target identity, the last ``history_limit`` captures
  (oldest evicted first), addressed by 1-based index

Neither is persisted; this is an in-memory debugging aid.
"""

import logging
import weakref
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from ..utils.errors import MissingSnapshot
from .differ import DiffEntry, diff
from .graph import DEFAULT_MAX_DEPTH, DescriptorRegistry, capture_strict, safe_repr

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Snapshot:
    """A captured copy of a target at one point in time."""

    id: int
    timestamp: str
    captured: Any
    meta: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "captured": self.captured,
            "meta": self.meta,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One slot in a target's rolling history."""

    timestamp: str
    captured: Any
    note: Any = None


@dataclass
class _HistoryBucket:
    entries: Deque[HistoryEntry]
    ref: Optional[weakref.ref] = None
    # Targets that cannot be weakly referenced are pinned so their id stays theirs
    pinned: Any = field(default=None, repr=False)

    def holds(self, target: Any) -> bool:
        if self.ref is not None:
            return self.ref() is target
        return self.pinned is target


class SnapshotStore:
    """Id-addressed snapshots plus bounded per-target history.

    Usage:
        store = SnapshotStore()
        snap_id = store.snapshot(state, meta={"note": "before tick"})
        ... mutate state ...
        for entry in store.diff_snapshots(snap_id, state):
            print(entry)
    """

    def __init__(
        self,
        max_depth: int = DEFAULT_MAX_DEPTH,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        descriptors: Optional[DescriptorRegistry] = None,
    ):
        """Initialize store.

        Args:
            max_depth: Capture depth cap
            history_limit: Entries kept per target in the rolling history
            descriptors: Providers for external references
        """
        self.max_depth = max_depth
        self.history_limit = history_limit
        self.descriptors = descriptors

        self._counter = 0
        self._snapshots: Dict[int, Snapshot] = {}
        self._history: Dict[int, _HistoryBucket] = {}

    def _capture_or_repr(self, target: Any) -> Any:
        try:
            return capture_strict(target, self.max_depth, self.descriptors)
        except Exception as e:
            logger.debug(f"Storing string form of {type(target).__name__}: {e}")
            return safe_repr(target)

    def snapshot(self, target: Any, meta: Any = None) -> int:
        """Capture ``target`` and return its new snapshot id (1, 2, 3, ...)."""
        self._counter += 1
        snapshot_id = self._counter
        self._snapshots[snapshot_id] = Snapshot(
            id=snapshot_id,
            timestamp=utc_timestamp(),
            captured=self._capture_or_repr(target),
            meta=meta,
        )
        logger.debug(f"Stored snapshot {snapshot_id} ({type(target).__name__})")
        return snapshot_id

    def get(self, snapshot_id: int) -> Snapshot:
        """Return a snapshot or raise MissingSnapshot."""
        try:
            return self._snapshots[snapshot_id]
        except (KeyError, TypeError):
            raise MissingSnapshot(snapshot_id) from None

    def diff_snapshots(self, snapshot_id: int, live: Any) -> List[DiffEntry]:
        """Diff a stored snapshot against live state.

        Raises:
            MissingSnapshot: ``snapshot_id`` is unknown
            CaptureFailure: ``live`` could not be captured
        """
        snapshot = self.get(snapshot_id)
        current = capture_strict(live, self.max_depth, self.descriptors)
        return diff(snapshot.captured, current)

    def snapshots(self) -> List[Snapshot]:
        """All snapshots in id order."""
        return [self._snapshots[i] for i in sorted(self._snapshots)]

    def _bucket(self, target: Any, create: bool) -> Optional[_HistoryBucket]:
        key = id(target)
        bucket = self._history.get(key)
        if bucket is not None and bucket.holds(target):
            return bucket
        if not create:
            return None

        bucket = _HistoryBucket(entries=deque(maxlen=self.history_limit))
        try:
            history = self._history
            bucket.ref = weakref.ref(target, lambda _ref: history.pop(key, None))
        except TypeError:
            bucket.pinned = target
        self._history[key] = bucket
        return bucket

    def snapshot_history(self, target: Any, note: Any = None) -> int:
        """Append a capture of ``target`` to its rolling history.

        Returns:
            1-based index of the new entry within the current buffer
        """
        bucket = self._bucket(target, create=True)
        bucket.entries.append(
            HistoryEntry(
                timestamp=utc_timestamp(),
                captured=self._capture_or_repr(target),
                note=note,
            )
        )
        return len(bucket.entries)

    def history(self, target: Any) -> List[HistoryEntry]:
        """Current history of ``target``, oldest first."""
        bucket = self._bucket(target, create=False)
        return list(bucket.entries) if bucket is not None else []

    def diff_history(self, target: Any, index: int) -> Optional[List[DiffEntry]]:
        """Diff the history entry at 1-based ``index`` against ``target`` now.

        Returns None when the index is outside the current buffer or the
        live target cannot be captured.
        """
        bucket = self._bucket(target, create=False)
        if bucket is None or not isinstance(index, int) or not 1 <= index <= len(bucket.entries):
            return None
        try:
            current = capture_strict(target, self.max_depth, self.descriptors)
        except Exception as e:
            logger.debug(f"Could not capture live target for history diff: {e}")
            return None
        return diff(bucket.entries[index - 1].captured, current)

    def clear(self) -> None:
        """Drop all snapshots and history; ids keep increasing."""
        self._snapshots.clear()
        self._history.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, snapshot_id: object) -> bool:
        return snapshot_id in self._snapshots

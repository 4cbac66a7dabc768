"""Tests for SnapshotStore."""

import gc

import pytest

from statewatch.capture import DescriptorRegistry, DiffEntry, SnapshotStore
from statewatch.utils.errors import CaptureFailure, MissingSnapshot


class Tracked:
    def __init__(self, hp):
        self.hp = hp


class Gadget:
    pass


class TestSnapshots:
    """Tests for id-addressed snapshots."""

    def test_ids_are_sequential(self):
        """N snapshots get ids 1..N in order."""
        store = SnapshotStore()
        ids = [store.snapshot({"n": n}) for n in range(5)]
        assert ids == [1, 2, 3, 4, 5]
        assert len(store) == 5
        assert 3 in store

    def test_get_returns_capture_and_meta(self):
        """Stored snapshots keep the captured value and meta."""
        store = SnapshotStore()
        snap_id = store.snapshot({"a": [1]}, meta={"note": "boot"})
        snapshot = store.get(snap_id)
        assert snapshot.captured == {"a": {0: 1}}
        assert snapshot.meta == {"note": "boot"}
        assert snapshot.timestamp.endswith("Z")
        assert snapshot.to_dict()["id"] == snap_id

    def test_missing_snapshot(self):
        """Unknown ids raise MissingSnapshot."""
        store = SnapshotStore()
        with pytest.raises(MissingSnapshot):
            store.get(1)
        with pytest.raises(MissingSnapshot):
            store.diff_snapshots(99, {})

    def test_diff_against_live(self):
        """A snapshot diffs against the current state of its target."""
        store = SnapshotStore()
        state = {"hp": 10, "pos": {"x": 0}}
        snap_id = store.snapshot(state)
        state["pos"]["x"] = 4
        assert store.diff_snapshots(snap_id, state) == [DiffEntry("pos.x", "0", "4")]

    def test_uncapturable_live_raises(self):
        """A live value whose descriptor is malformed raises CaptureFailure."""
        registry = DescriptorRegistry()
        registry.register(Gadget, lambda g: "not a (kind, name) pair")
        store = SnapshotStore(descriptors=registry)
        snap_id = store.snapshot({})

        with pytest.raises(CaptureFailure) as exc_info:
            store.diff_snapshots(snap_id, Gadget())
        assert exc_info.value.value_type == "Gadget"

    def test_clear_keeps_counter(self):
        """Clearing drops snapshots but ids keep increasing."""
        store = SnapshotStore()
        store.snapshot(1)
        store.clear()
        assert len(store) == 0
        assert store.snapshot(2) == 2


class TestHistory:
    """Tests for rolling per-target history."""

    def test_history_is_bounded(self):
        """History never exceeds its limit; oldest entries go first."""
        store = SnapshotStore(history_limit=10)
        target = {"v": 0}
        indexes = []
        for i in range(12):
            target["v"] = i
            indexes.append(store.snapshot_history(target))
        assert indexes[:10] == list(range(1, 11))
        assert indexes[10:] == [10, 10]
        assert len(store.history(target)) == 10

        target["v"] = 99
        # Entry 1 is now the third original insertion
        assert store.diff_history(target, 1) == [DiffEntry("v", "2", "99")]

    def test_out_of_range_index(self):
        """Indexes outside the buffer return None."""
        store = SnapshotStore()
        target = {"v": 1}
        store.snapshot_history(target)
        assert store.diff_history(target, 0) is None
        assert store.diff_history(target, 2) is None
        assert store.diff_history({"other": 1}, 1) is None

    def test_notes_recorded(self):
        """Each entry keeps its note."""
        store = SnapshotStore()
        target = Tracked(5)
        store.snapshot_history(target, note="spawn")
        assert store.history(target)[0].note == "spawn"
        assert store.history(target)[0].captured == {"hp": 5}

    def test_targets_are_separate(self):
        """Equal but distinct targets keep distinct histories."""
        store = SnapshotStore()
        a, b = Tracked(1), Tracked(1)
        store.snapshot_history(a)
        store.snapshot_history(a)
        store.snapshot_history(b)
        assert len(store.history(a)) == 2
        assert len(store.history(b)) == 1

    def test_history_dropped_with_target(self):
        """History of a collected target is released."""
        store = SnapshotStore()
        target = Tracked(1)
        store.snapshot_history(target)
        del target
        gc.collect()
        assert store._history == {}

"""
Test suite for snapshot history and range resolution
"""
from datetime import datetime, timezone

import pytest
from changelog_engine.exceptions import ChangelogValidationError
from changelog_engine.snapshots.snapshot_log import (
    Snapshot,
    SnapshotLog,
    SnapshotRange,
    SnapshotRangeResolver,
    to_millis,
)


@pytest.fixture
def snapshot_log():
    """Snapshots 1 <- 2 <- 3 committed at 1000, 2000 and 3000 ms"""
    return SnapshotLog.linear([1000, 2000, 3000])


@pytest.fixture
def resolver(snapshot_log):
    return SnapshotRangeResolver(snapshot_log)


class TestSnapshotLog:
    """Ancestry queries"""

    def test_linear_history(self, snapshot_log):
        assert snapshot_log.current_snapshot_id == 3
        assert [s.snapshot_id for s in snapshot_log.current_ancestors()] == [3, 2, 1]
        assert snapshot_log.oldest_ancestor().snapshot_id == 1

    def test_current_defaults_to_latest(self):
        log = SnapshotLog([Snapshot(10, None, 100), Snapshot(11, 10, 200)])

        assert log.current_snapshot().snapshot_id == 11

    def test_unknown_current_snapshot(self):
        with pytest.raises(ChangelogValidationError):
            SnapshotLog([Snapshot(1, None, 100)], current_snapshot_id=5)

    def test_empty_log(self):
        log = SnapshotLog([])

        assert log.current_snapshot() is None
        assert log.oldest_ancestor() is None
        assert log.snapshots_between(None, None) == []

    def test_oldest_ancestor_after(self, snapshot_log):
        assert snapshot_log.oldest_ancestor_after(2000).snapshot_id == 2
        assert snapshot_log.oldest_ancestor_after(1500).snapshot_id == 2
        assert snapshot_log.oldest_ancestor_after(500).snapshot_id == 1
        assert snapshot_log.oldest_ancestor_after(4000) is None

    def test_oldest_ancestor_after_with_expired_history(self):
        """Without the root snapshot, times before the oldest retained snapshot match nothing"""
        log = SnapshotLog([Snapshot(2, 1, 2000), Snapshot(3, 2, 3000)], current_snapshot_id=3)

        assert log.oldest_ancestor_after(500) is None

    def test_snapshot_id_as_of_time(self, snapshot_log):
        assert snapshot_log.snapshot_id_as_of_time(2500) == 2
        assert snapshot_log.snapshot_id_as_of_time(3000) == 3
        assert snapshot_log.snapshot_id_as_of_time(999) is None

    def test_snapshots_between(self, snapshot_log):
        assert snapshot_log.snapshots_between(None, None) == [1, 2, 3]
        assert snapshot_log.snapshots_between(1, 3) == [2, 3]
        assert snapshot_log.snapshots_between(1, 2) == [2]
        assert snapshot_log.snapshots_between(2, 2) == []

    def test_snapshots_between_rejects_non_ancestor_start(self, snapshot_log):
        with pytest.raises(ChangelogValidationError, match="not a parent ancestor"):
            snapshot_log.snapshots_between(3, 2)

    def test_snapshots_between_unknown_end(self, snapshot_log):
        with pytest.raises(ChangelogValidationError):
            snapshot_log.snapshots_between(None, 42)

    def test_branching_history_follows_parents(self):
        log = SnapshotLog(
            [Snapshot(1, None, 100), Snapshot(2, 1, 200), Snapshot(3, 1, 300)],
            current_snapshot_id=3,
        )

        assert log.snapshots_between(None, 3) == [1, 3]
        assert log.snapshots_between(None, 2) == [1, 2]


class TestSnapshotRangeResolver:
    """Range resolution from ids and timestamps"""

    def test_ids_pass_through(self, resolver):
        assert resolver.resolve(1, 3) == SnapshotRange(1, 3)
        assert resolver.resolve() == SnapshotRange(None, None)

    def test_full_time_range(self, resolver):
        assert resolver.resolve(start_timestamp=1000, end_timestamp=3000) == SnapshotRange(None, 3)

    def test_timestamps_override_ids(self, resolver):
        assert resolver.resolve(1, 2, start_timestamp=1500, end_timestamp=2500) == SnapshotRange(1, 2)

    def test_open_ended_time_ranges(self, resolver):
        assert resolver.resolve(start_timestamp=2000) == SnapshotRange(1, 3)
        assert resolver.resolve(end_timestamp=1000) == SnapshotRange(None, 1)

    def test_start_after_end_is_rejected(self, resolver):
        with pytest.raises(ChangelogValidationError, match="Start timestamp must be less than or equal"):
            resolver.resolve(start_timestamp=3000, end_timestamp=1000)

    def test_no_matching_snapshot_is_empty(self, resolver):
        assert resolver.resolve(start_timestamp=5000) is None
        assert resolver.resolve(end_timestamp=10) is None

    def test_datetime_timestamps(self, resolver):
        start = datetime.fromtimestamp(1.5, tz=timezone.utc)
        assert resolver.resolve(start_timestamp=start) == SnapshotRange(1, 3)


def test_to_millis():
    assert to_millis(None) is None
    assert to_millis(1234) == 1234
    assert to_millis(datetime(1970, 1, 1, 0, 0, 2)) == 2000
    assert to_millis(datetime(1970, 1, 1, 0, 0, 2, tzinfo=timezone.utc)) == 2000


@pytest.mark.parametrize("value, expected", [
    (datetime(2021, 6, 1, 12, 0, 0, 1000), 1622548800001),
    (datetime(2023, 1, 1, 0, 0, 0, 999000, tzinfo=timezone.utc), 1672531200999),
    (datetime(2023, 1, 1, 0, 0, 0, 999999), 1672531200999),
    (datetime(1969, 12, 31, 23, 59, 59, 999000), -1),
])
def test_to_millis_is_exact(value, expected):
    assert to_millis(value) == expected

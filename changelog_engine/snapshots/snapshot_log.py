"""
Snapshot history and range resolution for changelog reads.

A changelog read covers the snapshots in (start_exclusive, end_inclusive]
along the parent chain of the end snapshot.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Union

from changelog_engine.exceptions import ChangelogValidationError

Timestamp = Union[int, datetime]
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Snapshot:
    """One committed state of a table"""
    snapshot_id: int
    parent_id: Optional[int]
    timestamp_ms: int


@dataclass(frozen=True)
class SnapshotRange:
    """Snapshot ids bounding a changelog read"""
    start_snapshot_id_exclusive: Optional[int]
    end_snapshot_id_inclusive: Optional[int]


def to_millis(value: Optional[Timestamp]) -> Optional[int]:
    """Convert a datetime (naive values are taken as UTC) or epoch millis to millis"""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - EPOCH) // timedelta(milliseconds=1)
    return int(value)


class SnapshotLog:
    """Snapshots of one table, linked by parent ids"""

    def __init__(self, snapshots: Iterable[Snapshot], current_snapshot_id: Optional[int] = None):
        self._snapshots: Dict[int, Snapshot] = {s.snapshot_id: s for s in snapshots}
        if current_snapshot_id is None and self._snapshots:
            current_snapshot_id = max(self._snapshots.values(), key=lambda s: s.timestamp_ms).snapshot_id
        if current_snapshot_id is not None and current_snapshot_id not in self._snapshots:
            raise ChangelogValidationError(f"Cannot find current snapshot {current_snapshot_id}")
        self.current_snapshot_id = current_snapshot_id

    @classmethod
    def linear(cls, timestamps_ms: Iterable[int], first_snapshot_id: int = 1) -> 'SnapshotLog':
        """Build a straight-line history with consecutive ids"""
        snapshots = []
        parent_id = None
        for offset, ts in enumerate(timestamps_ms):
            snapshot_id = first_snapshot_id + offset
            snapshots.append(Snapshot(snapshot_id, parent_id, ts))
            parent_id = snapshot_id
        return cls(snapshots, current_snapshot_id=parent_id)

    def __len__(self) -> int:
        return len(self._snapshots)

    def snapshot(self, snapshot_id: int) -> Optional[Snapshot]:
        return self._snapshots.get(snapshot_id)

    def current_snapshot(self) -> Optional[Snapshot]:
        if self.current_snapshot_id is None:
            return None
        return self._snapshots[self.current_snapshot_id]

    def ancestors(self, snapshot_id: Optional[int]) -> Iterator[Snapshot]:
        """Yield the snapshot and its ancestors, newest first"""
        snapshot = self.snapshot(snapshot_id) if snapshot_id is not None else None
        while snapshot is not None:
            yield snapshot
            snapshot = self.snapshot(snapshot.parent_id) if snapshot.parent_id is not None else None

    def current_ancestors(self) -> Iterator[Snapshot]:
        return self.ancestors(self.current_snapshot_id)

    def oldest_ancestor(self) -> Optional[Snapshot]:
        oldest = None
        for snapshot in self.current_ancestors():
            oldest = snapshot
        return oldest

    def oldest_ancestor_after(self, timestamp_ms: int) -> Optional[Snapshot]:
        """
        The first current ancestor committed at or after timestamp_ms.

        Returns None when history before timestamp_ms has been expired and the
        oldest retained snapshot is not the table's first snapshot.
        """
        last = None
        for snapshot in self.current_ancestors():
            if snapshot.timestamp_ms < timestamp_ms:
                return last
            if snapshot.timestamp_ms == timestamp_ms:
                return snapshot
            last = snapshot

        if last is not None and last.parent_id is None:
            return last
        return None

    def snapshot_id_as_of_time(self, timestamp_ms: int) -> Optional[int]:
        """The newest current ancestor committed at or before timestamp_ms"""
        for snapshot in self.current_ancestors():
            if snapshot.timestamp_ms <= timestamp_ms:
                return snapshot.snapshot_id
        return None

    def snapshots_between(
        self,
        start_exclusive: Optional[int],
        end_inclusive: Optional[int],
    ) -> List[int]:
        """Snapshot ids in (start_exclusive, end_inclusive], oldest first"""
        if end_inclusive is None:
            end_inclusive = self.current_snapshot_id
        if end_inclusive is None:
            return []
        if self.snapshot(end_inclusive) is None:
            raise ChangelogValidationError(f"Cannot find end snapshot {end_inclusive}")

        ids = []
        for snapshot in self.ancestors(end_inclusive):
            if snapshot.snapshot_id == start_exclusive:
                break
            ids.append(snapshot.snapshot_id)
        else:
            if start_exclusive is not None:
                raise ChangelogValidationError(
                    f"Starting snapshot (exclusive) {start_exclusive} is not a parent ancestor "
                    f"of end snapshot {end_inclusive}"
                )

        ids.reverse()
        return ids


class SnapshotRangeResolver:
    """Turns snapshot ids or commit timestamps into a SnapshotRange"""

    def __init__(self, snapshot_log: SnapshotLog):
        self.snapshot_log = snapshot_log

    def resolve(
        self,
        start_snapshot_id: Optional[int] = None,
        end_snapshot_id: Optional[int] = None,
        start_timestamp: Optional[Timestamp] = None,
        end_timestamp: Optional[Timestamp] = None,
    ) -> Optional[SnapshotRange]:
        """
        Resolve the snapshot range for a changelog read.

        Timestamps take precedence over snapshot ids. Returns None when no
        snapshot matches the requested time range.
        """
        if start_timestamp is None and end_timestamp is None:
            return SnapshotRange(start_snapshot_id, end_snapshot_id)

        return self.resolve_timestamps(to_millis(start_timestamp), to_millis(end_timestamp))

    def resolve_timestamps(
        self,
        start_ms: Optional[int],
        end_ms: Optional[int],
    ) -> Optional[SnapshotRange]:
        if start_ms is not None and end_ms is not None and start_ms > end_ms:
            raise ChangelogValidationError("Start timestamp must be less than or equal to end timestamp")

        log = self.snapshot_log
        if start_ms is None:
            start = log.oldest_ancestor()
        else:
            start = log.oldest_ancestor_after(start_ms)

        if end_ms is None:
            end = log.current_snapshot()
        else:
            end_id = log.snapshot_id_as_of_time(end_ms)
            end = log.snapshot(end_id) if end_id is not None else None

        if start is None or end is None:
            return None

        return SnapshotRange(start.parent_id, end.snapshot_id)

"""
Changelog sources supply the raw INSERT/DELETE rows between two snapshots.

Computing those rows from data files is the job of the storage layer; the
in-memory source here serves changelogs that were captured elsewhere.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import pyarrow as pa
import pyarrow.compute as pc

from changelog_engine.exceptions import ChangelogValidationError
from changelog_engine.snapshots.snapshot_log import SnapshotLog
from changelog_engine.types.change_record import resolve_column

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_SNAPSHOT_ID_COLUMN = "_commit_snapshot_id"
DEFAULT_CHANGE_ORDINAL_COLUMN = "_change_ordinal"


class ChangelogSource(ABC):
    """Abstract base class for changelog sources"""

    @abstractmethod
    def schema(self, table_name: str) -> pa.Schema:
        """Schema of the rows returned by read_changes"""
        pass

    @abstractmethod
    def snapshot_log(self, table_name: str) -> SnapshotLog:
        """Snapshot history of a table"""
        pass

    @abstractmethod
    def read_changes(
        self,
        table_name: str,
        start_snapshot_id_exclusive: Optional[int] = None,
        end_snapshot_id_inclusive: Optional[int] = None,
    ) -> pa.Table:
        """Raw change rows committed in (start, end], tagged with a change ordinal"""
        pass

    def empty_changes(self, table_name: str) -> pa.Table:
        return self.schema(table_name).empty_table()


class ArrowChangelogSource(ChangelogSource):
    """
    Serves changelogs held in memory as Arrow tables.

    Each registered table must carry the commit snapshot id of every row.
    The change ordinal is derived at read time from the position of that
    snapshot within the requested range, oldest snapshot first.
    """

    def __init__(
        self,
        commit_snapshot_id_column: str = DEFAULT_COMMIT_SNAPSHOT_ID_COLUMN,
        change_ordinal_column: str = DEFAULT_CHANGE_ORDINAL_COLUMN,
    ):
        self.commit_snapshot_id_column = commit_snapshot_id_column
        self.change_ordinal_column = change_ordinal_column
        self._tables: Dict[str, Tuple[pa.Table, SnapshotLog]] = {}

    def register(self, table_name: str, changes: pa.Table, snapshot_log: SnapshotLog):
        """Register the raw changelog rows and snapshot history of a table"""
        resolve_column(changes.column_names, self.commit_snapshot_id_column, role="Commit snapshot id")
        if self.change_ordinal_column in changes.column_names:
            changes = changes.drop_columns([self.change_ordinal_column])
        self._tables[table_name] = (changes, snapshot_log)
        logger.info("Registered changelog for %s (%d rows, %d snapshots)",
                    table_name, changes.num_rows, len(snapshot_log))

    def list_tables(self):
        return list(self._tables)

    def _entry(self, table_name: str) -> Tuple[pa.Table, SnapshotLog]:
        if table_name not in self._tables:
            raise ChangelogValidationError(f"Unknown table: {table_name}")
        return self._tables[table_name]

    def schema(self, table_name: str) -> pa.Schema:
        changes, _ = self._entry(table_name)
        return changes.schema.append(pa.field(self.change_ordinal_column, pa.int64()))

    def snapshot_log(self, table_name: str) -> SnapshotLog:
        return self._entry(table_name)[1]

    def read_changes(
        self,
        table_name: str,
        start_snapshot_id_exclusive: Optional[int] = None,
        end_snapshot_id_inclusive: Optional[int] = None,
    ) -> pa.Table:
        changes, snapshot_log = self._entry(table_name)
        snapshot_ids = snapshot_log.snapshots_between(start_snapshot_id_exclusive, end_snapshot_id_inclusive)
        if not snapshot_ids:
            return self.empty_changes(table_name)

        commit_ids = changes[self.commit_snapshot_id_column]
        in_range = changes.filter(pc.is_in(commit_ids, value_set=pa.array(snapshot_ids, type=commit_ids.type)))

        ordinals = pc.index_in(
            in_range[self.commit_snapshot_id_column],
            value_set=pa.array(snapshot_ids, type=commit_ids.type),
        )
        result = in_range.append_column(
            pa.field(self.change_ordinal_column, pa.int64()),
            pc.cast(ordinals, pa.int64()),
        )
        logger.debug("Read %d change rows for %s across %d snapshots",
                     result.num_rows, table_name, len(snapshot_ids))
        return result

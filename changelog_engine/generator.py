"""
ChangesGenerator - reads a changelog range, normalizes it and registers the result.
"""
import asyncio
import functools
import logging
from typing import Iterable, List, Optional, Union

import pyarrow as pa

from changelog_engine.backends.ibis_backend import IbisBackend
from changelog_engine.batch.windowed_normalizer import WindowedChangelogNormalizer
from changelog_engine.config import NORMALIZATION_MODES, ChangelogConfig, get_config
from changelog_engine.exceptions import ChangelogValidationError
from changelog_engine.snapshots.snapshot_log import SnapshotRangeResolver, Timestamp
from changelog_engine.sources.changelog_source import ChangelogSource
from changelog_engine.streaming.normalizer import StreamingChangelogNormalizer, sort_for_streaming
from changelog_engine.types.change_record import resolve_column

logger = logging.getLogger(__name__)


def parse_identifier_columns(identifier_columns: Optional[Union[str, Iterable[str]]]) -> List[str]:
    """Accept a list of names or a comma separated string; blanks are dropped"""
    if identifier_columns is None:
        return []
    if isinstance(identifier_columns, str):
        identifier_columns = identifier_columns.split(",")
    return [name.strip() for name in identifier_columns if name and name.strip()]


class ChangesGenerator:
    """
    Produces a queryable, normalized changelog for a snapshot range.

    Without identifier columns the raw changelog is registered as is.
    """

    def __init__(
        self,
        source: ChangelogSource,
        backend: Optional[IbisBackend] = None,
        config: Optional[ChangelogConfig] = None,
    ):
        self.source = source
        self.config = config or get_config()
        self.backend = backend or IbisBackend(connection_uri=self.config.backend_uri)

    def default_view_name(self, table_name: str) -> str:
        short_name = table_name.rsplit(".", 1)[-1]
        return f"{short_name}{self.config.view_suffix}"

    def _check_columns(self, schema: pa.Schema, identifier_columns: List[str], mode: str):
        names = schema.names
        resolve_column(names, self.config.change_type_column, role="Change type")
        for name in identifier_columns:
            resolve_column(names, name)
        if identifier_columns and mode == "batch":
            resolve_column(names, self.config.change_ordinal_column, role="Change ordinal")

    def read_changes(
        self,
        table_name: str,
        start_snapshot_id: Optional[int] = None,
        end_snapshot_id: Optional[int] = None,
        start_timestamp: Optional[Timestamp] = None,
        end_timestamp: Optional[Timestamp] = None,
    ) -> pa.Table:
        """Raw changelog rows for the resolved snapshot range"""
        resolver = SnapshotRangeResolver(self.source.snapshot_log(table_name))
        snapshot_range = resolver.resolve(start_snapshot_id, end_snapshot_id, start_timestamp, end_timestamp)
        if snapshot_range is None:
            logger.info("No snapshots of %s match the requested time range", table_name)
            return self.source.empty_changes(table_name)

        return self.source.read_changes(
            table_name,
            snapshot_range.start_snapshot_id_exclusive,
            snapshot_range.end_snapshot_id_inclusive,
        )

    def normalize(self, changes: pa.Table, identifier_columns: List[str], mode: str) -> pa.Table:
        config = self.config
        if mode == "streaming":
            ordered = sort_for_streaming(
                changes,
                identifier_columns,
                change_type_column=config.change_type_column,
                ordinal_column=config.change_ordinal_column,
            )
            normalizer = StreamingChangelogNormalizer(
                identifier_columns,
                change_type_column=config.change_type_column,
                batch_size=config.batch_size,
            )
            return normalizer.normalize(ordered)

        normalizer = WindowedChangelogNormalizer(
            identifier_columns,
            change_type_column=config.change_type_column,
            change_ordinal_column=config.change_ordinal_column,
        )
        result = self.backend.to_pyarrow(normalizer.build(changes))
        logger.debug("Windowed normalization produced %d rows", result.num_rows)
        return result

    def generate(
        self,
        table_name: str,
        start_snapshot_id: Optional[int] = None,
        end_snapshot_id: Optional[int] = None,
        start_timestamp: Optional[Timestamp] = None,
        end_timestamp: Optional[Timestamp] = None,
        identifier_columns: Optional[Union[str, Iterable[str]]] = None,
        view_name: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> str:
        """
        Register the normalized changelog of a table and return its name.

        Snapshot ids are ignored when a start or end timestamp is given.
        """
        mode = mode or self.config.default_mode
        if mode not in NORMALIZATION_MODES:
            raise ChangelogValidationError(f"Unknown normalization mode: {mode}")

        identifiers = parse_identifier_columns(identifier_columns)
        self._check_columns(self.source.schema(table_name), identifiers, mode)

        changes = self.read_changes(table_name, start_snapshot_id, end_snapshot_id, start_timestamp, end_timestamp)
        raw_count = changes.num_rows
        if identifiers:
            changes = self.normalize(changes, identifiers, mode)

        name = view_name or self.default_view_name(table_name)
        self.backend.register(name, changes)
        logger.info("Generated %s from %s: %d raw rows, %d rows after %s normalization",
                    name, table_name, raw_count, changes.num_rows, mode if identifiers else "no")
        return name

    async def generate_async(self, table_name: str, **kwargs) -> str:
        """Run generate() in the default executor"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.generate, table_name, **kwargs))

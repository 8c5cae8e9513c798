"""
StreamingChangelogNormalizer - runs the ChangelogIterator over Arrow data.
"""
import logging
from typing import Iterable, Iterator, List, Optional, Sequence

import pyarrow as pa

from changelog_engine.streaming.changelog_iterator import ChangelogIterator
from changelog_engine.types.change_record import ChangeRecord, RecordSchema
from changelog_engine.util.arrow_utils import (
    ensure_arrow_table,
    records_from_batches,
    records_to_batch,
    records_to_arrow,
    sort_table,
)

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_TYPE_COLUMN = "_change_type"


class StreamingChangelogNormalizer:
    """
    Normalizes changelog rows that are already sorted by identifier columns
    and change type (DELETE before INSERT). Output keeps the input schema and
    the relative order of rows that are not paired.
    """

    def __init__(
        self,
        identifier_columns: Sequence[str],
        change_type_column: str = DEFAULT_CHANGE_TYPE_COLUMN,
        batch_size: int = 1000,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.identifier_columns = list(identifier_columns)
        self.change_type_column = change_type_column
        self.batch_size = batch_size

    def record_schema(self, schema: pa.Schema) -> RecordSchema:
        return RecordSchema.from_arrow(schema, self.change_type_column, self.identifier_columns)

    def normalize(self, table) -> pa.Table:
        """Normalize a whole table in one pass"""
        table = ensure_arrow_table(table)
        record_schema = self.record_schema(table.schema)
        rows = records_from_batches(table.to_batches(), record_schema.change_type_index)
        result = records_to_arrow(ChangelogIterator(rows, record_schema), table.schema)
        logger.debug("Streaming normalization: %d rows in, %d rows out", table.num_rows, result.num_rows)
        return result

    def normalize_batches(
        self,
        batches: Iterable[pa.RecordBatch],
        schema: pa.Schema,
    ) -> Iterator[pa.RecordBatch]:
        """
        Normalize a stream of record batches lazily.

        One iterator spans all input batches, so a DELETE/INSERT pair split
        across a batch boundary is still paired. Output batches hold at most
        batch_size rows. Column errors are raised here, before any batch is read.
        """
        record_schema = self.record_schema(schema)
        return self._iter_batches(batches, schema, record_schema)

    def _iter_batches(
        self,
        batches: Iterable[pa.RecordBatch],
        schema: pa.Schema,
        record_schema: RecordSchema,
    ) -> Iterator[pa.RecordBatch]:
        rows = records_from_batches(batches, record_schema.change_type_index)

        chunk: List[ChangeRecord] = []
        for record in ChangelogIterator(rows, record_schema):
            chunk.append(record)
            if len(chunk) >= self.batch_size:
                yield records_to_batch(chunk, schema)
                chunk = []

        if chunk:
            yield records_to_batch(chunk, schema)


def sort_for_streaming(
    table: pa.Table,
    identifier_columns: Sequence[str],
    change_type_column: str = DEFAULT_CHANGE_TYPE_COLUMN,
    ordinal_column: Optional[str] = None,
) -> pa.Table:
    """
    Order a changelog the way StreamingChangelogNormalizer expects it.

    Rows are sorted by identifier columns, then change ordinal (when present),
    then change type ascending, which puts DELETE before INSERT.
    """
    sort_keys = list(identifier_columns)
    if ordinal_column and ordinal_column in table.column_names:
        sort_keys.append(ordinal_column)
    sort_keys.append(change_type_column)
    return sort_table(table, sort_keys)

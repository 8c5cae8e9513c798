"""
Utilities for moving change records in and out of Arrow tables.
"""
from typing import Any, Iterable, Iterator, List, Optional, Sequence, Union

import pyarrow as pa

from changelog_engine.types.change_record import ChangeRecord


def ensure_arrow_table(data: Any, schema: Optional[pa.Schema] = None) -> pa.Table:
    """
    Ensure the input data is a PyArrow Table.

    Args:
        data: Input data (pa.Table, pa.RecordBatch, list of dicts, dict of lists)
        schema: Optional schema applied when building from Python objects

    Returns:
        pa.Table
    """
    if isinstance(data, pa.Table):
        return data

    if isinstance(data, pa.RecordBatch):
        return pa.Table.from_batches([data])

    if isinstance(data, list):
        if not data:
            return schema.empty_table() if schema is not None else pa.Table.from_pydict({})
        return pa.Table.from_pylist(data, schema=schema)

    if isinstance(data, dict):
        return pa.Table.from_pydict(data, schema=schema)

    raise ValueError(f"Could not convert {type(data)} to PyArrow Table")


def records_from_batches(
    batches: Iterable[pa.RecordBatch],
    change_type_index: int,
) -> Iterator[ChangeRecord]:
    """Yield one ChangeRecord per row, pulling batches lazily"""
    for batch in batches:
        columns = [column.to_pylist() for column in batch.columns]
        for values in zip(*columns):
            yield ChangeRecord(values=values, change_type_index=change_type_index)


def records_from_arrow(table: pa.Table, change_type_index: int) -> Iterator[ChangeRecord]:
    return records_from_batches(table.to_batches(), change_type_index)


def records_to_batch(records: Sequence[ChangeRecord], schema: pa.Schema) -> pa.RecordBatch:
    """Build a record batch with the given schema from change records"""
    if not records:
        return pa.RecordBatch.from_pylist([], schema=schema)
    columns = list(zip(*(record.values for record in records)))
    arrays = [pa.array(list(values), type=f.type) for values, f in zip(columns, schema)]
    return pa.RecordBatch.from_arrays(arrays, schema=schema)


def records_to_arrow(records: Iterable[ChangeRecord], schema: pa.Schema) -> pa.Table:
    records = list(records)
    if not records:
        return schema.empty_table()
    return pa.Table.from_batches([records_to_batch(records, schema)], schema=schema)


def sort_table(table: pa.Table, sort_keys: List[Union[str, tuple]]) -> pa.Table:
    """
    Sort an Arrow table ascending with nulls last.

    Args:
        table: The table to sort
        sort_keys: Column names or (name, "ascending"/"descending") tuples
    """
    pa_sort_keys = []

    for key in sort_keys:
        name, order = (key, "ascending") if isinstance(key, str) else key
        if name not in table.column_names:
            continue
        pa_sort_keys.append((name, order))

    if not pa_sort_keys:
        return table

    return table.sort_by(pa_sort_keys)

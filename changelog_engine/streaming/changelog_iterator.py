"""
ChangelogIterator - single-pass changelog classifier with one-record lookahead.

Input rows must be sorted by identifier columns, then by change type with
DELETE before INSERT for equal keys. The iterator does not sort.

It removes carry-over rows: unchanged rows that show up as a DELETE and an
INSERT because a copy-on-write rewrite copied them into a new data file. For
example, with rows (id=1, data='a') and (id=2, data='b') in one file, deleting
only id=2 rewrites the file and the changelog holds two DELETEs and one INSERT
for id=1. The id=1 pair is a carry-over and is dropped.

A DELETE followed by an INSERT of the same logical row that differs in some
column becomes an update pair:

    (id=1, data='a', DELETE)  ->  (id=1, data='a', UPDATE_BEFORE)
    (id=1, data='b', INSERT)  ->  (id=1, data='b', UPDATE_AFTER)
"""
from enum import Enum
from typing import Iterable, Iterator, Optional

from changelog_engine.types.change_record import (
    ChangeOperation,
    ChangeRecord,
    RecordSchema,
    is_carry_over,
    is_update_or_carry_over,
)


class BufferState(Enum):
    """What the one-record lookahead buffer currently holds"""
    EMPTY = "empty"
    LOOKAHEAD = "lookahead"  # raw record read ahead of the current one
    PENDING_UPDATE = "pending_update"  # UPDATE_AFTER record waiting to be emitted


class _PeekableRows:
    """Upstream adapter answering 'is there another row' without consuming it"""

    _EXHAUSTED = object()

    def __init__(self, rows: Iterable[ChangeRecord]):
        self._rows = iter(rows)
        self._peeked = None
        self._has_peeked = False

    def has_next(self) -> bool:
        if not self._has_peeked:
            self._peeked = next(self._rows, self._EXHAUSTED)
            self._has_peeked = True
        return self._peeked is not self._EXHAUSTED

    def next(self) -> ChangeRecord:
        if not self.has_next():
            raise RuntimeError("No change record available; check has_next() before step()")
        row = self._peeked
        self._peeked = None
        self._has_peeked = False
        return row


class ChangelogIterator:
    """
    Pull-based changelog normalizer.

    Each call to step() produces at most one output record. A step that
    consumed a carry-over pair returns None. Iterating the object drives
    step() and skips those None results.
    """

    def __init__(self, rows: Iterable[ChangeRecord], schema: RecordSchema):
        self._rows = _PeekableRows(rows)
        self._identifier_indices = schema.identifier_indices
        self._state = BufferState.EMPTY
        self._buffered: Optional[ChangeRecord] = None

    @property
    def buffer_state(self) -> BufferState:
        return self._state

    @property
    def buffered_record(self) -> Optional[ChangeRecord]:
        return self._buffered

    def has_next(self) -> bool:
        return self._state is not BufferState.EMPTY or self._rows.has_next()

    def step(self) -> Optional[ChangeRecord]:
        if self._state is BufferState.PENDING_UPDATE:
            return self._take_buffer()

        current = self._take_buffer() if self._state is BufferState.LOOKAHEAD else self._rows.next()

        if not self._rows.has_next():
            return current

        following = self._rows.next()
        self._set_buffer(BufferState.LOOKAHEAD, following)

        if not is_update_or_carry_over(current, following, self._identifier_indices):
            return current

        if is_carry_over(current, following):
            self._take_buffer()
            return None

        self._set_buffer(BufferState.PENDING_UPDATE, following.with_operation(ChangeOperation.UPDATE_AFTER))
        return current.with_operation(ChangeOperation.UPDATE_BEFORE)

    def _take_buffer(self) -> ChangeRecord:
        record = self._buffered
        self._set_buffer(BufferState.EMPTY, None)
        return record

    def _set_buffer(self, state: BufferState, record: Optional[ChangeRecord]):
        self._state = state
        self._buffered = record

    def __iter__(self) -> Iterator[ChangeRecord]:
        return self

    def __next__(self) -> ChangeRecord:
        while self.has_next():
            record = self.step()
            if record is not None:
                return record
        raise StopIteration


def changelog_iterator(rows: Iterable[ChangeRecord], schema: RecordSchema) -> Iterator[ChangeRecord]:
    """Normalize sorted change records, dropping carry-over pairs"""
    return ChangelogIterator(rows, schema)

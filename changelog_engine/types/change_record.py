"""
Types for change records flowing through the normalizers.

A change record is a fixed-arity tuple of column values plus one designated
column (the change type) holding a ChangeOperation name.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

from changelog_engine.exceptions import ChangelogConfigurationError


class ChangeOperation(str, Enum):
    """Operation tags. Values equal the names stored in the change type column."""
    INSERT = "INSERT"
    DELETE = "DELETE"
    UPDATE_BEFORE = "UPDATE_BEFORE"
    UPDATE_AFTER = "UPDATE_AFTER"
    UPDATE_PREIMAGE = "UPDATE_PREIMAGE"
    UPDATE_POSTIMAGE = "UPDATE_POSTIMAGE"


INPUT_OPERATIONS = frozenset({ChangeOperation.INSERT, ChangeOperation.DELETE})
STREAMING_OPERATIONS = INPUT_OPERATIONS | {ChangeOperation.UPDATE_BEFORE, ChangeOperation.UPDATE_AFTER}
BATCH_OPERATIONS = INPUT_OPERATIONS | {ChangeOperation.UPDATE_PREIMAGE, ChangeOperation.UPDATE_POSTIMAGE}


def resolve_column(columns: Sequence[str], name: str, role: str = "Identifier") -> int:
    """Return the position of a column, or raise a configuration error naming it"""
    try:
        return list(columns).index(name)
    except ValueError:
        raise ChangelogConfigurationError(
            f"{role} column '{name}' does not exist in the table"
        ) from None


@dataclass(frozen=True)
class RecordSchema:
    """Column layout shared by every record of one changelog"""
    columns: Tuple[str, ...]
    change_type_index: int
    identifier_indices: Tuple[int, ...] = field(default_factory=tuple)

    @staticmethod
    def from_columns(
        columns: Sequence[str],
        change_type_column: str,
        identifier_columns: Iterable[str] = (),
    ) -> 'RecordSchema':
        columns = tuple(columns)
        change_type_index = resolve_column(columns, change_type_column, role="Change type")
        identifier_indices = tuple(resolve_column(columns, name) for name in identifier_columns)
        return RecordSchema(
            columns=columns,
            change_type_index=change_type_index,
            identifier_indices=identifier_indices,
        )

    @staticmethod
    def from_arrow(schema, change_type_column: str, identifier_columns: Iterable[str] = ()) -> 'RecordSchema':
        return RecordSchema.from_columns(schema.names, change_type_column, identifier_columns)

    @property
    def change_type_column(self) -> str:
        return self.columns[self.change_type_index]

    @property
    def identifier_columns(self) -> Tuple[str, ...]:
        return tuple(self.columns[i] for i in self.identifier_indices)


@dataclass(frozen=True)
class ChangeRecord:
    """One row of a changelog"""
    values: Tuple[Any, ...]
    change_type_index: int

    @property
    def operation(self) -> ChangeOperation:
        return ChangeOperation(self.values[self.change_type_index])

    def with_operation(self, operation: ChangeOperation) -> 'ChangeRecord':
        """Return a copy of this record with only the change type replaced"""
        values = list(self.values)
        values[self.change_type_index] = operation.value
        return ChangeRecord(values=tuple(values), change_type_index=self.change_type_index)

    def __len__(self) -> int:
        return len(self.values)


def values_equal(left: Any, right: Any) -> bool:
    """Null-aware equality: both null, or both non-null and equal. NaN equals NaN."""
    if left is None and right is None:
        return True
    if left is not None and right is not None:
        if isinstance(left, float) and isinstance(right, float) and math.isnan(left):
            return math.isnan(right)
        return left == right
    return False


def same_logical_row(current: ChangeRecord, following: ChangeRecord, identifier_indices: Sequence[int]) -> bool:
    """
    Check whether two records carry the same identifier key.

    Without identifier columns every row is its own identity, so nothing
    is ever considered the same logical row.
    """
    if not identifier_indices:
        return False
    return all(values_equal(current.values[i], following.values[i]) for i in identifier_indices)


def is_carry_over(current: ChangeRecord, following: ChangeRecord) -> bool:
    """True when both records are equal in every column except the change type"""
    if len(current) != len(following):
        return False
    skip = current.change_type_index
    return all(
        values_equal(current.values[i], following.values[i])
        for i in range(len(current))
        if i != skip
    )


def is_update_or_carry_over(
    current: ChangeRecord,
    following: Optional[ChangeRecord],
    identifier_indices: Sequence[int],
) -> bool:
    """A DELETE immediately followed by an INSERT of the same logical row"""
    if following is None:
        return False
    return (
        same_logical_row(current, following, identifier_indices)
        and current.operation == ChangeOperation.DELETE
        and following.operation == ChangeOperation.INSERT
    )

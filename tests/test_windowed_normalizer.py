"""
Test suite for the windowed (batch) changelog normalizer
"""
import pytest
import ibis
import pyarrow as pa
from changelog_engine.batch.windowed_normalizer import (
    WindowedChangelogNormalizer,
    helper_column_name,
    remove_carry_overs,
)
from changelog_engine.exceptions import ChangelogConfigurationError


SCHEMA = pa.schema([
    ("id", pa.int64()),
    ("data", pa.string()),
    ("_change_type", pa.string()),
    ("_change_ordinal", pa.int64()),
])


def changes(*rows):
    return pa.Table.from_pylist(
        [{"id": i, "data": d, "_change_type": t, "_change_ordinal": o} for i, d, t, o in rows],
        schema=SCHEMA,
    )


def as_sorted_tuples(table: pa.Table):
    rows = [(r["id"], r["data"], r["_change_type"], r["_change_ordinal"]) for r in table.to_pylist()]
    return sorted(rows, key=lambda r: tuple((v is None, v) for v in r))


@pytest.fixture
def con():
    """In-memory DuckDB connection"""
    return ibis.duckdb.connect()


@pytest.fixture
def normalizer(con):
    return WindowedChangelogNormalizer(["id"], con=con)


def test_update_pair_becomes_pre_and_post_image(normalizer):
    """Scenario C"""
    table = changes(
        (1, "a", "DELETE", 5),
        (1, "b", "INSERT", 5),
    )

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == [
        (1, "a", "UPDATE_PREIMAGE", 5),
        (1, "b", "UPDATE_POSTIMAGE", 5),
    ]


def test_partition_with_three_rows_passes_through(normalizer):
    """Scenario D: more than two rows for one key and ordinal are left alone"""
    table = changes(
        (1, "a", "DELETE", 5),
        (1, "b", "INSERT", 5),
        (1, "c", "INSERT", 5),
    )

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == as_sorted_tuples(table)


def test_carry_over_pair_is_removed(normalizer):
    table = changes(
        (1, "a", "DELETE", 0),
        (1, "a", "INSERT", 0),
        (2, "b", "DELETE", 0),
    )

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == [(2, "b", "DELETE", 0)]


def test_rows_from_different_ordinals_are_not_paired(normalizer):
    table = changes(
        (1, "a", "DELETE", 0),
        (1, "b", "INSERT", 1),
    )

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == as_sorted_tuples(table)


def test_input_order_does_not_matter(normalizer):
    table = changes(
        (2, "y", "INSERT", 0),
        (1, "b", "INSERT", 0),
        (3, "z", "DELETE", 0),
        (2, "x", "DELETE", 0),
        (1, "a", "DELETE", 0),
    )

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == [
        (1, "a", "UPDATE_PREIMAGE", 0),
        (1, "b", "UPDATE_POSTIMAGE", 0),
        (2, "x", "UPDATE_PREIMAGE", 0),
        (2, "y", "UPDATE_POSTIMAGE", 0),
        (3, "z", "DELETE", 0),
    ]


def test_null_identifiers_share_a_partition(normalizer):
    table = changes(
        (None, "a", "DELETE", 0),
        (None, "b", "INSERT", 0),
    )

    result = normalizer.normalize(table)

    assert sorted(result.column("_change_type").to_pylist()) == ["UPDATE_POSTIMAGE", "UPDATE_PREIMAGE"]


def test_output_keeps_input_columns(normalizer):
    result = normalizer.normalize(changes((1, "a", "DELETE", 0), (1, "b", "INSERT", 0)))

    assert result.column_names == SCHEMA.names


def test_accepts_ibis_table(con, normalizer):
    con.create_table("raw_changes", changes((1, "a", "DELETE", 0), (1, "b", "INSERT", 0)))

    expr = normalizer.build(con.table("raw_changes"))

    assert sorted(con.to_pyarrow(expr).column("_change_type").to_pylist()) == [
        "UPDATE_POSTIMAGE", "UPDATE_PREIMAGE",
    ]


def test_no_identifier_columns_returns_input(con):
    normalizer = WindowedChangelogNormalizer([], con=con)
    table = changes((1, "a", "DELETE", 0), (1, "a", "INSERT", 0))

    result = normalizer.normalize(table)

    assert as_sorted_tuples(result) == as_sorted_tuples(table)


def test_default_backend_is_used_without_connection():
    normalizer = WindowedChangelogNormalizer(["id"])

    result = normalizer.normalize(changes((1, "a", "DELETE", 0), (1, "b", "INSERT", 0)))

    assert result.num_rows == 2


def test_user_column_named_like_helper_column(con):
    """Input columns never collide with the temporary window columns"""
    table = changes((1, "a", "DELETE", 0), (1, "b", "INSERT", 0)).append_column(
        "__changelog_rank", pa.array([7, 7], type=pa.int64())
    )

    result = WindowedChangelogNormalizer(["id"], con=con).normalize(table)

    assert result.column("__changelog_rank").to_pylist() == [7, 7]
    assert sorted(result.column("_change_type").to_pylist()) == ["UPDATE_POSTIMAGE", "UPDATE_PREIMAGE"]


class TestConfigurationErrors:
    """Missing columns fail before any expression is built"""

    def test_missing_identifier_column(self, normalizer):
        table = changes((1, "a", "DELETE", 0)).drop_columns(["id"])

        with pytest.raises(ChangelogConfigurationError, match="Identifier column 'id' does not exist"):
            normalizer.build(table)

    def test_missing_ordinal_column(self, normalizer):
        table = changes((1, "a", "DELETE", 0)).drop_columns(["_change_ordinal"])

        with pytest.raises(ChangelogConfigurationError, match="_change_ordinal"):
            normalizer.build(table)

    def test_unsupported_input_type(self, normalizer):
        with pytest.raises(ValueError):
            normalizer.build([{"id": 1}])


def test_ambiguous_partitions(con, normalizer):
    table = changes(
        (1, "a", "DELETE", 5),
        (1, "b", "INSERT", 5),
        (1, "c", "INSERT", 5),
        (2, "d", "DELETE", 5),
    )

    result = con.to_pyarrow(normalizer.ambiguous_partitions(table))

    assert result.to_pylist() == [{"id": 1, "_change_ordinal": 5, "row_count": 3}]


def test_remove_carry_overs_keeps_distinct_images(con):
    table = changes(
        (1, "a", "UPDATE_PREIMAGE", 0),
        (1, "a", "UPDATE_POSTIMAGE", 0),
        (2, "a", "UPDATE_PREIMAGE", 0),
        (2, "b", "UPDATE_POSTIMAGE", 0),
    )

    result = con.to_pyarrow(remove_carry_overs(ibis.memtable(table)))

    assert as_sorted_tuples(result) == [
        (2, "a", "UPDATE_PREIMAGE", 0),
        (2, "b", "UPDATE_POSTIMAGE", 0),
    ]


def test_helper_column_name():
    assert helper_column_name("rank", ["id"]) == "__changelog_rank"
    assert helper_column_name("rank", ["__changelog_rank"]) == "__changelog_rank_1"
    assert helper_column_name("rank", ["__changelog_rank", "__changelog_rank_1"]) == "__changelog_rank_2"

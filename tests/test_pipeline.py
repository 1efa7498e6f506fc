from __future__ import annotations

import pytest

from sheetview.data import Table, cell_text
from sheetview.filters import SortSpec, ViewState, clear_filters
from sheetview.pipeline import (
    aggregate_column,
    aggregate_columns,
    collation_key,
    filter_rows,
    page_count,
    paginate,
    run_view,
    sort_rows,
)


def _column(rows, idx=0):
    return [r[idx] for r in rows]


# ---------------- Filter ----------------
def test_search_is_case_insensitive_and_keeps_order(invoices: Table) -> None:
    rows = filter_rows(invoices, "MAD", {})
    assert _column(rows) == ["Ana", "Beatriz"]


def test_empty_search_keeps_every_row(invoices: Table) -> None:
    assert filter_rows(invoices, "", {}) == invoices.rows


def test_search_matches_number_cells(invoices: Table) -> None:
    assert _column(filter_rows(invoices, "2", {})) == ["luis"]


def test_search_partitions_rows(invoices: Table) -> None:
    for term in ["a", "Á", "1", "sev", "zzz", "true"]:
        kept = filter_rows(invoices, term, {})
        for row in kept:
            assert any(term.lower() in cell_text(c).lower() for c in row)
        for row in invoices.rows:
            if row not in kept:
                assert not any(term.lower() in cell_text(c).lower() for c in row)


def test_column_filter(invoices: Table) -> None:
    rows = filter_rows(invoices, "", {"Ciudad": "MAD"})
    assert _column(rows) == ["Ana", "Beatriz"]


def test_unknown_or_empty_column_filter_is_ignored(invoices: Table) -> None:
    assert filter_rows(invoices, "", {"Unknown": "x"}) == invoices.rows
    assert filter_rows(invoices, "", {"Ciudad": ""}) == invoices.rows


def test_absent_cell_does_not_match_non_empty_filter(invoices: Table) -> None:
    assert "Álvaro" not in _column(filter_rows(invoices, "", {"Ciudad": "a"}))


def test_search_and_column_filters_are_combined(invoices: Table) -> None:
    rows = filter_rows(invoices, "a", {"Ciudad": "sev"})
    assert _column(rows) == ["luis"]


def test_filter_tolerates_ragged_rows() -> None:
    table = Table(headers=["a", "b"], rows=[["x"], ["y", "m", "extra"], ["z", "m"]])
    assert filter_rows(table, "", {"b": "m"}) == [["y", "m", "extra"], ["z", "m"]]
    assert filter_rows(table, "extra", {}) == [["y", "m", "extra"]]


# ---------------- Sort ----------------
def test_sort_is_numeric_aware() -> None:
    rows = [["10"], ["2"], ["1"]]
    assert sort_rows(rows, ["n"], SortSpec("n", "asc")) == [["1"], ["2"], ["10"]]
    assert sort_rows(rows, ["n"], SortSpec("n", "desc")) == [["10"], ["2"], ["1"]]


def test_sort_handles_number_cells() -> None:
    rows = [[10], [2.0], [1]]
    assert sort_rows(rows, ["n"], SortSpec("n")) == [[1], [2.0], [10]]


def test_sort_is_stable_in_both_directions() -> None:
    rows = [["b", 1], ["a", 2], ["b", 3], ["a", 4]]
    asc = sort_rows(rows, ["k", "i"], SortSpec("k", "asc"))
    desc = sort_rows(rows, ["k", "i"], SortSpec("k", "desc"))
    assert _column(asc, 1) == [2, 4, 1, 3]
    assert _column(desc, 1) == [1, 3, 2, 4]


def test_sort_ignores_case_and_accents() -> None:
    rows = [["beta"], ["Álvaro"], ["alba"]]
    assert _column(sort_rows(rows, ["n"], SortSpec("n"))) == ["alba", "Álvaro", "beta"]


def test_sort_places_enye_after_n() -> None:
    rows = [["o"], ["ña"], ["nz"]]
    assert _column(sort_rows(rows, ["n"], SortSpec("n"))) == ["nz", "ña", "o"]


def test_absent_cells_sort_as_empty_text() -> None:
    rows = [["a"], [None], [""]]
    assert _column(sort_rows(rows, ["n"], SortSpec("n"))) == [None, "", "a"]


def test_sort_without_key_or_with_unknown_key_is_identity(invoices: Table) -> None:
    assert sort_rows(invoices.rows, invoices.headers, SortSpec()) == invoices.rows
    assert sort_rows(invoices.rows, invoices.headers, SortSpec("Nope", "desc")) == invoices.rows
    assert sort_rows(invoices.rows, invoices.headers, None) == invoices.rows


def test_sort_does_not_mutate_input() -> None:
    rows = [["b"], ["a"]]
    snapshot = [list(r) for r in rows]
    out = sort_rows(rows, ["n"], SortSpec("n"))
    assert rows == snapshot
    assert out is not rows


def test_collation_key_orders_digits_before_letters() -> None:
    assert collation_key("9") < collation_key("a")
    assert collation_key("a2") < collation_key("a10")
    assert collation_key("a") < collation_key("a1")


# ---------------- Aggregate ----------------
def test_aggregate_excludes_non_numeric_values() -> None:
    agg = aggregate_column(["3", "abc", "", "5.5"])
    assert agg is not None
    assert agg.count == 2
    assert agg.sum == 8.5
    assert agg.average == 4.25


def test_aggregate_of_non_numeric_column_is_absent() -> None:
    assert aggregate_column(["abc", "", None, True]) is None


def test_aggregate_accepts_numbers_and_padded_text() -> None:
    agg = aggregate_column([1, 2.5, " 4 ", "1e1", "12abc", False])
    assert agg is not None
    assert agg.count == 4
    assert agg.sum == 17.5


def test_aggregate_rounds_half_away_from_zero() -> None:
    pos = aggregate_column(["0.125", "0"])
    neg = aggregate_column(["-0.125"])
    assert pos.sum == 0.13
    assert pos.average == 0.06
    assert neg.sum == -0.13
    assert neg.average == -0.13


def test_aggregate_handles_very_large_numbers() -> None:
    agg = aggregate_column([1e30, "2"])
    assert agg.count == 2
    assert agg.sum == 1e30
    assert agg.average == 5e29

    digits = "123456789012345678901234567890"
    agg = aggregate_column([digits, digits])
    assert agg.sum == float(int(digits) * 2)
    assert agg.average == float(digits)


def test_aggregate_skips_numbers_beyond_float_range() -> None:
    agg = aggregate_column(["1e9999999", "3", "-1e400"])
    assert agg.count == 1
    assert agg.sum == 3.0


def test_run_view_with_huge_cell() -> None:
    result = run_view(Table(headers=["n"], rows=[[1e27], ["1"]]), ViewState())
    assert result.total_rows == 2
    assert result.aggregates[0].count == 2
    assert result.aggregates[0].sum == 1e27


def test_aggregate_columns_align_with_headers() -> None:
    aggs = aggregate_columns([["1"], ["2", "x", "9"]], ["a", "b"])
    assert len(aggs) == 2
    assert aggs[0].count == 2 and aggs[0].sum == 3.0
    assert aggs[1] is None


# ---------------- Page ----------------
def test_paginate_totals() -> None:
    rows = [[i] for i in range(23)]
    first, total = paginate(rows, 10, 1)
    third, _ = paginate(rows, 10, 3)
    fourth, total_after = paginate(rows, 10, 4)
    assert total == 3 and total_after == 3
    assert first == [[i] for i in range(10)]
    assert third == [[20], [21], [22]]
    assert fourth == []


def test_paginate_empty_and_invalid_pages() -> None:
    assert paginate([], 10, 1) == ([], 0)
    assert paginate([[1], [2]], 10, 0) == ([], 1)
    assert paginate([[1], [2]], 10, -2) == ([], 1)


def test_page_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        page_count(5, 0)
    with pytest.raises(ValueError):
        paginate([[1]], 0, 1)


# ---------------- Composition ----------------
def _numbers_table() -> Table:
    return Table(headers=["n", "label"], rows=[[str(i), f"row {i}"] for i in range(1, 24)])


def test_run_view_aggregates_the_filtered_set_not_the_page() -> None:
    table = _numbers_table()
    result = run_view(table, ViewState(search="1", page_size=5))
    expected = [1] + list(range(10, 20)) + [21]
    assert result.total_rows == len(expected)
    assert result.aggregates[0].count == len(expected)
    assert result.aggregates[0].sum == float(sum(expected))
    assert result.aggregates[1] is None
    assert len(result.rows) == 5
    assert len(result.all_rows) == len(expected)


def test_run_view_sorts_before_paging() -> None:
    table = _numbers_table()
    result = run_view(table, ViewState(sort=SortSpec("n", "desc"), page_size=5, page=2))
    assert _column(result.rows) == ["18", "17", "16", "15", "14"]
    assert result.total_pages == 5


def test_run_view_clamps_page() -> None:
    table = _numbers_table()
    result = run_view(table, ViewState(page_size=10, page=99))
    assert result.page == 3
    assert result.state.page == 3
    assert len(result.rows) == 3


def test_run_view_empty_result() -> None:
    result = run_view(_numbers_table(), ViewState(search="nothing matches"))
    assert result.rows == []
    assert result.total_pages == 0
    assert result.page == 1
    assert result.aggregates == [None, None]


def test_clear_filters_on_default_state_is_a_no_op(invoices: Table) -> None:
    state = ViewState()
    assert run_view(invoices, clear_filters(state)).to_dict() == run_view(invoices, state).to_dict()

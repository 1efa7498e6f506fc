"""Query pipeline over a loaded Table: filter -> sort -> aggregate -> page.

Every stage is a pure function of its inputs. Rows are read through
``cell_at`` so rows shorter or longer than the headers never raise, and
unknown column names in filters or sorts are ignored.
"""

from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import asdict, dataclass, field, replace
from decimal import Decimal, localcontext
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sheetview.data import Cell, Table, cell_at, cell_text, column_index, parse_number, round_half_up
from sheetview.filters import SortSpec, ViewState, clamp_page


Row = List[Cell]

_DIGITS_RE = re.compile(r"(\d+)")
# Spanish collation puts "ñ" after every other "n" sequence.
_ENYE_SUFFIX = "\U0010ffff"


@dataclass(frozen=True)
class ColumnAggregate:
    sum: float
    average: float
    count: int


@dataclass(frozen=True)
class ViewResult:
    headers: List[str]
    rows: List[Row]
    total_rows: int
    total_pages: int
    page: int
    aggregates: List[Optional[ColumnAggregate]]
    state: ViewState
    all_rows: List[Row] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "rows": self.rows,
            "total_rows": self.total_rows,
            "total_pages": self.total_pages,
            "page": self.page,
            "aggregates": [asdict(a) if a is not None else None for a in self.aggregates],
            "state": asdict(self.state),
        }


# ---------------- Filter ----------------
def _row_matches_search(row: Sequence[Cell], term: str) -> bool:
    return any(term in cell_text(cell).lower() for cell in row)


def filter_rows(table: Table, search: str, column_filters: Mapping[str, str]) -> List[Row]:
    term = (search or "").lower()
    active: List[Tuple[int, str]] = []
    for col, value in (column_filters or {}).items():
        if not value:
            continue
        idx = column_index(table.headers, col)
        if idx is None:
            continue
        active.append((idx, str(value).lower()))

    out: List[Row] = []
    for row in table.rows:
        if term and not _row_matches_search(row, term):
            continue
        if all(value in cell_text(cell_at(row, idx)).lower() for idx, value in active):
            out.append(row)
    return out


# ---------------- Sort ----------------
def _fold(text: str) -> str:
    text = text.casefold().replace("ñ", "n" + _ENYE_SUFFIX)
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def collation_key(value: Cell) -> Tuple[Tuple[Tuple[int, int, str], ...], str]:
    """Numeric-aware, case- and accent-insensitive key; lower case wins ties."""
    text = unicodedata.normalize("NFC", cell_text(value))
    parts = []
    for i, chunk in enumerate(_DIGITS_RE.split(text)):
        if not chunk:
            continue
        if i % 2:
            parts.append((0, int(chunk), ""))
        else:
            parts.append((1, 0, _fold(chunk)))
    return tuple(parts), text.swapcase()


def sort_rows(rows: Sequence[Row], headers: Sequence[str], sort: Optional[SortSpec]) -> List[Row]:
    if sort is None or not sort.key:
        return list(rows)
    idx = column_index(headers, sort.key)
    if idx is None:
        return list(rows)
    # sorted() is stable, and stays stable with reverse=True.
    return sorted(rows, key=lambda r: collation_key(cell_at(r, idx)), reverse=sort.direction == "desc")


# ---------------- Aggregate ----------------
def aggregate_column(values: Sequence[Cell]) -> Optional[ColumnAggregate]:
    numbers = [n for n in (parse_number(v) for v in values) if n is not None]
    if not numbers:
        return None
    count = len(numbers)
    with localcontext() as ctx:
        # Precision covers the largest integer part plus carry digits.
        ctx.prec = max(28, max(n.adjusted() for n in numbers) + len(str(count)) + 4)
        total = sum(numbers, Decimal(0))
        average = total / count
    return ColumnAggregate(
        sum=round_half_up(total, 2),
        average=round_half_up(average, 2),
        count=count,
    )


def aggregate_columns(rows: Sequence[Row], headers: Sequence[str]) -> List[Optional[ColumnAggregate]]:
    return [aggregate_column([cell_at(r, idx) for r in rows]) for idx in range(len(headers))]


# ---------------- Page ----------------
def page_count(total_rows: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return math.ceil(total_rows / page_size) if total_rows > 0 else 0


def paginate(rows: Sequence[Row], page_size: int, page: int) -> Tuple[List[Row], int]:
    total_pages = page_count(len(rows), page_size)
    if page < 1:
        return [], total_pages
    start = (page - 1) * page_size
    return list(rows[start:start + page_size]), total_pages


# ---------------- Composition ----------------
def run_view(table: Table, state: ViewState) -> ViewResult:
    filtered = filter_rows(table, state.search, state.column_filters)
    ordered = sort_rows(filtered, table.headers, state.sort)
    aggregates = aggregate_columns(filtered, table.headers)

    total_pages = page_count(len(ordered), state.page_size)
    page = clamp_page(state.page, total_pages)
    page_rows, _ = paginate(ordered, state.page_size, page)

    return ViewResult(
        headers=list(table.headers),
        rows=page_rows,
        total_rows=len(ordered),
        total_pages=total_pages,
        page=page,
        aggregates=aggregates,
        state=replace(state, page=page),
        all_rows=ordered,
    )

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple


PAGE_SIZE_OPTIONS: Tuple[int, ...] = (5, 10, 25, 50)
DEFAULT_PAGE_SIZE = 10
SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class SortSpec:
    key: Optional[str] = None
    direction: str = "asc"


@dataclass(frozen=True)
class ViewState:
    search: str = ""
    column_filters: Dict[str, str] = field(default_factory=dict)
    sort: SortSpec = field(default_factory=SortSpec)
    page_size: int = DEFAULT_PAGE_SIZE
    page: int = 1


def _as_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except Exception:
        return default


def _as_column_filters(raw: object) -> Dict[str, str]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, str] = {}
    for col, value in raw.items():
        if col is None or value is None:
            continue
        text = str(value)
        if text:
            out[str(col)] = text
    return out


def normalize_view_state(raw: Optional[dict], *, default_page_size: int = DEFAULT_PAGE_SIZE) -> ViewState:
    raw = raw or {}
    if default_page_size not in PAGE_SIZE_OPTIONS:
        default_page_size = DEFAULT_PAGE_SIZE

    search = str(raw.get("search") or "")
    column_filters = _as_column_filters(raw.get("column_filters"))

    s = raw.get("sort") or {}
    key = s.get("key") if isinstance(s, dict) else None
    direction = str(s.get("direction", "asc")).lower() if isinstance(s, dict) else "asc"
    if direction not in SORT_DIRECTIONS:
        direction = "asc"
    sort = SortSpec(key=str(key) if key not in (None, "") else None, direction=direction)

    page_size = _as_int(raw.get("page_size") or default_page_size, default_page_size)
    if page_size not in PAGE_SIZE_OPTIONS:
        page_size = default_page_size

    page = max(1, _as_int(raw.get("page", 1), 1))

    return ViewState(
        search=search,
        column_filters=column_filters,
        sort=sort,
        page_size=page_size,
        page=page,
    )


# ---------------- Transitions ----------------
# Every change to what is shown sends the user back to the first page.
def set_search(state: ViewState, term: str) -> ViewState:
    return replace(state, search=term or "", page=1)


def set_column_filter(state: ViewState, column: str, value: str) -> ViewState:
    filters = dict(state.column_filters)
    if value:
        filters[column] = value
    else:
        filters.pop(column, None)
    return replace(state, column_filters=filters, page=1)


def toggle_sort(state: ViewState, column: str) -> ViewState:
    if state.sort.key == column and state.sort.direction == "asc":
        direction = "desc"
    else:
        direction = "asc"
    return replace(state, sort=SortSpec(key=column, direction=direction), page=1)


def set_page_size(state: ViewState, page_size: int) -> ViewState:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return replace(state, page_size=page_size, page=1)


def clamp_page(page: int, total_pages: int) -> int:
    return max(1, min(page, max(total_pages, 1)))


def set_page(state: ViewState, page: int, total_pages: int) -> ViewState:
    return replace(state, page=clamp_page(page, total_pages))


def clear_filters(state: ViewState) -> ViewState:
    """Reset search, column filters and sort; the page size is kept."""
    return replace(state, search="", column_filters={}, sort=SortSpec(), page=1)


def has_active_filters(state: ViewState) -> bool:
    return bool(state.search) or any(v for v in state.column_filters.values())


def filterable_columns(headers: Sequence[str]) -> List[Tuple[int, str]]:
    """(index, header) pairs that get a filter input; a repeated header filters its first column only."""
    seen = set()
    out: List[Tuple[int, str]] = []
    for idx, header in enumerate(headers):
        if header in seen:
            continue
        seen.add(header)
        out.append((idx, header))
    return out

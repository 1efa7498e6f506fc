import pandas as pd
import streamlit as st
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from sheetview.config import load_config, setup_logging
from sheetview.data import Table, TableLoadError, list_sheets, load_table
from sheetview.export import export_bytes, export_filename, to_frame
from sheetview.filters import (
    PAGE_SIZE_OPTIONS,
    ViewState,
    clear_filters,
    filterable_columns,
    has_active_filters,
    normalize_view_state,
    set_column_filter,
    set_page,
    set_page_size,
    set_search,
    toggle_sort,
)
from sheetview.pipeline import ViewResult, run_view
from sheetview.storage import TableStore, open_store

config = load_config()
setup_logging(config.log_level)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_sv_css_injected"):
        return
    st.markdown(
        """
        <style>
        .sv-header {padding: 4px 0;border-bottom: 1px solid #e5e7eb;margin-bottom: 8px;}
        .sv-header .sv-trail {color: #6b7280;font-size: 0.85rem;}
        .sv-header .sv-title {font-size: 1.3rem;font-weight: 700;color: #111827;}
        .sv-panel {border: 1px solid #e5e7eb;border-radius: 10px;padding: 12px 16px;margin-bottom: 12px;}
        .sv-panel-head {display: flex;justify-content: space-between;align-items: baseline;}
        .sv-panel-title {font-weight: 600;color: #111827;}
        .sv-panel-note {font-size: 0.85rem;color: #6b7280;}
        .sv-chips {display: flex;flex-wrap: wrap;gap: 6px;margin: 4px 0 10px;}
        .sv-chip {background: #eef2ff;border-radius: 12px;padding: 2px 10px;font-size: 0.8rem;color: #3730a3;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_sv_css_injected"] = True


@contextmanager
def panel(title: str, note: str = ""):
    """Bordered section with a title and a right-aligned note (row counts and the like)."""
    holder = st.container()
    holder.markdown(
        f"<div class='sv-panel'><div class='sv-panel-head'>"
        f"<span class='sv-panel-title'>{title}</span><span class='sv-panel-note'>{note}</span></div>",
        unsafe_allow_html=True,
    )
    body = holder.container()
    with body:
        yield body
    holder.markdown("</div>", unsafe_allow_html=True)


def format_filter_summary(state: ViewState) -> str:
    chips = [f"Search: {state.search}" if state.search else "Search: none"]
    active = [f"{col} ~ {val}" for col, val in state.column_filters.items() if val]
    chips.append(f"Column filters: {', '.join(active)}" if active else "Column filters: none")
    if state.sort.key:
        chips.append(f"Sort: {state.sort.key} {'▲' if state.sort.direction == 'asc' else '▼'}")
    else:
        chips.append("Sort: none")
    return "<div class='sv-chips'>" + "".join(f"<span class='sv-chip'>{c}</span>" for c in chips) + "</div>"


def render_page_header(title: str, trail: str):
    inject_base_styles()
    st.markdown(
        f"<div class='sv-header'><div class='sv-trail'>{trail}</div><div class='sv-title'>{title}</div></div>",
        unsafe_allow_html=True,
    )


# ---------- State helpers ----------
@st.cache_resource
def get_store() -> TableStore:
    return open_store(config.db_path)


def _view_state() -> ViewState:
    if "view_state" not in st.session_state:
        st.session_state["view_state"] = normalize_view_state({}, default_page_size=config.default_page_size)
    return st.session_state["view_state"]


def _reset_filter_widgets():
    st.session_state["search_input"] = ""
    st.session_state["sort_column"] = ""
    for key in [k for k in st.session_state.keys() if str(k).startswith("filter_")]:
        st.session_state[key] = ""


def _reset_view():
    """A new table always starts from the default view, keeping the page size."""
    page_size = _view_state().page_size
    st.session_state["view_state"] = clear_filters(ViewState(page_size=page_size))
    _reset_filter_widgets()


def _set_table(table: Table, file_name: str, sheet_name: str, sheet_names: List[str], source: Optional[bytes]):
    st.session_state["table"] = table
    st.session_state["file_name"] = file_name
    st.session_state["sheet_name"] = sheet_name
    st.session_state["sheet_names"] = sheet_names
    st.session_state["source_bytes"] = source
    st.session_state.pop("load_error", None)
    for key in [k for k in st.session_state.keys() if str(k).startswith("filter_")]:
        del st.session_state[key]
    _reset_view()


def _on_clear_filters():
    st.session_state["view_state"] = clear_filters(_view_state())
    _reset_filter_widgets()


def _on_toggle_sort():
    column = st.session_state.get("sort_column")
    if column:
        st.session_state["view_state"] = toggle_sort(_view_state(), column)


def _on_page(delta: int, total_pages: int):
    state = _view_state()
    st.session_state["view_state"] = set_page(state, state.page + delta, total_pages)


def _on_sheet_change():
    source = st.session_state.get("source_bytes")
    sheet_name = st.session_state.get("sheet_select")
    if source is None or not sheet_name:
        return
    file_name = st.session_state.get("file_name", "")
    try:
        table = load_table(source, sheet_name, file_name)
    except TableLoadError as exc:
        st.session_state["load_error"] = str(exc)
        return
    _set_table(table, file_name, sheet_name, st.session_state.get("sheet_names", []), source)


def _handle_upload(uploaded) -> None:
    upload_key = (uploaded.name, uploaded.size)
    if st.session_state.get("upload_key") == upload_key:
        return
    st.session_state["upload_key"] = upload_key
    source = uploaded.getvalue()
    try:
        sheets = list_sheets(source, uploaded.name)
        table = load_table(source, sheets[0], uploaded.name)
    except TableLoadError as exc:
        st.session_state["load_error"] = str(exc)
        return
    st.session_state["sheet_select"] = sheets[0]
    _set_table(table, uploaded.name, sheets[0], sheets, source)


# ---------- Viewer ----------
def render_controls(table: Table, state: ViewState) -> ViewState:
    c1, c2, c3 = st.columns([6, 3, 2])
    with c1:
        search = st.text_input("Search all data", key="search_input", placeholder="Search...")
        if search != state.search:
            state = set_search(state, search)
    with c2:
        sort_options = [""] + [h for h in dict.fromkeys(table.headers) if h]
        st.selectbox("Sort by", sort_options, key="sort_column", format_func=lambda c: c or "(none)")
        arrow = ""
        if state.sort.key:
            arrow = " ▲" if state.sort.direction == "asc" else " ▼"
        st.button(f"Sort{arrow}", on_click=_on_toggle_sort, use_container_width=True)
    with c3:
        page_size = st.selectbox(
            "Rows per page",
            PAGE_SIZE_OPTIONS,
            index=PAGE_SIZE_OPTIONS.index(state.page_size) if state.page_size in PAGE_SIZE_OPTIONS else 1,
            format_func=lambda n: f"{n} per page",
        )
        if page_size != state.page_size:
            state = set_page_size(state, page_size)

    with st.expander("Column filters", expanded=bool(state.column_filters)):
        filterable = filterable_columns(table.headers)
        cols = st.columns(min(4, max(1, len(filterable))))
        for pos, (idx, header) in enumerate(filterable):
            with cols[pos % len(cols)]:
                value = st.text_input(header or f"Column {idx + 1}", key=f"filter_{idx}", placeholder="Filter...")
            if value != state.column_filters.get(header, ""):
                state = set_column_filter(state, header, value)
    return state


def render_aggregates(result: ViewResult):
    records = []
    for header, agg in zip(result.headers, result.aggregates):
        if agg is None:
            continue
        records.append({"column": header, "sum": agg.sum, "average": agg.average, "count": agg.count})
    if not records:
        st.caption("No numeric columns in the current view.")
        return
    st.dataframe(pd.DataFrame(records), hide_index=True, use_container_width=True)


def render_save_form(table: Table):
    file_name = st.session_state.get("file_name", "")
    sheet_name = st.session_state.get("sheet_name", "")
    default_name = Path(file_name).stem if file_name else ""
    with st.form("save_table"):
        table_name = st.text_input("Table name", value=default_name)
        submitted = st.form_submit_button("Save to database")
    if submitted:
        if not table_name.strip():
            st.error("A table name is required.")
            return
        try:
            result = get_store().save(table_name.strip(), file_name or "upload", sheet_name or "Sheet1", table.headers, table.rows)
        except Exception as exc:
            st.error(f"Could not save table: {exc}")
            return
        st.success(f'Table "{table_name.strip()}" saved ({result.row_count} rows).')


def render_viewer_page():
    render_page_header("Viewer", "Home / Viewer")
    uploaded = st.file_uploader("Select a spreadsheet", type=["xlsx", "xlsm", "csv"])
    if uploaded is not None:
        _handle_upload(uploaded)
    if st.session_state.get("load_error"):
        st.error(f"Could not read file: {st.session_state['load_error']}")

    table: Optional[Table] = st.session_state.get("table")
    if table is None:
        st.info("Upload an Excel or CSV file, or open a saved table.")
        return

    file_name = st.session_state.get("file_name", "")
    sheet_names = st.session_state.get("sheet_names") or []
    if len(sheet_names) > 1:
        st.selectbox("Sheet", sheet_names, key="sheet_select", on_change=_on_sheet_change)
    st.caption(f"File: {file_name} | Sheet: {st.session_state.get('sheet_name', '')}")

    state = render_controls(table, _view_state())
    result = run_view(table, state)
    st.session_state["view_state"] = result.state

    st.markdown(format_filter_summary(result.state), unsafe_allow_html=True)

    with panel("Data", note=f"Showing {len(result.rows)} of {result.total_rows} rows"):
        st.dataframe(to_frame(result.headers, result.rows), hide_index=True, use_container_width=True)
        if result.total_pages > 1:
            p1, p2, p3 = st.columns([2, 3, 2])
            p1.button("← Previous", on_click=_on_page, args=(-1, result.total_pages), disabled=result.page <= 1)
            p2.markdown(f"Page {result.page} of {result.total_pages}")
            p3.button("Next →", on_click=_on_page, args=(1, result.total_pages), disabled=result.page >= result.total_pages)

    with panel("Column totals"):
        render_aggregates(result)

    a1, a2, a3 = st.columns(3)
    a1.download_button(
        "Export CSV",
        data=export_bytes(result.headers, result.all_rows, "csv"),
        file_name=export_filename(file_name, "csv"),
        mime="text/csv",
    )
    a2.download_button(
        "Export XLSX",
        data=export_bytes(result.headers, result.all_rows, "xlsx", st.session_state.get("sheet_name")),
        file_name=export_filename(file_name, "xlsx"),
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
    if has_active_filters(result.state):
        a3.button("Clear filters", on_click=_on_clear_filters)

    with panel("Save"):
        render_save_form(table)


# ---------- Saved tables ----------
def _open_saved(table_id: int):
    record = get_store().get_table(table_id)
    if record is None:
        st.session_state["load_error"] = "Table not found"
        return
    meta = record["table"]
    table = Table.from_records(meta["columns"], [r["data"] for r in record["rows"]])
    st.session_state.pop("upload_key", None)
    _set_table(table, meta["file_name"], meta["sheet_name"], [meta["sheet_name"]], None)
    st.session_state["nav"] = "Viewer"


def _delete_saved(table_id: int):
    if not get_store().delete_table(table_id):
        st.session_state["load_error"] = "Table not found"


def render_saved_tables_page():
    render_page_header("Saved tables", "Home / Saved tables")
    if st.button("Refresh"):
        st.rerun()
    try:
        tables = get_store().list_tables()
    except Exception as exc:
        st.error(f"Could not load saved tables: {exc}")
        return
    if not tables:
        st.info("No saved tables yet. Upload a file and save it to the database.")
        return
    for meta in tables:
        with panel(meta["table_name"], note=f"{meta['row_count']} rows"):
            st.markdown(
                f"**File:** {meta['file_name']}  \n**Sheet:** {meta['sheet_name']}  \n"
                f"**Columns:** {len(meta['columns'])}  \n**Created:** {meta['created_at']}"
            )
            b1, b2 = st.columns(2)
            b1.button("Open", key=f"open_{meta['id']}", on_click=_open_saved, args=(meta["id"],))
            confirm = b2.checkbox("Confirm delete", key=f"confirm_{meta['id']}")
            b2.button("Delete", key=f"delete_{meta['id']}", on_click=_delete_saved, args=(meta["id"],), disabled=not confirm)


# ---------- UI setup ----------
st.set_page_config(page_title="Spreadsheet Viewer", layout="wide")
inject_base_styles()
st.title("Spreadsheet Viewer")
st.caption("Import a spreadsheet, search, filter, sort and export it, or keep it in the database.")

with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", ["Viewer", "Saved tables"], key="nav")

if nav_choice == "Viewer":
    render_viewer_page()
else:
    render_saved_tables_page()

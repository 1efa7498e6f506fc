from __future__ import annotations

import io
import re
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from sheetview.data import Cell, cell_at, cell_text


EXPORT_FORMATS = {
    "csv": ("text/csv", "csv"),
    "xlsx": ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
}
EXPORT_SUFFIX = "_exportado"
DEFAULT_SHEET_NAME = "Sheet1"

_INVALID_TITLE_RE = re.compile(r"[\\/?*\[\]:]")


def to_frame(headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> pd.DataFrame:
    """Rows are cut or padded to the header width, the same cells the viewer shows."""
    width = len(headers)
    data = [[cell_at(row, i) for i in range(width)] for row in rows]
    return pd.DataFrame(data, columns=list(headers), dtype=object)


def to_csv_bytes(headers: Sequence[str], rows: Sequence[Sequence[Cell]]) -> bytes:
    """CSV carries the same text the viewer shows (3.0 -> "3", True -> "true")."""
    text_rows = [[None if c is None else cell_text(c) for c in row] for row in rows]
    return to_frame(headers, text_rows).to_csv(index=False).encode("utf-8")


def safe_sheet_name(name: Optional[str]) -> str:
    """Excel sheet titles: at most 31 characters, none of \\ / ? * [ ] :"""
    title = _INVALID_TITLE_RE.sub("_", name or "").strip("'")[:31]
    return title or DEFAULT_SHEET_NAME


def to_xlsx_bytes(headers: Sequence[str], rows: Sequence[Sequence[Cell]], sheet_name: str = DEFAULT_SHEET_NAME) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        to_frame(headers, rows).to_excel(writer, sheet_name=safe_sheet_name(sheet_name), index=False)
    return buf.getvalue()


def export_bytes(headers: Sequence[str], rows: Sequence[Sequence[Cell]], fmt: str = "csv", sheet_name: Optional[str] = None) -> bytes:
    if fmt == "csv":
        return to_csv_bytes(headers, rows)
    if fmt == "xlsx":
        return to_xlsx_bytes(headers, rows, sheet_name or DEFAULT_SHEET_NAME)
    raise ValueError(f"Unsupported export format: {fmt}")


def export_filename(file_name: Optional[str], fmt: str = "csv") -> str:
    stem = Path(file_name).stem if file_name else "tabla"
    _, ext = EXPORT_FORMATS.get(fmt, EXPORT_FORMATS["csv"])
    return f"{stem}{EXPORT_SUFFIX}.{ext}"

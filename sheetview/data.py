from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, localcontext
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd


logger = logging.getLogger(__name__)

Cell = Union[str, int, float, bool, None]
Source = Union[str, Path, bytes]

CSV_SHEET_NAME = "Sheet1"
CSV_SUFFIXES = {".csv", ".txt"}

_DECIMAL_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


class TableLoadError(Exception):
    """Raised when a workbook or sheet cannot be turned into a Table."""


@dataclass(frozen=True)
class Table:
    headers: List[str] = field(default_factory=list)
    rows: List[List[Cell]] = field(default_factory=list)

    @classmethod
    def from_records(cls, headers: Sequence[object], rows: Sequence[Sequence[object]]) -> "Table":
        return cls(
            headers=[header_text(h) for h in headers],
            rows=[[normalize_cell(v) for v in row] for row in rows],
        )

    def column_index(self, name: Optional[str]) -> Optional[int]:
        return column_index(self.headers, name)

    def to_dict(self) -> Dict[str, Any]:
        return {"headers": list(self.headers), "rows": [list(r) for r in self.rows]}


# ---------------- Cell helpers ----------------
def normalize_cell(value: object) -> Cell:
    """Coerce a raw pandas/openpyxl/JSON value to text, number, bool or None."""
    if value is None or value is pd.NA or value is pd.NaT:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, int):
        return value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def header_text(value: object) -> str:
    cell = normalize_cell(value)
    return "" if cell is None else cell_text(cell)


def cell_at(row: Sequence[Cell], index: int) -> Cell:
    if index < 0 or index >= len(row):
        return None
    return row[index]


def cell_text(value: Cell) -> str:
    """String form used for search, filtering and sorting (absent -> "")."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def column_index(headers: Sequence[str], name: Optional[str]) -> Optional[int]:
    if name is None:
        return None
    try:
        return list(headers).index(name)
    except ValueError:
        return None


def parse_number(value: Cell) -> Optional[Decimal]:
    """Return the cell as a Decimal when it is a number or a full decimal literal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            return None
        number = Decimal(str(value))
    else:
        text = str(value).strip()
        if not _DECIMAL_RE.match(text):
            return None
        number = Decimal(text)
    # Values past the float range ("1e9999999") are not treated as numbers.
    if not math.isfinite(float(number)):
        return None
    return number


def round_half_up(value: object, ndigits: int = 0) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    q = Decimal(10) ** -ndigits
    with localcontext() as ctx:
        ctx.prec = max(28, d.adjusted() + ndigits + 2)
        return float(d.quantize(q, rounding=ROUND_HALF_UP))


# ---------------- Loaders ----------------
def _is_csv(source: Source, file_name: Optional[str]) -> bool:
    name = file_name or (str(source) if isinstance(source, (str, Path)) else "")
    return Path(name).suffix.lower() in CSV_SUFFIXES


def _as_buffer(source: Source):
    if isinstance(source, bytes):
        return io.BytesIO(source)
    return source


def list_sheets(source: Source, file_name: Optional[str] = None) -> List[str]:
    if _is_csv(source, file_name):
        return [CSV_SHEET_NAME]
    try:
        with pd.ExcelFile(_as_buffer(source)) as xls:
            return [str(s) for s in xls.sheet_names]
    except Exception as exc:
        raise TableLoadError(f"Could not read workbook: {exc}") from exc


def _read_raw(source: Source, sheet_name: Optional[str], file_name: Optional[str]) -> pd.DataFrame:
    if _is_csv(source, file_name):
        if sheet_name not in (None, CSV_SHEET_NAME):
            raise TableLoadError(f"Sheet '{sheet_name}' not found")
        try:
            return pd.read_csv(_as_buffer(source), header=None, skip_blank_lines=True, keep_default_na=False, na_values=[""])
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except Exception as exc:
            raise TableLoadError(f"Could not read CSV: {exc}") from exc

    try:
        with pd.ExcelFile(_as_buffer(source)) as xls:
            names = [str(s) for s in xls.sheet_names]
            if not names:
                raise TableLoadError("Workbook has no sheets")
            target = sheet_name if sheet_name is not None else names[0]
            if target not in names:
                raise TableLoadError(f"Sheet '{target}' not found")
            return xls.parse(target, header=None)
    except TableLoadError:
        raise
    except Exception as exc:
        raise TableLoadError(f"Could not read workbook: {exc}") from exc


def _trim_trailing_empty_columns(df: pd.DataFrame) -> pd.DataFrame:
    keep = df.shape[1]
    while keep > 0 and df.iloc[:, keep - 1].isna().all():
        keep -= 1
    return df.iloc[:, :keep]


def frame_to_table(raw: pd.DataFrame) -> Table:
    """First non-blank row becomes headers; fully blank rows are dropped."""
    df = raw.dropna(how="all")
    df = _trim_trailing_empty_columns(df)
    if df.empty:
        return Table()
    values = df.astype(object).where(pd.notna(df), None).values.tolist()
    return Table.from_records(values[0], values[1:])


def load_table(source: Source, sheet_name: Optional[str] = None, file_name: Optional[str] = None) -> Table:
    raw = _read_raw(source, sheet_name, file_name)
    table = frame_to_table(raw)
    if not table.headers:
        raise TableLoadError(f"Sheet '{sheet_name}' is empty" if sheet_name else "Sheet is empty")
    logger.debug("Loaded table %s/%s: %d columns, %d rows", file_name, sheet_name, len(table.headers), len(table.rows))
    return table

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import quote

from fastapi import FastAPI, File, Form, Query, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from api.schemas import SaveTableModel, ViewRequestModel, ViewStateModel
from sheetview.config import load_config, setup_logging
from sheetview.data import Table, TableLoadError, list_sheets, load_table
from sheetview.export import EXPORT_FORMATS, export_bytes, export_filename
from sheetview.filters import ViewState, normalize_view_state
from sheetview.pipeline import run_view
from sheetview.storage import TableStore, open_store


config = load_config()
setup_logging(config.log_level)

app = FastAPI(title="Sheet Viewer API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_store() -> TableStore:
    logger.info("Opening table store at %s", config.db_path)
    return open_store(config.db_path)


def _state_from_model(model: Optional[ViewStateModel]) -> ViewState:
    raw = model.model_dump() if model is not None else {}
    return normalize_view_state(raw, default_page_size=config.default_page_size)


def _stored_table(record: dict) -> Table:
    return Table.from_records(record["table"]["columns"], [r["data"] for r in record["rows"]])


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Table not found"})


def _finite(value: float) -> float | None:
    return value if math.isfinite(value) else None


def _json(data: object) -> JSONResponse:
    """Cells and totals are plain Python values; only non-finite floats need mapping to null."""
    return JSONResponse(content=jsonable_encoder(data, custom_encoder={float: _finite}))


@app.post("/api/save-excel")
def save_excel(body: SaveTableModel):
    if not body.tableName or not body.fileName or not body.sheetName or body.headers is None or body.rows is None:
        return JSONResponse(status_code=400, content={"error": "Missing required data"})
    try:
        result = get_store().save(body.tableName, body.fileName, body.sheetName, body.headers, body.rows)
        return _json(
            {
                "success": True,
                "message": f'Table "{body.tableName}" saved successfully',
                "tableId": result.table_id,
                "rowCount": result.row_count,
            }
        )
    except Exception as exc:
        logger.exception("save_excel failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/api/tables")
def list_tables():
    try:
        return _json({"success": True, "tables": get_store().list_tables()})
    except Exception as exc:
        logger.exception("list_tables failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/api/tables/{table_id}")
def get_table(table_id: int):
    try:
        record = get_store().get_table(table_id)
        if record is None:
            return _not_found()
        return _json({"success": True, **record})
    except Exception as exc:
        logger.exception("get_table failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.delete("/api/tables/{table_id}")
def delete_table(table_id: int):
    try:
        if not get_store().delete_table(table_id):
            return _not_found()
        return _json({"success": True, "message": "Table deleted successfully"})
    except Exception as exc:
        logger.exception("delete_table failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.post("/api/upload")
def upload(file: UploadFile = File(...), sheet_name: Optional[str] = Form(default=None)):
    file_name = file.filename or ""
    try:
        content = file.file.read()
        sheets = list_sheets(content, file_name)
        selected = sheet_name or (sheets[0] if sheets else None)
        table = load_table(content, selected, file_name)
        return _json({"file_name": file_name, "sheet_names": sheets, "sheet_name": selected, **table.to_dict()})
    except TableLoadError as exc:
        logger.warning("upload of %s rejected: %s", file_name, exc)
        return JSONResponse(status_code=400, content={"error": str(exc), "type": type(exc).__name__})
    except Exception as exc:
        logger.exception("upload failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.post("/api/view")
def view(body: ViewRequestModel):
    try:
        table = Table.from_records(body.table.headers, body.table.rows)
        return _json(run_view(table, _state_from_model(body.state)).to_dict())
    except Exception as exc:
        logger.exception("view failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.post("/api/tables/{table_id}/view")
def view_saved(table_id: int, state: Optional[ViewStateModel] = None):
    try:
        record = get_store().get_table(table_id)
        if record is None:
            return _not_found()
        result = run_view(_stored_table(record), _state_from_model(state))
        return _json({"table": record["table"], **result.to_dict()})
    except Exception as exc:
        logger.exception("view_saved failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _download(table: Table, state: ViewState, fmt: str, file_name: Optional[str], sheet_name: Optional[str]) -> Response:
    result = run_view(table, state)
    content = export_bytes(result.headers, result.all_rows, fmt, sheet_name)
    media_type, _ = EXPORT_FORMATS[fmt]
    filename = export_filename(file_name, fmt)
    disposition = f"attachment; filename*=UTF-8''{quote(filename)}"
    return Response(content=content, media_type=media_type, headers={"Content-Disposition": disposition})


@app.post("/api/export")
def export_view(
    body: ViewRequestModel,
    fmt: Literal["csv", "xlsx"] = Query(default="csv", alias="format"),
    file_name: Optional[str] = Query(default=None),
):
    try:
        table = Table.from_records(body.table.headers, body.table.rows)
        return _download(table, _state_from_model(body.state), fmt, file_name, None)
    except Exception as exc:
        logger.exception("export_view failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


@app.post("/api/tables/{table_id}/export")
def export_saved(
    table_id: int,
    state: Optional[ViewStateModel] = None,
    fmt: Literal["csv", "xlsx"] = Query(default="csv", alias="format"),
):
    try:
        record = get_store().get_table(table_id)
        if record is None:
            return _not_found()
        meta = record["table"]
        return _download(_stored_table(record), _state_from_model(state), fmt, meta["file_name"], meta["sheet_name"])
    except Exception as exc:
        logger.exception("export_saved failed")
        return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})

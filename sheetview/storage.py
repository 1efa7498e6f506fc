"""SQLite storage for saved tables.

Two tables: ``excel_tables`` holds one metadata record per named table
(columns serialized as JSON), ``excel_data`` holds one JSON row per record.
Saving under an existing name replaces every stored row of that table.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from sheetview.data import Cell


logger = logging.getLogger(__name__)


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS excel_tables (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT UNIQUE NOT NULL,
        file_name TEXT NOT NULL,
        sheet_name TEXT NOT NULL,
        columns TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS excel_data (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_id INTEGER NOT NULL,
        row_data TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (table_id) REFERENCES excel_tables(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_excel_data_table_id ON excel_data(table_id)",
)


@dataclass(frozen=True)
class SaveResult:
    table_id: int
    row_count: int


class TableStore:
    """Saved-table CRUD over a shared SQLite connection.

    Writes are serialized through ``write_lock`` and each one runs in a
    single transaction, so a failed save leaves the previous rows intact.
    """

    def __init__(self, connection: sqlite3.Connection, write_lock: Optional[threading.RLock] = None):
        self.connection = connection
        self.connection.row_factory = sqlite3.Row
        self._write_lock = write_lock or threading.RLock()
        self._ensure_tables()

    def _ensure_tables(self) -> None:
        with self._write_lock, self.connection:
            for statement in SCHEMA:
                self.connection.execute(statement)
        logger.debug("[TableStore] Tables ensured")

    @staticmethod
    def _metadata(row: sqlite3.Row) -> Dict[str, Any]:
        record = dict(row)
        record["columns"] = json.loads(record["columns"])
        return record

    def save(
        self,
        table_name: str,
        file_name: str,
        sheet_name: str,
        headers: Sequence[str],
        rows: Sequence[Sequence[Cell]],
    ) -> SaveResult:
        columns_json = json.dumps(list(headers), ensure_ascii=False)
        payload = [json.dumps(list(r), ensure_ascii=False) for r in rows]

        with self._write_lock:
            try:
                with self.connection:
                    existing = self.connection.execute(
                        "SELECT id FROM excel_tables WHERE table_name = ?", (table_name,)
                    ).fetchone()
                    if existing is not None:
                        table_id = int(existing["id"])
                        self.connection.execute("DELETE FROM excel_data WHERE table_id = ?", (table_id,))
                        self.connection.execute(
                            "UPDATE excel_tables SET file_name = ?, sheet_name = ?, columns = ? WHERE id = ?",
                            (file_name, sheet_name, columns_json, table_id),
                        )
                    else:
                        cursor = self.connection.execute(
                            "INSERT INTO excel_tables (table_name, file_name, sheet_name, columns) VALUES (?, ?, ?, ?)",
                            (table_name, file_name, sheet_name, columns_json),
                        )
                        table_id = int(cursor.lastrowid)
                    self.connection.executemany(
                        "INSERT INTO excel_data (table_id, row_data) VALUES (?, ?)",
                        [(table_id, data) for data in payload],
                    )
            except sqlite3.Error as e:
                logger.error("[TableStore] Failed to save table '%s': %s", table_name, e)
                raise

        logger.info(
            "[TableStore] Saved table '%s' (id=%d, %d rows, %s)",
            table_name,
            table_id,
            len(payload),
            "replaced" if existing is not None else "created",
        )
        return SaveResult(table_id=table_id, row_count=len(payload))

    def list_tables(self) -> List[Dict[str, Any]]:
        rows = self.connection.execute(
            """
            SELECT
                et.id,
                et.table_name,
                et.file_name,
                et.sheet_name,
                et.columns,
                et.created_at,
                COUNT(ed.id) AS row_count
            FROM excel_tables et
            LEFT JOIN excel_data ed ON et.id = ed.table_id
            GROUP BY et.id
            ORDER BY et.created_at DESC, et.id DESC
            """
        ).fetchall()
        return [self._metadata(r) for r in rows]

    def get_table(self, table_id: int) -> Optional[Dict[str, Any]]:
        meta = self.connection.execute("SELECT * FROM excel_tables WHERE id = ?", (table_id,)).fetchone()
        if meta is None:
            return None
        data = self.connection.execute(
            "SELECT id, row_data FROM excel_data WHERE table_id = ? ORDER BY id", (table_id,)
        ).fetchall()
        return {
            "table": self._metadata(meta),
            "rows": [{"id": r["id"], "data": json.loads(r["row_data"])} for r in data],
        }

    def delete_table(self, table_id: int) -> bool:
        with self._write_lock:
            try:
                with self.connection:
                    self.connection.execute("DELETE FROM excel_data WHERE table_id = ?", (table_id,))
                    cursor = self.connection.execute("DELETE FROM excel_tables WHERE id = ?", (table_id,))
            except sqlite3.Error as e:
                logger.error("[TableStore] Failed to delete table %s: %s", table_id, e)
                raise
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("[TableStore] Deleted table %s", table_id)
        return deleted


def open_store(path: Union[str, Path]) -> TableStore:
    if str(path) != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(str(path), check_same_thread=False)
    return TableStore(connection, threading.RLock())

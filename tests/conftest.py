from __future__ import annotations

import sqlite3
import threading

import pytest

from sheetview.data import Table
from sheetview.storage import TableStore


@pytest.fixture
def invoices() -> Table:
    return Table(
        headers=["Cliente", "Importe", "Ciudad"],
        rows=[
            ["Ana", "10", "Madrid"],
            ["luis", 2, "Sevilla"],
            ["Álvaro", "1", None],
            ["Beatriz", "abc", "madrid"],
        ],
    )


@pytest.fixture
def memory_db():
    """Create an in-memory database for testing."""
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture
def store(memory_db) -> TableStore:
    return TableStore(memory_db, threading.RLock())

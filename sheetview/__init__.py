"""Core (UI-agnostic) sheet viewer logic.

This package contains:
- table loading (XLSX/CSV -> pandas -> plain rows)
- view state normalization (search, column filters, sort, paging)
- the query pipeline (filter -> sort -> aggregate -> page)
- export helpers (view -> CSV/XLSX bytes)
- the SQLite table store
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


DATA_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DB_PATH = DATA_DIR / "sheetview.db"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env(key: str, default: str) -> str:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _env_int(key: str, default: int) -> int:
    try:
        return int(_env(key, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    db_path: Path = DEFAULT_DB_PATH
    cors_origins: List[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))
    log_level: str = "INFO"
    default_page_size: int = 10


def load_config() -> AppConfig:
    origins = [o.strip() for o in _env("SHEETVIEW_CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()]
    return AppConfig(
        db_path=Path(_env("SHEETVIEW_DB_PATH", str(DEFAULT_DB_PATH))),
        cors_origins=origins,
        log_level=_env("SHEETVIEW_LOG_LEVEL", "INFO").upper(),
        default_page_size=_env_int("SHEETVIEW_DEFAULT_PAGE_SIZE", 10),
    )


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

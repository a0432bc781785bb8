from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


ROOT = Path(__file__).resolve().parent
DEFAULT_CATALOG_PATH = ROOT / "data" / "catalog.json"
DEFAULT_TOP_N = 3
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    catalog_path: Path
    default_top_n: int
    log_level: str


def _positive_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None
    if value < 1:
        raise RuntimeError(f"{name} must be at least 1, got {value}")
    return value


def load_settings() -> Settings:
    catalog_path = (os.getenv("VISA_CATALOG_PATH") or "").strip()
    log_level = (os.getenv("VISA_LOG_LEVEL") or "INFO").strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise RuntimeError(f"VISA_LOG_LEVEL is not a logging level: {log_level!r}")
    return Settings(
        catalog_path=Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH,
        default_top_n=_positive_int("VISA_DEFAULT_TOP_N", DEFAULT_TOP_N),
        log_level=log_level,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=level or get_settings().log_level, format=LOG_FORMAT)

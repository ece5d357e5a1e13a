"""Settings loaded from HOURBOOK_* environment variables (+ optional .env)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from hourbook.hours import is_valid_hour
from hourbook.models import ListKind

ENV_PREFIX = "HOURBOOK"
DEFAULT_DATA_DIR = ".hourbook"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None or v.strip() == "" else v.strip()


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_level(name: str, default: int) -> int:
    raw = _env(name, "").upper()
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


@dataclass(frozen=True, slots=True)
class Settings:
    data_dir: Path
    log_dir: Path
    log_level: int
    default_list: ListKind
    due_slot: str

    @staticmethod
    def from_env() -> Settings:
        data_dir = _env_path(_k("DATA_DIR"), Path(DEFAULT_DATA_DIR))
        log_dir = _env_path(_k("LOG_DIR"), data_dir / "logs")

        try:
            default_list = ListKind(_env(_k("DEFAULT_LIST"), ListKind.HAVE_TO_DO.value))
        except ValueError:
            default_list = ListKind.HAVE_TO_DO

        due_slot = _env(_k("DUE_SLOT"), "8am")
        if not is_valid_hour(due_slot):
            due_slot = "8am"

        return Settings(
            data_dir=data_dir,
            log_dir=log_dir,
            log_level=_env_level(_k("LOG_LEVEL"), logging.WARNING),
            default_list=default_list,
            due_slot=due_slot,
        )


def load_settings() -> Settings:
    """Read a local .env (never overriding the real environment), then build Settings."""
    load_dotenv(override=False)
    return Settings.from_env()

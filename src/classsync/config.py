# src/classsync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: a missing Supabase URL/key is not an
  import error, it puts the app into the "setup required" state at runtime.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "CLASSSYNC"

WRITE_POLICY_RETAIN = "retain"
WRITE_POLICY_ROLLBACK = "rollback"
_WRITE_POLICIES = {WRITE_POLICY_RETAIN, WRITE_POLICY_ROLLBACK}


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Real environment wins over .env.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_time(name: str, default: time) -> time:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return time.fromisoformat(raw.strip())
    except ValueError:
        return default


def _env_choice(name: str, choices: set[str], default: str) -> str:
    raw = (os.getenv(name) or "").strip().lower()
    return raw if raw in choices else default


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Supabase ----
    supabase_url: str
    supabase_anon_key: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    device_store_path: Path

    # ---- Assignment engine ----
    undo_window_seconds: float
    default_due_time: time
    write_failure_policy: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "ClassSync") or "ClassSync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        # Accept the plain Supabase names too, that's what most dashboards hand out.
        supabase_url = (_first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default="") or "").strip()
        supabase_anon_key = (
            _first_env(_k("SUPABASE_ANON_KEY"), "SUPABASE_ANON_KEY", default="") or ""
        ).strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/classsync"))
        device_store_path = _env_path(_k("DEVICE_STORE_PATH"), data_dir / "device.sqlite3")

        undo_window_seconds = max(0.0, _env_float(_k("UNDO_WINDOW_SECONDS"), 5.0))
        default_due_time = _env_time(_k("DEFAULT_DUE_TIME"), time(23, 59))
        write_failure_policy = _env_choice(
            _k("WRITE_FAILURE_POLICY"), _WRITE_POLICIES, WRITE_POLICY_RETAIN
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            data_dir=data_dir,
            device_store_path=device_store_path,
            undo_window_seconds=undo_window_seconds,
            default_due_time=default_due_time,
            write_failure_policy=write_failure_policy,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

"""Per-user locations of the state database and the dashboard log."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

APP_NAME = "ScreenBalance"


def get_data_dir() -> Path:
    dirs = PlatformDirs(appname=APP_NAME, appauthor=False, roaming=True, ensure_exists=True)
    return Path(dirs.user_data_path)


def get_store_path() -> Path:
    """SQLite file holding every persisted key of both engines."""
    return get_data_dir() / "state.sqlite3"


def get_log_path() -> Path:
    return get_data_dir() / "dashboard.log"

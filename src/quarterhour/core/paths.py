"""Filesystem path utilities for quarterhour."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

APP_NAME = "quarterhour"
HOME_ENV_VAR = "QUARTERHOUR_HOME"
SLOTS_FILENAME = "time_slots.jsonl"
PROJECTS_FILENAME = "projects.jsonl"
SETTINGS_FILENAME = "settings.json"
LOG_FILENAME = "quarterhour.log"
EXPORTS_DIRNAME = "exports"

_DATA_DIR_OVERRIDE: Path | None = None


def _roaming_root() -> Path:
    """Return the per-user application data root for this platform."""
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata)
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".local" / "share"


def default_app_data_dir() -> Path:
    configured = os.environ.get(HOME_ENV_VAR)
    if configured:
        return Path(configured).expanduser()
    return _roaming_root() / APP_NAME


def set_app_data_directory(path: Path | str | None) -> Path:
    global _DATA_DIR_OVERRIDE
    _DATA_DIR_OVERRIDE = Path(path).expanduser() if path else None
    app_data_dir.cache_clear()
    return app_data_dir()


def reset_app_data_directory() -> None:
    """Forget any override without creating the default directory."""
    global _DATA_DIR_OVERRIDE
    _DATA_DIR_OVERRIDE = None
    app_data_dir.cache_clear()


@lru_cache(maxsize=1)
def app_data_dir() -> Path:
    """Return the base application data directory, ensuring it exists."""
    base = _DATA_DIR_OVERRIDE or default_app_data_dir()
    base.mkdir(parents=True, exist_ok=True)
    return base


def slots_path() -> Path:
    return app_data_dir() / SLOTS_FILENAME


def projects_path() -> Path:
    return app_data_dir() / PROJECTS_FILENAME


def settings_path() -> Path:
    return app_data_dir() / SETTINGS_FILENAME


def log_path() -> Path:
    return app_data_dir() / LOG_FILENAME


def exports_dir() -> Path:
    path = app_data_dir() / EXPORTS_DIRNAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_app_structure() -> None:
    """Proactively create the directory structure the app relies on."""
    app_data_dir()
    exports_dir()
    for path in (slots_path(), projects_path()):
        if not path.exists():
            path.touch()

"""User settings for the day grid and the statistics view."""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date
from pathlib import Path
from typing import Any

from .exceptions import SettingsError
from .paths import settings_path

SUPPORTED_INCREMENTS = (15, 30, 60)
DEFAULT_DAY_START_HOUR = 0
DEFAULT_DAY_END_HOUR = 24
DEFAULT_TIME_INCREMENT = 60


def _default_settings_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class UserSettings:
    id: str = field(default_factory=_default_settings_id)
    day_start_hour: int = DEFAULT_DAY_START_HOUR
    day_end_hour: int = DEFAULT_DAY_END_HOUR
    time_increment: int = DEFAULT_TIME_INCREMENT
    stats_start_date: date | None = None
    stats_end_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["stats_start_date"] = self.stats_start_date.isoformat() if self.stats_start_date else None
        payload["stats_end_date"] = self.stats_end_date.isoformat() if self.stats_end_date else None
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserSettings":
        settings = cls(
            id=str(payload.get("id") or _default_settings_id()),
            day_start_hour=int(payload.get("day_start_hour", DEFAULT_DAY_START_HOUR)),
            day_end_hour=int(payload.get("day_end_hour", DEFAULT_DAY_END_HOUR)),
            time_increment=int(payload.get("time_increment", DEFAULT_TIME_INCREMENT)),
            stats_start_date=_parse_optional_date(payload.get("stats_start_date")),
            stats_end_date=_parse_optional_date(payload.get("stats_end_date")),
        )
        validate_settings(settings)
        return settings


_UPDATABLE_FIELDS = frozenset(item.name for item in fields(UserSettings)) - {"id"}


def validate_settings(settings: UserSettings) -> None:
    if settings.time_increment not in SUPPORTED_INCREMENTS:
        raise SettingsError(f"Unsupported time increment: {settings.time_increment}")
    if not 0 <= settings.day_start_hour < settings.day_end_hour <= 24:
        raise SettingsError("Day start must be before day end, within 0-24")
    if (
        settings.stats_start_date is not None
        and settings.stats_end_date is not None
        and settings.stats_start_date > settings.stats_end_date
    ):
        raise SettingsError("Statistics start date must not be after its end date")


class SettingsManager:
    """Persists the single :class:`UserSettings` record as JSON.

    The record is created with defaults the first time it is read.
    """

    def __init__(self, path: Path | None = None, logger: logging.Logger | None = None) -> None:
        self._path = Path(path) if path is not None else settings_path()
        self._logger = logger or logging.getLogger("quarterhour.settings")

    def load(self) -> UserSettings:
        if not self._path.exists():
            self._logger.info(
                "Settings file missing; creating defaults",
                extra={"event": "settings_create_default", "path": str(self._path)},
            )
            settings = UserSettings()
            self.save(settings)
            return settings

        try:
            with self._path.open("r", encoding="utf-8") as infile:
                payload = json.load(infile)
        except json.JSONDecodeError as exc:
            self._logger.exception("Invalid JSON in settings file", extra={"event": "settings_load_invalid_json"})
            raise SettingsError("Settings file is malformed") from exc
        except Exception as exc:
            self._logger.exception("Unexpected error loading settings")
            raise SettingsError("Unable to load settings") from exc

        try:
            settings = UserSettings.from_dict(payload)
        except SettingsError:
            raise
        except Exception as exc:
            self._logger.exception("Settings payload invalid", extra={"event": "settings_load_invalid_payload"})
            raise SettingsError("Settings payload is invalid") from exc

        self._logger.debug("Settings loaded", extra={"event": "settings_loaded", **settings.to_dict()})
        return settings

    def save(self, settings: UserSettings) -> None:
        validate_settings(settings)
        self._logger.info("Saving settings", extra={"event": "settings_save", **settings.to_dict()})
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._path.with_suffix(".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as outfile:
                json.dump(settings.to_dict(), outfile, indent=2)
                outfile.flush()
                os.fsync(outfile.fileno())
            temp_path.replace(self._path)
        except Exception as exc:
            self._logger.exception("Failed to save settings")
            raise SettingsError("Unable to save settings") from exc

    def update(self, **changes: Any) -> UserSettings:
        """Apply a partial update and persist it; unknown fields are rejected."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise SettingsError(f"Unknown settings: {', '.join(sorted(unknown))}")
        current = self.load()
        updated = replace(current, **changes)
        self.save(updated)
        return updated


def _parse_optional_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))

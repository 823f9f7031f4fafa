"""Domain models for quarterhour."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Union
import uuid

from .time_slots import SLOT_HOURS, next_tick


def _default_local_token() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class LocalId:
    """Provisional identifier for a record the remote store has not confirmed yet."""

    token: str = field(default_factory=_default_local_token)

    def __str__(self) -> str:
        return f"local:{self.token}"


@dataclass(frozen=True, slots=True)
class PersistedId:
    """Identifier assigned by the remote store."""

    value: str

    def __str__(self) -> str:
        return self.value


SlotId = Union[LocalId, PersistedId]
ProjectId = Union[LocalId, PersistedId]


def is_pending(record_id: SlotId) -> bool:
    return isinstance(record_id, LocalId)


@dataclass(frozen=True, slots=True)
class Project:
    id: ProjectId
    name: str
    color: str
    archived: bool = False

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "color": self.color,
            "archived": self.archived,
        }

    @classmethod
    def from_json_dict(cls, payload: dict[str, Any]) -> "Project":
        return cls(
            id=PersistedId(str(payload["id"])),
            name=str(payload["name"]),
            color=str(payload.get("color") or DEFAULT_PROJECT_COLOR),
            archived=bool(payload.get("archived", False)),
        )


DEFAULT_PROJECT_COLOR = "#94a3b8"


@dataclass(frozen=True, slots=True)
class SlotDraft:
    """A slot as sent to the remote store for insertion."""

    project_id: ProjectId
    date: date
    time_slot: float
    note: str | None = None


@dataclass(frozen=True, slots=True)
class TimeSlot:
    """One quarter hour owned by one project on one date."""

    id: SlotId
    project_id: ProjectId
    date: date
    time_slot: float
    note: str | None = None

    @property
    def key(self) -> tuple[date, float]:
        return (self.date, self.time_slot)

    @property
    def end_time(self) -> float:
        return next_tick(self.time_slot)

    @property
    def hours(self) -> float:
        return SLOT_HOURS

    def as_draft(self) -> SlotDraft:
        return SlotDraft(project_id=self.project_id, date=self.date, time_slot=self.time_slot, note=self.note)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "date": self.date.isoformat(),
            "time_slot": self.time_slot,
            "note": self.note,
        }

    @classmethod
    def from_json_dict(cls, payload: dict[str, Any]) -> "TimeSlot":
        return cls(
            id=PersistedId(str(payload["id"])),
            project_id=PersistedId(str(payload["project_id"])),
            date=_parse_date(payload["date"]),
            time_slot=float(payload["time_slot"]),
            note=payload.get("note") or None,
        )


@dataclass(frozen=True, slots=True)
class TimeEntry:
    """A maximal run of consecutive same-project slots on one date."""

    id: SlotId
    project_id: ProjectId
    date: date
    start_time: float
    end_time: float
    slot_ids: tuple[SlotId, ...]
    note: str | None = None

    @property
    def hours(self) -> float:
        return self.end_time - self.start_time

    def contains(self, time_slot: float) -> bool:
        return self.start_time <= time_slot < self.end_time


def _parse_date(value: str | date) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)

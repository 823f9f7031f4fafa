"""Contract for the remote store and an in-memory implementation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import date
from typing import Any, Iterable, Protocol, Sequence

from .exceptions import DuplicateSlotError, PersistenceError
from .models import PersistedId, Project, ProjectId, SlotDraft, SlotId, TimeSlot

SLOT_UPDATE_FIELDS = frozenset({"project_id", "note"})
PROJECT_UPDATE_FIELDS = frozenset({"name", "color", "archived"})


class RemoteStore(Protocol):
    """Row-level CRUD interface the client reconciles against.

    Implementations raise :class:`DuplicateSlotError` when an insert would book
    an already booked ``(date, time_slot)`` pair and :class:`PersistenceError`
    for every other failure.
    """

    async def select_slots(self, start: date | None = None, end: date | None = None) -> list[TimeSlot]: ...

    async def insert_slots(self, drafts: Sequence[SlotDraft]) -> list[TimeSlot]: ...

    async def update_slot(self, slot_id: SlotId, **changes: Any) -> TimeSlot: ...

    async def delete_slots(self, slot_ids: Sequence[SlotId]) -> None: ...

    async def select_projects(self) -> list[Project]: ...

    async def insert_project(self, name: str, color: str) -> Project: ...

    async def update_project(self, project_id: ProjectId, **changes: Any) -> Project: ...

    async def delete_project(self, project_id: ProjectId) -> None: ...


def new_server_id() -> PersistedId:
    return PersistedId(uuid.uuid4().hex)


def require_persisted(record_id: Any) -> PersistedId:
    if not isinstance(record_id, PersistedId):
        raise PersistenceError(f"Record {record_id} has not been confirmed by the store")
    return record_id


def check_unique(existing: Iterable[TimeSlot], drafts: Sequence[SlotDraft]) -> None:
    """Reject drafts that collide with each other or with ``existing`` slots."""
    taken = {slot.key for slot in existing}
    for draft in drafts:
        key = (draft.date, draft.time_slot)
        if key in taken:
            raise DuplicateSlotError(
                f"Time slot {draft.time_slot} on {draft.date.isoformat()} is already booked"
            )
        taken.add(key)


def check_changes(changes: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise PersistenceError(f"Unsupported fields: {', '.join(sorted(unknown))}")


def sort_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    return sorted(slots, key=lambda slot: (slot.date, slot.time_slot))


def in_date_range(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


class MemoryRemoteStore:
    """Keeps rows in process memory; used for offline sessions and tests."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("quarterhour.remote")
        self._slots: dict[PersistedId, TimeSlot] = {}
        self._projects: dict[PersistedId, Project] = {}

    # ------------------------------------------------------------------
    # Slots
    async def select_slots(self, start: date | None = None, end: date | None = None) -> list[TimeSlot]:
        await asyncio.sleep(0)
        return sort_slots(slot for slot in self._slots.values() if in_date_range(slot.date, start, end))

    async def insert_slots(self, drafts: Sequence[SlotDraft]) -> list[TimeSlot]:
        await asyncio.sleep(0)
        for draft in drafts:
            require_persisted(draft.project_id)
        check_unique(self._slots.values(), drafts)
        inserted = [
            TimeSlot(
                id=new_server_id(),
                project_id=draft.project_id,
                date=draft.date,
                time_slot=draft.time_slot,
                note=draft.note,
            )
            for draft in drafts
        ]
        for slot in inserted:
            self._slots[slot.id] = slot
        self._logger.debug("Inserted slots", extra={"event": "remote_slots_insert", "count": len(inserted)})
        return inserted

    async def update_slot(self, slot_id: SlotId, **changes: Any) -> TimeSlot:
        await asyncio.sleep(0)
        check_changes(changes, SLOT_UPDATE_FIELDS)
        key = require_persisted(slot_id)
        current = self._slots.get(key)
        if current is None:
            raise PersistenceError(f"Unknown slot: {slot_id}")
        if "project_id" in changes:
            require_persisted(changes["project_id"])
        updated = replace(current, **changes)
        self._slots[key] = updated
        return updated

    async def delete_slots(self, slot_ids: Sequence[SlotId]) -> None:
        await asyncio.sleep(0)
        keys = [require_persisted(slot_id) for slot_id in slot_ids]
        for key in keys:
            self._slots.pop(key, None)
        self._logger.debug("Deleted slots", extra={"event": "remote_slots_delete", "count": len(keys)})

    # ------------------------------------------------------------------
    # Projects
    async def select_projects(self) -> list[Project]:
        await asyncio.sleep(0)
        return sorted(self._projects.values(), key=lambda project: project.name.lower())

    async def insert_project(self, name: str, color: str) -> Project:
        await asyncio.sleep(0)
        project = Project(id=new_server_id(), name=name, color=color)
        self._projects[project.id] = project
        return project

    async def update_project(self, project_id: ProjectId, **changes: Any) -> Project:
        await asyncio.sleep(0)
        check_changes(changes, PROJECT_UPDATE_FIELDS)
        key = require_persisted(project_id)
        current = self._projects.get(key)
        if current is None:
            raise PersistenceError(f"Unknown project: {project_id}")
        updated = replace(current, **changes)
        self._projects[key] = updated
        return updated

    async def delete_project(self, project_id: ProjectId) -> None:
        await asyncio.sleep(0)
        key = require_persisted(project_id)
        self._projects.pop(key, None)
        # Slots belong to their project and go with it.
        for slot_id in [slot.id for slot in self._slots.values() if slot.project_id == key]:
            del self._slots[slot_id]

"""File-backed remote store persisting projects and slots as JSON lines."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence, TypeVar

import portalocker

from .exceptions import PersistenceError
from .models import Project, ProjectId, SlotDraft, SlotId, TimeSlot
from .paths import projects_path, slots_path
from .remote import (
    PROJECT_UPDATE_FIELDS,
    SLOT_UPDATE_FIELDS,
    check_changes,
    check_unique,
    in_date_range,
    new_server_id,
    require_persisted,
    sort_slots,
)

T = TypeVar("T")
R = TypeVar("R")


class JsonlRemoteStore:
    """Implements the remote store contract on top of two locked JSON-lines files.

    Every write takes an exclusive ``portalocker`` lock, rewrites the file and
    fsyncs it; readers take a shared lock. Blocking file work runs in a worker
    thread so the event loop stays responsive.
    """

    def __init__(
        self,
        slots_file: Path | None = None,
        projects_file: Path | None = None,
        logger: logging.Logger | None = None,
        lock_timeout: float = 10.0,
    ) -> None:
        self._slots_path = Path(slots_file) if slots_file is not None else slots_path()
        self._projects_path = Path(projects_file) if projects_file is not None else projects_path()
        self._lock_timeout = lock_timeout
        self._logger = logger or logging.getLogger("quarterhour.repository")
        for path in (self._slots_path, self._projects_path):
            path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_file(path)

    # ------------------------------------------------------------------
    # Slots
    async def select_slots(self, start: date | None = None, end: date | None = None) -> list[TimeSlot]:
        self._logger.debug(
            "Loading slots",
            extra={
                "event": "slots_load_range",
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
            },
        )
        slots = await asyncio.to_thread(self._read_records, self._slots_path, TimeSlot.from_json_dict)
        return sort_slots(slot for slot in slots if in_date_range(slot.date, start, end))

    async def insert_slots(self, drafts: Sequence[SlotDraft]) -> list[TimeSlot]:
        if not drafts:
            return []
        for draft in drafts:
            require_persisted(draft.project_id)

        def transform(slots: list[TimeSlot]) -> tuple[list[TimeSlot], list[TimeSlot]]:
            check_unique(slots, drafts)
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
            return sort_slots([*slots, *inserted]), inserted

        inserted = await self._rewrite(self._slots_path, TimeSlot.from_json_dict, transform)
        self._logger.info(
            "Inserted slots",
            extra={"event": "slots_insert", "count": len(inserted), "slot_ids": [str(slot.id) for slot in inserted]},
        )
        return inserted

    async def update_slot(self, slot_id: SlotId, **changes: Any) -> TimeSlot:
        check_changes(changes, SLOT_UPDATE_FIELDS)
        key = require_persisted(slot_id)
        if "project_id" in changes:
            require_persisted(changes["project_id"])

        def transform(slots: list[TimeSlot]) -> tuple[list[TimeSlot], TimeSlot]:
            for index, slot in enumerate(slots):
                if slot.id == key:
                    updated = replace(slot, **changes)
                    slots[index] = updated
                    return slots, updated
            raise PersistenceError(f"Unknown slot: {slot_id}")

        updated = await self._rewrite(self._slots_path, TimeSlot.from_json_dict, transform)
        self._logger.info(
            "Updated slot",
            extra={"event": "slots_update", "slot_id": str(key), "fields": sorted(changes)},
        )
        return updated

    async def delete_slots(self, slot_ids: Sequence[SlotId]) -> None:
        keys = {require_persisted(slot_id) for slot_id in slot_ids}
        if not keys:
            return

        def transform(slots: list[TimeSlot]) -> tuple[list[TimeSlot], int]:
            kept = [slot for slot in slots if slot.id not in keys]
            return kept, len(slots) - len(kept)

        removed = await self._rewrite(self._slots_path, TimeSlot.from_json_dict, transform)
        self._logger.info("Deleted slots", extra={"event": "slots_delete", "count": removed})

    # ------------------------------------------------------------------
    # Projects
    async def select_projects(self) -> list[Project]:
        projects = await asyncio.to_thread(self._read_records, self._projects_path, Project.from_json_dict)
        return sorted(projects, key=lambda project: project.name.lower())

    async def insert_project(self, name: str, color: str) -> Project:
        project = Project(id=new_server_id(), name=name, color=color)

        def transform(projects: list[Project]) -> tuple[list[Project], Project]:
            return [*projects, project], project

        created = await self._rewrite(self._projects_path, Project.from_json_dict, transform)
        self._logger.info("Project created", extra={"event": "projects_insert", "project_id": str(created.id)})
        return created

    async def update_project(self, project_id: ProjectId, **changes: Any) -> Project:
        check_changes(changes, PROJECT_UPDATE_FIELDS)
        key = require_persisted(project_id)

        def transform(projects: list[Project]) -> tuple[list[Project], Project]:
            for index, project in enumerate(projects):
                if project.id == key:
                    updated = replace(project, **changes)
                    projects[index] = updated
                    return projects, updated
            raise PersistenceError(f"Unknown project: {project_id}")

        updated = await self._rewrite(self._projects_path, Project.from_json_dict, transform)
        self._logger.info(
            "Project updated",
            extra={"event": "projects_update", "project_id": str(key), "fields": sorted(changes)},
        )
        return updated

    async def delete_project(self, project_id: ProjectId) -> None:
        key = require_persisted(project_id)

        def drop_project(projects: list[Project]) -> tuple[list[Project], None]:
            return [project for project in projects if project.id != key], None

        def drop_slots(slots: list[TimeSlot]) -> tuple[list[TimeSlot], None]:
            return [slot for slot in slots if slot.project_id != key], None

        await self._rewrite(self._projects_path, Project.from_json_dict, drop_project)
        await self._rewrite(self._slots_path, TimeSlot.from_json_dict, drop_slots)
        self._logger.info("Project deleted", extra={"event": "projects_delete", "project_id": str(key)})

    # ------------------------------------------------------------------
    # Internal helpers
    def _ensure_file(self, path: Path) -> None:
        if not path.exists():
            self._logger.debug("Creating data file", extra={"event": "data_file_init", "path": str(path)})
            path.touch()

    def _read_records(self, path: Path, parse: Callable[[dict[str, Any]], T]) -> list[T]:
        try:
            with portalocker.Lock(
                path,
                mode="r",
                timeout=self._lock_timeout,
                flags=portalocker.LockFlags.SHARED,
                encoding="utf-8",
            ) as locked_file:
                lines = [line.rstrip("\n") for line in locked_file if line.strip()]
        except FileNotFoundError:
            self._ensure_file(path)
            return []
        except Exception as exc:
            self._logger.exception("Failed reading data file", extra={"event": "data_file_read_failed", "path": str(path)})
            raise PersistenceError(f"Unable to read {path.name}") from exc
        return self._deserialize(lines, parse)

    async def _rewrite(
        self,
        path: Path,
        parse: Callable[[dict[str, Any]], T],
        transform: Callable[[list[T]], tuple[list[T], R]],
    ) -> R:
        return await asyncio.to_thread(self._rewrite_sync, path, parse, transform)

    def _rewrite_sync(
        self,
        path: Path,
        parse: Callable[[dict[str, Any]], T],
        transform: Callable[[list[T]], tuple[list[T], R]],
    ) -> R:
        try:
            with portalocker.Lock(
                path,
                mode="r+",
                timeout=self._lock_timeout,
                flags=portalocker.LockFlags.EXCLUSIVE,
                encoding="utf-8",
            ) as locked_file:
                locked_file.seek(0)
                lines = [line.rstrip("\n") for line in locked_file if line.strip()]
                records, result = transform(self._deserialize(lines, parse))

                locked_file.seek(0)
                locked_file.truncate()
                for record in records:
                    locked_file.write(json.dumps(record.to_json_dict(), separators=(",", ":")))
                    locked_file.write("\n")
                locked_file.flush()
                os.fsync(locked_file.fileno())
        except PersistenceError:
            raise
        except Exception as exc:
            self._logger.exception("Failed to rewrite data file", extra={"event": "data_file_write_failed", "path": str(path)})
            raise PersistenceError(f"Unable to write {path.name}") from exc
        return result

    def _deserialize(self, lines: Iterable[str], parse: Callable[[dict[str, Any]], T]) -> list[T]:
        records: list[T] = []
        for index, line in enumerate(lines, start=1):
            try:
                records.append(parse(json.loads(line)))
            except Exception:  # pragma: no cover - resilience
                self._logger.exception(
                    "Skipping malformed record",
                    extra={"event": "data_file_skip_invalid", "line_index": index},
                )
        return records

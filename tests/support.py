"""Shared fixtures for the quarterhour test suite."""

from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Sequence

from quarterhour.core.models import PersistedId, ProjectId, SlotDraft, TimeSlot
from quarterhour.core.remote import MemoryRemoteStore

DAY = date(2026, 10, 19)
NEXT_DAY = date(2026, 10, 20)


def make_slot(
    slot_id: str,
    project_id: ProjectId,
    time_slot: float,
    *,
    day: date = DAY,
    note: str | None = None,
) -> TimeSlot:
    return TimeSlot(id=PersistedId(slot_id), project_id=project_id, date=day, time_slot=time_slot, note=note)


class FlakyStore(MemoryRemoteStore):
    """In-memory store whose calls can be made to fail or to wait on a gate."""

    def __init__(self) -> None:
        super().__init__()
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        failure = self.failures.pop(name, None)
        if failure is not None:
            raise failure

    async def seed(self, project_id: ProjectId, day: date, *ticks: float, note: str | None = None) -> list[TimeSlot]:
        drafts = [SlotDraft(project_id=project_id, date=day, time_slot=tick, note=note) for tick in ticks]
        return await MemoryRemoteStore.insert_slots(self, drafts)

    async def select_slots(self, start: date | None = None, end: date | None = None) -> list[TimeSlot]:
        await self._enter("select_slots")
        return await super().select_slots(start, end)

    async def insert_slots(self, drafts: Sequence[SlotDraft]) -> list[TimeSlot]:
        await self._enter("insert_slots")
        return await super().insert_slots(drafts)

    async def update_slot(self, slot_id, **changes: Any) -> TimeSlot:
        await self._enter("update_slot")
        return await super().update_slot(slot_id, **changes)

    async def delete_slots(self, slot_ids) -> None:
        await self._enter("delete_slots")
        await super().delete_slots(slot_ids)

    async def select_projects(self):
        await self._enter("select_projects")
        return await super().select_projects()

    async def insert_project(self, name: str, color: str):
        await self._enter("insert_project")
        return await super().insert_project(name, color)

    async def update_project(self, project_id, **changes: Any):
        await self._enter("update_project")
        return await super().update_project(project_id, **changes)

    async def delete_project(self, project_id) -> None:
        await self._enter("delete_project")
        await super().delete_project(project_id)


async def settle(rounds: int = 5) -> None:
    """Let scheduled tasks run up to their next real suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)

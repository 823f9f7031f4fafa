"""Derive contiguous entries from quarter-hour slots."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from .models import SlotId, TimeEntry, TimeSlot
from .time_slots import next_tick


@dataclass(slots=True)
class _Run:
    first: TimeSlot
    end_time: float
    slot_ids: list[SlotId] = field(default_factory=list)

    def accepts(self, slot: TimeSlot) -> bool:
        return slot.project_id == self.first.project_id and slot.time_slot == self.end_time

    def extend(self, slot: TimeSlot) -> None:
        self.end_time = next_tick(slot.time_slot)
        self.slot_ids.append(slot.id)

    def to_entry(self) -> TimeEntry:
        return TimeEntry(
            id=self.first.id,
            project_id=self.first.project_id,
            date=self.first.date,
            start_time=self.first.time_slot,
            end_time=self.end_time,
            slot_ids=tuple(self.slot_ids),
            note=self.first.note,
        )


def _start_run(slot: TimeSlot) -> _Run:
    return _Run(first=slot, end_time=next_tick(slot.time_slot), slot_ids=[slot.id])


def reduce_entries(slots: Sequence[TimeSlot]) -> list[TimeEntry]:
    """Collapse one date's slots, sorted by ``time_slot``, into entries.

    A run grows while the next slot belongs to the same project and starts
    exactly where the run ends. Only the first slot's note is carried onto the
    entry.
    """
    entries: list[TimeEntry] = []
    current: Optional[_Run] = None
    for slot in slots:
        if current is not None and current.accepts(slot):
            current.extend(slot)
            continue
        if current is not None:
            entries.append(current.to_entry())
        current = _start_run(slot)
    if current is not None:
        entries.append(current.to_entry())
    return entries


def entries_by_date(slots: Iterable[TimeSlot]) -> dict[date, list[TimeEntry]]:
    grouped: dict[date, list[TimeSlot]] = defaultdict(list)
    for slot in slots:
        grouped[slot.date].append(slot)
    return {
        day: reduce_entries(sorted(day_slots, key=lambda slot: slot.time_slot))
        for day, day_slots in sorted(grouped.items())
    }


def all_entries(slots: Iterable[TimeSlot]) -> list[TimeEntry]:
    entries: list[TimeEntry] = []
    for day_entries in entries_by_date(slots).values():
        entries.extend(day_entries)
    return entries


def find_entry(slots: Iterable[TimeSlot], entry_id: SlotId) -> Optional[TimeEntry]:
    for entry in all_entries(slots):
        if entry.id == entry_id:
            return entry
    return None

"""In-memory mirror of the user's time slots for the loaded date range."""

from __future__ import annotations

import bisect
import logging
from datetime import date
from typing import Iterable, Optional

from .exceptions import LoadError, PersistenceError
from .models import SlotId, TimeSlot
from .remote import RemoteStore, in_date_range

SlotSnapshot = tuple[TimeSlot, ...]


def _sort_key(slot: TimeSlot) -> tuple[date, float]:
    return (slot.date, slot.time_slot)


class SlotStore:
    """Holds slots sorted by ``(date, time_slot)``.

    The store is a plain container: it does not police the one-slot-per-quarter
    rule. Only :class:`~quarterhour.core.mutations.SlotMutationEngine` writes to
    it; everything else reads.
    """

    def __init__(self, remote: RemoteStore, logger: logging.Logger | None = None) -> None:
        self._remote = remote
        self._logger = logger or logging.getLogger("quarterhour.slot_store")
        self._slots: list[TimeSlot] = []
        self._loaded_range: tuple[date, date] | None = None

    # ------------------------------------------------------------------
    # Loading
    @property
    def remote(self) -> RemoteStore:
        return self._remote

    @property
    def loaded_range(self) -> tuple[date, date] | None:
        return self._loaded_range

    async def load(self, start: date, end: date | None = None) -> list[TimeSlot]:
        """Replace the store with the remote slots dated ``start`` through ``end``."""
        end = end or start
        if end < start:
            raise ValueError("Load range end must not precede its start")
        self._logger.debug(
            "Loading slots",
            extra={"event": "slot_store_load", "start": start.isoformat(), "end": end.isoformat()},
        )
        try:
            fetched = await self._remote.select_slots(start, end)
        except PersistenceError as exc:
            self._logger.warning(
                "Slot load failed; keeping previous state",
                extra={"event": "slot_store_load_failed", "start": start.isoformat(), "end": end.isoformat()},
            )
            raise LoadError(f"Failed to load time slots: {exc}") from exc
        self._slots = sorted(fetched, key=_sort_key)
        self._loaded_range = (start, end)
        self._logger.info(
            "Slots loaded",
            extra={"event": "slot_store_loaded", "count": len(self._slots), "start": start.isoformat(), "end": end.isoformat()},
        )
        return list(self._slots)

    async def refresh(self, day: date, keep: Iterable[tuple[date, float]] = ()) -> list[TimeSlot]:
        """Reload one date, leaving the other loaded dates untouched.

        Keys in ``keep`` hold unconfirmed local changes; their local state wins
        over whatever the remote store returns for them.
        """
        try:
            fetched = await self._remote.select_slots(day, day)
        except PersistenceError as exc:
            self._logger.warning("Slot refresh failed", extra={"event": "slot_store_refresh_failed", "date": day.isoformat()})
            raise LoadError(f"Failed to reload time slots for {day.isoformat()}: {exc}") from exc
        kept_keys = {key for key in keep if key[0] == day}
        kept = [slot for slot in self._slots if slot.date != day or slot.key in kept_keys]
        fetched = [slot for slot in fetched if slot.key not in kept_keys]
        self._slots = sorted([*kept, *fetched], key=_sort_key)
        self._logger.info(
            "Slots refreshed",
            extra={"event": "slot_store_refreshed", "date": day.isoformat(), "count": len(fetched)},
        )
        return self.slots_for(day)

    # ------------------------------------------------------------------
    # Reads
    def all_slots(self) -> list[TimeSlot]:
        return list(self._slots)

    def slots_for(self, day: date) -> list[TimeSlot]:
        return [slot for slot in self._slots if slot.date == day]

    def slots_between(self, start: date | None, end: date | None) -> list[TimeSlot]:
        return [slot for slot in self._slots if in_date_range(slot.date, start, end)]

    def find_at(self, day: date, time_slot: float) -> Optional[TimeSlot]:
        index = bisect.bisect_left(self._slots, (day, time_slot), key=_sort_key)
        if index < len(self._slots) and _sort_key(self._slots[index]) == (day, time_slot):
            return self._slots[index]
        return None

    def get(self, slot_id: SlotId) -> Optional[TimeSlot]:
        for slot in self._slots:
            if slot.id == slot_id:
                return slot
        return None

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self):
        return iter(list(self._slots))

    # ------------------------------------------------------------------
    # Writes (mutation engine only)
    def upsert_local(self, slot: TimeSlot) -> None:
        self._slots = [existing for existing in self._slots if existing.id != slot.id]
        index = bisect.bisect_right(self._slots, _sort_key(slot), key=_sort_key)
        self._slots.insert(index, slot)

    def remove_local(self, slot_ids: Iterable[SlotId]) -> None:
        doomed = set(slot_ids)
        if doomed:
            self._slots = [slot for slot in self._slots if slot.id not in doomed]

    def snapshot(self) -> SlotSnapshot:
        return tuple(self._slots)

    def restore(self, snapshot: SlotSnapshot) -> None:
        self._slots = list(snapshot)

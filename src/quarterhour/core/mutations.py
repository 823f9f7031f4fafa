"""Optimistic mutations of the slot store with rollback on remote failure."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Iterable, Optional, Sequence

from PySide6.QtCore import QObject, Signal

from .entries import find_entry, reduce_entries
from .exceptions import (
    ConflictError,
    DuplicateSlotError,
    LoadError,
    MutationError,
    QuarterHourError,
    ValidationError,
)
from .models import LocalId, ProjectId, SlotId, TimeEntry, TimeSlot, is_pending
from .slot_store import SlotStore
from .time_slots import DAY_HOURS, format_time_slot, in_range, is_quantized, is_valid_tick, iter_ticks

SlotKey = tuple[date, float]
NoteLossConfirmer = Callable[[TimeSlot], bool]
Undo = Callable[[], Awaitable[object]]


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    UNCHANGED = "unchanged"


class ClaimPolicy(str, Enum):
    """What to do with a quarter hour that another project already owns."""

    SKIP = "skip"
    REPLACE = "replace"
    REJECT = "reject"


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notification:
    level: NotificationLevel
    message: str
    error: Optional[QuarterHourError] = None


@dataclass(slots=True)
class MutationResult:
    """Outcome of one mutation; ``state`` leaves ``PENDING`` exactly once."""

    operation: str
    state: MutationState = MutationState.PENDING
    slots: list[TimeSlot] = field(default_factory=list)
    error: Optional[QuarterHourError] = None

    @property
    def ok(self) -> bool:
        return self.state in (MutationState.COMMITTED, MutationState.UNCHANGED)


@dataclass(slots=True)
class _Pending:
    before: tuple[TimeSlot, ...]
    applied: tuple[TimeSlot, ...]
    keys: frozenset[SlotKey]
    undo: list[Undo] = field(default_factory=list)
    needs_refresh: bool = False

    @property
    def days(self) -> list[date]:
        return sorted({day for day, _tick in self.keys})


RemoteCall = Callable[[_Pending], Awaitable[list[TimeSlot]]]


class SlotMutationEngine(QObject):
    """Applies slot changes locally first, then confirms them with the remote store.

    Every public mutation returns a :class:`MutationResult` and never raises:
    local precondition failures are rejected before the store is touched,
    remote failures restore the affected records, and duplicate-slot
    rejections discard the optimistic records and reload the date.
    """

    slots_changed: Signal = Signal()
    notification: Signal = Signal(object)

    def __init__(
        self,
        store: SlotStore,
        confirm_note_loss: NoteLossConfirmer | None = None,
        logger: logging.Logger | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._store = store
        self._remote = store.remote
        self._confirm_note_loss = confirm_note_loss
        self._logger = logger or logging.getLogger("quarterhour.mutations")
        self._in_flight: set[SlotKey] = set()

    # ------------------------------------------------------------------
    # Reads
    @property
    def store(self) -> SlotStore:
        return self._store

    def entries_for(self, day: date) -> list[TimeEntry]:
        return reduce_entries(self._store.slots_for(day))

    def is_busy(self, day: date, time_slot: float) -> bool:
        return (day, time_slot) in self._in_flight

    async def load(self, start: date, end: date | None = None) -> bool:
        try:
            await self._store.load(start, end)
        except LoadError as exc:
            self._notify(NotificationLevel.ERROR, "Failed to load time slots", exc)
            return False
        self.slots_changed.emit()
        return True

    def discard_project(self, project_id: ProjectId) -> int:
        """Drop the local slots of a project the remote store has already deleted."""
        doomed = [slot.id for slot in self._store.all_slots() if slot.project_id == project_id]
        if doomed:
            self._store.remove_local(doomed)
            self._logger.info(
                "Discarded slots of deleted project",
                extra={"event": "mutation_project_discarded", "project_id": str(project_id), "count": len(doomed)},
            )
            self.slots_changed.emit()
        return len(doomed)

    # ------------------------------------------------------------------
    # Mutations
    async def toggle_slot(
        self,
        project_id: ProjectId,
        day: date,
        time_slot: float,
        policy: ClaimPolicy = ClaimPolicy.REJECT,
    ) -> MutationResult:
        """Paint one quarter hour on, or off when the project already owns it."""
        result = MutationResult("toggle_slot")
        try:
            self._check_project(project_id)
            self._check_tick(time_slot)
            existing = self._store.find_at(day, time_slot)
            self._check_idle([(day, time_slot)])
            if existing is not None and existing.project_id != project_id:
                if policy is ClaimPolicy.SKIP:
                    result.state = MutationState.UNCHANGED
                    return result
                if policy is ClaimPolicy.REPLACE:
                    return await self.replace_slot(existing.id, project_id)
                raise ValidationError(f"{format_time_slot(time_slot)} is already booked for another project")
        except ValidationError as exc:
            return self._reject(result, exc)

        if existing is not None:
            pending = self._begin(before=[existing], applied=[])
            return await self._settle(
                result,
                pending,
                partial(self._remote_delete, [existing], []),
                success="Slot removed",
                failure="Failed to remove slot",
            )

        draft = TimeSlot(id=LocalId(), project_id=project_id, date=day, time_slot=time_slot)
        pending = self._begin(before=[], applied=[draft])
        return await self._settle(
            result,
            pending,
            partial(self._remote_insert, [draft]),
            success="Slot added",
            failure="Failed to add slot",
        )

    async def add_slots(
        self,
        project_id: ProjectId,
        day: date,
        start: float,
        end: float,
        policy: ClaimPolicy = ClaimPolicy.SKIP,
        *,
        confirm: NoteLossConfirmer | None = None,
    ) -> MutationResult:
        """Claim every quarter hour of ``[start, end)`` for ``project_id``.

        With ``SKIP`` only unbooked quarters are filled, so repeating the call is
        harmless. ``REPLACE`` also takes over quarters owned by other projects.
        """
        result = MutationResult("add_slots")
        try:
            self._check_project(project_id)
            self._check_range(start, end)
            inserts: list[TimeSlot] = []
            taken_over: list[TimeSlot] = []
            for tick in iter_ticks(start, end):
                existing = self._store.find_at(day, tick)
                if existing is None:
                    inserts.append(TimeSlot(id=LocalId(), project_id=project_id, date=day, time_slot=tick))
                elif existing.project_id == project_id or policy is ClaimPolicy.SKIP:
                    continue
                elif policy is ClaimPolicy.REPLACE:
                    taken_over.append(existing)
                else:
                    raise ValidationError(f"{format_time_slot(tick)} is already booked for another project")
            if not inserts and not taken_over:
                result.state = MutationState.UNCHANGED
                return result
            self._check_idle([slot.key for slot in (*inserts, *taken_over)])
            for slot in taken_over:
                self._check_note_loss(slot, confirm)
        except ValidationError as exc:
            return self._reject(result, exc)

        replacements = [replace(slot, project_id=project_id, note=None) for slot in taken_over]
        pending = self._begin(before=taken_over, applied=[*replacements, *inserts])
        count = len(inserts) + len(replacements)
        return await self._settle(
            result,
            pending,
            partial(self._remote_claim, taken_over, project_id, inserts),
            success=f"Added {count} slot{'s' if count != 1 else ''}",
            failure="Failed to add slots",
        )

    async def replace_slot(
        self,
        slot_id: SlotId,
        new_project_id: ProjectId,
        *,
        confirm: NoteLossConfirmer | None = None,
    ) -> MutationResult:
        """Hand one quarter hour to another project without it ever appearing empty.

        The slot keeps its identity; its note is dropped, so a noted slot is only
        replaced after the confirmer agrees.
        """
        result = MutationResult("replace_slot")
        try:
            self._check_project(new_project_id)
            slot = self._require_slot(slot_id)
            if slot.project_id == new_project_id:
                result.state = MutationState.UNCHANGED
                return result
            self._check_idle([slot.key])
            self._check_note_loss(slot, confirm)
        except ValidationError as exc:
            return self._reject(result, exc)

        updated = replace(slot, project_id=new_project_id, note=None)
        pending = self._begin(before=[slot], applied=[updated])
        return await self._settle(
            result,
            pending,
            partial(self._remote_claim, [slot], new_project_id, []),
            success="Slot replaced",
            failure="Failed to replace slot",
        )

    async def delete_slots(self, day: date, start: float, end: float) -> MutationResult:
        """Clear ``[start, end)`` on ``day``, moving orphaned entry notes forward."""
        result = MutationResult("delete_slots")
        try:
            self._check_range(start, end)
            day_slots = self._store.slots_for(day)
            doomed = [slot for slot in day_slots if in_range(slot.time_slot, start, end)]
            if not doomed:
                result.state = MutationState.UNCHANGED
                return result
            transfers = self._note_transfers(day_slots, start, end)
            self._check_idle([slot.key for slot in (*doomed, *(old for old, _new in transfers))])
        except ValidationError as exc:
            return self._reject(result, exc)

        pending = self._begin(
            before=[*doomed, *(old for old, _new in transfers)],
            applied=[new for _old, new in transfers],
        )
        count = len(doomed)
        return await self._settle(
            result,
            pending,
            partial(self._remote_delete, doomed, transfers),
            success=f"Removed {count} slot{'s' if count != 1 else ''}",
            failure="Failed to delete slots",
        )

    async def delete_entry(self, entry_id: SlotId) -> MutationResult:
        result = MutationResult("delete_entry")
        try:
            entry = find_entry(self._store.all_slots(), entry_id)
            if entry is None:
                raise ValidationError(f"Unknown entry: {entry_id}")
            doomed = [self._require_slot(slot_id) for slot_id in entry.slot_ids]
            self._check_idle([slot.key for slot in doomed])
        except ValidationError as exc:
            return self._reject(result, exc)

        pending = self._begin(before=doomed, applied=[])
        return await self._settle(
            result,
            pending,
            partial(self._remote_delete, doomed, []),
            success="Time entry deleted",
            failure="Failed to delete time entry",
        )

    async def update_note(self, slot_id: SlotId, text: str | None) -> MutationResult:
        """Set a slot's note; blank text clears it to ``None``."""
        result = MutationResult("update_note")
        note = (text or "").strip() or None
        try:
            slot = self._require_slot(slot_id)
            if slot.note == note:
                result.state = MutationState.UNCHANGED
                return result
            self._check_idle([slot.key])
        except ValidationError as exc:
            return self._reject(result, exc)

        updated = replace(slot, note=note)
        pending = self._begin(before=[slot], applied=[updated])
        return await self._settle(
            result,
            pending,
            partial(self._remote_notes, [(slot, updated)]),
            success="Note saved" if note else "Note cleared",
            failure="Failed to save note",
        )

    # ------------------------------------------------------------------
    # Preconditions
    def _check_project(self, project_id: ProjectId) -> None:
        if is_pending(project_id):
            raise ValidationError("The project is still being created")

    def _check_tick(self, time_slot: float) -> None:
        if not is_valid_tick(time_slot):
            raise ValidationError(f"Invalid time slot: {time_slot!r}")

    def _check_range(self, start: float, end: float) -> None:
        self._check_tick(start)
        if not is_quantized(end) or end > DAY_HOURS:
            raise ValidationError(f"Invalid range end: {end!r}")
        if end <= start:
            raise ValidationError("Range end must be after its start")

    def _check_idle(self, keys: Iterable[SlotKey]) -> None:
        busy = [key for key in keys if key in self._in_flight]
        if busy:
            day, tick = busy[0]
            raise ValidationError(
                f"A change to {format_time_slot(tick)} on {day.isoformat()} is still in progress"
            )

    def _check_note_loss(self, slot: TimeSlot, confirm: NoteLossConfirmer | None) -> None:
        if not slot.note:
            return
        confirmer = confirm or self._confirm_note_loss
        if confirmer is None or not confirmer(slot):
            raise ValidationError("Replacing this slot would discard its note")

    def _require_slot(self, slot_id: SlotId) -> TimeSlot:
        slot = self._store.get(slot_id)
        if slot is None:
            raise ValidationError(f"Unknown slot: {slot_id}")
        return slot

    def _note_transfers(
        self, day_slots: Sequence[TimeSlot], start: float, end: float
    ) -> list[tuple[TimeSlot, TimeSlot]]:
        """Pair each surviving slot that inherits a note with its updated copy."""
        by_id = {slot.id: slot for slot in day_slots}
        transfers: list[tuple[TimeSlot, TimeSlot]] = []
        for entry in reduce_entries(day_slots):
            if not entry.note or not in_range(entry.start_time, start, end):
                continue
            survivors = [
                by_id[slot_id] for slot_id in entry.slot_ids if not in_range(by_id[slot_id].time_slot, start, end)
            ]
            if not survivors:
                continue
            heir = survivors[0]
            note = entry.note if not heir.note else f"{entry.note}; {heir.note}"
            transfers.append((heir, replace(heir, note=note)))
        return transfers

    # ------------------------------------------------------------------
    # Optimistic lifecycle
    def _begin(self, before: Sequence[TimeSlot], applied: Sequence[TimeSlot]) -> _Pending:
        pending = _Pending(
            before=tuple(before),
            applied=tuple(applied),
            keys=frozenset(slot.key for slot in (*before, *applied)),
        )
        self._in_flight.update(pending.keys)
        kept_ids = {slot.id for slot in pending.applied}
        self._store.remove_local(slot.id for slot in pending.before if slot.id not in kept_ids)
        for slot in pending.applied:
            self._store.upsert_local(slot)
        self.slots_changed.emit()
        return pending

    async def _settle(
        self,
        result: MutationResult,
        pending: _Pending,
        remote_call: RemoteCall,
        *,
        success: str,
        failure: str,
    ) -> MutationResult:
        try:
            try:
                confirmed = await remote_call(pending)
            except DuplicateSlotError as exc:
                await self._resolve_conflict(result, pending, exc)
            except Exception as exc:
                await self._resolve_failure(result, pending, exc, failure)
            else:
                self._commit(pending, confirmed)
                result.state = MutationState.COMMITTED
                result.slots = confirmed
                self._logger.info(
                    "Mutation committed",
                    extra={"event": "mutation_committed", "operation": result.operation, "count": len(pending.keys)},
                )
                self._notify(NotificationLevel.SUCCESS, success)
        finally:
            self._in_flight.difference_update(pending.keys)
        return result

    def _commit(self, pending: _Pending, confirmed: Sequence[TimeSlot]) -> None:
        # Anything this mutation touched that the store did not confirm is gone remotely.
        confirmed_ids = {slot.id for slot in confirmed}
        self._store.remove_local(
            slot.id for slot in (*pending.applied, *pending.before) if slot.id not in confirmed_ids
        )
        for slot in confirmed:
            self._store.upsert_local(slot)
        self.slots_changed.emit()

    def _rollback(self, pending: _Pending) -> None:
        self._store.remove_local(slot.id for slot in pending.applied)
        for slot in pending.before:
            self._store.upsert_local(slot)
        self.slots_changed.emit()

    async def _compensate(self, pending: _Pending) -> None:
        """Undo the remote steps that succeeded before a later step failed."""
        for undo in reversed(pending.undo):
            try:
                await undo()
            except Exception:
                self._logger.warning(
                    "Failed to revert partial remote change",
                    exc_info=True,
                    extra={"event": "mutation_compensation_failed"},
                )
                pending.needs_refresh = True

    async def _refresh_days(self, pending: _Pending) -> None:
        for day in pending.days:
            try:
                await self._store.refresh(day, keep=(key for key in self._in_flight if key not in pending.keys))
            except LoadError as exc:
                self._notify(NotificationLevel.ERROR, "Failed to reload time slots", exc)
        self.slots_changed.emit()

    async def _resolve_failure(
        self, result: MutationResult, pending: _Pending, exc: Exception, message: str
    ) -> None:
        self._logger.error(
            "Mutation failed; rolling back",
            exc_info=exc,
            extra={"event": "mutation_rolled_back", "operation": result.operation},
        )
        await self._compensate(pending)
        self._rollback(pending)
        if pending.needs_refresh:
            await self._refresh_days(pending)
        error = MutationError(f"{message}: {exc}")
        error.__cause__ = exc
        result.state = MutationState.ROLLED_BACK
        result.error = error
        self._notify(NotificationLevel.ERROR, message, error)

    async def _resolve_conflict(self, result: MutationResult, pending: _Pending, exc: DuplicateSlotError) -> None:
        self._logger.warning(
            "Remote store rejected a duplicate slot; reloading",
            extra={"event": "mutation_conflict", "operation": result.operation, "dates": [d.isoformat() for d in pending.days]},
        )
        await self._compensate(pending)
        self._rollback(pending)
        await self._refresh_days(pending)
        error = ConflictError(f"Time slot was booked elsewhere: {exc}")
        error.__cause__ = exc
        result.state = MutationState.CONFLICT
        result.error = error
        self._notify(NotificationLevel.WARNING, "That time was already booked; slots reloaded", error)

    def _reject(self, result: MutationResult, exc: ValidationError) -> MutationResult:
        self._logger.info(
            "Mutation rejected",
            extra={"event": "mutation_rejected", "operation": result.operation, "reason": str(exc)},
        )
        result.state = MutationState.REJECTED
        result.error = exc
        self._notify(NotificationLevel.WARNING, str(exc), exc)
        return result

    def _notify(self, level: NotificationLevel, message: str, error: QuarterHourError | None = None) -> None:
        self.notification.emit(Notification(level=level, message=message, error=error))

    # ------------------------------------------------------------------
    # Remote steps
    async def _remote_insert(self, drafts: Sequence[TimeSlot], pending: _Pending) -> list[TimeSlot]:
        return await self._remote.insert_slots([slot.as_draft() for slot in drafts])

    async def _remote_claim(
        self,
        taken_over: Sequence[TimeSlot],
        project_id: ProjectId,
        inserts: Sequence[TimeSlot],
        pending: _Pending,
    ) -> list[TimeSlot]:
        confirmed: list[TimeSlot] = []
        for slot in taken_over:
            confirmed.append(await self._remote.update_slot(slot.id, project_id=project_id, note=None))
            pending.undo.append(partial(self._remote.update_slot, slot.id, project_id=slot.project_id, note=slot.note))
        if inserts:
            confirmed.extend(await self._remote_insert(inserts, pending))
        return confirmed

    async def _remote_notes(
        self, changes: Sequence[tuple[TimeSlot, TimeSlot]], pending: _Pending
    ) -> list[TimeSlot]:
        confirmed: list[TimeSlot] = []
        for old, new in changes:
            confirmed.append(await self._remote.update_slot(new.id, note=new.note))
            pending.undo.append(partial(self._remote.update_slot, old.id, note=old.note))
        return confirmed

    async def _remote_delete(
        self,
        doomed: Sequence[TimeSlot],
        transfers: Sequence[tuple[TimeSlot, TimeSlot]],
        pending: _Pending,
    ) -> list[TimeSlot]:
        confirmed = await self._remote_notes(transfers, pending) if transfers else []
        await self._remote.delete_slots([slot.id for slot in doomed])
        return confirmed

"""Per-project hour totals and the filters behind the daily and statistics views."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from .models import Project, ProjectId, TimeEntry, TimeSlot
from .remote import in_date_range
from .settings import UserSettings

T = TypeVar("T", TimeSlot, TimeEntry)


@dataclass(slots=True)
class ProjectTotal:
    project_id: ProjectId
    hours: float
    project: Optional[Project] = None

    @property
    def name(self) -> str:
        return self.project.name if self.project else "Unknown Project"

    @property
    def archived(self) -> bool:
        return bool(self.project and self.project.archived)

    @property
    def pretty_total(self) -> str:
        minutes = int(round(self.hours * 60))
        hours, minutes = divmod(minutes, 60)
        chunks = []
        if hours:
            chunks.append(f"{hours}h")
        if minutes or not chunks:
            chunks.append(f"{minutes}m")
        return " ".join(chunks)


def filter_slots(slots: Iterable[T], start: date | None = None, end: date | None = None) -> list[T]:
    """Keep records dated within the inclusive ``[start, end]`` range."""
    return [record for record in slots if in_date_range(record.date, start, end)]


def _totals(
    projects: Sequence[Project],
    records: Iterable[T],
    duration: Callable[[T], float],
    *,
    start: date | None,
    end: date | None,
    include_archived: bool,
    hide_empty: bool,
) -> list[ProjectTotal]:
    known = {project.id: project for project in projects}
    # Every known project starts at zero so untouched projects still appear.
    accumulator: dict[ProjectId, float] = {project.id: 0.0 for project in projects}
    for record in filter_slots(records, start, end):
        accumulator[record.project_id] = accumulator.get(record.project_id, 0.0) + duration(record)

    totals = [
        ProjectTotal(project_id=project_id, hours=hours, project=known.get(project_id))
        for project_id, hours in accumulator.items()
    ]
    totals.sort(key=lambda total: -total.hours)
    if not include_archived:
        totals = [total for total in totals if total.project is not None and not total.project.archived]
    if hide_empty:
        totals = [total for total in totals if total.hours > 0]
    return totals


def project_totals(
    projects: Sequence[Project],
    slots: Iterable[TimeSlot],
    *,
    start: date | None = None,
    end: date | None = None,
    include_archived: bool = False,
    hide_empty: bool = False,
) -> list[ProjectTotal]:
    """Sum 0.25 h per slot for each project, largest total first.

    Ties keep the order in which projects were first seen. Archived projects,
    and slots whose project is unknown, are left out unless
    ``include_archived`` is set.
    """
    return _totals(
        projects,
        slots,
        lambda slot: slot.hours,
        start=start,
        end=end,
        include_archived=include_archived,
        hide_empty=hide_empty,
    )


def entry_totals(
    projects: Sequence[Project],
    entries: Iterable[TimeEntry],
    *,
    start: date | None = None,
    end: date | None = None,
    include_archived: bool = False,
    hide_empty: bool = False,
) -> list[ProjectTotal]:
    return _totals(
        projects,
        entries,
        lambda entry: entry.hours,
        start=start,
        end=end,
        include_archived=include_archived,
        hide_empty=hide_empty,
    )


def daily_totals(projects: Sequence[Project], slots: Iterable[TimeSlot], day: date) -> list[ProjectTotal]:
    """Totals for a single date: tracked projects only, archived ones included."""
    return project_totals(projects, slots, start=day, end=day, include_archived=True, hide_empty=True)


def total_hours(totals: Iterable[ProjectTotal]) -> float:
    return sum(total.hours for total in totals)


def slot_date_bounds(slots: Iterable[TimeSlot]) -> tuple[date, date] | None:
    dates = [slot.date for slot in slots]
    if not dates:
        return None
    return min(dates), max(dates)


def visible_hour_range(
    entries: Sequence[TimeEntry],
    settings: UserSettings,
    *,
    show_earlier: bool = False,
    show_later: bool = False,
) -> tuple[int, int]:
    """Whole hours the day grid should render.

    The configured day window is widened to cover every entry; asking for
    earlier or later hours opens the window to midnight on that side.
    """
    start = settings.day_start_hour
    end = settings.day_end_hour
    if entries:
        start = min(start, min(math.floor(entry.start_time) for entry in entries))
        end = max(end, max(math.ceil(entry.end_time) for entry in entries))
    if show_earlier:
        start = 0
    if show_later:
        end = 24
    return start, end

"""Application controller wiring the stores, engine and settings together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from .core.aggregation import (
    ProjectTotal,
    daily_totals,
    filter_slots,
    project_totals,
    slot_date_bounds,
    total_hours,
    visible_hour_range,
)
from .core.exceptions import LoadError, SettingsError
from .core.exporter import ExportOptions, default_export_filename, write_export
from .core.models import Project, TimeEntry
from .core.mutations import ClaimPolicy, MutationResult, Notification, SlotMutationEngine
from .core.paths import exports_dir
from .core.projects import ProjectCatalog
from .core.remote import RemoteStore
from .core.settings import SettingsManager, UserSettings
from .core.slot_store import SlotStore

LOGGER = logging.getLogger("quarterhour.app")


@dataclass(slots=True)
class DayView:
    day: date
    entries: list[TimeEntry]
    totals: list[ProjectTotal]
    hour_range: tuple[int, int]

    @property
    def total_hours(self) -> float:
        return sum(entry.hours for entry in self.entries)


@dataclass(slots=True)
class StatisticsView:
    start: date | None
    end: date | None
    totals: list[ProjectTotal]
    first_tracked: date | None = None
    last_tracked: date | None = None

    @property
    def total_hours(self) -> float:
        return total_hours(self.totals)


class ApplicationController:
    """One user's session: projects, the loaded slots and their settings."""

    def __init__(
        self,
        remote: RemoteStore,
        settings_manager: SettingsManager | None = None,
        on_notification: Callable[[Notification], None] | None = None,
        confirm_note_loss: Callable[..., bool] | None = None,
    ) -> None:
        self._remote = remote
        self._settings_manager = settings_manager or SettingsManager()
        self._catalog = ProjectCatalog(remote)
        self._store = SlotStore(remote)
        self._engine = SlotMutationEngine(self._store, confirm_note_loss=confirm_note_loss)
        self._catalog.project_deleted.connect(self._engine.discard_project)
        if on_notification is not None:
            self._catalog.notification.connect(on_notification)
            self._engine.notification.connect(on_notification)
        try:
            self._settings = self._settings_manager.load()
        except SettingsError:
            LOGGER.exception("Failed to load settings; using defaults")
            self._settings = UserSettings()

    # ------------------------------------------------------------------
    @property
    def catalog(self) -> ProjectCatalog:
        return self._catalog

    @property
    def engine(self) -> SlotMutationEngine:
        return self._engine

    @property
    def settings(self) -> UserSettings:
        return self._settings

    async def open_day(self, day: date) -> DayView:
        await self._catalog.load()
        await self._engine.load(day)
        return self.day_view(day)

    def day_view(self, day: date, *, show_earlier: bool = False, show_later: bool = False) -> DayView:
        entries = self._engine.entries_for(day)
        return DayView(
            day=day,
            entries=entries,
            totals=daily_totals(self._catalog.projects, self._store.slots_for(day), day),
            hour_range=visible_hour_range(entries, self._settings, show_earlier=show_earlier, show_later=show_later),
        )

    async def statistics(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        include_archived: bool = False,
        remember_range: bool = False,
    ) -> StatisticsView:
        """Totals over a date range; without bounds the saved range is used."""
        if remember_range:
            self.update_settings(stats_start_date=start, stats_end_date=end)
        elif start is None and end is None:
            start, end = self._settings.stats_start_date, self._settings.stats_end_date

        await self._catalog.load()
        slots = await self._remote.select_slots()
        view = StatisticsView(
            start=start,
            end=end,
            totals=project_totals(
                self._catalog.projects, slots, start=start, end=end, include_archived=include_archived
            ),
        )
        bounds = slot_date_bounds(slots)
        if bounds is not None:
            view.first_tracked, view.last_tracked = bounds
        return view

    async def export(self, options: ExportOptions, output: Path | None = None, *, today: date | None = None) -> Path:
        await self._catalog.load()
        try:
            slots = filter_slots(await self._remote.select_slots(), options.start, options.end)
        except Exception as exc:
            LOGGER.exception("Export failed while loading slots", extra={"event": "export_load_failed"})
            raise LoadError("Unable to load slots for export") from exc
        target = output or exports_dir() / default_export_filename(options, today or date.today())
        write_export(slots, self._catalog.projects, options, target)
        LOGGER.info(
            "Export written",
            extra={"event": "export_written", "path": str(target), "mode": options.mode.value, "count": len(slots)},
        )
        return target

    def update_settings(self, **changes) -> UserSettings:
        self._settings = self._settings_manager.update(**changes)
        return self._settings

    # ------------------------------------------------------------------
    def find_project(self, name: str) -> Optional[Project]:
        wanted = name.strip().lower()
        for project in self._catalog.projects:
            if project.name.lower() == wanted:
                return project
        return None

    async def paint(
        self, project: Project, day: date, start: float, end: float, *, replace: bool = False
    ) -> MutationResult:
        await self._engine.load(day)
        policy = ClaimPolicy.REPLACE if replace else ClaimPolicy.SKIP
        return await self._engine.add_slots(project.id, day, start, end, policy)

    async def clear(self, day: date, start: float, end: float) -> MutationResult:
        await self._engine.load(day)
        return await self._engine.delete_slots(day, start, end)

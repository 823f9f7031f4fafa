"""Summary and detailed exports of tracked slots."""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Sequence

from .models import Project, ProjectId, TimeSlot
from .time_slots import SLOT_HOURS, format_time_slot

UNKNOWN_PROJECT_LABEL = "Unknown Project"
NOTES_SEPARATOR = "; "


class ExportMode(Enum):
    SUMMARY = "summary"
    DETAILED = "detailed"


class ExportFormat(Enum):
    CSV = "csv"
    JSON = "json"
    EXCEL = "excel"


_EXTENSIONS = {ExportFormat.CSV: "csv", ExportFormat.JSON: "json", ExportFormat.EXCEL: "xlsx"}


@dataclass(frozen=True)
class ExportOptions:
    mode: ExportMode = ExportMode.SUMMARY
    format: ExportFormat = ExportFormat.CSV
    start: date | None = None
    end: date | None = None


@dataclass
class ExportTable:
    columns: list[str]
    rows: list[dict[str, object]]


def sort_for_export(slots: Sequence[TimeSlot]) -> list[TimeSlot]:
    return sorted(slots, key=lambda slot: (slot.date, slot.time_slot))


def generate_export_table(slots: Sequence[TimeSlot], projects: Sequence[Project], mode: ExportMode) -> ExportTable:
    lookup = {project.id: project for project in projects}
    if mode is ExportMode.SUMMARY:
        return _generate_summary_table(slots, lookup)
    if mode is ExportMode.DETAILED:
        return _generate_detailed_table(slots, lookup)
    raise ValueError(f"Unsupported export mode: {mode}")


def write_export(
    slots: Sequence[TimeSlot],
    projects: Sequence[Project],
    options: ExportOptions,
    path: Path,
    *,
    exported_at: datetime | None = None,
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if options.format is ExportFormat.JSON:
        _write_json(build_json_document(slots, projects, exported_at=exported_at), path)
        return
    table = generate_export_table(slots, projects, options.mode)
    if options.format is ExportFormat.CSV:
        _write_csv(table, path)
        return
    if options.format is ExportFormat.EXCEL:
        _write_excel(table, options, path)
        return
    raise ValueError(f"Unsupported export format: {options.format}")


def default_export_filename(options: ExportOptions, today: date) -> str:
    stamp = today.isoformat()
    extension = _EXTENSIONS[options.format]
    if options.format is ExportFormat.JSON:
        return f"time-tracking-{stamp}.{extension}"
    return f"time-tracking-{options.mode.value}-{stamp}.{extension}"


def build_json_document(
    slots: Sequence[TimeSlot],
    projects: Sequence[Project],
    *,
    exported_at: datetime | None = None,
) -> dict[str, object]:
    lookup = {project.id: project for project in projects}
    moment = exported_at or datetime.now().astimezone()
    return {
        "exportDate": moment.isoformat(timespec="seconds"),
        "totalSlots": len(slots),
        "totalHours": len(slots) * SLOT_HOURS,
        "slots": [
            {
                "date": slot.date.isoformat(),
                "project": {
                    "id": str(slot.project_id),
                    "name": _project_name(lookup, slot.project_id),
                    "color": lookup[slot.project_id].color if slot.project_id in lookup else None,
                },
                "startTime": format_time_slot(slot.time_slot),
                "endTime": format_time_slot(slot.end_time),
                "timeSlotNumber": slot.time_slot,
                "hours": SLOT_HOURS,
                "note": slot.note or None,
            }
            for slot in sort_for_export(slots)
        ],
    }


# ---------------------------------------------------------------------------
# Table builders

def _generate_summary_table(slots: Sequence[TimeSlot], lookup: dict[ProjectId, Project]) -> ExportTable:
    columns = ["Date", "Project", "Hours", "Notes"]
    grouped: dict[tuple[date, ProjectId], tuple[float, list[str]]] = {}
    for slot in sort_for_export(slots):
        hours, notes = grouped.get((slot.date, slot.project_id), (0.0, []))
        if slot.note:
            notes.append(slot.note)
        grouped[(slot.date, slot.project_id)] = (hours + SLOT_HOURS, notes)

    rows: list[dict[str, object]] = []
    for (day, project_id), (hours, notes) in grouped.items():
        rows.append(
            {
                "Date": day.isoformat(),
                "Project": _project_name(lookup, project_id),
                "Hours": hours,
                "Notes": NOTES_SEPARATOR.join(notes),
            }
        )
    return ExportTable(columns=columns, rows=rows)


def _generate_detailed_table(slots: Sequence[TimeSlot], lookup: dict[ProjectId, Project]) -> ExportTable:
    columns = ["Date", "Project", "Start Time", "End Time", "Note"]
    rows = [
        {
            "Date": slot.date.isoformat(),
            "Project": _project_name(lookup, slot.project_id),
            "Start Time": format_time_slot(slot.time_slot),
            "End Time": format_time_slot(slot.end_time),
            "Note": slot.note or "",
        }
        for slot in sort_for_export(slots)
    ]
    return ExportTable(columns=columns, rows=rows)


def _project_name(lookup: dict[ProjectId, Project], project_id: ProjectId) -> str:
    project = lookup.get(project_id)
    return project.name if project else UNKNOWN_PROJECT_LABEL


# ---------------------------------------------------------------------------
# Writers

def _write_csv(table: ExportTable, path: Path) -> None:
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=table.columns, quoting=csv.QUOTE_ALL)
        writer.writeheader()
        for row in table.rows:
            writer.writerow({column: row.get(column, "") for column in table.columns})


def _write_json(document: dict[str, object], path: Path) -> None:
    with path.open("w", encoding="utf-8") as handle:
        json.dump(document, handle, indent=2, ensure_ascii=False)
        handle.write("\n")


def _write_excel(table: ExportTable, options: ExportOptions, path: Path) -> None:
    from openpyxl import Workbook  # type: ignore[import]
    from openpyxl.utils import get_column_letter  # type: ignore[import]

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Data"

    sheet.append(table.columns)
    for row in table.rows:
        sheet.append([row.get(column, "") for column in table.columns])

    for index, column_name in enumerate(table.columns, start=1):
        max_length = len(str(column_name))
        for row in table.rows:
            max_length = max(max_length, len(str(row.get(column_name, ""))))
        sheet.column_dimensions[get_column_letter(index)].width = max(10, min(max_length + 2, 60))

    metadata = workbook.create_sheet("Metadata")
    metadata.append(["Mode", options.mode.value])
    metadata.append(["Start", options.start.isoformat() if options.start else ""])
    metadata.append(["End", options.end.isoformat() if options.end else ""])
    metadata.append(["Rows", len(table.rows)])

    workbook.save(path)

"""Table model listing the derived entries of the selected day."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from ..core.models import Project, SlotId, TimeEntry, is_pending
from ..core.time_slots import format_time_slot


@dataclass(slots=True)
class EntryRow:
    entry: TimeEntry
    project: Project | None

    @property
    def project_name(self) -> str:
        return self.project.name if self.project else "Unknown Project"

    @property
    def is_saving(self) -> bool:
        return any(is_pending(slot_id) for slot_id in self.entry.slot_ids)


class EntriesTableModel(QAbstractTableModel):
    HEADERS = ("Project", "Start", "End", "Hours", "Note")

    def __init__(self) -> None:
        super().__init__()
        self._rows: List[EntryRow] = []

    # ------------------------------------------------------------------
    def rowCount(self, parent: QModelIndex | None = None) -> int:  # type: ignore[override]
        if parent and parent.isValid():
            return 0
        return len(self._rows)

    def columnCount(self, parent: QModelIndex | None = None) -> int:  # type: ignore[override]
        return len(self.HEADERS)

    def data(self, index: QModelIndex, role: int = Qt.DisplayRole):  # type: ignore[override]
        if not index.isValid() or not (0 <= index.row() < len(self._rows)):
            return None
        row = self._rows[index.row()]
        entry = row.entry

        if role == Qt.DisplayRole:
            column = index.column()
            if column == 0:
                return f"{row.project_name} (saving)" if row.is_saving else row.project_name
            if column == 1:
                return format_time_slot(entry.start_time)
            if column == 2:
                return format_time_slot(entry.end_time)
            if column == 3:
                return f"{entry.hours:g}"
            if column == 4:
                return entry.note or ""
        if role == Qt.ToolTipRole and index.column() == 4 and entry.note:
            return entry.note
        if role == Qt.TextAlignmentRole and index.column() == 3:
            return int(Qt.AlignRight | Qt.AlignVCenter)
        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole):  # type: ignore[override]
        if role != Qt.DisplayRole:
            return None
        if orientation == Qt.Horizontal and 0 <= section < len(self.HEADERS):
            return self.HEADERS[section]
        return None

    def flags(self, index: QModelIndex):  # type: ignore[override]
        return Qt.ItemIsSelectable | Qt.ItemIsEnabled

    # ------------------------------------------------------------------
    def update_entries(self, entries: Sequence[TimeEntry], projects: Sequence[Project]) -> None:
        lookup = {project.id: project for project in projects}
        rows = [EntryRow(entry=entry, project=lookup.get(entry.project_id)) for entry in entries]
        self.beginResetModel()
        self._rows = rows
        self.endResetModel()

    def entry_for_row(self, row: int) -> EntryRow | None:
        if 0 <= row < len(self._rows):
            return self._rows[row]
        return None

    def row_index_for_entry(self, entry_id: SlotId) -> int | None:
        for index, row in enumerate(self._rows):
            if row.entry.id == entry_id:
                return index
        return None

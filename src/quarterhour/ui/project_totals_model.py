"""Table model for per-project hour totals."""

from __future__ import annotations

from typing import List, Sequence

from PySide6.QtCore import QAbstractTableModel, QModelIndex, Qt

from ..core.aggregation import ProjectTotal, total_hours


class ProjectTotalsModel(QAbstractTableModel):
    HEADERS = ("Project", "Hours", "Total")

    def __init__(self) -> None:
        super().__init__()
        self._rows: List[ProjectTotal] = []

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

        if role == Qt.DisplayRole:
            if index.column() == 0:
                return f"{row.name} (archived)" if row.archived else row.name
            if index.column() == 1:
                return f"{row.hours:g}"
            if index.column() == 2:
                return row.pretty_total
        if role == Qt.UserRole and row.project is not None:
            return row.project.color
        if role == Qt.TextAlignmentRole and index.column() != 0:
            return int(Qt.AlignRight | Qt.AlignVCenter)
        return None

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.DisplayRole):  # type: ignore[override]
        if role != Qt.DisplayRole:
            return None
        if orientation == Qt.Horizontal and 0 <= section < len(self.HEADERS):
            return self.HEADERS[section]
        return None

    def update_rows(self, rows: Sequence[ProjectTotal]) -> None:
        self.beginResetModel()
        self._rows = list(rows)
        self.endResetModel()

    def totals(self) -> list[ProjectTotal]:
        return list(self._rows)

    def grand_total(self) -> float:
        return total_hours(self._rows)

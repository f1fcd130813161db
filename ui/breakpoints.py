from __future__ import annotations

from typing import Optional

from PyQt6.QtCore import QAbstractTableModel, QModelIndex, QObject, Qt
from PyQt6.QtGui import QColor
from PyQt6.QtWidgets import (
    QComboBox,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QSpinBox,
    QWidget,
)

from core.cpu import MAX_VALUE, MIN_VALUE
from ui.session import WATCH_OPS, WATCH_REGISTERS, BreakKind, Breakpoint, BreakpointSet

ENABLED_COLUMN = 0
REMOVE_COLUMN = 4

DIM = QColor("#6272a4")
ONCE = QColor("#ffb86c")
ORPHAN = QColor("#ff5555")


class BreakpointsTableModel(QAbstractTableModel):
    headers = ["On", "Kind", "Where", "Hits", ""]

    def __init__(self, breakpoints: BreakpointSet, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.breakpoints = breakpoints
        self._rows: list[Breakpoint] = breakpoints.items()
        breakpoints.on_change(self.reload)

    def reload(self) -> None:
        self.beginResetModel()
        self._rows = self.breakpoints.items()
        self.endResetModel()

    def row(self, index: int) -> Optional[Breakpoint]:
        return self._rows[index] if 0 <= index < len(self._rows) else None

    def rowCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(self._rows)

    def columnCount(self, parent: QModelIndex = QModelIndex()) -> int:  # type: ignore[override]
        return 0 if parent.isValid() else len(self.headers)

    def headerData(self, section: int, orientation: Qt.Orientation, role: int = Qt.ItemDataRole.DisplayRole):
        if orientation == Qt.Orientation.Horizontal and role == Qt.ItemDataRole.DisplayRole:
            return self.headers[section]
        return None

    def flags(self, index: QModelIndex) -> Qt.ItemFlag:  # type: ignore[override]
        flags = Qt.ItemFlag.ItemIsEnabled | Qt.ItemFlag.ItemIsSelectable
        if index.column() == ENABLED_COLUMN:
            flags |= Qt.ItemFlag.ItemIsUserCheckable
        return flags

    def _text(self, bp: Breakpoint, column: int) -> Optional[str]:
        if column == 1:
            return bp.kind.value
        if column == 2:
            if bp.kind is not BreakKind.WATCH and not self.breakpoints.has_code(bp.line):
                return f"{bp.where} (no code)"
            return bp.where
        if column == 3:
            return str(bp.hits)
        if column == REMOVE_COLUMN:
            return "Remove"
        return None

    def _color(self, bp: Breakpoint) -> Optional[QColor]:
        if not bp.enabled:
            return DIM
        if bp.kind is BreakKind.ONCE:
            return ONCE
        if bp.kind is BreakKind.LINE and not self.breakpoints.has_code(bp.line):
            return ORPHAN
        return None

    def data(self, index: QModelIndex, role: int = Qt.ItemDataRole.DisplayRole):  # type: ignore[override]
        bp = self.row(index.row()) if index.isValid() else None
        if bp is None:
            return None
        if role == Qt.ItemDataRole.DisplayRole:
            return self._text(bp, index.column())
        if role == Qt.ItemDataRole.CheckStateRole and index.column() == ENABLED_COLUMN:
            return Qt.CheckState.Checked if bp.enabled else Qt.CheckState.Unchecked
        if role == Qt.ItemDataRole.ForegroundRole:
            return self._color(bp)
        return None

    def setData(self, index: QModelIndex, value, role: int = Qt.ItemDataRole.EditRole) -> bool:  # type: ignore[override]
        bp = self.row(index.row()) if index.isValid() else None
        if bp is None or index.column() != ENABLED_COLUMN or role != Qt.ItemDataRole.CheckStateRole:
            return False
        self.breakpoints.set_enabled(bp.id, Qt.CheckState(value) == Qt.CheckState.Checked)
        return True


class WatchDialog(QDialog):
    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWindowTitle("Add Watch")
        form = QFormLayout(self)

        self.register_box = QComboBox()
        self.register_box.addItems(WATCH_REGISTERS)
        self.op_box = QComboBox()
        self.op_box.addItems(list(WATCH_OPS))
        self.value_box = QSpinBox()
        self.value_box.setRange(MIN_VALUE, MAX_VALUE)

        form.addRow("Register", self.register_box)
        form.addRow("Is", self.op_box)
        form.addRow("Value", self.value_box)

        buttons = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok | QDialogButtonBox.StandardButton.Cancel)
        buttons.accepted.connect(self.accept)
        buttons.rejected.connect(self.reject)
        form.addRow(buttons)

    def ask(self) -> Optional[tuple[str, str, int]]:
        if self.exec() != QDialog.DialogCode.Accepted:
            return None
        return self.register_box.currentText(), self.op_box.currentText(), self.value_box.value()

from __future__ import annotations

import json
import os
from typing import Optional

from PyQt6.QtCore import QRect, QSize, Qt, QTimer, pyqtSignal
from PyQt6.QtGui import (
    QAction,
    QColor,
    QFont,
    QFontDatabase,
    QKeySequence,
    QPainter,
    QShortcut,
    QSyntaxHighlighter,
    QTextCharFormat,
    QTextCursor,
)
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QApplication,
    QDockWidget,
    QFileDialog,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QSpinBox,
    QSplitter,
    QTableView,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from core.cpu import REGISTER_ORDER
from core.emulator import StepOutcome
from core.instructions import get_instruction_defs
from core.parser import ParseError
from ui.breakpoints import REMOVE_COLUMN, BreakpointsTableModel, WatchDialog
from ui.session import BreakKind, Breakpoint, BreakpointSet, DebugSession

APP_TITLE = "ACC Debugger"
UNSAVED = "__unsaved__"
# instructions executed per "Run to Break" before control returns to the UI
RUN_TO_BREAK_BUDGET = 100_000

STYLE = """
QWidget { background-color: #1e1f29; color: #f8f8f2; }
QPlainTextEdit { background-color: #282a36; selection-background-color: #44475a; }
QTableWidget, QTableView { background-color: #1e1f29; gridline-color: #3c3f58; }
QHeaderView::section { background-color: #3c3f58; padding: 4px; }
QPushButton { padding: 4px 12px; }
"""

SYNTAX_COLORS = {
    "mnemonic": "#ff79c6",
    "register": "#bd93f9",
    "number": "#ffb86c",
    "label": "#50fa7b",
    "comment": "#6272a4",
}


def _char_format(color: str, bold: bool = False) -> QTextCharFormat:
    fmt = QTextCharFormat()
    fmt.setForeground(QColor(color))
    if bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    return fmt


class AccHighlighter(QSyntaxHighlighter):
    def __init__(self, document) -> None:
        super().__init__(document)
        self.formats = {
            kind: _char_format(color, bold=kind == "mnemonic") for kind, color in SYNTAX_COLORS.items()
        }
        self.mnemonics = {d.mnemonic for d in get_instruction_defs()} - {"LABEL", "NOP"}

    def classify(self, word: str) -> Optional[str]:
        upper = word.upper()
        if upper in self.mnemonics:
            return "mnemonic"
        if upper in ("ACC", "BAK"):
            return "register"
        if word.lstrip("+-").isdigit():
            return "number"
        if word.endswith(":"):
            return "label"
        return None

    def highlightBlock(self, text: str) -> None:
        if text.lstrip().startswith("#"):
            self.setFormat(0, len(text), self.formats["comment"])
            return
        pos = 0
        for token in text.split():
            pos = text.find(token, pos)
            word = token.rstrip(",")
            kind = self.classify(word)
            if kind:
                self.setFormat(pos, len(word), self.formats[kind])
            pos += len(token)


class Gutter(QWidget):
    def __init__(self, editor: "CodeEditor") -> None:
        super().__init__(editor)
        self.editor = editor

    def sizeHint(self) -> QSize:
        return QSize(self.editor.gutter_width(), 0)

    def paintEvent(self, event) -> None:
        self.editor.paint_gutter(event)

    def mousePressEvent(self, event) -> None:
        if event.button() != Qt.MouseButton.LeftButton:
            return
        line_no = self.editor.line_at(event.position().y())
        if line_no is not None:
            self.editor.gutter_clicked.emit(line_no)


class CodeEditor(QPlainTextEdit):
    gutter_clicked = pyqtSignal(int)

    MARK_WIDTH = 14

    def __init__(self, breakpoints: BreakpointSet, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.breakpoints = breakpoints
        self.gutter = Gutter(self)
        self.blockCountChanged.connect(self._fit_gutter)
        self.updateRequest.connect(self._scroll_gutter)
        breakpoints.on_change(self.gutter.update)
        self._fit_gutter()

    def gutter_width(self) -> int:
        digits = len(str(max(1, self.blockCount())))
        return self.MARK_WIDTH + 10 + self.fontMetrics().horizontalAdvance("9") * digits

    def _fit_gutter(self, *_args) -> None:
        self.setViewportMargins(self.gutter_width(), 0, 0, 0)

    def _scroll_gutter(self, rect: QRect, dy: int) -> None:
        if dy:
            self.gutter.scroll(0, dy)
        else:
            self.gutter.update(0, rect.y(), self.gutter.width(), rect.height())

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        area = self.contentsRect()
        self.gutter.setGeometry(QRect(area.left(), area.top(), self.gutter_width(), area.height()))

    def visible_lines(self):
        # (line number, top, bottom) per visible block, viewport coordinates
        block = self.firstVisibleBlock()
        top = self.blockBoundingGeometry(block).translated(self.contentOffset()).top()
        while block.isValid():
            bottom = top + self.blockBoundingRect(block).height()
            if block.isVisible():
                yield block.blockNumber() + 1, top, bottom
            block, top = block.next(), bottom

    def line_at(self, y: float) -> Optional[int]:
        for line_no, top, bottom in self.visible_lines():
            if top <= y <= bottom:
                return line_no
            if top > y:
                break
        return None

    def _draw_mark(self, painter: QPainter, bp: Breakpoint, center_y: int) -> None:
        color = QColor("#ffb86c" if bp.kind is BreakKind.ONCE else "#ff5555")
        if not bp.enabled:
            color = QColor("#6272a4")
        painter.setPen(color)
        painter.setBrush(color if bp.enabled else Qt.BrushStyle.NoBrush)
        painter.drawEllipse(self.MARK_WIDTH // 2 - 5, center_y - 5, 10, 10)

    def paint_gutter(self, event) -> None:
        painter = QPainter(self.gutter)
        painter.fillRect(event.rect(), QColor("#1e1f29"))
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        marks = self.breakpoints.by_line()
        row_height = self.fontMetrics().height()
        number_width = self.gutter.width() - self.MARK_WIDTH - 6
        for line_no, top, bottom in self.visible_lines():
            if top > event.rect().bottom():
                break
            if bottom < event.rect().top():
                continue
            if line_no in marks:
                self._draw_mark(painter, marks[line_no], int(top + row_height / 2))
            painter.setPen(QColor("#6272a4"))
            painter.drawText(
                self.MARK_WIDTH, int(top), number_width, row_height,
                Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter,
                str(line_no),
            )


class MainWindow(QMainWindow):
    def __init__(self, session: Optional[DebugSession] = None) -> None:
        super().__init__()
        self.resize(1100, 680)
        self.session = session or DebugSession()
        self.path: Optional[str] = None
        self.dirty = True
        self._refreshing = False
        self._shown_registers: dict[str, int] = {}
        self._saved_breakpoints = self._read_breakpoint_store()

        self.ticker = QTimer(self)
        self.ticker.timeout.connect(self._tick)

        self._build_ui()
        self._bind_keys()
        self.setStyleSheet(STYLE)
        self.session.breakpoints.on_change(self._store_breakpoints)
        self._set_path(None)
        self.refresh()

    # layout

    def _build_ui(self) -> None:
        menus = {name: self.menuBar().addMenu(name) for name in ("File", "Debug")}
        for menu, title, handler in [
            ("File", "New", self.new_file),
            ("File", "Open...", self.open_file),
            ("File", "Save", self.save_file),
            ("File", "Save As...", self.save_file_as),
            ("File", "Quit", self.close),
            ("Debug", "Toggle Breakpoint", self.toggle_breakpoint),
            ("Debug", "Run to Cursor", self.run_to_cursor),
            ("Debug", "Add Watch...", self.add_watch),
            ("Debug", "Clear Breakpoints", self.session.breakpoints.clear),
        ]:
            action = QAction(title, self)
            action.triggered.connect(handler)
            menus[menu].addAction(action)

        self.editor = CodeEditor(self.session.breakpoints)
        self.editor.setFont(self._mono_font())
        self.editor.textChanged.connect(self._on_edit)
        self.editor.gutter_clicked.connect(self._on_gutter_clicked)
        self.highlighter = AccHighlighter(self.editor.document())

        editor_pane = QWidget()
        editor_layout = QVBoxLayout(editor_pane)
        editor_layout.addLayout(self._build_toolbar())
        editor_layout.addWidget(self.editor)

        self.registers = QTableWidget(len(REGISTER_ORDER), 2)
        self.registers.setHorizontalHeaderLabels(["Register", "Value"])
        self.registers.setFont(self._mono_font())
        self.registers.cellChanged.connect(self._on_register_edited)

        self.labels = QTableWidget(0, 2)
        self.labels.setHorizontalHeaderLabels(["Label", "Line"])
        self.labels.cellDoubleClicked.connect(
            lambda row, _col: self._goto_line(int(self.labels.item(row, 1).text()))
        )

        reference = QTableWidget(0, 2)
        reference.setHorizontalHeaderLabels(["Syntax", "Meaning"])
        for defn in get_instruction_defs():
            row = reference.rowCount()
            reference.insertRow(row)
            reference.setItem(row, 0, QTableWidgetItem(defn.syntax or "(blank line)"))
            reference.setItem(row, 1, QTableWidgetItem(defn.summary))
        reference.resizeColumnToContents(0)

        for table in (self.registers, self.labels, reference):
            table.verticalHeader().setVisible(False)
            table.horizontalHeader().setStretchLastSection(True)
        for table in (self.labels, reference):
            table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)

        lookup = QTabWidget()
        lookup.addTab(self.labels, "Labels")
        lookup.addTab(reference, "Instructions")

        side_pane = QWidget()
        side_layout = QVBoxLayout(side_pane)
        side_layout.addWidget(QLabel("Registers"))
        side_layout.addWidget(self.registers)
        side_layout.addWidget(lookup)

        self.console = QPlainTextEdit()
        self.console.setReadOnly(True)
        self.console.setFont(self._mono_font())

        upper = QSplitter(Qt.Orientation.Horizontal)
        upper.addWidget(editor_pane)
        upper.addWidget(side_pane)
        upper.setSizes([780, 320])
        outer = QSplitter(Qt.Orientation.Vertical)
        outer.addWidget(upper)
        outer.addWidget(self.console)
        outer.setSizes([520, 160])
        self.setCentralWidget(outer)

        self.bp_model = BreakpointsTableModel(self.session.breakpoints, self)
        bp_view = QTableView()
        bp_view.setModel(self.bp_model)
        bp_view.verticalHeader().setVisible(False)
        bp_view.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        bp_view.clicked.connect(self._on_breakpoint_clicked)
        dock = QDockWidget("Breakpoints", self)
        dock.setWidget(bp_view)
        self.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)

        self.status_state = QLabel()
        self.status_where = QLabel()
        self.statusBar().addWidget(self.status_state)
        self.statusBar().addPermanentWidget(self.status_where)

    def _build_toolbar(self) -> QHBoxLayout:
        bar = QHBoxLayout()
        for text, tip, handler in [
            ("Run", "Run at the chosen speed (F5)", self.start),
            ("Pause", "Pause (Shift+F5)", self.stop),
            ("Step", "Execute one instruction (F10)", self.step),
            ("Run to Break", "Run at full speed to the next breakpoint (F8)", self.run_to_break),
            ("Reset", "Reset registers (Ctrl+Shift+F5)", self.reset),
        ]:
            button = QPushButton(text)
            button.setToolTip(tip)
            button.clicked.connect(handler)
            bar.addWidget(button)
        bar.addStretch(1)
        bar.addWidget(QLabel("Steps/s"))
        self.speed = QSpinBox()
        self.speed.setRange(1, 1000)
        self.speed.setValue(5)
        self.speed.valueChanged.connect(lambda value: self.ticker.setInterval(max(1, 1000 // value)))
        bar.addWidget(self.speed)
        return bar

    def _bind_keys(self) -> None:
        self._keys = []
        for keys, handler in {
            "F5": self.start,
            "Shift+F5": self.stop,
            "F8": self.run_to_break,
            "F9": self.toggle_breakpoint,
            "F10": self.step,
            "Ctrl+Shift+F5": self.reset,
        }.items():
            shortcut = QShortcut(QKeySequence(keys), self)
            shortcut.activated.connect(handler)
            self._keys.append(shortcut)

    def _mono_font(self) -> QFont:
        font = QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont)
        font.setPointSize(11)
        return font

    # files and breakpoint persistence

    @staticmethod
    def _store_path() -> str:
        root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        return os.path.join(root, ".accvm_breakpoints.json")

    def _read_breakpoint_store(self) -> dict[str, list]:
        try:
            with open(self._store_path(), encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _store_breakpoints(self) -> None:
        key = self.path or UNSAVED
        entries = self.session.breakpoints.dump()
        if self._saved_breakpoints.get(key, []) == entries:
            return
        self._saved_breakpoints[key] = entries
        try:
            with open(self._store_path(), "w", encoding="utf-8") as fh:
                json.dump(self._saved_breakpoints, fh, indent=2)
        except OSError as exc:
            self.log(f"Could not save breakpoints: {exc}")

    def _set_path(self, path: Optional[str]) -> None:
        self.path = os.path.abspath(path) if path else None
        self.setWindowTitle(f"{APP_TITLE} - {self.path}" if self.path else APP_TITLE)
        self.session.breakpoints.load(self._saved_breakpoints.get(self.path or UNSAVED, []))

    def open_path(self, path: str) -> bool:
        try:
            with open(path, encoding="utf-8") as fh:
                text = fh.read()
        except (OSError, UnicodeDecodeError) as exc:
            QMessageBox.warning(self, "Cannot open", str(exc))
            return False
        self.stop()
        self.editor.setPlainText(text)
        self._set_path(path)
        self.log(f"Opened {self.path}")
        return True

    def new_file(self) -> None:
        self.stop()
        self.editor.clear()
        self._set_path(None)

    def open_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open program", "", "Programs (*.asm *.txt);;All files (*)")
        if path:
            self.open_path(path)

    def save_file(self) -> None:
        if not self.path:
            self.save_file_as()
            return
        try:
            with open(self.path, "w", encoding="utf-8") as fh:
                fh.write(self.editor.toPlainText())
        except OSError as exc:
            QMessageBox.warning(self, "Cannot save", str(exc))
            return
        self.log(f"Saved {self.path}")

    def save_file_as(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, "Save program", "", "Programs (*.asm *.txt);;All files (*)")
        if not path:
            return
        entries = self.session.breakpoints.dump()
        self._set_path(path)
        self.session.breakpoints.load(entries)
        self.save_file()

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.ticker.stop()
        self._store_breakpoints()
        super().closeEvent(event)

    # execution

    def _on_edit(self) -> None:
        self.dirty = True

    def _ready(self) -> bool:
        if not self.dirty:
            return True
        try:
            program = self.session.load(self.editor.toPlainText())
        except ParseError as exc:
            self.session.state = "Error"
            self.log(f"Parse error on line {exc.line_no}: {exc.message}")
            self.refresh()
            return False
        self.dirty = False
        self._shown_registers = {}
        self._fill_labels()
        self.log(f"Loaded {len(program)} lines, {len(program.labels)} labels.")
        self.refresh()
        return True

    def start(self) -> None:
        if not self._ready():
            return
        if self.session.finished:
            self.log("Program has finished. Reset to run it again.")
            return
        self.session.state = "Running"
        self.ticker.setInterval(max(1, 1000 // self.speed.value()))
        self.ticker.start()
        self.refresh()

    def stop(self) -> None:
        self.ticker.stop()
        if self.session.state == "Running":
            self.session.state = "Paused"
        self.refresh()

    def step(self) -> None:
        self.ticker.stop()
        if not self._ready():
            return
        if self.session.finished:
            self.log("Program has finished. Reset to run it again.")
            return
        self._report(self.session.step())
        if self.session.state == "Ready":
            self.session.state = "Paused"
        self.refresh()

    def _tick(self) -> None:
        bp, outcome = self.session.advance()
        if bp is not None:
            self.ticker.stop()
            self.log(f"Breakpoint hit: {bp.where}")
        elif outcome is not None:
            self._report(outcome)
            if self.session.finished:
                self.ticker.stop()
        self.refresh()

    def run_to_break(self) -> None:
        self.ticker.stop()
        if not self._ready() or self.session.finished:
            return
        bp = self.session.run_to_break(RUN_TO_BREAK_BUDGET)
        if bp is not None:
            self.log(f"Breakpoint hit: {bp.where}")
        elif self.session.last_outcome is not None and self.session.finished:
            self._report(self.session.last_outcome)
        else:
            self.log(f"Paused after {RUN_TO_BREAK_BUDGET} steps.")
        self.refresh()

    def _report(self, outcome: StepOutcome) -> None:
        cpu = self.session.cpu
        if outcome.error:
            self.log(f"Error on line {outcome.error.line_no}: {outcome.error.message}")
            self.log(f"    {outcome.error.text.strip()}")
        elif outcome.halted:
            self.log(f"Halted. acc: {cpu.acc} bak: {cpu.bak}")

    def reset(self) -> None:
        self.ticker.stop()
        if self.dirty:
            self._ready()
            return
        self.session.reset()
        self._shown_registers = {}
        self.log("Machine reset.")
        self.refresh()

    # breakpoints

    def _cursor_line(self) -> int:
        return self.editor.textCursor().blockNumber() + 1

    def _on_gutter_clicked(self, line_no: int) -> None:
        self.session.breakpoints.toggle_line(line_no)

    def toggle_breakpoint(self) -> None:
        self.session.breakpoints.toggle_line(self._cursor_line())

    def run_to_cursor(self) -> None:
        self.session.breakpoints.break_once(self._cursor_line())
        if self.session.state != "Running":
            self.start()

    def add_watch(self) -> None:
        answer = WatchDialog(self).ask()
        if answer:
            self.session.breakpoints.watch(*answer)

    def _on_breakpoint_clicked(self, index) -> None:
        bp = self.bp_model.row(index.row())
        if bp is None:
            return
        if index.column() == REMOVE_COLUMN:
            self.session.breakpoints.remove(bp.id)
        elif bp.line is not None:
            self._goto_line(bp.line)

    # views

    def _goto_line(self, line_no: int) -> None:
        block = self.editor.document().findBlockByNumber(line_no - 1)
        if block.isValid():
            self.editor.setTextCursor(QTextCursor(block))
            self.editor.centerCursor()

    def _fill_labels(self) -> None:
        entries = sorted(self.session.program.labels.items(), key=lambda item: item[1])
        self.labels.setRowCount(len(entries))
        for row, (name, index) in enumerate(entries):
            self.labels.setItem(row, 0, QTableWidgetItem(name))
            self.labels.setItem(row, 1, QTableWidgetItem(str(index + 1)))

    def refresh(self) -> None:
        self._refreshing = True
        try:
            self._show_registers()
            self._mark_current_line()
            self.status_state.setText(self.session.state)
            line_no = self.session.current_line
            where = f"Line {line_no}" if line_no else "Line -"
            self.status_where.setText(f"{where} | PC {self.session.cpu.pc}")
        finally:
            self._refreshing = False

    def _show_registers(self) -> None:
        values = self.session.cpu.snapshot()
        for row, name in enumerate(REGISTER_ORDER):
            label = QTableWidgetItem(name)
            label.setFlags(Qt.ItemFlag.ItemIsEnabled)
            cell = QTableWidgetItem(str(values[name]))
            if name != "ACC":
                cell.setFlags(Qt.ItemFlag.ItemIsEnabled)
            if self._shown_registers.get(name, values[name]) != values[name]:
                cell.setBackground(QColor("#ffb86c"))
                cell.setForeground(QColor("#1a1b26"))
            self.registers.setItem(row, 0, label)
            self.registers.setItem(row, 1, cell)
        self._shown_registers = values

    def _mark_current_line(self) -> None:
        marks = []
        line_no = self.session.current_line
        block = self.editor.document().findBlockByNumber(line_no - 1) if line_no else None
        if block is not None and block.isValid():
            mark = QTextEdit.ExtraSelection()
            mark.cursor = QTextCursor(block)
            mark.cursor.select(QTextCursor.SelectionType.LineUnderCursor)
            mark.format.setBackground(QColor("#fff2cc"))
            mark.format.setForeground(QColor("#1e1f29"))
            marks.append(mark)
        self.editor.setExtraSelections(marks)

    def _on_register_edited(self, row: int, column: int) -> None:
        if self._refreshing or column != 1 or REGISTER_ORDER[row] != "ACC":
            return
        text = self.registers.item(row, column).text().strip()
        try:
            self.session.cpu.set_acc(int(text, 10))
        except ValueError:
            self.log(f"Not an integer: {text!r}")
        self.refresh()

    def log(self, message: str) -> None:
        self.console.appendPlainText(message)


def run_app(path: Optional[str] = None) -> None:
    app = QApplication.instance() or QApplication([])
    window = MainWindow()
    if path:
        window.open_path(path)
    window.show()
    app.exec()

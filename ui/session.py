from __future__ import annotations

import logging
import operator
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from core.cpu import MAX_VALUE, MIN_VALUE, CPUState
from core.emulator import Emulator, StepOutcome
from core.model import Program
from core.parser import parse_program

logger = logging.getLogger(__name__)

WATCH_REGISTERS = ("ACC", "BAK")
WATCH_OPS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    ">": operator.gt,
}


class BreakKind(Enum):
    LINE = "Line"
    ONCE = "Once"
    WATCH = "Watch"


@dataclass
class Breakpoint:
    id: int
    kind: BreakKind
    line: Optional[int] = None
    register: Optional[str] = None
    op: str = "=="
    value: int = 0
    enabled: bool = True
    hits: int = 0
    last_hit: Optional[float] = None

    @property
    def where(self) -> str:
        if self.kind is BreakKind.WATCH:
            return f"{self.register} {self.op} {self.value}"
        return f"line {self.line}"

    def matches(self, line_no: int, cpu: CPUState) -> bool:
        if not self.enabled:
            return False
        if self.kind is BreakKind.WATCH:
            return WATCH_OPS[self.op](cpu.get_reg(self.register or ""), self.value)
        return self.line == line_no

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "line": self.line,
            "register": self.register,
            "op": self.op,
            "value": self.value,
            "enabled": self.enabled,
        }


class BreakpointSet:
    def __init__(self) -> None:
        self._items: dict[int, Breakpoint] = {}
        self._next_id = 1
        self._code_lines: Optional[set[int]] = None
        self._listeners: List[Callable[[], None]] = []

    def on_change(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()

    def __len__(self) -> int:
        return len(self._items)

    def items(self) -> list[Breakpoint]:
        return sorted(self._items.values(), key=lambda bp: bp.id)

    def get(self, bp_id: int) -> Optional[Breakpoint]:
        return self._items.get(bp_id)

    def _add(self, kind: BreakKind, **attrs) -> Breakpoint:
        bp = Breakpoint(id=self._next_id, kind=kind, **attrs)
        self._next_id += 1
        self._items[bp.id] = bp
        self._notify()
        return bp

    def by_line(self) -> dict[int, Breakpoint]:
        # one-shot wins a tie
        marks: dict[int, Breakpoint] = {}
        for bp in self.items():
            if bp.kind is BreakKind.WATCH or bp.line is None:
                continue
            if bp.line not in marks or bp.kind is BreakKind.ONCE:
                marks[bp.line] = bp
        return marks

    def toggle_line(self, line: int) -> bool:
        for bp in self.items():
            if bp.kind is BreakKind.LINE and bp.line == line:
                self.remove(bp.id)
                return False
        self._add(BreakKind.LINE, line=line)
        return True

    def break_once(self, line: int) -> Breakpoint:
        for bp in self.items():
            if bp.kind is BreakKind.ONCE and bp.line == line:
                return bp
        return self._add(BreakKind.ONCE, line=line)

    def watch(self, register: str, op: str, value: int) -> Breakpoint:
        register = register.upper()
        if register not in WATCH_REGISTERS:
            raise ValueError(f"Cannot watch register {register}")
        if op not in WATCH_OPS:
            raise ValueError(f"Unknown comparison {op!r}")
        if not MIN_VALUE <= value <= MAX_VALUE:
            raise ValueError(f"Watch value {value} is outside {MIN_VALUE}..{MAX_VALUE}")
        return self._add(BreakKind.WATCH, register=register, op=op, value=value)

    def set_enabled(self, bp_id: int, enabled: bool) -> None:
        bp = self._items.get(bp_id)
        if bp and bp.enabled != enabled:
            bp.enabled = enabled
            self._notify()

    def remove(self, bp_id: int) -> None:
        if self._items.pop(bp_id, None) is not None:
            self._notify()

    def clear(self) -> None:
        self._items.clear()
        self._notify()

    def set_code_lines(self, lines: Optional[Iterable[int]]) -> None:
        self._code_lines = set(lines) if lines is not None else None
        self._notify()

    def has_code(self, line: Optional[int]) -> bool:
        if line is None:
            return False
        return self._code_lines is None or line in self._code_lines

    def find_hit(self, line_no: int, cpu: CPUState) -> Optional[Breakpoint]:
        for bp in self.items():
            if bp.kind is not BreakKind.WATCH and not self.has_code(bp.line):
                continue
            if bp.matches(line_no, cpu):
                return bp
        return None

    def record_hit(self, bp: Breakpoint) -> bool:
        # True when a one-shot breakpoint was consumed
        bp.hits += 1
        bp.last_hit = time.time()
        if bp.kind is BreakKind.ONCE:
            self._items.pop(bp.id, None)
            self._notify()
            return True
        self._notify()
        return False

    def dump(self) -> list[dict]:
        return [bp.to_dict() for bp in self.items() if bp.kind is not BreakKind.ONCE]

    def load(self, entries: Iterable[dict]) -> None:
        self._items.clear()
        for entry in entries:
            try:
                kind = BreakKind(entry["kind"])
            except (KeyError, ValueError):
                logger.warning("skipping unreadable breakpoint %r", entry)
                continue
            if kind is BreakKind.WATCH and (
                entry.get("register") not in WATCH_REGISTERS or entry.get("op") not in WATCH_OPS
            ):
                logger.warning("skipping unreadable watch %r", entry)
                continue
            bp = Breakpoint(
                id=self._next_id,
                kind=kind,
                line=entry.get("line"),
                register=entry.get("register"),
                op=entry.get("op", "=="),
                value=int(entry.get("value", 0)),
                enabled=bool(entry.get("enabled", True)),
            )
            self._next_id += 1
            self._items[bp.id] = bp
        self._notify()


class DebugSession:
    def __init__(self, breakpoints: Optional[BreakpointSet] = None) -> None:
        self.cpu = CPUState()
        self.program = Program(instructions=(), labels={})
        self.emulator = Emulator(self.cpu, self.program)
        self.breakpoints = breakpoints if breakpoints is not None else BreakpointSet()
        self.state = "Ready"
        self.last_outcome: Optional[StepOutcome] = None
        self._resume_from: Optional[int] = None

    def load(self, text: str, strict: bool = False) -> Program:
        # ParseError propagates; the previous program stays loaded
        program = parse_program(text, strict=strict)
        self.program = program
        self.emulator = Emulator(self.cpu, program)
        self.breakpoints.set_code_lines(
            instr.line_no for instr in program.instructions if instr.mnemonic != "NOP"
        )
        self.reset()
        return program

    def reset(self) -> None:
        self.emulator.reset()
        self.state = "Ready"
        self.last_outcome = None
        self._resume_from = None

    @property
    def finished(self) -> bool:
        return self.emulator.halted

    @property
    def current_line(self) -> Optional[int]:
        pc = self.cpu.pc
        if 0 <= pc < len(self.program.instructions):
            return self.program.instructions[pc].line_no
        return None

    def pending_break(self) -> Optional[Breakpoint]:
        # a breakpoint that already stopped us is ignored once so resuming moves past it
        line_no = self.current_line
        if line_no is None:
            return None
        bp = self.breakpoints.find_hit(line_no, self.cpu)
        if bp is None:
            return None
        if self._resume_from == bp.id:
            self._resume_from = None
            return None
        consumed = self.breakpoints.record_hit(bp)
        self._resume_from = None if consumed else bp.id
        self.state = "Paused"
        return bp

    def step(self) -> StepOutcome:
        self._resume_from = None
        outcome = self.emulator.step()
        self.last_outcome = outcome
        if outcome.error:
            self.emulator.halted = True
            self.state = "Error"
        elif outcome.halted:
            self.state = "Halted"
        return outcome

    def advance(self) -> tuple[Optional[Breakpoint], Optional[StepOutcome]]:
        bp = self.pending_break()
        if bp is not None:
            return bp, None
        outcome = self.step()
        if self.state not in ("Error", "Halted"):
            self.state = "Running"
        return None, outcome

    def run_to_break(self, max_steps: int) -> Optional[Breakpoint]:
        for _ in range(max_steps):
            if self.finished:
                return None
            bp, _outcome = self.advance()
            if bp is not None:
                return bp
        if not self.finished:
            self.state = "Paused"
        return None

import pytest

from core.cpu import CPUState
from core.parser import ParseError
from ui.session import BreakKind, BreakpointSet, DebugSession

COUNTDOWN = "mov 5 acc\nloop: add -1\njnz loop\nret"


@pytest.fixture
def session():
    s = DebugSession()
    s.load(COUNTDOWN)
    return s


def test_toggle_line_adds_then_removes():
    breakpoints = BreakpointSet()
    assert breakpoints.toggle_line(3) is True
    assert [bp.line for bp in breakpoints.items()] == [3]
    assert breakpoints.toggle_line(3) is False
    assert len(breakpoints) == 0


def test_listeners_hear_changes_only():
    breakpoints = BreakpointSet()
    calls = []
    breakpoints.on_change(lambda: calls.append(1))
    bp = breakpoints.watch("acc", "==", 1)
    breakpoints.set_enabled(bp.id, True)
    assert len(calls) == 1
    breakpoints.set_enabled(bp.id, False)
    breakpoints.remove(bp.id)
    breakpoints.remove(bp.id)
    assert len(calls) == 3


@pytest.mark.parametrize(
    ("register", "op", "value"),
    [("PC", "==", 1), ("ACC", "<=", 1), ("BAK", ">", 1000)],
)
def test_watch_rejects_bad_arguments(register, op, value):
    with pytest.raises(ValueError):
        BreakpointSet().watch(register, op, value)


@pytest.mark.parametrize(
    ("op", "value", "acc", "hit"),
    [("==", 3, 3, True), ("!=", 3, 3, False), ("<", 0, -1, True), (">", 0, 0, False)],
)
def test_watch_compares_register(op, value, acc, hit):
    breakpoints = BreakpointSet()
    breakpoints.watch("ACC", op, value)
    assert (breakpoints.find_hit(1, CPUState(acc=acc)) is not None) is hit


def test_line_breakpoints_need_code_on_their_line():
    breakpoints = BreakpointSet()
    breakpoints.toggle_line(2)
    cpu = CPUState()
    assert breakpoints.find_hit(2, cpu) is not None
    breakpoints.set_code_lines({1, 3})
    assert breakpoints.has_code(2) is False
    assert breakpoints.find_hit(2, cpu) is None


def test_one_shot_wins_gutter_mark_and_is_consumed():
    breakpoints = BreakpointSet()
    breakpoints.toggle_line(4)
    once = breakpoints.break_once(4)
    assert breakpoints.break_once(4) is once
    assert breakpoints.by_line()[4] is once
    assert breakpoints.record_hit(once) is True
    assert breakpoints.get(once.id) is None
    assert breakpoints.by_line()[4].kind is BreakKind.LINE


def test_dump_and_load_skip_one_shots_and_renumber():
    original = BreakpointSet()
    original.toggle_line(1)
    original.break_once(2)
    original.watch("bak", "<", -7)

    restored = BreakpointSet()
    restored.load(original.dump())
    assert [(bp.kind, bp.line, bp.register, bp.op, bp.value) for bp in restored.items()] == [
        (BreakKind.LINE, 1, None, "==", 0),
        (BreakKind.WATCH, None, "BAK", "<", -7),
    ]
    assert [bp.id for bp in restored.items()] == [1, 2]


def test_load_skips_unreadable_entries():
    breakpoints = BreakpointSet()
    breakpoints.load(
        [
            {"kind": "Bogus"},
            {"line": 3},
            {"kind": "Watch", "register": "PC", "op": "=="},
            {"kind": "Line", "line": 4, "enabled": False},
        ]
    )
    (bp,) = breakpoints.items()
    assert (bp.line, bp.enabled) == (4, False)


def test_session_stops_before_breakpoint_and_resumes_past_it(session):
    session.breakpoints.toggle_line(2)
    (bp,) = session.breakpoints.items()
    hit = session.run_to_break(100)
    assert hit is bp
    assert session.state == "Paused"
    assert (session.current_line, session.cpu.acc) == (2, 5)

    assert session.run_to_break(100) is bp
    assert session.cpu.acc == 4
    assert bp.hits == 2


def test_advance_reports_running_between_breaks(session):
    bp, outcome = session.advance()
    assert bp is None and outcome.error is None
    assert session.state == "Running"
    assert session.current_line == 2


def test_watch_breaks_when_condition_first_holds(session):
    session.breakpoints.watch("ACC", "==", 2)
    assert session.run_to_break(100) is not None
    assert (session.current_line, session.cpu.acc) == (3, 2)


def test_run_to_cursor_then_finish(session):
    session.breakpoints.break_once(3)
    assert session.run_to_break(100) is not None
    assert session.cpu.acc == 4
    assert len(session.breakpoints) == 0

    assert session.run_to_break(100) is None
    assert session.finished
    assert session.state == "Halted"
    assert session.cpu.acc == 0


def test_disabled_breakpoint_does_not_stop(session):
    session.breakpoints.toggle_line(2)
    (bp,) = session.breakpoints.items()
    session.breakpoints.set_enabled(bp.id, False)
    assert session.run_to_break(100) is None
    assert session.finished


def test_breakpoint_on_blank_line_never_fires():
    session = DebugSession()
    session.load("mov 1 acc\n\nret")
    session.breakpoints.toggle_line(2)
    assert session.run_to_break(10) is None
    assert session.state == "Halted"


def test_error_halts_session_until_reset():
    session = DebugSession()
    session.load("mov 3 acc\njmp nowhere")
    assert session.run_to_break(10) is None
    assert session.state == "Error"
    assert session.finished
    assert session.last_outcome.error.line_no == 2
    assert session.cpu.acc == 3

    session.reset()
    assert (session.state, session.cpu.acc, session.cpu.pc) == ("Ready", 0, 0)
    assert not session.finished


def test_step_budget_pauses_endless_loop():
    session = DebugSession()
    session.load("loop: jmp loop")
    assert session.run_to_break(50) is None
    assert session.state == "Paused"
    assert not session.finished


def test_failed_load_keeps_previous_program(session):
    with pytest.raises(ParseError):
        session.load("bogus 1 2 3", strict=True)
    assert len(session.program) == 4
    assert session.program.get_label("loop") == 1

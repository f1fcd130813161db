import pytest

from core.model import Instruction, Operand
from core.parser import (
    ParseError,
    decode_line,
    decode_operand,
    format_instruction,
    load_program,
    parse_program,
)


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("acc", Operand("acc", "ACC")),
        ("ACC", Operand("acc", "ACC")),
        ("Bak", Operand("bak", "BAK")),
        ("42", Operand("imm", 42)),
        ("-7", Operand("imm", -7)),
        ("+3", Operand("imm", 3)),
        ("loop", Operand("label", "loop")),
        ("4294967296", Operand("label", "4294967296")),
    ],
)
def test_decode_operand_recognizes_registers_immediates_and_labels(token, expected):
    assert decode_operand(token) == expected


def test_mov_strips_trailing_comma_on_source():
    instr = decode_line("MOV 5, acc", line_no=3)
    assert instr.mnemonic == "MOV"
    assert instr.operands == (Operand("imm", 5), Operand("acc", "ACC"))
    assert instr.line_no == 3
    assert instr.text == "MOV 5, acc"


@pytest.mark.parametrize("line", ["", "   ", "# a comment", "   # indented comment"])
def test_blank_and_comment_lines_decode_to_nop(line):
    assert decode_line(line).mnemonic == "NOP"


@pytest.mark.parametrize(
    ("line", "mnemonic"),
    [
        ("swp", "SWP"),
        ("save", "SAVE"),
        ("ret", "RET"),
        ("add bak", "ADD"),
        ("jmp top", "JMP"),
        ("jez top", "JEZ"),
        ("jnz top", "JNZ"),
        ("jgz top", "JGZ"),
        ("JLZ top", "JLZ"),
    ],
)
def test_known_mnemonics_are_case_insensitive(line, mnemonic):
    assert decode_line(line).mnemonic == mnemonic


def test_jump_targets_are_always_labels():
    instr = decode_line("jmp 5")
    assert instr.operands == (Operand("label", "5"),)


# Lenient parsing: unknown mnemonics and wrong operand counts are ignored.
@pytest.mark.parametrize(
    "line",
    ["mov 1", "mov 1 acc bak", "add", "add 1 2", "jmp", "swp acc", "ret now", "mul 3", "hello"],
)
def test_lenient_mode_turns_bad_lines_into_nop(line):
    assert decode_line(line).mnemonic == "NOP"


# Strict parsing: the same lines are rejected with their line number.
@pytest.mark.parametrize("line", ["mov 1", "add", "swp acc", "mul 3", "hello"])
def test_strict_mode_rejects_bad_lines(line):
    with pytest.raises(ParseError) as excinfo:
        decode_line(line, line_no=7, strict=True)
    assert excinfo.value.line_no == 7
    assert excinfo.value.text == line


def test_bare_label_line_decodes_to_label_marker():
    instr = decode_line("loop:")
    assert instr.mnemonic == "LABEL"
    assert instr.label == "loop"
    assert instr.operands == ()


def test_label_with_instruction_keeps_both():
    instr = decode_line("is_zero: mov 42 acc")
    assert instr.mnemonic == "MOV"
    assert instr.label == "is_zero"
    assert instr.operands == (Operand("imm", 42), Operand("acc", "ACC"))


def test_label_followed_by_junk_is_still_a_label():
    instr = decode_line("top: bogus things")
    assert instr.mnemonic == "LABEL"
    assert instr.label == "top"


def test_load_program_maps_labels_to_declaring_line_index():
    program = load_program(["mov 5 acc", "", "Loop: add -1", "jnz Loop", "end:", "ret"])
    assert len(program) == 6
    assert dict(program.labels) == {"Loop": 2, "end": 4}
    assert program.get_label("loop") is None
    assert [i.mnemonic for i in program.instructions] == ["MOV", "NOP", "ADD", "JNZ", "LABEL", "RET"]
    assert [i.line_no for i in program.instructions] == [1, 2, 3, 4, 5, 6]


def test_label_table_is_read_only():
    program = parse_program("start:\nret\n")
    with pytest.raises(TypeError):
        program.labels["other"] = 1  # type: ignore[index]


def test_unresolved_jump_targets_load_without_error():
    program = parse_program("jmp nowhere\n")
    assert program.instructions[0].operands[0].value == "nowhere"
    assert dict(program.labels) == {}


def test_duplicate_labels_last_declaration_wins_in_lenient_mode():
    program = parse_program("a:\nnop\na:\n")
    assert program.labels["a"] == 2


def test_duplicate_labels_rejected_in_strict_mode():
    with pytest.raises(ParseError) as excinfo:
        parse_program("a:\nret\na:\n", strict=True)
    assert excinfo.value.line_no == 3


@pytest.mark.parametrize(
    "line",
    ["mov 5 acc", "mov bak acc", "mov -12, acc", "mov 5,, acc", "add -1", "add bak", "jmp loop", "jez end", "jlz neg", "done: mov 42 acc", "top:"],
)
def test_format_then_decode_round_trips(line):
    instr = decode_line(line)
    assert decode_line(format_instruction(instr)) == instr


def test_format_instruction_output():
    assert format_instruction(decode_line("MOV 5, ACC")) == "mov 5 acc"
    assert format_instruction(decode_line("x:   jnz   x")) == "x: jnz x"
    assert format_instruction(Instruction(1, "", "NOP")) == ""


def test_only_newline_separates_lines():
    program = parse_program("mov 1 acc\x0c\nloop:\u2028\r\nret\n")
    assert len(program) == 3
    assert program.get_label("loop") == 1
    assert [instr.line_no for instr in program.instructions] == [1, 2, 3]

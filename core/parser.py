from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from core.model import Instruction, Operand, Program

logger = logging.getLogger(__name__)


# mnemonic -> number of tokens after the mnemonic
ARITY = {
    "MOV": 2,
    "SWP": 0,
    "SAVE": 0,
    "ADD": 1,
    "JMP": 1,
    "JEZ": 1,
    "JNZ": 1,
    "JGZ": 1,
    "JLZ": 1,
    "RET": 0,
}
JUMP_MNEMONICS = {"JMP", "JEZ", "JNZ", "JGZ", "JLZ"}

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1
IMMEDIATE_RE = re.compile(r"[+-]?[0-9]+")


class ParseError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.text = text


def decode_operand(token: str) -> Operand:
    lower = token.lower()
    if lower == "acc":
        return Operand(type="acc", value="ACC", text=token)
    if lower == "bak":
        return Operand(type="bak", value="BAK", text=token)
    if IMMEDIATE_RE.fullmatch(token):
        value = int(token, 10)
        if INT32_MIN <= value <= INT32_MAX:
            return Operand(type="imm", value=value, text=token)
    return Operand(type="label", value=token, text=token)


def _decode_tokens(
    tokens: List[str], line_no: int, raw_line: str, strict: bool
) -> Instruction:
    mnemonic = tokens[0].upper()
    args = tokens[1:]
    if mnemonic not in ARITY:
        if strict:
            raise ParseError(f"Unknown instruction: {tokens[0]}", line_no, raw_line)
        return Instruction(line_no, raw_line, "NOP")
    if len(args) != ARITY[mnemonic]:
        if strict:
            raise ParseError(
                f"Expected {ARITY[mnemonic]} operands for {mnemonic}, got {len(args)}",
                line_no,
                raw_line,
            )
        return Instruction(line_no, raw_line, "NOP")

    if mnemonic == "MOV":
        operands = (decode_operand(args[0].rstrip(",")), decode_operand(args[1]))
    elif mnemonic in JUMP_MNEMONICS:
        operands = (Operand(type="label", value=args[0], text=args[0]),)
    elif mnemonic == "ADD":
        operands = (decode_operand(args[0]),)
    else:
        operands = ()
    return Instruction(line_no, raw_line, mnemonic, operands)


def decode_line(line: str, line_no: int = 1, strict: bool = False) -> Instruction:
    raw_line = line.rstrip("\r\n")
    trimmed = raw_line.strip()
    if not trimmed or trimmed.startswith("#"):
        return Instruction(line_no, raw_line, "NOP")

    tokens = trimmed.split()
    if tokens[0].upper() in ARITY:
        return _decode_tokens(tokens, line_no, raw_line, strict)

    if tokens[0].endswith(":"):
        name = tokens[0].rstrip(":")
        if not name:
            if strict:
                raise ParseError("Empty label name", line_no, raw_line)
            return Instruction(line_no, raw_line, "NOP")
        rest = tokens[1:]
        if not rest or rest[0].startswith("#"):
            return Instruction(line_no, raw_line, "LABEL", label=name)
        body = _decode_tokens(rest, line_no, raw_line, strict)
        if body.mnemonic == "NOP":
            return Instruction(line_no, raw_line, "LABEL", label=name)
        return Instruction(line_no, raw_line, body.mnemonic, body.operands, label=name)

    if strict:
        raise ParseError(f"Unknown instruction: {tokens[0]}", line_no, raw_line)
    return Instruction(line_no, raw_line, "NOP")


def load_program(lines: Iterable[str], strict: bool = False) -> Program:
    instructions: List[Instruction] = []
    labels: Dict[str, int] = {}
    source_lines: List[str] = []

    for idx, raw_line in enumerate(lines):
        instruction = decode_line(raw_line, line_no=idx + 1, strict=strict)
        if instruction.label is not None:
            if instruction.label in labels:
                if strict:
                    raise ParseError(
                        f"Duplicate label: {instruction.label}", idx + 1, instruction.text
                    )
                logger.warning(
                    "label %r redeclared on line %d; earlier declaration on line %d ignored",
                    instruction.label,
                    idx + 1,
                    labels[instruction.label] + 1,
                )
            labels[instruction.label] = idx
        instructions.append(instruction)
        source_lines.append(instruction.text)

    logger.debug("loaded %d instructions, %d labels", len(instructions), len(labels))
    return Program(instructions=instructions, labels=labels, source_lines=source_lines)


def parse_program(text: str, strict: bool = False) -> Program:
    # only "\n" ends a line; form feeds and unicode separators stay inside it
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return load_program(lines, strict=strict)


def format_operand(op: Operand) -> str:
    if op.type in {"acc", "bak"}:
        return op.type
    return str(op.value)


def format_instruction(instr: Instruction) -> str:
    if instr.mnemonic == "LABEL":
        return f"{instr.label}:"
    if instr.mnemonic == "NOP":
        body = ""
    else:
        body = " ".join([instr.mnemonic.lower()] + [format_operand(op) for op in instr.operands])
    if instr.label is not None:
        return f"{instr.label}: {body}".rstrip()
    return body

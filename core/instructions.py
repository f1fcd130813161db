from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List

from core.cpu import CPUState
from core.model import Instruction, Operand, Program


@dataclass
class ExecResult:
    next_pc: int | None = None
    halt: bool = False


@dataclass(frozen=True)
class InstructionDef:
    mnemonic: str
    summary: str
    syntax: str
    executor: Callable[[CPUState, Instruction, Program], ExecResult]


class EmulationError(Exception):
    def __init__(self, message: str, line_no: int, text: str) -> None:
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.text = text


class UnknownLabelError(EmulationError):
    pass


class InvalidOperandError(EmulationError):
    pass


INSTRUCTION_SET: Dict[str, InstructionDef] = {}


def register_instruction(defn: InstructionDef) -> None:
    INSTRUCTION_SET[defn.mnemonic.upper()] = defn


def get_instruction_executor(mnemonic: str) -> Callable[[CPUState, Instruction, Program], ExecResult] | None:
    defn = INSTRUCTION_SET.get(mnemonic.upper())
    return defn.executor if defn else None


def read_value(op: Operand, cpu: CPUState, instr: Instruction) -> int:
    if op.type == "acc":
        return cpu.acc
    if op.type == "bak":
        return cpu.bak
    if op.type == "imm":
        return int(op.value)
    raise InvalidOperandError(
        f"Cannot use label '{op.value}' as value",
        instr.line_no,
        instr.text,
    )


def write_value(op: Operand, cpu: CPUState, value: int, instr: Instruction) -> None:
    if op.type == "acc":
        cpu.set_acc(value)
        return
    if op.type == "bak":
        message = "Cannot write directly to bak"
    elif op.type == "imm":
        message = "Cannot write to immediate value"
    else:
        message = f"Cannot write to label '{op.value}'"
    raise InvalidOperandError(message, instr.line_no, instr.text)


def lookup_label(op: Operand, program: Program, instr: Instruction) -> int:
    target = program.get_label(str(op.value))
    if target is None:
        raise UnknownLabelError(
            f"Unknown label: {op.value}",
            instr.line_no,
            instr.text,
        )
    return target


def exec_mov(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    src_op, dest_op = instr.operands
    write_value(dest_op, cpu, read_value(src_op, cpu, instr), instr)
    return ExecResult()


def exec_swp(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    cpu.swap()
    return ExecResult()


def exec_save(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    cpu.save()
    return ExecResult()


def exec_add(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    value = read_value(instr.operands[0], cpu, instr)
    cpu.set_acc(cpu.acc + value)
    return ExecResult()


def exec_jmp(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return ExecResult(next_pc=lookup_label(instr.operands[0], program, instr))


def _exec_jcc(
    cpu: CPUState, instr: Instruction, program: Program, guard: Callable[[int], bool]
) -> ExecResult:
    if guard(cpu.acc):
        return ExecResult(next_pc=lookup_label(instr.operands[0], program, instr))
    return ExecResult()


def exec_jez(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return _exec_jcc(cpu, instr, program, lambda acc: acc == 0)


def exec_jnz(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return _exec_jcc(cpu, instr, program, lambda acc: acc != 0)


def exec_jgz(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return _exec_jcc(cpu, instr, program, lambda acc: acc > 0)


def exec_jlz(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return _exec_jcc(cpu, instr, program, lambda acc: acc < 0)


def exec_ret(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return ExecResult(next_pc=len(program.instructions), halt=True)


def exec_nop(cpu: CPUState, instr: Instruction, program: Program) -> ExecResult:
    return ExecResult()


register_instruction(InstructionDef("MOV", "Copy a value into ACC.", "mov <src> <dst>", exec_mov))
register_instruction(InstructionDef("SWP", "Exchange ACC and BAK.", "swp", exec_swp))
register_instruction(InstructionDef("SAVE", "Copy ACC into BAK.", "save", exec_save))
register_instruction(InstructionDef("ADD", "Add a value to ACC, saturating at +/-999.", "add <src>", exec_add))
register_instruction(InstructionDef("JMP", "Jump to a label.", "jmp <label>", exec_jmp))
register_instruction(InstructionDef("JEZ", "Jump if ACC == 0.", "jez <label>", exec_jez))
register_instruction(InstructionDef("JNZ", "Jump if ACC != 0.", "jnz <label>", exec_jnz))
register_instruction(InstructionDef("JGZ", "Jump if ACC > 0.", "jgz <label>", exec_jgz))
register_instruction(InstructionDef("JLZ", "Jump if ACC < 0.", "jlz <label>", exec_jlz))
register_instruction(InstructionDef("RET", "Halt the program.", "ret", exec_ret))
register_instruction(InstructionDef("LABEL", "Declare a jump target.", "<name>:", exec_nop))
register_instruction(InstructionDef("NOP", "Blank line, comment or ignored text.", "", exec_nop))


def get_instruction_defs() -> List[InstructionDef]:
    return list(INSTRUCTION_SET.values())

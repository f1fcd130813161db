from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from core.cpu import CPUState
from core.instructions import EmulationError, ExecResult, INSTRUCTION_SET
from core.model import Program

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    halted: bool = False
    error: Optional[EmulationError] = None


class Emulator:
    def __init__(self, cpu: CPUState, program: Program) -> None:
        self.cpu = cpu
        self.program = program
        self.halted = False
        self.steps = 0

    def reset(self) -> None:
        self.cpu.reset()
        self.halted = False
        self.steps = 0

    def step(self) -> StepOutcome:
        if self.halted:
            return StepOutcome(halted=True)

        if self.cpu.pc >= len(self.program.instructions):
            self.halted = True
            return StepOutcome(halted=True)

        instr = self.program.instructions[self.cpu.pc]
        defn = INSTRUCTION_SET.get(instr.mnemonic)
        if not defn:
            error = EmulationError(
                f"Unknown instruction: {instr.mnemonic}",
                instr.line_no,
                instr.text,
            )
            return StepOutcome(error=error)

        try:
            result: ExecResult = defn.executor(self.cpu, instr, self.program)
        except EmulationError as exc:
            return StepOutcome(error=exc)

        self.steps += 1
        if result.next_pc is None:
            self.cpu.pc += 1
        else:
            self.cpu.pc = result.next_pc
        logger.debug(
            "step %d: line %d %s -> acc=%d bak=%d pc=%d",
            self.steps,
            instr.line_no,
            instr.mnemonic,
            self.cpu.acc,
            self.cpu.bak,
            self.cpu.pc,
        )

        if result.halt or self.cpu.pc >= len(self.program.instructions):
            self.halted = True
            return StepOutcome(halted=True)
        return StepOutcome()

    def run(self) -> StepOutcome:
        # the first error is returned with the machine as it was before that instruction
        while True:
            outcome = self.step()
            if outcome.error:
                logger.info(
                    "run stopped after %d steps: line %d: %s",
                    self.steps,
                    outcome.error.line_no,
                    outcome.error.message,
                )
                return outcome
            if outcome.halted:
                logger.info("run halted after %d steps", self.steps)
                return outcome

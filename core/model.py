from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple


@dataclass(frozen=True)
class Operand:
    type: str  # acc, bak, imm, label
    value: str | int
    text: str = field(default="", compare=False)


@dataclass(frozen=True)
class Instruction:
    line_no: int = field(compare=False)
    text: str = field(compare=False)
    mnemonic: str
    operands: Tuple[Operand, ...] = ()
    label: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))


@dataclass(frozen=True)
class Program:
    instructions: Tuple[Instruction, ...]
    labels: Mapping[str, int]
    source_lines: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "instructions", tuple(self.instructions))
        if not isinstance(self.labels, MappingProxyType):
            object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))
        object.__setattr__(self, "source_lines", tuple(self.source_lines))

    def __len__(self) -> int:
        return len(self.instructions)

    def get_label(self, name: str) -> Optional[int]:
        return self.labels.get(name)

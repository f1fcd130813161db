from __future__ import annotations

from dataclasses import dataclass


REGISTER_ORDER = [
    "ACC",
    "BAK",
    "PC",
]

MIN_VALUE = -999
MAX_VALUE = 999


def clamp(value: int) -> int:
    if value > MAX_VALUE:
        return MAX_VALUE
    if value < MIN_VALUE:
        return MIN_VALUE
    return value


@dataclass
class CPUState:
    acc: int = 0
    bak: int = 0
    pc: int = 0

    def reset(self) -> None:
        self.acc = 0
        self.bak = 0
        self.pc = 0

    def get_reg(self, name: str) -> int:
        upper = name.upper()
        if upper == "ACC":
            return self.acc
        if upper == "BAK":
            return self.bak
        if upper == "PC":
            return self.pc
        raise KeyError(name)

    def set_acc(self, value: int) -> None:
        self.acc = clamp(value)

    def save(self) -> None:
        # acc is always clamped, so bak never needs clamping
        self.bak = self.acc

    def swap(self) -> None:
        self.acc, self.bak = self.bak, self.acc

    def snapshot(self) -> dict[str, int]:
        return {name: self.get_reg(name) for name in REGISTER_ORDER}

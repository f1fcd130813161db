import pytest

from core.cpu import CPUState
from core.emulator import Emulator
from core.parser import parse_program


@pytest.fixture
def run_source():
    def _run(text: str, strict: bool = False):
        cpu = CPUState()
        outcome = Emulator(cpu, parse_program(text, strict=strict)).run()
        return cpu, outcome

    return _run

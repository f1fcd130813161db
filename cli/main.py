from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from core.cpu import CPUState
from core.emulator import Emulator
from core.parser import ParseError, parse_program

__version__ = "0.1.0"

logger = logging.getLogger("accvm")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accvm",
        description="Run an accumulator machine program and print the final registers.",
    )
    parser.add_argument("file", type=Path, help="program source file")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="reject unknown instructions, wrong operand counts and duplicate labels",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="open the program in the debugger window instead of running it",
    )
    parser.add_argument(
        "--verbose", "-v", action="count", default=0,
        help="increase log verbosity (-v, -vv)",
    )
    parser.add_argument("--version", action="version", version=f"accvm {__version__}")
    return parser


def _setup_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    if args.debug:
        from ui.main_window import run_app

        run_app(str(args.file))
        return 0

    try:
        source = args.file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.info("reading %s failed: %s", args.file, exc)
        print(f"Could not open file: {args.file}", file=sys.stderr)
        return 1

    try:
        program = parse_program(source, strict=args.strict)
    except ParseError as exc:
        print(f"Parse error on line {exc.line_no}: {exc.message}", file=sys.stderr)
        return 1
    logger.info("loaded %s: %d lines, %d labels", args.file, len(program), len(program.labels))

    cpu = CPUState()
    outcome = Emulator(cpu, program).run()
    if outcome.error:
        print(f"Error on line {outcome.error.line_no}: {outcome.error.message}", file=sys.stderr)
        return 1

    print(f"acc: {cpu.acc}")
    print(f"bak: {cpu.bak}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
moostar: headless driver for the Moostar step engine

Usage:
    python moostar.py <program.moo> [--input TEXT] [--max-steps N] [--hz 10]
                                    [--trace] [--program] [--strict]
                                    [--underflow fault|clamp] [--verbose]

Exit codes:
    0  program halted, is waiting for input, or used up its step budget
    1  file could not be loaded or the program does not compile
    3  the program faulted at run time (malformed program, ribbon underflow)

Examples:
    python moostar.py hello.moo
    python moostar.py echo.moo --input "abc"
    python moostar.py double.moo --trace --hz 5
    python moostar.py double.moo --program
"""

import argparse
import logging
import sys
import time
from enum import Enum
from pathlib import Path

from rich.console import Console
from rich.text import Text

from moostar_compiler import __version__, compile_source, CompileError
from moostar_runner import Runner, RunnerConfig, StopReason, UnderflowPolicy
from moostar_runner.log_setup import setup_logging

log = logging.getLogger("moostar")


class Frequency(Enum):
    """Pacing ladder for --hz, in steps per second."""
    HALF = 0.5
    ONE = 1
    TWO = 2
    FIVE = 5
    TEN = 10
    TWENTY = 20
    FIFTY = 50
    HUNDRED = 100
    TWO_HUNDRED = 200
    FIVE_HUNDRED = 500
    THOUSAND = 1000

    @property
    def delay(self) -> float:
        """Seconds between two steps."""
        return 1.0 / self.value

    def slower(self) -> 'Frequency':
        ladder = list(Frequency)
        return ladder[max(ladder.index(self) - 1, 0)]

    def faster(self) -> 'Frequency':
        ladder = list(Frequency)
        return ladder[min(ladder.index(self) + 1, len(ladder) - 1)]

    @classmethod
    def parse(cls, value: str) -> 'Frequency':
        hz = float(value)
        for freq in cls:
            if freq.value == hz:
                return freq
        raise argparse.ArgumentTypeError(
            f"unsupported frequency {value} (choose from "
            + ", ".join(str(f.value) for f in cls) + ")")


def load_source(path: str) -> str:
    """Read a program file as UTF-8."""
    return Path(path).read_bytes().decode("utf-8")


def highlight_line(source: str, offset: int, length: int) -> Text:
    """The source line holding `offset`, with the span styled."""
    # One trailing space stands in for the Halt sentinel
    code = source + " "
    start = code.rfind("\n", 0, offset) + 1
    end = code.find("\n", offset)
    if end == -1:
        end = len(code)
    text = Text(code[start:end])
    text.stylize("bold red", offset - start, min(offset - start + length, end - start))
    return text


def run_program(runner: Runner, console: Console, *, max_steps: int,
                frequency=None, trace: bool = False) -> StopReason:
    """Step the runner until it stops, printing a trace line per step if asked."""
    source = runner.program.source
    for _ in range(max_steps):
        if trace:
            inst = runner.current_instruction()
            prefix = Text(f"#{runner.state.instruction_pointer:04d} {inst.kind.name:12s} ", style="dim")
            console.print(prefix + highlight_line(source, *inst.span))
        reason = runner.step()
        if reason is not None:
            return reason
        if frequency is not None:
            time.sleep(frequency.delay)
    return StopReason.TIMEOUT


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="moostar",
        description="Run a Moostar program (Brainfuck with subroutines and a meta ribbon)",
    )
    parser.add_argument("input", help="Program source file (UTF-8)")
    parser.add_argument("--input", dest="input_text", default="",
                        help="Input queued for ',' (UTF-8 encoded)")
    parser.add_argument("--max-steps", type=int, default=RunnerConfig.max_steps,
                        help="Stop after this many steps (default: %(default)s)")
    parser.add_argument("--hz", type=Frequency.parse, default=None,
                        help="Pace execution at this many steps per second")
    parser.add_argument("--trace", action="store_true",
                        help="Print every step with the instruction highlighted")
    parser.add_argument("--program", action="store_true",
                        help="Dump the compiled instructions and exit (debug)")
    parser.add_argument("--strict", action="store_true",
                        help="Treat static-check warnings as compile errors")
    parser.add_argument("--underflow", choices=[p.value for p in UnderflowPolicy],
                        default=UnderflowPolicy.FAULT.value,
                        help="What '<' does on position 0 (default: %(default)s)")
    parser.add_argument("--log-dir", default=None,
                        help="Also write a full DEBUG log file into this folder")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging on the console")
    parser.add_argument("--version", action="version", version=f"moostar {__version__}")

    args = parser.parse_args(argv)

    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING,
                  log_dir=args.log_dir)
    console = Console()

    try:
        source = load_source(args.input)
    except FileNotFoundError:
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return 1

    try:
        program = compile_source(source, strict=args.strict)
    except CompileError as e:
        print(str(e), file=sys.stderr)
        return 1

    if args.program:
        print(program.listing())
        return 0

    try:
        config = RunnerConfig(underflow=UnderflowPolicy(args.underflow), max_steps=args.max_steps)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    runner = Runner(program, input_data=args.input_text, config=config)

    reason = run_program(runner, console, max_steps=config.max_steps,
                         frequency=args.hz, trace=args.trace)
    log.info("Stopped: %s after %d steps", reason.value, runner.steps)

    output = runner.get_output()
    if output:
        print(output)

    if reason is StopReason.FAULT:
        print(f"Fault: {runner.fault}", file=sys.stderr)
        return 3
    if reason is StopReason.INPUT:
        print("Stopped: waiting for input", file=sys.stderr)
    elif reason is StopReason.TIMEOUT:
        print(f"Stopped: step budget of {config.max_steps} used up", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())

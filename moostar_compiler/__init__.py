"""
Moostar Compiler
================
Compiles Moostar source (Brainfuck plus named subroutines and a second
"meta" ribbon) into a linear, span-annotated instruction list.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌─────────────┐    ┌──────────┐
    │  Source  │───>│ Scanner  │───>│ Entry point │───>│ Program  │
    │  (text)  │    │ (pass 1) │    │  (pass 2)   │    │ (frozen) │
    └──────────┘    └──────────┘    └─────────────┘    └──────────┘
                          │
                          └──> check_program(): static findings

    - instructions.py: OpKind enum, Span, Instruction
    - scanner.py:      character scan, subroutine ids, CompileError
    - program.py:      Program store, entry point pass, static checks
"""

__version__ = "0.2.0"

import logging

from .instructions import Instruction, OpKind, Span, SINGLE_CHAR_OPS
from .scanner import Scanner, MoostarError, CompileError
from .program import Program, find_entry_point, check_program, make_table

log = logging.getLogger(__name__)


def compile_source(source: str, *, strict: bool = False) -> Program:
    """Compile Moostar source text into a Program.

    Full pipeline: Scanner -> entry point pass -> static checks.

    Args:
        source: program text.
        strict: turn static-check findings (undefined calls, duplicate
            definitions, unbalanced brackets) into a CompileError instead
            of logging them as warnings.

    Returns:
        The immutable Program.

    Raises:
        CompileError: malformed identifier, missing punctuation, nested,
            stray or unterminated subroutine definitions.
    """
    scanner = Scanner(source)
    instructions = scanner.scan()
    names = tuple(sorted(scanner.name_ids, key=scanner.name_ids.get))

    findings = check_program(instructions, names, scanner.entries, scanner.definitions)
    messages = [f"offset {offset}: {message}" for offset, message in findings]
    if findings and strict:
        offset, message = findings[0]
        if len(findings) > 1:
            message += "\n  " + "\n  ".join(messages[1:])
        raise CompileError(message, offset)
    for message in messages:
        log.warning("%s", message)

    program = Program(
        source=source,
        instructions=tuple(instructions),
        subroutines=make_table(scanner.entries),
        names=names,
        entry=find_entry_point(instructions),
        warnings=tuple(messages),
    )
    log.info("Compiled %d instructions, %d subroutine(s), entry at #%d",
             len(program), len(names), program.entry)
    return program

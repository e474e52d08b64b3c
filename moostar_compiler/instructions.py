"""
Instruction set for the Moostar language.

Every source character becomes exactly one Instruction (subroutine headers
and calls fold several characters into one). Each Instruction carries the
Span of the text it came from so a driver can highlight it while stepping.
"""

from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Dict, NamedTuple, Optional


# ──────────────────────────────────────────────
# Instruction kinds
# ──────────────────────────────────────────────

class OpKind(enum.Enum):
    # Cell arithmetic
    INCREMENT = "+"
    DECREMENT = "-"

    # Pointer movement
    MOVE_LEFT = "<"
    MOVE_RIGHT = ">"

    # I/O
    READ_INPUT = ","
    WRITE_OUTPUT = "."

    # Loops
    LOOP_START = "["
    LOOP_END = "]"

    # Subroutines
    CALL = "~"
    SUB_START = "("
    SUB_END = "}"

    # Meta ribbon
    TOGGLE_TAPE = "^"

    # Special
    LITERAL = "LITERAL"
    HALT = "HALT"


# Characters that map one-to-one onto an instruction
SINGLE_CHAR_OPS: Dict[str, OpKind] = {
    "+": OpKind.INCREMENT,
    "-": OpKind.DECREMENT,
    "<": OpKind.MOVE_LEFT,
    ">": OpKind.MOVE_RIGHT,
    ",": OpKind.READ_INPUT,
    ".": OpKind.WRITE_OUTPUT,
    "[": OpKind.LOOP_START,
    "]": OpKind.LOOP_END,
    "^": OpKind.TOGGLE_TAPE,
}

SUBROUTINE_OPS = (OpKind.CALL, OpKind.SUB_START, OpKind.SUB_END)


# ──────────────────────────────────────────────
# Span + Instruction
# ──────────────────────────────────────────────

class Span(NamedTuple):
    """Location of an instruction's text: (offset, length) in characters."""
    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length

    def slice(self, source: str) -> str:
        return source[self.offset:self.end]


@dataclass(frozen=True)
class Instruction:
    kind: OpKind
    span: Span
    # Subroutine id for CALL / SUB_START / SUB_END, the character for LITERAL
    arg: Optional[int | str] = None

    @property
    def is_noop(self) -> bool:
        return self.kind is OpKind.LITERAL

    @property
    def subroutine_id(self) -> int:
        if self.kind not in SUBROUTINE_OPS:
            raise ValueError(f"{self.kind.name} does not reference a subroutine")
        return self.arg

    def __repr__(self):
        arg = "" if self.arg is None else f", {self.arg!r}"
        return f"Instruction({self.kind.name}{arg}, @{self.span.offset}+{self.span.length})"

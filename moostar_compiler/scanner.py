"""
Scanner for Moostar source text (compiler pass 1).

Single left-to-right scan that turns every character into an Instruction:

    + - > < . , [ ] ^    one-to-one instructions
    (name):{             subroutine definition header
    }                    end of the open definition
    ~name;               subroutine call
    anything else        Literal no-op, kept for rendering

Subroutine names get dense ids in first-seen order, whether the first
reference is the definition or a call, so forward calls are legal.
The scan is atomic: on any error a CompileError is raised and nothing
is returned.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from .instructions import Instruction, OpKind, Span, SINGLE_CHAR_OPS


class MoostarError(Exception):
    """Root of every error raised by the compiler and the runner."""


class CompileError(MoostarError):
    def __init__(self, message: str, offset: int):
        self.message = message
        self.offset = offset
        super().__init__(f"Compile error at offset {offset}: {message}")


# Punctuation required after the identifier of a definition header
HEADER_GUARDS = (")", ":", "{")


class Scanner:
    """Turns Moostar source into a flat instruction list plus subroutine tables."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.instructions: List[Instruction] = []
        self.name_ids: Dict[str, int] = {}       # name -> dense id
        self.entries: Dict[int, int] = {}        # id -> index of SUB_START
        self.definitions: List[Tuple[int, int]] = []  # (id, offset) of every header seen
        self._open_definition: Optional[int] = None

    def _peek(self) -> str:
        return self.source[self.pos] if self.pos < len(self.source) else ""

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        return ch

    def _emit(self, kind: OpKind, start: int, arg=None):
        self.instructions.append(Instruction(kind, Span(start, self.pos - start), arg))

    def _resolve(self, name: str) -> int:
        if name not in self.name_ids:
            self.name_ids[name] = len(self.name_ids)
        return self.name_ids[name]

    def _read_identifier(self) -> str:
        """Read a subroutine name with optional whitespace on both sides.

        The first non-blank character must be a lowercase ASCII letter, the
        rest ASCII letters, digits or underscores. Trailing blanks are eaten;
        the character after them is left for the caller.
        """
        while self._peek() and self._peek().isspace():
            self._advance()

        ch = self._peek()
        if not ch:
            raise CompileError("Empty identifier", self.pos)
        if not ("a" <= ch <= "z"):
            raise CompileError("First character in identifier is not lowercase", self.pos)

        start = self.pos
        while self._peek() and (self._peek().isascii() and self._peek().isalnum() or self._peek() == "_"):
            self._advance()
        name = self.source[start:self.pos]

        while self._peek() and self._peek().isspace():
            self._advance()
        return name

    def _expect(self, expected: str, context: str):
        if self._peek() != expected:
            raise CompileError(f"Expected '{expected}' {context}", self.pos)
        self._advance()

    def _read_definition(self, start: int):
        if self._open_definition is not None:
            raise CompileError("Subroutine definition opened inside another definition", start)
        name = self._read_identifier()
        for guard in HEADER_GUARDS:
            self._expect(guard, "after subroutine declaration header")

        sub_id = self._resolve(name)
        self.entries[sub_id] = len(self.instructions)
        self.definitions.append((sub_id, start))
        self._emit(OpKind.SUB_START, start, sub_id)
        self._open_definition = sub_id

    def _read_definition_end(self, start: int):
        if self._open_definition is None:
            raise CompileError("'}' closes no subroutine definition", start)
        self._emit(OpKind.SUB_END, start, self._open_definition)
        self._open_definition = None

    def _read_call(self, start: int):
        name = self._read_identifier()
        self._expect(";", "after subroutine call identifier")
        self._emit(OpKind.CALL, start, self._resolve(name))

    def scan(self) -> List[Instruction]:
        """Scan the whole source; the list always ends with a Halt sentinel."""
        while self.pos < len(self.source):
            start = self.pos
            ch = self._advance()

            if ch in SINGLE_CHAR_OPS:
                self._emit(SINGLE_CHAR_OPS[ch], start)
            elif ch == "(":
                self._read_definition(start)
            elif ch == "}":
                self._read_definition_end(start)
            elif ch == "~":
                self._read_call(start)
            else:
                self._emit(OpKind.LITERAL, start, ch)

        if self._open_definition is not None:
            _, offset = self.definitions[-1]
            raise CompileError("Unterminated subroutine definition", offset)

        self.instructions.append(Instruction(OpKind.HALT, Span(len(self.source), 1)))
        return self.instructions

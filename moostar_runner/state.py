"""
Moostar Runner: mutable execution state

State model:
  instruction_pointer: index into the Program, always valid (Halt included)
  data_pointer       : position on the data ribbon
  meta_pointer       : position on the meta ribbon
  active_tape        : which ribbon cell instructions operate on
  data / meta        : the two sparse ribbons, never sharing cells
  return_stack       : one LIFO of instruction indices shared by loop
                        re-entry and subroutine returns (top = last item)
  halted             : one-way flag
  input              : queued bytes for ReadInput
  output             : characters written so far (append-only)
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from .ribbon import Ribbon


class Tape(Enum):
    DATA = 'data'
    META = 'meta'

    def other(self) -> 'Tape':
        return Tape.META if self is Tape.DATA else Tape.DATA


class ExecutionState:
    """Run-time state owned by exactly one Runner."""

    __slots__ = ('instruction_pointer', 'data_pointer', 'meta_pointer', 'active_tape',
                 'data', 'meta', 'return_stack', 'halted', 'input', 'output')

    def __init__(self, entry: int, initial_input: bytes = b""):
        self.instruction_pointer: int = entry
        self.data_pointer: int = 0
        self.meta_pointer: int = 0
        self.active_tape: Tape = Tape.DATA
        self.data = Ribbon()
        self.meta = Ribbon()
        self.return_stack: List[int] = []
        self.halted: bool = False
        self.input: Deque[int] = deque(initial_input)
        self.output: List[str] = []

    # --- Active ribbon helpers ---

    @property
    def ribbon(self) -> Ribbon:
        return self.meta if self.active_tape is Tape.META else self.data

    @property
    def pointer(self) -> int:
        return self.meta_pointer if self.active_tape is Tape.META else self.data_pointer

    @pointer.setter
    def pointer(self, value: int):
        if self.active_tape is Tape.META:
            self.meta_pointer = value
        else:
            self.data_pointer = value

    def ribbon_for(self, tape: Tape) -> Ribbon:
        return self.meta if tape is Tape.META else self.data

    def get_value(self) -> int:
        return self.ribbon.read(self.pointer)

    def set_value(self, value: int):
        self.ribbon.write(self.pointer, value)

    def display(self) -> str:
        """Compact one-line state dump for trace output."""
        return (f"IP={self.instruction_pointer:<5d} DP={self.data_pointer:<4d} "
                f"MP={self.meta_pointer:<4d} T={self.active_tape.value} "
                f"V={self.get_value():3d} RS={len(self.return_stack)}")


@dataclass(frozen=True)
class Snapshot:
    """Immutable copy of every observable field of an ExecutionState."""
    instruction_pointer: int
    data_pointer: int
    meta_pointer: int
    active_tape: Tape
    data: Tuple[Tuple[int, int], ...]
    meta: Tuple[Tuple[int, int], ...]
    return_stack: Tuple[int, ...]
    halted: bool
    input: bytes
    output: str
    fault: Optional[str] = None

    @classmethod
    def capture(cls, state: ExecutionState, fault: Optional[Exception] = None) -> 'Snapshot':
        def frozen(cells: Dict[int, int]):
            return tuple(sorted(cells.items()))
        return cls(
            instruction_pointer=state.instruction_pointer,
            data_pointer=state.data_pointer,
            meta_pointer=state.meta_pointer,
            active_tape=state.active_tape,
            data=frozen(state.data.cells()),
            meta=frozen(state.meta.cells()),
            return_stack=tuple(state.return_stack),
            halted=state.halted,
            input=bytes(state.input),
            output="".join(state.output),
            fault=None if fault is None else str(fault),
        )

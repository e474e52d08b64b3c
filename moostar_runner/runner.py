"""
Moostar Runner: step engine + introspection

Execution model:
  1. Look at the instruction under the instruction pointer
  2. Dispatch to its handler → update ribbons, pointers, return stack, output
  3. Skip trailing Literal no-ops so the pointer rests on the next semantic
     instruction (or Halt)

Loops and subroutine calls share one return stack:
  [   non-zero cell → push own index, advance
      zero cell     → jump past the matching ]
  ]   pop → jump back to that [, which re-tests the cell
  ~f; push own index, jump to f's SUB_START
  }   pop → jump one past the popped call

Stop reasons returned by step():
  HALT  : Halt executed (or already halted)
  INPUT : ReadInput with an empty input queue, nothing changed
  FAULT : malformed program or ribbon underflow, nothing changed

run() adds:
  BREAK  : instruction pointer landed on a breakpoint index
  TIMEOUT: step budget spent

The engine has no notion of time: the driver decides how often to step.
"""

from __future__ import annotations
import logging
from enum import Enum
from typing import Callable, Dict, List, Optional, Set, Union

import regex

from moostar_compiler import Program, Instruction, OpKind, Span, MoostarError, compile_source

from .config import RunnerConfig, UnderflowPolicy
from .state import ExecutionState, Snapshot, Tape

log = logging.getLogger(__name__)

GRAPHEME = regex.compile(r"\X")


class StopReason(Enum):
    HALT = 'HALT'
    INPUT = 'INPUT'
    FAULT = 'FAULT'
    BREAK = 'BREAK'
    TIMEOUT = 'TIMEOUT'


class RunnerFault(MoostarError):
    """A run-time condition that stops the runner until reset()."""

    def __init__(self, message: str, ip: int):
        self.message = message
        self.ip = ip
        super().__init__(f"{message} (at instruction #{ip})")


class MalformedProgramError(RunnerFault):
    """Return-stack underflow, call to an undefined subroutine or unmatched '['."""


class TapeUnderflowError(RunnerFault):
    """MoveLeft on position 0 under UnderflowPolicy.FAULT."""


class _AwaitInput(Exception):
    pass


class Runner:
    """Executes a compiled Moostar program one semantic instruction at a time.

    Usage:
        runner = Runner("(double):{++}~double;~double;")
        while runner.step() is None:
            highlight(runner.instruction_span())
        print(runner.get_output())
    """

    def __init__(self, program: Union[str, Program], *, input_data: Union[str, bytes] = b"",
                 config: Optional[RunnerConfig] = None, strict: bool = False):
        if isinstance(program, str):
            program = compile_source(program, strict=strict)
        self.program: Program = program
        self.config = config or RunnerConfig()

        self._initial_input = _to_bytes(input_data)
        self._breakpoints: Set[int] = set()
        self._dispatch: Dict[OpKind, Callable[[int, Instruction], None]] = self._build_dispatch()

        self.state = ExecutionState(self.program.entry, self._initial_input)
        self.fault: Optional[RunnerFault] = None
        self.steps = 0
        self.trace_output: List[str] = []

    def reset(self):
        """Back to the entry point with empty ribbons, reusing the compiled program."""
        self.state = ExecutionState(self.program.entry, self._initial_input)
        self.fault = None
        self.steps = 0
        self.trace_output = []
        log.debug("Runner reset, entry at #%d", self.program.entry)

    # ══════════════════════════════════════════════
    # Input + breakpoints
    # ══════════════════════════════════════════════

    def feed_input(self, data: Union[str, bytes]):
        """Queue bytes for ReadInput (str is UTF-8 encoded)."""
        self.state.input.extend(_to_bytes(data))

    def add_breakpoint(self, index: int):
        if not 0 <= index < len(self.program):
            raise ValueError(f"Breakpoint #{index} outside program of {len(self.program)} instructions")
        self._breakpoints.add(index)

    def remove_breakpoint(self, index: int):
        self._breakpoints.discard(index)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self) -> Optional[StopReason]:
        """Execute one semantic instruction. Returns a StopReason if stopped, else None.

        Once halted or faulted, further calls change nothing.
        """
        if self.fault is not None:
            return StopReason.FAULT
        if self.state.halted:
            return StopReason.HALT

        self._skip_noops()
        ip = self.state.instruction_pointer
        inst = self.program[ip]

        if inst.kind is OpKind.HALT:
            self.state.halted = True
            log.debug("Halted at #%d after %d steps", ip, self.steps)
            return StopReason.HALT

        try:
            self._dispatch[inst.kind](ip, inst)
        except _AwaitInput:
            return StopReason.INPUT
        except RunnerFault as e:
            self.fault = e
            log.warning("Runner fault: %s", e)
            return StopReason.FAULT

        self.steps += 1
        if self.config.trace:
            span = inst.span
            line = (f"#{ip:04d}: {inst.kind.name:12s} @{span.offset}+{span.length} "
                    f"{self.state.display()}")
            self.trace_output.append(line)
            log.debug("%s", line)

        self._skip_noops()
        return None

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Step until the program stops, a breakpoint is reached or the budget runs out."""
        budget = max_steps if max_steps is not None else self.config.max_steps
        for _ in range(budget):
            reason = self.step()
            if reason is not None:
                return reason
            if self.state.instruction_pointer in self._breakpoints:
                return StopReason.BREAK
        return StopReason.TIMEOUT

    def _skip_noops(self):
        # Halt is never a no-op, so this stops inside the program
        while self.program[self.state.instruction_pointer].is_noop:
            self.state.instruction_pointer += 1

    # ══════════════════════════════════════════════
    # Instruction handlers
    # ══════════════════════════════════════════════
    # Handler signature: handler(ip, instruction)
    # A handler that raises must not have changed any state.

    def _build_dispatch(self) -> dict:
        return {
            OpKind.INCREMENT: self._op_increment,
            OpKind.DECREMENT: self._op_decrement,
            OpKind.MOVE_LEFT: self._op_move_left,
            OpKind.MOVE_RIGHT: self._op_move_right,
            OpKind.READ_INPUT: self._op_read_input,
            OpKind.WRITE_OUTPUT: self._op_write_output,
            OpKind.LOOP_START: self._op_loop_start,
            OpKind.LOOP_END: self._op_loop_end,
            OpKind.CALL: self._op_call,
            OpKind.SUB_START: self._op_sub_start,
            OpKind.SUB_END: self._op_sub_end,
            OpKind.TOGGLE_TAPE: self._op_toggle_tape,
        }

    def _op_increment(self, ip: int, inst: Instruction):
        s = self.state
        s.ribbon.increment(s.pointer)
        s.instruction_pointer += 1

    def _op_decrement(self, ip: int, inst: Instruction):
        s = self.state
        s.ribbon.decrement(s.pointer)
        s.instruction_pointer += 1

    def _op_move_left(self, ip: int, inst: Instruction):
        s = self.state
        if s.pointer == 0:
            if self.config.underflow is UnderflowPolicy.FAULT:
                raise TapeUnderflowError(f"'<' moved the {s.active_tape.value} pointer below 0", ip)
        else:
            s.pointer -= 1
        s.instruction_pointer += 1

    def _op_move_right(self, ip: int, inst: Instruction):
        s = self.state
        s.pointer += 1
        s.instruction_pointer += 1

    def _op_read_input(self, ip: int, inst: Instruction):
        s = self.state
        if not s.input:
            raise _AwaitInput()
        s.set_value(s.input.popleft())
        s.instruction_pointer += 1

    def _op_write_output(self, ip: int, inst: Instruction):
        s = self.state
        s.output.append(chr(s.get_value()))
        s.instruction_pointer += 1

    def _op_loop_start(self, ip: int, inst: Instruction):
        s = self.state
        if s.get_value() != 0:
            s.return_stack.append(ip)
            s.instruction_pointer += 1
            return

        # Zero cell: find the matching ], counting only loop brackets
        depth = 1
        index = ip
        while depth > 0:
            index += 1
            kind = self.program[index].kind
            if kind is OpKind.LOOP_START:
                depth += 1
            elif kind is OpKind.LOOP_END:
                depth -= 1
            elif kind is OpKind.HALT:
                raise MalformedProgramError("unmatched '[': no ']' before end of program", ip)
        s.instruction_pointer = index + 1

    def _op_loop_end(self, ip: int, inst: Instruction):
        s = self.state
        if not s.return_stack:
            raise MalformedProgramError("']' with an empty return stack", ip)
        s.instruction_pointer = s.return_stack.pop()

    def _op_call(self, ip: int, inst: Instruction):
        s = self.state
        target = self.program.subroutines.get(inst.arg)
        if target is None:
            raise MalformedProgramError(
                f"call to undefined subroutine '{self.program.name_of(inst.arg)}'", ip)
        s.return_stack.append(ip)
        s.instruction_pointer = target

    def _op_sub_start(self, ip: int, inst: Instruction):
        self.state.instruction_pointer += 1

    def _op_sub_end(self, ip: int, inst: Instruction):
        s = self.state
        if not s.return_stack:
            raise MalformedProgramError(
                f"end of subroutine '{self.program.name_of(inst.arg)}' with an empty return stack", ip)
        s.instruction_pointer = s.return_stack.pop() + 1

    def _op_toggle_tape(self, ip: int, inst: Instruction):
        s = self.state
        s.active_tape = s.active_tape.other()
        s.instruction_pointer += 1

    # ══════════════════════════════════════════════
    # Introspection (read-only)
    # ══════════════════════════════════════════════

    def current_instruction(self) -> Instruction:
        return self.program[self.state.instruction_pointer]

    def instruction_span(self) -> Span:
        """Span of the next instruction to be executed."""
        return self.current_instruction().span

    def is_halted(self) -> bool:
        return self.state.halted

    @property
    def awaiting_input(self) -> bool:
        s = self.state
        return (not s.halted and self.fault is None and not s.input
                and self.current_instruction().kind is OpKind.READ_INPUT)

    def jump_list(self, max_of: Optional[int] = None) -> List[int]:
        """Return-stack contents, most recent first, capped to max_of entries."""
        if max_of is None:
            max_of = self.config.jump_list_limit
        stack = self.state.return_stack[::-1]
        if max_of is None:
            return stack
        if max_of < 0:
            raise ValueError(f"max_of must not be negative, got {max_of}")
        return stack[:max_of]

    def get_output(self) -> str:
        return "".join(self.state.output)

    def output_length(self) -> int:
        """Output length in user-perceived characters (grapheme clusters)."""
        return len(GRAPHEME.findall(self.get_output()))

    def pending_input(self) -> bytes:
        return bytes(self.state.input)

    def active_pointer(self) -> int:
        return self.state.pointer

    @property
    def active_tape(self) -> Tape:
        return self.state.active_tape

    def cell(self, tape: Tape, position: int) -> int:
        return self.state.ribbon_for(tape).read(position)

    def ribbon_around(self, count: Optional[int] = None) -> List[int]:
        """`count` cells of the active ribbon, from the block holding the active pointer."""
        if count is None:
            count = self.config.ribbon_width
        if count < 1:
            raise ValueError(f"Ribbon window must hold at least one cell, got {count}")
        start = (self.state.pointer // count) * count
        return self.state.ribbon.window(start, count)

    def snapshot(self) -> Snapshot:
        return Snapshot.capture(self.state, self.fault)


def _to_bytes(data: Union[str, bytes]) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)

"""
Moostar Runner: step engine tests

Each test compiles a tiny program and steps it by hand, checking the
ribbons, pointers and return stack after every step that matters.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import dataclasses

import pytest
from moostar_compiler import compile_source, OpKind
from moostar_runner import (
    Runner, RunnerConfig, StopReason, Tape, UnderflowPolicy,
    MalformedProgramError, TapeUnderflowError, RunnerFault,
)


def _run(source: str, **kwargs) -> Runner:
    runner = Runner(source, **kwargs)
    assert runner.run(max_steps=10_000) is StopReason.HALT
    return runner


# ═══════════════════════════════════════════════
# Test Group 1: Individual Instructions
# ═══════════════════════════════════════════════

class TestCellArithmetic:
    def test_single_increment(self):
        runner = Runner("+")
        assert len(runner.program) == 2
        assert runner.step() is None
        assert runner.cell(Tape.DATA, 0) == 1
        assert runner.active_tape is Tape.DATA

    def test_three_increments_then_halt(self):
        runner = Runner("+++")
        for _ in range(3):
            assert runner.step() is None
        assert runner.cell(Tape.DATA, 0) == 3
        assert not runner.is_halted()
        assert runner.step() is StopReason.HALT
        assert runner.is_halted()
        assert runner.cell(Tape.DATA, 0) == 3

    def test_decrement_wraps_to_255(self):
        runner = Runner("-")
        runner.step()
        assert runner.cell(Tape.DATA, 0) == 255

    def test_increment_wraps_to_0(self):
        runner = _run("-+")
        assert runner.cell(Tape.DATA, 0) == 0

    def test_256_increments_wrap(self):
        runner = _run("+" * 257)
        assert runner.cell(Tape.DATA, 0) == 1


class TestPointerMovement:
    def test_move_right_and_left(self):
        runner = Runner(">>+<")
        runner.step()
        runner.step()
        assert runner.active_pointer() == 2
        runner.step()
        assert runner.cell(Tape.DATA, 2) == 1
        runner.step()
        assert runner.active_pointer() == 1

    def test_underflow_faults_by_default(self):
        runner = Runner("+<")
        runner.step()
        before = runner.snapshot()
        assert runner.step() is StopReason.FAULT
        assert isinstance(runner.fault, TapeUnderflowError)
        assert runner.fault.ip == 1
        assert not runner.is_halted()
        # Nothing changed except the recorded fault
        after = runner.snapshot()
        assert dataclasses.replace(after, fault=None) == before

    def test_fault_is_sticky(self):
        runner = Runner("<+")
        assert runner.step() is StopReason.FAULT
        assert runner.step() is StopReason.FAULT
        assert runner.cell(Tape.DATA, 0) == 0
        assert runner.state.instruction_pointer == 0

    def test_meta_underflow_names_meta_ribbon(self):
        runner = Runner("^<")
        runner.step()
        assert runner.step() is StopReason.FAULT
        assert "meta" in str(runner.fault)

    def test_underflow_clamp(self):
        runner = _run("<+", config=RunnerConfig(underflow=UnderflowPolicy.CLAMP))
        assert runner.active_pointer() == 0
        assert runner.cell(Tape.DATA, 0) == 1

    def test_underflow_policy_from_string(self):
        assert RunnerConfig(underflow="clamp").underflow is UnderflowPolicy.CLAMP


class TestOutput:
    def test_write_character(self):
        runner = _run("++++++++[>++++++++<-]>+.")
        assert runner.get_output() == "A"

    def test_bytes_above_127_are_latin1(self):
        runner = _run("+" * 233 + ".")
        assert runner.get_output() == "é"

    def test_output_is_appended(self):
        runner = _run("+.+.+.")
        assert runner.get_output() == "\x01\x02\x03"


class TestInput:
    def test_reads_pre_supplied_input(self):
        runner = _run(",.,.", input_data="hi")
        assert runner.get_output() == "hi"
        assert runner.pending_input() == b""

    def test_waits_when_input_is_empty(self):
        runner = Runner(",+")
        assert runner.step() is StopReason.INPUT
        assert runner.awaiting_input
        assert not runner.is_halted()
        assert runner.state.instruction_pointer == 0
        # Still waiting, still nothing changed
        assert runner.step() is StopReason.INPUT

        runner.feed_input("B")
        assert not runner.awaiting_input
        assert runner.step() is None
        assert runner.cell(Tape.DATA, 0) == ord("B")
        assert runner.step() is None
        assert runner.cell(Tape.DATA, 0) == ord("B") + 1

    def test_str_input_is_utf8(self):
        runner = _run(",>,", input_data="é")
        assert runner.cell(Tape.DATA, 0) == 0xC3
        assert runner.cell(Tape.DATA, 1) == 0xA9

    def test_bytes_input(self):
        runner = _run(",", input_data=b"\xff")
        assert runner.cell(Tape.DATA, 0) == 255

    def test_input_goes_to_active_ribbon(self):
        runner = _run("^,", input_data="x")
        assert runner.cell(Tape.META, 0) == ord("x")
        assert runner.cell(Tape.DATA, 0) == 0

    def test_run_stops_on_input(self):
        runner = Runner("+,")
        assert runner.run() is StopReason.INPUT


class TestToggleTape:
    def test_toggle_increment_toggle(self):
        runner = Runner("^+^")
        runner.step()
        assert runner.active_tape is Tape.META
        runner.step()
        assert runner.cell(Tape.META, 0) == 1
        assert runner.cell(Tape.DATA, 0) == 0
        runner.step()
        assert runner.active_tape is Tape.DATA

    def test_pointers_are_independent(self):
        runner = _run(">>^>")
        assert runner.state.data_pointer == 2
        assert runner.state.meta_pointer == 1
        assert runner.active_pointer() == 1


class TestLiterals:
    def test_literals_are_skipped(self):
        runner = Runner("a+b")
        assert runner.state.instruction_pointer == 1
        assert runner.step() is None
        # Trailing 'b' skipped, resting on Halt
        assert runner.current_instruction().kind is OpKind.HALT
        assert runner.cell(Tape.DATA, 0) == 1

    def test_comment_text_changes_nothing(self):
        plain = _run("+>+").snapshot()
        commented = _run("add one + move > add one again + done").snapshot()
        assert dataclasses.replace(commented, instruction_pointer=0) == \
            dataclasses.replace(plain, instruction_pointer=0)

    def test_never_rests_on_a_literal(self):
        runner = Runner("(f):{ + } x+ y\n[ - ]z ~f; end")
        runner.step()
        while runner.step() is None:
            assert runner.current_instruction().kind is not OpKind.LITERAL


# ═══════════════════════════════════════════════
# Test Group 2: Loops
# ═══════════════════════════════════════════════

class TestLoops:
    def test_clear_loop_step_by_step(self):
        runner = Runner("+[-]")
        runner.step()
        assert runner.cell(Tape.DATA, 0) == 1
        runner.step()                       # [ on non-zero pushes its index
        assert runner.jump_list() == [1]
        assert runner.state.instruction_pointer == 2
        runner.step()                       # -
        assert runner.cell(Tape.DATA, 0) == 0
        runner.step()                       # ] jumps back to [
        assert runner.state.instruction_pointer == 1
        assert runner.jump_list() == []
        runner.step()                       # [ on zero skips past ]
        assert runner.current_instruction().kind is OpKind.HALT
        assert runner.step() is StopReason.HALT
        assert runner.cell(Tape.DATA, 0) == 0

    def test_zero_trip_loop_skips_nested(self):
        runner = Runner("[[+]+]+")
        runner.step()
        assert runner.state.instruction_pointer == 6
        runner.step()
        assert runner.cell(Tape.DATA, 0) == 1
        assert runner.step() is StopReason.HALT

    def test_nested_loops(self):
        runner = _run("++[>++[>+<-]<-]>>")
        assert runner.cell(Tape.DATA, 0) == 0
        assert runner.cell(Tape.DATA, 1) == 0
        assert runner.cell(Tape.DATA, 2) == 4
        assert runner.active_pointer() == 2

    def test_loop_tests_active_ribbon(self):
        # Data cell is 1 but the meta cell under test is 0
        runner = _run("+^[+]^")
        assert runner.cell(Tape.META, 0) == 0
        assert runner.cell(Tape.DATA, 0) == 1

    def test_stray_loop_end_faults(self):
        runner = Runner("+]")
        runner.step()
        assert runner.step() is StopReason.FAULT
        assert isinstance(runner.fault, MalformedProgramError)
        assert runner.fault.ip == 1
        assert "empty return stack" in str(runner.fault)

    def test_unmatched_loop_start_faults_on_zero(self):
        runner = Runner("[+")
        assert runner.step() is StopReason.FAULT
        assert isinstance(runner.fault, MalformedProgramError)
        assert "unmatched" in str(runner.fault)
        assert runner.state.instruction_pointer == 0

    def test_infinite_loop_times_out(self):
        runner = Runner("+[]")
        assert runner.run(max_steps=50) is StopReason.TIMEOUT
        assert runner.steps == 50


# ═══════════════════════════════════════════════
# Test Group 3: Subroutines
# ═══════════════════════════════════════════════

class TestSubroutines:
    def test_double_called_twice(self):
        runner = Runner("(double):{++}~double;~double;")
        assert len(runner.program.names) == 1
        assert runner.state.instruction_pointer == 4

        runner.step()                       # ~double; (first)
        assert runner.state.instruction_pointer == 0
        assert runner.jump_list() == [4]
        for _ in range(3):                  # SUB_START, +, +
            runner.step()
        assert runner.cell(Tape.DATA, 0) == 2
        runner.step()                       # } returns after the first call
        assert runner.state.instruction_pointer == 5
        assert runner.jump_list() == []

        for _ in range(5):
            runner.step()
        assert runner.state.instruction_pointer == 6
        assert runner.step() is StopReason.HALT
        assert runner.cell(Tape.DATA, 0) == 4
        assert runner.steps == 10

    def test_forward_call(self):
        runner = Runner("~later;(later):{+++}")
        for _ in range(5):                  # ~later; SUB_START + + + }
            runner.step()
        assert runner.cell(Tape.DATA, 0) == 3
        assert runner.state.instruction_pointer == 1
        assert runner.jump_list() == []

    def test_falling_into_trailing_definition(self):
        # After the call returns, execution runs into the body a second time
        runner = Runner("~later;(later):{+++}")
        assert runner.run() is StopReason.FAULT
        assert isinstance(runner.fault, MalformedProgramError)
        assert runner.fault.ip == 5
        assert "empty return stack" in str(runner.fault)
        assert runner.cell(Tape.DATA, 0) == 6
        assert not runner.is_halted()

    def test_nested_calls(self):
        runner = _run("(inc):{+}(twice):{~inc;~inc;}~twice;~twice;")
        assert runner.cell(Tape.DATA, 0) == 4

    def test_return_skips_literals_after_call(self):
        runner = Runner("(f):{+} ~f; x ~f;")
        assert runner.run() is StopReason.HALT
        assert runner.cell(Tape.DATA, 0) == 2

    def test_loop_inside_subroutine(self):
        runner = _run("(clear):{[-]}+++~clear;>+")
        assert runner.cell(Tape.DATA, 0) == 0
        assert runner.cell(Tape.DATA, 1) == 1

    def test_call_inside_loop_shares_return_stack(self):
        runner = Runner("(dec):{-}+++[~dec;]")
        # +++ then [ pushes, ~dec; pushes on top of it
        for _ in range(5):
            runner.step()
        assert runner.current_instruction().kind is OpKind.SUB_START
        assert runner.jump_list() == [7, 6]
        assert runner.run() is StopReason.HALT
        assert runner.cell(Tape.DATA, 0) == 0

    def test_call_to_undefined_subroutine_faults(self):
        runner = Runner("+~nope;")
        runner.step()
        assert runner.step() is StopReason.FAULT
        assert isinstance(runner.fault, MalformedProgramError)
        assert "nope" in str(runner.fault)
        assert runner.jump_list() == []

    def test_subroutine_end_without_call_faults(self):
        program = compile_source("(f):{}")
        # Enter the body directly, as if the entry point had not skipped it
        runner = Runner(dataclasses.replace(program, entry=0))
        assert runner.step() is None
        assert runner.step() is StopReason.FAULT
        assert isinstance(runner.fault, MalformedProgramError)
        assert runner.fault.ip == 1

    def test_only_definitions_halts_immediately(self):
        runner = Runner("(f):{+}")
        assert runner.step() is StopReason.HALT
        assert runner.cell(Tape.DATA, 0) == 0


# ═══════════════════════════════════════════════
# Test Group 4: Halt, reset, determinism
# ═══════════════════════════════════════════════

class TestHaltAndReset:
    @pytest.mark.parametrize("source", [
        "+",
        "+[-]",
        "^+^",
        "(double):{++}~double;~double;",
        "++++++++[>++++++++<-]>+.",
    ])
    def test_halt_is_idempotent(self, source):
        runner = _run(source)
        before = runner.snapshot()
        for _ in range(5):
            assert runner.step() is StopReason.HALT
        assert runner.snapshot() == before
        assert runner.run() is StopReason.HALT

    def test_reset_restores_initial_state(self):
        runner = _run("^>+^>>+.", input_data="")
        runner.reset()
        s = runner.state
        assert s.instruction_pointer == runner.program.entry
        assert (s.data_pointer, s.meta_pointer) == (0, 0)
        assert s.active_tape is Tape.DATA
        assert len(s.data) == 0 and len(s.meta) == 0
        assert runner.jump_list() == []
        assert not runner.is_halted()
        assert runner.get_output() == ""
        assert runner.steps == 0

    def test_reset_clears_fault(self):
        runner = Runner("<")
        runner.step()
        assert runner.fault is not None
        runner.reset()
        assert runner.fault is None
        assert runner.step() is StopReason.FAULT

    def test_reset_restores_initial_input(self):
        runner = _run(",", input_data="x")
        runner.feed_input("yz")
        runner.reset()
        assert runner.pending_input() == b"x"

    def test_reset_skips_subroutine_bodies(self):
        runner = _run("(f):{+}~f;")
        runner.reset()
        assert runner.current_instruction().kind is OpKind.CALL

    def test_replay_is_deterministic(self):
        runner = Runner("(f):{[->+<]}+++~f;>[-<++>]", input_data="")
        for _ in range(9):
            runner.step()
        first = runner.snapshot()
        runner.reset()
        for _ in range(9):
            runner.step()
        assert runner.snapshot() == first


class TestRunControl:
    def test_breakpoint(self):
        runner = Runner("+++")
        runner.add_breakpoint(2)
        assert runner.run() is StopReason.BREAK
        assert runner.cell(Tape.DATA, 0) == 2
        runner.remove_breakpoint(2)
        assert runner.run() is StopReason.HALT

    def test_breakpoint_out_of_range(self):
        with pytest.raises(ValueError):
            Runner("+").add_breakpoint(99)

    def test_clear_breakpoints(self):
        runner = Runner("++")
        runner.add_breakpoint(1)
        runner.clear_breakpoints()
        assert runner.run() is StopReason.HALT

    def test_trace(self):
        runner = _run("+>", config=RunnerConfig(trace=True))
        assert len(runner.trace_output) == 2
        assert runner.trace_output[0].startswith("#0000: INCREMENT    @0+1 ")
        assert "MOVE_RIGHT" in runner.trace_output[1]
        assert " @1+1 " in runner.trace_output[1]

    def test_trace_span_of_call(self):
        runner = _run("(f):{}a+~f;", config=RunnerConfig(trace=True))
        assert runner.trace_output[0].startswith("#0003: INCREMENT    @7+1 ")
        assert runner.trace_output[1].startswith("#0004: CALL         @8+3 ")

    def test_no_trace_by_default(self):
        assert _run("+").trace_output == []

    def test_config_budget(self):
        runner = Runner("+[]", config=RunnerConfig(max_steps=10))
        assert runner.run() is StopReason.TIMEOUT

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            RunnerConfig(max_steps=0)

    def test_faults_share_a_base(self):
        assert issubclass(MalformedProgramError, RunnerFault)
        assert issubclass(TapeUnderflowError, RunnerFault)

# Moostar Runner: step engine for compiled Moostar programs
# Part of the Moostar toolchain (see moostar_compiler for the front end)
#
#   state.py     : execution state: pointers, ribbons, return stack, I/O
#   ribbon.py    : sparse 8-bit tape
#   config.py    : RunnerConfig + UnderflowPolicy
#   runner.py    : Runner: step(), run(), reset(), introspection queries
#   log_setup.py : rich logging for drivers
#
# The engine never sleeps or blocks; pacing is left to the caller.

from .config import RunnerConfig, UnderflowPolicy, DEFAULT_RIBBON_WIDTH
from .ribbon import Ribbon
from .state import ExecutionState, Snapshot, Tape
from .runner import (
    Runner, StopReason, RunnerFault, MalformedProgramError, TapeUnderflowError,
)

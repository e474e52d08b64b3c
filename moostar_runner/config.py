"""
Moostar Runner: run-time configuration

UnderflowPolicy decides what MoveLeft does on position 0:
  FAULT : stop with a TapeUnderflowError, state untouched (default)
  CLAMP : stay on position 0 and carry on
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class UnderflowPolicy(Enum):
    FAULT = 'fault'
    CLAMP = 'clamp'


# Cells shown by the ribbon view
DEFAULT_RIBBON_WIDTH = 100


@dataclass
class RunnerConfig:
    underflow: UnderflowPolicy = UnderflowPolicy.FAULT
    max_steps: int = 10_000_000      # default budget for Runner.run()
    trace: bool = False
    ribbon_width: int = DEFAULT_RIBBON_WIDTH
    jump_list_limit: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.underflow, str):
            self.underflow = UnderflowPolicy(self.underflow)
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be positive, got {self.max_steps}")
        if self.ribbon_width < 1:
            raise ValueError(f"ribbon_width must be positive, got {self.ribbon_width}")

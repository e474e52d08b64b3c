"""
Moostar Runner: sparse byte ribbon (tape)

A ribbon is an unbounded line of 8-bit cells addressed by non-negative
positions. Only written cells are stored; every other position reads 0.
Arithmetic wraps modulo 256.
"""

from typing import Dict, List


class Ribbon:
    """Sparse byte-addressable tape."""

    __slots__ = ('_cells',)

    def __init__(self):
        self._cells: Dict[int, int] = {}

    def read(self, pos: int) -> int:
        return self._cells.get(pos, 0)

    def write(self, pos: int, value: int):
        self._cells[pos] = value & 0xFF

    def increment(self, pos: int) -> int:
        value = (self.read(pos) + 1) & 0xFF
        self._cells[pos] = value
        return value

    def decrement(self, pos: int) -> int:
        value = (self.read(pos) - 1) & 0xFF
        self._cells[pos] = value
        return value

    def window(self, start: int, count: int) -> List[int]:
        """Values of `count` consecutive cells from `start`, absent cells as 0."""
        return [self._cells.get(pos, 0) for pos in range(start, start + count)]

    def cells(self) -> Dict[int, int]:
        """Copy of the stored (touched) cells."""
        return dict(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self):
        return f"Ribbon({dict(sorted(self._cells.items()))})"

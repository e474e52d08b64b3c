"""
Compiled program store + the passes that run after scanning.

    Pass 2: find_entry_point() locates the first live top-level instruction,
            skipping subroutine bodies and Literal no-ops.
    Checks: check_program() looks for calls to undefined names, duplicate
            definitions and unbalanced loop brackets. It never changes the
            program, only reports.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Sequence, Tuple

from .instructions import Instruction, OpKind


@dataclass(frozen=True)
class Program:
    """Immutable result of compilation.

    instructions: ordered instructions, the last one is always HALT
    subroutines:  subroutine id -> index of its SUB_START
    names:        subroutine id -> name, in id order
    entry:        index where execution starts after construction or reset
    """
    source: str
    instructions: Tuple[Instruction, ...]
    subroutines: Mapping[int, int]
    names: Tuple[str, ...]
    entry: int
    warnings: Tuple[str, ...] = field(default=())

    def __len__(self) -> int:
        return len(self.instructions)

    def __getitem__(self, index: int) -> Instruction:
        return self.instructions[index]

    def name_of(self, sub_id: int) -> str:
        return self.names[sub_id]

    def listing(self) -> str:
        """Human-readable dump of the instruction list (debug helper)."""
        lines = []
        for index, inst in enumerate(self.instructions):
            text = inst.span.slice(self.source).replace("\n", "\\n")
            extra = ""
            if inst.kind in (OpKind.CALL, OpKind.SUB_START, OpKind.SUB_END):
                extra = f" -> {self.names[inst.arg]}#{inst.arg}"
            marker = ">" if index == self.entry else " "
            lines.append(f"{marker}{index:5d}  {inst.kind.name:12s} "
                         f"@{inst.span.offset}+{inst.span.length}  {text!r}{extra}")
        lines.append("")
        lines.append("Subroutines:")
        for sub_id, name in enumerate(self.names):
            where = self.subroutines.get(sub_id)
            lines.append(f"  #{sub_id} {name}: " + ("undefined" if where is None else f"@{where}"))
        return "\n".join(lines)


def make_table(entries: Mapping[int, int]) -> Mapping[int, int]:
    return MappingProxyType(dict(entries))


def find_entry_point(instructions: Sequence[Instruction]) -> int:
    """Index of the first instruction outside any subroutine body that is not a no-op.

    The Halt sentinel always qualifies, so a program made only of
    definitions starts (and immediately stops) on Halt.
    """
    suppressed = False
    for index, inst in enumerate(instructions):
        if inst.kind is OpKind.SUB_START:
            suppressed = True
        elif inst.kind is OpKind.SUB_END:
            suppressed = False
        elif not suppressed and not inst.is_noop:
            return index
    return len(instructions) - 1


def check_program(instructions: Sequence[Instruction], names: Sequence[str],
                  subroutines: Mapping[int, int],
                  definitions: Sequence[Tuple[int, int]]) -> List[Tuple[int, str]]:
    """Static checks over a scanned program; returns (offset, message) per finding, in source order."""
    findings: List[Tuple[int, str]] = []

    for inst in instructions:
        if inst.kind is OpKind.CALL and inst.arg not in subroutines:
            findings.append((inst.span.offset,
                             f"call to undefined subroutine '{names[inst.arg]}'"))

    seen = set()
    for sub_id, offset in definitions:
        if sub_id in seen:
            findings.append((offset, f"subroutine '{names[sub_id]}' defined again, "
                                     f"this definition replaces the earlier one"))
        seen.add(sub_id)

    # Loop brackets must balance within the top level and within each body
    depth = 0
    opened: List[int] = []
    for inst in instructions:
        if inst.kind in (OpKind.SUB_START, OpKind.SUB_END, OpKind.HALT):
            for offset in opened:
                findings.append((offset, "'[' has no matching ']'"))
            opened = []
            depth = 0
        elif inst.kind is OpKind.LOOP_START:
            depth += 1
            opened.append(inst.span.offset)
        elif inst.kind is OpKind.LOOP_END:
            if depth == 0:
                findings.append((inst.span.offset, "']' has no matching '['"))
            else:
                depth -= 1
                opened.pop()

    findings.sort(key=lambda finding: finding[0])
    return findings

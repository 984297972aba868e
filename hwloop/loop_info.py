"""
Machine Loop Analysis

Finds the natural loops of a MachineFunction and arranges them into a loop
forest:
1. Compute dominators (iterative dataflow over the reachable CFG)
2. Collect back edges (u -> h where h dominates u)
3. Build the natural loop of each header (back edges sharing a header merge)
4. Nest loops by block-set containment

Only the queries the late backend passes need are provided: the top,
bottom, and control blocks of a loop and its sub-loops.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from .mir import MachineFunction


@dataclass(eq=False)
class MachineLoop:
    """A natural loop: a header plus every block that reaches a latch without passing the header."""
    header: str
    blocks: list[str]                  # Layout order
    latches: list[str]
    exiting: list[str] = field(default_factory=list)
    parent: Optional["MachineLoop"] = field(default=None, repr=False)
    sub_loops: list["MachineLoop"] = field(default_factory=list, repr=False)

    @property
    def top_block(self) -> str:
        """First loop block in layout order."""
        return self.blocks[0]

    @property
    def bottom_block(self) -> str:
        """Last loop block in layout order."""
        return self.blocks[-1]

    @property
    def control_block(self) -> Optional[str]:
        """Block deciding whether another iteration runs.

        The single latch when it exits the loop, otherwise the header when
        it exits, otherwise None.
        """
        if len(self.latches) == 1 and self.latches[0] in self.exiting:
            return self.latches[0]
        if self.header in self.exiting:
            return self.header
        return None

    @property
    def depth(self) -> int:
        d = 1
        loop = self.parent
        while loop is not None:
            d += 1
            loop = loop.parent
        return d

    def is_innermost(self) -> bool:
        return not self.sub_loops

    def __repr__(self):
        return f"MachineLoop(header={self.header}, blocks={self.blocks}, depth={self.depth})"


def compute_dominators(mf: MachineFunction) -> dict[str, set[str]]:
    """Dominator sets of all blocks reachable from the entry."""
    reachable = _reachable(mf)
    order = [name for name in mf.blocks if name in reachable]
    preds = {name: [p for p in mf.predecessors(name) if p in reachable] for name in order}

    dom = {name: set(order) for name in order}
    dom[mf.entry] = {mf.entry}

    changed = True
    while changed:
        changed = False
        for name in order:
            if name == mf.entry:
                continue
            new = set(order)
            for p in preds[name]:
                new &= dom[p]
            new.add(name)
            if new != dom[name]:
                dom[name] = new
                changed = True
    return dom


def _reachable(mf: MachineFunction) -> set[str]:
    """Compute all blocks reachable from entry."""
    reachable = set()
    worklist = [mf.entry]
    while worklist:
        name = worklist.pop()
        if name in reachable or name not in mf.blocks:
            continue
        reachable.add(name)
        for succ in mf.successors(name):
            if succ not in reachable:
                worklist.append(succ)
    return reachable


class MachineLoopInfo:
    """Loop forest of a MachineFunction.

    Iterating yields the outermost loops in layout order of their headers.
    The analysis is a snapshot: rebuild it after changing the CFG.
    """

    def __init__(self, mf: MachineFunction):
        self.mf = mf
        self._top_level: list[MachineLoop] = []
        self._block_to_loop: dict[str, MachineLoop] = {}
        self._analyze()

    def __iter__(self) -> Iterator[MachineLoop]:
        return iter(self._top_level)

    def __len__(self) -> int:
        return len(self._top_level)

    def loop_for(self, name: str) -> Optional[MachineLoop]:
        """Innermost loop containing a block, if any."""
        return self._block_to_loop.get(name)

    def all_loops(self) -> list[MachineLoop]:
        """Every loop, outer loops before their sub-loops."""
        loops = list(self._top_level)
        i = 0
        while i < len(loops):
            loops.extend(loops[i].sub_loops)
            i += 1
        return loops

    def _analyze(self) -> None:
        mf = self.mf
        dom = compute_dominators(mf)
        layout = [name for name in mf.blocks if name in dom]

        # Back edges grouped by header
        latches_by_header: dict[str, list[str]] = {}
        for name in layout:
            for succ in mf.successors(name):
                if succ in dom and succ in dom[name]:
                    latches_by_header.setdefault(succ, []).append(name)

        loops = []
        for header in layout:
            if header not in latches_by_header:
                continue
            latches = latches_by_header[header]
            body = self._natural_loop(header, latches, dom)
            blocks = [name for name in layout if name in body]
            exiting = [
                name for name in blocks
                if any(succ not in body for succ in mf.successors(name))
            ]
            loops.append(MachineLoop(header=header, blocks=blocks, latches=latches, exiting=exiting))

        # Nest: the parent of a loop is the smallest other loop containing its header
        for loop in loops:
            candidates = [
                other for other in loops
                if other is not loop and loop.header in other.blocks
                and set(loop.blocks) < set(other.blocks)
            ]
            if candidates:
                parent = min(candidates, key=lambda l: len(l.blocks))
                loop.parent = parent
                parent.sub_loops.append(loop)
            else:
                self._top_level.append(loop)

        # Map each block to its innermost loop (larger loops first, inner overwrite)
        for loop in sorted(loops, key=lambda l: len(l.blocks), reverse=True):
            for name in loop.blocks:
                self._block_to_loop[name] = loop

    def _natural_loop(self, header: str, latches: list[str], dom: dict[str, set[str]]) -> set[str]:
        """Blocks of the natural loop for the back edges latch -> header."""
        body = {header}
        work = list(latches)
        while work:
            name = work.pop()
            if name in body:
                continue
            body.add(name)
            for p in self.mf.predecessors(name):
                if p in dom and p not in body:
                    work.append(p)
        return body

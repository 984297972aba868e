"""
Loop Shape Matching

Recognizes the scalar compare+branch(+increment) idiom at the bottom of a
single-block innermost loop and classifies it for hardware-loop fusion.

Pattern (program order, the scan runs bottom-up):

    LOOP:
        <first instruction>           never examined
        ...
        v1 = add v1, step             accumulate (optional)
        v2 = cmp v1, bound            compare (compare-bits form)
        brib lt, v2, LOOP             conditional branch
        [br EXIT]                     optional trailing branch

or, with a branch testing a register against zero:

        v5 = add v5, #-1
        brc ne0, v5, LOOP

The matcher only reads the IR. It returns a LoopShape or None, with the
rejection reason left in `reason`.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from ..conditions import (
    CODE_FAMILIES, InvariantViolation, SignedBits, UnsignedBits, code_to_bits, negate,
)
from ..loop_info import MachineLoop
from ..mir import Imm, MachineFunction, MachineInst, MOpcode, Reg


DEFAULT_MAX_INSTRUCTIONS = 16


class LoopKind(Enum):
    """Idiom classes a hardware loop can absorb."""
    TYPE1 = 1   # compare + accumulate feeding the compare
    TYPE2 = 2   # register tested against zero, optional accumulate
    TYPE3 = 3   # compare, no accumulate
    TYPE4 = 4   # compare, no accumulate, separate unit increment


@dataclass(frozen=True)
class LoopShape:
    """A classified loop, ready for LoopFuser."""
    kind: LoopKind
    block: str
    branch: MachineInst
    branch_reg: Reg
    condition: Enum                  # Branch condition after negation (bits or code)
    loop_condition: Enum             # Condition bits carried by the fused instruction
    exit_branch: Optional[MachineInst] = None
    exit_block: Optional[str] = None
    compare: Optional[MachineInst] = None
    accumulate: Optional[MachineInst] = None
    fed_operand: Optional[int] = None       # Compare operand the accumulate defines
    unit_increment: Optional[MachineInst] = None
    hazard_copy: Optional[MachineInst] = None
    hazard_operand: Optional[int] = None    # Compare operand the copy clobbers

    @property
    def needs_hazard_copy(self) -> bool:
        return self.hazard_operand is not None

    @property
    def bound_operand(self) -> Optional[int]:
        """Compare operand the fused TYPE1 instruction reads (the one not being stepped)."""
        if self.fed_operand is None:
            return None
        return 1 - self.fed_operand

    def instructions(self) -> list[MachineInst]:
        """All matched instructions, branch first."""
        found = [self.branch, self.exit_branch, self.compare, self.accumulate,
                 self.unit_increment, self.hazard_copy]
        return [inst for inst in found if inst is not None]


@dataclass(frozen=True)
class _ScanState:
    """What the bottom-up scan has found so far."""
    scanned: int = 0
    branch_def_seen: bool = False
    compare: Optional[MachineInst] = None
    accumulate: Optional[MachineInst] = None
    fed_operand: Optional[int] = None
    unit_increment: Optional[MachineInst] = None
    copy: Optional[MachineInst] = None


def is_unit_increment(inst: MachineInst) -> bool:
    """Check for `d = add d, #1` (either operand order)."""
    if inst.opcode != MOpcode.ADD or inst.dest is None:
        return False
    a, b = inst.operands[0], inst.operands[1]
    return (a == inst.dest and b == Imm(1)) or (b == inst.dest and a == Imm(1))


def accumulate_step(inst: MachineInst):
    """The addend of a self-increment: the source that is not the destination."""
    if inst.operands[0] == inst.dest:
        return inst.operands[1]
    return inst.operands[0]


class LoopShapeMatcher:
    """
    Classify single-block innermost loops.

    Algorithm:
    1. Require one block acting as top, bottom, and control block, no sub-loops
    2. Peel an optional trailing unconditional branch
    3. Require BRIB (compare bits) or BRC (register vs zero) before it
    4. If the branch leaves the loop, negate its condition
    5. Scan upward to (not including) the first instruction, within budget
    6. Validate the accumulate, classify, check for a clobbering copy
    """

    def __init__(self, mf: MachineFunction, max_instructions: int = DEFAULT_MAX_INSTRUCTIONS):
        self.mf = mf
        self.max_instructions = max_instructions
        self.reason: Optional[str] = None

    def _reject(self, reason: str) -> None:
        self.reason = reason
        return None

    def classify(self, loop: MachineLoop) -> Optional[LoopShape]:
        """Return the LoopShape of `loop`, or None if it is not a candidate."""
        self.reason = None

        if loop.sub_loops:
            return self._reject("loop has sub-loops")
        top = loop.top_block
        if loop.control_block != top:
            return self._reject("loop control block is not the top block")
        if loop.bottom_block != top:
            return self._reject("multi-block loop")

        insts = [inst for inst in self.mf.blocks[top] if not inst.is_debug()]
        if not insts:
            return self._reject("empty loop block")

        # Optional trailing unconditional branch
        pos = len(insts) - 1
        exit_branch = None
        exit_block = None
        cond_is_exit = False
        if insts[pos].is_unconditional_branch():
            exit_branch = insts[pos]
            exit_block = exit_branch.operands[0]
            cond_is_exit = exit_block == top
            pos -= 1
        if pos < 0:
            return self._reject("no conditional branch")

        branch = insts[pos]
        if branch.opcode == MOpcode.BRIB:
            bits_form = True
        elif branch.opcode == MOpcode.BRC:
            bits_form = False
        else:
            return self._reject(f"terminator is {branch.opcode.value}, not brib or brc")

        cond, branch_reg, target = branch.operands
        self._check_condition(cond, bits_form)
        if target != top:
            if not cond_is_exit:
                return self._reject(f"conditional branch targets {target}, not the loop block")
            cond = negate(cond)
            exit_block = target

        if insts[0].is_call():
            return self._reject("loop contains a call")

        state = _ScanState()
        for idx in range(pos - 1, 0, -1):
            state = self._visit(state, insts[idx], branch_reg)
            if state is None:
                return None

        return self._materialize(top, state, branch, branch_reg, cond, bits_form,
                                 exit_branch, exit_block)

    def _check_condition(self, cond, bits_form: bool) -> None:
        if bits_form and not isinstance(cond, (SignedBits, UnsignedBits)):
            raise InvariantViolation(f"brib carries non-integer condition bits {cond!r}")
        if not bits_form and not isinstance(cond, CODE_FAMILIES):
            raise InvariantViolation(f"brc carries non-code condition {cond!r}")

    def _visit(self, state: _ScanState, inst: MachineInst, branch_reg: Reg) -> Optional[_ScanState]:
        """Fold one instruction into the scan state; None rejects the loop."""
        if inst.is_call():
            return self._reject("loop contains a call")
        if state.scanned == self.max_instructions:
            return self._reject(f"more than {self.max_instructions} instructions in loop")

        if inst.is_copy():
            if state.copy is not None:
                return self._reject("more than one copy in loop")
            state = replace(state, copy=inst)

        dest = inst.dest
        if dest is not None:
            if dest == branch_reg:
                # Only the def nearest the branch reaches it.
                if not state.branch_def_seen:
                    if inst.is_compare():
                        state = replace(state, branch_def_seen=True, compare=inst)
                    else:
                        state = replace(state, branch_def_seen=True, accumulate=inst)
            elif state.compare is not None and state.accumulate is None:
                lhs, rhs = state.compare.operands[0], state.compare.operands[1]
                if isinstance(lhs, Reg) and dest == lhs:
                    state = replace(state, accumulate=inst, fed_operand=0)
                elif isinstance(rhs, Reg) and dest == rhs:
                    state = replace(state, accumulate=inst, fed_operand=1)

        if state.unit_increment is None and is_unit_increment(inst):
            state = replace(state, unit_increment=inst)

        return replace(state, scanned=state.scanned + 1)

    def _materialize(self, top: str, state: _ScanState, branch: MachineInst, branch_reg: Reg,
                     cond, bits_form: bool, exit_branch: Optional[MachineInst],
                     exit_block: Optional[str]) -> Optional[LoopShape]:
        compare = state.compare
        accumulate = state.accumulate
        fed_operand = state.fed_operand

        if accumulate is not None:
            if accumulate.opcode != MOpcode.ADD:
                # Only an ADD can be folded into the loop instruction.
                accumulate = None
                fed_operand = None
            elif not accumulate.is_self_increment():
                return self._reject("accumulate is not a self-increment")

        unit_increment = None
        if bits_form:
            if compare is None:
                return self._reject("compare-bits branch without a compare")
            if accumulate is not None:
                # Reached only through a compare operand, so fed_operand is set.
                kind = LoopKind.TYPE1
            elif state.unit_increment is not None:
                kind = LoopKind.TYPE4
                unit_increment = state.unit_increment
            else:
                kind = LoopKind.TYPE3
            loop_condition = cond
        else:
            if compare is not None:
                return self._reject("condition-code branch tests a compare result")
            loop_condition = code_to_bits(cond)
            if loop_condition is None:
                return self._reject(f"condition {cond} has no condition bits")
            kind = LoopKind.TYPE2

        hazard_copy = None
        hazard_operand = None
        if state.copy is not None and compare is not None:
            if kind == LoopKind.TYPE1:
                consumed = [1 - fed_operand]
            else:
                consumed = [0, 1]
            for idx in consumed:
                op = compare.operands[idx]
                if isinstance(op, Reg) and op == state.copy.dest:
                    hazard_copy = state.copy
                    hazard_operand = idx
                    break

        return LoopShape(
            kind=kind,
            block=top,
            branch=branch,
            branch_reg=branch_reg,
            condition=cond,
            loop_condition=loop_condition,
            exit_branch=exit_branch,
            exit_block=exit_block,
            compare=compare,
            accumulate=accumulate,
            fed_operand=fed_operand,
            unit_increment=unit_increment,
            hazard_copy=hazard_copy,
            hazard_operand=hazard_operand,
        )

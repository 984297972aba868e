"""
Loop Fusion

Rewrites a classified loop block into its hardware-loop form:

    LOOP:                              LOOP:
        ...                                v9 = vec #0
        v1 = add v1, #1          =>        ...
        v2 = cmp v1, v3                    loop1ri lt, v1, #1, v3, v9, LOOP
        brib lt, v2, LOOP

The VEC register is a placeholder; the register mask is filled in after
register allocation.
"""

from typing import Optional

from ..conditions import InvariantViolation
from ..mir import Imm, MachineFunction, MachineInst, MOpcode, Reg
from .loop_shape import LoopKind, LoopShape, accumulate_step


class LoopFuser:
    """Replaces the matched scalar control instructions with VEC + LOOPn."""

    def __init__(self, mf: MachineFunction):
        self.mf = mf

    def rewrite(self, shape: LoopShape) -> MachineInst:
        """Rewrite `shape.block` and return the fused loop instruction."""
        self._validate(shape)
        block = self.mf.blocks[shape.block]

        # Build
        vec_reg = self.mf.create_virtual_register("gregs")
        vec = MachineInst(MOpcode.VEC, vec_reg, [Imm(0)])

        hazard_copy = None
        substitute: dict[Reg, Reg] = {}
        if shape.needs_hazard_copy:
            clobbered = shape.compare.operands[shape.hazard_operand]
            # vec_reg is not in the block yet, so allocate past it by hand
            fresh = Reg(vec_reg.id + 1, clobbered.reg_class)
            hazard_copy = MachineInst(MOpcode.COPY, fresh, [clobbered])
            substitute[clobbered] = fresh

        opcode, values = self._fused_operands(shape, substitute)
        fused = MachineInst(opcode, None, [shape.loop_condition, *values, vec_reg, shape.block])

        exit_branch = None
        if shape.exit_block is not None and not self.mf.is_layout_successor(shape.block, shape.exit_block):
            exit_branch = MachineInst(MOpcode.BRU, None, [shape.exit_block])

        # Insert
        block.insert_at_start(vec)
        if hazard_copy is not None:
            block.insert_before(shape.compare, hazard_copy)
        block.insert_before(block.first_terminator(), fused)
        if exit_branch is not None:
            block.insert_after(fused, exit_branch)

        # Delete
        for inst in (shape.exit_branch, shape.branch, shape.compare,
                     shape.accumulate, shape.unit_increment):
            if inst is not None:
                inst.erase_from_parent()

        return fused

    def _fused_operands(self, shape: LoopShape, substitute: dict[Reg, Reg]) -> tuple[MOpcode, list]:
        """Opcode and the three value operands of the fused instruction."""
        def compare_operand(idx: int):
            op = shape.compare.operands[idx]
            return substitute.get(op, op)

        match shape.kind:
            case LoopKind.TYPE1:
                acc = shape.accumulate
                return MOpcode.LOOP1, [acc.dest, accumulate_step(acc),
                                       compare_operand(shape.bound_operand)]
            case LoopKind.TYPE2:
                if shape.accumulate is None:
                    return MOpcode.LOOP1, [shape.branch_reg, Imm(0), Imm(0)]
                return MOpcode.LOOP2, [shape.branch_reg, Imm(0), accumulate_step(shape.accumulate)]
            case LoopKind.TYPE3:
                return MOpcode.LOOP3, [compare_operand(0), compare_operand(1), Imm(0)]
            case LoopKind.TYPE4:
                return MOpcode.LOOP4, [shape.unit_increment.dest, compare_operand(0), compare_operand(1)]
        raise InvariantViolation(f"Unknown loop kind: {shape.kind!r}")

    def _validate(self, shape: LoopShape) -> None:
        """Check the shape is internally consistent before touching the block."""
        if shape.block not in self.mf.blocks:
            raise InvariantViolation(f"Loop block {shape.block} is not in {self.mf.name}")

        def require(cond: bool, what: str):
            if not cond:
                raise InvariantViolation(f"{shape.kind.name} loop in {shape.block}: {what}")

        match shape.kind:
            case LoopKind.TYPE1:
                require(shape.branch.opcode == MOpcode.BRIB, "branch is not brib")
                require(shape.compare is not None, "missing compare")
                require(shape.accumulate is not None and shape.accumulate.is_self_increment(),
                        "missing self-incrementing accumulate")
                require(shape.fed_operand in (0, 1), "accumulate does not feed the compare")
                require(shape.unit_increment is None, "unexpected unit increment")
            case LoopKind.TYPE2:
                require(shape.branch.opcode == MOpcode.BRC, "branch is not brc")
                require(shape.compare is None, "unexpected compare")
                require(shape.accumulate is None or shape.accumulate.is_self_increment(),
                        "accumulate is not a self-increment")
                require(shape.unit_increment is None, "unexpected unit increment")
            case LoopKind.TYPE3:
                require(shape.branch.opcode == MOpcode.BRIB, "branch is not brib")
                require(shape.compare is not None, "missing compare")
                require(shape.accumulate is None, "unexpected accumulate")
                require(shape.unit_increment is None, "unexpected unit increment")
            case LoopKind.TYPE4:
                require(shape.branch.opcode == MOpcode.BRIB, "branch is not brib")
                require(shape.compare is not None, "missing compare")
                require(shape.accumulate is None, "unexpected accumulate")
                require(shape.unit_increment is not None, "missing unit increment")

        if shape.needs_hazard_copy:
            require(shape.compare is not None, "hazard copy without a compare")
            require(isinstance(shape.compare.operands[shape.hazard_operand], Reg),
                    "hazard operand is not a register")

        for inst in shape.instructions():
            owner: Optional[str] = inst.parent.name if inst.parent is not None else None
            require(owner == shape.block, f"{inst} is not in the loop block")

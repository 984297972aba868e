"""
MIR Builder

Provides a builder API for constructing Machine IR the way instruction
selection leaves it: virtual registers, explicit compares, and branches at
the end of each block. Registers may be redefined (the IR is not SSA).
"""

from typing import Optional, Union

from .mir import FImm, Imm, MachineBasicBlock, MachineFunction, MachineInst, MOpcode, Reg


Value = Union[Reg, Imm, FImm, int, float]


def _operand(value: Value):
    """Coerce Python numbers to immediates."""
    if isinstance(value, bool):
        raise TypeError(f"Not a machine operand: {value!r}")
    if isinstance(value, int):
        return Imm(value)
    if isinstance(value, float):
        return FImm(value)
    return value


class MIRBuilder:
    """Builder for constructing a MachineFunction block by block."""

    def __init__(self, name: str = "f"):
        self._name = name
        self._reg_counter = 0
        self._blocks: dict[str, MachineBasicBlock] = {}
        self._current: Optional[MachineBasicBlock] = None

    # === Blocks and registers ===

    def block(self, name: str) -> MachineBasicBlock:
        """Start a new block at the end of the layout and make it current."""
        if name in self._blocks:
            raise ValueError(f"Duplicate block name: {name}")
        block = MachineBasicBlock(name)
        self._blocks[name] = block
        self._current = block
        return block

    def set_block(self, name: str) -> MachineBasicBlock:
        """Continue emitting into an existing block."""
        self._current = self._blocks[name]
        return self._current

    def reg(self, reg_class: str = "gregs") -> Reg:
        """Create a new virtual register."""
        r = Reg(self._reg_counter, reg_class)
        self._reg_counter += 1
        return r

    def _emit(self, opcode: MOpcode, dest: Optional[Reg], operands: list) -> MachineInst:
        if self._current is None:
            raise ValueError("No current block; call block() first")
        inst = MachineInst(opcode, dest, [_operand(op) for op in operands])
        return self._current.append(inst)

    def _def(self, opcode: MOpcode, operands: list, dest: Optional[Reg],
             reg_class: str = "gregs") -> Reg:
        if dest is None:
            dest = self.reg(reg_class)
        self._emit(opcode, dest, operands)
        return dest

    # === ALU ===

    def mov(self, value: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.MOV, [value], dest)

    def add(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.ADD, [a, b], dest)

    def sub(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.SUB, [a, b], dest)

    def mul(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.MUL, [a, b], dest)

    def sll(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.SLL, [a, b], dest)

    def fadd(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.FADD, [a, b], dest, "fregs")

    def fmul(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.FMUL, [a, b], dest, "fregs")

    def fabs(self, a: Value, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.FABS, [a], dest, "fregs")

    def copy(self, src: Reg, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.COPY, [src], dest)

    # === Compares ===

    def cmp(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        """Integer compare producing condition bits."""
        return self._def(MOpcode.CMP, [a, b], dest)

    def fcmp(self, a: Value, b: Value, dest: Optional[Reg] = None) -> Reg:
        """Float compare producing condition bits."""
        return self._def(MOpcode.FCMP, [a, b], dest)

    # === Memory ===

    def load(self, base: Reg, offset: int = 0, dest: Optional[Reg] = None) -> Reg:
        return self._def(MOpcode.LDD, [base, offset], dest)

    def store(self, value: Reg, base: Reg, offset: int = 0) -> MachineInst:
        return self._emit(MOpcode.STD, None, [value, base, offset])

    # === Calls ===

    def call(self, target: str) -> MachineInst:
        return self._emit(MOpcode.CALL, None, [target])

    def calli(self, target: Reg) -> MachineInst:
        return self._emit(MOpcode.CALLI, None, [target])

    def dbg_value(self, reg: Reg) -> MachineInst:
        return self._emit(MOpcode.DBG_VALUE, None, [reg])

    # === Branches ===

    def br(self, target: str) -> MachineInst:
        """Unconditional branch."""
        return self._emit(MOpcode.BRU, None, [target])

    def brib(self, cond, reg: Reg, target: str) -> MachineInst:
        """Branch on integer condition bits."""
        return self._emit(MOpcode.BRIB, None, [cond, reg, target])

    def brfb(self, cond, reg: Reg, target: str) -> MachineInst:
        """Branch on float condition bits."""
        return self._emit(MOpcode.BRFB, None, [cond, reg, target])

    def brc(self, cond, reg: Reg, target: str) -> MachineInst:
        """Branch on a register compared against zero."""
        return self._emit(MOpcode.BRC, None, [cond, reg, target])

    def ret(self) -> MachineInst:
        return self._emit(MOpcode.RET, None, [])

    # === Result ===

    def build(self) -> MachineFunction:
        """Return the MachineFunction; the first block is the entry."""
        if not self._blocks:
            raise ValueError("Cannot build a function with no blocks")
        entry = next(iter(self._blocks))
        return MachineFunction(name=self._name, entry=entry, blocks=dict(self._blocks))

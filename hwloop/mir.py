"""
MIR (Machine IR) - Lowered Instructions in Basic Blocks

The Machine IR is the form instruction selection hands to the late backend
passes. Each MachineBasicBlock owns an ordered list of MachineInsts, and the
block's terminators (conditional branch, optional trailing unconditional
branch, return, or a fused hardware-loop instruction) sit at the end of that
list. Block order in MachineFunction.blocks is the layout order, which
decides fall-through successors.

Pipeline Order:
    instruction selection -> HardwareLoopPass -> register allocation -> VEC fix-up -> emission
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Union


@dataclass(frozen=True)
class Reg:
    """A virtual or physical register."""
    id: int
    reg_class: str = "gregs"
    virtual: bool = True

    def __repr__(self):
        if self.virtual:
            return f"v{self.id}"
        return f"r{self.id}"


@dataclass(frozen=True)
class Imm:
    """An integer immediate."""
    value: int

    def __repr__(self):
        return f"#{self.value}"


@dataclass(frozen=True)
class FImm:
    """A floating-point immediate."""
    value: float

    def __repr__(self):
        return f"#{self.value!r}"


# Block references are block names, like labels elsewhere in the compiler.
# Condition operands are members of the enums in conditions.py.
Operand = Union[Reg, Imm, FImm, str, Enum]


class MOpcode(Enum):
    """Machine opcodes."""
    # Integer ALU
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    SLL = "sll"
    MOV = "mov"

    # Float ALU
    FADD = "fadd"
    FMUL = "fmul"
    FABS = "fabs"

    # Compares (produce condition bits)
    CMP = "cmp"
    FCMP = "fcmp"

    # Memory
    LDD = "ldd"
    STD = "std"

    # Calls
    CALL = "call"
    CALLI = "calli"

    # Branches: BRIB/BRFB test condition bits, BRC tests a register against zero
    BRU = "br"
    BRIB = "brib"
    BRFB = "brfb"
    BRC = "brc"
    RET = "ret"

    # Virtual vector method
    VEC = "vec"
    LOOP1 = "loop1"
    LOOP2 = "loop2"
    LOOP3 = "loop3"
    LOOP4 = "loop4"

    # Pseudo-ops
    COPY = "copy"
    DBG_VALUE = "dbg_value"


COND_BRANCH_OPCODES = {MOpcode.BRIB, MOpcode.BRFB, MOpcode.BRC}
FUSED_LOOP_OPCODES = {MOpcode.LOOP1, MOpcode.LOOP2, MOpcode.LOOP3, MOpcode.LOOP4}
TERMINATOR_OPCODES = {MOpcode.BRU, MOpcode.RET} | COND_BRANCH_OPCODES | FUSED_LOOP_OPCODES
CALL_OPCODES = {MOpcode.CALL, MOpcode.CALLI}
COMPARE_OPCODES = {MOpcode.CMP, MOpcode.FCMP}


@dataclass(eq=False)
class MachineInst:
    """A single machine instruction.

    Instructions have identity semantics: two instructions with the same
    content are still different instructions.

    Operand layouts of the control-flow opcodes:
      - BRU:              [target]
      - BRIB/BRFB/BRC:    [condition, register, target]
      - LOOPn:            [condition, a, b, c, vec_register, loop_block]
      - VEC:              dest = vec register, [#0] (filled in after allocation)
    """
    opcode: MOpcode
    dest: Optional[Reg]               # Single defined register, if any
    operands: list                    # Registers, immediates, labels, conditions
    parent: Optional["MachineBasicBlock"] = field(default=None, repr=False)

    def get_defs(self) -> set[Reg]:
        """Get all registers defined by this instruction."""
        if self.dest is None:
            return set()
        return {self.dest}

    def get_uses(self) -> set[Reg]:
        """Get all registers read by this instruction."""
        return {op for op in self.operands if isinstance(op, Reg)}

    def is_terminator(self) -> bool:
        """Check if this is a control flow terminator."""
        return self.opcode in TERMINATOR_OPCODES

    def is_debug(self) -> bool:
        return self.opcode == MOpcode.DBG_VALUE

    def is_call(self) -> bool:
        return self.opcode in CALL_OPCODES

    def is_compare(self) -> bool:
        return self.opcode in COMPARE_OPCODES

    def is_copy(self) -> bool:
        return self.opcode == MOpcode.COPY

    def is_unconditional_branch(self) -> bool:
        return self.opcode == MOpcode.BRU

    def is_conditional_branch(self) -> bool:
        return self.opcode in COND_BRANCH_OPCODES

    def is_fused_loop(self) -> bool:
        return self.opcode in FUSED_LOOP_OPCODES

    def branch_targets(self) -> list[str]:
        """Get block names this instruction may transfer control to."""
        if self.opcode == MOpcode.BRU:
            return [self.operands[0]]
        if self.opcode in COND_BRANCH_OPCODES:
            return [self.operands[2]]
        if self.opcode in FUSED_LOOP_OPCODES:
            return [self.operands[-1]]
        return []

    def is_self_increment(self) -> bool:
        """Check for an ADD whose destination aliases one of its sources."""
        if self.opcode != MOpcode.ADD or self.dest is None:
            return False
        return any(op == self.dest for op in self.operands[:2])

    @property
    def variant(self) -> str:
        """Operand-kind suffix of a fused loop instruction ("rr", "ri", "ir", "ii").

        LOOP1 names the compare bound before the step. LOOP2 names only its
        step and LOOP3 only its compare rhs; both end in "i". LOOP4 names
        its two compare operands in order.
        """
        def kind(op) -> str:
            return "r" if isinstance(op, Reg) else "i"

        ops = self.operands
        match self.opcode:
            case MOpcode.LOOP1:
                return kind(ops[3]) + kind(ops[2])
            case MOpcode.LOOP2:
                return kind(ops[3]) + "i"
            case MOpcode.LOOP3:
                return kind(ops[2]) + "i"
            case MOpcode.LOOP4:
                return kind(ops[2]) + kind(ops[3])
        return ""

    def erase_from_parent(self) -> None:
        """Remove this instruction from its owning block."""
        if self.parent is None:
            raise ValueError(f"Instruction {self} has no parent block")
        self.parent.erase(self)

    def __repr__(self):
        mnemonic = self.opcode.value + self.variant
        ops_str = ", ".join(str(o) for o in self.operands)
        if self.dest is not None:
            return f"{self.dest} = {mnemonic} {ops_str}"
        return f"{mnemonic} {ops_str}".rstrip()


@dataclass(eq=False)
class MachineBasicBlock:
    """A basic block in the Machine IR CFG.

    The block owns its instructions; insertion sets the instruction's parent
    and erasure clears it.
    """
    name: str
    instructions: list[MachineInst] = field(default_factory=list)

    def __post_init__(self):
        for inst in self.instructions:
            inst.parent = self

    def __iter__(self) -> Iterator[MachineInst]:
        return iter(self.instructions)

    def __reversed__(self) -> Iterator[MachineInst]:
        return reversed(self.instructions)

    def __len__(self) -> int:
        return len(self.instructions)

    def index_of(self, inst: MachineInst) -> int:
        """Position of an instruction in this block (by identity)."""
        for i, candidate in enumerate(self.instructions):
            if candidate is inst:
                return i
        raise ValueError(f"Instruction {inst} is not in block {self.name}")

    def append(self, inst: MachineInst) -> MachineInst:
        inst.parent = self
        self.instructions.append(inst)
        return inst

    def insert_at_start(self, inst: MachineInst) -> MachineInst:
        inst.parent = self
        self.instructions.insert(0, inst)
        return inst

    def insert_before(self, pos: MachineInst, inst: MachineInst) -> MachineInst:
        """Insert inst immediately before pos."""
        idx = self.index_of(pos)
        inst.parent = self
        self.instructions.insert(idx, inst)
        return inst

    def insert_after(self, pos: MachineInst, inst: MachineInst) -> MachineInst:
        """Insert inst immediately after pos."""
        idx = self.index_of(pos)
        inst.parent = self
        self.instructions.insert(idx + 1, inst)
        return inst

    def erase(self, inst: MachineInst) -> None:
        del self.instructions[self.index_of(inst)]
        inst.parent = None

    def first_terminator(self) -> Optional[MachineInst]:
        """Get the first terminator instruction if present."""
        for inst in self.instructions:
            if inst.is_terminator():
                return inst
        return None

    def terminators(self) -> list[MachineInst]:
        first = self.first_terminator()
        if first is None:
            return []
        return self.instructions[self.index_of(first):]

    def last_non_debug(self) -> Optional[MachineInst]:
        """Get the last instruction that is not a debug pseudo."""
        for inst in reversed(self.instructions):
            if not inst.is_debug():
                return inst
        return None

    def falls_through(self) -> bool:
        """Check whether control can reach the next block in layout order."""
        last = self.last_non_debug()
        if last is None or not last.is_terminator():
            return True
        return last.opcode not in (MOpcode.BRU, MOpcode.RET)

    def __repr__(self):
        return f"MBB({self.name}, {len(self.instructions)} insts)"


@dataclass
class MachineFunction:
    """A complete machine function (CFG of machine basic blocks)."""
    name: str
    entry: str
    blocks: dict[str, MachineBasicBlock] = field(default_factory=dict)

    def add_block(self, name: str) -> MachineBasicBlock:
        """Append a new, empty block at the end of the layout."""
        if name in self.blocks:
            raise ValueError(f"Duplicate block name: {name}")
        block = MachineBasicBlock(name)
        self.blocks[name] = block
        return block

    def create_virtual_register(self, reg_class: str = "gregs") -> Reg:
        """Issue a virtual register not used anywhere in the function."""
        return Reg(self._max_virtual_id() + 1, reg_class)

    def _max_virtual_id(self) -> int:
        highest = -1
        for block in self.blocks.values():
            for inst in block:
                for reg in inst.get_defs() | inst.get_uses():
                    if reg.virtual and reg.id > highest:
                        highest = reg.id
        return highest

    def layout_successor(self, name: str) -> Optional[str]:
        """Name of the block that follows `name` in layout order."""
        names = list(self.blocks)
        idx = names.index(name)
        if idx + 1 < len(names):
            return names[idx + 1]
        return None

    def is_layout_successor(self, name: str, succ: str) -> bool:
        return self.layout_successor(name) == succ

    def successors(self, name: str) -> list[str]:
        """Successor block names: branch targets, then fall-through."""
        block = self.blocks[name]
        succs: list[str] = []
        for inst in block.terminators():
            for target in inst.branch_targets():
                if target not in succs:
                    succs.append(target)
        if block.falls_through():
            nxt = self.layout_successor(name)
            if nxt is not None and nxt not in succs:
                succs.append(nxt)
        return succs

    def predecessors(self, name: str) -> list[str]:
        return [b for b in self.blocks if name in self.successors(b)]

    def total_instructions(self) -> int:
        """Count total instructions across all blocks."""
        return sum(len(block) for block in self.blocks.values())

    def __repr__(self):
        return f"MFunc({self.name}, entry={self.entry}, {len(self.blocks)} blocks, {self.total_instructions()} insts)"

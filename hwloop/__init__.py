"""
Hardware Loop Backend Passes for the My66000

Late Machine IR passes that run after instruction selection:
- Condition encoding: predicates -> condition bits / condition codes, negation
- Loop analysis: natural loops of a machine function
- Hardware loops: fuse innermost loop control into VEC + LOOPn

Pipeline: instruction selection -> HardwareLoopPass -> register allocation
"""

# MIR types
from .mir import (
    Reg,
    Imm,
    FImm,
    MOpcode,
    MachineInst,
    MachineBasicBlock,
    MachineFunction,
)

# MIR builder
from .mir_builder import MIRBuilder

# Condition encoding
from .conditions import (
    InvariantViolation,
    Predicate,
    Domain,
    ValueKind,
    SignedBits,
    UnsignedBits,
    OrderedFloatBits,
    UnorderedFloatBits,
    AbsRangeBits,
    FloatClassBits,
    IntCondCode,
    Float32CondCode,
    Float64CondCode,
    to_condition_bits,
    to_condition_code,
    negate,
    abs_conversion,
    code_to_bits,
    condition_family,
    mnemonic,
    reverse_branch_condition,
)

# Loop analysis
from .loop_info import MachineLoop, MachineLoopInfo, compute_dominators

# Pass infrastructure
from .pass_manager import (
    PassConfig,
    PassMetrics,
    CompilerPass,
    MachinePass,
    PassManager,
    count_machine_instructions,
    count_blocks,
)

# Main entry point
from .compile import optimize_machine_function

# Printing utilities
from .printing import format_mir, print_mir

# Passes
from .passes import (
    LoopKind, LoopShape, LoopShapeMatcher, LoopFuser, HardwareLoopConfig, HardwareLoopPass
)


__all__ = [
    # MIR
    'Reg', 'Imm', 'FImm', 'MOpcode', 'MachineInst', 'MachineBasicBlock', 'MachineFunction',
    # Builder
    'MIRBuilder',
    # Conditions
    'InvariantViolation', 'Predicate', 'Domain', 'ValueKind',
    'SignedBits', 'UnsignedBits', 'OrderedFloatBits', 'UnorderedFloatBits',
    'AbsRangeBits', 'FloatClassBits', 'IntCondCode', 'Float32CondCode', 'Float64CondCode',
    'to_condition_bits', 'to_condition_code', 'negate', 'abs_conversion',
    'code_to_bits', 'condition_family', 'mnemonic', 'reverse_branch_condition',
    # Loop analysis
    'MachineLoop', 'MachineLoopInfo', 'compute_dominators',
    # Pass infrastructure
    'PassConfig', 'PassMetrics', 'CompilerPass', 'MachinePass', 'PassManager',
    'count_machine_instructions', 'count_blocks',
    # Compilation
    'optimize_machine_function',
    # Printing
    'format_mir', 'print_mir',
    # Passes
    'LoopKind', 'LoopShape', 'LoopShapeMatcher', 'LoopFuser',
    'HardwareLoopConfig', 'HardwareLoopPass',
]

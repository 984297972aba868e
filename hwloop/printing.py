"""
IR Printing Utilities

Pretty-printing functions for Machine IR.
"""

from .mir import MachineBasicBlock, MachineFunction


def format_block(block: MachineBasicBlock, mf: MachineFunction = None) -> str:
    """Render a block as assembly-like text.

    When the owning function is given, the header line lists predecessors
    and successors.
    """
    header = f"{block.name}:"
    if mf is not None:
        preds = mf.predecessors(block.name)
        succs = mf.successors(block.name)
        if preds:
            header += f" <- {', '.join(preds)}"
        if succs:
            header += f" -> {', '.join(succs)}"
    lines = [header]
    for inst in block:
        lines.append(f"  {inst}")
    return "\n".join(lines)


def format_mir(mf: MachineFunction) -> str:
    """Render a whole machine function."""
    parts = [f"=== MIR: {mf.name} (entry: {mf.entry}, {mf.total_instructions()} insts) ==="]
    for block in mf.blocks.values():
        parts.append(format_block(block, mf))
    return "\n\n".join(parts)


def print_mir(mf: MachineFunction):
    """Pretty-print MachineFunction."""
    print(format_mir(mf))
    print()

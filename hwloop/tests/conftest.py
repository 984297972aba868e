"""Shared fixtures and imports for hardware-loop tests."""

import os
import sys

# Add parent directories to path for imports
_this_dir = os.path.dirname(os.path.abspath(__file__))
_repo_root = os.path.dirname(os.path.dirname(_this_dir))
sys.path.insert(0, _repo_root)

from hwloop import (
    MIRBuilder,
    MachineFunction,
    MachineLoopInfo,
    MOpcode,
    PassConfig,
    SignedBits,
    UnsignedBits,
    IntCondCode,
)
from hwloop.printing import format_mir


def _cfg(name="hardware-loop", **opts):
    """Helper to create PassConfig."""
    return PassConfig(name=name, enabled=True, options=opts)


def make_loop(emit_body, name="f") -> MachineFunction:
    """Build entry -> loop -> exit with a single-block loop.

    `emit_body(b, regs)` emits the loop block. `regs` holds registers set
    up in the entry block: "i" (counter, 0), "n" (bound, 100), "base"
    (address, 0) and "other" (7).
    """
    b = MIRBuilder(name)
    b.block("entry")
    regs = {
        "i": b.mov(0),
        "n": b.mov(100),
        "base": b.mov(0),
        "other": b.mov(7),
    }
    b.block("loop")
    emit_body(b, regs)
    b.block("exit")
    b.ret()
    return b.build()


def counted_loop(cond=SignedBits.LT, step=1, fillers=0) -> MachineFunction:
    """`for (i = 0; i < n; i += step)` in compare-bits form.

    The increment precedes the compare, so it feeds the compare's lhs.
    """
    def body(b, r):
        b.load(r["base"], 0)
        for k in range(fillers):
            b.add(r["base"], k)
        b.add(r["i"], step, dest=r["i"])
        c = b.cmp(r["i"], r["n"])
        b.brib(cond, c, "loop")
    return make_loop(body)


def countdown_loop(code=IntCondCode.EQ0) -> MachineFunction:
    """`do { ... } while (--i != 0)` in register-vs-zero form, exiting via brc."""
    def body(b, r):
        b.load(r["base"], 0)
        b.add(r["i"], -1, dest=r["i"])
        b.brc(code, r["i"], "exit")
        b.br("loop")
    return make_loop(body)


def nested_loops() -> MachineFunction:
    """A two-deep loop nest whose inner loop is a single counted block."""
    b = MIRBuilder("nest")
    b.block("entry")
    i = b.mov(0)
    j = b.mov(0)
    n = b.mov(10)
    base = b.mov(0)

    b.block("outer")
    b.mov(0, dest=j)

    b.block("inner")
    b.load(base, 0)
    b.add(j, 1, dest=j)
    c = b.cmp(j, n)
    b.brib(SignedBits.LT, c, "inner")

    b.block("latch")
    b.store(j, base, 0)
    b.add(i, 1, dest=i)
    c2 = b.cmp(i, n)
    b.brib(SignedBits.LT, c2, "outer")

    b.block("exit")
    b.ret()
    return b.build()


def only_loop(mf: MachineFunction):
    """The single top-level loop of `mf`."""
    loops = list(MachineLoopInfo(mf))
    assert len(loops) == 1, f"expected one loop, found {loops}"
    return loops[0]


def opcodes(mf: MachineFunction, block: str) -> list[MOpcode]:
    return [inst.opcode for inst in mf.blocks[block]]

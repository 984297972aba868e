"""Tests for MIR printing and the builder it is usually fed from."""

import io
import unittest
from contextlib import redirect_stdout

from hwloop.tests.conftest import MIRBuilder, IntCondCode, countdown_loop, _cfg
from hwloop.conditions import Float32CondCode
from hwloop.mir import FImm, Imm, MachineInst, MOpcode, Reg
from hwloop.passes import HardwareLoopPass
from hwloop.printing import format_block, format_mir, print_mir


class TestPrinting(unittest.TestCase):
    def test_instruction_text(self):
        self.assertEqual(str(MachineInst(MOpcode.ADD, Reg(1), [Reg(1), Imm(4)])), "v1 = add v1, #4")
        self.assertEqual(str(MachineInst(MOpcode.MOV, Reg(2, virtual=False), [FImm(0.5)])), "r2 = mov #0.5")
        self.assertEqual(str(MachineInst(MOpcode.BRC, None, [Float32CondCode.GE, Reg(3), "exit"])),
                         "brc fgef, v3, exit")
        self.assertEqual(str(MachineInst(MOpcode.RET, None, [])), "ret")

    def test_block_header_lists_edges(self):
        mf = countdown_loop()
        text = format_block(mf.blocks["loop"], mf)
        self.assertEqual(text.splitlines()[0], "loop: <- entry, loop -> exit, loop")
        self.assertIn("  brc eq0, v0, exit", text)
        self.assertIn("  br loop", text)

    def test_fused_loop_is_printed_with_variant(self):
        mf = countdown_loop()
        HardwareLoopPass().run(mf, _cfg())
        text = format_mir(mf)
        self.assertIn("v5 = vec #0", text)
        self.assertIn("loop2ii ne, v0, #0, #-1, v5, loop", text)

    def test_print_mir(self):
        out = io.StringIO()
        with redirect_stdout(out):
            print_mir(countdown_loop())
        self.assertTrue(out.getvalue().startswith("=== MIR: f (entry: entry, 9 insts) ==="))


class TestMIRBuilder(unittest.TestCase):
    def test_immediates_are_coerced(self):
        b = MIRBuilder()
        b.block("entry")
        x = b.mov(3)
        y = b.fadd(x, 1.5)
        mf = b.build()
        insts = mf.blocks["entry"].instructions
        self.assertEqual(insts[0].operands, [Imm(3)])
        self.assertEqual(insts[1].operands, [x, FImm(1.5)])
        self.assertEqual(y.reg_class, "fregs")

    def test_bool_is_not_an_operand(self):
        b = MIRBuilder()
        b.block("entry")
        with self.assertRaises(TypeError):
            b.mov(True)

    def test_errors(self):
        b = MIRBuilder()
        with self.assertRaises(ValueError):
            b.mov(1)
        with self.assertRaises(ValueError):
            b.build()
        b.block("entry")
        with self.assertRaises(ValueError):
            b.block("entry")

    def test_set_block_and_entry(self):
        b = MIRBuilder("g")
        b.block("entry")
        b.block("exit")
        b.ret()
        b.set_block("entry")
        b.brc(IntCondCode.NE0, b.mov(1), "exit")
        mf = b.build()
        self.assertEqual(mf.entry, "entry")
        self.assertEqual(len(mf.blocks["entry"]), 2)
        self.assertEqual(mf.create_virtual_register(), Reg(1))
        self.assertEqual(mf.predecessors("exit"), ["entry"])


if __name__ == "__main__":
    unittest.main()

"""Tests for the hardware-loop pass driver and its configuration."""

import io
import unittest
from contextlib import redirect_stdout

import pytest

from hwloop.tests.conftest import (
    MOpcode,
    SignedBits,
    _cfg,
    counted_loop,
    countdown_loop,
    format_mir,
    make_loop,
    nested_loops,
    opcodes,
)
from hwloop import HardwareLoopConfig, HardwareLoopPass, PassConfig, PassManager, optimize_machine_function


class TestHardwareLoopPass(unittest.TestCase):
    def test_fuses_single_loop(self):
        mf = counted_loop()
        p = HardwareLoopPass()
        result = p.run(mf, _cfg())

        self.assertIs(result, mf)
        self.assertEqual(opcodes(mf, "loop")[-1], MOpcode.LOOP1)
        metrics = p.get_metrics()
        self.assertEqual(metrics.custom["loops_seen"], 1)
        self.assertEqual(metrics.custom["innermost"], 1)
        self.assertEqual(metrics.custom["fused"], 1)
        self.assertEqual(metrics.custom["rejected"], 0)
        self.assertEqual(metrics.custom["type1"], 1)
        self.assertEqual(metrics.custom["type2"], 0)
        self.assertTrue(any("fused as TYPE1" in m for m in metrics.messages))

    def test_only_innermost_loop_is_fused(self):
        mf = nested_loops()
        p = HardwareLoopPass()
        p.run(mf, _cfg())

        self.assertEqual(opcodes(mf, "inner")[0], MOpcode.VEC)
        self.assertEqual(opcodes(mf, "inner")[-1], MOpcode.LOOP1)
        self.assertEqual(opcodes(mf, "latch")[-1], MOpcode.BRIB)
        self.assertEqual(opcodes(mf, "outer"), [MOpcode.MOV])
        metrics = p.get_metrics()
        self.assertEqual(metrics.custom["loops_seen"], 2)
        self.assertEqual(metrics.custom["innermost"], 1)
        self.assertEqual(metrics.custom["fused"], 1)

    def test_second_run_changes_nothing(self):
        mf = countdown_loop()
        p = HardwareLoopPass()
        p.run(mf, _cfg())
        after_first = format_mir(mf)

        p.run(mf, _cfg())
        self.assertEqual(format_mir(mf), after_first)
        metrics = p.get_metrics()
        self.assertEqual(metrics.custom["fused"], 0)
        self.assertEqual(metrics.custom["rejected"], 1)

    def test_rejected_loop_is_reported_and_unchanged(self):
        def body(b, r):
            b.load(r["base"], 0)
            b.call("g")
            b.add(r["i"], 1, dest=r["i"])
            c = b.cmp(r["i"], r["n"])
            b.brib(SignedBits.LT, c, "loop")
        mf = make_loop(body)
        before = format_mir(mf)
        p = HardwareLoopPass()
        p.run(mf, _cfg())

        self.assertEqual(format_mir(mf), before)
        metrics = p.get_metrics()
        self.assertEqual(metrics.custom["rejected"], 1)
        self.assertIn("loop: not fused (loop contains a call)", metrics.messages)

    def test_disabled_by_settings(self):
        mf = counted_loop()
        before = format_mir(mf)
        p = HardwareLoopPass(HardwareLoopConfig(enabled=False))
        p.run(mf, _cfg())
        self.assertEqual(format_mir(mf), before)
        self.assertEqual(p.get_metrics().custom["fused"], 0)

    def test_options_override_settings(self):
        mf = counted_loop(fillers=4)
        p = HardwareLoopPass(HardwareLoopConfig(max_instructions=32))
        p.run(mf, _cfg(max_instructions=4))
        self.assertEqual(p.get_metrics().custom["rejected"], 1)
        self.assertEqual(opcodes(mf, "loop")[-1], MOpcode.BRIB)


class TestHardwareLoopConfig:
    def test_defaults(self):
        settings = HardwareLoopConfig()
        assert settings.enabled is True
        assert settings.max_instructions == 16

    def test_from_options(self):
        settings = HardwareLoopConfig.from_options({"enabled": False, "max_instructions": 8})
        assert settings == HardwareLoopConfig(enabled=False, max_instructions=8)

    def test_with_options_keeps_unset_fields(self):
        base = HardwareLoopConfig(enabled=False, max_instructions=4)
        assert base.with_options({"max_instructions": 9}) == HardwareLoopConfig(False, 9)
        assert base.with_options({}) == base

    @pytest.mark.parametrize("options", [
        {"max_instructions": 0},
        {"max_instructions": -3},
        {"max_instructions": "16"},
        {"max_instructions": True},
        {"enabled": "yes"},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(ValueError):
            HardwareLoopConfig.from_options(options)


class TestPipeline(unittest.TestCase):
    def test_optimize_machine_function(self):
        mf = countdown_loop()
        result = optimize_machine_function(mf)
        self.assertIs(result, mf)
        self.assertEqual(opcodes(mf, "loop")[-1], MOpcode.LOOP2)

    def test_print_metrics(self):
        mf = counted_loop()
        out = io.StringIO()
        with redirect_stdout(out):
            optimize_machine_function(mf, print_metrics=True)
        text = out.getvalue()
        self.assertIn("=== Pass: hardware-loop (MIR → MIR) ===", text)
        self.assertIn("Config: max_instructions=16", text)
        self.assertIn("Instructions: 9 -> 8", text)
        self.assertIn("loop: fused as TYPE1", text)

    def test_pass_skipped_when_disabled_in_config(self):
        mf = counted_loop()
        before = format_mir(mf)
        pm = PassManager(print_metrics=True)
        pm.add_pass(HardwareLoopPass())
        pm.config["hardware-loop"] = PassConfig(name="hardware-loop", enabled=False)
        out = io.StringIO()
        with redirect_stdout(out):
            pm.run(mf)
        self.assertEqual(format_mir(mf), before)
        self.assertIn("SKIPPED - disabled", out.getvalue())


if __name__ == "__main__":
    unittest.main()

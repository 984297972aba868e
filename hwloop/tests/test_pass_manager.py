"""Tests for the MIR pass manager."""

import io
import os
import tempfile
import json
import unittest
from contextlib import redirect_stdout

from hwloop.tests.conftest import counted_loop
from hwloop import MachinePass, PassManager, PassConfig
from hwloop.pass_manager import CompilerPass


class CountingPass(MachinePass):
    """Records how often it ran and with which options."""

    def __init__(self):
        super().__init__()
        self.calls = []

    @property
    def name(self) -> str:
        return "counting"

    def run(self, mf, config: PassConfig):
        self._init_metrics()
        self.calls.append(dict(config.options))
        self._metrics.custom = {"blocks": len(mf.blocks)}
        self._add_metric_message(f"saw {mf.name}")
        return mf


class LIRPass(CompilerPass):
    @property
    def name(self) -> str:
        return "lir-only"

    @property
    def input_type(self) -> str:
        return "lir"

    @property
    def output_type(self) -> str:
        return "lir"

    def run(self, ir, config):
        return ir


class TestPassManager(unittest.TestCase):
    def test_runs_passes_in_order_with_default_config(self):
        first, second = CountingPass(), CountingPass()
        pm = PassManager()
        pm.add_pass(first)
        pm.add_pass(second)
        mf = counted_loop()
        self.assertIs(pm.run(mf), mf)
        self.assertEqual(first.calls, [{}])
        self.assertEqual(second.calls, [{}])

    def test_set_config(self):
        pm = PassManager()
        pm.set_config({"passes": {"counting": {"options": {"x": 1}}, "other": {"enabled": False}}})
        self.assertEqual(pm.config["counting"], PassConfig("counting", True, {"x": 1}))
        self.assertFalse(pm.config["other"].enabled)

    def test_set_config_rejects_malformed_passes(self):
        with self.assertRaises(ValueError):
            PassManager().set_config({"passes": ["counting"]})

    def test_load_config(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "cfg.json")
            with open(path, "w") as f:
                json.dump({"passes": {"counting": {"options": {"level": 2}}}}, f)
            pm = PassManager()
            pm.load_config(path)
        p = CountingPass()
        pm.add_pass(p)
        pm.run(counted_loop())
        self.assertEqual(p.calls, [{"level": 2}])

    def test_wrong_input_type(self):
        pm = PassManager()
        pm.add_pass(LIRPass())
        with self.assertRaises(TypeError):
            pm.run(counted_loop())

    def test_print_metrics_and_after_all(self):
        pm = PassManager(print_metrics=True, print_after_all=True)
        pm.add_pass(CountingPass())
        out = io.StringIO()
        with redirect_stdout(out):
            pm.run(counted_loop())
        text = out.getvalue()
        self.assertIn("=== MIR (before passes) ===", text)
        self.assertIn("=== MIR (after counting) ===", text)
        self.assertIn("Config: (default)", text)
        self.assertIn("Instructions: 9 -> 9 (+0%)", text)
        self.assertIn("Custom metrics: {'blocks': 3}", text)
        self.assertIn("  - saw f", text)


if __name__ == "__main__":
    unittest.main()

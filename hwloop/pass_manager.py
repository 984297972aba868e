"""
Pass Manager Infrastructure

Provides the framework for running late backend passes on Machine IR.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Any
import json

from .mir import MachineFunction


@dataclass
class PassConfig:
    """Configuration for a single pass."""
    name: str
    enabled: bool = True
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class PassMetrics:
    """Metrics collected by a pass during execution."""
    ir_size_before: int = 0
    ir_size_after: int = 0
    custom: dict[str, Any] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)


def count_machine_instructions(mf: MachineFunction) -> int:
    """Count total instructions in a machine function (terminators included)."""
    return mf.total_instructions()


def count_blocks(mf: MachineFunction) -> int:
    return len(mf.blocks)


class CompilerPass(ABC):
    """Base class for all compiler passes."""

    def __init__(self):
        self._metrics: Optional[PassMetrics] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the pass name for config matching."""
        pass

    @property
    @abstractmethod
    def input_type(self) -> str:
        """Return the input IR type."""
        pass

    @property
    @abstractmethod
    def output_type(self) -> str:
        """Return the output IR type."""
        pass

    def get_metrics(self) -> Optional[PassMetrics]:
        """Return metrics from the last run, if collected."""
        return self._metrics

    def _init_metrics(self):
        """Initialize metrics for a new run."""
        self._metrics = PassMetrics()

    def _add_metric_message(self, msg: str):
        """Add a diagnostic message to metrics."""
        if self._metrics:
            self._metrics.messages.append(msg)


class MachinePass(CompilerPass):
    """Base class for MIR transformation passes."""

    @property
    def input_type(self) -> str:
        return "mir"

    @property
    def output_type(self) -> str:
        return "mir"

    @abstractmethod
    def run(self, mf: MachineFunction, config: PassConfig) -> MachineFunction:
        """Transform MIR and return the MachineFunction."""
        pass


@dataclass
class PassManager:
    """Manages and runs MIR transformation passes in order."""
    passes: list[CompilerPass] = field(default_factory=list)
    config: dict[str, PassConfig] = field(default_factory=dict)
    print_after_all: bool = False
    print_metrics: bool = False

    def add_pass(self, p: CompilerPass) -> None:
        """Register a pass."""
        self.passes.append(p)

    def load_config(self, config_path: str) -> None:
        """Load pass configs from JSON file."""
        with open(config_path) as f:
            data = json.load(f)
        self.set_config(data)

    def set_config(self, data: dict) -> None:
        """Load pass configs from already-parsed JSON data."""
        passes = data.get("passes", {})
        if not isinstance(passes, dict):
            raise ValueError(f"'passes' must be an object, got {type(passes).__name__}")
        for pass_name, opts in passes.items():
            self.config[pass_name] = PassConfig(
                name=pass_name,
                enabled=opts.get("enabled", True),
                options=opts.get("options", {})
            )

    def _print_pass_metrics(self, p: CompilerPass, cfg: PassConfig,
                            before_size: int, before_blocks: int, mf: MachineFunction):
        """Print metrics for a pass execution."""
        after_size = count_machine_instructions(mf)
        after_blocks = count_blocks(mf)

        print(f"\n=== Pass: {p.name} (MIR → MIR) ===")
        print(f"Config: {', '.join(f'{k}={v}' for k, v in cfg.options.items()) or '(default)'}")

        if before_size > 0:
            pct = ((after_size - before_size) / before_size) * 100
            print(f"Instructions: {before_size} -> {after_size} ({pct:+.0f}%)")
        else:
            print(f"Instructions: {before_size} -> {after_size}")
        print(f"Blocks: {before_blocks} -> {after_blocks}")

        metrics = p.get_metrics()
        if metrics:
            if metrics.custom:
                print(f"Custom metrics: {metrics.custom}")
            if metrics.messages:
                print("Diagnostics:")
                for msg in metrics.messages:
                    print(f"  - {msg}")

    def run(self, mf: MachineFunction) -> MachineFunction:
        """Run all enabled passes in order."""
        from .printing import print_mir

        if self.print_after_all:
            print("=== MIR (before passes) ===")
            print_mir(mf)

        for p in self.passes:
            cfg = self.config.get(p.name, PassConfig(name=p.name))
            if not cfg.enabled:
                if self.print_metrics:
                    print(f"\n=== Pass: {p.name} === (SKIPPED - disabled)")
                continue

            if p.input_type != "mir":
                raise TypeError(
                    f"Pass '{p.name}' expects input type '{p.input_type}' "
                    f"but the pass manager runs on 'mir'"
                )

            # Capture metrics BEFORE running pass (passes mutate in place)
            before_size = count_machine_instructions(mf) if self.print_metrics else 0
            before_blocks = count_blocks(mf) if self.print_metrics else 0

            mf = p.run(mf, cfg)

            if self.print_metrics:
                self._print_pass_metrics(p, cfg, before_size, before_blocks, mf)

            if self.print_after_all:
                print(f"=== MIR (after {p.name}) ===")
                print_mir(mf)

        return mf

"""
Hardware Loop Pass

Turns the scalar control of innermost single-block loops into the
machine's virtual-vector-method form (VEC + LOOPn). Runs on Machine IR
after instruction selection and before register allocation.

Only loops without sub-loops are considered. Outer loops are left alone
even if fusing an inner loop would make them candidates.
"""

from dataclasses import dataclass, replace
from typing import Any, Optional

from ..loop_info import MachineLoop, MachineLoopInfo
from ..mir import MachineFunction
from ..pass_manager import MachinePass, PassConfig
from .loop_fusion import LoopFuser
from .loop_shape import DEFAULT_MAX_INSTRUCTIONS, LoopKind, LoopShapeMatcher


@dataclass(frozen=True)
class HardwareLoopConfig:
    """Settings of the hardware-loop pass.

    Options (PassConfig.options / pass_config.json):
        enabled: Fuse loops at all (default: True).
        max_instructions: Instructions the matcher scans above the branch
                          before giving up (default: 16).
    """
    enabled: bool = True
    max_instructions: int = DEFAULT_MAX_INSTRUCTIONS

    @classmethod
    def from_options(cls, options: dict[str, Any]) -> "HardwareLoopConfig":
        return cls().with_options(options)

    def with_options(self, options: dict[str, Any]) -> "HardwareLoopConfig":
        """Return a copy with `options` applied on top of these settings."""
        enabled = options.get("enabled", self.enabled)
        max_instructions = options.get("max_instructions", self.max_instructions)
        if not isinstance(enabled, bool):
            raise ValueError(f"'enabled' must be a boolean, got {enabled!r}")
        if isinstance(max_instructions, bool) or not isinstance(max_instructions, int):
            raise ValueError(f"'max_instructions' must be an integer, got {max_instructions!r}")
        if max_instructions <= 0:
            raise ValueError(f"'max_instructions' must be positive, got {max_instructions}")
        return replace(self, enabled=enabled, max_instructions=max_instructions)


def innermost_loops(loop_info: MachineLoopInfo) -> list[MachineLoop]:
    """Loops without sub-loops, found by walking the forest outer to inner."""
    worklist = list(loop_info)
    result = []
    i = 0
    while i < len(worklist):
        loop = worklist[i]
        worklist.extend(loop.sub_loops)
        if not loop.sub_loops:
            result.append(loop)
        i += 1
    return result


class HardwareLoopPass(MachinePass):
    """
    Fuse innermost loop control into VEC + LOOPn.

    For each innermost loop: classify its single block with
    LoopShapeMatcher, then rewrite it with LoopFuser. Loops that do not
    match are reported in the metrics with the reason and left unchanged.

    Running the pass twice is harmless: a fused block ends in a LOOPn
    instruction, which the matcher does not accept.
    """

    def __init__(self, settings: Optional[HardwareLoopConfig] = None):
        super().__init__()
        self.settings = settings if settings is not None else HardwareLoopConfig()
        self._loops_seen = 0
        self._innermost = 0
        self._fused = 0
        self._rejected = 0
        self._by_kind: dict[LoopKind, int] = {}

    @property
    def name(self) -> str:
        return "hardware-loop"

    def run(self, mf: MachineFunction, config: PassConfig) -> MachineFunction:
        self._init_metrics()
        self._loops_seen = 0
        self._innermost = 0
        self._fused = 0
        self._rejected = 0
        self._by_kind = {kind: 0 for kind in LoopKind}

        settings = self.settings.with_options(config.options)
        if settings.enabled:
            self._run_on_function(mf, settings)
        else:
            self._add_metric_message("hardware loops disabled")

        if self._metrics:
            self._metrics.custom = {
                "loops_seen": self._loops_seen,
                "innermost": self._innermost,
                "fused": self._fused,
                "rejected": self._rejected,
            }
            for kind, count in self._by_kind.items():
                self._metrics.custom[kind.name.lower()] = count

        return mf

    def _run_on_function(self, mf: MachineFunction, settings: HardwareLoopConfig) -> None:
        loop_info = MachineLoopInfo(mf)
        self._loops_seen = len(loop_info.all_loops())

        # Snapshot first: fusing only rewrites instructions inside a loop
        # block, so the other loops' block lists stay valid.
        loops = innermost_loops(loop_info)
        self._innermost = len(loops)

        matcher = LoopShapeMatcher(mf, settings.max_instructions)
        fuser = LoopFuser(mf)
        for loop in loops:
            shape = matcher.classify(loop)
            if shape is None:
                self._rejected += 1
                self._add_metric_message(f"{loop.header}: not fused ({matcher.reason})")
                continue
            fused = fuser.rewrite(shape)
            self._fused += 1
            self._by_kind[shape.kind] += 1
            self._add_metric_message(f"{loop.header}: fused as {shape.kind.name} ({fused})")

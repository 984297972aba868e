"""
Machine IR Passes

This module contains the late backend passes run on Machine IR:
- Loop shape matching (classify innermost single-block loops)
- Loop fusion (rewrite a matched loop into VEC + LOOPn)
- Hardware loop pass (drives both over a function's loop forest)
"""

from .loop_shape import LoopKind, LoopShape, LoopShapeMatcher
from .loop_fusion import LoopFuser
from .hardware_loop import HardwareLoopConfig, HardwareLoopPass

__all__ = [
    'LoopKind',
    'LoopShape',
    'LoopShapeMatcher',
    'LoopFuser',
    'HardwareLoopConfig',
    'HardwareLoopPass',
]

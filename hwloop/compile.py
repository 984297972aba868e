"""
Main Pipeline Entry Point

Provides optimize_machine_function, which runs the late Machine IR passes
configured in hwloop/pass_config.json.
"""

import json
import os

from .mir import MachineFunction
from .pass_manager import PassManager
from .passes import HardwareLoopPass


def optimize_machine_function(
    mf: MachineFunction,
    print_after_all: bool = False,
    print_metrics: bool = False
) -> MachineFunction:
    """
    Run the late MIR passes on a machine function, in place.

    Args:
        mf: Machine function straight out of instruction selection
        print_after_all: If True, print the MIR after each pass
        print_metrics: If True, print pass metrics and diagnostics

    Returns:
        The same MachineFunction, rewritten
    """
    # Load config from hwloop/pass_config.json
    config_path = os.path.join(os.path.dirname(__file__), "pass_config.json")
    with open(config_path) as f:
        config_data = json.load(f)

    pm = PassManager(print_after_all=print_after_all, print_metrics=print_metrics)
    pm.set_config(config_data)

    pm.add_pass(HardwareLoopPass())  # MIR -> MIR (before register allocation)

    return pm.run(mf)

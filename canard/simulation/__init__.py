"""Offline flight simulation of the canard apogee controller.

Reproduces the firmware's closed-loop control law so a configuration can be
tuned before it is written to the device, and so a recorded flight can be
compared against what the controller should have done.

Example:
    >>> from canard.simulation import SimConfig, ThrustCurve, run_simulation
    >>>
    >>> config = SimConfig.from_dict(json.loads(path.read_text()))
    >>> result = run_simulation(config, times, initial_vz=0.1, temperature=22.0)
    >>> result.to_dataframe().write_csv("prediction.csv")
"""

from canard.simulation.control import (
    ActuatorModel,
    ApogeeController,
    HistorySample,
    StateHistory,
    temperature_correction,
)
from canard.simulation.dynamics import G, Airframe
from canard.simulation.simulator import (
    SimConfig,
    SimulationResult,
    run_simulation,
)
from canard.simulation.thrust import ThrustCurve

__all__ = [
    "G",
    "ActuatorModel",
    "Airframe",
    "ApogeeController",
    "HistorySample",
    "SimConfig",
    "SimulationResult",
    "StateHistory",
    "ThrustCurve",
    "run_simulation",
    "temperature_correction",
]

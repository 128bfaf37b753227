"""Piecewise-linear motor thrust curves.

Example:
    >>> curve = ThrustCurve(times=[0.0, 2.0, 5.0], forces=[100.0, 100.0, 0.0])
    >>> curve.at_time(3.5)
    50.0
"""

from dataclasses import dataclass

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from canard.typecheck import TOWER


@beartype(conf=TOWER)
@dataclass
class ThrustCurve:
    """Motor thrust as a function of time since ignition.

    Before the first breakpoint the first force applies; at and after the
    last breakpoint the motor is burnt out and thrust is zero.

    Attributes:
        times: Breakpoint times [s], strictly increasing
        forces: Thrust at each breakpoint [N]
        name: Motor designation, for display only
    """
    times: list[float]
    forces: list[float]
    name: str = ""

    def __post_init__(self) -> None:
        """Validate inputs."""
        if len(self.times) != len(self.forces):
            raise ValueError("times and forces must have same length")
        if not self.times:
            raise ValueError("Need at least 1 breakpoint")
        if any(b <= a for a, b in zip(self.times, self.times[1:])):
            raise ValueError("times must be strictly increasing")
        self.times = [float(t) for t in self.times]
        self.forces = [float(f) for f in self.forces]

    @property
    def burnout_time(self) -> float:
        return self.times[-1]

    def arrays(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """Breakpoints as float64 arrays for the compiled integrator."""
        return (
            np.asarray(self.times, dtype=np.float64),
            np.asarray(self.forces, dtype=np.float64),
        )

    def at_time(self, t: float) -> float:
        """Thrust at time t [N]."""
        if t >= self.times[-1]:
            return 0.0
        return float(np.interp(t, self.times, self.forces))

    @classmethod
    def coast(cls) -> "ThrustCurve":
        """A curve that never produces thrust."""
        return cls(times=[0.0], forces=[0.0], name="none")

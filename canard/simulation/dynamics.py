"""Point-mass ascent dynamics with canard drag.

The vehicle is reduced to altitude plus vertical and lateral velocity.
Drag grows linearly with canard deployment; thrust acts along the flight
path. The hot loops (RK4 step and the apogee predictor) are numba-compiled
scalar functions; ``Airframe`` is the Python-facing wrapper.

Example:
    >>> airframe = Airframe(rho=1.225, area=0.008, mass=2.5,
    ...                     base_cd=0.45, canard_cd=0.6, thrust=curve)
    >>> x, vz, vx = airframe.step(t=0.0, altitude=0.0, vz=30.0, vx=1.0,
    ...                           angle=0.0, dt=0.01)
    >>> apogee = airframe.apogee(t=4.0, altitude=300.0, vz=80.0, vx=2.0, angle=20.0)
"""

import math
from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from numba import njit
from numpy.typing import NDArray

from canard.simulation.thrust import ThrustCurve
from canard.typecheck import TOWER

# =============================================================================
# Constants
# =============================================================================

G = 9.81  # Gravity [m/s^2]
MAX_DEPLOYMENT = 90.0  # Full canard deployment [deg]
APOGEE_STEP = 0.05  # Apogee predictor step [s]
APOGEE_HORIZON = 600.0  # Longest prediction before giving up [s]


# =============================================================================
# Numba-Optimized Core
# =============================================================================


@njit(cache=True, fastmath=True)
def _thrust(t: float, times: NDArray[np.float64], forces: NDArray[np.float64]) -> float:
    """Piecewise-linear thrust, zero at and after burnout."""
    if t >= times[-1]:
        return 0.0
    return np.interp(t, times, forces)


@njit(cache=True, fastmath=True)
def _acceleration(
    t: float, vz: float, vx: float, angle: float,
    rho: float, area: float, mass: float, base_cd: float, canard_cd: float,
    times: NDArray[np.float64], forces: NDArray[np.float64],
) -> tuple[float, float]:
    """Vertical and lateral acceleration [m/s^2]."""
    cd = base_cd + canard_cd * (angle / MAX_DEPLOYMENT)
    thrust = _thrust(t, times, forces)

    # Flight-path angle from vertical; straight up when at rest
    if vz == 0.0:
        path = 0.0 if vx == 0.0 else math.copysign(0.5 * math.pi, vx)
    else:
        path = math.atan(vx / vz)

    k = 0.5 * rho * area * cd / mass
    az = -k * vz * vz - G + thrust / mass * math.cos(path)
    ax = -k * vx * vx + thrust / mass * math.sin(path)
    return az, ax


@njit(cache=True, fastmath=True)
def _rk4_step_core(
    t: float, x: float, vz: float, vx: float, angle: float, h: float,
    rho: float, area: float, mass: float, base_cd: float, canard_cd: float,
    times: NDArray[np.float64], forces: NDArray[np.float64],
) -> tuple[float, float, float]:
    """Classic RK4 over (altitude, vz, vx) with the canard held at ``angle``."""
    half = 0.5 * h

    # k1
    a1z, a1x = _acceleration(
        t, vz, vx, angle, rho, area, mass, base_cd, canard_cd, times, forces
    )

    # k2 (midpoint using k1)
    vz2 = vz + half * a1z
    vx2 = vx + half * a1x
    a2z, a2x = _acceleration(
        t + half, vz2, vx2, angle, rho, area, mass, base_cd, canard_cd, times, forces
    )

    # k3 (midpoint using k2)
    vz3 = vz + half * a2z
    vx3 = vx + half * a2x
    a3z, a3x = _acceleration(
        t + half, vz3, vx3, angle, rho, area, mass, base_cd, canard_cd, times, forces
    )

    # k4 (endpoint using k3)
    vz4 = vz + h * a3z
    vx4 = vx + h * a3x
    a4z, a4x = _acceleration(
        t + h, vz4, vx4, angle, rho, area, mass, base_cd, canard_cd, times, forces
    )

    c = h / 6.0
    x_new = x + c * (vz + 2.0 * vz2 + 2.0 * vz3 + vz4)
    vz_new = vz + c * (a1z + 2.0 * a2z + 2.0 * a3z + a4z)
    vx_new = vx + c * (a1x + 2.0 * a2x + 2.0 * a3x + a4x)
    return x_new, vz_new, vx_new


@njit(cache=True, fastmath=True)
def _apogee_core(
    t: float, x: float, vz: float, vx: float, angle: float, h: float, horizon: float,
    rho: float, area: float, mass: float, base_cd: float, canard_cd: float,
    times: NDArray[np.float64], forces: NDArray[np.float64],
) -> float:
    """Integrate until vz <= 0 and return the altitude reached."""
    t_end = t + horizon
    while vz > 0.0 and t < t_end:
        x, vz, vx = _rk4_step_core(
            t, x, vz, vx, angle, h, rho, area, mass, base_cd, canard_cd, times, forces
        )
        t += h
    return x


# =============================================================================
# Airframe
# =============================================================================


@beartype(conf=TOWER)
@dataclass
class Airframe:
    """Aerodynamic and propulsive properties of the vehicle.

    Attributes:
        rho: Air density [kg/m^3]
        area: Reference area [m^2]
        mass: Vehicle mass [kg]
        base_cd: Drag coefficient with canards retracted
        canard_cd: Additional drag coefficient at full (90 deg) deployment
        thrust: Motor thrust curve
    """
    rho: float
    area: float
    mass: float
    base_cd: float
    canard_cd: float
    thrust: ThrustCurve = field(default_factory=ThrustCurve.coast)

    _times: NDArray[np.float64] = field(init=False, repr=False)
    _forces: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.mass <= 0:
            raise ValueError("mass must be positive")
        self._times, self._forces = self.thrust.arrays()

    def _params(self) -> tuple:
        return (
            float(self.rho), float(self.area), float(self.mass),
            float(self.base_cd), float(self.canard_cd),
            self._times, self._forces,
        )

    def drag_coefficient(self, angle: float) -> float:
        return self.base_cd + self.canard_cd * (angle / MAX_DEPLOYMENT)

    def acceleration(self, t: float, vz: float, vx: float, angle: float) -> tuple[float, float]:
        """(vertical, lateral) acceleration [m/s^2] at time t."""
        az, ax = _acceleration(float(t), float(vz), float(vx), float(angle), *self._params())
        return float(az), float(ax)

    def step(
        self,
        t: float,
        altitude: float,
        vz: float,
        vx: float,
        angle: float,
        dt: float,
    ) -> tuple[float, float, float]:
        """Advance (altitude, vz, vx) by one RK4 step of size dt."""
        x, vz, vx = _rk4_step_core(
            float(t), float(altitude), float(vz), float(vx), float(angle), float(dt),
            *self._params(),
        )
        return float(x), float(vz), float(vx)

    def apogee(
        self,
        t: float,
        altitude: float,
        vz: float,
        vx: float,
        angle: float,
        step: float = APOGEE_STEP,
    ) -> float:
        """Predict apogee [m] if the canards stay at ``angle`` from here on.

        Integrates with a coarse step until vertical velocity is no longer
        positive. Returns ``altitude`` unchanged when already descending.
        """
        if step <= 0:
            raise ValueError("step must be positive")
        return float(
            _apogee_core(
                float(t), float(altitude), float(vz), float(vx), float(angle),
                float(step), APOGEE_HORIZON, *self._params(),
            )
        )

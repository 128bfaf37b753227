"""Closed-loop ascent simulation of the canard controller.

Replays a time base (usually the timestamps of a previous flight log or a
uniform grid) through the airframe model while running the same control
law as the firmware: delayed apogee prediction, proportional command, and a
slew-limited servo. Pure and deterministic; no device is needed.

Architecture:
    for each interval times[i-1] -> times[i]:
        split into sample_counts[i] control sub-steps, and on each one
        - slew the servo toward the current command
        - RK4-integrate the trajectory with the realized angle
        - predict apogee from the state ``sensor_delay`` ago
        - update the command
    record one output sample per interval, stop after vz < 0

Example:
    >>> from canard.simulation import SimConfig, ThrustCurve, run_simulation
    >>>
    >>> config = SimConfig(
    ...     rho=1.225, area=0.0081, mass=2.4, base_cd=0.5, canard_cd=0.7,
    ...     thrust_curve=ThrustCurve([0.0, 0.2, 1.8, 2.0], [180.0, 160.0, 150.0, 0.0]),
    ...     control=True, start_time=2.5, param=600.0, p=0.01,
    ... )
    >>> times = np.arange(0.0, 30.0, 0.05)
    >>> result = run_simulation(config, times, initial_vz=0.1)
    >>> print(f"Apogee: {result.apogee:.1f} m")
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import numpy as np
from beartype import beartype
from numpy.typing import NDArray

from canard.simulation.control import (
    SENSOR_DELAY,
    SERVO_RATE,
    ActuatorModel,
    ApogeeController,
    HistorySample,
    StateHistory,
)
from canard.simulation.dynamics import APOGEE_STEP, Airframe
from canard.simulation.thrust import ThrustCurve
from canard.typecheck import TOWER

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================


@beartype(conf=TOWER)
@dataclass
class SimConfig:
    """Vehicle, motor and controller parameters for one simulation.

    Attributes:
        rho: Air density [kg/m^3]
        area: Reference area [m^2]
        mass: Vehicle mass [kg]
        base_cd: Drag coefficient with canards retracted
        canard_cd: Additional drag coefficient at full deployment
        thrust_curve: Motor thrust curve
        control: Closed-loop control enabled
        start_time: Control start time [s]
        param: Target apogee [m], or fixed canard angle [deg] without control
        p: Proportional gain
        servo_rate: Servo slew limit [deg/s]
        apogee_step: Apogee predictor step [s]
        sensor_delay: Latency of the state fed to the predictor [s]
    """
    rho: float
    area: float
    mass: float
    base_cd: float
    canard_cd: float
    thrust_curve: ThrustCurve = field(default_factory=ThrustCurve.coast)
    control: bool = False
    start_time: float = 0.0
    param: float = 0.0
    p: float = 0.0
    servo_rate: float = SERVO_RATE
    apogee_step: float = APOGEE_STEP
    sensor_delay: float = SENSOR_DELAY

    def airframe(self) -> Airframe:
        return Airframe(
            rho=self.rho,
            area=self.area,
            mass=self.mass,
            base_cd=self.base_cd,
            canard_cd=self.canard_cd,
            thrust=self.thrust_curve,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimConfig":
        """Build from the frontend's JSON representation.

        Keys: rho, A, mass, baseCd, canardCd, thrustCurveTime,
        thrustCurveForce, thrustCurveName, control, startTime, param, P,
        and optionally servoRate, apogeeStep, sensorDelay.
        """
        curve = ThrustCurve(
            times=[float(t) for t in data.get("thrustCurveTime", [0.0])],
            forces=[float(f) for f in data.get("thrustCurveForce", [0.0])],
            name=str(data.get("thrustCurveName", "")),
        )
        return cls(
            rho=float(data["rho"]),
            area=float(data["A"]),
            mass=float(data["mass"]),
            base_cd=float(data["baseCd"]),
            canard_cd=float(data["canardCd"]),
            thrust_curve=curve,
            control=bool(data.get("control", False)),
            start_time=float(data.get("startTime", 0.0)),
            param=float(data.get("param", 0.0)),
            p=float(data.get("P", 0.0)),
            servo_rate=float(data.get("servoRate", SERVO_RATE)),
            apogee_step=float(data.get("apogeeStep", APOGEE_STEP)),
            sensor_delay=float(data.get("sensorDelay", SENSOR_DELAY)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Inverse of ``from_dict``."""
        return {
            "rho": self.rho,
            "A": self.area,
            "mass": self.mass,
            "baseCd": self.base_cd,
            "canardCd": self.canard_cd,
            "thrustCurveTime": list(self.thrust_curve.times),
            "thrustCurveForce": list(self.thrust_curve.forces),
            "thrustCurveName": self.thrust_curve.name,
            "control": self.control,
            "startTime": self.start_time,
            "param": self.param,
            "P": self.p,
            "servoRate": self.servo_rate,
            "apogeeStep": self.apogee_step,
            "sensorDelay": self.sensor_delay,
        }


# =============================================================================
# Results
# =============================================================================


@beartype(conf=TOWER)
@dataclass
class SimulationResult:
    """Sampled trajectory, one entry per input interval.

    Attributes:
        time: Sample time [s]
        alt: Altitude [m]
        vz: Vertical velocity [m/s]
        vx: Lateral velocity [m/s]
        az: Vertical acceleration [m/s^2]
        angle: Commanded canard angle [deg]
        actuator: Realized canard angle [deg]
    """
    time: list[float] = field(default_factory=list)
    alt: list[float] = field(default_factory=list)
    vz: list[float] = field(default_factory=list)
    vx: list[float] = field(default_factory=list)
    az: list[float] = field(default_factory=list)
    angle: list[float] = field(default_factory=list)
    actuator: list[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.time)

    def append(
        self,
        t: float,
        alt: float,
        vz: float,
        vx: float,
        az: float,
        angle: float,
        actuator: float,
    ) -> None:
        self.time.append(t)
        self.alt.append(alt)
        self.vz.append(vz)
        self.vx.append(vx)
        self.az.append(az)
        self.angle.append(angle)
        self.actuator.append(actuator)

    @property
    def apogee(self) -> float:
        """Highest simulated altitude [m], NaN for an empty result."""
        return max(self.alt) if self.alt else float("nan")

    def to_dict(self) -> dict[str, list[float]]:
        return {
            "time": self.time,
            "alt": self.alt,
            "vz": self.vz,
            "vx": self.vx,
            "az": self.az,
            "angle": self.angle,
            "actuator": self.actuator,
        }

    def to_dataframe(self):
        """Convert to Polars DataFrame."""
        import polars as pl

        return pl.DataFrame(self.to_dict(), schema={k: pl.Float64 for k in self.to_dict()})


# =============================================================================
# Simulation
# =============================================================================


@beartype(conf=TOWER)
def run_simulation(
    config: SimConfig,
    times: Sequence[float] | NDArray[np.float64],
    sample_counts: Sequence[int] | NDArray[np.integer] | None = None,
    initial_vx: float = 0.0,
    initial_vz: float = 0.0,
    initial_altitude: float = 0.0,
    temperature: float = 15.0,
) -> SimulationResult:
    """Simulate the controlled ascent over the given time base.

    Args:
        config: Vehicle and controller parameters
        times: Sample times [s], increasing; the first is the initial state
        sample_counts: Control sub-steps per interval, aligned with ``times``
            (entry 0 unused); defaults to one per interval
        initial_vx: Initial lateral velocity [m/s]
        initial_vz: Initial vertical velocity [m/s]
        initial_altitude: Initial altitude [m]
        temperature: Launch-site temperature [C]

    Returns:
        One sample per interval up to and including the first with vz < 0
    """
    t_arr = np.asarray(times, dtype=np.float64)
    if sample_counts is None:
        counts = np.ones(len(t_arr), dtype=np.int64)
    else:
        counts = np.asarray(sample_counts, dtype=np.int64)
        if len(counts) != len(t_arr):
            raise ValueError("times and sample_counts must have same length")
    if np.any(np.diff(t_arr) <= 0):
        raise ValueError("times must be strictly increasing")

    result = SimulationResult()
    if len(t_arr) < 2:
        return result

    airframe = config.airframe()
    actuator = ActuatorModel(rate=config.servo_rate)
    controller = ApogeeController(
        gain=config.p,
        target=config.param,
        start_time=config.start_time,
        enabled=config.control,
        temperature=temperature,
    )
    history = StateHistory(delay=config.sensor_delay)

    x, vz, vx = float(initial_altitude), float(initial_vz), float(initial_vx)
    history.append(HistorySample(float(t_arr[0]), x, vz, vx))

    for i in range(1, len(t_arr)):
        t_prev = float(t_arr[i - 1])
        n = max(1, int(counts[i]))
        dt = (float(t_arr[i]) - t_prev) / n

        for k in range(n):
            t = t_prev + k * dt
            angle = actuator.step(controller.command, dt)
            x, vz, vx = airframe.step(t, x, vz, vx, angle, dt)
            t += dt
            history.append(HistorySample(t, x, vz, vx))

            if controller.active(t):
                past = history.delayed(t)
                predicted = airframe.apogee(
                    past.time, past.altitude, past.vz, past.vx, angle, config.apogee_step
                )
                controller.update(t, predicted)

        t_now = float(t_arr[i])
        az, _ = airframe.acceleration(t_now, vz, vx, actuator.position)
        result.append(t_now, x, vz, vx, az, controller.command, actuator.position)

        if vz < 0.0:
            break

    logger.debug(
        "Simulated %d samples, apogee %.1f m, final command %.1f deg",
        len(result), result.apogee, controller.command,
    )
    return result

"""Apogee control law and actuator model, mirroring the flight firmware.

The firmware predicts apogee from telemetry that is already ``sensor_delay``
old, nudges the canard command proportionally to the predicted overshoot,
and the servo then follows that command at a limited slew rate.

Example:
    >>> controller = ApogeeController(gain=0.05, target=500.0, start_time=3.0)
    >>> actuator = ActuatorModel(rate=800.0)
    >>> command = controller.update(t=3.5, predicted_apogee=540.0)
    >>> angle = actuator.step(command, dt=0.01)
"""

import math
from dataclasses import dataclass, field
from typing import NamedTuple

from beartype import beartype

from canard.typecheck import TOWER

# =============================================================================
# Constants
# =============================================================================

STANDARD_TEMPERATURE = 288.15  # ISA sea-level temperature [K]
CELSIUS_TO_KELVIN = 273.15
MIN_ANGLE = 0.0  # [deg]
MAX_ANGLE = 90.0  # [deg]
SERVO_RATE = 800.0  # Servo slew limit [deg/s]
SENSOR_DELAY = 0.1  # Telemetry latency seen by the estimator [s]


@beartype(conf=TOWER)
def temperature_correction(temperature: float) -> float:
    """Ratio of actual to standard-atmosphere temperature.

    The device steers on barometric altitude, which assumes the standard
    atmosphere; multiplying a geometric target by this ratio gives the
    altitude the device will actually aim for.

    Args:
        temperature: Launch-site air temperature [C]
    """
    kelvin = temperature + CELSIUS_TO_KELVIN
    if kelvin <= 0:
        raise ValueError(f"temperature below absolute zero: {temperature} C")
    return kelvin / STANDARD_TEMPERATURE


def clamp_angle(angle: float) -> float:
    return float(min(MAX_ANGLE, max(MIN_ANGLE, angle)))


# =============================================================================
# Actuator
# =============================================================================


@beartype(conf=TOWER)
@dataclass
class ActuatorModel:
    """Rate-limited servo.

    Attributes:
        rate: Maximum slew rate [deg/s]
        position: Realized canard angle [deg]
    """
    rate: float = SERVO_RATE
    position: float = 0.0

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")

    def step(self, commanded: float, dt: float) -> float:
        """Move toward ``commanded`` by at most ``rate * dt``.

        Lands exactly on the command once it is within one step's travel.

        Returns:
            New realized angle [deg]
        """
        max_travel = self.rate * dt
        gap = commanded - self.position
        if abs(gap) <= max_travel:
            self.position = float(commanded)
        else:
            self.position += math.copysign(max_travel, gap)
        return self.position


# =============================================================================
# Controller
# =============================================================================


@beartype(conf=TOWER)
@dataclass
class ApogeeController:
    """Proportional canard command on predicted apogee error.

    With control enabled the command integrates
    ``gain * (predicted_apogee - compensated_target)`` once per update after
    ``start_time`` and is clamped to [0, 90] deg. With control disabled
    ``target`` is a fixed deployment angle held for the whole flight.

    Attributes:
        gain: Proportional gain [deg/m]
        target: Target apogee [m], or fixed angle [deg] when disabled
        start_time: Control start time [s]
        enabled: Closed-loop control enabled
        temperature: Launch-site temperature [C]
    """
    gain: float
    target: float
    start_time: float = 0.0
    enabled: bool = True
    temperature: float = 15.0

    command: float = field(default=0.0, init=False)
    compensated_target: float = field(default=0.0, init=False)

    def __post_init__(self) -> None:
        self.compensated_target = self.target * temperature_correction(self.temperature)
        if not self.enabled:
            self.command = clamp_angle(self.target)

    def active(self, t: float) -> bool:
        return self.enabled and t > self.start_time

    def update(self, t: float, predicted_apogee: float) -> float:
        """Fold one apogee prediction into the command.

        Returns:
            Commanded angle [deg], always within [0, 90]
        """
        if self.active(t):
            error = predicted_apogee - self.compensated_target
            self.command = clamp_angle(self.command + self.gain * error)
        return self.command


# =============================================================================
# Delayed State Lookup
# =============================================================================


class HistorySample(NamedTuple):
    """Trajectory state recorded at one integration step."""
    time: float
    altitude: float
    vz: float
    vx: float


class StateHistory:
    """Trajectory history with a fixed-latency lookback.

    ``delayed(t)`` returns the most recent sample at least ``delay`` older
    than ``t`` (the first sample when none is that old). Queries must not go
    back in time, which lets the cursor only ever move forward.
    """

    _EPS = 1e-9

    def __init__(self, delay: float = SENSOR_DELAY) -> None:
        self.delay = delay
        self._samples: list[HistorySample] = []
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._samples)

    def append(self, sample: HistorySample) -> None:
        self._samples.append(sample)

    def delayed(self, t: float) -> HistorySample:
        if not self._samples:
            raise LookupError("history is empty")
        cutoff = t - self.delay + self._EPS
        samples = self._samples
        while self._cursor + 1 < len(samples) and samples[self._cursor + 1].time <= cutoff:
            self._cursor += 1
        return samples[self._cursor]

"""Configuration for the serial link and simulator input files.

Line settings are fixed by the firmware and are not meant to be tuned; the
only adjustable piece is how the device is recognized during discovery.

Example:
    >>> from canard.config import LinkSettings, load_sim_config
    >>>
    >>> settings = LinkSettings(lock_timeout=5.0)
    >>> config = load_sim_config("configs/l1_canard.json")
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from beartype import beartype

from canard.simulation import SimConfig
from canard.typecheck import TOWER

# =============================================================================
# Serial Line Constants
# =============================================================================

DEVICE_MANUFACTURER = "STMicroelectronics"
BAUDRATE = 9600
READ_TIMEOUT = 30.0  # [s]
ACK = b"\x06"


@beartype(conf=TOWER)
@dataclass(frozen=True)
class LinkSettings:
    """Serial link parameters.

    Attributes:
        manufacturer: USB manufacturer string identifying the device
        device_filter: Custom port predicate; overrides ``manufacturer``
        baudrate: Line speed [baud]
        timeout: Read/write timeout [s]
        xonxoff: Software flow control
        ack: Byte written to request the next telemetry batch
        lock_timeout: Seconds to wait for a busy link, ``None`` waits forever
    """
    manufacturer: str = DEVICE_MANUFACTURER
    device_filter: Callable[[Any], bool] | None = None
    baudrate: int = BAUDRATE
    timeout: float = READ_TIMEOUT
    xonxoff: bool = True
    ack: bytes = ACK
    lock_timeout: float | None = None

    def matches(self, port_info: Any) -> bool:
        """Whether an enumerated port is the flight controller."""
        if self.device_filter is not None:
            return bool(self.device_filter(port_info))
        return getattr(port_info, "manufacturer", None) == self.manufacturer


# =============================================================================
# Simulator Configuration Files
# =============================================================================


@beartype(conf=TOWER)
def load_sim_config(path: str | Path) -> SimConfig:
    """Load a simulator configuration saved by the frontend (JSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Simulation config not found at {path}")
    with open(path) as f:
        data = json.load(f)
    return SimConfig.from_dict(data)


@beartype(conf=TOWER)
def save_sim_config(config: SimConfig, path: str | Path) -> Path:
    """Write a simulator configuration as JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
    return path

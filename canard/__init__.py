"""Canard - Ground station for a rocket canard apogee controller.

This package talks to the flight controller over its binary serial protocol
(configuration, actuator tests, telemetry download, flight replay upload)
and simulates the controller's closed-loop behavior offline for tuning and
post-flight analysis.

Example:
    >>> from canard import GroundStation, SimConfig, ThrustCurve, run_simulation
    >>>
    >>> station = GroundStation()
    >>> if station.connect():
    ...     status = station.get_status()
    ...     station.download_telemetry("logs/flight_01.csv")
    >>>
    >>> result = run_simulation(config, times, initial_vz=0.1)
    >>> print(f"Apogee: {result.apogee:.1f} m")
"""

__version__ = "0.1.0"

from canard.commands import GroundStation
from canard.config import LinkSettings, load_sim_config, save_sim_config
from canard.errors import (
    CanardError,
    DeviceNotFound,
    FlightLogError,
    FormatError,
    LinkBusy,
    NotConnected,
    PortOpenFailed,
    TransportIo,
)
from canard.flightlog import (
    CsvFrameSink,
    list_flight_logs,
    load_flight_log,
    simulation_time_base,
)
from canard.protocol import (
    Command,
    CommandType,
    Config,
    Frame,
    LinkState,
    ReplayData,
    SensorBuf,
    SerialLink,
    SessionState,
    StatusData,
)
from canard.simulation import (
    SimConfig,
    SimulationResult,
    ThrustCurve,
    run_simulation,
)

__all__ = [
    # Version
    "__version__",
    # Command surface
    "GroundStation",
    # Configuration
    "LinkSettings",
    "load_sim_config",
    "save_sim_config",
    # Errors
    "CanardError",
    "DeviceNotFound",
    "FlightLogError",
    "FormatError",
    "LinkBusy",
    "NotConnected",
    "PortOpenFailed",
    "TransportIo",
    # Flight logs
    "CsvFrameSink",
    "list_flight_logs",
    "load_flight_log",
    "simulation_time_base",
    # Protocol
    "Command",
    "CommandType",
    "Config",
    "Frame",
    "LinkState",
    "ReplayData",
    "SensorBuf",
    "SerialLink",
    "SessionState",
    "StatusData",
    # Simulation
    "SimConfig",
    "SimulationResult",
    "ThrustCurve",
    "run_simulation",
]

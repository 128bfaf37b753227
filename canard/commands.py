"""Command surface consumed by the frontend.

``GroundStation`` owns the process-wide session and exposes the operations
the GUI invokes. Protocol errors are logged and turned into the plain
results the UI state is driven by (booleans, default status, ``None``);
a transport failure never escapes as an exception. Long transfers have
``*_async`` variants that run on a background worker and return a future.

Example:
    >>> station = GroundStation()
    >>> station.add_listener(window)  # on_progress / on_disconnect
    >>> if station.connect():
    ...     status = station.get_status()
    ...     future = station.download_telemetry_async("logs/flight_05.csv")
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from canard.config import LinkSettings
from canard.errors import CanardError
from canard.flightlog import list_flight_logs
from canard.protocol.link import FrameSink, SerialLink
from canard.protocol.session import LinkListener, SessionState
from canard.protocol.wire import Config, ReplayData, StatusData
from canard.simulation import SimConfig, SimulationResult, run_simulation

logger = logging.getLogger(__name__)


class GroundStation:
    """Frontend-facing operations on the single device connection.

    Args:
        settings: Serial link settings
        link: Pre-built protocol engine (its session is reused)
    """

    def __init__(
        self,
        settings: LinkSettings | None = None,
        link: SerialLink | None = None,
    ) -> None:
        if link is None:
            settings = settings or LinkSettings()
            link = SerialLink(SessionState(settings.lock_timeout), settings)
        self.link = link
        self.session = link.session
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="canard-link")

    def add_listener(self, listener: LinkListener) -> None:
        self.session.add_listener(listener)

    def close(self) -> None:
        """Disconnect and stop the background worker."""
        self.disconnect()
        self._worker.shutdown(wait=True)

    def __enter__(self) -> "GroundStation":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def connect(self) -> bool:
        try:
            self.link.connect()
        except CanardError as exc:
            logger.warning("Connect failed: %s", exc)
            return False
        return True

    def disconnect(self) -> None:
        self.link.disconnect()

    def is_connected(self) -> bool:
        return self.link.is_connected()

    # -------------------------------------------------------------------------
    # Device Commands
    # -------------------------------------------------------------------------

    def get_status(self) -> StatusData:
        """Device status, or an empty default if the query failed."""
        try:
            return self.link.get_status()
        except CanardError as exc:
            logger.warning("Status query failed: %s", exc)
            return StatusData()

    def write_config(self, config: Config) -> bool:
        try:
            self.link.write_config(config)
        except CanardError as exc:
            logger.warning("Config write failed: %s", exc)
            return False
        return True

    def test_actuator(self, config: Config, use_max: bool) -> bool:
        try:
            self.link.test_actuator(config, use_max)
        except CanardError as exc:
            logger.warning("Actuator test failed: %s", exc)
            return False
        return True

    def download_telemetry(self, destination: str | Path | FrameSink) -> int | None:
        """Frames written, or ``None`` if the download was aborted."""
        try:
            return self.link.download_telemetry(destination)
        except CanardError as exc:
            logger.error("Telemetry download aborted: %s", exc)
            return None

    def upload_replay(self, steps: Sequence[ReplayData]) -> bool:
        try:
            self.link.upload_replay(steps)
        except CanardError as exc:
            logger.error("Replay upload aborted: %s", exc)
            return False
        return True

    def download_telemetry_async(self, destination: str | Path | FrameSink) -> Future:
        return self._worker.submit(self.download_telemetry, destination)

    def upload_replay_async(self, steps: Sequence[ReplayData]) -> Future:
        return self._worker.submit(self.upload_replay, list(steps))

    # -------------------------------------------------------------------------
    # Offline
    # -------------------------------------------------------------------------

    @staticmethod
    def run_simulation(
        config: SimConfig,
        times: Sequence[float] | NDArray[np.float64],
        sample_counts: Sequence[int] | NDArray[np.integer] | None = None,
        initial_vx: float = 0.0,
        initial_vz: float = 0.0,
        initial_altitude: float = 0.0,
        temperature: float = 15.0,
    ) -> SimulationResult:
        return run_simulation(
            config,
            times,
            sample_counts,
            initial_vx=initial_vx,
            initial_vz=initial_vz,
            initial_altitude=initial_altitude,
            temperature=temperature,
        )

    @staticmethod
    def list_flight_logs(directory: str | Path) -> list[str]:
        return list_flight_logs(directory)

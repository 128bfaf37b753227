"""Half-duplex command protocol with the flight controller.

Each operation holds the session lock for its whole exchange. Commands are
fire-and-forget except where the device answers with a fixed-size message:

    get_status          -> STATUS, read StatusData
    write_config        -> CONFIG_WRITE
    test_actuator       -> SERVO_MIN / SERVO_MAX
    download_telemetry  -> DATA_READ, then repeat: read SensorBuf, store,
                           write ack byte; until SensorBuf.zero != 0
    upload_replay       -> FLIGHT_REPLAY, then per chunk: read ack byte,
                           write 8 ReplayData

Any transport failure tears the session down, notifies the disconnect
listeners and surfaces as ``TransportIo``. There is no retry; the caller
must reconnect.

Example:
    >>> link = SerialLink(SessionState())
    >>> link.connect()
    >>> status = link.get_status()
    >>> frames = link.download_telemetry("logs/flight_04.csv")
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol, Sequence

import serial
from serial.tools import list_ports

from canard.config import LinkSettings
from canard.errors import (
    DeviceNotFound,
    FlightLogError,
    FormatError,
    NotConnected,
    PortOpenFailed,
    TransportIo,
)
from canard.protocol.session import LinkState, SessionState, Transport
from canard.protocol.wire import (
    REPLAY_CHUNK_SIZE,
    Command,
    CommandType,
    Config,
    Frame,
    ReplayData,
    SensorBuf,
    StatusData,
    encode,
    encode_replay_chunk,
)

logger = logging.getLogger(__name__)


class FrameSink(Protocol):
    """Destination for decoded telemetry frames."""

    def write(self, frames: Sequence[Frame]) -> None: ...

    def close(self) -> None: ...


class SerialLink:
    """Protocol engine bound to one session.

    Args:
        session: Owner of the connection handle and lock
        settings: Line settings and device predicate
        enumerate_ports: Port discovery, ``serial.tools.list_ports.comports``
        open_port: Port factory, ``serial.Serial``
    """

    def __init__(
        self,
        session: SessionState,
        settings: LinkSettings | None = None,
        enumerate_ports: Callable[[], Sequence[Any]] | None = None,
        open_port: Callable[..., Transport] | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or LinkSettings()
        self._enumerate_ports = enumerate_ports or list_ports.comports
        self._open_port = open_port or serial.Serial
        if self.settings.lock_timeout is not None and session.lock_timeout is None:
            session.lock_timeout = self.settings.lock_timeout

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    def find_device(self) -> str:
        """Name of the first port whose metadata matches the device predicate.

        Raises:
            DeviceNotFound: If enumeration fails or nothing matches
        """
        try:
            ports = list(self._enumerate_ports())
        except Exception as exc:
            raise DeviceNotFound(f"serial port enumeration failed: {exc}") from exc

        for info in ports:
            if self.settings.matches(info):
                return info.device
        raise DeviceNotFound(
            f"no serial device from {self.settings.manufacturer!r} "
            f"among {len(ports)} port(s)"
        )

    def connect(self) -> None:
        """Discover, open and reset the device, then attach it to the session.

        A failed attempt leaves the session disconnected with no handle.

        Raises:
            DeviceNotFound: No matching device
            PortOpenFailed: Device found but could not be opened or configured
        """
        with self.session.lock():
            if self.session.is_connected():
                return
            self.session.begin_connect()
            try:
                name = self.find_device()
                port = self._open(name)
            except Exception:
                self.session.abort_connect()
                raise
            self.session.attach(port)
        logger.info("Connected to flight controller on %s", name)

    def _open(self, name: str) -> Transport:
        s = self.settings
        try:
            port = self._open_port(
                port=name,
                baudrate=s.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                xonxoff=s.xonxoff,
                timeout=s.timeout,
                write_timeout=s.timeout,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise PortOpenFailed(f"could not open {name}: {exc}") from exc

        # Asserting DTR resets the board into its command loop
        try:
            port.dtr = True
        except (serial.SerialException, OSError) as exc:
            port.close()
            raise PortOpenFailed(f"could not assert DTR on {name}: {exc}") from exc
        return port

    def is_connected(self) -> bool:
        return self.session.is_connected()

    def disconnect(self) -> None:
        """Close the connection. Safe to call when already disconnected."""
        if self.session.release():
            logger.info("Disconnected from flight controller")

    @property
    def state(self) -> LinkState:
        return self.session.state

    # -------------------------------------------------------------------------
    # Transport Primitives
    # -------------------------------------------------------------------------

    @contextmanager
    def _exchange(self) -> Iterator[Transport]:
        """Borrow the transport; any I/O failure tears the session down."""
        with self.session.acquire() as port:
            try:
                yield port
            except (serial.SerialException, OSError, FormatError, TransportIo) as exc:
                self.session.fail(exc)
                if isinstance(exc, TransportIo):
                    raise
                raise TransportIo(str(exc)) from exc

    @staticmethod
    def _write(port: Transport, data: bytes) -> None:
        port.write(data)
        port.flush()

    @staticmethod
    def _read_exact(port: Transport, size: int) -> bytes:
        data = port.read(size)
        if len(data) != size:
            raise TransportIo(f"read timed out after {len(data)} of {size} bytes")
        return data

    def _send(self, port: Transport, command_type: CommandType, config: Config | None = None) -> None:
        self._write(port, encode(Command(command_type, config or Config())))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def get_status(self) -> StatusData:
        """Query the active configuration and whether a flight log is stored."""
        with self._exchange() as port:
            port.reset_input_buffer()
            self._send(port, CommandType.STATUS)
            status = StatusData.from_bytes(self._read_exact(port, StatusData.SIZE))
        logger.debug("Status: has_data=%s config=%s", status.has_data, status.config)
        return status

    def write_config(self, config: Config) -> None:
        """Store ``config`` on the device."""
        with self._exchange() as port:
            self._send(port, CommandType.CONFIG_WRITE, config)
        logger.info("Configuration written")

    def test_actuator(self, config: Config, use_max: bool) -> None:
        """Drive the servos to the min or max endpoints in ``config``."""
        command_type = CommandType.SERVO_MAX if use_max else CommandType.SERVO_MIN
        with self._exchange() as port:
            self._send(port, command_type, config)
        logger.info("Actuator test: %s", command_type.name)

    def download_telemetry(self, destination: str | Path | FrameSink) -> int:
        """Pull the stored flight log batch by batch.

        Args:
            destination: CSV path, or a sink receiving each batch of frames

        Returns:
            Number of frames written
        """
        if isinstance(destination, (str, Path)):
            return self._download_to_file(Path(destination))
        return self._download(destination)

    def _download_to_file(self, path: Path) -> int:
        from canard.flightlog import CsvFrameSink

        if not self.session.is_connected():
            raise NotConnected("no device connected")
        if path.is_dir():
            raise FlightLogError(f"flight log path {path} is a directory")
        try:
            with CsvFrameSink(path) as sink:
                return self._download(sink)
        except OSError as exc:
            raise FlightLogError(f"could not write flight log {path}: {exc}") from exc

    def _download(self, sink: FrameSink) -> int:
        written = 0
        batches = 0
        with self._exchange() as port:
            port.reset_input_buffer()
            self._send(port, CommandType.DATA_READ)
            while True:
                buf = SensorBuf.from_bytes(self._read_exact(port, SensorBuf.SIZE))
                if buf.is_end:
                    break

                frames = buf.valid_frames
                sink.write(frames)
                written += len(frames)
                batches += 1

                latest = max((f.time for f in frames), default=0)
                logger.debug("Batch %d: %d frames up to t=%d ms", batches, len(frames), latest)
                self.session.notify_progress(latest)

                port.reset_input_buffer()
                self._write(port, self.settings.ack)

        logger.info("Downloaded %d frames in %d batches", written, batches)
        return written

    def upload_replay(self, steps: Sequence[ReplayData]) -> int:
        """Push actuator replay steps in device-paced chunks of 8.

        Returns:
            Number of chunks sent
        """
        chunks = [
            steps[i : i + REPLAY_CHUNK_SIZE]
            for i in range(0, len(steps), REPLAY_CHUNK_SIZE)
        ]
        with self._exchange() as port:
            port.reset_input_buffer()
            self._send(port, CommandType.FLIGHT_REPLAY)
            for chunk in chunks:
                self._read_exact(port, 1)
                self._write(port, encode_replay_chunk(chunk))
        logger.info("Uploaded %d replay steps in %d chunks", len(steps), len(chunks))
        return len(chunks)

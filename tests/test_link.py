"""Tests for the serial protocol engine against a scripted port."""

import pytest
import serial

from canard.config import LinkSettings
from canard.errors import (
    CanardError,
    DeviceNotFound,
    FlightLogError,
    NotConnected,
    PortOpenFailed,
    TransportIo,
)
from canard.flightlog import load_flight_log
from canard.protocol import LinkState, SerialLink, SessionState
from canard.protocol.wire import (
    Command,
    CommandType,
    Config,
    Frame,
    ReplayData,
    SensorBuf,
    StatusData,
    decode_replay_chunk,
    encode,
)

from conftest import FakeSerial, PortInfo, RecordingListener

PORTS = [
    PortInfo("/dev/ttyS0", None),
    PortInfo("/dev/ttyUSB0", "FTDI"),
    PortInfo("/dev/ttyACM0", "STMicroelectronics"),
    PortInfo("/dev/ttyACM1", "STMicroelectronics"),
]


class Opener:
    """Port factory recording the arguments it was called with."""

    def __init__(self, port: FakeSerial | None = None, error: Exception | None = None) -> None:
        self.port = port or FakeSerial()
        self.error = error
        self.calls: list[dict] = []

    def __call__(self, **kwargs) -> FakeSerial:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.port


class ListSink:
    """In-memory frame sink."""

    def __init__(self) -> None:
        self.batches: list[list[Frame]] = []
        self.closed = False

    def write(self, frames) -> None:
        self.batches.append(list(frames))

    def close(self) -> None:
        self.closed = True


def batch(*times: int) -> bytes:
    frames = tuple(Frame(time=t, alt=float(t) / 10.0, sample_count=2) for t in times)
    return SensorBuf(zero=0, count=len(frames), frames=frames).to_bytes()


END = SensorBuf(zero=1).to_bytes()


# =============================================================================
# Connection
# =============================================================================


class TestConnect:
    """Device discovery and port configuration."""

    def test_picks_first_matching_port(self) -> None:
        """Test the first STMicroelectronics port is opened."""
        opener = Opener()
        link = SerialLink(SessionState(), enumerate_ports=lambda: PORTS, open_port=opener)

        link.connect()

        assert link.is_connected()
        assert link.state is LinkState.CONNECTED
        assert len(opener.calls) == 1
        assert opener.calls[0]["port"] == "/dev/ttyACM0"

    def test_line_settings(self) -> None:
        """Test the port is opened with the device line settings and DTR."""
        opener = Opener()
        link = SerialLink(SessionState(), enumerate_ports=lambda: PORTS, open_port=opener)
        link.connect()

        kwargs = opener.calls[0]
        assert kwargs["baudrate"] == 9600
        assert kwargs["bytesize"] == serial.EIGHTBITS
        assert kwargs["parity"] == serial.PARITY_NONE
        assert kwargs["stopbits"] == serial.STOPBITS_ONE
        assert kwargs["xonxoff"] is True
        assert kwargs["timeout"] == 30.0
        assert opener.port.dtr is True

    def test_connect_twice_opens_once(self) -> None:
        """Test connecting while connected does not reopen the port."""
        opener = Opener()
        link = SerialLink(SessionState(), enumerate_ports=lambda: PORTS, open_port=opener)
        link.connect()
        link.connect()
        assert len(opener.calls) == 1

    def test_no_matching_device(self) -> None:
        """Test DeviceNotFound when no port matches the filter."""
        opener = Opener()
        link = SerialLink(SessionState(), enumerate_ports=lambda: PORTS[:2], open_port=opener)

        with pytest.raises(DeviceNotFound):
            link.connect()

        assert opener.calls == []
        assert link.state is LinkState.DISCONNECTED
        assert not link.is_connected()

    def test_enumeration_failure(self) -> None:
        """Test an enumeration error is reported as DeviceNotFound."""

        def broken():
            raise OSError("udev unavailable")

        link = SerialLink(SessionState(), enumerate_ports=broken, open_port=Opener())

        with pytest.raises(DeviceNotFound, match="enumeration failed"):
            link.connect()
        assert link.state is LinkState.DISCONNECTED

    def test_open_failure(self) -> None:
        """Test an open error is reported as PortOpenFailed."""
        opener = Opener(error=serial.SerialException("permission denied"))
        link = SerialLink(SessionState(), enumerate_ports=lambda: PORTS, open_port=opener)

        with pytest.raises(PortOpenFailed, match="/dev/ttyACM0"):
            link.connect()
        assert link.state is LinkState.DISCONNECTED

    def test_dtr_failure_closes_port(self) -> None:
        """Test a DTR failure closes the freshly opened port."""

        class NoDtr(FakeSerial):
            @property
            def dtr(self):
                return False

            @dtr.setter
            def dtr(self, value):
                if value:
                    raise serial.SerialException("ioctl failed")

        port = NoDtr()
        link = SerialLink(
            SessionState(), enumerate_ports=lambda: PORTS, open_port=Opener(port)
        )

        with pytest.raises(PortOpenFailed, match="DTR"):
            link.connect()
        assert port.closed
        assert not link.is_connected()

    def test_custom_device_filter(self) -> None:
        """Test LinkSettings.device_filter selects the port."""
        opener = Opener()
        settings = LinkSettings(device_filter=lambda info: info.device.endswith("USB0"))
        link = SerialLink(
            SessionState(), settings, enumerate_ports=lambda: PORTS, open_port=opener
        )

        link.connect()
        assert opener.calls[0]["port"] == "/dev/ttyUSB0"

    def test_lock_timeout_from_settings(self) -> None:
        """Test the link passes its lock timeout to the session."""
        session = SessionState()
        SerialLink(session, LinkSettings(lock_timeout=2.0))
        assert session.lock_timeout == 2.0

    def test_disconnect_is_idempotent(self, make_link, listener) -> None:
        """Test repeated disconnects close once and notify nobody."""
        link, port = make_link()

        link.disconnect()
        link.disconnect()

        assert port.closed
        assert link.state is LinkState.DISCONNECTED
        assert listener.disconnects == 0


# =============================================================================
# Simple Commands
# =============================================================================


class TestCommands:
    """Single-message exchanges."""

    def test_get_status(self, make_link) -> None:
        """Test STATUS flushes input and decodes the reply."""
        config = Config(init=7, param=500.0, control=True)
        link, port = make_link(b"\x01" + config.to_bytes())

        status = link.get_status()

        assert status == StatusData(has_data=True, config=config)
        assert port.input_resets == 1
        assert port.written == [encode(Command(CommandType.STATUS))]

    def test_status_short_read(self, make_link, listener) -> None:
        """Test a short status reply tears the session down."""
        link, port = make_link(b"\x01\x02")

        with pytest.raises(TransportIo, match="2 of 50"):
            link.get_status()

        assert port.closed
        assert not link.is_connected()
        assert listener.disconnects == 1

    def test_write_config(self, make_link) -> None:
        """Test CONFIG_WRITE sends the Config and flushes."""
        config = Config(s1min=-20, s1max=20, param=800.0, p=0.02)
        link, port = make_link()

        link.write_config(config)

        assert port.written == [encode(Command(CommandType.CONFIG_WRITE, config))]
        assert port.flushes == 1

    @pytest.mark.parametrize(
        "use_max, tag", [(False, CommandType.SERVO_MIN), (True, CommandType.SERVO_MAX)]
    )
    def test_actuator(self, make_link, use_max: bool, tag: CommandType) -> None:
        """Test the actuator test picks the min or max tag."""
        config = Config(s1min=-15, s1max=15)
        link, port = make_link()

        link.test_actuator(config, use_max)

        assert port.written == [encode(Command(tag, config))]

    def test_write_failure_disconnects(self, make_link, listener) -> None:
        """Test a failed write tears the session down."""
        link, port = make_link(fail_writes=True)

        with pytest.raises(TransportIo):
            link.write_config(Config())

        assert link.state is LinkState.DISCONNECTED
        assert listener.disconnects == 1

    def test_requires_connection(self) -> None:
        """Test commands without a connection raise NotConnected."""
        link = SerialLink(SessionState())
        with pytest.raises(NotConnected):
            link.get_status()


# =============================================================================
# Telemetry Download
# =============================================================================


class TestDownload:
    """Batched, acknowledged telemetry transfer."""

    def test_download_to_sink(self, make_link, listener) -> None:
        """Test each batch reaches the sink and is acknowledged."""
        link, port = make_link(batch(100, 200, 300) + batch(400, 500) + END)
        sink = ListSink()

        written = link.download_telemetry(sink)

        assert written == 5
        assert [[f.time for f in b] for b in sink.batches] == [[100, 200, 300], [400, 500]]
        assert port.written == [encode(Command(CommandType.DATA_READ)), b"\x06", b"\x06"]
        assert listener.progress == [300, 500]
        assert link.is_connected()

    def test_empty_log(self, make_link, listener) -> None:
        """Test an immediate end marker downloads nothing."""
        link, port = make_link(END)
        sink = ListSink()

        assert link.download_telemetry(sink) == 0
        assert sink.batches == []
        assert port.written == [encode(Command(CommandType.DATA_READ))]
        assert listener.progress == []

    def test_download_to_csv(self, make_link, tmp_path) -> None:
        """Test downloading to a path writes a loadable CSV."""
        link, _ = make_link(batch(100, 200, 300) + batch(400, 500) + END)
        path = tmp_path / "logs" / "flight_01.csv"

        assert link.download_telemetry(path) == 5

        log = load_flight_log(path)
        assert log.height == 5
        assert log.columns == Frame.columns()
        assert log["time"].to_list() == [100, 200, 300, 400, 500]
        assert log["alt"].to_list() == pytest.approx([10.0, 20.0, 30.0, 40.0, 50.0])

    def test_truncated_stream(self, make_link, listener) -> None:
        """Test a truncated batch tears the session down."""
        link, port = make_link(batch(100, 200, 300) + END[:100])
        sink = ListSink()

        with pytest.raises(TransportIo):
            link.download_telemetry(sink)

        assert len(sink.batches) == 1
        assert port.closed
        assert listener.disconnects == 1
        assert link.state is LinkState.DISCONNECTED


class TestDownloadToFile:
    """An existing flight log survives a failed download."""

    PREVIOUS = "time,alt\n1,2\n3,4\n"

    def test_not_connected_keeps_file(self, tmp_path) -> None:
        """Test a download without a device leaves the old log in place."""
        path = tmp_path / "flight.csv"
        path.write_text(self.PREVIOUS)

        with pytest.raises(NotConnected):
            SerialLink(SessionState()).download_telemetry(path)

        assert path.read_text() == self.PREVIOUS
        assert list(tmp_path.iterdir()) == [path]

    def test_truncated_stream_keeps_file(self, make_link, tmp_path) -> None:
        """Test a transfer cut off mid-stream leaves the old log in place."""
        link, _ = make_link(batch(100, 200, 300) + END[:100])
        path = tmp_path / "flight.csv"
        path.write_text(self.PREVIOUS)

        with pytest.raises(TransportIo):
            link.download_telemetry(path)

        assert path.read_text() == self.PREVIOUS
        assert list(tmp_path.iterdir()) == [path]

    def test_success_replaces_file(self, make_link, tmp_path) -> None:
        """Test a completed transfer replaces the old log."""
        link, _ = make_link(batch(100, 200) + END)
        path = tmp_path / "flight.csv"
        path.write_text(self.PREVIOUS)

        assert link.download_telemetry(path) == 2

        assert load_flight_log(path)["time"].to_list() == [100, 200]
        assert list(tmp_path.iterdir()) == [path]

    def test_directory_path(self, make_link, tmp_path) -> None:
        """Test a directory destination is a FlightLogError and sends nothing."""
        link, port = make_link(batch(100) + END)

        with pytest.raises(FlightLogError, match="directory"):
            link.download_telemetry(tmp_path)

        assert port.written == []
        assert link.is_connected()

    def test_flight_log_error_is_canard_error(self, make_link, tmp_path) -> None:
        """Test a file problem is reported through the package hierarchy."""
        link, _ = make_link()
        with pytest.raises(CanardError):
            link.download_telemetry(str(tmp_path))


# =============================================================================
# Replay Upload
# =============================================================================


class TestUpload:
    """Device-paced replay upload."""

    def test_chunks_and_padding(self, make_link) -> None:
        """Test steps are sent in padded chunks of 8."""
        steps = [ReplayData(delay=10 * i, angle=float(i)) for i in range(10)]
        link, port = make_link(b"\x06\x06")

        assert link.upload_replay(steps) == 2

        command, first, second = port.written
        assert command == encode(Command(CommandType.FLIGHT_REPLAY))
        assert len(first) == len(second) == 8 * ReplayData.SIZE
        assert decode_replay_chunk(first) == steps[:8]
        assert decode_replay_chunk(second) == steps[8:]
        assert ReplayData.from_bytes(second[16:24]).delay == -1

    def test_missing_ack(self, make_link, listener) -> None:
        """Test a missing chunk ack tears the session down."""
        steps = [ReplayData(delay=i) for i in range(10)]
        link, port = make_link(b"\x06")

        with pytest.raises(TransportIo):
            link.upload_replay(steps)

        assert len(port.written) == 2
        assert listener.disconnects == 1

    def test_no_steps(self, make_link) -> None:
        """Test an empty replay sends only the command."""
        link, port = make_link()
        assert link.upload_replay([]) == 0
        assert port.written == [encode(Command(CommandType.FLIGHT_REPLAY))]


def test_listener_fixture_is_shared(make_link, listener) -> None:
    """Test the session built by make_link reports to the listener fixture."""
    link, _ = make_link()
    link.session.notify_progress(42)
    assert isinstance(listener, RecordingListener)
    assert listener.progress == [42]

"""Shared fixtures: an in-memory stand-in for a pyserial port."""

from dataclasses import dataclass

import pytest
import serial

from canard.protocol import SerialLink, SessionState


@dataclass
class PortInfo:
    """Minimal ``ListPortInfo`` replacement."""
    device: str
    manufacturer: str | None = None


class FakeSerial:
    """Scripted serial port.

    Reads are served from ``rx``; every write is recorded in ``written``.
    ``reset_input_buffer`` only counts calls so scripted replies survive it.
    """

    def __init__(self, rx: bytes = b"", fail_writes: bool = False) -> None:
        self.rx = bytearray(rx)
        self.written: list[bytes] = []
        self.fail_writes = fail_writes
        self.input_resets = 0
        self.flushes = 0
        self.closed = False
        self.dtr = False

    def read(self, size: int = 1) -> bytes:
        chunk = bytes(self.rx[:size])
        del self.rx[:size]
        return chunk

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise serial.SerialException("write failed")
        self.written.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        self.flushes += 1

    def reset_input_buffer(self) -> None:
        self.input_resets += 1

    def close(self) -> None:
        self.closed = True


class RecordingListener:
    """Collects frontend notifications."""

    def __init__(self) -> None:
        self.progress: list[int] = []
        self.disconnects = 0

    def on_progress(self, timestamp: int) -> None:
        self.progress.append(timestamp)

    def on_disconnect(self) -> None:
        self.disconnects += 1


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def make_link(listener):
    """Build a link whose session is already attached to a FakeSerial."""

    def _make(rx: bytes = b"", fail_writes: bool = False) -> tuple[SerialLink, FakeSerial]:
        port = FakeSerial(rx, fail_writes=fail_writes)
        session = SessionState()
        session.add_listener(listener)
        session.attach(port)
        return SerialLink(session), port

    return _make

"""Exception hierarchy for the ground station.

The serial layer raises these; the command surface in ``canard.commands``
turns them into the booleans and default values the frontend consumes.
"""


class CanardError(RuntimeError):
    """Base class for all ground station errors."""


class DeviceNotFound(CanardError):
    """No serial device advertises the expected manufacturer."""


class PortOpenFailed(CanardError):
    """The matching device exists but could not be opened or configured."""


class TransportIo(CanardError):
    """A read, write or flush failed on an established connection.

    Always fatal to the session: the link is torn down before this is raised.
    """


class FormatError(CanardError, ValueError):
    """Byte count does not match the expected message size."""

    def __init__(self, message_type: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{message_type} requires exactly {expected} bytes, got {actual}"
        )
        self.message_type = message_type
        self.expected = expected
        self.actual = actual


class NotConnected(CanardError):
    """Operation needs a connection but the session holds none."""


class LinkBusy(CanardError):
    """Another operation held the transport longer than the lock timeout."""


class FlightLogError(CanardError):
    """The flight log file could not be created or finalized."""

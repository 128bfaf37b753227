"""Serial protocol engine for the canard flight controller.

Example:
    >>> from canard.protocol import SerialLink, SessionState
    >>>
    >>> session = SessionState()
    >>> link = SerialLink(session)
    >>> link.connect()
    >>> print(link.get_status().config)
"""

from canard.protocol.wire import (
    FRAMES_PER_BUFFER,
    REPLAY_CHUNK_SIZE,
    Command,
    CommandType,
    Config,
    Frame,
    ReplayData,
    SensorBuf,
    StatusData,
    decode,
    decode_replay_chunk,
    encode,
    encode_replay_chunk,
)
from canard.protocol.session import (
    LinkListener,
    LinkState,
    SessionState,
    Transport,
)
from canard.protocol.link import SerialLink

__all__ = [
    # Wire format
    "FRAMES_PER_BUFFER",
    "REPLAY_CHUNK_SIZE",
    "Command",
    "CommandType",
    "Config",
    "Frame",
    "ReplayData",
    "SensorBuf",
    "StatusData",
    "decode",
    "decode_replay_chunk",
    "encode",
    "encode_replay_chunk",
    # Session
    "LinkListener",
    "LinkState",
    "SessionState",
    "Transport",
    # Link
    "SerialLink",
]

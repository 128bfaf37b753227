"""Binary wire format shared with the flight controller firmware.

Every message is a flat run of fixed-width little-endian fields with no
padding, no length prefix and no checksum, so message boundaries are implied
by the sizes below. Any change to a layout here is a protocol break.

Layouts (``<`` = little-endian, no alignment):

    Config      I iii iii ? f I f f f           49 bytes
    Command     B + Config                      50 bytes
    StatusData  ? + Config                      50 bytes
    Frame       I 15f I I                       72 bytes
    SensorBuf   I I + 42 * Frame              3032 bytes
    ReplayData  i f                              8 bytes

Example:
    >>> from canard.protocol.wire import Command, CommandType, Config, encode
    >>>
    >>> raw = encode(Command(CommandType.STATUS, Config()))
    >>> len(raw)
    50
"""

import math
import struct
from dataclasses import astuple, dataclass, field, fields
from enum import IntEnum
from typing import Any, ClassVar, Sequence

from beartype import beartype

from canard.errors import FormatError
from canard.typecheck import TOWER

# =============================================================================
# Layout Constants
# =============================================================================

CONFIG_LAYOUT = "I iii iii ? f I f f f"
FRAME_LAYOUT = "I" + "f" * 15 + "II"

FRAMES_PER_BUFFER = 42
REPLAY_CHUNK_SIZE = 8
REPLAY_PADDING_DELAY = -1

_CONFIG = struct.Struct("<" + CONFIG_LAYOUT)
_COMMAND = struct.Struct("<B " + CONFIG_LAYOUT)
_STATUS = struct.Struct("<? " + CONFIG_LAYOUT)
_FRAME = struct.Struct("<" + FRAME_LAYOUT)
_SENSOR_HEADER = struct.Struct("<II")
_REPLAY = struct.Struct("<if")


def _check_size(message_type: str, expected: int, data: bytes) -> None:
    if len(data) != expected:
        raise FormatError(message_type, expected, len(data))


_INT_RANGES = {
    "I": (0, 2**32 - 1),
    "i": (-(2**31), 2**31 - 1),
}
_F32_MAX = 3.4028234663852886e38


def _check_fields(message: Any, layout: str) -> None:
    """Reject field values that do not fit their wire width.

    ``layout`` holds one struct code per dataclass field, in field order.
    """
    codes = layout.replace(" ", "")
    message_type = type(message).__name__
    for f, code in zip(fields(message), codes):
        value = getattr(message, f.name)
        if code in _INT_RANGES:
            low, high = _INT_RANGES[code]
            if not low <= value <= high:
                raise ValueError(
                    f"{message_type}.{f.name}={value} is outside [{low}, {high}]"
                )
        elif code == "f" and math.isfinite(value) and abs(value) > _F32_MAX:
            raise ValueError(f"{message_type}.{f.name}={value} overflows a 32-bit float")


# =============================================================================
# Command Tags
# =============================================================================


class CommandType(IntEnum):
    """One-byte operation tag leading every command."""

    SERVO_MIN = 0
    SERVO_MAX = 1
    STATUS = 2
    CONFIG_WRITE = 3
    DATA_READ = 4
    FLIGHT_REPLAY = 5


# =============================================================================
# Config
# =============================================================================


@beartype(conf=TOWER)
@dataclass(frozen=True)
class Config:
    """Calibration and control parameters stored on the device.

    Attributes:
        init: Initialization marker written by the firmware
        s1min: Servo 1 minimum travel endpoint
        s2min: Servo 2 minimum travel endpoint
        s3min: Servo 3 minimum travel endpoint
        s1max: Servo 1 maximum travel endpoint
        s2max: Servo 2 maximum travel endpoint
        s3max: Servo 3 maximum travel endpoint
        control: Closed-loop apogee control enabled
        param: Target apogee [m], or fixed deployment angle [deg] without control
        start_time: Control start time after launch [ms]
        p: Proportional gain
        alpha: Aerodynamic blending coefficient
        mass: Vehicle mass [kg]
    """
    SIZE: ClassVar[int] = _CONFIG.size

    init: int = 0
    s1min: int = 0
    s2min: int = 0
    s3min: int = 0
    s1max: int = 0
    s2max: int = 0
    s3max: int = 0
    control: bool = False
    param: float = 0.0
    start_time: int = 0
    p: float = 0.0
    alpha: float = 0.0
    mass: float = 0.0

    def __post_init__(self) -> None:
        _check_fields(self, CONFIG_LAYOUT)

    def to_bytes(self) -> bytes:
        return _CONFIG.pack(*astuple(self))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Config":
        _check_size("Config", cls.SIZE, data)
        return cls(*_CONFIG.unpack(data))

    def to_dict(self) -> dict[str, Any]:
        """Field values keyed by field name."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build from a mapping, accepting the frontend's key spellings.

        ``starttime`` and ``P`` are read as ``start_time`` and ``p``.
        Missing keys keep their defaults.
        """
        aliases = {"starttime": "start_time", "P": "p"}
        values = {aliases.get(k, k): v for k, v in data.items()}
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in values:
                continue
            caster = {"int": int, "bool": bool, "float": float}[f.type.__name__]
            kwargs[f.name] = caster(values[f.name])
        return cls(**kwargs)


# =============================================================================
# Command / Status
# =============================================================================


@beartype(conf=TOWER)
@dataclass(frozen=True)
class Command:
    """Operation tag plus a full Config payload (zeroed when unused)."""
    SIZE: ClassVar[int] = _COMMAND.size

    command_type: CommandType
    config: Config = field(default_factory=Config)

    def to_bytes(self) -> bytes:
        return _COMMAND.pack(int(self.command_type), *astuple(self.config))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Command":
        _check_size("Command", cls.SIZE, data)
        tag, *values = _COMMAND.unpack(data)
        return cls(CommandType(tag), Config(*values))


@beartype(conf=TOWER)
@dataclass(frozen=True)
class StatusData:
    """Device echo of its active Config and whether a flight log is stored."""
    SIZE: ClassVar[int] = _STATUS.size

    has_data: bool = False
    config: Config = field(default_factory=Config)

    def to_bytes(self) -> bytes:
        return _STATUS.pack(self.has_data, *astuple(self.config))

    @classmethod
    def from_bytes(cls, data: bytes) -> "StatusData":
        _check_size("StatusData", cls.SIZE, data)
        has_data, *values = _STATUS.unpack(data)
        return cls(has_data, Config(*values))


# =============================================================================
# Telemetry
# =============================================================================


@beartype(conf=TOWER)
@dataclass(frozen=True)
class Frame:
    """One telemetry sample as recorded by the flight controller.

    Attributes:
        time: Device timestamp [ms]
        alt: Integrated altitude [m]
        vz: Vertical velocity [m/s]
        vx: Lateral velocity [m/s]
        az: Vertical acceleration [m/s^2]
        pressure: Static pressure [Pa]
        angle: Actuator position [deg]
        accel_x, accel_y, accel_z: Accelerometer axes [m/s^2]
        gyro_x, gyro_y, gyro_z: Gyroscope axes [deg/s]
        baro_alt: Barometric altitude [m]
        temp: Temperature [C]
        target: Target value used by the controller
        state: Flight-state code
        sample_count: Control loop iterations folded into this sample
    """
    SIZE: ClassVar[int] = _FRAME.size

    time: int = 0
    alt: float = 0.0
    vz: float = 0.0
    vx: float = 0.0
    az: float = 0.0
    pressure: float = 0.0
    angle: float = 0.0
    accel_x: float = 0.0
    accel_y: float = 0.0
    accel_z: float = 0.0
    gyro_x: float = 0.0
    gyro_y: float = 0.0
    gyro_z: float = 0.0
    baro_alt: float = 0.0
    temp: float = 0.0
    target: float = 0.0
    state: int = 0
    sample_count: int = 0

    def __post_init__(self) -> None:
        _check_fields(self, FRAME_LAYOUT)

    @classmethod
    def columns(cls) -> list[str]:
        """Field names in wire order."""
        return [f.name for f in fields(cls)]

    def to_bytes(self) -> bytes:
        return _FRAME.pack(*astuple(self))

    @classmethod
    def from_bytes(cls, data: bytes) -> "Frame":
        _check_size("Frame", cls.SIZE, data)
        return cls(*_FRAME.unpack(data))


@beartype(conf=TOWER)
@dataclass(frozen=True)
class SensorBuf:
    """Batch envelope of up to 42 frames.

    Attributes:
        zero: 0 while more batches follow, non-zero marks end of stream
        count: Number of meaningful frames at the head of ``frames``
        frames: Frame slots; padded with empty frames to 42 on encode
    """
    SIZE: ClassVar[int] = _SENSOR_HEADER.size + FRAMES_PER_BUFFER * _FRAME.size

    zero: int = 0
    count: int = 0
    frames: tuple[Frame, ...] = ()

    def __post_init__(self) -> None:
        _check_fields(self, "II")
        if len(self.frames) > FRAMES_PER_BUFFER:
            raise ValueError(
                f"SensorBuf holds at most {FRAMES_PER_BUFFER} frames, "
                f"got {len(self.frames)}"
            )

    @property
    def is_end(self) -> bool:
        return self.zero != 0

    @property
    def valid_frames(self) -> tuple[Frame, ...]:
        return self.frames[: min(self.count, FRAMES_PER_BUFFER)]

    def to_bytes(self) -> bytes:
        slots = list(self.frames)
        slots.extend(Frame() for _ in range(FRAMES_PER_BUFFER - len(slots)))
        return _SENSOR_HEADER.pack(self.zero, self.count) + b"".join(
            f.to_bytes() for f in slots
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "SensorBuf":
        _check_size("SensorBuf", cls.SIZE, data)
        zero, count = _SENSOR_HEADER.unpack_from(data, 0)
        offset = _SENSOR_HEADER.size
        frames = tuple(
            Frame(*_FRAME.unpack_from(data, offset + i * _FRAME.size))
            for i in range(FRAMES_PER_BUFFER)
        )
        return cls(zero, count, frames)


# =============================================================================
# Flight Replay
# =============================================================================


@beartype(conf=TOWER)
@dataclass(frozen=True)
class ReplayData:
    """One actuator replay step: wait ``delay`` ms, then move to ``angle``."""
    SIZE: ClassVar[int] = _REPLAY.size

    delay: int
    angle: float = 0.0

    def __post_init__(self) -> None:
        _check_fields(self, "if")

    @classmethod
    def padding(cls) -> "ReplayData":
        return cls(delay=REPLAY_PADDING_DELAY, angle=0.0)

    @property
    def is_padding(self) -> bool:
        return self.delay == REPLAY_PADDING_DELAY

    def to_bytes(self) -> bytes:
        return _REPLAY.pack(self.delay, self.angle)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ReplayData":
        _check_size("ReplayData", cls.SIZE, data)
        return cls(*_REPLAY.unpack(data))


@beartype(conf=TOWER)
def encode_replay_chunk(steps: Sequence[ReplayData]) -> bytes:
    """Encode up to 8 steps as one fixed 8-slot chunk, padding with delay=-1."""
    if len(steps) > REPLAY_CHUNK_SIZE:
        raise ValueError(
            f"A replay chunk holds at most {REPLAY_CHUNK_SIZE} steps, got {len(steps)}"
        )
    slots = list(steps) + [ReplayData.padding()] * (REPLAY_CHUNK_SIZE - len(steps))
    return b"".join(s.to_bytes() for s in slots)


@beartype(conf=TOWER)
def decode_replay_chunk(data: bytes) -> list[ReplayData]:
    """Decode a full chunk, dropping padding slots."""
    _check_size("ReplayChunk", REPLAY_CHUNK_SIZE * ReplayData.SIZE, data)
    steps = [
        ReplayData.from_bytes(data[i : i + ReplayData.SIZE])
        for i in range(0, len(data), ReplayData.SIZE)
    ]
    return [s for s in steps if not s.is_padding]


# =============================================================================
# Generic Codec
# =============================================================================

Message = Config | Command | StatusData | Frame | SensorBuf | ReplayData


@beartype(conf=TOWER)
def encode(message: Message) -> bytes:
    """Serialize any wire message. Commands are always 1 + Config.SIZE bytes."""
    return message.to_bytes()


def decode(data: bytes, message_type: type) -> Message:
    """Deserialize ``data`` as ``message_type``.

    Raises:
        FormatError: If ``len(data)`` is not exactly ``message_type.SIZE``
    """
    _check_size(message_type.__name__, message_type.SIZE, data)
    return message_type.from_bytes(data)

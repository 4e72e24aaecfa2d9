"""Canvas command model, stream validation and binary buffer codec.

A command stream is an ordered list of commands:

    ((StartFill | StartStroke) LineTo* EndContour)* Terminator

Each command packs into a 16-byte little-endian record:

    opcode : u32
    param1 : (u16, u16)   point (x, y)
    param2 : (u16, u16)   color (r | g << 8, b | a << 8)
    param3 : (u16, u16)   (width, 0) for StartStroke, zero otherwise

Invariants:
    - Points and widths fit in u16, color channels in u8 (checked at construction)
    - Processing stops at the first Terminator regardless of remaining capacity
    - Malformed streams are not repaired; validate_stream() rejects them once,
      before any pixel is evaluated

Usage:
    from canvas2d.rasterizer.commands import StartFill, LineTo, EndContour, Terminator

    stream = [StartFill((1, 1), (255, 0, 0, 255)), LineTo((4, 1)), LineTo((4, 4)),
              LineTo((1, 4)), LineTo((1, 1)), EndContour(), Terminator()]
    data = encode_buffer(stream)
    assert decode_buffer(data) == stream
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Sequence, Tuple, Union

import numpy as np

from ..utils import color as color_utils

DEFAULT_COMMAND_CAPACITY = 1000
COMMAND_SIZE_BYTES = 16

COMMAND_DTYPE = np.dtype([
    ('opcode', '<u4'),
    ('param1', '<u2', (2,)),
    ('param2', '<u2', (2,)),
    ('param3', '<u2', (2,)),
])


class StreamValidationError(ValueError):
    """Command stream or buffer that violates the stream contract."""

    def __init__(self, message: str, index: int = -1):
        if index >= 0:
            message = f"command {index}: {message}"
        super().__init__(message)
        self.index = index


class Opcode(IntEnum):
    START_FILL = 0
    START_STROKE = 1
    LINE_TO = 2
    END_CONTOUR = 3
    TERMINATOR = 4


def _check_u16(name: str, value: int) -> int:
    value = int(value)
    if not 0 <= value <= color_utils.U16_MAX:
        raise ValueError(f"{name} must be in [0, {color_utils.U16_MAX}], got {value}")
    return value


def _check_point(point: Sequence[int]) -> Tuple[int, int]:
    if len(point) != 2:
        raise ValueError(f"Point must have 2 coordinates, got {len(point)}")
    return _check_u16("x", point[0]), _check_u16("y", point[1])


def _check_color(rgba: Sequence[int]) -> Tuple[int, int, int, int]:
    # pack_rgba8 raises ValueError on bad length or range
    lo, hi = color_utils.pack_rgba8(rgba)
    return color_utils.unpack_rgba8((lo, hi))


@dataclass(frozen=True)
class StartFill:
    """Begin a filled contour at `point` with 8-bit RGBA `color`."""
    point: Tuple[int, int]
    color: Tuple[int, int, int, int]

    opcode = Opcode.START_FILL

    def __post_init__(self):
        object.__setattr__(self, 'point', _check_point(self.point))
        object.__setattr__(self, 'color', _check_color(self.color))


@dataclass(frozen=True)
class StartStroke:
    """Begin a stroked contour at `point`; `width` is the falloff radius in pixels."""
    point: Tuple[int, int]
    color: Tuple[int, int, int, int]
    width: int

    opcode = Opcode.START_STROKE

    def __post_init__(self):
        object.__setattr__(self, 'point', _check_point(self.point))
        object.__setattr__(self, 'color', _check_color(self.color))
        object.__setattr__(self, 'width', _check_u16("width", self.width))


@dataclass(frozen=True)
class LineTo:
    point: Tuple[int, int]

    opcode = Opcode.LINE_TO

    def __post_init__(self):
        object.__setattr__(self, 'point', _check_point(self.point))


@dataclass(frozen=True)
class EndContour:
    opcode = Opcode.END_CONTOUR


@dataclass(frozen=True)
class Terminator:
    opcode = Opcode.TERMINATOR


Command = Union[StartFill, StartStroke, LineTo, EndContour, Terminator]
CommandStream = List[Command]

_COMMAND_TYPES = (StartFill, StartStroke, LineTo, EndContour, Terminator)


# ============================================================================
# VALIDATION
# ============================================================================

def validate_stream(
    commands: Sequence[Command],
    capacity: int = DEFAULT_COMMAND_CAPACITY,
    strict: bool = True
) -> int:
    """Check a command stream once, before rendering.

    Parameters
    ----------
    commands : sequence of Command
        Stream to check; commands after the first Terminator are ignored
    capacity : int
        Buffer capacity in commands; the Terminator must sit at an index < capacity
    strict : bool
        Also enforce the contour grammar (Start, LineTo*, EndContour), default True

    Returns
    -------
    int
        Index of the first Terminator

    Raises
    ------
    StreamValidationError
        Missing Terminator, Terminator beyond capacity, unknown command, or (strict)
        a grammar violation such as LineTo before any Start or an unclosed contour
    """
    if capacity <= 0:
        raise ValueError(f"capacity must be positive, got {capacity}")

    in_contour = False
    for i, cmd in enumerate(commands):
        if i >= capacity:
            raise StreamValidationError(
                f"no Terminator within capacity of {capacity} commands", i
            )
        if not isinstance(cmd, _COMMAND_TYPES):
            raise StreamValidationError(f"unknown command {cmd!r}", i)
        op = cmd.opcode

        if op == Opcode.TERMINATOR:
            if strict and in_contour:
                raise StreamValidationError("Terminator inside an open contour", i)
            return i

        if not strict:
            continue
        if op in (Opcode.START_FILL, Opcode.START_STROKE):
            if in_contour:
                raise StreamValidationError("Start inside an open contour (missing EndContour)", i)
            in_contour = True
        elif op == Opcode.LINE_TO:
            if not in_contour:
                raise StreamValidationError("LineTo outside a contour", i)
        elif op == Opcode.END_CONTOUR:
            if not in_contour:
                raise StreamValidationError("EndContour without a matching Start", i)
            in_contour = False

    raise StreamValidationError(f"stream of {len(commands)} commands has no Terminator")


def terminated(commands: Sequence[Command]) -> CommandStream:
    """Commands up to and including the first Terminator (no validation)."""
    out = []
    for cmd in commands:
        out.append(cmd)
        if cmd.opcode == Opcode.TERMINATOR:
            break
    return out


# ============================================================================
# BINARY CODEC
# ============================================================================

def to_records(commands: Sequence[Command]) -> np.ndarray:
    """Pack commands into a structured array of COMMAND_DTYPE (one row each)."""
    records = np.zeros(len(commands), dtype=COMMAND_DTYPE)
    for i, cmd in enumerate(commands):
        records['opcode'][i] = int(cmd.opcode)
        if isinstance(cmd, (StartFill, StartStroke, LineTo)):
            records['param1'][i] = cmd.point
        if isinstance(cmd, (StartFill, StartStroke)):
            records['param2'][i] = color_utils.pack_rgba8(cmd.color)
        if isinstance(cmd, StartStroke):
            records['param3'][i] = (cmd.width, 0)
    return records


def from_record(record: np.void, index: int = -1) -> Command:
    """Decode one COMMAND_DTYPE row.

    Raises
    ------
    StreamValidationError
        If the opcode is not one of the five known opcodes
    """
    raw = int(record['opcode'])
    try:
        op = Opcode(raw)
    except ValueError:
        raise StreamValidationError(f"unknown opcode {raw}", index) from None

    point = (int(record['param1'][0]), int(record['param1'][1]))
    if op == Opcode.START_FILL:
        return StartFill(point, color_utils.unpack_rgba8(record['param2']))
    if op == Opcode.START_STROKE:
        return StartStroke(point, color_utils.unpack_rgba8(record['param2']), int(record['param3'][0]))
    if op == Opcode.LINE_TO:
        return LineTo(point)
    if op == Opcode.END_CONTOUR:
        return EndContour()
    return Terminator()


def encode_buffer(commands: Sequence[Command], capacity: int = DEFAULT_COMMAND_CAPACITY) -> bytes:
    """Serialize a stream into a fixed-size, zero-padded buffer.

    Parameters
    ----------
    commands : sequence of Command
        Stream containing a Terminator within `capacity`
    capacity : int
        Number of 16-byte slots, default 1000 (16 000 bytes)

    Returns
    -------
    bytes
        capacity * 16 bytes; slots after the Terminator are zero

    Raises
    ------
    StreamValidationError
        If the stream has no Terminator within capacity
    """
    end = validate_stream(commands, capacity, strict=False)
    buf = np.zeros(capacity, dtype=COMMAND_DTYPE)
    buf[:end + 1] = to_records(commands[:end + 1])
    return buf.tobytes()


def decode_buffer(data: bytes) -> CommandStream:
    """Parse a command buffer up to and including its first Terminator.

    Raises
    ------
    StreamValidationError
        If the length is not a multiple of 16, an opcode is unknown, or no
        Terminator is present
    """
    if len(data) % COMMAND_SIZE_BYTES != 0:
        raise StreamValidationError(
            f"buffer length {len(data)} is not a multiple of {COMMAND_SIZE_BYTES} bytes"
        )
    records = np.frombuffer(data, dtype=COMMAND_DTYPE)
    out = []
    for i, record in enumerate(records):
        cmd = from_record(record, i)
        out.append(cmd)
        if cmd.opcode == Opcode.TERMINATOR:
            return out
    raise StreamValidationError(f"buffer of {len(records)} commands has no Terminator")

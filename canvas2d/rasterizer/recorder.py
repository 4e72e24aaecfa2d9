"""Command and line recorders feeding the two kernels.

CanvasRecorder / ContourRecorder build a command stream for the contour
rasterizer. Each call that changes state returns the next recorder and
consumes the one it was called on, so only valid command sequences can be
recorded:

    stream = (CanvasRecorder()
              .start_fill((1, 1), (255, 0, 0, 255))
              .line_to((4, 1)).line_to((4, 4)).line_to((1, 4)).line_to((1, 1))
              .end()
              .finish())

LineCanvas records a flat list of segments for the multisample coverage
kernel, drawing each line from an internal cursor:

    canvas = LineCanvas()
    canvas.move_to((1.0, 1.0))
    canvas.line_to((4.0, 1.0))
    points = canvas.segments()      # (2 * num_lines, 2) float32

All coordinates are pixels with (0, 0) at top left. Closing a shape is the
caller's responsibility.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from .commands import (
    DEFAULT_COMMAND_CAPACITY,
    Command,
    CommandStream,
    EndContour,
    LineTo,
    StartFill,
    StartStroke,
    Terminator,
)

logger = logging.getLogger(__name__)

DEFAULT_LINE_BUFFER_BYTES = 8192
SEGMENT_SIZE_BYTES = 16  # two float32 (x, y) points


class CapacityError(RuntimeError):
    """Recorder or line buffer ran out of space."""


class RecorderStateError(RuntimeError):
    """A recorder was used after a state transition consumed it."""


class _CommandBuffer:
    """Fixed-capacity command list shared by the recorders of one stream."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Command capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.commands: List[Command] = []

    def write(self, cmd: Command) -> None:
        # Every non-terminal command must leave room for the Terminator
        limit = self.capacity if isinstance(cmd, Terminator) else self.capacity - 1
        if len(self.commands) >= limit:
            raise CapacityError(
                f"Command buffer full: {len(self.commands)} of {self.capacity} slots used "
                f"(one slot is reserved for the Terminator)"
            )
        self.commands.append(cmd)


class _Recorder:
    def __init__(self, buffer: _CommandBuffer):
        self._buffer = buffer
        self._consumed = False

    def _take(self) -> _CommandBuffer:
        if self._consumed:
            raise RecorderStateError(
                f"{type(self).__name__} was already consumed by a previous call; "
                f"use the recorder returned by that call"
            )
        self._consumed = True
        return self._buffer

    def __len__(self) -> int:
        return len(self._buffer.commands)


class CanvasRecorder(_Recorder):
    """Recorder outside any contour: start a contour or finish the stream.

    Parameters
    ----------
    capacity : int
        Maximum number of commands including the Terminator, default 1000
    """

    def __init__(self, capacity: int = DEFAULT_COMMAND_CAPACITY):
        super().__init__(_CommandBuffer(capacity))

    @classmethod
    def _resume(cls, buffer: _CommandBuffer) -> 'CanvasRecorder':
        rec = cls.__new__(cls)
        _Recorder.__init__(rec, buffer)
        return rec

    def start_fill(self, point: Tuple[int, int], color: Sequence[int]) -> 'ContourRecorder':
        """Open a filled contour at `point` with 8-bit RGBA `color`.

        Raises
        ------
        ValueError
            If the point does not fit in u16 or a channel does not fit in u8
        CapacityError
            If the buffer has no room left
        RecorderStateError
            If this recorder was already consumed
        """
        cmd = StartFill(point, color)
        buffer = self._take()
        buffer.write(cmd)
        return ContourRecorder(buffer)

    def start_stroke(self, point: Tuple[int, int], color: Sequence[int], width: int) -> 'ContourRecorder':
        """Open a stroked contour; see start_fill() for errors."""
        cmd = StartStroke(point, color, width)
        buffer = self._take()
        buffer.write(cmd)
        return ContourRecorder(buffer)

    def finish(self) -> CommandStream:
        """Append the Terminator and return the recorded stream."""
        buffer = self._take()
        buffer.write(Terminator())
        logger.debug(f"Recorded {len(buffer.commands)} commands (capacity {buffer.capacity})")
        return list(buffer.commands)


class ContourRecorder(_Recorder):
    """Recorder inside an open contour: add edges or close it."""

    def line_to(self, point: Tuple[int, int]) -> 'ContourRecorder':
        cmd = LineTo(point)
        buffer = self._take()
        buffer.write(cmd)
        return ContourRecorder(buffer)

    def end(self) -> CanvasRecorder:
        buffer = self._take()
        buffer.write(EndContour())
        return CanvasRecorder._resume(buffer)


class LineCanvas:
    """Segment list for coverage masks, recorded relative to a cursor.

    Parameters
    ----------
    capacity_bytes : int
        Buffer size in bytes, default 8192 (512 segments of 16 bytes)

    Attributes
    ----------
    num_lines : int
        Number of segments recorded so far
    cursor : tuple of float
        Current pen position
    """

    def __init__(self, capacity_bytes: int = DEFAULT_LINE_BUFFER_BYTES):
        if capacity_bytes < SEGMENT_SIZE_BYTES:
            raise ValueError(
                f"Line buffer must hold at least one segment ({SEGMENT_SIZE_BYTES} bytes), "
                f"got {capacity_bytes}"
            )
        self.capacity_bytes = capacity_bytes
        self.max_lines = capacity_bytes // SEGMENT_SIZE_BYTES
        self._points = np.zeros((2 * self.max_lines, 2), dtype=np.float32)
        self.num_lines = 0
        self.cursor = (0.0, 0.0)

    def move_to(self, pos: Tuple[float, float]) -> None:
        self.cursor = (float(pos[0]), float(pos[1]))

    def line_to(self, point: Tuple[float, float]) -> None:
        """Record a segment from the cursor to `point` and move the cursor there.

        Raises
        ------
        CapacityError
            If the buffer has no room for another segment
        """
        if self.num_lines >= self.max_lines:
            raise CapacityError(
                f"Line buffer full: {self.max_lines} segments ({self.capacity_bytes} bytes)"
            )
        end = (float(point[0]), float(point[1]))
        self._points[2 * self.num_lines] = self.cursor
        self._points[2 * self.num_lines + 1] = end
        self.num_lines += 1
        self.cursor = end

    def segments(self) -> np.ndarray:
        """Recorded points as a (2 * num_lines, 2) float32 copy; line i is rows 2i, 2i+1."""
        return self._points[:2 * self.num_lines].copy()

    def __len__(self) -> int:
        return self.num_lines


# ============================================================================
# SCENE RECORDING
# ============================================================================

def record_scene(scene, capacity: int = DEFAULT_COMMAND_CAPACITY) -> CommandStream:
    """Record a validated scene (validators.SceneV1) into a command stream.

    Raises
    ------
    CapacityError
        If the scene needs more commands than `capacity`
    """
    canvas = CanvasRecorder(capacity)
    for contour in scene.contours:
        if contour.type == "fill":
            rec = canvas.start_fill(contour.start, contour.color)
        else:
            rec = canvas.start_stroke(contour.start, contour.color, contour.width)
        for pt in contour.points:
            rec = rec.line_to(pt)
        canvas = rec.end()
    return canvas.finish()


def record_lines(lines, capacity_bytes: int = DEFAULT_LINE_BUFFER_BYTES) -> LineCanvas:
    """Record a validated lines file (validators.LinesV1) into a LineCanvas."""
    canvas = LineCanvas(capacity_bytes)
    for path in lines.paths:
        canvas.move_to(path.start)
        for pt in path.points:
            canvas.line_to(pt)
    return canvas

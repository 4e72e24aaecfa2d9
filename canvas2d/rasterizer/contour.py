"""Contour rasterizer: per-pixel replay of a fill/stroke command stream.

For every output pixel the whole stream is replayed from the first command:

    Start*      reset the accumulator (cursor, color, mode, width, winding, distance)
    LineTo      fill mode: update the nonzero winding number
                any mode:  track the minimum distance to the segment
    EndContour  coverage → alpha → composite the contour color onto the frame
    Terminator  stop, return the frame

Coverage:
    fill:   1 if winding != 0 else 1 − smoothstep(0, 1, d)
    stroke: 1 − smoothstep(w − 1, w, d)

Blend modes:
    normalized (default): frame = normalize(color · α + frame · (1 − α)) as a
                          4-vector (Euclidean norm)
    over:                 rgb = c · α + f · (1 − α); a = α + f.a · (1 − α)

Two implementations share these semantics:
    - replay_pixel(): scalar reference, one pixel, explicit PixelState
    - rasterize_block(): numpy float32 kernel over a tile of pixels; per-pixel
      fields (winding, distance, frame) are arrays, per-contour fields
      (cursor, color, width, mode) are scalars

Invariants:
    - Pixel (x, y) is sampled at its integer coordinate (no half-pixel offset)
    - The frame starts at opaque black (0, 0, 0, 1)
    - No validation inside the replay; a malformed stream replays from a
      default state and is rejected beforehand by validate_stream(strict=True)
    - Zero-length segments never produce NaN
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

import numpy as np

from ..utils import color as color_utils
from ..utils import compute
from ..utils import geometry
from .commands import Command, CommandStream, Opcode

logger = logging.getLogger(__name__)

DISTANCE_SENTINEL = 1e30
INITIAL_FRAME = (0.0, 0.0, 0.0, 1.0)
BLEND_MODES = ("normalized", "over")


class Mode(Enum):
    FILL = "fill"
    STROKE = "stroke"


def check_blend_mode(blend_mode: str) -> str:
    if blend_mode not in BLEND_MODES:
        raise ValueError(f"blend_mode must be one of {BLEND_MODES}, got {blend_mode}")
    return blend_mode


# ============================================================================
# SCALAR REFERENCE
# ============================================================================

@dataclass
class PixelState:
    """Accumulator for one contour at one pixel.

    Attributes
    ----------
    cursor : tuple of float
        End of the previous segment (the Start point initially)
    color : tuple of float
        Contour RGBA, each 8-bit channel divided by 255
    mode : Mode
        FILL or STROKE
    winding : int
        Signed nonzero-winding count (fill only)
    width : float
        Stroke width (stroke only)
    min_distance : float
        Smallest distance to any segment so far; DISTANCE_SENTINEL when none
    """
    cursor: Tuple[float, float] = (0.0, 0.0)
    color: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    mode: Mode = Mode.FILL
    winding: int = 0
    width: float = 0.0
    min_distance: float = DISTANCE_SENTINEL

    @classmethod
    def begin(cls, cmd: Command) -> 'PixelState':
        """Fresh state for a StartFill or StartStroke command."""
        if cmd.opcode == Opcode.START_STROKE:
            mode, width = Mode.STROKE, float(cmd.width)
        else:
            mode, width = Mode.FILL, 0.0
        return cls(
            cursor=(float(cmd.point[0]), float(cmd.point[1])),
            color=color_utils.normalize_rgba8(cmd.color),
            mode=mode,
            width=width,
        )

    def line_to(self, px: float, py: float, end: Tuple[int, int]) -> None:
        ax, ay = self.cursor
        bx, by = float(end[0]), float(end[1])
        if self.mode == Mode.FILL and geometry.in_half_open_span(py, ay, by):
            self.winding += 1 if geometry.edge_side(px, py, ax, ay, bx, by) else -1
        d = float(geometry.segment_distance(px, py, ax, ay, bx, by))
        self.min_distance = min(self.min_distance, d)
        self.cursor = (bx, by)

    def coverage(self) -> float:
        if self.mode == Mode.FILL:
            if self.winding != 0:
                return 1.0
            return 1.0 - float(geometry.smoothstep(0.0, 1.0, self.min_distance))
        return 1.0 - float(geometry.smoothstep(self.width - 1.0, self.width, self.min_distance))


def composite_pixel(
    frame: Sequence[float],
    rgba: Sequence[float],
    coverage: float,
    blend_mode: str = "normalized"
) -> Tuple[float, float, float, float]:
    """Blend one contour color onto a frame color with alpha = rgba.a · coverage."""
    alpha = rgba[3] * coverage
    if blend_mode == "over":
        rgb = [c * alpha + f * (1.0 - alpha) for c, f in zip(rgba[:3], frame[:3])]
        return rgb[0], rgb[1], rgb[2], alpha + frame[3] * (1.0 - alpha)

    mixed = [c * alpha + f * (1.0 - alpha) for c, f in zip(rgba, frame)]
    norm = float(np.sqrt(sum(v * v for v in mixed)))
    if norm > 0.0:
        mixed = [v / norm for v in mixed]
    return tuple(mixed)


def replay_pixel(
    commands: Sequence[Command],
    x: int,
    y: int,
    blend_mode: str = "normalized"
) -> Tuple[float, float, float, float]:
    """Evaluate one pixel by replaying the stream from the first command.

    Parameters
    ----------
    commands : sequence of Command
        Terminated command stream (validated by the caller)
    x, y : int
        Pixel coordinate
    blend_mode : str
        "normalized" (default) or "over"

    Returns
    -------
    tuple of float
        RGBA frame color after the last EndContour before the Terminator
    """
    px, py = float(x), float(y)
    state = PixelState()
    frame = INITIAL_FRAME
    for cmd in commands:
        op = cmd.opcode
        if op == Opcode.TERMINATOR:
            break
        if op in (Opcode.START_FILL, Opcode.START_STROKE):
            state = PixelState.begin(cmd)
        elif op == Opcode.LINE_TO:
            state.line_to(px, py, cmd.point)
        elif op == Opcode.END_CONTOUR:
            frame = composite_pixel(frame, state.color, state.coverage(), blend_mode)
    return frame


# ============================================================================
# GRID KERNEL
# ============================================================================

@dataclass
class BlockState:
    """Accumulator for one contour over a tile of pixels.

    Per-pixel fields are (h, w) arrays; per-contour fields are scalars shared
    by every pixel of the tile.
    """
    winding: np.ndarray
    min_distance: np.ndarray
    cursor: Tuple[float, float] = (0.0, 0.0)
    color: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
    mode: Mode = Mode.FILL
    width: float = 0.0

    @classmethod
    def empty(cls, shape: Tuple[int, int]) -> 'BlockState':
        return cls(
            winding=np.zeros(shape, dtype=np.int32),
            min_distance=np.full(shape, DISTANCE_SENTINEL, dtype=np.float32),
        )

    @classmethod
    def begin(cls, cmd: Command, shape: Tuple[int, int]) -> 'BlockState':
        scalar = PixelState.begin(cmd)
        state = cls.empty(shape)
        state.cursor = scalar.cursor
        state.color = scalar.color
        state.mode = scalar.mode
        state.width = scalar.width
        return state

    def line_to(self, xs: np.ndarray, ys: np.ndarray, end: Tuple[int, int]) -> None:
        ax, ay = self.cursor
        bx, by = float(end[0]), float(end[1])
        if self.mode == Mode.FILL:
            span = geometry.in_half_open_span(ys, ay, by)
            side = geometry.edge_side(xs, ys, ax, ay, bx, by)
            self.winding += np.where(span, np.where(side, 1, -1), 0).astype(np.int32)
        d = geometry.segment_distance(xs, ys, ax, ay, bx, by).astype(np.float32)
        np.minimum(self.min_distance, d, out=self.min_distance)
        self.cursor = (bx, by)

    def coverage(self) -> np.ndarray:
        if self.mode == Mode.FILL:
            falloff = 1.0 - geometry.smoothstep(0.0, 1.0, self.min_distance)
            return np.where(self.winding != 0, 1.0, falloff).astype(np.float32)
        falloff = geometry.smoothstep(self.width - 1.0, self.width, self.min_distance)
        return (1.0 - falloff).astype(np.float32)


def composite(
    frame: np.ndarray,
    rgba: Sequence[float],
    coverage: np.ndarray,
    blend_mode: str = "normalized"
) -> np.ndarray:
    """Vectorized composite_pixel() over an (h, w, 4) frame."""
    color = np.asarray(rgba, dtype=np.float32)
    alpha = (color[3] * coverage)[..., np.newaxis]
    if blend_mode == "over":
        out = np.empty_like(frame)
        out[..., :3] = color[:3] * alpha + frame[..., :3] * (1.0 - alpha)
        out[..., 3:] = alpha + frame[..., 3:] * (1.0 - alpha)
        return out

    mixed = color * alpha + frame * (1.0 - alpha)
    norm = np.sqrt(np.sum(mixed * mixed, axis=-1, keepdims=True))
    safe = np.where(norm > 0.0, norm, 1.0)
    return (mixed / safe).astype(np.float32)


def rasterize_block(
    commands: Sequence[Command],
    ys: np.ndarray,
    xs: np.ndarray,
    blend_mode: str = "normalized"
) -> np.ndarray:
    """Replay the stream for a tile of pixels at once.

    Parameters
    ----------
    commands : sequence of Command
        Terminated command stream (validated by the caller)
    ys, xs : np.ndarray
        (h, w) pixel coordinates, as produced by compute.pixel_grid()
    blend_mode : str
        "normalized" (default) or "over"

    Returns
    -------
    np.ndarray
        (h, w, 4) float32 RGBA
    """
    shape = ys.shape
    frame = np.empty(shape + (4,), dtype=np.float32)
    frame[...] = INITIAL_FRAME
    state = BlockState.empty(shape)
    for cmd in commands:
        op = cmd.opcode
        if op == Opcode.TERMINATOR:
            break
        if op in (Opcode.START_FILL, Opcode.START_STROKE):
            state = BlockState.begin(cmd, shape)
        elif op == Opcode.LINE_TO:
            state.line_to(xs, ys, cmd.point)
        elif op == Opcode.END_CONTOUR:
            frame = composite(frame, state.color, state.coverage(), blend_mode)
    return frame


# ============================================================================
# BOUNDING-BOX CULLING
# ============================================================================

@dataclass(frozen=True)
class ContourSpan:
    """Index range [start, end] of one Start…EndContour group and its reach.

    `reach` is the contour's bounding box expanded by its influence radius
    (1 for fill, width for stroke). An unclosed fill can wind pixels outside
    its box, so its reach is unbounded and it is never culled.
    """
    start: int
    end: int
    reach: geometry.BBox


def split_contours(commands: Sequence[Command]) -> List[ContourSpan]:
    """Locate every complete Start…EndContour group before the Terminator."""
    spans = []
    open_cmd, open_idx, points = None, -1, []
    for i, cmd in enumerate(commands):
        op = cmd.opcode
        if op == Opcode.TERMINATOR:
            break
        if op in (Opcode.START_FILL, Opcode.START_STROKE):
            open_cmd, open_idx, points = cmd, i, [cmd.point]
        elif op == Opcode.LINE_TO and open_cmd is not None:
            points.append(cmd.point)
        elif op == Opcode.END_CONTOUR and open_cmd is not None:
            bbox = geometry.polyline_bbox(points)
            if open_cmd.opcode == Opcode.START_STROKE:
                reach = geometry.expand_bbox(bbox, float(open_cmd.width))
            elif points[-1] == points[0]:
                reach = geometry.expand_bbox(bbox, 1.0)
            else:
                reach = (-np.inf, -np.inf, np.inf, np.inf)
            spans.append(ContourSpan(open_idx, i, reach))
            open_cmd = None
    return spans


def cull_stream(
    commands: Sequence[Command],
    spans: Sequence[ContourSpan],
    tile_bbox: geometry.BBox
) -> CommandStream:
    """Drop contours whose reach does not touch `tile_bbox`.

    A dropped contour would have coverage 0 at every pixel of the tile, so
    the rendered tile is unchanged. Expects a stream that passed
    validate_stream(strict=True).
    """
    skip = set()
    for span in spans:
        if not geometry.boxes_overlap(span.reach, tile_bbox):
            skip.update(range(span.start, span.end + 1))
    if not skip:
        return list(commands)
    return [cmd for i, cmd in enumerate(commands) if i not in skip]


def render_contours(
    commands: Sequence[Command],
    height: int,
    width: int,
    blend_mode: str = "normalized"
) -> np.ndarray:
    """Render a whole grid with a single rasterize_block() call."""
    check_blend_mode(blend_mode)
    ys, xs = compute.pixel_grid(slice(0, height), slice(0, width))
    return rasterize_block(commands, ys, xs, blend_mode)

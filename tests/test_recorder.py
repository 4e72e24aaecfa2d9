"""Test the command recorders and the line canvas.

Tests for canvas2d.rasterizer.recorder:
    - Chained recording produces the expected command stream
    - Consumed recorders refuse further use (RecorderStateError)
    - Command capacity reserves one slot for the Terminator (CapacityError)
    - LineCanvas cursor semantics, segment layout and byte capacity
    - Scene / lines recording from validated YAML models

Run:
    pytest tests/test_recorder.py -v
"""

import numpy as np
import pytest

from canvas2d.rasterizer.commands import (
    EndContour,
    LineTo,
    StartFill,
    StartStroke,
    Terminator,
    validate_stream,
)
from canvas2d.rasterizer.recorder import (
    CanvasRecorder,
    CapacityError,
    ContourRecorder,
    LineCanvas,
    RecorderStateError,
    record_lines,
    record_scene,
)
from canvas2d.utils import validators

RED = (255, 0, 0, 255)


# ============================================================================
# COMMAND RECORDER
# ============================================================================

def test_chained_recording():
    stream = (CanvasRecorder()
              .start_fill((0, 0), RED)
              .line_to((4, 0)).line_to((4, 4)).line_to((0, 4))
              .end()
              .start_stroke((1, 1), (0, 255, 0, 128), 2)
              .line_to((3, 3))
              .end()
              .finish())

    assert stream == [
        StartFill((0, 0), RED),
        LineTo((4, 0)), LineTo((4, 4)), LineTo((0, 4)),
        EndContour(),
        StartStroke((1, 1), (0, 255, 0, 128), 2),
        LineTo((3, 3)),
        EndContour(),
        Terminator(),
    ]
    assert validate_stream(stream, strict=True) == len(stream) - 1


def test_empty_recording_is_just_terminator():
    assert CanvasRecorder().finish() == [Terminator()]


def test_transitions_return_state_types():
    canvas = CanvasRecorder()
    contour = canvas.start_fill((0, 0), RED)
    assert isinstance(contour, ContourRecorder)
    assert isinstance(contour.line_to((1, 1)), ContourRecorder)


def test_consumed_canvas_recorder_raises():
    canvas = CanvasRecorder()
    canvas.start_fill((0, 0), RED)
    with pytest.raises(RecorderStateError, match="already consumed"):
        canvas.start_stroke((0, 0), RED, 1)
    with pytest.raises(RecorderStateError):
        canvas.finish()


def test_consumed_contour_recorder_raises():
    first = CanvasRecorder().start_fill((0, 0), RED)
    second = first.line_to((2, 2))
    with pytest.raises(RecorderStateError):
        first.line_to((3, 3))
    with pytest.raises(RecorderStateError):
        first.end()
    second.end().finish()


def test_finished_recorder_cannot_continue():
    canvas = CanvasRecorder()
    canvas.finish()
    with pytest.raises(RecorderStateError):
        canvas.start_fill((0, 0), RED)


def test_invalid_fields_leave_recorder_usable():
    canvas = CanvasRecorder()
    with pytest.raises(ValueError):
        canvas.start_fill((70000, 0), RED)
    with pytest.raises(ValueError):
        canvas.start_stroke((0, 0), (0, 0, 0, 300), 1)
    contour = canvas.start_fill((0, 0), RED)
    assert len(contour) == 1


def test_capacity_reserves_terminator_slot():
    # capacity 3: StartFill, EndContour, Terminator
    assert len(CanvasRecorder(capacity=3).start_fill((0, 0), RED).end().finish()) == 3

    contour = CanvasRecorder(capacity=3).start_fill((0, 0), RED).line_to((1, 1))
    with pytest.raises(CapacityError, match="reserved for the Terminator"):
        contour.end()


def test_default_capacity_is_1000_commands():
    rec = CanvasRecorder().start_fill((0, 0), RED)
    for i in range(997):
        rec = rec.line_to((i % 100, i // 100))
    stream = rec.end().finish()
    assert len(stream) == 1000

    rec = CanvasRecorder().start_fill((0, 0), RED)
    for i in range(998):
        rec = rec.line_to((1, 1))
    with pytest.raises(CapacityError):
        rec.end()


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        CanvasRecorder(capacity=0)


def test_capacity_error_is_runtime_error():
    assert issubclass(CapacityError, RuntimeError)
    assert issubclass(RecorderStateError, RuntimeError)


# ============================================================================
# LINE CANVAS
# ============================================================================

def test_line_canvas_cursor_chain():
    canvas = LineCanvas()
    canvas.move_to((1.0, 1.0))
    canvas.line_to((4.0, 1.0))
    canvas.line_to((4.0, 4.0))
    canvas.move_to((10.0, 10.0))
    canvas.line_to((12.5, 10.0))

    assert canvas.num_lines == len(canvas) == 3
    np.testing.assert_array_equal(canvas.segments(), np.array([
        [1.0, 1.0], [4.0, 1.0],
        [4.0, 1.0], [4.0, 4.0],
        [10.0, 10.0], [12.5, 10.0],
    ], dtype=np.float32))
    assert canvas.cursor == (12.5, 10.0)


def test_line_canvas_starts_at_origin():
    canvas = LineCanvas()
    canvas.line_to((2.0, 3.0))
    np.testing.assert_array_equal(canvas.segments(), [[0.0, 0.0], [2.0, 3.0]])


def test_line_canvas_segments_is_float32_copy():
    canvas = LineCanvas()
    canvas.line_to((1.0, 1.0))
    segs = canvas.segments()
    assert segs.dtype == np.float32
    segs[:] = 99.0
    assert canvas.segments()[1, 0] == 1.0


def test_line_canvas_default_capacity_512_segments():
    canvas = LineCanvas()
    assert canvas.max_lines == 512
    for i in range(512):
        canvas.line_to((float(i), 0.0))
    with pytest.raises(CapacityError, match="512 segments"):
        canvas.line_to((0.0, 1.0))
    assert canvas.num_lines == 512


def test_line_canvas_custom_capacity():
    canvas = LineCanvas(capacity_bytes=40)
    assert canvas.max_lines == 2
    with pytest.raises(ValueError):
        LineCanvas(capacity_bytes=8)


# ============================================================================
# SCENE RECORDING
# ============================================================================

def test_record_scene_from_model():
    scene = validators.SceneV1(
        width=16, height=16,
        contours=[
            {'type': 'fill', 'start': [1, 1], 'color': [255, 0, 0, 255], 'points': [[5, 1], [5, 5], [1, 1]]},
            {'type': 'stroke', 'start': [0, 8], 'color': '#00ff00', 'width': 2, 'points': [[15, 8]]},
        ],
    )
    stream = record_scene(scene)
    assert len(stream) == scene.num_commands() == 9
    assert stream[0] == StartFill((1, 1), RED)
    assert stream[5] == StartStroke((0, 8), (0, 255, 0, 255), 2)
    assert stream[-1] == Terminator()


def test_record_scene_respects_capacity():
    scene = validators.SceneV1(
        width=8, height=8,
        contours=[{'type': 'fill', 'start': [0, 0], 'color': [1, 2, 3, 4], 'points': [[1, 1]] * 10}],
    )
    with pytest.raises(CapacityError):
        record_scene(scene, capacity=5)


def test_record_lines_from_model():
    lines = validators.LinesV1(
        width=8, height=8,
        paths=[{'start': [0, 0], 'points': [[4, 0], [4, 4]]}, {'start': [6, 6], 'points': [[7, 7]]}],
    )
    canvas = record_lines(lines)
    assert canvas.num_lines == lines.num_lines() == 3
    np.testing.assert_array_equal(canvas.segments()[4:], [[6.0, 6.0], [7.0, 7.0]])

"""Test workgroup dispatch and the Canvas2DRenderer facade.

Tests for canvas2d.rasterizer.dispatch:
    - Workgroups cover every pixel exactly once (edge tiles cropped)
    - Results do not depend on workgroup size or worker count
    - Bounding-box culling leaves the rendered grid unchanged
    - Renderer validates inputs at the boundary (stream, S, line capacity)
    - last_stats reports tiles and timings of the most recent render

Run:
    pytest tests/test_dispatch.py -v
"""

from pathlib import Path

import numpy as np
import pytest

from canvas2d.rasterizer import contour, coverage
from canvas2d.rasterizer.commands import StreamValidationError
from canvas2d.rasterizer.dispatch import Canvas2DRenderer, dispatch, workgroup_tiles
from canvas2d.rasterizer.recorder import CanvasRecorder, CapacityError, LineCanvas
from canvas2d.utils import profiler, validators

CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def scene_stream():
    """Three contours spread over a 40×40 grid (closed fills, open fill, stroke)."""
    return (CanvasRecorder()
            .start_fill((2, 2), (255, 0, 0, 255))
            .line_to((12, 2)).line_to((12, 12)).line_to((2, 12)).line_to((2, 2))
            .end()
            .start_stroke((25, 30), (0, 200, 255, 180), 3)
            .line_to((37, 36))
            .end()
            .start_fill((20, 5), (40, 220, 60, 200))
            .line_to((34, 5)).line_to((30, 18))
            .end()
            .finish())


@pytest.fixture
def ring_segments():
    canvas = LineCanvas()
    for x0, y0, x1, y1 in [(2.0, 2.0, 20.0, 20.0), (7.5, 7.5, 14.5, 14.5)]:
        canvas.move_to((x0, y0))
        for pt in [(x1, y0), (x1, y1), (x0, y1), (x0, y0)]:
            canvas.line_to(pt)
    return canvas


# ============================================================================
# TILING
# ============================================================================

@pytest.mark.parametrize("height, width, size, expected", [
    (16, 16, 8, 4),
    (10, 13, 4, 12),
    (1, 1, 8, 1),
    (8, 9, 8, 2),
])
def test_workgroup_count(height, width, size, expected):
    assert len(workgroup_tiles(height, width, size)) == expected


@pytest.mark.parametrize("height, width, size", [(10, 13, 4), (17, 5, 8), (3, 3, 64)])
def test_workgroups_cover_every_pixel_once(height, width, size):
    hits = np.zeros((height, width), dtype=np.int32)
    for sy, sx in workgroup_tiles(height, width, size):
        hits[sy, sx] += 1
    assert (hits == 1).all()


def test_dispatch_passes_tile_coordinates():
    def kernel(ys, xs):
        out = np.zeros(ys.shape + (4,), dtype=np.float32)
        out[..., 0] = xs
        out[..., 1] = ys
        return out

    grid = dispatch(kernel, 11, 7, workgroup_size=4)
    ys, xs = np.mgrid[0:11, 0:7]
    np.testing.assert_array_equal(grid[..., 0], xs)
    np.testing.assert_array_equal(grid[..., 1], ys)


def test_dispatch_replicates_2d_results():
    grid = dispatch(lambda ys, xs: xs * 0.5, 4, 4, workgroup_size=2)
    assert grid.shape == (4, 4, 4)
    np.testing.assert_array_equal(grid[..., 0], grid[..., 3])
    assert grid[0, 3, 2] == 1.5


def test_dispatch_records_tile_timings():
    timings = profiler.TimerAccumulator("tiles")
    dispatch(lambda ys, xs: ys, 20, 20, workgroup_size=8, workers=3, timings=timings)
    assert timings.count == 9
    assert timings.total_time >= 0.0


@pytest.mark.parametrize("height, width, workers", [(0, 4, 1), (4, -1, 1), (4, 4, 0)])
def test_dispatch_rejects_bad_arguments(height, width, workers):
    with pytest.raises(ValueError):
        dispatch(lambda ys, xs: ys, height, width, workers=workers)


def test_dispatch_propagates_kernel_errors():
    def kernel(ys, xs):
        raise ZeroDivisionError("boom")

    with pytest.raises(ZeroDivisionError):
        dispatch(kernel, 16, 16, workgroup_size=4, workers=2)


# ============================================================================
# INVARIANCE
# ============================================================================

@pytest.mark.parametrize("workgroup_size, workers", [
    pytest.param(1, 1, marks=pytest.mark.slow),
    (3, 1), (8, 4), (64, 2), (7, 8),
])
def test_contours_independent_of_tiling(scene_stream, workgroup_size, workers):
    reference = contour.render_contours(scene_stream, 40, 40)
    cfg = validators.RendererV1(workgroup_size=workgroup_size, workers=workers)
    grid = Canvas2DRenderer(cfg).render_commands(scene_stream, 40, 40)
    np.testing.assert_allclose(grid, reference, atol=1e-6)


@pytest.mark.parametrize("workgroup_size, workers", [(1, 1), (5, 3), (64, 1)])
def test_coverage_independent_of_tiling(ring_segments, workgroup_size, workers):
    pts = ring_segments.segments()
    reference = coverage.render_coverage(pts, ring_segments.num_lines, 3, 24, 24)
    cfg = validators.RendererV1(samples_per_axis=3, workgroup_size=workgroup_size, workers=workers)
    grid = Canvas2DRenderer(cfg).render_lines(pts, ring_segments.num_lines, 24, 24)
    np.testing.assert_array_equal(grid, reference)


@pytest.mark.parametrize("blend_mode", ["normalized", "over"])
def test_culling_does_not_change_output(scene_stream, blend_mode):
    base = validators.RendererV1(workgroup_size=4, blend_mode=blend_mode)
    culled = validators.RendererV1(workgroup_size=4, blend_mode=blend_mode, cull_contours=True)
    expected = Canvas2DRenderer(base).render_commands(scene_stream, 40, 40)
    grid = Canvas2DRenderer(culled).render_commands(scene_stream, 40, 40)
    np.testing.assert_allclose(grid, expected, atol=1e-6)


# ============================================================================
# RENDERER
# ============================================================================

def test_renderer_defaults():
    renderer = Canvas2DRenderer()
    assert renderer.config.samples_per_axis == 5
    assert renderer.config.workgroup_size == 8
    assert renderer.last_stats == {}


def test_render_commands_red_square():
    stream = (CanvasRecorder()
              .start_fill((0, 0), (255, 0, 0, 255))
              .line_to((4, 0)).line_to((4, 4)).line_to((0, 4))
              .end()
              .finish())
    grid = Canvas2DRenderer().render_commands(stream, 8, 8)
    assert grid.shape == (8, 8, 4)
    assert grid.dtype == np.float32
    s = 1.0 / np.sqrt(2.0)
    np.testing.assert_allclose(grid[2, 2], [s, 0.0, 0.0, s], atol=1e-6)
    np.testing.assert_allclose(grid[7, 7], [0.0, 0.0, 0.0, 1.0], atol=1e-6)


def test_render_commands_ignores_commands_after_terminator(scene_stream):
    renderer = Canvas2DRenderer()
    trailing = scene_stream + list(scene_stream)
    np.testing.assert_array_equal(
        renderer.render_commands(trailing, 16, 16),
        renderer.render_commands(scene_stream, 16, 16),
    )


def test_render_commands_rejects_malformed_stream(scene_stream):
    with pytest.raises(StreamValidationError, match="no Terminator"):
        Canvas2DRenderer().render_commands(scene_stream[:-1], 8, 8)
    with pytest.raises(StreamValidationError, match="LineTo outside a contour"):
        Canvas2DRenderer().render_commands(scene_stream[7:], 8, 8)


def test_render_commands_respects_capacity(scene_stream):
    cfg = validators.RendererV1(command_capacity=len(scene_stream) - 1)
    with pytest.raises(StreamValidationError, match="capacity"):
        Canvas2DRenderer(cfg).render_commands(scene_stream, 8, 8)


def test_last_stats(scene_stream):
    renderer = Canvas2DRenderer(validators.RendererV1(workgroup_size=16))
    renderer.render_commands(scene_stream, 40, 20)
    assert renderer.last_stats['tiles'] == 6
    assert renderer.last_stats['elapsed_s'] >= renderer.last_stats['mean_tile_s'] >= 0.0


def test_render_lines_luma(ring_segments):
    cfg = validators.RendererV1(samples_per_axis=5)
    grid = Canvas2DRenderer(cfg).render_lines(ring_segments.segments(), ring_segments.num_lines, 24, 24)
    assert grid[4, 4, 0] == 1.0     # ring
    assert grid[10, 10, 0] == 0.0   # hole
    assert grid[22, 22, 0] == 0.0   # outside
    np.testing.assert_array_equal(grid[..., 1], grid[..., 2])


def test_render_lines_uses_num_lines_prefix(ring_segments):
    renderer = Canvas2DRenderer(validators.RendererV1(samples_per_axis=1))
    outer_only = renderer.render_lines(ring_segments.segments(), 4, 24, 24)
    assert outer_only[10, 10, 0] == 1.0


def test_render_lines_respects_line_buffer(ring_segments):
    cfg = validators.RendererV1(line_buffer_bytes=64)
    with pytest.raises(ValueError, match="line buffer capacity of 4"):
        Canvas2DRenderer(cfg).render_lines(ring_segments.segments(), 8, 24, 24)


def test_render_lines_rejects_bad_point_list():
    with pytest.raises(ValueError, match="pair up"):
        Canvas2DRenderer().render_lines([[0, 0], [1, 1], [2, 2]], 1, 4, 4)


def test_render_scene_demo():
    scene = validators.load_scene(CONFIG_DIR / "scenes" / "demo_scene.yaml")
    grid = Canvas2DRenderer().render_scene(scene)
    assert grid.shape == (scene.height, scene.width, 4)
    assert np.isfinite(grid).all()
    # inside the first (red) fill only
    assert grid[12, 12, 0] > grid[12, 12, 1]


def test_render_scene_over_capacity():
    scene = validators.load_scene(CONFIG_DIR / "scenes" / "demo_scene.yaml")
    cfg = validators.RendererV1(command_capacity=scene.num_commands() - 1)
    with pytest.raises(CapacityError):
        Canvas2DRenderer(cfg).render_scene(scene)


def test_render_lines_file_demo():
    lines = validators.load_lines(CONFIG_DIR / "scenes" / "demo_lines.yaml")
    grid = Canvas2DRenderer(validators.RendererV1(samples_per_axis=2)).render_lines_file(lines)
    assert grid.shape == (48, 48, 4)
    assert grid[6, 6, 0] == 1.0
    assert grid[15, 15, 0] == 0.0

"""Workgroup tiling, thread-pool dispatch and the renderer facade.

The output grid is split into square workgroups (default 8×8, cropped at the
edges) and a kernel runs once per workgroup on that tile's pixel coordinates.
Tiles are disjoint, so every output cell is written by exactly one task and
no locking is needed; numpy releases the GIL inside its elementwise loops,
which lets a ThreadPoolExecutor overlap tiles.

Canvas2DRenderer ties it together: validate inputs once at the boundary,
then render a command stream (contour kernel) or a segment list (coverage
kernel) with the configured backend.

Usage:
    from canvas2d.rasterizer.dispatch import Canvas2DRenderer
    from canvas2d.utils import validators

    cfg = validators.load_renderer_config("configs/renderer.v1.yaml")
    renderer = Canvas2DRenderer(cfg)
    grid = renderer.render_commands(stream, height=64, width=64)   # (64, 64, 4) float32
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from ..utils import compute, profiler
from ..utils.validators import LinesV1, RendererV1, SceneV1
from . import contour, coverage, torch_backend
from .commands import Command, validate_stream
from .recorder import record_lines, record_scene

logger = logging.getLogger(__name__)

TileKernel = Callable[[np.ndarray, np.ndarray], np.ndarray]


def workgroup_tiles(height: int, width: int, size: int = 8) -> List[compute.Tile]:
    """Row-major (slice_y, slice_x) workgroups covering every pixel once.

    The grid has ceil(width / size) × ceil(height / size) workgroups.
    """
    return compute.tile_slices(height, width, size)


def dispatch(
    kernel: TileKernel,
    height: int,
    width: int,
    workgroup_size: int = 8,
    workers: int = 1,
    timings: Optional[profiler.TimerAccumulator] = None
) -> np.ndarray:
    """Run `kernel(ys, xs)` on every workgroup and assemble the output grid.

    Parameters
    ----------
    kernel : callable
        Maps (h, w) pixel coordinate arrays to an (h, w, 4) or (h, w) result
    height, width : int
        Output size in pixels
    workgroup_size : int
        Tile edge length, default 8
    workers : int
        1 runs tiles serially; more uses a thread pool of that size
    timings : TimerAccumulator, optional
        Receives one measurement per tile

    Returns
    -------
    np.ndarray
        (H, W, 4) float32; (h, w) kernel results are replicated to 4 channels
    """
    if height <= 0 or width <= 0:
        raise ValueError(f"Output size must be positive, got {height}×{width}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    out = np.zeros((height, width, 4), dtype=np.float32)
    tiles = workgroup_tiles(height, width, workgroup_size)

    def run_tile(tile: compute.Tile) -> float:
        start = time.perf_counter()
        ys, xs = compute.pixel_grid(*tile)
        result = kernel(ys, xs)
        if result.ndim == 2:
            result = result[..., np.newaxis]
        out[tile] = result
        return time.perf_counter() - start

    if workers == 1 or len(tiles) == 1:
        elapsed = [run_tile(tile) for tile in tiles]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(tiles))) as pool:
            futures: List[Future] = [pool.submit(run_tile, tile) for tile in tiles]
            elapsed = [fut.result() for fut in futures]

    if timings is not None:
        for t in elapsed:
            timings.add(t)
    return out


class Canvas2DRenderer:
    """Renders command streams and segment lists per the renderer config.

    Parameters
    ----------
    config : RendererV1, optional
        Validated renderer config; defaults to RendererV1()

    Attributes
    ----------
    last_stats : dict
        Timing summary of the most recent render (elapsed_s, tiles, mean_tile_s)

    Notes
    -----
    Inputs are validated once per call, before any pixel is evaluated:
    command streams with validate_stream(strict=True), segment lists with
    validate_segments(), and S with validate_samples().
    """

    def __init__(self, config: Optional[RendererV1] = None):
        self.config = config if config is not None else RendererV1()
        self.last_stats: Dict[str, float] = {}
        logger.info(
            f"Canvas2DRenderer initialized: backend={self.config.backend}, "
            f"device={self.config.device}, S={self.config.samples_per_axis}, "
            f"workgroup={self.config.workgroup_size}, workers={self.config.workers}, "
            f"blend={self.config.blend_mode}, cull={self.config.cull_contours}"
        )

    # ------------------------------------------------------------------
    # Contours
    # ------------------------------------------------------------------

    def render_commands(self, commands: Sequence[Command], height: int, width: int) -> np.ndarray:
        """Render a command stream to an (H, W, 4) float32 grid.

        Raises
        ------
        StreamValidationError
            If the stream is malformed or has no Terminator within capacity
        ValueError
            If the output size is not positive
        """
        cfg = self.config
        end = validate_stream(commands, cfg.command_capacity, strict=True)
        commands = list(commands[:end + 1])
        blend_mode = contour.check_blend_mode(cfg.blend_mode)

        if cfg.backend == "torch":
            return self._timed(
                "contours", 1,
                lambda: torch_backend.render_contours_torch(
                    commands, height, width, device=cfg.device, blend_mode=blend_mode
                ).cpu().numpy()
            )

        spans = contour.split_contours(commands) if cfg.cull_contours else []

        def kernel(ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
            stream = commands
            if spans:
                tile_bbox = (float(xs.min()), float(ys.min()), float(xs.max()), float(ys.max()))
                stream = contour.cull_stream(commands, spans, tile_bbox)
            return contour.rasterize_block(stream, ys, xs, blend_mode)

        return self._dispatch("contours", kernel, height, width)

    def render_scene(self, scene: SceneV1) -> np.ndarray:
        stream = record_scene(scene, self.config.command_capacity)
        return self.render_commands(stream, scene.height, scene.width)

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    def render_lines(self, points, num_lines: int, height: int, width: int) -> np.ndarray:
        """Render a coverage mask; luma is replicated to all four channels.

        Raises
        ------
        ValueError
            If S is outside [1, 5], the point list is malformed, or num_lines
            exceeds the available points or the line buffer capacity
        """
        cfg = self.config
        samples = coverage.validate_samples(cfg.samples_per_axis)
        pts = coverage.validate_segments(points, num_lines, max_lines=cfg.max_lines)

        if cfg.backend == "torch":
            return self._timed(
                "coverage", 1,
                lambda: torch_backend.render_coverage_torch(
                    pts, num_lines, samples, height, width, device=cfg.device
                ).cpu().numpy()
            )

        def kernel(ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
            return coverage.coverage_block(pts, samples, ys, xs)

        return self._dispatch("coverage", kernel, height, width)

    def render_lines_file(self, lines: LinesV1) -> np.ndarray:
        canvas = record_lines(lines, self.config.line_buffer_bytes)
        return self.render_lines(canvas.segments(), canvas.num_lines, lines.height, lines.width)

    # ------------------------------------------------------------------

    def _dispatch(self, name: str, kernel: TileKernel, height: int, width: int) -> np.ndarray:
        cfg = self.config
        tile_times = profiler.TimerAccumulator(name)
        start = time.perf_counter()
        grid = dispatch(kernel, height, width, cfg.workgroup_size, cfg.workers, timings=tile_times)
        elapsed = time.perf_counter() - start
        self.last_stats = {
            'elapsed_s': elapsed,
            'tiles': tile_times.count,
            'mean_tile_s': tile_times.mean(),
        }
        logger.debug(f"{name}: {height}×{width} in {elapsed:.3f} s, {tile_times}")
        return grid

    def _timed(self, name: str, tiles: int, fn: Callable[[], np.ndarray]) -> np.ndarray:
        start = time.perf_counter()
        grid = fn()
        elapsed = time.perf_counter() - start
        self.last_stats = {'elapsed_s': elapsed, 'tiles': tiles, 'mean_tile_s': elapsed}
        logger.debug(f"{name} (torch, {self.config.device}): {elapsed:.3f} s")
        return grid

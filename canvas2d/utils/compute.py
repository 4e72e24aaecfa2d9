"""Pixel grids, workgroup tiling and numeric guards.

Core utilities:
    - num_workgroups(): ceil-divided dispatch extent
    - tile_slices(): non-overlapping (slice_y, slice_x) tiles covering an image
    - pixel_grid(): integer pixel coordinates of a tile as float arrays
    - assert_finite(): fail fast on NaN/Inf in kernel outputs

Invariants:
    - Pixel (x, y) is evaluated at its integer coordinate (no half-pixel offset)
    - Tiles never overlap; every pixel belongs to exactly one tile
    - Grids are row-major: arrays are indexed [y, x]
"""

from typing import List, Tuple

import numpy as np

Tile = Tuple[slice, slice]


def num_workgroups(extent: int, size: int) -> int:
    """Number of workgroups of `size` needed to cover `extent` pixels."""
    if size <= 0:
        raise ValueError(f"Workgroup size must be positive, got {size}")
    return (extent + size - 1) // size


def tile_slices(H: int, W: int, tile: int) -> List[Tile]:
    """Generate non-overlapping tile slices covering an H×W image.

    Parameters
    ----------
    H : int
        Image height
    W : int
        Image width
    tile : int
        Tile edge length (square); edge tiles are cropped to the image

    Returns
    -------
    list[tuple[slice, slice]]
        Row-major list of (slice_y, slice_x)
    """
    if H < 0 or W < 0:
        raise ValueError(f"Image size must be non-negative, got {H}×{W}")
    n_y = num_workgroups(H, tile)
    n_x = num_workgroups(W, tile)

    slices = []
    for gy in range(n_y):
        for gx in range(n_x):
            y0, x0 = gy * tile, gx * tile
            slices.append((slice(y0, min(y0 + tile, H)), slice(x0, min(x0 + tile, W))))
    return slices


def pixel_grid(slice_y: slice, slice_x: slice, dtype=np.float32) -> Tuple[np.ndarray, np.ndarray]:
    """Pixel coordinates of a tile.

    Returns
    -------
    ys, xs : np.ndarray
        Arrays of shape (h, w) holding each pixel's y and x coordinate
    """
    ys, xs = np.meshgrid(
        np.arange(slice_y.start, slice_y.stop, dtype=dtype),
        np.arange(slice_x.start, slice_x.stop, dtype=dtype),
        indexing='ij'
    )
    return ys, xs


def assert_finite(x: np.ndarray, name: str = "array") -> None:
    """Raise if an array contains NaN or Inf.

    Raises
    ------
    ValueError
        If any element is non-finite
    """
    finite = np.isfinite(x)
    if not finite.all():
        nan_count = int(np.isnan(x).sum())
        inf_count = int(np.isinf(x).sum())
        raise ValueError(
            f"{name} contains non-finite values: {nan_count} NaNs, {inf_count} Infs. "
            f"Shape: {x.shape}, dtype: {x.dtype}"
        )

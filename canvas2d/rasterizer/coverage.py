"""Multisample coverage: supersampled even-odd coverage of a segment list.

Each pixel (x, y) is sampled on a regular S×S grid at (x + i/S, y + j/S) for
i, j in [0, S). Subsample (i, j) owns bit i·S + j of a uint32 mask. Every
segment whose endpoints straddle the sample's horizontal line, with at least
one endpoint strictly to its right, toggles the bit:

    sign(a.y − s.y) != sign(b.y − s.y)  and  (a.x − s.x > 0  or  b.x − s.x > 0)

Luma = popcount(mask) / S².

Invariants:
    - 1 ≤ S ≤ 5, so S² ≤ 25 bits fit in a uint32 mask
    - XOR parity is order-independent: segments may be processed in any order,
      or in partitions whose masks are combined with merge_masks()
    - Ties follow sign(0) == 0 and the strict x > 0 comparison exactly
    - Sample positions are computed in float32 in every implementation so
      scalar, grid and torch results agree bit-for-bit on ties
"""

import logging

import numpy as np

from ..utils import color as color_utils
from ..utils import compute
from ..utils import geometry

logger = logging.getLogger(__name__)

MIN_SAMPLES_PER_AXIS = 1
MAX_SAMPLES_PER_AXIS = 5


def validate_samples(samples: int) -> int:
    """Check the subsample grid size S.

    Raises
    ------
    ValueError
        If S is not an integer in [1, 5]
    """
    if isinstance(samples, bool) or int(samples) != samples:
        raise ValueError(f"samples_per_axis must be an integer, got {samples!r}")
    samples = int(samples)
    if not MIN_SAMPLES_PER_AXIS <= samples <= MAX_SAMPLES_PER_AXIS:
        raise ValueError(
            f"samples_per_axis must be in [{MIN_SAMPLES_PER_AXIS}, {MAX_SAMPLES_PER_AXIS}], "
            f"got {samples}"
        )
    return samples


def validate_segments(points, num_lines: int, max_lines: int = None) -> np.ndarray:
    """Check a flat point list and return the first `num_lines` segments.

    Parameters
    ----------
    points : array-like
        (2N, 2) points, or a flat sequence of 4N coordinates; line i uses
        points 2i and 2i+1
    num_lines : int
        Number of segments to use; must not exceed N
    max_lines : int, optional
        Upper bound on num_lines (line buffer capacity)

    Returns
    -------
    np.ndarray
        (2 · num_lines, 2) float32 points

    Raises
    ------
    ValueError
        Odd number of points, malformed shape, non-finite coordinates, or
        num_lines out of range
    """
    pts = np.asarray(points, dtype=np.float32)
    if pts.ndim == 1:
        if pts.size % 2 != 0:
            raise ValueError(f"Flat coordinate list must have even length, got {pts.size}")
        pts = pts.reshape(-1, 2)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"Expected (2N, 2) points, got shape {pts.shape}")
    if len(pts) % 2 != 0:
        raise ValueError(f"Point list must pair up into segments, got {len(pts)} points")

    available = len(pts) // 2
    if not 0 <= num_lines <= available:
        raise ValueError(f"num_lines={num_lines} out of range [0, {available}]")
    if max_lines is not None and num_lines > max_lines:
        raise ValueError(f"num_lines={num_lines} exceeds line buffer capacity of {max_lines}")

    pts = pts[:2 * num_lines]
    compute.assert_finite(pts, "segment points")
    return pts


def subsample_offsets(samples: int) -> np.ndarray:
    """(S², 2) float32 offsets (i/S, j/S), row k = bit k = i·S + j."""
    idx = np.arange(samples, dtype=np.float32)
    i, j = np.meshgrid(idx, idx, indexing='ij')
    offsets = np.stack([i.ravel(), j.ravel()], axis=-1) / np.float32(samples)
    return offsets.astype(np.float32)


def popcount(masks: np.ndarray) -> np.ndarray:
    """Number of set bits in each uint32 mask."""
    masks = np.ascontiguousarray(masks, dtype=np.uint32)
    bits = np.unpackbits(masks.view(np.uint8).reshape(masks.shape + (4,)), axis=-1)
    return bits.sum(axis=-1, dtype=np.uint32)


def merge_masks(*masks: np.ndarray) -> np.ndarray:
    """Combine masks computed over disjoint partitions of the segment list."""
    if not masks:
        raise ValueError("merge_masks() needs at least one mask")
    out = np.array(masks[0], dtype=np.uint32, copy=True)
    for m in masks[1:]:
        np.bitwise_xor(out, np.asarray(m, dtype=np.uint32), out=out)
    return out


# ============================================================================
# SCALAR REFERENCE
# ============================================================================

def sample_mask(points: np.ndarray, samples: int, x: int, y: int) -> int:
    """Parity mask of one pixel over all segments in `points` ((2N, 2) float32)."""
    mask = 0
    offsets = subsample_offsets(samples)
    px, py = np.float32(x), np.float32(y)
    for bit, (ox, oy) in enumerate(offsets):
        sx, sy = px + ox, py + oy
        for k in range(0, len(points), 2):
            (ax, ay), (bx, by) = points[k], points[k + 1]
            if geometry.crosses_ray(sx, sy, ax, ay, bx, by):
                mask ^= 1 << bit
    return mask


def pixel_luma(points: np.ndarray, samples: int, x: int, y: int) -> float:
    """Coverage luma of one pixel: popcount(mask) / S²."""
    mask = sample_mask(points, samples, x, y)
    return bin(mask).count("1") / float(samples * samples)


# ============================================================================
# GRID KERNEL
# ============================================================================

def mask_block(points: np.ndarray, samples: int, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    """Parity masks of a tile of pixels.

    Parameters
    ----------
    points : np.ndarray
        (2N, 2) float32 segment points
    samples : int
        Subsample grid size S
    ys, xs : np.ndarray
        (h, w) pixel coordinates

    Returns
    -------
    np.ndarray
        (h, w) uint32 masks
    """
    mask = np.zeros(ys.shape, dtype=np.uint32)
    if len(points) == 0:
        return mask

    a, b = points[0::2], points[1::2]
    ax, ay, bx, by = a[:, 0], a[:, 1], b[:, 0], b[:, 1]
    for bit, (ox, oy) in enumerate(subsample_offsets(samples)):
        sx = (xs + ox)[..., np.newaxis]
        sy = (ys + oy)[..., np.newaxis]
        crossings = geometry.crosses_ray(sx, sy, ax, ay, bx, by)
        odd = (np.count_nonzero(crossings, axis=-1) & 1).astype(np.uint32)
        mask |= odd << np.uint32(bit)
    return mask


def coverage_block(points: np.ndarray, samples: int, ys: np.ndarray, xs: np.ndarray) -> np.ndarray:
    """(h, w) float32 luma of a tile of pixels."""
    counts = popcount(mask_block(points, samples, ys, xs))
    return (counts.astype(np.float32) / np.float32(samples * samples))


def render_coverage(points, num_lines: int, samples: int, height: int, width: int) -> np.ndarray:
    """Validate inputs and render a whole (H, W, 4) grid with luma in every channel."""
    samples = validate_samples(samples)
    pts = validate_segments(points, num_lines)
    ys, xs = compute.pixel_grid(slice(0, height), slice(0, width))
    luma = coverage_block(pts, samples, ys, xs)
    return color_utils.luma_to_rgba(luma)


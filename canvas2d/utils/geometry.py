"""Geometric primitives shared by both rasterizer kernels.

Provides:
    - smoothstep(): Hermite falloff used for antialiased edges
    - segment_distance(): distance from points to a clamped line segment
    - edge_side(): "left of edge" cross-product test for winding
    - in_half_open_span(): vertical [lo, hi) range test for winding
    - crosses_ray(): horizontal ray crossing test for even-odd coverage
    - polyline_bbox(), boxes_overlap(): bounding boxes for contour culling

All functions broadcast: points may be Python floats or numpy arrays of any
shape; segment endpoints are scalars. Coordinates are in pixels, +Y down.
"""

from typing import Sequence, Tuple

import numpy as np

BBox = Tuple[float, float, float, float]


def smoothstep(edge0: float, edge1: float, x):
    """Hermite interpolation between 0 and 1 (GLSL semantics).

    Parameters
    ----------
    edge0, edge1 : float
        Lower and upper edges; must differ
    x : float or np.ndarray
        Input value(s)

    Returns
    -------
    float or np.ndarray
        t² (3 − 2t) with t = clamp((x − edge0) / (edge1 − edge0), 0, 1)
    """
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def segment_distance(px, py, ax: float, ay: float, bx: float, by: float):
    """Euclidean distance from point(s) p to the segment a→b.

    The projection parameter h = dot(p − a, b − a) / |b − a|² is clamped to
    [0, 1]. A zero-length segment uses h = 0, so the result is |p − a| and
    never NaN.
    """
    ex = bx - ax
    ey = by - ay
    vx = px - ax
    vy = py - ay
    denom = ex * ex + ey * ey
    if denom > 0.0:
        h = np.clip((vx * ex + vy * ey) / denom, 0.0, 1.0)
    else:
        h = 0.0
    dx = vx - h * ex
    dy = vy - h * ey
    return np.sqrt(dx * dx + dy * dy)


def edge_side(px, py, ax: float, ay: float, bx: float, by: float):
    """True where (b − a).x · (p − a).y > (b − a).y · (p − a).x."""
    return (bx - ax) * (py - ay) > (by - ay) * (px - ax)


def in_half_open_span(py, y0: float, y1: float):
    """True where min(y0, y1) <= py < max(y0, y1).

    The half-open range keeps a vertex shared by two edges from being counted
    twice.
    """
    lo, hi = (y0, y1) if y0 <= y1 else (y1, y0)
    return (py >= lo) & (py < hi)


def crosses_ray(sx, sy, ax: float, ay: float, bx: float, by: float):
    """Horizontal ray test from sample point(s) s toward +x.

    After translating the endpoints relative to s, the segment toggles parity
    when sign(a.y) != sign(b.y) and at least one endpoint has x > 0.
    sign(0) is 0 and the x comparison is strict.
    """
    ty0 = ay - sy
    ty1 = by - sy
    tx0 = ax - sx
    tx1 = bx - sx
    return (np.sign(ty0) != np.sign(ty1)) & ((tx0 > 0) | (tx1 > 0))


def polyline_bbox(points: Sequence[Sequence[float]]) -> BBox:
    """Axis-aligned bounding box (x_min, y_min, x_max, y_max) of a point list.

    Raises
    ------
    ValueError
        If the point list is empty
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) == 0:
        raise ValueError("Cannot compute bounding box of an empty point list")
    x_min, y_min = pts.min(axis=0)
    x_max, y_max = pts.max(axis=0)
    return float(x_min), float(y_min), float(x_max), float(y_max)


def expand_bbox(bbox: BBox, margin: float) -> BBox:
    x_min, y_min, x_max, y_max = bbox
    return x_min - margin, y_min - margin, x_max + margin, y_max + margin


def boxes_overlap(a: BBox, b: BBox) -> bool:
    """Closed-interval overlap test between two boxes."""
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]

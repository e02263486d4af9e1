from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import NamedTuple, Sequence

import numpy as np

SENSOR_RANGE = 500.0

# Left, right, front, back, then the two diagonal pairs either side of front.
SENSOR_OFFSETS: tuple[float, ...] = (
    math.pi / 2,
    -math.pi / 2,
    0.0,
    math.pi,
    math.pi / 6,
    -math.pi / 6,
    math.pi / 3,
    -math.pi / 3,
)

_EPS = 1e-9


class Segment(NamedTuple):
    x1: float
    y1: float
    x2: float
    y2: float


def _as_segments(segments) -> np.ndarray:
    return np.asarray(segments, dtype=np.float64).reshape(-1, 4)


def _within(v: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return (v >= np.minimum(a, b) - _EPS) & (v <= np.maximum(a, b) + _EPS)


def segment_intersections(a, b) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Pairwise intersection points of two batches of segments.

    Each segment's line is written as ``p*x + q*y = r`` and the two lines are
    solved directly; the point only counts when it lies inside both segments'
    coordinate ranges on both axes. Lines with equal slope never intersect.
    Returns ``(x, y, hit)`` arrays shaped ``(len(a), len(b))``.
    """
    sa = _as_segments(a)[:, None, :]
    sb = _as_segments(b)[None, :, :]
    ax1, ay1, ax2, ay2 = sa[..., 0], sa[..., 1], sa[..., 2], sa[..., 3]
    bx1, by1, bx2, by2 = sb[..., 0], sb[..., 1], sb[..., 2], sb[..., 3]

    p1 = ay2 - ay1
    q1 = ax1 - ax2
    r1 = p1 * ax1 + q1 * ay1
    p2 = by2 - by1
    q2 = bx1 - bx2
    r2 = p2 * bx1 + q2 * by1

    det = p1 * q2 - p2 * q1
    parallel = np.abs(det) < 1e-12
    safe_det = np.where(parallel, 1.0, det)
    x = (q2 * r1 - q1 * r2) / safe_det
    y = (p1 * r2 - p2 * r1) / safe_det

    hit = (
        ~parallel
        & _within(x, ax1, ax2)
        & _within(y, ay1, ay2)
        & _within(x, bx1, bx2)
        & _within(y, by1, by2)
    )
    return x, y, hit


def intersect(a: Sequence[float], b: Sequence[float]) -> tuple[float, float] | None:
    x, y, hit = segment_intersections(a, b)
    if not hit[0, 0]:
        return None
    return float(x[0, 0]), float(y[0, 0])


def sensor_rays(
    x: float,
    y: float,
    heading: float,
    offsets: Sequence[float] = SENSOR_OFFSETS,
    sensor_range: float = SENSOR_RANGE,
) -> np.ndarray:
    angles = heading + np.asarray(offsets, dtype=np.float64)
    rays = np.empty((len(angles), 4), dtype=np.float64)
    rays[:, 0] = x
    rays[:, 1] = y
    rays[:, 2] = x + sensor_range * np.cos(angles)
    rays[:, 3] = y + sensor_range * np.sin(angles)
    return rays


@dataclass
class Track:
    """Boundary segments the car must not touch, plus optional ordered checkpoint gates."""

    edges: Sequence[Segment]
    checkpoints: Sequence[Segment] = ()
    _edge_array: np.ndarray = field(init=False, repr=False)
    _checkpoint_array: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.edges = tuple(Segment(*map(float, e)) for e in self.edges)
        self.checkpoints = tuple(Segment(*map(float, c)) for c in self.checkpoints)
        self._edge_array = _as_segments(self.edges)
        self._checkpoint_array = _as_segments(self.checkpoints)

    def sense(
        self,
        x: float,
        y: float,
        heading: float,
        offsets: Sequence[float] = SENSOR_OFFSETS,
        sensor_range: float = SENSOR_RANGE,
    ) -> np.ndarray:
        """Distance along each sensor ray to the nearest edge, or ``sensor_range``."""
        rays = sensor_rays(x, y, heading, offsets, sensor_range)
        if not len(self._edge_array):
            return np.full(len(rays), sensor_range, dtype=np.float64)

        hx, hy, hit = segment_intersections(rays, self._edge_array)
        dist = np.hypot(hx - rays[:, 0:1], hy - rays[:, 1:2])
        dist = np.where(hit, dist, np.inf).min(axis=1)
        return np.minimum(dist, sensor_range)

    def collides(self, outline) -> bool:
        """Whether any side of ``outline`` touches an edge, or an edge lies inside it."""
        if not len(self._edge_array):
            return False
        sides = _as_segments(outline)
        _, _, hit = segment_intersections(sides, self._edge_array)
        if hit.any():
            return True
        return bool(_inside_polygon(self._edge_array[:, 0:2], sides).any())

    def crosses_checkpoint(self, index: int, x0: float, y0: float, x1: float, y1: float) -> bool:
        _, _, hit = segment_intersections((x0, y0, x1, y1), self._checkpoint_array[index])
        return bool(hit[0, 0])


def _box(x0: float, y0: float, x1: float, y1: float) -> list[Segment]:
    return [
        Segment(x0, y0, x1, y0),
        Segment(x1, y0, x1, y1),
        Segment(x1, y1, x0, y1),
        Segment(x0, y1, x0, y0),
    ]


def default_track() -> Track:
    """A rectangular ring, 200 wide, driven counter-clockwise from the default start.

    Four gates cut across the lanes: bottom, right, top, then left.
    """
    edges = _box(0.0, -400.0, 1800.0, 400.0) + _box(200.0, -200.0, 1600.0, 200.0)
    checkpoints = [
        Segment(1000.0, -400.0, 1000.0, -200.0),
        Segment(1600.0, 0.0, 1800.0, 0.0),
        Segment(1000.0, 200.0, 1000.0, 400.0),
        Segment(0.0, 0.0, 200.0, 0.0),
    ]
    return Track(edges, checkpoints)


def _inside_polygon(points: np.ndarray, sides: np.ndarray) -> np.ndarray:
    # Convex outline given as consecutive sides: inside means the same turn sign for every side.
    ex = sides[:, 2] - sides[:, 0]
    ey = sides[:, 3] - sides[:, 1]
    px = points[:, 0:1] - sides[None, :, 0]
    py = points[:, 1:2] - sides[None, :, 1]
    cross = ex[None, :] * py - ey[None, :] * px
    return np.all(cross > 0, axis=1) | np.all(cross < 0, axis=1)

"""Contour tracing over edge maps and Douglas-Peucker simplification."""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .models import BoundingBox, Point
from .raster import RasterBuffer
from .traversal import RegionGrower

logger = logging.getLogger(__name__)

# Slack for floating point noise on exactly collinear input
_DISTANCE_EPSILON = 1e-9


@dataclass(frozen=True)
class Contour:
    """Ordered outer boundary of a connected bright region."""

    points: Tuple[Tuple[int, int], ...]
    pixel_count: int
    bbox: BoundingBox

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class ContourTraceResult:
    contours: List[Contour] = field(default_factory=list)
    truncated_count: int = 0
    suppressed_count: int = 0
    rejected_count: int = 0


def _ordered_boundary(
    region: List[Tuple[int, int]],
    min_x: int,
    min_y: int,
    max_x: int,
    max_y: int,
) -> List[Tuple[int, int]]:
    """Trace the outer boundary of a pixel set as a closed sequence."""
    # One pixel of padding so the boundary never touches the crop edge
    mask = np.zeros((max_y - min_y + 3, max_x - min_x + 3), dtype=np.uint8)
    for x, y in region:
        mask[y - min_y + 1, x - min_x + 1] = 255

    found, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_NONE)
    if not found:
        return []

    outer = max(found, key=cv2.contourArea)
    return [(int(p[0][0]) + min_x - 1, int(p[0][1]) + min_y - 1) for p in outer]


def find_contours(
    raster: RasterBuffer,
    threshold: int = 128,
    stride: int = 8,
    max_contours: int = 100,
    min_points: int = 20,
    max_points: int = 3000,
    trace_limit: int = 5000,
    max_queue: int = 10000,
    text_mask: Optional[np.ndarray] = None,
    text_overlap: float = 0.5,
) -> ContourTraceResult:
    """Trace connected bright regions of an edge map.

    Seeds are sampled on a coarse grid. Each unclaimed bright seed grows an
    8-connected region under a queue and size budget. Regions that hit the
    budget are discarded as runaway; regions with fewer than ``min_points``
    or more than ``max_points`` pixels are discarded as noise or clutter.

    Args:
        raster: Edge map (intensity in the red channel)
        threshold: Pixels brighter than this are traced
        stride: Seed grid spacing in pixels
        max_contours: Maximum number of contours returned
        min_points: Smallest accepted region, in pixels
        max_points: Largest accepted region, in pixels
        trace_limit: Pixel budget of a single trace
        max_queue: Queue depth budget of a single trace
        text_mask: Optional boolean mask of text regions; contours whose
            pixels mostly fall inside it are suppressed
        text_overlap: Fraction of pixels inside the text mask that
            suppresses a contour

    Returns:
        ContourTraceResult with the accepted contours and discard counts
    """
    if stride < 1:
        raise ValueError(f"stride must be at least 1, got {stride}")

    bright = raster.intensity() > threshold
    grower = RegionGrower(bright, connectivity=8, max_queue=max_queue, max_pixels=trace_limit)
    result = ContourTraceResult()

    for y in range(0, raster.height, stride):
        for x in range(0, raster.width, stride):
            if len(result.contours) >= max_contours:
                break

            fill = grower.grow(x, y)
            if fill is None:
                continue
            if fill.truncated:
                continue
            if not (min_points <= fill.size <= max_points):
                result.rejected_count += 1
                continue

            if text_mask is not None:
                inside = sum(1 for px, py in fill.points if text_mask[py, px])
                if inside > text_overlap * fill.size:
                    result.suppressed_count += 1
                    continue

            min_x, min_y, max_x, max_y = fill.bounds()
            boundary = _ordered_boundary(fill.points, min_x, min_y, max_x, max_y)
            if len(boundary) < 2:
                continue

            result.contours.append(
                Contour(
                    points=tuple(boundary),
                    pixel_count=fill.size,
                    bbox=BoundingBox(
                        x=min_x, y=min_y,
                        width=max_x - min_x + 1, height=max_y - min_y + 1,
                    ),
                )
            )

    result.truncated_count = grower.truncated_count
    logger.debug(
        "Traced %d contours (%d truncated, %d rejected, %d suppressed as text)",
        len(result.contours), result.truncated_count,
        result.rejected_count, result.suppressed_count,
    )
    return result


def perpendicular_distance(point: Point, start: Point, end: Point) -> float:
    """Distance from ``point`` to the infinite line through ``start`` and ``end``.

    Falls back to the distance to ``start`` when the two line points coincide.
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    norm = math.hypot(dx, dy)
    if norm == 0:
        return math.hypot(point[0] - start[0], point[1] - start[1])
    return abs(dy * point[0] - dx * point[1] + end[0] * start[1] - end[1] * start[0]) / norm


def simplify_contour(points: Sequence[Point], tolerance: float = 5.0) -> List[Point]:
    """Douglas-Peucker simplification of an open polyline.

    The first and last points are always kept and the relative order of the
    kept points is preserved.

    Args:
        points: Polyline vertices
        tolerance: Maximum allowed perpendicular deviation, in pixels

    Returns:
        Simplified list of vertices
    """
    if tolerance < 0:
        raise ValueError(f"tolerance must be non-negative, got {tolerance}")

    pts = [tuple(p) for p in points]
    if len(pts) < 3:
        return pts

    keep = [False] * len(pts)
    keep[0] = keep[-1] = True

    # explicit stack so long contours cannot exhaust the recursion limit
    stack = [(0, len(pts) - 1)]
    while stack:
        first, last = stack.pop()
        if last - first < 2:
            continue

        max_distance = -1.0
        index = first
        for i in range(first + 1, last):
            d = perpendicular_distance(pts[i], pts[first], pts[last])
            if d > max_distance:
                max_distance = d
                index = i

        if max_distance > tolerance + _DISTANCE_EPSILON:
            keep[index] = True
            stack.append((first, index))
            stack.append((index, last))

    return [p for p, k in zip(pts, keep) if k]


def simplify_closed_contour(points: Sequence[Point], tolerance: float = 5.0) -> List[Point]:
    """Douglas-Peucker simplification of a closed ring.

    The ring is split at the point farthest from its start and the two halves
    are simplified separately, which avoids the degenerate chord of a ring
    whose first and last points coincide.

    Returns:
        Closed polyline with the first vertex repeated at the end
    """
    pts = [tuple(p) for p in points]
    if len(pts) > 1 and pts[0] == pts[-1]:
        pts = pts[:-1]
    if len(pts) < 3:
        return pts

    start = pts[0]
    split = max(
        range(1, len(pts)),
        key=lambda i: math.hypot(pts[i][0] - start[0], pts[i][1] - start[1]),
    )

    head = simplify_contour(pts[: split + 1], tolerance)
    tail = simplify_contour(pts[split:] + [start], tolerance)
    return head + tail[1:]

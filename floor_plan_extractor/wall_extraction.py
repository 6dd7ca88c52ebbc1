"""Wall extraction from simplified contours."""

import logging
import math
from typing import Iterable, List, Sequence, Union

from .contours import Contour, simplify_closed_contour
from .models import Point, Wall

logger = logging.getLogger(__name__)

DEFAULT_WALL_THICKNESS = 4.0
DEFAULT_WALL_CONFIDENCE = 0.7


def walls_from_polyline(
    vertices: Sequence[Point],
    min_length: float = 20.0,
) -> List[Wall]:
    """Turn consecutive vertex pairs longer than ``min_length`` into walls."""
    walls = []
    for start, end in zip(vertices[:-1], vertices[1:]):
        length = math.hypot(end[0] - start[0], end[1] - start[1])
        if length <= min_length:
            continue
        walls.append(
            Wall.between(
                (float(start[0]), float(start[1])),
                (float(end[0]), float(end[1])),
                thickness=DEFAULT_WALL_THICKNESS,
                confidence=DEFAULT_WALL_CONFIDENCE,
            )
        )
    return walls


def extract_walls(
    contours: Iterable[Union[Contour, Sequence[Point]]],
    tolerance: float = 5.0,
    min_length: float = 20.0,
) -> List[Wall]:
    """Extract wall candidates from traced contours.

    Each contour is simplified with Douglas-Peucker; every edge of the
    simplified outline longer than ``min_length`` becomes a wall in pixel
    coordinates.

    Args:
        contours: Contours or raw point sequences
        tolerance: Simplification tolerance in pixels
        min_length: Minimum wall length in pixels (exclusive)

    Returns:
        List of walls numbered in discovery order
    """
    walls: List[Wall] = []
    for contour in contours:
        points = contour.points if isinstance(contour, Contour) else contour
        simplified = simplify_closed_contour(points, tolerance)
        walls.extend(walls_from_polyline(simplified, min_length))

    numbered = [w.model_copy(update={"id": f"wall{i}"}) for i, w in enumerate(walls, start=1)]
    logger.debug("Extracted %d walls", len(numbered))
    return numbered


def _angle_difference(a: float, b: float) -> float:
    """Smallest difference between two undirected line angles, in [0, pi/2]."""
    diff = abs(a - b) % math.pi
    return min(diff, math.pi - diff)


def _try_merge(
    first: Wall,
    second: Wall,
    angle_tolerance: float,
    offset_tolerance: float,
    max_gap: float,
):
    if _angle_difference(first.angle, second.angle) > angle_tolerance:
        return None

    ux = math.cos(first.angle)
    uy = math.sin(first.angle)
    ox, oy = first.start

    def along(p):
        return (p[0] - ox) * ux + (p[1] - oy) * uy

    def across(p):
        return abs(-(p[0] - ox) * uy + (p[1] - oy) * ux)

    if across(second.start) > offset_tolerance or across(second.end) > offset_tolerance:
        return None

    a0, a1 = sorted((along(first.start), along(first.end)))
    b0, b1 = sorted((along(second.start), along(second.end)))
    gap = max(a0, b0) - min(a1, b1)
    if gap > max_gap:
        return None

    endpoints = [first.start, first.end, second.start, second.end]
    start = min(endpoints, key=along)
    end = max(endpoints, key=along)
    return Wall.between(
        start,
        end,
        id=first.id,
        thickness=max(first.thickness, second.thickness),
        height=first.height,
        type=first.type,
        confidence=max(first.confidence, second.confidence),
    )


def merge_collinear_walls(
    walls: Sequence[Wall],
    angle_tolerance: float = 0.1,
    offset_tolerance: float = 4.0,
    max_gap: float = 10.0,
) -> List[Wall]:
    """Join walls that lie on the same line and overlap or nearly touch.

    Contours traced separately often contribute duplicate or split segments
    of the same physical wall. Two walls merge when their directions agree
    within ``angle_tolerance`` radians, the second lies within
    ``offset_tolerance`` pixels of the first's line, and the gap between
    them along that line is at most ``max_gap`` pixels.

    Returns:
        Merged walls; the input order of surviving walls is kept
    """
    merged = list(walls)
    changed = True
    while changed:
        changed = False
        for i in range(len(merged)):
            for j in range(i + 1, len(merged)):
                joined = _try_merge(merged[i], merged[j], angle_tolerance, offset_tolerance, max_gap)
                if joined is not None:
                    merged[i] = joined
                    del merged[j]
                    changed = True
                    break
            if changed:
                break

    if len(merged) != len(walls):
        logger.debug("Merged %d walls into %d", len(walls), len(merged))
    return merged


def to_model_space(
    walls: Sequence[Wall],
    image_width: int,
    image_height: int,
    scale: float = 0.5,
) -> List[Wall]:
    """Map pixel-space walls into model space centred on the image."""
    cx = image_width / 2.0
    cy = image_height / 2.0

    converted = []
    for wall in walls:
        start = ((wall.start[0] - cx) * scale, (wall.start[1] - cy) * scale)
        end = ((wall.end[0] - cx) * scale, (wall.end[1] - cy) * scale)
        converted.append(
            wall.model_copy(update={"start": start, "end": end, "length": wall.length * scale})
        )
    return converted


def default_walls() -> List[Wall]:
    """Walls of the fixed four-room fallback layout, in model space."""
    segments = [
        ((-50, -30), (50, -30)),
        ((50, -30), (100, -30)),
        ((100, -30), (100, 10)),
        ((100, 10), (50, 10)),
        ((50, 10), (50, 30)),
        ((50, 30), (20, 30)),
        ((20, 30), (-50, 30)),
        ((-50, 30), (-50, 70)),
        ((-50, 70), (50, 70)),
        ((50, 70), (50, 30)),
    ]
    return [
        Wall.between(
            (float(s[0]), float(s[1])),
            (float(e[0]), float(e[1])),
            id=f"wall{i}",
            thickness=DEFAULT_WALL_THICKNESS,
            confidence=DEFAULT_WALL_CONFIDENCE,
        )
        for i, (s, e) in enumerate(segments, start=1)
    ]

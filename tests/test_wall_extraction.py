"""Tests for wall extraction."""

import math

import pytest

from floor_plan_extractor.models import Wall
from floor_plan_extractor.wall_extraction import (
    default_walls,
    extract_walls,
    merge_collinear_walls,
    to_model_space,
    walls_from_polyline,
)


def _ring(x0, y0, side):
    """Closed square boundary traced pixel by pixel, starting top-left."""
    x1 = x0 + side
    y1 = y0 + side
    ring = [(x, y0) for x in range(x0, x1)] + [(x1, y) for y in range(y0, y1)]
    ring += [(x, y1) for x in range(x1, x0, -1)] + [(x0, y) for y in range(y1, y0, -1)]
    return ring


def test_walls_from_polyline_drops_short_edges():
    """Test that edges no longer than the minimum are skipped."""
    walls = walls_from_polyline([(0, 0), (50, 0), (50, 20), (0, 20)], min_length=20)

    assert len(walls) == 2
    assert walls[0].length == pytest.approx(50)
    assert walls[0].thickness == 4.0
    assert walls[0].confidence == 0.7


def test_extract_walls_from_square():
    """Test four walls from a square contour."""
    walls = extract_walls([_ring(10, 10, 50)])

    assert len(walls) == 4
    assert [w.id for w in walls] == ["wall1", "wall2", "wall3", "wall4"]
    assert all(w.length == pytest.approx(50) for w in walls)


def test_extract_walls_skips_small_contours():
    """Test that contours with short sides yield no walls."""
    assert extract_walls([_ring(0, 0, 15)]) == []


def test_merge_collinear_segments():
    """Test merging of split segments on one line."""
    walls = [
        Wall.between((0.0, 0.0), (50.0, 0.0), id="wall1"),
        Wall.between((55.0, 1.0), (100.0, 1.0), id="wall2"),
    ]

    merged = merge_collinear_walls(walls)

    assert len(merged) == 1
    assert merged[0].id == "wall1"
    assert merged[0].start == (0.0, 0.0)
    assert merged[0].end == (100.0, 1.0)


def test_merge_joins_duplicates():
    """Test that overlapping duplicates collapse into one wall."""
    walls = [
        Wall.between((0.0, 0.0), (60.0, 0.0)),
        Wall.between((60.0, 2.0), (10.0, 2.0)),
    ]

    merged = merge_collinear_walls(walls)

    assert len(merged) == 1
    assert merged[0].length == pytest.approx(60.0, abs=0.1)


def test_merge_keeps_distinct_walls():
    """Test that parallel, distant and perpendicular walls stay apart."""
    walls = [
        Wall.between((0.0, 0.0), (50.0, 0.0)),
        Wall.between((0.0, 20.0), (50.0, 20.0)),
        Wall.between((80.0, 0.0), (120.0, 0.0)),
        Wall.between((50.0, 0.0), (50.0, 50.0)),
    ]

    assert len(merge_collinear_walls(walls)) == 4


def test_to_model_space():
    """Test mapping of pixel walls around the image centre."""
    wall = Wall.between((100.0, 100.0), (200.0, 100.0), real_length=5.0)

    converted = to_model_space([wall], 200, 200)[0]

    assert converted.start == (0.0, 0.0)
    assert converted.end == (50.0, 0.0)
    assert converted.length == pytest.approx(50.0)
    assert converted.angle == pytest.approx(0.0)
    assert converted.real_length == 5.0


def test_default_walls():
    """Test the walls of the fallback layout."""
    walls = default_walls()

    assert len(walls) == 10
    assert walls[0].start == (-50.0, -30.0)
    assert walls[0].length == pytest.approx(100.0)
    assert walls[2].angle == pytest.approx(math.pi / 2)


def test_wall_count_bounded_by_vertices():
    """Test that a contour never yields more walls than simplified edges."""
    from floor_plan_extractor.contours import simplify_closed_contour

    contours = [
        _ring(0, 0, 60),
        _ring(5, 5, 25),
        [(x, (x // 7) % 2 * 30) for x in range(0, 200, 7)] + [(200, 100), (0, 100)],
    ]
    for contour in contours:
        vertices = simplify_closed_contour(contour, 5.0)
        walls = extract_walls([contour])
        assert len(walls) <= len(vertices) - 1
        assert all(w.length > 20.0 for w in walls)

    polyline = [(0, 0), (50, 0), (50, 10), (90, 10), (90, 80)]
    assert len(walls_from_polyline(polyline)) <= len(polyline) - 1

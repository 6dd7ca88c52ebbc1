"""Tests for contour tracing and Douglas-Peucker simplification."""

import numpy as np
import pytest

from floor_plan_extractor.contours import (
    find_contours,
    perpendicular_distance,
    simplify_closed_contour,
    simplify_contour,
)
from floor_plan_extractor.raster import RasterBuffer


def _square_outline(size=100, start=16, side=40):
    edges = np.zeros((size, size), dtype=np.uint8)
    end = start + side - 1
    edges[start, start:end + 1] = 255
    edges[end, start:end + 1] = 255
    edges[start:end + 1, start] = 255
    edges[start:end + 1, end] = 255
    return RasterBuffer(edges)


def test_traces_square_outline():
    """Test tracing a closed one pixel outline."""
    result = find_contours(_square_outline())

    assert len(result.contours) == 1
    contour = result.contours[0]
    assert contour.pixel_count == 156
    assert (contour.bbox.x, contour.bbox.y, contour.bbox.width, contour.bbox.height) == (16, 16, 40, 40)
    assert (16, 16) in contour.points
    assert (55, 55) in contour.points


def test_small_regions_rejected():
    """Test that specks below the minimum size are dropped."""
    edges = np.zeros((50, 50), dtype=np.uint8)
    edges[16:19, 16:19] = 255

    result = find_contours(RasterBuffer(edges))

    assert result.contours == []
    assert result.rejected_count == 1


def test_runaway_regions_discarded():
    """Test that regions beyond the trace budget are never contours."""
    edges = np.full((100, 100), 255, dtype=np.uint8)

    result = find_contours(RasterBuffer(edges))

    assert result.contours == []
    assert result.truncated_count >= 1


def test_text_mask_suppresses_contours():
    """Test suppression of contours lying inside text regions."""
    mask = np.ones((100, 100), dtype=bool)

    result = find_contours(_square_outline(), text_mask=mask)

    assert result.contours == []
    assert result.suppressed_count == 1


def test_max_contours():
    """Test the cap on returned contours."""
    edges = np.zeros((100, 200), dtype=np.uint8)
    edges[16, 16:56] = 255
    edges[16, 96:136] = 255

    assert len(find_contours(RasterBuffer(edges), max_contours=1).contours) == 1
    assert len(find_contours(RasterBuffer(edges)).contours) == 2


def test_perpendicular_distance():
    """Test point to line distances."""
    assert perpendicular_distance((5, 3), (0, 0), (10, 0)) == pytest.approx(3.0)
    assert perpendicular_distance((3, 4), (0, 0), (0, 0)) == pytest.approx(5.0)


def test_simplify_collinear_points():
    """Test that collinear points reduce to the endpoints."""
    points = [(float(x), 0.0) for x in range(11)]

    assert simplify_contour(points, 1.0) == [(0.0, 0.0), (10.0, 0.0)]


def test_simplify_keeps_significant_vertex():
    """Test that a vertex beyond the tolerance survives."""
    points = [(0, 0), (5, 4.5), (10, 10), (15, 4.5), (20, 0)]

    assert simplify_contour(points, 2.0) == [(0, 0), (10, 10), (20, 0)]


def test_simplify_zero_tolerance_keeps_bends():
    """Test that zero tolerance only removes exactly collinear points."""
    points = [(0, 0), (1, 0), (2, 0), (2, 1)]

    assert simplify_contour(points, 0.0) == [(0, 0), (2, 0), (2, 1)]


def test_simplify_rejects_negative_tolerance():
    """Test tolerance validation."""
    with pytest.raises(ValueError):
        simplify_contour([(0, 0), (1, 1), (2, 0)], -1.0)


def test_simplify_preserves_short_input():
    """Test inputs with fewer than three points."""
    assert simplify_contour([(1, 2), (3, 4)], 5.0) == [(1, 2), (3, 4)]


def test_simplify_closed_square():
    """Test simplification of a closed rectangular ring."""
    ring = [(x, 0) for x in range(10)] + [(9, y) for y in range(1, 10)]
    ring += [(x, 9) for x in range(8, -1, -1)] + [(0, y) for y in range(8, 0, -1)]

    simplified = simplify_closed_contour(ring, 1.0)

    assert simplified[0] == simplified[-1] == (0, 0)
    assert set(simplified) == {(0, 0), (9, 0), (9, 9), (0, 9)}


def _zigzag(count=60, seed=0):
    rng = np.random.RandomState(seed)
    xs = np.arange(count, dtype=float) * 3.0
    ys = np.cumsum(rng.uniform(-4.0, 4.0, size=count))
    return [(float(x), float(y)) for x, y in zip(xs, ys)]


def test_simplify_collinear_at_any_tolerance():
    """Test that collinear points reduce to the endpoints for zero and large tolerances."""
    points = [(2.0 * t, 3.0 * t) for t in range(15)]

    for tolerance in (0.0, 1.0, 100.0):
        assert simplify_contour(points, tolerance) == [(0.0, 0.0), (28.0, 42.0)]


def test_simplify_is_idempotent():
    """Test that simplifying a simplified polyline changes nothing."""
    for seed in range(3):
        points = _zigzag(seed=seed)
        for tolerance in (0.0, 1.0, 2.5, 5.0, 20.0):
            once = simplify_contour(points, tolerance)
            assert simplify_contour(once, tolerance) == once
            assert once[0] == points[0] and once[-1] == points[-1]


def test_simplify_closed_is_idempotent():
    """Test idempotence of ring simplification, including the repeated closing vertex."""
    ring = [(x, 0) for x in range(30)] + [(29, y) for y in range(1, 20)]
    ring += [(x, 19 + (x % 3)) for x in range(28, -1, -1)] + [(0, y) for y in range(18, 0, -1)]

    for tolerance in (1.0, 3.0, 5.0):
        once = simplify_closed_contour(ring, tolerance)
        assert simplify_closed_contour(once, tolerance) == once

"""Tests for area calculation module."""

import pytest

from floor_plan_extractor.area_calculation import (
    calculate_room_areas,
    calculate_total_area,
    calculate_wall_lengths,
    generate_area_report,
    get_room_statistics,
)
from floor_plan_extractor.models import PipelineResult, Room, Scale, ScaleType, Unit, Wall


def _room(room_id, area, name="Bedroom"):
    return Room(
        id=room_id,
        name=name,
        type=name,
        color="#e3f2fd",
        vertices=[(0, 0), (10, 0), (10, 10), (0, 10)],
        center=(5, 5),
        area=area,
    )


def test_calculate_room_areas():
    """Test real-world area calculation."""
    rooms = [_room("room1", 400.0), _room("room2", 1600.0)]
    scale = Scale(ratio=10.0, unit=Unit.METER, confidence=0.8)

    measured = calculate_room_areas(rooms, scale)

    assert measured[0].real_area == pytest.approx(4.0)
    assert measured[1].real_area == pytest.approx(16.0)
    assert measured[0].real_unit == Unit.METER
    assert rooms[0].real_area is None


def test_calculate_wall_lengths():
    """Test wall lengths in pixel and model coordinates."""
    scale = Scale(ratio=20.0, unit=Unit.METER)
    pixel_wall = Wall.between((0.0, 0.0), (100.0, 0.0))
    model_wall = Wall.between((0.0, 0.0), (50.0, 0.0))

    assert calculate_wall_lengths([pixel_wall], scale)[0].real_length == pytest.approx(5.0)
    assert calculate_wall_lengths([model_wall], scale, coordinate_scale=0.5)[0].real_length == pytest.approx(5.0)


def test_calculate_total_area():
    """Test total area calculation."""
    rooms = calculate_room_areas([_room("room1", 400.0), _room("room2", 1600.0)], Scale(ratio=10.0, unit=Unit.METER))

    assert calculate_total_area(rooms) == pytest.approx(20.0)
    assert calculate_total_area([_room("room3", 100.0)]) == 0.0


def test_get_room_statistics():
    """Test room statistics calculation."""
    rooms = calculate_room_areas(
        [_room("room1", 1000.0), _room("room2", 1500.0), _room("room3", 2000.0)],
        Scale(ratio=10.0, unit=Unit.METER),
    )

    stats = get_room_statistics(rooms)

    assert stats["mean_area"] == pytest.approx(15.0)
    assert stats["median_area"] == pytest.approx(15.0)
    assert stats["min_area"] == pytest.approx(10.0)
    assert stats["max_area"] == pytest.approx(20.0)
    assert stats["total_area"] == pytest.approx(45.0)
    assert stats["num_rooms"] == 3


def test_get_room_statistics_unmeasured():
    """Test statistics fall back to pixel areas without a scale."""
    stats = get_room_statistics([_room("room1", 1000.0), _room("room2", 3000.0)])

    assert stats["total_area"] == pytest.approx(4000.0)


def test_get_room_statistics_empty():
    """Test room statistics with no rooms."""
    assert get_room_statistics([]) == {}


def test_generate_area_report():
    """Test report generation."""
    scale = Scale(ratio=10.0, unit=Unit.METER, confidence=0.8, standard_scale="1:10")
    result = PipelineResult(
        rooms=calculate_room_areas([_room("room1", 1600.0, "Kitchen"), _room("room2", 400.0)], scale),
        walls=calculate_wall_lengths([Wall.between((0.0, 0.0), (100.0, 0.0))], scale),
        confidence=0.9,
        scale=scale,
        warnings=["No dimensions found in the blueprint. Scale detection relies on other methods."],
    )

    report = generate_area_report(result)

    assert "FLOOR PLAN EXTRACTION" in report
    assert "Kitchen" in report
    assert "16.00 m²" in report
    assert "TOTAL" in report
    assert "Total wall length: 10.00 m" in report
    assert "WARNINGS:" in report
    assert report.index("Kitchen") < report.index("Bedroom")


def test_generate_area_report_describes_scale_and_lines():
    """Test the scale type and line statistics sections."""
    scale = Scale(ratio=20.0, unit=Unit.METER, type=ScaleType.ARCHITECTURAL, confidence=0.8)
    result = PipelineResult(
        scale=scale,
        stats={"lines": {"total_lines": 7.0, "wall_lines": 4.0, "dimension_lines": 2.0, "unknown_lines": 1.0}},
    )

    report = generate_area_report(result)

    assert "Architectural scale (e.g., 1:50, 1:100)" in report
    assert "LINES: 7" in report
    assert "Structural wall lines" in report
    wall_row = next(row for row in report.splitlines() if "Structural wall lines" in row)
    assert wall_row.endswith(": 4")
    annotation_row = next(row for row in report.splitlines() if "Annotation and label lines" in row)
    assert annotation_row.endswith(": 0")


def test_generate_area_report_without_scale():
    """Test the report of an unscaled fallback result."""
    result = PipelineResult(rooms=[_room("room1", 1600.0)], used_fallback=True, errors=["edge_detection: boom"])

    report = generate_area_report(result)

    assert "1600 px" in report
    assert "default (detection failed)" in report
    assert "ERRORS:" in report
    assert "TOTAL" not in report

"""Tests for data models."""

import math

import pytest
from pydantic import ValidationError

from floor_plan_extractor.models import (
    BoundingBox,
    PipelineOptions,
    PipelineResult,
    ProcessingStage,
    Room,
    Scale,
    StageStatus,
    Unit,
    Wall,
)


def test_bounding_box_geometry():
    """Test derived edges, centre and containment of a bounding box."""
    box = BoundingBox(x=10, y=20, width=30, height=10)

    assert box.right == 40
    assert box.bottom == 30
    assert box.center == (25.0, 25.0)
    assert box.contains(10, 20)
    assert not box.contains(40, 25)


def test_room_requires_polygon():
    """Test that a room needs at least three vertices."""
    with pytest.raises(ValidationError):
        Room(id="r", name="Kitchen", type="Kitchen", color="#fff", vertices=[(0, 0), (1, 0)], center=(0, 0))


def test_room_confidence_bounds():
    """Test that room confidence must stay in [0, 1]."""
    with pytest.raises(ValidationError):
        Room(
            id="r",
            name="Kitchen",
            type="Kitchen",
            color="#fff",
            vertices=[(0, 0), (1, 0), (1, 1)],
            center=(0.5, 0.5),
            confidence=1.5,
        )


def test_wall_between_derives_length_and_angle():
    """Test wall construction from endpoints."""
    wall = Wall.between((0.0, 0.0), (30.0, 40.0))

    assert wall.length == pytest.approx(50.0)
    assert wall.angle == pytest.approx(math.atan2(40, 30))
    assert wall.thickness == 4.0
    assert wall.height == 2.4
    assert wall.confidence == 0.7


def test_scale_unit_conversions():
    """Test per-pixel conversion factors of a scale."""
    scale = Scale(ratio=20.0, unit=Unit.METER)

    assert scale.units_per_pixel == pytest.approx(0.05)
    assert scale.units2_per_pixel2 == pytest.approx(0.0025)


def test_processing_stage_validates_progress():
    """Test that stage progress assignments are validated."""
    stage = ProcessingStage(name="preprocessing")
    assert stage.status == StageStatus.PENDING

    stage.progress = 100
    with pytest.raises(ValidationError):
        stage.progress = 150


def test_pipeline_result_defaults():
    """Test an empty pipeline result."""
    result = PipelineResult()

    assert result.rooms == []
    assert result.walls == []
    assert result.scale is None
    assert not result.used_fallback


def test_options_json_is_stable():
    """Test that equal options serialise identically and changes show."""
    assert PipelineOptions().to_json() == PipelineOptions().to_json()
    assert PipelineOptions().to_json() != PipelineOptions(blur_radius=3).to_json()
    assert PipelineOptions(expected_unit=Unit.FOOT).to_json() != PipelineOptions().to_json()

"""Tests for line detection and classification."""

import numpy as np
import pytest

from floor_plan_extractor.errors import StageFailure
from floor_plan_extractor.line_classification import (
    ClassifiedLine,
    FeaturedLine,
    LineClassifier,
    LineFeatures,
    LineStyle,
    LineType,
    LineTypeNetwork,
    RawLine,
    apply_context_analysis,
    calculate_statistics,
    calculate_straightness,
    classify_with_heuristics,
    classify_with_network,
    detect_line_style,
    estimate_thickness,
    filter_lines,
    find_gaps,
    load_line_network,
    ml_features,
    segment_distance,
)
from floor_plan_extractor.raster import RasterBuffer


def _featured(length=100.0, thickness=4.0, style=LineStyle.SOLID, nearby_text=False, angle=0.0, index=0):
    features = LineFeatures(
        thickness=thickness,
        style=style,
        intensity=1.0,
        straightness=1.0,
        continuity=1.0,
        nearby_text=nearby_text,
    )
    return FeaturedLine(
        id=f"line_{index}",
        start=(0.0, float(index * 10)),
        end=(length, float(index * 10)),
        length=length,
        angle=angle,
        features=features,
    )


def test_find_gaps_counts_interior_runs_only():
    """Test that only background runs between line pixels are gaps."""
    assert find_gaps(np.array([0, 0, 255, 255, 0, 255])) == [2]
    assert find_gaps(np.array([255, 255, 0, 0])) == []
    assert find_gaps(np.array([0, 0, 0])) == []


def test_detect_line_style():
    """Test style from gap statistics."""
    assert detect_line_style([]) == LineStyle.SOLID
    assert detect_line_style([1] * 6) == LineStyle.DOTTED
    assert detect_line_style([8] * 6) == LineStyle.DASHED
    assert detect_line_style([3]) == LineStyle.DASH_DOT


def test_estimate_thickness_of_band():
    """Test stroke width across a 4 px horizontal band."""
    intensity = np.full((100, 100), 255, dtype=np.uint8)
    intensity[48:52, :] = 0

    assert estimate_thickness(intensity, (10.0, 49.0), (90.0, 49.0)) == pytest.approx(4.0)


def test_segment_distance_and_straightness():
    """Test point to segment distance and straightness score."""
    assert segment_distance((5, 3), (0, 0), (10, 0)) == pytest.approx(3.0)
    assert segment_distance((13, 4), (0, 0), (10, 0)) == pytest.approx(5.0)

    points = [(x, 0) for x in range(10)]
    assert calculate_straightness(points, (0, 0), (9, 0)) == 1.0


def test_heuristic_rules():
    """Test rule-based classification of typical lines."""
    wall, annotation, unknown = classify_with_heuristics(
        [
            _featured(),
            _featured(length=30.0, thickness=1.0, nearby_text=True),
            _featured(length=30.0, thickness=1.0),
        ]
    )

    assert (wall.type, wall.confidence) == (LineType.WALL, 0.8)
    assert (annotation.type, annotation.confidence) == (LineType.ANNOTATION, 0.6)
    assert (unknown.type, unknown.confidence) == (LineType.UNKNOWN, 0.5)


def test_dashed_line_near_text_is_dimension():
    """Test the dimension rule."""
    line = _featured(length=40.0, thickness=1.0, style=LineStyle.DASHED, nearby_text=True)

    assert classify_with_heuristics([line])[0].type == LineType.DIMENSION


def test_context_analysis_promotes_parallel_unknowns():
    """Test that an unknown line among many parallels becomes a wall."""
    lines = [
        ClassifiedLine(line=_featured(length=30.0, thickness=1.0, index=i), type=LineType.UNKNOWN, confidence=0.5)
        for i in range(5)
    ]

    updated = apply_context_analysis(lines)

    assert all(line.type == LineType.WALL for line in updated)
    assert all(line.confidence == pytest.approx(0.7) for line in updated)
    assert all(line.features.parallel_lines == 4 for line in updated)


def test_context_analysis_counts_perpendiculars():
    """Test perpendicular neighbour counts."""
    lines = [
        ClassifiedLine(line=_featured(), type=LineType.WALL, confidence=0.8),
        ClassifiedLine(line=_featured(angle=np.pi / 2, index=1), type=LineType.WALL, confidence=0.8),
    ]

    updated = apply_context_analysis(lines)

    assert [line.features.perpendicular_lines for line in updated] == [1, 1]


def test_context_analysis_ignores_line_direction():
    """Test that opposite directions of the same line count as parallel."""
    angles = [3.12, -3.12, 3.13, -3.13, 0.01]
    lines = [
        ClassifiedLine(line=_featured(angle=a, index=i), type=LineType.UNKNOWN, confidence=0.5)
        for i, a in enumerate(angles)
    ]

    updated = apply_context_analysis(lines)

    assert [line.features.parallel_lines for line in updated] == [4, 4, 4, 4, 4]
    assert all(line.type == LineType.WALL for line in updated)

    crossing = apply_context_analysis(
        [
            ClassifiedLine(line=_featured(angle=3.1), type=LineType.WALL, confidence=0.8),
            ClassifiedLine(line=_featured(angle=-1.6, index=1), type=LineType.WALL, confidence=0.8),
        ]
    )
    assert [line.features.perpendicular_lines for line in crossing] == [1, 1]


def test_classified_line_confidence_bounds():
    """Test that confidence outside [0, 1] is rejected."""
    with pytest.raises(ValueError):
        ClassifiedLine(line=_featured(), type=LineType.WALL, confidence=1.5)


def test_filter_and_statistics():
    """Test filtering by confidence and length and the type counts."""
    lines = [
        ClassifiedLine(line=_featured(), type=LineType.WALL, confidence=0.8),
        ClassifiedLine(line=_featured(length=5.0), type=LineType.WALL, confidence=0.8),
        ClassifiedLine(line=_featured(), type=LineType.DIMENSION, confidence=0.3),
        ClassifiedLine(line=_featured(), type=LineType.GRID_LINE, confidence=0.7),
    ]

    kept = filter_lines(lines, confidence_threshold=0.5, min_length=10.0)
    stats = calculate_statistics(kept)

    assert len(kept) == 2
    assert stats == {
        "total_lines": 2,
        "wall_lines": 1,
        "dimension_lines": 0,
        "annotation_lines": 0,
        "unknown_lines": 1,
    }


def test_ml_features_length():
    """Test the network input vector."""
    assert len(ml_features(_featured())) == 15


def test_network_predicts_distribution(tmp_path):
    """Test prediction shape and weight persistence."""
    network = LineTypeNetwork.random(seed=1)
    features = np.array([ml_features(_featured()), ml_features(_featured(thickness=1.0))])

    probabilities = network.predict(features)

    assert probabilities.shape == (2, len(LineType))
    assert np.allclose(probabilities.sum(axis=1), 1.0)

    path = tmp_path / "lines.npz"
    network.save(path)
    assert np.allclose(LineTypeNetwork.load(path).predict(features), probabilities)


def test_network_rejects_wrong_shapes():
    """Test layer shape validation."""
    with pytest.raises(ValueError):
        LineTypeNetwork([np.zeros((3, 3))] * 3, [np.zeros(3)] * 3)


def test_classify_with_network():
    """Test network classification yields valid confidences."""
    classified = classify_with_network([_featured()], LineTypeNetwork.random())

    assert len(classified) == 1
    assert 0.0 <= classified[0].confidence <= 1.0


def test_load_line_network_failure(tmp_path):
    """Test that a missing weights file is a stage failure."""
    with pytest.raises(StageFailure):
        load_line_network(tmp_path / "missing.npz")


def test_classifier_finds_wall_band():
    """Test detection and classification of a thick horizontal stroke."""
    gray = np.full((200, 200), 255, dtype=np.uint8)
    gray[99:102, 20:180] = 0

    result = LineClassifier().classify(RasterBuffer(gray))

    assert len(result.lines) == 1
    line = result.lines[0]
    assert line.type == LineType.WALL
    assert line.thickness > 2
    assert line.length > 150
    assert result.statistics["wall_lines"] == 1
    assert result.confidence == pytest.approx(0.8)


def test_classifier_drops_masked_lines():
    """Test that lines inside the text mask are ignored."""
    gray = np.full((200, 200), 255, dtype=np.uint8)
    gray[99:102, 20:180] = 0

    result = LineClassifier().classify(RasterBuffer(gray), text_mask=np.ones((200, 200), dtype=bool))

    assert result.lines == []
    assert result.confidence == 0.0


def test_classifier_uses_given_raw_lines():
    """Test classification of pre-detected lines on a blank sheet."""
    gray = np.full((100, 100), 255, dtype=np.uint8)
    raw = RawLine(start=(10.0, 50.0), end=(90.0, 50.0), length=80.0)

    result = LineClassifier().classify(RasterBuffer(gray), raw_lines=[raw], confidence_threshold=0.0)

    assert len(result.lines) == 1
    assert result.lines[0].type == LineType.UNKNOWN

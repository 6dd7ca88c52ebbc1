"""Real-world areas and lengths for detected rooms and walls."""

from typing import Dict, List, Optional, Sequence

import numpy as np

from .line_classification import LINE_TYPE_DESCRIPTIONS, STATISTIC_TYPES
from .models import PipelineResult, Room, Scale, Wall
from .scale_estimation import SCALE_TYPE_DESCRIPTIONS


def calculate_room_areas(rooms: Sequence[Room], scale: Scale) -> List[Room]:
    """Calculate real-world areas for rooms using scale information.

    Args:
        rooms: Rooms carrying their filled pixel area
        scale: Detected scale

    Returns:
        Copies of the rooms with ``real_area`` in square ``scale.unit``
    """
    return [
        room.model_copy(update={"real_area": room.area * scale.units2_per_pixel2, "real_unit": scale.unit})
        for room in rooms
    ]


def calculate_wall_lengths(
    walls: Sequence[Wall],
    scale: Scale,
    coordinate_scale: float = 1.0,
) -> List[Wall]:
    """Calculate real-world wall lengths.

    Args:
        walls: Walls to measure
        scale: Detected scale
        coordinate_scale: Coordinate units per pixel of the wall geometry
            (1.0 for pixel-space walls, 0.5 for model-space walls)

    Returns:
        Copies of the walls with ``real_length`` in ``scale.unit``
    """
    return [
        wall.model_copy(
            update={
                "real_length": wall.length / coordinate_scale / scale.ratio,
                "real_unit": scale.unit,
            }
        )
        for wall in walls
    ]


def calculate_total_area(rooms: Sequence[Room]) -> float:
    """Sum of the real areas of all measured rooms."""
    return float(sum(room.real_area for room in rooms if room.real_area is not None))


def get_room_statistics(rooms: Sequence[Room]) -> Dict[str, float]:
    """Statistics about room sizes, in pixels or real units when measured.

    Returns:
        Dictionary with statistics, empty when there are no rooms
    """
    if not rooms:
        return {}

    measured = all(room.real_area is not None for room in rooms)
    areas = [room.real_area if measured else room.area for room in rooms]

    return {
        "mean_area": float(np.mean(areas)),
        "median_area": float(np.median(areas)),
        "min_area": float(np.min(areas)),
        "max_area": float(np.max(areas)),
        "total_area": float(np.sum(areas)),
        "num_rooms": float(len(areas)),
    }


def _area_label(room: Room) -> Optional[str]:
    if room.real_area is None or room.real_unit is None:
        return None
    return f"{room.real_area:8.2f} {room.real_unit.value}²"


def generate_area_report(result: PipelineResult) -> str:
    """Generate a formatted report of a pipeline result.

    Args:
        result: Pipeline output

    Returns:
        Formatted report string
    """
    report_lines = [
        "=" * 50,
        "FLOOR PLAN EXTRACTION",
        "=" * 50,
        "",
        f"Blueprint type: {result.blueprint_type.value}",
        f"Confidence:     {result.confidence:.2f}",
    ]
    if result.scale is not None:
        standard = f" ({result.scale.standard_scale})" if result.scale.standard_scale else ""
        report_lines.append(f"Scale:          {result.scale.ratio:.2f} px/{result.scale.unit.value}{standard}")
        report_lines.append(f"Scale type:     {SCALE_TYPE_DESCRIPTIONS[result.scale.type]}")
    if result.used_fallback:
        report_lines.append("Layout:         default (detection failed)")

    # Largest first
    sorted_rooms = sorted(result.rooms, key=lambda r: r.area, reverse=True)

    report_lines.extend(["", "ROOMS:", "-" * 50])
    for room in sorted_rooms:
        label = _area_label(room) or f"{room.area:8.0f} px"
        report_lines.append(f"{room.id:8s} {room.name:12s}: {label}")

    total_area = calculate_total_area(result.rooms)
    if total_area > 0 and result.scale is not None:
        report_lines.extend(["-" * 50, f"{'TOTAL':21s}: {total_area:8.2f} {result.scale.unit.value}²"])

    report_lines.extend(["", f"WALLS: {len(result.walls)}"])
    if result.walls:
        lengths = [w.real_length for w in result.walls if w.real_length is not None]
        if lengths and result.scale is not None:
            report_lines.append(f"Total wall length: {sum(lengths):.2f} {result.scale.unit.value}")

    line_stats = result.stats.get("lines")
    if line_stats:
        report_lines.extend(["", f"LINES: {int(line_stats.get('total_lines', 0))}"])
        for key, line_type in STATISTIC_TYPES:
            report_lines.append(f"  {LINE_TYPE_DESCRIPTIONS[line_type]:34s}: {int(line_stats.get(key, 0))}")

    for heading, items in (("WARNINGS", result.warnings), ("ERRORS", result.errors)):
        if items:
            report_lines.extend(["", f"{heading}:"])
            report_lines.extend(f"  - {item}" for item in items)

    report_lines.append("=" * 50)
    return "\n".join(report_lines)

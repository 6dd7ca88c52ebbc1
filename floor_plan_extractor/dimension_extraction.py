"""Dimension extraction from floor plan images."""

import logging
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import Dimension, TextRegion, Unit
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

PARSE_CONFIDENCE = 0.8
DARK_INTENSITY = 100

# feet-inches first so 5'-6" is not read as a bare number
FEET_INCHES_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*['′]\s*-?\s*(?:(\d+(?:\.\d+)?)\s*[\"″])?")
INCHES_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*[\"″]")
VALUE_UNIT_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*"
    r"(millimeters?|millimetres?|mm|centimeters?|centimetres?|cm|meters?|metres?|m"
    r"|feet|foot|ft|inches|inch|in|yards?|yd)\b"
)

UNIT_ALIASES = {
    "mm": Unit.MILLIMETER,
    "millimeter": Unit.MILLIMETER,
    "millimetre": Unit.MILLIMETER,
    "cm": Unit.CENTIMETER,
    "centimeter": Unit.CENTIMETER,
    "centimetre": Unit.CENTIMETER,
    "m": Unit.METER,
    "meter": Unit.METER,
    "metre": Unit.METER,
    "in": Unit.INCH,
    "inch": Unit.INCH,
    "inches": Unit.INCH,
    '"': Unit.INCH,
    "ft": Unit.FOOT,
    "foot": Unit.FOOT,
    "feet": Unit.FOOT,
    "'": Unit.FOOT,
    "yd": Unit.YARD,
    "yard": Unit.YARD,
}


@dataclass(frozen=True)
class ParsedLength:
    length: float
    unit: Unit
    confidence: float = PARSE_CONFIDENCE


@dataclass(frozen=True)
class DarkRun:
    """A straight run of dark pixels along one row or column."""

    start: Tuple[int, int]
    end: Tuple[int, int]
    length: int

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.start[0] + self.end[0]) / 2.0, (self.start[1] + self.end[1]) / 2.0)

    @property
    def orientation(self) -> str:
        return dimension_orientation(self.start, self.end)


def parse_unit(unit_text: str) -> Unit:
    """Map a unit spelling to a Unit; unrecognised text defaults to metres."""
    clean = unit_text.strip().lower()
    if clean in UNIT_ALIASES:
        return UNIT_ALIASES[clean]
    if clean.endswith("s") and clean[:-1] in UNIT_ALIASES:
        return UNIT_ALIASES[clean[:-1]]
    return Unit.METER


def parse_scale_text(text: str) -> Optional[ParsedLength]:
    """Parse a length such as ``5m``, ``10 ft``, ``2.5 meters`` or ``5'-6"``.

    Feet-inches notation is returned in feet.

    Returns:
        ParsedLength, or None when the text holds no positive length
    """
    clean = text.strip().lower()

    match = FEET_INCHES_PATTERN.search(clean)
    if match:
        feet = float(match.group(1))
        inches = float(match.group(2)) if match.group(2) else 0.0
        length = feet + inches / 12.0
        if length > 0:
            return ParsedLength(length=length, unit=Unit.FOOT)

    match = VALUE_UNIT_PATTERN.search(clean)
    if match:
        length = float(match.group(1))
        if length > 0:
            return ParsedLength(length=length, unit=parse_unit(match.group(2)))

    match = INCHES_PATTERN.search(clean)
    if match:
        length = float(match.group(1))
        if length > 0:
            return ParsedLength(length=length, unit=Unit.INCH)

    return None


def _runs_in_line(values: np.ndarray, dark_intensity: int) -> List[Tuple[int, int]]:
    """(start, length) of every run of dark values in a 1D array."""
    dark = np.concatenate(([False], values < dark_intensity, [False]))
    changes = np.flatnonzero(np.diff(dark.astype(np.int8)))
    starts = changes[0::2]
    ends = changes[1::2]
    return [(int(s), int(e - s)) for s, e in zip(starts, ends)]


def find_horizontal_runs(
    raster: RasterBuffer,
    row_step: int = 5,
    dark_intensity: int = DARK_INTENSITY,
    min_length: int = 50,
    max_length: int = 500,
) -> List[DarkRun]:
    """Dark horizontal runs of plausible scale-bar length.

    Every ``row_step``-th row is scanned; runs strictly longer than
    ``min_length`` and strictly shorter than ``max_length`` are kept.
    """
    intensity = raster.intensity()
    runs = []
    for y in range(0, raster.height, row_step):
        for start, length in _runs_in_line(intensity[y], dark_intensity):
            if min_length < length < max_length:
                runs.append(DarkRun(start=(start, y), end=(start + length - 1, y), length=length))
    return runs


def find_vertical_runs(
    raster: RasterBuffer,
    column_step: int = 5,
    dark_intensity: int = DARK_INTENSITY,
    min_length: int = 50,
    max_length: int = 500,
) -> List[DarkRun]:
    intensity = raster.intensity()
    runs = []
    for x in range(0, raster.width, column_step):
        for start, length in _runs_in_line(intensity[:, x], dark_intensity):
            if min_length < length < max_length:
                runs.append(DarkRun(start=(x, start), end=(x, start + length - 1), length=length))
    return runs


def text_center(region: TextRegion) -> Tuple[float, float]:
    return region.bbox.center


def find_nearby_text(run: DarkRun, text_regions: Sequence[TextRegion], radius: float = 30.0) -> List[TextRegion]:
    """Text regions whose centre lies within ``radius`` of the run centre."""
    cx, cy = run.center
    nearby = []
    for region in text_regions:
        tx, ty = text_center(region)
        if math.hypot(tx - cx, ty - cy) <= radius:
            nearby.append(region)
    return nearby


def dimension_orientation(start: Tuple[float, float], end: Tuple[float, float]) -> str:
    dx = abs(end[0] - start[0])
    dy = abs(end[1] - start[1])
    if dx > dy * 3:
        return "horizontal"
    if dy > dx * 3:
        return "vertical"
    return "diagonal"


def find_dimension_line(
    region: TextRegion,
    runs: Sequence[DarkRun],
    search_radius: float = 50.0,
) -> Optional[DarkRun]:
    """The run closest to a dimension label, if any lies within ``search_radius``."""
    tx, ty = text_center(region)
    best = None
    best_distance = search_radius
    for run in runs:
        cx, cy = run.center
        distance = math.hypot(cx - tx, cy - ty)
        if distance <= best_distance:
            best = run
            best_distance = distance
    return best


def detect_dimensions(
    text_regions: Sequence[TextRegion],
    runs: Sequence[DarkRun],
) -> List[Dimension]:
    """Pair dimension labels with the dimension lines they annotate.

    Args:
        text_regions: Recognised text; only regions flagged as dimensions are used
        runs: Candidate dimension lines

    Returns:
        Dimensions with their parsed value and measured pixel length
    """
    dimensions = []
    for region in text_regions:
        if not region.is_dimension:
            continue
        parsed = parse_scale_text(region.text)
        if parsed is None:
            continue
        line = find_dimension_line(region, runs)
        if line is None:
            continue

        dimensions.append(
            Dimension(
                id=f"dim_{len(dimensions)}",
                value=parsed.length,
                unit=parsed.unit,
                pixel_length=float(line.length),
                start=(float(line.start[0]), float(line.start[1])),
                end=(float(line.end[0]), float(line.end[1])),
                text_position=(float(region.bbox.x), float(region.bbox.y)),
                confidence=parsed.confidence,
                orientation=line.orientation,
            )
        )

    logger.debug("Paired %d dimension labels with lines", len(dimensions))
    return dimensions

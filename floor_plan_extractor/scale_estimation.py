"""Scale estimation from scale bars, dimension labels and drawing grids."""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.signal import find_peaks

from .dimension_extraction import (
    detect_dimensions,
    find_horizontal_runs,
    find_nearby_text,
    find_vertical_runs,
    parse_scale_text,
)
from .models import Dimension, Scale, ScaleReference, ScaleType, TextRegion, Unit
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

UNIT_TO_METERS: Dict[Unit, float] = {
    Unit.MILLIMETER: 0.001,
    Unit.CENTIMETER: 0.01,
    Unit.METER: 1.0,
    Unit.INCH: 0.0254,
    Unit.FOOT: 0.3048,
    Unit.YARD: 0.9144,
}

# (designation, pixels per unit)
ARCHITECTURAL_SCALES = [
    ("1:20", 20.0),
    ("1:50", 50.0),
    ("1:100", 100.0),
    ("1:200", 200.0),
    ("1:500", 500.0),
]

IMPERIAL_SCALES = [
    ("1/4\"=1'", 48.0),
    ("1/8\"=1'", 96.0),
    ("3/16\"=1'", 64.0),
    ("1/2\"=1'", 24.0),
    ("1\"=1'", 12.0),
]

SCALE_TYPE_DESCRIPTIONS = {
    ScaleType.ARCHITECTURAL: "Architectural scale (e.g., 1:50, 1:100)",
    ScaleType.ENGINEERING: "Engineering scale (e.g., 1:20, 1:40)",
    ScaleType.METRIC: "Metric scale (e.g., 1:500, 1:1000)",
    ScaleType.IMPERIAL: "Imperial scale (e.g., 1/4\"=1', 1/8\"=1')",
    ScaleType.CUSTOM: "Custom or non-standard scale",
}

GROUP_TOLERANCE = 0.15
STANDARD_TOLERANCE = 0.1
SCALE_BAR_TEXT_RADIUS = 30.0
GRID_CONFIDENCE = 0.6


def convert_unit(value: float, from_unit: Unit, to_unit: Unit) -> float:
    """Convert a length between units."""
    if from_unit == to_unit:
        return value
    return value * UNIT_TO_METERS[from_unit] / UNIT_TO_METERS[to_unit]


def apply_scale(pixel_length: float, scale: Scale) -> Tuple[float, Unit]:
    """Real-world length of a pixel distance under ``scale``."""
    return pixel_length / scale.ratio, scale.unit


def determine_scale_type(ratio: float, unit: Unit) -> ScaleType:
    if unit in (Unit.FOOT, Unit.INCH):
        return ScaleType.IMPERIAL
    if unit in (Unit.METER, Unit.CENTIMETER):
        for _, common in ARCHITECTURAL_SCALES:
            if abs(ratio - common) / common < STANDARD_TOLERANCE:
                return ScaleType.ARCHITECTURAL
        return ScaleType.METRIC
    return ScaleType.CUSTOM


def find_standard_scale(ratio: float, unit: Unit) -> Optional[str]:
    """Designation of the standard scale within 10% of ``ratio``, if any."""
    if unit in (Unit.METER, Unit.CENTIMETER):
        table = ARCHITECTURAL_SCALES
    elif unit in (Unit.FOOT, Unit.INCH):
        table = IMPERIAL_SCALES
    else:
        return None

    for designation, standard in table:
        if abs(ratio - standard) / standard < STANDARD_TOLERANCE:
            return designation
    return None


def scale_from_reference(reference: ScaleReference) -> Optional[Scale]:
    if reference.pixel_length <= 0 or reference.real_length <= 0:
        return None
    ratio = reference.pixel_length / reference.real_length
    return Scale(
        ratio=ratio,
        unit=reference.unit,
        type=determine_scale_type(ratio, reference.unit),
        confidence=reference.confidence,
        references=[reference],
        standard_scale=find_standard_scale(ratio, reference.unit),
    )


def group_similar_scales(scales: Sequence[Scale], tolerance: float = GROUP_TOLERANCE) -> List[Scale]:
    """Merge scales of the same unit whose ratios agree within ``tolerance``.

    A merged scale carries the reference-weighted mean ratio, the highest
    member confidence and all member references.
    """
    grouped: List[Scale] = []
    for scale in scales:
        for i, group in enumerate(grouped):
            if scale.unit == group.unit and abs(scale.ratio - group.ratio) / group.ratio < tolerance:
                n_group = len(group.references)
                n_scale = len(scale.references)
                ratio = (group.ratio * n_group + scale.ratio * n_scale) / (n_group + n_scale)
                grouped[i] = Scale(
                    ratio=ratio,
                    unit=group.unit,
                    type=determine_scale_type(ratio, group.unit),
                    confidence=max(group.confidence, scale.confidence),
                    references=list(group.references) + list(scale.references),
                    standard_scale=find_standard_scale(ratio, group.unit),
                )
                break
        else:
            grouped.append(scale)
    return grouped


def select_best_scale(
    scales: Sequence[Scale],
    expected_unit: Optional[Unit] = None,
    expected_type: Optional[ScaleType] = None,
) -> Optional[Scale]:
    """Pick the scale with the best ``confidence * log(references + 1)``.

    A scale in the expected unit wins over the ranking, then one of the
    expected type.
    """
    if not scales:
        return None

    ranked = sorted(
        scales,
        key=lambda s: s.confidence * math.log(len(s.references) + 1),
        reverse=True,
    )
    if expected_unit is not None:
        for scale in ranked:
            if scale.unit == expected_unit:
                return scale
    if expected_type is not None:
        for scale in ranked:
            if scale.type == expected_type:
                return scale
    return ranked[0]


def detect_grid_spacing(
    raster: RasterBuffer,
    dark_intensity: int = 100,
    coverage: float = 0.5,
    min_lines: int = 4,
    max_variation: float = 0.1,
) -> float:
    """Spacing of a regular drawing grid, in pixels.

    Rows and columns that are dark over at least ``coverage`` of the image
    are grid line candidates. The spacing is accepted when at least
    ``min_lines`` lines repeat at nearly constant intervals.

    Returns:
        Grid spacing in pixels, or 0 when no regular grid is present
    """
    dark = raster.intensity() < dark_intensity
    spacings = []
    for axis, span in ((1, raster.width), (0, raster.height)):
        projection = dark.sum(axis=axis).astype(np.float64)
        peaks, _ = find_peaks(projection, height=coverage * span, distance=10)
        if len(peaks) < min_lines:
            continue
        gaps = np.diff(peaks).astype(np.float64)
        if gaps.std() / gaps.mean() <= max_variation:
            spacings.append(float(np.median(gaps)))

    if not spacings:
        return 0.0
    return float(np.mean(spacings))


@dataclass
class CalibrationResult:
    detected_scale: Optional[Scale] = None
    possible_scales: List[Scale] = field(default_factory=list)
    dimensions: List[Dimension] = field(default_factory=list)
    references: List[ScaleReference] = field(default_factory=list)
    grid_spacing: float = 0.0
    confidence: float = 0.0
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class ScaleCalibrator:
    """Resolves the pixels-per-unit ratio of a plan.

    References come from scale bars (dark runs with a length label close
    by), dimension labels paired with their dimension lines, and regular
    drawing grids.
    """

    def detect_scale_bars(self, raster: RasterBuffer, text_regions: Sequence[TextRegion]) -> List[ScaleReference]:
        references = []
        for run in find_horizontal_runs(raster):
            for region in find_nearby_text(run, text_regions, SCALE_BAR_TEXT_RADIUS):
                parsed = parse_scale_text(region.text)
                if parsed is None:
                    continue
                references.append(
                    ScaleReference(
                        id=f"scale_bar_{len(references)}",
                        type="scale_bar",
                        pixel_length=float(run.length),
                        real_length=parsed.length,
                        unit=parsed.unit,
                        confidence=parsed.confidence,
                        position=(float(run.start[0]), float(run.start[1])),
                    )
                )
        return references

    def calibrate(
        self,
        raster: RasterBuffer,
        text_regions: Sequence[TextRegion] = (),
        expected_unit: Optional[Unit] = None,
        expected_type: Optional[ScaleType] = None,
        min_confidence: float = 0.5,
        search_for_scale_bars: bool = True,
        search_for_dimensions: bool = True,
        search_for_grids: bool = True,
    ) -> CalibrationResult:
        """Detect the drawing scale.

        Args:
            raster: Grayscale raster (before text removal)
            text_regions: Recognised text on the plan
            expected_unit: Preferred unit when several scales are found
            expected_type: Preferred scale type when several scales are found
            min_confidence: Scales below this confidence are discarded
            search_for_scale_bars: Look for labelled scale bars
            search_for_dimensions: Look for dimension labels and lines
            search_for_grids: Look for a regular drawing grid

        Returns:
            CalibrationResult with the detected scale, candidates and warnings
        """
        result = CalibrationResult()

        if search_for_scale_bars:
            result.references.extend(self.detect_scale_bars(raster, text_regions))

        if search_for_dimensions:
            runs = find_horizontal_runs(raster) + find_vertical_runs(raster)
            result.dimensions = detect_dimensions(text_regions, runs)
            result.references.extend(
                ScaleReference(
                    id=f"dim_ref_{dim.id}",
                    type="dimension",
                    pixel_length=dim.pixel_length,
                    real_length=dim.value,
                    unit=dim.unit,
                    confidence=dim.confidence,
                    position=dim.start,
                )
                for dim in result.dimensions
            )

        if search_for_grids:
            result.grid_spacing = detect_grid_spacing(raster)
            if result.grid_spacing > 0:
                # one grid cell is assumed to be a metre
                result.references.append(
                    ScaleReference(
                        id="grid_reference",
                        type="grid",
                        pixel_length=result.grid_spacing,
                        real_length=1.0,
                        unit=Unit.METER,
                        confidence=GRID_CONFIDENCE,
                    )
                )

        candidates = [s for s in map(scale_from_reference, result.references) if s is not None]
        result.possible_scales = [
            s for s in group_similar_scales(candidates) if s.confidence >= min_confidence
        ]
        result.detected_scale = select_best_scale(result.possible_scales, expected_unit, expected_type)
        if result.detected_scale is not None:
            result.confidence = result.detected_scale.confidence

        result.warnings = self._warnings(result, search_for_dimensions)
        logger.debug(
            "Calibration: %d references, %d candidate scales, detected %s",
            len(result.references), len(result.possible_scales),
            result.detected_scale.ratio if result.detected_scale else None,
        )
        return result

    @staticmethod
    def _warnings(result: CalibrationResult, searched_dimensions: bool) -> List[str]:
        warnings = []
        if not result.references:
            warnings.append("No scale references found. Scale detection may be inaccurate.")
        if not result.possible_scales:
            warnings.append("No valid scales could be calculated from available references.")
        if result.detected_scale is not None and result.detected_scale.confidence < 0.7:
            warnings.append("Low confidence in detected scale. Manual verification recommended.")
        if len(result.possible_scales) > 3:
            warnings.append("Multiple conflicting scales detected. Results may be ambiguous.")
        if searched_dimensions and not result.dimensions:
            warnings.append("No dimensions found in the blueprint. Scale detection relies on other methods.")
        return warnings

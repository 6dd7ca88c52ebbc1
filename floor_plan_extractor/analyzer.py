"""Staged floor plan extraction pipeline."""

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .area_calculation import calculate_room_areas, calculate_wall_lengths
from .blueprint_type import detect_blueprint_type
from .cache import ResultCache, make_cache_key
from .contours import ContourTraceResult, find_contours
from .edge_detection import sobel_magnitude
from .errors import InputError, PipelineCancelled, StageFailure
from .line_classification import ClassificationResult, LineClassifier, LineType, LineTypeNetwork
from .models import (
    BlueprintType,
    FallbackMode,
    PipelineOptions,
    PipelineResult,
    ProcessingStage,
    Room,
    StageStatus,
    Wall,
)
from .morphology import morphological_close
from .preprocessing import preprocess_raster
from .raster import RasterBuffer, downscale_to_max_dimension
from .scale_estimation import CalibrationResult, ScaleCalibrator
from .segmentation import RoomDetectionResult, default_rooms, detect_rooms
from .text_filter import OCREngine, TextFilterResult, TextRegionFilter
from .wall_extraction import default_walls, extract_walls, merge_collinear_walls, to_model_space

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float, Optional[str]], None]

STAGE_DESCRIPTIONS = {
    "preprocessing": "Downscaling, blurring and converting to grayscale",
    "text_filtering": "Detecting and filtering text elements",
    "edge_detection": "Computing Sobel edge magnitude",
    "morphology": "Closing gaps in detected edges",
    "contour_tracing": "Tracing and simplifying contours",
    "wall_extraction": "Extracting wall segments",
    "room_detection": "Identifying rooms",
    "line_classification": "Classifying structural lines",
    "scale_calibration": "Detecting drawing scale",
    "quality_assessment": "Assessing result quality",
}

OPTIONAL_STAGES = {
    "text_filtering": "enable_text_filtering",
    "line_classification": "enable_line_classification",
    "scale_calibration": "auto_detect_scale",
}

LEGACY_FALLBACK_CONFIDENCE = 0.6
DEFAULT_LAYOUT_CONFIDENCE = 0.3
WALL_LINE_MATCH_DISTANCE = 20.0
EXCESSIVE_TEXT_REGIONS = 50


@dataclass(frozen=True)
class StageOutcome:
    """Result of one stage: a detail message on success, an error otherwise."""

    ok: bool
    detail: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, detail: Optional[str] = None) -> "StageOutcome":
        return cls(ok=True, detail=detail)

    @classmethod
    def failure(cls, error: str) -> "StageOutcome":
        return cls(ok=False, error=error)


@dataclass
class RunState:
    """Working data of a single run; owned by exactly one run."""

    options: PipelineOptions
    raster: RasterBuffer
    preprocessed: Optional[RasterBuffer] = None
    working: Optional[RasterBuffer] = None
    edges: Optional[RasterBuffer] = None
    closed_edges: Optional[RasterBuffer] = None
    text: Optional[TextFilterResult] = None
    contours: Optional[ContourTraceResult] = None
    walls: List[Wall] = field(default_factory=list)
    room_detection: Optional[RoomDetectionResult] = None
    lines: Optional[ClassificationResult] = None
    calibration: Optional[CalibrationResult] = None
    blueprint_type: BlueprintType = BlueprintType.UNKNOWN
    blueprint_confidence: float = 0.0
    stats: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def text_mask(self) -> Optional[np.ndarray]:
        return self.text.mask if self.text is not None else None

    @property
    def text_regions(self):
        return self.text.text_regions if self.text is not None else []

    @property
    def rooms(self) -> List[Room]:
        return self.room_detection.rooms if self.room_detection is not None else []


def structural_confidence(num_rooms: int, num_walls: int) -> float:
    confidence = 0.0
    if num_rooms > 0:
        confidence += 0.5
    if num_walls > 0:
        confidence += 0.3
    if num_rooms > 2:
        confidence += 0.1
    if num_walls > 4:
        confidence += 0.1
    return min(1.0, confidence)


def _endpoints_match(wall: Wall, start, end, distance: float) -> bool:
    def close(p, q):
        return math.hypot(p[0] - q[0], p[1] - q[1]) <= distance

    return (close(wall.start, start) and close(wall.end, end)) or (
        close(wall.start, end) and close(wall.end, start)
    )


def refine_walls_with_lines(
    walls: List[Wall],
    lines: ClassificationResult,
    distance: float = WALL_LINE_MATCH_DISTANCE,
) -> List[Wall]:
    """Take thickness and confidence from a classified wall line along the same segment."""
    wall_lines = [line for line in lines.lines if line.type == LineType.WALL]
    refined = []
    for wall in walls:
        match = next((l for l in wall_lines if _endpoints_match(wall, l.start, l.end, distance)), None)
        if match is None:
            refined.append(wall)
        else:
            refined.append(wall.model_copy(update={"thickness": match.thickness, "confidence": match.confidence}))
    return refined


class PipelineOrchestrator:
    """Runs the extraction stages in order and assembles the result.

    Args:
        ocr_engine: Optional OCR capability for the text filtering stage
        line_model: Optional trained line type network
        cache: Result cache; a private cache is created when None
    """

    def __init__(
        self,
        ocr_engine: Optional[OCREngine] = None,
        line_model: Optional[LineTypeNetwork] = None,
        cache: Optional[ResultCache] = None,
    ):
        self.text_filter = TextRegionFilter(ocr_engine)
        self.line_classifier = LineClassifier(line_model)
        self.calibrator = ScaleCalibrator()
        self.cache = cache if cache is not None else ResultCache()
        self.cache_hits = 0
        self._hits_lock = threading.Lock()

    # Public API

    def run(
        self,
        raster: RasterBuffer,
        options: Optional[PipelineOptions] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
        format_hint: Optional[str] = None,
    ) -> PipelineResult:
        """Extract rooms and walls from a raster floor plan.

        Args:
            raster: Input raster
            options: Pipeline options; defaults when None
            progress: Callback receiving (stage, percent, detail)
            cancel_event: Checked between stages; when set the run stops
            format_hint: Source format recorded on the result

        Returns:
            PipelineResult; stage failures are recorded, never raised

        Raises:
            InputError: If the raster is malformed
        """
        if not isinstance(raster, RasterBuffer):
            raise InputError(f"expected a RasterBuffer, got {type(raster).__name__}")
        options = options or PipelineOptions()
        if options.max_dimension < 1:
            raise InputError(f"max_dimension must be positive, got {options.max_dimension}")

        def report(stage: str, percent: float, detail: Optional[str] = None) -> None:
            if progress is not None:
                progress(stage, percent, detail)

        key = make_cache_key(raster, options)
        cached = self.cache.get(key)
        if cached is not None:
            with self._hits_lock:
                self.cache_hits += 1
            logger.info("Cache hit for %s", key[:12])
            report("cache", 100, "Using cached result")
            return cached

        start = time.perf_counter()
        state = RunState(options=options, raster=raster)
        result = PipelineResult(stages=self._initial_stages(options), input_format=format_hint)

        failed = False
        for stage in result.stages:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = PipelineCancelled(f"Pipeline cancelled before {stage.name}")
                logger.info("%s", cancelled)
                result.errors.append(str(cancelled))
                failed = True
                break

            outcome = self._execute(stage, state, result, report)
            if not outcome.ok:
                result.errors.append(f"{stage.name}: {outcome.error}")
                self._apply_fallback(result, state)
                failed = True
                break

        if failed and not result.rooms and not result.walls:
            result.rooms = list(state.rooms)
            result.walls = list(state.walls)
        result.stats = state.stats
        result.processing_time = time.perf_counter() - start

        if failed:
            logger.warning("Pipeline finished with errors: %s", "; ".join(result.errors))
        else:
            self.cache.set(key, result)
        return result

    # Stage machinery

    @staticmethod
    def _initial_stages(options: PipelineOptions) -> List[ProcessingStage]:
        stages = []
        for name, description in STAGE_DESCRIPTIONS.items():
            toggle = OPTIONAL_STAGES.get(name)
            if toggle is not None and not getattr(options, toggle):
                continue
            stages.append(ProcessingStage(name=name, description=description))
        return stages

    def _execute(
        self,
        stage: ProcessingStage,
        state: RunState,
        result: PipelineResult,
        report: Callable[..., None],
    ) -> StageOutcome:
        handler = getattr(self, f"_stage_{stage.name}")
        stage.status = StageStatus.PROCESSING
        logger.info("Stage %s started", stage.name)
        report(stage.name, 0, stage.description)

        started = time.perf_counter()
        try:
            detail = handler(state, result)
            outcome = StageOutcome.success(detail)
        except StageFailure as exc:
            logger.error("Stage %s failed: %s", stage.name, exc)
            outcome = StageOutcome.failure(str(exc))
        except Exception as exc:
            # any algorithm fault aborts only this run
            logger.exception("Stage %s raised", stage.name)
            outcome = StageOutcome.failure(f"{type(exc).__name__}: {exc}")
        stage.duration = time.perf_counter() - started

        if outcome.ok:
            stage.status = StageStatus.COMPLETED
            stage.progress = 100
            report(stage.name, 100, outcome.detail)
            logger.info("Stage %s completed in %.3fs", stage.name, stage.duration)
        else:
            stage.status = StageStatus.ERROR
            stage.error = outcome.error
        return outcome

    @staticmethod
    def _output_walls(walls, state: RunState) -> List[Wall]:
        """Detected walls in the coordinate frame of the rooms, unless pixels were asked for."""
        opts = state.options
        if opts.pixel_space_walls or state.preprocessed is None:
            return list(walls)
        return to_model_space(walls, state.preprocessed.width, state.preprocessed.height, opts.coordinate_scale)

    def _apply_fallback(self, result: PipelineResult, state: RunState) -> None:
        if state.options.fallback_mode == FallbackMode.LEGACY:
            result.rooms = default_rooms()
            result.walls = default_walls()
            result.confidence = LEGACY_FALLBACK_CONFIDENCE
            result.used_fallback = True
            result.warnings.append("Processing failed; returning the default layout.")
        else:
            result.rooms = list(state.rooms)
            result.walls = self._output_walls(state.walls, state)
            result.confidence = structural_confidence(len(result.rooms), len(result.walls))
            result.warnings.append("Processing failed; returning partial results.")
        result.blueprint_type = state.blueprint_type

    # Stages

    def _stage_preprocessing(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        downscaled = downscale_to_max_dimension(state.raster, opts.max_dimension)
        state.preprocessed = preprocess_raster(
            downscaled,
            blur_radius=opts.blur_radius,
            enhance_contrast=opts.enhance_contrast,
            denoise=opts.denoise,
        )
        state.working = state.preprocessed
        state.blueprint_type, state.blueprint_confidence = detect_blueprint_type(state.preprocessed)
        result.blueprint_type = state.blueprint_type
        state.stats["blueprint"] = {"confidence": state.blueprint_confidence}
        return f"{state.preprocessed.width}x{state.preprocessed.height}, {state.blueprint_type.value}"

    def _stage_text_filtering(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        state.text = self.text_filter.filter_text(
            state.preprocessed,
            enable_ocr=opts.enable_ocr,
            remove_text=opts.remove_text,
            preserve_dimensions=opts.preserve_dimensions,
        )
        state.working = state.text.cleaned
        result.text_regions = list(state.text.text_regions)
        state.stats["text"] = {
            "regions": float(len(state.text.text_regions)),
            "confidence": state.text.confidence,
        }
        return f"Found {len(state.text.text_regions)} text regions"

    def _stage_edge_detection(self, state: RunState, result: PipelineResult) -> str:
        state.edges = sobel_magnitude(state.working)
        return "Edges detected"

    def _stage_morphology(self, state: RunState, result: PipelineResult) -> str:
        state.closed_edges = morphological_close(state.edges, state.options.morphology_kernel)
        return "Edges cleaned"

    def _stage_contour_tracing(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        state.contours = find_contours(
            state.closed_edges,
            threshold=opts.contour_threshold,
            stride=opts.contour_stride,
            max_contours=opts.max_contours,
            text_mask=state.text_mask,
        )
        state.stats["contours"] = {
            "count": float(len(state.contours.contours)),
            "truncated": float(state.contours.truncated_count),
            "suppressed": float(state.contours.suppressed_count),
        }
        return f"Traced {len(state.contours.contours)} contours"

    def _stage_wall_extraction(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        walls = extract_walls(
            state.contours.contours,
            tolerance=opts.simplify_tolerance,
            min_length=opts.min_wall_length,
        )
        extracted = len(walls)
        if opts.merge_collinear_walls:
            walls = merge_collinear_walls(walls)
        state.walls = walls
        state.stats["walls"] = {"extracted": float(extracted), "count": float(len(walls))}
        return f"Extracted {len(walls)} walls"

    def _stage_room_detection(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        state.room_detection = detect_rooms(
            state.working,
            threshold=opts.room_threshold,
            stride=opts.room_stride,
            min_area=opts.min_room_area,
            max_area=opts.max_room_area,
            max_rooms=opts.max_rooms,
            coordinate_scale=opts.coordinate_scale,
        )
        state.stats["rooms"] = {
            "count": float(len(state.room_detection.rooms)),
            "truncated_fills": float(state.room_detection.truncated_fills),
            "rejected_fills": float(state.room_detection.rejected_fills),
        }
        return f"Found {len(state.room_detection.rooms)} rooms"

    def _stage_line_classification(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        state.lines = self.line_classifier.classify(
            state.working,
            text_regions=state.text_regions,
            text_mask=state.text_mask,
            use_context_analysis=opts.use_context_analysis,
            confidence_threshold=opts.line_confidence_threshold,
            min_line_length=opts.min_line_length,
        )
        state.walls = refine_walls_with_lines(state.walls, state.lines)
        state.stats["lines"] = {k: float(v) for k, v in state.lines.statistics.items()}
        return f"Classified {len(state.lines.lines)} lines"

    def _stage_scale_calibration(self, state: RunState, result: PipelineResult) -> str:
        opts = state.options
        state.calibration = self.calibrator.calibrate(
            state.preprocessed,
            state.text_regions,
            expected_unit=opts.expected_unit,
            expected_type=opts.expected_scale_type,
        )
        result.scale = state.calibration.detected_scale
        result.warnings.extend(state.calibration.warnings)
        state.stats["scale"] = {
            "references": float(len(state.calibration.references)),
            "candidates": float(len(state.calibration.possible_scales)),
            "confidence": state.calibration.confidence,
        }
        if result.scale is None:
            return "No scale detected"
        return f"{result.scale.ratio:.2f} px/{result.scale.unit.value}"

    def _stage_quality_assessment(self, state: RunState, result: PipelineResult) -> str:
        rooms = list(state.rooms)
        walls = list(state.walls)
        detected_rooms = len(rooms)
        detected_walls = len(walls)

        if result.scale is not None:
            rooms = calculate_room_areas(rooms, result.scale)
            walls = calculate_wall_lengths(walls, result.scale)
        walls = self._output_walls(walls, state)

        if detected_rooms == 0 or detected_walls == 0:
            rooms = rooms or default_rooms()
            walls = walls or default_walls()
            result.used_fallback = True
            result.confidence = DEFAULT_LAYOUT_CONFIDENCE
        else:
            components = [structural_confidence(detected_rooms, detected_walls)]
            if state.lines is not None and state.lines.lines:
                components.append(state.lines.confidence)
            if result.scale is not None:
                components.append(result.scale.confidence)
            result.confidence = min(1.0, sum(components) / len(components))

        result.rooms = rooms
        result.walls = walls
        result.warnings.extend(self._warnings(result, state, detected_rooms, detected_walls))
        return f"Quality assessment complete ({round(result.confidence * 100)}% confidence)"

    @staticmethod
    def _warnings(result: PipelineResult, state: RunState, detected_rooms: int, detected_walls: int) -> List[str]:
        warnings = []
        if result.confidence < 0.5:
            warnings.append("Low confidence in processing results. Manual review recommended.")
        if detected_rooms == 0:
            warnings.append("No rooms were detected in the blueprint.")
        if detected_walls == 0:
            warnings.append("No walls were detected in the blueprint.")
        if len(state.text_regions) > EXCESSIVE_TEXT_REGIONS:
            warnings.append("High amount of text detected. Some structural lines may have been filtered.")
        if state.blueprint_type == BlueprintType.UNKNOWN:
            warnings.append("Blueprint type could not be determined automatically.")
        return warnings


def run_pipeline(raster: RasterBuffer, options: Optional[PipelineOptions] = None, **kwargs: Any) -> PipelineResult:
    """Run the pipeline once with a fresh orchestrator."""
    return PipelineOrchestrator().run(raster, options, **kwargs)

"""Line detection and semantic line classification.

Lines move through three immutable stages: ``RawLine`` (geometry from edge
tracing), ``FeaturedLine`` (measured features) and ``ClassifiedLine``
(semantic type and confidence). Classification uses a small feed-forward
network when weights are supplied and heuristic rules otherwise.
"""

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np
from skimage.draw import line as draw_line

from .edge_detection import sobel_gradients
from .errors import StageFailure
from .models import Point, TextRegion
from .raster import RasterBuffer
from .traversal import RegionGrower

logger = logging.getLogger(__name__)


class LineType(str, Enum):
    WALL = "wall"
    DIMENSION = "dimension"
    ANNOTATION = "annotation"
    SYMBOL_BOUNDARY = "symbol_boundary"
    GRID_LINE = "grid_line"
    CONSTRUCTION_LINE = "construction_line"
    HIDDEN_LINE = "hidden_line"
    CENTER_LINE = "center_line"
    SECTION_LINE = "section_line"
    ELEVATION_LINE = "elevation_line"
    UNKNOWN = "unknown"


class LineStyle(str, Enum):
    SOLID = "solid"
    DASHED = "dashed"
    DOTTED = "dotted"
    DASH_DOT = "dash_dot"
    HIDDEN = "hidden"
    CENTER = "center"


LINE_TYPE_DESCRIPTIONS = {
    LineType.WALL: "Structural wall lines",
    LineType.DIMENSION: "Measurement and dimension lines",
    LineType.ANNOTATION: "Annotation and label lines",
    LineType.SYMBOL_BOUNDARY: "Symbol boundary lines",
    LineType.GRID_LINE: "Grid and reference lines",
    LineType.CONSTRUCTION_LINE: "Construction guide lines",
    LineType.HIDDEN_LINE: "Hidden or dashed lines",
    LineType.CENTER_LINE: "Center and axis lines",
    LineType.SECTION_LINE: "Section cut lines",
    LineType.ELEVATION_LINE: "Elevation marker lines",
    LineType.UNKNOWN: "Unclassified lines",
}

NUM_FEATURES = 15
BACKGROUND_INTENSITY = 200  # thickness search stops on pixels brighter than this
GAP_INTENSITY = 150  # sampled pixels brighter than this are gaps
THICKNESS_RADIUS = 20
THICKNESS_SAMPLES = 10
NEARBY_TEXT_DISTANCE = 20.0
JUNCTION_DISTANCE = 5.0
ANGLE_TOLERANCE = 0.1


@dataclass(frozen=True)
class RawLine:
    """Line geometry recovered from a connected edge trace."""

    start: Point
    end: Point
    length: float
    points: Tuple[Tuple[int, int], ...] = ()

    @property
    def angle(self) -> float:
        return math.atan2(self.end[1] - self.start[1], self.end[0] - self.start[0])


@dataclass(frozen=True)
class LineFeatures:
    thickness: float
    style: LineStyle
    intensity: float
    straightness: float
    continuity: float
    parallel_lines: int = 0
    perpendicular_lines: int = 0
    nearby_text: bool = False
    nearby_symbols: bool = False
    junction_count: int = 0
    corner_count: int = 0


@dataclass(frozen=True)
class FeaturedLine:
    id: str
    start: Point
    end: Point
    length: float
    angle: float
    features: LineFeatures

    @property
    def thickness(self) -> float:
        return self.features.thickness

    @property
    def style(self) -> LineStyle:
        return self.features.style


@dataclass(frozen=True)
class ClassifiedLine:
    line: FeaturedLine
    type: LineType
    confidence: float

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must lie in [0, 1], got {self.confidence}")

    @property
    def id(self) -> str:
        return self.line.id

    @property
    def start(self) -> Point:
        return self.line.start

    @property
    def end(self) -> Point:
        return self.line.end

    @property
    def length(self) -> float:
        return self.line.length

    @property
    def angle(self) -> float:
        return self.line.angle

    @property
    def thickness(self) -> float:
        return self.line.thickness

    @property
    def features(self) -> LineFeatures:
        return self.line.features


@dataclass
class ClassificationResult:
    lines: List[ClassifiedLine]
    confidence: float
    statistics: Dict[str, int]


# Line detection


def _fit_endpoints(points: Sequence[Tuple[int, int]]) -> Tuple[Point, Point]:
    """Endpoints of the principal axis through a point cloud."""
    cloud = np.asarray(points, dtype=np.float32)
    vx, vy, x0, y0 = cv2.fitLine(cloud, cv2.DIST_L2, 0, 0.01, 0.01).ravel()
    t = (cloud[:, 0] - x0) * vx + (cloud[:, 1] - y0) * vy
    t_min = float(t.min())
    t_max = float(t.max())
    start = (float(x0 + t_min * vx), float(y0 + t_min * vy))
    end = (float(x0 + t_max * vx), float(y0 + t_max * vy))
    return start, end


def detect_raw_lines(
    raster: RasterBuffer,
    edge_threshold: int = 100,
    stride: int = 5,
    max_points: int = 1000,
    min_points: int = 10,
    min_length: float = 20.0,
    max_queue: int = 10000,
) -> List[RawLine]:
    """Detect straight line candidates from Sobel edges.

    Edge pixels are traced 8-connected from seeds on a ``stride`` grid; each
    trace is capped at ``max_points`` pixels. The endpoints of a line are the
    extremes of the trace along its fitted principal axis.

    Args:
        raster: Grayscale raster
        edge_threshold: Minimum gradient magnitude of an edge pixel
        stride: Seed grid spacing in pixels
        max_points: Pixel budget of a single trace
        min_points: Traces with fewer pixels are ignored
        min_length: Lines must be longer than this, in pixels
        max_queue: Queue depth budget of a single trace

    Returns:
        Raw line candidates in discovery order
    """
    edges = sobel_gradients(raster.intensity()) > edge_threshold
    grower = RegionGrower(edges, connectivity=8, max_queue=max_queue, max_pixels=max_points)

    lines = []
    for y in range(0, raster.height - 1, stride):
        for x in range(0, raster.width - 1, stride):
            trace = grower.grow(x, y)
            if trace is None or trace.size < min_points:
                continue

            start, end = _fit_endpoints(trace.points)
            length = math.hypot(end[0] - start[0], end[1] - start[1])
            if length > min_length:
                lines.append(RawLine(start=start, end=end, length=length, points=tuple(trace.points)))

    logger.debug("Detected %d raw lines", len(lines))
    return lines


# Feature extraction


def sample_line(intensity: np.ndarray, start: Point, end: Point) -> np.ndarray:
    """Intensities of the pixels on the rasterised segment from start to end."""
    height, width = intensity.shape
    x0 = int(np.clip(round(start[0]), 0, width - 1))
    y0 = int(np.clip(round(start[1]), 0, height - 1))
    x1 = int(np.clip(round(end[0]), 0, width - 1))
    y1 = int(np.clip(round(end[1]), 0, height - 1))
    rr, cc = draw_line(y0, x0, y1, x1)
    return intensity[rr, cc]


def find_gaps(samples: np.ndarray, gap_intensity: int = GAP_INTENSITY) -> List[int]:
    """Sizes of background runs enclosed by line pixels on both sides."""
    gaps = []
    run = 0
    seen_line = False
    for value in samples:
        if value > gap_intensity:
            run += 1
        else:
            if seen_line and run:
                gaps.append(run)
            run = 0
            seen_line = True
    return gaps


def detect_line_style(gaps: Sequence[int]) -> LineStyle:
    if not gaps:
        return LineStyle.SOLID
    if len(gaps) > 5:
        average = sum(gaps) / len(gaps)
        return LineStyle.DOTTED if average < 5 else LineStyle.DASHED
    return LineStyle.DASH_DOT


def _half_width(intensity: np.ndarray, x: float, y: float, nx: float, ny: float) -> int:
    height, width = intensity.shape
    for d in range(1, THICKNESS_RADIUS):
        px = int(round(x + d * nx))
        py = int(round(y + d * ny))
        if not (0 <= px < width and 0 <= py < height):
            return d
        if intensity[py, px] > BACKGROUND_INTENSITY:
            return d
    return THICKNESS_RADIUS


def estimate_thickness(intensity: np.ndarray, start: Point, end: Point) -> float:
    """Average stroke width measured perpendicular to the line.

    At evenly spaced points the search walks outwards on both sides until it
    meets background; the stroke spans both walks minus the shared centre.
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.hypot(dx, dy)
    if length == 0:
        return 1.0
    nx = -dy / length
    ny = dx / length

    total = 0.0
    for i in range(THICKNESS_SAMPLES):
        t = i / (THICKNESS_SAMPLES - 1)
        x = start[0] + t * dx
        y = start[1] + t * dy
        forward = _half_width(intensity, x, y, nx, ny)
        backward = _half_width(intensity, x, y, -nx, -ny)
        total += max(1, forward + backward - 1)
    return total / THICKNESS_SAMPLES


def segment_distance(point: Point, start: Point, end: Point) -> float:
    """Distance from a point to the closed segment start-end."""
    cx = end[0] - start[0]
    cy = end[1] - start[1]
    ax = point[0] - start[0]
    ay = point[1] - start[1]
    length_sq = cx * cx + cy * cy
    if length_sq == 0:
        return math.hypot(ax, ay)

    t = max(0.0, min(1.0, (ax * cx + ay * cy) / length_sq))
    return math.hypot(ax - t * cx, ay - t * cy)


def calculate_straightness(points: Sequence[Tuple[int, int]], start: Point, end: Point) -> float:
    if len(points) < 3:
        return 1.0
    deviation = sum(segment_distance(p, start, end) for p in points) / len(points)
    return max(0.0, 1.0 - deviation / 10.0)


def _near_text(start: Point, end: Point, text_regions: Sequence[TextRegion]) -> bool:
    mid = ((start[0] + end[0]) / 2.0, (start[1] + end[1]) / 2.0)
    for region in text_regions:
        box = region.bbox
        for px, py in (start, end, mid):
            dx = max(box.x - px, 0.0, px - box.right)
            dy = max(box.y - py, 0.0, py - box.bottom)
            if math.hypot(dx, dy) <= NEARBY_TEXT_DISTANCE:
                return True
    return False


def _count_junctions(index: int, raw_lines: Sequence[RawLine]) -> int:
    line = raw_lines[index]
    count = 0
    for j, other in enumerate(raw_lines):
        if j == index:
            continue
        for p in (line.start, line.end):
            if any(math.hypot(p[0] - q[0], p[1] - q[1]) <= JUNCTION_DISTANCE for q in (other.start, other.end)):
                count += 1
                break
    return count


def extract_features(
    intensity: np.ndarray,
    raw_lines: Sequence[RawLine],
    text_regions: Sequence[TextRegion] = (),
) -> List[FeaturedLine]:
    """Measure the feature vector of every raw line.

    Parallel and perpendicular counts start at zero; they are filled in by
    context analysis once all lines are classified.
    """
    featured = []
    for i, raw in enumerate(raw_lines):
        samples = sample_line(intensity, raw.start, raw.end)
        gaps = find_gaps(samples)
        points = raw.points or (raw.start, raw.end)

        features = LineFeatures(
            thickness=estimate_thickness(intensity, raw.start, raw.end),
            style=detect_line_style(gaps),
            intensity=float(np.mean(255.0 - samples) / 255.0),
            straightness=calculate_straightness(points, raw.start, raw.end),
            continuity=max(0.0, 1.0 - sum(gaps) / len(samples)),
            nearby_text=_near_text(raw.start, raw.end, text_regions),
            junction_count=_count_junctions(i, raw_lines),
        )
        featured.append(
            FeaturedLine(
                id=f"line_{i}",
                start=raw.start,
                end=raw.end,
                length=raw.length,
                angle=raw.angle,
                features=features,
            )
        )
    return featured


def ml_features(line: FeaturedLine) -> List[float]:
    """The 15-value input vector of the line type network."""
    f = line.features
    return [
        line.length / 1000.0,
        f.thickness / 10.0,
        f.intensity,
        f.straightness,
        f.continuity,
        line.angle / math.pi,
        1.0 if f.style == LineStyle.SOLID else 0.0,
        1.0 if f.style == LineStyle.DASHED else 0.0,
        1.0 if f.style == LineStyle.DOTTED else 0.0,
        1.0 if f.nearby_text else 0.0,
        1.0 if f.nearby_symbols else 0.0,
        f.parallel_lines / 10.0,
        f.perpendicular_lines / 10.0,
        f.junction_count / 10.0,
        f.corner_count / 10.0,
    ]


# Classification


class LineTypeNetwork:
    """Feed-forward classifier: 15 -> 32 -> 16 -> len(LineType), ReLU and softmax."""

    LAYER_SIZES = (NUM_FEATURES, 32, 16, len(LineType))

    def __init__(self, weights: Sequence[np.ndarray], biases: Sequence[np.ndarray]):
        if len(weights) != 3 or len(biases) != 3:
            raise ValueError("expected three dense layers")
        self.weights = [np.asarray(w, dtype=np.float64) for w in weights]
        self.biases = [np.asarray(b, dtype=np.float64) for b in biases]
        for k, (w, b) in enumerate(zip(self.weights, self.biases)):
            expected = (self.LAYER_SIZES[k], self.LAYER_SIZES[k + 1])
            if w.shape != expected or b.shape != (expected[1],):
                raise ValueError(f"layer {k} has shape {w.shape}, expected {expected}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LineTypeNetwork":
        """Load weights saved with :meth:`save` (keys w0..w2, b0..b2)."""
        with np.load(path) as data:
            weights = [data[f"w{k}"] for k in range(3)]
            biases = [data[f"b{k}"] for k in range(3)]
        return cls(weights, biases)

    @classmethod
    def random(cls, seed: int = 0) -> "LineTypeNetwork":
        """Untrained network with small random weights."""
        rng = np.random.default_rng(seed)
        sizes = cls.LAYER_SIZES
        weights = [rng.normal(0.0, 0.1, (sizes[k], sizes[k + 1])) for k in range(3)]
        biases = [np.zeros(sizes[k + 1]) for k in range(3)]
        return cls(weights, biases)

    def save(self, path: Union[str, Path]) -> None:
        arrays = {f"w{k}": w for k, w in enumerate(self.weights)}
        arrays.update({f"b{k}": b for k, b in enumerate(self.biases)})
        np.savez(path, **arrays)

    def predict(self, features: np.ndarray) -> np.ndarray:
        """Class probabilities, one row per input row."""
        x = np.atleast_2d(np.asarray(features, dtype=np.float64))
        x = np.maximum(0.0, x @ self.weights[0] + self.biases[0])
        x = np.maximum(0.0, x @ self.weights[1] + self.biases[1])
        logits = x @ self.weights[2] + self.biases[2]
        logits -= logits.max(axis=1, keepdims=True)
        exp = np.exp(logits)
        return exp / exp.sum(axis=1, keepdims=True)


def classify_with_heuristics(lines: Sequence[FeaturedLine]) -> List[ClassifiedLine]:
    """Rule-based classification; always available."""
    classified = []
    for line in lines:
        f = line.features
        line_type = LineType.UNKNOWN
        confidence = 0.5

        if f.thickness > 2 and line.length > 50 and f.straightness > 0.8:
            line_type = LineType.WALL
            confidence = 0.8
        elif f.style == LineStyle.DASHED and f.nearby_text:
            line_type = LineType.DIMENSION
            confidence = 0.7
        elif f.thickness < 2 and f.nearby_text:
            line_type = LineType.ANNOTATION
            confidence = 0.6
        elif f.style == LineStyle.DOTTED and f.parallel_lines > 2:
            line_type = LineType.GRID_LINE
            confidence = 0.7

        classified.append(ClassifiedLine(line=line, type=line_type, confidence=confidence))
    return classified


def classify_with_network(lines: Sequence[FeaturedLine], network: LineTypeNetwork) -> List[ClassifiedLine]:
    if not lines:
        return []
    probabilities = network.predict(np.array([ml_features(line) for line in lines]))
    types = list(LineType)

    classified = []
    for line, row in zip(lines, probabilities):
        best = int(np.argmax(row))
        confidence = float(min(1.0, max(0.0, row[best])))
        classified.append(ClassifiedLine(line=line, type=types[best], confidence=confidence))
    return classified


def undirected_angle_difference(a: float, b: float) -> float:
    """Difference between two line directions, ignoring orientation; in [0, pi/2]."""
    diff = abs(a - b) % math.pi
    return min(diff, math.pi - diff)


def _is_parallel(diff: float) -> bool:
    return diff < ANGLE_TOLERANCE


def _is_perpendicular(diff: float) -> bool:
    return abs(diff - math.pi / 2) < ANGLE_TOLERANCE


def apply_context_analysis(lines: Sequence[ClassifiedLine]) -> List[ClassifiedLine]:
    """Count parallel and perpendicular neighbours and promote wall-like unknowns.

    An unknown line with more than three parallel neighbours becomes a wall
    with its confidence raised by 0.2, capped at 0.9.
    """
    parallel = [0] * len(lines)
    perpendicular = [0] * len(lines)
    for i in range(len(lines)):
        for j in range(i + 1, len(lines)):
            diff = undirected_angle_difference(lines[i].angle, lines[j].angle)
            if _is_parallel(diff):
                parallel[i] += 1
                parallel[j] += 1
            if _is_perpendicular(diff):
                perpendicular[i] += 1
                perpendicular[j] += 1

    updated = []
    for line, n_parallel, n_perpendicular in zip(lines, parallel, perpendicular):
        features = replace(line.features, parallel_lines=n_parallel, perpendicular_lines=n_perpendicular)
        line_type = line.type
        confidence = line.confidence
        if n_parallel > 3 and line_type == LineType.UNKNOWN:
            line_type = LineType.WALL
            confidence = min(0.9, confidence + 0.2)
        updated.append(
            ClassifiedLine(line=replace(line.line, features=features), type=line_type, confidence=confidence)
        )
    return updated


def filter_lines(
    lines: Sequence[ClassifiedLine],
    confidence_threshold: float = 0.5,
    min_length: float = 10.0,
) -> List[ClassifiedLine]:
    """Keep lines with confidence >= threshold and length >= min_length."""
    return [line for line in lines if line.confidence >= confidence_threshold and line.length >= min_length]


# statistics keys in report order
STATISTIC_TYPES = (
    ("wall_lines", LineType.WALL),
    ("dimension_lines", LineType.DIMENSION),
    ("annotation_lines", LineType.ANNOTATION),
    ("unknown_lines", LineType.UNKNOWN),
)


def calculate_statistics(lines: Sequence[ClassifiedLine]) -> Dict[str, int]:
    stats = {
        "total_lines": len(lines),
        "wall_lines": 0,
        "dimension_lines": 0,
        "annotation_lines": 0,
        "unknown_lines": 0,
    }
    for line in lines:
        if line.type == LineType.WALL:
            stats["wall_lines"] += 1
        elif line.type == LineType.DIMENSION:
            stats["dimension_lines"] += 1
        elif line.type == LineType.ANNOTATION:
            stats["annotation_lines"] += 1
        else:
            stats["unknown_lines"] += 1
    return stats


def _mostly_masked(raw: RawLine, mask: np.ndarray, share: float = 0.5) -> bool:
    points = raw.points or ((int(raw.start[0]), int(raw.start[1])),)
    inside = sum(1 for x, y in points if mask[y, x])
    return inside > share * len(points)


class LineClassifier:
    """Detects lines on a plan and assigns each a semantic type.

    Args:
        network: Optional trained line type network; heuristic rules are used
            when it is missing or fails
    """

    def __init__(self, network: Optional[LineTypeNetwork] = None):
        self.network = network

    def classify(
        self,
        raster: RasterBuffer,
        text_regions: Sequence[TextRegion] = (),
        text_mask: Optional[np.ndarray] = None,
        raw_lines: Optional[Sequence[RawLine]] = None,
        use_context_analysis: bool = True,
        confidence_threshold: float = 0.5,
        min_line_length: float = 10.0,
    ) -> ClassificationResult:
        """Detect, describe and classify the lines of a grayscale raster.

        Args:
            raster: Grayscale raster
            text_regions: Text found on the plan, used for the nearby-text feature
            text_mask: Optional boolean mask; lines mostly inside it are dropped
            raw_lines: Pre-detected lines; detected from the raster when None
            use_context_analysis: Whether to apply parallel/perpendicular analysis
            confidence_threshold: Lines below this confidence are dropped
            min_line_length: Lines shorter than this are dropped

        Returns:
            ClassificationResult with the kept lines, their mean confidence
            and per-type counts
        """
        if raw_lines is None:
            raw_lines = detect_raw_lines(raster)
        if text_mask is not None:
            raw_lines = [raw for raw in raw_lines if not _mostly_masked(raw, text_mask)]

        featured = extract_features(raster.intensity(), raw_lines, text_regions)

        classified = None
        if self.network is not None:
            try:
                classified = classify_with_network(featured, self.network)
            except ValueError as exc:
                logger.warning("Line network failed, using heuristics: %s", exc)
        if classified is None:
            classified = classify_with_heuristics(featured)

        if use_context_analysis:
            classified = apply_context_analysis(classified)

        kept = filter_lines(classified, confidence_threshold, min_line_length)
        confidence = sum(line.confidence for line in kept) / len(kept) if kept else 0.0
        stats = calculate_statistics(kept)
        logger.debug("Classified %d lines, kept %d: %s", len(classified), len(kept), stats)
        return ClassificationResult(lines=kept, confidence=confidence, statistics=stats)


def load_line_network(path: Union[str, Path]) -> LineTypeNetwork:
    """Load network weights, reporting unreadable files as a stage failure."""
    try:
        return LineTypeNetwork.load(path)
    except (OSError, KeyError, ValueError) as exc:
        raise StageFailure(f"could not load line model from {path}: {exc}", stage="line_classification") from exc

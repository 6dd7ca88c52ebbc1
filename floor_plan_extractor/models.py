"""Data models for floor plan extraction."""

import json
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

Point = Tuple[float, float]


class Unit(str, Enum):
    MILLIMETER = "mm"
    CENTIMETER = "cm"
    METER = "m"
    INCH = "in"
    FOOT = "ft"
    YARD = "yd"


class ScaleType(str, Enum):
    ARCHITECTURAL = "architectural"  # 1:50, 1:100
    ENGINEERING = "engineering"  # 1:20, 1:40
    METRIC = "metric"  # 1:500, 1:1000
    IMPERIAL = "imperial"  # 1/4"=1'
    CUSTOM = "custom"


class BlueprintType(str, Enum):
    FLOOR_PLAN = "floor_plan"
    ELEVATION = "elevation"
    HAND_DRAWN = "hand_drawn"
    UNKNOWN = "unknown"


class StageStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class FallbackMode(str, Enum):
    LEGACY = "legacy"  # fixed default layout
    PARTIAL = "partial"  # keep whatever completed


class BoundingBox(BaseModel):
    """Axis-aligned pixel rectangle."""

    model_config = ConfigDict(frozen=True)

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom


class Room(BaseModel):
    """A detected room, in model coordinates centred on the image."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: str
    color: str
    vertices: List[Point]
    center: Point
    area: float = 0.0  # pixel count of the filled region
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    real_area: Optional[float] = None  # in square units of ``real_unit``
    real_unit: Optional[Unit] = None

    @field_validator("vertices")
    @classmethod
    def _check_polygon(cls, vertices: List[Point]) -> List[Point]:
        if len(vertices) < 3:
            raise ValueError("a room polygon needs at least 3 vertices")
        return vertices


class Wall(BaseModel):
    """A straight wall segment."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    start: Point
    end: Point
    length: float
    angle: float
    thickness: float = 4.0
    height: float = 2.4  # default ceiling height in metres
    type: str = "interior"
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    real_length: Optional[float] = None
    real_unit: Optional[Unit] = None

    @classmethod
    def between(cls, start: Point, end: Point, **kwargs: Any) -> "Wall":
        """Build a wall from two endpoints, deriving length and angle."""
        dx = end[0] - start[0]
        dy = end[1] - start[1]
        return cls(
            start=start,
            end=end,
            length=math.hypot(dx, dy),
            angle=math.atan2(dy, dx),
            **kwargs,
        )


class TextRegion(BaseModel):
    """A piece of text found on the plan. The text itself is opaque."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    confidence: float = Field(ge=0.0, le=1.0)
    bbox: BoundingBox
    font_size: float = 8.0
    rotation: float = 0.0
    is_dimension: bool = False
    is_annotation: bool = False
    is_label: bool = False


class ScaleReference(BaseModel):
    """An observed pixel-length to real-length correspondence."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str  # scale_bar, dimension, grid
    pixel_length: float
    real_length: float
    unit: Unit
    confidence: float = Field(ge=0.0, le=1.0)
    position: Point = (0.0, 0.0)
    orientation: float = 0.0


class Dimension(BaseModel):
    """A dimension annotation paired with the line it measures."""

    model_config = ConfigDict(frozen=True)

    id: str
    value: float
    unit: Unit
    pixel_length: float
    start: Point
    end: Point
    text_position: Point
    confidence: float = Field(ge=0.0, le=1.0)
    orientation: str  # horizontal, vertical, diagonal


class Scale(BaseModel):
    """Scale information for the floor plan."""

    model_config = ConfigDict(frozen=True)

    ratio: float  # pixels per unit
    unit: Unit
    type: ScaleType = ScaleType.CUSTOM
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    references: List[ScaleReference] = Field(default_factory=list)
    standard_scale: Optional[str] = None  # e.g. "1:50"

    @property
    def units_per_pixel(self) -> float:
        return 1.0 / self.ratio

    @property
    def units2_per_pixel2(self) -> float:
        """Square units per square pixel."""
        return self.units_per_pixel ** 2


class ProcessingStage(BaseModel):
    """Status record for one pipeline stage."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    description: str = ""
    status: StageStatus = StageStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    error: Optional[str] = None
    duration: Optional[float] = None  # seconds


class PipelineResult(BaseModel):
    """The structured model handed to 3D generation and UI collaborators."""

    rooms: List[Room] = Field(default_factory=list)
    walls: List[Wall] = Field(default_factory=list)
    doors: List[Dict[str, Any]] = Field(default_factory=list)  # reserved
    windows: List[Dict[str, Any]] = Field(default_factory=list)  # reserved
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    stages: List[ProcessingStage] = Field(default_factory=list)
    scale: Optional[Scale] = None
    text_regions: List[TextRegion] = Field(default_factory=list)
    blueprint_type: BlueprintType = BlueprintType.UNKNOWN
    input_format: Optional[str] = None
    used_fallback: bool = False
    stats: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    processing_time: float = 0.0


@dataclass
class PipelineOptions:
    """Tunable parameters for a pipeline run."""

    max_dimension: int = 800
    blur_radius: int = 2
    enhance_contrast: bool = False
    denoise: bool = False
    morphology_kernel: int = 3
    contour_threshold: int = 128
    contour_stride: int = 8
    max_contours: int = 100
    simplify_tolerance: float = 5.0
    min_wall_length: float = 20.0
    merge_collinear_walls: bool = True
    room_threshold: int = 200
    room_stride: int = 15
    min_room_area: int = 1000
    max_room_area: int = 30000
    max_rooms: int = 20
    coordinate_scale: float = 0.5
    enable_text_filtering: bool = True
    enable_ocr: bool = True
    remove_text: bool = True
    preserve_dimensions: bool = False
    enable_line_classification: bool = True
    use_context_analysis: bool = True
    line_confidence_threshold: float = 0.5
    min_line_length: float = 10.0
    auto_detect_scale: bool = True
    expected_unit: Optional[Unit] = None
    expected_scale_type: Optional[ScaleType] = None
    fallback_mode: FallbackMode = FallbackMode.LEGACY
    pixel_space_walls: bool = False  # walls are otherwise mapped into the rooms' model space

    def to_json(self) -> str:
        """Stable JSON form, used for cache keys."""
        return json.dumps(asdict(self), sort_keys=True, default=str)

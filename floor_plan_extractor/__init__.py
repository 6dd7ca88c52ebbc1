"""Extract rooms and walls from raster floor plans."""

from .analyzer import PipelineOrchestrator, run_pipeline
from .errors import FloorPlanError, InputError, PipelineCancelled, StageFailure
from .models import PipelineOptions, PipelineResult, Room, Scale, TextRegion, Wall
from .raster import RasterBuffer, load_raster

__version__ = "0.1.0"
__all__ = [
    "PipelineOrchestrator",
    "run_pipeline",
    "PipelineOptions",
    "PipelineResult",
    "RasterBuffer",
    "load_raster",
    "Room",
    "Wall",
    "Scale",
    "TextRegion",
    "FloorPlanError",
    "InputError",
    "StageFailure",
    "PipelineCancelled",
]

"""Exception types raised by the floor plan extraction pipeline."""


class FloorPlanError(Exception):
    """Base class for all floor plan extraction errors."""


class InputError(FloorPlanError, ValueError):
    """The input raster is empty or malformed."""


class StageFailure(FloorPlanError):
    """A pipeline stage could not complete.

    Caught by the orchestrator, recorded in the result's ``errors`` and
    answered with the configured fallback.
    """

    def __init__(self, message: str, stage: str = ""):
        super().__init__(message)
        self.stage = stage


class PipelineCancelled(FloorPlanError):
    """The caller requested cancellation between two stages."""

"""Coarse blueprint type detection."""

import logging
from typing import Dict, Tuple

import cv2
import numpy as np

from .models import BlueprintType
from .raster import RasterBuffer

logger = logging.getLogger(__name__)

TRANSITION_STEP = 50


def count_transitions(intensity: np.ndarray, step: int = TRANSITION_STEP) -> int:
    """Interior pixels whose right or lower neighbour differs by more than ``step``."""
    values = intensity.astype(np.int16)
    right = np.abs(values[1:-1, 1:-1] - values[1:-1, 2:]) > step
    below = np.abs(values[1:-1, 1:-1] - values[2:, 1:-1]) > step
    return int(np.count_nonzero(right | below))


def count_rectangles(intensity: np.ndarray, min_area: float = 100.0) -> int:
    """Closed four-sided outlines among the dark strokes."""
    _, binary = cv2.threshold(intensity, 128, 255, cv2.THRESH_BINARY_INV)
    contours, _ = cv2.findContours(binary, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)

    count = 0
    for contour in contours:
        if cv2.contourArea(contour) < min_area:
            continue
        approx = cv2.approxPolyDP(contour, 0.02 * cv2.arcLength(contour, True), True)
        if len(approx) == 4 and cv2.isContourConvex(approx):
            count += 1
    return count


def extract_image_features(raster: RasterBuffer) -> Dict[str, int]:
    intensity = np.ascontiguousarray(raster.intensity())
    return {
        "transitions": count_transitions(intensity),
        "rectangles": count_rectangles(intensity),
    }


def detect_blueprint_type(raster: RasterBuffer) -> Tuple[BlueprintType, float]:
    """Guess what kind of drawing a raster holds.

    Returns:
        (blueprint type, confidence); blank rasters are UNKNOWN
    """
    features = extract_image_features(raster)
    transitions = features["transitions"]

    if transitions > 1000 and features["rectangles"] > 5:
        blueprint_type, confidence = BlueprintType.FLOOR_PLAN, 0.8
    elif transitions >= 500:
        blueprint_type, confidence = BlueprintType.ELEVATION, 0.5
    elif transitions > 0:
        blueprint_type, confidence = BlueprintType.HAND_DRAWN, 0.5
    else:
        blueprint_type, confidence = BlueprintType.UNKNOWN, 0.0

    logger.debug("Blueprint type %s from %s", blueprint_type.value, features)
    return blueprint_type, confidence

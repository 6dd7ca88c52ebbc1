"""Shared test fixtures: synthetic plan rasters and a scripted OCR engine."""

from typing import List

import numpy as np
import pytest

from floor_plan_extractor.models import BoundingBox
from floor_plan_extractor.raster import RasterBuffer
from floor_plan_extractor.text_filter import OCRWord


def _rgba(gray: np.ndarray) -> RasterBuffer:
    pixels = np.empty(gray.shape + (4,), dtype=np.uint8)
    pixels[:, :, :3] = gray[:, :, None]
    pixels[:, :, 3] = 255
    return RasterBuffer(pixels)


def _outlined_box(gray: np.ndarray, x: int, y: int, size: int = 50, border: int = 3) -> None:
    gray[y:y + size, x:x + size] = 0
    gray[y + border:y + size - border, x + border:x + size - border] = 255


class ScriptedOCREngine:
    """Returns the same words for every raster it is shown."""

    def __init__(self, words: List[OCRWord]):
        self.words = words
        self.calls = 0

    def recognize(self, raster: RasterBuffer) -> List[OCRWord]:
        self.calls += 1
        return list(self.words)


@pytest.fixture()
def blank_plan() -> RasterBuffer:
    """An all-white 800x600 RGBA raster with no structure at all."""
    return _rgba(np.full((600, 800), 255, dtype=np.uint8))


@pytest.fixture()
def two_room_plan() -> RasterBuffer:
    """Two 50x50 rooms with 3 px black borders, 70 px apart, on white.

    Rooms sit at (40, 40) and (160, 40) on a 300x200 sheet.
    """
    gray = np.full((200, 300), 255, dtype=np.uint8)
    _outlined_box(gray, 40, 40)
    _outlined_box(gray, 160, 40)
    return _rgba(gray)


@pytest.fixture()
def scale_bar_plan() -> RasterBuffer:
    """A 100 px long, 4 px thick black bar on row 50 of a 300x200 sheet."""
    gray = np.full((200, 300), 255, dtype=np.uint8)
    gray[48:52, 50:150] = 0
    return _rgba(gray)


@pytest.fixture()
def scale_bar_label() -> BoundingBox:
    """Box of the "5m" label printed just under the scale bar."""
    return BoundingBox(x=90, y=56, width=20, height=10)


@pytest.fixture()
def scale_bar_ocr(scale_bar_label) -> ScriptedOCREngine:
    return ScriptedOCREngine([OCRWord(text="5m", confidence=95, bbox=scale_bar_label)])

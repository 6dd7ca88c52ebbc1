"""Raster buffer wrapping the pixel grid each stage works on."""

import logging
from pathlib import Path
from typing import Tuple, Union

import cv2
import numpy as np

from .errors import InputError

logger = logging.getLogger(__name__)


class RasterBuffer:
    """A width×height grid of RGBA or grayscale ``uint8`` pixels.

    The buffer is mutable; each stage works on its own copy so exactly one
    stage mutates a given buffer at a time.
    """

    def __init__(self, pixels: np.ndarray):
        if not isinstance(pixels, np.ndarray):
            raise InputError("raster pixels must be a numpy array")
        if pixels.dtype != np.uint8:
            raise InputError(f"raster pixels must be uint8, got {pixels.dtype}")
        if pixels.ndim == 3 and pixels.shape[2] != 4:
            raise InputError(f"expected 4 channels (RGBA), got {pixels.shape[2]}")
        if pixels.ndim not in (2, 3):
            raise InputError(f"raster must be 2D or 3D, got {pixels.ndim} dimensions")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise InputError("raster is empty")
        self.pixels = pixels

    @classmethod
    def from_rgba_bytes(cls, width: int, height: int, data: bytes) -> "RasterBuffer":
        """Build a raster from tightly packed RGBA bytes."""
        if width <= 0 or height <= 0:
            raise InputError(f"invalid raster size {width}x{height}")
        expected = width * height * 4
        if len(data) != expected:
            raise InputError(f"expected {expected} RGBA bytes, got {len(data)}")
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(height, width, 4)
        return cls(pixels.copy())

    @classmethod
    def from_array(cls, array: np.ndarray) -> "RasterBuffer":
        """Build a raster from a grayscale, RGB or RGBA array."""
        array = np.asarray(array)
        if array.dtype != np.uint8:
            array = np.clip(array, 0, 255).astype(np.uint8)
        if array.ndim == 3 and array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        return cls(array.copy())

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    @property
    def is_grayscale(self) -> bool:
        return self.pixels.ndim == 2

    @property
    def channels(self) -> int:
        return 1 if self.is_grayscale else 4

    def intensity(self) -> np.ndarray:
        """Red channel (the intensity of a grayscale image) as a 2D view."""
        if self.is_grayscale:
            return self.pixels
        return self.pixels[:, :, 0]

    def get_pixel(self, x: int, y: int) -> Union[int, Tuple[int, ...]]:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height}")
        value = self.pixels[y, x]
        if self.is_grayscale:
            return int(value)
        return tuple(int(v) for v in value)

    def set_pixel(self, x: int, y: int, value: Union[int, Tuple[int, ...]]) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"pixel ({x}, {y}) outside {self.width}x{self.height}")
        if self.is_grayscale or isinstance(value, (tuple, list)):
            self.pixels[y, x] = value
        else:
            self.pixels[y, x, :3] = value

    def region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Copy of a rectangular region, clipped to the raster bounds."""
        x1 = max(0, x)
        y1 = max(0, y)
        x2 = min(self.width, x + width)
        y2 = min(self.height, y + height)
        return self.pixels[y1:y2, x1:x2].copy()

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self.pixels.copy())

    def to_rgba(self) -> "RasterBuffer":
        if not self.is_grayscale:
            return self.copy()
        return RasterBuffer(cv2.cvtColor(self.pixels, cv2.COLOR_GRAY2RGBA))

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


def load_raster(image_path: Union[str, Path]) -> RasterBuffer:
    """Load an image from disk as an RGBA raster.

    Args:
        image_path: Path to the image file

    Returns:
        RasterBuffer in RGBA order
    """
    img = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if img is None:
        raise InputError(f"Could not load image from {image_path}")

    if img.ndim == 2:
        rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
    elif img.shape[2] == 4:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)

    if rgba.dtype != np.uint8:
        # 16-bit PNG/TIFF scans
        rgba = (rgba / 257).astype(np.uint8)

    return RasterBuffer(rgba)


def downscale_to_max_dimension(raster: RasterBuffer, max_dimension: int = 800) -> RasterBuffer:
    """Shrink a raster so neither side exceeds ``max_dimension``.

    This is the only resize in the pipeline; it caps the cost of every
    later stage. Rasters already within bounds are returned as copies.
    """
    longest = max(raster.width, raster.height)
    if longest <= max_dimension:
        return raster.copy()

    factor = max_dimension / float(longest)
    new_w = max(1, int(raster.width * factor))
    new_h = max(1, int(raster.height * factor))
    logger.debug("Downscaling %dx%d -> %dx%d", raster.width, raster.height, new_w, new_h)
    resized = cv2.resize(raster.pixels, (new_w, new_h), interpolation=cv2.INTER_AREA)
    return RasterBuffer(resized)

"""Morphological clean-up of edge maps."""

import cv2
import numpy as np

from .raster import RasterBuffer


def _square(kernel_size: int) -> np.ndarray:
    if kernel_size < 1:
        raise ValueError(f"kernel size must be at least 1, got {kernel_size}")
    return np.ones((kernel_size, kernel_size), np.uint8)


def _apply(raster: RasterBuffer, op, kernel_size: int) -> RasterBuffer:
    result = op(raster.intensity(), _square(kernel_size), borderType=cv2.BORDER_REPLICATE)

    pixels = np.empty((raster.height, raster.width, 4), dtype=np.uint8)
    pixels[:, :, 0] = result
    pixels[:, :, 1] = result
    pixels[:, :, 2] = result
    pixels[:, :, 3] = 255
    return RasterBuffer(pixels)


def dilate(raster: RasterBuffer, kernel_size: int = 3) -> RasterBuffer:
    """Maximum intensity over a square neighbourhood."""
    return _apply(raster, cv2.dilate, kernel_size)


def erode(raster: RasterBuffer, kernel_size: int = 3) -> RasterBuffer:
    """Minimum intensity over a square neighbourhood."""
    return _apply(raster, cv2.erode, kernel_size)


def morphological_close(raster: RasterBuffer, kernel_size: int = 3) -> RasterBuffer:
    """Dilation followed by erosion: bridges small gaps in edges."""
    return erode(dilate(raster, kernel_size), kernel_size)


def morphological_open(raster: RasterBuffer, kernel_size: int = 3) -> RasterBuffer:
    """Erosion followed by dilation: removes speckle noise."""
    return dilate(erode(raster, kernel_size), kernel_size)

"""Sobel edge detection."""

import cv2
import numpy as np

from .raster import RasterBuffer


def sobel_gradients(intensity: np.ndarray) -> np.ndarray:
    """Sobel gradient magnitude of a 2D intensity array.

    Border rows and columns are zero; the magnitude is clamped to 255.
    """
    values = intensity.astype(np.float64)
    gx = cv2.Sobel(values, cv2.CV_64F, 1, 0, ksize=3)
    gy = cv2.Sobel(values, cv2.CV_64F, 0, 1, ksize=3)
    magnitude = np.minimum(255.0, np.sqrt(gx ** 2 + gy ** 2))

    # no wraparound or clamped samples at the border
    magnitude[0, :] = 0
    magnitude[-1, :] = 0
    magnitude[:, 0] = 0
    magnitude[:, -1] = 0
    return magnitude.astype(np.uint8)


def sobel_magnitude(raster: RasterBuffer) -> RasterBuffer:
    """Edge map of a grayscale raster.

    Reads the red channel only; the image is assumed grayscale by now.

    Args:
        raster: Grayscale raster

    Returns:
        RGBA raster with R = G = B = edge strength and opaque alpha
    """
    magnitude = sobel_gradients(raster.intensity())

    pixels = np.empty((raster.height, raster.width, 4), dtype=np.uint8)
    pixels[:, :, 0] = magnitude
    pixels[:, :, 1] = magnitude
    pixels[:, :, 2] = magnitude
    pixels[:, :, 3] = 255
    return RasterBuffer(pixels)

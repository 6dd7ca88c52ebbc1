"""Image preprocessing for floor plan analysis."""

import logging

import cv2
import numpy as np

from .raster import RasterBuffer

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _rgba(raster: RasterBuffer) -> np.ndarray:
    if raster.is_grayscale:
        return raster.to_rgba().pixels
    return raster.pixels.copy()


def to_grayscale(raster: RasterBuffer) -> RasterBuffer:
    """Convert a raster to grayscale with fixed luminance weights.

    The result keeps the RGBA layout with R = G = B so later stages can read
    any colour channel as intensity. Alpha is preserved.
    """
    pixels = _rgba(raster)
    r, g, b = (pixels[:, :, i].astype(np.float64) for i in range(3))
    gray = _to_uint8(LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b)

    pixels[:, :, 0] = gray
    pixels[:, :, 1] = gray
    pixels[:, :, 2] = gray
    return RasterBuffer(pixels)


def gaussian_kernel(radius: int) -> np.ndarray:
    """Generate a normalised 2D Gaussian kernel.

    Args:
        radius: Kernel radius; the kernel is (2 * radius + 1) square

    Returns:
        Kernel whose entries sum to 1, with sigma = radius / 3
    """
    if radius <= 0:
        raise ValueError(f"kernel radius must be positive, got {radius}")

    sigma = radius / 3.0
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    xx, yy = np.meshgrid(offsets, offsets)
    kernel = np.exp(-(xx ** 2 + yy ** 2) / (2.0 * sigma ** 2))
    return kernel / kernel.sum()


def gaussian_blur(raster: RasterBuffer, radius: int = 2) -> RasterBuffer:
    """Blur every channel with an edge-clamped Gaussian kernel."""
    kernel = gaussian_kernel(radius)
    pixels = raster.pixels.astype(np.float32)
    blurred = cv2.filter2D(pixels, -1, kernel.astype(np.float32), borderType=cv2.BORDER_REPLICATE)
    return RasterBuffer(_to_uint8(blurred))


def equalize_histogram(raster: RasterBuffer) -> RasterBuffer:
    """Stretch contrast by remapping intensities through their CDF.

    The intensity channel is equalised and written back to R, G and B.
    """
    pixels = _rgba(raster)
    intensity = pixels[:, :, 0]

    histogram = np.bincount(intensity.ravel(), minlength=256)
    cdf = np.cumsum(histogram).astype(np.float64)
    lookup = _to_uint8(cdf / intensity.size * 255.0)

    equalized = lookup[intensity]
    pixels[:, :, 0] = equalized
    pixels[:, :, 1] = equalized
    pixels[:, :, 2] = equalized
    return RasterBuffer(pixels)


def median_filter(raster: RasterBuffer, size: int = 3) -> RasterBuffer:
    """Per-channel median filter with edge-clamped borders."""
    # medianBlur replicates border pixels
    return RasterBuffer(cv2.medianBlur(raster.pixels, size))


def preprocess_raster(
    raster: RasterBuffer,
    blur_radius: int = 2,
    enhance_contrast: bool = False,
    denoise: bool = False,
) -> RasterBuffer:
    """Complete preprocessing for structural analysis.

    Args:
        raster: Input RGBA raster
        blur_radius: Gaussian blur radius (0 disables blurring)
        enhance_contrast: Whether to apply histogram equalisation
        denoise: Whether to apply a 3x3 median filter

    Returns:
        Grayscale raster (R = G = B) with values in [0, 255]
    """
    processed = gaussian_blur(raster, blur_radius) if blur_radius > 0 else raster.copy()
    processed = to_grayscale(processed)

    if enhance_contrast:
        processed = equalize_histogram(processed)
    if denoise:
        processed = median_filter(processed)

    logger.debug(
        "Preprocessed %dx%d raster (blur=%d, contrast=%s, denoise=%s)",
        raster.width, raster.height, blur_radius, enhance_contrast, denoise,
    )
    return processed


def preprocess_for_ocr(raster: RasterBuffer) -> RasterBuffer:
    """Grayscale, contrast enhancement and noise reduction ahead of OCR."""
    return median_filter(equalize_histogram(to_grayscale(raster)))

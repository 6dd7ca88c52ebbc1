"""Tests for the raster buffer."""

import cv2
import numpy as np
import pytest

from floor_plan_extractor.errors import InputError
from floor_plan_extractor.raster import RasterBuffer, downscale_to_max_dimension, load_raster


def test_rejects_malformed_pixels():
    """Test validation of pixel arrays."""
    with pytest.raises(InputError):
        RasterBuffer(np.zeros((10, 10, 4), dtype=np.float32))
    with pytest.raises(InputError):
        RasterBuffer(np.zeros((10, 10, 3), dtype=np.uint8))
    with pytest.raises(InputError):
        RasterBuffer(np.zeros((0, 10), dtype=np.uint8))


def test_from_rgba_bytes():
    """Test building a raster from packed RGBA bytes."""
    data = bytes([10, 20, 30, 255] * 6)
    raster = RasterBuffer.from_rgba_bytes(3, 2, data)

    assert raster.width == 3
    assert raster.height == 2
    assert raster.get_pixel(2, 1) == (10, 20, 30, 255)

    with pytest.raises(InputError):
        RasterBuffer.from_rgba_bytes(3, 2, data[:-1])


def test_from_array_adds_alpha():
    """Test that RGB arrays gain an opaque alpha channel."""
    raster = RasterBuffer.from_array(np.zeros((4, 5, 3), dtype=np.uint8))

    assert raster.channels == 4
    assert raster.pixels[:, :, 3].min() == 255


def test_pixel_access():
    """Test reading and writing pixels."""
    raster = RasterBuffer(np.full((4, 4), 255, dtype=np.uint8))
    raster.set_pixel(1, 2, 7)

    assert raster.get_pixel(1, 2) == 7
    assert raster.intensity()[2, 1] == 7
    with pytest.raises(IndexError):
        raster.get_pixel(4, 0)


def test_region_is_clipped():
    """Test that region extraction clips to the raster."""
    raster = RasterBuffer(np.zeros((10, 10), dtype=np.uint8))

    assert raster.region(-5, -5, 10, 10).shape == (5, 5)
    assert raster.region(8, 8, 10, 10).shape == (2, 2)


def test_downscale_caps_longest_side():
    """Test downscaling to the maximum dimension."""
    raster = RasterBuffer(np.zeros((1200, 1600, 4), dtype=np.uint8))
    small = downscale_to_max_dimension(raster, 800)

    assert (small.width, small.height) == (800, 600)


def test_downscale_leaves_small_rasters():
    """Test that rasters within bounds are copied unchanged."""
    raster = RasterBuffer(np.zeros((100, 200, 4), dtype=np.uint8))
    same = downscale_to_max_dimension(raster, 800)

    assert same is not raster
    assert np.array_equal(same.pixels, raster.pixels)


def test_load_raster(tmp_path):
    """Test loading an image from disk as RGBA."""
    image = np.zeros((20, 30, 3), dtype=np.uint8)
    image[:, :, 2] = 255  # BGR red
    path = tmp_path / "plan.png"
    cv2.imwrite(str(path), image)

    raster = load_raster(path)

    assert raster.shape == (20, 30)
    assert raster.get_pixel(0, 0) == (255, 0, 0, 255)


def test_load_raster_missing_file(tmp_path):
    """Test that unreadable images raise an input error."""
    with pytest.raises(InputError):
        load_raster(tmp_path / "missing.png")

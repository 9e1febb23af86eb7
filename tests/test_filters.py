"""Tests for the numpy pixel filters.

Where OpenCV is installed the filters are cross-checked against it.
"""

import numpy as np
import pytest

from conftest import make_buffer
from scannorm.services.filters import (
    block_downsample,
    box_blur,
    close3,
    dilate3,
    erode3,
    gaussian_blur3,
    open3,
    resize_bilinear,
    rotate_array,
    rotate_buffer,
    sobel,
    to_grayscale,
)
from scannorm.services.models import Mask


def _random_gray(seed=0, shape=(37, 53)):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=shape).astype(np.float32)


class TestGrayscale:
    def test_luma_weights(self):
        gray = to_grayscale(make_buffer(2, 2, (255, 0, 0)))
        np.testing.assert_allclose(gray, 0.299 * 255, rtol=1e-5)

    def test_ignores_alpha(self):
        buf = make_buffer(2, 2, (100, 100, 100), channels=4)
        np.testing.assert_allclose(to_grayscale(buf), 100.0, rtol=1e-5)


class TestBlockDownsample:
    def test_factor_and_mean(self):
        arr = np.arange(16, dtype=np.float32).reshape(4, 4)
        small, factor = block_downsample(arr, 2)
        assert factor == 2
        np.testing.assert_allclose(small, [[2.5, 4.5], [10.5, 12.5]])

    def test_no_change_when_small(self):
        arr = np.ones((10, 10), dtype=np.uint8)
        small, factor = block_downsample(arr, 64)
        assert factor == 1
        assert small.shape == (10, 10)

    def test_trailing_pixels_dropped(self):
        arr = np.zeros((7, 10, 3), dtype=np.uint8)
        small, factor = block_downsample(arr, 5)
        assert factor == 2
        assert small.shape == (3, 5, 3)


class TestRotation:
    def test_clockwise_quarter_turn(self):
        arr = np.array([[1, 2], [3, 4]])
        np.testing.assert_array_equal(rotate_array(arr, 90), [[3, 1], [4, 2]])

    def test_half_turn(self):
        arr = np.array([[1, 2], [3, 4]])
        np.testing.assert_array_equal(rotate_array(arr, 180), [[4, 3], [2, 1]])

    def test_full_cycle(self):
        arr = np.arange(6).reshape(2, 3)
        out = arr
        for _ in range(4):
            out = rotate_array(out, 90)
        np.testing.assert_array_equal(out, arr)

    def test_invalid_angle(self):
        with pytest.raises(ValueError):
            rotate_array(np.zeros((2, 2)), 45)

    def test_rotate_buffer_swaps_dimensions(self):
        out = rotate_buffer(make_buffer(10, 20), 270)
        assert (out.width, out.height) == (10, 20)
        assert out.data.flags["C_CONTIGUOUS"]


class TestMorphology:
    def test_dilate_single_pixel(self):
        mask = np.zeros((5, 5), dtype=bool)
        mask[2, 2] = True
        assert dilate3(mask).sum() == 9

    def test_erode_removes_single_pixel(self):
        mask = np.zeros((5, 5), dtype=bool)
        mask[2, 2] = True
        assert erode3(mask).sum() == 0

    def test_open_removes_speck_keeps_block(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[5:15, 5:15] = True
        mask[1, 18] = True
        opened = open3(mask)
        assert not opened[1, 18]
        np.testing.assert_array_equal(opened[5:15, 5:15], True)

    def test_close_fills_hole(self):
        mask = np.zeros((20, 20), dtype=bool)
        mask[5:15, 5:15] = True
        mask[9, 9] = False
        assert close3(mask)[9, 9]

    def test_mask_in_mask_out(self):
        data = np.zeros((20, 20), dtype=np.uint8)
        data[5:15, 5:15] = 1
        data[1, 18] = 1
        opened = open3(Mask(data))
        assert isinstance(opened, Mask)
        assert opened.count == 100
        assert opened.data[1, 18] == 0


class TestResize:
    def test_same_size(self):
        arr = _random_gray()
        np.testing.assert_array_equal(resize_bilinear(arr, *arr.shape), arr)

    def test_constant_stays_constant(self):
        arr = np.full((5, 7), 42.0, dtype=np.float32)
        np.testing.assert_allclose(resize_bilinear(arr, 13, 19), 42.0)

    def test_upsample_shape(self):
        assert resize_bilinear(_random_gray(), 74, 106).shape == (74, 106)


class TestBoxBlur:
    def test_constant(self):
        arr = np.full((9, 9), 10.0, dtype=np.float32)
        np.testing.assert_allclose(box_blur(arr, 5), 10.0, rtol=1e-6)

    def test_even_size_forced_odd(self):
        arr = _random_gray()
        np.testing.assert_allclose(box_blur(arr, 4), box_blur(arr, 5), rtol=1e-6)

    def test_size_one_identity(self):
        arr = _random_gray()
        np.testing.assert_array_equal(box_blur(arr, 1), arr)


class TestAgainstOpenCV:
    def test_sobel(self, real_cv2):
        gray = _random_gray(1)
        gx, gy = sobel(gray)
        ref_x = real_cv2.Sobel(gray, real_cv2.CV_32F, 1, 0, ksize=3,
                               borderType=real_cv2.BORDER_REPLICATE)
        ref_y = real_cv2.Sobel(gray, real_cv2.CV_32F, 0, 1, ksize=3,
                               borderType=real_cv2.BORDER_REPLICATE)
        np.testing.assert_allclose(gx, ref_x, atol=1e-3)
        np.testing.assert_allclose(gy, ref_y, atol=1e-3)

    def test_gaussian_blur3(self, real_cv2):
        gray = _random_gray(2)
        ref = real_cv2.GaussianBlur(gray, (3, 3), 0, borderType=real_cv2.BORDER_REPLICATE)
        np.testing.assert_allclose(gaussian_blur3(gray), ref, atol=1e-3)

    def test_box_blur(self, real_cv2):
        gray = _random_gray(3)
        ref = real_cv2.blur(gray, (7, 7), borderType=real_cv2.BORDER_REPLICATE)
        np.testing.assert_allclose(box_blur(gray, 7), ref, atol=1e-2)

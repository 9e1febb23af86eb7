"""Tests for pixel buffer and geometry models."""

import numpy as np
import pytest

from scannorm.services.models import (
    BoundaryKind,
    BoundaryResult,
    Mask,
    PixelBuffer,
    Point2D,
    Quadrilateral,
    Rectangle,
)
from scannorm.utils.exceptions import ValidationError


class TestPixelBuffer:
    def test_dimensions(self):
        buf = PixelBuffer(np.zeros((20, 30, 3), dtype=np.uint8))
        assert (buf.width, buf.height, buf.channels) == (30, 20, 3)
        assert not buf.has_alpha
        assert not buf.is_portrait

    def test_rgba(self):
        buf = PixelBuffer(np.zeros((30, 20, 4), dtype=np.uint8))
        assert buf.has_alpha
        assert buf.color.shape == (30, 20, 3)
        assert buf.is_portrait

    def test_rejects_wrong_dtype(self):
        with pytest.raises(ValidationError):
            PixelBuffer(np.zeros((4, 4, 3), dtype=np.float32))

    def test_rejects_wrong_channels(self):
        with pytest.raises(ValidationError):
            PixelBuffer(np.zeros((4, 4, 2), dtype=np.uint8))

    def test_rejects_zero_size(self):
        with pytest.raises(ValidationError):
            PixelBuffer(np.zeros((0, 4, 3), dtype=np.uint8))

    def test_from_array_expands_gray(self):
        buf = PixelBuffer.from_array(np.full((5, 6), 7, dtype=np.uint8))
        assert buf.channels == 3
        assert np.all(buf.data == 7)

    def test_with_color_keeps_alpha(self):
        arr = np.zeros((4, 4, 4), dtype=np.uint8)
        arr[:, :, 3] = 99
        out = PixelBuffer(arr).with_color(np.full((4, 4, 3), 200, dtype=np.uint8))
        assert np.all(out.data[:, :, :3] == 200)
        assert np.all(out.data[:, :, 3] == 99)

    def test_copy_is_independent(self):
        buf = PixelBuffer(np.zeros((4, 4, 3), dtype=np.uint8))
        dup = buf.copy()
        dup.data[0, 0, 0] = 255
        assert buf.data[0, 0, 0] == 0


class TestRectangle:
    def test_valid(self):
        rect = Rectangle(2, 3, 10, 5)
        assert (rect.right, rect.bottom, rect.area) == (12, 8, 50)
        assert rect.fits(12, 8)
        assert not rect.fits(11, 8)

    def test_rejects_empty(self):
        with pytest.raises(ValidationError):
            Rectangle(0, 0, 0, 5)

    def test_rejects_negative_origin(self):
        with pytest.raises(ValidationError):
            Rectangle(-1, 0, 5, 5)

    def test_from_bounds_clamps(self):
        rect = Rectangle.from_bounds(-5.5, -2.0, 120.2, 40.4, 100, 50)
        assert rect.as_tuple() == (0, 0, 100, 41)

    def test_from_bounds_floor_ceil(self):
        rect = Rectangle.from_bounds(10.7, 20.2, 30.1, 40.9, 100, 100)
        assert rect.as_tuple() == (10, 20, 21, 21)

    def test_from_bounds_outside_raises(self):
        with pytest.raises(ValidationError):
            Rectangle.from_bounds(200, 200, 300, 300, 100, 100)

    def test_is_whole(self):
        assert Rectangle.whole(8, 6).is_whole(8, 6)
        assert not Rectangle(1, 0, 7, 6).is_whole(8, 6)


class TestQuadrilateral:
    def test_from_points_shuffled(self):
        quad = Quadrilateral.from_points([(100, 100), (0, 0), (0, 100), (100, 0)])
        assert quad.top_left == Point2D(0, 0)
        assert quad.top_right == Point2D(100, 0)
        assert quad.bottom_right == Point2D(100, 100)
        assert quad.bottom_left == Point2D(0, 100)

    def test_from_points_skewed(self):
        quad = Quadrilateral.from_points([(85, 95), (10, 5), (5, 90), (90, 10)])
        assert quad.top_left == Point2D(10, 5)
        assert quad.top_right == Point2D(90, 10)
        assert quad.bottom_right == Point2D(85, 95)
        assert quad.bottom_left == Point2D(5, 90)

    def test_from_points_needs_four(self):
        with pytest.raises(ValidationError):
            Quadrilateral.from_points([(0, 0), (1, 0), (1, 1)])

    def test_area_and_edges(self):
        quad = Quadrilateral.from_points([(0, 0), (40, 0), (40, 30), (0, 30)])
        assert quad.area == pytest.approx(1200.0)
        assert quad.edge_lengths == pytest.approx((40.0, 30.0, 40.0, 30.0))

    def test_scaled(self):
        quad = Quadrilateral.from_points([(0, 0), (4, 0), (4, 3), (0, 3)]).scaled(2)
        assert quad.bottom_right == Point2D(8, 6)

    def test_bounds_clamped(self):
        quad = Quadrilateral.from_points([(-3, 2), (50, -1), (55, 40), (2, 45)])
        assert quad.bounds(50, 40).as_tuple() == (0, 0, 50, 40)


class TestMask:
    def test_from_bool(self):
        mask = Mask.from_bool(np.array([[True, False], [True, True]]))
        assert mask.count == 3
        assert (mask.width, mask.height) == (2, 2)
        assert mask.data.dtype == np.uint8

    def test_rejects_3d(self):
        with pytest.raises(ValidationError):
            Mask(np.zeros((2, 2, 1), dtype=np.uint8))


class TestBoundaryResult:
    def test_whole_frame(self):
        result = BoundaryResult.whole_frame(30, 20, background=(1, 2, 3))
        assert result.is_whole_frame
        assert result.kind is BoundaryKind.WHOLE_FRAME
        assert result.rectangle.as_tuple() == (0, 0, 30, 20)

    def test_to_dict_with_quad(self):
        quad = Quadrilateral.from_points([(0, 0), (4, 0), (4, 3), (0, 3)])
        result = BoundaryResult(
            BoundaryKind.QUAD, Rectangle(0, 0, 4, 3), quad=quad, strategy="quad"
        )
        data = result.to_dict()
        assert data["kind"] == "quad"
        assert data["quad"][2] == [4.0, 3.0]
        assert data["rectangle"] == [0, 0, 4, 3]

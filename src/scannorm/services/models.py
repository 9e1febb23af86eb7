"""
Pixel buffers and geometry types shared by the pipeline stages.

Every stage receives a PixelBuffer and returns a new one; nothing here is
mutated after construction.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

import numpy as np

from scannorm.utils.exceptions import ValidationError


@dataclass(frozen=True)
class PixelBuffer:
    """8-bit row-major image, shape (height, width, channels), 3 or 4 channels."""

    data: np.ndarray

    def __post_init__(self) -> None:
        arr = self.data
        if not isinstance(arr, np.ndarray):
            raise ValidationError("data", reason="pixel data must be a numpy array")
        if arr.dtype != np.uint8:
            raise ValidationError("data", value=str(arr.dtype), reason="expected uint8")
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValidationError(
                "data", value=str(arr.shape), reason="expected (height, width, 3|4)"
            )
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValidationError("data", value=str(arr.shape), reason="zero-sized buffer")

    @classmethod
    def from_array(cls, array: np.ndarray) -> PixelBuffer:
        """Build a buffer from an owned copy of ``array`` (grayscale is expanded)."""
        arr = np.asarray(array)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        return cls(np.ascontiguousarray(arr, dtype=np.uint8).copy())

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def channels(self) -> int:
        return int(self.data.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels == 4

    @property
    def color(self) -> np.ndarray:
        """View of the colour channels (alpha excluded)."""
        return self.data[:, :, :3]

    @property
    def is_portrait(self) -> bool:
        return self.height >= self.width

    def copy(self) -> PixelBuffer:
        return PixelBuffer(self.data.copy())

    def with_color(self, color: np.ndarray) -> PixelBuffer:
        """New buffer with ``color`` as RGB and this buffer's alpha, if any."""
        color = np.asarray(color, dtype=np.uint8)
        if not self.has_alpha:
            return PixelBuffer(np.ascontiguousarray(color))
        return PixelBuffer(np.dstack([color, self.data[:, :, 3]]))


class Point2D(NamedTuple):
    """Floating-point position in source-image pixel coordinates."""

    x: float
    y: float

    def distance_to(self, other: Point2D) -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


@dataclass(frozen=True)
class Rectangle:
    """Integer axis-aligned region; positive size, inside its frame."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValidationError(
                "rectangle", value=str(self), reason="width and height must be positive"
            )
        if self.x < 0 or self.y < 0:
            raise ValidationError("rectangle", value=str(self), reason="negative origin")

    @classmethod
    def whole(cls, width: int, height: int) -> Rectangle:
        return cls(0, 0, width, height)

    @classmethod
    def from_bounds(
        cls, x0: float, y0: float, x1: float, y1: float, frame_width: int, frame_height: int
    ) -> Rectangle:
        """Clamp float bounds ``[x0, x1) x [y0, y1)`` to the frame.

        Raises:
            ValidationError: if nothing of the bounds lies inside the frame
        """
        left = max(0, min(frame_width - 1, int(math.floor(x0))))
        top = max(0, min(frame_height - 1, int(math.floor(y0))))
        right = max(left + 1, min(frame_width, int(math.ceil(x1))))
        bottom = max(top + 1, min(frame_height, int(math.ceil(y1))))
        if x1 <= 0 or y1 <= 0 or x0 >= frame_width or y0 >= frame_height:
            raise ValidationError(
                "rectangle",
                value=f"({x0:.1f},{y0:.1f})-({x1:.1f},{y1:.1f})",
                reason="bounds lie outside the frame",
            )
        return cls(left, top, right - left, bottom - top)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def fits(self, frame_width: int, frame_height: int) -> bool:
        return self.right <= frame_width and self.bottom <= frame_height

    def is_whole(self, frame_width: int, frame_height: int) -> bool:
        return (self.x, self.y, self.width, self.height) == (0, 0, frame_width, frame_height)

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class Quadrilateral:
    """Four corners in canonical order: top-left, top-right, bottom-right, bottom-left."""

    top_left: Point2D
    top_right: Point2D
    bottom_right: Point2D
    bottom_left: Point2D

    @classmethod
    def from_points(cls, points) -> Quadrilateral:
        """Order four arbitrary points.

        Sorted by y, the first two are the top pair and the last two the
        bottom pair; each pair is then split left/right by x.
        """
        pts = [Point2D(float(p[0]), float(p[1])) for p in points]
        if len(pts) != 4:
            raise ValidationError("points", value=str(len(pts)), reason="need exactly 4 points")
        by_y = sorted(pts, key=lambda p: (p.y, p.x))
        top = sorted(by_y[:2], key=lambda p: (p.x, p.y))
        bottom = sorted(by_y[2:], key=lambda p: (p.x, p.y))
        return cls(top[0], top[1], bottom[1], bottom[0])

    @property
    def corners(self) -> tuple[Point2D, Point2D, Point2D, Point2D]:
        return (self.top_left, self.top_right, self.bottom_right, self.bottom_left)

    def as_array(self) -> np.ndarray:
        return np.array(self.corners, dtype=np.float64)

    def scaled(self, factor: float) -> Quadrilateral:
        return Quadrilateral(*(Point2D(p.x * factor, p.y * factor) for p in self.corners))

    @property
    def area(self) -> float:
        """Shoelace area (absolute)."""
        pts = self.as_array()
        x, y = pts[:, 0], pts[:, 1]
        return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)

    @property
    def edge_lengths(self) -> tuple[float, float, float, float]:
        """Top, right, bottom, left edge lengths."""
        tl, tr, br, bl = self.corners
        return (
            tl.distance_to(tr),
            tr.distance_to(br),
            bl.distance_to(br),
            tl.distance_to(bl),
        )

    def bounds(self, frame_width: int, frame_height: int) -> Rectangle:
        """Axis-aligned bounds clamped to the frame."""
        pts = self.as_array()
        return Rectangle.from_bounds(
            pts[:, 0].min(),
            pts[:, 1].min(),
            pts[:, 0].max(),
            pts[:, 1].max(),
            frame_width,
            frame_height,
        )


@dataclass(frozen=True)
class Mask:
    """Binary foreground classification, one 0/1 byte per pixel."""

    data: np.ndarray

    def __post_init__(self) -> None:
        if self.data.ndim != 2 or self.data.dtype != np.uint8:
            raise ValidationError("mask", value=str(self.data.shape), reason="expected 2-D uint8")

    @classmethod
    def from_bool(cls, array: np.ndarray) -> Mask:
        return cls(np.asarray(array, dtype=bool).astype(np.uint8))

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def count(self) -> int:
        return int(self.data.sum(dtype=np.int64))

    def as_bool(self) -> np.ndarray:
        return self.data.astype(bool)


class BoundaryKind(Enum):
    """What a boundary detector found."""

    QUAD = "quad"
    RECTANGLE = "rectangle"
    WHOLE_FRAME = "whole_frame"


@dataclass(frozen=True)
class BoundaryResult:
    """Detected document region.

    Attributes:
        kind: quad, rectangle or whole frame
        rectangle: Region bounds; the full frame for WHOLE_FRAME
        quad: Corners, only for QUAD results
        strategy: Name of the strategy that produced the result
        background: Estimated background RGB of the source frame
    """

    kind: BoundaryKind
    rectangle: Rectangle
    quad: Quadrilateral | None = None
    strategy: str = ""
    background: tuple[int, int, int] = (0, 0, 0)

    @classmethod
    def whole_frame(
        cls, width: int, height: int, background: tuple[int, int, int] = (0, 0, 0)
    ) -> BoundaryResult:
        return cls(
            BoundaryKind.WHOLE_FRAME,
            Rectangle.whole(width, height),
            strategy="whole_frame",
            background=background,
        )

    @property
    def is_whole_frame(self) -> bool:
        return self.kind is BoundaryKind.WHOLE_FRAME

    def to_dict(self) -> dict:
        out: dict = {
            "kind": self.kind.value,
            "strategy": self.strategy,
            "rectangle": list(self.rectangle.as_tuple()),
            "background": list(self.background),
        }
        if self.quad is not None:
            out["quad"] = [[round(p.x, 2), round(p.y, 2)] for p in self.quad.corners]
        return out


@dataclass(frozen=True)
class OrientationResult:
    """Chosen upright rotation (clockwise degrees), its score and the rotated buffer."""

    rotation: int
    score: float
    buffer: PixelBuffer
    scores: dict[int, float] = field(default_factory=dict)


@dataclass
class PipelineResult:
    """Outcome of one in-memory pipeline run."""

    buffer: PixelBuffer
    boundary: BoundaryResult | None = None
    orientation: OrientationResult | None = None
    applied: list[str] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)

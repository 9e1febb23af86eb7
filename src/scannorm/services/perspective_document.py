"""Perspective rectification of a detected document.

A quadrilateral boundary is mapped onto an upright W x H rectangle with a
homography and bilinear resampling; a rectangular boundary is cropped.
After a warp, an optional overcrop trims leftover background and a thin
margin from the edges.
"""

import logging

import numpy as np

from scannorm.constants import MIN_QUAD_AREA_PX, OVERCROP_MIN_KEEP_RATIO, WARP_BAND_ROWS
from scannorm.services.boundary_detection import foreground_mask, tight_bbox
from scannorm.services.filters import block_downsample, open3
from scannorm.services.models import (
    BoundaryKind,
    BoundaryResult,
    PixelBuffer,
    Quadrilateral,
    Rectangle,
)
from scannorm.services.pipeline_config import PipelineConfig
from scannorm.utils.exceptions import DegenerateQuad, ValidationError

logger = logging.getLogger(__name__)


def compute_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """3x3 projective transform mapping four ``src`` points onto ``dst``.

    Solves the 8x8 linear system with h33 fixed to 1.

    Args:
        src: 4x2 source points
        dst: 4x2 destination points

    Returns:
        Homography matrix (float64)

    Raises:
        DegenerateQuad: when the system is singular (collinear points)
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    a = np.zeros((8, 8), dtype=np.float64)
    b = np.zeros(8, dtype=np.float64)
    for i, ((x, y), (u, v)) in enumerate(zip(src, dst)):
        a[2 * i] = [x, y, 1, 0, 0, 0, -u * x, -u * y]
        a[2 * i + 1] = [0, 0, 0, x, y, 1, -v * x, -v * y]
        b[2 * i] = u
        b[2 * i + 1] = v

    try:
        h = np.linalg.solve(a, b)
    except np.linalg.LinAlgError as e:
        raise DegenerateQuad(src.tolist(), "singular homography system") from e
    if not np.all(np.isfinite(h)):
        raise DegenerateQuad(src.tolist(), "non-finite homography")
    return np.append(h, 1.0).reshape(3, 3)


def _sample_bilinear(
    src: np.ndarray, sx: np.ndarray, sy: np.ndarray, fill: np.ndarray
) -> np.ndarray:
    """Bilinear samples at pixel-index coordinates; neighbours outside take ``fill``."""
    h, w, c = src.shape
    x0 = np.floor(sx).astype(np.intp)
    y0 = np.floor(sy).astype(np.intp)
    fx = (sx - x0).astype(np.float32)[:, None]
    fy = (sy - y0).astype(np.float32)[:, None]

    out = np.zeros((sx.size, c), dtype=np.float32)
    for dy, dx, weight in (
        (0, 0, (1 - fx) * (1 - fy)),
        (0, 1, fx * (1 - fy)),
        (1, 0, (1 - fx) * fy),
        (1, 1, fx * fy),
    ):
        xi = x0 + dx
        yi = y0 + dy
        inside = (xi >= 0) & (xi < w) & (yi >= 0) & (yi < h)
        values = np.empty((sx.size, c), dtype=np.float32)
        values[:] = fill
        values[inside] = src[yi[inside], xi[inside]]
        out += weight * values
    return out


def warp_perspective(
    buffer: PixelBuffer,
    inverse: np.ndarray,
    width: int,
    height: int,
    fill: tuple[int, int, int] = (255, 255, 255),
) -> PixelBuffer:
    """Inverse-map every output pixel through ``inverse`` and sample bilinearly.

    Coordinates are continuous with pixel centres at +0.5. Rows are
    processed in bands of WARP_BAND_ROWS.
    """
    src = buffer.data
    channels = buffer.channels
    fill_px = np.array(list(fill) + [255] * (channels - 3), dtype=np.float32)
    out = np.empty((height, width, channels), dtype=np.uint8)
    xs = np.arange(width, dtype=np.float64) + 0.5

    for top in range(0, height, WARP_BAND_ROWS):
        bottom = min(height, top + WARP_BAND_ROWS)
        ys = np.arange(top, bottom, dtype=np.float64) + 0.5
        gx, gy = np.meshgrid(xs, ys)
        gx = gx.ravel()
        gy = gy.ravel()

        with np.errstate(divide="ignore", invalid="ignore"):
            denom = inverse[2, 0] * gx + inverse[2, 1] * gy + inverse[2, 2]
            sx = (inverse[0, 0] * gx + inverse[0, 1] * gy + inverse[0, 2]) / denom - 0.5
            sy = (inverse[1, 0] * gx + inverse[1, 1] * gy + inverse[1, 2]) / denom - 0.5
        bad = ~(np.isfinite(sx) & np.isfinite(sy))
        sx[bad] = -2.0
        sy[bad] = -2.0

        values = _sample_bilinear(src, sx, sy, fill_px)
        band = np.clip(np.rint(values), 0, 255).astype(np.uint8)
        out[top:bottom] = band.reshape(bottom - top, width, channels)

    return PixelBuffer(out)


def target_size(quad: Quadrilateral) -> tuple[int, int]:
    """Output (width, height): the longer of each pair of opposite edges."""
    top, right, bottom, left = quad.edge_lengths
    return int(round(max(top, bottom))), int(round(max(left, right)))


def warp_quad(
    buffer: PixelBuffer, quad: Quadrilateral, fill: tuple[int, int, int] = (255, 255, 255)
) -> PixelBuffer:
    """Map ``quad`` onto an upright rectangle.

    Raises:
        DegenerateQuad: for a quad of (near) zero area or size
    """
    corners = [tuple(p) for p in quad.corners]
    if quad.area < MIN_QUAD_AREA_PX:
        raise DegenerateQuad(corners, f"area {quad.area:.2f} px² below {MIN_QUAD_AREA_PX}")
    width, height = target_size(quad)
    if width < 1 or height < 1:
        raise DegenerateQuad(corners, f"target size {width}x{height}")

    dst = np.array([[0, 0], [width, 0], [width, height], [0, height]], dtype=np.float64)
    inverse = compute_homography(dst, quad.as_array())
    warped = warp_perspective(buffer, inverse, width, height, fill)
    logger.info(f"Perspective correction applied: {width}x{height}")
    return warped


def crop(buffer: PixelBuffer, rect: Rectangle) -> PixelBuffer:
    """Copy of the pixels inside ``rect``.

    Raises:
        ValidationError: if ``rect`` does not fit the buffer
    """
    if not rect.fits(buffer.width, buffer.height):
        raise ValidationError(
            "rectangle",
            value=str(rect.as_tuple()),
            reason=f"outside {buffer.width}x{buffer.height} buffer",
        )
    return PixelBuffer(buffer.data[rect.y : rect.bottom, rect.x : rect.right].copy())


def overcrop(
    buffer: PixelBuffer, background: tuple[int, int, int], config: PipelineConfig
) -> PixelBuffer:
    """Trim leftover background and a thin margin from a rectified page.

    The crop is skipped (buffer returned as is) when the foreground box
    would keep less than OVERCROP_MIN_KEEP_RATIO of the image.
    """
    small, factor = block_downsample(buffer.color, config.detection_max_side)
    sh, sw = small.shape[:2]
    mask = open3(foreground_mask(small, background, config.bbox_color_distance))
    bounds = tight_bbox(mask)
    if bounds is None:
        logger.debug("Overcrop skipped: no foreground against the background colour")
        return buffer

    x0, y0, x1, y1 = bounds
    x0 *= factor
    y0 *= factor
    x1 = buffer.width if x1 == sw else x1 * factor
    y1 = buffer.height if y1 == sh else y1 * factor

    keep = (x1 - x0) * (y1 - y0) / float(buffer.width * buffer.height)
    if keep < OVERCROP_MIN_KEEP_RATIO:
        logger.debug(f"Overcrop skipped: would keep only {keep:.0%} of the image")
        return buffer

    w, h = x1 - x0, y1 - y0
    mx = int(round(w * config.overcrop_margin_ratio))
    my = int(round(h * config.overcrop_margin_ratio))
    if w - 2 * mx < 1 or h - 2 * my < 1:
        mx = my = 0
    rect = Rectangle(x0 + mx, y0 + my, w - 2 * mx, h - 2 * my)
    logger.debug(f"Overcrop to {rect.as_tuple()} of {buffer.width}x{buffer.height}")
    return crop(buffer, rect)


class Rectifier:
    """Turns a boundary result into an upright, cropped page."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def rectify(self, buffer: PixelBuffer, boundary: BoundaryResult) -> PixelBuffer:
        if boundary.kind is BoundaryKind.QUAD and boundary.quad is not None:
            try:
                warped = warp_quad(buffer, boundary.quad, self.config.fill_rgb)
            except DegenerateQuad as e:
                logger.info(f"{e}; cropping to its bounds instead")
                return crop(buffer, boundary.rectangle)
            if self.config.enable_overcrop:
                warped = overcrop(warped, boundary.background, self.config)
            return warped

        if boundary.kind is BoundaryKind.RECTANGLE:
            return crop(buffer, boundary.rectangle)

        return buffer.copy()

"""
Pixel-array filters used by the pipeline stages.

Plain numpy implementations of the handful of image operations the
pipeline needs: luma conversion, block downsampling, separable
convolution (Gaussian, Sobel), summed-area box blur, bilinear resize,
3x3 binary morphology and exact 90-degree rotations.
"""

import math

import numpy as np

from scannorm.services.models import Mask, PixelBuffer

# Rec.601 luma weights for R, G, B
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)

GAUSSIAN_3 = np.array([1.0, 2.0, 1.0], dtype=np.float32) / 4.0
SOBEL_SMOOTH = np.array([1.0, 2.0, 1.0], dtype=np.float32)
SOBEL_DERIV = np.array([-1.0, 0.0, 1.0], dtype=np.float32)


def to_grayscale(image: PixelBuffer | np.ndarray) -> np.ndarray:
    """Luma plane as float32, shape (height, width)."""
    arr = image.data if isinstance(image, PixelBuffer) else np.asarray(image)
    if arr.ndim == 2:
        return arr.astype(np.float32)
    return arr[:, :, :3].astype(np.float32) @ LUMA_WEIGHTS


def block_downsample(arr: np.ndarray, max_side: int) -> tuple[np.ndarray, int]:
    """Average non-overlapping f x f blocks so the longest side fits ``max_side``.

    Trailing rows/columns that do not fill a whole block are dropped.

    Returns:
        (downsampled float32 array, integer factor f); f == 1 means unchanged
    """
    h, w = arr.shape[:2]
    factor = max(1, math.ceil(max(h, w) / max_side))
    if factor == 1 or h < factor or w < factor:
        return arr.astype(np.float32), 1

    h2, w2 = h // factor, w // factor
    trimmed = arr[: h2 * factor, : w2 * factor].astype(np.float32)
    if arr.ndim == 2:
        small = trimmed.reshape(h2, factor, w2, factor).mean(axis=(1, 3))
    else:
        small = trimmed.reshape(h2, factor, w2, factor, arr.shape[2]).mean(axis=(1, 3))
    return small, factor


def _correlate_axis(arr: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    """1-D correlation along ``axis`` with edge replication."""
    radius = len(kernel) // 2
    pad = [(0, 0)] * arr.ndim
    pad[axis] = (radius, radius)
    padded = np.pad(arr.astype(np.float32), pad, mode="edge")

    n = arr.shape[axis]
    out = np.zeros(arr.shape, dtype=np.float32)
    for i, k in enumerate(kernel):
        if k == 0:
            continue
        window = [slice(None)] * arr.ndim
        window[axis] = slice(i, i + n)
        out += k * padded[tuple(window)]
    return out


def convolve_separable(gray: np.ndarray, kernel_x: np.ndarray, kernel_y: np.ndarray) -> np.ndarray:
    """Apply ``kernel_x`` along rows then ``kernel_y`` along columns."""
    return _correlate_axis(_correlate_axis(gray, kernel_x, axis=1), kernel_y, axis=0)


def gaussian_blur3(gray: np.ndarray) -> np.ndarray:
    """Light 3x3 Gaussian smoothing."""
    return convolve_separable(gray, GAUSSIAN_3, GAUSSIAN_3)


def sobel(gray: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """3x3 Sobel derivatives.

    Returns:
        (d/dx, d/dy). d/dx responds to vertical edges, d/dy to horizontal ones.
    """
    gx = convolve_separable(gray, SOBEL_DERIV, SOBEL_SMOOTH)
    gy = convolve_separable(gray, SOBEL_SMOOTH, SOBEL_DERIV)
    return gx, gy


def box_blur(gray: np.ndarray, size: int) -> np.ndarray:
    """Mean over a ``size`` x ``size`` window via a summed-area table.

    Borders are edge-replicated; ``size`` is forced odd.
    """
    size = max(1, int(size))
    if size % 2 == 0:
        size += 1
    if size == 1:
        return gray.astype(np.float32)

    radius = size // 2
    h, w = gray.shape
    padded = np.pad(gray.astype(np.float64), radius, mode="edge")
    table = np.zeros((padded.shape[0] + 1, padded.shape[1] + 1), dtype=np.float64)
    np.cumsum(np.cumsum(padded, axis=0), axis=1, out=table[1:, 1:])

    total = (
        table[size : size + h, size : size + w]
        - table[0:h, size : size + w]
        - table[size : size + h, 0:w]
        + table[0:h, 0:w]
    )
    return (total / (size * size)).astype(np.float32)


def resize_bilinear(gray: np.ndarray, height: int, width: int) -> np.ndarray:
    """Resize a 2-D array with pixel-centre aligned bilinear interpolation."""
    h, w = gray.shape
    if (h, w) == (height, width):
        return gray.astype(np.float32)

    ys = np.clip((np.arange(height) + 0.5) * h / height - 0.5, 0, h - 1)
    xs = np.clip((np.arange(width) + 0.5) * w / width - 0.5, 0, w - 1)
    y0 = np.floor(ys).astype(np.intp)
    x0 = np.floor(xs).astype(np.intp)
    y1 = np.minimum(y0 + 1, h - 1)
    x1 = np.minimum(x0 + 1, w - 1)
    wy = (ys - y0).astype(np.float32)[:, None]
    wx = (xs - x0).astype(np.float32)[None, :]

    src = gray.astype(np.float32)
    top = src[y0][:, x0] * (1 - wx) + src[y0][:, x1] * wx
    bottom = src[y1][:, x0] * (1 - wx) + src[y1][:, x1] * wx
    return top * (1 - wy) + bottom * wy


def _shift_reduce(mask: np.ndarray, reduce) -> np.ndarray:
    h, w = mask.shape
    padded = np.pad(mask, 1, mode="edge")
    out = padded[0:h, 0:w].copy()
    for dy in range(3):
        for dx in range(3):
            if dy == 0 and dx == 0:
                continue
            reduce(out, padded[dy : dy + h, dx : dx + w], out=out)
    return out


def _morph(mask: Mask | np.ndarray, *reducers) -> Mask | np.ndarray:
    out = mask.as_bool() if isinstance(mask, Mask) else np.asarray(mask).astype(bool)
    for reduce in reducers:
        out = _shift_reduce(out, reduce)
    return Mask.from_bool(out) if isinstance(mask, Mask) else out


def dilate3(mask: Mask | np.ndarray) -> Mask | np.ndarray:
    """Binary dilation with a 3x3 square.

    Masks come back as Mask, plain arrays as bool arrays.
    """
    return _morph(mask, np.logical_or)


def erode3(mask: Mask | np.ndarray) -> Mask | np.ndarray:
    """Binary erosion with a 3x3 square."""
    return _morph(mask, np.logical_and)


def close3(mask: Mask | np.ndarray) -> Mask | np.ndarray:
    return _morph(mask, np.logical_or, np.logical_and)


def open3(mask: Mask | np.ndarray) -> Mask | np.ndarray:
    return _morph(mask, np.logical_and, np.logical_or)


def rotate_array(arr: np.ndarray, degrees: int) -> np.ndarray:
    """Exact clockwise rotation by a multiple of 90 degrees (a view when possible)."""
    turns = (degrees // 90) % 4
    if degrees % 90 != 0:
        raise ValueError(f"rotation must be a multiple of 90, got {degrees}")
    return np.rot90(arr, k=-turns)


def rotate_buffer(buffer: PixelBuffer, degrees: int) -> PixelBuffer:
    """Rotate a buffer clockwise by 0, 90, 180 or 270 degrees."""
    return PixelBuffer(np.ascontiguousarray(rotate_array(buffer.data, degrees)))

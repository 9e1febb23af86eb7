"""
Illumination flat-fielding and tone mapping.

Photographed pages carry shadows and lighting gradients from the scanner
lamp and paper curl. The background luma is estimated with a large
iterated box blur and divided out, then a fixed brightness curve pushes
paper to white while keeping dark ink.
"""

import logging

import numpy as np

from scannorm.constants import DEFAULT_TONE_CURVE, ILLUMINATION_WORK_MAX_SIDE
from scannorm.services.filters import block_downsample, box_blur, resize_bilinear, to_grayscale
from scannorm.services.models import PixelBuffer
from scannorm.services.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)


def illumination_kernel_size(longest_side: int, ratio: float) -> int:
    """Odd blur side proportional to the image, at least 3."""
    size = int(round(longest_side * ratio))
    if size % 2 == 0:
        size += 1
    return max(3, size)


class IlluminationNormalizer:
    """Divides out a smooth luma background, then stretches to the full range."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def estimate_background(self, gray: np.ndarray) -> np.ndarray:
        """Box blur applied twice, at full resolution scale.

        OPTIMIZED: the blur runs on a block-averaged copy with a
        proportionally smaller kernel and is upsampled bilinearly.
        """
        h, w = gray.shape
        size = illumination_kernel_size(max(h, w), self.config.illumination_kernel_ratio)
        small, factor = block_downsample(gray, ILLUMINATION_WORK_MAX_SIDE)
        small_size = illumination_kernel_size(max(h, w) // factor, size / max(h, w))

        background = box_blur(box_blur(small, small_size), small_size)
        if factor > 1:
            background = resize_bilinear(background, h, w)
        logger.debug(f"Illumination background: kernel={size}px (working {small_size}px, /{factor})")
        return background

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        cfg = self.config
        background = self.estimate_background(to_grayscale(buffer))

        offset = cfg.illumination_offset
        gain = (float(background.mean()) + offset) / (background + offset)
        corrected = buffer.color.astype(np.float32) * gain[:, :, None]

        lo = float(corrected.min())
        hi = float(corrected.max())
        if hi - lo >= cfg.min_stretch_span:
            corrected -= lo
            corrected *= 255.0 / (hi - lo)
        else:
            logger.debug(f"Illumination: span {hi - lo:.1f} too small, no stretch")
        np.clip(np.rint(corrected), 0, 255, out=corrected)

        logger.debug(f"Illumination gain range {float(gain.min()):.2f}-{float(gain.max()):.2f}")
        return buffer.with_color(corrected.astype(np.uint8))


def build_tone_lut(points=DEFAULT_TONE_CURVE) -> np.ndarray:
    """256-entry uint8 lookup table, piecewise linear through ``points``."""
    xs = [float(p[0]) for p in points]
    ys = [float(p[1]) for p in points]
    lut = np.interp(np.arange(256, dtype=np.float64), xs, ys)
    return np.clip(np.rint(lut), 0, 255).astype(np.uint8)


class ToneMapper:
    """Applies the brightness curve to the colour channels."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.lut = build_tone_lut(self.config.tone_curve)

    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        return buffer.with_color(self.lut[buffer.color])

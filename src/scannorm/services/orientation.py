"""
Upright orientation selection for rectified pages.

Printed pages are dominated by horizontal structure (text lines, rules,
table borders). Each of the four exact 90-degree rotations is scored by
how much stronger its horizontal edges are than its vertical ones, and the
best-scoring rotation wins.
"""

import logging

import numpy as np

from scannorm.constants import ORIENTATION_MIN_EDGE_ENERGY
from scannorm.services.filters import (
    block_downsample,
    gaussian_blur3,
    rotate_array,
    rotate_buffer,
    sobel,
    to_grayscale,
)
from scannorm.services.models import OrientationResult, PixelBuffer
from scannorm.services.pipeline_config import PipelineConfig

logger = logging.getLogger(__name__)

ROTATIONS = (0, 90, 180, 270)


def edge_means(gray: np.ndarray) -> tuple[float, float]:
    """(mean|d/dx|, mean|d/dy|) after light smoothing."""
    gx, gy = sobel(gaussian_blur3(gray))
    return float(np.mean(np.abs(gx))), float(np.mean(np.abs(gy)))


def orientation_score(gray: np.ndarray) -> float:
    """mean|d/dy| - mean|d/dx|; positive when horizontal lines dominate."""
    mean_x, mean_y = edge_means(gray)
    return mean_y - mean_x


class OrientationSelector:
    """Picks the clockwise rotation (0/90/180/270) that makes the page upright."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def _is_portrait(self, buffer: PixelBuffer, rotation: int) -> bool:
        if rotation in (90, 270):
            return buffer.width >= buffer.height
        return buffer.height >= buffer.width

    def select(self, buffer: PixelBuffer) -> OrientationResult:
        """Score every rotation and rotate the full buffer by the winner.

        A candidate replaces the current best when it scores higher by more
        than ``orientation_epsilon``, or, with ``prefer_portrait`` set, when
        it ties within epsilon and is portrait while the current best is not.
        A page without any edges keeps its rotation.
        """
        cfg = self.config
        eps = cfg.orientation_epsilon
        gray, _ = block_downsample(to_grayscale(buffer), cfg.orientation_max_side)

        mean_x, mean_y = edge_means(gray)
        if mean_x + mean_y < ORIENTATION_MIN_EDGE_ENERGY:
            logger.debug(f"Orientation: no edge structure ({mean_x + mean_y:.2f}), keeping 0°")
            score = mean_y - mean_x
            return OrientationResult(rotation=0, score=score, buffer=buffer, scores={0: score})

        scores: dict[int, float] = {}
        best_rotation = 0
        best_score = 0.0
        best_portrait = False
        for rotation in ROTATIONS:
            score = orientation_score(rotate_array(gray, rotation))
            scores[rotation] = score
            portrait = self._is_portrait(buffer, rotation)

            if rotation == ROTATIONS[0]:
                replace = True
            elif score > best_score + eps:
                replace = True
            else:
                replace = (
                    abs(score - best_score) <= eps
                    and cfg.prefer_portrait
                    and portrait
                    and not best_portrait
                )

            if replace:
                best_rotation, best_score, best_portrait = rotation, score, portrait

        logger.debug(
            "Orientation scores: " + ", ".join(f"{r}°={s:.2f}" for r, s in scores.items())
        )
        if best_rotation:
            logger.info(f"Orientation corrected: rotating {best_rotation}° clockwise")
            rotated = rotate_buffer(buffer, best_rotation)
        else:
            rotated = buffer

        return OrientationResult(
            rotation=best_rotation, score=best_score, buffer=rotated, scores=scores
        )

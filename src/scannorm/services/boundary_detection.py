"""Document boundary detection.

Finds the photographed page inside a capture. Two strategies are tried in
order:

1. Quadrilateral: threshold the luma against the background sampled from
   the frame corners, clean the mask, outline the connected regions and
   simplify each outline until a four-corner polygon appears.
2. Bounding box: classify pixels by colour distance to the background and
   take the inflated axis-aligned box around them.

When neither finds anything, the whole frame is used.
"""

import logging

import numpy as np

from scannorm.constants import DOCUMENT_LUMA_PERCENTILE, NEAR_BLACK_RGB
from scannorm.services.contour_analysis import (
    approx_polygon,
    label_regions,
    polygon_area,
    polygon_perimeter,
)
from scannorm.services.filters import block_downsample, close3, open3, to_grayscale
from scannorm.services.models import (
    BoundaryKind,
    BoundaryResult,
    Mask,
    PixelBuffer,
    Quadrilateral,
    Rectangle,
)
from scannorm.services.pipeline_config import PipelineConfig
from scannorm.utils.exceptions import BoundaryNotFound

logger = logging.getLogger(__name__)


def corner_samples(arr: np.ndarray, patch_ratio: float) -> np.ndarray:
    """Pixels of the four square corner patches, flattened to (N, channels) or (N,).

    The patch side is ``patch_ratio`` of the smaller dimension, at least 1 px.
    """
    h, w = arr.shape[:2]
    side = max(1, int(round(min(h, w) * patch_ratio)))
    patches = [
        arr[:side, :side],
        arr[:side, w - side :],
        arr[h - side :, :side],
        arr[h - side :, w - side :],
    ]
    if arr.ndim == 2:
        return np.concatenate([p.ravel() for p in patches])
    return np.concatenate([p.reshape(-1, arr.shape[2]) for p in patches])


def estimate_background(rgb: np.ndarray, patch_ratio: float) -> tuple[int, int, int]:
    """Median RGB of the frame corners."""
    median = np.median(corner_samples(rgb[:, :, :3], patch_ratio), axis=0)
    return tuple(int(round(c)) for c in median)


def foreground_mask(
    rgb: np.ndarray, background: tuple[int, int, int], distance: float
) -> Mask:
    """Set where a pixel's RGB distance to ``background`` exceeds ``distance``."""
    diff = rgb[:, :, :3].astype(np.float32) - np.asarray(background, dtype=np.float32)
    return Mask.from_bool(np.einsum("ijk,ijk->ij", diff, diff) > distance * distance)


def tight_bbox(mask: Mask | np.ndarray) -> tuple[int, int, int, int] | None:
    """Bounds ``(x0, y0, x1, y1)`` (exclusive ends) of the True pixels, or None."""
    if isinstance(mask, Mask):
        mask = mask.as_bool()
    rows = np.flatnonzero(mask.any(axis=1))
    if rows.size == 0:
        return None
    cols = np.flatnonzero(mask.any(axis=0))
    return int(cols[0]), int(rows[0]), int(cols[-1]) + 1, int(rows[-1]) + 1


class BoundaryStrategy:
    """Base class for a boundary strategy.

    Subclasses implement :meth:`detect` and raise BoundaryNotFound when
    they find nothing usable.
    """

    name = "base"

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def detect(self, buffer: PixelBuffer) -> BoundaryResult:
        raise NotImplementedError

    def _background(self, rgb: np.ndarray) -> tuple[int, int, int]:
        if self.config.background_model == "dark":
            return NEAR_BLACK_RGB
        return estimate_background(rgb, self.config.corner_patch_ratio)


class QuadStrategy(BoundaryStrategy):
    """Largest four-corner region of a background-relative threshold mask."""

    name = "quad"

    def binarize(self, gray: np.ndarray) -> Mask:
        """Separate document from background on a luma image.

        The background level is the median of the corner patches. Pixels
        within half the minimum contrast of it count as background noise;
        the document side is whichever tail beyond that band holds more
        pixels, and its level is a high percentile of that tail alone, so
        a small page is measured as well as a large one.

        Raises:
            BoundaryNotFound: when background and document barely differ
        """
        cfg = self.config
        if cfg.background_model == "dark":
            bg_luma = float(np.mean(NEAR_BLACK_RGB))
        else:
            bg_luma = float(np.median(corner_samples(gray, cfg.corner_patch_ratio)))

        noise = cfg.min_contrast / 2.0
        brighter = gray[gray > bg_luma + noise]
        darker = gray[gray < bg_luma - noise]
        document_brighter = brighter.size >= darker.size
        if document_brighter:
            tail = brighter
            percentile = DOCUMENT_LUMA_PERCENTILE
        else:
            tail = darker
            percentile = 100.0 - DOCUMENT_LUMA_PERCENTILE
        doc_luma = float(np.percentile(tail, percentile)) if tail.size else bg_luma

        contrast = abs(doc_luma - bg_luma)
        if contrast < cfg.min_contrast:
            raise BoundaryNotFound(
                self.name, f"contrast {contrast:.1f} below {cfg.min_contrast:.1f}"
            )

        if cfg.threshold_mode == "fixed":
            threshold = float(cfg.fixed_threshold)
        else:
            threshold = (bg_luma + doc_luma) / 2.0

        logger.debug(
            f"Binarize: background={bg_luma:.0f}, document={doc_luma:.0f}, "
            f"threshold={threshold:.0f}, brighter={document_brighter}, "
            f"document share={tail.size / gray.size:.1%}"
        )
        return Mask.from_bool(gray > threshold if document_brighter else gray < threshold)

    def find_quad(self, outline: np.ndarray) -> np.ndarray | None:
        """Simplify an outline, loosening the tolerance until four vertices remain."""
        perimeter = polygon_perimeter(outline)
        if perimeter <= 0:
            return None
        for eps in self.config.approx_epsilons:
            approx = approx_polygon(outline, eps * perimeter)
            if len(approx) == 4:
                return approx
        return None

    def detect(self, buffer: PixelBuffer) -> BoundaryResult:
        cfg = self.config
        small, factor = block_downsample(to_grayscale(buffer), cfg.detection_max_side)
        h, w = small.shape

        mask = open3(close3(self.binarize(small)))
        min_area = cfg.min_area_ratio * h * w
        regions = label_regions(mask, min_area=max(1, int(min_area)))
        if not regions:
            raise BoundaryNotFound(self.name, "no region above the area threshold")

        best: np.ndarray | None = None
        best_area = 0.0
        for region in regions:
            quad = self.find_quad(region.outline)
            if quad is None:
                continue
            area = polygon_area(quad)
            if area >= min_area and area > best_area:
                best, best_area = quad, area

        if best is None:
            raise BoundaryNotFound(self.name, f"no four-corner outline among {len(regions)} regions")

        quad = Quadrilateral.from_points(best * factor)
        rect = quad.bounds(buffer.width, buffer.height)
        logger.debug(
            "Quad found: "
            + ", ".join(f"({p.x:.0f},{p.y:.0f})" for p in quad.corners)
            + f", area={best_area / (h * w):.1%} of frame"
        )
        return BoundaryResult(
            BoundaryKind.QUAD,
            rect,
            quad=quad,
            strategy=self.name,
            background=self._background(
                block_downsample(buffer.color, cfg.detection_max_side)[0]
            ),
        )


class BoundingBoxStrategy(BoundaryStrategy):
    """Inflated bounding box of pixels that differ from the background colour."""

    name = "bounding_box"

    def detect(self, buffer: PixelBuffer) -> BoundaryResult:
        cfg = self.config
        small, factor = block_downsample(buffer.color, cfg.detection_max_side)
        h, w = small.shape[:2]

        background = self._background(small)
        mask = open3(foreground_mask(small, background, cfg.bbox_color_distance))
        count = mask.count
        min_area = cfg.min_area_ratio * h * w
        if count < min_area:
            raise BoundaryNotFound(
                self.name, f"{count} foreground pixels, need {int(np.ceil(min_area))}"
            )

        x0, y0, x1, y1 = tight_bbox(mask)
        # Trailing pixels dropped by the downsample belong to the last block
        x1 = buffer.width if x1 == w else x1 * factor
        y1 = buffer.height if y1 == h else y1 * factor
        margin = cfg.bbox_margin_ratio * min(buffer.width, buffer.height)
        rect = Rectangle.from_bounds(
            x0 * factor - margin,
            y0 * factor - margin,
            x1 + margin,
            y1 + margin,
            buffer.width,
            buffer.height,
        )
        logger.debug(f"Bounding box found: {rect.as_tuple()} (background={background})")
        return BoundaryResult(
            BoundaryKind.RECTANGLE, rect, strategy=self.name, background=background
        )


class BoundaryDetector:
    """Runs the enabled strategies in order and falls back to the whole frame."""

    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()
        self.strategies: list[BoundaryStrategy] = []
        if self.config.enable_quad_detection:
            self.strategies.append(QuadStrategy(self.config))
        if self.config.enable_bbox_fallback:
            self.strategies.append(BoundingBoxStrategy(self.config))

    def detect(self, buffer: PixelBuffer) -> BoundaryResult:
        for strategy in self.strategies:
            try:
                result = strategy.detect(buffer)
            except BoundaryNotFound as e:
                logger.debug(str(e))
                continue
            logger.info(
                f"Document boundary: {result.kind.value} via {strategy.name}, "
                f"bounds={result.rectangle.as_tuple()}"
            )
            return result

        logger.info("No document boundary found, using the whole frame")
        small, _ = block_downsample(buffer.color, self.config.detection_max_side)
        return BoundaryResult.whole_frame(
            buffer.width,
            buffer.height,
            background=estimate_background(small, self.config.corner_patch_ratio),
        )

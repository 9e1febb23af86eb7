"""Capture normalization pipeline configuration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields

from scannorm.constants import (
    DEFAULT_APPROX_EPSILONS,
    DEFAULT_BBOX_COLOR_DISTANCE,
    DEFAULT_BBOX_MARGIN_RATIO,
    DEFAULT_CORNER_PATCH_RATIO,
    DEFAULT_DETECTION_MAX_SIDE,
    DEFAULT_FIXED_THRESHOLD,
    DEFAULT_ILLUMINATION_KERNEL_RATIO,
    DEFAULT_ILLUMINATION_OFFSET,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_MIN_AREA_RATIO,
    DEFAULT_MIN_CONTRAST,
    DEFAULT_MIN_STRETCH_SPAN,
    DEFAULT_ORIENTATION_EPSILON,
    DEFAULT_ORIENTATION_MAX_SIDE,
    DEFAULT_OVERCROP_MARGIN_RATIO,
    DEFAULT_TONE_CURVE,
)
from scannorm.services.codec import normalize_quality
from scannorm.utils.exceptions import ConfigurationError, EncodeError

FILL_COLORS: dict[str, tuple[int, int, int]] = {
    "white": (255, 255, 255),
    "black": (0, 0, 0),
}
THRESHOLD_MODES = ("relative", "fixed")
BACKGROUND_MODELS = ("corners", "dark")


@dataclass
class PipelineConfig:
    """Tunables for every pipeline stage.

    Attributes:
        detection_max_side: Longest side of the block-averaged detection image
        threshold_mode: "relative" (background-relative) or "fixed" luma threshold
        fixed_threshold: Luma threshold used in "fixed" mode
        min_contrast: Minimum background/document luma difference to attempt detection
        min_area_ratio: Minimum region area as a fraction of the frame
        approx_epsilons: Polygon simplification tolerances, fractions of the perimeter
        background_model: "corners" (sampled) or "dark" (near-black assumption)
        corner_patch_ratio: Corner sample patch side, fraction of the smaller dimension
        bbox_color_distance: RGB distance above which a pixel counts as foreground
        bbox_margin_ratio: Bounding-box inflation, fraction of the smaller dimension
        enable_quad_detection: Try the quadrilateral strategy
        enable_bbox_fallback: Try the bounding-box strategy when no quad is found
        fill_color: Colour for warp samples outside the source ("white" or "black")
        enable_overcrop: Tighten the crop again after a perspective warp
        overcrop_margin_ratio: Inward trim per side after overcrop
        enable_orientation: Pick the upright 90-degree rotation
        orientation_epsilon: Score difference treated as a tie
        prefer_portrait: On a tie, prefer rotations with height >= width
        orientation_max_side: Longest side of the image used for scoring
        enable_illumination: Flat-field the lighting
        illumination_kernel_ratio: Background blur side, fraction of the longest side
        illumination_offset: Constant added to the background before dividing
        min_stretch_span: Below this corrected span no range stretch is applied
        enable_tone_curve: Apply the fixed brightness curve
        tone_curve: Control points (input, output) of the curve
        jpeg_quality: Output JPEG quality, 1-100 or a 0-1 fraction
    """

    # === Boundary detection ===
    detection_max_side: int = DEFAULT_DETECTION_MAX_SIDE
    threshold_mode: str = "relative"
    fixed_threshold: int = DEFAULT_FIXED_THRESHOLD
    min_contrast: float = DEFAULT_MIN_CONTRAST
    min_area_ratio: float = DEFAULT_MIN_AREA_RATIO
    approx_epsilons: tuple[float, ...] = DEFAULT_APPROX_EPSILONS
    background_model: str = "corners"
    corner_patch_ratio: float = DEFAULT_CORNER_PATCH_RATIO
    bbox_color_distance: float = DEFAULT_BBOX_COLOR_DISTANCE
    bbox_margin_ratio: float = DEFAULT_BBOX_MARGIN_RATIO
    enable_quad_detection: bool = True
    enable_bbox_fallback: bool = True

    # === Rectification ===
    fill_color: str = "white"
    enable_overcrop: bool = True
    overcrop_margin_ratio: float = DEFAULT_OVERCROP_MARGIN_RATIO

    # === Orientation ===
    enable_orientation: bool = True
    orientation_epsilon: float = DEFAULT_ORIENTATION_EPSILON
    prefer_portrait: bool = True
    orientation_max_side: int = DEFAULT_ORIENTATION_MAX_SIDE

    # === Illumination & tone ===
    enable_illumination: bool = True
    illumination_kernel_ratio: float = DEFAULT_ILLUMINATION_KERNEL_RATIO
    illumination_offset: float = DEFAULT_ILLUMINATION_OFFSET
    min_stretch_span: float = DEFAULT_MIN_STRETCH_SPAN
    enable_tone_curve: bool = True
    tone_curve: tuple[tuple[int, int], ...] = field(default_factory=lambda: DEFAULT_TONE_CURVE)

    # === Output ===
    jpeg_quality: float = DEFAULT_JPEG_QUALITY

    @property
    def fill_rgb(self) -> tuple[int, int, int]:
        return FILL_COLORS[self.fill_color]

    def validate(self) -> PipelineConfig:
        """Check value ranges.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: on the first invalid setting
        """
        if self.fill_color not in FILL_COLORS:
            raise ConfigurationError("fill_color", f"expected one of {sorted(FILL_COLORS)}")
        if self.threshold_mode not in THRESHOLD_MODES:
            raise ConfigurationError("threshold_mode", f"expected one of {THRESHOLD_MODES}")
        if self.background_model not in BACKGROUND_MODELS:
            raise ConfigurationError("background_model", f"expected one of {BACKGROUND_MODELS}")
        if not 0 <= self.fixed_threshold <= 255:
            raise ConfigurationError("fixed_threshold", "must be within 0-255")
        if not 0 < self.min_area_ratio < 1:
            raise ConfigurationError("min_area_ratio", "must be between 0 and 1")
        if not self.approx_epsilons or any(not 0 < e < 0.5 for e in self.approx_epsilons):
            raise ConfigurationError("approx_epsilons", "values must be between 0 and 0.5")
        if not 0 < self.corner_patch_ratio <= 0.5:
            raise ConfigurationError("corner_patch_ratio", "must be in (0, 0.5]")
        if not 0 <= self.bbox_margin_ratio < 0.5:
            raise ConfigurationError("bbox_margin_ratio", "must be in [0, 0.5)")
        if not 0 <= self.overcrop_margin_ratio < 0.25:
            raise ConfigurationError("overcrop_margin_ratio", "must be in [0, 0.25)")
        if self.detection_max_side < 64 or self.orientation_max_side < 64:
            raise ConfigurationError("max_side", "working resolution must be at least 64 px")
        if self.orientation_epsilon < 0:
            raise ConfigurationError("orientation_epsilon", "must not be negative")
        if not 0 < self.illumination_kernel_ratio <= 1:
            raise ConfigurationError("illumination_kernel_ratio", "must be in (0, 1]")
        if self.illumination_offset <= 0:
            raise ConfigurationError("illumination_offset", "must be positive")
        try:
            normalize_quality(self.jpeg_quality)
        except (EncodeError, TypeError, ValueError):
            raise ConfigurationError(
                "jpeg_quality", "must be within 1-100 or a 0-1 fraction"
            ) from None
        self._validate_tone_curve()
        return self

    def _validate_tone_curve(self) -> None:
        xs = [int(p[0]) for p in self.tone_curve]
        ys = [int(p[1]) for p in self.tone_curve]
        if len(xs) < 2 or xs[0] != 0 or xs[-1] != 255:
            raise ConfigurationError("tone_curve", "must start at x=0 and end at x=255")
        if any(b <= a for a, b in zip(xs, xs[1:])):
            raise ConfigurationError("tone_curve", "x values must be strictly increasing")
        if any(not 0 <= y <= 255 for y in ys):
            raise ConfigurationError("tone_curve", "y values must be within 0-255")

    @classmethod
    def from_dict(cls, values: dict) -> PipelineConfig:
        """Build a config from a plain mapping, ignoring unknown keys.

        Lists are converted back to tuples for the tuple-typed settings.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in values.items() if k in known}
        if "approx_epsilons" in kwargs:
            kwargs["approx_epsilons"] = tuple(float(e) for e in kwargs["approx_epsilons"])
        if "tone_curve" in kwargs:
            kwargs["tone_curve"] = tuple((int(x), int(y)) for x, y in kwargs["tone_curve"])
        return cls(**kwargs).validate()

    def to_dict(self) -> dict:
        out = asdict(self)
        out["approx_epsilons"] = list(self.approx_epsilons)
        out["tone_curve"] = [list(p) for p in self.tone_curve]
        return out

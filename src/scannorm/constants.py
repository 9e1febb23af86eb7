"""
ScanNorm - Numeric Constants

Simple numeric constants with ZERO internal imports to avoid circular dependencies.
For application-level constants (strings, paths), use config.py.
"""

from typing import Final

# ============================================================================
# Boundary Detection
# ============================================================================

# Detection runs on a block-averaged copy no larger than this
DEFAULT_DETECTION_MAX_SIDE: Final[int] = 1024
DEFAULT_FIXED_THRESHOLD: Final[int] = 128
# Minimum luma difference between background and document
DEFAULT_MIN_CONTRAST: Final[float] = 24.0
# 10000 px² at a 1600x1200 working frame
DEFAULT_MIN_AREA_RATIO: Final[float] = 10000 / (1600 * 1200)
DEFAULT_APPROX_EPSILONS: Final[tuple[float, ...]] = (0.02, 0.04, 0.06)
DEFAULT_CORNER_PATCH_RATIO: Final[float] = 0.05
DEFAULT_BBOX_COLOR_DISTANCE: Final[float] = 48.0
DEFAULT_BBOX_MARGIN_RATIO: Final[float] = 0.015
# Percentile of the document-side tail used as the document luma
DOCUMENT_LUMA_PERCENTILE: Final[float] = 95.0
NEAR_BLACK_RGB: Final[tuple[int, int, int]] = (0, 0, 0)

# ============================================================================
# Rectification
# ============================================================================

DEFAULT_OVERCROP_MARGIN_RATIO: Final[float] = 0.02
# Overcrop is rejected when it would keep less than this share of the image
OVERCROP_MIN_KEEP_RATIO: Final[float] = 0.5
WARP_BAND_ROWS: Final[int] = 256
MIN_QUAD_AREA_PX: Final[float] = 1.0

# ============================================================================
# Orientation
# ============================================================================

DEFAULT_ORIENTATION_EPSILON: Final[float] = 2.0
DEFAULT_ORIENTATION_MAX_SIDE: Final[int] = 1024
# Below this mean gradient magnitude a page carries no directional evidence
ORIENTATION_MIN_EDGE_ENERGY: Final[float] = 0.5

# ============================================================================
# Illumination & Tone
# ============================================================================

# ~100 px blur at a 1600 px working resolution
DEFAULT_ILLUMINATION_KERNEL_RATIO: Final[float] = 100 / 1600
DEFAULT_ILLUMINATION_OFFSET: Final[float] = 1.0
DEFAULT_MIN_STRETCH_SPAN: Final[float] = 32.0
# Background estimation runs on a block-averaged copy no larger than this
ILLUMINATION_WORK_MAX_SIDE: Final[int] = 1000
DEFAULT_TONE_CURVE: Final[tuple[tuple[int, int], ...]] = (
    (0, 0),
    (82, 148),
    (122, 255),
    (255, 255),
)

# ============================================================================
# Output & Execution
# ============================================================================

DEFAULT_JPEG_QUALITY: Final[int] = 92
DEFAULT_RUN_TIMEOUT_SECS: Final[float] = 30.0
DEFAULT_RUNNER_WORKERS: Final[int] = 2

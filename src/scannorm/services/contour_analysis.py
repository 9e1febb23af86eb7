"""Connected regions and polygon outlines for binary masks.

Regions are found by run-length labelling: each row of the mask is split
into horizontal runs, and runs on consecutive rows that touch (including
diagonally) are merged with a union-find. This gives the same regions as
an 8-connected flood fill while touching each run only once.

A region's outline is the convex hull of its pixel corners, which can then
be reduced with Douglas-Peucker simplification to look for a quadrilateral.
"""

import logging
from dataclasses import dataclass

import numpy as np

from scannorm.services.models import Mask

logger = logging.getLogger(__name__)


@dataclass
class Region:
    """One 8-connected foreground region.

    Attributes:
        label: Region index (0-based, ordered by first run)
        area: Pixel count
        bbox: (x0, y0, x1, y1), exclusive right/bottom
        outline: Convex hull of the region's pixel corners, (N, 2) float
    """

    label: int
    area: int
    bbox: tuple[int, int, int, int]
    outline: np.ndarray


def find_runs(mask: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Horizontal foreground runs in row-major order.

    Returns:
        (rows, starts, ends) with ``ends`` exclusive
    """
    h, w = mask.shape
    padded = np.zeros((h, w + 2), dtype=np.int8)
    padded[:, 1:-1] = mask.astype(bool)
    transitions = np.diff(padded, axis=1)
    rows, starts = np.nonzero(transitions == 1)
    _, ends = np.nonzero(transitions == -1)
    return rows, starts, ends


def _union_touching_runs(
    rows: np.ndarray, starts: np.ndarray, ends: np.ndarray, height: int
) -> np.ndarray:
    """Union-find over runs; returns the root index of every run."""
    n = len(rows)
    parent = list(range(n))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    bounds = np.searchsorted(rows, np.arange(height + 1)).tolist()
    s = starts.tolist()
    e = ends.tolist()

    for y in range(1, height):
        i, i_end = bounds[y - 1], bounds[y]
        j, j_end = bounds[y], bounds[y + 1]
        while i < i_end and j < j_end:
            # 8-connected: column ranges overlap once widened by one pixel
            if s[j] <= e[i] and s[i] <= e[j]:
                ri, rj = find(i), find(j)
                if ri != rj:
                    parent[max(ri, rj)] = min(ri, rj)
            if e[i] < e[j]:
                i += 1
            else:
                j += 1

    return np.array([find(i) for i in range(n)], dtype=np.intp)


def label_regions(mask: Mask | np.ndarray, min_area: int = 1) -> list[Region]:
    """Find 8-connected regions of a binary mask.

    Args:
        mask: Mask or 2-D array, non-zero = foreground
        min_area: Regions with fewer pixels are dropped before outlining

    Returns:
        Regions sorted by descending area
    """
    if isinstance(mask, Mask):
        mask = mask.data
    rows, starts, ends = find_runs(mask)
    if len(rows) == 0:
        return []

    roots = _union_touching_runs(rows, starts, ends, mask.shape[0])
    _, labels = np.unique(roots, return_inverse=True)
    n_labels = int(labels.max()) + 1

    lengths = ends - starts
    areas = np.bincount(labels, weights=lengths, minlength=n_labels).astype(np.int64)

    x0 = np.full(n_labels, np.iinfo(np.int64).max, dtype=np.int64)
    y0 = np.full(n_labels, np.iinfo(np.int64).max, dtype=np.int64)
    x1 = np.zeros(n_labels, dtype=np.int64)
    y1 = np.zeros(n_labels, dtype=np.int64)
    np.minimum.at(x0, labels, starts)
    np.minimum.at(y0, labels, rows)
    np.maximum.at(x1, labels, ends)
    np.maximum.at(y1, labels, rows + 1)

    regions = []
    for label in np.nonzero(areas >= min_area)[0]:
        sel = labels == label
        outline = _region_hull(rows[sel], starts[sel], ends[sel])
        regions.append(
            Region(
                label=int(label),
                area=int(areas[label]),
                bbox=(int(x0[label]), int(y0[label]), int(x1[label]), int(y1[label])),
                outline=outline,
            )
        )

    regions.sort(key=lambda r: r.area, reverse=True)
    logger.debug(f"Labelled {n_labels} regions, {len(regions)} with area >= {min_area}")
    return regions


def _region_hull(rows: np.ndarray, starts: np.ndarray, ends: np.ndarray) -> np.ndarray:
    # Only the outermost run ends of each row can be hull vertices
    uniq_rows, first = np.unique(rows, return_index=True)
    left = np.minimum.reduceat(starts, first)
    right = np.maximum.reduceat(ends, first)
    ys = uniq_rows.astype(np.float64)
    points = np.concatenate(
        [
            np.column_stack([left, ys]),
            np.column_stack([left, ys + 1]),
            np.column_stack([right, ys]),
            np.column_stack([right, ys + 1]),
        ]
    ).astype(np.float64)
    return convex_hull(points)


def convex_hull(points: np.ndarray) -> np.ndarray:
    """Andrew's monotone chain; vertices in consistent winding, no repeats."""
    pts = np.unique(np.asarray(points, dtype=np.float64), axis=0)
    if len(pts) < 3:
        return pts

    def cross(o, a, b) -> float:
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    lower: list = []
    for p in pts:
        while len(lower) >= 2 and cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list = []
    for p in pts[::-1]:
        while len(upper) >= 2 and cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return np.array(lower[:-1] + upper[:-1], dtype=np.float64)


def polygon_area(poly: np.ndarray) -> float:
    """Absolute shoelace area of a closed polygon."""
    if len(poly) < 3:
        return 0.0
    x, y = poly[:, 0], poly[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def polygon_perimeter(poly: np.ndarray, closed: bool = True) -> float:
    if len(poly) < 2:
        return 0.0
    seg = np.diff(poly, axis=0)
    total = float(np.hypot(seg[:, 0], seg[:, 1]).sum())
    if closed:
        total += float(np.hypot(*(poly[0] - poly[-1])))
    return total


def _point_segment_distances(points: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ab = b - a
    length = float(np.hypot(ab[0], ab[1]))
    if length == 0:
        return np.hypot(points[:, 0] - a[0], points[:, 1] - a[1])
    # Perpendicular distance to the line through a and b
    return np.abs(ab[0] * (points[:, 1] - a[1]) - ab[1] * (points[:, 0] - a[0])) / length


def _simplify_chain(chain: np.ndarray, epsilon: float) -> list[int]:
    """Douglas-Peucker on an open chain; returns kept indices (ends included)."""
    keep = {0, len(chain) - 1}
    stack = [(0, len(chain) - 1)]
    while stack:
        lo, hi = stack.pop()
        if hi - lo < 2:
            continue
        dists = _point_segment_distances(chain[lo + 1 : hi], chain[lo], chain[hi])
        k = int(np.argmax(dists))
        if dists[k] > epsilon:
            mid = lo + 1 + k
            keep.add(mid)
            stack.append((lo, mid))
            stack.append((mid, hi))
    return sorted(keep)


def approx_polygon(poly: np.ndarray, epsilon: float) -> np.ndarray:
    """Douglas-Peucker simplification of a closed polygon.

    The polygon is split at two mutually distant vertices so the result
    does not depend on where the vertex list happens to start.
    """
    n = len(poly)
    if n <= 3:
        return poly.copy()

    first = int(np.argmax(np.hypot(*(poly - poly[0]).T)))
    a = first
    b = int(np.argmax(np.hypot(*(poly - poly[a]).T)))
    if a == b:
        return poly[[a]].copy()
    if a > b:
        a, b = b, a

    chain1 = np.arange(a, b + 1)
    chain2 = np.concatenate([np.arange(b, n), np.arange(0, a + 1)])
    keep1 = chain1[_simplify_chain(poly[chain1], epsilon)]
    keep2 = chain2[_simplify_chain(poly[chain2], epsilon)]
    indices = list(keep1) + list(keep2[1:-1])
    return poly[indices].copy()

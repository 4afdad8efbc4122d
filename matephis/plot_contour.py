"""Implicit curves ``F(x, y) = 0`` via marching squares.

The visible rectangle is covered by a ``resolution x resolution`` cell grid.
Each cell gets a 4-bit code from the signs of its corners::

    v3 ---- T ---- v2        bit 1: v0 > 0
    |               |        bit 2: v1 > 0
    L               R        bit 4: v2 > 0
    |               |        bit 8: v3 > 0
    v0 ---- B ---- v1

and a fixed table connects the interpolated edge crossings. Segments are
returned unordered and unstitched. The saddle codes 5 and 10 emit two segments
each without disambiguation.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from .plot_transform import Transform

__all__ = ["DEFAULT_RESOLUTION", "CASE_TABLE", "ContourSegments", "marching_squares"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_RESOLUTION = 60

# code -> pairs of edges to connect
CASE_TABLE: Dict[int, Tuple[Tuple[str, str], ...]] = {
    1: (("L", "B"),),
    2: (("B", "R"),),
    3: (("L", "R"),),
    4: (("T", "R"),),
    5: (("L", "T"), ("B", "R")),
    6: (("B", "T"),),
    7: (("L", "T"),),
    8: (("L", "T"),),
    9: (("B", "T"),),
    10: (("L", "B"), ("T", "R")),
    11: (("T", "R"),),
    12: (("L", "R"),),
    13: (("B", "R"),),
    14: (("L", "B"),),
}


@dataclass(frozen=True)
class ContourSegments:
    """Independent line segments approximating the zero set.

    ``data`` and ``pixels`` have shape ``(n, 2, 2)``: segment, endpoint, (x, y).
    """

    data: np.ndarray
    pixels: np.ndarray
    label_anchor: Optional[Tuple[float, float]] = None

    def __len__(self) -> int:
        return int(self.data.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.data.shape[0] == 0


def _empty() -> ContourSegments:
    return ContourSegments(data=np.zeros((0, 2, 2)), pixels=np.zeros((0, 2, 2)))


def _lerp(v0: float, v1: float) -> float:
    total = abs(v0) + abs(v1)
    if total == 0.0:
        return 0.5
    return abs(v0) / total


def marching_squares(
    F: Callable[..., Any],
    transform: Transform,
    *,
    resolution: int = DEFAULT_RESOLUTION,
) -> ContourSegments:
    """Extract the zero contour of ``F`` over the visible rectangle.

    Parameters
    ----------
    F : callable
        Two-variable function ``F(x, y)``; evaluated once on the whole vertex
        grid. Non-finite corner values make the cell be skipped.
    transform : Transform
        Supplies the visible bounds and the pixel mapping.
    resolution : int
        Cells per axis.

    Returns
    -------
    ContourSegments
    """
    if resolution < 1:
        raise ValueError(f"resolution must be >= 1, got {resolution!r}")
    t0 = time.perf_counter()
    x_min, x_max, y_min, y_max = transform.bounds
    dx = (x_max - x_min) / resolution
    dy = (y_max - y_min) / resolution
    xs = x_min + dx * np.arange(resolution + 1, dtype=float)
    ys = y_min + dy * np.arange(resolution + 1, dtype=float)
    # grid[i, j] = F(x_i, y_j)
    X, Y = np.meshgrid(xs, ys, indexing="ij")
    with np.errstate(all="ignore"):
        grid = np.asarray(F(X, Y), dtype=float)
    grid = np.array(np.broadcast_to(grid, X.shape), dtype=float)

    v0 = grid[:-1, :-1]
    v1 = grid[1:, :-1]
    v2 = grid[1:, 1:]
    v3 = grid[:-1, 1:]
    finite = np.isfinite(v0) & np.isfinite(v1) & np.isfinite(v2) & np.isfinite(v3)
    codes = (v0 > 0).astype(int) | ((v1 > 0).astype(int) << 1) | ((v2 > 0).astype(int) << 2) | ((v3 > 0).astype(int) << 3)
    active = finite & (codes != 0) & (codes != 15)

    segments = []
    for i, j in zip(*np.nonzero(active)):
        a, b, c, d = float(v0[i, j]), float(v1[i, j]), float(v2[i, j]), float(v3[i, j])
        xl = xs[i]
        xr = xl + dx
        yb = ys[j]
        yt = yb + dy
        # Only the edges named by the case are interpolated.
        edges = {
            "B": lambda: (xl + dx * _lerp(a, b), yb),
            "R": lambda: (xr, yb + dy * _lerp(b, c)),
            "T": lambda: (xl + dx * _lerp(d, c), yt),
            "L": lambda: (xl, yb + dy * _lerp(a, d)),
        }
        for first, second in CASE_TABLE[int(codes[i, j])]:
            segments.append((edges[first](), edges[second]()))

    if not segments:
        return _empty()

    data = np.asarray(segments, dtype=float)
    pixels = np.empty_like(data)
    pixels[..., 0] = transform.map_x(data[..., 0])
    pixels[..., 1] = transform.map_y(data[..., 1])
    anchor = (float(pixels[-1, 1, 0]), float(pixels[-1, 1, 1]))
    logger.debug(
        "marching squares %dx%d: %d segments in %.2f ms",
        resolution,
        resolution,
        data.shape[0],
        (time.perf_counter() - t0) * 1000,
    )
    return ContourSegments(data=data, pixels=pixels, label_anchor=anchor)

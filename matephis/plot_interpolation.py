"""Smooth curves through user-supplied points (cardinal splines)."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np

from .plot_sampler import CurveRun, SampledCurve
from .plot_transform import Transform

__all__ = ["cardinal_spline", "sample_interpolation"]


def cardinal_spline(points: np.ndarray, smoothness: float = 0.5, samples_per_segment: int = 16) -> np.ndarray:
    """Return dense ``(n, 2)`` samples of a cardinal spline through ``points``.

    ``smoothness`` scales the Catmull-Rom tangents: ``0`` gives the straight
    polyline, ``1`` the classic Catmull-Rom curve. The curve passes through
    every input point in the given order.
    """
    pts = np.asarray(points, dtype=float)
    if pts.ndim != 2 or pts.shape[1] != 2:
        raise ValueError(f"points must have shape (n, 2), got {pts.shape}")
    if pts.shape[0] < 2:
        return pts.copy()
    if samples_per_segment < 1:
        raise ValueError("samples_per_segment must be >= 1")

    tension = float(np.clip(smoothness, 0.0, 1.0))
    padded = np.vstack([pts[:1], pts, pts[-1:]])
    tangents = tension * (padded[2:] - padded[:-2]) / 2.0

    t = np.linspace(0.0, 1.0, samples_per_segment, endpoint=False)[:, None]
    h00 = 2 * t**3 - 3 * t**2 + 1
    h10 = t**3 - 2 * t**2 + t
    h01 = -2 * t**3 + 3 * t**2
    h11 = t**3 - t**2

    pieces = []
    for i in range(pts.shape[0] - 1):
        p0, p1 = pts[i], pts[i + 1]
        m0, m1 = tangents[i], tangents[i + 1]
        pieces.append(h00 * p0 + h10 * m0 + h01 * p1 + h11 * m1)
    pieces.append(pts[-1:])
    return np.vstack(pieces)


def sample_interpolation(
    points: Sequence[Tuple[float, float]],
    transform: Transform,
    *,
    smoothness: float = 0.5,
    samples_per_segment: Optional[int] = None,
) -> SampledCurve:
    """Sample an interpolation item into a single run in data and pixel space."""
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    finite = np.all(np.isfinite(pts), axis=1)
    pts = pts[finite]
    if pts.shape[0] < 2:
        return SampledCurve()
    dense = cardinal_spline(pts, smoothness, samples_per_segment or 16)
    px = transform.map_x(dense[:, 0])
    py = transform.safe_map_y(dense[:, 1])
    run = CurveRun(x=dense[:, 0], y=dense[:, 1], px=np.asarray(px), py=np.asarray(py))
    return SampledCurve(runs=(run,), label_anchor=(float(px[-1]), float(py[-1])), evaluations=0)

"""Adaptive sampling of explicit curves ``y = f(x)``.

Purpose
-------
Turn a compiled one-variable function into polyline runs that look smooth at
the current zoom, stop at domain edges and asymptotes, and bridge removable
point holes such as ``sin(x)/x`` at ``0``.

Concepts and structure
----------------------
1. A coarse pass evaluates ``f`` (vectorized) on a grid whose spacing is
   ``sample_step`` pixels of the *visible* range, clipped to the item domain.
2. Each coarse segment is refined by recursive bisection up to ``max_depth``
   while one of the split rules fires (validity changes, a hole inside a valid
   segment, a valid midpoint between invalid ends, curvature above
   ``tolerance`` pixels, or a pixel jump taller than the canvas).
3. Leaf segments are appended to a :class:`_RunBuilder`, which starts a new
   run after an asymptote or an invalid stretch. A run cut by an invalid span
   no wider than two finest subdivisions is resumed when the next valid point
   lies within ``bridge_threshold`` pixels.

Pixel ``y`` values are clamped to +/- ``pixel_clamp`` before jump tests, so an
infinite jump compares as a large finite one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
import time
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from .numpify import evaluate_scalar
from .plot_transform import PIXEL_CLAMP, Transform

__all__ = ["SamplerOptions", "CurveRun", "SampledCurve", "sample_function"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# A one-ulp step can round back onto the edge; sqrt(eps) survives the rounding.
_EDGE_NUDGE = math.sqrt(np.finfo(float).eps)


@dataclass(frozen=True)
class SamplerOptions:
    """Tuning knobs for the adaptive sampler.

    Parameters
    ----------
    sample_step : float
        Coarse grid spacing in pixels of the visible x range.
    max_depth : int
        Maximum bisection depth per coarse segment.
    tolerance : float
        Allowed deviation (pixels) of the midpoint from the chord.
    break_factor : float
        A leaf segment whose pixel jump reaches ``break_factor * height`` is
        treated as an asymptote and not drawn.
    bridge_threshold : float
        Largest pixel jump drawn across an unresolved invalid midpoint.
    pixel_clamp : float
        Magnitude pixel ``y`` values are clamped to.
    edge_nudge : float
        Relative inward offset used to re-evaluate a non-finite domain edge.
    """

    sample_step: float = 2.0
    max_depth: int = 8
    tolerance: float = 0.2
    break_factor: float = 2.0
    bridge_threshold: float = 50.0
    pixel_clamp: float = PIXEL_CLAMP
    edge_nudge: float = _EDGE_NUDGE

    def __post_init__(self) -> None:
        if not self.sample_step > 0:
            raise ValueError(f"sample_step must be > 0, got {self.sample_step!r}")
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth!r}")


@dataclass(frozen=True)
class CurveRun:
    """One connected polyline in data and pixel space."""

    x: np.ndarray
    y: np.ndarray
    px: np.ndarray
    py: np.ndarray

    def __len__(self) -> int:
        return int(self.x.shape[0])


@dataclass(frozen=True)
class SampledCurve:
    """Sampler output: disjoint runs plus the pixel anchor for an inline label."""

    runs: Tuple[CurveRun, ...] = ()
    label_anchor: Optional[Tuple[float, float]] = None
    evaluations: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.runs


@dataclass
class _RunBuilder:
    hole_width: float
    bridge_threshold: float
    runs: List[List[Tuple[float, float, float, float]]] = field(default_factory=list)
    _current: Optional[List[Tuple[float, float, float, float]]] = None
    _resumable: Optional[List[Tuple[float, float, float, float]]] = None

    def line(self, p1: Tuple[float, float, float, float], p2: Tuple[float, float, float, float]) -> None:
        if self._current is None:
            resumed = self._resume(p1)
            if resumed is None:
                self._current = [p1]
                self.runs.append(self._current)
            else:
                self._current = resumed
                self._current.append(p1)
        self._current.append(p2)

    def break_run(self, *, invalid: bool) -> None:
        if self._current is not None:
            self._resumable = self._current if invalid else None
            self._current = None
        elif not invalid:
            self._resumable = None

    def _resume(self, start: Tuple[float, float, float, float]):
        run = self._resumable
        self._resumable = None
        if run is None:
            return None
        last = run[-1]
        gap = start[0] - last[0]
        if gap <= self.hole_width * (1.0 + 1e-9) and abs(start[3] - last[3]) < self.bridge_threshold:
            return run
        return None

    def finish(self) -> Tuple[CurveRun, ...]:
        out: List[CurveRun] = []
        for points in self.runs:
            arr = np.asarray(points, dtype=float)
            out.append(CurveRun(x=arr[:, 0], y=arr[:, 1], px=arr[:, 2], py=arr[:, 3]))
        return tuple(out)


def _evaluate_grid(f: Callable[..., Any], xs: np.ndarray) -> np.ndarray:
    """Evaluate ``f`` on ``xs`` in one call, falling back to point-wise evaluation."""
    try:
        with np.errstate(all="ignore"):
            values = np.asarray(f(xs), dtype=float)
        return np.array(np.broadcast_to(values, xs.shape), dtype=float)
    except (ArithmeticError, ValueError, TypeError):
        return np.array([evaluate_scalar(f, float(x)) for x in xs], dtype=float)


def sample_function(
    f: Callable[..., Any],
    transform: Transform,
    *,
    domain: Optional[Tuple[float, float]] = None,
    options: Optional[SamplerOptions] = None,
) -> SampledCurve:
    """Adaptively sample ``f`` over the visible x range of ``transform``.

    Parameters
    ----------
    f : callable
        One-variable function; may be vectorized. Exceptions and non-finite
        results count as invalid samples.
    transform : Transform
        Current view transform; supplies the visible range and canvas size.
    domain : tuple[float, float], optional
        Closed interval outside which samples are invalid.
    options : SamplerOptions, optional
        Sampler tuning; defaults are used when omitted.

    Returns
    -------
    SampledCurve
    """
    opts = options or SamplerOptions()
    t0 = time.perf_counter()

    r_min, r_max = transform.x_min, transform.x_max
    if domain is not None:
        r_min = max(r_min, float(domain[0]))
        r_max = min(r_max, float(domain[1]))
    if not r_min < r_max:
        return SampledCurve()

    coarse_steps = transform.plot_width / opts.sample_step
    dx = (transform.x_max - transform.x_min) / coarse_steps
    count = max(1, int(math.ceil((r_max - r_min) / dx - 1e-9)))
    xs = r_min + dx * np.arange(count + 1, dtype=float)
    xs[-1] = r_max
    mids = (xs[:-1] + xs[1:]) / 2.0

    ys = _evaluate_grid(f, xs)
    ym = _evaluate_grid(f, mids)
    evaluations = xs.size + mids.size

    def in_domain(x: float) -> bool:
        return domain is None or (domain[0] <= x <= domain[1])

    def is_valid(x: float, y: float) -> bool:
        return math.isfinite(y) and in_domain(x)

    if domain is not None:
        for index, bound in ((0, domain[0]), (-1, domain[1])):
            x_edge = float(xs[index])
            if abs(x_edge - bound) < 1e-9 and not math.isfinite(ys[index]):
                direction = 1.0 if index == 0 else -1.0
                nudged = x_edge + direction * opts.edge_nudge * max(1.0, abs(x_edge))
                ys[index] = evaluate_scalar(f, nudged)
                evaluations += 1

    height = transform.height
    break_jump = opts.break_factor * height
    clamp = opts.pixel_clamp
    finest = dx / (2 ** opts.max_depth)
    builder = _RunBuilder(hole_width=2.0 * finest, bridge_threshold=opts.bridge_threshold)

    def pixel(x: float, y: float) -> Tuple[float, float, float, float]:
        px = float(transform.map_x(x))
        py = float(transform.map_y(y)) if math.isfinite(y) else math.nan
        if py < -clamp:
            py = -clamp
        elif py > clamp:
            py = clamp
        return (x, y, px, py)

    eval_count = [0]

    def segment(x1: float, y1: float, x2: float, y2: float, depth: int, ym_known: Optional[float] = None) -> None:
        xm = (x1 + x2) / 2.0
        if ym_known is None:
            y_mid = evaluate_scalar(f, xm)
            eval_count[0] += 1
        else:
            y_mid = ym_known
        v1 = is_valid(x1, y1)
        v2 = is_valid(x2, y2)
        vm = is_valid(xm, y_mid)
        p1 = pixel(x1, y1)
        p2 = pixel(x2, y2)

        if depth < opts.max_depth:
            split = False
            if v1 != v2:
                split = True
            elif v1 and v2 and not vm:
                split = True
            elif v1 and v2 and vm:
                pm = pixel(xm, y_mid)
                if abs(pm[3] - (p1[3] + p2[3]) * 0.5) > opts.tolerance:
                    split = True
                elif abs(p2[3] - p1[3]) > height:
                    split = True
            elif vm:
                split = True
            if split:
                segment(x1, y1, xm, y_mid, depth + 1)
                segment(xm, y_mid, x2, y2, depth + 1)
                return

        if v1 and v2:
            jump = abs(p2[3] - p1[3])
            if vm:
                if jump < break_jump:
                    builder.line(p1, p2)
                else:
                    builder.break_run(invalid=False)
            elif jump < opts.bridge_threshold:
                builder.line(p1, p2)
            else:
                builder.break_run(invalid=True)
        else:
            builder.break_run(invalid=True)

    for i in range(count):
        x1, x2 = float(xs[i]), float(xs[i + 1])
        y1, y2, y_mid = float(ys[i]), float(ys[i + 1]), float(ym[i])
        if is_valid(x1, y1) or is_valid(x2, y2) or is_valid((x1 + x2) / 2.0, y_mid):
            segment(x1, y1, x2, y2, 0, ym_known=y_mid)
        else:
            builder.break_run(invalid=True)

    runs = builder.finish()
    anchor = None
    if runs:
        last = runs[-1]
        anchor = (float(last.px[-1]), float(last.py[-1]))
    evaluations += eval_count[0]
    logger.debug(
        "sampled %d runs with %d evaluations in %.2f ms",
        len(runs),
        evaluations,
        (time.perf_counter() - t0) * 1000,
    )
    return SampledCurve(runs=runs, label_anchor=anchor, evaluations=evaluations)

"""Common numeric operations on compiled expressions.

Includes central-difference derivatives of explicit functions, the slope of an
implicit curve ``F(x, y) = 0`` and the secant slope through two anchors. All
derivatives in the engine are numeric.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Tuple

import numpy as np

from .numpify import BoundFunction, evaluate_scalar

__all__ = [
    "DEFAULT_STEP",
    "NDerivative",
    "central_difference",
    "second_difference",
    "implicit_slope",
    "secant_slope",
]

# Scaled by max(1, |x|) so large abscissae do not lose all precision.
DEFAULT_STEP = 1e-5

ScalarFunction = Callable[..., object]


def _step_at(x: float, h: Optional[float]) -> float:
    base = DEFAULT_STEP if h is None else float(h)
    if base <= 0:
        raise ValueError("h must be > 0")
    return base * max(1.0, abs(float(x)))


def _resolve_order(order: int) -> int:
    if order not in (0, 1, 2):
        raise ValueError(f"derivative order must be 0, 1 or 2, got {order!r}")
    return int(order)


def central_difference(f: ScalarFunction, x: float, h: Optional[float] = None) -> float:
    """Return ``(f(x+h) - f(x-h)) / 2h``; ``nan`` when either side is invalid."""
    step = _step_at(x, h)
    forward = evaluate_scalar(f, x + step)
    backward = evaluate_scalar(f, x - step)
    if not (math.isfinite(forward) and math.isfinite(backward)):
        return math.nan
    return (forward - backward) / (2.0 * step)


def second_difference(f: ScalarFunction, x: float, h: Optional[float] = None) -> float:
    """Return the central second difference of ``f`` at ``x``."""
    # Second differences cancel badly with the first-derivative step.
    step = _step_at(x, h) * 100.0
    forward = evaluate_scalar(f, x + step)
    middle = evaluate_scalar(f, x)
    backward = evaluate_scalar(f, x - step)
    if not all(math.isfinite(v) for v in (forward, middle, backward)):
        return math.nan
    return (forward - 2.0 * middle + backward) / (step * step)


def NDerivative(f: ScalarFunction, order: int = 1, h: Optional[float] = None) -> Callable[[object], object]:
    """Return a vectorized callable evaluating the ``order``-th numeric derivative of ``f``.

    Parameters
    ----------
    f : callable
        A one-variable callable such as a :class:`~matephis.numpify.BoundFunction`.
    order : int
        0 returns ``f`` itself, 1 and 2 use central differences.
    h : float, optional
        Relative step, defaults to :data:`DEFAULT_STEP`.

    Returns
    -------
    callable
        Accepts a scalar or array of ``x`` values and returns floats (``nan``
        where the derivative is undefined).

    Examples
    --------
    >>> from matephis.plot_expression import compile_expression
    >>> d = NDerivative(compile_expression("x^2"))
    >>> round(float(d(3.0)), 4)
    6.0
    """
    resolved = _resolve_order(order)
    if resolved == 0:
        return f

    base = DEFAULT_STEP if h is None else float(h)
    if base <= 0:
        raise ValueError("h must be > 0")

    def derivative(x):
        xs = np.asarray(x, dtype=float)
        step = base * np.maximum(1.0, np.abs(xs))
        with np.errstate(all="ignore"):
            if resolved == 1:
                forward = np.asarray(f(xs + step), dtype=float)
                backward = np.asarray(f(xs - step), dtype=float)
                out = (forward - backward) / (2.0 * step)
            else:
                step = step * 100.0
                forward = np.asarray(f(xs + step), dtype=float)
                middle = np.asarray(f(xs), dtype=float)
                backward = np.asarray(f(xs - step), dtype=float)
                out = (forward - 2.0 * middle + backward) / (step * step)
        out = np.where(np.isfinite(out), out, np.nan)
        if out.ndim == 0:
            return float(out)
        return out

    return derivative


def implicit_slope(F: BoundFunction, x: float, y: float, h: Optional[float] = None) -> float:
    """Return ``dy/dx = -Fx/Fy`` on the curve ``F(x, y) = 0`` at ``(x, y)``.

    A vanishing ``Fy`` (vertical tangent) returns ``inf``; an undefined
    gradient returns ``nan``.
    """
    hx = _step_at(x, h)
    hy = _step_at(y, h)
    fx = (evaluate_scalar(F, x + hx, y) - evaluate_scalar(F, x - hx, y)) / (2.0 * hx)
    fy = (evaluate_scalar(F, x, y + hy) - evaluate_scalar(F, x, y - hy)) / (2.0 * hy)
    if not (math.isfinite(fx) and math.isfinite(fy)):
        return math.nan
    scale = max(abs(fx), abs(fy), 1e-300)
    if abs(fy) <= 1e-9 * scale:
        return math.inf
    return -fx / fy


def secant_slope(first: Tuple[float, float], second: Tuple[float, float]) -> float:
    """Return the average rate of change between two anchors (``inf`` for equal x)."""
    (x1, y1), (x2, y2) = first, second
    dx = float(x2) - float(x1)
    if dx == 0.0:
        return math.inf
    return (float(y2) - float(y1)) / dx

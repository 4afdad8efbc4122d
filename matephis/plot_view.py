"""View override state for pan and zoom.

The configuration owns the default limits; ``ViewState`` owns the user's
pan/zoom override. The override is unset until the first pan or zoom, survives
parameter redraws, and is discarded when the configured limits change.
"""

from __future__ import annotations

import logging
from typing import Optional

from .plot_transform import Bounds

__all__ = ["DEFAULT_LIMITS", "ViewState"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

DEFAULT_LIMITS = (-9.9, 9.9)


class ViewState:
    """Own the mutable ``(x_min, x_max, y_min, y_max)`` override.

    Parameters
    ----------
    config_bounds : Bounds
        Limits from the configuration, used for reset, clamping and to detect
        reconfiguration.
    clamped : bool
        When True every pan/zoom result is kept inside ``config_bounds``.
    """

    def __init__(self, config_bounds: Bounds, *, clamped: bool = False) -> None:
        self._config_bounds: Bounds = tuple(float(v) for v in config_bounds)  # type: ignore[assignment]
        self._override: Optional[Bounds] = None
        self.clamped = bool(clamped)

    @property
    def is_set(self) -> bool:
        """Return True once a pan, zoom or reset has established an override."""
        return self._override is not None

    @property
    def config_bounds(self) -> Bounds:
        return self._config_bounds

    @property
    def override(self) -> Optional[Bounds]:
        return self._override

    def active_bounds(self) -> Bounds:
        """Return the override when set, otherwise the configured limits."""
        return self._override if self._override is not None else self._config_bounds

    def reconfigure(self, config_bounds: Bounds, *, clamped: Optional[bool] = None) -> bool:
        """Adopt new configured limits, dropping the override when they differ.

        Returns True when the override was discarded.
        """
        new_bounds: Bounds = tuple(float(v) for v in config_bounds)  # type: ignore[assignment]
        if clamped is not None:
            self.clamped = bool(clamped)
        if new_bounds == self._config_bounds:
            return False
        self._config_bounds = new_bounds
        discarded = self._override is not None
        self._override = None
        if discarded:
            logger.debug("view override discarded after limits changed to %s", new_bounds)
        return discarded

    def reset(self) -> Bounds:
        """Restore the configured limits as the active override."""
        self._override = self._config_bounds
        return self._override

    def set_bounds(self, bounds: Bounds) -> Bounds:
        """Set the override directly (after clamping, when enabled)."""
        x_min, x_max, y_min, y_max = (float(v) for v in bounds)
        if not (x_max > x_min and y_max > y_min):
            raise ValueError(f"Empty view bounds: {bounds!r}")
        result: Bounds = (x_min, x_max, y_min, y_max)
        if self.clamped:
            result = self._clamp(result)
        self._override = result
        return result

    def pan(self, dx: float, dy: float, seed: Optional[Bounds] = None) -> Bounds:
        """Translate the view by ``(dx, dy)`` data units.

        ``seed`` is the currently displayed bounds (after equal-aspect
        adjustment); it initialises an unset override.
        """
        x_min, x_max, y_min, y_max = self._current(seed)
        return self.set_bounds((x_min + dx, x_max + dx, y_min + dy, y_max + dy))

    def zoom_at(self, focal_x: float, focal_y: float, factor: float, seed: Optional[Bounds] = None) -> Bounds:
        """Scale both ranges by ``factor`` keeping the data point ``(focal_x, focal_y)`` fixed."""
        if not factor > 0:
            raise ValueError(f"Zoom factor must be > 0, got {factor!r}")
        x_min, x_max, y_min, y_max = self._current(seed)
        new_w = (x_max - x_min) * factor
        new_h = (y_max - y_min) * factor
        x_frac = (focal_x - x_min) / (x_max - x_min)
        y_frac = (focal_y - y_min) / (y_max - y_min)
        new_x_min = focal_x - x_frac * new_w
        new_y_min = focal_y - y_frac * new_h
        return self.set_bounds((new_x_min, new_x_min + new_w, new_y_min, new_y_min + new_h))

    def zoom_center(self, factor: float, seed: Optional[Bounds] = None) -> Bounds:
        """Scale about the centre of the current view."""
        x_min, x_max, y_min, y_max = self._current(seed)
        return self.zoom_at((x_min + x_max) / 2.0, (y_min + y_max) / 2.0, factor, seed=(x_min, x_max, y_min, y_max))

    def _current(self, seed: Optional[Bounds]) -> Bounds:
        if self._override is not None:
            return self._override
        return tuple(float(v) for v in (seed if seed is not None else self._config_bounds))  # type: ignore[return-value]

    def _clamp(self, bounds: Bounds) -> Bounds:
        cx_min, cx_max, cy_min, cy_max = self._config_bounds
        x_min, x_max = _clamp_range(bounds[0], bounds[1], cx_min, cx_max)
        y_min, y_max = _clamp_range(bounds[2], bounds[3], cy_min, cy_max)
        return (x_min, x_max, y_min, y_max)

    def __repr__(self) -> str:
        return f"ViewState(config={self._config_bounds!r}, override={self._override!r}, clamped={self.clamped})"


def _clamp_range(lo: float, hi: float, limit_lo: float, limit_hi: float) -> tuple[float, float]:
    span = hi - lo
    limit_span = limit_hi - limit_lo
    if span >= limit_span:
        return (limit_lo, limit_hi)
    if lo < limit_lo:
        return (limit_lo, limit_lo + span)
    if hi > limit_hi:
        return (limit_hi - span, limit_hi)
    return (lo, hi)

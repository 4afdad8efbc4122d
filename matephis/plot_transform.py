"""Data <-> screen coordinate transform.

The transform is rebuilt on every draw from the active bounds, the canvas size
and the padding. Screen ``y`` grows downward, so ``y_max`` maps to the top
padding edge.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple

import numpy as np

__all__ = ["Bounds", "Transform", "PIXEL_CLAMP"]

# Pixel coordinates are clamped to this magnitude before they reach the scene.
PIXEL_CLAMP = 10000.0

Bounds = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Transform:
    """Affine map between data space and canvas pixels.

    Parameters
    ----------
    x_min, x_max, y_min, y_max : float
        Visible data bounds (after equal-aspect adjustment).
    width, height : float
        Canvas size in pixels.
    padding : float
        Inset of the plot rectangle from every canvas edge.
    """

    x_min: float
    x_max: float
    y_min: float
    y_max: float
    width: float
    height: float
    padding: float

    @classmethod
    def build(
        cls,
        bounds: Bounds,
        width: float,
        height: float,
        padding: float,
        *,
        equal_aspect: bool = False,
    ) -> "Transform":
        """Create a transform, recentring the y range when ``equal_aspect`` is set.

        Raises
        ------
        ValueError
            If a range is empty or the padded plot area has no extent.
        """
        x_min, x_max, y_min, y_max = (float(v) for v in bounds)
        if not (x_max > x_min and y_max > y_min):
            raise ValueError(f"Empty view bounds: {bounds!r}")
        plot_w = float(width) - 2.0 * float(padding)
        plot_h = float(height) - 2.0 * float(padding)
        if plot_w <= 0 or plot_h <= 0:
            raise ValueError(f"Padding {padding!r} leaves no plot area in a {width}x{height} canvas")
        if equal_aspect:
            pixels_per_unit = plot_w / (x_max - x_min)
            required = plot_h / pixels_per_unit
            center = (y_min + y_max) / 2.0
            y_min, y_max = center - required / 2.0, center + required / 2.0
        return cls(x_min, x_max, y_min, y_max, float(width), float(height), float(padding))

    @property
    def bounds(self) -> Bounds:
        return (self.x_min, self.x_max, self.y_min, self.y_max)

    @property
    def plot_width(self) -> float:
        return self.width - 2.0 * self.padding

    @property
    def plot_height(self) -> float:
        return self.height - 2.0 * self.padding

    @property
    def units_per_pixel_x(self) -> float:
        return (self.x_max - self.x_min) / self.plot_width

    @property
    def units_per_pixel_y(self) -> float:
        return (self.y_max - self.y_min) / self.plot_height

    def map_x(self, x: Any) -> Any:
        return self.padding + (np.asarray(x, dtype=float) - self.x_min) / (self.x_max - self.x_min) * self.plot_width

    def map_y(self, y: Any) -> Any:
        return (
            self.height
            - self.padding
            - (np.asarray(y, dtype=float) - self.y_min) / (self.y_max - self.y_min) * self.plot_height
        )

    def safe_map_y(self, y: Any) -> Any:
        """Map ``y`` and clamp the result to +/- :data:`PIXEL_CLAMP` (``nan`` stays ``nan``)."""
        with np.errstate(invalid="ignore"):
            return np.clip(self.map_y(y), -PIXEL_CLAMP, PIXEL_CLAMP)

    def unmap_x(self, px: Any) -> Any:
        return self.x_min + (np.asarray(px, dtype=float) - self.padding) / self.plot_width * (self.x_max - self.x_min)

    def unmap_y(self, py: Any) -> Any:
        return self.y_min + (self.height - self.padding - np.asarray(py, dtype=float)) / self.plot_height * (
            self.y_max - self.y_min
        )

    def forward(self, x: float, y: float) -> Tuple[float, float]:
        """Map a data point to pixels."""
        return float(self.map_x(x)), float(self.map_y(y))

    def inverse(self, px: float, py: float) -> Tuple[float, float]:
        """Map a pixel position to data coordinates."""
        return float(self.unmap_x(px)), float(self.unmap_y(py))

    def contains_px(self, px: float, py: float) -> bool:
        """Return True when a pixel lies inside the padded plot rectangle."""
        return (
            self.padding <= px <= self.width - self.padding
            and self.padding <= py <= self.height - self.padding
        )

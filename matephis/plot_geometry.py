"""Per-draw cache of hit-testable geometry.

Every draw replaces the cache wholesale. The interaction layer queries it with a
pixel position and gets back the nearest drawn feature within a threshold.
Points are measured by Euclidean distance; segments and polylines by the
distance to the orthogonal projection onto the closest segment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

__all__ = ["GeometryEntry", "Hit", "GeometryCache"]


@dataclass(frozen=True)
class GeometryEntry:
    """Hit-testable geometry drawn for one data item.

    Parameters
    ----------
    item_index : int
        Position of the data item in the configuration.
    item_kind : str
        ``"function"``, ``"implicit"``, ``"vline"``, ``"points"`` or
        ``"interpolation"``.
    shape : str
        ``"points"`` (``data``/``pixels`` shape ``(n, 2)``), ``"polyline"``
        (``(n, 2)``, consecutive points connected) or ``"segments"``
        (``(n, 2, 2)``, independent segments).
    data, pixels : numpy.ndarray
        Data-space and pixel-space coordinates with matching shapes.
    function : callable, optional
        ``f(x)`` for explicit functions, ``F(x, y)`` for implicit relations.
    domain : tuple[float, float], optional
        Closed x interval of an explicit function.
    """

    item_index: int
    item_kind: str
    shape: str
    data: np.ndarray
    pixels: np.ndarray
    function: Optional[Callable[..., Any]] = None
    domain: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class Hit:
    """Result of a nearest-feature query."""

    item_index: int
    item_kind: str
    x: float
    y: float
    px: float
    py: float
    distance: float
    entry: GeometryEntry = field(repr=False, compare=False)


def _as_segments(entry: GeometryEntry):
    if entry.shape == "segments":
        return entry.pixels[:, 0, :], entry.pixels[:, 1, :], entry.data[:, 0, :], entry.data[:, 1, :]
    return entry.pixels[:-1], entry.pixels[1:], entry.data[:-1], entry.data[1:]


def _nearest_in_entry(entry: GeometryEntry, px: float, py: float) -> Optional[Hit]:
    target = np.array([px, py], dtype=float)
    if entry.pixels.size == 0:
        return None
    if entry.shape == "points" or (entry.shape == "polyline" and entry.pixels.shape[0] == 1):
        dist = np.hypot(entry.pixels[:, 0] - px, entry.pixels[:, 1] - py)
        dist = np.where(np.isfinite(dist), dist, np.inf)
        k = int(np.argmin(dist))
        if not np.isfinite(dist[k]):
            return None
        return Hit(entry.item_index, entry.item_kind, float(entry.data[k, 0]), float(entry.data[k, 1]),
                   float(entry.pixels[k, 0]), float(entry.pixels[k, 1]), float(dist[k]), entry)

    a, b, da, db = _as_segments(entry)
    if a.shape[0] == 0:
        return None
    ab = b - a
    length_sq = np.einsum("ij,ij->i", ab, ab)
    with np.errstate(all="ignore"):
        t = np.einsum("ij,ij->i", target - a, ab) / length_sq
    t = np.where(length_sq > 0, np.clip(t, 0.0, 1.0), 0.0)
    proj = a + t[:, None] * ab
    dist = np.hypot(proj[:, 0] - px, proj[:, 1] - py)
    dist = np.where(np.isfinite(dist), dist, np.inf)
    k = int(np.argmin(dist))
    if not np.isfinite(dist[k]):
        return None
    data_point = da[k] + t[k] * (db[k] - da[k])
    return Hit(entry.item_index, entry.item_kind, float(data_point[0]), float(data_point[1]),
               float(proj[k, 0]), float(proj[k, 1]), float(dist[k]), entry)


class GeometryCache:
    """Ordered collection of :class:`GeometryEntry` for the latest draw."""

    def __init__(self) -> None:
        self._entries: List[GeometryEntry] = []

    def add(self, entry: GeometryEntry) -> None:
        self._entries.append(entry)

    def replace(self, entries: List[GeometryEntry]) -> None:
        """Swap in the geometry of a new draw."""
        self._entries = list(entries)

    def clear(self) -> None:
        self._entries = []

    @property
    def entries(self) -> tuple[GeometryEntry, ...]:
        return tuple(self._entries)

    def for_item(self, item_index: int) -> tuple[GeometryEntry, ...]:
        return tuple(e for e in self._entries if e.item_index == item_index)

    def nearest(
        self,
        px: float,
        py: float,
        threshold: float = 40.0,
        *,
        item_index: Optional[int] = None,
    ) -> Optional[Hit]:
        """Return the closest feature within ``threshold`` pixels, or None.

        Parameters
        ----------
        px, py : float
            Query position in pixels.
        threshold : float
            Maximum accepted distance. ``inf`` accepts any feature.
        item_index : int, optional
            Restrict the search to one data item (used while dragging).
        """
        best: Optional[Hit] = None
        for entry in self._entries:
            if item_index is not None and entry.item_index != item_index:
                continue
            hit = _nearest_in_entry(entry, px, py)
            if hit is None:
                continue
            if best is None or hit.distance < best.distance:
                best = hit
        if best is None or best.distance > threshold:
            return None
        return best

    def __len__(self) -> int:
        return len(self._entries)

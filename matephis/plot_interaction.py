"""Pan, zoom and selection state machine.

Purpose
-------
Translate pointer, wheel and pinch input into view changes and selection
anchors. The controller never draws; every handler returns ``True`` when the
caller should redraw.

States
------
``IDLE`` -> ``PANNING`` (pointer down on empty space, interactive plots)
``IDLE`` -> ``DRAGGING_SELECTION`` (pointer down near a feature with a mode armed)
``IDLE`` -> ``PINCH_ZOOMING`` (two-finger gesture, interactive plots)
Every state returns to ``IDLE`` on pointer up or pinch end.

Selection modes
---------------
``point`` keeps one anchor and reports its coordinates, ``slope`` keeps two
anchors and reports the average rate of change, ``tangent`` keeps one anchor
and reports the numeric tangent slope there. While tracing, each tangent
update appends ``(x, slope)`` to the trace buffer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from .numeric_operations import central_difference, implicit_slope, secant_slope
from .numpify import evaluate_scalar
from .plot_geometry import GeometryCache, GeometryEntry, Hit
from .plot_transform import Bounds, Transform
from .plot_view import ViewState

__all__ = [
    "InteractionState",
    "SelectionMode",
    "Anchor",
    "SelectionInfo",
    "InteractionOptions",
    "InteractionController",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class InteractionState(Enum):
    IDLE = "idle"
    PANNING = "panning"
    PINCH_ZOOMING = "pinch_zooming"
    DRAGGING_SELECTION = "dragging_selection"


class SelectionMode(str, Enum):
    NONE = "none"
    POINT = "point"
    SLOPE = "slope"
    TANGENT = "tangent"

    @classmethod
    def coerce(cls, value: "SelectionMode | str | None") -> "SelectionMode":
        """Accept enum members, their string values, or None (``NONE``)."""
        if value is None:
            return cls.NONE
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown selection mode {value!r}; expected one of {[m.value for m in cls]}") from None


@dataclass(frozen=True)
class Anchor:
    """A selected point on a drawn item, in data coordinates."""

    item_index: int
    item_kind: str
    x: float
    y: float


@dataclass(frozen=True)
class SelectionInfo:
    """Read-only view of the selection for rendering and callers."""

    mode: SelectionMode
    anchors: Tuple[Anchor, ...]
    slope: Optional[float]
    is_dragging: bool
    is_tracing: bool
    trace: Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class InteractionOptions:
    """Thresholds and factors for the controller.

    Parameters
    ----------
    pick_threshold : float
        Maximum pixel distance for a selection hit.
    move_threshold : float
        Pixel distance a pointer must travel before a press counts as a drag.
    wheel_zoom_out, wheel_zoom_in : float
        Range factors applied for positive and negative wheel deltas.
    button_zoom_in, button_zoom_out : float
        Range factors for the zoom buttons (applied about the view centre).
    """

    pick_threshold: float = 40.0
    move_threshold: float = 2.0
    wheel_zoom_out: float = 1.05
    wheel_zoom_in: float = 0.95
    button_zoom_in: float = 0.9
    button_zoom_out: float = 1.1


@dataclass
class _Gesture:
    start_px: float = 0.0
    start_py: float = 0.0
    last_px: float = 0.0
    last_py: float = 0.0
    has_moved: bool = False
    pinch_bounds: Optional[Bounds] = None
    pinch_transform: Optional[Transform] = None
    pinch_distance: float = 0.0
    drag_anchor: int = 0
    pinned_item: Optional[int] = None


@dataclass
class _Selection:
    mode: SelectionMode = SelectionMode.NONE
    anchors: List[Anchor] = field(default_factory=list)
    is_tracing: bool = False
    trace: List[Tuple[float, float]] = field(default_factory=list)


class InteractionController:
    """Own the interaction state and selection for one plot.

    Parameters
    ----------
    view : ViewState
        The view override that pan and zoom modify.
    interactive : bool
        Whether pan, wheel and pinch are enabled. Selection works regardless.
    options : InteractionOptions, optional
        Thresholds and zoom factors.
    """

    def __init__(self, view: ViewState, *, interactive: bool = True, options: Optional[InteractionOptions] = None) -> None:
        self.view = view
        self.interactive = bool(interactive)
        self.options = options or InteractionOptions()
        self.state = InteractionState.IDLE
        self._gesture = _Gesture()
        self._selection = _Selection()
        self._transform: Optional[Transform] = None
        self._geometry = GeometryCache()

    # ------------------------------------------------------------------
    # Draw context
    # ------------------------------------------------------------------

    def update_context(self, transform: Transform, geometry: GeometryCache) -> None:
        """Adopt the transform and geometry of the latest draw."""
        self._transform = transform
        self._geometry = geometry

    @property
    def transform(self) -> Optional[Transform]:
        return self._transform

    def refresh_anchors(self) -> None:
        """Move anchors onto the freshly drawn geometry of their items.

        Function anchors keep their ``x`` and take the new ``f(x)``; other
        anchors snap to the nearest point of their item. Anchors whose item
        is no longer drawn (or no longer defined at ``x``) are dropped.
        """
        sel = self._selection
        if not sel.anchors:
            return
        kept: List[Anchor] = []
        for anchor in sel.anchors:
            entries = self._geometry.for_item(anchor.item_index)
            if not entries:
                continue
            entry = entries[0]
            if anchor.item_kind == "function" and entry.function is not None:
                y = evaluate_scalar(entry.function, anchor.x)
                inside = entry.domain is None or entry.domain[0] <= anchor.x <= entry.domain[1]
                if inside and math.isfinite(y):
                    kept.append(Anchor(anchor.item_index, anchor.item_kind, anchor.x, y))
                continue
            if self._transform is None:
                kept.append(anchor)
                continue
            px, py = self._transform.forward(anchor.x, anchor.y)
            hit = self._geometry.nearest(px, py, math.inf, item_index=anchor.item_index)
            if hit is not None:
                kept.append(Anchor(anchor.item_index, anchor.item_kind, hit.x, hit.y))
        if len(kept) != len(sel.anchors):
            logger.debug("dropped %d stale anchor(s)", len(sel.anchors) - len(kept))
        sel.anchors[:] = kept

    # ------------------------------------------------------------------
    # Selection mode
    # ------------------------------------------------------------------

    @property
    def mode(self) -> SelectionMode:
        return self._selection.mode

    def set_mode(self, mode: "SelectionMode | str | None") -> bool:
        """Arm a selection mode, clearing anchors and trace when it changes."""
        resolved = SelectionMode.coerce(mode)
        if resolved == self._selection.mode:
            return False
        self._selection.mode = resolved
        self._selection.anchors.clear()
        self._selection.trace.clear()
        return True

    def set_tracing(self, enabled: bool) -> None:
        self._selection.is_tracing = bool(enabled)
        if not enabled:
            self._selection.trace.clear()

    def clear_selection(self) -> bool:
        had = bool(self._selection.anchors or self._selection.trace)
        self._selection.anchors.clear()
        self._selection.trace.clear()
        return had

    def selection_info(self) -> SelectionInfo:
        sel = self._selection
        return SelectionInfo(
            mode=sel.mode,
            anchors=tuple(sel.anchors),
            slope=self.current_slope(),
            is_dragging=self.state is InteractionState.DRAGGING_SELECTION,
            is_tracing=sel.is_tracing,
            trace=tuple(sel.trace),
        )

    def current_slope(self) -> Optional[float]:
        """Return the slope reported by the active mode, or None."""
        sel = self._selection
        if sel.mode is SelectionMode.SLOPE and len(sel.anchors) == 2:
            a, b = sel.anchors
            return secant_slope((a.x, a.y), (b.x, b.y))
        if sel.mode is SelectionMode.TANGENT and sel.anchors:
            return self.tangent_slope(sel.anchors[0])
        return None

    def tangent_slope(self, anchor: Anchor) -> float:
        """Return the numeric tangent slope of the anchored item at the anchor."""
        entries = self._geometry.for_item(anchor.item_index)
        if not entries:
            return math.nan
        entry = entries[0]
        if anchor.item_kind == "function" and entry.function is not None:
            return central_difference(entry.function, anchor.x)
        if anchor.item_kind == "implicit" and entry.function is not None:
            return implicit_slope(entry.function, anchor.x, anchor.y)
        if anchor.item_kind == "vline":
            return math.inf
        return _neighbour_slope(entries, anchor.x, anchor.y)

    # ------------------------------------------------------------------
    # Pointer
    # ------------------------------------------------------------------

    def pointer_down(self, px: float, py: float) -> bool:
        """Start a pan or a selection drag at ``(px, py)``."""
        g = self._gesture = _Gesture(start_px=px, start_py=py, last_px=px, last_py=py)
        if self._selection.mode is not SelectionMode.NONE:
            hit = self._geometry.nearest(px, py, self.options.pick_threshold)
            if hit is not None:
                anchor = self._snap(hit, px)
                g.pinned_item = hit.item_index
                g.drag_anchor = self._place_anchor(anchor)
                self.state = InteractionState.DRAGGING_SELECTION
                return True
        if self.interactive:
            self.state = InteractionState.PANNING
        else:
            self.state = InteractionState.IDLE
        return False

    def pointer_move(self, px: float, py: float) -> bool:
        """Pan the view or move the dragged anchor."""
        g = self._gesture
        if self.state is InteractionState.IDLE or self.state is InteractionState.PINCH_ZOOMING:
            return False
        if not g.has_moved:
            if math.hypot(px - g.start_px, py - g.start_py) <= self.options.move_threshold:
                return False
            g.has_moved = True

        if self.state is InteractionState.PANNING:
            t = self._transform
            if t is None:
                return False
            dx_px = px - g.last_px
            dy_px = py - g.last_py
            g.last_px, g.last_py = px, py
            self.view.pan(-dx_px * t.units_per_pixel_x, dy_px * t.units_per_pixel_y, seed=t.bounds)
            return True

        g.last_px, g.last_py = px, py
        hit = self._geometry.nearest(px, py, math.inf, item_index=g.pinned_item)
        if hit is None:
            return False
        self._replace_anchor(g.drag_anchor, self._snap(hit, px))
        return True

    def pointer_up(self, px: float, py: float) -> bool:
        """Finish the gesture; a click without movement or drag clears the selection."""
        state = self.state
        moved = self._gesture.has_moved
        self.state = InteractionState.IDLE
        if state is InteractionState.DRAGGING_SELECTION:
            return True
        if not moved:
            return self.clear_selection()
        return False

    # ------------------------------------------------------------------
    # Zoom
    # ------------------------------------------------------------------

    def wheel(self, px: float, py: float, delta: float) -> bool:
        """Zoom out for ``delta > 0`` and in otherwise, keeping the pointer's data point fixed."""
        t = self._transform
        if not self.interactive or t is None:
            return False
        factor = self.options.wheel_zoom_out if delta > 0 else self.options.wheel_zoom_in
        fx, fy = t.inverse(px, py)
        self.view.zoom_at(fx, fy, factor, seed=t.bounds)
        return True

    def pinch_start(self, cx: float, cy: float, distance: float) -> bool:
        t = self._transform
        if not self.interactive or t is None:
            return False
        self.state = InteractionState.PINCH_ZOOMING
        self._gesture = _Gesture(
            start_px=cx,
            start_py=cy,
            last_px=cx,
            last_py=cy,
            pinch_bounds=t.bounds,
            pinch_transform=t,
            pinch_distance=float(distance),
        )
        return False

    def pinch_move(self, cx: float, cy: float, distance: float) -> bool:
        """Scale about the gesture start centre and follow the centre's translation."""
        g = self._gesture
        if self.state is not InteractionState.PINCH_ZOOMING or g.pinch_transform is None:
            return False
        start = g.pinch_transform
        scale = g.pinch_distance / distance if (g.pinch_distance > 0 and distance > 0) else 1.0
        x_min, x_max, y_min, y_max = g.pinch_bounds
        fx, fy = start.inverse(g.start_px, g.start_py)
        new_w = (x_max - x_min) * scale
        new_h = (y_max - y_min) * scale
        new_x_min = fx - (fx - x_min) / (x_max - x_min) * new_w
        new_y_min = fy - (fy - y_min) / (y_max - y_min) * new_h
        shift_x = -(cx - g.start_px) / start.plot_width * new_w
        shift_y = (cy - g.start_py) / start.plot_height * new_h
        self.view.set_bounds(
            (
                new_x_min + shift_x,
                new_x_min + new_w + shift_x,
                new_y_min + shift_y,
                new_y_min + new_h + shift_y,
            )
        )
        return True

    def pinch_end(self) -> bool:
        if self.state is InteractionState.PINCH_ZOOMING:
            self.state = InteractionState.IDLE
        return False

    def zoom_in(self) -> bool:
        return self._zoom_button(self.options.button_zoom_in)

    def zoom_out(self) -> bool:
        return self._zoom_button(self.options.button_zoom_out)

    def reset(self) -> bool:
        self.view.reset()
        return True

    def _zoom_button(self, factor: float) -> bool:
        seed = self._transform.bounds if self._transform is not None else None
        self.view.zoom_center(factor, seed=seed)
        return True

    # ------------------------------------------------------------------
    # Anchors
    # ------------------------------------------------------------------

    def _snap(self, hit: Hit, px: float) -> Anchor:
        entry = hit.entry
        if hit.item_kind == "function" and entry.function is not None and self._transform is not None:
            x = float(self._transform.unmap_x(px))
            if entry.domain is None or entry.domain[0] <= x <= entry.domain[1]:
                y = evaluate_scalar(entry.function, x)
                if math.isfinite(y):
                    return Anchor(hit.item_index, hit.item_kind, x, y)
        return Anchor(hit.item_index, hit.item_kind, hit.x, hit.y)

    def _place_anchor(self, anchor: Anchor) -> int:
        sel = self._selection
        if sel.mode is SelectionMode.SLOPE:
            if len(sel.anchors) < 2:
                sel.anchors.append(anchor)
                return len(sel.anchors) - 1
            index = self._nearest_anchor_index(anchor)
            self._replace_anchor(index, anchor)
            return index
        sel.anchors[:] = [anchor]
        self._record_trace(anchor)
        return 0

    def _replace_anchor(self, index: int, anchor: Anchor) -> None:
        sel = self._selection
        if index < len(sel.anchors):
            sel.anchors[index] = anchor
        else:
            sel.anchors.append(anchor)
        if sel.mode is SelectionMode.TANGENT:
            self._record_trace(anchor)

    def _nearest_anchor_index(self, anchor: Anchor) -> int:
        t = self._transform
        best, best_dist = 0, math.inf
        for i, existing in enumerate(self._selection.anchors):
            if t is not None:
                ax, ay = t.forward(existing.x, existing.y)
                bx, by = t.forward(anchor.x, anchor.y)
            else:
                ax, ay, bx, by = existing.x, existing.y, anchor.x, anchor.y
            dist = math.hypot(ax - bx, ay - by)
            if dist < best_dist:
                best, best_dist = i, dist
        return best

    def _record_trace(self, anchor: Anchor) -> None:
        sel = self._selection
        if not (sel.is_tracing and sel.mode is SelectionMode.TANGENT):
            return
        slope = self.tangent_slope(anchor)
        if math.isfinite(slope):
            sel.trace.append((anchor.x, slope))


def _neighbour_slope(entries: Tuple[GeometryEntry, ...], x: float, y: float) -> float:
    """Slope from the samples around the point of a polyline or point set closest to ``(x, y)``."""
    best_entry, best_k, best_d = None, 0, math.inf
    for entry in entries:
        if entry.shape == "segments" or entry.data.shape[0] < 2:
            continue
        d = np.hypot(entry.data[:, 0] - x, entry.data[:, 1] - y)
        k = int(np.argmin(d))
        if d[k] < best_d:
            best_entry, best_k, best_d = entry, k, float(d[k])
    if best_entry is None:
        return math.nan
    data = best_entry.data
    lo = max(best_k - 1, 0)
    hi = min(best_k + 1, data.shape[0] - 1)
    return secant_slope((data[lo, 0], data[lo, 1]), (data[hi, 0], data[hi, 1]))

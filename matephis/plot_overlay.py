"""Selection overlay: anchors, secant and tangent lines, slope labels.

Drawn into the ``overlay`` layer after the data so it stays on top. Lines are
clipped analytically to the visible rectangle; the layer clip takes care of
anything that still spills into the padding.
"""

from __future__ import annotations

import math
from typing import Mapping, Optional, Tuple

from .plot_config import Configuration
from .plot_interaction import SelectionInfo, SelectionMode
from .plot_scene import SceneBuilder
from .plot_transform import Transform

__all__ = ["format_value", "visible_line", "draw_selection_overlay"]

ANCHOR_RADIUS = 6.0
OVERLAY_COLOR = "#333"


def format_value(value: Optional[float], digits: int = 2) -> str:
    """Format a coordinate or slope for display (``∞`` for vertical, ``undefined`` for nan)."""
    if value is None or math.isnan(value):
        return "undefined"
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    text = f"{value:.{digits}f}"
    return "0" if text.strip("-0.") == "" else text


def visible_line(
    transform: Transform, x0: float, y0: float, slope: float
) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    """Return the part of the line through ``(x0, y0)`` with ``slope`` inside the view, in data space."""
    if math.isnan(slope):
        return None
    if math.isinf(slope):
        if not transform.x_min <= x0 <= transform.x_max:
            return None
        return ((x0, transform.y_min), (x0, transform.y_max))
    # parametrize as (x0 + t, y0 + slope * t)
    t_lo, t_hi = transform.x_min - x0, transform.x_max - x0
    if slope != 0.0:
        a = (transform.y_min - y0) / slope
        b = (transform.y_max - y0) / slope
        t_lo, t_hi = max(t_lo, min(a, b)), min(t_hi, max(a, b))
    elif not transform.y_min <= y0 <= transform.y_max:
        return None
    if t_lo >= t_hi:
        return None
    return ((x0 + t_lo, y0 + slope * t_lo), (x0 + t_hi, y0 + slope * t_hi))


def _draw_line(builder: SceneBuilder, transform: Transform, line, color: str, dash: str = "") -> None:
    if line is None:
        return
    (xa, ya), (xb, yb) = line
    pa = transform.forward(xa, ya)
    pb = transform.forward(xb, yb)
    builder.line("overlay", pa[0], pa[1], pb[0], pb[1], color, 2, dash)


def _label(builder: SceneBuilder, transform: Transform, px: float, py: float, text: str, config: Configuration) -> None:
    anchor = "start"
    dx = 10.0
    if px > transform.width - 120:
        anchor, dx = "end", -10.0
    dy = -12.0 if py > 40 else 20.0
    builder.text("overlay", px + dx, py + dy, text, anchor, "auto", OVERLAY_COLOR, config.size("label_size"), "bold")


def draw_selection_overlay(
    builder: SceneBuilder,
    transform: Transform,
    selection: SelectionInfo,
    colors: Mapping[int, str],
    config: Configuration,
) -> None:
    """Draw the active selection on top of the data layer."""
    if selection.mode is SelectionMode.NONE or not selection.anchors:
        return
    pixels = [transform.forward(a.x, a.y) for a in selection.anchors]

    if selection.mode is SelectionMode.SLOPE and len(selection.anchors) == 2:
        a, b = selection.anchors
        slope = selection.slope if selection.slope is not None else math.nan
        _draw_line(builder, transform, visible_line(transform, a.x, a.y, slope), OVERLAY_COLOR, "6,4")
        # rise/run legs
        pa, pb = pixels
        builder.line("overlay", pa[0], pa[1], pb[0], pa[1], OVERLAY_COLOR, 1, "3,3")
        builder.line("overlay", pb[0], pa[1], pb[0], pb[1], OVERLAY_COLOR, 1, "3,3")
        mx, my = (pa[0] + pb[0]) / 2.0, min(pa[1], pb[1])
        _label(builder, transform, mx, my, f"{config.slope_label} = {format_value(slope)}", config)

    elif selection.mode is SelectionMode.TANGENT:
        anchor = selection.anchors[0]
        slope = selection.slope if selection.slope is not None else math.nan
        color = colors.get(anchor.item_index, OVERLAY_COLOR)
        _draw_line(builder, transform, visible_line(transform, anchor.x, anchor.y, slope), color)
        px, py = pixels[0]
        _label(builder, transform, px, py, f"{config.slope_label} = {format_value(slope)}", config)

    elif selection.mode is SelectionMode.POINT:
        anchor = selection.anchors[0]
        px, py = pixels[0]
        _label(builder, transform, px, py, f"({format_value(anchor.x)}, {format_value(anchor.y)})", config)

    for anchor, (px, py) in zip(selection.anchors, pixels):
        color = colors.get(anchor.item_index, OVERLAY_COLOR)
        builder.circle("overlay", px, py, ANCHOR_RADIUS, "#fff", color, 3.0)

"""Background, grid lines, tick marks, tick numbers and axes.

Step selection
--------------
Without an explicit ``x_step``/``y_step`` the grid uses a "nice" step of
``1, 2, 5 or 10 x 10^k`` data units chosen so neighbouring lines are roughly
100 px apart. Steps written with ``pi`` (``"pi/2"``) label their numbers as
multiples of pi. The secondary grid defaults to a fifth of the main step.

Numbers
-------
Tick numbers use the precision of their step, skip zero (a single shared
``0`` is drawn at the origin) and snap to the plot edge when they fall within
10 px of it.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator

from .NumberInput import StepValue, parse_step
from .plot_config import Configuration
from .plot_scene import Rect, SceneBuilder
from .plot_transform import Transform

__all__ = [
    "GRID_COLOR",
    "AXIS_COLOR",
    "NUMBER_COLOR",
    "nice_step",
    "step_precision",
    "format_tick",
    "draw_axes",
    "plot_clip",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

GRID_COLOR = "#808080"
AXIS_COLOR = "#333"
NUMBER_COLOR = "#666"

_MIN_PX_PER_STEP = 100.0
_EDGE_SNAP = 10.0
# Skip a grid family that would need more lines than this (a tiny explicit step).
_MAX_LINES = 2000


def nice_step(span: float, pixel_size: float) -> float:
    """Return a 1/2/5/10 x 10^k step giving about one line per 100 px.

    Examples
    --------
    >>> nice_step(19.8, 560)
    5.0
    """
    target_steps = max(2.0, pixel_size / _MIN_PX_PER_STEP)
    raw = span / target_steps
    magnitude = 10.0 ** math.floor(math.log10(raw))
    normalized = raw / magnitude
    if normalized < 1.5:
        factor = 1.0
    elif normalized < 3:
        factor = 2.0
    elif normalized < 7:
        factor = 5.0
    else:
        factor = 10.0
    return factor * magnitude


def step_precision(step: float) -> int:
    """Number of decimals needed to print multiples of ``step`` (at most 10)."""
    s = step or 1.0
    p = 0
    scale = 1.0
    while abs(round(s * scale) / scale - s) > 1e-9 and p < 10:
        scale *= 10.0
        p += 1
    return p


def _plain(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def _pi_fraction(n: int, denominator: int) -> str:
    prefix = "" if n == 1 else "-" if n == -1 else str(n)
    return f"{prefix}π/{denominator}"


def format_tick(value: float, is_pi: bool, step: float) -> str:
    """Format a tick value, as a multiple of pi when ``is_pi``.

    Examples
    --------
    >>> format_tick(2.5, False, 0.5)
    '2.5'
    >>> format_tick(3 * math.pi / 2, True, math.pi / 2)
    '3π/2'
    """
    if not is_pi:
        return _plain(value, step_precision(step))
    v = value / math.pi
    if abs(v) < 1e-6:
        return "0"
    if abs(v - 1) < 1e-6:
        return "π"
    if abs(v + 1) < 1e-6:
        return "-π"
    if abs(v - round(v)) < 1e-6:
        return f"{int(round(v))}π"
    for denominator in (2, 4):
        scaled = v * denominator
        if abs(scaled - round(scaled)) < 1e-6:
            return _pi_fraction(int(round(scaled)), denominator)
    return f"{v:.2f}π"


def _multiples(lo: float, hi: float, step: float) -> Iterator[float]:
    start = math.ceil(lo / step)
    stop = math.floor((hi + 1e-9) / step)
    if stop - start > _MAX_LINES:
        logger.debug("skipping %d grid lines for step %g", stop - start, step)
        return
    for k in range(start, stop + 1):
        yield k * step


def _resolve_steps(config: Configuration, transform: Transform):
    x_auto = nice_step(transform.x_max - transform.x_min, transform.plot_width)
    y_auto = nice_step(transform.y_max - transform.y_min, transform.plot_height)
    x_step = parse_step(config.x_step, x_auto)
    y_step = parse_step(config.y_step, y_auto)
    x_num = parse_step(config.x_number_step, x_step.value) if config.x_number_step is not None else x_step
    y_num = parse_step(config.y_number_step, y_step.value) if config.y_number_step is not None else y_step
    return x_step, y_step, x_num, y_num


def plot_clip(transform: Transform) -> Rect:
    """Return the padded plot rectangle used to clip data."""
    p = transform.padding
    return Rect(p, p, max(0.0, transform.width - 2 * p), max(0.0, transform.height - 2 * p), fill="#fff")


def draw_axes(builder: SceneBuilder, transform: Transform, config: Configuration) -> None:
    """Add background, grids, ticks, numbers, axes, arrows and axis labels."""
    t = transform
    p = t.padding
    w, h = t.width, t.height
    left, right, top, bottom = p, w - p, p, h - p

    builder.rect("background", p, p, w - 2 * p, h - 2 * p, fill="#fff")

    grid_opacity = config.grid_opacity if config.grid_opacity is not None else 0.8
    builder.set_opacity("grid", grid_opacity)
    if config.secondary_grid_opacity is not None:
        secondary_opacity = config.secondary_grid_opacity
    else:
        secondary_opacity = (config.grid_opacity if config.grid_opacity is not None else 0.5) * 0.5
    builder.set_opacity("secondary_grid", secondary_opacity)

    x_step, y_step, x_num, y_num = _resolve_steps(config, t)

    if config.show_secondary_grid:
        sx = parse_step(config.x_step_secondary, x_step.value / 5.0)
        for x in _multiples(t.x_min, t.x_max, sx.value):
            px = float(t.map_x(x))
            if left <= px <= right:
                builder.line("secondary_grid", px, top, px, bottom, GRID_COLOR, 1.5)
        sy = parse_step(config.y_step_secondary, y_step.value / 5.0)
        for y in _multiples(t.y_min, t.y_max, sy.value):
            py = float(t.map_y(y))
            if top <= py <= bottom:
                builder.line("secondary_grid", left, py, right, py, GRID_COLOR, 1.5)

    x0 = float(t.map_x(0.0))
    y0 = float(t.map_y(0.0))

    for x in _multiples(t.x_min, t.x_max, x_step.value):
        px = float(t.map_x(x))
        if not left <= px <= right:
            continue
        if config.grid:
            builder.line("grid", px, top, px, bottom, GRID_COLOR, 1.5)
        if config.show_x_ticks and abs(x) > 1e-9:
            builder.line("axes", px, y0, px, y0 + 5, AXIS_COLOR, 2)

    for y in _multiples(t.y_min, t.y_max, y_step.value):
        py = float(t.map_y(y))
        if not top <= py <= bottom:
            continue
        if config.grid:
            builder.line("grid", left, py, right, py, GRID_COLOR, 1.5)
        if config.show_y_ticks and abs(y) > 1e-9:
            builder.line("axes", x0 - 5, py, x0, py, AXIS_COLOR, 2)

    number_size = config.size("number_size")
    if config.show_x_numbers:
        _draw_x_numbers(builder, t, x_num, y0, number_size)
    if config.show_y_numbers:
        _draw_y_numbers(builder, t, y_num, x0, number_size)

    if t.x_min <= 0 <= t.x_max and t.y_min <= 0 <= t.y_max:
        if config.show_x_numbers or config.show_y_numbers:
            builder.text("numbers", x0 - 5, y0 + 15, "0", "end", "top", NUMBER_COLOR, number_size)

    x_axis_visible = top <= y0 <= bottom
    y_axis_visible = left <= x0 <= right
    if y_axis_visible:
        builder.line("axes", x0, top, x0, bottom, AXIS_COLOR, 2)
    if x_axis_visible:
        builder.line("axes", left, y0, right, y0, AXIS_COLOR, 2)

    if config.axis_arrows:
        if x_axis_visible:
            tip = right + 5
            builder.polygon("axes", [(tip, y0), (tip - 8, y0 - 4), (tip - 8, y0 + 4)], AXIS_COLOR)
        if y_axis_visible:
            tip = top - 5
            builder.polygon("axes", [(x0, tip), (x0 - 4, tip + 8), (x0 + 4, tip + 8)], AXIS_COLOR)

    if config.axis_labels:
        label_size = config.size("label_size")
        x_label, y_label = config.axis_labels
        builder.text("axes", right + 10, y0, x_label, "start", "middle", AXIS_COLOR, label_size, "bold")
        builder.text("axes", x0, top - 15, y_label, "middle", "bottom", AXIS_COLOR, label_size, "bold")


def _draw_x_numbers(builder: SceneBuilder, t: Transform, step: StepValue, y0: float, size: float) -> None:
    left, right = t.padding, t.width - t.padding
    for x in _multiples(t.x_min - step.value * 0.5, t.x_max + step.value * 0.5, step.value):
        if abs(x) < 1e-9:
            continue
        px = float(t.map_x(x))
        anchor = "middle"
        if abs(px - left) < _EDGE_SNAP:
            px, anchor = left, "start"
        elif abs(px - right) < _EDGE_SNAP:
            px, anchor = right, "end"
        if not left <= px <= right:
            continue
        if x < -1e-9 and anchor == "middle":
            # centre the digits, not the minus sign
            px -= size * 0.3
        builder.text("numbers", px, y0 + 15, format_tick(x, step.is_pi, step.value), anchor, "top", NUMBER_COLOR, size)


def _draw_y_numbers(builder: SceneBuilder, t: Transform, step: StepValue, x0: float, size: float) -> None:
    top, bottom = t.padding, t.height - t.padding
    for y in _multiples(t.y_min - step.value * 0.5, t.y_max + step.value * 0.5, step.value):
        if abs(y) < 1e-9:
            continue
        py = float(t.map_y(y))
        baseline = "middle"
        if abs(py - bottom) < _EDGE_SNAP:
            py, baseline = bottom - 5, "auto"
        elif abs(py - top) < _EDGE_SNAP:
            py = top + 5
        if not top <= py <= bottom:
            continue
        builder.text("numbers", x0 - 5, py, format_tick(y, step.is_pi, step.value), "end", baseline, NUMBER_COLOR, size)

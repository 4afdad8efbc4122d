"""Colour themes, inline curve labels and the legend block.

Purpose
-------
Resolve item colours from the configured theme, place short labels next to
curves when no legend is requested, and lay out the legend block otherwise.

Concepts and structure
----------------------
Themes are ordered palettes; item ``n`` gets ``palette[n % len(palette)]``.
Every palette entry is also addressable by name (``red1`` is the first entry
of the ``red`` theme). An explicit colour that is neither a theme nor a palette
entry is passed through unchanged (``"#00f"``, ``"steelblue"``).

Label placement is a small heuristic: labels sit up and to the right of their
anchor, flip to the left near the right edge and below the anchor near the
top edge, then are clamped 10 px inside the canvas. ``label_offset`` and
``label_anchor`` override the heuristic.

Examples
--------
>>> resolve_color(0, None, "red")
'#B01A00'
>>> resolve_color(3, "coastal2", "red")
'#2b2d42'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .plot_config import Configuration, Style
from .plot_scene import SceneBuilder

__all__ = [
    "PALETTES",
    "resolve_color",
    "display_label",
    "LegendEntry",
    "place_label",
    "draw_legend",
]

THEMES: Dict[str, Tuple[str, ...]] = {
    "black": ("#000000", "#444444", "#6e6e6e", "#929292", "#b6b6b6", "#dadada"),
    "red": ("#B01A00", "#8b2e1bff", "#ce452aff", "#e64b2cff", "#fd5a35ff", "#fa7a5d"),
    "sunburst": ("#4f000b", "#720026", "#ce4257", "#ff7f51", "#ff9b54"),
    "coastal": ("#2b2d42", "#2b2d42", "#edf2f4", "#ef233c", "#d90429"),
    "seaside": ("#2B3A67", "#496A81", "#66999B", "#B3AF8F", "#FFC482"),
    "default": ("#007bff", "#dc3545", "#28a745", "#fd7e14", "#6f42c1"),
}

PALETTES: Dict[str, str] = {
    f"{theme}{i + 1}": colour for theme, colours in THEMES.items() for i, colour in enumerate(colours)
}


def resolve_color(index: int, explicit: Optional[str], theme: str) -> str:
    """Return the colour for data item ``index``.

    An explicit theme name picks that theme's first colour; a palette entry
    name (``red2``) resolves to its colour; anything else is returned as is.
    """
    if explicit:
        if explicit in PALETTES:
            return PALETTES[explicit]
        if explicit in THEMES:
            return THEMES[explicit][0]
        return explicit
    palette = THEMES.get(theme, THEMES["default"])
    return palette[index % len(palette)]


def display_label(label: str) -> str:
    """Render ``*`` as a middle dot (``2*x`` -> ``2·x``)."""
    return label.replace("*", "·")


@dataclass(frozen=True)
class LegendEntry:
    color: str
    label: str
    kind: str = "line"
    dash: str = ""


def place_label(
    builder: SceneBuilder,
    anchor: Tuple[float, float],
    style: Style,
    color: str,
    config: Configuration,
    width: float,
    height: float,
) -> None:
    """Draw ``style.label`` next to the pixel ``anchor``."""
    if not style.label:
        return
    x, y = anchor
    text_anchor = "start"
    dx, dy = 5.0, -5.0
    if x > width - 60:
        text_anchor, dx = "end", -5.0
    if y < 30:
        dy = 15.0
    if x < 60:
        text_anchor, dx = "start", 5.0
    if style.label_offset is not None:
        dx += style.label_offset[0]
        dy += style.label_offset[1]
    if style.label_anchor:
        text_anchor = style.label_anchor
    lx = max(10.0, min(width - 10.0, x + dx))
    ly = max(10.0, min(height - 10.0, y + dy))
    builder.text(
        "labels",
        lx,
        ly,
        display_label(style.label),
        text_anchor,
        "bottom",
        color,
        config.size("label_size"),
        config.label_weight,
    )


def draw_legend(
    builder: SceneBuilder,
    entries: Sequence[LegendEntry],
    config: Configuration,
    width: float,
    height: float,
    padding: float,
) -> None:
    """Draw the legend block in the configured corner of the plot area."""
    if not entries:
        return
    fs = config.size("legend_size")
    if config.legend_width is not None:
        w = config.legend_width
    else:
        longest = max(len(e.label) for e in entries)
        w = max(120.0, 30 + longest * fs * 0.6 + 20)
    h = len(entries) * fs * 1.5 + 10

    position = config.legend_position
    if position.endswith("right"):
        x_left = width - padding - 10 - w
    else:
        x_left = padding + 10
    if position.startswith("top"):
        y_top = padding + 10
    else:
        y_top = height - padding - 10 - h

    builder.rect("legend", x_left, y_top, w, h, fill="white", fill_opacity=0.9, stroke="#eee", stroke_width=1.0)
    rows: List[LegendEntry] = list(entries)
    for i, entry in enumerate(rows):
        ly = y_top + 15 + i * fs * 1.5
        lx = x_left + 10
        symbol_y = ly + fs / 3
        if entry.kind == "point":
            builder.circle("legend", lx + 5, symbol_y, 4, entry.color)
        else:
            builder.line("legend", lx, symbol_y, lx + 15, symbol_y, entry.color, 2, entry.dash)
        builder.text(
            "legend",
            lx + 20,
            ly + fs / 3,
            display_label(entry.label),
            "start",
            "middle",
            "#333",
            fs,
            config.label_weight,
        )

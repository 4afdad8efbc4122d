"""Vector scene graph produced by a draw.

A :class:`Scene` is an ordered tuple of named :class:`Layer` objects holding
immutable primitives in pixel coordinates. Scenes compare by value, so two
draws of the same configuration and view produce equal scenes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union

__all__ = [
    "LAYER_ORDER",
    "Rect",
    "Line",
    "Path",
    "Circle",
    "Polygon",
    "Text",
    "Layer",
    "Scene",
    "SceneBuilder",
]

# Default back-to-front order; ``numbers`` moves above ``data`` for render_order="numbers-top".
LAYER_ORDER = (
    "background",
    "secondary_grid",
    "grid",
    "axes",
    "numbers",
    "data",
    "labels",
    "legend",
    "overlay",
)

Point = Tuple[float, float]


def _r(value: float) -> float:
    # Rounded so scenes compare stably and serialize compactly.
    return round(float(value), 3)


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float
    fill: str = "#fff"
    fill_opacity: Optional[float] = None
    stroke: Optional[str] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    stroke: str = "#000"
    stroke_width: float = 1.0
    dash: str = ""
    opacity: Optional[float] = None


@dataclass(frozen=True)
class Path:
    """One or more polylines (runs) drawn with one stroke style."""

    runs: Tuple[Tuple[Point, ...], ...]
    stroke: str = "#000"
    stroke_width: float = 1.0
    dash: str = ""
    opacity: Optional[float] = None
    fill: Optional[str] = None
    item_index: Optional[int] = None

    def to_d(self) -> str:
        """Return SVG path data (``M x y L x y ...``)."""
        parts: List[str] = []
        for run in self.runs:
            if not run:
                continue
            head, *tail = run
            parts.append(f"M {_fmt(head[0])} {_fmt(head[1])}")
            parts.extend(f"L {_fmt(x)} {_fmt(y)}" for x, y in tail)
        return " ".join(parts)


@dataclass(frozen=True)
class Circle:
    cx: float
    cy: float
    r: float
    fill: str = "#000"
    stroke: Optional[str] = None
    stroke_width: float = 0.0
    opacity: Optional[float] = None


@dataclass(frozen=True)
class Polygon:
    points: Tuple[Point, ...]
    fill: str = "#000"
    opacity: Optional[float] = None


@dataclass(frozen=True)
class Text:
    x: float
    y: float
    text: str
    anchor: str = "start"
    baseline: str = "auto"
    color: str = "#000"
    size: float = 14.0
    weight: str = "normal"


Primitive = Union[Rect, Line, Path, Circle, Polygon, Text]


def _fmt(value: float) -> str:
    text = f"{_r(value):.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


@dataclass(frozen=True)
class Layer:
    name: str
    primitives: Tuple[Primitive, ...] = ()
    opacity: Optional[float] = None
    clip: Optional[Rect] = None

    def __iter__(self) -> Iterator[Primitive]:
        return iter(self.primitives)

    def __len__(self) -> int:
        return len(self.primitives)


@dataclass(frozen=True)
class Scene:
    """Immutable draw output.

    Parameters
    ----------
    width, height : float
        Canvas size in pixels.
    layers : tuple[Layer, ...]
        Back-to-front layers.
    """

    width: float
    height: float
    layers: Tuple[Layer, ...] = ()

    def layer(self, name: str) -> Layer:
        """Return the layer called ``name`` or raise KeyError."""
        for layer in self.layers:
            if layer.name == name:
                return layer
        raise KeyError(f"Unknown layer: {name}")

    def primitives(self) -> Iterator[Primitive]:
        for layer in self.layers:
            yield from layer.primitives

    def to_svg(self, *, font_family: str = "monospace") -> str:
        """Serialize to a standalone SVG document string."""
        from .plot_svg import scene_to_svg

        return scene_to_svg(self, font_family=font_family)

    def _repr_svg_(self) -> str:
        return self.to_svg()

    def to_plotly(self):
        """Convert to a :class:`plotly.graph_objects.Figure`."""
        from .plot_plotly import scene_to_plotly

        return scene_to_plotly(self)


@dataclass
class SceneBuilder:
    """Mutable accumulator used during a draw; :meth:`build` freezes it."""

    width: float
    height: float
    numbers_on_top: bool = False
    _layers: Dict[str, List[Primitive]] = field(default_factory=lambda: {name: [] for name in LAYER_ORDER})
    _opacity: Dict[str, float] = field(default_factory=dict)
    _clip: Dict[str, Rect] = field(default_factory=dict)

    def add(self, layer: str, primitive: Primitive) -> Primitive:
        if layer not in self._layers:
            raise KeyError(f"Unknown layer: {layer}")
        self._layers[layer].append(primitive)
        return primitive

    def line(self, layer: str, x1: float, y1: float, x2: float, y2: float, stroke: str, width: float, dash: str = "", opacity: Optional[float] = None) -> Line:
        return self.add(layer, Line(_r(x1), _r(y1), _r(x2), _r(y2), stroke, float(width), dash, opacity))  # type: ignore[return-value]

    def text(self, layer: str, x: float, y: float, text: str, anchor: str, baseline: str, color: str, size: float, weight: str = "normal") -> Text:
        return self.add(layer, Text(_r(x), _r(y), str(text), anchor, baseline, color, float(size), weight))  # type: ignore[return-value]

    def path(self, layer: str, runs, stroke: str, width: float, dash: str = "", opacity: Optional[float] = None, item_index: Optional[int] = None) -> Path:
        frozen = tuple(tuple((_r(x), _r(y)) for x, y in run) for run in runs)
        return self.add(layer, Path(frozen, stroke, float(width), dash, opacity, None, item_index))  # type: ignore[return-value]

    def circle(self, layer: str, cx: float, cy: float, r: float, fill: str, stroke: Optional[str] = None, stroke_width: float = 0.0, opacity: Optional[float] = None) -> Circle:
        return self.add(layer, Circle(_r(cx), _r(cy), float(r), fill, stroke, float(stroke_width), opacity))  # type: ignore[return-value]

    def polygon(self, layer: str, points, fill: str) -> Polygon:
        return self.add(layer, Polygon(tuple((_r(x), _r(y)) for x, y in points), fill))  # type: ignore[return-value]

    def rect(self, layer: str, x: float, y: float, width: float, height: float, **style) -> Rect:
        return self.add(layer, Rect(_r(x), _r(y), _r(width), _r(height), **style))  # type: ignore[return-value]

    def set_opacity(self, layer: str, opacity: float) -> None:
        self._opacity[layer] = float(opacity)

    def set_clip(self, layer: str, clip: Rect) -> None:
        self._clip[layer] = clip

    def build(self) -> Scene:
        order = list(LAYER_ORDER)
        if self.numbers_on_top:
            order.remove("numbers")
            order.insert(order.index("data") + 1, "numbers")
        layers = tuple(
            Layer(name, tuple(self._layers[name]), self._opacity.get(name), self._clip.get(name)) for name in order
        )
        return Scene(float(self.width), float(self.height), layers)

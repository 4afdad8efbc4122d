"""SVG serialization of a :class:`~matephis.plot_scene.Scene`."""

from __future__ import annotations

from typing import Dict, Optional
from xml.etree import ElementTree

from .plot_scene import Circle, Line, Path, Polygon, Rect, Scene, Text, _fmt

__all__ = ["SVG_NS", "scene_to_svg", "scene_to_element"]

SVG_NS = "http://www.w3.org/2000/svg"

# Halo drawn behind tick numbers and labels so they stay legible over curves.
_TEXT_HALO = "paint-order: stroke; stroke: #fff; stroke-width: 2.5px"


def _attrs(**values: object) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, value in values.items():
        if value is None or value == "":
            continue
        name = key.rstrip("_").replace("_", "-")
        out[name] = _fmt(value) if isinstance(value, float) else str(value)
    return out


def _opacity(value: Optional[float]) -> Optional[float]:
    return None if value is None else float(value)


def _append(parent: ElementTree.Element, primitive) -> None:
    if isinstance(primitive, Line):
        ElementTree.SubElement(parent, "line", _attrs(
            x1=primitive.x1, y1=primitive.y1, x2=primitive.x2, y2=primitive.y2,
            stroke=primitive.stroke, stroke_width=primitive.stroke_width,
            stroke_dasharray=primitive.dash, opacity=_opacity(primitive.opacity),
        ))
    elif isinstance(primitive, Path):
        ElementTree.SubElement(parent, "path", _attrs(
            d=primitive.to_d(), fill=primitive.fill or "none", stroke=primitive.stroke,
            stroke_width=primitive.stroke_width, stroke_dasharray=primitive.dash,
            stroke_linejoin="round", opacity=_opacity(primitive.opacity),
        ))
    elif isinstance(primitive, Circle):
        ElementTree.SubElement(parent, "circle", _attrs(
            cx=primitive.cx, cy=primitive.cy, r=primitive.r, fill=primitive.fill,
            stroke=primitive.stroke or "none", stroke_width=primitive.stroke_width,
            opacity=_opacity(primitive.opacity),
        ))
    elif isinstance(primitive, Polygon):
        points = " ".join(f"{_fmt(x)},{_fmt(y)}" for x, y in primitive.points)
        ElementTree.SubElement(parent, "polygon", _attrs(
            points=points, fill=primitive.fill, opacity=_opacity(primitive.opacity),
        ))
    elif isinstance(primitive, Rect):
        ElementTree.SubElement(parent, "rect", _attrs(
            x=primitive.x, y=primitive.y, width=primitive.width, height=primitive.height,
            fill=primitive.fill, fill_opacity=_opacity(primitive.fill_opacity),
            stroke=primitive.stroke, stroke_width=primitive.stroke_width or None,
        ))
    elif isinstance(primitive, Text):
        node = ElementTree.SubElement(parent, "text", _attrs(
            x=primitive.x, y=primitive.y, text_anchor=primitive.anchor,
            dominant_baseline=primitive.baseline, fill=primitive.color,
            font_size=f"{_fmt(primitive.size)}px", font_weight=primitive.weight,
            style=_TEXT_HALO,
        ))
        node.text = primitive.text
    else:
        raise TypeError(f"Unsupported scene primitive: {type(primitive).__name__}")


def scene_to_element(scene: Scene, *, font_family: str = "monospace") -> ElementTree.Element:
    """Build the ``<svg>`` element tree for ``scene``; each layer becomes a ``<g>``."""
    root = ElementTree.Element("svg", {
        "xmlns": SVG_NS,
        "width": _fmt(scene.width),
        "height": _fmt(scene.height),
        "viewBox": f"0 0 {_fmt(scene.width)} {_fmt(scene.height)}",
        "font-family": font_family,
    })
    defs = None
    for layer in scene.layers:
        group = ElementTree.SubElement(root, "g", {"class": f"layer-{layer.name.replace('_', '-')}"})
        if layer.opacity is not None:
            group.set("opacity", _fmt(layer.opacity))
        if layer.clip is not None:
            if defs is None:
                defs = ElementTree.Element("defs")
                root.insert(0, defs)
            clip_id = f"clip-{layer.name}"
            clip = ElementTree.SubElement(defs, "clipPath", {"id": clip_id})
            _append(clip, layer.clip)
            group.set("clip-path", f"url(#{clip_id})")
        for primitive in layer.primitives:
            _append(group, primitive)
    return root


def scene_to_svg(scene: Scene, *, font_family: str = "monospace") -> str:
    """Serialize ``scene`` to an SVG document string."""
    return ElementTree.tostring(scene_to_element(scene, font_family=font_family), encoding="unicode")

"""Plotly rendering of a :class:`~matephis.plot_scene.Scene`.

The scene is already laid out in pixels, so the figure uses a pixel-space
coordinate system: ``x`` in ``[0, width]`` and a reversed ``y`` axis in
``[height, 0]`` with both axes hidden. Paths and circles become traces; lines,
rectangles and polygons become layout shapes; texts become annotations.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import plotly.graph_objects as go

from .plot_scene import Circle, Line, Path, Polygon, Rect, Scene, Text, _fmt

__all__ = ["scene_to_plotly", "plotly_dash"]

_DASH_NAMES = {
    "": "solid",
    "2": "dot",
    "2,2": "dot",
    "5": "dash",
    "5,5": "dash",
    "10,5": "longdash",
}

_ANCHORS = {"start": "left", "middle": "center", "end": "right"}
_BASELINES = {"top": "top", "hanging": "top", "middle": "middle", "central": "middle"}


def plotly_dash(dash: str) -> str:
    """Map an SVG ``stroke-dasharray`` to a plotly dash name or length list."""
    normalized = dash.replace(" ", ",").strip(",")
    if normalized in _DASH_NAMES:
        return _DASH_NAMES[normalized]
    return "".join(f"{part}px," for part in normalized.split(",") if part).rstrip(",")


def _opacity(*values: Optional[float]) -> float:
    result = 1.0
    for value in values:
        if value is not None:
            result *= float(value)
    return result


def scene_to_plotly(scene: Scene) -> go.Figure:
    """Build a static :class:`plotly.graph_objects.Figure` from ``scene``."""
    traces: List[Any] = []
    shapes: List[Dict[str, Any]] = []
    annotations: List[Dict[str, Any]] = []

    for layer in scene.layers:
        for primitive in layer.primitives:
            opacity = _opacity(layer.opacity, getattr(primitive, "opacity", None))
            if isinstance(primitive, Path):
                xs: List[Optional[float]] = []
                ys: List[Optional[float]] = []
                for run in primitive.runs:
                    xs.extend(p[0] for p in run)
                    ys.extend(p[1] for p in run)
                    xs.append(None)
                    ys.append(None)
                traces.append(go.Scatter(
                    x=xs, y=ys, mode="lines", hoverinfo="skip", showlegend=False,
                    opacity=opacity, name=layer.name,
                    line=dict(color=primitive.stroke, width=primitive.stroke_width, dash=plotly_dash(primitive.dash)),
                ))
            elif isinstance(primitive, Circle):
                traces.append(go.Scatter(
                    x=[primitive.cx], y=[primitive.cy], mode="markers", hoverinfo="skip",
                    showlegend=False, opacity=opacity, name=layer.name,
                    marker=dict(
                        size=2 * primitive.r,
                        color=primitive.fill,
                        line=dict(color=primitive.stroke or primitive.fill, width=primitive.stroke_width),
                    ),
                ))
            elif isinstance(primitive, Line):
                shapes.append(dict(
                    type="line", x0=primitive.x1, y0=primitive.y1, x1=primitive.x2, y1=primitive.y2,
                    layer="below" if layer.name in ("grid", "secondary_grid", "background") else "above",
                    opacity=opacity,
                    line=dict(color=primitive.stroke, width=primitive.stroke_width, dash=plotly_dash(primitive.dash)),
                ))
            elif isinstance(primitive, Rect):
                shapes.append(dict(
                    type="rect", x0=primitive.x, y0=primitive.y,
                    x1=primitive.x + primitive.width, y1=primitive.y + primitive.height,
                    layer="below" if layer.name == "background" else "above",
                    fillcolor=primitive.fill, opacity=_opacity(opacity, primitive.fill_opacity),
                    line=dict(color=primitive.stroke or primitive.fill, width=primitive.stroke_width),
                ))
            elif isinstance(primitive, Polygon):
                path = "M " + " L ".join(f"{_fmt(x)},{_fmt(y)}" for x, y in primitive.points) + " Z"
                shapes.append(dict(type="path", path=path, fillcolor=primitive.fill, opacity=opacity, line=dict(width=0)))
            elif isinstance(primitive, Text):
                annotations.append(dict(
                    x=primitive.x, y=primitive.y, text=primitive.text, showarrow=False,
                    xanchor=_ANCHORS.get(primitive.anchor, "left"),
                    yanchor=_BASELINES.get(primitive.baseline, "bottom"),
                    font=dict(color=primitive.color, size=primitive.size),
                    bgcolor="rgba(255,255,255,0.6)",
                    opacity=opacity,
                ))
            else:
                raise TypeError(f"Unsupported scene primitive: {type(primitive).__name__}")

    fig = go.Figure(data=traces)
    fig.update_layout(
        width=scene.width,
        height=scene.height,
        margin=dict(l=0, r=0, t=0, b=0),
        plot_bgcolor="white",
        paper_bgcolor="white",
        shapes=shapes,
        annotations=annotations,
        showlegend=False,
    )
    fig.update_xaxes(range=[0, scene.width], visible=False, fixedrange=True)
    fig.update_yaxes(range=[scene.height, 0], visible=False, fixedrange=True, scaleanchor="x", scaleratio=1)
    return fig

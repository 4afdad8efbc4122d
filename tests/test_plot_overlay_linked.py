from __future__ import annotations

import math

import pytest

from matephis.plot_config import Configuration
from matephis.plot_engine import PlotEngine
from matephis.plot_linked import LinkedView
from matephis.plot_overlay import format_value, visible_line
from matephis.plot_scene import Circle, Line, Path, Text
from matephis.plot_transform import Transform

BASE = {
    "xlim": [-10, 10],
    "ylim": [-10, 10],
    "width": 600,
    "height": 600,
    "padding": 20,
    "interactive": True,
}


def px(x: float) -> float:
    return 20 + (x + 10) * 28


def py(y: float) -> float:
    return 20 + (10 - y) * 28


def make_engine(**overrides) -> PlotEngine:
    config = dict(BASE, data=[{"fn": "x^2", "label": "f(x)"}])
    config.update(overrides)
    engine = PlotEngine(config)
    engine.draw()
    return engine


def click(engine: PlotEngine, x: float):
    engine.pointer_down(px(x), py(x * x))
    return engine.pointer_up(px(x), py(x * x))


def overlay(result, kind):
    return [p for p in result.scene.layer("overlay") if isinstance(p, kind)]


@pytest.mark.parametrize(
    ("value", "expected"),
    [(2.0, "2.00"), (-1.234, "-1.23"), (-0.001, "0"), (math.inf, "∞"), (-math.inf, "-∞"), (math.nan, "undefined"), (None, "undefined")],
)
def test_format_value(value, expected) -> None:
    assert format_value(value) == expected


def test_visible_line_is_clipped_to_view() -> None:
    t = Transform.build((-10.0, 10.0, -10.0, 10.0), 600, 600, 20)
    start, end = visible_line(t, 0, 0, 1)
    assert start == pytest.approx((-10, -10))
    assert end == pytest.approx((10, 10))
    start, end = visible_line(t, 0, 0, 2)
    assert start == pytest.approx((-5, -10))
    assert end == pytest.approx((5, 10))
    assert visible_line(t, 3, 4, math.inf) == ((3, -10.0), (3, 10.0))
    assert visible_line(t, 0, 20, 0) is None
    assert visible_line(t, 0, 0, math.nan) is None


def test_no_overlay_without_selection() -> None:
    engine = make_engine()
    assert len(engine.last_result.scene.layer("overlay")) == 0


def test_point_overlay_shows_coordinates() -> None:
    result = click(make_engine(pointSelection=True), 2)
    assert [t.text for t in overlay(result, Text)] == ["(2.00, 4.00)"]
    (marker,) = overlay(result, Circle)
    assert (marker.cx, marker.cy, marker.r) == (px(2), py(4), 6.0)
    assert marker.stroke == "#B01A00"


def test_tangent_overlay_draws_line_and_slope() -> None:
    result = click(make_engine(tangentSelection=True), 3)
    assert [t.text for t in overlay(result, Text)] == ["m = 6.00"]
    (tangent,) = overlay(result, Line)
    assert tangent.stroke == "#B01A00"
    assert len(overlay(result, Circle)) == 1


def test_slope_overlay_draws_secant_and_legs() -> None:
    engine = make_engine(slopeSelection=True, slopeLabel="k")
    click(engine, 1)
    result = click(engine, 3)
    assert [t.text for t in overlay(result, Text)] == ["k = 4.00"]
    dashes = sorted(line.dash for line in overlay(result, Line))
    assert dashes == ["3,3", "3,3", "6,4"]
    assert len(overlay(result, Circle)) == 2


def test_linked_view_plots_the_derivative() -> None:
    engine = make_engine(addDerivativePlot=True)
    result = engine.draw()
    assert result.linked is not None
    (item,) = engine.linked.engine.configuration.data
    assert item.derivative == 1
    assert item.style.label == "f'(x)"

    paths = [p for p in result.linked.scene.layer("data") if isinstance(p, Path)]
    assert len(paths) == 1
    # 2x passes through (2, 4)
    gap = min(abs(x - px(2)) + abs(y - py(4)) for run in paths[0].runs for x, y in run)
    assert gap < 5


def test_linked_view_follows_primary_x_range() -> None:
    engine = make_engine(addDerivativePlot=True)
    result = engine.zoom_in()
    assert result.linked.transform.bounds == pytest.approx((-9, 9, -10, 10))


def test_linked_view_shows_trace() -> None:
    engine = make_engine(addDerivativePlot=True, tangentSelection=True, traceDerivative=True)
    result = click(engine, 3)
    circles = [p for p in result.linked.scene.layer("data") if isinstance(p, Circle)]
    assert [(c.cx, c.cy, c.r, c.fill) for c in circles] == [(px(3), py(6), 2.5, "#B01A00")]


def test_linked_view_can_be_disabled_by_reconfiguring() -> None:
    engine = make_engine(addDerivativePlot=True)
    assert engine.linked is not None
    result = engine.configure(dict(BASE, data=[{"fn": "x"}]))
    assert engine.linked is None
    assert result.linked is None


def test_linked_view_with_custom_projection() -> None:
    engine = make_engine()
    view = LinkedView(engine, project=lambda primary: Configuration.from_mapping({"data": [{"fn": "1"}]}), sync_x=False)
    result = view.update()
    assert view.last_result is result
    assert len([p for p in result.scene.layer("data") if isinstance(p, Path)]) == 1

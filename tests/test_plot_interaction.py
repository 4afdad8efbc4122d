from __future__ import annotations

import pytest

from matephis.plot_engine import PlotEngine
from matephis.plot_interaction import InteractionState, SelectionMode

# 600 x 600 canvas, 20 px padding: 28 px per data unit on both axes.
BASE = {
    "xlim": [-10, 10],
    "ylim": [-10, 10],
    "width": 600,
    "height": 600,
    "padding": 20,
    "interactive": True,
    "data": [{"fn": "x^2"}],
}


def px(x: float) -> float:
    return 20 + (x + 10) * 28


def py(y: float) -> float:
    return 20 + (10 - y) * 28


def make_engine(**overrides) -> PlotEngine:
    config = dict(BASE)
    config.update(overrides)
    engine = PlotEngine(config)
    engine.draw()
    return engine


def test_drag_pans_by_pointer_delta() -> None:
    engine = make_engine()
    engine.pointer_down(300, 300)
    assert engine.interaction.state is InteractionState.PANNING
    engine.pointer_move(310, 300)
    engine.pointer_up(310, 300)

    x_min, x_max, y_min, y_max = engine.view.active_bounds()
    assert x_min == pytest.approx(-10 - 10 / 28)
    assert x_max == pytest.approx(10 - 10 / 28)
    assert (y_min, y_max) == pytest.approx((-10, 10))
    assert engine.interaction.state is InteractionState.IDLE


def test_small_jitter_is_not_a_pan() -> None:
    engine = make_engine()
    engine.pointer_down(300, 300)
    engine.pointer_move(301, 301)
    engine.pointer_up(301, 301)
    assert not engine.view.is_set


def test_wheel_zoom_keeps_point_under_pointer_fixed() -> None:
    engine = make_engine()
    result = engine.wheel(px(5), py(5), -1)
    x_min, x_max, _, _ = result.transform.bounds
    assert x_max - x_min == pytest.approx(20 * 0.95)
    assert result.transform.forward(5, 5) == pytest.approx((px(5), py(5)))

    result = engine.wheel(px(5), py(5), 1)
    assert result.transform.x_max - result.transform.x_min == pytest.approx(20 * 0.95 * 1.05)


def test_pinch_scales_about_gesture_centre() -> None:
    engine = make_engine()
    engine.pinch_start(300, 300, 100)
    assert engine.interaction.state is InteractionState.PINCH_ZOOMING
    engine.pinch_move(300, 300, 200)
    engine.pinch_end()
    assert engine.view.active_bounds() == pytest.approx((-5, 5, -5, 5))
    assert engine.interaction.state is InteractionState.IDLE


def test_pinch_follows_centre_translation() -> None:
    engine = make_engine()
    engine.pinch_start(300, 300, 100)
    engine.pinch_move(328, 300, 100)
    x_min, x_max, _, _ = engine.view.active_bounds()
    assert (x_min, x_max) == pytest.approx((-11, 9))


def test_zoom_buttons_and_reset() -> None:
    engine = make_engine()
    engine.zoom_in()
    assert engine.view.active_bounds() == pytest.approx((-9, 9, -9, 9))
    engine.zoom_out()
    assert engine.view.active_bounds() == pytest.approx((-9.9, 9.9, -9.9, 9.9))
    result = engine.reset_view()
    assert result.transform.bounds == (-10.0, 10.0, -10.0, 10.0)


def test_non_interactive_plot_ignores_pan_and_zoom() -> None:
    engine = make_engine(interactive=False)
    first = engine.last_result
    assert engine.pointer_down(300, 550) is first
    assert engine.pointer_move(400, 550) is first
    assert engine.pointer_up(400, 550) is first
    assert engine.wheel(300, 300, -1) is first
    assert not engine.view.is_set


def test_clamped_view_stays_inside_configured_limits() -> None:
    engine = make_engine(clampView=True)
    engine.zoom_out()
    assert engine.view.active_bounds() == pytest.approx((-10, 10, -10, 10))

    engine.zoom_in()
    engine.pointer_down(300, 300)
    engine.pointer_move(400, 300)
    engine.pointer_up(400, 300)
    assert engine.view.active_bounds() == pytest.approx((-10, 8, -9, 9))


def test_point_selection_snaps_to_function() -> None:
    engine = make_engine(pointSelection=True)
    assert engine.interaction.mode is SelectionMode.POINT
    engine.pointer_down(px(2), py(4) + 5)
    result = engine.pointer_up(px(2), py(4) + 5)
    (anchor,) = result.selection.anchors
    assert (anchor.x, anchor.y) == pytest.approx((2, 4))
    assert anchor.item_kind == "function"


def test_click_on_empty_space_clears_selection() -> None:
    engine = make_engine(pointSelection=True)
    engine.pointer_down(px(2), py(4))
    engine.pointer_up(px(2), py(4))
    assert engine.last_result.selection.anchors

    engine.pointer_down(100, 550)
    result = engine.pointer_up(100, 550)
    assert result.selection.anchors == ()


def test_dragging_an_anchor_resnaps_to_the_curve() -> None:
    engine = make_engine(pointSelection=True)
    engine.pointer_down(px(3), py(9))
    assert engine.interaction.state is InteractionState.DRAGGING_SELECTION
    engine.pointer_move(px(2), py(4))
    result = engine.pointer_up(px(2), py(4))
    (anchor,) = result.selection.anchors
    assert (anchor.x, anchor.y) == pytest.approx((2, 4))
    assert not engine.view.is_set


def test_tangent_slope_of_function() -> None:
    engine = make_engine(tangentSelection=True)
    engine.pointer_down(px(3), py(9))
    result = engine.pointer_up(px(3), py(9))
    assert result.selection.mode is SelectionMode.TANGENT
    assert result.selection.slope == pytest.approx(6, abs=1e-2)
    assert len(result.scene.layer("overlay")) > 0


def test_secant_slope_between_two_anchors() -> None:
    engine = make_engine(slopeSelection=True)
    engine.pointer_down(px(1), py(1))
    engine.pointer_up(px(1), py(1))
    engine.pointer_down(px(3), py(9))
    result = engine.pointer_up(px(3), py(9))
    assert len(result.selection.anchors) == 2
    assert result.selection.slope == pytest.approx(4)


def test_third_slope_click_moves_nearest_anchor() -> None:
    engine = make_engine(slopeSelection=True)
    for x in (1, 3, 2.5):
        engine.pointer_down(px(x), py(x * x))
        engine.pointer_up(px(x), py(x * x))
    xs = sorted(a.x for a in engine.last_result.selection.anchors)
    assert xs == pytest.approx([1, 2.5])


def test_tangent_of_implicit_circle() -> None:
    engine = make_engine(tangentSelection=True, data=[{"implicit": "x^2 + y^2 = 25"}])
    engine.pointer_down(px(3), py(4))
    result = engine.pointer_up(px(3), py(4))
    (anchor,) = result.selection.anchors
    assert anchor.item_kind == "implicit"
    assert result.selection.slope == pytest.approx(-0.75, abs=0.02)


def test_tangent_of_vertical_line_is_infinite() -> None:
    engine = make_engine(tangentSelection=True, data=[{"x": 2}])
    engine.pointer_down(px(2), 300)
    result = engine.pointer_up(px(2), 300)
    assert result.selection.slope == float("inf")


def test_tracing_records_tangent_slopes() -> None:
    engine = make_engine(tangentSelection=True, traceDerivative=True)
    engine.pointer_down(px(3), py(9))
    engine.pointer_move(px(2), py(4))
    result = engine.pointer_up(px(2), py(4))
    assert result.selection.is_tracing
    assert len(result.selection.trace) == 2
    (x0, m0), (x1, m1) = result.selection.trace
    assert (x0, x1) == pytest.approx((3, 2))
    assert (m0, m1) == pytest.approx((6, 4), abs=1e-3)


def test_anchor_follows_parameter_change() -> None:
    engine = make_engine(pointSelection=True, params={"a": 1}, data=[{"fn": "a*x^2"}])
    engine.pointer_down(px(2), py(4))
    engine.pointer_up(px(2), py(4))
    result = engine.set_parameter("a", 0.5)
    (anchor,) = result.selection.anchors
    assert (anchor.x, anchor.y) == pytest.approx((2, 2))


def test_changing_mode_clears_anchors() -> None:
    engine = make_engine(pointSelection=True, slopeSelection=True)
    engine.pointer_down(px(2), py(4))
    engine.pointer_up(px(2), py(4))
    result = engine.set_selection_mode("slope")
    assert result.selection.mode is SelectionMode.SLOPE
    assert result.selection.anchors == ()
    with pytest.raises(ValueError, match="Unknown selection mode"):
        engine.set_selection_mode("bogus")

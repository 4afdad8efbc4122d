from __future__ import annotations

import logging

import plotly.graph_objects as go
import pytest

from matephis import render
from matephis.plot_config import Configuration
from matephis.plot_engine import EngineOptions, PlotEngine
from matephis.plot_events import ResizeEventSource, ScrollEventSource
from matephis.plot_scene import Circle, Line, Path

BASE = {"xlim": [-10, 10], "ylim": [-10, 10], "width": 600, "height": 600, "padding": 20, "interactive": True}


def config(**overrides):
    out = dict(BASE)
    out.update(overrides)
    return out


def data_paths(result) -> list[Path]:
    return [p for p in result.scene.layer("data") if isinstance(p, Path)]


def test_draw_is_idempotent() -> None:
    engine = PlotEngine(config(data=[{"fn": "sin(x)"}, {"implicit": "x^2 + y^2 = 9"}, {"points": [[1, 1]]}]))
    first = engine.draw()
    second = engine.draw()
    assert first.scene == second.scene
    assert first.warnings == second.warnings == ()


def test_render_helper_accepts_a_mapping_or_configuration() -> None:
    raw = config(data=[{"fn": "x"}])
    assert render(raw).scene == render(Configuration.from_mapping(raw)).scene


def test_failing_item_does_not_stop_others() -> None:
    result = PlotEngine(config(data=[{"fn": "sin(x"}, {"fn": "x"}])).draw()
    assert any(w.startswith("Error rendering function 'sin(x'") for w in result.warnings)
    paths = data_paths(result)
    assert [p.item_index for p in paths] == [1]


def test_implicit_error_names_the_relation() -> None:
    result = PlotEngine(config(data=[{"implicit": "x^2 + = 1"}])).draw()
    assert any(w.startswith("Error rendering implicit 'x^2 + = 1'") for w in result.warnings)


def test_warnings_are_collected_and_deduplicated() -> None:
    result = PlotEngine(config(foo=1, data=[{"color": "red"}, {"fn": "sin(x"}, {"fn": "sin(x"}])).draw()
    assert "Unknown global option: 'foo'" in result.warnings
    assert "Data item 1 has no content (missing 'fn', 'points', 'implicit', or 'x')." in result.warnings
    assert len(result.warnings) == len(set(result.warnings))
    assert sum(w.startswith("Error rendering function") for w in result.warnings) == 1


def test_colors_follow_theme_by_item_index() -> None:
    result = PlotEngine(config(theme="default", data=[{"fn": "x"}, {"fn": "-x", "color": "#123456"}])).draw()
    assert [p.stroke for p in data_paths(result)] == ["#007bff", "#123456"]


def test_set_parameter_notifies_and_redraws() -> None:
    engine = PlotEngine(config(params={"a": {"val": 1}}, data=[{"fn": "a*x"}]))
    before = engine.draw()
    events = []
    engine.observe(events.append)
    after = engine.set_parameter("a", 2)

    assert events[0].kind == "parameter"
    assert (events[0].parameter, events[0].old, events[0].new) == ("a", 1.0, 2.0)
    assert events[1].kind == "draw" and events[1].new is after
    assert engine.parameters["a"].value == 2.0
    assert data_paths(before) != data_paths(after)


def test_unknown_parameter_raises() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    with pytest.raises(KeyError):
        engine.set_parameter("nope", 1.0)


def test_unobserve_stops_events() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    events = []
    observer_id = engine.observe(events.append)
    engine.unobserve(observer_id)
    engine.draw()
    assert events == []


def test_failing_observer_is_reported_as_warning() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))

    def broken(event):
        raise RuntimeError("boom")

    engine.observe(broken)
    with pytest.warns(UserWarning, match="Observer 1 failed: boom"):
        result = engine.draw()
    assert result is engine.last_result


def test_draw_requested_during_draw_runs_once_afterwards() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    reasons = []

    def observer(event):
        if event.kind != "draw":
            return
        reasons.append(event.reason)
        if len(reasons) == 1:
            engine.draw(reason="nested")
            engine.draw(reason="nested")

    engine.observe(observer)
    engine.draw(reason="first")
    assert reasons == ["first", "pending"]


def test_view_survives_parameter_redraw_but_not_new_limits() -> None:
    engine = PlotEngine(config(params={"a": 1}, data=[{"fn": "a*x"}]))
    engine.draw()
    engine.zoom_in()
    zoomed = engine.view.active_bounds()
    engine.set_parameter("a", 3)
    assert engine.view.active_bounds() == zoomed

    engine.configure(config(params={"a": 1}, data=[{"fn": "a*x^2"}]))
    assert engine.view.active_bounds() == zoomed

    result = engine.configure(config(xlim=[-2, 2], data=[{"fn": "x"}]))
    assert not engine.view.is_set
    assert result.transform.bounds[:2] == (-2.0, 2.0)


def test_configure_without_redraw() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    assert engine.configure(config(data=[{"fn": "x^2"}]), width=400, redraw=False) is None
    assert engine.width == 400
    assert engine.draw().scene.width == 400


def test_scroll_guard_blocks_pointer_and_wheel() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    source = ScrollEventSource()
    engine.attach(source)
    assert source.listener_count == 1
    first = engine.draw()

    source.notify_scroll(10.0)
    assert engine.wheel(300, 300, -1, now=10.05) is first
    assert not engine.view.is_set
    engine.pointer_down(300, 300, now=10.1)
    assert engine.interaction.state.value == "idle"

    engine.wheel(300, 300, -1, now=10.5)
    assert engine.view.is_set

    engine.detach(source)
    assert source.listener_count == 0


def test_scroll_guard_window_is_configurable() -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]), options=EngineOptions(scroll_guard_ms=0))
    source = ScrollEventSource()
    engine.attach(source)
    engine.draw()
    source.notify_scroll(10.0)
    engine.wheel(300, 300, -1, now=10.0)
    assert engine.view.is_set


def test_resize_source_redraws_on_significant_change() -> None:
    engine = PlotEngine({"data": [{"fn": "x"}]})
    source = ResizeEventSource()
    engine.attach(source)
    engine.draw()

    source.notify_resize(603)
    assert engine.width == 600
    source.notify_resize(800)
    assert engine.width == 800
    assert engine.last_result.scene.width == 800
    assert engine.last_result.scene.height == 800

    engine.detach_all()
    source.notify_resize(300)
    assert engine.width == 800


def test_attach_rejects_unknown_sources() -> None:
    engine = PlotEngine(config())
    with pytest.raises(TypeError, match="Unsupported event source"):
        engine.attach(object())


def test_vertical_line_spans_view_or_range() -> None:
    result = PlotEngine(config(data=[{"x": 2}, {"x": -4, "range": [0, 5]}, {"x": 50}])).draw()
    lines = [p for p in result.scene.layer("data") if isinstance(p, Line)]
    assert len(lines) == 2
    full, partial = lines
    assert (full.x1, full.y1, full.x2, full.y2) == (356.0, 20.0, 356.0, 580.0)
    assert (partial.x1, partial.y1, partial.y2) == (188.0, 160.0, 300.0)


def test_interpolation_passes_through_end_points() -> None:
    result = PlotEngine(config(data=[{"points": [[-5, 0], [0, 5], [5, 0]], "interpolate": True}])).draw()
    (path,) = data_paths(result)
    (run,) = path.runs
    assert run[0] == (160.0, 300.0)
    assert run[-1] == (440.0, 300.0)
    assert (300.0, 160.0) in run


def test_points_outside_canvas_are_skipped() -> None:
    result = PlotEngine(config(data=[{"points": [[0, 0], [100, 100]], "radius": 5}])).draw()
    circles = [p for p in result.scene.layer("data") if isinstance(p, Circle)]
    assert [(c.cx, c.cy, c.r) for c in circles] == [(300.0, 300.0, 5.0)]


def test_function_domain_limits_curve() -> None:
    result = PlotEngine(config(data=[{"fn": "x", "domain": [0, 5]}])).draw()
    (path,) = data_paths(result)
    xs = [x for run in path.runs for x, _ in run]
    assert min(xs) == pytest.approx(300.0, abs=0.5)
    assert max(xs) == pytest.approx(440.0, abs=0.5)


def test_derivative_items_and_overlay() -> None:
    result = PlotEngine(config(data=[{"fn": "x^2", "derivative": 1}])).draw()
    (path,) = data_paths(result)
    # f'(x) = 2x crosses the origin
    gap = min(abs(x - 300.0) + abs(y - 300.0) for run in path.runs for x, y in run)
    assert gap < 5

    overlay = PlotEngine(config(showDerivative=True, data=[{"fn": "x^2"}])).draw()
    dashed = [p for p in data_paths(overlay) if p.dash == "5,5"]
    assert len(dashed) == 1


def test_data_layer_is_clipped_to_plot_area() -> None:
    result = PlotEngine(config(data=[{"fn": "x"}])).draw()
    data_layer = result.scene.layer("data")
    assert data_layer.clip is not None
    assert (data_layer.clip.x, data_layer.clip.y, data_layer.clip.width) == (20.0, 20.0, 560.0)


def test_svg_output() -> None:
    svg = PlotEngine(config(data=[{"fn": "x"}, {"points": [[1, 1]]}])).draw().to_svg()
    assert svg.startswith("<svg")
    assert "<path" in svg
    assert "<circle" in svg
    assert 'class="layer-data"' in svg
    assert 'clip-path="url(#clip-data)"' in svg


def test_plotly_figure() -> None:
    fig = PlotEngine(config(data=[{"fn": "x"}])).draw().scene.to_plotly()
    assert isinstance(fig, go.Figure)
    assert len(fig.data) == 1
    assert fig.layout.width == 600
    assert list(fig.layout.yaxis.range) == [600, 0]


def test_render_logging(caplog) -> None:
    engine = PlotEngine(config(data=[{"fn": "x"}]))
    with caplog.at_level(logging.INFO, logger="matephis.plot_engine"):
        engine.draw(reason="manual")
    assert any("render(reason=manual)" in r.getMessage() for r in caplog.records)


def test_identity_function_draws_one_path() -> None:
    result = PlotEngine(config(data=[{"fn": "x"}])).draw()
    assert result.warnings == ()
    (path,) = data_paths(result)
    assert path.item_index == 0


@pytest.mark.parametrize(
    ("relation", "limits"),
    [("y = 0", [-10, 10]), ("x = 1", [-1, 3]), ("x*y = 0", [-3, 3])],
)
def test_implicit_lines_through_grid_vertices_render(relation: str, limits: list) -> None:
    result = PlotEngine(config(xlim=limits, ylim=limits, data=[{"implicit": relation}])).draw()
    assert result.warnings == ()
    assert len(data_paths(result)) == 1

from __future__ import annotations

import math

import pytest

from matephis.NumberInput import NumberInput, parse_step
from matephis.ParameterSet import Parameter, ParameterSet
from matephis.plot_config import (
    Configuration,
    FunctionItem,
    ImplicitItem,
    InterpolationItem,
    PointSetItem,
    VerticalLineItem,
    snake_case,
)


def test_snake_case() -> None:
    assert snake_case("showXNumbers") == "show_x_numbers"
    assert snake_case("xlim") == "xlim"
    assert snake_case("legend_size") == "legend_size"


def test_defaults() -> None:
    config = Configuration.from_mapping({})
    assert config.xlim == (-9.9, 9.9)
    assert config.ylim == (-9.9, 9.9)
    assert config.width == 600.0
    assert config.canvas_height == 600.0
    assert config.effective_padding == 20.0
    assert config.warnings == ()


def test_camel_and_snake_case_keys_are_equivalent() -> None:
    camel = Configuration.from_mapping({"showXNumbers": False, "equalAspect": True})
    snake = Configuration.from_mapping({"show_x_numbers": False, "equal_aspect": True})
    assert camel == snake
    assert camel.show_x_numbers is False


def test_numeric_strings_are_evaluated() -> None:
    config = Configuration.from_mapping({"xlim": ["-2*pi", "2*PI"], "ylim": [-1, "sqrt(4)"]})
    assert config.xlim == pytest.approx((-2 * math.pi, 2 * math.pi))
    assert config.ylim == (-1.0, 2.0)


def test_unknown_and_invalid_options_warn_and_keep_defaults() -> None:
    config = Configuration.from_mapping({"colour": "red", "width": -5, "xlim": [3, 1]})
    assert "Unknown global option: 'colour'" in config.warnings
    assert any(w.startswith("Invalid value for 'width'") for w in config.warnings)
    assert any(w.startswith("Invalid value for 'xlim'") for w in config.warnings)
    assert config.width == 600.0
    assert config.xlim == (-9.9, 9.9)


def test_presentation_keys_are_accepted_silently() -> None:
    config = Configuration.from_mapping({"cssWidth": "80%", "showToolbar": True})
    assert config.warnings == ()


def test_aspect_ratio_and_padding() -> None:
    config = Configuration.from_mapping({"aspectRatio": "16:9"})
    assert config.aspect_ratio == pytest.approx(16 / 9)
    assert config.canvas_height == pytest.approx(337.5)

    bare = Configuration.from_mapping({"showXNumbers": False, "showYNumbers": False})
    assert bare.effective_padding == 10.0
    labelled = Configuration.from_mapping({"showXNumbers": False, "showYNumbers": False, "axisLabels": ["x", "y"]})
    assert labelled.effective_padding == 20.0


def test_font_size_fallbacks() -> None:
    config = Configuration.from_mapping({"fontSize": "12px", "legendSize": 10})
    assert config.size("number_size") == 12.0
    assert config.size("legend_size") == 10.0
    assert Configuration().size("label_size") == 14.0


def test_parameters_are_parsed() -> None:
    config = Configuration.from_mapping({"params": {"a": {"val": 2, "min": 0, "max": 5, "step": 0.5}, "b": 3}})
    assert config.params["a"] == Parameter("a", 2.0, 0.0, 5.0, 0.5)
    assert config.params["b"].value == 3.0
    assert dict(config.params.value_map()) == {"a": 2.0, "b": 3.0}


def test_parameter_warnings() -> None:
    config = Configuration.from_mapping({"params": {"a": {"value": 1, "foo": 2}, "1bad": 2, "c": {"val": "oops"}}})
    assert "Unknown option for parameter 'a': 'foo'" in config.warnings
    assert "Invalid parameter name: '1bad'" in config.warnings
    assert "Invalid value for parameter 'c.val': 'oops'" in config.warnings


def test_parameter_set_is_immutable_and_updatable() -> None:
    params = ParameterSet([Parameter("a", 1.0)])
    updated = params.with_value("a", 2.5)
    assert params["a"].value == 1.0
    assert updated["a"].value == 2.5
    with pytest.raises(KeyError):
        params.with_value("zz", 1.0)
    assert params.with_values({"a": 3.0, "zz": 1.0})["a"].value == 3.0


def test_data_items_are_typed() -> None:
    config = Configuration.from_mapping(
        {
            "data": [
                {"fn": "x^2", "domain": [-1, 1], "label": "f(x)", "color": "blue"},
                {"implicit": "x^2 + y^2 = 4", "dash": "5,5"},
                {"x": "pi", "range": [0, 1]},
                {"points": [[0, 0], [1, 2]], "radius": 6},
                {"points": [[0, 0], [1, 2], [2, 0]], "interpolate": True, "smoothness": 0.8},
            ]
        }
    )
    fn, implicit, vline, points, interp = config.data
    assert isinstance(fn, FunctionItem) and fn.domain == (-1.0, 1.0)
    assert fn.style.label == "f(x)" and fn.style.color == "blue"
    assert isinstance(implicit, ImplicitItem) and implicit.style.dash == "5,5"
    assert isinstance(vline, VerticalLineItem) and vline.x == pytest.approx(math.pi)
    assert vline.range == (0.0, 1.0)
    assert isinstance(points, PointSetItem) and points.style.radius == 6.0
    assert isinstance(interp, InterpolationItem) and interp.smoothness == 0.8
    assert [item.index for item in config.data] == [0, 1, 2, 3, 4]
    assert config.warnings == ()


def test_data_item_warnings() -> None:
    config = Configuration.from_mapping(
        {"data": [{"color": "red"}, {"fn": "x", "colour": "red"}, "nope", {"fn": "x", "derivative": 3}]}
    )
    assert "Data item 1 has no content (missing 'fn', 'points', 'implicit', or 'x')." in config.warnings
    assert "Unknown data option in item 2: 'colour'" in config.warnings
    assert "Data item 3 is not an object." in config.warnings
    assert "Invalid value in item 4 for 'derivative': expected 0, 1 or 2" in config.warnings
    assert len(config.data) == 2


def test_warnings_are_deduplicated() -> None:
    config = Configuration.from_mapping({"data": [{"color": "red"}, {"color": "red"}], "colour": 1})
    assert len(config.warnings) == len(set(config.warnings))


def test_selection_modes_follow_toolbar_order() -> None:
    config = Configuration.from_mapping({"tangentSelection": True, "pointSelection": True})
    assert config.selection_modes == ("point", "tangent")


def test_to_mapping_lists_non_defaults() -> None:
    config = Configuration.from_mapping({"xlim": [-1, 1], "legend": True})
    assert config.to_mapping() == {"xlim": (-1.0, 1.0), "legend": True}


def test_number_input() -> None:
    assert NumberInput(2) == 2.0
    assert NumberInput(" 1.5 ") == 1.5
    assert NumberInput("pi/2") == pytest.approx(math.pi / 2)
    with pytest.raises(ValueError):
        NumberInput(True)
    with pytest.raises(ValueError):
        NumberInput("")
    with pytest.raises(ValueError):
        NumberInput("sqrt(-1)")
    with pytest.raises(ValueError):
        NumberInput(float("inf"))


def test_parse_step_remembers_pi() -> None:
    assert parse_step("pi/2", 1.0) == (pytest.approx(math.pi / 2), True)
    assert parse_step(None, 2.0) == (2.0, False)
    assert parse_step(-1, 2.0) == (2.0, False)
    assert parse_step("garbage(", 2.0) == (2.0, False)

"""Plot configuration: validation and typed, immutable option objects.

Purpose
-------
Convert the JSON-shaped dictionary produced by editors (camelCase keys such as
``xlim``, ``showXNumbers``, ``data``) into a frozen :class:`Configuration`.
Unknown keys and unparsable values never raise; they produce warnings and the
default is used instead.

Both the original camelCase spelling and snake_case are accepted
(``showXNumbers`` and ``show_x_numbers`` name the same option).

Examples
--------
>>> config = Configuration.from_mapping({"xlim": [-5, 5], "data": [{"fn": "x^2"}]})
>>> config.xlim, type(config.data[0]).__name__
((-5.0, 5.0), 'FunctionItem')
>>> Configuration.from_mapping({"colour": "red"}).warnings
("Unknown global option: 'colour'",)
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .NumberInput import NumberInput, parse_pair
from .ParameterSet import ParameterSet
from .plot_view import DEFAULT_LIMITS

__all__ = [
    "Style",
    "FunctionItem",
    "ImplicitItem",
    "VerticalLineItem",
    "PointSetItem",
    "InterpolationItem",
    "DataItem",
    "Configuration",
    "snake_case",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

_CAMEL = re.compile(r"(?<=[^_])(?=[A-Z])")


def snake_case(key: str) -> str:
    """Return ``key`` in snake_case (``showXNumbers`` -> ``show_x_numbers``)."""
    return _CAMEL.sub("_", str(key)).lower()


# ---------------------------------------------------------------------------
# Data items
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Style:
    """Visual options shared by every data item."""

    color: Optional[str] = None
    width: float = 3.0
    dash: str = ""
    opacity: Optional[float] = None
    label: Optional[str] = None
    label_at: Optional[Tuple[float, float]] = None
    label_offset: Optional[Tuple[float, float]] = None
    label_anchor: Optional[str] = None
    radius: float = 4.0
    fill_color: Optional[str] = None
    stroke_color: Optional[str] = None
    stroke_width: float = 0.0


@dataclass(frozen=True)
class FunctionItem:
    """Explicit curve ``y = f(x)``; ``derivative`` selects f, f' or f''."""

    index: int
    expr: str
    domain: Optional[Tuple[float, float]] = None
    derivative: int = 0
    style: Style = field(default_factory=Style)

    kind = "function"


@dataclass(frozen=True)
class ImplicitItem:
    """Zero set of ``F(x, y)``; ``lhs = rhs`` is accepted."""

    index: int
    expr: str
    style: Style = field(default_factory=Style)

    kind = "implicit"


@dataclass(frozen=True)
class VerticalLineItem:
    """Line ``x = const``, optionally limited to a y ``range``."""

    index: int
    x: float
    range: Optional[Tuple[float, float]] = None
    style: Style = field(default_factory=Style)

    kind = "vline"


@dataclass(frozen=True)
class PointSetItem:
    index: int
    points: Tuple[Tuple[float, float], ...]
    style: Style = field(default_factory=Style)

    kind = "points"


@dataclass(frozen=True)
class InterpolationItem:
    """Smooth curve through ``points``; ``smoothness`` in ``[0, 1]``."""

    index: int
    points: Tuple[Tuple[float, float], ...]
    smoothness: float = 0.5
    style: Style = field(default_factory=Style)

    kind = "interpolation"


DataItem = Union[FunctionItem, ImplicitItem, VerticalLineItem, PointSetItem, InterpolationItem]

VALID_DATA_KEYS = frozenset(
    {
        "fn", "implicit", "points", "x", "color", "opacity", "width", "stroke_width",
        "dash", "label", "label_at", "label_offset", "label_anchor", "domain", "radius",
        "fill_color", "stroke_color", "type", "derivative", "range", "interpolate",
        "smoothness",
    }
)


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"expected true or false, got {value!r}")


def _as_number(value: Any) -> float:
    return NumberInput(value)


def _as_positive(value: Any) -> float:
    number = NumberInput(value)
    if number <= 0:
        raise ValueError(f"expected a positive number, got {value!r}")
    return number


def _as_non_negative(value: Any) -> float:
    number = NumberInput(value)
    if number < 0:
        raise ValueError(f"expected a non-negative number, got {value!r}")
    return number


def _as_range(value: Any) -> Tuple[float, float]:
    pair = parse_pair(value)
    if pair is None or not pair[1] > pair[0]:
        raise ValueError(f"expected [min, max] with min < max, got {value!r}")
    return pair


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _as_step(value: Any) -> Union[float, str]:
    if isinstance(value, str):
        return value
    return _as_positive(value)


def _as_aspect(value: Any) -> float:
    if isinstance(value, str) and ":" in value:
        left, right = value.split(":", 1)
        return NumberInput(left) / _as_positive(right)
    return _as_positive(value)


def _as_labels(value: Any) -> Tuple[str, str]:
    if isinstance(value, (str, bytes)) or len(value) != 2:
        raise ValueError(f"expected two axis labels, got {value!r}")
    return (str(value[0]), str(value[1]))


def _as_size(value: Any) -> float:
    if isinstance(value, str):
        value = value.strip().removesuffix("px")
    return _as_positive(value)


_LEGEND_POSITIONS = ("top-right", "top-left", "bottom-right", "bottom-left")


def _as_legend_position(value: Any) -> str:
    if value not in _LEGEND_POSITIONS:
        raise ValueError(f"expected one of {_LEGEND_POSITIONS}, got {value!r}")
    return value


def _as_render_order(value: Any) -> str:
    if value not in ("numbers-top", "numbers-below"):
        raise ValueError(f"expected 'numbers-top' or 'numbers-below', got {value!r}")
    return value


# Options consumed by page layout rather than the engine; accepted and ignored.
_PRESENTATION_KEYS = frozenset(
    {
        "css_width", "full_width", "align", "margin_left", "margin_right", "border",
        "slider_border", "show_toolbar", "show_derivative_toolbar", "axis_label_weight",
        "axis_label_style", "label_style",
    }
)

_GLOBAL_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "width": _as_positive,
    "height": _as_positive,
    "aspect_ratio": _as_aspect,
    "padding": _as_non_negative,
    "xlim": _as_range,
    "ylim": _as_range,
    "equal_aspect": _as_bool,
    "interactive": _as_bool,
    "clamp_view": _as_bool,
    "theme": _as_str,
    "legend": _as_bool,
    "legend_width": _as_positive,
    "legend_position": _as_legend_position,
    "grid": _as_bool,
    "grid_opacity": _as_non_negative,
    "secondary_grid_opacity": _as_non_negative,
    "show_secondary_grid": _as_bool,
    "axis_arrows": _as_bool,
    "axis_labels": _as_labels,
    "x_step": _as_step,
    "y_step": _as_step,
    "x_step_secondary": _as_step,
    "y_step_secondary": _as_step,
    "x_number_step": _as_step,
    "y_number_step": _as_step,
    "show_x_numbers": _as_bool,
    "show_y_numbers": _as_bool,
    "show_x_ticks": _as_bool,
    "show_y_ticks": _as_bool,
    "sample_step": _as_positive,
    "font_size": _as_size,
    "number_size": _as_size,
    "label_size": _as_size,
    "legend_size": _as_size,
    "render_order": _as_render_order,
    "label_weight": _as_str,
    "point_selection": _as_bool,
    "slope_selection": _as_bool,
    "tangent_selection": _as_bool,
    "show_derivative": _as_bool,
    "add_derivative_plot": _as_bool,
    "trace_derivative": _as_bool,
    "show_derivative_function": _as_bool,
    "slope_label": _as_str,
}

_ALIASES = {"show_grid": "grid"}


@dataclass(frozen=True)
class Configuration:
    """Immutable plot configuration.

    Build it with :meth:`from_mapping`; direct construction is for tests and
    programmatic callers. ``warnings`` holds the validation messages collected
    while parsing.
    """

    width: float = 600.0
    height: Optional[float] = None
    aspect_ratio: Optional[float] = None
    padding: Optional[float] = None
    xlim: Tuple[float, float] = DEFAULT_LIMITS
    ylim: Tuple[float, float] = DEFAULT_LIMITS
    equal_aspect: bool = False
    interactive: bool = False
    clamp_view: bool = False
    theme: str = "red"
    legend: bool = False
    legend_width: Optional[float] = None
    legend_position: str = "top-right"
    grid: bool = True
    grid_opacity: Optional[float] = None
    secondary_grid_opacity: Optional[float] = None
    show_secondary_grid: bool = True
    axis_arrows: bool = False
    axis_labels: Optional[Tuple[str, str]] = None
    x_step: Optional[Union[float, str]] = None
    y_step: Optional[Union[float, str]] = None
    x_step_secondary: Optional[Union[float, str]] = None
    y_step_secondary: Optional[Union[float, str]] = None
    x_number_step: Optional[Union[float, str]] = None
    y_number_step: Optional[Union[float, str]] = None
    show_x_numbers: bool = True
    show_y_numbers: bool = True
    show_x_ticks: bool = False
    show_y_ticks: bool = False
    sample_step: float = 2.0
    font_size: Optional[float] = None
    number_size: Optional[float] = None
    label_size: Optional[float] = None
    legend_size: Optional[float] = None
    render_order: str = "numbers-below"
    label_weight: str = "normal"
    point_selection: bool = False
    slope_selection: bool = False
    tangent_selection: bool = False
    show_derivative: bool = False
    add_derivative_plot: bool = False
    trace_derivative: bool = False
    show_derivative_function: bool = True
    slope_label: str = "m"
    params: ParameterSet = field(default_factory=ParameterSet)
    data: Tuple[DataItem, ...] = ()
    warnings: Tuple[str, ...] = ()

    # -- derived -------------------------------------------------------

    @property
    def canvas_height(self) -> float:
        """Height from ``aspect_ratio`` (width / ratio), else ``height``, else ``width``."""
        if self.aspect_ratio is not None:
            return self.width / self.aspect_ratio
        return self.height if self.height is not None else self.width

    @property
    def effective_padding(self) -> float:
        """Configured padding, else 10 px without numbers and axis labels, 20 px otherwise."""
        if self.padding is not None:
            return self.padding
        no_numbers = not self.show_x_numbers and not self.show_y_numbers
        no_labels = not self.axis_labels
        return 10.0 if (no_numbers and no_labels) else 20.0

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        return (self.xlim[0], self.xlim[1], self.ylim[0], self.ylim[1])

    def size(self, key: str) -> float:
        """Font size for ``number_size``/``label_size``/``legend_size``, falling back to ``font_size``, then 14."""
        specific = getattr(self, key)
        if specific is not None:
            return specific
        return self.font_size if self.font_size is not None else 14.0

    @property
    def selection_modes(self) -> Tuple[str, ...]:
        """Selection modes enabled by the configuration, in toolbar order."""
        modes = []
        if self.point_selection:
            modes.append("point")
        if self.slope_selection:
            modes.append("slope")
        if self.tangent_selection:
            modes.append("tangent")
        return tuple(modes)

    # -- parsing -------------------------------------------------------

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Configuration":
        """Parse and validate an editor configuration dictionary.

        Parameters
        ----------
        raw : Mapping[str, Any]
            JSON-shaped configuration. Keys may be camelCase or snake_case.

        Returns
        -------
        Configuration
            Parsed configuration with ``warnings`` filled in.
        """
        if not isinstance(raw, Mapping):
            raise TypeError(f"Configuration must be a mapping, got {type(raw).__name__}")
        warnings: List[str] = []
        values: Dict[str, Any] = {}

        for key, value in raw.items():
            name = snake_case(key)
            name = _ALIASES.get(name, name)
            if name in ("params", "data"):
                continue
            if name in _PRESENTATION_KEYS:
                continue
            converter = _GLOBAL_CONVERTERS.get(name)
            if converter is None:
                warnings.append(f"Unknown global option: '{key}'")
                continue
            if value is None:
                continue
            try:
                values[name] = converter(value)
            except (ValueError, TypeError) as exc:
                warnings.append(f"Invalid value for '{key}': {exc}")

        params_raw = raw.get("params")
        if params_raw is not None:
            if isinstance(params_raw, Mapping):
                params, param_warnings = ParameterSet.from_mapping(params_raw)
                values["params"] = params
                warnings.extend(param_warnings)
            else:
                warnings.append("Invalid value for 'params': expected an object")

        data_raw = raw.get("data")
        if data_raw is not None:
            if isinstance(data_raw, Sequence) and not isinstance(data_raw, (str, bytes)):
                items: List[DataItem] = []
                for index, item in enumerate(data_raw):
                    items.extend(_parse_item(index, item, warnings))
                values["data"] = tuple(items)
            else:
                warnings.append("Invalid value for 'data': expected a list")

        values["warnings"] = tuple(dict.fromkeys(warnings))
        if warnings:
            logger.debug("configuration produced %d warnings", len(warnings))
        return cls(**values)

    def to_mapping(self) -> Dict[str, Any]:
        """Return the non-default global options as a snake_case dictionary (data and params excluded)."""
        defaults = Configuration()
        out: Dict[str, Any] = {}
        for f in fields(self):
            if f.name in ("params", "data", "warnings"):
                continue
            value = getattr(self, f.name)
            if value != getattr(defaults, f.name):
                out[f.name] = value
        return out


# ---------------------------------------------------------------------------
# Data item parsing
# ---------------------------------------------------------------------------


def _parse_points(value: Any) -> Tuple[Tuple[float, float], ...]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValueError("expected a list of [x, y] pairs")
    points = []
    for pt in value:
        pair = parse_pair(pt)
        if pair is None:
            raise ValueError("expected a list of [x, y] pairs")
        points.append(pair)
    return tuple(points)


def _parse_style(index: int, item: Mapping[str, Any], warnings: List[str]) -> Style:
    position = index + 1
    out: Dict[str, Any] = {}

    def take(name: str, converter: Callable[[Any], Any], *keys: str) -> None:
        for key in keys:
            if key in item and item[key] is not None:
                try:
                    out[name] = converter(item[key])
                except (ValueError, TypeError) as exc:
                    warnings.append(f"Invalid value in item {position} for '{key}': {exc}")
                return

    take("color", _as_str, "color")
    take("width", _as_positive, "width", "strokeWidth", "stroke_width")
    take("dash", lambda v: str(v), "dash")
    take("opacity", _as_non_negative, "opacity")
    take("label", lambda v: str(v), "label")
    take("label_at", parse_pair, "labelAt", "label_at")
    take("label_offset", parse_pair, "labelOffset", "label_offset")
    take("label_anchor", _as_str, "labelAnchor", "label_anchor")
    take("radius", _as_positive, "radius")
    take("fill_color", _as_str, "fillColor", "fill_color")
    take("stroke_color", _as_str, "strokeColor", "stroke_color")
    take("stroke_width", _as_non_negative, "strokeWidth", "stroke_width")
    return Style(**out)


def _parse_item(index: int, item: Any, warnings: List[str]) -> List[DataItem]:
    position = index + 1
    if not isinstance(item, Mapping):
        warnings.append(f"Data item {position} is not an object.")
        return []
    keys = {snake_case(k): k for k in item}
    for name, key in keys.items():
        if name not in VALID_DATA_KEYS:
            warnings.append(f"Unknown data option in item {position}: '{key}'")

    def get(name: str) -> Any:
        key = keys.get(name)
        return None if key is None else item[key]

    fn, implicit, points, x = get("fn"), get("implicit"), get("points"), get("x")
    if not fn and not implicit and not points and x is None:
        warnings.append(f"Data item {position} has no content (missing 'fn', 'points', 'implicit', or 'x').")
        return []

    style = _parse_style(index, item, warnings)
    out: List[DataItem] = []

    if fn:
        domain = None
        if get("domain") is not None:
            try:
                domain = _as_range(get("domain"))
            except (ValueError, TypeError) as exc:
                warnings.append(f"Invalid value in item {position} for 'domain': {exc}")
        derivative = 0
        if get("derivative") is not None:
            raw_order = get("derivative")
            if raw_order in (0, 1, 2) and not isinstance(raw_order, bool):
                derivative = int(raw_order)
            else:
                warnings.append(f"Invalid value in item {position} for 'derivative': expected 0, 1 or 2")
        out.append(FunctionItem(index=index, expr=str(fn), domain=domain, derivative=derivative, style=style))

    if implicit:
        out.append(ImplicitItem(index=index, expr=str(implicit), style=style))

    if x is not None:
        try:
            line_x = NumberInput(x)
        except ValueError as exc:
            warnings.append(f"Invalid value in item {position} for 'x': {exc}")
        else:
            y_range = None
            if get("range") is not None:
                try:
                    y_range = _as_range(get("range"))
                except (ValueError, TypeError) as exc:
                    warnings.append(f"Invalid value in item {position} for 'range': {exc}")
            out.append(VerticalLineItem(index=index, x=line_x, range=y_range, style=style))

    if points:
        try:
            parsed = _parse_points(points)
        except (ValueError, TypeError) as exc:
            warnings.append(f"Invalid value in item {position} for 'points': {exc}")
        else:
            interpolate = get("interpolate") is True or get("smoothness") is not None
            if interpolate:
                smoothness = 0.5
                if get("smoothness") is not None:
                    try:
                        smoothness = min(1.0, _as_non_negative(get("smoothness")))
                    except ValueError as exc:
                        warnings.append(f"Invalid value in item {position} for 'smoothness': {exc}")
                out.append(InterpolationItem(index=index, points=parsed, smoothness=smoothness, style=style))
            else:
                out.append(PointSetItem(index=index, points=parsed, style=style))
    return out

"""Draw orchestration: configuration + view + parameters -> scene + warnings.

Purpose
-------
``PlotEngine`` owns the mutable per-plot state (view override, parameter
values, selection, geometry cache) and turns an immutable
:class:`~matephis.plot_config.Configuration` into a
:class:`~matephis.plot_scene.Scene`. Every interaction callback updates state
and redraws.

Architecture notes
------------------
- Each data item is drawn inside its own error boundary. An expression error
  or an unexpected exception becomes a warning; other items still draw.
- Draws are synchronous. A draw requested while another one is running (for
  example from an observer callback) is not run recursively; it sets a pending
  flag and exactly one follow-up draw runs when the current one finishes.
- Observers receive :class:`~matephis.ParamEvent.ParamEvent` objects. An
  observer that raises is reported through :func:`warnings.warn`.

Examples
--------
>>> engine = PlotEngine({"xlim": [-5, 5], "data": [{"fn": "x^2"}]})
>>> result = engine.draw()
>>> result.warnings
()
>>> result.scene.layer("data").primitives[0].stroke
'#B01A00'
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import itertools
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union
import warnings

import numpy as np

from .numeric_operations import NDerivative
from .ParamEvent import ParamEvent
from .ParameterSet import ParameterSet
from .plot_axes import draw_axes, plot_clip
from .plot_config import (
    Configuration,
    DataItem,
    FunctionItem,
    ImplicitItem,
    InterpolationItem,
    PointSetItem,
    VerticalLineItem,
)
from .plot_contour import DEFAULT_RESOLUTION, marching_squares
from .plot_events import ResizeEventSource, ScrollEventSource, ScrollGuard, SCROLL_GUARD_MS
from .plot_expression import ExpressionError, parse_expression
from .plot_geometry import GeometryCache, GeometryEntry
from .plot_interaction import InteractionController, InteractionOptions, SelectionInfo, SelectionMode
from .plot_interpolation import sample_interpolation
from .plot_legend import LegendEntry, draw_legend, place_label, resolve_color
from .plot_overlay import draw_selection_overlay
from .plot_sampler import SamplerOptions, sample_function
from .plot_scene import Scene, SceneBuilder
from .plot_transform import Transform
from .plot_view import ViewState

__all__ = ["EngineOptions", "DrawResult", "PlotEngine"]

logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

Observer = Callable[[ParamEvent], Any]


@dataclass(frozen=True)
class EngineOptions:
    """Engine tuning that is not part of the plot configuration.

    Parameters
    ----------
    sampler : SamplerOptions
        Adaptive sampler thresholds. ``Configuration.sample_step`` overrides
        ``sampler.sample_step``.
    contour_resolution : int
        Marching-squares cells per axis.
    interaction : InteractionOptions
        Pick and move thresholds and zoom factors.
    scroll_guard_ms : float
        Window after a page scroll during which pointer-down and wheel input
        is ignored.
    resize_threshold : float
        Minimum width change (pixels) that triggers a redraw on resize.
    """

    sampler: SamplerOptions = field(default_factory=SamplerOptions)
    contour_resolution: int = DEFAULT_RESOLUTION
    interaction: InteractionOptions = field(default_factory=InteractionOptions)
    scroll_guard_ms: float = SCROLL_GUARD_MS
    resize_threshold: float = 5.0


@dataclass(frozen=True)
class DrawResult:
    """Output of one draw.

    ``scene`` and ``warnings`` are the contract; ``transform`` and
    ``selection`` describe the state the scene was drawn from. ``linked`` holds
    the derivative view's result when ``add_derivative_plot`` is enabled.
    """

    scene: Scene
    warnings: Tuple[str, ...]
    transform: Transform
    selection: SelectionInfo
    linked: Optional["DrawResult"] = None

    def to_svg(self) -> str:
        return self.scene.to_svg()


class PlotEngine:
    """Stateful plot: draws a configuration and reacts to interaction.

    Parameters
    ----------
    config : Configuration or Mapping
        Parsed configuration, or the raw editor dictionary (parsed with
        :meth:`Configuration.from_mapping`).
    options : EngineOptions, optional
        Engine tuning.
    linked : bool, optional
        Whether to create the derivative view when the configuration asks for
        it. Engines created *by* a linked view pass ``False``.
    """

    def __init__(
        self,
        config: Union[Configuration, Mapping[str, Any]],
        *,
        options: Optional[EngineOptions] = None,
        linked: bool = True,
    ) -> None:
        self.options = options or EngineOptions()
        self._config = _as_configuration(config)
        self._width = self._config.width
        self._parameters = self._config.params
        self._view = ViewState(self._config.bounds, clamped=self._config.clamp_view)
        self._interaction = InteractionController(
            self._view, interactive=self._config.interactive, options=self.options.interaction
        )
        self._apply_selection_defaults()
        self._geometry = GeometryCache()
        self._guard = ScrollGuard(self.options.scroll_guard_ms)
        self._sources: List[Any] = []
        self._observers: Dict[int, Observer] = {}
        self._observer_ids = itertools.count(1)
        self._drawing = False
        self._pending = False
        self._last_result: Optional[DrawResult] = None
        self._render_info_last_log_t = 0.0
        self._render_debug_last_log_t = 0.0
        self._allow_linked = bool(linked)
        self._linked = None
        self._sync_linked()

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def configuration(self) -> Configuration:
        return self._config

    @property
    def parameters(self) -> ParameterSet:
        """Current parameters (configuration values plus slider overrides)."""
        return self._parameters

    @property
    def view(self) -> ViewState:
        return self._view

    @property
    def interaction(self) -> InteractionController:
        return self._interaction

    @property
    def geometry(self) -> GeometryCache:
        return self._geometry

    @property
    def width(self) -> float:
        return self._width

    @property
    def linked(self):
        """The :class:`~matephis.plot_linked.LinkedView`, or None."""
        return self._linked

    @property
    def last_result(self) -> Optional[DrawResult]:
        return self._last_result

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(
        self,
        config: Union[Configuration, Mapping[str, Any]],
        *,
        width: Optional[float] = None,
        redraw: bool = True,
    ) -> Optional[DrawResult]:
        """Replace the configuration wholesale and redraw.

        The view override survives unless the configured limits change;
        slider overrides are replaced by the new configuration's values.
        ``width`` overrides the configured canvas width (a resized host).
        With ``redraw=False`` the caller is responsible for drawing.
        """
        self._config = _as_configuration(config)
        self._width = float(width) if width is not None else self._config.width
        self._parameters = self._config.params
        self._view.reconfigure(self._config.bounds, clamped=self._config.clamp_view)
        self._interaction.interactive = self._config.interactive
        self._apply_selection_defaults()
        self._sync_linked()
        if not redraw:
            return None
        return self.draw(reason="configure")

    def _apply_selection_defaults(self) -> None:
        modes = self._config.selection_modes
        if self._interaction.mode.value not in modes:
            self._interaction.set_mode(modes[0] if modes else SelectionMode.NONE)
        self._interaction.set_tracing(self._config.trace_derivative)

    def _sync_linked(self) -> None:
        if self._allow_linked and self._config.add_derivative_plot:
            if self._linked is None:
                from .plot_linked import LinkedView

                self._linked = LinkedView(self)
        else:
            self._linked = None

    # ------------------------------------------------------------------
    # Observers and event sources
    # ------------------------------------------------------------------

    def observe(self, callback: Observer) -> int:
        """Register ``callback`` for parameter and draw events; returns an id for :meth:`unobserve`."""
        observer_id = next(self._observer_ids)
        self._observers[observer_id] = callback
        return observer_id

    def unobserve(self, observer_id: int) -> None:
        self._observers.pop(observer_id, None)

    def _notify(self, event: ParamEvent) -> None:
        for observer_id, callback in list(self._observers.items()):
            try:
                callback(event)
            except Exception as e:
                warnings.warn(f"Observer {observer_id} failed: {e}")

    def attach(self, source: Union[ScrollEventSource, ResizeEventSource]) -> None:
        """Subscribe to a host event source."""
        if isinstance(source, ScrollEventSource):
            source.subscribe(self._guard)
        elif isinstance(source, ResizeEventSource):
            source.subscribe(self.resize)
        else:
            raise TypeError(f"Unsupported event source: {type(source).__name__}")
        if source not in self._sources:
            self._sources.append(source)

    def detach(self, source: Union[ScrollEventSource, ResizeEventSource]) -> None:
        """Unsubscribe from a host event source previously attached."""
        if isinstance(source, ScrollEventSource):
            source.unsubscribe(self._guard)
        elif isinstance(source, ResizeEventSource):
            source.unsubscribe(self.resize)
        if source in self._sources:
            self._sources.remove(source)

    def detach_all(self) -> None:
        for source in list(self._sources):
            self.detach(source)

    # ------------------------------------------------------------------
    # Interaction callbacks
    # ------------------------------------------------------------------

    def _after(self, changed: bool, reason: str) -> DrawResult:
        if changed or self._last_result is None:
            return self.draw(reason=reason)
        return self._last_result

    def _ensure_context(self) -> None:
        if self._last_result is None:
            self.draw(reason="initial")

    def pointer_down(self, px: float, py: float, *, now: Optional[float] = None) -> DrawResult:
        self._ensure_context()
        if self._guard.blocked(now):
            logger.debug("pointer_down ignored during scroll guard")
            return self._last_result  # type: ignore[return-value]
        return self._after(self._interaction.pointer_down(px, py), "select")

    def pointer_move(self, px: float, py: float) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.pointer_move(px, py), "pointer_move")

    def pointer_up(self, px: float, py: float) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.pointer_up(px, py), "pointer_up")

    def wheel(self, px: float, py: float, delta: float, *, now: Optional[float] = None) -> DrawResult:
        self._ensure_context()
        if self._guard.blocked(now):
            logger.debug("wheel ignored during scroll guard")
            return self._last_result  # type: ignore[return-value]
        return self._after(self._interaction.wheel(px, py, delta), "zoom")

    def pinch_start(self, cx: float, cy: float, distance: float) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.pinch_start(cx, cy, distance), "pinch")

    def pinch_move(self, cx: float, cy: float, distance: float) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.pinch_move(cx, cy, distance), "pinch")

    def pinch_end(self) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.pinch_end(), "pinch")

    def zoom_in(self) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.zoom_in(), "zoom")

    def zoom_out(self) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.zoom_out(), "zoom")

    def reset_view(self) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.reset(), "reset")

    def set_selection_mode(self, mode: Union[SelectionMode, str, None]) -> DrawResult:
        self._ensure_context()
        return self._after(self._interaction.set_mode(mode), "selection_mode")

    def set_parameter(self, name: str, value: float) -> DrawResult:
        """Change a parameter value and redraw.

        Raises
        ------
        KeyError
            If ``name`` is not declared in the configuration.
        """
        old = self._parameters[name].value
        self._parameters = self._parameters.with_value(name, value)
        self._notify(ParamEvent(kind="parameter", parameter=name, old=old, new=float(value), reason="parameter"))
        return self.draw(reason="parameter")

    def resize(self, width: float) -> Optional[DrawResult]:
        """Adopt a new canvas width when it changed by more than the resize threshold."""
        width = float(width)
        if width <= 10 or abs(width - self._width) <= self.options.resize_threshold:
            return None
        self._width = width
        return self.draw(reason="resize")

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def draw(self, reason: str = "manual") -> DrawResult:
        """Draw the current state and return the scene and warnings.

        A call made while a draw is running returns the previous result (None
        before the first draw completes) and schedules one follow-up draw.
        """
        if self._drawing:
            self._pending = True
            return self._last_result  # type: ignore[return-value]
        self._drawing = True
        try:
            while True:
                self._pending = False
                result = self._draw_once(reason)
                self._last_result = result
                self._notify(ParamEvent(kind="draw", new=result, reason=reason))
                if not self._pending:
                    break
                reason = "pending"
        finally:
            self._drawing = False
        return result

    def _log_render(self, reason: str, bounds: Tuple[float, float, float, float]) -> None:
        """Log render information with rate-limiting."""
        now = time.monotonic()
        if logger.isEnabledFor(logging.INFO) and (now - self._render_info_last_log_t) > 1.0:
            self._render_info_last_log_t = now
            logger.info(f"render(reason={reason}) items={len(self._config.data)}")

        if logger.isEnabledFor(logging.DEBUG) and (now - self._render_debug_last_log_t) > 0.5:
            self._render_debug_last_log_t = now
            logger.debug(f"bounds={bounds}")

    def _build_transform(self, warning_list: List[str]) -> Transform:
        config = self._config
        height = config.canvas_height
        if config.aspect_ratio is not None:
            height = self._width / config.aspect_ratio
        elif config.height is None:
            height = self._width
        try:
            return Transform.build(
                self._view.active_bounds(),
                self._width,
                height,
                config.effective_padding,
                equal_aspect=config.equal_aspect,
            )
        except ValueError as exc:
            warning_list.append(f"Invalid canvas: {exc}")
            return Transform.build(config.bounds, max(self._width, 1.0), max(height, 1.0), 0.0)

    def _draw_once(self, reason: str) -> DrawResult:
        t0 = time.perf_counter()
        config = self._config
        warning_list: List[str] = list(config.warnings)
        transform = self._build_transform(warning_list)
        self._log_render(reason, transform.bounds)

        builder = SceneBuilder(transform.width, transform.height, numbers_on_top=config.render_order == "numbers-top")
        draw_axes(builder, transform, config)
        clip = plot_clip(transform)
        builder.set_clip("data", clip)
        builder.set_clip("overlay", clip)

        values = self._parameters.value_map()
        names = tuple(sorted(values))
        entries: List[GeometryEntry] = []
        colors: Dict[int, str] = {}
        label_anchors: Dict[int, Tuple[Tuple[float, float], Any, str]] = {}
        legend_entries: List[LegendEntry] = []
        legend_seen: set = set()

        for item in config.data:
            color = resolve_color(item.index, item.style.color, config.theme)
            colors.setdefault(item.index, color)
            style = item.style
            if style.label and config.legend and item.index not in legend_seen:
                legend_seen.add(item.index)
                kind = "point" if isinstance(item, PointSetItem) else "line"
                legend_entries.append(LegendEntry(color, style.label, kind, style.dash))
            try:
                anchor = self._draw_item(item, builder, transform, color, values, names, entries, warning_list)
            except ExpressionError as exc:
                noun = "implicit" if isinstance(item, ImplicitItem) else "function"
                warning_list.append(f"Error rendering {noun} '{item.expr}': {exc}")
                continue
            except Exception as exc:
                logger.warning("item %d failed to render", item.index + 1, exc_info=True)
                warning_list.append(f"Error rendering data item {item.index + 1}: {exc}")
                continue
            if style.label_at is not None:
                anchor = transform.forward(*style.label_at)
            if anchor is not None:
                label_anchors[item.index] = (anchor, style, color)

        if not config.legend:
            for anchor, style, color in label_anchors.values():
                place_label(builder, anchor, style, color, config, transform.width, transform.height)
        else:
            draw_legend(builder, legend_entries, config, transform.width, transform.height, transform.padding)

        self._geometry = GeometryCache()
        self._geometry.replace(entries)
        self._interaction.update_context(transform, self._geometry)
        self._interaction.refresh_anchors()
        selection = self._interaction.selection_info()
        draw_selection_overlay(builder, transform, selection, colors, config)

        linked_result = None
        if self._linked is not None:
            linked_result = self._linked.update()

        result = DrawResult(
            scene=builder.build(),
            warnings=tuple(dict.fromkeys(warning_list)),
            transform=transform,
            selection=selection,
            linked=linked_result,
        )
        logger.debug("draw(reason=%s) took %.2f ms", reason, (time.perf_counter() - t0) * 1000)
        return result

    def _sampler_options(self) -> SamplerOptions:
        options = self.options.sampler
        if self._config.sample_step != options.sample_step:
            options = replace(options, sample_step=self._config.sample_step)
        return options

    def _draw_item(
        self,
        item: DataItem,
        builder: SceneBuilder,
        transform: Transform,
        color: str,
        values: Mapping[str, float],
        names: Tuple[str, ...],
        entries: List[GeometryEntry],
        warning_list: List[str],
    ) -> Optional[Tuple[float, float]]:
        style = item.style
        if isinstance(item, FunctionItem):
            f = parse_expression(item.expr, names, ("x",)).bind(values)
            try:
                f(0.0)
            except Exception as exc:
                warning_list.append(f"Function '{item.expr}' failed at x = 0: {exc}")
            g = NDerivative(f, item.derivative) if item.derivative else f
            curve = sample_function(g, transform, domain=item.domain, options=self._sampler_options())
            if curve.runs:
                builder.path(
                    "data",
                    [zip(run.px, run.py) for run in curve.runs],
                    color, style.width, style.dash, style.opacity, item.index,
                )
            for run in curve.runs:
                entries.append(GeometryEntry(
                    item.index, "function", "polyline",
                    np.column_stack([run.x, run.y]), np.column_stack([run.px, run.py]),
                    function=g, domain=item.domain,
                ))
            if self._config.show_derivative and item.derivative == 0:
                self._draw_derivative_overlay(item, f, builder, transform, color)
            return curve.label_anchor

        if isinstance(item, ImplicitItem):
            F = parse_expression(item.expr, names, ("x", "y")).bind(values)
            segments = marching_squares(F, transform, resolution=self.options.contour_resolution)
            if not segments.is_empty:
                builder.path(
                    "data",
                    [((a[0], a[1]), (b[0], b[1])) for a, b in segments.pixels],
                    color, style.width, style.dash, style.opacity, item.index,
                )
                entries.append(GeometryEntry(item.index, "implicit", "segments", segments.data, segments.pixels, function=F))
            return segments.label_anchor

        if isinstance(item, VerticalLineItem):
            px = float(transform.map_x(item.x))
            if not transform.padding <= px <= transform.width - transform.padding:
                return None
            y_lo, y_hi = transform.y_min, transform.y_max
            if item.range is not None:
                y_lo, y_hi = max(y_lo, item.range[0]), min(y_hi, item.range[1])
                if not y_lo < y_hi:
                    return None
            py_top = float(transform.map_y(y_hi))
            py_bottom = float(transform.map_y(y_lo))
            builder.line("data", px, py_top, px, py_bottom, color, style.width, style.dash, style.opacity)
            entries.append(GeometryEntry(
                item.index, "vline", "segments",
                np.array([[[item.x, y_lo], [item.x, y_hi]]]),
                np.array([[[px, py_bottom], [px, py_top]]]),
            ))
            return (px, py_top + 15)

        if isinstance(item, PointSetItem):
            data_pts: List[Tuple[float, float]] = []
            pixel_pts: List[Tuple[float, float]] = []
            for x, y in item.points:
                px, py = transform.forward(x, y)
                if 0 <= px <= transform.width and 0 <= py <= transform.height:
                    builder.circle(
                        "data", px, py, style.radius,
                        style.fill_color or color, style.stroke_color, style.stroke_width, style.opacity,
                    )
                    data_pts.append((x, y))
                    pixel_pts.append((px, py))
            if not pixel_pts:
                return None
            entries.append(GeometryEntry(item.index, "points", "points", np.asarray(data_pts), np.asarray(pixel_pts)))
            return pixel_pts[-1]

        if isinstance(item, InterpolationItem):
            curve = sample_interpolation(item.points, transform, smoothness=item.smoothness)
            if curve.is_empty:
                return None
            run = curve.runs[0]
            builder.path("data", [zip(run.px, run.py)], color, style.width, style.dash, style.opacity, item.index)
            entries.append(GeometryEntry(
                item.index, "interpolation", "polyline",
                np.column_stack([run.x, run.y]), np.column_stack([run.px, run.py]),
            ))
            return curve.label_anchor

        raise TypeError(f"Unsupported data item: {type(item).__name__}")

    def _draw_derivative_overlay(
        self,
        item: FunctionItem,
        f: Callable[..., Any],
        builder: SceneBuilder,
        transform: Transform,
        color: str,
    ) -> None:
        derivative = NDerivative(f, 1)
        curve = sample_function(derivative, transform, domain=item.domain, options=self._sampler_options())
        if curve.runs:
            builder.path(
                "data",
                [zip(run.px, run.py) for run in curve.runs],
                color, max(1.0, item.style.width * 2 / 3), "5,5", 0.7, item.index,
            )


def _as_configuration(config: Union[Configuration, Mapping[str, Any]]) -> Configuration:
    if isinstance(config, Configuration):
        return config
    return Configuration.from_mapping(config)

"""Linked derivative view.

A :class:`LinkedView` composes a primary :class:`~matephis.plot_engine.PlotEngine`
with a secondary engine that plots the derivatives of the primary's explicit
functions and the traced tangent slopes. After every primary draw the primary
engine calls :meth:`LinkedView.update`, which projects the primary state
(parameters, x range, trace buffer) into a configuration for the secondary
engine and draws it.

The projection is a plain callable, so hosts can plot something else in the
linked view (for example the second derivative) without subclassing.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import TYPE_CHECKING, Callable, List, Optional

from .plot_config import Configuration, DataItem, FunctionItem, PointSetItem, Style

if TYPE_CHECKING:
    from .plot_engine import DrawResult, PlotEngine

__all__ = ["Projection", "derivative_projection", "LinkedView"]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Projection = Callable[["PlotEngine"], Configuration]


def _prime(label: Optional[str]) -> Optional[str]:
    if not label:
        return None
    name, sep, rest = label.partition("(")
    return f"{name}'{sep}{rest}" if sep else f"{label}'"


def derivative_projection(primary: "PlotEngine") -> Configuration:
    """Build the derivative view's configuration from the primary engine.

    Each explicit function of order 0 or 1 is replaced by its next derivative
    (keeping the item index, so colours match the primary plot) when
    ``show_derivative_function`` is set. While tracing, the trace buffer is
    added as a point set.
    """
    config = primary.configuration
    items: List[DataItem] = []
    if config.show_derivative_function:
        for item in config.data:
            if isinstance(item, FunctionItem) and item.derivative < 2:
                style = replace(item.style, label=_prime(item.style.label), label_at=None)
                items.append(replace(item, derivative=item.derivative + 1, style=style))

    selection = primary.interaction.selection_info()
    if selection.is_tracing and selection.trace:
        index = max((item.index for item in config.data), default=-1) + 1
        anchor_color = None
        if selection.anchors:
            anchor_color = _primary_color(primary, selection.anchors[0].item_index)
        items.append(PointSetItem(
            index=index,
            points=tuple(selection.trace),
            style=Style(color=anchor_color, radius=2.5),
        ))

    return replace(
        config,
        params=primary.parameters,
        data=tuple(items),
        add_derivative_plot=False,
        show_derivative=False,
        trace_derivative=False,
        point_selection=False,
        slope_selection=False,
        tangent_selection=False,
        legend=False,
        warnings=(),
    )


def _primary_color(primary: "PlotEngine", item_index: int) -> Optional[str]:
    from .plot_legend import resolve_color

    for item in primary.configuration.data:
        if item.index == item_index:
            return resolve_color(item.index, item.style.color, primary.configuration.theme)
    return None


class LinkedView:
    """Secondary engine kept in sync with a primary engine.

    Parameters
    ----------
    primary : PlotEngine
        The engine whose draws drive this view.
    project : callable, optional
        Maps the primary engine to the secondary configuration. Defaults to
        :func:`derivative_projection`.
    sync_x : bool
        Whether the secondary view follows the primary's visible x range.
    """

    def __init__(self, primary: "PlotEngine", project: Optional[Projection] = None, *, sync_x: bool = True) -> None:
        from .plot_engine import PlotEngine

        self.primary = primary
        self.project = project or derivative_projection
        self.sync_x = bool(sync_x)
        self.engine = PlotEngine(self.project(primary), options=primary.options, linked=False)
        self.last_result: Optional["DrawResult"] = None

    def update(self) -> "DrawResult":
        """Re-project the primary state and draw the secondary engine."""
        config = self.project(self.primary)
        engine = self.engine
        engine.configure(config, width=self.primary.width, redraw=False)
        if self.sync_x:
            transform = self.primary.interaction.transform
            if transform is not None and self.primary.view.is_set:
                _, _, y_min, y_max = engine.view.active_bounds()
                engine.view.set_bounds((transform.x_min, transform.x_max, y_min, y_max))
        self.last_result = engine.draw(reason="linked")
        logger.debug("linked view redrawn with %d item(s)", len(config.data))
        return self.last_result

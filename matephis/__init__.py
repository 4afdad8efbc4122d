"""Top-level public API for the ``matephis`` plotting engine.

The engine turns a plot configuration (view limits, parameters, data items)
into a vector scene plus a list of warnings, and updates it in response to
pan, zoom, selection and parameter changes:

>>> from matephis import PlotEngine  # doctest: +SKIP
>>> engine = PlotEngine({"data": [{"fn": "a*sin(x)"}], "params": {"a": {"val": 2}}})  # doctest: +SKIP
>>> svg = engine.draw().to_svg()  # doctest: +SKIP

Lower-level building blocks (expression compiler, adaptive sampler, marching
squares, transform, interaction controller) are exported for hosts that want
to assemble their own pipeline.
"""

from .numeric_operations import NDerivative, central_difference, implicit_slope, secant_slope
from .NumberInput import NumberInput
from .numpify import BoundFunction, NumpifiedFunction, numpify, numpify_cached
from .ParamEvent import ParamEvent
from .ParameterSet import Parameter, ParameterSet
from .plot_config import (
    Configuration,
    DataItem,
    FunctionItem,
    ImplicitItem,
    InterpolationItem,
    PointSetItem,
    Style,
    VerticalLineItem,
)
from .plot_contour import ContourSegments, marching_squares
from .plot_engine import DrawResult, EngineOptions, PlotEngine
from .plot_events import ResizeEventSource, ScrollEventSource
from .plot_expression import ExpressionError, compile_expression, parse_expression
from .plot_geometry import GeometryCache, GeometryEntry
from .plot_interaction import (
    Anchor,
    InteractionController,
    InteractionOptions,
    InteractionState,
    SelectionInfo,
    SelectionMode,
)
from .plot_linked import LinkedView, derivative_projection
from .plot_sampler import CurveRun, SampledCurve, SamplerOptions, sample_function
from .plot_scene import Scene
from .plot_transform import Transform
from .plot_view import ViewState


def render(config, **kwargs) -> DrawResult:
    """Draw ``config`` once with a throwaway engine and return the result."""
    return PlotEngine(config, **kwargs).draw(reason="render")

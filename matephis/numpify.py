"""
numpify: Compile SymPy expression trees to NumPy-callable Python functions
==========================================================================

Purpose
-------
Turn a parsed SymPy expression into a callable Python function that evaluates
with NumPy broadcasting. The plotting engine parses every expression string
exactly once; the numeric callable produced here takes the plot variables
*and* the named parameters as positional arguments, so a parameter change
never requires recompilation (values are bound at call time by
:meth:`NumpifiedFunction.bind`).

Public API
----------
- :func:`numpify`
- :func:`numpify_cached`
- :class:`NumpifiedFunction`
- :class:`BoundFunction`

Numeric semantics
-----------------
Bound functions evaluate inside ``numpy.errstate(all="ignore")``. Domain
violations come back as ``nan`` (``sqrt(-1)``, ``log(-1)``, ``0/0``) and
division by zero as ``+/-inf``; complex results with a non-zero imaginary part
are reported as ``nan``. Nothing in here raises for a bad *value*.

Custom functions
----------------
Unknown SymPy function classes print as plain calls. A function class that
carries a callable ``f_numpy`` attribute is bound automatically under its
class name (see :class:`matephis.plot_expression.Round`).

Logging
-------
Silent by default. Enable compile timings with

>>> import logging
>>> logging.getLogger("matephis.numpify").setLevel(logging.DEBUG)
"""

from __future__ import annotations

from functools import lru_cache
import builtins
import keyword
import logging
import textwrap
import time
from typing import Any, Callable, Dict, Iterable, Mapping, Tuple, cast

import numpy as np
import sympy as sp
from sympy.printing.numpy import NumPyPrinter


__all__ = [
    "numpify",
    "numpify_cached",
    "NumpifiedFunction",
    "BoundFunction",
]


logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


_FuncBindings = Dict[str, Callable[..., Any]]

# Imaginary parts below this magnitude are treated as round-off.
_IMAG_TOLERANCE = 1e-12


def _real_or_nan(value: Any) -> Any:
    """Project complex results to the reals, marking non-real entries as ``nan``."""
    arr = np.asarray(value)
    if np.iscomplexobj(arr):
        real = np.where(np.abs(arr.imag) <= _IMAG_TOLERANCE, arr.real, np.nan)
        arr = np.asarray(real, dtype=float)
    else:
        arr = arr.astype(float, copy=False)
    if arr.ndim == 0:
        return float(arr)
    return arr


def _evaluate(fn: Callable[..., Any], args: tuple[Any, ...]) -> Any:
    """Call ``fn`` with NumPy warnings silenced and map the result to the reals.

    Unevaluated constant subexpressions run as Python scalar arithmetic, so
    ``0**(-1.0)`` raises instead of returning ``inf``; such calls yield ``nan``
    broadcast to the argument shape.
    """
    with np.errstate(all="ignore"):
        try:
            return _real_or_nan(fn(*args))
        except ArithmeticError:
            shape = np.broadcast(*(np.asarray(a, dtype=float) for a in args)).shape if args else ()
            return _real_or_nan(np.full(shape, np.nan))


class NumpifiedFunction:
    """Compiled SymPy->NumPy callable with variables first and parameters last.

    Calling the object directly requires every argument positionally; use
    :meth:`bind` to fix parameter values and obtain a callable over the
    variables only.
    """

    __slots__ = ("_fn", "symbolic", "variables", "parameters", "source")

    def __init__(
        self,
        fn: Callable[..., Any],
        symbolic: sp.Basic,
        variables: tuple[sp.Symbol, ...],
        parameters: tuple[sp.Symbol, ...],
        source: str,
    ) -> None:
        self._fn = fn
        self.symbolic = symbolic
        self.variables = variables
        self.parameters = parameters
        self.source = source

    @property
    def parameter_names(self) -> tuple[str, ...]:
        return tuple(sym.name for sym in self.parameters)

    def __call__(self, *args: Any) -> Any:
        expected = len(self.variables) + len(self.parameters)
        if len(args) != expected:
            raise TypeError(f"Expected {expected} positional argument(s), got {len(args)}")
        return _evaluate(self._fn, args)

    def bind(self, values: Mapping[str, Any]) -> "BoundFunction":
        """Return a callable over the variables with parameter values fixed.

        Raises
        ------
        KeyError
            If a parameter used by the expression has no value in ``values``.
        """
        missing = [name for name in self.parameter_names if name not in values]
        if missing:
            raise KeyError(f"Missing parameter value(s): {', '.join(missing)}")
        bound = tuple(float(values[name]) for name in self.parameter_names)
        return BoundFunction(self, bound)

    def __repr__(self) -> str:
        names = ", ".join(sym.name for sym in self.variables + self.parameters)
        return f"NumpifiedFunction({self.symbolic!r}, args=({names}))"


class BoundFunction:
    """A :class:`NumpifiedFunction` with its parameter values fixed."""

    __slots__ = ("numpified", "bound_values")

    def __init__(self, numpified: NumpifiedFunction, bound_values: tuple[float, ...]) -> None:
        self.numpified = numpified
        self.bound_values = bound_values

    @property
    def arity(self) -> int:
        return len(self.numpified.variables)

    def __call__(self, *variables: Any) -> Any:
        if len(variables) != self.arity:
            raise TypeError(f"Expected {self.arity} variable argument(s), got {len(variables)}")
        return _evaluate(self.numpified._fn, (*variables, *self.bound_values))

    def __repr__(self) -> str:
        values = dict(zip(self.numpified.parameter_names, self.bound_values))
        return f"BoundFunction({self.numpified.symbolic!r}, values={values!r})"


def numpify(
    expr: sp.Basic,
    *,
    variables: Iterable[sp.Symbol],
    parameters: Iterable[sp.Symbol] = (),
    cache: bool = True,
) -> NumpifiedFunction:
    """Compile ``expr`` into a NumPy-evaluable function.

    By default this uses the same LRU-backed cache as :func:`numpify_cached`.
    Pass ``cache=False`` to force a fresh compile.
    """
    variables_tuple = tuple(variables)
    parameters_tuple = tuple(parameters)
    if cache:
        return numpify_cached(expr, variables=variables_tuple, parameters=parameters_tuple)
    return _numpify_uncached(expr, variables_tuple, parameters_tuple)


def _is_valid_argument_name(name: str) -> bool:
    return bool(name) and name.isidentifier() and not keyword.iskeyword(name)


def _mangle_base_name(name: str) -> str:
    cleaned = "".join(ch if (ch == "_" or ch.isalnum()) else "_" for ch in name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    if keyword.iskeyword(cleaned):
        cleaned = f"{cleaned}__"
    return cleaned


def _argument_names(symbols: tuple[sp.Symbol, ...], reserved: set[str]) -> tuple[str, ...]:
    """Choose distinct Python identifiers for ``symbols`` avoiding ``reserved``."""
    used = set(reserved)
    out: list[str] = []
    for sym in symbols:
        base = sym.name if _is_valid_argument_name(sym.name) else _mangle_base_name(sym.name)
        candidate = base
        suffix = 0
        while candidate in used or not _is_valid_argument_name(candidate):
            candidate = f"{base}__{suffix}"
            suffix += 1
        used.add(candidate)
        out.append(candidate)
    return tuple(out)


def _function_bindings(expr: sp.Basic) -> _FuncBindings:
    """Collect ``f_numpy`` implementations of custom function classes in ``expr``."""
    bindings: _FuncBindings = {}
    for app in expr.atoms(sp.Function):
        impl = getattr(app.func, "f_numpy", None)
        if callable(impl):
            bindings[app.func.__name__] = cast(Callable[..., Any], impl)
    return bindings


def _require_bound_functions(expr: sp.Basic, printer: NumPyPrinter, bindings: _FuncBindings) -> None:
    """Ensure every function printed as a *bare* call has a runtime binding."""
    missing: set[str] = set()
    for app in expr.atoms(sp.Function):
        name = app.func.__name__
        code = printer.doprint(app).strip()
        if code.startswith(f"{name}(") and name not in bindings:
            missing.add(name)
    if missing:
        raise ValueError(
            "Expression contains function(s) without a NumPy implementation: "
            + ", ".join(sorted(missing))
        )


def _numpify_uncached(
    expr: sp.Basic,
    variables: tuple[sp.Symbol, ...],
    parameters: tuple[sp.Symbol, ...],
) -> NumpifiedFunction:
    """Compile ``expr`` with ``variables + parameters`` as positional arguments.

    Raises
    ------
    ValueError
        If ``expr`` has free symbols outside ``variables + parameters`` or a
        custom function without ``f_numpy``.

    Notes
    -----
    The generated source is executed with ``exec``; the expression tree comes
    from :mod:`matephis.plot_expression`, which only admits whitelisted names.
    """
    log_debug = logger.isEnabledFor(logging.DEBUG)
    t_total0: float | None = time.perf_counter() if log_debug else None

    arguments = variables + parameters
    allowed = {sym.name for sym in arguments}
    unbound = {sym.name for sym in expr.free_symbols} - allowed
    if unbound:
        raise ValueError("Expression contains unbound symbols: " + ", ".join(sorted(unbound)))

    printer = NumPyPrinter(settings={"user_functions": {}, "allow_unknown_functions": True})
    func_bindings = _function_bindings(expr)
    _require_bound_functions(expr, printer, func_bindings)

    reserved = set(keyword.kwlist) | set(dir(builtins)) | {"numpy", "np"} | set(func_bindings)
    arg_names = _argument_names(arguments, reserved)
    replacement = {
        sym: sp.Symbol(name) for sym, name in zip(arguments, arg_names) if sym != sp.Symbol(name)
    }

    t_codegen0: float | None = time.perf_counter() if log_debug else None
    printable = expr
    if replacement:
        # Rebuilding nodes must not re-evaluate an unevaluated tree (x/x stays x/x).
        with sp.evaluate(False):
            printable = expr.xreplace(replacement)
    expr_code = printer.doprint(printable)
    t_codegen_s = (time.perf_counter() - t_codegen0) if t_codegen0 is not None else None

    variable_names = arg_names[: len(variables)]
    lines: list[str] = ["def _generated(" + ", ".join(arg_names) + "):"]
    for name in arg_names:
        lines.append(f"    {name} = numpy.asarray({name}, dtype=float)")
    if not (expr.free_symbols & set(variables)) and variable_names:
        # Constant in the variables: broadcast to the variable shape.
        lines.append(f"    _shape = numpy.broadcast({', '.join(variable_names)}).shape")
        lines.append(f"    return ({expr_code}) + numpy.zeros(_shape)")
    else:
        lines.append(f"    return {expr_code}")
    src = "\n".join(lines)

    glb: Dict[str, Any] = {"numpy": np, **func_bindings}
    loc: Dict[str, Any] = {}
    t_exec0: float | None = time.perf_counter() if log_debug else None
    exec(src, glb, loc)
    t_exec_s = (time.perf_counter() - t_exec0) if t_exec0 is not None else None
    fn = cast(Callable[..., Any], loc["_generated"])

    fn.__doc__ = textwrap.dedent(
        f"""
        Auto-generated NumPy function from SymPy expression.

        expr: {expr!r}
        args: {list(arg_names)}

        Source:
        {src}
        """
    ).strip()

    if log_debug:
        t_total_s = (time.perf_counter() - t_total0) if t_total0 is not None else None
        logger.debug(
            "numpify timings (ms): codegen=%.2f exec=%.2f total=%.2f",
            1000.0 * (t_codegen_s or 0.0),
            1000.0 * (t_exec_s or 0.0),
            1000.0 * (t_total_s or 0.0),
        )

    return NumpifiedFunction(
        fn=fn,
        symbolic=expr,
        variables=variables,
        parameters=parameters,
        source=src,
    )


# ---------------------------------------------------------------------------
# Cached compilation
# ---------------------------------------------------------------------------

_NUMPIFY_CACHE_MAXSIZE = 256


@lru_cache(maxsize=_NUMPIFY_CACHE_MAXSIZE)
def _numpify_cached_impl(
    expr: sp.Basic,
    variables: Tuple[sp.Symbol, ...],
    parameters: Tuple[sp.Symbol, ...],
) -> NumpifiedFunction:
    """Compile an expression on cache misses for :func:`numpify_cached`."""
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "numpify_cached: cache MISS (variables=%s, parameters=%s)",
            [s.name for s in variables],
            [s.name for s in parameters],
        )
    return _numpify_uncached(expr, variables, parameters)


def numpify_cached(
    expr: sp.Basic,
    *,
    variables: Iterable[sp.Symbol],
    parameters: Iterable[sp.Symbol] = (),
) -> NumpifiedFunction:
    """Cached version of :func:`numpify`.

    The cache key is the expression tree together with the ordered variable
    and parameter tuples. Clear it with ``numpify_cached.cache_clear()``.
    """
    if not isinstance(expr, sp.Basic):
        raise TypeError(f"numpify_cached expects a SymPy expression, got {type(expr)}")
    return _numpify_cached_impl(expr, tuple(variables), tuple(parameters))


numpify_cached.cache_info = _numpify_cached_impl.cache_info  # type: ignore[attr-defined]
numpify_cached.cache_clear = _numpify_cached_impl.cache_clear  # type: ignore[attr-defined]


def evaluate_scalar(function: Callable[..., Any], *args: float) -> float:
    """Evaluate ``function`` at scalar arguments, mapping any failure to ``nan``."""
    try:
        value = function(*args)
    except (ArithmeticError, ValueError, TypeError):
        return float("nan")
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")



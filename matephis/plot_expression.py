"""Expression engine: math text -> parsed tree -> numeric callable.

Purpose
-------
Compile the textual expressions of data items (``"a*sin(bx)"``,
``"x^2 + y^2 = 25"``) into callables ``f(x)`` / ``F(x, y)`` that evaluate with
NumPy and never raise for domain violations.

Concepts and structure
----------------------
Parsing goes through :func:`sympy.parsing.sympy_parser.parse_expr` with an
ordered list of token transformations:

1. parameter-prefix splitting (``ax -> a*x`` when ``a`` is a declared
   parameter),
2. rejection of calls to unknown names (``foo(x)``),
3. SymPy's standard transformations (automatic symbols and numbers),
4. implicit multiplication (``2x``, ``)(``, ``)x``, ``a(x+1)``),
5. ``^`` -> ``**``.

The tree is built with ``evaluate=False``, so nothing is simplified away:
``x/x`` stays ``nan`` at ``x = 0``.

Python operator precedence already makes ``-x^2`` parse as ``-(x^2)``.
Equations ``lhs = rhs`` are normalized to ``(lhs) - (rhs)`` before parsing.

Parameters stay symbols of the parsed tree. The tree is compiled once per
``(text, parameter names, variables)`` triple (LRU cached) and parameter
*values* are bound at evaluation time, so a slider move only rebinds.

Important gotchas
-----------------
- Names are resolved against a fixed whitelist (``sin``, ``cos``, ``tan``,
  ``asin``, ``acos``, ``atan``, ``sqrt``, ``log``/``ln``, ``exp``, ``abs``,
  ``floor``, ``ceil``, ``round``, ``pi``, ``e``). Anything else called like a
  function is an ``ExpressionError``; anything else used as a value is an
  ``ExpressionError`` unless it is a declared parameter or variable.
- Declared parameters shadow constants of the same name (a parameter called
  ``e`` wins over Euler's number).

Examples
--------
>>> f = compile_expression("a*x^2", {"a": 2.0})
>>> f(3.0)
18.0
>>> g = compile_expression("x^2 + y^2 = 25", variables=("x", "y"))
>>> g(3.0, 4.0)
0.0
"""

from __future__ import annotations

from functools import lru_cache
from dataclasses import dataclass
import keyword
import logging
from tokenize import NAME, OP, TokenError
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import sympy as sp
from sympy.core.function import AppliedUndef
from sympy.parsing.sympy_parser import (
    convert_xor,
    implicit_multiplication,
    parse_expr,
    standard_transformations,
)

from .numpify import BoundFunction, NumpifiedFunction, numpify_cached

__all__ = [
    "ExpressionError",
    "CompiledExpression",
    "Round",
    "compile_expression",
    "parse_expression",
    "normalize_equation",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class ExpressionError(ValueError):
    """Raised at compile time for structurally invalid expression text."""


class Round(sp.Function):
    """Round half away from zero, like a calculator (``round(2.5) == 3``)."""

    nargs = 1

    @staticmethod
    def f_numpy(value: Any) -> Any:
        arr = np.asarray(value, dtype=float)
        return np.sign(arr) * np.floor(np.abs(arr) + 0.5)


_FUNCTIONS: Dict[str, Any] = {
    "sin": sp.sin,
    "cos": sp.cos,
    "tan": sp.tan,
    "asin": sp.asin,
    "acos": sp.acos,
    "atan": sp.atan,
    "sqrt": sp.sqrt,
    "log": sp.log,
    "ln": sp.log,
    "exp": sp.exp,
    "abs": sp.Abs,
    "floor": sp.floor,
    "ceil": sp.ceiling,
    "round": Round,
}

_CONSTANTS: Dict[str, Any] = {
    "pi": sp.pi,
    "PI": sp.pi,
    "e": sp.E,
    "E": sp.E,
}

# Names the generated parser code needs to build numbers and symbols.
_PARSER_BUILTINS: Dict[str, Any] = {
    "Integer": sp.Integer,
    "Float": sp.Float,
    "Rational": sp.Rational,
    "Symbol": sp.Symbol,
    "Function": sp.Function,
    # Unevaluated parsing spells operators as constructor calls.
    "Add": sp.Add,
    "Mul": sp.Mul,
    "Pow": sp.Pow,
    "And": sp.And,
    "Or": sp.Or,
    "Not": sp.Not,
    "Eq": sp.Eq,
    "Ne": sp.Ne,
    "Lt": sp.Lt,
    "Le": sp.Le,
    "Gt": sp.Gt,
    "Ge": sp.Ge,
}

Transformation = Callable[[List[Tuple[int, str]], Dict[str, Any], Dict[str, Any]], List[Tuple[int, str]]]


def normalize_equation(text: str) -> str:
    """Turn ``lhs = rhs`` into ``(lhs) - (rhs)``; other text is returned unchanged.

    Raises
    ------
    ExpressionError
        If the text contains more than one ``=`` or an empty side.
    """
    if "=" not in text:
        return text
    parts = text.split("=")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ExpressionError(f"Malformed equation: {text!r}")
    return f"({parts[0].strip()}) - ({parts[1].strip()})"


def _check_parentheses(text: str) -> None:
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ExpressionError(f"Unbalanced parentheses in {text!r}")
    if depth != 0:
        raise ExpressionError(f"Unbalanced parentheses in {text!r}")


def _split_name(name: str, known: Sequence[str]) -> Optional[List[str]]:
    """Split ``name`` into a concatenation of ``known`` names (longest first)."""
    if not name:
        return []
    for candidate in known:
        if name.startswith(candidate):
            rest = _split_name(name[len(candidate):], known)
            if rest is not None:
                return [candidate, *rest]
    return None


def _parameter_prefix_splitter(parameters: Iterable[str], variables: Iterable[str]) -> Transformation:
    """Build the token transformation that splits ``ax`` into ``a*x``.

    Only names that start with a declared parameter and decompose entirely into
    declared parameters and variables are split; ``xa`` stays one (unknown) name.
    """
    parameter_set = set(parameters)
    known = sorted(parameter_set | set(variables), key=len, reverse=True)

    def transformation(tokens, local_dict, global_dict):
        result: List[Tuple[int, str]] = []
        for tok_num, tok_val in tokens:
            if (
                tok_num == NAME
                and tok_val not in local_dict
                and tok_val not in global_dict
                and not keyword.iskeyword(tok_val)
            ):
                parts = _split_name(tok_val, known)
                if parts and len(parts) > 1 and parts[0] in parameter_set:
                    for index, part in enumerate(parts):
                        if index:
                            result.append((OP, "*"))
                        result.append((NAME, part))
                    continue
            result.append((tok_num, tok_val))
        return result

    return transformation


def _unknown_function_guard(tokens, local_dict, global_dict):
    """Reject ``name(`` calls on names that are neither known nor declared.

    Runs before implicit multiplication, which would otherwise read ``foo(x)``
    as ``foo*x``. Declared parameters and variables followed by ``(`` are
    multiplications (``a(x+1)``) and pass through.
    """
    for (tok_num, tok_val), (next_num, next_val) in zip(tokens, tokens[1:]):
        if (
            tok_num == NAME
            and next_num == OP
            and next_val == "("
            and tok_val not in local_dict
            and tok_val not in global_dict
            and not keyword.iskeyword(tok_val)
        ):
            raise ExpressionError(f"Unknown function '{tok_val}'")
    return tokens


@dataclass(frozen=True)
class CompiledExpression:
    """A parsed and compiled expression, independent of parameter values.

    Parameters
    ----------
    text : str
        Original expression text.
    tree : sympy.Basic
        Parsed expression tree (equations already normalized).
    variables : tuple[str, ...]
        Variable names in call order (``("x",)`` or ``("x", "y")``).
    numeric : NumpifiedFunction
        Compiled callable taking variables then used parameters.
    """

    text: str
    tree: sp.Basic
    variables: Tuple[str, ...]
    numeric: NumpifiedFunction

    @property
    def parameters(self) -> Tuple[str, ...]:
        """Return the parameter names the expression actually uses."""
        return self.numeric.parameter_names

    def bind(self, values: Optional[Mapping[str, float]] = None) -> BoundFunction:
        """Bind parameter values and return the evaluable callable."""
        return self.numeric.bind(values or {})


def _parse_tree(text: str, parameters: Tuple[str, ...], variables: Tuple[str, ...]) -> sp.Basic:
    if not text or not text.strip():
        raise ExpressionError("Empty expression")
    source = normalize_equation(text.strip())
    _check_parentheses(source)

    # No assumptions on the symbols and no evaluation while parsing: the tree
    # keeps what was written, so sqrt(x)*sqrt(x) and x/x keep their holes.
    local_dict: Dict[str, Any] = {name: sp.Symbol(name) for name in variables}
    for name in parameters:
        local_dict[name] = sp.Symbol(name)
    global_dict: Dict[str, Any] = {**_PARSER_BUILTINS, **_FUNCTIONS, **_CONSTANTS}

    transformations = (
        (_parameter_prefix_splitter(parameters, variables), _unknown_function_guard)
        + standard_transformations
        + (implicit_multiplication, convert_xor)
    )
    try:
        tree = parse_expr(
            source,
            local_dict=local_dict,
            global_dict=global_dict,
            transformations=transformations,
            evaluate=False,
        )
    except ExpressionError:
        raise
    except (SyntaxError, TokenError) as exc:
        raise ExpressionError(f"Invalid syntax in {text!r}") from exc
    except Exception as exc:
        raise ExpressionError(f"Could not parse {text!r}: {exc}") from exc

    if not isinstance(tree, sp.Basic):
        raise ExpressionError(f"Expression {text!r} does not evaluate to a number")
    if not isinstance(tree, sp.Expr):
        raise ExpressionError(f"Expression {text!r} is a relation, use '=' for equations")

    unknown_functions = sorted({app.func.__name__ for app in tree.atoms(AppliedUndef)})
    if unknown_functions:
        raise ExpressionError(f"Unknown function '{unknown_functions[0]}' in {text!r}")

    allowed = set(variables) | set(parameters)
    unknown_symbols = sorted(sym.name for sym in tree.free_symbols if sym.name not in allowed)
    if unknown_symbols:
        raise ExpressionError(f"Unknown symbol '{unknown_symbols[0]}' in {text!r}")
    return tree


@lru_cache(maxsize=256)
def parse_expression(
    text: str,
    parameters: Tuple[str, ...] = (),
    variables: Tuple[str, ...] = ("x",),
) -> CompiledExpression:
    """Parse and compile ``text`` once for a parameter-name set and variable list.

    Parameters
    ----------
    text : str
        Expression or equation text.
    parameters : tuple[str, ...]
        Declared parameter names (order does not matter; pass sorted for
        better cache reuse).
    variables : tuple[str, ...]
        Variable names in call order.

    Returns
    -------
    CompiledExpression

    Raises
    ------
    ExpressionError
        For unbalanced parentheses, unknown functions or symbols, malformed
        equations and other syntax errors.
    """
    tree = _parse_tree(text, parameters, variables)
    used = tuple(sorted((sym for sym in tree.free_symbols if sym.name in parameters), key=lambda s: s.name))
    by_name = {sym.name: sym for sym in tree.free_symbols}
    variable_symbols = tuple(by_name.get(name, sp.Symbol(name)) for name in variables)
    try:
        numeric = numpify_cached(tree, variables=variable_symbols, parameters=used)
    except ValueError as exc:
        raise ExpressionError(str(exc)) from exc
    logger.debug("compiled %r -> %s", text, numeric.source.splitlines()[-1].strip())
    return CompiledExpression(text=text, tree=tree, variables=tuple(variables), numeric=numeric)


def compile_expression(
    text: str,
    parameters: Optional[Mapping[str, float]] = None,
    variables: Sequence[str] = ("x",),
) -> BoundFunction:
    """Compile ``text`` and bind the current parameter values.

    This is the engine's ``compile(exprString, parameterValues)`` entry point.
    Repeated calls with the same text and parameter *names* reuse the parsed
    tree and only rebind values.

    Raises
    ------
    ExpressionError
        If the expression is structurally invalid.
    """
    values = dict(parameters or {})
    compiled = parse_expression(text, tuple(sorted(values)), tuple(variables))
    return compiled.bind(values)

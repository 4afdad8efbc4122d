# === SECTION: NumberInput [id: NumberInput]===
from __future__ import annotations

import math
import re
from typing import Any, NamedTuple, Optional

import sympy as sp

__all__ = ["NumberInput", "StepValue", "parse_step", "parse_pair"]

_PI_PATTERN = re.compile(r"pi", re.IGNORECASE)


def NumberInput(obj: Any) -> float:
    """
    Convert a configuration value to a finite real float.

    Rules:
    - Numbers (excluding bool) are cast via float().
    - Strings are tried with float() first, then parsed as a SymPy expression
      and evaluated (``"2*pi"``, ``"pi/2"``, ``"sqrt(2)"``). ``PI`` is accepted
      as an alias for ``pi``.

    Raises
    ------
    ValueError
        If the value is empty, not real, not finite, or cannot be parsed.
    """
    if isinstance(obj, bool):
        raise ValueError(f"Could not convert boolean {obj!r} to a number.")

    if isinstance(obj, (int, float)):
        value = float(obj)
    elif isinstance(obj, str):
        s = obj.strip()
        if s == "":
            raise ValueError("Cannot convert empty string to a number.")
        try:
            value = float(s)
        except ValueError:
            try:
                expr = sp.sympify(_PI_PATTERN.sub("pi", s), locals={"pi": sp.pi, "e": sp.E})
                evaluated = complex(expr.evalf())
            except Exception as e:
                raise ValueError(f"Could not convert {obj!r} to a number (neither directly nor via SymPy).") from e
            if evaluated.imag != 0:
                raise ValueError(f"Could not convert non-real {obj!r} to a number.")
            value = evaluated.real
    else:
        try:
            value = float(obj)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Could not convert {obj!r} to a number.") from e

    if not math.isfinite(value):
        raise ValueError(f"Number {obj!r} is not finite.")
    return value


class StepValue(NamedTuple):
    """A grid or tick step, remembering whether it was written with ``pi``."""

    value: float
    is_pi: bool


def parse_step(obj: Any, default: float) -> StepValue:
    """Parse a step option (``1``, ``"pi/2"``); unparsable input falls back to ``default``.

    Non-positive results also fall back, so a grid loop always advances.
    """
    if obj is None:
        return StepValue(float(default), False)
    is_pi = isinstance(obj, str) and bool(_PI_PATTERN.search(obj))
    try:
        value = NumberInput(obj)
    except ValueError:
        return StepValue(float(default), False)
    if value <= 0:
        return StepValue(float(default), False)
    return StepValue(value, is_pi)


def parse_pair(obj: Any) -> Optional[tuple[float, float]]:
    """Parse a two-element sequence of numbers, returning None when absent."""
    if obj is None:
        return None
    if isinstance(obj, (str, bytes)) or len(obj) != 2:
        raise ValueError(f"Expected a pair of numbers, got {obj!r}.")
    return (NumberInput(obj[0]), NumberInput(obj[1]))

# === END OF SECTION: NumberInput [id: NumberInput]===

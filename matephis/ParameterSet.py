"""Immutable parameter sets for plot configurations.

A parameter set captures an ordered mapping of ``name -> Parameter`` so a draw
can evaluate every expression against one consistent set of values, no matter
how sliders change while it runs.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Dict, List, Tuple

from .NumberInput import NumberInput

PARAMETER_KEYS = ("val", "value", "min", "max", "step")


@dataclass(frozen=True)
class Parameter:
    """One named slider value with its range.

    Parameters
    ----------
    name : str
        Identifier used in expressions.
    value : float
        Current value.
    min, max, step : float
        Slider range metadata. The engine does not clamp ``value`` to it.
    """

    name: str
    value: float = 0.0
    min: float = -10.0
    max: float = 10.0
    step: float = 0.1


class ParameterSet(Mapping[str, Parameter]):
    """Immutable ordered set of parameters keyed by name.

    Examples
    --------
    >>> params = ParameterSet([Parameter("a", 1.5)])
    >>> params.value_map()["a"]
    1.5
    >>> params.with_value("a", 2.0)["a"].value
    2.0
    """

    def __init__(self, parameters: Tuple[Parameter, ...] | List[Parameter] = ()) -> None:
        self._entries: Dict[str, Parameter] = {p.name: p for p in parameters}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> Tuple["ParameterSet", Tuple[str, ...]]:
        """Build a set from ``{"a": {"val": 1, "min": 0, ...}}`` style input.

        Returns the set and the warnings produced for unknown keys or
        unparsable values. A bare number is accepted as the value.
        """
        warnings: List[str] = []
        parameters: List[Parameter] = []
        for name, spec in raw.items():
            if not str(name).isidentifier():
                warnings.append(f"Invalid parameter name: '{name}'")
                continue
            if not isinstance(spec, Mapping):
                spec = {"val": spec}
            fields: Dict[str, float] = {}
            for key, value in spec.items():
                if key not in PARAMETER_KEYS:
                    warnings.append(f"Unknown option for parameter '{name}': '{key}'")
                    continue
                try:
                    fields["value" if key == "val" else key] = NumberInput(value)
                except ValueError:
                    warnings.append(f"Invalid value for parameter '{name}.{key}': {value!r}")
            parameters.append(Parameter(name=str(name), **fields))
        return cls(parameters), tuple(warnings)

    def __getitem__(self, key: str) -> Parameter:
        """Return the parameter with ``key`` or raise KeyError."""
        try:
            return self._entries[key]
        except KeyError:
            raise KeyError(f"Unknown parameter name {key!r}.") from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> Tuple[str, ...]:
        """Return parameter names in declaration order."""
        return tuple(self._entries)

    def value_map(self) -> Mapping[str, float]:
        """Return a read-only ``name -> value`` mapping."""
        return MappingProxyType({name: p.value for name, p in self._entries.items()})

    def with_value(self, name: str, value: float) -> "ParameterSet":
        """Return a copy with ``name`` set to ``value``.

        Raises
        ------
        KeyError
            If ``name`` is not a declared parameter.
        """
        current = self[name]
        updated = dict(self._entries)
        updated[name] = replace(current, value=float(value))
        return ParameterSet(tuple(updated.values()))

    def with_values(self, values: Mapping[str, float]) -> "ParameterSet":
        """Return a copy with every known name in ``values`` overridden."""
        result = self
        for name, value in values.items():
            if name in self._entries:
                result = result.with_value(name, value)
        return result

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterSet):
            return NotImplemented
        return list(self._entries.values()) == list(other._entries.values())

    def __hash__(self) -> int:
        return hash(tuple(self._entries.values()))

    def __repr__(self) -> str:
        return f"ParameterSet({list(self._entries.values())!r})"

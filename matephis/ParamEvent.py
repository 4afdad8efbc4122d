"""Standardized engine event payloads.

This module defines ``ParamEvent``, the immutable structure passed to
callbacks registered with :meth:`matephis.plot_engine.PlotEngine.observe`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ParamEvent:
    """Normalized event emitted by the plot engine.

    Parameters
    ----------
    kind : str
        ``"parameter"`` for a parameter change, ``"draw"`` after a completed
        draw.
    parameter : str, optional
        Name of the parameter that changed (``None`` for draw events).
    old : Any
        The previous value, if any.
    new : Any
        The new value, or the :class:`~matephis.plot_engine.DrawResult` for
        draw events.
    reason : str
        Why the engine redrew (``"parameter"``, ``"pan"``, ``"zoom"``, ...).

    Examples
    --------
    >>> ParamEvent(kind="parameter", parameter="a", old=0.0, new=1.0)
    ParamEvent(kind='parameter', parameter='a', old=0.0, new=1.0, reason='')
    """

    kind: str
    parameter: Optional[str] = None
    old: Any = None
    new: Any = None
    reason: str = ""

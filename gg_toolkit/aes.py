"""Aesthetic mappings and their evaluation.

A mapping binds aesthetic names to expressions: a column name, a pandas
expression string (``"hwy / displ"``), a callable taking the data frame, or a
literal vector.  Expressions can be deferred with `after_stat` (evaluated
against the statistic's output) or `after_scale` (evaluated against the mapped
values right before drawing); `stage` combines a start expression with either
deferred one.
"""

from __future__ import annotations

__all__ = [
    "Aes",
    "aes",
    "Stage",
    "after_stat",
    "after_scale",
    "stage",
    "X_AES",
    "Y_AES",
    "standardise_aes_names",
    "aes_to_scale",
    "is_position_aes",
    "evaluate_mapping",
    "make_labels",
    "check_required_aesthetics",
    "missing_aesthetics",
]

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional

import numpy as np
import pandas as pd

from gg_toolkit.validation import PlotSpecError

_ALIASES = {
    "colour": "color",
    "col": "color",
    "fg": "color",
    "bg": "fill",
    "pch": "shape",
    "cex": "size",
    "lty": "linetype",
    "lwd": "linewidth",
    "srt": "angle",
    "min": "ymin",
    "max": "ymax",
}

X_AES = ("x", "xmin", "xmax", "xend", "xintercept", "xmin_final", "xmax_final", "xlower", "xmiddle", "xupper", "x0")
Y_AES = ("y", "ymin", "ymax", "yend", "yintercept", "ymin_final", "ymax_final", "lower", "middle", "upper", "y0")


def standardise_aes_names(names: Iterable[str]) -> List[str]:
    """Map aliases (``colour``, ``lty`` ...) and ``color_`` prefixes onto canonical names."""

    out = []
    for n in names:
        n = re.sub(r"^colou?r(?=$|_)", "color", n)
        out.append(_ALIASES.get(n, n))
    return out


def aes_to_scale(aesthetic: str) -> str:
    """Name of the scale an aesthetic is trained on (``xmin`` -> ``x``)."""

    if aesthetic in X_AES:
        return "x"
    if aesthetic in Y_AES:
        return "y"
    return aesthetic


def is_position_aes(aesthetic: str) -> bool:
    return aes_to_scale(aesthetic) in ("x", "y")


# --------------------------------------------------------
#          DEFERRED EVALUATION
# --------------------------------------------------------


@dataclass(frozen=True)
class Stage:
    """Expression evaluated in up to three phases: start, after_stat, after_scale."""

    start: Any = None
    after_stat: Any = None
    after_scale: Any = None

    def __repr__(self) -> str:
        parts = [f"{k}={v!r}" for k, v in (("start", self.start), ("after_stat", self.after_stat),
                                            ("after_scale", self.after_scale)) if v is not None]
        return f"stage({', '.join(parts)})"


def after_stat(x: Any) -> Stage:  # noqa: ANN401
    return Stage(after_stat=x)


def after_scale(x: Any) -> Stage:  # noqa: ANN401
    return Stage(after_scale=x)


def stage(start: Any = None, after_stat: Any = None, after_scale: Any = None) -> Stage:  # noqa: ANN401
    return Stage(start, after_stat, after_scale)


_DEFERRED_RE = re.compile(r"^\s*(after_stat|after_scale|stat)\((.*)\)\s*$")


def _parse_deferred(expr: Any) -> Any:  # noqa: ANN401
    # Descriptors arrive as plain strings: "after_stat(count)" -> after_stat("count")
    if isinstance(expr, str):
        m = _DEFERRED_RE.match(expr)
        if m:
            return after_scale(m.group(2)) if m.group(1) == "after_scale" else after_stat(m.group(2))
    return expr


Phase = Literal["start", "after_stat", "after_scale"]


def _phase_expr(expr: Any, phase: Phase) -> Any:  # noqa: ANN401
    if isinstance(expr, Stage):
        return getattr(expr, phase)
    return expr if phase == "start" else None


class Aes(dict):
    """Aesthetic mapping: canonical aesthetic name -> expression."""

    def __init__(self, mapping: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:  # noqa: ANN401
        raw = {**(mapping or {}), **kwargs}
        names = standardise_aes_names(raw.keys())
        super().__init__({n: _parse_deferred(v) for n, v in zip(names, raw.values())})

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self.items())
        return f"aes({inner})"

    def defaults(self, other: Mapping[str, Any]) -> "Aes":
        """This mapping with entries of ``other`` filled in where missing."""

        return Aes({**other, **self})

    def calculated(self) -> "Aes":
        return Aes({k: v for k, v in self.items() if _phase_expr(v, "after_stat") is not None})

    def scaled(self) -> "Aes":
        return Aes({k: v for k, v in self.items() if _phase_expr(v, "after_scale") is not None})

    def drop_after(self) -> "Aes":
        """Only the aesthetics evaluated before the statistic."""

        return Aes({k: v for k, v in self.items() if _phase_expr(v, "start") is not None})


def aes(x: Any = None, y: Any = None, **kwargs: Any) -> Aes:  # noqa: ANN401
    """Create an aesthetic mapping; ``x`` and ``y`` may be given positionally."""

    m: Dict[str, Any] = {}
    if x is not None:
        m["x"] = x
    if y is not None:
        m["y"] = y
    return Aes(m, **kwargs)


def _eval_expr(expr: Any, data: pd.DataFrame, name: str) -> Any:  # noqa: ANN401
    if isinstance(expr, str):
        if expr in data.columns:
            return data[expr]
        try:
            return data.eval(expr, engine="python")
        except (NameError, SyntaxError, KeyError, TypeError, ValueError) as e:
            raise PlotSpecError(
                f"Cannot evaluate aesthetic {name}={expr!r}: {e}. Available columns: {list(data.columns)}"
            ) from e
    if callable(expr):
        return expr(data)
    return expr


def evaluate_mapping(mapping: Mapping[str, Any], data: pd.DataFrame, phase: Phase = "start") -> pd.DataFrame:
    """Evaluate the expressions of ``phase`` against ``data``.

    Each result must be a scalar (broadcast) or have one value per row.
    """

    n = len(data)
    cols: Dict[str, Any] = {}
    for name, expr in mapping.items():
        e = _phase_expr(expr, phase)
        if e is None:
            continue
        val = _eval_expr(e, data, name)
        if isinstance(val, pd.Series):
            val = val.reset_index(drop=True)
        elif isinstance(val, (list, tuple, np.ndarray, pd.Index, pd.Categorical)):
            val = pd.Series(val)
        else:
            cols[name] = pd.Series([val] * n, dtype=object if isinstance(val, str) else None)
            continue
        if len(val) == n:
            cols[name] = val
        elif len(val) == 1:
            cols[name] = pd.Series(np.repeat(val.to_numpy(), n))
        else:
            raise PlotSpecError(
                f"Aesthetics must be either length 1 or the same as the data ({n}): {name} has length {len(val)}"
            )
    return pd.DataFrame(cols, index=pd.RangeIndex(n))


def make_labels(mapping: Mapping[str, Any]) -> Dict[str, str]:
    """Default titles for axes and legends derived from the mapping expressions."""

    def _label(expr: Any) -> str:  # noqa: ANN401
        if isinstance(expr, Stage):
            expr = next(e for e in (expr.start, expr.after_stat, expr.after_scale) if e is not None)
        if isinstance(expr, str):
            return expr
        if callable(expr):
            return getattr(expr, "__name__", "")
        return ""

    return {k: _label(v) for k, v in mapping.items()}


def missing_aesthetics(required: Iterable[str], present: Iterable[str]) -> List[str]:
    """Required aesthetics absent from ``present``; ``"x|y"`` accepts either one."""

    present = set(present)
    missing = []
    for req in required:
        options = req.split("|")
        if not any(o in present for o in options):
            missing.append(" or ".join(options))
    return missing


def check_required_aesthetics(required: Iterable[str], present: Iterable[str], name: str) -> None:
    """Raise if any required aesthetic is missing."""

    missing = missing_aesthetics(required, present)
    if missing:
        raise PlotSpecError(f"{name} requires the following missing aesthetics: {', '.join(missing)}")

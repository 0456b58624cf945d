"""Scales
------

A scale trains a domain from data and maps values into positions or visual
values.  Three kinds exist, each with a position flavour:

- continuous: a transform (applied once, right after the aesthetics are
  evaluated), a trained numeric range and an out-of-bounds policy
- discrete: an ordered level set; positions are 1..N, other aesthetics index
  into a palette
- binned: a numeric range cut into bins; values map to bin midpoints, so the
  data stays continuous for everything downstream

Ranges are monoids (`train`, `merge`, `reset`) so partial training results
from independent partitions can be combined in any order.  Scales owned by a
plot are never trained; `build` trains clones.
"""

from __future__ import annotations

__all__ = [
    "Transform",
    "get_transform",
    "censor",
    "squish",
    "keep",
    "ContinuousRange",
    "DiscreteRange",
    "BinnedRange",
    "Scale",
    "ScaleContinuous",
    "ScaleContinuousPosition",
    "ScaleDiscrete",
    "ScaleDiscretePosition",
    "ScaleBinned",
    "ScaleBinnedPosition",
    "ScaleIdentity",
    "ScalesList",
    "find_scale",
    "expand_range",
]

import copy
import logging
from dataclasses import dataclass
from functools import reduce
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from matplotlib.ticker import LogLocator, MaxNLocator

from gg_toolkit import utils
from gg_toolkit.aes import X_AES, Y_AES, aes_to_scale
from gg_toolkit.validation import PlotSpecError

logger = logging.getLogger(__name__)

Limits = Tuple[float, float]


# --------------------------------------------------------
#          TRANSFORMS
# --------------------------------------------------------


def _linear_breaks(limits: Limits, n: int = 5) -> np.ndarray:
    lo, hi = sorted(limits)
    if not np.isfinite([lo, hi]).all():
        return np.array([])
    if lo == hi:
        return np.array([lo])
    ticks = MaxNLocator(nbins=n, steps=[1, 2, 2.5, 5, 10]).tick_values(lo, hi)
    tol = (hi - lo) * 1e-10
    return ticks[(ticks >= lo - tol) & (ticks <= hi + tol)]


def _log_breaks(base: float) -> Callable[[Limits, int], np.ndarray]:
    def _breaks(limits: Limits, n: int = 5) -> np.ndarray:
        lo, hi = sorted(limits)
        if lo <= 0 or not np.isfinite([lo, hi]).all():
            return np.array([])
        ticks = LogLocator(base=base, numticks=n + 2).tick_values(lo, hi)
        ticks = ticks[(ticks >= lo * (1 - 1e-10)) & (ticks <= hi * (1 + 1e-10))]
        return ticks if len(ticks) >= 2 else _linear_breaks(limits, n)

    return _breaks


@dataclass(frozen=True)
class Transform:
    """A monotone transformation with its inverse and a break generator (in data space)."""

    name: str
    forward: Callable[[np.ndarray], np.ndarray]
    inverse: Callable[[np.ndarray], np.ndarray]
    breaks: Callable[[Limits, int], np.ndarray] = _linear_breaks
    domain: Limits = (-np.inf, np.inf)

    def transform(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if self.name == "identity":
            return x
        with np.errstate(divide="ignore", invalid="ignore"):
            res = self.forward(x)
        n_new = int((np.isnan(res) & ~np.isnan(x)).sum())
        if n_new:
            utils.warn(f"{self.name} transformation introduced {n_new} missing values")
        return res

    def is_identity(self) -> bool:
        return self.name == "identity"


transforms: Dict[str, Transform] = {
    "identity": Transform("identity", lambda x: x, lambda x: x),
    "log10": Transform("log10", np.log10, lambda x: np.power(10.0, x), _log_breaks(10), (1e-300, np.inf)),
    "log2": Transform("log2", np.log2, lambda x: np.power(2.0, x), _log_breaks(2), (1e-300, np.inf)),
    "log": Transform("log", np.log, np.exp, _log_breaks(np.e), (1e-300, np.inf)),
    "sqrt": Transform("sqrt", np.sqrt, np.square, _linear_breaks, (0, np.inf)),
    "reverse": Transform("reverse", np.negative, np.negative),
}


def get_transform(trans: Union[str, Transform]) -> Transform:
    if isinstance(trans, Transform):
        return trans
    if trans not in transforms:
        raise PlotSpecError(f"Unknown transformation {trans!r}; known: {sorted(transforms)}")
    return transforms[trans]


# --------------------------------------------------------
#          OUT OF BOUNDS POLICIES
# --------------------------------------------------------


def censor(x: np.ndarray, range: Limits) -> np.ndarray:
    """Replace finite values outside ``range`` with NaN (infinite values are kept)."""

    x = np.array(x, dtype=float)
    lo, hi = sorted(range)
    with np.errstate(invalid="ignore"):
        out = np.isfinite(x) & ((x < lo) | (x > hi))
    x[out] = np.nan
    return x


def squish(x: np.ndarray, range: Limits) -> np.ndarray:
    """Clip finite values into ``range``."""

    x = np.array(x, dtype=float)
    lo, hi = sorted(range)
    fin = np.isfinite(x)
    x[fin] = np.clip(x[fin], lo, hi)
    return x


def keep(x: np.ndarray, range: Limits) -> np.ndarray:
    return np.array(x, dtype=float)


oob_policies: Dict[str, Callable[[np.ndarray, Limits], np.ndarray]] = {"censor": censor, "squish": squish, "keep": keep}


def expand_range(limits: Limits, mult: float = 0.0, add: float = 0.0, zero_width: float = 1.0) -> Limits:
    lo, hi = limits
    if not np.isfinite([lo, hi]).all():
        return limits
    if hi == lo:
        return lo - zero_width / 2, hi + zero_width / 2
    width = hi - lo
    return lo - width * mult - add, hi + width * mult + add


# --------------------------------------------------------
#          RANGES
# --------------------------------------------------------


def _numeric(x: Any, aesthetic: str = "") -> np.ndarray:  # noqa: ANN401
    s = x if isinstance(x, pd.Series) else pd.Series(x)
    if pd.api.types.is_datetime64_any_dtype(s):
        raise PlotSpecError(f"Datetime values for {aesthetic or 'a scale'} need converting to numbers first")
    if utils.is_discrete(s):
        raise PlotSpecError(f"Discrete value supplied to continuous scale{' ' + aesthetic if aesthetic else ''}")
    return s.to_numpy(dtype=float, na_value=np.nan)


class ContinuousRange:
    """Running [min, max] of the finite values seen."""

    def __init__(self, range: Optional[Limits] = None) -> None:
        self.range = range

    def train(self, x: Any, aesthetic: str = "") -> "ContinuousRange":  # noqa: ANN401
        v = _numeric(x, aesthetic)
        v = v[np.isfinite(v)]
        if len(v):
            self.range = self._union(self.range, (float(v.min()), float(v.max())))
        return self

    @staticmethod
    def _union(a: Optional[Limits], b: Optional[Limits]) -> Optional[Limits]:
        if a is None:
            return b
        if b is None:
            return a
        return min(a[0], b[0]), max(a[1], b[1])

    def merge(self, other: "ContinuousRange") -> "ContinuousRange":
        return type(self)(self._union(self.range, other.range))

    def reset(self) -> None:
        self.range = None

    def is_empty(self) -> bool:
        return self.range is None


class DiscreteRange:
    """Ordered level set; first-seen order unless ``order='sorted'``.

    Levels of a pandas Categorical are taken in category order.
    """

    def __init__(self, levels: Optional[List[Any]] = None, order: str = "first_seen", drop: bool = True) -> None:
        self.levels: Optional[List[Any]] = levels
        self.order = order
        self.drop = drop

    def train(self, x: Any, aesthetic: str = "") -> "DiscreteRange":  # noqa: ANN401
        s = x if isinstance(x, pd.Series) else pd.Series(x)
        if not utils.is_discrete(s):
            raise PlotSpecError(f"Continuous value supplied to discrete scale{' ' + aesthetic if aesthetic else ''}")
        if isinstance(s.dtype, pd.CategoricalDtype):
            present = set(s.dropna().unique()) if self.drop else None
            new = [c for c in s.cat.categories if present is None or c in present]
        else:
            new = list(pd.unique(s.dropna()))
        self.levels = self._union(self.levels, new)
        return self

    def _union(self, a: Optional[List[Any]], b: Optional[List[Any]]) -> Optional[List[Any]]:
        if a is None:
            res = b
        elif b is None:
            res = a
        else:
            res = list(a) + [v for v in b if v not in set(a)]
        if res is not None and self.order == "sorted":
            res = sorted(res, key=lambda v: (str(type(v)), v))
        return res

    def merge(self, other: "DiscreteRange") -> "DiscreteRange":
        return type(self)(self._union(self.levels, other.levels), self.order, self.drop)

    def reset(self) -> None:
        self.levels = None

    def is_empty(self) -> bool:
        return not self.levels


class BinnedRange(ContinuousRange):
    """Continuous range that also keeps the observed values for quantile binning."""

    def __init__(self, range: Optional[Limits] = None, values: Optional[np.ndarray] = None, keep_values: bool = False):
        super().__init__(range)
        self.keep_values = keep_values
        self.values = values if values is not None else np.array([])

    def train(self, x: Any, aesthetic: str = "") -> "BinnedRange":  # noqa: ANN401
        super().train(x, aesthetic)
        if self.keep_values:
            v = _numeric(x, aesthetic)
            self.values = np.concatenate([self.values, v[np.isfinite(v)]])
        return self

    def merge(self, other: "ContinuousRange") -> "BinnedRange":
        vals = np.concatenate([self.values, getattr(other, "values", np.array([]))])
        return BinnedRange(self._union(self.range, other.range), vals, self.keep_values)

    def reset(self) -> None:
        super().reset()
        self.values = np.array([])


# --------------------------------------------------------
#          PALETTES
# --------------------------------------------------------

_shapes = ["circle", "triangle", "square", "plus", "cross", "diamond"]
_linetypes = ["solid", "dashed", "dotted", "dotdash", "longdash", "twodash"]


def _hue_pal(n: int) -> List[str]:
    return utils.hue_palette(n)


def _area_pal(range: Limits = (1, 6)) -> Callable[[np.ndarray], np.ndarray]:
    return lambda x: utils.rescale(np.sqrt(np.asarray(x, dtype=float)), to=range, frm=(0, 1))


def _rescale_pal(range: Limits) -> Callable[[np.ndarray], np.ndarray]:
    return lambda x: utils.rescale(np.asarray(x, dtype=float), to=range, frm=(0, 1))


def _seq_pal(values: Sequence[Any], what: str) -> Callable[[int], List[Any]]:
    def _pal(n: int) -> List[Any]:
        if n > len(values):
            utils.warn(
                f"The {what} palette can deal with a maximum of {len(values)} discrete values; "
                f"you have {n}. Extra levels are treated as missing."
            )
        return list(values[:n]) + [None] * max(0, n - len(values))

    return _pal


# --------------------------------------------------------
#          SCALES
# --------------------------------------------------------


class Scale:
    """Common behaviour of all scales.

    ``breaks``/``labels``: ``None`` computes defaults, a list fixes them, a
    callable is applied to the limits (breaks) or the breaks (labels); an empty
    list hides them.
    """

    is_position = False
    range_cls: type = ContinuousRange

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        name: Optional[str] = None,
        breaks: Any = None,  # noqa: ANN401
        labels: Any = None,  # noqa: ANN401
        limits: Any = None,  # noqa: ANN401
        expand: Optional[Tuple[float, float]] = None,
        guide: Any = "legend",  # noqa: ANN401
        na_value: Any = None,  # noqa: ANN401
        palette: Any = None,  # noqa: ANN401
        position: Optional[str] = None,
    ) -> None:
        self.aesthetics = [aesthetics] if isinstance(aesthetics, str) else list(aesthetics)
        self.name = name
        self.breaks = breaks
        self.labels = labels
        self.limits = limits
        self.expand = expand
        self.guide = guide
        self.na_value = na_value
        self.palette = palette
        self.position = position
        self.range = self.new_range()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.aesthetics}>"

    def new_range(self) -> Any:  # noqa: ANN401
        return self.range_cls()

    @property
    def aesthetic(self) -> str:
        return self.aesthetics[0]

    def clone(self) -> "Scale":
        """Copy with an untrained range."""

        new = copy.copy(self)
        new.range = self.new_range()
        return new

    def copy(self) -> "Scale":
        """Copy keeping the trained range."""

        return copy.deepcopy(self)

    def is_discrete(self) -> bool:
        return False

    def is_empty(self) -> bool:
        return self.range.is_empty() and self.limits is None

    def reset(self) -> None:
        self.range.reset()

    def make_title(self, default: Optional[str]) -> Optional[str]:
        return self.name if self.name is not None else default

    # --- dataframe level ---

    def _present(self, df: pd.DataFrame) -> List[str]:
        return [a for a in self.aesthetics if a in df.columns]

    def train_df(self, df: pd.DataFrame) -> None:
        for a in self._present(df):
            self.train(df[a])

    def transform_df(self, df: pd.DataFrame) -> Dict[str, Any]:
        return {}

    def map_df(self, df: pd.DataFrame) -> Dict[str, Any]:
        return {a: self.map(df[a]) for a in self._present(df)}

    def train_partitions(self, parts: Iterable[pd.DataFrame]) -> None:
        """Train on independent partitions and merge the partial ranges."""

        partial = []
        for part in parts:
            sc = self.clone()
            sc.train_df(part)
            partial.append(sc.range)
        self.range = reduce(lambda a, b: a.merge(b), partial, self.range)

    # --- to be provided by the kinds ---

    def train(self, x: Any) -> None:  # noqa: ANN401
        raise NotImplementedError

    def map(self, x: Any) -> Any:  # noqa: ANN401
        raise NotImplementedError

    def get_limits(self) -> Any:  # noqa: ANN401
        raise NotImplementedError

    def get_breaks(self, limits: Any = None) -> Any:  # noqa: ANN401
        raise NotImplementedError

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        raise NotImplementedError

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        raise NotImplementedError

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        raise NotImplementedError

    # --- axes ---

    def break_info(self, range: Optional[Limits] = None) -> Dict[str, Any]:
        """Major breaks inside ``range`` with their [0, 1] positions and labels."""

        range = range if range is not None else self.dimension()
        breaks = np.asarray(self.get_breaks(), dtype=float)
        labels = self.get_labels()
        if len(labels) != len(breaks):
            raise PlotSpecError(f"Breaks and labels of the {self.aesthetic} scale have different lengths")
        inside = np.isfinite(breaks) & (breaks >= min(range) - 1e-10) & (breaks <= max(range) + 1e-10)
        return {
            "range": range,
            "major_source": breaks[inside],
            "major": utils.rescale(breaks[inside], frm=range),
            "labels": [lab for lab, ok in zip(labels, inside) if ok],
        }


class ScaleContinuous(Scale):
    """Continuous scale; non-position variants map through ``palette``."""

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        trans: Union[str, Transform] = "identity",
        oob: Union[str, Callable[[np.ndarray, Limits], np.ndarray]] = "censor",
        n_breaks: int = 5,
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        super().__init__(aesthetics, **kwargs)
        self.trans = get_transform(trans)
        self.oob = oob_policies[oob] if isinstance(oob, str) else oob
        self.n_breaks = n_breaks
        if self.limits is not None and len(self.limits) != 2:
            raise PlotSpecError(f"Continuous limits for {self.aesthetic} must have two values")

    def train(self, x: Any) -> None:  # noqa: ANN401
        self.range.train(x, self.aesthetic)

    def transform(self, x: Any) -> np.ndarray:  # noqa: ANN401
        return self.trans.transform(_numeric(x, self.aesthetic))

    def transform_df(self, df: pd.DataFrame) -> Dict[str, Any]:
        if self.trans.is_identity():
            return {}
        return {a: self.transform(df[a]) for a in self._present(df)}

    def get_limits(self) -> Limits:
        rng = self.range.range if self.range.range is not None else (0.0, 1.0)
        if self.limits is None:
            return rng
        lo, hi = self.trans.transform(np.array([np.nan if v is None else v for v in self.limits], dtype=float))
        return (rng[0] if np.isnan(lo) else float(lo), rng[1] if np.isnan(hi) else float(hi))

    def default_expand(self) -> Tuple[float, float]:
        return (0.05, 0.0)

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        mult, add = expand if expand is not None else (self.expand or self.default_expand())
        return expand_range(limits if limits is not None else self.get_limits(), mult, add)

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        return utils.rescale(np.asarray(x, dtype=float), frm=range or self.get_limits())

    def map(self, x: Any) -> Any:  # noqa: ANN401
        limits = self.get_limits()
        x = self.oob(np.asarray(x, dtype=float), limits)
        res = np.asarray(self.palette(self.rescale(x, limits)), dtype=object)
        missing = pd.isna(res)
        if missing.any():
            res[missing] = self.na_value
        return res

    def get_breaks(self, limits: Any = None) -> np.ndarray:  # noqa: ANN401
        limits = limits if limits is not None else self.get_limits()
        if self.is_empty():
            return np.array([])
        if self.breaks is None:
            data_lims = np.sort(self.trans.inverse(np.asarray(limits, dtype=float)))
            breaks = self.trans.transform(self.trans.breaks(tuple(data_lims), self.n_breaks))
        elif callable(self.breaks):
            breaks = self.trans.transform(np.asarray(self.breaks(self.trans.inverse(np.asarray(limits))), dtype=float))
        else:
            breaks = self.trans.transform(np.asarray(self.breaks, dtype=float))
        lo, hi = sorted(limits)
        tol = (hi - lo) * 1e-10
        return np.sort(breaks[(breaks >= lo - tol) & (breaks <= hi + tol)])

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        breaks = self.get_breaks() if breaks is None else np.asarray(breaks, dtype=float)
        source = self.trans.inverse(breaks)
        if self.labels is None:
            return [f"{v:g}" for v in source]
        if callable(self.labels):
            return [str(v) for v in self.labels(source)]
        return [str(v) for v in self.labels]


class ScaleContinuousPosition(ScaleContinuous):
    """Continuous x/y scale: mapping only applies the out-of-bounds policy."""

    is_position = True

    def __init__(self, aesthetics: Union[str, Sequence[str]], **kwargs: Any) -> None:  # noqa: ANN401
        kwargs.setdefault("guide", "axis")
        super().__init__(aesthetics, **kwargs)

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        return self.oob(np.asarray(x, dtype=float), self.get_limits())


class ScaleDiscrete(Scale):
    """Discrete scale; ``palette`` is a function n -> list of values, or a manual list/dict."""

    range_cls = DiscreteRange

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        order: str = "first_seen",
        drop: bool = True,
        na_translate: bool = True,
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        self.order = order
        self.drop = drop
        self.na_translate = na_translate
        super().__init__(aesthetics, **kwargs)

    def new_range(self) -> DiscreteRange:
        return DiscreteRange(order=self.order, drop=self.drop)

    def is_discrete(self) -> bool:
        return True

    def train(self, x: Any) -> None:  # noqa: ANN401
        self.range.train(x, self.aesthetic)

    def get_limits(self) -> List[Any]:
        if self.limits is not None:
            return list(self.limits)
        return list(self.range.levels or [])

    def _palette_values(self, limits: List[Any]) -> Dict[Any, Any]:
        pal = self.palette
        if isinstance(pal, Mapping):
            missing = [lv for lv in limits if lv not in pal]
            if missing:
                raise PlotSpecError(f"No manual values given for levels {missing} of the {self.aesthetic} scale")
            return {lv: pal[lv] for lv in limits}
        if isinstance(pal, (list, tuple)):
            if len(pal) < len(limits):
                raise PlotSpecError(
                    f"Insufficient values in manual {self.aesthetic} scale: {len(limits)} needed but only "
                    f"{len(pal)} provided"
                )
            return dict(zip(limits, pal))
        return dict(zip(limits, pal(len(limits))))

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        limits = self.get_limits()
        values = self._palette_values(limits)
        na = self.na_value if self.na_translate else None
        out = np.empty(len(x), dtype=object)
        for i, v in enumerate(pd.Series(x).to_numpy(dtype=object)):
            res = values.get(v) if not pd.isna(v) else None
            out[i] = na if res is None else res
        return out

    def get_breaks(self, limits: Any = None) -> List[Any]:  # noqa: ANN401
        limits = limits if limits is not None else self.get_limits()
        if self.breaks is None:
            return list(limits)
        if callable(self.breaks):
            return list(self.breaks(limits))
        return [b for b in self.breaks if b in limits]

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        breaks = self.get_breaks() if breaks is None else list(breaks)
        if self.labels is None:
            return [str(b) for b in breaks]
        if callable(self.labels):
            return [str(v) for v in self.labels(breaks)]
        if isinstance(self.labels, Mapping):
            return [str(self.labels.get(b, b)) for b in breaks]
        return [str(v) for v in self.labels]

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        n = len(limits if limits is not None else self.get_limits())
        return (1.0, float(max(n, 1)))

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        limits = self.get_limits()
        pos = np.array([limits.index(v) + 1 if v in limits else np.nan for v in x], dtype=float)
        return utils.rescale(pos, frm=range or (1, max(len(limits), 1)))


class ScaleDiscretePosition(ScaleDiscrete):
    """Discrete x/y scale: levels map to 1..N, numbers pass through and train ``range_c``."""

    is_position = True

    def __init__(self, aesthetics: Union[str, Sequence[str]], **kwargs: Any) -> None:  # noqa: ANN401
        kwargs.setdefault("guide", "axis")
        super().__init__(aesthetics, **kwargs)
        self.range_c = ContinuousRange()

    def clone(self) -> "ScaleDiscretePosition":
        new = super().clone()
        new.range_c = ContinuousRange()
        return new

    def train(self, x: Any) -> None:  # noqa: ANN401
        s = x if isinstance(x, pd.Series) else pd.Series(x)
        if utils.is_discrete(s):
            self.range.train(s, self.aesthetic)
        else:
            self.range_c.train(s, self.aesthetic)

    def reset(self) -> None:
        # Levels are kept: only the continuous side is retrained after stats
        self.range_c.reset()

    def is_empty(self) -> bool:
        return self.range.is_empty() and self.range_c.is_empty() and self.limits is None

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        s = x if isinstance(x, pd.Series) else pd.Series(x)
        if not utils.is_discrete(s):
            return s.to_numpy(dtype=float, na_value=np.nan)
        limits = self.get_limits()
        index = {v: i + 1 for i, v in enumerate(limits)}
        return np.array([index.get(v, np.nan) if not pd.isna(v) else np.nan for v in s], dtype=float)

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        mult, add = expand if expand is not None else (self.expand or (0.0, 0.6))
        n = len(limits if limits is not None else self.get_limits())
        ranges = []
        if n:
            ranges.append(expand_range((1.0, float(n)), 0.0, add))
        if self.range_c.range is not None:
            ranges.append(expand_range(self.range_c.range, mult, 0.0))
        if not ranges:
            return (0.0, 1.0)
        return min(r[0] for r in ranges), max(r[1] for r in ranges)

    def get_breaks(self, limits: Any = None) -> np.ndarray:  # noqa: ANN401
        levels = super().get_breaks(limits)
        return self.map(pd.Series(levels, dtype=object))

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        return super().get_labels(super().get_breaks())

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        return utils.rescale(self.map(x), frm=range or self.dimension())


class ScaleBinned(Scale):
    """Binned scale: equal-width or quantile bins over the trained range."""

    def __init__(
        self,
        aesthetics: Union[str, Sequence[str]],
        n_bins: int = 5,
        method: str = "width",
        oob: Union[str, Callable[[np.ndarray, Limits], np.ndarray]] = "censor",
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        if method not in ("width", "quantile"):
            raise PlotSpecError(f"Binning method must be 'width' or 'quantile', not {method!r}")
        self.n_bins = n_bins
        self.method = method
        super().__init__(aesthetics, **kwargs)
        self.oob = oob_policies[oob] if isinstance(oob, str) else oob

    def new_range(self) -> BinnedRange:
        return BinnedRange(keep_values=self.method == "quantile")

    def train(self, x: Any) -> None:  # noqa: ANN401
        self.range.train(x, self.aesthetic)

    def get_limits(self) -> Limits:
        if self.limits is not None:
            return tuple(float(v) for v in self.limits)
        return self.range.range if self.range.range is not None else (0.0, 1.0)

    def bin_edges(self) -> np.ndarray:
        """Sorted bin boundaries, first and last being the limits."""

        lo, hi = self.get_limits()
        if self.breaks is not None and not callable(self.breaks):
            inner = [b for b in sorted(self.breaks) if lo < b < hi]
            return np.array([lo, *inner, hi], dtype=float)
        if lo == hi:
            return np.array([lo - 0.5, hi + 0.5])
        if self.method == "quantile" and len(self.range.values):
            edges = np.quantile(self.range.values, np.linspace(0, 1, self.n_bins + 1))
            edges[0], edges[-1] = lo, hi
            return np.unique(edges)
        return np.linspace(lo, hi, self.n_bins + 1)

    def bin_index(self, x: Any) -> np.ndarray:  # noqa: ANN401
        """0-based bin of each value (-1 for missing or out of bounds)."""

        edges = self.bin_edges()
        x = self.oob(np.asarray(x, dtype=float), (edges[0], edges[-1]))
        idx = np.searchsorted(edges, x, side="right") - 1
        idx = np.clip(idx, 0, len(edges) - 2)
        return np.where(np.isfinite(x), idx, -1)

    def midpoints(self) -> np.ndarray:
        edges = self.bin_edges()
        return (edges[:-1] + edges[1:]) / 2

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        idx = self.bin_index(x)
        n = len(self.midpoints())
        pal = self.palette(n) if callable(self.palette) else list(self.palette)
        return np.array([pal[i] if i >= 0 else self.na_value for i in idx], dtype=object)

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        mult, add = expand if expand is not None else (self.expand or (0.05, 0.0))
        return expand_range(limits if limits is not None else self.get_limits(), mult, add)

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        return utils.rescale(np.asarray(x, dtype=float), frm=range or self.get_limits())

    def get_breaks(self, limits: Any = None) -> np.ndarray:  # noqa: ANN401
        return self.bin_edges()

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        breaks = self.get_breaks() if breaks is None else breaks
        if self.labels is None:
            return [f"{v:g}" for v in breaks]
        if callable(self.labels):
            return [str(v) for v in self.labels(breaks)]
        return [str(v) for v in self.labels]


class ScaleBinnedPosition(ScaleBinned):
    """Binned x/y scale.

    The first mapping replaces values by bin midpoints.  On `reset` (the
    retraining step after stats and positions) the bin edges are frozen and later
    mappings pass values through, since they are already midpoints.
    """

    is_position = True

    def __init__(self, aesthetics: Union[str, Sequence[str]], **kwargs: Any) -> None:  # noqa: ANN401
        kwargs.setdefault("guide", "axis")
        super().__init__(aesthetics, **kwargs)
        self.after_stat = False
        self.frozen_edges: Optional[np.ndarray] = None

    def clone(self) -> "ScaleBinnedPosition":
        new = super().clone()
        new.after_stat = False
        new.frozen_edges = None
        return new

    def bin_edges(self) -> np.ndarray:
        return self.frozen_edges if self.frozen_edges is not None else super().bin_edges()

    def train(self, x: Any) -> None:  # noqa: ANN401
        if not self.after_stat:
            self.range.train(x, self.aesthetic)

    def reset(self) -> None:
        if not self.range.is_empty():
            self.frozen_edges = super().bin_edges()
        self.after_stat = True

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        if self.after_stat:
            return np.asarray(x, dtype=float)
        idx = self.bin_index(x)
        mids = self.midpoints()
        return np.array([mids[i] if i >= 0 else np.nan for i in idx], dtype=float)

    def get_limits(self) -> Limits:
        if self.frozen_edges is not None:
            return float(self.frozen_edges[0]), float(self.frozen_edges[-1])
        return super().get_limits()


class ScaleIdentity(Scale):
    """Uses data values as-is; trains like a discrete or continuous scale as needed."""

    def __init__(self, aesthetics: Union[str, Sequence[str]], **kwargs: Any) -> None:  # noqa: ANN401
        kwargs.setdefault("guide", "none")
        super().__init__(aesthetics, **kwargs)
        self.levels = DiscreteRange()

    def clone(self) -> "ScaleIdentity":
        new = super().clone()
        new.levels = DiscreteRange()
        return new

    def is_empty(self) -> bool:
        return self.range.is_empty() and self.levels.is_empty()

    def train(self, x: Any) -> None:  # noqa: ANN401
        s = x if isinstance(x, pd.Series) else pd.Series(x)
        (self.levels if utils.is_discrete(s) else self.range).train(s, self.aesthetic)

    def is_discrete(self) -> bool:
        return not self.levels.is_empty()

    def map(self, x: Any) -> np.ndarray:  # noqa: ANN401
        return np.asarray(x)

    def get_limits(self) -> Any:  # noqa: ANN401
        return self.levels.levels if self.is_discrete() else (self.range.range or (0.0, 1.0))

    def get_breaks(self, limits: Any = None) -> Any:  # noqa: ANN401
        return list(self.get_limits()) if self.is_discrete() else _linear_breaks(self.get_limits())

    def get_labels(self, breaks: Any = None) -> List[str]:  # noqa: ANN401
        return [str(b) for b in (self.get_breaks() if breaks is None else breaks)]

    def dimension(self, expand: Optional[Tuple[float, float]] = None, limits: Any = None) -> Limits:  # noqa: ANN401
        lim = self.get_limits()
        return (1.0, float(len(lim))) if self.is_discrete() else tuple(lim)

    def rescale(self, x: Any, range: Optional[Limits] = None) -> np.ndarray:  # noqa: ANN401
        return utils.rescale(np.asarray(x, dtype=float), frm=range or self.dimension())


# --------------------------------------------------------
#          DEFAULT SCALES
# --------------------------------------------------------

# Aesthetics that never get a scale
_unscaled = {"group", "label", "weight", "width", "height", "PANEL", "angle", "hjust", "vjust", "family", "fontface"}


def _default_scale(aesthetic: str, kind: str) -> Optional[Scale]:
    """Default scale for ``aesthetic`` given the kind of data mapped to it."""

    if aesthetic in ("x", "y"):
        axes = list(X_AES if aesthetic == "x" else Y_AES)
        if kind == "discrete":
            return ScaleDiscretePosition(axes)
        return ScaleContinuousPosition(axes)
    if aesthetic in ("color", "fill"):
        if kind == "discrete":
            return ScaleDiscrete(aesthetic, palette=_hue_pal, na_value=utils.default_color)
        return ScaleContinuous(
            aesthetic, palette=utils.gradient_palette(utils.default_gradient), guide="colorbar",
            na_value=utils.default_color,
        )
    if aesthetic in ("size", "linewidth"):
        rng = (1.0, 6.0) if aesthetic == "size" else (1.0, 6.0)
        if kind == "discrete":
            utils.warn(f"Using {aesthetic} for a discrete variable is not advised.")
            return ScaleDiscrete(aesthetic, palette=lambda n: list(np.linspace(2, 6, n)))
        return ScaleContinuous(aesthetic, palette=_area_pal(rng) if aesthetic == "size" else _rescale_pal(rng))
    if aesthetic == "alpha":
        if kind == "discrete":
            return ScaleDiscrete(aesthetic, palette=lambda n: list(np.linspace(0.1, 1, n)))
        return ScaleContinuous(aesthetic, palette=_rescale_pal((0.1, 1.0)))
    if aesthetic == "shape":
        if kind != "discrete":
            raise PlotSpecError("A continuous variable can not be mapped to shape")
        return ScaleDiscrete(aesthetic, palette=_seq_pal(_shapes, "shape"))
    if aesthetic == "linetype":
        if kind != "discrete":
            raise PlotSpecError("A continuous variable can not be mapped to linetype")
        return ScaleDiscrete(aesthetic, palette=_seq_pal(_linetypes, "linetype"))
    return None


def find_scale(aesthetic: str, x: pd.Series) -> Optional[Scale]:
    """Infer the default scale for ``aesthetic`` from the values it is mapped to."""

    scale_aes = aes_to_scale(aesthetic)
    if scale_aes in _unscaled:
        return None
    kind = "discrete" if utils.is_discrete(x) else "continuous"
    return _default_scale(scale_aes, kind)


# --------------------------------------------------------
#          SCALES LIST
# --------------------------------------------------------


class ScalesList:
    """All scales of a plot, at most one per aesthetic."""

    def __init__(self, scales: Optional[Iterable[Scale]] = None) -> None:
        self.scales: List[Scale] = list(scales or [])

    def __iter__(self):  # noqa: ANN204
        return iter(self.scales)

    def __len__(self) -> int:
        return len(self.scales)

    def n(self) -> int:
        return len(self.scales)

    def input(self) -> List[str]:
        return [a for s in self.scales for a in s.aesthetics]

    def find(self, aesthetic: str) -> List[bool]:
        return [aesthetic in s.aesthetics for s in self.scales]

    def has_scale(self, aesthetic: str) -> bool:
        return any(self.find(aesthetic))

    def get_scales(self, aesthetic: str) -> Optional[Scale]:
        for s in self.scales:
            if aesthetic in s.aesthetics:
                return s
        return None

    def add(self, scale: Optional[Scale]) -> None:
        if scale is None:
            return
        prev = [s for s in self.scales if set(s.aesthetics) & set(scale.aesthetics)]
        if prev:
            utils.warn(
                f"Scale for {scale.aesthetic!r} is already present. Adding another scale for "
                f"{scale.aesthetic!r}, which will replace the existing scale."
            )
        self.scales = [s for s in self.scales if s not in prev] + [scale]

    def clone(self) -> "ScalesList":
        return ScalesList([s.clone() for s in self.scales])

    def copy(self) -> "ScalesList":
        return ScalesList([s.copy() for s in self.scales])

    def non_position_scales(self) -> "ScalesList":
        return ScalesList([s for s in self.scales if not s.is_position])

    def train_df(self, df: pd.DataFrame) -> None:
        if df.empty:
            return
        for s in self.scales:
            s.train_df(df)

    def map_df(self, df: pd.DataFrame) -> pd.DataFrame:
        if df.empty or not self.scales:
            return df
        mapped: Dict[str, Any] = {}
        for s in self.scales:
            mapped.update(s.map_df(df))
        return df.assign(**mapped)

    def transform_df(self, df: pd.DataFrame) -> pd.DataFrame:
        if df.empty:
            return df
        transformed: Dict[str, Any] = {}
        for s in self.scales:
            transformed.update(s.transform_df(df))
        return df.assign(**transformed) if transformed else df

    def add_defaults(self, data: pd.DataFrame, aesthetics: Iterable[str]) -> None:
        """Create default scales for mapped aesthetics that do not have one yet."""

        for a in aesthetics:
            if a not in data.columns or self.has_scale(a) or self.has_scale(aes_to_scale(a)):
                continue
            scale = find_scale(a, data[a])
            if scale is not None:
                logger.debug("adding default %s for %r", type(scale).__name__, a)
                self.scales.append(scale)

    def add_missing(self, aesthetics: Sequence[str] = ("x", "y")) -> None:
        """Make sure the position scales exist (continuous if nothing else is known)."""

        for a in aesthetics:
            if not self.has_scale(a):
                self.scales.append(_default_scale(a, "continuous"))

    def train_partitions(self, parts: Sequence[pd.DataFrame]) -> None:
        for s in self.scales:
            s.train_partitions(parts)

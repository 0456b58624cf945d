"""Statistical Transformations
---------------------------

Stats turn the rows of one group into the rows that get drawn: counts per
category, histogram bins, densities, box summaries, fitted lines.  The
default splitting is per panel, then per group; a stat overrides
`compute_panel` or `compute_layer` only when it needs to see more at once.

Columns that are constant within a group (colour, fill, facet variables ...)
are carried over to the stat's output automatically, so stats only return the
columns they compute.  Aesthetics that depend on computed columns are declared
in ``default_aes`` as `after_stat` expressions.
"""

from __future__ import annotations

__all__ = [
    "Stat",
    "StatIdentity",
    "StatCount",
    "StatBin",
    "StatDensity",
    "StatBoxplot",
    "StatSummary",
    "StatSmooth",
    "StatUnique",
    "boxplot_stats",
]

import logging
from typing import Any, ClassVar, Dict, Optional, Tuple

import numpy as np
import pandas as pd
import scipy.stats as sps
from KDEpy import FFTKDE  # type: ignore[import-untyped]
from KDEpy.bw_selection import silvermans_rule  # type: ignore[import-untyped]

from gg_toolkit import utils
from gg_toolkit.aes import after_stat, check_required_aesthetics
from gg_toolkit.components import Component, gg_component
from gg_toolkit.partition import GROUP, PANEL, apply_and_combine
from gg_toolkit.validation import PlotSpecError

logger = logging.getLogger(__name__)


def _carry_constant(res: pd.DataFrame, group: pd.DataFrame) -> pd.DataFrame:
    """Add the columns of ``group`` that have a single value and are missing from ``res``."""

    res = res.reset_index(drop=True)
    first = np.zeros(len(res), dtype=int)
    const = {
        c: group[c].iloc[first].reset_index(drop=True)
        for c in group.columns
        if c not in res.columns and group[c].nunique(dropna=False) == 1
    }
    return res.assign(**const) if const else res


class Stat(Component):
    """Base stat: split by panel, then by group, and call `compute_group`."""

    role = "stat"
    required_aes: ClassVar[Tuple[str, ...]] = ()
    non_missing_aes: ClassVar[Tuple[str, ...]] = ()
    default_aes: ClassVar[Dict[str, Any]] = {}
    dropped_aes: ClassVar[Tuple[str, ...]] = ()
    parameters: ClassVar[Dict[str, Any]] = {"na_rm": False}

    def aesthetics(self) -> list[str]:
        req = [a for r in self.required_aes for a in r.split("|")]
        return [*req, *self.default_aes, GROUP]

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        return {**self.get_params(), **params}

    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        check_required_aesthetics(self.required_aes, data.columns, f"stat_{self.name}()")
        needed = [a for r in self.required_aes for a in r.split("|")] + list(self.non_missing_aes)
        data = utils.remove_missing(
            data, needed, name=f"stat_{self.name}()", na_rm=params.get("na_rm", False), finite=True
        )

        def _panel(d: pd.DataFrame) -> pd.DataFrame:
            scales = layout.get_scales(int(d[PANEL].iloc[0]))
            return self.compute_panel(d, scales, params)

        return apply_and_combine(data, [PANEL], _panel, max_workers=params.get("max_workers"))

    def compute_panel(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        def _group(g: pd.DataFrame) -> Optional[pd.DataFrame]:
            res = self.compute_group(g, scales, params)
            if res is None or res.empty:
                return None
            return _carry_constant(res, g)

        return apply_and_combine(data, [GROUP], _group)

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        raise NotImplementedError(f"stat_{self.name} does not implement compute_group")


def _flipped(data: pd.DataFrame, params: Dict[str, Any]) -> bool:
    """True when only y is mapped (or orientation="y"), i.e. the stat runs along the y axis."""

    if params.get("orientation") in ("x", "y"):
        return params["orientation"] == "y"
    return "y" in data.columns and "x" not in data.columns


# --------------------------------------------------------
#          SIMPLE STATS
# --------------------------------------------------------


@gg_component("stat", "identity")
class StatIdentity(Stat):
    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        return data


@gg_component("stat", "unique")
class StatUnique(Stat):
    """Drops duplicated rows."""

    def compute_panel(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        return data.drop_duplicates().reset_index(drop=True)


@gg_component("stat", "count")
class StatCount(Stat):
    """Number of cases (or sum of weights) at each x position."""

    required_aes = ("x|y",)
    default_aes = {"x": after_stat("count"), "y": after_stat("count"), "weight": 1}
    dropped_aes = ("weight",)
    parameters = {"na_rm": False, "width": None, "orientation": None}

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if "x" in data.columns and "y" in data.columns and params.get("orientation") is None:
            raise PlotSpecError("stat_count() must only have an x or y aesthetic.")
        params["flipped_aes"] = _flipped(data, params)
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        w = data["weight"].to_numpy(dtype=float) if "weight" in data.columns else np.ones(len(data))
        counts = pd.Series(w, index=data["x"].to_numpy()).groupby(level=0, sort=True).sum()
        width = params.get("width") or utils.resolution(counts.index.to_numpy()) * 0.9
        res = pd.DataFrame(
            {
                "count": counts.to_numpy(),
                "prop": counts.to_numpy() / counts.sum(),
                "x": counts.index.to_numpy(dtype=float),
                "width": width,
                "flipped_aes": flipped,
            }
        )
        return utils.flip_data(res, flipped)


# --------------------------------------------------------
#          BINNING
# --------------------------------------------------------


def bin_breaks(
    x_range: Tuple[float, float],
    bins: int = 30,
    binwidth: Optional[float] = None,
    center: Optional[float] = None,
    boundary: Optional[float] = None,
) -> np.ndarray:
    """Equal-width bin edges covering ``x_range``."""

    lo, hi = x_range
    if binwidth is None:
        if bins < 1:
            raise PlotSpecError("`bins` must be a positive integer")
        if bins == 1 or hi == lo:
            binwidth, boundary = max(hi - lo, 0.1), lo
        else:
            binwidth = (hi - lo) / (bins - 1)
            if boundary is None and center is None:
                boundary = binwidth / 2
    if binwidth <= 0:
        raise PlotSpecError("`binwidth` must be positive")
    if boundary is None:
        boundary = binwidth / 2 if center is None else center - binwidth / 2
    shift = np.floor((lo - boundary) / binwidth)
    origin = boundary + shift * binwidth
    max_x = hi + (1 - 1e-8) * binwidth
    if (max_x - origin) / binwidth > 1e6:
        raise PlotSpecError("The number of histogram bins must be less than 1,000,000. Did you make `binwidth` too small?")
    breaks = np.arange(origin, max_x, binwidth)
    if len(breaks) == 1:
        breaks = np.append(breaks, breaks[0] + binwidth)
    return breaks


def bin_vector(x: np.ndarray, breaks: np.ndarray, weight: np.ndarray, closed: str = "right", pad: bool = False):
    fuzz = 1e-8 * np.median(np.diff(breaks))
    if closed == "right":
        fuzzy = breaks + np.r_[-fuzz, np.full(len(breaks) - 1, fuzz)]
    else:
        fuzzy = breaks + np.r_[np.full(len(breaks) - 1, -fuzz), fuzz]
    idx = pd.cut(x, fuzzy, right=closed == "right", include_lowest=True, labels=False)
    ok = ~pd.isna(idx)
    count = np.bincount(np.asarray(idx[ok], dtype=int), weights=weight[ok], minlength=len(breaks) - 1)
    xmin, xmax = breaks[:-1], breaks[1:]
    if pad:
        width0 = xmax[0] - xmin[0]
        count = np.r_[0, count, 0]
        xmin = np.r_[xmin[0] - width0, xmin, xmax[-1]]
        xmax = np.r_[xmin[1], xmax, xmax[-1] + width0]
    width = xmax - xmin
    total = count.sum()
    density = count / width / total if total > 0 else np.zeros_like(count)
    return pd.DataFrame(
        {
            "count": count,
            "x": (xmin + xmax) / 2,
            "xmin": xmin,
            "xmax": xmax,
            "width": width,
            "density": density,
            "ncount": count / count.max() if count.max() > 0 else count,
            "ndensity": density / density.max() if density.max() > 0 else density,
        }
    )


@gg_component("stat", "bin")
class StatBin(Stat):
    """Histogram counts over equal-width bins spanning the x scale."""

    required_aes = ("x|y",)
    default_aes = {"x": after_stat("count"), "y": after_stat("count"), "weight": 1}
    dropped_aes = ("weight",)
    parameters = {
        "na_rm": False,
        "bins": None,
        "binwidth": None,
        "breaks": None,
        "center": None,
        "boundary": None,
        "closed": "right",
        "pad": False,
        "orientation": None,
    }

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["flipped_aes"] = _flipped(data, params)
        x = "y" if params["flipped_aes"] else "x"
        if x in data.columns and utils.is_discrete(data[x]):
            raise PlotSpecError(f"stat_bin() requires a continuous {x} aesthetic; did you want stat_count()?")
        if params["center"] is not None and params["boundary"] is not None:
            raise PlotSpecError("Only one of `boundary` and `center` may be specified in stat_bin().")
        if params["closed"] not in ("right", "left"):
            raise PlotSpecError("`closed` must be 'right' or 'left'")
        if params["breaks"] is None and params["binwidth"] is None and params["bins"] is None:
            logger.info("stat_bin() using bins = 30. Pick better value with binwidth.")
            params["bins"] = 30
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        scale = scales["y" if flipped else "x"]
        if params["breaks"] is not None:
            breaks = np.sort(np.asarray(params["breaks"], dtype=float))
        else:
            breaks = bin_breaks(
                scale.dimension(expand=(0.0, 0.0)),
                bins=params["bins"] or 30,
                binwidth=params["binwidth"],
                center=params["center"],
                boundary=params["boundary"],
            )
        w = data["weight"].to_numpy(dtype=float) if "weight" in data.columns else np.ones(len(data))
        res = bin_vector(data["x"].to_numpy(dtype=float), breaks, w, params["closed"], params["pad"])
        res["flipped_aes"] = flipped
        return utils.flip_data(res, flipped)


# --------------------------------------------------------
#          DENSITY
# --------------------------------------------------------


def _bandwidth(x: np.ndarray, bw: Any) -> float:  # noqa: ANN401
    if isinstance(bw, (int, float)):
        return float(bw)
    if bw in ("nrd0", "silverman"):
        return float(silvermans_rule(x.reshape(-1, 1)) or 0.0)
    if bw == "scott":
        return float(1.06 * np.std(x, ddof=1) * len(x) ** (-1 / 5))
    raise PlotSpecError(f"Unknown bandwidth rule {bw!r}")


@gg_component("stat", "density")
class StatDensity(Stat):
    """Gaussian (or other kernel) density estimate evaluated with KDEpy's FFT backend."""

    required_aes = ("x|y",)
    default_aes = {"x": after_stat("density"), "y": after_stat("density"), "fill": None, "weight": None}
    dropped_aes = ("weight",)
    parameters = {
        "na_rm": False,
        "bw": "nrd0",
        "adjust": 1.0,
        "kernel": "gaussian",
        "n": 512,
        "trim": False,
        "orientation": None,
    }

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["flipped_aes"] = _flipped(data, params)
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        x = data["x"].to_numpy(dtype=float)
        if len(x) < 2:
            utils.warn("Groups with fewer than two data points have been dropped.")
            return pd.DataFrame()
        w = data["weight"].to_numpy(dtype=float) if "weight" in data.columns else np.ones(len(x))
        w = w / w.sum()
        bw = _bandwidth(x, params["bw"]) * params["adjust"]
        if bw <= 0:
            bw = 0.75 * utils.min_diff(x) or 1.0
        lo, hi = (x.min(), x.max()) if params["trim"] else scales["y" if flipped else "x"].dimension(expand=(0, 0))
        grid = np.linspace(lo, hi, params["n"])
        # FFTKDE needs an equidistant grid strictly enclosing the data
        step = (hi - lo) / (params["n"] - 1) if hi > lo else bw / 10
        pad = int(np.ceil(4 * bw / step)) + 1
        wide = lo + step * np.arange(-pad, params["n"] + pad)
        dens = FFTKDE(kernel=params["kernel"], bw=bw).fit(x, weights=w).evaluate(wide)
        density = np.interp(grid, wide, dens)
        res = pd.DataFrame(
            {
                "x": grid,
                "density": density,
                "scaled": density / density.max(),
                "ndensity": density / density.max(),
                "count": density * len(x),
                "n": len(x),
                "flipped_aes": flipped,
            }
        )
        return utils.flip_data(res, flipped)


# --------------------------------------------------------
#          SUMMARIES
# --------------------------------------------------------


def boxplot_stats(s: pd.Series, coef: float = 1.5) -> Dict[str, Any]:
    """Quartiles with Tukey whiskers and the points outside them."""

    q1, q2, q3 = s.quantile([0.25, 0.5, 0.75])
    iqr = q3 - q1
    inside = s[(s >= q1 - coef * iqr) & (s <= q3 + coef * iqr)]
    outliers = s[(s < q1 - coef * iqr) | (s > q3 + coef * iqr)]
    n = int(s.notna().sum())
    return {
        "ymin": inside.min(),
        "lower": q1,
        "middle": q2,
        "upper": q3,
        "ymax": inside.max(),
        "outliers": list(outliers),
        "notchlower": q2 - 1.58 * iqr / np.sqrt(n),
        "notchupper": q2 + 1.58 * iqr / np.sqrt(n),
        "relvarwidth": np.sqrt(n),
    }


@gg_component("stat", "boxplot")
class StatBoxplot(Stat):
    required_aes = ("y|x",)
    non_missing_aes = ("weight",)
    default_aes = {}
    dropped_aes = ("y", "weight")
    parameters = {"na_rm": False, "coef": 1.5, "width": None, "orientation": None}

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if params.get("orientation") in ("x", "y"):
            params["flipped_aes"] = params["orientation"] == "y"
        else:
            params["flipped_aes"] = "y" not in data.columns
        data = utils.flip_data(data, params["flipped_aes"])
        params["width"] = params["width"] or (utils.resolution(data["x"]) * 0.75 if "x" in data.columns else 0.75)
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        stats = boxplot_stats(data["y"].astype(float), params["coef"])
        x = float(data["x"].iloc[0]) if "x" in data.columns and data["x"].nunique() == 1 else 0.0
        res = pd.DataFrame([{**stats, "x": x, "width": params["width"], "flipped_aes": flipped}])
        return utils.flip_data(res, flipped)


def mean_se(y: np.ndarray, mult: float = 1.0) -> Dict[str, float]:
    m = float(np.mean(y))
    se = float(sps.sem(y)) if len(y) > 1 else np.nan
    return {"y": m, "ymin": m - mult * se, "ymax": m + mult * se}


def mean_cl_normal(y: np.ndarray, conf_int: float = 0.95) -> Dict[str, float]:
    m = float(np.mean(y))
    if len(y) < 2:
        return {"y": m, "ymin": np.nan, "ymax": np.nan}
    half = float(sps.sem(y)) * sps.t.ppf((1 + conf_int) / 2, len(y) - 1)
    return {"y": m, "ymin": m - half, "ymax": m + half}


def median_hilow(y: np.ndarray, conf_int: float = 0.95) -> Dict[str, float]:
    lo, med, hi = np.quantile(y, [(1 - conf_int) / 2, 0.5, (1 + conf_int) / 2])
    return {"y": float(med), "ymin": float(lo), "ymax": float(hi)}


summary_functions = {"mean_se": mean_se, "mean_cl_normal": mean_cl_normal, "median_hilow": median_hilow}


@gg_component("stat", "summary")
class StatSummary(Stat):
    """Summarise y at each unique x with a function returning y/ymin/ymax."""

    required_aes = ("x", "y")
    parameters = {"na_rm": False, "fun_data": None, "fun_args": {}, "orientation": None}

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        fun = params["fun_data"]
        if fun is None:
            logger.info("No summary function supplied, defaulting to mean_se()")
            fun = "mean_se"
        if isinstance(fun, str):
            if fun not in summary_functions:
                raise PlotSpecError(f"Unknown summary function {fun!r}; known: {sorted(summary_functions)}")
            fun = summary_functions[fun]
        params["fun_data"] = fun
        params["flipped_aes"] = params.get("orientation") == "y"
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        fun = params["fun_data"]
        rows = [
            {"x": x, **utils.call_kwsafe(fun, sub["y"].to_numpy(dtype=float), **params["fun_args"])}
            for x, sub in data.groupby("x", sort=True)
        ]
        res = pd.DataFrame(rows)
        res["flipped_aes"] = flipped
        return utils.flip_data(res, flipped)


# --------------------------------------------------------
#          SMOOTHING
# --------------------------------------------------------


def predict_lm(x: np.ndarray, y: np.ndarray, xseq: np.ndarray, degree: int = 1, se: bool = True, level: float = 0.95):
    """Least-squares polynomial fit with a pointwise confidence band."""

    X = np.vander(x, degree + 1)
    Xs = np.vander(xseq, degree + 1)
    coef, _, rank, _ = np.linalg.lstsq(X, y, rcond=None)
    pred = Xs @ coef
    res = pd.DataFrame({"x": xseq, "y": pred})
    if se:
        df = len(x) - rank
        if df <= 0:
            res[["ymin", "ymax", "se"]] = np.nan
            return res
        resid = y - X @ coef
        sigma2 = float(resid @ resid) / df
        cov = sigma2 * np.linalg.pinv(X.T @ X)
        se_fit = np.sqrt(np.einsum("ij,jk,ik->i", Xs, cov, Xs))
        t = sps.t.ppf((1 + level) / 2, df)
        res["ymin"] = pred - t * se_fit
        res["ymax"] = pred + t * se_fit
        res["se"] = se_fit
    return res


@gg_component("stat", "smooth")
class StatSmooth(Stat):
    """Linear (or polynomial) smoother with an optional confidence band."""

    required_aes = ("x", "y")
    parameters = {
        "na_rm": False,
        "method": "lm",
        "degree": 1,
        "se": True,
        "n": 80,
        "fullrange": False,
        "level": 0.95,
        "orientation": None,
    }

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if params["method"] != "lm":
            raise PlotSpecError(f"Unknown smoothing method {params['method']!r}; only 'lm' is available")
        params["flipped_aes"] = params.get("orientation") == "y"
        return params

    def compute_group(self, data: pd.DataFrame, scales: Dict[str, Any], params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        x, y = data["x"].to_numpy(dtype=float), data["y"].to_numpy(dtype=float)
        if len(np.unique(x)) < 2:
            return pd.DataFrame()
        if params["fullrange"]:
            lo, hi = scales["y" if flipped else "x"].dimension()
        else:
            lo, hi = x.min(), x.max()
        xseq = np.linspace(lo, hi, params["n"])
        res = predict_lm(x, y, xseq, params["degree"], params["se"], params["level"])
        res["flipped_aes"] = flipped
        return utils.flip_data(res, flipped)

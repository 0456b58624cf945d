"""Utilities
---------

Cross-cutting helpers shared by the build and assembly pipelines.  The module
groups:

- warning helpers and the missing-value policy (`warn`, `remove_missing`)
- colour helpers: hue palettes in hsluv space, gradients via matplotlib
- numeric helpers used by stats and positions (`min_diff`, `resolution`,
  `rescale`, `stable_rng`)
- keyword plumbing for hooks (`clean_kwargs`, `call_kwsafe`)
- JSON/YAML readers for plot descriptors and themes

If you need a generic helper, check this file before adding another bespoke
version elsewhere.
"""

from __future__ import annotations

__all__ = [
    "warn",
    "default_color",
    "default_gradient",
    "hue_palette",
    "gradient_palette",
    "gradient_to_discrete_color_scale",
    "is_discrete",
    "min_diff",
    "resolution",
    "rescale",
    "squish_infinite",
    "stable_rng",
    "clean_kwargs",
    "call_kwsafe",
    "remove_missing",
    "flip_data",
    "read_json",
    "read_yaml",
]

import inspect
import json
import warnings
from typing import Any, Callable, Dict, Mapping, Sequence, Tuple, TypeVar

import hsluv
import matplotlib.colors as mpc
import numpy as np
import pandas as pd
import yaml

JSONValue = str | int | float | bool | None | dict[str, "JSONValue"] | list["JSONValue"]


# convenience for warnings that gives a more useful stack frame (fn calling the warning, not warning fn itself)
def warn(msg: str, *args: object) -> None:
    """Emit a warning while pointing at the caller instead of this helper.

    Args:
        msg: Warning message to display.
        *args: Additional positional arguments forwarded to `warnings.warn`.
    """
    # mypy doesn't handle *args well with warn overloads
    warnings.warn(msg, *args, stacklevel=3)  # type: ignore[call-overload]


# --------------------------------------------------------
#          COLOURS
# --------------------------------------------------------

default_color = "grey50"  # Used for missing values in colour scales
default_gradient = ["#132B43", "#56B1F7"]


def _to_hex(color: str) -> str:
    # matplotlib knows css names but not R-style greys like "grey50"
    if color.startswith(("grey", "gray")) and color[4:].isdigit():
        level = int(color[4:]) / 100
        return mpc.to_hex((level, level, level))
    return mpc.to_hex(color)


def hue_palette(n: int, h: Tuple[float, float] = (15, 375), saturation: float = 90, lightness: float = 65) -> list[str]:
    """Return ``n`` evenly spaced hues with constant saturation and luminosity.

    Hues are spaced in hsluv space so that all colours are perceived as equally
    bright, which is what a categorical palette needs.
    """

    if n <= 0:
        return []
    lo, hi = h
    if (hi - lo) % 360 < 1:
        hi -= 360 / n
    hues = np.linspace(lo, hi, n) % 360
    return [hsluv.hsluv_to_hex((float(hue), saturation, lightness)) for hue in hues]


def gradient_palette(colors: Sequence[str]) -> Callable[[np.ndarray], np.ndarray]:
    """Build a function mapping values in [0, 1] onto a gradient (NaN stays NaN)."""

    cmap = mpc.LinearSegmentedColormap.from_list("grad", [_to_hex(c) for c in colors])

    def _pal(x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        out = np.full(x.shape, None, dtype=object)
        ok = np.isfinite(x)
        out[ok] = [mpc.to_hex(cmap(v)) for v in x[ok]]
        return out

    return _pal


def gradient_to_discrete_color_scale(grad: Sequence[str], num_colors: int) -> list[str]:
    """Sample ``num_colors`` evenly spaced colours from a gradient definition."""

    cmap = mpc.LinearSegmentedColormap.from_list("grad", [_to_hex(c) for c in grad])
    return [mpc.to_hex(cmap(i)) for i in np.linspace(0, 1, num_colors)]


# --------------------------------------------------------
#          NUMERIC HELPERS
# --------------------------------------------------------


def is_discrete(s: pd.Series) -> bool:
    """Return True for columns that should be treated as categorical."""

    return bool(
        isinstance(s.dtype, pd.CategoricalDtype)
        or pd.api.types.is_bool_dtype(s)
        or pd.api.types.is_object_dtype(s)
        or pd.api.types.is_string_dtype(s)
    )


def min_diff(arr: Sequence[float]) -> float:
    """Return the smallest strictly positive difference between sorted values.

    Args:
        arr: Sequence of numeric values.

    Returns:
        Minimum positive pairwise distance; ``0`` if all values are identical.
    """

    b = np.diff(np.sort(np.asarray(arr, dtype=float)))
    b = b[np.isfinite(b)]
    if len(b) == 0 or b.max() == 0.0:
        return 0
    else:
        return b[b > 0].min()


def resolution(x: Sequence[float], zero: bool = True) -> float:
    """Smallest distance between adjacent distinct values (1 for integer-like data)."""

    x = np.unique(np.asarray(x, dtype=float)[np.isfinite(np.asarray(x, dtype=float))])
    if len(x) == 0:
        return 1.0
    if np.all(x == np.round(x)):
        return 1.0
    if zero:
        x = np.unique(np.append(x, 0.0))
    d = min_diff(x)
    return float(d) if d > 0 else 1.0


def rescale(x: np.ndarray, to: Tuple[float, float] = (0.0, 1.0), frm: Tuple[float, float] | None = None) -> np.ndarray:
    """Linearly map ``x`` from ``frm`` (default: its own range) onto ``to``."""

    x = np.asarray(x, dtype=float)
    if frm is None:
        finite = x[np.isfinite(x)]
        frm = (finite.min(), finite.max()) if len(finite) else (0.0, 1.0)
    lo, hi = frm
    if hi == lo:
        return np.where(np.isnan(x), np.nan, (to[0] + to[1]) / 2)
    return (x - lo) / (hi - lo) * (to[1] - to[0]) + to[0]


def squish_infinite(x: np.ndarray, range: Tuple[float, float] = (0.0, 1.0)) -> np.ndarray:
    """Replace -inf/inf by the ends of ``range``."""

    x = np.array(x, dtype=float)
    x[x == -np.inf] = range[0]
    x[x == np.inf] = range[1]
    return x


def stable_rng(seed: int | str | bytes) -> np.random.Generator:
    """Return a platform-stable RNG using numpy's SFC64 bit generator."""

    if isinstance(seed, (str, bytes)):
        seed = int.from_bytes(seed.encode("utf-8") if isinstance(seed, str) else seed, "little") % (2**63)
    return np.random.Generator(np.random.SFC64(seed))


# --------------------------------------------------------
#          KWARGS PLUMBING
# --------------------------------------------------------

T = TypeVar("T")


def clean_kwargs(fn: Callable[..., Any], kwargs: Mapping[str, Any]) -> Dict[str, Any]:
    """Filter kwargs to only those accepted by ``fn``."""

    aspec = inspect.getfullargspec(fn)
    accepted = set(aspec.args) | set(aspec.kwonlyargs)
    return {k: v for k, v in kwargs.items() if k in accepted} if aspec.varkw is None else dict(kwargs)


def call_kwsafe(fn: Callable[..., T], *args: object, **kwargs: object) -> T:
    """Call ``fn`` after trimming unsupported keyword arguments."""

    return fn(*args, **clean_kwargs(fn, kwargs))


# --------------------------------------------------------
#          DATAFRAME HELPERS
# --------------------------------------------------------


def _is_missing(s: pd.Series, finite: bool) -> np.ndarray:
    if finite and pd.api.types.is_numeric_dtype(s) and not pd.api.types.is_bool_dtype(s):
        return ~np.isfinite(s.to_numpy(dtype=float, na_value=np.nan))
    return s.isna().to_numpy()


def remove_missing(
    df: pd.DataFrame,
    vars: Sequence[str],
    name: str = "",
    na_rm: bool = False,
    finite: bool = False,
) -> pd.DataFrame:
    """Drop rows with missing values in ``vars``, warning with the count unless ``na_rm``."""

    vars = [v for v in vars if v in df.columns]
    if not vars or df.empty:
        return df
    missing = np.zeros(len(df), dtype=bool)
    for v in vars:
        missing |= _is_missing(df[v], finite)
    n = int(missing.sum())
    if n == 0:
        return df
    if not na_rm:
        kind = "non-finite" if finite else "missing"
        where = f" ({name})" if name else ""
        warn(f"Removed {n} row{'s' if n > 1 else ''} containing {kind} values{where}.")
    return df.loc[~missing].reset_index(drop=True)


_FLIP = {
    "x": "y",
    "y": "x",
    "xmin": "ymin",
    "ymin": "xmin",
    "xmax": "ymax",
    "ymax": "xmax",
    "xend": "yend",
    "yend": "xend",
    "xintercept": "yintercept",
    "yintercept": "xintercept",
    "width": "height",
    "height": "width",
}


def flip_data(df: pd.DataFrame, flip: bool) -> pd.DataFrame:
    """Swap x- and y-flavoured columns so horizontal layers reuse vertical code."""

    if not flip:
        return df
    return df.rename(columns={c: _FLIP[c] for c in df.columns if c in _FLIP})


# --------------------------------------------------------
#          FILE READERS
# --------------------------------------------------------


def read_json(fname: str) -> JSONValue:
    """Load JSON file with extension sanity checks."""

    if ".json" not in fname:
        raise FileNotFoundError(f"Expecting {fname} to have a .json extension")
    with open(fname, "r") as jf:
        meta = json.load(jf)
    return meta


def read_yaml(fname: str) -> JSONValue:
    """Load YAML file with extension sanity checks."""

    if not fname.endswith((".yaml", ".yml")):
        raise FileNotFoundError(f"Expecting {fname} to have a .yaml extension")
    with open(fname) as stream:
        return yaml.safe_load(stream)

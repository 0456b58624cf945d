"""Split/apply/combine over the privileged key columns.

Every per-panel and per-group computation in the build and assembly pipelines
goes through `apply_and_combine`.  Partitions are independent, so they can be
processed by a thread pool; the result is always reassembled in the order the
key tuples first appear in the input.
"""

from __future__ import annotations

__all__ = ["PANEL", "GROUP", "split_by", "apply_and_combine", "interaction", "add_group"]

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from gg_toolkit.utils import is_discrete

logger = logging.getLogger(__name__)

PANEL = "PANEL"
GROUP = "group"


def split_by(data: pd.DataFrame, keys: Sequence[str]) -> Dict[Tuple, pd.DataFrame]:
    """Split ``data`` into sub-frames keyed by the tuple of ``keys`` values.

    Keys appear in the order in which their tuples first occur in ``data``.
    """

    keys = list(keys)
    if not keys:
        return {(): data}
    missing = [k for k in keys if k not in data.columns]
    if missing:
        raise KeyError(f"Cannot split by missing column(s) {missing}")
    out: Dict[Tuple, pd.DataFrame] = {}
    for key, sub in data.groupby(keys, sort=False, dropna=False, observed=True):
        out[key if isinstance(key, tuple) else (key,)] = sub
    return out


def apply_and_combine(
    data: pd.DataFrame,
    keys: Sequence[str],
    fn: Callable[[pd.DataFrame], Optional[pd.DataFrame]],
    max_workers: Optional[int] = None,
) -> pd.DataFrame:
    """Apply ``fn`` to every partition of ``data`` and concatenate the results.

    Key columns dropped by ``fn`` are restored from the partition key, and the
    result keeps the first-appearance order of the keys regardless of how the
    partitions were scheduled.
    """

    if data.empty:
        return data.reset_index(drop=True)
    parts = split_by(data, keys)

    def _run(item: Tuple[Tuple, pd.DataFrame]) -> Optional[pd.DataFrame]:
        key, sub = item
        res = fn(sub.reset_index(drop=True))
        if res is None or len(res) == 0:
            return None
        missing = {k: v for k, v in zip(keys, key) if k not in res.columns}
        return res.assign(**missing) if missing else res

    if max_workers and len(parts) > 1:
        logger.debug("apply_and_combine: %d partitions on %d workers", len(parts), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(_run, parts.items()))  # map keeps submission order
    else:
        results = [_run(item) for item in parts.items()]

    results = [r for r in results if r is not None]
    if not results:
        return data.iloc[0:0].reset_index(drop=True)
    return pd.concat(results, ignore_index=True, sort=False)


def interaction(frame: pd.DataFrame) -> np.ndarray:
    """1-based id of each row's combination of values, ordered by sorted levels.

    Missing values form their own level, placed last.
    """

    if frame.shape[1] == 0:
        return np.ones(len(frame), dtype=int)
    codes = []
    for col in frame.columns:
        s = frame[col]
        if isinstance(s.dtype, pd.CategoricalDtype):
            c = s.cat.codes.to_numpy().astype(int)
            c = np.where(c < 0, len(s.cat.categories), c)
        else:
            c, _ = pd.factorize(s, sort=True, use_na_sentinel=False)
        codes.append(c)
    combos = pd.MultiIndex.from_arrays(codes) if len(codes) > 1 else pd.Index(codes[0])
    ids, _ = pd.factorize(combos, sort=True)
    return ids + 1


def add_group(data: pd.DataFrame) -> pd.DataFrame:
    """Derive the ``group`` column from the discrete columns when it is not mapped."""

    if data.empty:
        return data.assign(**{GROUP: pd.Series(dtype=int)}) if GROUP not in data.columns else data
    if GROUP in data.columns:
        return data.assign(**{GROUP: interaction(data[[GROUP]])})
    disc = [c for c in data.columns if c not in (PANEL, "label") and is_discrete(data[c])]
    return data.assign(**{GROUP: interaction(data[disc])})

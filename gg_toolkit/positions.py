"""Position adjustments
--------------------

Positions resolve overlap between the groups of one panel after the geom has
set up its extents: stacking, filling, dodging, jittering and nudging.  They
work per panel (not per group) because every adjustment needs to see all the
groups sharing an x position.
"""

from __future__ import annotations

__all__ = [
    "Position",
    "PositionIdentity",
    "PositionStack",
    "PositionFill",
    "PositionDodge",
    "PositionJitter",
    "PositionNudge",
]

from typing import Any, ClassVar, Dict, Optional

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.aes import X_AES, Y_AES, check_required_aesthetics
from gg_toolkit.components import Component, gg_component
from gg_toolkit.partition import GROUP, PANEL, apply_and_combine


class Position(Component):
    role = "position"
    required_aes: ClassVar[tuple] = ()

    def setup_params(self, data: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {**self.get_params(), **(params or {})}

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        check_required_aesthetics(self.required_aes, data.columns, f"position_{self.name}()")
        return data

    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        def _panel(d: pd.DataFrame) -> pd.DataFrame:
            return self.compute_panel(d, params, layout.get_scales(int(d[PANEL].iloc[0])))

        return apply_and_combine(data, [PANEL], _panel)

    def compute_panel(self, data: pd.DataFrame, params: Dict[str, Any], scales: Dict[str, Any]) -> pd.DataFrame:
        raise NotImplementedError(f"position_{self.name} does not implement compute_panel")


def _has_flipped_aes(data: pd.DataFrame) -> bool:
    if "flipped_aes" in data.columns and len(data):
        return bool(data["flipped_aes"].iloc[0])
    return False


@gg_component("position", "identity")
class PositionIdentity(Position):
    """Leaves the data alone."""

    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        return data


# --------------------------------------------------------
#          STACKING
# --------------------------------------------------------


def _stack_slot(df: pd.DataFrame, vjust: float, fill: bool) -> pd.DataFrame:
    y = df["y"].fillna(0).to_numpy(dtype=float)
    heights = np.r_[0.0, np.cumsum(y)]
    if fill and heights[-1] != 0:
        heights = heights / abs(heights[-1])
    lo, hi = np.minimum(heights[:-1], heights[1:]), np.maximum(heights[:-1], heights[1:])
    return df.assign(y=(1 - vjust) * lo + vjust * hi, ymin=lo, ymax=hi)


@gg_component("position", "stack")
class PositionStack(Position):
    """Stack overlapping groups on top of each other.

    Negative values are stacked separately below zero.  By default groups are
    stacked in reverse group order so the stack reads like the legend.
    """

    parameters = {"vjust": 1.0, "reverse": False}

    def setup_params(self, data: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params.setdefault("fill", False)
        params["flipped_aes"] = _has_flipped_aes(data)
        flipped = utils.flip_data(data, params["flipped_aes"])
        if "ymax" in flipped.columns:
            if "ymin" in flipped.columns and (flipped["ymin"].fillna(0) != 0).any():
                utils.warn(f"Stacking not well defined when not anchored on the axis (position_{self.name}()).")
            params["var"] = "ymax"
        elif "y" in flipped.columns:
            params["var"] = "y"
        else:
            utils.warn(f"Stacking requires either the ymin and ymax or the y aesthetics (position_{self.name}()).")
            params["var"] = None
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        if params["var"] is None:
            return data
        data = utils.flip_data(data, params["flipped_aes"])
        if params["var"] == "ymax":
            ymin = data["ymin"] if "ymin" in data.columns else 0
            data = data.assign(ymax=np.where(data["ymax"] == 0, ymin, data["ymax"]))
            if "y" not in data.columns:
                data = data.assign(y=data["ymax"])
        else:
            data = data.assign(ymax=data["y"])
        data = utils.remove_missing(data, ["x", "xmin", "xmax", "y"], name=f"position_{self.name}()")
        return utils.flip_data(data, params["flipped_aes"])

    def compute_panel(self, data: pd.DataFrame, params: Dict[str, Any], scales: Dict[str, Any]) -> pd.DataFrame:
        if params["var"] is None:
            return data
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        if "xmin" not in data.columns:
            data = data.assign(xmin=data["x"], xmax=data["x"])
        data = data.assign(_row=np.arange(len(data)))
        negative = (data["ymax"].fillna(0) < 0).to_numpy()
        parts = []
        for part in (data[negative], data[~negative]):
            if part.empty:
                continue
            order = part[GROUP] if params["reverse"] else -part[GROUP]
            part = part.assign(_ord=order.to_numpy()).sort_values(["xmin", "_ord"], kind="stable")
            stacked = apply_and_combine(
                part.drop(columns="_ord"), ["xmin"], lambda d: _stack_slot(d, params["vjust"], params["fill"])
            )
            parts.append(stacked)
        res = pd.concat(parts, ignore_index=True).sort_values("_row").drop(columns="_row").reset_index(drop=True)
        return utils.flip_data(res, flipped)


@gg_component("position", "fill")
class PositionFill(Position):
    """Stack and standardise each stack to height 1."""

    parameters = {"vjust": 1.0, "reverse": False}

    def _stack(self) -> PositionStack:
        return self.delegate("stack", vjust=self.vjust, reverse=self.reverse)

    def setup_params(self, data: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {**self._stack().setup_params(data, params), "fill": True}

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        return self._stack().setup_data(data, params)

    def compute_panel(self, data: pd.DataFrame, params: Dict[str, Any], scales: Dict[str, Any]) -> pd.DataFrame:
        return self._stack().compute_panel(data, params, scales)


# --------------------------------------------------------
#          DODGING
# --------------------------------------------------------


def _dodge_slot(df: pd.DataFrame, width: float, n: Optional[int]) -> pd.DataFrame:
    groups = np.sort(df[GROUP].unique())
    n = n or len(groups)
    if n == 1:
        return df
    d_width = float((df["xmax"] - df["xmin"]).max())
    idx = np.searchsorted(groups, df[GROUP].to_numpy()) + 1
    x = df["x"].to_numpy(dtype=float) + width * ((idx - 0.5) / n - 0.5)
    return df.assign(x=x, xmin=x - d_width / n / 2, xmax=x + d_width / n / 2)


@gg_component("position", "dodge")
class PositionDodge(Position):
    """Place overlapping groups side by side.

    ``preserve='total'`` splits each slot among the groups present in it,
    ``'single'`` gives every group the width of one group out of the busiest slot.
    """

    parameters = {"width": None, "preserve": "total"}

    def setup_params(self, data: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["flipped_aes"] = _has_flipped_aes(data)
        flipped = utils.flip_data(data, params["flipped_aes"])
        if "xmin" not in flipped.columns and "x" not in flipped.columns:
            utils.warn("Width not defined. Set with `position_dodge(width = ...)`")
        if params["preserve"] == "single" and "x" in flipped.columns and len(flipped):
            slot = "xmin" if "xmin" in flipped.columns else "x"
            params["n"] = int(flipped.groupby([PANEL, slot])[GROUP].nunique().max())
        else:
            params["n"] = None
        return params

    def compute_panel(self, data: pd.DataFrame, params: Dict[str, Any], scales: Dict[str, Any]) -> pd.DataFrame:
        flipped = params["flipped_aes"]
        data = utils.flip_data(data, flipped)
        width = params["width"]
        if "xmin" not in data.columns or "xmax" not in data.columns:
            half = (width or 0) / 2
            data = data.assign(xmin=data["x"] - half, xmax=data["x"] + half)
        if width is None:
            widths = (data["xmax"] - data["xmin"]).dropna()
            width = float(widths.iloc[0]) if len(widths) else 0.0
        data = data.assign(_row=np.arange(len(data)))
        res = apply_and_combine(data, ["xmin"], lambda d: _dodge_slot(d, width, params["n"]))
        res = res.sort_values("_row").drop(columns="_row").reset_index(drop=True)
        return utils.flip_data(res, flipped)


# --------------------------------------------------------
#          JITTER AND NUDGE
# --------------------------------------------------------


def _shift(data: pd.DataFrame, dx: Any, dy: Any) -> pd.DataFrame:  # noqa: ANN401
    cols = {c: data[c] + dx for c in X_AES if c in data.columns}
    cols.update({c: data[c] + dy for c in Y_AES if c in data.columns})
    return data.assign(**cols)


@gg_component("position", "jitter")
class PositionJitter(Position):
    """Add uniform random noise; the default seed keeps renders reproducible."""

    required_aes = ("x", "y")
    parameters = {"width": None, "height": None, "seed": 1}

    def setup_params(self, data: pd.DataFrame, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if params["width"] is None:
            params["width"] = 0.4 * utils.resolution(data["x"], zero=False) if "x" in data.columns else 0.0
        if params["height"] is None:
            params["height"] = 0.4 * utils.resolution(data["y"], zero=False) if "y" in data.columns else 0.0
        return params

    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        rng = utils.stable_rng(params["seed"])
        dx = rng.uniform(-params["width"], params["width"], len(data))
        dy = rng.uniform(-params["height"], params["height"], len(data))
        return _shift(data, dx, dy)


@gg_component("position", "nudge")
class PositionNudge(Position):
    """Shift every point by a fixed offset (useful for labels)."""

    parameters = {"x": 0.0, "y": 0.0}

    def compute_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any) -> pd.DataFrame:  # noqa: ANN401
        return _shift(data, params["x"], params["y"])

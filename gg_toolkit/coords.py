"""Coordinate systems
------------------

A coordinate system turns trained position scales into per-panel parameters
(ranges, break positions, labels) and uses them to normalise positional data
into the [0, 1] panel square.  It also renders what belongs to the panel frame:
background, grid lines and axes.

- `CoordCartesian`: linear, optional zoom limits that do not drop data
- `CoordFlip`, `CoordFixed`: delegate to the cartesian system
- `CoordTrans`: transforms positions only when rendering, after stats and
  positions ran in untransformed space
- `CoordPolar`: non-linear; paths and rectangles are munched into short pieces
  so straight lines become arcs
"""

from __future__ import annotations

__all__ = [
    "Coord",
    "CoordCartesian",
    "CoordFlip",
    "CoordFixed",
    "CoordTrans",
    "CoordPolar",
    "coord_munch",
]

from typing import Any, ClassVar, Dict, Optional

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.aes import X_AES, Y_AES
from gg_toolkit.components import Component, gg_component
from gg_toolkit.grid import Grob, grob_tree, text_grob, zero_grob
from gg_toolkit.guides import draw_axis
from gg_toolkit.partition import GROUP
from gg_toolkit.scales import Scale, expand_range, get_transform
from gg_toolkit.theme import Theme, element_gp, element_grob
from gg_toolkit.validation import PlotSpecError

PanelParams = Dict[str, Any]


def _rescale_cols(data: pd.DataFrame, cols: tuple, frm: tuple) -> Dict[str, np.ndarray]:
    return {c: utils.squish_infinite(utils.rescale(data[c], frm=frm)) for c in cols if c in data.columns}


class Coord(Component):
    """Base coordinate system; the rendering helpers work for any linear system."""

    role = "coord"
    parameters: ClassVar[Dict[str, Any]] = {"expand": True, "clip": "on"}

    def is_linear(self) -> bool:
        return False

    def is_free(self) -> bool:
        return True

    def aspect(self, panel_params: PanelParams) -> Optional[float]:
        return None

    def setup_params(self, data: Any = None, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:  # noqa: ANN401
        return {**self.get_params(), **(params or {})}

    def labels(self, labels: Dict[str, Any], panel_params: PanelParams) -> Dict[str, Any]:
        return labels

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        raise NotImplementedError

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        raise NotImplementedError

    def backtransform_range(self, panel_params: PanelParams) -> Dict[str, tuple]:
        """Continuous x/y ranges of the panel in data space."""

        return {"x": panel_params["x_range"], "y": panel_params["y_range"]}

    def distance(self, x: np.ndarray, y: np.ndarray, panel_params: PanelParams) -> np.ndarray:
        max_dist = np.hypot(np.diff(panel_params["x_range"]), np.diff(panel_params["y_range"]))[0]
        return np.hypot(np.diff(x), np.diff(y)) / max_dist

    # --- rendering ---

    def render_bg(self, panel_params: PanelParams, theme: Theme) -> Grob:
        """Panel background plus major grid lines."""

        children = [element_grob(theme.calc_element("panel.background"), name="panel.background")]
        for aes, el_name in (("x", "panel.grid.major.x"), ("y", "panel.grid.major.y")):
            el = theme.calc_element(el_name)
            breaks = panel_params[f"{aes}_major"]
            if len(breaks) == 0:
                continue
            along = np.repeat(breaks, 2)
            across = np.tile([0.0, 1.0], len(breaks))
            xs, ys = (along, across) if aes == "x" else (across, along)
            children.append(element_grob(el, name=el_name, x=xs, y=ys, id=np.repeat(np.arange(len(breaks)), 2)))
        return grob_tree(*children, name="grill")

    def render_fg(self, panel_params: PanelParams, theme: Theme) -> Grob:
        return element_grob(theme.calc_element("panel.border"), name="panel.border")

    def render_axis_h(self, panel_params: PanelParams, theme: Theme) -> Dict[str, Grob]:
        return {
            "top": zero_grob(),
            "bottom": draw_axis(panel_params["x_major"], panel_params["x_labels"], "bottom", theme),
        }

    def render_axis_v(self, panel_params: PanelParams, theme: Theme) -> Dict[str, Grob]:
        return {
            "left": draw_axis(panel_params["y_major"], panel_params["y_labels"], "left", theme),
            "right": zero_grob(),
        }


# --------------------------------------------------------
#          CARTESIAN FAMILY
# --------------------------------------------------------


def _axis_params(scale: Scale, limits: Optional[tuple], expand: bool, aes: str) -> PanelParams:
    if scale.is_discrete():
        limits = None
    elif limits is not None:
        limits = tuple(np.sort(scale.trans.transform(np.asarray(limits, dtype=float))))
    rng = scale.dimension(expand=None if expand else (0.0, 0.0), limits=limits)
    info = scale.break_info(rng)
    return {
        f"{aes}_range": tuple(float(v) for v in rng),
        f"{aes}_major": info["major"],
        f"{aes}_major_source": info["major_source"],
        f"{aes}_labels": info["labels"],
    }


@gg_component("coord", "cartesian")
class CoordCartesian(Coord):
    """Linear coordinates; ``xlim``/``ylim`` zoom without removing data."""

    parameters = {"xlim": None, "ylim": None, "expand": True, "clip": "on"}

    def is_linear(self) -> bool:
        return True

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        return {
            **_axis_params(scale_x, self.xlim, self.expand, "x"),
            **_axis_params(scale_y, self.ylim, self.expand, "y"),
        }

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        cols = _rescale_cols(data, X_AES, panel_params["x_range"])
        cols.update(_rescale_cols(data, Y_AES, panel_params["y_range"]))
        return data.assign(**cols)


def _swap_xy(panel_params: PanelParams) -> PanelParams:
    swapped = {}
    for k, v in panel_params.items():
        if k.startswith("x_"):
            swapped["y_" + k[2:]] = v
        elif k.startswith("y_"):
            swapped["x_" + k[2:]] = v
        else:
            swapped[k] = v
    return swapped


@gg_component("coord", "flip")
class CoordFlip(Coord):
    """Cartesian coordinates with x drawn vertically and y horizontally."""

    parameters = {"xlim": None, "ylim": None, "expand": True, "clip": "on"}

    def _cartesian(self) -> CoordCartesian:
        return self.delegate("cartesian", xlim=self.xlim, ylim=self.ylim, expand=self.expand, clip=self.clip)

    def is_linear(self) -> bool:
        return True

    def labels(self, labels: Dict[str, Any], panel_params: PanelParams) -> Dict[str, Any]:
        return {**labels, "x": labels.get("y"), "y": labels.get("x")}

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        return _swap_xy(self._cartesian().setup_panel_params(scale_x, scale_y, params))

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        return self._cartesian().transform(utils.flip_data(data, True), panel_params)

    def backtransform_range(self, panel_params: PanelParams) -> Dict[str, tuple]:
        return {"x": panel_params["y_range"], "y": panel_params["x_range"]}


@gg_component("coord", "fixed")
class CoordFixed(Coord):
    """Cartesian coordinates with a fixed ratio between one y unit and one x unit."""

    parameters = {"ratio": 1.0, "xlim": None, "ylim": None, "expand": True, "clip": "on"}

    def _cartesian(self) -> CoordCartesian:
        return self.delegate("cartesian", xlim=self.xlim, ylim=self.ylim, expand=self.expand, clip=self.clip)

    def is_linear(self) -> bool:
        return True

    def is_free(self) -> bool:
        return False

    def aspect(self, panel_params: PanelParams) -> Optional[float]:
        return float(np.diff(panel_params["y_range"])[0] / np.diff(panel_params["x_range"])[0] * self.ratio)

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        return self._cartesian().setup_panel_params(scale_x, scale_y, params)

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        return self._cartesian().transform(data, panel_params)


@gg_component("coord", "trans")
class CoordTrans(Coord):
    """Transform positions at render time (e.g. a log axis for already computed stats)."""

    parameters = {"x": "identity", "y": "identity", "xlim": None, "ylim": None, "expand": True, "clip": "on"}

    def _axis(self, scale: Scale, trans_name: str, limits: Optional[tuple], aes: str) -> PanelParams:
        trans = get_transform(trans_name)
        data_rng = limits if limits is not None else scale.dimension(expand=(0.0, 0.0))
        coord_rng = trans.transform(np.asarray(data_rng, dtype=float))
        if not np.isfinite(coord_rng).all():
            raise PlotSpecError(f"coord_trans(): the {aes} range {tuple(data_rng)} is outside the domain of {trans.name}")
        if self.expand:
            default = (0.0, 0.6) if scale.is_discrete() else (0.05, 0.0)
            mult, add = scale.expand or default
            coord_rng = np.asarray(expand_range(tuple(coord_rng), mult, add), dtype=float)
        breaks = np.asarray(scale.get_breaks(), dtype=float)
        labels = scale.get_labels()
        pos = trans.transform(breaks) if len(breaks) else breaks
        inside = np.isfinite(pos) & (pos >= coord_rng.min()) & (pos <= coord_rng.max())
        return {
            f"{aes}_range": tuple(float(v) for v in coord_rng),
            f"{aes}_major": utils.rescale(pos[inside], frm=tuple(coord_rng)),
            f"{aes}_major_source": breaks[inside],
            f"{aes}_labels": [lab for lab, ok in zip(labels, inside) if ok],
            f"{aes}_trans": trans,
        }

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        return {
            **self._axis(scale_x, self.x, self.xlim, "x"),
            **self._axis(scale_y, self.y, self.ylim, "y"),
        }

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        cols: Dict[str, np.ndarray] = {}
        for aes_cols, aes in ((X_AES, "x"), (Y_AES, "y")):
            trans = panel_params[f"{aes}_trans"]
            for c in aes_cols:
                if c in data.columns:
                    v = trans.transform(data[c].to_numpy(dtype=float))
                    cols[c] = utils.squish_infinite(utils.rescale(v, frm=panel_params[f"{aes}_range"]))
        return data.assign(**cols)

    def backtransform_range(self, panel_params: PanelParams) -> Dict[str, tuple]:
        return {
            aes: tuple(panel_params[f"{aes}_trans"].inverse(np.asarray(panel_params[f"{aes}_range"])))
            for aes in ("x", "y")
        }

    def distance(self, x: np.ndarray, y: np.ndarray, panel_params: PanelParams) -> np.ndarray:
        tx = panel_params["x_trans"].transform(np.asarray(x, dtype=float))
        ty = panel_params["y_trans"].transform(np.asarray(y, dtype=float))
        max_dist = np.hypot(np.diff(panel_params["x_range"]), np.diff(panel_params["y_range"]))[0]
        return np.hypot(np.diff(tx), np.diff(ty)) / max_dist


# --------------------------------------------------------
#          POLAR
# --------------------------------------------------------

_R_OUTER = 0.4


@gg_component("coord", "polar")
class CoordPolar(Coord):
    """Polar coordinates: ``theta`` names the position aesthetic mapped to angle."""

    parameters = {"theta": "x", "start": 0.0, "direction": 1, "clip": "on"}

    @property
    def r(self) -> str:
        return "y" if self.theta == "x" else "x"

    def aspect(self, panel_params: PanelParams) -> Optional[float]:
        return 1.0

    def is_free(self) -> bool:
        return False

    def labels(self, labels: Dict[str, Any], panel_params: PanelParams) -> Dict[str, Any]:
        if self.theta == "y":
            return {**labels, "x": labels.get("y"), "y": labels.get("x")}
        return labels

    def setup_panel_params(self, scale_x: Scale, scale_y: Scale, params: Optional[Dict[str, Any]] = None) -> PanelParams:
        out: PanelParams = {}
        for scale, aes in ((scale_x, "x"), (scale_y, "y")):
            if aes == self.theta:
                expand = (0.0, 0.5) if scale.is_discrete() else (0.0, 0.0)
                name = "theta"
            else:
                expand = (0.0, 0.0)
                name = "r"
            rng = scale.dimension(expand=expand)
            info = scale.break_info(rng)
            out.update(
                {
                    f"{name}_range": tuple(float(v) for v in rng),
                    f"{name}_major": info["major"],
                    f"{name}_labels": info["labels"],
                    f"{aes}_range": tuple(float(v) for v in rng),
                }
            )
        return out

    def _theta(self, x: np.ndarray, panel_params: PanelParams) -> np.ndarray:
        theta = utils.rescale(x, to=(0, 2 * np.pi), frm=panel_params["theta_range"])
        return (theta + self.start) % (2 * np.pi) * self.direction

    def _r(self, x: np.ndarray, panel_params: PanelParams) -> np.ndarray:
        return utils.rescale(x, to=(0, _R_OUTER), frm=panel_params["r_range"])

    def transform(self, data: pd.DataFrame, panel_params: PanelParams) -> pd.DataFrame:
        cols: Dict[str, np.ndarray] = {}
        for xc, yc in (("x", "y"), ("xend", "yend")):
            if xc not in data.columns or yc not in data.columns:
                continue
            t_col, r_col = (xc, yc) if self.theta == "x" else (yc, xc)
            theta = self._theta(utils.squish_infinite(data[t_col], panel_params["theta_range"]), panel_params)
            r = self._r(utils.squish_infinite(data[r_col], panel_params["r_range"]), panel_params)
            cols[xc] = r * np.sin(theta) + 0.5
            cols[yc] = r * np.cos(theta) + 0.5
        return data.assign(**cols)

    def distance(self, x: np.ndarray, y: np.ndarray, panel_params: PanelParams) -> np.ndarray:
        t_vals, r_vals = (x, y) if self.theta == "x" else (y, x)
        theta = utils.rescale(np.asarray(t_vals, dtype=float), to=(0, 2 * np.pi), frm=panel_params["theta_range"])
        r = utils.rescale(np.asarray(r_vals, dtype=float), frm=panel_params["r_range"])
        # arc length on the mean radius plus the radial change, relative to the full circle
        r_mid = (r[:-1] + r[1:]) / 2
        return (np.abs(np.diff(theta)) * r_mid + np.abs(np.diff(r))) / (2 * np.pi)

    def backtransform_range(self, panel_params: PanelParams) -> Dict[str, tuple]:
        return {"x": panel_params["x_range"], "y": panel_params["y_range"]}

    # --- rendering ---

    def render_bg(self, panel_params: PanelParams, theme: Theme) -> Grob:
        children = [element_grob(theme.calc_element("panel.background"), name="panel.background")]
        circle = np.linspace(0, 2 * np.pi, 100)
        r_major = panel_params["r_major"] * _R_OUTER
        if len(r_major):
            xs = np.concatenate([r * np.sin(circle) + 0.5 for r in r_major])
            ys = np.concatenate([r * np.cos(circle) + 0.5 for r in r_major])
            ids = np.repeat(np.arange(len(r_major)), len(circle))
            children.append(element_grob(theme.calc_element("panel.grid.major.y"), name="rings", x=xs, y=ys, id=ids))
        theta = self._theta(
            utils.rescale(panel_params["theta_major"], to=panel_params["theta_range"], frm=(0, 1)), panel_params
        )
        if len(theta):
            xs = np.column_stack([np.full(len(theta), 0.5), _R_OUTER * np.sin(theta) + 0.5]).ravel()
            ys = np.column_stack([np.full(len(theta), 0.5), _R_OUTER * np.cos(theta) + 0.5]).ravel()
            ids = np.repeat(np.arange(len(theta)), 2)
            children.append(element_grob(theme.calc_element("panel.grid.major.x"), name="spokes", x=xs, y=ys, id=ids))
        return grob_tree(*children, name="grill")

    def render_fg(self, panel_params: PanelParams, theme: Theme) -> Grob:
        """Theta labels around the outer circle."""

        el = theme.calc_element("axis.text.x")
        theta = self._theta(
            utils.rescale(panel_params["theta_major"], to=panel_params["theta_range"], frm=(0, 1)), panel_params
        )
        if len(theta) == 0 or not panel_params["theta_labels"]:
            return zero_grob()
        r = _R_OUTER + 0.05
        return text_grob(
            panel_params["theta_labels"], r * np.sin(theta) + 0.5, r * np.cos(theta) + 0.5, name="theta-labels",
            **element_gp(el),
        )

    def render_axis_h(self, panel_params: PanelParams, theme: Theme) -> Dict[str, Grob]:
        return {"top": zero_grob(), "bottom": zero_grob()}

    def render_axis_v(self, panel_params: PanelParams, theme: Theme) -> Dict[str, Grob]:
        pos = 0.5 + panel_params["r_major"] * _R_OUTER
        return {"left": draw_axis(pos, panel_params["r_labels"], "left", theme), "right": zero_grob()}


# --------------------------------------------------------
#          MUNCHING
# --------------------------------------------------------


def _close_groups(data: pd.DataFrame) -> pd.DataFrame:
    firsts = data.groupby(GROUP, sort=False).head(1)
    return (
        pd.concat([data.assign(_ord=np.arange(len(data))), firsts.assign(_ord=len(data) + np.arange(len(firsts)))])
        .sort_values([GROUP, "_ord"], kind="stable")
        .drop(columns="_ord")
        .reset_index(drop=True)
    )


def coord_munch(
    coord: Coord,
    data: pd.DataFrame,
    panel_params: PanelParams,
    is_closed: bool = False,
    segment_length: float = 0.01,
) -> pd.DataFrame:
    """Interpolate paths so that they follow a non-linear coordinate system, then transform."""

    if coord.is_linear() or data.empty:
        return coord.transform(data, panel_params)
    if GROUP not in data.columns:
        data = data.assign(**{GROUP: 1})
    if is_closed:
        data = _close_groups(data)
    ranges = coord.backtransform_range(panel_params)
    x = utils.squish_infinite(data["x"], ranges["x"])
    y = utils.squish_infinite(data["y"], ranges["y"])
    dist = coord.distance(x, y, panel_params)
    same_group = data[GROUP].to_numpy()[1:] == data[GROUP].to_numpy()[:-1]
    pieces = np.where(same_group & np.isfinite(dist), np.floor(np.nan_to_num(dist) / segment_length) + 1, 1)
    pieces = np.append(pieces, 1).astype(int)

    # every row is repeated once per piece; x/y are interpolated towards the next row
    idx = np.repeat(np.arange(len(data)), pieces)
    frac = np.concatenate([np.arange(p) / p for p in pieces])
    nxt = np.minimum(idx + 1, len(data) - 1)
    out = data.iloc[idx].reset_index(drop=True)
    out["x"] = x[idx] + (x[nxt] - x[idx]) * frac
    out["y"] = y[idx] + (y[nxt] - y[idx]) * frac
    return coord.transform(out, panel_params)

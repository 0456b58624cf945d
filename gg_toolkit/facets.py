"""Facets
------

A facet decides how many panels a plot has, which rows of each layer land in
which panel and how the panels are arranged.

- `compute_layout` returns the panel table, one row per panel with the
  columns ``PANEL``, ``ROW``, ``COL``, ``SCALE_X``, ``SCALE_Y`` and the facet
  variables.  ``PANEL`` is row-major over the grid.
- `map_data` adds the ``PANEL`` column to a layer; a layer lacking some facet
  variables is repeated in every panel those variables distinguish.
- `draw_panels` arranges the finished panel grobs, axes and strips into a
  `GTable` whose cells are named after their grid position:
  ``panel-R-C``, ``axis-{t,b,l,r}-...`` and ``strip-{t,r}-...``.
"""

from __future__ import annotations

__all__ = [
    "Facet",
    "FacetNull",
    "FacetWrap",
    "FacetGrid",
    "wrap_dims",
    "labellers",
    "label_value",
    "label_both",
]

import logging
import math
from typing import Any, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.components import Component, gg_component
from gg_toolkit.grid import GTable, Grob, Unit, grob_tree, zero_grob
from gg_toolkit.partition import PANEL
from gg_toolkit.theme import ElementBlank, Theme, element_grob
from gg_toolkit.validation import PlotSpecError

logger = logging.getLogger(__name__)

LAYOUT_COLS = [PANEL, "ROW", "COL", "SCALE_X", "SCALE_Y"]

# --------------------------------------------------------
#          LABELLERS
# --------------------------------------------------------


def _fmt(v: Any) -> str:  # noqa: ANN401
    return "NA" if pd.api.types.is_scalar(v) and pd.isna(v) else str(v)


def label_value(labels: Dict[str, Any]) -> List[str]:
    return [_fmt(v) for v in labels.values()]


def label_both(labels: Dict[str, Any]) -> List[str]:
    return [f"{k}: {_fmt(v)}" for k, v in labels.items()]


labellers: Dict[str, Callable[[Dict[str, Any]], List[str]]] = {
    "label_value": label_value,
    "value": label_value,
    "label_both": label_both,
    "both": label_both,
}


def _labeller(spec: Any) -> Callable[[Dict[str, Any]], List[str]]:  # noqa: ANN401
    if callable(spec):
        return spec
    if spec in labellers:
        return labellers[spec]
    raise PlotSpecError(f"Unknown labeller {spec!r}; known: {sorted(labellers)}")


# --------------------------------------------------------
#          HELPERS
# --------------------------------------------------------


def _levels(s: pd.Series) -> List[Any]:
    """Distinct values in display order: categorical order, else sorted."""

    if isinstance(s.dtype, pd.CategoricalDtype):
        present = set(s.dropna())
        return [c for c in s.cat.categories if c in present]
    vals = list(pd.unique(s.dropna()))
    try:
        return sorted(vals)
    except TypeError:
        return sorted(vals, key=str)


def combine_vars(data: Sequence[pd.DataFrame], vars: Sequence[str], drop: bool = True) -> pd.DataFrame:
    """Distinct combinations of ``vars`` over every layer, in sorted level order."""

    if not vars:
        return pd.DataFrame()
    has_all = [d for d in data if d is not None and all(v in d.columns for v in vars)]
    if not has_all:
        raise PlotSpecError(f"At least one layer must contain all faceting variables: {list(vars)}")
    missing = [v for v in vars if not any(v in d.columns for d in data if d is not None)]
    if missing:
        raise PlotSpecError(f"Faceting variables must have at least one value: {missing}")

    stacked = pd.concat([d[list(vars)] for d in has_all], ignore_index=True)
    values = {v: pd.concat([d[v] for d in data if d is not None and v in d.columns], ignore_index=True)
              for v in vars}
    levels = {v: _levels(s) for v, s in values.items()}
    if drop:
        combos = stacked.drop_duplicates()
    else:
        # Missing values form their own level
        full = [levels[v] + ([np.nan] if values[v].isna().any() else []) for v in vars]
        combos = pd.MultiIndex.from_product(full, names=list(vars)).to_frame(index=False)
    # Missing values sort after every present level
    order = [combos[v].astype(object).map({lev: i for i, lev in enumerate(levels[v])}).fillna(len(levels[v]))
             for v in vars]
    keys = pd.concat(order, axis=1, keys=list(vars))
    combos = combos.loc[keys.sort_values(list(vars), kind="stable").index].reset_index(drop=True)
    if combos.empty:
        raise PlotSpecError(f"Faceting variables must have at least one value: {list(vars)}")
    return combos


def wrap_dims(n: int, nrow: Optional[int] = None, ncol: Optional[int] = None) -> Tuple[int, int]:
    """Rows and columns for wrapping ``n`` panels."""

    if nrow is None and ncol is None:
        if n <= 3:
            rc = (n, 1)
        elif n <= 6:
            rc = ((n + 1) // 2, 2)
        elif n <= 12:
            rc = ((n + 2) // 3, 3)
        else:
            r = math.ceil(math.sqrt(n))
            rc = (r, math.ceil(n / r))
        nrow, ncol = rc[1], rc[0]
    elif ncol is None:
        ncol = math.ceil(n / nrow)
    elif nrow is None:
        nrow = math.ceil(n / ncol)
    if nrow * ncol < n:
        raise PlotSpecError(f"Need {n} panels, but together nrow ({nrow}) and ncol ({ncol}) only provide {nrow * ncol}")
    return nrow, ncol


def _as_vars(spec: Any) -> List[str]:  # noqa: ANN401
    if spec is None or spec == ".":
        return []
    if isinstance(spec, str):
        return [v.strip() for v in spec.replace("~", "+").split("+") if v.strip() and v.strip() != "."]
    return list(spec)


def _free(scales: str) -> Dict[str, bool]:
    if scales not in ("fixed", "free", "free_x", "free_y"):
        raise PlotSpecError(f"scales must be 'fixed', 'free', 'free_x' or 'free_y', not {scales!r}")
    return {"x": scales in ("free", "free_x"), "y": scales in ("free", "free_y")}


def _size(grob: Any, default: float = 0.0) -> float:  # noqa: ANN401
    size = grob.params.get("size") if isinstance(grob, Grob) else None
    return size.value if isinstance(size, Unit) else default


def strip_grob(labels: List[str], side: str, theme: Theme) -> Grob:
    el = theme.calc_element("strip.text.x" if side == "t" else "strip.text.y")
    bg = element_grob(theme.calc_element("strip.background"), name="strip.background")
    if isinstance(el, ElementBlank):
        return grob_tree(bg, name="strip", size=Unit(0, "pt"))
    text = element_grob(el, name="strip.text", label=", ".join(labels))
    m = el.margin or (4.4,) * 4
    margin = m[0] + m[2] if side == "t" else m[1] + m[3]
    return grob_tree(bg, text, name="strip", size=Unit((el.size or 8.8) * 1.2 + margin, "pt"))


# a panel block, top to bottom and left to right
_ROW_PARTS = ("strip-t", "axis-t", "panel", "axis-b")
_COL_PARTS = ("axis-l", "panel", "axis-r", "strip-r")


def arrange_panels(
    nrow: int,
    ncol: int,
    items: Sequence[Tuple[str, Any, int, str, int, str]],  # noqa: ANN401
    theme: Theme,
    aspect: Optional[float] = None,
) -> GTable:
    """Table for ``nrow`` x ``ncol`` panel blocks.

    ``items`` are (cell name, grob, block row, row part, block col, col part);
    part tracks are as thick as the widest grob placed in them.
    """

    spacing = Unit(float(theme.get_setting("panel.spacing")), "pt")

    def _tracks(n: int, parts: Sequence[str], horizontal: bool) -> Tuple[List[Unit], Dict[Tuple[int, str], int]]:
        sizes: List[Unit] = []
        index: Dict[Tuple[int, str], int] = {}
        for i in range(1, n + 1):
            if i > 1:
                sizes.append(spacing)
            for part in parts:
                if part == "panel":
                    sizes.append(Unit(aspect if (aspect and not horizontal) else 1.0, "null"))
                else:
                    placed = [g for (_, g, r, rp, c, cp) in items
                              if (not horizontal and r == i and rp == part) or (horizontal and c == i and cp == part)]
                    sizes.append(Unit(max([_size(g) for g in placed], default=0.0), "pt"))
                index[(i, part)] = len(sizes)
        return sizes, index

    heights, row_index = _tracks(nrow, _ROW_PARTS, horizontal=False)
    widths, col_index = _tracks(ncol, _COL_PARTS, horizontal=True)
    table = GTable(widths=widths, heights=heights, name="layout", respect=aspect is not None)
    for name, grob, r, rp, c, cp in items:
        t, l = row_index[(r, rp)], col_index[(c, cp)]
        z = 1 if name.startswith("panel") else 3
        table.add_grob(grob, t, l, name=name, z=z, clip="on" if name.startswith("panel") else "off")
    return table


# --------------------------------------------------------
#          FACETS
# --------------------------------------------------------


class Facet(Component):
    role = "facet"
    parameters: ClassVar[Dict[str, Any]] = {"scales": "fixed", "labeller": "label_value", "drop": True}

    def vars(self) -> List[str]:
        return []

    def setup_params(self, data: Sequence[pd.DataFrame], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = {**self.get_params(), **(params or {})}
        params["free"] = _free(params.get("scales", "fixed"))
        params["labeller"] = _labeller(params.get("labeller", "label_value"))
        return params

    def setup_data(self, data: List[pd.DataFrame], params: Dict[str, Any]) -> List[pd.DataFrame]:
        return data

    def compute_layout(self, data: Sequence[pd.DataFrame], params: Dict[str, Any]) -> pd.DataFrame:
        raise NotImplementedError

    def map_data(self, data: pd.DataFrame, layout: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        vars = self.vars()
        if data is None or data.empty:
            return data.assign(**{PANEL: pd.Series(dtype=int)}) if data is not None else data
        present = [v for v in vars if v in data.columns]
        missing = [v for v in vars if v not in data.columns]
        data = data.assign(_row=np.arange(len(data)))
        if missing:
            data = data.merge(layout[missing].drop_duplicates(), how="cross")
        keys = present + missing
        if not keys:
            return data.assign(**{PANEL: 1}).drop(columns="_row")
        # Missing facet values match the layout's missing level
        mapped = data.merge(layout[keys + [PANEL]], on=keys, how="inner", sort=False)
        n_lost = data["_row"].nunique() - mapped["_row"].nunique()
        if n_lost:
            utils.warn(f"Removed {n_lost} rows that match no panel")
        order = ["_row"] + ([PANEL] if missing else [])
        mapped = mapped.sort_values(order, kind="stable").drop(columns="_row").reset_index(drop=True)
        return mapped.assign(**{PANEL: mapped[PANEL].astype(int)})

    def init_scales(self, layout: pd.DataFrame, x_scale: Any = None, y_scale: Any = None) -> Dict[str, List[Any]]:  # noqa: ANN401
        out: Dict[str, List[Any]] = {}
        if x_scale is not None:
            out["x"] = [x_scale.clone() for _ in range(int(layout["SCALE_X"].max()))]
        if y_scale is not None:
            out["y"] = [y_scale.clone() for _ in range(int(layout["SCALE_Y"].max()))]
        return out

    def train_scales(
        self,
        x_scales: Optional[List[Any]],
        y_scales: Optional[List[Any]],
        layout: pd.DataFrame,
        data: Sequence[pd.DataFrame],
        params: Dict[str, Any],
    ) -> None:
        """Train each panel scale on the rows of the panels that use it."""

        for scales, col in ((x_scales, "SCALE_X"), (y_scales, "SCALE_Y")):
            if not scales:
                continue
            panel_to_scale = dict(zip(layout[PANEL], layout[col]))
            for layer_data in data:
                if layer_data is None or layer_data.empty:
                    continue
                idx = layer_data[PANEL].map(panel_to_scale)
                for i, scale in enumerate(scales, start=1):
                    scale.train_df(layer_data[(idx == i).to_numpy()])

    def finish_data(self, data: pd.DataFrame, layout: pd.DataFrame, x_scales: Any, y_scales: Any,  # noqa: ANN401
                    params: Dict[str, Any]) -> pd.DataFrame:
        return data

    def _panel_labels(self, layout: pd.DataFrame, vars: Sequence[str], params: Dict[str, Any]) -> Dict[int, List[str]]:
        return {int(row[PANEL]): params["labeller"]({v: row[v] for v in vars}) for _, row in layout.iterrows()}

    def draw_panels(
        self,
        panels: Sequence[Grob],
        layout: pd.DataFrame,
        panel_params: Sequence[Dict[str, Any]],
        coord: Any,  # noqa: ANN401
        theme: Theme,
        params: Dict[str, Any],
    ) -> GTable:
        raise NotImplementedError

    @staticmethod
    def _aspect(coord: Any, panel_params: Dict[str, Any], theme: Theme) -> Optional[float]:  # noqa: ANN401
        aspect = coord.aspect(panel_params)
        return aspect if aspect is not None else theme.get_setting("aspect.ratio")


@gg_component("facet", "null")
class FacetNull(Facet):
    """A single panel."""

    parameters = {"shrink": True}

    def setup_params(self, data: Sequence[pd.DataFrame], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return {**self.get_params(), **(params or {}), "free": {"x": False, "y": False}}

    def compute_layout(self, data: Sequence[pd.DataFrame], params: Dict[str, Any]) -> pd.DataFrame:
        return pd.DataFrame({PANEL: [1], "ROW": [1], "COL": [1], "SCALE_X": [1], "SCALE_Y": [1]})

    def map_data(self, data: pd.DataFrame, layout: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        if data is None:
            return data
        return data.assign(**{PANEL: np.ones(len(data), dtype=int)})

    def draw_panels(self, panels: Sequence[Grob], layout: pd.DataFrame, panel_params: Sequence[Dict[str, Any]],
                    coord: Any, theme: Theme, params: Dict[str, Any]) -> GTable:  # noqa: ANN401
        pp = panel_params[0]
        axis_h = coord.render_axis_h(pp, theme)
        axis_v = coord.render_axis_v(pp, theme)
        items = [
            ("panel-1-1", panels[0], 1, "panel", 1, "panel"),
            ("axis-t-1", axis_h["top"], 1, "axis-t", 1, "panel"),
            ("axis-b-1", axis_h["bottom"], 1, "axis-b", 1, "panel"),
            ("axis-l-1", axis_v["left"], 1, "panel", 1, "axis-l"),
            ("axis-r-1", axis_v["right"], 1, "panel", 1, "axis-r"),
        ]
        return arrange_panels(1, 1, items, theme, self._aspect(coord, pp, theme))


@gg_component("facet", "wrap")
class FacetWrap(Facet):
    """Wrap a 1d ribbon of panels into a grid."""

    parameters = {
        "facets": None, "nrow": None, "ncol": None, "scales": "fixed", "dir": "h",
        "labeller": "label_value", "drop": True,
    }

    def vars(self) -> List[str]:
        return _as_vars(self.facets)

    def setup_params(self, data: Sequence[pd.DataFrame], params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if not self.vars():
            raise PlotSpecError("facet_wrap() needs at least one faceting variable")
        if params["dir"] not in ("h", "v"):
            raise PlotSpecError(f"dir must be 'h' or 'v', not {params['dir']!r}")
        return params

    def compute_layout(self, data: Sequence[pd.DataFrame], params: Dict[str, Any]) -> pd.DataFrame:
        combos = combine_vars(data, self.vars(), drop=params["drop"])
        n = len(combos)
        nrow, ncol = wrap_dims(n, params["nrow"], params["ncol"])
        i = np.arange(n)
        if params["dir"] == "h":
            rows, cols = i // ncol + 1, i % ncol + 1
        else:
            rows, cols = i % nrow + 1, i // nrow + 1
        layout = combos.assign(ROW=rows, COL=cols)
        # PANEL is row-major whichever way the panels were wrapped
        layout = layout.sort_values(["ROW", "COL"], kind="stable").reset_index(drop=True)
        layout.insert(0, PANEL, np.arange(1, n + 1))
        free = params["free"]
        layout["SCALE_X"] = layout[PANEL] if free["x"] else 1
        layout["SCALE_Y"] = layout[PANEL] if free["y"] else 1
        logger.debug("facet_wrap: %d panels in %dx%d", n, nrow, ncol)
        return layout[LAYOUT_COLS + self.vars()]

    def draw_panels(self, panels: Sequence[Grob], layout: pd.DataFrame, panel_params: Sequence[Dict[str, Any]],
                    coord: Any, theme: Theme, params: Dict[str, Any]) -> GTable:  # noqa: ANN401
        nrow, ncol = int(layout["ROW"].max()), int(layout["COL"].max())
        free = params["free"]
        occupied = {(int(r), int(c)) for r, c in zip(layout["ROW"], layout["COL"])}
        labels = self._panel_labels(layout, self.vars(), params)
        items = []
        for _, row in layout.iterrows():
            p, r, c = int(row[PANEL]), int(row["ROW"]), int(row["COL"])
            pp = panel_params[p - 1]
            axis_h = coord.render_axis_h(pp, theme)
            axis_v = coord.render_axis_v(pp, theme)
            # fixed scales only label the outer panels; a short last row exposes the bottom of the row above
            draw_b = free["x"] or (r + 1, c) not in occupied
            draw_t = free["x"] or r == 1
            draw_l = free["y"] or c == 1
            draw_r = free["y"] or (r, c + 1) not in occupied
            suffix = f"{r}-{c}"
            items += [
                (f"panel-{suffix}", panels[p - 1], r, "panel", c, "panel"),
                (f"strip-t-{suffix}", strip_grob(labels[p], "t", theme), r, "strip-t", c, "panel"),
                (f"axis-t-{suffix}", axis_h["top"] if draw_t else zero_grob(), r, "axis-t", c, "panel"),
                (f"axis-b-{suffix}", axis_h["bottom"] if draw_b else zero_grob(), r, "axis-b", c, "panel"),
                (f"axis-l-{suffix}", axis_v["left"] if draw_l else zero_grob(), r, "panel", c, "axis-l"),
                (f"axis-r-{suffix}", axis_v["right"] if draw_r else zero_grob(), r, "panel", c, "axis-r"),
            ]
        aspect = None if (free["x"] or free["y"]) else self._aspect(coord, panel_params[0], theme)
        return arrange_panels(nrow, ncol, items, theme, aspect)


@gg_component("facet", "grid")
class FacetGrid(Facet):
    """Panels in a matrix: one row per level of ``rows``, one column per level of ``cols``.

    ``rows`` also accepts a formula-like ``"a ~ b"`` string, in which case
    ``cols`` must be empty.
    """

    parameters = {"rows": None, "cols": None, "scales": "fixed", "labeller": "label_value", "drop": True}

    def _split(self) -> Tuple[List[str], List[str]]:
        rows, cols = self.rows, self.cols
        if isinstance(rows, str) and "~" in rows:
            if cols:
                raise PlotSpecError("facet_grid() takes either a formula or rows and cols, not both")
            lhs, rhs = rows.split("~", 1)
            return _as_vars(lhs), _as_vars(rhs)
        return _as_vars(rows), _as_vars(cols)

    def vars(self) -> List[str]:
        rows, cols = self._split()
        return rows + cols

    def compute_layout(self, data: Sequence[pd.DataFrame], params: Dict[str, Any]) -> pd.DataFrame:
        rows, cols = self._split()
        if not rows and not cols:
            return self.delegate("null").compute_layout(data, params)
        row_combos = combine_vars(data, rows, drop=params["drop"]) if rows else pd.DataFrame(index=[0])
        col_combos = combine_vars(data, cols, drop=params["drop"]) if cols else pd.DataFrame(index=[0])
        row_combos = row_combos.assign(ROW=np.arange(1, len(row_combos) + 1))
        col_combos = col_combos.assign(COL=np.arange(1, len(col_combos) + 1))
        layout = row_combos.merge(col_combos, how="cross").sort_values(["ROW", "COL"], kind="stable")
        layout = layout.reset_index(drop=True)
        layout.insert(0, PANEL, np.arange(1, len(layout) + 1))
        free = params["free"]
        layout["SCALE_X"] = layout["COL"] if free["x"] else 1
        layout["SCALE_Y"] = layout["ROW"] if free["y"] else 1
        return layout[LAYOUT_COLS + rows + cols]

    def draw_panels(self, panels: Sequence[Grob], layout: pd.DataFrame, panel_params: Sequence[Dict[str, Any]],
                    coord: Any, theme: Theme, params: Dict[str, Any]) -> GTable:  # noqa: ANN401
        rows, cols = self._split()
        nrow, ncol = int(layout["ROW"].max()), int(layout["COL"].max())
        items = []
        for _, row in layout.iterrows():
            p, r, c = int(row[PANEL]), int(row["ROW"]), int(row["COL"])
            items.append((f"panel-{r}-{c}", panels[p - 1], r, "panel", c, "panel"))
            pp = panel_params[p - 1]
            if r == 1:
                items.append((f"axis-t-{c}", coord.render_axis_h(pp, theme)["top"], r, "axis-t", c, "panel"))
                if cols:
                    labels = params["labeller"]({v: row[v] for v in cols})
                    items.append((f"strip-t-{c}", strip_grob(labels, "t", theme), r, "strip-t", c, "panel"))
            if r == nrow:
                items.append((f"axis-b-{c}", coord.render_axis_h(pp, theme)["bottom"], r, "axis-b", c, "panel"))
            if c == 1:
                items.append((f"axis-l-{r}", coord.render_axis_v(pp, theme)["left"], r, "panel", c, "axis-l"))
            if c == ncol:
                items.append((f"axis-r-{r}", coord.render_axis_v(pp, theme)["right"], r, "panel", c, "axis-r"))
                if rows:
                    labels = params["labeller"]({v: row[v] for v in rows})
                    items.append((f"strip-r-{r}", strip_grob(labels, "r", theme), r, "panel", c, "strip-r"))
        free = params["free"]
        aspect = None if (free["x"] or free["y"]) else self._aspect(coord, panel_params[0], theme)
        return arrange_panels(nrow, ncol, items, theme, aspect)

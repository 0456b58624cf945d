"""Per-build layout: the facet's panel table, the per-panel position scales
and the coordinate system's panel parameters.

A `Layout` is created fresh for every build and is the only object that
knows which position scale belongs to which panel.
"""

from __future__ import annotations

__all__ = ["Layout"]

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from gg_toolkit.aes import X_AES, Y_AES
from gg_toolkit.grid import GTable, Grob, Unit, grob_tree
from gg_toolkit.partition import GROUP, PANEL
from gg_toolkit.theme import ElementBlank, Theme, element_grob
from gg_toolkit.validation import ContractViolation, require

logger = logging.getLogger(__name__)


class Layout:
    def __init__(self, facet: Any, coord: Any) -> None:  # noqa: ANN401
        self.facet = facet
        self.coord = coord
        self.facet_params: Dict[str, Any] = {}
        self.coord_params: Dict[str, Any] = {}
        self.layout: Optional[pd.DataFrame] = None
        self.panel_scales_x: Optional[List[Any]] = None
        self.panel_scales_y: Optional[List[Any]] = None
        self.panel_params: List[Dict[str, Any]] = []

    def __repr__(self) -> str:
        n = 0 if self.layout is None else len(self.layout)
        return f"<Layout {type(self.facet).__name__}/{type(self.coord).__name__} with {n} panel(s)>"

    # --------------------------------------------------------
    #          SETUP
    # --------------------------------------------------------

    def setup(self, data: Sequence[pd.DataFrame], plot_data: Optional[pd.DataFrame] = None) -> List[pd.DataFrame]:
        """Compute the panel table from all layers and assign ``PANEL`` to every layer."""

        plot_data = plot_data if plot_data is not None else pd.DataFrame()
        everything = [plot_data, *data]
        self.facet_params = self.facet.setup_params(everything, self.facet.get_params())
        everything = self.facet.setup_data(everything, self.facet_params)
        self.coord_params = self.coord.setup_params(everything)
        layout = self.facet.compute_layout(everything, self.facet_params)
        for col in (PANEL, "ROW", "COL", "SCALE_X", "SCALE_Y"):
            require(col in layout.columns, f"panel layout is missing the {col} column")
        require(list(layout[PANEL]) == list(range(1, len(layout) + 1)), "PANEL must number the panels 1..N")
        self.layout = layout
        logger.debug("Layout has %d panel(s)", len(layout))
        return [self.facet.map_data(d, layout, self.facet_params) for d in everything[1:]]

    def panel_ids(self) -> List[int]:
        return [int(p) for p in self.layout[PANEL]]

    # --------------------------------------------------------
    #          POSITION SCALES
    # --------------------------------------------------------

    def train_position(self, data: Sequence[pd.DataFrame], x_scale: Any = None, y_scale: Any = None) -> None:  # noqa: ANN401
        if self.panel_scales_x is None and x_scale is not None:
            self.panel_scales_x = self.facet.init_scales(self.layout, x_scale=x_scale)["x"]
        if self.panel_scales_y is None and y_scale is not None:
            self.panel_scales_y = self.facet.init_scales(self.layout, y_scale=y_scale)["y"]
        self.facet.train_scales(self.panel_scales_x, self.panel_scales_y, self.layout, data, self.facet_params)

    def map_position(self, data: Sequence[pd.DataFrame]) -> List[pd.DataFrame]:
        """Map every positional column through the scale of its panel."""

        return [self._map_one(d) for d in data]

    def _map_one(self, d: pd.DataFrame) -> pd.DataFrame:
        if d is None or d.empty:
            return d
        for scales, col, aesthetics in ((self.panel_scales_x, "SCALE_X", X_AES), (self.panel_scales_y, "SCALE_Y", Y_AES)):
            present = [a for a in aesthetics if a in d.columns]
            if not scales or not present:
                continue
            idx = d[PANEL].map(dict(zip(self.layout[PANEL], self.layout[col]))).to_numpy()
            cols = {a: pd.Series(np.empty(len(d), dtype=object)) for a in present}
            for i, scale in enumerate(scales, start=1):
                rows = idx == i
                if not rows.any():
                    continue
                part = d.loc[rows]
                for a, vals in scale.map_df(part).items():
                    cols[a][rows] = np.asarray(vals)
            d = d.assign(**{a: pd.to_numeric(v, errors="coerce").to_numpy() for a, v in cols.items()})
        return d

    def reset_scales(self) -> None:
        for scales in (self.panel_scales_x, self.panel_scales_y):
            for s in scales or []:
                s.reset()

    def setup_panel_params(self) -> None:
        """Coordinate parameters (ranges, breaks, labels) of every panel."""

        self.panel_params = []
        for _, row in self.layout.iterrows():
            sx = self.panel_scales_x[int(row["SCALE_X"]) - 1]
            sy = self.panel_scales_y[int(row["SCALE_Y"]) - 1]
            self.panel_params.append(self.coord.setup_panel_params(sx, sy, self.coord_params))

    def get_scales(self, panel: int) -> Dict[str, Any]:
        """Position scales used by ``panel`` (``None`` before they exist)."""

        row = self.layout.loc[self.layout[PANEL] == panel].iloc[0]
        return {
            "x": self.panel_scales_x[int(row["SCALE_X"]) - 1] if self.panel_scales_x else None,
            "y": self.panel_scales_y[int(row["SCALE_Y"]) - 1] if self.panel_scales_y else None,
        }

    def finish_data(self, data: Sequence[pd.DataFrame]) -> List[pd.DataFrame]:
        out = []
        for d in data:
            d = self.facet.finish_data(d, self.layout, self.panel_scales_x, self.panel_scales_y, self.facet_params)
            if d is not None and not d.empty and (PANEL not in d.columns or GROUP not in d.columns):
                raise ContractViolation("facet finish_data dropped the PANEL or group column")
            out.append(d)
        return out

    # --------------------------------------------------------
    #          RENDERING
    # --------------------------------------------------------

    def xlabel(self, labels: Mapping[str, Any]) -> Dict[str, Any]:
        """Primary and secondary x axis titles (scale name wins over the mapping label)."""

        scale = self.panel_scales_x[0] if self.panel_scales_x else None
        primary = scale.make_title(labels.get("x")) if scale is not None else labels.get("x")
        return {"primary": primary, "secondary": None}

    def ylabel(self, labels: Mapping[str, Any]) -> Dict[str, Any]:
        scale = self.panel_scales_y[0] if self.panel_scales_y else None
        primary = scale.make_title(labels.get("y")) if scale is not None else labels.get("y")
        return {"primary": primary, "secondary": None}

    def render(self, layer_grobs: Sequence[Sequence[Grob]], theme: Theme, labels: Mapping[str, Any]) -> GTable:
        """Panel table with axis titles.

        ``layer_grobs`` has one list per layer, each holding one grob per panel.
        """

        panels = []
        for i, pp in enumerate(self.panel_params):
            content = [grobs[i] for grobs in layer_grobs]
            panels.append(
                grob_tree(self.coord.render_bg(pp, theme), *content, self.coord.render_fg(pp, theme),
                          name=f"panel-{i + 1}")
            )
        table = self.facet.draw_panels(panels, self.layout, self.panel_params, self.coord, theme, self.facet_params)

        labels = self.coord.labels(
            {"x": self.xlabel(labels)["primary"], "y": self.ylabel(labels)["primary"]},
            self.panel_params[0],
        )
        xlab_el = theme.calc_element("axis.title.x")
        ylab_el = theme.calc_element("axis.title.y")
        xlab = element_grob(xlab_el, name="xlab", label=labels.get("x"))
        ylab = element_grob(ylab_el, name="ylab", label=labels.get("y"))
        xsize = _title_size(xlab_el, labels.get("x"))
        ysize = _title_size(ylab_el, labels.get("y"))

        nrow, ncol = table.dim
        panel_cells = table.find("panel")
        t = min(c.t for c in panel_cells)
        b = max(c.b for c in panel_cells)
        l = min(c.l for c in panel_cells)  # noqa: E741
        r = max(c.r for c in panel_cells)

        table.add_rows([Unit(xsize, "pt")], pos=-1)
        table.add_grob(xlab, nrow + 1, l, nrow + 1, r, name="xlab-b", z=5)
        table.add_cols([Unit(ysize, "pt")], pos=0)
        table.add_grob(ylab, t, 1, b, 1, name="ylab-l", z=5)
        return table


def _title_size(element: Any, label: Any) -> float:  # noqa: ANN401
    if isinstance(element, ElementBlank) or label is None:
        return 0.0
    m = element.margin or (0, 0, 0, 0)
    return (element.size or 11) * (element.lineheight or 1.2) + max(m)

"""Geometries
----------

Geoms turn finished data into grobs.  Each geom declares the aesthetics it
needs (``required_aes``), the ones it understands with their defaults
(``default_aes``), and how to draw a panel or a group.  Drawing always goes
through the coordinate system: positions are normalised with
`Coord.transform` (or `coord_munch` for paths in non-linear systems) before
the grob is built, so the grobs are in [0, 1] panel units.

Composite geoms reuse their siblings by delegation: bars and tiles are drawn
by the rect geom, rects turn into polygons under polar coordinates, boxplots
combine segments, rects and points.

Legend keys are drawn by the glyph functions at the bottom, selected through
``key_glyph``.
"""

from __future__ import annotations

__all__ = [
    "Geom",
    "GeomBlank",
    "GeomPoint",
    "GeomPath",
    "GeomLine",
    "GeomRect",
    "GeomPolygon",
    "GeomBar",
    "GeomCol",
    "GeomTile",
    "GeomRibbon",
    "GeomArea",
    "GeomDensity",
    "GeomBoxplot",
    "GeomSegment",
    "GeomText",
    "GeomHline",
    "GeomVline",
    "GeomSmooth",
    "GeomLinerange",
    "GeomPointrange",
    "GeomErrorbar",
    "key_glyphs",
    "draw_key",
]

import logging
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.aes import check_required_aesthetics, evaluate_mapping
from gg_toolkit.components import Component, gg_component
from gg_toolkit.coords import coord_munch
from gg_toolkit.grid import (
    PT,
    Grob,
    grob_tree,
    points_grob,
    polygon_grob,
    polyline_grob,
    rect_grob,
    segments_grob,
    text_grob,
    zero_grob,
)
from gg_toolkit.partition import GROUP, PANEL, split_by
from gg_toolkit.validation import PlotSpecError

logger = logging.getLogger(__name__)

_GREY20 = "#333333"
_GREY35 = "#595959"

# aesthetic -> (grob parameter, multiplier)
_GP_NAMES = {
    "color": ("col", None),
    "fill": ("fill", None),
    "alpha": ("alpha", None),
    "linewidth": ("lwd", PT),
    "linetype": ("lty", None),
    "shape": ("pch", None),
    "stroke": ("stroke", PT),
    "family": ("fontfamily", None),
    "fontface": ("fontface", None),
    "angle": ("rot", None),
    "hjust": ("hjust", None),
    "vjust": ("vjust", None),
    "lineheight": ("lineheight", None),
}


def gpar(data: pd.DataFrame | Mapping[str, Any], *aesthetics: str, size_as: Optional[str] = None, **over: Any) -> Dict[str, Any]:  # noqa: ANN401
    """Graphical parameters for ``aesthetics`` present in ``data``.

    ``size`` becomes ``size_as`` (e.g. ``fontsize``) in points.  Keyword
    arguments override the derived values.
    """

    gp: Dict[str, Any] = {}
    for a in aesthetics:
        if a not in data:
            continue
        v = data[a]
        v = v.to_numpy() if isinstance(v, pd.Series) else v
        if a == "size":
            if size_as:
                gp[size_as] = np.asarray(v, dtype=float) * PT
            continue
        name, mult = _GP_NAMES[a]
        gp[name] = np.asarray(v, dtype=float) * mult if mult is not None and v is not None else v
    gp.update(over)
    return gp


class Geom(Component):
    """Base geom: draw each panel as the union of its groups."""

    role = "geom"
    required_aes: ClassVar[Tuple[str, ...]] = ()
    non_missing_aes: ClassVar[Tuple[str, ...]] = ()
    optional_aes: ClassVar[Tuple[str, ...]] = ()
    default_aes: ClassVar[Dict[str, Any]] = {}
    parameters: ClassVar[Dict[str, Any]] = {"na_rm": False}
    key_glyph: ClassVar[str] = "point"

    def aesthetics(self) -> List[str]:
        req = [a for r in self.required_aes for a in r.split("|")]
        return [*req, *self.default_aes, *self.optional_aes, GROUP]

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        return {**self.get_params(), **params}

    def use_defaults(
        self,
        data: pd.DataFrame,
        params: Optional[Mapping[str, Any]] = None,
        modifiers: Optional[Mapping[str, Any]] = None,
    ) -> pd.DataFrame:
        """Fill unmapped aesthetics: geom defaults, then constant layer aesthetics, then after_scale modifiers."""

        n = len(data)
        defaults = {k: v for k, v in self.default_aes.items() if k not in data.columns}
        if defaults:
            data = data.assign(**{k: pd.Series([v] * n, dtype=object if v is None or isinstance(v, str) else None)
                                  for k, v in defaults.items()})
        aes_params = {k: v for k, v in (params or {}).items() if k in self.aesthetics() and k != GROUP}
        for k, v in aes_params.items():
            if isinstance(v, (list, tuple, np.ndarray, pd.Series)) and len(v) not in (1, n):
                raise PlotSpecError(f"Aesthetics must be either length 1 or the same as the data ({n}): {k}")
        if aes_params:
            data = data.assign(**{k: (list(v) if len(v) == n else [v[0]] * n) if isinstance(v, (list, tuple))
                                  else v for k, v in aes_params.items()})
        if modifiers:
            data = data.assign(**evaluate_mapping(modifiers, data, phase="after_scale"))
        return data

    def handle_na(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        needed = [a for r in self.required_aes for a in r.split("|")] + list(self.non_missing_aes)
        return utils.remove_missing(data, needed, name=f"geom_{self.name}()", na_rm=params.get("na_rm", False))

    def check_required(self, data: pd.DataFrame) -> None:
        check_required_aesthetics(self.required_aes, data.columns, f"geom_{self.name}()")

    def draw_layer(self, data: pd.DataFrame, params: Dict[str, Any], layout: Any, coord: Any) -> List[Grob]:  # noqa: ANN401
        """One grob per panel of ``layout`` (a zero grob where the layer has no data)."""

        if not data.empty:
            self.check_required(data)
        by_panel = split_by(data, [PANEL]) if not data.empty else {}
        grobs = []
        for panel in layout.panel_ids():
            d = by_panel.get((panel,))
            if d is None or d.empty:
                grobs.append(zero_grob())
                continue
            grobs.append(self.draw_panel(d.reset_index(drop=True), layout.panel_params[panel - 1], coord, params))
        return grobs

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        groups = split_by(data, [GROUP])
        children = [self.draw_group(g.reset_index(drop=True), panel_params, coord, params) for g in groups.values()]
        return grob_tree(*children, name=f"geom_{self.name}")

    def draw_group(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        raise NotImplementedError(f"geom_{self.name} does not implement draw_group or draw_panel")

    def draw_key(self, data: Mapping[str, Any], params: Dict[str, Any], glyph: Optional[str] = None) -> Grob:
        return draw_key(glyph or self.key_glyph, data, params)


@gg_component("geom", "blank")
class GeomBlank(Geom):
    key_glyph = "blank"

    def handle_na(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        return data

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return zero_grob()


# --------------------------------------------------------
#          POINTS AND PATHS
# --------------------------------------------------------


@gg_component("geom", "point")
class GeomPoint(Geom):
    required_aes = ("x", "y")
    non_missing_aes = ("size", "shape", "color")
    default_aes = {"shape": "circle", "color": "#000000", "size": 1.5, "fill": None, "alpha": None, "stroke": 0.5}
    key_glyph = "point"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        coords = coord.transform(data, panel_params)
        return points_grob(
            coords["x"], coords["y"], name="geom_point",
            **gpar(coords, "shape", "color", "fill", "alpha", "stroke", "size", size_as="pointsize"),
        )


@gg_component("geom", "path")
class GeomPath(Geom):
    """Connect observations in data order, one line per group."""

    required_aes = ("x", "y")
    non_missing_aes = ("linewidth", "color", "linetype")
    default_aes = {"color": "#000000", "linewidth": 0.5, "linetype": "solid", "alpha": None}
    parameters = {"na_rm": False, "lineend": "butt", "linejoin": "round", "orientation": None}
    key_glyph = "path"

    def handle_na(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        # Only leading and trailing missing values are dropped; interior ones break the line
        keep = ~data[[c for c in ("x", "y", "linewidth", "color", "linetype") if c in data.columns]].isna().any(axis=1)
        first = keep.groupby(data[GROUP]).cummax()
        last = keep[::-1].groupby(data[GROUP][::-1]).cummax()[::-1]
        keep_rows = first & last
        n = int((~keep_rows).sum())
        if n and not params.get("na_rm", False):
            utils.warn(f"Removed {n} row{'s' if n > 1 else ''} containing missing values (geom_{self.name}()).")
        return data.loc[keep_rows].reset_index(drop=True)

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        sizes = data.groupby(GROUP, sort=False).size()
        if (sizes < 2).all():
            logger.debug("geom_path: each group consists of only one observation")
            return zero_grob()
        data = data[data[GROUP].map(sizes) >= 2].reset_index(drop=True)
        munched = coord_munch(coord, data, panel_params)
        firsts = munched.groupby(GROUP, sort=False).head(1)
        return polyline_grob(
            munched["x"], munched["y"], id=munched[GROUP], name=f"geom_{self.name}",
            lineend=params.get("lineend", "butt"), **gpar(firsts, "color", "linewidth", "linetype", "alpha"),
        )


@gg_component("geom", "line")
class GeomLine(Geom):
    """Path sorted along the x axis (or y axis with ``orientation='y'``)."""

    required_aes = GeomPath.required_aes
    non_missing_aes = GeomPath.non_missing_aes
    default_aes = GeomPath.default_aes
    parameters = GeomPath.parameters
    key_glyph = "path"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["flipped_aes"] = params.get("orientation") == "y"
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        along = "y" if params.get("flipped_aes") else "x"
        keys = [k for k in (PANEL, GROUP, along) if k in data.columns]
        return data.sort_values(keys, kind="stable").reset_index(drop=True)

    def handle_na(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        return self.delegate("path").handle_na(data, params)

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return self.delegate("path").draw_panel(data, panel_params, coord, params)


# --------------------------------------------------------
#          RECTANGLES AND POLYGONS
# --------------------------------------------------------


def rect_to_poly(data: pd.DataFrame) -> pd.DataFrame:
    """Corners of each rectangle as a closed polygon, one group per input row."""

    rows = []
    for i, r in enumerate(data.to_dict("records")):
        corners = [(r["xmin"], r["ymax"]), (r["xmin"], r["ymin"]), (r["xmax"], r["ymin"]), (r["xmax"], r["ymax"])]
        for x, y in corners:
            rows.append({**r, "x": x, "y": y, GROUP: i + 1})
    return pd.DataFrame(rows).drop(columns=["xmin", "xmax", "ymin", "ymax"])


@gg_component("geom", "polygon")
class GeomPolygon(Geom):
    required_aes = ("x", "y")
    default_aes = {"color": None, "fill": _GREY20, "linewidth": 0.5, "linetype": "solid", "alpha": None}
    key_glyph = "polygon"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        munched = coord_munch(coord, data, panel_params, is_closed=True)
        if munched.empty:
            return zero_grob()
        firsts = munched.groupby(GROUP, sort=False).head(1)
        return polygon_grob(
            munched["x"], munched["y"], id=munched[GROUP], name="geom_polygon",
            **gpar(firsts, "color", "fill", "alpha", "linewidth", "linetype"),
        )


@gg_component("geom", "rect")
class GeomRect(Geom):
    """Axis-aligned rectangles given by their extents."""

    required_aes = ("xmin|width", "xmax|width", "ymin|height", "ymax|height")
    default_aes = {"color": None, "fill": _GREY35, "linewidth": 0.5, "linetype": "solid", "alpha": None}
    key_glyph = "polygon"

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        cols = {}
        if "xmin" not in data.columns and {"x", "width"} <= set(data.columns):
            cols.update(xmin=data["x"] - data["width"] / 2, xmax=data["x"] + data["width"] / 2)
        if "ymin" not in data.columns and {"y", "height"} <= set(data.columns):
            cols.update(ymin=data["y"] - data["height"] / 2, ymax=data["y"] + data["height"] / 2)
        return data.assign(**cols) if cols else data

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        if not coord.is_linear():
            polys = rect_to_poly(data)
            return grob_tree(self.delegate("polygon").draw_panel(polys, panel_params, coord, params), name="geom_rect")
        coords = coord.transform(data, panel_params)
        # flipped systems may swap min and max
        xmin = np.minimum(coords["xmin"], coords["xmax"])
        xmax = np.maximum(coords["xmin"], coords["xmax"])
        ymin = np.minimum(coords["ymin"], coords["ymax"])
        ymax = np.maximum(coords["ymin"], coords["ymax"])
        return rect_grob(
            xmin, ymax, xmax - xmin, ymax - ymin, just=("left", "top"), name="geom_rect",
            **gpar(coords, "color", "fill", "alpha", "linewidth", "linetype"),
        )


@gg_component("geom", "bar")
class GeomBar(Geom):
    """Bars from zero to y, ``width`` wide around x."""

    required_aes = ("x", "y")
    non_missing_aes = ("xmin", "xmax", "ymin", "ymax")
    default_aes = GeomRect.default_aes
    parameters = {"na_rm": False, "width": None, "orientation": None}
    key_glyph = "polygon"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if params.get("orientation") in ("x", "y"):
            params["flipped_aes"] = params["orientation"] == "y"
        elif "flipped_aes" in data.columns and len(data):
            params["flipped_aes"] = bool(data["flipped_aes"].iloc[0])
        else:
            params["flipped_aes"] = False
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params.get("flipped_aes", False)
        data = utils.flip_data(data, flipped)
        if "width" in data.columns:
            width = data["width"]
        else:
            width = params.get("width") or utils.resolution(data["x"], zero=False) * 0.9
        y = data["y"].to_numpy(dtype=float)
        data = data.assign(
            ymin=np.minimum(y, 0),
            ymax=np.maximum(y, 0),
            xmin=data["x"] - width / 2,
            xmax=data["x"] + width / 2,
            flipped_aes=flipped,
        )
        data = data.drop(columns=[c for c in ("width",) if c in data.columns])
        return utils.flip_data(data, flipped)

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return self.delegate("rect").draw_panel(data, panel_params, coord, params)


@gg_component("geom", "col")
class GeomCol(Geom):
    """Bars whose heights are the y values (identity stat)."""

    required_aes = GeomBar.required_aes
    non_missing_aes = GeomBar.non_missing_aes
    default_aes = GeomBar.default_aes
    parameters = GeomBar.parameters
    key_glyph = "polygon"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.delegate("bar", **self.get_params()).setup_params(data, params)

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        return self.delegate("bar").setup_data(data, params)

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return self.delegate("rect").draw_panel(data, panel_params, coord, params)


@gg_component("geom", "tile")
class GeomTile(Geom):
    """Rectangles centred on (x, y)."""

    required_aes = ("x", "y")
    default_aes = {
        "fill": _GREY20, "color": None, "linewidth": 0.1, "linetype": "solid", "alpha": None,
        "width": None, "height": None,
    }
    key_glyph = "polygon"

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        width = data["width"] if "width" in data.columns else utils.resolution(data["x"], zero=False)
        height = data["height"] if "height" in data.columns else utils.resolution(data["y"], zero=False)
        data = data.assign(
            xmin=data["x"] - width / 2, xmax=data["x"] + width / 2,
            ymin=data["y"] - height / 2, ymax=data["y"] + height / 2,
        )
        return data.drop(columns=[c for c in ("width", "height") if c in data.columns])

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return self.delegate("rect").draw_panel(data, panel_params, coord, params)


# --------------------------------------------------------
#          RIBBONS AND AREAS
# --------------------------------------------------------


@gg_component("geom", "ribbon")
class GeomRibbon(Geom):
    """Band between ymin and ymax along x."""

    required_aes = ("x|y", "ymin|xmin", "ymax|xmax")
    default_aes = {"color": None, "fill": _GREY20, "linewidth": 0.5, "linetype": "solid", "alpha": None}
    parameters = {"na_rm": False, "orientation": None, "outline_type": "both"}
    key_glyph = "rect"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["flipped_aes"] = params.get("orientation") == "y" or ("y" in data.columns and "x" not in data.columns)
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params.get("flipped_aes", False)
        data = utils.flip_data(data, flipped)
        keys = [k for k in (PANEL, GROUP, "x") if k in data.columns]
        data = data.sort_values(keys, kind="stable").reset_index(drop=True)
        return utils.flip_data(data.assign(flipped_aes=flipped), flipped)

    def draw_group(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        flipped = params.get("flipped_aes", False)
        data = utils.flip_data(data, flipped).sort_values("x", kind="stable").reset_index(drop=True)
        n = len(data)
        upper = pd.DataFrame({"x": data["x"], "y": data["ymax"], GROUP: 1})
        lower = pd.DataFrame({"x": data["x"][::-1].to_numpy(), "y": data["ymin"][::-1].to_numpy(), GROUP: 1})
        poly = utils.flip_data(pd.concat([upper, lower], ignore_index=True), flipped)
        munched = coord_munch(coord, poly, panel_params, is_closed=True)
        first = data.iloc[0]
        children = [
            polygon_grob(munched["x"], munched["y"], name="ribbon", **gpar(first, "fill", "alpha"), col=None)
        ]
        outline = params.get("outline_type", "both")
        if first.get("color") is not None and outline != "none":
            lines = [upper] if outline == "upper" else [upper, lower.assign(**{GROUP: 2})]
            path = utils.flip_data(pd.concat(lines, ignore_index=True), flipped)
            m = coord_munch(coord, path, panel_params)
            children.append(
                polyline_grob(m["x"], m["y"], id=m[GROUP], name="outline",
                              **gpar(first, "color", "linewidth", "linetype"))
            )
        logger.debug("geom_ribbon: drew %d rows", n)
        return grob_tree(*children, name="geom_ribbon")


@gg_component("geom", "area")
class GeomArea(Geom):
    """Ribbon from zero to y; stacks by default."""

    required_aes = ("x", "y")
    default_aes = GeomRibbon.default_aes
    parameters = GeomRibbon.parameters
    key_glyph = "rect"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        return self.delegate("ribbon").setup_params(data, {**self.get_params(), **params})

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params.get("flipped_aes", False)
        data = utils.flip_data(data, flipped)
        data = data.assign(ymin=0.0, ymax=data["y"])
        return self.delegate("ribbon").setup_data(utils.flip_data(data, flipped), params)

    def draw_group(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        return self.delegate("ribbon").draw_group(data, panel_params, coord, params)


@gg_component("geom", "density")
class GeomDensity(GeomArea):
    """Area with an outline and no fill by default, for density estimates."""

    default_aes = {**GeomRibbon.default_aes, "color": "#000000", "fill": None, "weight": 1}
    parameters = {**GeomRibbon.parameters, "outline_type": "upper"}


# --------------------------------------------------------
#          SEGMENTS AND RANGES
# --------------------------------------------------------


@gg_component("geom", "segment")
class GeomSegment(Geom):
    required_aes = ("x", "y", "xend|yend")
    non_missing_aes = ("linetype", "linewidth")
    default_aes = {"color": "#000000", "linewidth": 0.5, "linetype": "solid", "alpha": None}
    parameters = {"na_rm": False, "lineend": "butt"}
    key_glyph = "path"

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        if "xend" not in data.columns:
            data = data.assign(xend=data["x"])
        if "yend" not in data.columns:
            data = data.assign(yend=data["y"])
        return data

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        data = self.setup_data(data, params)
        data = utils.remove_missing(
            data, ["x", "y", "xend", "yend", "linetype", "linewidth"], name="geom_segment()",
            na_rm=params.get("na_rm", False),
        )
        if data.empty:
            return zero_grob()
        if coord.is_linear():
            c = coord.transform(data, panel_params)
            return segments_grob(
                c["x"], c["y"], c["xend"], c["yend"], name="geom_segment",
                **gpar(c, "color", "alpha", "linewidth", "linetype"),
            )
        # as two-point paths so the coordinate system can bend them
        data = data.assign(**{GROUP: np.arange(1, len(data) + 1)})
        starts = data.drop(columns=["xend", "yend"])
        ends = data.drop(columns=["x", "y"]).rename(columns={"xend": "x", "yend": "y"})
        pieces = pd.concat([starts, ends]).sort_values(GROUP, kind="stable").reset_index(drop=True)
        return self.delegate("path").draw_panel(pieces, panel_params, coord, params)


@gg_component("geom", "hline")
class GeomHline(Geom):
    """Horizontal reference lines spanning the panel."""

    required_aes = ("yintercept",)
    default_aes = GeomSegment.default_aes
    key_glyph = "path"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        x_range = coord.backtransform_range(panel_params)["x"]
        data = data.assign(x=x_range[0], xend=x_range[1], y=data["yintercept"], yend=data["yintercept"])
        return self.delegate("segment").draw_panel(data, panel_params, coord, params)


@gg_component("geom", "vline")
class GeomVline(Geom):
    """Vertical reference lines spanning the panel."""

    required_aes = ("xintercept",)
    default_aes = GeomSegment.default_aes
    key_glyph = "vpath"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        y_range = coord.backtransform_range(panel_params)["y"]
        data = data.assign(y=y_range[0], yend=y_range[1], x=data["xintercept"], xend=data["xintercept"])
        return self.delegate("segment").draw_panel(data, panel_params, coord, params)


@gg_component("geom", "linerange")
class GeomLinerange(Geom):
    required_aes = ("x", "ymin", "ymax")
    default_aes = GeomSegment.default_aes
    key_glyph = "vpath"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        data = data.assign(xend=data["x"], y=data["ymin"], yend=data["ymax"])
        return self.delegate("segment").draw_panel(data, panel_params, coord, params)


@gg_component("geom", "pointrange")
class GeomPointrange(Geom):
    """A point at y with a vertical line from ymin to ymax."""

    required_aes = ("x", "y", "ymin", "ymax")
    default_aes = {
        "color": "#000000", "size": 0.5, "linewidth": 0.5, "linetype": "solid", "shape": "circle",
        "fill": None, "alpha": None, "stroke": 1,
    }
    parameters = {"na_rm": False, "fatten": 4}
    key_glyph = "pointrange"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        line = self.delegate("linerange").draw_panel(data, panel_params, coord, params)
        points = data.assign(size=data["size"] * params.get("fatten", 4))
        point = self.delegate("point").draw_panel(points, panel_params, coord, params)
        return grob_tree(line, point, name="geom_pointrange")


@gg_component("geom", "errorbar")
class GeomErrorbar(Geom):
    required_aes = ("x", "ymin", "ymax")
    default_aes = {"color": "#000000", "linewidth": 0.5, "linetype": "solid", "width": 0.5, "alpha": None}
    key_glyph = "path"

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        width = data["width"] if "width" in data.columns else params.get("width") or utils.resolution(data["x"], False) * 0.9
        data = data.assign(xmin=data["x"] - width / 2, xmax=data["x"] + width / 2)
        return data.drop(columns=[c for c in ("width",) if c in data.columns])

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        top = data.assign(x=data["xmin"], xend=data["xmax"], y=data["ymax"], yend=data["ymax"])
        stem = data.assign(xend=data["x"], y=data["ymax"], yend=data["ymin"])
        bottom = data.assign(x=data["xmin"], xend=data["xmax"], y=data["ymin"], yend=data["ymin"])
        segs = pd.concat([top, stem, bottom], ignore_index=True).drop(columns=["xmin", "xmax", "ymin", "ymax"])
        return self.delegate("segment").draw_panel(segs, panel_params, coord, params)


# --------------------------------------------------------
#          COMPOSITES
# --------------------------------------------------------


@gg_component("geom", "boxplot")
class GeomBoxplot(Geom):
    """Box from lower to upper hinge, median line, whiskers and outlier points."""

    required_aes = ("x|y", "lower|xlower", "upper|xupper", "middle|xmiddle", "ymin|xmin", "ymax|xmax")
    default_aes = {
        "weight": 1, "color": _GREY20, "fill": "#FFFFFF", "size": None, "alpha": None, "shape": "circle",
        "linetype": "solid", "linewidth": 0.5,
    }
    parameters = {"na_rm": False, "outliers": True, "outlier_color": None, "outlier_size": 1.5, "width": None,
                  "orientation": None}
    key_glyph = "boxplot"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        if "flipped_aes" in data.columns and len(data):
            params["flipped_aes"] = bool(data["flipped_aes"].iloc[0])
        else:
            params["flipped_aes"] = params.get("orientation") == "y"
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        flipped = params.get("flipped_aes", False)
        data = utils.flip_data(data, flipped)
        if "width" in data.columns:
            width = data["width"]
        else:
            width = params.get("width") or utils.resolution(data["x"], zero=False) * 0.9
        if "outliers" in data.columns:
            out_lo = data["outliers"].map(lambda o: min(o) if len(o) else np.nan)
            out_hi = data["outliers"].map(lambda o: max(o) if len(o) else np.nan)
            data = data.assign(
                ymin_final=np.fmin(data["ymin"], out_lo.astype(float)),
                ymax_final=np.fmax(data["ymax"], out_hi.astype(float)),
            )
        data = data.assign(xmin=data["x"] - width / 2, xmax=data["x"] + width / 2)
        data = data.drop(columns=[c for c in ("width",) if c in data.columns])
        return utils.flip_data(data, flipped)

    def draw_group(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        if len(data) != 1:
            raise PlotSpecError(
                "geom_boxplot() can only draw one boxplot per group; did you forget aes(group = ...)?"
            )
        flipped = params.get("flipped_aes", False)
        d = utils.flip_data(data, flipped)
        row = d.iloc[0]
        common = {k: row[k] for k in ("color", "linewidth", "linetype", "alpha", PANEL) if k in d.columns}
        whiskers = pd.DataFrame(
            {"x": [row["x"]] * 2, "xend": [row["x"]] * 2, "y": [row["upper"], row["lower"]],
             "yend": [row["ymax"], row["ymin"]], **common}
        )
        box = pd.DataFrame(
            {"xmin": [row["xmin"]], "xmax": [row["xmax"]], "ymin": [row["lower"]], "ymax": [row["upper"]],
             "fill": [row.get("fill")], **common}
        )
        median = pd.DataFrame(
            {"x": [row["xmin"]], "xend": [row["xmax"]], "y": [row["middle"]], "yend": [row["middle"]], **common}
        )
        children = [
            self.delegate("segment").draw_panel(utils.flip_data(whiskers, flipped), panel_params, coord, params),
            self.delegate("rect").draw_panel(utils.flip_data(box, flipped), panel_params, coord, params),
            self.delegate("segment").draw_panel(utils.flip_data(median, flipped), panel_params, coord, params),
        ]
        outliers = row.get("outliers") if "outliers" in d.columns else None
        if params.get("outliers", True) and outliers is not None and len(outliers):
            pts = pd.DataFrame(
                {
                    "y": list(outliers),
                    "x": row["x"],
                    "color": params.get("outlier_color") or row.get("color"),
                    "shape": row.get("shape", "circle"),
                    "size": params.get("outlier_size", 1.5),
                    "fill": None,
                    "alpha": row.get("alpha"),
                    "stroke": 0.5,
                }
            )
            children.append(self.delegate("point").draw_panel(utils.flip_data(pts, flipped), panel_params, coord, params))
        return grob_tree(*children, name="geom_boxplot")


@gg_component("geom", "smooth")
class GeomSmooth(Geom):
    """Fitted line with an optional confidence ribbon."""

    required_aes = ("x", "y")
    optional_aes = ("ymin", "ymax")
    default_aes = {
        "color": "#3366FF", "fill": "#999999", "linewidth": 1.0, "linetype": "solid", "weight": 1, "alpha": 0.4,
    }
    parameters = {"na_rm": False, "se": True, "orientation": None}
    key_glyph = "smooth"

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        params = super().setup_params(data, params)
        params["se"] = params.get("se", True) and {"ymin", "ymax"} <= set(data.columns)
        params["flipped_aes"] = params.get("orientation") == "y"
        return params

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        return self.delegate("line").setup_data(data, params)

    def draw_group(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        children = []
        has_ribbon = params.get("se") and {"ymin", "ymax"} <= set(data.columns)
        if has_ribbon:
            ribbon = data.assign(color=None)
            children.append(self.delegate("ribbon").draw_group(ribbon, panel_params, coord, params))
        path = data.assign(alpha=None)
        children.append(self.delegate("line").draw_panel(path, panel_params, coord, params))
        return grob_tree(*children, name="geom_smooth")


# --------------------------------------------------------
#          TEXT
# --------------------------------------------------------


@gg_component("geom", "text")
class GeomText(Geom):
    required_aes = ("x", "y", "label")
    default_aes = {
        "color": "#000000", "size": 3.88, "angle": 0, "hjust": 0.5, "vjust": 0.5, "alpha": None,
        "family": "", "fontface": "plain", "lineheight": 1.2,
    }
    parameters = {"na_rm": False, "check_overlap": False}
    key_glyph = "text"

    def draw_panel(self, data: pd.DataFrame, panel_params: Dict[str, Any], coord: Any, params: Dict[str, Any]) -> Grob:  # noqa: ANN401
        c = coord.transform(data, panel_params)
        return text_grob(
            c["label"].astype(str), c["x"], c["y"], name="geom_text", check_overlap=params.get("check_overlap", False),
            **gpar(c, "color", "alpha", "angle", "hjust", "vjust", "family", "fontface", "lineheight", "size",
                   size_as="fontsize"),
        )


# --------------------------------------------------------
#          LEGEND KEYS
# --------------------------------------------------------


def _key_point(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    return points_grob(0.5, 0.5, name="key-point",
                       **gpar(d, "shape", "color", "fill", "alpha", "stroke", "size", size_as="pointsize"))


def _key_path(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    return polyline_grob([0.1, 0.9], [0.5, 0.5], name="key-path", **gpar(d, "color", "alpha", "linewidth", "linetype"))


def _key_vpath(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    return polyline_grob([0.5, 0.5], [0.1, 0.9], name="key-vpath", **gpar(d, "color", "alpha", "linewidth", "linetype"))


def _key_rect(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    fill = d.get("fill") if d.get("fill") is not None else d.get("color")
    return rect_grob(0, 1, 1, 1, name="key-rect", fill=fill, col=None, alpha=d.get("alpha"))


def _key_polygon(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    lwd = min(d.get("linewidth") or 0, 4)
    return rect_grob(0.1, 0.9, 0.8, 0.8, name="key-polygon",
                     **gpar(d, "color", "fill", "alpha", "linetype"), lwd=lwd * PT)


def _key_boxplot(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    gp = gpar(d, "color", "alpha", "linewidth", "linetype")
    return grob_tree(
        segments_grob([0.5, 0.5], [0.1, 0.75], [0.5, 0.5], [0.25, 0.9], name="whiskers", **gp),
        rect_grob(0.125, 0.75, 0.75, 0.5, name="box", fill=d.get("fill"), **gp),
        segments_grob(0.125, 0.5, 0.875, 0.5, name="median", **gp),
        name="key-boxplot",
    )


def _key_text(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    return text_grob("a", 0.5, 0.5, name="key-text",
                     **gpar(d, "color", "alpha", "angle", "family", "fontface", "size", size_as="fontsize"))


def _key_smooth(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    children = []
    if params.get("se", True):
        children.append(rect_grob(0, 1, 1, 1, name="se", fill=d.get("fill"), col=None, alpha=d.get("alpha")))
    children.append(_key_path({**d, "alpha": None}, params))
    return grob_tree(*children, name="key-smooth")


def _key_pointrange(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    point = {**d, "size": (d.get("size") or 0.5) * params.get("fatten", 4)}
    return grob_tree(_key_vpath(d, params), _key_point(point, params), name="key-pointrange")


def _key_blank(d: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    return zero_grob()


key_glyphs: Dict[str, Callable[[Mapping[str, Any], Dict[str, Any]], Grob]] = {
    "point": _key_point,
    "path": _key_path,
    "vpath": _key_vpath,
    "rect": _key_rect,
    "polygon": _key_polygon,
    "boxplot": _key_boxplot,
    "text": _key_text,
    "smooth": _key_smooth,
    "pointrange": _key_pointrange,
    "blank": _key_blank,
}


def draw_key(glyph: str, data: Mapping[str, Any], params: Dict[str, Any]) -> Grob:
    """Legend key grob for one legend entry."""

    if glyph not in key_glyphs:
        raise PlotSpecError(f"Unknown key glyph {glyph!r}; known: {sorted(key_glyphs)}")
    return key_glyphs[glyph](data, params)

"""Declarative plot specification
------------------------------

`GGPlot` and `Layer` are frozen: ``plot + something`` returns a new plot and
the build pipeline works on copies, so one specification can be rendered any
number of times with the same result.

This module also holds the user-facing constructors:

- layers: ``geom_*`` / ``stat_*`` (all built on `layer`)
- scales: ``scale_<aes>_<kind>``
- coordinates and facets: ``coord_*``, ``facet_*``
- labels and guides: `labs`, `xlab`, `ylab`, `ggtitle`, `guides`
- `plot_from_desc` turns a validated `PlotDescriptor` (JSON/YAML) into a plot
"""

from __future__ import annotations

__all__ = [
    "GGPlot",
    "Layer",
    "ggplot",
    "layer",
    "Labels",
    "Guides",
    "labs",
    "xlab",
    "ylab",
    "ggtitle",
    "guides",
    "guide_legend",
    "guide_colorbar",
    "guide_none",
    "xlim",
    "ylim",
    "geom_point",
    "geom_jitter",
    "geom_path",
    "geom_line",
    "geom_bar",
    "geom_col",
    "geom_histogram",
    "geom_area",
    "geom_density",
    "geom_boxplot",
    "geom_smooth",
    "geom_text",
    "geom_tile",
    "geom_rect",
    "geom_polygon",
    "geom_ribbon",
    "geom_segment",
    "geom_hline",
    "geom_vline",
    "geom_errorbar",
    "geom_linerange",
    "geom_pointrange",
    "geom_blank",
    "stat_identity",
    "stat_unique",
    "stat_count",
    "stat_bin",
    "stat_density",
    "stat_boxplot",
    "stat_summary",
    "stat_smooth",
    "position_identity",
    "position_stack",
    "position_fill",
    "position_dodge",
    "position_jitter",
    "position_nudge",
    "scale_x_continuous",
    "scale_y_continuous",
    "scale_x_log10",
    "scale_y_log10",
    "scale_x_sqrt",
    "scale_y_sqrt",
    "scale_x_reverse",
    "scale_y_reverse",
    "scale_x_discrete",
    "scale_y_discrete",
    "scale_x_binned",
    "scale_y_binned",
    "scale_color_discrete",
    "scale_fill_discrete",
    "scale_color_continuous",
    "scale_fill_continuous",
    "scale_color_gradient",
    "scale_fill_gradient",
    "scale_color_binned",
    "scale_fill_binned",
    "scale_color_manual",
    "scale_fill_manual",
    "scale_color_identity",
    "scale_fill_identity",
    "scale_shape",
    "scale_linetype",
    "scale_size",
    "scale_alpha",
    "coord_cartesian",
    "coord_flip",
    "coord_fixed",
    "coord_trans",
    "coord_polar",
    "facet_null",
    "facet_wrap",
    "facet_grid",
    "plot_from_desc",
    "read_plot_desc",
    "last_plot",
    "set_last_plot",
]

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.aes import X_AES, Y_AES, Aes, evaluate_mapping, missing_aesthetics, standardise_aes_names
from gg_toolkit.components import Component, get_component
from gg_toolkit.guides import Guide, GuideColorbar, GuideLegend, GuideNone
from gg_toolkit.partition import PANEL, add_group
from gg_toolkit.scales import (
    Scale,
    ScaleBinned,
    ScaleBinnedPosition,
    ScaleContinuous,
    ScaleContinuousPosition,
    ScaleDiscrete,
    ScaleDiscretePosition,
    ScaleIdentity,
    ScalesList,
    _area_pal,
    _hue_pal,
    _linetypes,
    _rescale_pal,
    _seq_pal,
    _shapes,
)
from gg_toolkit.theme import Theme, named_theme, theme_from_dict
from gg_toolkit.validation import PlotAmbiguityError, PlotDescriptor, PlotSpecError, hard_validate

logger = logging.getLogger(__name__)

DataSource = Union[None, pd.DataFrame, Callable[[pd.DataFrame], pd.DataFrame]]

# --------------------------------------------------------
#          LAYER
# --------------------------------------------------------


@dataclass(frozen=True, eq=False)
class Layer:
    """One layer: data source, mapping and the stat/geom/position triple.

    The ``computed_*`` fields are filled on per-build copies only.
    """

    geom: Component
    stat: Component
    position: Component
    mapping: Aes = field(default_factory=Aes)
    data: DataSource = None
    geom_params: Mapping[str, Any] = field(default_factory=dict)
    stat_params: Mapping[str, Any] = field(default_factory=dict)
    aes_params: Mapping[str, Any] = field(default_factory=dict)
    inherit_aes: bool = True
    show_legend: Optional[bool] = None
    key_glyph: Optional[str] = None
    computed_mapping: Optional[Aes] = None
    computed_stat_params: Optional[Mapping[str, Any]] = None
    computed_geom_params: Optional[Mapping[str, Any]] = None

    def __repr__(self) -> str:
        return f"<Layer geom_{self.geom.name} stat_{self.stat.name} position_{self.position.name} {self.mapping!r}>"

    def layer_data(self, plot_data: Optional[pd.DataFrame]) -> pd.DataFrame:
        """The layer's own data, the plot data, or the result of calling the layer's function on it."""

        plot_data = plot_data if plot_data is not None else pd.DataFrame()
        if self.data is None:
            data = plot_data
        elif callable(self.data) and not isinstance(self.data, pd.DataFrame):
            data = self.data(plot_data)
            if not isinstance(data, pd.DataFrame):
                raise PlotSpecError("A layer data function must return a DataFrame")
        else:
            data = self.data
        return data.reset_index(drop=True)

    def setup_layer(self, data: pd.DataFrame, plot: "GGPlot") -> "Layer":
        """Copy with the mapping merged with the plot mapping (when inherited)."""

        mapping = Aes(self.mapping)
        if self.inherit_aes:
            mapping = mapping.defaults(plot.mapping)
        return replace(self, computed_mapping=mapping)

    def compute_aesthetics(self, data: pd.DataFrame, plot: "GGPlot") -> pd.DataFrame:
        """Evaluate the mapping against the layer data; adds default scales and ``group``."""

        mapping = self.computed_mapping
        # constant aesthetics win over mapped ones
        start = Aes({k: v for k, v in mapping.drop_after().items() if k not in self.aes_params})
        n = len(data)
        evaled = evaluate_mapping(start, data.reset_index(drop=True), phase="start")
        if PANEL in data.columns:
            evaled[PANEL] = data[PANEL].to_numpy()
        elif n:
            evaled[PANEL] = 1
        plot.scales.add_defaults(evaled, start.keys())
        return add_group(evaled)

    def compute_statistic(self, data: pd.DataFrame, layout: Any) -> Tuple["Layer", pd.DataFrame]:  # noqa: ANN401
        if data.empty:
            return replace(self, computed_stat_params=dict(self.stat_params)), data
        params = self.stat.setup_params(data, dict(self.stat_params))
        data = self.stat.setup_data(data, params)
        return replace(self, computed_stat_params=params), self.stat.compute_layer(data, params, layout)

    def map_statistic(self, data: pd.DataFrame, plot: "GGPlot") -> pd.DataFrame:
        """Evaluate ``after_stat`` aesthetics against the stat output."""

        if data.empty:
            return data
        mapping = Aes(self.computed_mapping).defaults(self.stat.default_aes)
        new = Aes({k: v for k, v in mapping.calculated().items() if k not in self.aes_params})
        if not new:
            return data
        data = data.reset_index(drop=True)
        evaled = evaluate_mapping(new, data, phase="after_stat")
        data = data.assign(**{k: evaled[k] for k in evaled.columns})
        plot.scales.add_defaults(data, new.keys())
        transformed = plot.scales.transform_df(data[list(evaled.columns)])
        data = data.assign(**{k: transformed[k] for k in transformed.columns})
        dropped = [a for a in self.stat.dropped_aes if a in data.columns and a not in new]
        return data.drop(columns=dropped)

    def compute_geom_1(self, data: pd.DataFrame) -> Tuple["Layer", pd.DataFrame]:
        if data.empty:
            return replace(self, computed_geom_params=dict(self.geom_params)), data
        missing = missing_aesthetics(self.geom.required_aes, data.columns)
        if missing and self.stat.name != "identity":
            raise PlotAmbiguityError(
                f"stat_{self.stat.name}() does not produce {', '.join(missing)} required by geom_{self.geom.name}()"
            )
        self.geom.check_required(data)
        params = self.geom.setup_params(data, dict(self.geom_params))
        return replace(self, computed_geom_params=params), self.geom.setup_data(data, params)

    def compute_position(self, data: pd.DataFrame, layout: Any) -> pd.DataFrame:  # noqa: ANN401
        if data.empty:
            return data
        params = self.position.setup_params(data)
        data = self.position.setup_data(data, params)
        return self.position.compute_layer(data, params, layout)

    def compute_geom_2(self, data: pd.DataFrame) -> pd.DataFrame:
        """Fill in geom defaults, constant aesthetics and ``after_scale`` modifiers."""

        if data.empty:
            return data
        return self.geom.use_defaults(data.reset_index(drop=True), self.aes_params, self.computed_mapping.scaled())

    def finish_statistics(self, data: pd.DataFrame) -> pd.DataFrame:
        return self.stat.finish_data(data, self.computed_stat_params or {})

    def draw_geom(self, data: pd.DataFrame, layout: Any) -> list:  # noqa: ANN401
        params = dict(self.computed_geom_params or self.geom_params)
        if not data.empty:
            data = self.geom.handle_na(data, params)
        return self.geom.draw_layer(data, params, layout, layout.coord)


def layer(
    geom: Any = "blank",  # noqa: ANN401
    stat: Any = "identity",  # noqa: ANN401
    position: Any = "identity",  # noqa: ANN401
    mapping: Optional[Mapping[str, Any]] = None,
    data: DataSource = None,
    params: Optional[Mapping[str, Any]] = None,
    inherit_aes: bool = True,
    show_legend: Optional[bool] = None,
    key_glyph: Optional[str] = None,
) -> Layer:
    """Create a layer, splitting ``params`` into stat parameters, geom parameters and constant aesthetics."""

    geom = get_component("geom", geom)
    stat = get_component("stat", stat)
    position = get_component("position", position)
    params = dict(params or {})
    params = dict(zip(standardise_aes_names(params.keys()), params.values()))

    aes_params = {k: v for k, v in params.items() if k in geom.aesthetics() and k != "group"}
    geom_params = {k: v for k, v in params.items() if k in geom.parameters}
    stat_params = {k: v for k, v in params.items() if k in stat.parameters or k == "max_workers"}
    unknown = sorted(set(params) - set(aes_params) - set(geom_params) - set(stat_params))
    if unknown:
        utils.warn(f"Ignoring unknown parameters: {unknown}")
    if key_glyph is None:
        key_glyph = geom.key_glyph
    return Layer(
        geom=geom,
        stat=stat,
        position=position,
        mapping=Aes(mapping or {}),
        data=data,
        geom_params=geom_params,
        stat_params=stat_params,
        aes_params=aes_params,
        inherit_aes=inherit_aes,
        show_legend=show_legend,
        key_glyph=key_glyph,
    )


# --------------------------------------------------------
#          PLOT
# --------------------------------------------------------


class Labels(dict):
    """Axis, legend and plot titles; added to a plot with ``+``."""


class Guides(dict):
    """Guide per aesthetic; added to a plot with ``+``."""


@dataclass(frozen=True, eq=False)
class GGPlot:
    data: Optional[pd.DataFrame] = None
    mapping: Aes = field(default_factory=Aes)
    layers: Tuple[Layer, ...] = ()
    scales: ScalesList = field(default_factory=ScalesList)
    coordinates: Any = None  # noqa: ANN401
    facet: Any = None  # noqa: ANN401
    theme: Optional[Theme] = None
    labels: Mapping[str, Any] = field(default_factory=dict)
    guides: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.coordinates is None:
            object.__setattr__(self, "coordinates", get_component("coord", "cartesian"))
        if self.facet is None:
            object.__setattr__(self, "facet", get_component("facet", "null"))

    def __repr__(self) -> str:
        shape = None if self.data is None else self.data.shape
        return f"<GGPlot data={shape} layers={len(self.layers)} {self.mapping!r}>"

    def __add__(self, other: Any) -> "GGPlot":  # noqa: ANN401
        return add_to_plot(self, other)

    def clone(self) -> "GGPlot":
        """Copy whose scales are fresh (untrained) clones."""

        return replace(self, scales=self.scales.clone())


def ggplot(data: Optional[pd.DataFrame] = None, mapping: Optional[Mapping[str, Any]] = None) -> GGPlot:
    if data is not None and not isinstance(data, pd.DataFrame):
        raise PlotSpecError(f"ggplot() data must be a DataFrame, not {type(data).__name__}")
    return GGPlot(data=data, mapping=Aes(mapping or {}))


def add_to_plot(plot: GGPlot, other: Any) -> GGPlot:  # noqa: ANN401
    """Return a new plot with ``other`` added."""

    if other is None:
        return plot
    if isinstance(other, (list, tuple)):
        for o in other:
            plot = add_to_plot(plot, o)
        return plot
    if isinstance(other, Layer):
        return replace(plot, layers=plot.layers + (other,))
    if isinstance(other, Scale):
        scales = plot.scales.copy()
        scales.add(other)
        return replace(plot, scales=scales)
    if isinstance(other, Theme):
        return replace(plot, theme=other if plot.theme is None else plot.theme + other)
    if isinstance(other, Labels):
        return replace(plot, labels={**plot.labels, **other})
    if isinstance(other, Guides):
        return replace(plot, guides={**plot.guides, **other})
    if isinstance(other, Aes):
        return replace(plot, mapping=Aes({**plot.mapping, **other}))
    if isinstance(other, Component) and other.role == "coord":
        return replace(plot, coordinates=other)
    if isinstance(other, Component) and other.role == "facet":
        return replace(plot, facet=other)
    raise PlotSpecError(f"Can't add {type(other).__name__} to a ggplot")


_last_plot: Optional[GGPlot] = None


def set_last_plot(plot: Optional[GGPlot]) -> None:
    global _last_plot
    _last_plot = plot


def last_plot() -> Optional[GGPlot]:
    """The plot most recently passed to `render` (``None`` if there is none)."""

    return _last_plot


# --------------------------------------------------------
#          LABELS AND GUIDES
# --------------------------------------------------------


def labs(**kwargs: Any) -> Labels:  # noqa: ANN401
    names = standardise_aes_names(kwargs.keys())
    return Labels(zip(names, kwargs.values()))


def xlab(label: Optional[str]) -> Labels:
    return Labels(x=label)


def ylab(label: Optional[str]) -> Labels:
    return Labels(y=label)


def ggtitle(label: Optional[str], subtitle: Optional[str] = None) -> Labels:
    out = Labels(title=label)
    if subtitle is not None:
        out["subtitle"] = subtitle
    return out


def guides(**kwargs: Any) -> Guides:  # noqa: ANN401
    names = standardise_aes_names(kwargs.keys())
    return Guides(zip(names, kwargs.values()))


def guide_legend(**kwargs: Any) -> Guide:  # noqa: ANN401
    return GuideLegend(**kwargs)


def guide_colorbar(**kwargs: Any) -> Guide:  # noqa: ANN401
    return GuideColorbar(**kwargs)


def guide_none() -> Guide:
    return GuideNone()


def xlim(*limits: Any) -> Scale:  # noqa: ANN401
    return _lim_scale("x", limits)


def ylim(*limits: Any) -> Scale:  # noqa: ANN401
    return _lim_scale("y", limits)


def _lim_scale(axis: str, limits: Sequence[Any]) -> Scale:
    if len(limits) == 1 and isinstance(limits[0], (list, tuple)):
        limits = limits[0]
    limits = list(limits)
    if all(isinstance(v, (int, float, np.number)) or v is None for v in limits):
        if len(limits) != 2:
            raise PlotSpecError(f"{axis}lim() needs two numeric values")
        return _position_continuous(axis, limits=tuple(limits))
    return _position_discrete(axis, limits=limits)


# --------------------------------------------------------
#          LAYER CONSTRUCTORS
# --------------------------------------------------------


def _layer_fn(geom: str, stat: str, position: str, doc: str = "") -> Callable[..., Layer]:
    def _fn(
        mapping: Optional[Mapping[str, Any]] = None,
        data: DataSource = None,
        stat: Any = stat,  # noqa: ANN401
        position: Any = position,  # noqa: ANN401
        show_legend: Optional[bool] = None,
        inherit_aes: bool = True,
        key_glyph: Optional[str] = None,
        **params: Any,  # noqa: ANN401
    ) -> Layer:
        return layer(geom, stat, position, mapping, data, params, inherit_aes, show_legend, key_glyph)

    _fn.__name__ = f"geom_{geom}"
    _fn.__doc__ = doc or None
    return _fn


geom_point = _layer_fn("point", "identity", "identity", "Scatterplot points.")
geom_path = _layer_fn("path", "identity", "identity", "Connect observations in data order.")
geom_line = _layer_fn("line", "identity", "identity", "Connect observations ordered by x.")
geom_bar = _layer_fn("bar", "count", "stack", "Bars whose heights count the cases at each x.")
geom_col = _layer_fn("col", "identity", "stack", "Bars whose heights are the data values.")
geom_area = _layer_fn("area", "identity", "stack")
geom_density = _layer_fn("density", "density", "identity", "Smoothed density estimate.")
geom_boxplot = _layer_fn("boxplot", "boxplot", "dodge")
geom_smooth = _layer_fn("smooth", "smooth", "identity", "Fitted line with a confidence band.")
geom_text = _layer_fn("text", "identity", "identity")
geom_tile = _layer_fn("tile", "identity", "identity")
geom_rect = _layer_fn("rect", "identity", "identity")
geom_polygon = _layer_fn("polygon", "identity", "identity")
geom_ribbon = _layer_fn("ribbon", "identity", "identity")
geom_segment = _layer_fn("segment", "identity", "identity")
geom_errorbar = _layer_fn("errorbar", "identity", "identity")
geom_linerange = _layer_fn("linerange", "identity", "identity")
geom_pointrange = _layer_fn("pointrange", "identity", "identity")
geom_blank = _layer_fn("blank", "identity", "identity")


def geom_histogram(mapping: Optional[Mapping[str, Any]] = None, data: DataSource = None, position: Any = "stack",  # noqa: ANN401
                   bins: Optional[int] = None, binwidth: Optional[float] = None, show_legend: Optional[bool] = None,
                   **params: Any) -> Layer:  # noqa: ANN401
    """Bars over equal-width bins (stat_bin drawn with the bar geom)."""

    params.update(bins=bins, binwidth=binwidth)
    return layer("bar", "bin", position, mapping, data, params, show_legend=show_legend)


def geom_jitter(mapping: Optional[Mapping[str, Any]] = None, data: DataSource = None, width: Optional[float] = None,
                height: Optional[float] = None, seed: int = 1, **params: Any) -> Layer:  # noqa: ANN401
    position = get_component("position", "jitter", width=width, height=height, seed=seed)
    return layer("point", "identity", position, mapping, data, params)


def _reference_line(geom: str, aesthetic: str, value: Any, mapping: Optional[Mapping[str, Any]],  # noqa: ANN401
                    data: DataSource, params: Dict[str, Any]) -> Layer:
    if value is not None:
        if mapping is not None or data is not None:
            utils.warn(f"geom_{geom}(): using {aesthetic}, ignoring mapping and data")
        data = pd.DataFrame({aesthetic: np.atleast_1d(value)})
        mapping = {aesthetic: aesthetic}
        return layer(geom, "identity", "identity", mapping, data, params, inherit_aes=False, show_legend=False)
    return layer(geom, "identity", "identity", mapping, data, params, inherit_aes=False)


def geom_hline(mapping: Optional[Mapping[str, Any]] = None, data: DataSource = None, yintercept: Any = None,  # noqa: ANN401
               **params: Any) -> Layer:  # noqa: ANN401
    return _reference_line("hline", "yintercept", yintercept, mapping, data, params)


def geom_vline(mapping: Optional[Mapping[str, Any]] = None, data: DataSource = None, xintercept: Any = None,  # noqa: ANN401
               **params: Any) -> Layer:  # noqa: ANN401
    return _reference_line("vline", "xintercept", xintercept, mapping, data, params)


def _stat_fn(stat: str, geom: str, position: str) -> Callable[..., Layer]:
    def _fn(
        mapping: Optional[Mapping[str, Any]] = None,
        data: DataSource = None,
        geom: Any = geom,  # noqa: ANN401
        position: Any = position,  # noqa: ANN401
        show_legend: Optional[bool] = None,
        inherit_aes: bool = True,
        **params: Any,  # noqa: ANN401
    ) -> Layer:
        return layer(geom, stat, position, mapping, data, params, inherit_aes, show_legend)

    _fn.__name__ = f"stat_{stat}"
    return _fn


stat_identity = _stat_fn("identity", "point", "identity")
stat_unique = _stat_fn("unique", "point", "identity")
stat_count = _stat_fn("count", "bar", "stack")
stat_bin = _stat_fn("bin", "bar", "stack")
stat_density = _stat_fn("density", "area", "stack")
stat_boxplot = _stat_fn("boxplot", "boxplot", "dodge")
stat_summary = _stat_fn("summary", "pointrange", "identity")
stat_smooth = _stat_fn("smooth", "smooth", "identity")


def position_identity() -> Component:
    return get_component("position", "identity")


def position_stack(vjust: float = 1.0, reverse: bool = False) -> Component:
    return get_component("position", "stack", vjust=vjust, reverse=reverse)


def position_fill(vjust: float = 1.0, reverse: bool = False) -> Component:
    return get_component("position", "fill", vjust=vjust, reverse=reverse)


def position_dodge(width: Optional[float] = None, preserve: str = "total") -> Component:
    return get_component("position", "dodge", width=width, preserve=preserve)


def position_jitter(width: Optional[float] = None, height: Optional[float] = None, seed: int = 1) -> Component:
    return get_component("position", "jitter", width=width, height=height, seed=seed)


def position_nudge(x: float = 0.0, y: float = 0.0) -> Component:
    return get_component("position", "nudge", x=x, y=y)


# --------------------------------------------------------
#          SCALE CONSTRUCTORS
# --------------------------------------------------------

def _axes(axis: str) -> list:
    return list(X_AES if axis == "x" else Y_AES)


def _position_continuous(axis: str, **kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleContinuousPosition(_axes(axis), **kwargs)


def _position_discrete(axis: str, **kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleDiscretePosition(_axes(axis), **kwargs)


def scale_x_continuous(**kwargs: Any) -> Scale:  # noqa: ANN401
    """Continuous x scale; accepts ``name``, ``breaks``, ``labels``, ``limits``, ``expand``, ``trans``, ``oob``."""

    return _position_continuous("x", **kwargs)


def scale_y_continuous(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("y", **kwargs)


def scale_x_log10(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("x", trans="log10", **kwargs)


def scale_y_log10(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("y", trans="log10", **kwargs)


def scale_x_sqrt(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("x", trans="sqrt", **kwargs)


def scale_y_sqrt(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("y", trans="sqrt", **kwargs)


def scale_x_reverse(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("x", trans="reverse", **kwargs)


def scale_y_reverse(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_continuous("y", trans="reverse", **kwargs)


def scale_x_discrete(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_discrete("x", **kwargs)


def scale_y_discrete(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _position_discrete("y", **kwargs)


def scale_x_binned(**kwargs: Any) -> Scale:  # noqa: ANN401
    """Binned x scale: values are replaced by the midpoint of their bin."""

    return ScaleBinnedPosition(_axes("x"), **kwargs)


def scale_y_binned(**kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleBinnedPosition(_axes("y"), **kwargs)


def scale_color_discrete(**kwargs: Any) -> Scale:  # noqa: ANN401
    kwargs.setdefault("palette", _hue_pal)
    kwargs.setdefault("na_value", utils.default_color)
    return ScaleDiscrete("color", **kwargs)


def scale_fill_discrete(**kwargs: Any) -> Scale:  # noqa: ANN401
    kwargs.setdefault("palette", _hue_pal)
    kwargs.setdefault("na_value", utils.default_color)
    return ScaleDiscrete("fill", **kwargs)


def _gradient(aesthetic: str, low: str, high: str, mid: Optional[str] = None, **kwargs: Any) -> Scale:  # noqa: ANN401
    colors = [low, mid, high] if mid is not None else [low, high]
    kwargs.setdefault("na_value", utils.default_color)
    kwargs.setdefault("guide", "colorbar")
    return ScaleContinuous(aesthetic, palette=utils.gradient_palette(colors), **kwargs)


def scale_color_gradient(low: str = "#132B43", high: str = "#56B1F7", **kwargs: Any) -> Scale:  # noqa: ANN401
    return _gradient("color", low, high, **kwargs)


def scale_fill_gradient(low: str = "#132B43", high: str = "#56B1F7", **kwargs: Any) -> Scale:  # noqa: ANN401
    return _gradient("fill", low, high, **kwargs)


def scale_color_continuous(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _gradient("color", utils.default_gradient[0], utils.default_gradient[-1], **kwargs)


def scale_fill_continuous(**kwargs: Any) -> Scale:  # noqa: ANN401
    return _gradient("fill", utils.default_gradient[0], utils.default_gradient[-1], **kwargs)


def _binned_colors(aesthetic: str, n_bins: int = 5, **kwargs: Any) -> Scale:  # noqa: ANN401
    # one colour per bin, sampled evenly along the gradient
    kwargs.setdefault("palette", lambda n: utils.gradient_to_discrete_color_scale(utils.default_gradient, n))
    kwargs.setdefault("na_value", utils.default_color)
    return ScaleBinned(aesthetic, n_bins=n_bins, **kwargs)


def scale_color_binned(n_bins: int = 5, **kwargs: Any) -> Scale:  # noqa: ANN401
    return _binned_colors("color", n_bins, **kwargs)


def scale_fill_binned(n_bins: int = 5, **kwargs: Any) -> Scale:  # noqa: ANN401
    return _binned_colors("fill", n_bins, **kwargs)


def scale_color_manual(values: Union[Sequence[Any], Mapping[Any, Any]], **kwargs: Any) -> Scale:  # noqa: ANN401
    """Discrete colour scale with explicit values (a list in level order, or a level -> colour dict)."""

    kwargs.setdefault("na_value", utils.default_color)
    return ScaleDiscrete("color", palette=values, **kwargs)


def scale_fill_manual(values: Union[Sequence[Any], Mapping[Any, Any]], **kwargs: Any) -> Scale:  # noqa: ANN401
    kwargs.setdefault("na_value", utils.default_color)
    return ScaleDiscrete("fill", palette=values, **kwargs)


def scale_color_identity(**kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleIdentity("color", **kwargs)


def scale_fill_identity(**kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleIdentity("fill", **kwargs)


def scale_shape(**kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleDiscrete("shape", palette=_seq_pal(_shapes, "shape"), **kwargs)


def scale_linetype(**kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleDiscrete("linetype", palette=_seq_pal(_linetypes, "linetype"), **kwargs)


def scale_size(range: Tuple[float, float] = (1.0, 6.0), **kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleContinuous("size", palette=_area_pal(range), **kwargs)


def scale_alpha(range: Tuple[float, float] = (0.1, 1.0), **kwargs: Any) -> Scale:  # noqa: ANN401
    return ScaleContinuous("alpha", palette=_rescale_pal(range), **kwargs)


# --------------------------------------------------------
#          COORDINATES AND FACETS
# --------------------------------------------------------


def coord_cartesian(xlim: Optional[Tuple[float, float]] = None, ylim: Optional[Tuple[float, float]] = None,
                    expand: bool = True, clip: str = "on") -> Component:
    """Zoom without dropping data: limits apply to the panel, not the scales."""

    return get_component("coord", "cartesian", xlim=xlim, ylim=ylim, expand=expand, clip=clip)


def coord_flip(**kwargs: Any) -> Component:  # noqa: ANN401
    return get_component("coord", "flip", **kwargs)


def coord_fixed(ratio: float = 1.0, **kwargs: Any) -> Component:  # noqa: ANN401
    return get_component("coord", "fixed", ratio=ratio, **kwargs)


def coord_trans(x: str = "identity", y: str = "identity", **kwargs: Any) -> Component:  # noqa: ANN401
    return get_component("coord", "trans", x=x, y=y, **kwargs)


def coord_polar(theta: str = "x", start: float = 0.0, direction: int = 1) -> Component:
    return get_component("coord", "polar", theta=theta, start=start, direction=direction)


def facet_null() -> Component:
    return get_component("facet", "null")


def facet_wrap(facets: Union[str, Sequence[str]], nrow: Optional[int] = None, ncol: Optional[int] = None,
               scales: str = "fixed", dir: str = "h", labeller: Any = "label_value", drop: bool = True) -> Component:  # noqa: ANN401
    return get_component("facet", "wrap", facets=facets, nrow=nrow, ncol=ncol, scales=scales, dir=dir,
                         labeller=labeller, drop=drop)


def facet_grid(rows: Union[None, str, Sequence[str]] = None, cols: Union[None, str, Sequence[str]] = None,
               scales: str = "fixed", labeller: Any = "label_value", drop: bool = True) -> Component:  # noqa: ANN401
    """Panels in a matrix; ``facet_grid("a ~ b")`` is the same as ``facet_grid(rows="a", cols="b")``."""

    return get_component("facet", "grid", rows=rows, cols=cols, scales=scales, labeller=labeller, drop=drop)


# --------------------------------------------------------
#          DESCRIPTORS
# --------------------------------------------------------

_scale_types: Dict[str, Callable[..., Scale]] = {
    "continuous": lambda a, **kw: (_position_continuous(a, **kw) if a in ("x", "y") else ScaleContinuous(a, **kw)),
    "discrete": lambda a, **kw: (_position_discrete(a, **kw) if a in ("x", "y") else ScaleDiscrete(a, **kw)),
    "binned": lambda a, **kw: (
        ScaleBinnedPosition(_axes(a), **kw) if a in ("x", "y")
        else _binned_colors(a, **kw) if a in ("color", "fill") else ScaleBinned(a, **kw)
    ),
    "manual": lambda a, values=(), **kw: ScaleDiscrete(a, palette=values, **kw),
    "identity": lambda a, **kw: ScaleIdentity(a, **kw),
    "gradient": lambda a, low="#132B43", high="#56B1F7", **kw: _gradient(a, low, high, **kw),
    "log10": lambda a, **kw: _position_continuous(a, trans="log10", **kw),
    "sqrt": lambda a, **kw: _position_continuous(a, trans="sqrt", **kw),
    "reverse": lambda a, **kw: _position_continuous(a, trans="reverse", **kw),
}

_default_stat = {"bar": "count", "histogram": "bin", "density": "density", "boxplot": "boxplot", "smooth": "smooth"}
_default_position = {"bar": "stack", "col": "stack", "area": "stack", "histogram": "stack", "boxplot": "dodge"}


def plot_from_desc(desc: Union[Mapping[str, Any], PlotDescriptor], datasets: Mapping[str, pd.DataFrame]) -> GGPlot:
    """Build a `GGPlot` from a (validated) descriptor and named datasets."""

    pd_ = hard_validate(dict(desc) if not isinstance(desc, PlotDescriptor) else desc)

    def _data(key: Optional[str]) -> Optional[pd.DataFrame]:
        if key is None:
            return None
        if key not in datasets:
            raise PlotSpecError(f"Unknown dataset {key!r}; available: {sorted(datasets)}")
        return datasets[key]

    plot = ggplot(_data(pd_.data), pd_.mapping)
    for ld in pd_.layers:
        geom = "bar" if ld.geom == "histogram" else ld.geom
        stat = ld.stat or _default_stat.get(ld.geom, "identity")
        if ld.position is None:
            position: Any = _default_position.get(ld.geom, "identity")
        else:
            position = get_component("position", ld.position.type, **ld.position.params)
        plot = plot + layer(geom, stat, position, ld.mapping, _data(ld.data), ld.params, ld.inherit_aes, ld.show_legend)
    for sd in pd_.scales:
        plot = plot + _scale_types[sd.type](sd.aesthetic, **sd.params)
    if pd_.facet.type == "wrap":
        plot = plot + facet_wrap(pd_.facet.facets, nrow=pd_.facet.nrow, ncol=pd_.facet.ncol, scales=pd_.facet.scales,
                                 labeller=pd_.facet.labeller)
    elif pd_.facet.type == "grid":
        plot = plot + facet_grid(pd_.facet.rows or None, pd_.facet.cols or None, scales=pd_.facet.scales,
                                 labeller=pd_.facet.labeller)
    plot = plot + get_component("coord", pd_.coord.type, **pd_.coord.params)
    if isinstance(pd_.theme, str):
        plot = plot + named_theme(pd_.theme)
    elif pd_.theme is not None:
        plot = plot + theme_from_dict(pd_.theme)
    if pd_.labels:
        plot = plot + labs(**pd_.labels)
    if pd_.guides:
        plot = plot + guides(**pd_.guides)
    return plot


def read_plot_desc(fname: str) -> PlotDescriptor:
    """Read and validate a plot descriptor from a ``.json`` or ``.yaml`` file."""

    raw = utils.read_json(fname) if fname.endswith(".json") else utils.read_yaml(fname)
    return hard_validate(raw)

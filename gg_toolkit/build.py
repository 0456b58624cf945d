"""Build and assembly
------------------

`ggplot_build` runs the eleven data stages over every layer:

1. data resolution, 2. layout binding, 3. aesthetic evaluation,
4. scale transforms, 5. position scale mapping, 6. statistics (followed by the
``after_stat`` pass), 7. geom setup, 8. position adjustment, 9. position scale
retraining, 10. non-position scales and geom defaults, 11. finishing hooks.

Each stage finishes for all layers before the next one starts.  Errors raised
by components are re-raised with the layer number and the stage name.

`ggplot_gtable` turns the built plot into a named-cell `GTable`: panels, axes
and strips from the facet, the legend box, titles and margins.
"""

from __future__ import annotations

__all__ = [
    "BuildStage",
    "BuiltPlot",
    "ggplot_build",
    "ggplot_gtable",
    "build",
    "assemble",
    "ggplotGrob",
    "render",
    "plot_labels",
]

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from gg_toolkit.aes import Aes, make_labels
from gg_toolkit.grid import GTable, Unit
from gg_toolkit.guides import build_guides
from gg_toolkit.layout import Layout
from gg_toolkit.partition import GROUP, PANEL
from gg_toolkit.plot import GGPlot, Layer, layer, set_last_plot
from gg_toolkit.theme import ElementBlank, Theme, element_grob, theme_grey
from gg_toolkit.validation import PlotError, PlotSpecError, require

logger = logging.getLogger(__name__)


class BuildStage(str, Enum):
    DATA = "resolving layer data"
    LAYOUT = "binding data to panels"
    AESTHETICS = "evaluating aesthetics"
    TRANSFORM = "transforming scales"
    MAP_POSITION = "mapping position scales"
    STATISTICS = "computing statistics"
    GEOM_SETUP = "setting up geoms"
    POSITION = "adjusting positions"
    RETRAIN = "retraining position scales"
    NON_POSITION = "mapping non-position aesthetics"
    FINISH = "finishing data"


@dataclass(frozen=True)
class BuiltPlot:
    """Result of `ggplot_build`: one data frame per layer, the layout and the enriched plot copy."""

    data: List[pd.DataFrame]
    layout: Layout
    plot: GGPlot


# --------------------------------------------------------
#          BUILD
# --------------------------------------------------------


def _per_layer(stage: str, layers: Sequence[Layer], fn: Callable[[int, Layer], Any]) -> List[Any]:  # noqa: ANN401
    logger.debug("%s", stage)
    out = []
    for i, lyr in enumerate(layers):
        try:
            out.append(fn(i, lyr))
        except PlotError as e:
            raise e.with_context(layer=i + 1, stage=stage) from e
    return out


def _in_stage(stage: BuildStage, fn: Callable[[], Any]) -> Any:  # noqa: ANN401
    logger.debug("%s", stage.value)
    try:
        return fn()
    except PlotError as e:
        raise e.with_context(stage=stage.value) from e


def _check_keys(data: Sequence[pd.DataFrame], stage: BuildStage, keys: Sequence[str] = (PANEL, GROUP)) -> None:
    for i, d in enumerate(data, start=1):
        if d is None or d.empty:
            continue
        for key in keys:
            require(key in d.columns, f"layer {i} lost the {key} column while {stage.value}")
            require(d[key].notna().all(), f"layer {i} has missing {key} values after {stage.value}")


def plot_labels(plot: GGPlot, layers: Sequence[Layer]) -> Dict[str, Any]:
    """Axis and legend titles: explicit labels win, then the first layer mapping an aesthetic."""

    labels: Dict[str, Any] = {}
    for lyr in layers:
        mapping = Aes(lyr.computed_mapping if lyr.computed_mapping is not None else lyr.mapping)
        mapping = mapping.defaults(Aes(lyr.stat.default_aes).calculated())
        for k, v in make_labels(mapping).items():
            labels.setdefault(k, v)
    for k, v in make_labels(plot.mapping).items():
        labels.setdefault(k, v)
    labels.update(plot.labels)
    return labels


def ggplot_build(plot: GGPlot) -> BuiltPlot:
    """Compute the data of every layer, ready to draw.

    Works on a copy with cloned scales, so ``plot`` itself is never trained
    and building it twice gives the same result.
    """

    if not isinstance(plot, GGPlot):
        raise PlotSpecError(f"Expected a GGPlot, got {type(plot).__name__}")
    plot = plot.clone()
    layers: Tuple[Layer, ...] = plot.layers or (layer("blank"),)
    scales = plot.scales
    layout = Layout(plot.facet, plot.coordinates)

    data = _per_layer(BuildStage.DATA.value, layers, lambda i, lyr: lyr.layer_data(plot.data))
    layers = tuple(_per_layer(BuildStage.DATA.value, layers, lambda i, lyr: lyr.setup_layer(data[i], plot)))

    data = _in_stage(BuildStage.LAYOUT, lambda: layout.setup(data, plot.data))
    _check_keys(data, BuildStage.LAYOUT, keys=(PANEL,))

    data = _per_layer(BuildStage.AESTHETICS.value, layers, lambda i, lyr: lyr.compute_aesthetics(data[i], plot))
    _check_keys(data, BuildStage.AESTHETICS)

    data = _per_layer(BuildStage.TRANSFORM.value, layers, lambda i, lyr: scales.transform_df(data[i]))
    _check_keys(data, BuildStage.TRANSFORM)

    def _map_position() -> List[pd.DataFrame]:
        layout.train_position(data, scales.get_scales("x"), scales.get_scales("y"))
        return layout.map_position(data)

    data = _in_stage(BuildStage.MAP_POSITION, _map_position)
    _check_keys(data, BuildStage.MAP_POSITION)

    stat_out = _per_layer(BuildStage.STATISTICS.value, layers, lambda i, lyr: lyr.compute_statistic(data[i], layout))
    layers = tuple(lyr for lyr, _ in stat_out)
    data = [d for _, d in stat_out]
    data = _per_layer(BuildStage.STATISTICS.value, layers, lambda i, lyr: lyr.map_statistic(data[i], plot))
    _check_keys(data, BuildStage.STATISTICS)

    # statistics may be the only source of a position aesthetic
    scales.add_missing(("x", "y"))

    geom_out = _per_layer(BuildStage.GEOM_SETUP.value, layers, lambda i, lyr: lyr.compute_geom_1(data[i]))
    layers = tuple(lyr for lyr, _ in geom_out)
    data = [d for _, d in geom_out]
    _check_keys(data, BuildStage.GEOM_SETUP)

    data = _per_layer(BuildStage.POSITION.value, layers, lambda i, lyr: lyr.compute_position(data[i], layout))
    _check_keys(data, BuildStage.POSITION)

    def _retrain() -> List[pd.DataFrame]:
        layout.reset_scales()
        layout.train_position(data, scales.get_scales("x"), scales.get_scales("y"))
        layout.setup_panel_params()
        return layout.map_position(data)

    data = _in_stage(BuildStage.RETRAIN, _retrain)
    _check_keys(data, BuildStage.RETRAIN)

    def _non_position() -> List[pd.DataFrame]:
        npscales = scales.non_position_scales()
        if not len(npscales):
            return data
        for d in data:
            npscales.train_df(d)
        return [npscales.map_df(d) for d in data]

    data = _in_stage(BuildStage.NON_POSITION, _non_position)
    data = _per_layer(BuildStage.NON_POSITION.value, layers, lambda i, lyr: lyr.compute_geom_2(data[i]))
    _check_keys(data, BuildStage.NON_POSITION)

    data = _per_layer(BuildStage.FINISH.value, layers, lambda i, lyr: lyr.finish_statistics(data[i]))
    data = _in_stage(BuildStage.FINISH, lambda: layout.finish_data(data))
    _check_keys(data, BuildStage.FINISH)

    built = replace(plot, layers=layers, labels=plot_labels(plot, layers))
    logger.debug("built %d layer(s) over %d panel(s)", len(layers), len(layout.panel_ids()))
    return BuiltPlot(data=data, layout=layout, plot=built)


# --------------------------------------------------------
#          ASSEMBLY
# --------------------------------------------------------


def _plot_theme(plot: GGPlot) -> Theme:
    if plot.theme is None:
        return theme_grey()
    return plot.theme if plot.theme.complete else theme_grey() + plot.theme


def _pt_total(units: Sequence[Unit]) -> float:
    return sum(u.value for u in units if u.unit == "pt")


def _box_size(box: GTable) -> Tuple[float, float]:
    """Absolute width and height of a legend box (the sum over its legends)."""

    widths, heights = [], []
    for cell in box.cells:
        widths.append(_pt_total(cell.grob.widths))
        heights.append(_pt_total(cell.grob.heights))
    spacing_w = _pt_total(box.widths)
    spacing_h = _pt_total(box.heights)
    if len(box.widths) > 1:
        return sum(widths) + spacing_w, max(heights)
    return max(widths), sum(heights) + spacing_h


def _panel_extent(table: GTable) -> Tuple[int, int, int, int]:
    cells = table.find("panel")
    return min(c.t for c in cells), min(c.l for c in cells), max(c.b for c in cells), max(c.r for c in cells)


def _add_legend_box(table: GTable, box: GTable, position: Any, theme: Theme) -> None:  # noqa: ANN401
    """Splice the legend box next to (or inside) the panel area."""

    width, height = _box_size(box)
    spacing = Unit(float(theme.get_setting("legend.box.spacing")), "pt")
    t, l, b, r = _panel_extent(table)  # noqa: E741
    if isinstance(position, tuple) or position == "inside":
        box.name = "guide-box"
        table.add_grob(box, t, l, b, r, name="guide-box-inside", z=10)
        return
    nrow, ncol = table.dim
    if position == "right":
        table.add_cols([spacing, Unit(width, "pt")], pos=-1)
        table.add_grob(box, t, ncol + 2, b, ncol + 2, name="guide-box-right", z=10)
    elif position == "left":
        table.add_cols([Unit(width, "pt"), spacing], pos=0)
        table.add_grob(box, t, 1, b, 1, name="guide-box-left", z=10)
    elif position == "bottom":
        table.add_rows([spacing, Unit(height, "pt")], pos=-1)
        table.add_grob(box, nrow + 2, l, nrow + 2, r, name="guide-box-bottom", z=10)
    elif position == "top":
        table.add_rows([Unit(height, "pt"), spacing], pos=0)
        table.add_grob(box, 1, l, 1, r, name="guide-box-top", z=10)


def _text_height(theme: Theme, name: str, label: Any) -> float:  # noqa: ANN401
    el = theme.calc_element(name)
    if label is None or isinstance(el, ElementBlank):
        return 0.0
    m = el.margin or (0, 0, 0, 0)
    return (el.size or 11) * (el.lineheight or 1.2) + m[0] + m[2]


def _add_titles(table: GTable, labels: Dict[str, Any], theme: Theme) -> None:
    _, l, _, r = _panel_extent(table)  # noqa: E741
    for name, pos in (("subtitle", 0), ("title", 0), ("caption", -1)):
        label = labels.get(name)
        if label is None or label == "":
            continue
        grob = element_grob(theme.calc_element(f"plot.{name}"), name=name, label=label)
        table.add_rows([Unit(_text_height(theme, f"plot.{name}", label), "pt")], pos=pos)
        row = 1 if pos == 0 else table.dim[0]
        table.add_grob(grob, row, l, row, r, name=name, z=5)

    tag = labels.get("tag")
    if tag is not None:
        size = _text_height(theme, "plot.tag", tag)
        table.add_rows([Unit(size, "pt")], pos=0)
        table.add_cols([Unit(size, "pt")], pos=0)
        table.add_grob(element_grob(theme.calc_element("plot.tag"), name="tag", label=tag), 1, 1, name="tag", z=5)


def ggplot_gtable(built: BuiltPlot) -> GTable:
    """Assemble a built plot into its named-cell layout table."""

    plot, layout, data = built.plot, built.layout, built.data
    theme = _plot_theme(plot)
    labels = dict(plot.labels)

    grobs = _per_layer("drawing layers", plot.layers, lambda i, lyr: lyr.draw_geom(data[i], layout))
    logger.debug("assembling %d layer(s)", len(grobs))
    table = layout.render(grobs, theme, labels)

    position = theme.get_setting("legend.position")
    if position != "none":
        box = build_guides(plot.scales, plot.layers, labels, theme, plot.guides)
        if box is not None:
            _add_legend_box(table, box, position, theme)

    _add_titles(table, labels, theme)
    table.add_padding([Unit(float(v), "pt") for v in theme.get_setting("plot.margin")])
    nrow, ncol = table.dim
    table.add_grob(element_grob(theme.calc_element("plot.background"), name="plot.background"), 1, 1, nrow, ncol,
                   name="background", z=float("-inf"))
    table.name = "layout"
    return table


# --------------------------------------------------------
#          PUBLIC ENTRY POINTS
# --------------------------------------------------------

build = ggplot_build
assemble = ggplot_gtable


def ggplotGrob(plot: GGPlot) -> GTable:  # noqa: N802
    return ggplot_gtable(ggplot_build(plot))


def render(plot: Optional[GGPlot]) -> GTable:
    """Build and assemble ``plot`` and remember it as the last plot."""

    if plot is None:
        raise PlotSpecError("Nothing to render")
    table = ggplotGrob(plot)
    set_last_plot(plot)
    return table

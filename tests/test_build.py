"""End-to-end tests for building and assembling plots."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.aes import aes, after_stat
from gg_toolkit.build import BuildStage, ggplot_build, ggplot_gtable, ggplotGrob, render
from gg_toolkit.components import _gg_deregister, gg_component
from gg_toolkit.partition import GROUP, PANEL
from gg_toolkit.plot import (
    coord_flip, coord_polar, facet_grid, facet_wrap, geom_bar, geom_col, geom_hline, geom_point, ggplot,
    ggtitle, labs, last_plot, layer, scale_color_binned, scale_color_continuous,
)
from gg_toolkit.stats import Stat
from gg_toolkit.theme import theme
from gg_toolkit.validation import ContractViolation, PlotAmbiguityError, PlotSpecError


@pytest.fixture
def ten():
    return pd.DataFrame({
        "x": np.arange(10, dtype=float),
        "y": np.arange(10) * 2.0,
        "c": ["a", "b", "c"] * 3 + ["a"],
        "b": ["no", "yes"] * 5,
    })


def legends(table, position="right"):
    return table.get(f"guide-box-{position}").grob.find("guides")


class TestScenarios:
    def test_single_panel_with_colour(self, ten):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point()
        built = ggplot_build(p)
        assert list(built.data[0][PANEL].unique()) == [1]
        assert built.layout.panel_scales_y[0].get_limits() == (0.0, 18.0)
        assert built.plot.scales.get_scales("color").get_limits() == ["a", "b", "c"]
        assert built.data[0]["color"].nunique() == 3

        table = ggplot_gtable(built)
        assert len(table.find("panel")) == 1
        assert len(table.find("guide-box")) == 1

    def test_two_facet_panels(self, ten):
        p = ggplot(ten, aes("x", "y")) + geom_point() + facet_wrap("b")
        built = ggplot_build(p)
        assert list(built.data[0][PANEL]) == [1, 2] * 5
        assert [c.name for c in ggplot_gtable(built).find("panel")] == ["panel-1-1", "panel-1-2"]

    def test_counts_replace_raw_values(self, ten):
        built = ggplot_build(ggplot(ten, aes(x="c")) + geom_bar())
        out = built.data[0]
        assert len(out) == 3
        assert sorted(out["count"]) == [3, 3, 4]
        assert built.layout.panel_scales_y[0].get_limits() == (0.0, 4.0)
        assert built.plot.labels["y"] == "count"

    def test_binned_colour_gets_one_colour_per_bin(self, ten):
        p = ggplot(ten, aes("x", "y", color="y")) + geom_point() + scale_color_binned(n_bins=3)
        colours = ggplot_build(p).data[0]["color"]
        assert colours.nunique() == 3
        assert colours.iloc[0] == "#132b43" and colours.iloc[-1] == "#56b1f7"


class TestBuildInvariants:
    def test_key_columns_survive(self, ten):
        built = ggplot_build(ggplot(ten, aes("x", "y", color="c")) + geom_point() + geom_hline(yintercept=3))
        for d in built.data:
            assert {PANEL, GROUP} <= set(d.columns)

    def test_stacking_retrains_y(self):
        df = pd.DataFrame({"x": [1, 1], "y": [5.0, 3.0], "g": ["a", "b"]})
        built = ggplot_build(ggplot(df, aes("x", "y", fill="g")) + geom_col())
        lo, hi = built.layout.panel_scales_y[0].get_limits()
        assert lo <= 0 and hi >= 8
        assert sorted(built.data[0]["ymax"]) == [3.0, 8.0]

    def test_plot_is_not_mutated(self, ten):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point()
        ggplot_build(p)
        assert len(p.scales) == 0
        assert p.layers[0].computed_mapping is None

    def test_repeated_builds_agree(self, ten):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point()
        pd.testing.assert_frame_equal(ggplot_build(p).data[0], ggplot_build(p).data[0])

    def test_no_layers_builds_blank(self, ten):
        built = ggplot_build(ggplot(ten, aes("x", "y")))
        assert len(built.plot.layers) == 1
        assert built.plot.layers[0].geom.name == "blank"

    def test_after_stat_expression(self, ten):
        built = ggplot_build(ggplot(ten, aes(x="c", y=after_stat("count / 2"))) + geom_bar())
        assert sorted(built.data[0]["ymax"]) == [1.5, 1.5, 2.0]

    def test_layer_data_function(self, ten):
        p = ggplot(ten, aes("x", "y")) + geom_point(data=lambda d: d[d["x"] < 3])
        assert len(ggplot_build(p).data[0]) == 3

    def test_not_a_plot(self):
        with pytest.raises(PlotSpecError, match="Expected a GGPlot"):
            ggplot_build("plot")


class TestErrors:
    def test_error_names_layer_and_stage(self, ten):
        p = ggplot(ten, aes("x", "y")) + geom_point() + geom_point(aes(shape="y"))
        with pytest.raises(PlotSpecError) as e:
            ggplot_build(p)
        assert e.value.layer == 2
        assert e.value.stage == BuildStage.AESTHETICS.value
        assert str(e.value).startswith("Problem while evaluating aesthetics in layer 2:")

    def test_unknown_column(self, ten):
        with pytest.raises(PlotSpecError, match="Cannot evaluate aesthetic x='nope'"):
            ggplot_build(ggplot(ten, aes(x="nope", y="y")) + geom_point())

    def test_stat_error_in_statistics_stage(self, ten):
        with pytest.raises(PlotSpecError, match="computing statistics in layer 1"):
            ggplot_build(ggplot(ten, aes("x", "y")) + geom_bar())

    def test_lost_panel_column_is_a_contract_violation(self, ten):
        @gg_component("stat", "test_drop_panel")
        class StatDropPanel(Stat):
            def compute_layer(self, data, params, layout):
                return data.drop(columns=[PANEL])

        try:
            p = ggplot(ten, aes("x", "y")) + geom_point(stat="test_drop_panel")
            with pytest.raises(ContractViolation, match="lost the PANEL column"):
                ggplot_build(p)
        finally:
            _gg_deregister("stat", "test_drop_panel")

    def test_missing_group_values_are_a_contract_violation(self, ten):
        @gg_component("stat", "test_blank_group")
        class StatBlankGroup(Stat):
            def compute_layer(self, data, params, layout):
                return data.assign(**{GROUP: np.nan})

        try:
            p = ggplot(ten, aes("x", "y")) + geom_point(stat="test_blank_group")
            with pytest.raises(ContractViolation, match="missing group values after computing statistics"):
                ggplot_build(p)
        finally:
            _gg_deregister("stat", "test_blank_group")

    def test_stat_not_producing_geom_aesthetics(self, ten):
        with pytest.raises(PlotAmbiguityError) as e:
            ggplot_build(ggplot(ten, aes(x="c")) + layer(geom="rect", stat="count"))
        msg = str(e.value)
        assert "stat_count()" in msg and "geom_rect()" in msg
        assert "ymin or height" in msg
        assert e.value.layer == 1


class TestAssembly:
    def test_cell_names(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y", color="c")) + geom_point() + ggtitle("Ten", subtitle="rows"))
        names = table.names()
        for expected in ("panel-1-1", "axis-l-1", "axis-b-1", "xlab-b", "ylab-l", "guide-box-right",
                         "title", "subtitle", "background"):
            assert expected in names
        assert "caption" not in names and "tag" not in names
        assert table.name == "layout"
        assert list(table.get("title").grob.params["label"]) == ["Ten"]

    def test_only_given_titles_take_space(self, ten):
        p = ggplot(ten, aes("x", "y")) + geom_point()
        bare = ggplotGrob(p)
        titled = ggplotGrob(p + labs(title="Ten", caption="Source"))
        assert not {"title", "subtitle", "caption"} & set(bare.names())
        assert {"title", "caption"} <= set(titled.names())
        assert "subtitle" not in titled.names()
        assert titled.dim[0] == bare.dim[0] + 2

    def test_short_last_row_of_wrapped_panels(self, ten):
        df = ten.assign(g=list("abc") * 3 + ["a"])
        table = ggplotGrob(ggplot(df, aes("x", "y")) + geom_point() + facet_wrap("g", ncol=2))
        assert [c.name for c in table.find("panel")] == ["panel-1-1", "panel-1-2", "panel-2-1"]
        assert not table.get("axis-b-1-2").grob.is_empty()
        assert not table.get("axis-b-2-1").grob.is_empty()
        assert table.get("axis-b-1-1").grob.is_empty()

    def test_background_covers_table(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y")) + geom_point())
        bg = table.get("background")
        assert (bg.t, bg.l, bg.b, bg.r) == (1, 1, *table.dim)

    def test_axis_titles(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y")) + geom_point() + labs(y="Doubled"))
        assert list(table.get("xlab-b").grob.params["label"]) == ["x"]
        assert list(table.get("ylab-l").grob.params["label"]) == ["Doubled"]

    def test_flip_swaps_axis_titles(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y")) + geom_point() + coord_flip())
        assert list(table.get("xlab-b").grob.params["label"]) == ["y"]

    def test_no_legend_without_scales(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y")) + geom_point() + geom_hline(yintercept=3))
        assert not table.find("guide-box")

    @pytest.mark.parametrize("position", ["left", "top", "bottom"])
    def test_legend_positions(self, ten, position):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point() + theme(legend_position=position)
        assert len(ggplotGrob(p).find(f"guide-box-{position}")) == 1

    def test_inside_legend(self, ten):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point() + theme(legend_position=(0.9, 0.1))
        assert "guide-box-inside" in ggplotGrob(p).names()

    def test_legend_none(self, ten):
        p = ggplot(ten, aes("x", "y", color="c")) + geom_point() + theme(legend_position="none")
        assert not ggplotGrob(p).find("guide-box")

    def test_colour_and_shape_from_one_column_merge(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y", color="c", shape="c")) + geom_point())
        assert len(legends(table)) == 1

    def test_different_columns_give_two_legends(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y", color="c", shape="b")) + geom_point())
        assert len(legends(table)) == 2

    def test_continuous_colour_gets_colorbar(self, ten):
        table = ggplotGrob(ggplot(ten, aes("x", "y", color="y")) + geom_point() + scale_color_continuous())
        box = legends(table)
        assert [c.grob.name for c in box] == ["colorbar-1"]

    def test_facet_grid_table(self, cars):
        table = ggplotGrob(ggplot(cars, aes("displ", "hwy")) + geom_point() + facet_grid(rows="drv", cols="year"))
        assert len(table.find("panel")) == 6
        for expected in ("strip-t-1", "strip-t-2", "strip-r-1", "strip-r-3", "axis-l-3", "axis-b-2"):
            assert expected in table.names()

    @pytest.mark.integration
    def test_polar_bars(self, cars):
        table = ggplotGrob(ggplot(cars, aes(x="class", fill="drv")) + geom_bar() + coord_polar())
        panel = table.get("panel-1-1").grob
        names = [g.name for g in panel.walk()]
        assert "rings" in names and "geom_rect" in names


def test_render_remembers_last_plot(ten):
    p = ggplot(ten, aes("x", "y")) + geom_point()
    table = render(p)
    assert last_plot() is p
    assert "panel-1-1" in table.names()
    with pytest.raises(PlotSpecError, match="Nothing to render"):
        render(None)

"""Tests for legend training, merging and axis drawing."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.guides import (
    GuideColorbar, GuideLegend, GuideNone, draw_axis, legend_direction, merge_guides, validate_guide,
)
from gg_toolkit.scales import ScaleContinuous, ScaleDiscrete
from gg_toolkit.theme import element_text, theme, theme_grey
from gg_toolkit.utils import gradient_palette, hue_palette
from gg_toolkit.validation import PlotAmbiguityError, PlotSpecError


def discrete(aes, levels=("a", "b"), **kwargs):
    s = ScaleDiscrete(aes, palette=hue_palette if aes in ("color", "fill") else lambda n: list(range(n)), **kwargs)
    s.train(pd.Series(list(levels)))
    return s


def continuous_colour():
    s = ScaleContinuous("color", palette=gradient_palette(["#132B43", "#56B1F7"]), guide="colorbar")
    s.train(pd.Series([0.0, 10.0]))
    return s


class TestTraining:
    def test_legend_key(self):
        g = GuideLegend().train(discrete("color"), "color", title="cls")
        assert g.labels == ["a", "b"]
        assert g.values == ["a", "b"]
        assert g.title == "cls"
        assert list(g.key["color"]) == hue_palette(2)

    def test_scale_name_wins_over_label(self):
        g = GuideLegend().train(discrete("color", name="Class"), "color", title="cls")
        assert g.title == "Class"

    def test_reverse(self):
        g = GuideLegend(reverse=True).train(discrete("color"), "color")
        assert g.labels == ["b", "a"]

    def test_no_breaks_no_guide(self):
        assert GuideLegend().train(discrete("color", breaks=[]), "color") is None

    def test_colorbar(self):
        g = GuideColorbar(nbin=20).train(continuous_colour(), "color", title="v")
        assert len(g.bar) == 20
        assert ((g.key[".position"] >= 0) & (g.key[".position"] <= 1)).all()

    def test_colorbar_rejects_other_aesthetics(self):
        s = ScaleContinuous("size", palette=lambda x: x)
        s.train(pd.Series([1.0, 2.0]))
        with pytest.raises(PlotSpecError, match="colour or fill"):
            GuideColorbar().train(s, "size")

    def test_colorbar_on_discrete_scale_dropped(self):
        with pytest.warns(UserWarning, match="continuous scale"):
            assert GuideColorbar().train(discrete("fill"), "fill") is None

    def test_validate_guide(self):
        assert isinstance(validate_guide(None), GuideNone)
        assert isinstance(validate_guide("colourbar"), GuideColorbar)
        with pytest.raises(PlotSpecError, match="Unknown guide"):
            validate_guide("ribbon")


class TestMerging:
    def test_identical_keys_merge(self):
        color = GuideLegend().train(discrete("color"), "color", title="cls")
        shape = GuideLegend().train(discrete("shape"), "shape", title="cls")
        assert color.hash() == shape.hash()
        merged = merge_guides([color, shape])
        assert len(merged) == 1
        assert merged[0].aesthetics == ["color", "shape"]
        assert {"color", "shape"} <= set(merged[0].key.columns)

    def test_different_titles_stay_apart(self):
        color = GuideLegend().train(discrete("color"), "color", title="cls")
        shape = GuideLegend().train(discrete("shape"), "shape", title="drv")
        assert len(merge_guides([color, shape])) == 2

    def test_partial_match_is_ambiguous(self):
        color = GuideLegend().train(discrete("color"), "color", title="cls")
        shape = GuideLegend().train(discrete("shape", labels={"a": "A"}), "shape", title="cls")
        with pytest.raises(PlotAmbiguityError, match="legend_merge"):
            merge_guides([color, shape])

    def test_separate_policy(self):
        color = GuideLegend().train(discrete("color"), "color", title="cls")
        shape = GuideLegend().train(discrete("shape", labels={"a": "A"}), "shape", title="cls")
        assert len(merge_guides([color, shape], policy="separate")) == 2


class TestAxis:
    def test_bottom_axis(self):
        g = draw_axis(np.array([0.25, 0.75]), ["1", "2"], "bottom", theme_grey())
        names = [c.name for c in g.walk()]
        assert {"axis.ticks", "axis.text"} <= set(names)
        assert g.params["size"].unit == "pt"
        assert g.params["size"].value > 0

    def test_smaller_text_shrinks_axis(self):
        th = theme_grey() + theme(axis_text=element_text(size=1))
        small = draw_axis([0.5], ["x"], "left", th).params["size"].value
        big = draw_axis([0.5], ["x"], "left", theme_grey()).params["size"].value
        assert small < big

    def test_unknown_side(self):
        with pytest.raises(PlotSpecError):
            draw_axis([], [], "middle", theme_grey())


def test_legend_direction():
    assert legend_direction("bottom", theme_grey()) == "horizontal"
    assert legend_direction("right", theme_grey()) == "vertical"
    assert legend_direction("right", theme_grey() + theme(legend_direction="horizontal")) == "horizontal"

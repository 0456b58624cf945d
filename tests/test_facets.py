"""Tests for facets and the per-build layout."""

import warnings

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.aes import X_AES, Y_AES
from gg_toolkit.components import get_component
from gg_toolkit.facets import label_both, label_value, wrap_dims
from gg_toolkit.layout import Layout
from gg_toolkit.partition import PANEL
from gg_toolkit.scales import ScaleContinuousPosition
from gg_toolkit.validation import PlotSpecError


def layout_of(facet, *data):
    params = facet.setup_params(list(data))
    return facet.compute_layout(list(data), params), params


class TestWrapDims:
    @pytest.mark.parametrize("n,expected", [(1, (1, 1)), (3, (1, 3)), (4, (2, 2)), (5, (2, 3)), (7, (3, 3)), (13, (4, 4))])
    def test_defaults(self, n, expected):
        assert wrap_dims(n) == expected

    def test_one_side_given(self):
        assert wrap_dims(7, nrow=2) == (2, 4)
        assert wrap_dims(7, ncol=2) == (4, 2)

    def test_too_small(self):
        with pytest.raises(PlotSpecError, match="only provide 2"):
            wrap_dims(5, nrow=1, ncol=2)


class TestWrap:
    def test_layout(self, cars):
        layout, _ = layout_of(get_component("facet", "wrap", facets="class"), cars)
        assert list(layout[PANEL]) == [1, 2, 3]
        assert list(layout["class"]) == ["compact", "midsize", "suv"]
        assert list(layout["ROW"]) == [1, 1, 1]
        assert list(layout["SCALE_X"]) == [1, 1, 1]

    def test_vertical_direction_keeps_row_major_panels(self):
        df = pd.DataFrame({"g": list("abcd")})
        layout, _ = layout_of(get_component("facet", "wrap", facets=["g"], dir="v"), df)
        assert list(layout[PANEL]) == [1, 2, 3, 4]
        assert list(zip(layout["ROW"], layout["COL"])) == [(1, 1), (1, 2), (2, 1), (2, 2)]
        assert list(layout["g"]) == ["a", "c", "b", "d"]

    def test_free_scales(self, cars):
        layout, _ = layout_of(get_component("facet", "wrap", facets="class", scales="free_y"), cars)
        assert list(layout["SCALE_Y"]) == [1, 2, 3]
        assert list(layout["SCALE_X"]) == [1, 1, 1]

    def test_categorical_order_wins(self):
        df = pd.DataFrame({"g": pd.Categorical(["lo", "hi"], categories=["lo", "hi"])})
        layout, _ = layout_of(get_component("facet", "wrap", facets="g"), df)
        assert list(layout["g"]) == ["lo", "hi"]

    def test_layer_without_facet_variable_repeats(self, cars):
        facet = get_component("facet", "wrap", facets="class")
        layout, params = layout_of(facet, cars)
        ref = pd.DataFrame({"y": [1.0, 2.0]})
        mapped = facet.map_data(ref, layout, params)
        assert len(mapped) == 6
        assert sorted(mapped[PANEL].unique()) == [1, 2, 3]

    def test_map_data_assigns_panel(self, cars):
        facet = get_component("facet", "wrap", facets="class")
        layout, params = layout_of(facet, cars)
        mapped = facet.map_data(cars, layout, params)
        assert len(mapped) == len(cars)
        expected = cars["class"].map({"compact": 1, "midsize": 2, "suv": 3})
        assert list(mapped[PANEL]) == list(expected)

    def test_missing_values_get_the_last_panel(self):
        df = pd.DataFrame({"f": ["a", "b", None, "a"]})
        facet = get_component("facet", "wrap", facets="f")
        layout, params = layout_of(facet, df)
        assert list(layout[PANEL]) == [1, 2, 3]
        assert list(layout["f"][:2]) == ["a", "b"] and pd.isna(layout["f"].iloc[2])
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            mapped = facet.map_data(df, layout, params)
        assert list(mapped[PANEL]) == [1, 2, 3, 1]

    def test_missing_level_kept_when_not_dropping(self):
        df = pd.DataFrame({"f": [np.nan, 2.0, 1.0]})
        layout, _ = layout_of(get_component("facet", "wrap", facets="f", drop=False), df)
        assert list(layout["f"][:2]) == [1.0, 2.0] and np.isnan(layout["f"].iloc[2])

    def test_rows_without_panel_warn(self):
        facet = get_component("facet", "wrap", facets="f")
        layout, params = layout_of(facet, pd.DataFrame({"f": ["a", "b"]}))
        with pytest.warns(UserWarning, match="Removed 1 rows"):
            mapped = facet.map_data(pd.DataFrame({"f": ["a", "z"]}), layout, params)
        assert list(mapped[PANEL]) == [1]

    def test_needs_variables(self, cars):
        with pytest.raises(PlotSpecError, match="at least one faceting variable"):
            get_component("facet", "wrap").setup_params([cars])

    def test_unknown_variable(self, cars):
        facet = get_component("facet", "wrap", facets="colour")
        with pytest.raises(PlotSpecError, match="must contain all faceting variables"):
            layout_of(facet, cars)

    def test_bad_scales(self, cars):
        with pytest.raises(PlotSpecError, match="scales must be"):
            get_component("facet", "wrap", facets="class", scales="loose").setup_params([cars])


class TestGrid:
    def test_rows_and_cols(self, cars):
        layout, _ = layout_of(get_component("facet", "grid", rows="drv", cols="year", scales="free"), cars)
        assert len(layout) == 6
        assert list(layout[PANEL]) == list(range(1, 7))
        assert list(layout["drv"]) == ["4", "4", "f", "f", "r", "r"]
        assert list(layout["year"]) == [1999, 2008] * 3
        assert list(layout["SCALE_X"]) == list(layout["COL"])
        assert list(layout["SCALE_Y"]) == list(layout["ROW"])

    def test_formula(self, cars):
        facet = get_component("facet", "grid", rows="drv ~ .")
        layout, _ = layout_of(facet, cars)
        assert list(layout["COL"]) == [1, 1, 1]
        assert facet.vars() == ["drv"]

    def test_formula_and_cols_conflict(self, cars):
        with pytest.raises(PlotSpecError, match="either a formula"):
            get_component("facet", "grid", rows="drv ~ year", cols="class").vars()

    def test_no_variables_is_single_panel(self, cars):
        layout, _ = layout_of(get_component("facet", "grid"), cars)
        assert list(layout[PANEL]) == [1]


class TestLabellers:
    def test_builtin(self):
        assert label_value({"class": "suv"}) == ["suv"]
        assert label_both({"class": "suv", "year": 1999}) == ["class: suv", "year: 1999"]

    def test_missing_value_label(self):
        assert label_value({"class": None}) == ["NA"]
        assert label_both({"year": np.nan}) == ["year: NA"]

    def test_by_name(self, cars):
        params = get_component("facet", "wrap", facets="class", labeller="both").setup_params([cars])
        assert params["labeller"] is label_both
        with pytest.raises(PlotSpecError, match="Unknown labeller"):
            get_component("facet", "wrap", facets="class", labeller="fancy").setup_params([cars])


class TestLayout:
    @pytest.fixture
    def built(self):
        df = pd.DataFrame({"x": [0.0, 1.0, 10.0, 20.0], "y": [1.0, 2.0, 3.0, 4.0], "g": ["a", "a", "b", "b"]})
        layout = Layout(get_component("facet", "wrap", facets="g", scales="free_x"), get_component("coord", "cartesian"))
        data = layout.setup([df])
        layout.train_position(data, ScaleContinuousPosition(list(X_AES)), ScaleContinuousPosition(list(Y_AES)))
        return layout, data

    def test_panels_and_scales(self, built):
        layout, data = built
        assert layout.panel_ids() == [1, 2]
        assert list(data[0][PANEL]) == [1, 1, 2, 2]
        assert len(layout.panel_scales_x) == 2 and len(layout.panel_scales_y) == 1
        assert layout.get_scales(1)["x"].get_limits() == (0.0, 1.0)
        assert layout.get_scales(2)["x"].get_limits() == (10.0, 20.0)
        assert layout.get_scales(2)["y"] is layout.get_scales(1)["y"]

    def test_panel_params_follow_panel_scales(self, built):
        layout, _ = built
        layout.setup_panel_params()
        assert len(layout.panel_params) == 2
        assert layout.panel_params[0]["x_range"] == pytest.approx((-0.05, 1.05))
        assert layout.panel_params[1]["x_range"] == pytest.approx((9.5, 20.5))
        assert layout.panel_params[0]["y_range"] == layout.panel_params[1]["y_range"]

    def test_map_position_keeps_values(self, built):
        layout, data = built
        mapped = layout.map_position(data)[0]
        np.testing.assert_allclose(mapped["x"], [0.0, 1.0, 10.0, 20.0])

    def test_reset_clears_continuous_ranges(self, built):
        layout, _ = built
        layout.reset_scales()
        assert layout.get_scales(1)["x"].is_empty()

"""Tests for the statistical transformations."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.components import get_component
from gg_toolkit.partition import PANEL, GROUP
from gg_toolkit.scales import ScaleContinuousPosition
from gg_toolkit.stats import bin_breaks, bin_vector, boxplot_stats, mean_se, median_hilow, predict_lm
from gg_toolkit.validation import PlotSpecError


class StubLayout:
    """Minimal layout: one trained x/y scale pair shared by all panels."""

    def __init__(self, data):
        self.x = ScaleContinuousPosition("x")
        self.y = ScaleContinuousPosition("y")
        if "x" in data:
            self.x.train(data["x"])
        if "y" in data:
            self.y.train(data["y"])

    def get_scales(self, panel):
        return {"x": self.x, "y": self.y}


def run_stat(name, data, **params):
    stat = get_component("stat", name)
    params = stat.setup_params(data, params)
    data = stat.setup_data(data, params)
    return stat.compute_layer(data, params, StubLayout(data))


def keyed(**cols):
    n = len(next(iter(cols.values())))
    return pd.DataFrame({PANEL: np.ones(n, dtype=int), GROUP: np.ones(n, dtype=int), **cols})


class TestCount:
    def test_counts_per_x(self):
        data = keyed(x=[1.0, 1.0, 2.0, 3.0, 3.0, 3.0])
        out = run_stat("count", data)
        assert list(out["x"]) == [1.0, 2.0, 3.0]
        assert list(out["count"]) == [2, 1, 3]
        assert out["prop"].sum() == pytest.approx(1.0)
        assert out["width"].iloc[0] == pytest.approx(0.9)

    def test_weights(self):
        data = keyed(x=[1.0, 1.0, 2.0], weight=[2.0, 3.0, 1.0])
        assert list(run_stat("count", data)["count"]) == [5.0, 1.0]

    def test_both_axes_rejected(self):
        with pytest.raises(PlotSpecError, match="only have an x or y"):
            run_stat("count", keyed(x=[1.0], y=[1.0]))

    def test_flipped(self):
        out = run_stat("count", keyed(y=[1.0, 1.0, 2.0]))
        assert list(out["y"]) == [1.0, 2.0]
        assert out["flipped_aes"].all()


class TestBin:
    def test_breaks_cover_range(self):
        breaks = bin_breaks((0.0, 10.0), bins=5)
        assert breaks[0] <= 0 and breaks[-1] >= 10
        assert np.allclose(np.diff(breaks), 2.5)

    def test_binwidth_and_boundary(self):
        np.testing.assert_allclose(bin_breaks((0.0, 4.0), binwidth=2, boundary=0), [0, 2, 4])

    def test_bin_vector_counts(self):
        res = bin_vector(np.array([0.5, 1.5, 1.7, 3.0]), np.array([0.0, 1.0, 2.0, 3.0]), np.ones(4))
        assert list(res["count"]) == [1, 2, 1]
        assert (res["density"] * res["width"]).sum() == pytest.approx(1.0)

    def test_counts_sum_to_n(self):
        x = np.random.default_rng(3).normal(size=200)
        out = run_stat("bin", keyed(x=x), bins=12)
        assert out["count"].sum() == 200
        assert len(out) in (11, 12)

    def test_discrete_x_rejected(self):
        with pytest.raises(PlotSpecError, match="stat_count"):
            stat = get_component("stat", "bin")
            stat.setup_params(keyed(x=["a", "b"]), {})

    def test_center_and_boundary_conflict(self):
        with pytest.raises(PlotSpecError, match="boundary"):
            run_stat("bin", keyed(x=[1.0, 2.0]), center=0, boundary=0)

    def test_default_bins(self):
        out = run_stat("bin", keyed(x=np.linspace(0, 1, 50)))
        assert len(out) == 30


class TestDensity:
    def test_integrates_to_one(self):
        x = np.random.default_rng(0).normal(size=300)
        out = run_stat("density", keyed(x=x), n=256)
        assert len(out) == 256
        d, x = out["density"].to_numpy(), out["x"].to_numpy()
        area = np.sum((d[1:] + d[:-1]) / 2 * np.diff(x))
        assert area == pytest.approx(1.0, abs=0.1)
        assert out["scaled"].max() == pytest.approx(1.0)

    def test_small_group_dropped(self):
        with pytest.warns(UserWarning, match="fewer than two"):
            out = run_stat("density", keyed(x=[1.0]))
        assert out.empty


class TestBoxplot:
    def test_boxplot_stats(self):
        s = pd.Series([1.0, 2.0, 3.0, 4.0, 100.0])
        st = boxplot_stats(s)
        assert st["middle"] == 3.0
        assert st["outliers"] == [100.0]
        assert st["ymax"] == 4.0

    def test_one_row_per_group(self):
        data = pd.DataFrame({
            PANEL: 1, GROUP: [1, 1, 1, 2, 2, 2],
            "x": [1.0, 1.0, 1.0, 2.0, 2.0, 2.0], "y": [1.0, 2.0, 3.0, 5.0, 6.0, 7.0],
        })
        out = run_stat("boxplot", data)
        assert len(out) == 2
        assert list(out["middle"]) == [2.0, 6.0]
        assert list(out["x"]) == [1.0, 2.0]


class TestSummary:
    def test_mean_se(self):
        r = mean_se(np.array([1.0, 2.0, 3.0]))
        assert r["y"] == 2.0
        assert r["ymin"] < 2.0 < r["ymax"]

    def test_median_hilow(self):
        r = median_hilow(np.arange(101, dtype=float))
        assert r["y"] == 50.0
        assert r["ymin"] == pytest.approx(2.5)

    def test_per_x(self):
        data = keyed(x=[1.0, 1.0, 2.0, 2.0], y=[1.0, 3.0, 5.0, 7.0])
        out = run_stat("summary", data)
        assert list(out["y"]) == [2.0, 6.0]

    def test_unknown_function(self):
        with pytest.raises(PlotSpecError, match="Unknown summary function"):
            run_stat("summary", keyed(x=[1.0], y=[1.0]), fun_data="mode")


class TestSmooth:
    def test_linear_fit_recovers_line(self):
        x = np.linspace(0, 10, 20)
        res = predict_lm(x, 2 * x + 1, np.array([0.0, 5.0]))
        np.testing.assert_allclose(res["y"], [1, 11], atol=1e-8)
        np.testing.assert_allclose(res["ymax"] - res["ymin"], 0, atol=1e-6)

    def test_layer_output(self):
        x = np.linspace(0, 10, 30)
        y = x + np.random.default_rng(5).normal(0, 1, 30)
        out = run_stat("smooth", keyed(x=x, y=y), n=40)
        assert len(out) == 40
        assert {"ymin", "ymax", "se"} <= set(out.columns)
        assert (out["ymin"] <= out["y"]).all()

    def test_only_lm(self):
        with pytest.raises(PlotSpecError, match="only 'lm'"):
            run_stat("smooth", keyed(x=[1.0, 2.0], y=[1.0, 2.0]), method="loess")


class TestIdentityAndUnique:
    def test_identity(self):
        data = keyed(x=[1.0, 2.0])
        pd.testing.assert_frame_equal(run_stat("identity", data), data)

    def test_unique(self):
        data = keyed(x=[1.0, 1.0, 2.0])
        assert len(run_stat("unique", data)) == 2

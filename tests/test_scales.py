"""Tests for scales: ranges, transforms, mapping and the scales list."""

import itertools

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.scales import (
    ContinuousRange, DiscreteRange, BinnedRange, ScaleContinuous, ScaleContinuousPosition, ScaleDiscrete,
    ScaleDiscretePosition, ScaleBinned, ScaleBinnedPosition, ScaleIdentity, ScalesList, find_scale,
    get_transform, censor, squish, keep, expand_range,
)
from gg_toolkit.aes import X_AES
from gg_toolkit.validation import PlotSpecError


class TestRanges:
    def test_continuous_training_order_independent(self):
        chunks = [[1.0, 4.0], [-2.0, 3.0], [10.0, np.nan]]
        results = set()
        for perm in itertools.permutations(chunks):
            r = ContinuousRange()
            for c in perm:
                r.train(c)
            results.add(r.range)
        assert results == {(-2.0, 10.0)}

    def test_continuous_merge_is_union(self):
        a = ContinuousRange().train([1, 2])
        b = ContinuousRange().train([5, 7])
        assert a.merge(b).range == (1.0, 7.0)
        assert b.merge(ContinuousRange()).range == (5.0, 7.0)

    def test_continuous_rejects_discrete(self):
        with pytest.raises(PlotSpecError, match="Discrete value supplied to continuous scale"):
            ContinuousRange().train(pd.Series(["a"]))

    def test_discrete_first_seen_and_sorted(self):
        r = DiscreteRange().train(pd.Series(["b", "a"])).train(pd.Series(["c", "a"]))
        assert r.levels == ["b", "a", "c"]
        r = DiscreteRange(order="sorted").train(pd.Series(["b", "a"])).train(pd.Series(["c"]))
        assert r.levels == ["a", "b", "c"]

    def test_discrete_categorical_order(self):
        s = pd.Series(pd.Categorical(["lo", "hi"], categories=["hi", "mid", "lo"]))
        assert DiscreteRange().train(s).levels == ["hi", "lo"]
        assert DiscreteRange(drop=False).train(s).levels == ["hi", "mid", "lo"]

    def test_discrete_rejects_continuous(self):
        with pytest.raises(PlotSpecError, match="Continuous value supplied to discrete scale"):
            DiscreteRange().train(pd.Series([1.0]))

    def test_binned_keeps_values_for_quantiles(self):
        r = BinnedRange(keep_values=True).train([1, 2]).merge(BinnedRange(keep_values=True).train([3]))
        assert list(r.values) == [1, 2, 3]
        r.reset()
        assert r.is_empty() and len(r.values) == 0


class TestTransforms:
    def test_log10(self):
        t = get_transform("log10")
        np.testing.assert_allclose(t.transform([1, 100]), [0, 2])
        np.testing.assert_allclose(t.inverse(np.array([0, 2])), [1, 100])

    def test_log_of_negative_warns(self):
        with pytest.warns(UserWarning, match="introduced 1 missing values"):
            out = get_transform("log10").transform([-1.0, 10.0])
        assert np.isnan(out[0])

    def test_unknown(self):
        with pytest.raises(PlotSpecError, match="Unknown transformation"):
            get_transform("cube")

    def test_oob_policies(self):
        x = np.array([-1.0, 0.5, 2.0, np.inf])
        np.testing.assert_array_equal(censor(x, (0, 1)), [np.nan, 0.5, np.nan, np.inf])
        np.testing.assert_array_equal(squish(x, (0, 1)), [0, 0.5, 1, np.inf])
        np.testing.assert_array_equal(keep(x, (0, 1)), x)

    def test_expand_range(self):
        assert expand_range((0, 10), 0.05) == pytest.approx((-0.5, 10.5))
        assert expand_range((3, 3)) == (2.5, 3.5)


class TestContinuous:
    def test_mapping_is_monotone(self):
        s = ScaleContinuous("size", palette=lambda x: np.asarray(x) * 10)
        s.train(pd.Series([0.0, 5.0, 10.0]))
        x = np.sort(np.random.default_rng(1).uniform(0, 10, 50))
        mapped = np.asarray(s.map(x), dtype=float)
        assert np.all(np.diff(mapped) >= 0)

    def test_position_map_censors_outside_limits(self):
        s = ScaleContinuousPosition(list(X_AES), limits=(0, 5))
        s.train(pd.Series([1.0, 9.0]))
        out = s.map([1.0, 9.0])
        assert out[0] == 1.0 and np.isnan(out[1])

    def test_limits_with_missing_end(self):
        s = ScaleContinuousPosition("x", limits=(None, 20))
        s.train(pd.Series([3.0, 8.0]))
        assert s.get_limits() == (3.0, 20.0)

    def test_breaks_and_labels(self):
        s = ScaleContinuousPosition("x")
        s.train(pd.Series([0.0, 10.0]))
        breaks = s.get_breaks()
        assert breaks[0] == 0 and breaks[-1] == 10
        assert s.get_labels()[0] == "0"

    def test_log_scale_breaks_in_transformed_space(self):
        s = ScaleContinuousPosition("x", trans="log10")
        s.train(pd.Series(s.transform([1.0, 1000.0])))
        np.testing.assert_allclose(s.get_breaks(), [0, 1, 2, 3])
        assert s.get_labels() == ["1", "10", "100", "1000"]

    def test_transform_df_only_for_non_identity(self):
        df = pd.DataFrame({"x": [10.0, 100.0]})
        assert ScaleContinuousPosition("x").transform_df(df) == {}
        out = ScaleContinuousPosition("x", trans="log10").transform_df(df)
        np.testing.assert_allclose(out["x"], [1, 2])

    def test_bad_limits(self):
        with pytest.raises(PlotSpecError, match="two values"):
            ScaleContinuous("x", limits=(1, 2, 3))


class TestDiscrete:
    def test_bijection_onto_positions(self):
        s = ScaleDiscretePosition("x")
        s.train(pd.Series(["c", "a", "b", "a"]))
        out = s.map(pd.Series(["a", "b", "c"]))
        assert sorted(out) == [1.0, 2.0, 3.0]
        assert len(set(out)) == 3

    def test_palette_mapping_and_na(self):
        s = ScaleDiscrete("color", palette=lambda n: ["red", "green", "blue"][:n], na_value="grey")
        s.train(pd.Series(["a", "b"]))
        assert list(s.map(pd.Series(["b", "a", None, "z"]))) == ["green", "red", "grey", "grey"]

    def test_manual_values(self):
        s = ScaleDiscrete("fill", palette={"a": "#000", "b": "#fff"})
        s.train(pd.Series(["a", "b"]))
        assert list(s.map(["a", "b"])) == ["#000", "#fff"]
        short = ScaleDiscrete("fill", palette=["#000"])
        short.train(pd.Series(["a", "b"]))
        with pytest.raises(PlotSpecError, match="Insufficient values"):
            short.map(["a"])

    def test_position_keeps_levels_on_reset(self):
        s = ScaleDiscretePosition("x")
        s.train(pd.Series(["a", "b"]))
        s.train(pd.Series([0.4, 2.6]))
        assert s.dimension() == pytest.approx((0.4, 2.6))
        s.train(pd.Series([-1.0]))
        assert s.dimension()[0] == pytest.approx(-1.0)
        s.reset()
        assert s.get_limits() == ["a", "b"]
        assert s.dimension() == pytest.approx((0.4, 2.6))

    def test_labels_mapping(self):
        s = ScaleDiscrete("color", palette=lambda n: ["r"] * n, labels={"a": "Alpha"})
        s.train(pd.Series(["a", "b"]))
        assert s.get_labels() == ["Alpha", "b"]


class TestBinned:
    def test_values_land_on_midpoints(self):
        s = ScaleBinnedPosition("x", n_bins=5)
        s.train(pd.Series([0.0, 10.0]))
        mids = set(s.midpoints())
        out = s.map([0.0, 3.0, 4.1, 10.0])
        assert set(out) <= mids
        np.testing.assert_allclose(out, [1, 3, 5, 9])

    def test_after_reset_passes_through(self):
        s = ScaleBinnedPosition("x", n_bins=2)
        s.train(pd.Series([0.0, 4.0]))
        s.reset()
        np.testing.assert_allclose(s.map([1.0, 3.0]), [1, 3])
        assert s.get_limits() == (0.0, 4.0)

    def test_non_position_palette(self):
        s = ScaleBinned("fill", n_bins=2, palette=lambda n: ["lo", "hi"][:n])
        s.train(pd.Series([0.0, 10.0]))
        assert list(s.map([1.0, 9.0])) == ["lo", "hi"]

    def test_quantile_method(self):
        s = ScaleBinned("fill", n_bins=2, method="quantile", palette=lambda n: list(range(n)))
        s.train(pd.Series([0.0, 1.0, 2.0, 100.0]))
        assert len(s.bin_edges()) == 3
        assert s.bin_edges()[1] == pytest.approx(1.5)

    def test_bad_method(self):
        with pytest.raises(PlotSpecError):
            ScaleBinned("fill", method="fancy")


class TestIdentity:
    def test_passes_values_through(self):
        s = ScaleIdentity("color")
        s.train(pd.Series(["red", "blue"]))
        assert list(s.map(["red"])) == ["red"]
        assert s.is_discrete()
        assert s.guide == "none"


class TestScalesList:
    def test_add_replaces_with_warning(self):
        sl = ScalesList()
        sl.add(ScaleContinuousPosition(list(X_AES)))
        with pytest.warns(UserWarning, match="already present"):
            sl.add(ScaleDiscretePosition(list(X_AES)))
        assert sl.n() == 1
        assert sl.get_scales("xmin").is_discrete()

    def test_add_defaults(self):
        df = pd.DataFrame({"x": [1.0], "color": ["a"], "label": ["t"], "size": [2.0]})
        sl = ScalesList()
        sl.add_defaults(df, ["x", "color", "label", "size"])
        assert sl.has_scale("x") and sl.has_scale("color") and sl.has_scale("size")
        assert not sl.has_scale("label")
        assert isinstance(sl.get_scales("color"), ScaleDiscrete)

    def test_add_missing_and_non_position(self):
        sl = ScalesList([ScaleDiscrete("color", palette=lambda n: ["r"] * n)])
        sl.add_missing(("x", "y"))
        assert sl.has_scale("x") and sl.has_scale("y")
        assert [s.aesthetic for s in sl.non_position_scales()] == ["color"]

    def test_clone_is_untrained(self):
        sl = ScalesList([ScaleContinuous("size", palette=lambda x: x)])
        sl.train_df(pd.DataFrame({"size": [1.0, 2.0]}))
        assert not sl.get_scales("size").is_empty()
        assert sl.clone().get_scales("size").is_empty()

    def test_partition_training_matches_whole(self):
        df = pd.DataFrame({"size": [3.0, -1.0, 8.0, 2.0]})
        whole = ScalesList([ScaleContinuous("size", palette=lambda x: x)])
        whole.train_df(df)
        parts = ScalesList([ScaleContinuous("size", palette=lambda x: x)])
        parts.train_partitions([df.iloc[:2], df.iloc[2:]])
        assert whole.get_scales("size").get_limits() == parts.get_scales("size").get_limits()

    def test_shape_rejects_continuous(self):
        with pytest.raises(PlotSpecError, match="shape"):
            find_scale("shape", pd.Series([1.0, 2.0]))

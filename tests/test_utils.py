"""Unit tests for gg_toolkit.utils."""

import json

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.utils import (
    warn, hue_palette, gradient_palette, gradient_to_discrete_color_scale, is_discrete, min_diff,
    resolution, rescale, squish_infinite, stable_rng, clean_kwargs, call_kwsafe,
    remove_missing, flip_data, read_json, read_yaml,
)


class TestColours:
    def test_hue_palette(self):
        pal = hue_palette(4)
        assert len(pal) == 4
        assert len(set(pal)) == 4
        assert all(c.startswith("#") and len(c) == 7 for c in pal)
        assert hue_palette(0) == []

    def test_gradient_palette_keeps_nan(self):
        pal = gradient_palette(["#000000", "#ffffff"])
        out = pal(np.array([0.0, 1.0, np.nan]))
        assert out[0] == "#000000"
        assert out[1] == "#ffffff"
        assert out[2] is None

    def test_gradient_accepts_r_greys(self):
        assert gradient_to_discrete_color_scale(["grey0", "grey100"], 2) == ["#000000", "#ffffff"]


class TestNumeric:
    def test_is_discrete(self):
        assert is_discrete(pd.Series(["a", "b"]))
        assert is_discrete(pd.Series([True, False]))
        assert is_discrete(pd.Series(["a"], dtype="category"))
        assert not is_discrete(pd.Series([1.0, 2.0]))

    def test_min_diff(self):
        assert min_diff([3, 1, 2, 2]) == 1
        assert min_diff([5, 5]) == 0

    def test_resolution(self):
        assert resolution([1, 2, 3]) == 1.0
        assert resolution([0.5, 1.0, 1.5]) == pytest.approx(0.5)
        assert resolution([]) == 1.0

    def test_rescale(self):
        np.testing.assert_allclose(rescale([0, 5, 10]), [0, 0.5, 1])
        np.testing.assert_allclose(rescale([0, 5, 10], to=(1, 3), frm=(0, 10)), [1, 2, 3])
        # zero-width input maps to the middle of the target
        np.testing.assert_allclose(rescale([2, 2]), [0.5, 0.5])

    def test_squish_infinite(self):
        np.testing.assert_allclose(squish_infinite([-np.inf, 0.5, np.inf]), [0, 0.5, 1])

    def test_stable_rng_is_reproducible(self):
        a = stable_rng("seed").uniform(size=3)
        b = stable_rng("seed").uniform(size=3)
        np.testing.assert_array_equal(a, b)


class TestKwargs:
    def test_clean_kwargs(self):
        def f(a, b=1):
            return a + b

        assert clean_kwargs(f, {"a": 1, "c": 3}) == {"a": 1}
        assert call_kwsafe(f, 1, b=2, junk=5) == 3


class TestDataFrames:
    def test_remove_missing_warns_with_count(self):
        df = pd.DataFrame({"x": [1.0, np.nan, 3.0, np.nan], "y": [1, 2, 3, 4]})
        with pytest.warns(UserWarning, match="Removed 2 rows containing missing values"):
            out = remove_missing(df, ["x"], name="geom_point()")
        assert list(out["y"]) == [1, 3]

    def test_remove_missing_na_rm_is_silent(self, recwarn):
        df = pd.DataFrame({"x": [1.0, np.nan]})
        out = remove_missing(df, ["x"], na_rm=True)
        assert len(out) == 1
        assert len(recwarn) == 0

    def test_remove_missing_finite(self):
        df = pd.DataFrame({"x": [1.0, np.inf]})
        with pytest.warns(UserWarning, match="non-finite"):
            assert len(remove_missing(df, ["x"], finite=True)) == 1

    def test_flip_data(self):
        df = pd.DataFrame({"x": [1], "ymin": [0], "width": [2]})
        assert list(flip_data(df, True).columns) == ["y", "xmin", "height"]
        assert flip_data(df, False) is df

    def test_warn_category(self):
        with pytest.warns(UserWarning, match="careful"):
            warn("careful")


class TestReaders:
    def test_read_json_and_yaml(self, tmp_path):
        jf = tmp_path / "a.json"
        jf.write_text(json.dumps({"k": [1, 2]}))
        assert read_json(str(jf)) == {"k": [1, 2]}
        yf = tmp_path / "a.yaml"
        yf.write_text("k:\n  - 1\n  - 2\n")
        assert read_yaml(str(yf)) == {"k": [1, 2]}

    def test_wrong_extension(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_yaml(str(tmp_path / "a.txt"))
        with pytest.raises(FileNotFoundError):
            read_json(str(tmp_path / "a.txt"))

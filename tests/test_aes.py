"""Tests for aesthetic mappings and deferred evaluation."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.aes import (
    Aes, aes, after_stat, after_scale, stage, Stage, standardise_aes_names, aes_to_scale,
    is_position_aes, evaluate_mapping, make_labels, check_required_aesthetics,
)
from gg_toolkit.validation import PlotSpecError


@pytest.fixture
def df():
    return pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": [2.0, 4.0, 6.0], "g": ["x", "y", "x"]})


class TestNames:
    def test_aliases(self):
        assert standardise_aes_names(["colour", "lty", "pch", "color_fill", "x"]) == [
            "color", "linetype", "shape", "color_fill", "x",
        ]

    def test_scale_names(self):
        assert aes_to_scale("xmin") == "x"
        assert aes_to_scale("upper") == "y"
        assert aes_to_scale("fill") == "fill"
        assert is_position_aes("yend")
        assert not is_position_aes("size")


class TestAes:
    def test_positional_constructor(self):
        m = aes("a", "b", colour="g")
        assert dict(m) == {"x": "a", "y": "b", "color": "g"}

    def test_descriptor_strings_are_deferred(self):
        m = Aes({"y": "after_stat(count)", "fill": "after_scale(color)"})
        assert m["y"] == after_stat("count")
        assert m["fill"] == after_scale("color")

    def test_phase_subsets(self):
        m = Aes(x="a", y=after_stat("density"), fill=stage("g", after_scale="fill"))
        assert set(m.drop_after()) == {"x", "fill"}
        assert set(m.calculated()) == {"y"}
        assert set(m.scaled()) == {"fill"}

    def test_defaults_keep_own_entries(self):
        m = Aes(x="a").defaults({"x": "b", "y": "b"})
        assert dict(m) == {"x": "a", "y": "b"}


class TestEvaluate:
    def test_columns_and_expressions(self, df):
        out = evaluate_mapping(Aes(x="a", y="b / a"), df)
        assert list(out["x"]) == [1.0, 2.0, 3.0]
        assert list(out["y"]) == [2.0, 2.0, 2.0]

    def test_callable_and_scalar(self, df):
        out = evaluate_mapping({"x": lambda d: d["a"] * 10, "size": 3}, df)
        assert list(out["x"]) == [10.0, 20.0, 30.0]
        assert list(out["size"]) == [3, 3, 3]

    def test_result_has_range_index(self, df):
        out = evaluate_mapping({"x": "a"}, df.set_index(pd.Index([5, 6, 7])))
        assert list(out.index) == [0, 1, 2]

    def test_phase_selection(self, df):
        m = Aes(x="a", y=after_stat("b"))
        assert list(evaluate_mapping(m, df, "start").columns) == ["x"]
        assert list(evaluate_mapping(m, df, "after_stat").columns) == ["y"]

    def test_unknown_column(self, df):
        with pytest.raises(PlotSpecError, match="Available columns"):
            evaluate_mapping({"x": "nope"}, df)

    def test_wrong_length(self, df):
        with pytest.raises(PlotSpecError, match="length"):
            evaluate_mapping({"x": [1, 2]}, df)

    def test_length_one_vector_broadcasts(self, df):
        out = evaluate_mapping({"x": np.array([7])}, df)
        assert list(out["x"]) == [7, 7, 7]


class TestLabels:
    def test_make_labels(self):
        labels = make_labels(Aes(x="displ", y=after_stat("count"), color=stage("g", after_scale="fill")))
        assert labels == {"x": "displ", "y": "count", "color": "g"}

    def test_check_required(self):
        check_required_aesthetics(["x|y"], ["y"], "stat_bin()")
        with pytest.raises(PlotSpecError, match="x or y"):
            check_required_aesthetics(["x|y"], ["color"], "stat_bin()")


def test_stage_repr():
    assert repr(Stage(start="a")) == "stage(start='a')"

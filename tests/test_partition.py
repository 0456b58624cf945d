"""Tests for split/apply/combine in gg_toolkit.partition."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.partition import PANEL, GROUP, split_by, apply_and_combine, interaction, add_group


@pytest.fixture
def keyed():
    return pd.DataFrame({
        PANEL: [2, 1, 2, 1, 1],
        GROUP: [1, 1, 2, 2, 1],
        "x": [1.0, 2.0, 3.0, 4.0, 5.0],
    })


class TestSplit:
    def test_first_appearance_order(self, keyed):
        parts = split_by(keyed, [PANEL])
        assert list(parts) == [(2,), (1,)]
        assert list(parts[(1,)]["x"]) == [2.0, 4.0, 5.0]

    def test_no_keys(self, keyed):
        assert list(split_by(keyed, [])) == [()]

    def test_missing_key(self, keyed):
        with pytest.raises(KeyError):
            split_by(keyed, ["nope"])


class TestApplyAndCombine:
    def test_identity_preserves_rows(self, keyed):
        out = apply_and_combine(keyed, [PANEL, GROUP], lambda d: d)
        cols = [PANEL, GROUP, "x"]
        left = sorted(map(tuple, keyed[cols].to_numpy().tolist()))
        right = sorted(map(tuple, out[cols].to_numpy().tolist()))
        assert left == right

    def test_restores_dropped_keys(self, keyed):
        out = apply_and_combine(keyed, [PANEL], lambda d: pd.DataFrame({"n": [len(d)]}))
        assert list(out[PANEL]) == [2, 1]
        assert list(out["n"]) == [2, 3]

    def test_empty_results_are_skipped(self, keyed):
        out = apply_and_combine(keyed, [PANEL], lambda d: None if d[PANEL].iloc[0] == 2 else d)
        assert set(out[PANEL]) == {1}
        out = apply_and_combine(keyed, [PANEL], lambda d: None)
        assert out.empty

    def test_threaded_matches_serial(self, keyed):
        def fn(d):
            return d.assign(total=d["x"].sum())

        serial = apply_and_combine(keyed, [PANEL, GROUP], fn)
        threaded = apply_and_combine(keyed, [PANEL, GROUP], fn, max_workers=4)
        pd.testing.assert_frame_equal(serial, threaded)

    def test_empty_input(self):
        df = pd.DataFrame({PANEL: pd.Series(dtype=int)})
        assert apply_and_combine(df, [PANEL], lambda d: d).empty


class TestGroups:
    def test_interaction_sorted_levels(self):
        frame = pd.DataFrame({"a": ["b", "a", "b"], "c": ["x", "x", "y"]})
        np.testing.assert_array_equal(interaction(frame), [2, 1, 3])

    def test_interaction_no_columns(self):
        np.testing.assert_array_equal(interaction(pd.DataFrame(index=range(3))), [1, 1, 1])

    def test_add_group_from_discrete_columns(self):
        df = pd.DataFrame({PANEL: [1, 1, 1], "x": [1.0, 2.0, 3.0], "color": ["r", "g", "r"]})
        assert list(add_group(df)[GROUP]) == [2, 1, 2]

    def test_add_group_default_single_group(self):
        df = pd.DataFrame({PANEL: [1, 1], "x": [1.0, 2.0]})
        assert list(add_group(df)[GROUP]) == [1, 1]

    def test_explicit_group_is_renumbered(self):
        df = pd.DataFrame({PANEL: [1, 1, 1], "x": [1.0, 2.0, 3.0], GROUP: [10, 30, 10]})
        assert list(add_group(df)[GROUP]) == [1, 2, 1]

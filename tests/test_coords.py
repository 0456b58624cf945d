"""Tests for coordinate systems."""

import pytest
import numpy as np
import pandas as pd

from gg_toolkit.components import get_component
from gg_toolkit.coords import coord_munch
from gg_toolkit.partition import GROUP
from gg_toolkit.scales import ScaleContinuousPosition, ScaleDiscretePosition
from gg_toolkit.theme import theme_grey
from gg_toolkit.validation import PlotSpecError


def trained(aes, values):
    s = ScaleContinuousPosition(aes)
    s.train(pd.Series(values, dtype=float))
    return s


@pytest.fixture
def xy():
    return trained("x", [0.0, 10.0]), trained("y", [0.0, 100.0])


class TestCartesian:
    def test_panel_params_expand_five_percent(self, xy):
        pp = get_component("coord", "cartesian").setup_panel_params(*xy)
        assert pp["x_range"] == pytest.approx((-0.5, 10.5))
        assert pp["y_range"] == pytest.approx((-5.0, 105.0))
        assert len(pp["x_major"]) == len(pp["x_labels"])
        assert ((pp["x_major"] >= 0) & (pp["x_major"] <= 1)).all()

    def test_no_expand(self, xy):
        pp = get_component("coord", "cartesian", expand=False).setup_panel_params(*xy)
        assert pp["x_range"] == (0.0, 10.0)

    def test_transform_normalises(self, xy):
        coord = get_component("coord", "cartesian")
        pp = coord.setup_panel_params(*xy)
        out = coord.transform(pd.DataFrame({"x": [-0.5, 10.5], "ymax": [50.0, 105.0]}), pp)
        np.testing.assert_allclose(out["x"], [0, 1])
        np.testing.assert_allclose(out["ymax"], [0.5, 1])

    def test_zoom_keeps_data(self, xy):
        coord = get_component("coord", "cartesian", xlim=(2, 4))
        pp = coord.setup_panel_params(*xy)
        assert pp["x_range"] == pytest.approx((1.9, 4.1))
        out = coord.transform(pd.DataFrame({"x": [3.0, 10.0]}), pp)
        assert len(out) == 2
        assert out["x"].iloc[1] > 1

    def test_infinite_values_squished(self, xy):
        coord = get_component("coord", "cartesian")
        pp = coord.setup_panel_params(*xy)
        out = coord.transform(pd.DataFrame({"x": [-np.inf, np.inf]}), pp)
        np.testing.assert_allclose(out["x"], [0, 1])

    def test_discrete_axis(self):
        sx = ScaleDiscretePosition("x")
        sx.train(pd.Series(["a", "b", "c"]))
        pp = get_component("coord", "cartesian").setup_panel_params(sx, trained("y", [0.0, 1.0]))
        assert pp["x_range"] == pytest.approx((0.4, 3.6))
        assert pp["x_labels"] == ["a", "b", "c"]


class TestFlipAndFixed:
    def test_flip_swaps_panel_params(self, xy):
        pp = get_component("coord", "flip").setup_panel_params(*xy)
        assert pp["x_range"] == pytest.approx((-5.0, 105.0))
        assert pp["y_range"] == pytest.approx((-0.5, 10.5))

    def test_flip_transform(self, xy):
        coord = get_component("coord", "flip")
        pp = coord.setup_panel_params(*xy)
        out = coord.transform(pd.DataFrame({"x": [10.5], "y": [105.0]}), pp)
        np.testing.assert_allclose(out["x"], [1.0])
        np.testing.assert_allclose(out["y"], [1.0])

    def test_flip_labels(self):
        labels = get_component("coord", "flip").labels({"x": "a", "y": "b"}, {})
        assert labels == {"x": "b", "y": "a"}

    def test_fixed_aspect(self, xy):
        coord = get_component("coord", "fixed", ratio=0.5)
        pp = coord.setup_panel_params(*xy)
        assert coord.aspect(pp) == pytest.approx(5.0)
        assert not coord.is_free()


class TestTrans:
    def test_log_axis_at_render(self):
        coord = get_component("coord", "trans", x="log10")
        pp = coord.setup_panel_params(trained("x", [1.0, 100.0]), trained("y", [0.0, 1.0]))
        assert pp["x_range"] == pytest.approx((-0.1, 2.1))
        out = coord.transform(pd.DataFrame({"x": [10.0], "y": [0.5]}), pp)
        assert out["x"].iloc[0] == pytest.approx(0.5)
        assert coord.backtransform_range(pp)["x"][0] == pytest.approx(10 ** -0.1)

    @pytest.mark.filterwarnings("ignore")
    def test_range_outside_domain(self):
        coord = get_component("coord", "trans", x="log10")
        with pytest.raises(PlotSpecError, match="outside the domain"):
            coord.setup_panel_params(trained("x", [-1.0, 10.0]), trained("y", [0.0, 1.0]))


class TestPolar:
    @pytest.fixture
    def polar(self):
        coord = get_component("coord", "polar")
        pp = coord.setup_panel_params(trained("x", [0.0, 1.0]), trained("y", [0.0, 1.0]))
        return coord, pp

    def test_transform_to_circle(self, polar):
        coord, pp = polar
        out = coord.transform(pd.DataFrame({"x": [0.0, 0.5, 0.3], "y": [1.0, 1.0, 0.0]}), pp)
        np.testing.assert_allclose(out["x"], [0.5, 0.5, 0.5], atol=1e-12)
        np.testing.assert_allclose(out["y"], [0.9, 0.1, 0.5], atol=1e-12)

    def test_munched_path_follows_arc(self, polar):
        coord, pp = polar
        path = pd.DataFrame({"x": [0.0, 0.5], "y": [1.0, 1.0], GROUP: 1})
        out = coord_munch(coord, path, pp)
        assert len(out) > 10
        radius = np.hypot(out["x"] - 0.5, out["y"] - 0.5)
        np.testing.assert_allclose(radius, 0.4, atol=1e-9)

    def test_linear_coords_are_not_munched(self, xy):
        coord = get_component("coord", "cartesian")
        pp = coord.setup_panel_params(*xy)
        path = pd.DataFrame({"x": [0.0, 10.0], "y": [0.0, 100.0], GROUP: 1})
        assert len(coord_munch(coord, path, pp)) == 2

    def test_background_has_rings_and_spokes(self, polar):
        coord, pp = polar
        names = [g.name for g in coord.render_bg(pp, theme_grey()).walk()]
        assert "rings" in names and "spokes" in names


def test_cartesian_render_axes(xy):
    coord = get_component("coord", "cartesian")
    pp = coord.setup_panel_params(*xy)
    axes = coord.render_axis_h(pp, theme_grey())
    assert axes["bottom"].name == "axis-bottom"
    assert axes["top"].is_empty()
    assert coord.render_axis_v(pp, theme_grey())["left"].params["position"] == "left"

"""Tests for the error types and plot descriptors in `gg_toolkit.validation`."""

import pytest
import pandas as pd
from pydantic import ValidationError

from gg_toolkit.build import ggplotGrob
from gg_toolkit.plot import plot_from_desc, read_plot_desc
from gg_toolkit.validation import (
    ContractViolation, FacetDescriptor, LayerDescriptor, PlotDescriptor, PlotError, PlotSpecError, hard_validate,
    require, soft_validate,
)


@pytest.fixture
def desc():
    return {
        "data": "cars",
        "mapping": {"x": "displ", "y": "hwy"},
        "layers": [
            {"geom": "point", "mapping": {"color": "class"}},
            {"geom": "histogram", "mapping": {"x": "displ", "y": "after_stat(count)"}, "inherit_aes": False,
             "params": {"bins": 5}},
        ],
        "scales": [{"aesthetic": "color", "type": "manual", "params": {"values": ["#112233", "#445566", "#778899"]}}],
        "facet": {"type": "wrap", "facets": ["year"]},
        "labels": {"title": "Economy"},
        "theme": {"base": "minimal", "legend.position": "bottom"},
    }


class TestErrors:
    def test_context_in_message(self):
        e = PlotSpecError("bad mapping").with_context(layer=2, stage="evaluating aesthetics")
        assert isinstance(e, PlotSpecError)
        assert str(e) == "Problem while evaluating aesthetics in layer 2: bad mapping"

    def test_existing_context_is_kept(self):
        e = PlotSpecError("x", layer=1).with_context(layer=3, stage="s")
        assert e.layer == 1 and e.stage == "s"

    def test_plain_message(self):
        assert str(PlotError("plain")) == "plain"
        assert issubclass(PlotError, ValueError)

    def test_require(self):
        require(True, "never")
        with pytest.raises(ContractViolation, match="broken"):
            require(False, "broken")


class TestDescriptors:
    def test_component_shorthand(self):
        ld = LayerDescriptor.model_validate({"geom": "bar", "position": "dodge"})
        assert ld.position.type == "dodge" and ld.position.params == {}

    def test_extra_keys_forbidden(self):
        with pytest.raises(ValidationError):
            LayerDescriptor.model_validate({"geom": "point", "colour": "red"})

    def test_facet_checks(self):
        with pytest.raises(ValidationError, match="at least one variable"):
            FacetDescriptor(type="wrap")
        with pytest.raises(ValidationError, match="only make sense"):
            FacetDescriptor(type="grid", rows=["a"], nrow=2)

    def test_duplicate_scales(self):
        with pytest.raises(ValidationError, match="More than one scale"):
            PlotDescriptor.model_validate({"scales": [{"aesthetic": "x"}, {"aesthetic": "x", "type": "log10"}]})

    def test_soft_validate_warns(self):
        with pytest.warns(UserWarning):
            assert not soft_validate({"layers": "point"}, PlotDescriptor)
        assert soft_validate({"layers": []}, PlotDescriptor)

    def test_hard_validate_passes_models_through(self, desc):
        m = hard_validate(desc)
        assert hard_validate(m) is m


class TestPlotFromDesc:
    def test_builds_plot(self, desc, cars):
        p = plot_from_desc(desc, {"cars": cars})
        assert len(p.layers) == 2
        assert p.layers[1].geom.name == "bar" and p.layers[1].stat.name == "bin"
        assert p.layers[1].position.name == "stack"
        assert p.facet.name == "wrap"
        assert p.labels["title"] == "Economy"
        assert p.scales.has_scale("color")

    @pytest.mark.integration
    def test_descriptor_renders(self, desc, cars):
        table = ggplotGrob(plot_from_desc(desc, {"cars": cars}))
        assert len(table.find("panel")) == 2
        assert "guide-box-bottom" in table.names()

    def test_unknown_dataset(self, desc, cars):
        with pytest.raises(PlotSpecError, match="Unknown dataset 'cars'"):
            plot_from_desc(desc, {"mpg": cars})

    def test_position_params(self, cars):
        p = plot_from_desc(
            {"mapping": {"x": "class", "y": "hwy"},
             "layers": [{"geom": "point", "position": {"type": "jitter", "params": {"width": 0.1, "seed": 3}}}]},
            {},
        )
        assert p.layers[0].position.width == 0.1
        assert p.layers[0].position.seed == 3

    def test_read_from_yaml(self, tmp_path):
        f = tmp_path / "plot.yaml"
        f.write_text("mapping:\n  x: a\nlayers:\n  - geom: bar\ncoord:\n  type: flip\n")
        m = read_plot_desc(str(f))
        assert m.coord.type == "flip"
        p = plot_from_desc(m, {})
        assert p.coordinates.name == "flip"
        assert p.layers[0].stat.name == "count"

    def test_read_from_json(self, tmp_path):
        f = tmp_path / "plot.json"
        f.write_text('{"layers": [{"geom": "line"}], "theme": "void"}')
        p = plot_from_desc(read_plot_desc(str(f)), {})
        assert p.theme.complete

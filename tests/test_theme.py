"""Tests for themes, element inheritance and element grobs."""

import pytest

from gg_toolkit.grid import PT
from gg_toolkit.theme import (
    ElementBlank, ElementText, Theme, calc_element, color_hex, element_blank, element_gp, element_grob,
    element_line, element_rect, element_text, named_theme, theme, theme_from_dict, theme_from_file,
    theme_grey, theme_minimal, theme_void,
)
from gg_toolkit.validation import PlotSpecError


class TestInheritance:
    def test_leaf_inherits_from_ancestors(self):
        el = calc_element("axis.text.x.bottom", theme_grey())
        assert isinstance(el, ElementText)
        assert el.size == pytest.approx(8.8)
        assert el.vjust == 1
        assert color_hex(el.color) == "#4d4d4d"
        assert el.family == ""

    def test_partial_theme_overrides_fields(self):
        th = theme_grey() + theme(axis_text=element_text(size=20))
        el = th.calc_element("axis.text.x.bottom")
        assert el.size == 20
        assert color_hex(el.color) == "#4d4d4d"

    def test_blank_propagates_to_children(self):
        th = theme_grey() + theme(axis_text=element_blank())
        assert isinstance(th.calc_element("axis.text.y.left"), ElementBlank)

    def test_unset_element_under_blank_parent_is_blank(self):
        assert isinstance(calc_element("axis.line.x", theme_grey()), ElementBlank)

    def test_complete_theme_replaces(self):
        void = theme_void()
        assert (theme_grey() + void) is void
        assert (theme_grey() + theme(legend_position="top")).complete

    def test_unknown_element(self):
        with pytest.raises(PlotSpecError, match="not a theme element"):
            calc_element("axis.text.z", theme_grey())


class TestValidation:
    def test_unknown_name(self):
        with pytest.raises(PlotSpecError, match="not a valid theme element or setting"):
            theme(axis_colour_bar=element_line())

    def test_wrong_element_type(self):
        with pytest.raises(PlotSpecError, match="ElementText"):
            theme(axis_text=element_line())

    def test_bad_setting_value(self):
        with pytest.raises(PlotSpecError, match="legend.position"):
            theme(legend_position="middle")

    def test_bad_element_field(self):
        with pytest.raises(PlotSpecError, match="Invalid ElementText"):
            element_text(size="big")
        with pytest.raises(PlotSpecError):
            element_rect(shade=1)

    def test_mapping_becomes_element(self):
        th = Theme({"axis.text": {"size": 3, "colour": "red"}})
        el = th.elements["axis.text"]
        assert el.size == 3
        assert el.color.as_rgb_tuple() == (255, 0, 0)


class TestSettings:
    def test_defaults(self):
        th = theme()
        assert th.get_setting("legend.merge") == "error"
        assert th.get_setting("legend.position") == "right"
        assert th.get_setting("plot.margin") == (5.5, 5.5, 5.5, 5.5)

    def test_inside_position(self):
        assert theme(legend_position=(0.9, 0.1)).get_setting("legend_position") == (0.9, 0.1)

    def test_minimal_keeps_grey_settings(self):
        th = theme_minimal()
        assert th.complete
        assert isinstance(th.calc_element("panel.background"), ElementBlank)
        assert th.get_setting("panel.spacing") == 5.5


class TestLoading:
    def test_named(self):
        assert named_theme("gray").complete
        with pytest.raises(PlotSpecError, match="Unknown theme"):
            named_theme("solarized")

    def test_from_dict(self):
        th = theme_from_dict({"base": "minimal", "axis.text": "blank", "legend.position": "bottom"})
        assert th.complete
        assert isinstance(th.calc_element("axis.text.x.bottom"), ElementBlank)
        assert th.get_setting("legend.position") == "bottom"

    def test_from_dict_without_base_is_partial(self):
        assert not theme_from_dict({"legend.merge": "separate"}).complete

    def test_from_yaml_file(self, tmp_path):
        f = tmp_path / "theme.yaml"
        f.write_text("base: grey\nplot.title:\n  size: 20\n  face: bold\n")
        el = theme_from_file(str(f)).calc_element("plot.title")
        assert el.size == 20 and el.face == "bold"


class TestElementGrobs:
    def test_rect_fills_cell(self):
        g = element_grob(calc_element("panel.background", theme_grey()), name="bg")
        assert g.kind == "rect" and g.name == "bg"
        assert g.params["fill"] == "#ebebeb"

    def test_blank_and_missing_label(self):
        assert element_grob(ElementBlank()).is_empty()
        assert element_grob(calc_element("plot.title", theme_grey())).is_empty()

    def test_line_gp_in_points(self):
        gp = element_gp(calc_element("line", theme_grey()))
        assert gp["lwd"] == pytest.approx(0.5 * PT)
        assert gp["lty"] == "solid"

    def test_text_grob(self):
        g = element_grob(calc_element("plot.title", theme_grey()), label="Hi", name="title")
        assert g.kind == "text"
        assert list(g.params["label"]) == ["Hi"]
        assert g.params["fontsize"] == pytest.approx(13.2)

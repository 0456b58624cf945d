"""Tests for the component registry and immutability contract."""

import pytest

from gg_toolkit.components import Component, gg_component, get_component, list_components, _gg_deregister
from gg_toolkit.stats import Stat, StatCount
from gg_toolkit.positions import Position
from gg_toolkit.validation import PlotSpecError


class TestRegistry:
    def test_builtins_are_listed(self):
        assert "count" in list_components("stat")
        assert "point" in list_components("geom")
        assert "dodge" in list_components("position")
        assert "cartesian" in list_components("coord")
        assert "wrap" in list_components("facet")

    def test_lookup_by_name_prefix_and_class(self):
        assert isinstance(get_component("stat", "count"), StatCount)
        assert isinstance(get_component("stat", "stat_count"), StatCount)
        assert isinstance(get_component("stat", StatCount), StatCount)

    def test_instance_is_passed_through(self):
        inst = StatCount()
        assert get_component("stat", inst) is inst

    def test_wrong_role(self):
        with pytest.raises(PlotSpecError, match="Expected a geom"):
            get_component("geom", StatCount())

    def test_unknown_name(self):
        with pytest.raises(PlotSpecError, match="Can't find stat"):
            get_component("stat", "nonexistent")

    def test_custom_registration(self):
        @gg_component("stat", "test_custom")
        class StatCustom(Stat):
            parameters = {"k": 2}

        try:
            s = get_component("stat", "test_custom", k=5)
            assert s.k == 5
            assert s.name == "test_custom"
        finally:
            _gg_deregister("stat", "test_custom")
        assert "test_custom" not in list_components("stat")

    def test_registration_checks_role(self):
        with pytest.raises(TypeError):
            gg_component("stat", "bad")(Position)
        with pytest.raises(ValueError):
            gg_component("nonsense", "bad")


class TestImmutability:
    def test_cannot_set_after_construction(self):
        pos = get_component("position", "dodge", width=0.5)
        assert pos.width == 0.5
        with pytest.raises(AttributeError):
            pos.width = 1.0
        with pytest.raises(AttributeError):
            del pos.width

    def test_unknown_parameter(self):
        with pytest.raises(TypeError, match="unexpected parameter"):
            get_component("position", "dodge", nope=1)

    def test_delegate_builds_sibling(self):
        stack = get_component("position", "stack")
        fill = stack.delegate("fill")
        assert fill.role == "position" and fill.name == "fill"

    def test_repr_lists_parameters(self):
        assert repr(StatCount()).startswith("StatCount(na_rm=False")


def test_base_component_has_no_role():
    assert Component().name == "Component"

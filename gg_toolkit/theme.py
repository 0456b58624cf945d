"""Themes
------

Non-data styling of a plot.  A theme is a flat mapping from dotted element
names (``axis.text.x.bottom``) to either a style element or a scalar setting
(``legend.position``).  Elements inherit unset fields from their parent in the
element tree, so `calc_element` answers style queries such as "what colour is
the bottom x axis text" by walking up to ``text``.

Themes combine with ``+``: a complete theme replaces everything, a partial one
(`theme(...)`) only overrides the fields it sets.
"""

from __future__ import annotations

__all__ = [
    "ElementBlank",
    "ElementLine",
    "ElementRect",
    "ElementText",
    "element_blank",
    "element_line",
    "element_rect",
    "element_text",
    "Theme",
    "theme",
    "theme_grey",
    "theme_gray",
    "theme_minimal",
    "theme_void",
    "theme_from_file",
    "calc_element",
    "color_hex",
    "element_gp",
    "element_grob",
]

from typing import Any, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from pydantic_extra_types.color import Color

from gg_toolkit.grid import PT, Grob, polyline_grob, rect_grob, text_grob, zero_grob
from gg_toolkit.utils import read_json, read_yaml
from gg_toolkit.validation import PBase, PlotSpecError


# --------------------------------------------------------
#          ELEMENTS
# --------------------------------------------------------


class Element(PBase):
    """Common base; ``None`` fields are inherited from the parent element."""

    inherit_blank: bool = False

    def inherit(self, parent: "Element") -> "Element":
        if isinstance(parent, ElementBlank):
            return parent if self.inherit_blank else self
        if type(parent) is not type(self):
            return self
        own = {k: getattr(self, k) for k in type(self).model_fields if getattr(self, k) is not None}
        return parent.model_copy(update=own)

    def update(self, other: "Element") -> "Element":
        """Fields explicitly set on ``other`` override those of this element."""

        if isinstance(other, ElementBlank) or type(other) is not type(self):
            return other
        return self.model_copy(update={k: getattr(other, k) for k in other.model_fields_set})


class ElementBlank(Element):
    """Draws nothing and takes no space."""


class ElementLine(Element):
    color: Optional[Color] = None
    linewidth: Optional[float] = None  # mm
    linetype: Optional[str] = None
    lineend: Optional[str] = None


class ElementRect(Element):
    fill: Optional[Color] = None
    color: Optional[Color] = None
    linewidth: Optional[float] = None
    linetype: Optional[str] = None


class ElementText(Element):
    family: Optional[str] = None
    face: Optional[Literal["plain", "bold", "italic", "bold.italic"]] = None
    color: Optional[Color] = None
    size: Optional[float] = None  # pt
    hjust: Optional[float] = None
    vjust: Optional[float] = None
    angle: Optional[float] = None
    lineheight: Optional[float] = None
    margin: Optional[Tuple[float, float, float, float]] = None  # pt: top, right, bottom, left


def element_blank() -> ElementBlank:
    return ElementBlank()


def _element(cls: type, kwargs: Dict[str, Any]) -> Element:
    if "colour" in kwargs:
        kwargs["color"] = kwargs.pop("colour")
    try:
        return cls(**kwargs)
    except ValidationError as e:
        raise PlotSpecError(f"Invalid {cls.__name__}: {e}") from e


def element_line(**kwargs: Any) -> ElementLine:  # noqa: ANN401
    return _element(ElementLine, kwargs)


def element_rect(**kwargs: Any) -> ElementRect:  # noqa: ANN401
    return _element(ElementRect, kwargs)


def element_text(**kwargs: Any) -> ElementText:  # noqa: ANN401
    return _element(ElementText, kwargs)


def color_hex(color: Optional[Color]) -> Optional[str]:
    return None if color is None else color.as_hex()


# --------------------------------------------------------
#          ELEMENT TREE
# --------------------------------------------------------

# name -> (element class, parent)
element_tree: Dict[str, Tuple[type, Optional[str]]] = {
    "line": (ElementLine, None),
    "rect": (ElementRect, None),
    "text": (ElementText, None),
    "title": (ElementText, "text"),
    "axis.line": (ElementLine, "line"),
    "axis.line.x": (ElementLine, "axis.line"),
    "axis.line.y": (ElementLine, "axis.line"),
    "axis.text": (ElementText, "text"),
    "axis.text.x": (ElementText, "axis.text"),
    "axis.text.x.bottom": (ElementText, "axis.text.x"),
    "axis.text.x.top": (ElementText, "axis.text.x"),
    "axis.text.y": (ElementText, "axis.text"),
    "axis.text.y.left": (ElementText, "axis.text.y"),
    "axis.text.y.right": (ElementText, "axis.text.y"),
    "axis.ticks": (ElementLine, "line"),
    "axis.ticks.x": (ElementLine, "axis.ticks"),
    "axis.ticks.y": (ElementLine, "axis.ticks"),
    "axis.title": (ElementText, "title"),
    "axis.title.x": (ElementText, "axis.title"),
    "axis.title.y": (ElementText, "axis.title"),
    "legend.background": (ElementRect, "rect"),
    "legend.key": (ElementRect, "panel.background"),
    "legend.text": (ElementText, "text"),
    "legend.title": (ElementText, "title"),
    "panel.background": (ElementRect, "rect"),
    "panel.border": (ElementRect, "rect"),
    "panel.grid": (ElementLine, "line"),
    "panel.grid.major": (ElementLine, "panel.grid"),
    "panel.grid.minor": (ElementLine, "panel.grid"),
    "panel.grid.major.x": (ElementLine, "panel.grid.major"),
    "panel.grid.major.y": (ElementLine, "panel.grid.major"),
    "panel.grid.minor.x": (ElementLine, "panel.grid.minor"),
    "panel.grid.minor.y": (ElementLine, "panel.grid.minor"),
    "plot.background": (ElementRect, "rect"),
    "plot.title": (ElementText, "title"),
    "plot.subtitle": (ElementText, "title"),
    "plot.caption": (ElementText, "title"),
    "plot.tag": (ElementText, "title"),
    "strip.background": (ElementRect, "rect"),
    "strip.text": (ElementText, "text"),
    "strip.text.x": (ElementText, "strip.text"),
    "strip.text.y": (ElementText, "strip.text"),
}

LegendPosition = Union[Literal["right", "left", "top", "bottom", "inside", "none"], Tuple[float, float]]


class ThemeSettings(PBase):
    """Scalar theme settings; field names are the dotted names with dots as underscores."""

    legend_position: LegendPosition = "right"
    legend_direction: Optional[Literal["vertical", "horizontal"]] = None
    legend_merge: Literal["error", "separate"] = "error"
    legend_justification: Union[Literal["center", "left", "right", "top", "bottom"], Tuple[float, float]] = "center"
    legend_key_size: float = 17.28  # pt
    legend_box_spacing: float = 11.0  # pt
    legend_spacing: float = 11.0  # pt
    panel_spacing: float = 5.5  # pt
    plot_margin: Tuple[float, float, float, float] = (5.5, 5.5, 5.5, 5.5)  # pt
    axis_ticks_length: float = 2.75  # pt
    aspect_ratio: Optional[float] = None
    strip_placement: Literal["inside", "outside"] = "inside"


_settings_names = {name.replace("_", "."): name for name in ThemeSettings.model_fields}


def _canonical(name: str) -> str:
    name = name.replace("_", ".").replace("colour", "color")
    if name not in element_tree and name not in _settings_names:
        raise PlotSpecError(f"{name!r} is not a valid theme element or setting")
    return name


# --------------------------------------------------------
#          THEME
# --------------------------------------------------------


class Theme:
    """Mapping of element/setting names to values; combine with ``+``."""

    def __init__(self, elements: Optional[Mapping[str, Any]] = None, complete: bool = False) -> None:
        self.complete = complete
        self.elements: Dict[str, Any] = {}
        for name, value in (elements or {}).items():
            name = _canonical(name)
            self.elements[name] = self._check(name, value)

    @staticmethod
    def _check(name: str, value: Any) -> Any:  # noqa: ANN401
        if name in _settings_names:
            try:
                ThemeSettings(**{_settings_names[name]: value})
            except ValidationError as e:
                raise PlotSpecError(f"Invalid value {value!r} for theme setting {name!r}") from e
            return value
        cls = element_tree[name][0]
        if isinstance(value, Mapping):
            value = _element(cls, dict(value))
        if not isinstance(value, (cls, ElementBlank)):
            raise PlotSpecError(f"Theme element {name!r} must be a {cls.__name__} or element_blank()")
        return value

    def __repr__(self) -> str:
        return f"<Theme {'complete' if self.complete else 'partial'} with {len(self.elements)} entries>"

    def __add__(self, other: "Theme") -> "Theme":
        if not isinstance(other, Theme):
            return NotImplemented
        if other.complete:
            return other
        merged = dict(self.elements)
        for name, value in other.elements.items():
            old = merged.get(name)
            merged[name] = old.update(value) if isinstance(old, Element) and isinstance(value, Element) else value
        return Theme(merged, complete=self.complete)

    def __contains__(self, name: str) -> bool:
        return name in self.elements

    def settings(self) -> ThemeSettings:
        return ThemeSettings(**{_settings_names[k]: v for k, v in self.elements.items() if k in _settings_names})

    def get_setting(self, name: str) -> Any:  # noqa: ANN401
        return getattr(self.settings(), _settings_names[_canonical(name)])

    def calc_element(self, name: str) -> Element:
        return calc_element(name, self)


def calc_element(name: str, theme: Theme) -> Element:
    """Resolved element ``name`` after inheriting unset fields from its ancestors."""

    if name not in element_tree:
        raise PlotSpecError(f"{name!r} is not a theme element")
    cls, parent = element_tree[name]
    own = theme.elements.get(name, cls(inherit_blank=True))
    if isinstance(own, ElementBlank):
        return own
    if parent is None:
        return own
    return own.inherit(calc_element(parent, theme))


def theme(**kwargs: Any) -> Theme:  # noqa: ANN401
    """Partial theme; ``axis_text_x=element_text(...)`` sets ``axis.text.x``."""

    return Theme(kwargs, complete=False)


def theme_grey(base_size: float = 11, base_family: str = "") -> Theme:
    half_line = base_size / 2
    return Theme(
        {
            "line": ElementLine(color="#000000", linewidth=0.5, linetype="solid", lineend="butt"),
            "rect": ElementRect(fill="#ffffff", color="#000000", linewidth=0.5, linetype="solid"),
            "text": ElementText(
                family=base_family, face="plain", color="#000000", size=base_size, hjust=0.5, vjust=0.5,
                angle=0, lineheight=0.9, margin=(0, 0, 0, 0),
            ),
            "axis.line": ElementBlank(),
            "axis.text": ElementText(size=base_size * 0.8, color="#4d4d4d", inherit_blank=True),
            "axis.text.x": ElementText(margin=(0.8 * half_line / 2, 0, 0, 0), vjust=1, inherit_blank=True),
            "axis.text.y": ElementText(margin=(0, 0.8 * half_line / 2, 0, 0), hjust=1, inherit_blank=True),
            "axis.ticks": ElementLine(color="#333333", inherit_blank=True),
            "axis.title.x": ElementText(margin=(half_line / 2, 0, 0, 0), vjust=1, inherit_blank=True),
            "axis.title.y": ElementText(angle=90, margin=(0, half_line / 2, 0, 0), vjust=1, inherit_blank=True),
            "legend.background": ElementRect(color=None, inherit_blank=True),
            "legend.key": ElementBlank(),
            "legend.text": ElementText(size=base_size * 0.8, inherit_blank=True),
            "legend.title": ElementText(hjust=0, inherit_blank=True),
            "panel.background": ElementRect(fill="#ebebeb", color=None, inherit_blank=True),
            "panel.border": ElementBlank(),
            "panel.grid": ElementLine(color="#ffffff", inherit_blank=True),
            "panel.grid.minor": ElementLine(linewidth=0.25, inherit_blank=True),
            "plot.background": ElementRect(color="#ffffff", inherit_blank=True),
            "plot.title": ElementText(size=base_size * 1.2, hjust=0, vjust=1, margin=(0, 0, half_line, 0),
                                      inherit_blank=True),
            "plot.subtitle": ElementText(hjust=0, vjust=1, margin=(0, 0, half_line, 0), inherit_blank=True),
            "plot.caption": ElementText(size=base_size * 0.8, hjust=1, vjust=1, margin=(half_line, 0, 0, 0),
                                        inherit_blank=True),
            "plot.tag": ElementText(size=base_size * 1.2, hjust=0.5, vjust=0.5, inherit_blank=True),
            "strip.background": ElementRect(fill="#d9d9d9", color=None, inherit_blank=True),
            "strip.text": ElementText(color="#1a1a1a", size=base_size * 0.8,
                                      margin=(0.8 * half_line,) * 4, inherit_blank=True),
            "legend.position": "right",
            "legend.merge": "error",
            "panel.spacing": half_line,
            "plot.margin": (half_line,) * 4,
        },
        complete=True,
    )


theme_gray = theme_grey


def theme_minimal(base_size: float = 11, base_family: str = "") -> Theme:
    """Grey theme without backgrounds, borders or ticks."""

    return theme_grey(base_size, base_family) + theme(
        axis_ticks=ElementBlank(),
        legend_background=ElementBlank(),
        legend_key=ElementBlank(),
        panel_background=ElementBlank(),
        panel_border=ElementBlank(),
        strip_background=ElementBlank(),
        plot_background=ElementBlank(),
        panel_grid=ElementLine(color="#ebebeb"),
    )


def theme_void(base_size: float = 11, base_family: str = "") -> Theme:
    """Only the data, the legends and the titles are drawn."""

    half_line = base_size / 2
    return Theme(
        {
            "line": ElementBlank(),
            "rect": ElementBlank(),
            "text": ElementText(
                family=base_family, face="plain", color="#000000", size=base_size, hjust=0.5, vjust=0.5,
                angle=0, lineheight=0.9, margin=(0, 0, 0, 0),
            ),
            "axis.text": ElementBlank(),
            "axis.title": ElementBlank(),
            "legend.text": ElementText(size=base_size * 0.8, inherit_blank=True),
            "plot.title": ElementText(size=base_size * 1.2, hjust=0, vjust=1, margin=(half_line, 0, 0, 0),
                                      inherit_blank=True),
            "strip.text": ElementText(size=base_size * 0.8, inherit_blank=True),
            "legend.position": "right",
            "legend.merge": "error",
            "panel.spacing": half_line,
            "plot.margin": (0, 0, 0, 0),
        },
        complete=True,
    )


_base_themes = {"grey": theme_grey, "gray": theme_grey, "minimal": theme_minimal, "void": theme_void}


def named_theme(name: str) -> Theme:
    if name not in _base_themes:
        raise PlotSpecError(f"Unknown theme {name!r}; known: {sorted(_base_themes)}")
    return _base_themes[name]()


def theme_from_dict(d: Mapping[str, Any]) -> Theme:
    """Theme from a plain dict: optional ``base`` theme name plus element/setting overrides.

    Element values are dicts of element fields or the string ``"blank"``.
    """

    d = dict(d)
    base = d.pop("base", None)
    entries = {}
    for name, value in d.items():
        entries[name] = ElementBlank() if value == "blank" else value
    over = theme(**entries)
    return named_theme(base) + over if base else over


def theme_from_file(fname: str) -> Theme:
    """Load a theme from a YAML or JSON file (see `theme_from_dict`)."""

    d = read_json(fname) if fname.endswith(".json") else read_yaml(fname)
    if not isinstance(d, dict):
        raise PlotSpecError(f"Theme file {fname} must contain a mapping")
    return theme_from_dict(d)


# --------------------------------------------------------
#          ELEMENT GROBS
# --------------------------------------------------------


def element_gp(element: Element) -> Dict[str, Any]:
    """Graphical parameters of an element (sizes converted to points)."""

    if isinstance(element, ElementBlank):
        return {}
    gp: Dict[str, Any] = {"col": color_hex(getattr(element, "color", None))}
    if isinstance(element, ElementRect):
        gp["fill"] = color_hex(element.fill)
    if isinstance(element, (ElementLine, ElementRect)):
        gp["lwd"] = (element.linewidth or 0) * PT
        gp["lty"] = element.linetype
    if isinstance(element, ElementText):
        gp.update(
            fontsize=element.size,
            fontfamily=element.family,
            fontface=element.face,
            hjust=element.hjust,
            vjust=element.vjust,
            rot=element.angle,
            lineheight=element.lineheight,
        )
    return gp


def element_grob(element: Element, name: str = "", **geom: Any) -> Grob:  # noqa: ANN401
    """Render ``element`` as a grob; blank elements give a zero grob.

    Rects fill the cell unless ``x``/``y``/``width``/``height`` are given; lines
    need ``x`` and ``y``; text needs ``label``.
    """

    if isinstance(element, ElementBlank):
        return zero_grob()
    gp = element_gp(element)
    if isinstance(element, ElementRect):
        return rect_grob(
            geom.get("x", 0), geom.get("y", 1), geom.get("width", 1), geom.get("height", 1), name=name or "rect", **gp
        )
    if isinstance(element, ElementLine):
        return polyline_grob(geom["x"], geom["y"], id=geom.get("id"), name=name or "line", **gp)
    if isinstance(element, ElementText):
        if geom.get("label") is None:
            return zero_grob()
        return text_grob(geom["label"], geom.get("x", 0.5), geom.get("y", 0.5), name=name or "text", **gp)
    raise PlotSpecError(f"Cannot render {type(element).__name__}")

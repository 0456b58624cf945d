"""Guides
------

Axes and legends derived from trained scales.

- `draw_axis` renders the axis of one panel side from the break positions
  the coordinate system computed.
- `Guide` subclasses (``legend``, ``colorbar``, ``none``) are trained from a
  non-position scale into a key table (one row per break).
- `build_guides` trains a guide for every non-position scale, merges guides
  whose keys are identical, asks the contributing layers for key grobs and
  assembles the legend boxes into a single ``guide-box`` table.

Two guides are merged when their hash (title, labels, break values, direction
and guide type) is equal, so colour and shape driven by one column collapse
into a single legend.  Guides that share a title and breaks but disagree on
the labels (or vice versa) are only partially compatible; the theme setting
``legend.merge`` decides whether that is an error (the default) or whether
they are drawn separately.
"""

from __future__ import annotations

__all__ = [
    "draw_axis",
    "Guide",
    "GuideLegend",
    "GuideColorbar",
    "GuideNone",
    "guide_types",
    "validate_guide",
    "merge_guides",
    "build_guides",
    "legend_direction",
]

import copy
import hashlib
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from gg_toolkit import utils
from gg_toolkit.grid import GTable, Grob, Unit, grob_tree, rect_grob, segments_grob, zero_grob
from gg_toolkit.theme import ElementBlank, Theme, element_gp, element_grob
from gg_toolkit.validation import PlotAmbiguityError, PlotSpecError

logger = logging.getLogger(__name__)

# --------------------------------------------------------
#          AXES
# --------------------------------------------------------


def text_width(labels: Sequence[Any], fontsize: Optional[float]) -> float:
    """Rough width in points of the widest label (no font metrics available here)."""

    if not len(labels):
        return 0.0
    return max(len(str(lab)) for lab in labels) * (fontsize or 11) * 0.55


def _text_size(element: Any, labels: Sequence[Any], along_width: bool) -> float:  # noqa: ANN401
    if isinstance(element, ElementBlank) or not len(labels):
        return 0.0
    size = element.size or 11
    t, r, b, l = element.margin or (0, 0, 0, 0)
    if along_width:
        return text_width(labels, size) + l + r
    return size * (element.lineheight or 1.2) + t + b


def draw_axis(break_positions: Any, labels: Sequence[Any], position: str, theme: Theme) -> Grob:  # noqa: ANN401
    """Axis line, ticks and labels for one side of a panel.

    ``break_positions`` are in [0, 1] along the axis.  The returned tree
    carries its own thickness in points as the ``size`` parameter so the
    facet can size the axis row or column.
    """

    if position not in ("top", "bottom", "left", "right"):
        raise PlotSpecError(f"Unknown axis position {position!r}")
    horizontal = position in ("top", "bottom")
    aes = "x" if horizontal else "y"
    breaks = np.asarray(break_positions, dtype=float)
    labels = list(labels)

    line_el = theme.calc_element(f"axis.line.{aes}")
    tick_el = theme.calc_element(f"axis.ticks.{aes}")
    text_el = theme.calc_element(f"axis.text.{aes}.{position}")
    tick_len = 0.0 if isinstance(tick_el, ElementBlank) else float(theme.get_setting("axis.ticks.length"))

    # the side touching the panel
    edge = {"bottom": 1.0, "top": 0.0, "left": 1.0, "right": 0.0}[position]
    away = -1.0 if edge == 1.0 else 1.0
    if horizontal:
        line = element_grob(line_el, name="axis.line", x=[0, 1], y=[edge, edge])
        ticks = (
            segments_grob(breaks, edge, breaks, edge + away * 0.1, name="axis.ticks", **element_gp(tick_el))
            if len(breaks) and tick_len
            else zero_grob()
        )
        text = element_grob(text_el, name="axis.text", label=labels, x=breaks, y=edge + away * 0.5) if labels else zero_grob()
    else:
        line = element_grob(line_el, name="axis.line", x=[edge, edge], y=[0, 1])
        ticks = (
            segments_grob(edge, breaks, edge + away * 0.1, breaks, name="axis.ticks", **element_gp(tick_el))
            if len(breaks) and tick_len
            else zero_grob()
        )
        text = element_grob(text_el, name="axis.text", label=labels, x=edge + away * 0.5, y=breaks) if labels else zero_grob()

    size = tick_len + _text_size(text_el, labels, along_width=not horizontal)
    return grob_tree(line, ticks, text, name=f"axis-{position}", position=position, size=Unit(size, "pt"))


# --------------------------------------------------------
#          GUIDES
# --------------------------------------------------------


def legend_direction(position: Any, theme: Theme) -> str:  # noqa: ANN401
    direction = theme.get_setting("legend.direction")
    if direction:
        return direction
    return "horizontal" if position in ("top", "bottom") else "vertical"


class Guide:
    """A legend-like guide; instances are cheap and copied when trained."""

    type = "guide"

    def __init__(
        self,
        title: Any = None,  # noqa: ANN401
        direction: Optional[str] = None,
        reverse: bool = False,
        order: int = 0,
        override_aes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.title = title
        self.direction = direction
        self.reverse = reverse
        self.order = order
        self.override_aes = dict(override_aes or {})
        self.key: Optional[pd.DataFrame] = None
        self.aesthetics: List[str] = []
        self.geoms: List[Dict[str, Any]] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.aesthetics} title={self.title!r}>"

    @property
    def labels(self) -> List[str]:
        return [] if self.key is None else list(self.key[".label"])

    @property
    def values(self) -> List[Any]:
        return [] if self.key is None else list(self.key[".value"])

    def hash(self) -> str:
        content = repr((self.title, self.labels, [str(v) for v in self.values], self.direction, self.type))
        return hashlib.md5(content.encode()).hexdigest()

    def train(self, scale: Any, aesthetic: str, title: Any = None, direction: str = "vertical") -> Optional["Guide"]:  # noqa: ANN401
        raise NotImplementedError

    def merge(self, other: "Guide") -> "Guide":
        """Combine with an identical-hash guide: key columns of both aesthetics."""

        new = copy.copy(self)
        extra = [a for a in other.aesthetics if a not in self.aesthetics]
        new.key = self.key.assign(**{a: other.key[a].to_numpy() for a in extra})
        new.aesthetics = self.aesthetics + extra
        new.override_aes = {**self.override_aes, **other.override_aes}
        return new

    def partially_matches(self, other: "Guide") -> bool:
        if self.type != other.type or self.title != other.title:
            return False
        same_values = [str(v) for v in self.values] == [str(v) for v in other.values]
        same_labels = self.labels == other.labels
        return same_values != same_labels

    def process_layers(self, layers: Sequence[Any]) -> Optional["Guide"]:  # noqa: ANN401
        """Collect key data from every layer that maps one of the guide's aesthetics."""

        geoms = []
        for layer in layers:
            if layer.show_legend is False:
                continue
            mapping = getattr(layer, "computed_mapping", None) or layer.mapping or {}
            matched = [a for a in self.aesthetics if a in mapping]
            if not matched and layer.show_legend is not True:
                continue
            constants = {k: v for k, v in layer.aes_params.items() if k not in matched}
            data = self.key[matched].reset_index(drop=True) if matched else pd.DataFrame(index=self.key.index)
            data = layer.geom.use_defaults(data, constants)
            if self.override_aes:
                data = data.assign(**self.override_aes)
            geoms.append({"layer": layer, "data": data, "params": dict(getattr(layer, "computed_geom_params", None) or {})})
        if not geoms:
            return None
        new = copy.copy(self)
        new.geoms = geoms
        return new

    def draw(self, theme: Theme, index: int) -> GTable:
        raise NotImplementedError

    # --- shared layout bits ---

    def _title_cell(self, table: GTable, theme: Theme, t: int, l: int, b: int, r: int) -> None:  # noqa: E741
        el = theme.calc_element("legend.title")
        table.add_grob(element_grob(el, name="legend.title", label=self.title, x=0, y=0.5), t, l, b, r, name="title")

    def _background(self, table: GTable, theme: Theme) -> None:
        nrow, ncol = table.dim
        table.add_grob(element_grob(theme.calc_element("legend.background")), 1, 1, nrow, ncol, name="background", z=-1)


class GuideLegend(Guide):
    """One key per break; keys stacked along ``direction``."""

    type = "legend"

    def __init__(self, title: Any = None, direction: Optional[str] = None, reverse: bool = False, order: int = 0,  # noqa: ANN401
                 override_aes: Optional[Mapping[str, Any]] = None, nrow: Optional[int] = None,
                 ncol: Optional[int] = None) -> None:
        super().__init__(title, direction, reverse, order, override_aes)
        self.nrow = nrow
        self.ncol = ncol

    def train(self, scale: Any, aesthetic: str, title: Any = None, direction: str = "vertical") -> Optional[Guide]:  # noqa: ANN401
        breaks = scale.get_breaks()
        if breaks is None or len(breaks) == 0:
            return None
        if not scale.is_discrete():
            breaks = np.asarray(breaks, dtype=float)
            breaks = breaks[np.isfinite(breaks)]
        labels = scale.get_labels(breaks)
        if len(labels) != len(breaks):
            raise PlotSpecError(f"Breaks and labels of the {aesthetic} scale have different lengths")
        key = pd.DataFrame({aesthetic: scale.map(breaks), ".value": list(breaks), ".label": labels})
        if self.reverse:
            key = key.iloc[::-1].reset_index(drop=True)
        new = copy.copy(self)
        new.key = key
        new.aesthetics = [aesthetic]
        new.title = self.title if self.title is not None else scale.make_title(title)
        new.direction = self.direction or direction
        return new

    def draw(self, theme: Theme, index: int) -> GTable:
        key_size = float(theme.get_setting("legend.key.size"))
        text_el = theme.calc_element("legend.text")
        title_el = theme.calc_element("legend.title")
        n = len(self.key)
        label_w = text_width(self.labels, getattr(text_el, "size", None)) + 5.5
        title_h = 0.0 if self.title is None or isinstance(title_el, ElementBlank) else (title_el.size or 11) * 1.5

        if self.direction == "horizontal":
            widths = [w for _ in range(n) for w in (Unit(key_size, "pt"), Unit(label_w, "pt"))]
            table = GTable(widths=widths, heights=[Unit(title_h, "pt"), Unit(key_size, "pt")], name=f"legend-{index}")
            slots = [(2, 2 * i + 1, 2, 2 * i + 2) for i in range(n)]
        else:
            heights = [Unit(title_h, "pt")] + [Unit(key_size, "pt")] * n
            table = GTable(widths=[Unit(key_size, "pt"), Unit(label_w, "pt")], heights=heights, name=f"legend-{index}")
            slots = [(i + 2, 1, i + 2, 2) for i in range(n)]

        self._background(table, theme)
        self._title_cell(table, theme, 1, 1, 1, table.dim[1])
        key_bg = theme.calc_element("legend.key")
        for i, (t, key_col, _, label_col) in enumerate(slots, start=1):
            table.add_grob(element_grob(key_bg, name="legend.key"), t, key_col, name=f"key-{i}-bg")
            for j, g in enumerate(self.geoms, start=1):
                row = {k: _scalar(v) for k, v in g["data"].iloc[i - 1].items()}
                glyph = g["layer"].key_glyph
                table.add_grob(g["layer"].geom.draw_key(row, g["params"], glyph), t, key_col, name=f"key-{i}-{j}", z=j)
            lab = element_grob(text_el, name="legend.text", label=self.labels[i - 1], x=0.1, y=0.5)
            table.add_grob(lab, t, label_col, name=f"label-{i}")
        return table


def _scalar(v: Any) -> Any:  # noqa: ANN401
    return None if not isinstance(v, str) and pd.api.types.is_scalar(v) and pd.isna(v) else v


class GuideColorbar(Guide):
    """Continuous colour gradient with break ticks; only for continuous colour/fill scales."""

    type = "colorbar"

    def __init__(self, title: Any = None, direction: Optional[str] = None, reverse: bool = False, order: int = 0,  # noqa: ANN401
                 nbin: int = 300, barwidth: Optional[float] = None, barheight: Optional[float] = None) -> None:
        super().__init__(title, direction, reverse, order)
        self.nbin = nbin
        self.barwidth = barwidth
        self.barheight = barheight
        self.bar: Optional[pd.DataFrame] = None

    def train(self, scale: Any, aesthetic: str, title: Any = None, direction: str = "vertical") -> Optional[Guide]:  # noqa: ANN401
        if aesthetic not in ("color", "fill"):
            raise PlotSpecError(f"colorbar guide needs a colour or fill scale, not {aesthetic}")
        if scale.is_discrete():
            utils.warn(f"colorbar guide needs a continuous scale; dropping the {aesthetic} guide.")
            return None
        if scale.is_empty():
            return None
        lo, hi = scale.get_limits()
        breaks = np.asarray(scale.get_breaks(), dtype=float)
        breaks = breaks[np.isfinite(breaks)]
        grid = np.linspace(lo, hi, self.nbin)
        new = copy.copy(self)
        new.bar = pd.DataFrame({"color": scale.map(grid), "value": grid})
        new.key = pd.DataFrame(
            {aesthetic: scale.map(breaks), ".value": breaks, ".label": scale.get_labels(breaks),
             ".position": utils.rescale(breaks, frm=(lo, hi))}
        )
        if self.reverse:
            new.bar = new.bar.iloc[::-1].reset_index(drop=True)
            new.key = new.key.assign(**{".position": 1 - new.key[".position"]})
        new.aesthetics = [aesthetic]
        new.title = self.title if self.title is not None else scale.make_title(title)
        new.direction = self.direction or direction
        return new

    def process_layers(self, layers: Sequence[Any]) -> Optional[Guide]:  # noqa: ANN401
        used = [la for la in layers if la.show_legend is not False and (
            any(a in (getattr(la, "computed_mapping", None) or la.mapping or {}) for a in self.aesthetics)
            or la.show_legend is True)]
        if not used:
            return None
        new = copy.copy(self)
        new.geoms = [{"layer": la, "data": None, "params": {}} for la in used]
        return new

    def draw(self, theme: Theme, index: int) -> GTable:
        key_size = float(theme.get_setting("legend.key.size"))
        text_el = theme.calc_element("legend.text")
        title_el = theme.calc_element("legend.title")
        title_h = 0.0 if self.title is None or isinstance(title_el, ElementBlank) else (title_el.size or 11) * 1.5
        n = len(self.bar)
        pos = np.linspace(0, 1, n + 1)
        colors = list(self.bar["color"])
        ticks_at = self.key[".position"].to_numpy(dtype=float)
        vertical = self.direction != "horizontal"
        if vertical:
            bw, bh = self.barwidth or key_size, self.barheight or key_size * 5
            label_w = text_width(self.labels, getattr(text_el, "size", None)) + 5.5
            table = GTable(widths=[Unit(bw, "pt"), Unit(label_w, "pt")],
                           heights=[Unit(title_h, "pt"), Unit(bh, "pt")], name=f"colorbar-{index}")
            bar = rect_grob(0, pos[1:], 1, np.diff(pos), name="bar", fill=colors, col=None)
            ticks = segments_grob(
                np.r_[np.zeros(len(ticks_at)), np.full(len(ticks_at), 0.8)], np.r_[ticks_at, ticks_at],
                np.r_[np.full(len(ticks_at), 0.2), np.ones(len(ticks_at))], np.r_[ticks_at, ticks_at],
                name="ticks", col="#FFFFFF",
            )
            labels = element_grob(text_el, name="legend.text", label=self.labels, x=0.1, y=ticks_at)
            bar_cell, label_cell = (2, 1), (2, 2)
        else:
            bw, bh = self.barwidth or key_size * 5, self.barheight or key_size
            label_h = (getattr(text_el, "size", None) or 9) * 1.5
            table = GTable(widths=[Unit(bw, "pt")], heights=[Unit(title_h, "pt"), Unit(bh, "pt"), Unit(label_h, "pt")],
                           name=f"colorbar-{index}")
            bar = rect_grob(pos[:-1], 1, np.diff(pos), 1, name="bar", fill=colors, col=None)
            ticks = segments_grob(
                np.r_[ticks_at, ticks_at], np.r_[np.zeros(len(ticks_at)), np.full(len(ticks_at), 0.8)],
                np.r_[ticks_at, ticks_at], np.r_[np.full(len(ticks_at), 0.2), np.ones(len(ticks_at))],
                name="ticks", col="#FFFFFF",
            )
            labels = element_grob(text_el, name="legend.text", label=self.labels, x=ticks_at, y=0.5)
            bar_cell, label_cell = (2, 1), (3, 1)
        self._background(table, theme)
        self._title_cell(table, theme, 1, 1, 1, table.dim[1])
        table.add_grob(bar, *bar_cell, name="bar")
        table.add_grob(ticks, *bar_cell, name="ticks", z=1)
        table.add_grob(labels, *label_cell, name="labels")
        return table


class GuideNone(Guide):
    type = "none"

    def train(self, scale: Any, aesthetic: str, title: Any = None, direction: str = "vertical") -> Optional[Guide]:  # noqa: ANN401
        return None


guide_types: Dict[str, type] = {
    "legend": GuideLegend,
    "colorbar": GuideColorbar,
    "colourbar": GuideColorbar,
    "none": GuideNone,
}


def validate_guide(guide: Any) -> Guide:  # noqa: ANN401
    if isinstance(guide, Guide):
        return guide
    if guide is None or guide is False:
        return GuideNone()
    if isinstance(guide, str) and guide in guide_types:
        return guide_types[guide]()
    raise PlotSpecError(f"Unknown guide {guide!r}; known: {sorted(guide_types)}")


def merge_guides(guides: Sequence[Guide], policy: str = "error") -> List[Guide]:
    """Merge guides with equal hashes, keeping first-seen order.

    Partially compatible guides (same title and type, only one of labels or
    values equal) raise `PlotAmbiguityError` under the ``"error"`` policy.
    """

    merged: Dict[str, Guide] = {}
    for g in guides:
        h = g.hash()
        if h in merged:
            merged[h] = merged[h].merge(g)
            logger.debug("Merged %s into %s", g.aesthetics, merged[h].aesthetics)
            continue
        for other in merged.values():
            if g.partially_matches(other):
                if policy == "error":
                    raise PlotAmbiguityError(
                        f"Guides for {other.aesthetics} and {g.aesthetics} share the title {g.title!r} but "
                        "differ in labels or breaks; give them distinct titles or set "
                        "theme(legend_merge='separate')"
                    )
                logger.debug("Keeping partially compatible guides %s and %s apart", other.aesthetics, g.aesthetics)
        merged[h] = g
    return list(merged.values())


def build_guides(
    scales: Any,  # noqa: ANN401
    layers: Sequence[Any],
    labels: Mapping[str, Any],
    theme: Theme,
    guides: Optional[Mapping[str, Any]] = None,
) -> Optional[GTable]:
    """Trained, merged and drawn legends in one ``guide-box`` table (``None`` when there are none)."""

    position = theme.get_setting("legend.position")
    if position == "none":
        return None
    direction = legend_direction(position, theme)
    guides = dict(guides or {})

    trained: List[Guide] = []
    for scale in scales.non_position_scales():
        for aesthetic in scale.aesthetics:
            spec = guides.get(aesthetic, scale.guide)
            g = validate_guide(spec).train(scale, aesthetic, title=labels.get(aesthetic), direction=direction)
            if g is not None:
                trained.append(g)
    if not trained:
        return None

    merged = merge_guides(trained, policy=theme.get_setting("legend.merge"))
    drawable = [g for g in (m.process_layers(layers) for m in merged) if g is not None]
    if not drawable:
        return None
    drawable.sort(key=lambda g: g.order)
    logger.debug("Drawing %d legend(s) for %s", len(drawable), [g.aesthetics for g in drawable])

    boxes = [g.draw(theme, i) for i, g in enumerate(drawable, start=1)]
    spacing = Unit(float(theme.get_setting("legend.spacing")), "pt")
    box = GTable(name="guide-box")
    if position in ("top", "bottom"):
        box.heights = [Unit(1, "null")]
        for i, b in enumerate(boxes, start=1):
            if i > 1:
                box.add_cols([spacing])
            box.add_cols([Unit(1, "null")])
            box.add_grob(b, 1, len(box.widths), name=f"guides-{i}")
    else:
        box.widths = [Unit(1, "null")]
        for i, b in enumerate(boxes, start=1):
            if i > 1:
                box.add_rows([spacing])
            box.add_rows([Unit(1, "null")])
            box.add_grob(b, len(box.heights), 1, name=f"guides-{i}")
    return box

"""Graphical primitives and the named-cell layout table.

Nothing in here draws.  `Grob` is an opaque description of shapes in
normalised panel coordinates ([0, 1] on both axes) plus graphical parameters,
and `GTable` is the hierarchical container a drawing backend receives.  The
table's shape depends on facets, guides and titles, so every cell is named and
consumers look cells up with `GTable.get` instead of by position.
"""

from __future__ import annotations

__all__ = [
    "Unit",
    "Grob",
    "Cell",
    "GTable",
    "null_grob",
    "zero_grob",
    "grob_tree",
    "points_grob",
    "polyline_grob",
    "segments_grob",
    "rect_grob",
    "polygon_grob",
    "text_grob",
]

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np

PT = 72.27 / 25.4  # points per mm, sizes in data are in mm


@dataclass(frozen=True)
class Unit:
    """A length: ``null`` units share the remaining space, the others are absolute."""

    value: float
    unit: str = "cm"  # 'null', 'cm', 'pt', 'lines', 'npc'

    def __repr__(self) -> str:
        return f"{self.value:g}{self.unit}"


@dataclass(frozen=True)
class Grob:
    """Backend-agnostic graphical primitive (or a group of them)."""

    kind: str
    name: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)
    children: Tuple["Grob", ...] = ()

    def __iter__(self) -> Iterator["Grob"]:
        return iter(self.children)

    def walk(self) -> Iterator["Grob"]:
        """Depth-first iteration over this grob and all descendants."""

        yield self
        for child in self.children:
            yield from child.walk()

    def is_empty(self) -> bool:
        return self.kind in ("null", "zero")


def _arr(x: Any) -> np.ndarray:  # noqa: ANN401
    return np.atleast_1d(np.asarray(x))


def null_grob(name: str = "null") -> Grob:
    return Grob("null", name)


def zero_grob() -> Grob:
    return Grob("zero", "zero")


def grob_tree(*children: Grob, name: str = "", **params: Any) -> Grob:  # noqa: ANN401
    return Grob("gTree", name, params, tuple(c for c in children if c is not None))


def points_grob(x: Any, y: Any, name: str = "points", **gp: Any) -> Grob:  # noqa: ANN401
    return Grob("points", name, {"x": _arr(x), "y": _arr(y), **gp})


def polyline_grob(x: Any, y: Any, id: Any = None, name: str = "polyline", **gp: Any) -> Grob:  # noqa: ANN401
    params = {"x": _arr(x), "y": _arr(y), **gp}
    if id is not None:
        params["id"] = _arr(id)
    return Grob("polyline", name, params)


def segments_grob(x0: Any, y0: Any, x1: Any, y1: Any, name: str = "segments", **gp: Any) -> Grob:  # noqa: ANN401
    return Grob("segments", name, {"x0": _arr(x0), "y0": _arr(y0), "x1": _arr(x1), "y1": _arr(y1), **gp})


def rect_grob(
    x: Any, y: Any, width: Any, height: Any, just: Tuple[str, str] = ("left", "top"), name: str = "rect", **gp: Any  # noqa: ANN401
) -> Grob:
    return Grob(
        "rect",
        name,
        {"x": _arr(x), "y": _arr(y), "width": _arr(width), "height": _arr(height), "just": just, **gp},
    )


def polygon_grob(x: Any, y: Any, id: Any = None, name: str = "polygon", **gp: Any) -> Grob:  # noqa: ANN401
    params = {"x": _arr(x), "y": _arr(y), **gp}
    if id is not None:
        params["id"] = _arr(id)
    return Grob("polygon", name, params)


def text_grob(label: Any, x: Any = 0.5, y: Any = 0.5, name: str = "text", **gp: Any) -> Grob:  # noqa: ANN401
    return Grob("text", name, {"label": _arr(label), "x": _arr(x), "y": _arr(y), **gp})


# --------------------------------------------------------
#          LAYOUT TABLE
# --------------------------------------------------------


@dataclass(frozen=True)
class Cell:
    """A named rectangle of the table spanning rows t..b and columns l..r (1-based)."""

    name: str
    grob: Any  # Grob or GTable
    t: int
    l: int  # noqa: E741
    b: int
    r: int
    z: float = 0.0
    clip: str = "off"


@dataclass
class GTable:
    """Grid of named cells; cells may hold nested GTables."""

    widths: List[Unit] = field(default_factory=list)
    heights: List[Unit] = field(default_factory=list)
    cells: List[Cell] = field(default_factory=list)
    name: str = "layout"
    respect: bool = False

    kind = "gtable"

    # --- shape ---

    @property
    def dim(self) -> Tuple[int, int]:
        return len(self.heights), len(self.widths)

    def add_rows(self, heights: Sequence[Unit], pos: int = -1) -> "GTable":
        """Insert rows after row ``pos`` (0 = top, -1 = bottom), shifting cells below."""

        n = len(heights)
        if pos < 0:
            pos = len(self.heights) + pos + 1
        self.heights[pos:pos] = list(heights)
        self.cells = [
            replace(c, t=c.t + (n if c.t > pos else 0), b=c.b + (n if c.b > pos else 0)) for c in self.cells
        ]
        return self

    def add_cols(self, widths: Sequence[Unit], pos: int = -1) -> "GTable":
        """Insert columns after column ``pos`` (0 = left, -1 = right), shifting cells."""

        n = len(widths)
        if pos < 0:
            pos = len(self.widths) + pos + 1
        self.widths[pos:pos] = list(widths)
        self.cells = [
            replace(c, l=c.l + (n if c.l > pos else 0), r=c.r + (n if c.r > pos else 0)) for c in self.cells
        ]
        return self

    def add_grob(
        self,
        grob: Any,  # noqa: ANN401
        t: int,
        l: int,  # noqa: E741
        b: Optional[int] = None,
        r: Optional[int] = None,
        name: str = "",
        z: float = 0.0,
        clip: str = "off",
    ) -> "GTable":
        """Place ``grob`` in the table under a unique ``name``."""

        b = t if b is None else b
        r = l if r is None else r
        if not name:
            raise ValueError("Every cell of a GTable must be named")
        if name in self:
            raise ValueError(f"GTable {self.name!r} already has a cell named {name!r}")
        nrow, ncol = self.dim
        if not (1 <= t <= b <= nrow and 1 <= l <= r <= ncol):
            raise ValueError(f"Cell {name!r} ({t}, {l}, {b}, {r}) does not fit a {nrow}x{ncol} table")
        self.cells.append(Cell(name, grob, t, l, b, r, z, clip))
        return self

    def add_padding(self, margin: Sequence[Unit]) -> "GTable":
        """Add a margin (top, right, bottom, left) around the whole table."""

        top, right, bottom, left = margin
        self.add_rows([top], pos=0)
        self.add_rows([bottom], pos=-1)
        self.add_cols([left], pos=0)
        self.add_cols([right], pos=-1)
        return self

    # --- lookup ---

    def __contains__(self, name: object) -> bool:
        return any(c.name == name for c in self.cells)

    def __len__(self) -> int:
        return len(self.cells)

    def get(self, name: str) -> Cell:
        for c in self.cells:
            if c.name == name:
                return c
        raise KeyError(f"No cell named {name!r} in {self.name!r}; available: {self.names()}")

    def names(self) -> List[str]:
        return [c.name for c in self.cells]

    def find(self, prefix: str) -> List[Cell]:
        """All cells whose name starts with ``prefix``, in insertion order."""

        return [c for c in self.cells if c.name.startswith(prefix)]

    def walk(self) -> Iterator[Tuple[str, Any]]:
        """Yield (dotted path, content) for every cell, descending into nested tables."""

        for c in self.cells:
            path = f"{self.name}.{c.name}"
            yield path, c.grob
            if isinstance(c.grob, GTable):
                for sub, content in c.grob.walk():
                    yield f"{path}.{sub.split('.', 1)[1]}", content

    def describe(self) -> Dict[str, Any]:
        """Plain-dict summary (dimensions plus cell extents), recursing into nested tables."""

        return {
            "name": self.name,
            "dim": list(self.dim),
            "cells": {
                c.name: {
                    "t": c.t,
                    "l": c.l,
                    "b": c.b,
                    "r": c.r,
                    "z": c.z,
                    "content": c.grob.describe() if isinstance(c.grob, GTable) else getattr(c.grob, "kind", None),
                }
                for c in self.cells
            },
        }

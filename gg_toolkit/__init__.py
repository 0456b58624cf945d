"""gg_toolkit public API proxy.

The submodules are loaded explicitly and the symbols listed in their
``__all__`` are forwarded, so ``from gg_toolkit import ggplot, geom_point``
works while every module keeps its own namespace.
"""

from __future__ import annotations

from typing import Dict

from . import aes as _aes
from . import build as _build
from . import grid as _grid
from . import plot as _plot
from . import theme as _theme
from . import validation as _validation
from .components import Component, get_component, gg_component, list_components
from .scales import ScalesList

_modules = (_aes, _plot, _build, _theme, _grid, _validation)

# Submodule names stay bound to the submodules
_shadowed = {"aes", "build", "grid", "plot", "theme", "validation", "guides", "scales", "layout"}

__all__ = [  # pyright: ignore[reportUnsupportedDunderAll]
    *[n for m in _modules for n in getattr(m, "__all__", []) if n not in _shadowed],
    "Component",
    "get_component",
    "gg_component",
    "list_components",
    "ScalesList",
]


def _export(module: object, namespace: Dict[str, object]) -> None:
    """Export all symbols from a module's __all__ into the given namespace.

    Args:
        module: Module object to export from.
        namespace: Dictionary (typically globals()) to populate with exported symbols.
    """
    for name in getattr(module, "__all__", []):
        if name not in _shadowed:
            namespace[name] = getattr(module, name)


for _m in _modules:
    _export(_m, globals())

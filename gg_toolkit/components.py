"""Component Capability Model
--------------------------

Every pluggable role of a plot (stat, geom, position, coordinate system, facet)
is a `Component`: an object configured once through its constructor and frozen
afterwards.  Hooks receive and return plain values (`data`, `params`); any
per-render state lives in those values, never on the component, which is what
makes it safe to share one instance between partitions and threads.

Components are registered by name with `@gg_component(role, name)` so plot
descriptors and layer constructors can refer to them as strings.  Behaviour is
shared by delegation: a variant asks `self.delegate(...)` for an instance of a
sibling variant and calls its hook, instead of inheriting from it.
"""

from __future__ import annotations

__all__ = [
    "Component",
    "ComponentMeta",
    "gg_component",
    "get_component",
    "list_components",
]

import importlib
from typing import Any, Callable, ClassVar, Dict, List, Literal, Tuple, TypeVar

import pandas as pd

from gg_toolkit import utils
from gg_toolkit.validation import PBase, PlotSpecError

Role = Literal["stat", "geom", "position", "coord", "facet"]
ROLES: Tuple[str, ...] = ("stat", "geom", "position", "coord", "facet")

# Role -> module that registers its built-in variants
_role_modules = {
    "stat": "gg_toolkit.stats",
    "geom": "gg_toolkit.geoms",
    "position": "gg_toolkit.positions",
    "coord": "gg_toolkit.coords",
    "facet": "gg_toolkit.facets",
}


class Component:
    """Base of all pluggable components.

    Subclasses declare their constructor parameters (with defaults) in
    ``parameters``.  After ``__init__`` the instance is immutable.
    """

    role: ClassVar[str] = ""
    parameters: ClassVar[Dict[str, Any]] = {}

    def __init__(self, **params: Any) -> None:  # noqa: ANN401
        unknown = sorted(set(params) - set(self.parameters))
        if unknown:
            raise TypeError(f"{type(self).__name__} got unexpected parameter(s) {unknown}")
        for k, default in self.parameters.items():
            object.__setattr__(self, k, params.get(k, default))
        object.__setattr__(self, "_frozen", True)

    def __setattr__(self, name: str, value: object) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(
                f"{type(self).__name__}.{name} cannot be set: components are immutable after construction"
            )
        object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__}.{name} cannot be deleted")

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={getattr(self, k)!r}" for k in self.parameters)
        return f"{type(self).__name__}({args})"

    @property
    def name(self) -> str:
        """Registry name of the component (class name when unregistered)."""

        return getattr(type(self), "_registered_name", type(self).__name__)

    def get_params(self) -> Dict[str, Any]:
        return {k: getattr(self, k) for k in self.parameters}

    # --- lifecycle hooks, all optional ---

    def setup_params(self, data: pd.DataFrame, params: Dict[str, Any]) -> Dict[str, Any]:
        """Inspect the data once and return (possibly amended) parameters."""

        return dict(params)

    def setup_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        """One-off row-level transform before any splitting."""

        return data

    def finish_data(self, data: pd.DataFrame, params: Dict[str, Any]) -> pd.DataFrame:
        """Whole-dataset adjustment after all grouped computation."""

        return data

    # --- delegation ---

    def delegate(self, other: "str | type[Component] | Component", **params: Any) -> "Component":  # noqa: ANN401
        """Instance of a sibling variant of the same role, for calling its hooks."""

        return get_component(self.role, other, **params)


# --------------------------------------------------------
#          COMPONENT REGISTRY
# --------------------------------------------------------


class ComponentMeta(PBase):
    """Metadata registered for each component class via ``@gg_component``."""

    role: Role
    name: str
    cls_name: str
    parameters: List[str] = []


registry: Dict[str, Dict[str, type]] = {role: {} for role in ROLES}
registry_meta: Dict[Tuple[str, str], ComponentMeta] = {}
_registry_bootstrapped: set[str] = set()

C = TypeVar("C", bound=type)


def gg_component(role: str, name: str) -> Callable[[C], C]:
    """Register a component class in the global registry under ``role``/``name``."""

    if role not in ROLES:
        raise ValueError(f"Unknown component role {role!r}; expected one of {ROLES}")

    def _decorator(cls: C) -> C:
        if not (isinstance(cls, type) and issubclass(cls, Component)):
            raise TypeError(f"{cls!r} must be a Component subclass to be registered")
        if cls.role != role:
            raise TypeError(f"{cls.__name__} has role {cls.role!r}, cannot register it as a {role}")
        registry[role][name] = cls
        registry_meta[(role, name)] = ComponentMeta(
            role=role, name=name, cls_name=cls.__name__, parameters=list(cls.parameters)
        )
        type.__setattr__(cls, "_registered_name", name)
        return cls

    return _decorator


def _gg_deregister(role: str, name: str) -> None:
    """Remove a component from the registry (used in tests)."""

    del registry[role][name]
    del registry_meta[(role, name)]


def _ensure_registry_loaded(role: str) -> None:
    """Import the module defining the built-in variants of ``role``."""

    if role in _registry_bootstrapped:
        return
    importlib.import_module(_role_modules[role])
    _registry_bootstrapped.add(role)


def get_component(role: str, spec: "str | type | Component", **params: Any) -> Component:  # noqa: ANN401
    """Resolve a component given as a registry name, a class or an instance."""

    if isinstance(spec, Component):
        if spec.role != role:
            raise PlotSpecError(f"Expected a {role}, got {type(spec).__name__} (a {spec.role})")
        if params:
            utils.warn(f"Ignoring parameters {sorted(params)} for already constructed {type(spec).__name__}")
        return spec
    if isinstance(spec, type):
        if not issubclass(spec, Component) or spec.role != role:
            raise PlotSpecError(f"Expected a {role} class, got {spec.__name__}")
        return spec(**params)
    if isinstance(spec, str):
        _ensure_registry_loaded(role)
        key = spec[len(role) + 1 :] if spec.startswith(f"{role}_") else spec
        if key not in registry[role]:
            raise PlotSpecError(f"Can't find {role} called {spec!r}; known: {list_components(role)}")
        return registry[role][key](**params)
    raise PlotSpecError(f"Cannot interpret {spec!r} as a {role}")


def list_components(role: str) -> List[str]:
    """Registered names for ``role`` in alphabetical order."""

    _ensure_registry_loaded(role)
    return sorted(registry[role].keys())

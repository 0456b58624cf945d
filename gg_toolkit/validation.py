"""Validation Models
------------------

Errors, invariant checks and the pydantic models describing a plot in a
serialisable form.  It defines:

- the error taxonomy raised by the build and assembly pipelines
  (`PlotError`, `PlotSpecError`, `PlotAmbiguityError`, `ContractViolation`)
- `require`, the single enforcement point for pipeline invariants
- descriptor schemas (`PlotDescriptor`, `LayerDescriptor`, `ScaleDescriptor`,
  `FacetDescriptor`, `CoordDescriptor`) that `plot.plot_from_desc` turns into
  a `GGPlot`
- strict validation helpers (`soft_validate`, `hard_validate`)
"""

from __future__ import annotations

__all__ = [
    "PBase",
    "PlotError",
    "PlotSpecError",
    "PlotAmbiguityError",
    "ContractViolation",
    "require",
    "ComponentDescriptor",
    "LayerDescriptor",
    "ScaleDescriptor",
    "FacetDescriptor",
    "CoordDescriptor",
    "PlotDescriptor",
    "hard_validate",
    "soft_validate",
]

from typing import Annotated, Any, Dict, List, Literal, Optional, Self, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, ValidationError, model_validator

from gg_toolkit.utils import warn


# Define a new base that is more strict towards unknown inputs
class PBase(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=(), arbitrary_types_allowed=True)


# --------------------------------------------------------
#          ERRORS
# --------------------------------------------------------


class PlotError(ValueError):
    """Base class for failures that abort a whole build or assemble call.

    ``layer`` (1-based) and ``stage`` are filled in by the pipeline driver so the
    message points at the part of the plot that caused the problem.
    """

    def __init__(self, message: str, *, layer: Optional[int] = None, stage: Optional[str] = None) -> None:
        self.message = message
        self.layer = layer
        self.stage = stage
        super().__init__(str(self))

    def __str__(self) -> str:
        where = []
        if self.stage is not None:
            where.append(f"while {self.stage}")
        if self.layer is not None:
            where.append(f"in layer {self.layer}")
        if not where:
            return self.message
        return f"Problem {' '.join(where)}: {self.message}"

    def with_context(self, *, layer: Optional[int] = None, stage: Optional[str] = None) -> "PlotError":
        """Return a copy of the error with the missing context filled in."""

        return type(self)(
            self.message,
            layer=self.layer if self.layer is not None else layer,
            stage=self.stage if self.stage is not None else stage,
        )


class PlotSpecError(PlotError):
    """Malformed mapping, unknown column reference or discrete/continuous mix-up."""


class PlotAmbiguityError(PlotError):
    """Two components (or two guides) that cannot be combined."""


class ContractViolation(RuntimeError):
    """Raised when a pipeline stage did not produce the invariants it promised.

    This indicates a bug in a component, not bad user input:

    - PlotSpecError: User/spec error
    - ContractViolation: Pipeline or component bug
    """


def require(condition: bool, message: str) -> None:
    """Raise `ContractViolation` with ``message`` unless ``condition`` holds."""
    if not condition:
        raise ContractViolation(message)


# --------------------------------------------------------
#          PLOT DESCRIPTION
# --------------------------------------------------------


class ComponentDescriptor(PBase):
    """A registered component referenced by name plus its constructor parameters."""

    type: str  # Registry name, e.g. 'dodge' or 'polar'
    params: Dict[str, Any] = {}


def _component_from_str(v: Any) -> Any:  # noqa: ANN401  # pydantic validators require Any
    return {"type": v} if isinstance(v, str) else v


ComponentSpec = Annotated[ComponentDescriptor, BeforeValidator(_component_from_str)]


class LayerDescriptor(PBase):
    """One layer of a plot descriptor."""

    geom: str  # Registered geom name ('point', 'bar', ...)
    stat: Optional[str] = None  # Registered stat; None uses the geom's default
    position: Optional[ComponentSpec] = None  # Name or {type, params}; None uses the geom's default
    mapping: Dict[str, str] = {}  # aesthetic -> column name or expression; 'after_stat(count)' is deferred
    params: Dict[str, Any] = {}  # Geom/stat parameters and constant aesthetics
    data: Optional[str] = None  # Key into the datasets passed to plot_from_desc; None inherits
    inherit_aes: bool = True
    show_legend: Optional[bool] = None


class ScaleDescriptor(PBase):
    """A scale for a single aesthetic."""

    aesthetic: str
    type: Literal[
        "continuous",
        "discrete",
        "binned",
        "manual",
        "identity",
        "gradient",
        "log10",
        "sqrt",
        "reverse",
    ] = "continuous"
    params: Dict[str, Any] = {}


class FacetDescriptor(PBase):
    type: Literal["null", "wrap", "grid"] = "null"
    facets: List[str] = []  # Used by 'wrap'
    rows: List[str] = []  # Used by 'grid'
    cols: List[str] = []  # Used by 'grid'
    scales: Literal["fixed", "free", "free_x", "free_y"] = "fixed"
    nrow: Optional[int] = None
    ncol: Optional[int] = None
    labeller: Literal["value", "both"] = "value"

    @model_validator(mode="after")
    def check_vars(self) -> Self:
        if self.type == "wrap" and not self.facets:
            raise ValueError("facet 'wrap' needs at least one variable in 'facets'")
        if self.type == "grid" and not (self.rows or self.cols):
            raise ValueError("facet 'grid' needs 'rows' or 'cols'")
        if self.type != "wrap" and (self.nrow or self.ncol):
            raise ValueError("'nrow'/'ncol' only make sense for facet 'wrap'")
        return self


class CoordDescriptor(PBase):
    type: Literal["cartesian", "flip", "fixed", "trans", "polar"] = "cartesian"
    params: Dict[str, Any] = {}


class PlotDescriptor(PBase):
    """Serialisable description of a whole plot (JSON/YAML friendly)."""

    data: Optional[str] = None  # Key of the default dataset
    mapping: Dict[str, str] = {}  # Default aesthetic mapping
    layers: List[LayerDescriptor] = []
    scales: List[ScaleDescriptor] = []
    facet: FacetDescriptor = FacetDescriptor()
    coord: CoordDescriptor = CoordDescriptor()
    theme: Optional[Union[str, Dict[str, Any]]] = None  # Theme name ('grey', 'minimal', 'void') or overrides
    labels: Dict[str, Optional[str]] = {}  # title/subtitle/caption/tag and per-aesthetic titles
    guides: Dict[str, str] = {}  # aesthetic -> 'legend' | 'colorbar' | 'none'

    @model_validator(mode="after")
    def check_unique_scales(self) -> Self:
        seen = [s.aesthetic for s in self.scales]
        dupes = sorted({a for a in seen if seen.count(a) > 1})
        if dupes:
            raise ValueError(f"More than one scale given for {dupes}")
        return self


# --------------------------------------------------------
#          VALIDATION UTILITIES
# --------------------------------------------------------


def hard_validate(m: dict[str, object] | PlotDescriptor) -> PlotDescriptor:
    """Validate a plot descriptor, raising errors on failure."""

    if isinstance(m, PlotDescriptor):
        return m
    return PlotDescriptor.model_validate(m)


def soft_validate(m: dict[str, object], model: type[BaseModel]) -> bool:
    """Validate a dictionary against a pydantic model, warning instead of raising."""

    try:
        model.model_validate(m)
    except ValidationError as e:
        warn(str(e))
        return False
    return True

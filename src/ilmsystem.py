# ilmsystem.py - problems and systems

"""
A problem is an immutable description (grid, bodies, scaling, boundary
conditions, forcing, physical parameters). Each concrete problem class is
one variant, fixed by its kind (scalar or vector) and by the two hooks it
implements:

    prob_cache(base_cache) -> extra cache     (required; abstract)
    solve(system, ...)     -> results         (MissingProblemHookError if absent)

`construct_system` builds the base cache, the forcing regions and the extra
cache, in that order, and packs them into an immutable ILMSystem. Solves
reuse the system's cached matrices and scratch space, so one system must not
be solved from several threads at once.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, Generic, List, Optional, Tuple, TypeVar

import numpy as np

from ilmbase import BasicILMCache, ILMConfig, ILMKind, default_ilm_config, surface_cache_for
from ilmerrors import ILMConfigurationError, MissingProblemHookError
from ilmforcing import ForcingModelAndRegion, apply_forcing, create_forcing_cache
from ilmgeometry import BodyLike, to_bodylist
from ilmgrid import PhysicalGrid, Scaling, check_scaling

logger = logging.getLogger(__name__)

ExtraCacheT = TypeVar("ExtraCacheT")

BCFunction = Callable[[BasicILMCache, Any], np.ndarray]

# Default of update_system arguments that are left unchanged.
_UNCHANGED = object()


class ILMProblem(ABC):
    kind: ClassVar[ILMKind]
    # Boundary-condition entries `solve` relies on; checked by construct_system.
    required_bc_keys: ClassVar[Tuple[str, ...]] = ()

    _FIELDS = ("grid", "bodies", "scaling", "ddftype", "bc", "forcing", "phys_params", "timestep_func")

    def __init__(
        self,
        grid: PhysicalGrid,
        bodies: BodyLike,
        *,
        scaling: Optional[Scaling] = None,
        ddftype: Optional[str] = None,
        bc: Optional[Dict[str, BCFunction]] = None,
        forcing=None,
        phys_params: Any = None,
        timestep_func: Optional[Callable] = None,
        config: ILMConfig = default_ilm_config,
    ):
        config = config.with_changes(
            **{k: v for k, v in (("scaling", scaling), ("ddftype", ddftype)) if v is not None}
        )

        object.__setattr__(self, "grid", grid)
        object.__setattr__(self, "bodies", to_bodylist(bodies))
        object.__setattr__(self, "scaling", check_scaling(config.scaling))
        object.__setattr__(self, "ddftype", config.ddftype)
        object.__setattr__(self, "bc", dict(bc) if bc is not None else {})
        object.__setattr__(self, "forcing", forcing)
        object.__setattr__(self, "phys_params", phys_params)
        object.__setattr__(self, "timestep_func", timestep_func)
        object.__setattr__(self, "_initialized", True)

    # --- Enforce Immutability ---
    def __setattr__(self, name, value):
        if not getattr(self, "_initialized", False):
            super().__setattr__(name, value)
        else:
            raise AttributeError(
                f"Cannot set attribute '{name}'. '{self.__class__.__name__}' instance is immutable."
            )

    def __delattr__(self, name):
        raise AttributeError(
            f"Cannot delete attribute '{name}'. '{self.__class__.__name__}' instance is immutable."
        )

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(kind={self.kind.name}, grid={self.grid!r}, "
            f"npts={self.bodies.npts}, scaling={self.scaling.name}, bc={sorted(self.bc)})"
        )

    def with_changes(self, **kwargs) -> "ILMProblem":
        for key in kwargs:
            if key not in self._FIELDS:
                raise ValueError(f"{key}: Invalid change. Can only change: {list(self._FIELDS)}.")
        current = {k: getattr(self, k) for k in self._FIELDS}
        current.update(kwargs)
        grid = current.pop("grid")
        bodies = current.pop("bodies")
        return self.__class__(grid, bodies, **current)

    def copy(self):
        return self.with_changes()

    def base_cache(self) -> BasicILMCache:
        return surface_cache_for(self.kind)(
            self.bodies, self.grid, scaling=self.scaling, ddftype=self.ddftype
        )

    def validate_bc(self) -> None:
        missing = [k for k in self.required_bc_keys if k not in self.bc]
        if missing:
            raise ILMConfigurationError(
                f"{self.__class__.__name__}: missing boundary-condition entries {missing}; "
                f"got {sorted(self.bc)}."
            )
        for k, fcn in self.bc.items():
            if not callable(fcn):
                raise ILMConfigurationError(
                    f"{self.__class__.__name__}: bc['{k}'] is not callable."
                )

    # --- Hooks ---
    @abstractmethod
    def prob_cache(self, base_cache: BasicILMCache) -> Any:
        """Builds the problem-specific extra cache."""

    def solve(self, system: "ILMSystem", *args, **kwargs):
        raise MissingProblemHookError(
            f"{self.__class__.__name__} does not define a solve routine."
        )


class ScalarILMProblem(ILMProblem):
    kind = ILMKind.SCALAR


class VectorILMProblem(ILMProblem):
    kind = ILMKind.VECTOR


class BasicScalarILMProblem(ScalarILMProblem):
    """Scalar problem with an empty extra cache."""

    def prob_cache(self, base_cache):
        return None


class BasicVectorILMProblem(VectorILMProblem):
    """Vector problem with an empty extra cache."""

    def prob_cache(self, base_cache):
        return None


class ILMSystem(Generic[ExtraCacheT]):
    """
    Immutable binding of a problem to its caches. The extra cache is opaque
    here; only the problem's own hooks look inside it.
    """

    def __init__(
        self,
        *,
        base_cache: BasicILMCache,
        extra_cache: ExtraCacheT,
        forcing: List[ForcingModelAndRegion],
        problem: ILMProblem,
    ):
        object.__setattr__(self, "base_cache", base_cache)
        object.__setattr__(self, "extra_cache", extra_cache)
        object.__setattr__(self, "forcing", forcing)
        object.__setattr__(self, "problem", problem)
        object.__setattr__(self, "_initialized", True)

    def __setattr__(self, name, value):
        if not getattr(self, "_initialized", False):
            super().__setattr__(name, value)
        else:
            raise AttributeError(
                f"Cannot set attribute '{name}'. '{self.__class__.__name__}' instance is immutable."
            )

    def __delattr__(self, name):
        raise AttributeError(
            f"Cannot delete attribute '{name}'. '{self.__class__.__name__}' instance is immutable."
        )

    def __repr__(self):
        return f"ILMSystem(problem={self.problem!r}, extra_cache={type(self.extra_cache).__name__})"

    @property
    def bc(self) -> Dict[str, BCFunction]:
        return self.problem.bc

    @property
    def phys_params(self):
        return self.problem.phys_params

    @property
    def grid(self) -> PhysicalGrid:
        return self.base_cache.grid

    def apply_forcing(self, out: np.ndarray, state, t: float) -> np.ndarray:
        return apply_forcing(out, state, t, self.forcing, self.phys_params)

    def timestep(self, *args, **kwargs):
        if self.problem.timestep_func is None:
            raise MissingProblemHookError(
                f"{type(self.problem).__name__} was built without a timestep_func."
            )
        return self.problem.timestep_func(*args, self, **kwargs)


def construct_system(problem: ILMProblem) -> ILMSystem:
    """
    Base cache -> forcing regions -> extra cache. Nothing is returned if any
    step fails.
    """
    problem.validate_bc()

    tic = time.perf_counter()
    base_cache = problem.base_cache()
    forcing = create_forcing_cache(problem.forcing, base_cache)
    extra_cache = problem.prob_cache(base_cache)
    elapsed = time.perf_counter() - tic

    logger.info(f"Constructed system for {type(problem).__name__} in {elapsed:.3f}s")
    return ILMSystem(
        base_cache=base_cache, extra_cache=extra_cache, forcing=forcing, problem=problem
    )


def regenerate_problem(system: ILMSystem, bodies: BodyLike) -> ILMProblem:
    """The system's problem with new bodies."""
    return system.problem.with_changes(bodies=to_bodylist(bodies))


def update_system(
    system: ILMSystem, *, bodies: Optional[BodyLike] = None, phys_params: Any = _UNCHANGED
) -> ILMSystem:
    """
    A new system for moved bodies and/or new physical parameters (None is a
    valid new value for phys_params). The caches are rebuilt from scratch;
    the old system should not be used afterwards.
    """
    changes = {}
    if bodies is not None:
        changes["bodies"] = to_bodylist(bodies)
    if phys_params is not _UNCHANGED:
        changes["phys_params"] = phys_params
    logger.info(f"Updating system ({', '.join(changes) or 'no changes'})")
    return construct_system(system.problem.with_changes(**changes))


def solve(system: ILMSystem, *args, **kwargs):
    """Runs the solve hook of the system's problem."""
    return system.problem.solve(system, *args, **kwargs)

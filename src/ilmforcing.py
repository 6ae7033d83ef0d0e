# ilmforcing.py - area, line and point forcing

"""
A forcing model pairs a region (the shape over which the forcing acts) with
a strength function. The region's operator (a mask, or a regularization
operator) is built once from the system's base cache; each evaluation only
recomputes the strengths.

Strength functions are written in place:

    strength_fcn(strength, state, t, region_cache, phys_params) -> None

`apply_forcing` adds the regularized or masked strengths to its output,
unlike the surface operators, which overwrite.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

import ilmsurface as isf
from ilmbase import BasicILMCache, ILMKind, surface_cache_for
from ilmddf import ddf_stencil, get_ddf
from ilmerrors import DimensionMismatchError
from ilmgeometry import BodyLike, to_bodylist

logger = logging.getLogger(__name__)

StrengthFcn = Callable[..., None]
PositionFcn = Callable[..., Tuple[np.ndarray, np.ndarray]]


# --- Forcing models ---


class ForcingModel(ABC):
    def __init__(self, strength_fcn: StrengthFcn):
        self.strength_fcn = strength_fcn

    @abstractmethod
    def region_cache(self, base_cache: BasicILMCache) -> "RegionCache":
        pass


class AreaForcingModel(ForcingModel):
    """Forcing over the interior of `shape`; the strength is a grid field."""

    def __init__(self, shape: BodyLike, strength_fcn: StrengthFcn):
        super().__init__(strength_fcn)
        self.shape = to_bodylist(shape)

    def region_cache(self, base_cache):
        return AreaRegionCache(self.shape, base_cache)


class LineForcingModel(ForcingModel):
    """Forcing concentrated on the curve `shape`; the strength is surface data on its points."""

    def __init__(self, shape: BodyLike, strength_fcn: StrengthFcn):
        super().__init__(strength_fcn)
        self.shape = to_bodylist(shape)

    def region_cache(self, base_cache):
        return LineRegionCache(self.shape, base_cache)


class PointForcingModel(ForcingModel):
    """
    Forcing at discrete points, either fixed (`points` = (x, y)) or given by
    `position_fcn(state, t, region_cache, phys_params) -> (x, y)`, which is
    re-evaluated, with the DDF stencil rebuilt, at every call.
    """

    def __init__(
        self,
        points: Union[Tuple[Sequence[float], Sequence[float]], PositionFcn],
        strength_fcn: StrengthFcn,
        *,
        ddftype: Optional[str] = None,
    ):
        super().__init__(strength_fcn)
        if callable(points):
            self.position_fcn = points
            self.points = None
        else:
            x = np.atleast_1d(np.asarray(points[0], dtype=float))
            y = np.atleast_1d(np.asarray(points[1], dtype=float))
            if x.shape != y.shape:
                raise DimensionMismatchError(
                    f"PointForcingModel: x and y of different lengths ({x.size}, {y.size})."
                )
            self.position_fcn = None
            self.points = (x, y)
        if ddftype is not None:
            get_ddf(ddftype)
        self.ddftype = ddftype

    def region_cache(self, base_cache):
        return PointRegionCache(self, base_cache)


# --- Region caches ---


class RegionCache(ABC):
    def __init__(self, base_cache: BasicILMCache):
        self.base_cache = base_cache

    @abstractmethod
    def zeros_strength(self) -> np.ndarray:
        pass

    @abstractmethod
    def accumulate(self, out: np.ndarray, strength: np.ndarray, state, t, phys_params) -> None:
        """out += (region operator)(strength)."""


class AreaRegionCache(RegionCache):
    def __init__(self, shape, base_cache: BasicILMCache):
        super().__init__(base_cache)
        region = surface_cache_for(base_cache.kind)(
            shape, base_cache.grid, scaling=base_cache.scaling, ddftype=base_cache.ddftype
        )
        self.mask = isf.mask(base_cache.zeros_grid(), region)

    def zeros_strength(self):
        return self.base_cache.zeros_grid()

    def accumulate(self, out, strength, state, t, phys_params):
        out += self.mask * strength


class LineRegionCache(RegionCache):
    def __init__(self, shape, base_cache: BasicILMCache):
        super().__init__(base_cache)
        self.curve_cache = surface_cache_for(base_cache.kind)(
            shape, base_cache.grid, scaling=base_cache.scaling, ddftype=base_cache.ddftype
        )
        self._work = base_cache.zeros_grid()

    def zeros_strength(self):
        return self.curve_cache.zeros_surface()

    def accumulate(self, out, strength, state, t, phys_params):
        isf.regularize(self._work, strength, self.curve_cache)
        out += self._work


class PointRegionCache(RegionCache):
    """
    Point strengths are regularized as Phi s / cellvol, so a point of unit
    strength integrates to one over the grid.
    """

    def __init__(self, model: PointForcingModel, base_cache: BasicILMCache):
        super().__init__(base_cache)
        self.model = model
        self.ddf = get_ddf(model.ddftype if model.ddftype is not None else base_cache.ddftype)
        self.lattices = base_cache.data_topology.lattices
        self.x = np.zeros(0)
        self.y = np.zeros(0)
        self.stencils = []
        if model.points is not None:
            self.update_points(*model.points)

    @property
    def npts(self) -> int:
        return self.x.size

    def update_points(self, x, y) -> None:
        x = np.atleast_1d(np.asarray(x, dtype=float))
        y = np.atleast_1d(np.asarray(y, dtype=float))
        if x.shape != y.shape:
            raise DimensionMismatchError(
                f"Point positions of different lengths ({x.size}, {y.size})."
            )
        grid = self.base_cache.grid
        self.x, self.y = x, y
        self.stencils = [ddf_stencil(grid, lat, x, y, self.ddf) for lat in self.lattices]

    def zeros_strength(self):
        if self.base_cache.kind is ILMKind.SCALAR:
            return np.zeros(self.npts)
        return np.zeros((2, self.npts))

    def accumulate(self, out, strength, state, t, phys_params):
        expected = self.zeros_strength().shape
        if strength.shape != expected:
            raise DimensionMismatchError(
                f"Point strengths of shape {strength.shape} for {self.npts} points (expected {expected})."
            )
        grid = self.base_cache.grid
        components = grid.components(out, self.base_cache.data_topology)
        strengths = [strength] if strength.ndim == 1 else list(strength)
        cellvol = self.base_cache.cell_volume
        for comp, phi, s in zip(components, self.stencils, strengths):
            comp += (phi @ s).reshape(comp.shape) / cellvol


class ForcingModelAndRegion:
    """A forcing model bound to the region cache built for one base cache."""

    def __init__(self, model: ForcingModel, base_cache: BasicILMCache):
        self.model = model
        self.region_cache = model.region_cache(base_cache)

    def apply(self, out: np.ndarray, state, t, phys_params) -> None:
        region = self.region_cache
        model = self.model
        if isinstance(model, PointForcingModel) and model.position_fcn is not None:
            region.update_points(*model.position_fcn(state, t, region, phys_params))

        strength = region.zeros_strength()
        model.strength_fcn(strength, state, t, region, phys_params)
        region.accumulate(out, strength, state, t, phys_params)


def create_forcing_cache(
    forcing: Union[None, ForcingModel, Sequence[ForcingModel]], base_cache: BasicILMCache
) -> List[ForcingModelAndRegion]:
    """Region caches for every forcing model (none, one, or a sequence)."""
    if forcing is None:
        models = []
    elif isinstance(forcing, ForcingModel):
        models = [forcing]
    else:
        models = list(forcing)
    fcache = [ForcingModelAndRegion(m, base_cache) for m in models]
    if fcache:
        logger.info(
            f"Built {len(fcache)} forcing region(s): "
            f"{[type(f.region_cache).__name__ for f in fcache]}"
        )
    return fcache


def apply_forcing(
    out: np.ndarray, state, t: float, fcache: List[ForcingModelAndRegion], phys_params
) -> np.ndarray:
    """Evaluates every forcing model and adds the result to `out`."""
    for fr in fcache:
        fr.apply(out, state, t, phys_params)
    return out

# ilmbase.py - basic immersed-layer caches

"""
Surface data layout: scalar data has shape (n,), vector data has shape (2, n)
(row 0: x-components, row 1: y-components), n being the number of surface
points of all bodies together.

Regularization of surface data f onto a lattice is

    R f = Phi diag(areas) f / cellvol,

Phi being the DDF stencil of the lattice, and interpolation is E = Phi^T. With
the grid inner product sum(u v) cellvol and the surface inner product
sum(f g areas), E is exactly the adjoint of R. Under GRID scaling areas are
the arclength weights ds and cellvol = dx^2; under INDEX scaling areas are
ds/dx and cellvol = 1.
"""

import logging
from enum import Enum
from typing import NamedTuple, Optional, Tuple

import numpy as np
import scipy.sparse as sp

from ilmddf import DEFAULT_DDF, ddf_stencil, get_ddf
from ilmerrors import DimensionMismatchError, ILMConfigurationError
from ilmgeometry import BodyLike, BodyList, to_bodylist
from ilmgrid import PhysicalGrid, Scaling, Topology, check_scaling

logger = logging.getLogger(__name__)


class ILMKind(Enum):
    SCALAR = "scalar"
    VECTOR = "vector"


class ILMConfig(NamedTuple):
    scaling: Scaling = Scaling.GRID
    ddftype: str = DEFAULT_DDF

    def with_changes(self, **kwargs) -> "ILMConfig":
        for key in kwargs:
            if key not in self._fields:
                raise ValueError(
                    f"{key}: Invalid change. Can only change: {list(self._fields)}."
                )
        new = self._replace(**kwargs)
        check_scaling(new.scaling)
        get_ddf(new.ddftype)
        return new


default_ilm_config = ILMConfig()


class BasicILMCache:
    """
    Geometry, DDF stencils and scratch space for one (grid, bodies, scaling).

    Built once; the attributes cannot be rebound afterwards. The scratch
    arrays (`gdata_cache`, `gsnorm_cache`, `gcurl_cache`, `sdata_cache`,
    `snorm_cache`) are owned by the cache and overwritten by the surface
    operators, so a cache must not be shared by concurrent solves.
    """

    kind: ILMKind
    # Topology of grid data and of its gradient.
    data_topology: Topology
    gradient_topology: Topology
    curl_topology = Topology.DUAL_NODES

    def __init__(
        self,
        bodies: BodyLike,
        grid: PhysicalGrid,
        *,
        scaling: Optional[Scaling] = None,
        ddftype: Optional[str] = None,
        areas: Optional[np.ndarray] = None,
        config: ILMConfig = default_ilm_config,
    ):
        scaling = check_scaling(config.scaling if scaling is None else scaling)
        ddf = get_ddf(config.ddftype if ddftype is None else ddftype)

        bl = to_bodylist(bodies)
        npts = bl.npts
        if npts == 0:
            raise DimensionMismatchError(
                f"{self.__class__.__name__}: no surface points to build a cache on."
            )

        x, y = bl.x, bl.y
        nx, ny = bl.normals()
        ds = bl.arclength_weights()
        if areas is not None:
            ds = np.asarray(areas, dtype=float)
            if ds.shape != (npts,):
                raise DimensionMismatchError(
                    f"areas has shape {ds.shape}, expected ({npts},)."
                )

        outside = ~grid.contains(x, y)
        if np.any(outside):
            logger.warning(
                f"{np.count_nonzero(outside)} of {npts} surface points lie outside "
                f"the grid extents {grid.xlim} x {grid.ylim}; regularization is truncated there."
            )

        sareas = ds.copy() if scaling is Scaling.GRID else ds / grid.dx

        # One stencil per lattice; the operators pick the ones they need.
        stencils = {lat: ddf_stencil(grid, lat, x, y, ddf) for lat in ("P", "U", "V", "W")}

        points = np.vstack([x, y])
        normals = np.vstack([nx, ny])
        for a in (points, normals, sareas):
            a.setflags(write=False)

        object.__setattr__(self, "_grid", grid)
        object.__setattr__(self, "_bodies", bl)
        object.__setattr__(self, "_scaling", scaling)
        object.__setattr__(self, "_ddf", ddf)
        object.__setattr__(self, "_points", points)
        object.__setattr__(self, "_normals", normals)
        object.__setattr__(self, "_areas", sareas)
        object.__setattr__(self, "_stencils", stencils)

        object.__setattr__(self, "gdata_cache", self.zeros_grid())
        object.__setattr__(self, "gsnorm_cache", self.zeros_gridgrad())
        object.__setattr__(self, "gcurl_cache", self.zeros_gridcurl())
        object.__setattr__(self, "sdata_cache", self.zeros_surface())
        object.__setattr__(self, "snorm_cache", self.zeros_surface_vector())
        object.__setattr__(self, "_initialized", True)

        logger.info(
            f"Built {self.__class__.__name__}: {npts} points on {len(bl)} body(ies), "
            f"grid {grid.nx}x{grid.ny}, {scaling.name} scaling, {ddf.name} DDF"
        )

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
            f"{self.__class__.__name__}(npts={self.npts}, grid={self._grid!r}, "
            f"scaling={self._scaling.name}, ddftype={self._ddf.name})"
        )

    # --- Accessors ---
    @property
    def grid(self) -> PhysicalGrid:
        return self._grid

    @property
    def bodies(self) -> BodyList:
        return self._bodies

    @property
    def scaling(self) -> Scaling:
        return self._scaling

    @property
    def ddftype(self) -> str:
        return self._ddf.name

    @property
    def npts(self) -> int:
        return self._areas.size

    @property
    def delta(self) -> float:
        return self._grid.delta(self._scaling)

    @property
    def cell_volume(self) -> float:
        return self._grid.cell_volume(self._scaling)

    def points(self) -> np.ndarray:
        """Surface point coordinates, shape (2, n)."""
        return self._points

    def normals(self) -> np.ndarray:
        """Outward unit normals, shape (2, n)."""
        return self._normals

    def areas(self) -> np.ndarray:
        """Scaled quadrature weights, shape (n,)."""
        return self._areas

    def stencil(self, lattice: str) -> sp.csr_array:
        return self._stencils[lattice]

    # --- Field constructors ---
    def surface_shape(self) -> Tuple[int, ...]:
        return (self.npts,) if self.kind is ILMKind.SCALAR else (2, self.npts)

    def zeros_surface(self) -> np.ndarray:
        return np.zeros(self.surface_shape())

    def ones_surface(self) -> np.ndarray:
        return np.ones(self.surface_shape())

    def zeros_surface_scalar(self) -> np.ndarray:
        return np.zeros(self.npts)

    def zeros_surface_vector(self) -> np.ndarray:
        return np.zeros((2, self.npts))

    def zeros_grid(self) -> np.ndarray:
        return self._grid.zeros(self.data_topology)

    def ones_grid(self) -> np.ndarray:
        return self._grid.ones(self.data_topology)

    def zeros_gridgrad(self) -> np.ndarray:
        return self._grid.zeros(self.gradient_topology)

    def ones_gridgrad(self) -> np.ndarray:
        return self._grid.ones(self.gradient_topology)

    def zeros_gridcurl(self) -> np.ndarray:
        return self._grid.zeros(self.curl_topology)

    def ones_gridcurl(self) -> np.ndarray:
        return self._grid.ones(self.curl_topology)

    similar_grid = zeros_grid
    similar_surface = zeros_surface

    # --- Coordinate fields ---
    def x_grid(self) -> np.ndarray:
        return self._grid.coordinates(self.data_topology)[0]

    def y_grid(self) -> np.ndarray:
        return self._grid.coordinates(self.data_topology)[1]

    def x_gridcurl(self) -> np.ndarray:
        return self._grid.coordinates(self.curl_topology)[0]

    def y_gridcurl(self) -> np.ndarray:
        return self._grid.coordinates(self.curl_topology)[1]

    def x_gridgrad(self) -> np.ndarray:
        return self._grid.coordinates(self.gradient_topology)[0]

    def y_gridgrad(self) -> np.ndarray:
        return self._grid.coordinates(self.gradient_topology)[1]

    # --- Inner products ---
    def grid_dot(self, u: np.ndarray, v: np.ndarray) -> float:
        return self._grid.dot(u, v, self._scaling)

    def surface_dot(self, f: np.ndarray, g: np.ndarray) -> float:
        if f.shape != g.shape or f.shape[-1] != self.npts:
            raise DimensionMismatchError(
                f"surface_dot: shapes {f.shape} and {g.shape} do not match {self.npts} points."
            )
        return float(np.sum(f * g * self._areas))

    # --- Shape checks ---
    def check_surface_scalar(self, f: np.ndarray) -> None:
        if f.shape != (self.npts,):
            raise DimensionMismatchError(
                f"Expected scalar surface data of shape ({self.npts},), got {f.shape}."
            )

    def check_surface_vector(self, f: np.ndarray) -> None:
        if f.shape != (2, self.npts):
            raise DimensionMismatchError(
                f"Expected vector surface data of shape (2, {self.npts}), got {f.shape}."
            )

    # --- Lattice-level regularization/interpolation ---
    def regularize_lattice(self, out2d: np.ndarray, f: np.ndarray, lattice: str) -> None:
        """out2d = Phi_lattice (areas f) / cellvol, overwriting out2d."""
        out2d[...] = (self._stencils[lattice] @ (self._areas * f)).reshape(out2d.shape)
        out2d /= self.cell_volume

    def interpolate_lattice(self, g2d: np.ndarray, lattice: str) -> np.ndarray:
        return self._stencils[lattice].T @ g2d.ravel()


class SurfaceScalarCache(BasicILMCache):
    """Scalar surface data; grid data on cell centres, gradients on faces."""

    kind = ILMKind.SCALAR
    data_topology = Topology.NODES
    gradient_topology = Topology.EDGES


class SurfaceVectorCache(BasicILMCache):
    """Vector surface data; grid data on faces, gradients on the edge-gradient lattices."""

    kind = ILMKind.VECTOR
    data_topology = Topology.EDGES
    gradient_topology = Topology.EDGE_GRADIENT


def surface_cache_for(kind: ILMKind):
    return SurfaceScalarCache if kind is ILMKind.SCALAR else SurfaceVectorCache


# --- Explicit operators ---


def _check_operator_topology(topology: Topology) -> None:
    if topology not in (Topology.NODES, Topology.DUAL_NODES, Topology.EDGES):
        raise ILMConfigurationError(
            f"No regularization matrix onto {topology.name}; use NODES, DUAL_NODES or EDGES."
        )


def _regularization_blocks(cache: BasicILMCache, topology: Topology):
    """Sparse blocks Phi_lattice diag(areas)/cellvol for each component of `topology`."""
    _check_operator_topology(topology)
    scale = sp.diags_array(cache.areas() / cache.cell_volume)
    return [sp.csr_array(cache.stencil(lat) @ scale) for lat in topology.lattices]


class RegularizationMatrix:
    """
    Explicit regularization operator from the cache's surface points onto one
    grid topology. Scalar surface data maps to NODES or DUAL_NODES, vector
    surface data (flattened to 2n) to EDGES.
    """

    def __init__(self, cache: BasicILMCache, topology: Optional[Topology] = None):
        topology = cache.data_topology if topology is None else topology
        blocks = _regularization_blocks(cache, topology)
        self.topology = topology
        self.npts = cache.npts
        self.matrix = blocks[0] if len(blocks) == 1 else sp.block_diag(blocks, format="csr")

    @property
    def vector_data(self) -> bool:
        return self.topology is Topology.EDGES

    def __matmul__(self, f: np.ndarray) -> np.ndarray:
        return self.matrix @ np.ravel(f)

    def apply(self, out: np.ndarray, f: np.ndarray) -> np.ndarray:
        expected = (2, self.npts) if self.vector_data else (self.npts,)
        if f.shape != expected:
            raise DimensionMismatchError(f"Expected surface data of shape {expected}, got {f.shape}.")
        out[...] = self.matrix @ f.ravel()
        return out


class InterpolationMatrix:
    """Explicit interpolation operator, the weighted adjoint of RegularizationMatrix."""

    def __init__(self, cache: BasicILMCache, topology: Optional[Topology] = None):
        topology = cache.data_topology if topology is None else topology
        _check_operator_topology(topology)
        blocks = [sp.csr_array(cache.stencil(lat).T) for lat in topology.lattices]
        self.topology = topology
        self.npts = cache.npts
        self.matrix = blocks[0] if len(blocks) == 1 else sp.block_diag(blocks, format="csr")

    @property
    def vector_data(self) -> bool:
        return self.topology is Topology.EDGES

    def __matmul__(self, g: np.ndarray) -> np.ndarray:
        out = self.matrix @ g
        return out.reshape(2, self.npts) if self.vector_data else out

    def apply(self, out: np.ndarray, g: np.ndarray) -> np.ndarray:
        out[...] = self @ g
        return out

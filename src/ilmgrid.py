# ilmgrid.py - staggered Cartesian grid and its discrete operators

"""
Legenda: P: cell centres; U: x-faces; V: y-faces; W: cell vertices.

Layout: with nx, ny cells, the lattices have shapes
    P: (nx, ny)       at (xmin + (i + 1/2) dx, ymin + (j + 1/2) dx)
    U: (nx + 1, ny)   at (xmin + i dx,         ymin + (j + 1/2) dx)
    V: (nx, ny + 1)   at (xmin + (i + 1/2) dx, ymin + j dx)
    W: (nx + 1, ny + 1) at (xmin + i dx,       ymin + j dx)

A grid field is a flat float array holding the components of its topology,
each flattened in C order ('ij' indexing: i along x, j along y) and then
concatenated. All operators below act as the infinite-lattice operators
restricted to the box, with the field taken as zero outside. This is what
makes grad/divergence and curl/rot exact (negative) transposes of each other.
"""

import logging
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np
import scipy.fft
from scipy.special import roots_legendre

from ilmerrors import DimensionMismatchError, ILMConfigurationError

logger = logging.getLogger(__name__)


class Scaling(Enum):
    GRID = "grid"
    INDEX = "index"


GridScaling = Scaling.GRID
IndexScaling = Scaling.INDEX


def check_scaling(scaling) -> Scaling:
    if not isinstance(scaling, Scaling):
        raise ILMConfigurationError(
            f"Unsupported scaling {scaling!r}. Use one of: {[s.name for s in Scaling]}."
        )
    return scaling


# Offsets (in cells) of each lattice with respect to the grid origin, and the
# number of extra points it carries in each direction.
LATTICE_OFFSETS: Dict[str, Tuple[float, float]] = {
    "P": (0.5, 0.5),
    "U": (0.0, 0.5),
    "V": (0.5, 0.0),
    "W": (0.0, 0.0),
}
LATTICE_EXTRA: Dict[str, Tuple[int, int]] = {
    "P": (0, 0),
    "U": (1, 0),
    "V": (0, 1),
    "W": (1, 1),
}


class Topology(Enum):
    NODES = ("P",)
    DUAL_NODES = ("W",)
    EDGES = ("U", "V")
    # dudx, dudy, dvdx, dvdy
    EDGE_GRADIENT = ("P", "W", "W", "P")

    @property
    def lattices(self) -> Tuple[str, ...]:
        return self.value


# --- Lattice Green's function constants ---
# G(m, n) is evaluated by quadrature for max(m, n) <= LGF_NEAR and by its
# far-field expansion beyond that.
LGF_NEAR = 40
LGF_QUADRATURE_NODES = 1600
EULER_GAMMA = 0.5772156649015329


def lattice_green_table(mmax: int, nmax: int) -> np.ndarray:
    """
    Lattice Green's function of the five-point Laplacian (unit spacing),
    normalized so that G(0, 0) = 0 and L G = delta.

    G(m, n) = 1/(2 pi) int_0^pi (1 - cos(m t) exp(-|n| s(t))) / sinh(s(t)) dt,
    with cosh(s) = 2 - cos(t).

    Returns:
        np.ndarray: table[m, n] = G(m, n) for 0 <= m <= mmax, 0 <= n <= nmax.
    """
    table = np.empty((mmax + 1, nmax + 1))

    mm, nn = np.meshgrid(np.arange(mmax + 1), np.arange(nmax + 1), indexing="ij")
    r = np.hypot(mm, nn)
    far = np.maximum(mm, nn) > LGF_NEAR
    if np.any(far):
        rf = r[far]
        phi = np.arctan2(nn[far], mm[far])
        table[far] = (np.log(rf) + EULER_GAMMA + 1.5 * np.log(2.0)) / (
            2.0 * np.pi
        ) - np.cos(4.0 * phi) / (24.0 * np.pi * rf**2)

    m_near = min(mmax, LGF_NEAR)
    n_near = min(nmax, LGF_NEAR)

    x, w = roots_legendre(LGF_QUADRATURE_NODES)
    theta = 0.5 * np.pi * (x + 1.0)
    w = 0.5 * np.pi * w
    sinh_sigma = np.sqrt(2.0) * np.sin(0.5 * theta) * np.sqrt(3.0 - np.cos(theta))
    sigma = np.arcsinh(sinh_sigma)

    cos_m_theta = np.cos(np.outer(np.arange(m_near + 1), theta))
    for n in range(n_near + 1):
        integrand = (1.0 - cos_m_theta * np.exp(-n * sigma)) / sinh_sigma
        table[: m_near + 1, n] = (integrand @ w) / (2.0 * np.pi)

    return table


class PhysicalGrid:
    """
    Immutable uniform staggered grid on [xmin, xmin + nx dx] x [ymin, ymin + ny dx].

    The number of cells is the smallest one covering the requested limits.
    """

    def __init__(self, xlim: Tuple[float, float], ylim: Tuple[float, float], dx: float):
        xmin, xmax = float(xlim[0]), float(xlim[1])
        ymin, ymax = float(ylim[0]), float(ylim[1])
        dx = float(dx)

        if dx <= 0:
            raise ValueError(f"PhysicalGrid: dx must be positive, got {dx}.")
        if xmax <= xmin or ymax <= ymin:
            raise ValueError(f"PhysicalGrid: empty limits {xlim}, {ylim}.")

        nx = int(np.ceil((xmax - xmin) / dx - 1e-8))
        ny = int(np.ceil((ymax - ymin) / dx - 1e-8))

        # NOTE: 1x1 grids are rejected since the size of a field would not
        # identify its topology.
        if nx < 2 or ny < 2:
            raise ValueError(
                f"PhysicalGrid: need at least 2x2 cells, got {nx}x{ny} (dx={dx})."
            )

        object.__setattr__(self, "_dx", dx)
        object.__setattr__(self, "_nx", nx)
        object.__setattr__(self, "_ny", ny)
        object.__setattr__(self, "_origin", (xmin, ymin))
        object.__setattr__(self, "_cache_green", {})
        object.__setattr__(self, "_initialized", True)

        logger.debug(f"PhysicalGrid {nx}x{ny} cells, dx={dx}, origin=({xmin}, {ymin})")

    @property
    def dx(self) -> float:
        return self._dx

    @property
    def nx(self) -> int:
        return self._nx

    @property
    def ny(self) -> int:
        return self._ny

    @property
    def origin(self) -> Tuple[float, float]:
        return self._origin

    @property
    def xlim(self) -> Tuple[float, float]:
        return (self._origin[0], self._origin[0] + self._nx * self._dx)

    @property
    def ylim(self) -> Tuple[float, float]:
        return (self._origin[1], self._origin[1] + self._ny * self._dx)

    @property
    def cell_area(self) -> float:
        return self._dx**2

    def delta(self, scaling: Scaling) -> float:
        """Spacing used by the difference operators: dx (GRID) or 1 (INDEX)."""
        return self._dx if check_scaling(scaling) is Scaling.GRID else 1.0

    def cell_volume(self, scaling: Scaling) -> float:
        """Weight of the grid inner product: dx^2 (GRID) or 1 (INDEX)."""
        return self.cell_area if check_scaling(scaling) is Scaling.GRID else 1.0

    def __setattr__(self, name, value):
        if name.startswith("_cache_") or not getattr(self, "_initialized", False):
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
        return f"PhysicalGrid(xlim={self.xlim}, ylim={self.ylim}, dx={self._dx}, cells={self._nx}x{self._ny})"

    # --- Layout ---

    def lattice_shape(self, lattice: str) -> Tuple[int, int]:
        ex, ey = LATTICE_EXTRA[lattice]
        return (self._nx + ex, self._ny + ey)

    def component_shapes(self, topology: Topology) -> List[Tuple[int, int]]:
        return [self.lattice_shape(lat) for lat in topology.lattices]

    def size(self, topology: Topology) -> int:
        return sum(a * b for a, b in self.component_shapes(topology))

    def zeros(self, topology: Topology) -> np.ndarray:
        return np.zeros(self.size(topology))

    def ones(self, topology: Topology) -> np.ndarray:
        return np.ones(self.size(topology))

    def topology_of(self, field: np.ndarray) -> Topology:
        if field.ndim != 1:
            raise DimensionMismatchError(
                f"Grid fields are flat arrays, got shape {field.shape}."
            )
        for topology in Topology:
            if field.size == self.size(topology):
                return topology
        raise DimensionMismatchError(
            f"Field of size {field.size} does not match any topology of {self!r}."
        )

    def check_topology(self, field: np.ndarray, topology: Topology) -> None:
        if field.ndim != 1 or field.size != self.size(topology):
            raise DimensionMismatchError(
                f"Expected a {topology.name} field of size {self.size(topology)}, "
                f"got shape {field.shape}."
            )

    def components(self, field: np.ndarray, topology: Topology) -> List[np.ndarray]:
        """Reshaped views of the components of `field` (writes go through)."""
        self.check_topology(field, topology)
        views = []
        start = 0
        for shape in self.component_shapes(topology):
            stop = start + shape[0] * shape[1]
            views.append(field[start:stop].reshape(shape))
            start = stop
        return views

    def lattice_coordinates(self, lattice: str) -> Tuple[np.ndarray, np.ndarray]:
        """1D x and y coordinates of a lattice."""
        ox, oy = LATTICE_OFFSETS[lattice]
        a, b = self.lattice_shape(lattice)
        x = self._origin[0] + (np.arange(a) + ox) * self._dx
        y = self._origin[1] + (np.arange(b) + oy) * self._dx
        return x, y

    def coordinates(self, topology: Topology) -> Tuple[np.ndarray, np.ndarray]:
        """Flat fields holding the x and y coordinate of every point of `topology`."""
        xs, ys = [], []
        for lattice in topology.lattices:
            x, y = self.lattice_coordinates(lattice)
            xx, yy = np.meshgrid(x, y, indexing="ij")
            xs.append(xx.ravel())
            ys.append(yy.ravel())
        return np.concatenate(xs), np.concatenate(ys)

    def contains(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        (x0, x1), (y0, y1) = self.xlim, self.ylim
        return (x >= x0) & (x <= x1) & (y >= y0) & (y <= y1)

    def dot(self, u: np.ndarray, v: np.ndarray, scaling: Scaling = Scaling.GRID) -> float:
        """Grid inner product, sum(u v) times the cell volume of `scaling`."""
        if u.shape != v.shape:
            raise DimensionMismatchError(f"dot: shapes {u.shape} and {v.shape} differ.")
        return float(np.dot(u, v)) * self.cell_volume(scaling)

    # --- Lattice Green's function ---

    def _green_table(self) -> np.ndarray:
        try:
            return object.__getattribute__(self, "_cache_green_table")
        except AttributeError:
            logger.debug(f"Tabulating lattice Green's function up to ({self._nx}, {self._ny})")
            table = lattice_green_table(self._nx, self._ny)
            object.__setattr__(self, "_cache_green_table", table)
            return table

    def green_kernel_hat(self, shape: Tuple[int, int]):
        """
        Real FFT of the Green's function kernel for a lattice of `shape`, and
        the padded FFT size. Cached per shape on the grid.
        """
        if shape not in self._cache_green:
            a, b = shape
            table = self._green_table()
            p = np.abs(np.arange(2 * a - 1) - (a - 1))
            q = np.abs(np.arange(2 * b - 1) - (b - 1))
            kernel = table[np.ix_(p, q)]
            fft_shape = (
                scipy.fft.next_fast_len(2 * a - 1, real=True),
                scipy.fft.next_fast_len(2 * b - 1, real=True),
            )
            self._cache_green[shape] = (scipy.fft.rfft2(kernel, s=fft_shape), fft_shape)
        return self._cache_green[shape]


# --- Grid operators ---
# Each operator fully overwrites `out` and returns it.


def _check_out(out: np.ndarray, grid: PhysicalGrid, topology: Topology):
    grid.check_topology(out, topology)


def grad(out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float) -> np.ndarray:
    """
    NODES -> EDGES:  u[i,j] = (p[i,j] - p[i-1,j])/delta, v likewise in y.
    EDGES -> EDGE_GRADIENT: dudx, dvdy on cell centres, dudy, dvdx on vertices.
    """
    topology = grid.topology_of(f)
    if topology is Topology.NODES:
        (p,) = grid.components(f, topology)
        u, v = grid.components(out, Topology.EDGES)
        u[...] = 0.0
        u[:-1, :] += p
        u[1:, :] -= p
        v[...] = 0.0
        v[:, :-1] += p
        v[:, 1:] -= p
    elif topology is Topology.EDGES:
        u, v = grid.components(f, topology)
        dudx, dudy, dvdx, dvdy = grid.components(out, Topology.EDGE_GRADIENT)
        dudx[...] = u[1:, :] - u[:-1, :]
        dvdy[...] = v[:, 1:] - v[:, :-1]
        dudy[...] = 0.0
        dudy[:, :-1] += u
        dudy[:, 1:] -= u
        dvdx[...] = 0.0
        dvdx[:-1, :] += v
        dvdx[1:, :] -= v
    else:
        raise DimensionMismatchError(f"grad: unsupported input topology {topology.name}.")
    out /= delta
    return out


def divergence(out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float) -> np.ndarray:
    """
    EDGES -> NODES and EDGE_GRADIENT -> EDGES. Equal to minus the transpose of `grad`.
    """
    topology = grid.topology_of(f)
    if topology is Topology.EDGES:
        u, v = grid.components(f, topology)
        (p,) = grid.components(out, Topology.NODES)
        p[...] = u[1:, :] - u[:-1, :] + v[:, 1:] - v[:, :-1]
    elif topology is Topology.EDGE_GRADIENT:
        dudx, dudy, dvdx, dvdy = grid.components(f, topology)
        u, v = grid.components(out, Topology.EDGES)
        u[...] = dudy[:, 1:] - dudy[:, :-1]
        u[:-1, :] += dudx
        u[1:, :] -= dudx
        v[...] = dvdx[1:, :] - dvdx[:-1, :]
        v[:, :-1] += dvdy
        v[:, 1:] -= dvdy
    else:
        raise DimensionMismatchError(
            f"divergence: unsupported input topology {topology.name}."
        )
    out /= delta
    return out


def curl(out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float) -> np.ndarray:
    """DUAL_NODES -> EDGES: u = d(psi)/dy, v = -d(psi)/dx."""
    (w,) = grid.components(f, Topology.DUAL_NODES)
    u, v = grid.components(out, Topology.EDGES)
    u[...] = w[:, 1:] - w[:, :-1]
    v[...] = w[:-1, :] - w[1:, :]
    out /= delta
    return out


def rot(out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float) -> np.ndarray:
    """EDGES -> DUAL_NODES: dv/dx - du/dy. The exact transpose of `curl`."""
    u, v = grid.components(f, Topology.EDGES)
    (w,) = grid.components(out, Topology.DUAL_NODES)
    w[...] = 0.0
    w[:-1, :] += v
    w[1:, :] -= v
    w[:, :-1] -= u
    w[:, 1:] += u
    out /= delta
    return out


def _laplacian_2d(a: np.ndarray) -> np.ndarray:
    la = -4.0 * a
    la[1:, :] += a[:-1, :]
    la[:-1, :] += a[1:, :]
    la[:, 1:] += a[:, :-1]
    la[:, :-1] += a[:, 1:]
    return la


def laplacian(out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float) -> np.ndarray:
    """Five-point Laplacian of each component, zero outside the box."""
    topology = grid.topology_of(f)
    for o, a in zip(grid.components(out, topology), grid.components(f, topology)):
        o[...] = _laplacian_2d(a)
    out /= delta**2
    return out


def inverse_laplacian(
    out: np.ndarray, f: np.ndarray, grid: PhysicalGrid, delta: float
) -> np.ndarray:
    """
    Unbounded-domain inverse of the five-point Laplacian of each component:
    the convolution of `f` (zero outside the box) with the lattice Green's
    function, sampled on the box. Applied by FFT with a kernel cached per
    lattice shape on the grid.
    """
    topology = grid.topology_of(f)
    for o, a in zip(grid.components(out, topology), grid.components(f, topology)):
        na, nb = a.shape
        khat, fft_shape = grid.green_kernel_hat(a.shape)
        conv = scipy.fft.irfft2(scipy.fft.rfft2(a, s=fft_shape) * khat, s=fft_shape)
        o[...] = conv[na - 1 : 2 * na - 1, nb - 1 : 2 * nb - 1]
    out *= delta**2
    return out


# --- Pointwise helpers for surface data ---


def pointwise_dot(out: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """out[k] = a[0,k] b[0,k] + a[1,k] b[1,k] for vector surface data of shape (2, n)."""
    if a.shape != b.shape or a.ndim != 2 or a.shape[0] != 2:
        raise DimensionMismatchError(
            f"pointwise_dot: expected two (2, n) arrays, got {a.shape} and {b.shape}."
        )
    np.einsum("ik,ik->k", a, b, out=out)
    return out


def product(out: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Elementwise product; scalar surface data broadcasts over vector data."""
    np.multiply(a, b, out=out)
    return out

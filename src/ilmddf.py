"""
Discrete delta functions (DDFs) and the sparse stencils they generate.

Kernels are one-dimensional functions of the distance r measured in grid
cells; the two-dimensional kernel is their tensor product. All kernels below
sum to one over any integer-shifted lattice.
"""

from typing import Callable, Dict, NamedTuple

import numpy as np
import scipy.sparse as sp

from ilmerrors import DimensionMismatchError, ILMConfigurationError
from ilmgrid import LATTICE_OFFSETS, PhysicalGrid


class DDF(NamedTuple):
    name: str
    support: float
    kernel: Callable[[np.ndarray], np.ndarray]

    def __call__(self, r):
        return self.kernel(np.asarray(r, dtype=float))


def _witchhat(r):
    return np.maximum(1.0 - np.abs(r), 0.0)


def _roma(r):
    """Roma et al. (1999), three-point kernel."""
    a = np.abs(r)
    out = np.zeros_like(a)
    inner = a <= 0.5
    outer = (a > 0.5) & (a <= 1.5)
    out[inner] = (1.0 + np.sqrt(1.0 - 3.0 * a[inner] ** 2)) / 3.0
    ao = a[outer]
    out[outer] = (5.0 - 3.0 * ao - np.sqrt(np.maximum(1.0 - 3.0 * (1.0 - ao) ** 2, 0.0))) / 6.0
    return out


def _m4prime(r):
    a = np.abs(r)
    out = np.zeros_like(a)
    inner = a <= 1.0
    outer = (a > 1.0) & (a < 2.0)
    ai = a[inner]
    out[inner] = 1.0 - 2.5 * ai**2 + 1.5 * ai**3
    ao = a[outer]
    out[outer] = 0.5 * (2.0 - ao) ** 2 * (1.0 - ao)
    return out


def _cosine(r):
    a = np.abs(r)
    return np.where(a < 2.0, 0.25 * (1.0 + np.cos(0.5 * np.pi * a)), 0.0)


DDF_KERNELS: Dict[str, DDF] = {
    "Witchhat": DDF("Witchhat", 1.0, _witchhat),
    "Roma": DDF("Roma", 1.5, _roma),
    "M4prime": DDF("M4prime", 2.0, _m4prime),
    "Cosine": DDF("Cosine", 2.0, _cosine),
}

DEFAULT_DDF = "Roma"


def get_ddf(name: str) -> DDF:
    try:
        return DDF_KERNELS[name]
    except KeyError:
        raise ILMConfigurationError(
            f"Unknown DDF type '{name}'. Available: {list(DDF_KERNELS)}."
        ) from None


def ddf_stencil(
    grid: PhysicalGrid, lattice: str, x: np.ndarray, y: np.ndarray, ddf: DDF
) -> sp.csr_array:
    """
    Sparse matrix Phi of shape (lattice size, number of points) with
    Phi[(i, j), k] = ddf(xi_k - i) ddf(eta_k - j), where (xi_k, eta_k) is the
    position of point k in fractional lattice indices. Stencil entries that
    fall outside the lattice are dropped.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.shape != y.shape or x.ndim != 1:
        raise DimensionMismatchError(
            f"ddf_stencil: x and y must be 1D of equal length, got {x.shape}, {y.shape}."
        )

    a, b = grid.lattice_shape(lattice)
    npts = x.size
    if npts == 0:
        return sp.csr_array((a * b, 0))

    ox, oy = LATTICE_OFFSETS[lattice]
    x0, y0 = grid.origin
    xi = (x - x0) / grid.dx - ox
    eta = (y - y0) / grid.dx - oy

    w = int(np.ceil(ddf.support))
    k = np.arange(-w, w + 1)
    K = k.size

    ii = np.floor(xi).astype(int)[:, None, None] + k[None, :, None]
    jj = np.floor(eta).astype(int)[:, None, None] + k[None, None, :]
    vals = ddf(xi[:, None, None] - ii) * ddf(eta[:, None, None] - jj)

    ii = np.broadcast_to(ii, (npts, K, K))
    jj = np.broadcast_to(jj, (npts, K, K))
    pts = np.broadcast_to(np.arange(npts)[:, None, None], (npts, K, K))

    valid = (ii >= 0) & (ii < a) & (jj >= 0) & (jj < b) & (vals != 0.0)
    rows = ii[valid] * b + jj[valid]
    return sp.csr_array((vals[valid], (rows, pts[valid])), shape=(a * b, npts))

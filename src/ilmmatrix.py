# ilmmatrix.py - explicit surface matrices built from the surface operators

"""
Each builder applies a composite surface -> grid -> surface operator to every
standard basis vector of the surface space and collects the images as the
columns of a dense matrix. Vector surface data of shape (2, n) is flattened to
2n entries (all x-components first).

These matrices are the expensive, reusable part of a system: they are built
once per geometry, factorized once, and then only back-substituted.

Notation: R/E regularize/interpolate, L^{-1} the inverse Laplacian, C the
curl (dual nodes -> edges), C^T = rot, D_n the double layer
(`surface_divergence`) and G_n its adjoint (`surface_grad`).
"""

import logging
import time
from typing import Callable

import numpy as np
import scipy.linalg
import scipy.sparse as sp

import ilmsurface as isf
from ilmbase import BasicILMCache, ILMKind
from ilmerrors import DimensionMismatchError, SingularSchurComplementError

logger = logging.getLogger(__name__)


def _operator_matrix(
    name: str,
    cache: BasicILMCache,
    apply_fn: Callable[[np.ndarray, np.ndarray], None],
    scale: float,
) -> np.ndarray:
    shape = cache.surface_shape()
    n = int(np.prod(shape))

    e = np.zeros(shape)
    ef = e.reshape(-1)
    image = np.zeros(shape)
    A = np.empty((n, n))

    tic = time.perf_counter()
    for k in range(n):
        ef[k] = 1.0
        apply_fn(image, e)
        A[:, k] = image.reshape(-1)
        ef[k] = 0.0
    if scale != 1.0:
        A *= scale

    logger.debug(f"{name}: {n}x{n} matrix built in {time.perf_counter() - tic:.3f}s")
    return A


def create_RTLinvR(cache: BasicILMCache, *, scale: float = 1.0) -> np.ndarray:
    """
    -E L^{-1} R: the single-layer Schur complement.
    """
    g = cache.zeros_grid()

    def apply_fn(out, e):
        isf.regularize(g, e, cache)
        isf.inverse_laplacian(g, g, cache)
        isf.interpolate(out, g, cache)
        out *= -1.0

    return _operator_matrix("RTLinvR", cache, apply_fn, scale)


def create_CLinvCT(cache: BasicILMCache, *, scale: float = 1.0) -> np.ndarray:
    """
    -E C L^{-1} C^T R: the curl-layer Schur complement. Scalar data enters
    through its normal projection.
    """
    w = cache.zeros_gridcurl()

    def apply_fn(out, e):
        isf.surface_curl(w, e, cache)
        isf.inverse_laplacian(w, w, cache)
        isf.curl_interpolate(out, w, cache)
        out *= -1.0

    return _operator_matrix("CLinvCT", cache, apply_fn, scale)


def create_CL2invCT(cache: BasicILMCache, *, scale: float = 1.0) -> np.ndarray:
    """E C L^{-2} C^T R, the Schur complement of the streamfunction form of Stokes flow."""
    w = cache.zeros_gridcurl()

    def apply_fn(out, e):
        isf.surface_curl(w, e, cache)
        isf.inverse_laplacian(w, w, cache)
        isf.inverse_laplacian(w, w, cache)
        isf.curl_interpolate(out, w, cache)

    return _operator_matrix("CL2invCT", cache, apply_fn, scale)


def create_GLinvD(cache: BasicILMCache, *, scale: float = 1.0) -> np.ndarray:
    """G_n L^{-1} D_n: the double-layer (Neumann) Schur complement."""
    g = cache.zeros_grid()

    def apply_fn(out, e):
        isf.surface_divergence(g, e, cache)
        isf.inverse_laplacian(g, g, cache)
        isf.surface_grad(out, g, cache)

    return _operator_matrix("GLinvD", cache, apply_fn, scale)


def create_nRTRn(cache: BasicILMCache, *, scale: float = 1.0) -> np.ndarray:
    """n.E R n: normal interpolation of the regularized normal projection."""
    q = cache.zeros_gridgrad()

    def apply_fn(out, e):
        isf.regularize_normal(q, e, cache)
        isf.normal_interpolate(out, q, cache)

    return _operator_matrix("nRTRn", cache, apply_fn, scale)


# --- Surface filter ---


class SurfaceFilter:
    """
    Low-pass filter on surface data, C = diag(1/(Phi^T Phi 1)) Phi^T Phi, Phi
    being the DDF stencil of the data lattice(s). Rows of C sum to one.

    ``(C ** k) @ f`` applies C k times by repeated products; the power itself
    is never formed.
    """

    def __init__(self, matrix: sp.csr_array, surface_shape, power: int = 1):
        self.matrix = matrix
        self.surface_shape = tuple(surface_shape)
        self.power = power

    def __pow__(self, k: int) -> "SurfaceFilter":
        if not isinstance(k, (int, np.integer)) or k < 0:
            raise ValueError(f"SurfaceFilter powers must be non-negative integers, got {k!r}.")
        return SurfaceFilter(self.matrix, self.surface_shape, self.power * int(k))

    def __matmul__(self, f: np.ndarray) -> np.ndarray:
        if f.shape != self.surface_shape:
            raise DimensionMismatchError(
                f"SurfaceFilter: expected surface data of shape {self.surface_shape}, got {f.shape}."
            )
        out = f.reshape(-1).copy()
        for _ in range(self.power):
            out = self.matrix @ out
        return out.reshape(self.surface_shape)

    def toarray(self) -> np.ndarray:
        return self.matrix.toarray()


def create_surface_filter(cache: BasicILMCache) -> SurfaceFilter:
    lattices = ("P",) if cache.kind is ILMKind.SCALAR else ("U", "V")
    blocks = []
    for lat in lattices:
        phi = cache.stencil(lat)
        ptp = sp.csr_array(phi.T @ phi)
        rowsum = ptp @ np.ones(cache.npts)
        # Points off the grid have empty stencils; their rows pass data through.
        empty = rowsum == 0.0
        if np.any(empty):
            logger.warning(
                f"Surface filter: {np.count_nonzero(empty)} point(s) without grid support on {lat}; left unfiltered."
            )
            ptp = sp.csr_array(ptp + sp.diags_array(empty.astype(float)))
            rowsum = np.where(empty, 1.0, rowsum)
        blocks.append(sp.csr_array(sp.diags_array(1.0 / rowsum) @ ptp))
    matrix = blocks[0] if len(blocks) == 1 else sp.csr_array(sp.block_diag(blocks, format="csr"))
    return SurfaceFilter(matrix, cache.surface_shape())


# --- Factorization ---


class FactorizedMatrix:
    """LU factors of a dense surface matrix, solving for surface-shaped data."""

    def __init__(self, A: np.ndarray):
        if A.ndim != 2 or A.shape[0] != A.shape[1]:
            raise DimensionMismatchError(f"Cannot factorize a matrix of shape {A.shape}.")
        lu, piv = scipy.linalg.lu_factor(A)
        zero_pivots = np.flatnonzero(np.diag(lu) == 0.0)
        if zero_pivots.size > 0:
            raise SingularSchurComplementError(
                f"Matrix of size {A.shape[0]} is singular (zero pivot at {zero_pivots[0]})."
            )
        self.lu_piv = (lu, piv)
        self.n = A.shape[0]

    def solve(self, b: np.ndarray) -> np.ndarray:
        if b.size != self.n:
            raise DimensionMismatchError(
                f"Right-hand side of size {b.size} for a matrix of size {self.n}."
            )
        x = scipy.linalg.lu_solve(self.lu_piv, b.reshape(-1))
        return x.reshape(b.shape)


def factorize(A: np.ndarray) -> FactorizedMatrix:
    tic = time.perf_counter()
    fact = FactorizedMatrix(A)
    logger.debug(f"Factorized {A.shape[0]}x{A.shape[0]} matrix in {time.perf_counter() - tic:.3f}s")
    return fact

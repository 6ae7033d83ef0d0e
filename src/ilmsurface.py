# ilmsurface.py - surface-grid operators on a basic ILM cache

"""
Single-layer, double-layer and curl-layer operators, normal projections and
masks.

Every operator has the form op(out, input, cache), fully overwrites `out`
and returns it. Intermediate grid data lives in the cache's scratch arrays,
so `out` must not be one of them unless noted.

Legenda (surface data): f: scalar, shape (n,); v: vector, shape (2, n).
"""

import numpy as np

import ilmgrid as ig
from ilmbase import BasicILMCache, ILMKind
from ilmerrors import DimensionMismatchError
from ilmgrid import Topology


def _scratch(cache: BasicILMCache, topology: Topology, *avoid: np.ndarray) -> np.ndarray:
    """A cache scratch array of `topology` not sharing memory with `avoid` (fresh one otherwise)."""
    size = cache.grid.size(topology)
    for buf in (cache.gdata_cache, cache.gsnorm_cache, cache.gcurl_cache):
        if buf.size == size and not any(np.shares_memory(buf, a) for a in avoid):
            return buf
    return cache.grid.zeros(topology)


def _is_vector(f: np.ndarray) -> bool:
    return f.ndim == 2


def _require_vector(name: str, f: np.ndarray, cache: BasicILMCache) -> None:
    if not _is_vector(f):
        raise DimensionMismatchError(
            f"{name} acts on vector surface data of shape (2, {cache.npts}), got {f.shape}."
        )


# --- Single layer ---


def regularize(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Scalar data onto NODES or DUAL_NODES; vector data onto EDGES.
    """
    grid = cache.grid
    topology = grid.topology_of(out)
    if _is_vector(f):
        cache.check_surface_vector(f)
        if topology is not Topology.EDGES:
            raise DimensionMismatchError(
                f"Vector surface data regularizes onto EDGES, not {topology.name}."
            )
        u, v = grid.components(out, topology)
        cache.regularize_lattice(u, f[0], "U")
        cache.regularize_lattice(v, f[1], "V")
    else:
        cache.check_surface_scalar(f)
        if topology not in (Topology.NODES, Topology.DUAL_NODES):
            raise DimensionMismatchError(
                f"Scalar surface data regularizes onto NODES or DUAL_NODES, not {topology.name}."
            )
        (o,) = grid.components(out, topology)
        cache.regularize_lattice(o, f, topology.lattices[0])
    return out


def interpolate(out: np.ndarray, g: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """Adjoint of `regularize`."""
    grid = cache.grid
    topology = grid.topology_of(g)
    if _is_vector(out):
        cache.check_surface_vector(out)
        if topology is not Topology.EDGES:
            raise DimensionMismatchError(
                f"Vector surface data interpolates from EDGES, not {topology.name}."
            )
        u, v = grid.components(g, topology)
        out[0] = cache.interpolate_lattice(u, "U")
        out[1] = cache.interpolate_lattice(v, "V")
    else:
        cache.check_surface_scalar(out)
        if topology not in (Topology.NODES, Topology.DUAL_NODES):
            raise DimensionMismatchError(
                f"Scalar surface data interpolates from NODES or DUAL_NODES, not {topology.name}."
            )
        (o,) = grid.components(g, topology)
        out[...] = cache.interpolate_lattice(o, topology.lattices[0])
    return out


# --- Normal projections ---


def regularize_normal(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Scalar f -> EDGES: (n_x f, n_y f) regularized onto the faces.
    Vector v -> EDGE_GRADIENT: the tensor n_i v_j, i.e.
        dudx <- n_x v_x, dudy <- n_y v_x, dvdx <- n_x v_y, dvdy <- n_y v_y.
    """
    grid = cache.grid
    nx, ny = cache.normals()
    if _is_vector(f):
        cache.check_surface_vector(f)
        dudx, dudy, dvdx, dvdy = grid.components(out, Topology.EDGE_GRADIENT)
        cache.regularize_lattice(dudx, nx * f[0], "P")
        cache.regularize_lattice(dudy, ny * f[0], "W")
        cache.regularize_lattice(dvdx, nx * f[1], "W")
        cache.regularize_lattice(dvdy, ny * f[1], "P")
    else:
        cache.check_surface_scalar(f)
        u, v = grid.components(out, Topology.EDGES)
        cache.regularize_lattice(u, nx * f, "U")
        cache.regularize_lattice(v, ny * f, "V")
    return out


def normal_interpolate(out: np.ndarray, q: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """Adjoint of `regularize_normal`."""
    grid = cache.grid
    nx, ny = cache.normals()
    if _is_vector(out):
        cache.check_surface_vector(out)
        dudx, dudy, dvdx, dvdy = grid.components(q, Topology.EDGE_GRADIENT)
        out[0] = nx * cache.interpolate_lattice(dudx, "P") + ny * cache.interpolate_lattice(dudy, "W")
        out[1] = nx * cache.interpolate_lattice(dvdx, "W") + ny * cache.interpolate_lattice(dvdy, "P")
    else:
        cache.check_surface_scalar(out)
        u, v = grid.components(q, Topology.EDGES)
        out[...] = nx * cache.interpolate_lattice(u, "U") + ny * cache.interpolate_lattice(v, "V")
    return out


def regularize_normal_symm(out: np.ndarray, v: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Vector v -> EDGE_GRADIENT: the symmetric traceless tensor n v + v n - (n.v) I,
        dudx <- n_x v_x - n_y v_y, dudy = dvdx <- n_y v_x + n_x v_y,
        dvdy <- n_y v_y - n_x v_x.
    """
    _require_vector("regularize_normal_symm", v, cache)
    cache.check_surface_vector(v)
    grid = cache.grid
    nx, ny = cache.normals()
    dudx, dudy, dvdx, dvdy = grid.components(out, Topology.EDGE_GRADIENT)
    diag = nx * v[0] - ny * v[1]
    offdiag = ny * v[0] + nx * v[1]
    cache.regularize_lattice(dudx, diag, "P")
    cache.regularize_lattice(dudy, offdiag, "W")
    cache.regularize_lattice(dvdx, offdiag, "W")
    cache.regularize_lattice(dvdy, -diag, "P")
    return out


def normal_interpolate_symm(out: np.ndarray, q: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """Adjoint of `regularize_normal_symm`."""
    _require_vector("normal_interpolate_symm", out, cache)
    cache.check_surface_vector(out)
    grid = cache.grid
    nx, ny = cache.normals()
    dudx, dudy, dvdx, dvdy = grid.components(q, Topology.EDGE_GRADIENT)
    a_diag = cache.interpolate_lattice(dudx, "P") - cache.interpolate_lattice(dvdy, "P")
    a_off = cache.interpolate_lattice(dudy, "W") + cache.interpolate_lattice(dvdx, "W")
    out[0] = nx * a_diag + ny * a_off
    out[1] = -ny * a_diag + nx * a_off
    return out


# --- Double layer and its adjoint ---


def surface_divergence(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Double layer: divergence of the regularized normal projection.
    Scalar f -> NODES; vector v -> EDGES.
    """
    topology = Topology.EDGE_GRADIENT if _is_vector(f) else Topology.EDGES
    q = _scratch(cache, topology, out)
    regularize_normal(q, f, cache)
    return ig.divergence(out, q, cache.grid, cache.delta)


def surface_divergence_symm(out: np.ndarray, v: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """Vector v -> EDGES through the symmetric tensor of `regularize_normal_symm`."""
    q = _scratch(cache, Topology.EDGE_GRADIENT, out)
    regularize_normal_symm(q, v, cache)
    return ig.divergence(out, q, cache.grid, cache.delta)


def surface_grad(out: np.ndarray, g: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Normal projection of the grid gradient onto the surface (minus the
    weighted adjoint of `surface_divergence`). NODES -> scalar; EDGES -> vector.
    """
    topology = Topology.EDGE_GRADIENT if _is_vector(out) else Topology.EDGES
    q = _scratch(cache, topology, g)
    ig.grad(q, g, cache.grid, cache.delta)
    return normal_interpolate(out, q, cache)


def surface_grad_symm(out: np.ndarray, g: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """EDGES -> vector; adjoint counterpart of `surface_divergence_symm`."""
    q = _scratch(cache, Topology.EDGE_GRADIENT, g)
    ig.grad(q, g, cache.grid, cache.delta)
    return normal_interpolate_symm(out, q, cache)


# --- Curl layer ---


def surface_curl(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Curl layer onto DUAL_NODES: rot of the regularized normal projection for
    scalar f, rot of the regularized vector for vector v.
    """
    q = _scratch(cache, Topology.EDGES, out)
    if _is_vector(f):
        regularize(q, f, cache)
    else:
        regularize_normal(q, f, cache)
    return ig.rot(out, q, cache.grid, cache.delta)


def curl_interpolate(out: np.ndarray, w: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    DUAL_NODES -> surface: the weighted adjoint of `surface_curl` (normal
    projection of the interpolated curl for scalar data).
    """
    q = _scratch(cache, Topology.EDGES, w)
    ig.curl(q, w, cache.grid, cache.delta)
    if _is_vector(out):
        return interpolate(out, q, cache)
    return normal_interpolate(out, q, cache)


# --- Grid operators with the cache's scaling ---


def inverse_laplacian(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.inverse_laplacian(out, f, cache.grid, cache.delta)


def laplacian(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.laplacian(out, f, cache.grid, cache.delta)


def grad(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.grad(out, f, cache.grid, cache.delta)


def divergence(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.divergence(out, f, cache.grid, cache.delta)


def curl(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.curl(out, f, cache.grid, cache.delta)


def rot(out: np.ndarray, f: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    return ig.rot(out, f, cache.grid, cache.delta)


# --- Masks ---


def _face_average(out: np.ndarray, p: np.ndarray, grid: ig.PhysicalGrid) -> np.ndarray:
    """NODES -> EDGES by averaging the two neighbouring cells (zero outside)."""
    (pc,) = grid.components(p, Topology.NODES)
    u, v = grid.components(out, Topology.EDGES)
    u[...] = 0.0
    u[:-1, :] += 0.5 * pc
    u[1:, :] += 0.5 * pc
    v[...] = 0.0
    v[:, :-1] += 0.5 * pc
    v[:, 1:] += 0.5 * pc
    return out


def mask(out: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """
    Indicator of the body interiors on the cache's grid data: 1 inside, 0
    outside, smeared over the DDF width. Computed as -L^{-1} of the double
    layer of unit strength, chi = -L^{-1} div(R_n 1).
    """
    grid = cache.grid
    q = _scratch(cache, Topology.EDGES, out)
    regularize_normal(q, np.ones(cache.npts), cache)
    if cache.kind is ILMKind.SCALAR:
        p = out
    else:
        p = grid.zeros(Topology.NODES)
    ig.divergence(p, q, grid, cache.delta)
    ig.inverse_laplacian(p, p, grid, cache.delta)
    p *= -1.0
    if cache.kind is ILMKind.VECTOR:
        _face_average(out, p, grid)
    return out


def complementary_mask(out: np.ndarray, cache: BasicILMCache) -> np.ndarray:
    """1 - mask, pointwise."""
    mask(out, cache)
    np.subtract(1.0, out, out=out)
    return out

# test_ilmsurface.py - Tests for the surface-grid operators and masks

import pytest
import numpy as np
from numpy.testing import assert_allclose
import math

import ilmsurface as isf
from ilmbase import SurfaceScalarCache, SurfaceVectorCache
from ilmerrors import DimensionMismatchError
from ilmgeometry import Circle
from ilmgrid import Scaling, Topology
from utils_for_testing import centred_grid, circle_caches, point_angles

SCALINGS = [Scaling.GRID, Scaling.INDEX]


# --- Fixtures ---
@pytest.fixture(scope="module", params=SCALINGS, ids=["grid", "index"])
def caches(request):
    return circle_caches(scaling=request.param)


@pytest.fixture(scope="module")
def rng():
    return np.random.default_rng(11)


def _random_surface(cache, rng, vector):
    return rng.standard_normal((2, cache.npts) if vector else cache.npts)


# --- Adjoint pairs ---
@pytest.mark.parametrize("topology", [Topology.NODES, Topology.DUAL_NODES])
def test_interpolate_is_adjoint_of_regularize_scalar(caches, rng, topology):
    grid, _, scache, _ = caches
    f = rng.standard_normal(scache.npts)
    g = rng.standard_normal(grid.size(topology))
    Rf = isf.regularize(grid.zeros(topology), f, scache)
    Eg = isf.interpolate(scache.zeros_surface(), g, scache)
    assert_allclose(scache.grid_dot(Rf, g), scache.surface_dot(f, Eg), rtol=1e-12)


def test_interpolate_is_adjoint_of_regularize_vector(caches, rng):
    grid, _, _, vcache = caches
    f = rng.standard_normal((2, vcache.npts))
    g = rng.standard_normal(grid.size(Topology.EDGES))
    Rf = isf.regularize(vcache.zeros_grid(), f, vcache)
    Eg = isf.interpolate(vcache.zeros_surface(), g, vcache)
    assert_allclose(vcache.grid_dot(Rf, g), vcache.surface_dot(f, Eg), rtol=1e-12)


@pytest.mark.parametrize("vector", [False, True], ids=["scalar", "vector"])
def test_normal_interpolate_is_adjoint_of_regularize_normal(caches, rng, vector):
    _, _, scache, vcache = caches
    cache = vcache if vector else scache
    f = _random_surface(cache, rng, vector)
    q = rng.standard_normal(cache.zeros_gridgrad().size)
    Rnf = isf.regularize_normal(cache.zeros_gridgrad(), f, cache)
    nEq = isf.normal_interpolate(cache.zeros_surface(), q, cache)
    assert_allclose(cache.grid_dot(Rnf, q), cache.surface_dot(f, nEq), rtol=1e-12)


def test_symmetric_normal_pair_is_adjoint(caches, rng):
    _, _, _, vcache = caches
    v = rng.standard_normal((2, vcache.npts))
    q = rng.standard_normal(vcache.zeros_gridgrad().size)
    Rv = isf.regularize_normal_symm(vcache.zeros_gridgrad(), v, vcache)
    Eq = isf.normal_interpolate_symm(vcache.zeros_surface(), q, vcache)
    assert_allclose(vcache.grid_dot(Rv, q), vcache.surface_dot(v, Eq), rtol=1e-12)


def test_symmetric_tensor_is_symmetric_and_traceless(caches, rng):
    grid, _, _, vcache = caches
    v = rng.standard_normal((2, vcache.npts))
    Rv = isf.regularize_normal_symm(vcache.zeros_gridgrad(), v, vcache)
    dudx, dudy, dvdx, dvdy = grid.components(Rv, Topology.EDGE_GRADIENT)
    assert_allclose(dudy, dvdx, atol=1e-12)
    assert_allclose(dudx, -dvdy, atol=1e-12)


@pytest.mark.parametrize("vector", [False, True], ids=["scalar", "vector"])
def test_surface_grad_is_minus_adjoint_of_surface_divergence(caches, rng, vector):
    _, _, scache, vcache = caches
    cache = vcache if vector else scache
    f = _random_surface(cache, rng, vector)
    g = rng.standard_normal(cache.zeros_grid().size)
    Df = isf.surface_divergence(cache.zeros_grid(), f, cache)
    Gg = isf.surface_grad(cache.zeros_surface(), g, cache)
    assert_allclose(cache.grid_dot(Df, g), -cache.surface_dot(f, Gg), rtol=1e-10)


def test_symmetric_double_layer_pair(caches, rng):
    _, _, _, vcache = caches
    v = rng.standard_normal((2, vcache.npts))
    g = rng.standard_normal(vcache.zeros_grid().size)
    Dv = isf.surface_divergence_symm(vcache.zeros_grid(), v, vcache)
    Gg = isf.surface_grad_symm(vcache.zeros_surface(), g, vcache)
    assert_allclose(vcache.grid_dot(Dv, g), -vcache.surface_dot(v, Gg), rtol=1e-10)


@pytest.mark.parametrize("vector", [False, True], ids=["scalar", "vector"])
def test_curl_interpolate_is_adjoint_of_surface_curl(caches, rng, vector):
    _, _, scache, vcache = caches
    cache = vcache if vector else scache
    f = _random_surface(cache, rng, vector)
    w = rng.standard_normal(cache.zeros_gridcurl().size)
    Cf = isf.surface_curl(cache.zeros_gridcurl(), f, cache)
    Ew = isf.curl_interpolate(cache.zeros_surface(), w, cache)
    assert_allclose(cache.grid_dot(Cf, w), cache.surface_dot(f, Ew), rtol=1e-10)


# --- Regularization integrals and amplitudes ---
def test_regularized_integral_equals_surface_integral(caches, rng):
    grid, _, scache, _ = caches
    f = rng.standard_normal(scache.npts)
    Rf = isf.regularize(scache.zeros_grid(), f, scache)
    assert_allclose(
        scache.grid_dot(Rf, scache.ones_grid()), np.sum(f * scache.areas()), rtol=1e-10
    )


@pytest.mark.parametrize("scaling", SCALINGS, ids=["grid", "index"])
def test_normal_round_trip_amplitude(scaling):
    """
    n.E R n f is about f sum_k phi(r - k)^2 / delta, which is f/(2 delta) for
    the Roma kernel.
    """
    dx = 0.02
    grid = centred_grid(1.5, dx)
    cache = SurfaceScalarCache(Circle(1.0, 1.4 * dx), grid, scaling=scaling)
    theta = point_angles(cache)
    f = np.sin(theta - 0.25 * math.pi)
    g = isf.normal_interpolate(
        cache.zeros_surface(), isf.regularize_normal(cache.zeros_gridgrad(), f, cache), cache
    )
    delta = cache.delta
    strong = np.abs(f) > 0.5
    ratio = g[strong] / f[strong]
    assert np.all(ratio > 0.3 / delta) and np.all(ratio < 0.7 / delta), (
        f"Normal round-trip amplitude out of range: [{ratio.min():.3f}, {ratio.max():.3f}] "
        f"vs 0.5/delta = {0.5 / delta:.3f}"
    )


# --- Masks ---
def test_mask_area_and_values():
    grid, body, scache, _ = circle_caches(dx=0.04)
    chi = isf.mask(scache.zeros_grid(), scache)
    area = np.sum(chi) * grid.cell_area
    assert_allclose(area, math.pi * body.radius**2, atol=2e-2, err_msg="Mask area")
    x, y = grid.coordinates(Topology.NODES)
    r = np.hypot(x, y)
    assert_allclose(chi[r < 0.3], 1.0, atol=3e-2, err_msg="Mask is not 1 inside")
    assert_allclose(chi[r > 0.7], 0.0, atol=3e-2, err_msg="Mask is not 0 outside")


def test_vector_mask_on_faces():
    grid, body, _, vcache = circle_caches(dx=0.04)
    chi = isf.mask(vcache.zeros_grid(), vcache)
    u, v = grid.components(chi, Topology.EDGES)
    for comp in (u, v):
        assert_allclose(np.sum(comp) * grid.cell_area, math.pi * body.radius**2, atol=2e-2)
    x, y = grid.coordinates(Topology.EDGES)
    r = np.hypot(x, y)
    assert_allclose(chi[r < 0.3], 1.0, atol=3e-2)


def test_mask_independent_of_scaling():
    _, _, sg, vg = circle_caches(scaling=Scaling.GRID)
    _, _, si, vi = circle_caches(scaling=Scaling.INDEX)
    assert_allclose(isf.mask(sg.zeros_grid(), sg), isf.mask(si.zeros_grid(), si), atol=1e-10)
    assert_allclose(isf.mask(vg.zeros_grid(), vg), isf.mask(vi.zeros_grid(), vi), atol=1e-10)


def test_complementary_mask_is_exact_complement(caches):
    _, _, scache, vcache = caches
    for cache in (scache, vcache):
        chi = isf.mask(cache.zeros_grid(), cache)
        cchi = isf.complementary_mask(cache.zeros_grid(), cache)
        assert np.array_equal(cchi, 1.0 - chi)


# --- Output contract and shape errors ---
def test_operators_overwrite_dirty_output(caches, rng):
    _, _, scache, vcache = caches
    f = rng.standard_normal(scache.npts)
    clean = isf.surface_divergence(scache.zeros_grid(), f, scache)
    dirty = np.full_like(clean, 3.0)
    isf.surface_divergence(dirty, f, scache)
    assert_allclose(dirty, clean)

    g = rng.standard_normal(vcache.zeros_grid().size)
    clean = isf.interpolate(vcache.zeros_surface(), g, vcache)
    dirty = np.full_like(clean, -5.0)
    isf.interpolate(dirty, g, vcache)
    assert_allclose(dirty, clean)


def test_output_may_alias_cache_scratch(caches, rng):
    _, _, scache, _ = caches
    f = rng.standard_normal(scache.npts)
    expected = isf.surface_divergence(scache.zeros_grid(), f, scache)
    out = isf.surface_divergence(scache.gdata_cache, f, scache)
    assert_allclose(out, expected)


def test_shape_errors(caches):
    grid, _, scache, vcache = caches
    with pytest.raises(DimensionMismatchError):
        isf.regularize(scache.zeros_grid(), np.zeros(scache.npts + 2), scache)
    with pytest.raises(DimensionMismatchError):
        isf.regularize(grid.zeros(Topology.NODES), np.zeros((2, vcache.npts)), vcache)
    with pytest.raises(DimensionMismatchError):
        isf.regularize(grid.zeros(Topology.EDGES), np.zeros(scache.npts), scache)
    with pytest.raises(DimensionMismatchError):
        isf.regularize_normal_symm(vcache.zeros_gridgrad(), np.zeros(vcache.npts), vcache)
    with pytest.raises(DimensionMismatchError):
        isf.interpolate(scache.zeros_surface(), np.zeros(7), scache)

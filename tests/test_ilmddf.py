# test_ilmddf.py - Tests for the discrete delta functions and their stencils

import pytest
import numpy as np
from numpy.testing import assert_allclose

from ilmddf import DDF_KERNELS, DEFAULT_DDF, ddf_stencil, get_ddf
from ilmerrors import DimensionMismatchError, ILMConfigurationError
from ilmgrid import PhysicalGrid

ddf_param = pytest.mark.parametrize("name", list(DDF_KERNELS))
OFFSETS = np.linspace(0.0, 1.0, 11)


@pytest.fixture(scope="module")
def grid():
    return PhysicalGrid((-1.0, 1.0), (-1.0, 1.0), 0.1)


@ddf_param
def test_kernel_partition_of_unity(name):
    ddf = get_ddf(name)
    k = np.arange(-4, 5)
    for r in OFFSETS:
        assert_allclose(np.sum(ddf(r - k)), 1.0, atol=1e-12, err_msg=f"{name} at offset {r}")


@pytest.mark.parametrize("name", ["Witchhat", "Roma", "M4prime"])
def test_kernel_first_moment_vanishes(name):
    ddf = get_ddf(name)
    k = np.arange(-4, 5)
    for r in OFFSETS:
        assert_allclose(np.sum((r - k) * ddf(r - k)), 0.0, atol=1e-12, err_msg=f"{name} at offset {r}")


@ddf_param
def test_kernel_support(name):
    ddf = get_ddf(name)
    r = np.linspace(ddf.support, ddf.support + 2.0, 21)
    assert_allclose(ddf(r), 0.0, atol=1e-14)
    assert_allclose(ddf(-r), 0.0, atol=1e-14)
    assert ddf(0.0) > 0.0


def test_roma_second_moment_of_squares():
    """sum_k phi(r - k)^2 = 1/2 for every offset r."""
    ddf = get_ddf("Roma")
    k = np.arange(-3, 4)
    for r in OFFSETS:
        assert_allclose(np.sum(ddf(r - k) ** 2), 0.5, atol=1e-12)


def test_default_and_unknown_ddf():
    assert get_ddf(DEFAULT_DDF).name == "Roma"
    with pytest.raises(ILMConfigurationError):
        get_ddf("Peskin7")


@pytest.mark.parametrize("lattice", ["P", "U", "V", "W"])
@ddf_param
def test_stencil_columns_sum_to_one_inside(grid, lattice, name):
    x = np.array([0.013, -0.42, 0.5, 0.77])
    y = np.array([0.0, 0.31, -0.66, 0.05])
    phi = ddf_stencil(grid, lattice, x, y, get_ddf(name))
    assert phi.shape == (np.prod(grid.lattice_shape(lattice)), x.size)
    assert_allclose(phi.sum(axis=0), 1.0, atol=1e-12)


def test_stencil_reproduces_linear_fields(grid):
    """Phi^T x_lattice = x at each point, by the vanishing first moment."""
    x = np.array([0.013, -0.42, 0.5])
    y = np.array([0.2, 0.31, -0.66])
    phi = ddf_stencil(grid, "U", x, y, get_ddf("M4prime"))
    xl, yl = grid.lattice_coordinates("U")
    xx, yy = np.meshgrid(xl, yl, indexing="ij")
    assert_allclose(phi.T @ xx.ravel(), x, atol=1e-12)
    assert_allclose(phi.T @ yy.ravel(), y, atol=1e-12)


def test_stencil_drops_entries_outside_lattice(grid):
    phi = ddf_stencil(grid, "P", np.array([-0.99]), np.array([-0.99]), get_ddf("Roma"))
    total = phi.sum()
    assert 0.0 < total < 1.0


def test_stencil_empty_and_mismatched(grid):
    ddf = get_ddf("Roma")
    empty = ddf_stencil(grid, "W", np.zeros(0), np.zeros(0), ddf)
    assert empty.shape == (np.prod(grid.lattice_shape("W")), 0)
    with pytest.raises(DimensionMismatchError):
        ddf_stencil(grid, "W", np.zeros(3), np.zeros(2), ddf)

# test_ilmsystem.py - Tests for problems, systems and their life cycle

from typing import NamedTuple

import pytest
import numpy as np
from numpy.testing import assert_allclose

import ilmsurface as isf
from ilmbase import ILMConfig, SurfaceScalarCache, SurfaceVectorCache
from ilmerrors import ILMConfigurationError, MissingProblemHookError
from ilmforcing import PointForcingModel
from ilmgeometry import BodyList, Circle
from ilmgrid import Scaling
from ilmsystem import (
    BasicScalarILMProblem,
    BasicVectorILMProblem,
    ILMSystem,
    ScalarILMProblem,
    construct_system,
    regenerate_problem,
    solve,
    update_system,
)
from ilm_problems import DirichletPoissonProblem
from utils_for_testing import centred_grid

DX = 0.05


@pytest.fixture(scope="module")
def grid():
    return centred_grid(1.0, DX)


@pytest.fixture(scope="module")
def body():
    return Circle(0.4, 1.4 * DX)


def zero_bc(cache, phys_params):
    return np.zeros(cache.npts)


DIRICHLET_BC = {"exterior": zero_bc, "interior": zero_bc}


# A problem with its own extra cache type, as a user would write one.
class MaskCache(NamedTuple):
    chi: np.ndarray


class MaskedSourceProblem(ScalarILMProblem):
    def prob_cache(self, base_cache):
        return MaskCache(chi=isf.mask(base_cache.zeros_grid(), base_cache))

    def solve(self, system, *, amplitude=1.0):
        f = amplitude * system.extra_cache.chi
        return isf.inverse_laplacian(system.base_cache.zeros_grid(), f, system.base_cache)


# --- Construction ---
def test_basic_problems_build_basic_caches(grid, body):
    sys_s = construct_system(BasicScalarILMProblem(grid, body))
    sys_v = construct_system(BasicVectorILMProblem(grid, body))
    assert isinstance(sys_s.base_cache, SurfaceScalarCache)
    assert isinstance(sys_v.base_cache, SurfaceVectorCache)
    assert sys_s.extra_cache is None
    assert sys_s.forcing == []
    assert sys_s.grid is grid


def test_missing_solve_hook(grid, body):
    system = construct_system(BasicScalarILMProblem(grid, body))
    with pytest.raises(MissingProblemHookError):
        solve(system)


def test_problem_without_prob_cache_cannot_be_built(grid, body):
    class Incomplete(ScalarILMProblem):
        pass

    with pytest.raises(TypeError):
        Incomplete(grid, body)


def test_user_problem_with_own_extra_cache(grid, body):
    system = construct_system(MaskedSourceProblem(grid, body))
    assert isinstance(system.extra_cache, MaskCache)
    f1 = solve(system)
    f2 = solve(system, amplitude=2.0)
    assert_allclose(f2, 2.0 * f1, rtol=1e-12)


def test_problem_config_and_keywords(grid, body):
    p = BasicScalarILMProblem(grid, body, config=ILMConfig(Scaling.INDEX, "M4prime"))
    assert p.scaling is Scaling.INDEX
    assert p.ddftype == "M4prime"
    p = BasicScalarILMProblem(grid, body, scaling=Scaling.GRID, config=ILMConfig(Scaling.INDEX))
    assert p.scaling is Scaling.GRID
    with pytest.raises(ILMConfigurationError):
        BasicScalarILMProblem(grid, body, scaling="grid")


# --- Boundary conditions ---
def test_missing_bc_entry_fails_at_construction(grid, body):
    problem = DirichletPoissonProblem(grid, body, bc={"exterior": zero_bc})
    with pytest.raises(ILMConfigurationError, match="interior"):
        construct_system(problem)


def test_non_callable_bc_entry(grid, body):
    problem = DirichletPoissonProblem(grid, body, bc={"exterior": zero_bc, "interior": 0.0})
    with pytest.raises(ILMConfigurationError):
        construct_system(problem)


def test_system_exposes_problem_data(grid, body):
    params = {"Re": 100.0}
    system = construct_system(DirichletPoissonProblem(grid, body, bc=DIRICHLET_BC, phys_params=params))
    assert system.phys_params is params
    assert set(system.bc) == {"exterior", "interior"}


# --- Immutability ---
def test_problem_and_system_are_immutable(grid, body):
    problem = BasicScalarILMProblem(grid, body)
    with pytest.raises(AttributeError):
        problem.grid = grid
    with pytest.raises(AttributeError):
        del problem.bc
    system = construct_system(problem)
    with pytest.raises(AttributeError):
        system.extra_cache = None
    assert isinstance(system, ILMSystem)


def test_with_changes(grid, body):
    problem = BasicScalarILMProblem(grid, body, phys_params=1.0)
    changed = problem.with_changes(phys_params=2.0)
    assert changed.phys_params == 2.0
    assert problem.phys_params == 1.0
    assert type(changed) is BasicScalarILMProblem
    assert problem.copy().phys_params == 1.0
    with pytest.raises(ValueError):
        problem.with_changes(kind="vector")


# --- Life cycle ---
def test_regenerate_problem_keeps_everything_but_bodies(grid, body):
    system = construct_system(DirichletPoissonProblem(grid, body, bc=DIRICHLET_BC, phys_params=3))
    moved = body.transform(translation=(0.1, 0.0))
    problem = regenerate_problem(system, moved)
    assert isinstance(problem, DirichletPoissonProblem)
    assert problem.phys_params == 3
    assert problem.bc == system.bc
    assert_allclose(problem.bodies.x, moved.x)


def test_update_system_with_same_bodies_is_identical(grid, body):
    system = construct_system(DirichletPoissonProblem(grid, body, bc=DIRICHLET_BC))
    again = update_system(system)
    assert again is not system
    assert np.array_equal(again.extra_cache.S, system.extra_cache.S)


def test_update_system_moves_bodies(grid, body):
    system = construct_system(DirichletPoissonProblem(grid, body, bc=DIRICHLET_BC))
    moved = body.transform(translation=(0.0, -0.2))
    new = update_system(system, bodies=moved)
    assert_allclose(new.base_cache.points()[1], system.base_cache.points()[1] - 0.2, atol=1e-12)
    assert new.extra_cache.S.shape == system.extra_cache.S.shape
    new = update_system(system, phys_params={"a": 1})
    assert new.phys_params == {"a": 1}


def test_update_system_can_clear_phys_params(grid, body):
    system = construct_system(DirichletPoissonProblem(grid, body, bc=DIRICHLET_BC, phys_params={"a": 1}))
    assert update_system(system).phys_params == {"a": 1}
    cleared = update_system(system, phys_params=None)
    assert cleared.phys_params is None
    assert update_system(cleared).phys_params is None


def test_forcing_is_built_with_the_system(grid, body):
    def strength_fcn(strength, state, t, region_cache, phys_params):
        strength[:] = phys_params

    problem = BasicScalarILMProblem(
        grid, BodyList([body]), forcing=PointForcingModel(([0.0], [0.0]), strength_fcn), phys_params=2.0
    )
    system = construct_system(problem)
    assert len(system.forcing) == 1
    out = system.apply_forcing(system.base_cache.zeros_grid(), None, 0.0)
    assert_allclose(system.base_cache.grid_dot(out, system.base_cache.ones_grid()), 2.0, rtol=1e-12)


def test_timestep_hook(grid, body):
    def timestep_func(u, t, system):
        return t + 0.5 * system.grid.dx

    system = construct_system(BasicScalarILMProblem(grid, body, timestep_func=timestep_func))
    assert system.timestep(None, 1.0) == pytest.approx(1.0 + 0.5 * DX)
    system = construct_system(BasicScalarILMProblem(grid, body))
    with pytest.raises(MissingProblemHookError):
        system.timestep(None, 1.0)

# ilm_problems.py - illustrative problems built on the ILM framework

"""
Two problems that exercise the framework end to end.

DirichletPoissonProblem: L f = forcing, with f = fb+ outside and f = fb- inside
each body. The field is

    f = L^{-1}(D_n (fb+ - fb-) + forcing) + L^{-1} R sigma,

with the single-layer strength sigma fixed by E f = (fb+ + fb-)/2 through
the Schur complement S = -E L^{-1} R.

StokesFlowProblem: steady Stokes flow, in streamfunction form, with surface
velocities vb+ outside and vb- inside. The normal velocity jump is carried by
a potential flow, the tangential one by a symmetric double layer on the
streamfunction, and the surface traction sigma enforces E v = (vb+ + vb-)/2
through S = E C L^{-2} C^T R.

Boundary data comes from `bc` entries "exterior" and "interior", functions of
(base_cache, phys_params). Either can be swapped at solve time by passing a
`bc` mapping to `solve`, without rebuilding the system.
"""

import logging
from typing import NamedTuple, Optional

import numpy as np

import ilmsurface as isf
from ilmbase import RegularizationMatrix
from ilmgrid import Topology, pointwise_dot
from ilmmatrix import (
    FactorizedMatrix,
    SurfaceFilter,
    create_CL2invCT,
    create_RTLinvR,
    create_surface_filter,
    factorize,
)
from ilmsystem import ILMSystem, ScalarILMProblem, VectorILMProblem

logger = logging.getLogger(__name__)


def _boundary_data(system: ILMSystem, bc):
    bc = system.bc if bc is None else {**system.bc, **bc}
    base_cache = system.base_cache
    fplus = np.asarray(bc["exterior"](base_cache, system.phys_params), dtype=float)
    fminus = np.asarray(bc["interior"](base_cache, system.phys_params), dtype=float)
    return fplus, fminus


# --- Dirichlet Poisson ---


class DirichletPoissonCache(NamedTuple):
    S: np.ndarray
    Sfact: FactorizedMatrix
    C: SurfaceFilter
    fb: np.ndarray
    dfb: np.ndarray
    fstar: np.ndarray


class DirichletPoissonProblem(ScalarILMProblem):
    required_bc_keys = ("exterior", "interior")

    def prob_cache(self, base_cache):
        S = create_RTLinvR(base_cache)
        return DirichletPoissonCache(
            S=S,
            Sfact=factorize(S),
            C=create_surface_filter(base_cache),
            fb=base_cache.zeros_surface(),
            dfb=base_cache.zeros_surface(),
            fstar=base_cache.zeros_grid(),
        )

    def solve(self, system: ILMSystem, *, t: float = 0.0, state=None, bc: Optional[dict] = None):
        """
        Returns the grid field f and the filtered single-layer strength C^6 sigma.
        """
        base_cache = system.base_cache
        ec: DirichletPoissonCache = system.extra_cache

        fplus, fminus = _boundary_data(system, bc)
        base_cache.check_surface_scalar(fplus)
        base_cache.check_surface_scalar(fminus)
        np.subtract(fplus, fminus, out=ec.dfb)
        np.add(fplus, fminus, out=ec.fb)
        np.multiply(ec.fb, 0.5, out=ec.fb)

        fstar = ec.fstar
        isf.surface_divergence(fstar, ec.dfb, base_cache)
        system.apply_forcing(fstar, state, t)
        isf.inverse_laplacian(fstar, fstar, base_cache)

        sigma = base_cache.zeros_surface()
        isf.interpolate(sigma, fstar, base_cache)
        sigma = -ec.Sfact.solve(ec.fb - sigma)

        f = base_cache.zeros_grid()
        isf.regularize(f, sigma, base_cache)
        isf.inverse_laplacian(f, f, base_cache)
        f += fstar

        return f, (ec.C**6) @ sigma


# --- Stokes flow ---


class StokesFlowCache(NamedTuple):
    S: np.ndarray
    Sfact: FactorizedMatrix
    C: SurfaceFilter
    Rc: RegularizationMatrix
    dv: np.ndarray
    vb: np.ndarray
    vprime: np.ndarray
    dvn: np.ndarray
    sstar: np.ndarray
    vphi: np.ndarray
    phi: np.ndarray


class StokesFlowProblem(VectorILMProblem):
    required_bc_keys = ("exterior", "interior")

    def prob_cache(self, base_cache):
        S = create_CL2invCT(base_cache)
        return StokesFlowCache(
            S=S,
            Sfact=factorize(S),
            C=create_surface_filter(base_cache),
            Rc=RegularizationMatrix(base_cache, Topology.NODES),
            dv=base_cache.zeros_surface(),
            vb=base_cache.zeros_surface(),
            vprime=base_cache.zeros_surface(),
            dvn=base_cache.zeros_surface_scalar(),
            sstar=base_cache.zeros_gridcurl(),
            vphi=base_cache.zeros_grid(),
            phi=base_cache.grid.zeros(Topology.NODES),
        )

    def solve(self, system: ILMSystem, *, bc: Optional[dict] = None):
        """
        Returns the velocity (EDGES), the streamfunction (DUAL_NODES) and the
        surface traction, filtered twice.
        """
        base_cache = system.base_cache
        ec: StokesFlowCache = system.extra_cache

        vplus, vminus = _boundary_data(system, bc)
        base_cache.check_surface_vector(vplus)
        base_cache.check_surface_vector(vminus)
        np.subtract(vplus, vminus, out=ec.dv)
        np.add(vplus, vminus, out=ec.vb)
        np.multiply(ec.vb, 0.5, out=ec.vb)

        v = base_cache.zeros_grid()
        s = base_cache.zeros_gridcurl()

        # Streamfunction of the tangential velocity jump.
        isf.surface_divergence_symm(v, ec.dv, base_cache)
        isf.rot(ec.sstar, v, base_cache)
        np.negative(ec.sstar, out=ec.sstar)
        isf.inverse_laplacian(ec.sstar, ec.sstar, base_cache)
        isf.inverse_laplacian(ec.sstar, ec.sstar, base_cache)

        # Potential flow carrying the normal velocity jump.
        pointwise_dot(ec.dvn, base_cache.normals(), ec.dv)
        ec.Rc.apply(ec.phi, ec.dvn)
        isf.inverse_laplacian(ec.phi, ec.phi, base_cache)
        isf.grad(ec.vphi, ec.phi, base_cache)

        # Slip left by both.
        isf.interpolate(ec.vprime, ec.vphi, base_cache)
        np.subtract(ec.vb, ec.vprime, out=ec.vprime)
        isf.curl(v, ec.sstar, base_cache)
        slip = base_cache.zeros_surface()
        isf.interpolate(slip, v, base_cache)
        np.subtract(ec.vprime, slip, out=ec.vprime)

        sigma = -ec.Sfact.solve(ec.vprime)

        isf.surface_curl(s, sigma, base_cache)
        isf.inverse_laplacian(s, s, base_cache)
        isf.inverse_laplacian(s, s, base_cache)
        np.subtract(ec.sstar, s, out=s)

        isf.curl(v, s, base_cache)
        v += ec.vphi

        return v, s, (ec.C**2) @ sigma

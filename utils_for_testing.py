import math

import numpy as np
from typing import List

from ilmbase import SurfaceScalarCache, SurfaceVectorCache
from ilmgeometry import Circle
from ilmgrid import PhysicalGrid, Scaling


def observed_rates_report(
    errors: List[float],
    *,
    refinement_factor: float = 2.0,
    expected_rate: float = 2.0,
    tolerance: float = 0.1,
    cmp_type: str = "least",  # 'equal' or 'least' for expected rate = target, verus >= target
    halt_print: bool = False,
) -> list:
    """
    Calculates observed convergence rates from errors against an exact
    solution, rate_k = log(e_k / e_{k+1}) / log(refinement_factor), and
    reports them.

    Args:
        errors (list): Errors at successive refinement levels, coarsest first.
        refinement_factor (float): Ratio of grid spacings between levels (default: 2.0).
        expected_rate (float): The expected convergence rate (default: 2.0).
        tolerance (float): Tolerance on the final observed rate (default: 0.1).
        cmp_type (str): 'equal' for observed rate == expected rate, 'least' for observed rate >= expected rate - tolerance.
        halt_print (bool): If True, nothing is printed. False by default.

    Returns:
        list: The observed convergence rates.
    """
    if cmp_type not in ["equal", "least"]:
        raise ValueError(f"cmp_type must be 'equal' or 'least', not {cmp_type}")

    def cond_print(*args):
        if not halt_print:
            print(*args)

    too_small = 1e-16
    log_r = math.log(refinement_factor)

    observed_rates = []
    cond_print("\nObserved Rates (2-point formula):")
    for k in range(len(errors) - 1):
        err_coarse, err_fine = errors[k], errors[k + 1]
        rate = float("nan")
        if err_coarse > too_small and err_fine > too_small:
            rate = math.log(err_coarse / err_fine) / log_r
        else:
            cond_print(f"    Warning: error below {too_small:.0e} at levels {k},{k+1}.")
        observed_rates.append(rate)
        cond_print(f"    Levels {k},{k+1}: {err_coarse:.3e} -> {err_fine:.3e}, rate = {rate:.3f}")

    # --- Assertions ---
    assert len(observed_rates) > 0, "Not enough refinement levels."
    final_rate = observed_rates[-1]
    assert np.isfinite(final_rate), f"Final rate is not finite ({final_rate})."

    cond_print(f"  Final observed rate: {final_rate:.3f}")

    if cmp_type == "least":
        assert (
            final_rate >= expected_rate - tolerance
        ), f"Observed rate {final_rate:.3f} not at least {expected_rate:.1f}"
    else:
        assert np.isclose(
            final_rate, expected_rate, atol=tolerance
        ), f"Observed rate {final_rate:.3f} not close to expected {expected_rate:.1f}"

    return observed_rates


def assert_symmetric(A: np.ndarray, *, rtol: float = 1e-10, name: str = "matrix") -> None:
    """Asserts |A - A^T| <= rtol max|A| entrywise."""
    assert A.ndim == 2 and A.shape[0] == A.shape[1], f"{name} is not square: {A.shape}"
    scale = np.max(np.abs(A))
    np.testing.assert_allclose(
        A, A.T, rtol=0.0, atol=rtol * scale, err_msg=f"{name} is not symmetric"
    )


def centred_grid(half_width: float, dx: float) -> PhysicalGrid:
    return PhysicalGrid((-half_width, half_width), (-half_width, half_width), dx)


def circle_caches(
    *, radius: float = 0.5, half_width: float = 1.0, dx: float = 0.04, scaling=Scaling.GRID
):
    """
    Scalar and vector caches on a circle with spacing 1.4 dx, plus the grid
    and the body.
    """
    grid = centred_grid(half_width, dx)
    body = Circle(radius, 1.4 * dx)
    scache = SurfaceScalarCache(body, grid, scaling=scaling)
    vcache = SurfaceVectorCache(body, grid, scaling=scaling)
    return grid, body, scache, vcache


def point_angles(cache) -> np.ndarray:
    x, y = cache.points()
    return np.arctan2(y, x)

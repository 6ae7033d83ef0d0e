"""
Exact harmonic fields around a circle, built symbolically.

For boundary data Re((x + i y)^k) on a circle of radius R centred at the
origin, the interior harmonic extension is Re((x + i y)^k) itself and the
exterior one, decaying at infinity, is R^(2k) Re((x + i y)^k) / r^(2k).
"""

from typing import Callable, Dict

import numpy as np
import sympy

x_sym, y_sym = sympy.symbols("x y", real=True)


def circle_boundary_mode(k: int) -> sympy.Expr:
    """Re((x + i y)^k), i.e. r^k cos(k theta)."""
    return sympy.expand(sympy.re(sympy.expand((x_sym + sympy.I * y_sym) ** k)))


def circle_harmonic_extension(k: int, radius: float, *, exterior: bool) -> sympy.Expr:
    mode = circle_boundary_mode(k)
    if not exterior:
        return mode
    r2 = x_sym**2 + y_sym**2
    return sympy.Float(radius) ** (2 * k) * mode / r2**k


def is_harmonic(expr: sympy.Expr) -> bool:
    lap = sympy.diff(expr, x_sym, 2) + sympy.diff(expr, y_sym, 2)
    return sympy.simplify(lap) == 0


def _create_shape_adjusting_wrapper(raw_func: Callable) -> Callable:
    """
    Wraps a lambdified function of (x, y) so that it always returns a float
    array of the shape of x, also when the expression is constant.
    """

    def wrapped_func(x_num, y_num):
        x_shape = np.shape(x_num)
        assert x_shape == np.shape(y_num)
        raw_flat = np.asarray(raw_func(x_num, y_num), dtype=np.float64).ravel()
        if raw_flat.size == 1:
            return np.full(x_shape, raw_flat[0], dtype=np.float64)
        return raw_flat.reshape(x_shape)

    return wrapped_func


def pack_symbolic_xy(expr: sympy.Expr) -> Dict[str, Callable]:
    """
    Numerical versions of `expr`, its gradient and its Laplacian:
    keys 'base', 'dx', 'dy', 'lap'.
    """
    dx_expr = sympy.diff(expr, x_sym)
    dy_expr = sympy.diff(expr, y_sym)
    lap_expr = sympy.diff(dx_expr, x_sym) + sympy.diff(dy_expr, y_sym)
    exprs = {"base": expr, "dx": dx_expr, "dy": dy_expr, "lap": lap_expr}
    return {
        name: _create_shape_adjusting_wrapper(sympy.lambdify([x_sym, y_sym], e, modules="numpy"))
        for name, e in exprs.items()
    }

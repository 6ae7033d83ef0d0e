# test_ilm_exact.py - Tests for the symbolic exact solutions

import pytest
import numpy as np
from numpy.testing import assert_allclose
import sympy

from ilm_exact import (
    circle_boundary_mode,
    circle_harmonic_extension,
    is_harmonic,
    pack_symbolic_xy,
    x_sym,
    y_sym,
)

mode_param = pytest.mark.parametrize("k", [1, 2, 3])


@mode_param
@pytest.mark.parametrize("exterior", [False, True], ids=["interior", "exterior"])
def test_extensions_are_harmonic(k, exterior):
    assert is_harmonic(circle_harmonic_extension(k, 0.7, exterior=exterior))


def test_boundary_modes():
    assert sympy.simplify(circle_boundary_mode(1) - x_sym) == 0
    assert sympy.simplify(circle_boundary_mode(2) - (x_sym**2 - y_sym**2)) == 0
    assert not is_harmonic(x_sym**2 + y_sym**2)


@mode_param
def test_extensions_match_on_circle(k):
    radius = 0.7
    theta = np.linspace(0.0, 2.0 * np.pi, 13)
    x, y = radius * np.cos(theta), radius * np.sin(theta)
    inner = pack_symbolic_xy(circle_harmonic_extension(k, radius, exterior=False))["base"]
    outer = pack_symbolic_xy(circle_harmonic_extension(k, radius, exterior=True))["base"]
    assert_allclose(outer(x, y), inner(x, y), atol=1e-12)
    assert_allclose(inner(x, y), radius**k * np.cos(k * theta), atol=1e-12)


def test_pack_symbolic_derivatives():
    funcs = pack_symbolic_xy(x_sym**2 * y_sym)
    x = np.array([[0.5, -1.0], [2.0, 0.0]])
    y = np.array([[1.0, 3.0], [-0.5, 2.0]])
    assert_allclose(funcs["dx"](x, y), 2.0 * x * y)
    assert_allclose(funcs["dy"](x, y), x**2)
    assert_allclose(funcs["lap"](x, y), 2.0 * y)


def test_pack_symbolic_constant_keeps_shape():
    funcs = pack_symbolic_xy(sympy.Integer(3) + 0 * x_sym)
    x = np.zeros((4, 3))
    base = funcs["base"](x, x)
    assert base.shape == (4, 3)
    assert_allclose(base, 3.0)
    assert funcs["lap"](x, x).shape == (4, 3)

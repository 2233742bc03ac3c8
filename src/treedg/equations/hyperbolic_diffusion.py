"""
Hyperbolic diffusion system for the Poisson problem -nu lap(phi) = f.

The gradient q = grad(phi) is carried as additional variables relaxing with
time scale Tr = Lr^2 / nu; params = [nu, 1 / Tr]. Available in 1D, 2D and 3D.
"""

import numpy as np
from numba import njit

from .base import AbstractEquations, make_flux_lax_friedrichs


@njit(cache=True)
def max_abs_speed(u_ll, u_rr, orientation, params):
    return np.sqrt(params[0] * params[1])


# =============================================================================
# 1D
# =============================================================================

@njit(cache=True)
def flux_1d(u, orientation, params):
    nu, inv_Tr = params[0], params[1]
    return np.array([-nu * u[1], -u[0] * inv_Tr])


@njit(cache=True)
def _poisson_solution_1d(x):
    # phi = A + B x + exp(-x)
    A = 3.0
    B = np.exp(1.0)
    return np.array([A + B * x[0] + np.exp(-x[0]), B - np.exp(-x[0])])


@njit(cache=True)
def initial_condition_poisson_nonperiodic_1d(x, t, params):
    return _poisson_solution_1d(x)


@njit(cache=True)
def source_terms_poisson_nonperiodic_1d(u, x, t, params):
    nu, inv_Tr = params[0], params[1]
    return np.array([-nu * np.exp(-x[0]), -u[1] * inv_Tr])


flux_lax_friedrichs_1d = make_flux_lax_friedrichs(flux_1d, max_abs_speed)


class HyperbolicDiffusionEquations1D(AbstractEquations):
    ndims = 1
    variable_names = ("phi", "q1")

    flux = staticmethod(flux_1d)
    max_abs_speed = staticmethod(max_abs_speed)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_1d)

    initial_condition_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_1d)
    boundary_state_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_1d)
    source_terms_poisson_nonperiodic = staticmethod(source_terms_poisson_nonperiodic_1d)

    def __init__(self, nu: float = 1.0, Lr: float = 1.0 / (2.0 * np.pi)):
        super().__init__([nu, nu / Lr ** 2])


# =============================================================================
# 2D
# =============================================================================

@njit(cache=True)
def flux_2d(u, orientation, params):
    nu, inv_Tr = params[0], params[1]
    phi, q1, q2 = u[0], u[1], u[2]
    if orientation == 0:
        return np.array([-nu * q1, -phi * inv_Tr, 0.0])
    return np.array([-nu * q2, 0.0, -phi * inv_Tr])


@njit(cache=True)
def initial_condition_poisson_nonperiodic_2d(x, t, params):
    # phi = 2 cos(pi x) sin(2 pi y) + 2, periodic in y
    phi = 2.0 * np.cos(np.pi * x[0]) * np.sin(2.0 * np.pi * x[1]) + 2.0
    q1 = -2.0 * np.pi * np.sin(np.pi * x[0]) * np.sin(2.0 * np.pi * x[1])
    q2 = 4.0 * np.pi * np.cos(np.pi * x[0]) * np.cos(2.0 * np.pi * x[1])
    return np.array([phi, q1, q2])


@njit(cache=True)
def source_terms_poisson_nonperiodic_2d(u, x, t, params):
    nu, inv_Tr = params[0], params[1]
    f = 10.0 * nu * np.pi ** 2 * np.cos(np.pi * x[0]) * np.sin(2.0 * np.pi * x[1])
    return np.array([f, -u[1] * inv_Tr, -u[2] * inv_Tr])


flux_lax_friedrichs_2d = make_flux_lax_friedrichs(flux_2d, max_abs_speed)


class HyperbolicDiffusionEquations2D(AbstractEquations):
    ndims = 2
    variable_names = ("phi", "q1", "q2")

    flux = staticmethod(flux_2d)
    max_abs_speed = staticmethod(max_abs_speed)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_2d)

    initial_condition_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_2d)
    boundary_state_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_2d)
    source_terms_poisson_nonperiodic = staticmethod(source_terms_poisson_nonperiodic_2d)

    def __init__(self, nu: float = 1.0, Lr: float = 1.0 / (2.0 * np.pi)):
        super().__init__([nu, nu / Lr ** 2])


# =============================================================================
# 3D
# =============================================================================

@njit(cache=True)
def flux_3d(u, orientation, params):
    nu, inv_Tr = params[0], params[1]
    out = np.zeros(4)
    out[0] = -nu * u[1 + orientation]
    out[1 + orientation] = -u[0] * inv_Tr
    return out


@njit(cache=True)
def initial_condition_poisson_nonperiodic_3d(x, t, params):
    # phi = 2 cos(pi x) sin(2 pi y) sin(2 pi z) + 2, periodic in y and z
    cx, sx = np.cos(np.pi * x[0]), np.sin(np.pi * x[0])
    cy, sy = np.cos(2.0 * np.pi * x[1]), np.sin(2.0 * np.pi * x[1])
    cz, sz = np.cos(2.0 * np.pi * x[2]), np.sin(2.0 * np.pi * x[2])
    phi = 2.0 * cx * sy * sz + 2.0
    q1 = -2.0 * np.pi * sx * sy * sz
    q2 = 4.0 * np.pi * cx * cy * sz
    q3 = 4.0 * np.pi * cx * sy * cz
    return np.array([phi, q1, q2, q3])


@njit(cache=True)
def source_terms_poisson_nonperiodic_3d(u, x, t, params):
    nu, inv_Tr = params[0], params[1]
    f = 18.0 * nu * np.pi ** 2 * np.cos(np.pi * x[0]) * np.sin(2.0 * np.pi * x[1]) * np.sin(2.0 * np.pi * x[2])
    return np.array([f, -u[1] * inv_Tr, -u[2] * inv_Tr, -u[3] * inv_Tr])


flux_lax_friedrichs_3d = make_flux_lax_friedrichs(flux_3d, max_abs_speed)


class HyperbolicDiffusionEquations3D(AbstractEquations):
    ndims = 3
    variable_names = ("phi", "q1", "q2", "q3")

    flux = staticmethod(flux_3d)
    max_abs_speed = staticmethod(max_abs_speed)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_3d)

    initial_condition_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_3d)
    boundary_state_poisson_nonperiodic = staticmethod(initial_condition_poisson_nonperiodic_3d)
    source_terms_poisson_nonperiodic = staticmethod(source_terms_poisson_nonperiodic_3d)

    def __init__(self, nu: float = 1.0, Lr: float = 1.0 / (2.0 * np.pi)):
        super().__init__([nu, nu / Lr ** 2])

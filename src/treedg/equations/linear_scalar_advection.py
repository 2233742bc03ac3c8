"""Linear scalar advection u_t + a . grad(u) = 0 in 1, 2 or 3 dimensions."""

import numpy as np
from numba import njit

from .base import AbstractEquations, make_flux_central, make_flux_lax_friedrichs


@njit(cache=True)
def flux(u, orientation, params):
    return np.array([params[orientation] * u[0]])


@njit(cache=True)
def max_abs_speed(u_ll, u_rr, orientation, params):
    return abs(params[orientation])


@njit(cache=True)
def flux_godunov(u_ll, u_rr, orientation, params):
    a = params[orientation]
    if a >= 0.0:
        return np.array([a * u_ll[0]])
    return np.array([a * u_rr[0]])


@njit(cache=True)
def initial_condition_constant(x, t, params):
    return np.array([2.0])


@njit(cache=True)
def initial_condition_convergence_test(x, t, params):
    """Travelling sine wave, periodic on [-1, 1]^d."""
    c = 1.0
    A = 0.5
    omega = 2.0 * np.pi / 2.0
    s = 0.0
    for k in range(x.shape[0]):
        s += x[k] - params[k] * t
    return np.array([c + A * np.sin(omega * s)])


flux_central = make_flux_central(flux)
flux_lax_friedrichs = make_flux_lax_friedrichs(flux, max_abs_speed)


class LinearScalarAdvectionEquation(AbstractEquations):
    """
    Scalar advection with constant velocity; the number of velocity
    components sets the dimension.
    """
    variable_names = ("scalar",)

    flux = staticmethod(flux)
    max_abs_speed = staticmethod(max_abs_speed)
    flux_central = staticmethod(flux_central)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs)
    flux_godunov = staticmethod(flux_godunov)

    initial_condition_constant = staticmethod(initial_condition_constant)
    initial_condition_convergence_test = staticmethod(initial_condition_convergence_test)

    def __init__(self, advection_velocity):
        velocity = np.atleast_1d(np.asarray(advection_velocity, dtype=np.float64))
        super().__init__(velocity)
        self.ndims = int(velocity.size)

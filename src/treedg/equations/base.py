"""
Equation systems as static capability objects.

Every pointwise function is a Numba `@njit` callable with a fixed calling
convention, so the same function is used by the host reference and compiled
into the device kernels:

    flux(u, orientation, params)                  physical flux
    two_point_flux(u_ll, u_rr, orientation, params)
    nonconservative_flux(u_ll, u_rr, orientation, params)
    variable(u, params)                           indicator variable
    initial_condition(x, t, params)
    source_terms(u, x, t, params)

`params` is a float64 array of equation constants.
"""

import copy
from typing import Callable, Optional, Tuple

import numpy as np
from numba import njit
from numpy.typing import NDArray


class AbstractEquations:
    """
    Base class of all equation systems.

    Subclasses set `ndims`, `variable_names`, `have_nonconservative_terms`
    and expose their njit callables as static methods.
    """
    ndims: int = 0
    variable_names: Tuple[str, ...] = ()
    have_nonconservative_terms: bool = False

    # Reflective boundary state, (u_inner, orientation, params) -> u_boundary
    mirror_state: Optional[Callable] = None

    def __init__(self, params):
        self.params: NDArray[np.float64] = np.ascontiguousarray(params, dtype=np.float64)

    @property
    def n_variables(self) -> int:
        return len(self.variable_names)

    def clone(self) -> "AbstractEquations":
        """Independent copy; the compiled callables are shared, the constants are not."""
        other = copy.copy(self)
        other.params = self.params.copy()
        return other

    def __repr__(self) -> str:
        return f"{type(self).__name__}(params={self.params.tolist()})"


# =============================================================================
# Generic two-point fluxes
# =============================================================================

def make_flux_central(flux):
    """Arithmetic mean of the physical fluxes."""
    @njit
    def flux_central(u_ll, u_rr, orientation, params):
        f_ll = flux(u_ll, orientation, params)
        f_rr = flux(u_rr, orientation, params)
        return 0.5 * (f_ll + f_rr)
    return flux_central


def make_flux_lax_friedrichs(flux, max_abs_speed, n_dissipative: int = -1):
    """
    Local Lax-Friedrichs (Rusanov) flux.

    Only the first `n_dissipative` variables receive the dissipation term
    (all of them when negative), which keeps auxiliary variables such as a
    bottom topography untouched.
    """
    @njit
    def flux_lax_friedrichs(u_ll, u_rr, orientation, params):
        f_ll = flux(u_ll, orientation, params)
        f_rr = flux(u_rr, orientation, params)
        lam = max_abs_speed(u_ll, u_rr, orientation, params)
        n_variables = f_ll.shape[0]
        n_diss = n_variables if n_dissipative < 0 else n_dissipative
        out = np.empty(n_variables)
        for v in range(n_variables):
            out[v] = 0.5 * (f_ll[v] + f_rr[v])
            if v < n_diss:
                out[v] -= 0.5 * lam * (u_rr[v] - u_ll[v])
        return out
    return flux_lax_friedrichs

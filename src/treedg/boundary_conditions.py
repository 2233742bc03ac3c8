"""
Boundary conditions for Cartesian tree meshes.

A boundary condition supplies an outside state from the interior trace;
binding it to the solver's surface flux yields one njit callable

    boundary_flux(u_inner, orientation, direction, x, t, params)

returning the flux, or (flux, nonconservative_flux) when the surface flux
has a nonconservative part. `direction` is the local face of the interior
element (even: negative face, odd: positive face).
"""

from typing import Callable, Dict, Tuple

from numba import njit

from .shared.errors import ConfigurationError
from .solver import FluxPair


_BOUND_FLUX_CACHE: Dict[Tuple, Callable] = {}
_STATE_CACHE: Dict[Tuple, Callable] = {}


def make_boundary_flux(state_function, surface_flux: FluxPair):
    """
    Compile the boundary flux for `state_function(u_inner, orientation, x, t, params)`.

    The outside state is placed on the far side of the face so that the
    two-point flux always sees (left, right) in physical order; the
    nonconservative part is evaluated from the interior side.
    """
    key = (state_function, surface_flux.conservative, surface_flux.nonconservative)
    if key in _BOUND_FLUX_CACHE:
        return _BOUND_FLUX_CACHE[key]

    flux = surface_flux.conservative
    nonconservative_flux = surface_flux.nonconservative

    if nonconservative_flux is None:
        @njit
        def boundary_flux(u_inner, orientation, direction, x, t, params):
            u_boundary = state_function(u_inner, orientation, x, t, params)
            if direction % 2 == 1:
                return flux(u_inner, u_boundary, orientation, params)
            return flux(u_boundary, u_inner, orientation, params)
    else:
        @njit
        def boundary_flux(u_inner, orientation, direction, x, t, params):
            u_boundary = state_function(u_inner, orientation, x, t, params)
            if direction % 2 == 1:
                f = flux(u_inner, u_boundary, orientation, params)
            else:
                f = flux(u_boundary, u_inner, orientation, params)
            return f, nonconservative_flux(u_inner, u_boundary, orientation, params)

    _BOUND_FLUX_CACHE[key] = boundary_flux
    return boundary_flux


class BoundaryConditionPeriodic:
    """Marker for directions closed by periodicity; never evaluated."""

    def __repr__(self) -> str:
        return "boundary_condition_periodic"


boundary_condition_periodic = BoundaryConditionPeriodic()


class BoundaryConditionDirichlet:
    """
    Outside state given by `boundary_value_function(x, t, params)`, typically
    the exact or initial solution.
    """

    def __init__(self, boundary_value_function: Callable):
        if not callable(boundary_value_function):
            raise ConfigurationError("boundary_value_function must be callable")
        self.boundary_value_function = boundary_value_function

    def state_function(self, equations) -> Callable:
        key = ("dirichlet", self.boundary_value_function)
        if key not in _STATE_CACHE:
            value_function = self.boundary_value_function

            @njit
            def dirichlet_state(u_inner, orientation, x, t, params):
                return value_function(x, t, params)

            _STATE_CACHE[key] = dirichlet_state
        return _STATE_CACHE[key]

    def bind(self, equations, surface_flux: FluxPair) -> Callable:
        return make_boundary_flux(self.state_function(equations), surface_flux)

    def __repr__(self) -> str:
        name = getattr(self.boundary_value_function, "__name__", repr(self.boundary_value_function))
        return f"BoundaryConditionDirichlet({name})"


class BoundaryConditionSlipWall:
    """Reflective wall: the outside state mirrors the normal momentum."""

    def state_function(self, equations) -> Callable:
        mirror = equations.mirror_state
        if mirror is None:
            raise ConfigurationError(f"{type(equations).__name__} defines no mirror state for a slip wall")
        key = ("slip_wall", mirror)
        if key not in _STATE_CACHE:
            @njit
            def slip_wall_state(u_inner, orientation, x, t, params):
                return mirror(u_inner, orientation, params)

            _STATE_CACHE[key] = slip_wall_state
        return _STATE_CACHE[key]

    def bind(self, equations, surface_flux: FluxPair) -> Callable:
        return make_boundary_flux(self.state_function(equations), surface_flux)

    def __repr__(self) -> str:
        return "boundary_condition_slip_wall"


boundary_condition_slip_wall = BoundaryConditionSlipWall()

"""
Equation systems with Numba-compiled pointwise fluxes, indicators,
initial conditions and source terms.
"""

from .base import AbstractEquations, make_flux_central, make_flux_lax_friedrichs
from .linear_scalar_advection import LinearScalarAdvectionEquation
from .compressible_euler import (
    CompressibleEulerEquations1D,
    CompressibleEulerEquations2D,
    CompressibleEulerEquations3D,
)
from .shallow_water import ShallowWaterEquations1D, ShallowWaterEquations2D
from .hyperbolic_diffusion import (
    HyperbolicDiffusionEquations1D,
    HyperbolicDiffusionEquations2D,
    HyperbolicDiffusionEquations3D,
)

__all__ = [
    'AbstractEquations',
    'make_flux_central',
    'make_flux_lax_friedrichs',
    'LinearScalarAdvectionEquation',
    'CompressibleEulerEquations1D',
    'CompressibleEulerEquations2D',
    'CompressibleEulerEquations3D',
    'ShallowWaterEquations1D',
    'ShallowWaterEquations2D',
    'HyperbolicDiffusionEquations1D',
    'HyperbolicDiffusionEquations2D',
    'HyperbolicDiffusionEquations3D',
]

"""
Validation case registry.

Each case kind builds a complete semidiscretization (mesh, equations,
solver, boundary conditions, sources) from a CaseConfig.
"""

from typing import Callable, Dict

import numpy as np

from ..boundary_conditions import BoundaryConditionDirichlet, boundary_condition_slip_wall
from ..equations import (
    CompressibleEulerEquations1D,
    CompressibleEulerEquations2D,
    CompressibleEulerEquations3D,
    HyperbolicDiffusionEquations1D,
    HyperbolicDiffusionEquations2D,
    HyperbolicDiffusionEquations3D,
    LinearScalarAdvectionEquation,
    ShallowWaterEquations1D,
    ShallowWaterEquations2D,
)
from ..semidiscretization import Semidiscretization
from ..shared.errors import ConfigurationError
from ..shared.topology import build_topology
from ..shared.tree_mesh import TreeMesh
from ..solver import (
    DGSEM,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)
from .config_loader import CaseConfig


ADVECTION_VELOCITY = (1.0, 0.5, -0.25)

EULER_EQUATIONS = {1: CompressibleEulerEquations1D, 2: CompressibleEulerEquations2D, 3: CompressibleEulerEquations3D}
HYPDIFF_EQUATIONS = {1: HyperbolicDiffusionEquations1D, 2: HyperbolicDiffusionEquations2D, 3: HyperbolicDiffusionEquations3D}
SHALLOW_WATER_EQUATIONS = {1: ShallowWaterEquations1D, 2: ShallowWaterEquations2D}


def _topology(case: CaseConfig, solver: DGSEM, coordinates_min, coordinates_max, periodicity=True):
    mesh = TreeMesh(coordinates_min, coordinates_max,
                    initial_refinement_level=case.initial_refinement_level,
                    periodicity=periodicity,
                    refinement_patches=[tuple(p) for p in case.refinement_patches])
    return build_topology(mesh, solver.basis, mortar=solver.mortar)


def _unsupported_volume_integral(case: CaseConfig):
    return ConfigurationError(f"Case '{case.name}' ({case.kind}) does not support volume integral "
                              f"'{case.volume_integral}'")


def build_advection(case: CaseConfig) -> Semidiscretization:
    """Travelling sine wave on the periodic cube [-1, 1]^d."""
    d = case.ndims
    equations = LinearScalarAdvectionEquation(ADVECTION_VELOCITY[:d])

    if case.volume_integral == "weak_form":
        volume_integral = VolumeIntegralWeakForm()
    elif case.volume_integral == "flux_differencing":
        volume_integral = VolumeIntegralFluxDifferencing(equations.flux_central)
    else:
        raise _unsupported_volume_integral(case)

    solver = DGSEM(case.polydeg, equations.flux_lax_friedrichs, volume_integral)
    topology = _topology(case, solver, [-1.0] * d, [1.0] * d)
    return Semidiscretization(topology, equations, equations.initial_condition_convergence_test, solver)


def build_euler_weak_blast(case: CaseConfig) -> Semidiscretization:
    """Weak blast wave on the periodic cube [-2, 2]^d."""
    d = case.ndims
    equations = EULER_EQUATIONS[d]()

    if case.volume_integral == "shock_capturing":
        volume_integral = VolumeIntegralShockCapturingHG(
            equations.density_pressure,
            volume_flux_dg=equations.flux_shima_etal,
            volume_flux_fv=equations.flux_lax_friedrichs,
            alpha_max=0.5,
            alpha_min=0.001,
        )
    elif case.volume_integral == "flux_differencing":
        volume_integral = VolumeIntegralFluxDifferencing(equations.flux_shima_etal)
    else:
        volume_integral = VolumeIntegralWeakForm()

    solver = DGSEM(case.polydeg, equations.flux_lax_friedrichs, volume_integral)
    topology = _topology(case, solver, [-2.0] * d, [2.0] * d)
    return Semidiscretization(topology, equations, equations.initial_condition_weak_blast_wave, solver)


def build_hypdiff_poisson(case: CaseConfig) -> Semidiscretization:
    """Hyperbolic diffusion Poisson problem, Dirichlet in x, periodic otherwise."""
    d = case.ndims
    equations = HYPDIFF_EQUATIONS[d]()
    if case.volume_integral != "weak_form":
        raise _unsupported_volume_integral(case)

    solver = DGSEM(case.polydeg, equations.flux_lax_friedrichs)
    periodicity = [False] + [True] * (d - 1)
    topology = _topology(case, solver, [0.0] * d, [1.0] * d, periodicity=periodicity)

    dirichlet = BoundaryConditionDirichlet(equations.boundary_state_poisson_nonperiodic)
    return Semidiscretization(topology, equations, equations.initial_condition_poisson_nonperiodic, solver,
                              boundary_conditions={"x_neg": dirichlet, "x_pos": dirichlet},
                              source_terms=equations.source_terms_poisson_nonperiodic)


def build_swe_convergence(case: CaseConfig) -> Semidiscretization:
    """Manufactured shallow water solution on [0, sqrt(2)]^d with Dirichlet boundaries and sources."""
    d = case.ndims
    if d not in SHALLOW_WATER_EQUATIONS:
        raise ConfigurationError(f"Case '{case.name}': shallow water is available in 1D and 2D")
    if case.volume_integral != "flux_differencing":
        raise _unsupported_volume_integral(case)

    equations = SHALLOW_WATER_EQUATIONS[d](gravity_constant=9.81)
    solver = DGSEM(
        case.polydeg,
        (equations.flux_lax_friedrichs, equations.flux_nonconservative_fjordholm_etal),
        VolumeIntegralFluxDifferencing(
            (equations.flux_wintermeyer_etal, equations.flux_nonconservative_wintermeyer_etal)),
    )
    topology = _topology(case, solver, [0.0] * d, [np.sqrt(2.0)] * d, periodicity=False)
    return Semidiscretization(topology, equations, equations.initial_condition_convergence_test, solver,
                              boundary_conditions=BoundaryConditionDirichlet(
                                  equations.initial_condition_convergence_test),
                              source_terms=equations.source_terms_convergence_test)


def build_swe_stone_throw(case: CaseConfig) -> Semidiscretization:
    """Discontinuous bottom and velocity on [-3, 3] between two slip walls."""
    if case.ndims != 1:
        raise ConfigurationError(f"Case '{case.name}': shallow water is one-dimensional")

    equations = ShallowWaterEquations1D(gravity_constant=9.812, H0=1.75)
    volume_flux = (equations.flux_wintermeyer_etal, equations.flux_nonconservative_wintermeyer_etal)
    surface_flux = (equations.flux_lax_friedrichs, equations.flux_nonconservative_fjordholm_etal)

    if case.volume_integral == "shock_capturing":
        volume_integral = VolumeIntegralShockCapturingHG(
            equations.waterheight_pressure,
            volume_flux_dg=volume_flux,
            volume_flux_fv=surface_flux,
            alpha_max=0.5,
            alpha_min=0.001,
        )
    elif case.volume_integral == "flux_differencing":
        volume_integral = VolumeIntegralFluxDifferencing(volume_flux)
    else:
        raise _unsupported_volume_integral(case)

    solver = DGSEM(case.polydeg, surface_flux, volume_integral)
    topology = _topology(case, solver, -3.0, 3.0, periodicity=False)
    return Semidiscretization(topology, equations, equations.initial_condition_stone_throw_discontinuous_bottom,
                              solver, boundary_conditions=boundary_condition_slip_wall)


CASE_BUILDERS: Dict[str, Callable[[CaseConfig], Semidiscretization]] = {
    "advection": build_advection,
    "euler_weak_blast": build_euler_weak_blast,
    "hypdiff_poisson": build_hypdiff_poisson,
    "swe_convergence": build_swe_convergence,
    "swe_stone_throw": build_swe_stone_throw,
}


def build_semidiscretization(case: CaseConfig) -> Semidiscretization:
    try:
        builder = CASE_BUILDERS[case.kind]
    except KeyError:
        raise ConfigurationError(f"Unknown case kind '{case.kind}', expected one of {list(CASE_BUILDERS)}") from None
    return builder(case)

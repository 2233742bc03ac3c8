import dataclasses

import numpy as np
import pytest

from treedg.boundary_conditions import (
    BoundaryConditionDirichlet,
    boundary_condition_periodic,
    boundary_condition_slip_wall,
)
from treedg.cpu import DGResidualCPU
from treedg.equations import LinearScalarAdvectionEquation, ShallowWaterEquations1D
from treedg.numba_parallel import DGResidualNumba
from treedg.semidiscretization import Semidiscretization
from treedg.shared.basis import LobattoLegendreBasis
from treedg.shared.errors import ConfigurationError, NumericalStabilityError, check_finite
from treedg.shared.topology import build_topology
from treedg.shared.tree_mesh import TreeMesh
from treedg.solver import (
    DGSEM,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)


def _topology(ndims=1, polydeg=3, level=2, periodicity=True, patches=(), mortar="l2"):
    mesh = TreeMesh([-1.0] * ndims, [1.0] * ndims, initial_refinement_level=level,
                    periodicity=periodicity, refinement_patches=patches)
    return build_topology(mesh, LobattoLegendreBasis(polydeg), mortar=mortar)


def _advection(ndims=1):
    return LinearScalarAdvectionEquation([1.0, 0.5, -0.25][:ndims])


# =============================================================================
# Configuration
# =============================================================================

def test_equation_dimension_must_match_topology():
    eq = _advection(1)
    with pytest.raises(ConfigurationError, match="1D"):
        Semidiscretization(_topology(ndims=2), eq, eq.initial_condition_constant,
                           DGSEM(3, eq.flux_lax_friedrichs))


def test_solver_degree_must_match_topology():
    eq = _advection()
    with pytest.raises(ConfigurationError, match="polydeg"):
        Semidiscretization(_topology(polydeg=3), eq, eq.initial_condition_constant,
                           DGSEM(2, eq.flux_lax_friedrichs))


def test_solver_mortar_type_must_match_topology():
    eq = _advection(2)
    topo = _topology(ndims=2, patches=[([-0.5, -0.5], [0.5, 0.5])])
    with pytest.raises(ConfigurationError, match="mortar"):
        Semidiscretization(topo, eq, eq.initial_condition_constant,
                           DGSEM(3, eq.flux_lax_friedrichs, mortar="identity"))


def test_unknown_mortar_type():
    with pytest.raises(ConfigurationError):
        DGSEM(3, _advection().flux_lax_friedrichs, mortar="spectral")


def test_weak_form_rejects_nonconservative_equations():
    eq = ShallowWaterEquations1D()
    solver = DGSEM(3, (eq.flux_lax_friedrichs, eq.flux_nonconservative_fjordholm_etal))
    with pytest.raises(ConfigurationError, match="weak form"):
        Semidiscretization(_topology(), eq, eq.initial_condition_convergence_test, solver)


def test_missing_nonconservative_flux():
    eq = ShallowWaterEquations1D()
    solver = DGSEM(3, eq.flux_lax_friedrichs, VolumeIntegralFluxDifferencing(
        (eq.flux_wintermeyer_etal, eq.flux_nonconservative_wintermeyer_etal)))
    with pytest.raises(ConfigurationError, match="surface_flux"):
        Semidiscretization(_topology(), eq, eq.initial_condition_convergence_test, solver)


def test_unexpected_nonconservative_flux():
    eq = _advection()
    solver = DGSEM(3, (eq.flux_lax_friedrichs, ShallowWaterEquations1D.flux_nonconservative_fjordholm_etal))
    with pytest.raises(ConfigurationError, match="no nonconservative terms"):
        Semidiscretization(_topology(), eq, eq.initial_condition_constant, solver)


def test_solver_configuration_is_frozen():
    eq = _advection()
    solver = DGSEM(3, eq.flux_lax_friedrichs)
    assert isinstance(solver.volume_integral, VolumeIntegralWeakForm)
    with pytest.raises(dataclasses.FrozenInstanceError):
        solver.mortar = "identity"

    other = solver.clone()
    assert other == solver
    assert other.basis is not solver.basis
    assert not np.shares_memory(other.basis.nodes, solver.basis.nodes)


def test_flux_tuple_needs_two_entries():
    eq = _advection()
    with pytest.raises(ConfigurationError):
        DGSEM(3, (eq.flux_lax_friedrichs,))


@pytest.mark.parametrize("kwargs", [dict(alpha_max=1.5), dict(alpha_min=0.5)])
def test_blending_bounds_are_checked(kwargs):
    eq = ShallowWaterEquations1D()
    with pytest.raises(ConfigurationError):
        VolumeIntegralShockCapturingHG(eq.waterheight_pressure, eq.flux_wintermeyer_etal,
                                       eq.flux_lax_friedrichs, **kwargs)


# =============================================================================
# Boundary conditions
# =============================================================================

def test_boundary_conditions_required_for_physical_boundaries():
    eq = _advection()
    with pytest.raises(ConfigurationError, match="x_neg"):
        Semidiscretization(_topology(periodicity=False), eq, eq.initial_condition_constant,
                           DGSEM(3, eq.flux_lax_friedrichs))


def test_unknown_boundary_tag():
    eq = _advection()
    dirichlet = BoundaryConditionDirichlet(eq.initial_condition_constant)
    with pytest.raises(ConfigurationError, match="Unknown boundary tags"):
        Semidiscretization(_topology(periodicity=False), eq, eq.initial_condition_constant,
                           DGSEM(3, eq.flux_lax_friedrichs),
                           boundary_conditions={"x_neg": dirichlet, "x_pos": dirichlet, "y_pos": dirichlet})


def test_periodic_condition_on_physical_boundary():
    eq = _advection()
    with pytest.raises(ConfigurationError, match="Periodic"):
        Semidiscretization(_topology(periodicity=False), eq, eq.initial_condition_constant,
                           DGSEM(3, eq.flux_lax_friedrichs), boundary_conditions=boundary_condition_periodic)


def test_physical_condition_on_periodic_direction():
    eq = _advection()
    with pytest.raises(ConfigurationError, match="periodic direction"):
        Semidiscretization(_topology(), eq, eq.initial_condition_constant, DGSEM(3, eq.flux_lax_friedrichs),
                           boundary_conditions={"x_neg": BoundaryConditionDirichlet(eq.initial_condition_constant)})


def test_slip_wall_needs_mirror_state():
    eq = _advection()
    semi = Semidiscretization(_topology(periodicity=False), eq, eq.initial_condition_constant,
                              DGSEM(3, eq.flux_lax_friedrichs), boundary_conditions=boundary_condition_slip_wall)
    with pytest.raises(ConfigurationError, match="mirror state"):
        DGResidualCPU(semi)


# =============================================================================
# Buffers
# =============================================================================

@pytest.fixture(params=[DGResidualCPU, DGResidualNumba], ids=["cpu", "numba"])
def pipeline(request, make_semi):
    semi = make_semi(kind="advection", ndims=1, polydeg=3, level=2)
    return request.param(semi)


def test_wrong_solution_shape(pipeline):
    u = np.zeros((pipeline.n_elements + 1, 1, 4))
    with pytest.raises(ConfigurationError, match="shape"):
        pipeline.residual(u, 0.0)


def test_read_only_residual_buffer(pipeline):
    semi = pipeline.semi
    du = semi.allocate()
    du.setflags(write=False)
    with pytest.raises(ConfigurationError, match="writable"):
        pipeline.rhs(du, semi.compute_coefficients(), 0.0)


def test_single_precision_residual_buffer(pipeline):
    semi = pipeline.semi
    du = semi.allocate().astype(np.float32)
    with pytest.raises(ConfigurationError, match="float64"):
        pipeline.rhs(du, semi.compute_coefficients(), 0.0)


def test_nan_in_solution_reported_after_volume_integral(pipeline):
    u = pipeline.semi.compute_coefficients()
    u[2, 0, 1] = np.nan
    with pytest.raises(NumericalStabilityError) as excinfo:
        pipeline.residual(u, 0.0)
    assert excinfo.value.stage == "volume_integral"
    assert excinfo.value.buffer == "du"
    assert excinfo.value.first_index[0] == 2


def test_finite_checks_can_be_disabled(make_semi):
    semi = make_semi(kind="advection", ndims=1, polydeg=3, level=2)
    u = semi.compute_coefficients()
    u[0, 0, 0] = np.inf
    du = DGResidualCPU(semi, check_finite=False).residual(u, 0.0)
    assert not np.all(np.isfinite(du))


def test_concurrent_evaluation_is_refused(pipeline):
    semi = pipeline.semi
    pipeline._lock.acquire()
    try:
        with pytest.raises(RuntimeError, match="in flight"):
            pipeline.residual(semi.compute_coefficients(), 0.0)
    finally:
        pipeline._lock.release()
    # the guard is released again afterwards
    pipeline.residual(semi.compute_coefficients(), 0.0)


def test_check_finite_ignores_masked_positions():
    array = np.array([[1.0, np.nan], [2.0, 3.0]])
    check_finite("stage", "buf", array, valid=np.array([[True, False], [True, True]]))
    with pytest.raises(NumericalStabilityError) as excinfo:
        check_finite("stage", "buf", array)
    assert excinfo.value.n_bad == 1
    assert excinfo.value.first_index == (0, 1)

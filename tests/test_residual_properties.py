import numpy as np
import pytest

from treedg.boundary_conditions import BoundaryConditionDirichlet
from treedg.equations import CompressibleEulerEquations2D, ShallowWaterEquations1D
from treedg.semidiscretization import Semidiscretization
from treedg.shared.topology import build_topology
from treedg.shared.tree_mesh import TreeMesh
from treedg.solver import DGSEM, VolumeIntegralFluxDifferencing, VolumeIntegralWeakForm


PATCH_2D = [([-0.5, -0.5], [0.5, 0.5])]


def _periodic_stone_throw(polydeg=3, level=3):
    equations = ShallowWaterEquations1D(gravity_constant=9.812, H0=1.75)
    solver = DGSEM(
        polydeg,
        (equations.flux_lax_friedrichs, equations.flux_nonconservative_fjordholm_etal),
        VolumeIntegralFluxDifferencing(
            (equations.flux_wintermeyer_etal, equations.flux_nonconservative_wintermeyer_etal)),
    )
    mesh = TreeMesh(-3.0, 3.0, initial_refinement_level=level)
    topology = build_topology(mesh, solver.basis, mortar=solver.mortar)
    return Semidiscretization(topology, equations,
                              equations.initial_condition_stone_throw_discontinuous_bottom, solver)


def _euler_2d(volume_integral, initial_condition="weak_blast_wave", level=2, patches=PATCH_2D):
    equations = CompressibleEulerEquations2D()
    solver = DGSEM(3, equations.flux_lax_friedrichs, volume_integral)
    mesh = TreeMesh([-2.0, -2.0], [2.0, 2.0], initial_refinement_level=level, refinement_patches=patches)
    topology = build_topology(mesh, solver.basis, mortar=solver.mortar)
    ic = getattr(equations, f"initial_condition_{initial_condition}")
    return Semidiscretization(topology, equations, ic, solver)


@pytest.mark.parametrize("kind, volume_integral", [
    ("advection", "flux_differencing"),
    ("euler_weak_blast", "shock_capturing"),
])
def test_repeated_evaluation_is_bit_identical(kind, volume_integral, make_semi, make_pipelines, perturbed_solution):
    semi = make_semi(kind=kind, ndims=2, polydeg=3, level=2, volume_integral=volume_integral,
                     patches=[([-1.0, -1.0], [1.0, 1.0])] if kind == "euler_weak_blast" else PATCH_2D)
    u = perturbed_solution(semi)

    for pipeline in make_pipelines(semi):
        du = semi.allocate()
        pipeline.rhs(du, u, 0.0)
        first = du.copy()

        # stale contents of du must not leak into the next evaluation
        du[...] = 1.0e3
        pipeline.rhs(du, u, 0.0)
        np.testing.assert_array_equal(du, first)


@pytest.mark.parametrize("params", [
    dict(kind="advection", ndims=2, polydeg=3, level=2, patches=PATCH_2D),
    dict(kind="advection", ndims=3, polydeg=2, level=1, patches=[([-1.0] * 3, [0.0] * 3)]),
    dict(kind="euler_weak_blast", ndims=2, polydeg=3, level=2, volume_integral="shock_capturing",
         patches=[([-1.0, -1.0], [1.0, 1.0])]),
    dict(kind="euler_weak_blast", ndims=1, polydeg=4, level=3, volume_integral="flux_differencing"),
    dict(kind="euler_weak_blast", ndims=3, polydeg=2, level=1, volume_integral="shock_capturing",
         patches=[([-2.0] * 3, [0.0] * 3)]),
])
def test_periodic_mesh_conserves_every_variable(params, make_semi, make_pipelines, perturbed_solution, integrate):
    semi = make_semi(**params)
    u = perturbed_solution(semi)

    for pipeline in make_pipelines(semi):
        du = pipeline.residual(u, 0.0)
        np.testing.assert_allclose(integrate(semi, du), 0.0, atol=1e-10)


def test_nonconservative_surface_terms_do_not_cancel(make_pipelines, integrate):
    semi = _periodic_stone_throw()
    topo = semi.topology
    u = semi.compute_coefficients()

    for pipeline in make_pipelines(semi):
        du = pipeline.residual(u, 0.0)
        # the bottom has no conservative flux and the mass has no nonconservative one
        assert abs(integrate(semi, du)[0]) < 1e-10

        b = pipeline.cache.interfaces_u[:topo.n_interfaces, :, 2, 0]
        jumps = np.flatnonzero(np.abs(b[:, 0] - b[:, 1]) > 1e-8)
        assert jumps.size > 0

        sfv = pipeline.cache.surface_flux_values
        for i in jumps:
            axis = topo.interface_orientation[i]
            left = sfv[topo.interface_left[i], 2 * axis + 1]
            right = sfv[topo.interface_right[i], 2 * axis]
            np.testing.assert_allclose(left[0], right[0], rtol=1e-13, atol=1e-13)
            assert np.all(np.abs(left[1] - right[1]) > 1e-8)


@pytest.mark.parametrize("builder", ["advection_1d", "euler_2d_mortars"])
def test_constant_state_is_steady(builder, make_semi, make_pipelines):
    if builder == "advection_1d":
        base = make_semi(kind="advection", ndims=1, polydeg=3, level=1)
        semi = Semidiscretization(base.topology, base.equations, base.equations.initial_condition_constant,
                                  base.solver)
    else:
        semi = _euler_2d(VolumeIntegralFluxDifferencing(CompressibleEulerEquations2D.flux_shima_etal),
                         initial_condition="constant")

    u = semi.compute_coefficients()
    for pipeline in make_pipelines(semi):
        np.testing.assert_allclose(pipeline.residual(u, 0.0), 0.0, atol=1e-10)


def test_slip_wall_has_no_mass_flux(make_semi, make_pipelines):
    semi = make_semi(kind="swe_stone_throw", ndims=1, polydeg=3, level=3, volume_integral="shock_capturing")
    topo = semi.topology
    u = semi.compute_coefficients()

    for pipeline in make_pipelines(semi):
        # a few explicit Euler steps move the state off the initial condition
        state = u.copy()
        for _ in range(3):
            state = state + 1e-3 * pipeline.residual(state, 0.0)

        pipeline.residual(state, 0.0)
        sfv = pipeline.cache.surface_flux_values
        wall = sfv[topo.boundary_element, topo.boundary_direction, 0]
        np.testing.assert_allclose(wall, 0.0, atol=1e-13)


def test_identity_mortars_reproduce_conforming_interfaces(make_semi, make_pipelines, perturbed_solution):
    conforming = make_semi(kind="advection", ndims=2, polydeg=3, level=2)
    topo = conforming.topology.as_equal_resolution_mortars([0, 5, 17, 30])
    solver = DGSEM(3, conforming.solver.surface_flux, mortar="identity")
    with_mortars = Semidiscretization(topo, conforming.equations, conforming.initial_condition, solver)
    u = perturbed_solution(conforming)

    reference = make_pipelines(conforming)[0].residual(u, 0.0)
    for pipeline in make_pipelines(with_mortars):
        np.testing.assert_allclose(pipeline.residual(u, 0.0), reference, rtol=1e-12, atol=1e-12)


def test_central_flux_differencing_equals_weak_form(make_semi, make_pipelines, perturbed_solution):
    weak = make_semi(kind="advection", ndims=2, polydeg=4, level=2, patches=PATCH_2D)
    split = make_semi(kind="advection", ndims=2, polydeg=4, level=2, patches=PATCH_2D,
                      volume_integral="flux_differencing")
    u = perturbed_solution(weak)

    reference = make_pipelines(weak)[0].residual(u, 0.0)
    for pipeline in make_pipelines(split):
        np.testing.assert_allclose(pipeline.residual(u, 0.0), reference, rtol=1e-11, atol=1e-11)


def test_central_flux_differencing_equals_weak_form_for_euler(make_pipelines, perturbed_solution):
    weak = _euler_2d(VolumeIntegralWeakForm())
    split = _euler_2d(VolumeIntegralFluxDifferencing(CompressibleEulerEquations2D.flux_central))
    u = perturbed_solution(weak)

    reference = make_pipelines(weak)[0].residual(u, 0.0)
    for pipeline in make_pipelines(split):
        np.testing.assert_allclose(pipeline.residual(u, 0.0), reference, rtol=1e-10, atol=1e-10)


SWE_PATCH_2D = [([0.4, 0.4], [1.0, 1.0])]


def _raise_bottom(semi, elements, step=0.2):
    """Initial condition with the bottom of `elements` raised by `step` (water height unchanged)."""
    u = semi.compute_coefficients()
    u[elements, 3] += step
    return u


def test_nonconservative_mortar_terms_do_not_cancel(make_semi, make_pipelines):
    semi = make_semi(kind="swe_convergence", ndims=2, polydeg=3, level=2, volume_integral="flux_differencing",
                     patches=SWE_PATCH_2D)
    topo = semi.topology
    eq = semi.equations
    noncons = semi.solver.surface_flux.nonconservative
    u = _raise_bottom(semi, topo.element_levels == topo.element_levels.max())
    assert topo.n_mortars > 0

    for pipeline in make_pipelines(semi):
        pipeline.residual(u, 0.0)
        sfv = pipeline.cache.surface_flux_values
        mortars_u = pipeline.cache.mortars_u

        for m in range(topo.n_mortars):
            axis = topo.mortar_orientation[m]
            side = topo.mortar_large_side[m]
            large = sfv[topo.mortar_large[m], 2 * axis + 1 - side]

            projected = np.zeros_like(large)
            jump = np.zeros_like(large)
            for c in range(topo.n_mortar_children):
                reverse = topo.mortar_reverse[c]
                projected += sfv[topo.mortar_small[m, c], 2 * axis + side] @ reverse.T
                u_small = mortars_u[m, c, 1 - side]
                u_large = mortars_u[m, c, side]
                g = np.stack([noncons(u_large[:, q], u_small[:, q], axis, eq.params)
                              - noncons(u_small[:, q], u_large[:, q], axis, eq.params)
                              for q in range(topo.n_face_nodes)], axis=1)
                jump += 0.5 * g @ reverse.T

            # mass and tangential momentum carry no nonconservative part
            tangential = 2 - axis
            np.testing.assert_allclose(large[[0, tangential]], projected[[0, tangential]], rtol=1e-12, atol=1e-12)
            # the large side sees g(large, small), the small side g(small, large)
            assert np.abs(jump[1 + axis]).max() > 1e-6
            np.testing.assert_allclose(large - projected, jump, rtol=1e-10, atol=1e-9)


def test_identity_mortars_keep_nonconservative_orientation(make_semi, make_pipelines):
    conforming = make_semi(kind="swe_convergence", ndims=2, polydeg=3, level=2, volume_integral="flux_differencing")
    eq = conforming.equations
    topo = conforming.topology.as_equal_resolution_mortars([0, 5, 11, 17])
    solver = DGSEM(3, conforming.solver.surface_flux, conforming.solver.volume_integral, mortar="identity")
    with_mortars = Semidiscretization(topo, eq, conforming.initial_condition, solver,
                                      boundary_conditions=BoundaryConditionDirichlet(eq.initial_condition_convergence_test),
                                      source_terms=conforming.source_terms)
    u = _raise_bottom(conforming, np.arange(topo.n_elements) % 2 == 0)

    reference = make_pipelines(conforming)[0].residual(u, 0.0)
    for pipeline in make_pipelines(with_mortars):
        np.testing.assert_allclose(pipeline.residual(u, 0.0), reference, rtol=1e-12, atol=1e-10)

import numpy as np
import pytest

import treedg.equations
from treedg.cpu import blending_factor
from treedg.equations import (
    AbstractEquations,
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


STATES = {
    "advection": (LinearScalarAdvectionEquation([1.0, -0.5]), np.array([0.7]), np.array([-0.3])),
    "euler_1d": (CompressibleEulerEquations1D(), np.array([1.0, 0.2, 2.6]), np.array([0.9, -0.1, 2.4])),
    "euler_2d": (CompressibleEulerEquations2D(), np.array([1.0, 0.1, -0.2, 2.5]),
                 np.array([1.2, 0.3, 0.1, 2.9])),
    "euler_3d": (CompressibleEulerEquations3D(), np.array([1.0, 0.1, -0.2, 0.3, 2.5]),
                 np.array([1.2, 0.3, 0.1, -0.4, 2.9])),
    "hypdiff_1d": (HyperbolicDiffusionEquations1D(), np.array([2.0, 0.3]), np.array([1.5, -0.2])),
    "hypdiff_2d": (HyperbolicDiffusionEquations2D(), np.array([2.0, 0.3, -0.4]), np.array([1.5, -0.2, 0.1])),
    "hypdiff_3d": (HyperbolicDiffusionEquations3D(), np.array([2.0, 0.3, -0.4, 0.6]),
                   np.array([1.5, -0.2, 0.1, 0.2])),
    "swe": (ShallowWaterEquations1D(), np.array([1.2, 0.3, 0.4]), np.array([0.9, -0.2, 0.7])),
    "swe_2d": (ShallowWaterEquations2D(), np.array([1.2, 0.3, -0.1, 0.4]), np.array([0.9, -0.2, 0.2, 0.7])),
}


def _two_point_fluxes(eq):
    names = ("flux_central", "flux_lax_friedrichs", "flux_shima_etal", "flux_wintermeyer_etal", "flux_godunov")
    return [(name, getattr(eq, name)) for name in names if hasattr(eq, name)]


def test_every_equation_system_has_a_sample_state():
    exported = {getattr(treedg.equations, name) for name in treedg.equations.__all__}
    systems = {cls for cls in exported
               if isinstance(cls, type) and issubclass(cls, AbstractEquations) and cls is not AbstractEquations}
    assert systems == {type(eq) for eq, _, _ in STATES.values()}


@pytest.mark.parametrize("name", list(STATES))
def test_generated_surface_fluxes(name):
    eq, u_ll, u_rr = STATES[name]
    # the bottom topography is never dissipated
    n_dissipative = eq.n_variables - 1 if eq.have_nonconservative_terms else eq.n_variables
    for orientation in range(eq.ndims):
        f_ll = eq.flux(u_ll, orientation, eq.params)
        f_rr = eq.flux(u_rr, orientation, eq.params)
        lam = eq.max_abs_speed(u_ll, u_rr, orientation, eq.params)

        expected = 0.5 * (f_ll + f_rr)
        expected[:n_dissipative] -= 0.5 * lam * (u_rr - u_ll)[:n_dissipative]
        np.testing.assert_allclose(eq.flux_lax_friedrichs(u_ll, u_rr, orientation, eq.params), expected,
                                   rtol=1e-14, atol=1e-15)
        if hasattr(eq, "flux_central"):
            np.testing.assert_allclose(eq.flux_central(u_ll, u_rr, orientation, eq.params),
                                       0.5 * (f_ll + f_rr), rtol=1e-14, atol=1e-15)


@pytest.mark.parametrize("name", list(STATES))
def test_two_point_fluxes_are_consistent(name):
    eq, u, _ = STATES[name]
    for orientation in range(eq.ndims):
        expected = eq.flux(u, orientation, eq.params)
        for flux_name, flux in _two_point_fluxes(eq):
            np.testing.assert_allclose(flux(u, u, orientation, eq.params), expected, rtol=1e-14,
                                       err_msg=flux_name)


@pytest.mark.parametrize("name", ["euler_1d", "euler_2d", "euler_3d", "swe", "swe_2d"])
def test_symmetric_fluxes(name):
    eq, u_ll, u_rr = STATES[name]
    for flux_name in ("flux_shima_etal", "flux_wintermeyer_etal", "flux_central"):
        if not hasattr(eq, flux_name):
            continue
        flux = getattr(eq, flux_name)
        np.testing.assert_allclose(flux(u_ll, u_rr, 0, eq.params), flux(u_rr, u_ll, 0, eq.params), rtol=1e-14)


def test_shallow_water_dissipation_skips_the_bottom():
    eq, u_ll, u_rr = STATES["swe"]
    f = eq.flux_lax_friedrichs(u_ll, u_rr, 0, eq.params)
    assert f[2] == 0.0


def test_shallow_water_nonconservative_fluxes():
    eq, u_ll, u_rr = STATES["swe"]
    g = eq.params[0]
    np.testing.assert_allclose(eq.flux_nonconservative_wintermeyer_etal(u_ll, u_rr, 0, eq.params),
                               [0.0, g * u_ll[0] * u_rr[2], 0.0])
    # local part only when both sides share the bottom
    same = u_rr.copy()
    same[2] = u_ll[2]
    np.testing.assert_allclose(eq.flux_nonconservative_fjordholm_etal(u_ll, same, 0, eq.params),
                               [0.0, g * u_ll[0] * u_ll[2], 0.0])


@pytest.mark.parametrize("orientation", [0, 1])
def test_two_dimensional_shallow_water_slope_acts_on_normal_momentum(orientation):
    eq, u_ll, u_rr = STATES["swe_2d"]
    g = eq.params[0]
    expected = np.zeros(4)
    expected[1 + orientation] = g * u_ll[0] * u_rr[3]
    np.testing.assert_allclose(eq.flux_nonconservative_wintermeyer_etal(u_ll, u_rr, orientation, eq.params),
                               expected)

    mirrored = eq.mirror_state(u_ll, orientation, eq.params)
    assert mirrored[1 + orientation] == -u_ll[1 + orientation]
    assert mirrored[2 - orientation] == u_ll[2 - orientation]

    # a wall sees no mass flux
    f = eq.flux_lax_friedrichs(u_ll, mirrored, orientation, eq.params)
    assert f[0] == pytest.approx(0.0, abs=1e-15)
    assert f[3] == 0.0


def test_lake_at_rest_initial_condition():
    eq = ShallowWaterEquations1D(gravity_constant=9.812, H0=1.75)
    for x in (-2.9, -1.0, -0.1, 0.3, 2.5):
        h, h_v, b = eq.initial_condition_stone_throw_discontinuous_bottom(np.array([x]), 0.0, eq.params)
        assert np.isclose(h + b, 1.75)
    _, h_v, _ = eq.initial_condition_stone_throw_discontinuous_bottom(np.array([-2.0]), 0.0, eq.params)
    assert h_v == 0.0


@pytest.mark.parametrize("eq", [CompressibleEulerEquations1D(), CompressibleEulerEquations2D(),
                                CompressibleEulerEquations3D()])
def test_euler_mirror_state_flips_normal_momentum(eq):
    u = eq.initial_condition_constant(np.zeros(eq.ndims), 0.0, eq.params)
    for orientation in range(eq.ndims):
        mirrored = eq.mirror_state(u, orientation, eq.params)
        assert mirrored[1 + orientation] == -u[1 + orientation]
        others = [v for v in range(eq.n_variables) if v != 1 + orientation]
        np.testing.assert_array_equal(mirrored[others], u[others])


def test_clone_copies_constants():
    eq = ShallowWaterEquations1D(gravity_constant=9.812, H0=1.75)
    other = eq.clone()
    other.params[0] = 1.0
    assert eq.params[0] == 9.812
    assert other.flux is eq.flux


class TestBlendingFactor:
    def test_smooth_data_is_not_blended(self):
        assert blending_factor(0.0, 4, 0.5, 0.001) == 0.0

    def test_rough_data_is_capped(self):
        assert blending_factor(1.0, 4, 0.5, 0.001) == 0.5
        assert blending_factor(1.0, 4, 1.0, 0.001) == 1.0

    def test_threshold_gives_one_half(self):
        n_nodes = 4
        threshold = 0.5 * 10.0 ** (-1.8 * n_nodes ** 0.25)
        assert np.isclose(blending_factor(threshold, n_nodes, 1.0, 0.001), 0.5)

"""
Shallow water equations with a bottom topography in 1D and 2D.

Variables: (h, h_v1[, h_v2], b), where the bottom b is carried as a passive
variable; params = [gravity, H0]. The bottom slope term g h grad(b) is
non-conservative and enters through a two-point nonconservative flux.
"""

import numpy as np
from numba import njit

from .base import AbstractEquations, make_flux_lax_friedrichs


@njit(cache=True)
def waterheight_pressure(u, params):
    h = u[0]
    return h * 0.5 * params[0] * h * h


# =============================================================================
# 1D
# =============================================================================

@njit(cache=True)
def flux_1d(u, orientation, params):
    g = params[0]
    h, h_v = u[0], u[1]
    v = h_v / h
    return np.array([h_v, h_v * v + 0.5 * g * h * h, 0.0])


@njit(cache=True)
def flux_wintermeyer_etal_1d(u_ll, u_rr, orientation, params):
    """Entropy conservative split form of Wintermeyer et al. (2017)."""
    g = params[0]
    h_ll, h_v_ll = u_ll[0], u_ll[1]
    h_rr, h_v_rr = u_rr[0], u_rr[1]
    v_avg = 0.5 * (h_v_ll / h_ll + h_v_rr / h_rr)
    p_avg = 0.5 * g * h_ll * h_rr
    f1 = 0.5 * (h_v_ll + h_v_rr)
    return np.array([f1, f1 * v_avg + p_avg, 0.0])


@njit(cache=True)
def flux_nonconservative_wintermeyer_etal_1d(u_ll, u_rr, orientation, params):
    """Bottom slope term g h_ll b_rr; not symmetric in its arguments."""
    return np.array([0.0, params[0] * u_ll[0] * u_rr[2], 0.0])


@njit(cache=True)
def flux_nonconservative_fjordholm_etal_1d(u_ll, u_rr, orientation, params):
    """Bottom slope term with a local diagonal part and an averaged jump part."""
    g = params[0]
    h_ll, b_ll = u_ll[0], u_ll[2]
    h_rr, b_rr = u_rr[0], u_rr[2]
    h_average = 0.5 * (h_ll + h_rr)
    return np.array([0.0, g * h_ll * b_ll + g * h_average * (b_rr - b_ll), 0.0])


@njit(cache=True)
def max_abs_speed_1d(u_ll, u_rr, orientation, params):
    g = params[0]
    v_ll = abs(u_ll[1] / u_ll[0])
    v_rr = abs(u_rr[1] / u_rr[0])
    c_ll = np.sqrt(g * u_ll[0])
    c_rr = np.sqrt(g * u_rr[0])
    return max(v_ll, v_rr) + max(c_ll, c_rr)


@njit(cache=True)
def mirror_state_1d(u, orientation, params):
    return np.array([u[0], -u[1], u[2]])


@njit(cache=True)
def prim2cons_1d(H, v, b):
    h = H - b
    return np.array([h, h * v, b])


@njit(cache=True)
def initial_condition_stone_throw_discontinuous_bottom(x, t, params):
    """
    Lake at rest with a discontinuous velocity and bottom.

    Discontinuities sit at x = -1.5, -0.75, 0 and 0.75, which are element
    interfaces of the level-3 mesh on [-3, 3].
    """
    H = params[1]
    v = 0.0
    if -0.75 <= x[0] <= 0.0:
        v = -1.0
    elif 0.0 <= x[0] <= 0.75:
        v = 1.0
    b = 1.5 / np.exp(0.5 * (x[0] - 1.0) ** 2) + 0.75 / np.exp(0.5 * (x[0] + 1.0) ** 2)
    if -1.5 <= x[0] <= 0.0:
        b = 0.5
    return prim2cons_1d(H, v, b)


@njit(cache=True)
def initial_condition_convergence_test_1d(x, t, params):
    """Manufactured solution, periodic on [0, sqrt(2)]."""
    c = 7.0
    omega_x = 2.0 * np.pi * np.sqrt(2.0)
    omega_t = 2.0 * np.pi
    H = c + np.cos(omega_x * x[0]) * np.cos(omega_t * t)
    b = 2.0 + 0.5 * np.sin(np.sqrt(2.0) * np.pi * x[0])
    return prim2cons_1d(H, 0.5, b)


@njit(cache=True)
def source_terms_convergence_test_1d(u, x, t, params):
    g = params[0]
    c = 7.0
    omega_x = 2.0 * np.pi * np.sqrt(2.0)
    omega_t = 2.0 * np.pi
    omega_b = np.sqrt(2.0) * np.pi
    v = 0.5

    H = c + np.cos(omega_x * x[0]) * np.cos(omega_t * t)
    H_x = -omega_x * np.sin(omega_x * x[0]) * np.cos(omega_t * t)
    H_t = -omega_t * np.cos(omega_x * x[0]) * np.sin(omega_t * t)
    b = 2.0 + 0.5 * np.sin(omega_b * x[0])
    b_x = 0.5 * omega_b * np.cos(omega_b * x[0])

    du1 = H_t + v * (H_x - b_x)
    du2 = v * du1 + g * (H - b) * H_x
    return np.array([du1, du2, 0.0])


# no dissipation on the bottom
flux_lax_friedrichs_1d = make_flux_lax_friedrichs(flux_1d, max_abs_speed_1d, n_dissipative=2)


class ShallowWaterEquations1D(AbstractEquations):
    ndims = 1
    variable_names = ("h", "h_v", "b")
    have_nonconservative_terms = True

    flux = staticmethod(flux_1d)
    max_abs_speed = staticmethod(max_abs_speed_1d)
    flux_wintermeyer_etal = staticmethod(flux_wintermeyer_etal_1d)
    flux_nonconservative_wintermeyer_etal = staticmethod(flux_nonconservative_wintermeyer_etal_1d)
    flux_nonconservative_fjordholm_etal = staticmethod(flux_nonconservative_fjordholm_etal_1d)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_1d)
    waterheight_pressure = staticmethod(waterheight_pressure)
    mirror_state = staticmethod(mirror_state_1d)

    initial_condition_stone_throw_discontinuous_bottom = \
        staticmethod(initial_condition_stone_throw_discontinuous_bottom)
    initial_condition_convergence_test = staticmethod(initial_condition_convergence_test_1d)
    source_terms_convergence_test = staticmethod(source_terms_convergence_test_1d)

    def __init__(self, gravity_constant: float = 9.81, H0: float = 0.0):
        super().__init__([gravity_constant, H0])


# =============================================================================
# 2D
# =============================================================================

@njit(cache=True)
def flux_2d(u, orientation, params):
    g = params[0]
    h, h_v1, h_v2 = u[0], u[1], u[2]
    p = 0.5 * g * h * h
    if orientation == 0:
        v1 = h_v1 / h
        return np.array([h_v1, h_v1 * v1 + p, h_v2 * v1, 0.0])
    v2 = h_v2 / h
    return np.array([h_v2, h_v1 * v2, h_v2 * v2 + p, 0.0])


@njit(cache=True)
def flux_wintermeyer_etal_2d(u_ll, u_rr, orientation, params):
    """Entropy conservative split form of Wintermeyer et al. (2017)."""
    g = params[0]
    h_ll, h_rr = u_ll[0], u_rr[0]
    v1_avg = 0.5 * (u_ll[1] / h_ll + u_rr[1] / h_rr)
    v2_avg = 0.5 * (u_ll[2] / h_ll + u_rr[2] / h_rr)
    p_avg = 0.5 * g * h_ll * h_rr
    if orientation == 0:
        f1 = 0.5 * (u_ll[1] + u_rr[1])
        return np.array([f1, f1 * v1_avg + p_avg, f1 * v2_avg, 0.0])
    f1 = 0.5 * (u_ll[2] + u_rr[2])
    return np.array([f1, f1 * v1_avg, f1 * v2_avg + p_avg, 0.0])


@njit(cache=True)
def flux_nonconservative_wintermeyer_etal_2d(u_ll, u_rr, orientation, params):
    """Bottom slope term g h_ll b_rr in the momentum normal to the face."""
    out = np.zeros(4)
    out[1 + orientation] = params[0] * u_ll[0] * u_rr[3]
    return out


@njit(cache=True)
def flux_nonconservative_fjordholm_etal_2d(u_ll, u_rr, orientation, params):
    g = params[0]
    h_ll, b_ll = u_ll[0], u_ll[3]
    h_rr, b_rr = u_rr[0], u_rr[3]
    h_average = 0.5 * (h_ll + h_rr)
    out = np.zeros(4)
    out[1 + orientation] = g * h_ll * b_ll + g * h_average * (b_rr - b_ll)
    return out


@njit(cache=True)
def max_abs_speed_2d(u_ll, u_rr, orientation, params):
    g = params[0]
    v_ll = abs(u_ll[1 + orientation] / u_ll[0])
    v_rr = abs(u_rr[1 + orientation] / u_rr[0])
    c_ll = np.sqrt(g * u_ll[0])
    c_rr = np.sqrt(g * u_rr[0])
    return max(v_ll, v_rr) + max(c_ll, c_rr)


@njit(cache=True)
def mirror_state_2d(u, orientation, params):
    out = u.copy()
    out[1 + orientation] = -u[1 + orientation]
    return out


@njit(cache=True)
def prim2cons_2d(H, v1, v2, b):
    h = H - b
    return np.array([h, h * v1, h * v2, b])


@njit(cache=True)
def initial_condition_convergence_test_2d(x, t, params):
    """Manufactured solution, periodic on [0, sqrt(2)]^2."""
    c = 7.0
    omega_x = 2.0 * np.pi * np.sqrt(2.0)
    omega_t = 2.0 * np.pi
    omega_b = np.sqrt(2.0) * np.pi
    H = c + np.cos(omega_x * x[0]) * np.sin(omega_x * x[1]) * np.cos(omega_t * t)
    b = 2.0 + 0.5 * np.sin(omega_b * x[0]) + 0.5 * np.sin(omega_b * x[1])
    return prim2cons_2d(H, 0.5, 1.5, b)


@njit(cache=True)
def source_terms_convergence_test_2d(u, x, t, params):
    g = params[0]
    c = 7.0
    omega_x = 2.0 * np.pi * np.sqrt(2.0)
    omega_t = 2.0 * np.pi
    omega_b = np.sqrt(2.0) * np.pi
    v1 = 0.5
    v2 = 1.5

    sin_x, cos_x = np.sin(omega_x * x[0]), np.cos(omega_x * x[0])
    sin_y, cos_y = np.sin(omega_x * x[1]), np.cos(omega_x * x[1])
    sin_t, cos_t = np.sin(omega_t * t), np.cos(omega_t * t)

    H = c + cos_x * sin_y * cos_t
    H_x = -omega_x * sin_x * sin_y * cos_t
    H_y = omega_x * cos_x * cos_y * cos_t
    H_t = -omega_t * cos_x * sin_y * sin_t
    b = 2.0 + 0.5 * np.sin(omega_b * x[0]) + 0.5 * np.sin(omega_b * x[1])
    b_x = 0.5 * omega_b * np.cos(omega_b * x[0])
    b_y = 0.5 * omega_b * np.cos(omega_b * x[1])

    du1 = H_t + v1 * (H_x - b_x) + v2 * (H_y - b_y)
    du2 = v1 * du1 + g * (H - b) * H_x
    du3 = v2 * du1 + g * (H - b) * H_y
    return np.array([du1, du2, du3, 0.0])


flux_lax_friedrichs_2d = make_flux_lax_friedrichs(flux_2d, max_abs_speed_2d, n_dissipative=3)


class ShallowWaterEquations2D(AbstractEquations):
    ndims = 2
    variable_names = ("h", "h_v1", "h_v2", "b")
    have_nonconservative_terms = True

    flux = staticmethod(flux_2d)
    max_abs_speed = staticmethod(max_abs_speed_2d)
    flux_wintermeyer_etal = staticmethod(flux_wintermeyer_etal_2d)
    flux_nonconservative_wintermeyer_etal = staticmethod(flux_nonconservative_wintermeyer_etal_2d)
    flux_nonconservative_fjordholm_etal = staticmethod(flux_nonconservative_fjordholm_etal_2d)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_2d)
    waterheight_pressure = staticmethod(waterheight_pressure)
    mirror_state = staticmethod(mirror_state_2d)

    initial_condition_convergence_test = staticmethod(initial_condition_convergence_test_2d)
    source_terms_convergence_test = staticmethod(source_terms_convergence_test_2d)

    def __init__(self, gravity_constant: float = 9.81, H0: float = 0.0):
        super().__init__([gravity_constant, H0])

"""
Compressible Euler equations for an ideal gas in 1D, 2D and 3D.

Conservative variables: (rho, rho_v1, ..., rho_e); params = [gamma].
"""

import numpy as np
from numba import njit

from .base import AbstractEquations, make_flux_central, make_flux_lax_friedrichs


# =============================================================================
# 1D
# =============================================================================

@njit(cache=True)
def _pressure_1d(u, gamma):
    rho = u[0]
    v1 = u[1] / rho
    return (gamma - 1.0) * (u[2] - 0.5 * rho * v1 * v1)


@njit(cache=True)
def flux_1d(u, orientation, params):
    gamma = params[0]
    rho, rho_v1, rho_e = u[0], u[1], u[2]
    v1 = rho_v1 / rho
    p = _pressure_1d(u, gamma)
    return np.array([rho_v1, rho_v1 * v1 + p, (rho_e + p) * v1])


@njit(cache=True)
def flux_shima_etal_1d(u_ll, u_rr, orientation, params):
    """Kinetic energy and pressure preserving flux of Shima et al. (2021)."""
    gamma = params[0]
    rho_ll, rho_rr = u_ll[0], u_rr[0]
    v1_ll = u_ll[1] / rho_ll
    v1_rr = u_rr[1] / rho_rr
    p_ll = _pressure_1d(u_ll, gamma)
    p_rr = _pressure_1d(u_rr, gamma)

    rho_avg = 0.5 * (rho_ll + rho_rr)
    v1_avg = 0.5 * (v1_ll + v1_rr)
    p_avg = 0.5 * (p_ll + p_rr)
    kin_avg = 0.5 * (v1_ll * v1_rr)
    pv1_avg = 0.5 * (p_ll * v1_rr + p_rr * v1_ll)

    f1 = rho_avg * v1_avg
    f2 = f1 * v1_avg + p_avg
    f3 = p_avg * v1_avg / (gamma - 1.0) + f1 * kin_avg + pv1_avg
    return np.array([f1, f2, f3])


@njit(cache=True)
def max_abs_speed_1d(u_ll, u_rr, orientation, params):
    gamma = params[0]
    v_ll = abs(u_ll[1] / u_ll[0])
    v_rr = abs(u_rr[1] / u_rr[0])
    c_ll = np.sqrt(gamma * _pressure_1d(u_ll, gamma) / u_ll[0])
    c_rr = np.sqrt(gamma * _pressure_1d(u_rr, gamma) / u_rr[0])
    return max(v_ll, v_rr) + max(c_ll, c_rr)


@njit(cache=True)
def density_pressure_1d(u, params):
    return u[0] * _pressure_1d(u, params[0])


@njit(cache=True)
def mirror_state_1d(u, orientation, params):
    return np.array([u[0], -u[1], u[2]])


@njit(cache=True)
def prim2cons_1d(rho, v1, p, gamma):
    return np.array([rho, rho * v1, p / (gamma - 1.0) + 0.5 * rho * v1 * v1])


@njit(cache=True)
def initial_condition_weak_blast_wave_1d(x, t, params):
    """Small overpressure region of radius 0.5 around the origin."""
    r = abs(x[0])
    cos_phi = 1.0 if x[0] >= 0.0 else -1.0
    if r > 0.5:
        return prim2cons_1d(1.0, 0.0, 1.0, params[0])
    return prim2cons_1d(1.1691, 0.1882 * cos_phi, 1.245, params[0])


@njit(cache=True)
def initial_condition_constant_1d(x, t, params):
    return prim2cons_1d(1.0, 0.1, 10.0, params[0])


flux_central_1d = make_flux_central(flux_1d)
flux_lax_friedrichs_1d = make_flux_lax_friedrichs(flux_1d, max_abs_speed_1d)


class CompressibleEulerEquations1D(AbstractEquations):
    ndims = 1
    variable_names = ("rho", "rho_v1", "rho_e")

    flux = staticmethod(flux_1d)
    max_abs_speed = staticmethod(max_abs_speed_1d)
    flux_central = staticmethod(flux_central_1d)
    flux_shima_etal = staticmethod(flux_shima_etal_1d)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_1d)
    density_pressure = staticmethod(density_pressure_1d)
    mirror_state = staticmethod(mirror_state_1d)

    initial_condition_weak_blast_wave = staticmethod(initial_condition_weak_blast_wave_1d)
    initial_condition_constant = staticmethod(initial_condition_constant_1d)

    def __init__(self, gamma: float = 1.4):
        super().__init__([gamma])


# =============================================================================
# 2D
# =============================================================================

@njit(cache=True)
def _pressure_2d(u, gamma):
    rho = u[0]
    v1 = u[1] / rho
    v2 = u[2] / rho
    return (gamma - 1.0) * (u[3] - 0.5 * rho * (v1 * v1 + v2 * v2))


@njit(cache=True)
def flux_2d(u, orientation, params):
    gamma = params[0]
    rho, rho_v1, rho_v2, rho_e = u[0], u[1], u[2], u[3]
    v1 = rho_v1 / rho
    v2 = rho_v2 / rho
    p = _pressure_2d(u, gamma)
    if orientation == 0:
        return np.array([rho_v1, rho_v1 * v1 + p, rho_v2 * v1, (rho_e + p) * v1])
    return np.array([rho_v2, rho_v1 * v2, rho_v2 * v2 + p, (rho_e + p) * v2])


@njit(cache=True)
def flux_shima_etal_2d(u_ll, u_rr, orientation, params):
    """Kinetic energy and pressure preserving flux of Shima et al. (2021)."""
    gamma = params[0]
    rho_ll, rho_rr = u_ll[0], u_rr[0]
    v1_ll, v2_ll = u_ll[1] / rho_ll, u_ll[2] / rho_ll
    v1_rr, v2_rr = u_rr[1] / rho_rr, u_rr[2] / rho_rr
    p_ll = _pressure_2d(u_ll, gamma)
    p_rr = _pressure_2d(u_rr, gamma)

    rho_avg = 0.5 * (rho_ll + rho_rr)
    v1_avg = 0.5 * (v1_ll + v1_rr)
    v2_avg = 0.5 * (v2_ll + v2_rr)
    p_avg = 0.5 * (p_ll + p_rr)
    kin_avg = 0.5 * (v1_ll * v1_rr + v2_ll * v2_rr)

    if orientation == 0:
        pv_avg = 0.5 * (p_ll * v1_rr + p_rr * v1_ll)
        f1 = rho_avg * v1_avg
        f2 = f1 * v1_avg + p_avg
        f3 = f1 * v2_avg
        f4 = p_avg * v1_avg / (gamma - 1.0) + f1 * kin_avg + pv_avg
    else:
        pv_avg = 0.5 * (p_ll * v2_rr + p_rr * v2_ll)
        f1 = rho_avg * v2_avg
        f2 = f1 * v1_avg
        f3 = f1 * v2_avg + p_avg
        f4 = p_avg * v2_avg / (gamma - 1.0) + f1 * kin_avg + pv_avg
    return np.array([f1, f2, f3, f4])


@njit(cache=True)
def max_abs_speed_2d(u_ll, u_rr, orientation, params):
    gamma = params[0]
    v_ll = abs(u_ll[orientation + 1] / u_ll[0])
    v_rr = abs(u_rr[orientation + 1] / u_rr[0])
    c_ll = np.sqrt(gamma * _pressure_2d(u_ll, gamma) / u_ll[0])
    c_rr = np.sqrt(gamma * _pressure_2d(u_rr, gamma) / u_rr[0])
    return max(v_ll, v_rr) + max(c_ll, c_rr)


@njit(cache=True)
def density_pressure_2d(u, params):
    return u[0] * _pressure_2d(u, params[0])


@njit(cache=True)
def mirror_state_2d(u, orientation, params):
    out = u.copy()
    out[orientation + 1] = -u[orientation + 1]
    return out


@njit(cache=True)
def prim2cons_2d(rho, v1, v2, p, gamma):
    return np.array([rho, rho * v1, rho * v2,
                     p / (gamma - 1.0) + 0.5 * rho * (v1 * v1 + v2 * v2)])


@njit(cache=True)
def initial_condition_weak_blast_wave_2d(x, t, params):
    """Small overpressure region of radius 0.5 around the origin."""
    r = np.sqrt(x[0] * x[0] + x[1] * x[1])
    phi = np.arctan2(x[1], x[0])
    if r > 0.5:
        return prim2cons_2d(1.0, 0.0, 0.0, 1.0, params[0])
    return prim2cons_2d(1.1691, 0.1882 * np.cos(phi), 0.1882 * np.sin(phi), 1.245, params[0])


@njit(cache=True)
def initial_condition_constant_2d(x, t, params):
    return prim2cons_2d(1.0, 0.1, -0.2, 10.0, params[0])


flux_central_2d = make_flux_central(flux_2d)
flux_lax_friedrichs_2d = make_flux_lax_friedrichs(flux_2d, max_abs_speed_2d)


class CompressibleEulerEquations2D(AbstractEquations):
    ndims = 2
    variable_names = ("rho", "rho_v1", "rho_v2", "rho_e")

    flux = staticmethod(flux_2d)
    max_abs_speed = staticmethod(max_abs_speed_2d)
    flux_central = staticmethod(flux_central_2d)
    flux_shima_etal = staticmethod(flux_shima_etal_2d)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_2d)
    density_pressure = staticmethod(density_pressure_2d)
    mirror_state = staticmethod(mirror_state_2d)

    initial_condition_weak_blast_wave = staticmethod(initial_condition_weak_blast_wave_2d)
    initial_condition_constant = staticmethod(initial_condition_constant_2d)

    def __init__(self, gamma: float = 1.4):
        super().__init__([gamma])


# =============================================================================
# 3D
# =============================================================================

@njit(cache=True)
def _pressure_3d(u, gamma):
    rho = u[0]
    kinetic = (u[1] * u[1] + u[2] * u[2] + u[3] * u[3]) / rho
    return (gamma - 1.0) * (u[4] - 0.5 * kinetic)


@njit(cache=True)
def flux_3d(u, orientation, params):
    gamma = params[0]
    rho = u[0]
    p = _pressure_3d(u, gamma)
    vn = u[1 + orientation] / rho
    out = np.empty(5)
    out[0] = u[1 + orientation]
    for k in range(3):
        out[1 + k] = u[1 + k] * vn
    out[1 + orientation] += p
    out[4] = (u[4] + p) * vn
    return out


@njit(cache=True)
def flux_shima_etal_3d(u_ll, u_rr, orientation, params):
    """Kinetic energy and pressure preserving flux of Shima et al. (2021)."""
    gamma = params[0]
    rho_ll, rho_rr = u_ll[0], u_rr[0]
    p_ll = _pressure_3d(u_ll, gamma)
    p_rr = _pressure_3d(u_rr, gamma)

    v_avg = np.empty(3)
    kin_avg = 0.0
    for k in range(3):
        v_ll = u_ll[1 + k] / rho_ll
        v_rr = u_rr[1 + k] / rho_rr
        v_avg[k] = 0.5 * (v_ll + v_rr)
        kin_avg += 0.5 * v_ll * v_rr
    vn_ll = u_ll[1 + orientation] / rho_ll
    vn_rr = u_rr[1 + orientation] / rho_rr
    rho_avg = 0.5 * (rho_ll + rho_rr)
    p_avg = 0.5 * (p_ll + p_rr)
    pv_avg = 0.5 * (p_ll * vn_rr + p_rr * vn_ll)

    out = np.empty(5)
    f1 = rho_avg * v_avg[orientation]
    out[0] = f1
    for k in range(3):
        out[1 + k] = f1 * v_avg[k]
    out[1 + orientation] += p_avg
    out[4] = p_avg * v_avg[orientation] / (gamma - 1.0) + f1 * kin_avg + pv_avg
    return out


@njit(cache=True)
def max_abs_speed_3d(u_ll, u_rr, orientation, params):
    gamma = params[0]
    v_ll = abs(u_ll[orientation + 1] / u_ll[0])
    v_rr = abs(u_rr[orientation + 1] / u_rr[0])
    c_ll = np.sqrt(gamma * _pressure_3d(u_ll, gamma) / u_ll[0])
    c_rr = np.sqrt(gamma * _pressure_3d(u_rr, gamma) / u_rr[0])
    return max(v_ll, v_rr) + max(c_ll, c_rr)


@njit(cache=True)
def density_pressure_3d(u, params):
    return u[0] * _pressure_3d(u, params[0])


@njit(cache=True)
def mirror_state_3d(u, orientation, params):
    out = u.copy()
    out[orientation + 1] = -u[orientation + 1]
    return out


@njit(cache=True)
def prim2cons_3d(rho, v1, v2, v3, p, gamma):
    return np.array([rho, rho * v1, rho * v2, rho * v3,
                     p / (gamma - 1.0) + 0.5 * rho * (v1 * v1 + v2 * v2 + v3 * v3)])


@njit(cache=True)
def initial_condition_weak_blast_wave_3d(x, t, params):
    """Small overpressure region of radius 0.5 around the origin."""
    r = np.sqrt(x[0] * x[0] + x[1] * x[1] + x[2] * x[2])
    if r > 0.5:
        return prim2cons_3d(1.0, 0.0, 0.0, 0.0, 1.0, params[0])
    phi = np.arctan2(x[1], x[0])
    theta = np.arccos(x[2] / r) if r > 0.0 else 0.0
    v = 0.1882
    return prim2cons_3d(1.1691, v * np.cos(phi) * np.sin(theta), v * np.sin(phi) * np.sin(theta),
                        v * np.cos(theta), 1.245, params[0])


@njit(cache=True)
def initial_condition_constant_3d(x, t, params):
    return prim2cons_3d(1.0, 0.1, -0.2, 0.7, 10.0, params[0])


flux_central_3d = make_flux_central(flux_3d)
flux_lax_friedrichs_3d = make_flux_lax_friedrichs(flux_3d, max_abs_speed_3d)


class CompressibleEulerEquations3D(AbstractEquations):
    ndims = 3
    variable_names = ("rho", "rho_v1", "rho_v2", "rho_v3", "rho_e")

    flux = staticmethod(flux_3d)
    max_abs_speed = staticmethod(max_abs_speed_3d)
    flux_central = staticmethod(flux_central_3d)
    flux_shima_etal = staticmethod(flux_shima_etal_3d)
    flux_lax_friedrichs = staticmethod(flux_lax_friedrichs_3d)
    density_pressure = staticmethod(density_pressure_3d)
    mirror_state = staticmethod(mirror_state_3d)

    initial_condition_weak_blast_wave = staticmethod(initial_condition_weak_blast_wave_3d)
    initial_condition_constant = staticmethod(initial_condition_constant_3d)

    def __init__(self, gamma: float = 1.4):
        super().__init__([gamma])

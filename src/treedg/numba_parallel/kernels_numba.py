"""
Numba data-parallel kernels for the DGSEM residual stages.

Every kernel runs one element, interface, boundary or mortar per `prange`
iteration and writes only the slices owned by that unit, so no atomics are
needed. Kernels that call equation functions are built by factories closing
over those njit callables; the compiled kernels are cached per callable
combination. Kernels without nonconservative terms are separate functions,
not a zero-valued nonconservative flux.

Array arguments use the flattened layout:
    u, du:               (n_elements, n_variables, n_element_nodes)
    interfaces_u:        (capacity, 2, n_variables, n_face_nodes)
    boundaries_u:        (capacity, n_variables, n_face_nodes)
    mortars_u:           (capacity, n_children, 2, n_variables, n_face_nodes)
    surface_flux_values: (n_elements, 2 * ndims, n_variables, n_face_nodes)
"""

from typing import Callable, Dict, Tuple

import numpy as np
from numba import njit, prange


_KERNEL_CACHE: Dict[Tuple, Callable] = {}


def _cached(key: Tuple, build: Callable[[], Callable]) -> Callable:
    kernel = _KERNEL_CACHE.get(key)
    if kernel is None:
        kernel = build()
        _KERNEL_CACHE[key] = kernel
    return kernel


# =============================================================================
# Kernels without equation callables
# =============================================================================

@njit(parallel=True, cache=True)
def reset_du_kernel(du):
    """Zero the residual, one element per iteration."""
    for element in prange(du.shape[0]):
        for v in range(du.shape[1]):
            for node in range(du.shape[2]):
                du[element, v, node] = 0.0


@njit(parallel=True, cache=True)
def prolong2interfaces_kernel(interfaces_u, u, left, right, orientation, face_nodes):
    """Gather the two element traces of every conforming interface."""
    n_variables = u.shape[1]
    n_face_nodes = face_nodes.shape[1]
    for interface in prange(left.shape[0]):
        axis = orientation[interface]
        for v in range(n_variables):
            for q in range(n_face_nodes):
                interfaces_u[interface, 0, v, q] = u[left[interface], v, face_nodes[2 * axis + 1, q]]
                interfaces_u[interface, 1, v, q] = u[right[interface], v, face_nodes[2 * axis, q]]


@njit(parallel=True, cache=True)
def prolong2boundaries_kernel(boundaries_u, u, boundary_element, boundary_direction, face_nodes):
    """Gather the interior trace of every boundary face."""
    n_variables = u.shape[1]
    n_face_nodes = face_nodes.shape[1]
    for boundary in prange(boundary_element.shape[0]):
        element = boundary_element[boundary]
        direction = boundary_direction[boundary]
        for v in range(n_variables):
            for q in range(n_face_nodes):
                boundaries_u[boundary, v, q] = u[element, v, face_nodes[direction, q]]


@njit(parallel=True, cache=True)
def prolong2mortars_kernel(mortars_u, u, mortar_large, mortar_large_side, mortar_orientation,
                           mortar_small, mortar_valid, face_nodes, mortar_forward):
    """
    Copy small-side traces into their child slots and interpolate the large
    trace onto every valid child.
    """
    n_variables = u.shape[1]
    n_children = mortar_small.shape[1]
    n_face_nodes = face_nodes.shape[1]
    for mortar in prange(mortar_large.shape[0]):
        large = mortar_large[mortar]
        side = mortar_large_side[mortar]
        axis = mortar_orientation[mortar]
        large_face = 2 * axis + 1 - side
        small_face = 2 * axis + side
        for child in range(n_children):
            if not mortar_valid[mortar, child]:
                continue
            small = mortar_small[mortar, child]
            for v in range(n_variables):
                for q in range(n_face_nodes):
                    mortars_u[mortar, child, 1 - side, v, q] = u[small, v, face_nodes[small_face, q]]
                    acc = 0.0
                    for r in range(n_face_nodes):
                        acc += mortar_forward[child, q, r] * u[large, v, face_nodes[large_face, r]]
                    mortars_u[mortar, child, side, v, q] = acc


@njit(parallel=True, cache=True)
def surface_integral_kernel(du, surface_flux_values, face_nodes, surface_factors):
    """Lift all face fluxes of an element into its boundary nodes."""
    n_faces = surface_flux_values.shape[1]
    n_variables = du.shape[1]
    n_face_nodes = face_nodes.shape[1]
    for element in prange(du.shape[0]):
        for face in range(n_faces):
            factor = surface_factors[face % 2]
            for v in range(n_variables):
                for q in range(n_face_nodes):
                    du[element, v, face_nodes[face, q]] += factor * surface_flux_values[element, face, v, q]


@njit(parallel=True, cache=True)
def apply_jacobian_kernel(du, inverse_jacobian):
    for element in prange(du.shape[0]):
        factor = -inverse_jacobian[element]
        for v in range(du.shape[1]):
            for node in range(du.shape[2]):
                du[element, v, node] *= factor


@njit(parallel=True, cache=True)
def blending_factor_kernel(alpha, indicator, modal_matrix, modal_clip1, modal_clip2,
                           n_nodes, alpha_max, alpha_min):
    """
    Hennemann-Gassner blending factor per element from nodal indicator
    values `indicator` (n_elements, n_element_nodes).
    """
    threshold = 0.5 * 10.0 ** (-1.8 * n_nodes ** 0.25)
    s = np.log((1.0 - 1e-4) / 1e-4)
    n_element_nodes = indicator.shape[1]
    for element in prange(indicator.shape[0]):
        total = 0.0
        clip1 = 0.0
        clip2 = 0.0
        for mode in range(n_element_nodes):
            coefficient = 0.0
            for node in range(n_element_nodes):
                coefficient += modal_matrix[mode, node] * indicator[element, node]
            energy = coefficient * coefficient
            total += energy
            if modal_clip1[mode]:
                clip1 += energy
            if modal_clip2[mode]:
                clip2 += energy

        frac1 = (total - clip1) / total if total != 0.0 else 0.0
        frac2 = (clip1 - clip2) / clip1 if clip1 != 0.0 else 0.0
        energy = max(frac1, frac2)

        value = 1.0 / (1.0 + np.exp(-s / threshold * (energy - threshold)))
        if value < alpha_min:
            value = 0.0
        elif value > 1.0 - alpha_min:
            value = 1.0
        alpha[element] = min(alpha_max, value)


# =============================================================================
# Volume integral
# =============================================================================

def get_indicator_kernel(variable):
    """Nodal indicator values, (n_elements, n_element_nodes)."""
    def build():
        @njit(parallel=True)
        def indicator_kernel(indicator, u, params):
            for element in prange(u.shape[0]):
                for node in range(u.shape[2]):
                    indicator[element, node] = variable(u[element, :, node], params)
        return indicator_kernel
    return _cached(("indicator", variable), build)


def get_weak_form_kernel(flux):
    def build():
        @njit(parallel=True)
        def weak_form_kernel(du, u, derivative_dhat, lines, params):
            n_variables = u.shape[1]
            n_dims, n_lines, n_nodes = lines.shape
            for element in prange(u.shape[0]):
                for v in range(n_variables):
                    for node in range(u.shape[2]):
                        du[element, v, node] = 0.0
                fluxes = np.empty((n_nodes, n_variables))
                for axis in range(n_dims):
                    for line in range(n_lines):
                        for i in range(n_nodes):
                            f = flux(u[element, :, lines[axis, line, i]], axis, params)
                            for v in range(n_variables):
                                fluxes[i, v] = f[v]
                        for j in range(n_nodes):
                            node = lines[axis, line, j]
                            for i in range(n_nodes):
                                for v in range(n_variables):
                                    du[element, v, node] += derivative_dhat[j, i] * fluxes[i, v]
        return weak_form_kernel
    return _cached(("weak_form", flux), build)


def _make_flux_differencing_element(volume_flux, nonconservative_flux):
    """Per-element flux differencing update du += factor * sum_b D_split[a, b] f#(u_a, u_b)."""
    if nonconservative_flux is None:
        @njit
        def flux_differencing_element(du, u, element, factor, derivative_split, lines, params):
            n_variables = u.shape[1]
            n_dims, n_lines, n_nodes = lines.shape
            acc = np.empty(n_variables)
            for axis in range(n_dims):
                for line in range(n_lines):
                    for a in range(n_nodes):
                        node = lines[axis, line, a]
                        acc[:] = 0.0
                        for b in range(n_nodes):
                            if a == b:
                                continue
                            other = lines[axis, line, b]
                            f = volume_flux(u[element, :, node], u[element, :, other], axis, params)
                            for v in range(n_variables):
                                acc[v] += derivative_split[a, b] * f[v]
                        for v in range(n_variables):
                            du[element, v, node] += factor * acc[v]
    else:
        @njit
        def flux_differencing_element(du, u, element, factor, derivative_split, lines, params):
            n_variables = u.shape[1]
            n_dims, n_lines, n_nodes = lines.shape
            acc = np.empty(n_variables)
            for axis in range(n_dims):
                for line in range(n_lines):
                    for a in range(n_nodes):
                        node = lines[axis, line, a]
                        acc[:] = 0.0
                        for b in range(n_nodes):
                            if a == b:
                                continue
                            other = lines[axis, line, b]
                            u_node = u[element, :, node]
                            u_other = u[element, :, other]
                            f = volume_flux(u_node, u_other, axis, params)
                            g = nonconservative_flux(u_node, u_other, axis, params)
                            for v in range(n_variables):
                                acc[v] += derivative_split[a, b] * f[v] + 0.5 * derivative_split[a, b] * g[v]
                        for v in range(n_variables):
                            du[element, v, node] += factor * acc[v]
    return flux_differencing_element


def _make_finite_volume_element(volume_flux, nonconservative_flux):
    """Per-element subcell finite-volume update on the LGL subcells."""
    if nonconservative_flux is None:
        @njit
        def finite_volume_element(du, u, element, alpha, inverse_weights, lines, params):
            n_variables = u.shape[1]
            n_dims, n_lines, n_nodes = lines.shape
            for axis in range(n_dims):
                for line in range(n_lines):
                    for k in range(1, n_nodes):
                        left = lines[axis, line, k - 1]
                        right = lines[axis, line, k]
                        f = volume_flux(u[element, :, left], u[element, :, right], axis, params)
                        for v in range(n_variables):
                            du[element, v, left] += alpha * inverse_weights[k - 1] * f[v]
                            du[element, v, right] -= alpha * inverse_weights[k] * f[v]
    else:
        @njit
        def finite_volume_element(du, u, element, alpha, inverse_weights, lines, params):
            n_variables = u.shape[1]
            n_dims, n_lines, n_nodes = lines.shape
            for axis in range(n_dims):
                for line in range(n_lines):
                    for k in range(1, n_nodes):
                        left = lines[axis, line, k - 1]
                        right = lines[axis, line, k]
                        u_ll = u[element, :, left]
                        u_rr = u[element, :, right]
                        f = volume_flux(u_ll, u_rr, axis, params)
                        g_left = nonconservative_flux(u_ll, u_rr, axis, params)
                        g_right = nonconservative_flux(u_rr, u_ll, axis, params)
                        for v in range(n_variables):
                            du[element, v, left] += alpha * inverse_weights[k - 1] * (f[v] + 0.5 * g_left[v])
                            du[element, v, right] -= alpha * inverse_weights[k] * (f[v] + 0.5 * g_right[v])
    return finite_volume_element


def get_flux_differencing_kernel(volume_flux, nonconservative_flux):
    def build():
        element_update = _make_flux_differencing_element(volume_flux, nonconservative_flux)

        @njit(parallel=True)
        def flux_differencing_kernel(du, u, derivative_split, lines, params):
            for element in prange(u.shape[0]):
                for v in range(u.shape[1]):
                    for node in range(u.shape[2]):
                        du[element, v, node] = 0.0
                element_update(du, u, element, 1.0, derivative_split, lines, params)
        return flux_differencing_kernel
    return _cached(("flux_differencing", volume_flux, nonconservative_flux), build)


def get_shock_capturing_kernel(volume_flux_dg, nonconservative_flux_dg, volume_flux_fv, nonconservative_flux_fv):
    """Blended volume integral du = (1 - alpha) FD + alpha FV; FV skipped where alpha == 0."""
    def build():
        dg_update = _make_flux_differencing_element(volume_flux_dg, nonconservative_flux_dg)
        fv_update = _make_finite_volume_element(volume_flux_fv, nonconservative_flux_fv)

        @njit(parallel=True)
        def shock_capturing_kernel(du, u, alpha, derivative_split, inverse_weights, lines, params):
            for element in prange(u.shape[0]):
                for v in range(u.shape[1]):
                    for node in range(u.shape[2]):
                        du[element, v, node] = 0.0
                a = alpha[element]
                dg_update(du, u, element, 1.0 - a, derivative_split, lines, params)
                if a != 0.0:
                    fv_update(du, u, element, a, inverse_weights, lines, params)
        return shock_capturing_kernel
    return _cached(("shock_capturing", volume_flux_dg, nonconservative_flux_dg,
                    volume_flux_fv, nonconservative_flux_fv), build)


# =============================================================================
# Interface, boundary and mortar fluxes
# =============================================================================

def get_interface_flux_kernel(surface_flux, nonconservative_flux):
    def build():
        if nonconservative_flux is None:
            @njit(parallel=True)
            def interface_flux_kernel(surface_flux_values, interfaces_u, left, right, orientation, params):
                n_variables = interfaces_u.shape[2]
                n_face_nodes = interfaces_u.shape[3]
                for interface in prange(left.shape[0]):
                    axis = orientation[interface]
                    e_left = left[interface]
                    e_right = right[interface]
                    for q in range(n_face_nodes):
                        f = surface_flux(interfaces_u[interface, 0, :, q], interfaces_u[interface, 1, :, q],
                                         axis, params)
                        for v in range(n_variables):
                            surface_flux_values[e_left, 2 * axis + 1, v, q] = f[v]
                            surface_flux_values[e_right, 2 * axis, v, q] = f[v]
        else:
            @njit(parallel=True)
            def interface_flux_kernel(surface_flux_values, interfaces_u, left, right, orientation, params):
                n_variables = interfaces_u.shape[2]
                n_face_nodes = interfaces_u.shape[3]
                for interface in prange(left.shape[0]):
                    axis = orientation[interface]
                    e_left = left[interface]
                    e_right = right[interface]
                    for q in range(n_face_nodes):
                        u_ll = interfaces_u[interface, 0, :, q]
                        u_rr = interfaces_u[interface, 1, :, q]
                        f = surface_flux(u_ll, u_rr, axis, params)
                        g_left = nonconservative_flux(u_ll, u_rr, axis, params)
                        g_right = nonconservative_flux(u_rr, u_ll, axis, params)
                        for v in range(n_variables):
                            surface_flux_values[e_left, 2 * axis + 1, v, q] = f[v] + 0.5 * g_left[v]
                            surface_flux_values[e_right, 2 * axis, v, q] = f[v] + 0.5 * g_right[v]
        return interface_flux_kernel
    return _cached(("interface_flux", surface_flux, nonconservative_flux), build)


def get_boundary_flux_kernel(boundary_flux, have_nonconservative: bool):
    """Boundary faces [start, stop) of one tag, all sharing `boundary_flux`."""
    def build():
        if not have_nonconservative:
            @njit(parallel=True)
            def boundary_flux_kernel(surface_flux_values, boundaries_u, boundary_element, boundary_direction,
                                     boundary_node_coordinates, start, stop, t, params):
                n_variables = boundaries_u.shape[1]
                n_face_nodes = boundaries_u.shape[2]
                for k in prange(stop - start):
                    boundary = start + k
                    element = boundary_element[boundary]
                    direction = boundary_direction[boundary]
                    orientation = direction // 2
                    for q in range(n_face_nodes):
                        f = boundary_flux(boundaries_u[boundary, :, q], orientation, direction,
                                          boundary_node_coordinates[boundary, :, q], t, params)
                        for v in range(n_variables):
                            surface_flux_values[element, direction, v, q] = f[v]
        else:
            @njit(parallel=True)
            def boundary_flux_kernel(surface_flux_values, boundaries_u, boundary_element, boundary_direction,
                                     boundary_node_coordinates, start, stop, t, params):
                n_variables = boundaries_u.shape[1]
                n_face_nodes = boundaries_u.shape[2]
                for k in prange(stop - start):
                    boundary = start + k
                    element = boundary_element[boundary]
                    direction = boundary_direction[boundary]
                    orientation = direction // 2
                    for q in range(n_face_nodes):
                        f, g = boundary_flux(boundaries_u[boundary, :, q], orientation, direction,
                                             boundary_node_coordinates[boundary, :, q], t, params)
                        for v in range(n_variables):
                            surface_flux_values[element, direction, v, q] = f[v] + 0.5 * g[v]
        return boundary_flux_kernel
    return _cached(("boundary_flux", boundary_flux, have_nonconservative), build)


def get_mortar_flux_kernel(surface_flux, nonconservative_flux):
    """
    Fluxes on every valid child of a mortar; small elements receive them
    directly, the large element receives their projection summed over children.
    """
    def build():
        if nonconservative_flux is None:
            @njit(parallel=True)
            def mortar_flux_kernel(surface_flux_values, mortars_u, mortar_large, mortar_large_side,
                                   mortar_orientation, mortar_small, mortar_valid, mortar_reverse, params):
                n_children = mortars_u.shape[1]
                n_variables = mortars_u.shape[3]
                n_face_nodes = mortars_u.shape[4]
                for mortar in prange(mortar_large.shape[0]):
                    large = mortar_large[mortar]
                    side = mortar_large_side[mortar]
                    axis = mortar_orientation[mortar]
                    large_face = 2 * axis + 1 - side
                    small_face = 2 * axis + side
                    projected = np.zeros((n_variables, n_face_nodes))
                    fine = np.empty((n_variables, n_face_nodes))
                    for child in range(n_children):
                        if not mortar_valid[mortar, child]:
                            continue
                        small = mortar_small[mortar, child]
                        for q in range(n_face_nodes):
                            f = surface_flux(mortars_u[mortar, child, 0, :, q], mortars_u[mortar, child, 1, :, q],
                                             axis, params)
                            for v in range(n_variables):
                                surface_flux_values[small, small_face, v, q] = f[v]
                                fine[v, q] = f[v]
                        for v in range(n_variables):
                            for q in range(n_face_nodes):
                                acc = 0.0
                                for r in range(n_face_nodes):
                                    acc += mortar_reverse[child, q, r] * fine[v, r]
                                projected[v, q] += acc
                    for v in range(n_variables):
                        for q in range(n_face_nodes):
                            surface_flux_values[large, large_face, v, q] = projected[v, q]
        else:
            @njit(parallel=True)
            def mortar_flux_kernel(surface_flux_values, mortars_u, mortar_large, mortar_large_side,
                                   mortar_orientation, mortar_small, mortar_valid, mortar_reverse, params):
                n_children = mortars_u.shape[1]
                n_variables = mortars_u.shape[3]
                n_face_nodes = mortars_u.shape[4]
                for mortar in prange(mortar_large.shape[0]):
                    large = mortar_large[mortar]
                    side = mortar_large_side[mortar]
                    axis = mortar_orientation[mortar]
                    large_face = 2 * axis + 1 - side
                    small_face = 2 * axis + side
                    projected = np.zeros((n_variables, n_face_nodes))
                    fine = np.empty((n_variables, n_face_nodes))
                    for child in range(n_children):
                        if not mortar_valid[mortar, child]:
                            continue
                        small = mortar_small[mortar, child]
                        for q in range(n_face_nodes):
                            u_ll = mortars_u[mortar, child, 0, :, q]
                            u_rr = mortars_u[mortar, child, 1, :, q]
                            u_small = mortars_u[mortar, child, 1 - side, :, q]
                            u_large = mortars_u[mortar, child, side, :, q]
                            f = surface_flux(u_ll, u_rr, axis, params)
                            g_small = nonconservative_flux(u_small, u_large, axis, params)
                            g_large = nonconservative_flux(u_large, u_small, axis, params)
                            for v in range(n_variables):
                                surface_flux_values[small, small_face, v, q] = f[v] + 0.5 * g_small[v]
                                fine[v, q] = f[v] + 0.5 * g_large[v]
                        for v in range(n_variables):
                            for q in range(n_face_nodes):
                                acc = 0.0
                                for r in range(n_face_nodes):
                                    acc += mortar_reverse[child, q, r] * fine[v, r]
                                projected[v, q] += acc
                    for v in range(n_variables):
                        for q in range(n_face_nodes):
                            surface_flux_values[large, large_face, v, q] = projected[v, q]
        return mortar_flux_kernel
    return _cached(("mortar_flux", surface_flux, nonconservative_flux), build)


# =============================================================================
# Sources
# =============================================================================

def get_sources_kernel(source_terms):
    def build():
        @njit(parallel=True)
        def sources_kernel(du, u, node_coordinates, t, params):
            n_variables = u.shape[1]
            for element in prange(u.shape[0]):
                for node in range(u.shape[2]):
                    s = source_terms(u[element, :, node], node_coordinates[element, :, node], t, params)
                    for v in range(n_variables):
                        du[element, v, node] += s[v]
        return sources_kernel
    return _cached(("sources", source_terms), build)

"""
DGSEM residual - sequential host reference.

Plain Python loops over elements and faces, calling the equation's njit
pointwise functions node by node. Unused trace slots keep NaN so that any
accidental read of padding shows up in the results.

Functionally equivalent to the Numba parallel pipeline with identical interface.
"""

import numpy as np

from ..shared.residual_base import ResidualPipelineBase
from ..solver import (
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)


ALPHA_ENERGY_TOL = 1e-4


def blending_factor(energy: float, n_nodes: int, alpha_max: float, alpha_min: float) -> float:
    """Hennemann-Gassner blending factor from the modal energy indicator."""
    threshold = 0.5 * 10.0 ** (-1.8 * n_nodes ** 0.25)
    s = np.log((1.0 - ALPHA_ENERGY_TOL) / ALPHA_ENERGY_TOL)
    alpha = 1.0 / (1.0 + np.exp(-s / threshold * (energy - threshold)))
    if alpha < alpha_min:
        alpha = 0.0
    elif alpha > 1.0 - alpha_min:
        alpha = 1.0
    return min(alpha_max, alpha)


class DGResidualCPU(ResidualPipelineBase):
    """
    Sequential reference implementation of the residual stages.

    Features:
    - Weak form, flux differencing and Hennemann-Gassner shock capturing
    - Conforming interfaces, tagged physical boundaries and L2 mortars
    - Nonconservative terms with side-dependent surface contributions
    - NaN sentinel in unused trace slots
    """

    sentinel = np.nan

    def __init__(self, semi, implementation_name: str = "CPU", **kwargs):
        super().__init__(semi, implementation_name=implementation_name, **kwargs)

    # =========================================================================
    # Volume integral
    # =========================================================================

    def _reset_du(self, du):
        du[...] = 0.0

    def _volume_integral(self, du, u):
        du[...] = 0.0
        vi = self.solver.volume_integral

        if isinstance(vi, VolumeIntegralWeakForm):
            for element in range(self.n_elements):
                self._weak_form_element(du, u, element)

        elif isinstance(vi, VolumeIntegralFluxDifferencing):
            for element in range(self.n_elements):
                self._flux_differencing_element(du, u, element, 1.0, vi.volume_flux)

        elif isinstance(vi, VolumeIntegralShockCapturingHG):
            alpha = self.cache.alpha
            for element in range(self.n_elements):
                alpha[element] = self._indicator_element(u, element, vi)
            for element in range(self.n_elements):
                self._flux_differencing_element(du, u, element, 1.0 - alpha[element], vi.volume_flux_dg)
                if alpha[element] != 0.0:
                    self._finite_volume_element(du, u, element, alpha[element], vi.volume_flux_fv)

        else:
            raise TypeError(f"Unsupported volume integral {type(vi).__name__}")

    def _weak_form_element(self, du, u, element):
        topo = self.topology
        flux = self.equations.flux
        dhat = topo.derivative_dhat
        for axis in range(topo.ndims):
            for line in topo.lines[axis]:
                fluxes = [flux(u[element, :, node], axis, self.params) for node in line]
                for j, node in enumerate(line):
                    for i in range(len(line)):
                        du[element, :, node] += dhat[j, i] * fluxes[i]

    def _flux_differencing_element(self, du, u, element, factor, volume_flux):
        topo = self.topology
        D = topo.derivative_split
        flux = volume_flux.conservative
        noncons = volume_flux.nonconservative
        for axis in range(topo.ndims):
            for line in topo.lines[axis]:
                for a, node in enumerate(line):
                    u_node = u[element, :, node]
                    acc = np.zeros(self.n_variables)
                    for b, other in enumerate(line):
                        if a == b:
                            continue
                        u_other = u[element, :, other]
                        acc += D[a, b] * flux(u_node, u_other, axis, self.params)
                        if noncons is not None:
                            acc += 0.5 * D[a, b] * noncons(u_node, u_other, axis, self.params)
                    du[element, :, node] += factor * acc

    def _finite_volume_element(self, du, u, element, alpha, volume_flux):
        topo = self.topology
        inv_w = topo.inverse_weights
        flux = volume_flux.conservative
        noncons = volume_flux.nonconservative
        for axis in range(topo.ndims):
            for line in topo.lines[axis]:
                # subcell interfaces between consecutive nodes; the outer ends carry no flux
                for k in range(1, len(line)):
                    left, right = line[k - 1], line[k]
                    u_ll = u[element, :, left]
                    u_rr = u[element, :, right]
                    f = flux(u_ll, u_rr, axis, self.params)
                    f_left, f_right = f, f
                    if noncons is not None:
                        f_left = f + 0.5 * noncons(u_ll, u_rr, axis, self.params)
                        f_right = f + 0.5 * noncons(u_rr, u_ll, axis, self.params)
                    du[element, :, left] += alpha * inv_w[k - 1] * f_left
                    du[element, :, right] -= alpha * inv_w[k] * f_right

    def _indicator_element(self, u, element, vi):
        topo = self.topology
        values = np.array([vi.indicator_variable(u[element, :, node], self.params)
                           for node in range(self.n_element_nodes)])
        modal = topo.modal_matrix @ values
        total = np.sum(modal ** 2)
        clip1 = np.sum(modal[topo.modal_clip1] ** 2)
        clip2 = np.sum(modal[topo.modal_clip2] ** 2)
        frac1 = (total - clip1) / total if total != 0.0 else 0.0
        frac2 = (clip1 - clip2) / clip1 if clip1 != 0.0 else 0.0
        return blending_factor(max(frac1, frac2), topo.n_nodes, vi.alpha_max, vi.alpha_min)

    # =========================================================================
    # Interfaces
    # =========================================================================

    def _prolong2interfaces(self, u):
        topo = self.topology
        buf = self.cache.interfaces_u
        for i in range(topo.n_interfaces):
            axis = topo.interface_orientation[i]
            buf[i, 0] = u[topo.interface_left[i]][:, topo.face_nodes[2 * axis + 1]]
            buf[i, 1] = u[topo.interface_right[i]][:, topo.face_nodes[2 * axis]]

    def _interface_flux(self):
        topo = self.topology
        buf = self.cache.interfaces_u
        sfv = self.cache.surface_flux_values
        flux = self.solver.surface_flux.conservative
        noncons = self.solver.surface_flux.nonconservative
        for i in range(topo.n_interfaces):
            left, right = topo.interface_left[i], topo.interface_right[i]
            axis = topo.interface_orientation[i]
            for q in range(topo.n_face_nodes):
                u_ll = buf[i, 0, :, q]
                u_rr = buf[i, 1, :, q]
                f = flux(u_ll, u_rr, axis, self.params)
                if noncons is None:
                    sfv[left, 2 * axis + 1, :, q] = f
                    sfv[right, 2 * axis, :, q] = f
                else:
                    sfv[left, 2 * axis + 1, :, q] = f + 0.5 * noncons(u_ll, u_rr, axis, self.params)
                    sfv[right, 2 * axis, :, q] = f + 0.5 * noncons(u_rr, u_ll, axis, self.params)

    # =========================================================================
    # Boundaries
    # =========================================================================

    def _prolong2boundaries(self, u):
        topo = self.topology
        buf = self.cache.boundaries_u
        for b in range(topo.n_boundaries):
            buf[b] = u[topo.boundary_element[b]][:, topo.face_nodes[topo.boundary_direction[b]]]

    def _boundary_flux(self, t):
        topo = self.topology
        buf = self.cache.boundaries_u
        sfv = self.cache.surface_flux_values
        have_noncons = self.solver.surface_flux.has_nonconservative
        for tag, (start, stop) in topo.boundary_ranges.items():
            boundary_flux = self.boundary_fluxes[tag]
            for b in range(start, stop):
                element = topo.boundary_element[b]
                direction = topo.boundary_direction[b]
                orientation = direction // 2
                for q in range(topo.n_face_nodes):
                    x = topo.boundary_node_coordinates[b, :, q]
                    result = boundary_flux(buf[b, :, q], orientation, direction, x, t, self.params)
                    if have_noncons:
                        f, g = result
                        sfv[element, direction, :, q] = f + 0.5 * g
                    else:
                        sfv[element, direction, :, q] = result

    # =========================================================================
    # Mortars
    # =========================================================================

    def _prolong2mortars(self, u):
        topo = self.topology
        buf = self.cache.mortars_u
        for m in range(topo.n_mortars):
            side = topo.mortar_large_side[m]
            axis = topo.mortar_orientation[m]
            large_face = 2 * axis + 1 - side
            small_face = 2 * axis + side
            u_large = u[topo.mortar_large[m]][:, topo.face_nodes[large_face]]
            for c in range(topo.n_mortar_children):
                if not topo.mortar_valid[m, c]:
                    continue
                small = topo.mortar_small[m, c]
                buf[m, c, 1 - side] = u[small][:, topo.face_nodes[small_face]]
                buf[m, c, side] = u_large @ topo.mortar_forward[c].T

    def _mortar_flux(self):
        topo = self.topology
        buf = self.cache.mortars_u
        sfv = self.cache.surface_flux_values
        flux = self.solver.surface_flux.conservative
        noncons = self.solver.surface_flux.nonconservative
        npf = topo.n_face_nodes
        for m in range(topo.n_mortars):
            large = topo.mortar_large[m]
            side = topo.mortar_large_side[m]
            axis = topo.mortar_orientation[m]
            large_face = 2 * axis + 1 - side
            small_face = 2 * axis + side

            projected = np.zeros((self.n_variables, npf))
            for c in range(topo.n_mortar_children):
                if not topo.mortar_valid[m, c]:
                    continue
                small = topo.mortar_small[m, c]
                fine_large = np.empty((self.n_variables, npf))
                for q in range(npf):
                    u_ll = buf[m, c, 0, :, q]
                    u_rr = buf[m, c, 1, :, q]
                    f = flux(u_ll, u_rr, axis, self.params)
                    if noncons is None:
                        sfv[small, small_face, :, q] = f
                        fine_large[:, q] = f
                    else:
                        u_small = buf[m, c, 1 - side, :, q]
                        u_large = buf[m, c, side, :, q]
                        sfv[small, small_face, :, q] = f + 0.5 * noncons(u_small, u_large, axis, self.params)
                        fine_large[:, q] = f + 0.5 * noncons(u_large, u_small, axis, self.params)
                projected += fine_large @ topo.mortar_reverse[c].T
            sfv[large, large_face] = projected

    # =========================================================================
    # Surface integral, Jacobian, sources
    # =========================================================================

    def _surface_integral(self, du):
        topo = self.topology
        sfv = self.cache.surface_flux_values
        for element in range(self.n_elements):
            for face in range(topo.n_faces):
                nodes = topo.face_nodes[face]
                du[element][:, nodes] += topo.surface_factors[face % 2] * sfv[element, face]

    def _apply_jacobian(self, du):
        for element in range(self.n_elements):
            du[element] *= -self.topology.inverse_jacobian[element]

    def _sources(self, du, u, t):
        if self.source_terms is None:
            return
        topo = self.topology
        for element in range(self.n_elements):
            for node in range(self.n_element_nodes):
                x = topo.node_coordinates[element, :, node]
                du[element, :, node] += self.source_terms(u[element, :, node], x, t, self.params)

"""
DGSEM residual - Numba JIT parallel device pipeline.

Each stage launches one `prange` kernel over elements, interfaces,
boundaries or mortars. Kernels calling equation functions are compiled per
flux combination when the pipeline is built; unused trace slots keep 0.0.

Functionally equivalent to the CPU reference pipeline with identical interface.
"""

import numpy as np

from ..shared.nvtx_helper import nvtx_mark
from ..shared.residual_base import ResidualPipelineBase
from ..solver import (
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
    VolumeIntegralWeakForm,
)
from .kernels_numba import (
    apply_jacobian_kernel,
    blending_factor_kernel,
    get_boundary_flux_kernel,
    get_flux_differencing_kernel,
    get_indicator_kernel,
    get_interface_flux_kernel,
    get_mortar_flux_kernel,
    get_shock_capturing_kernel,
    get_sources_kernel,
    get_weak_form_kernel,
    prolong2boundaries_kernel,
    prolong2interfaces_kernel,
    prolong2mortars_kernel,
    reset_du_kernel,
    surface_integral_kernel,
)


class DGResidualNumba(ResidualPipelineBase):
    """
    Data-parallel residual stages compiled with Numba.

    Features:
    - One prange kernel per stage, no atomics (every unit owns its output slices)
    - Separate kernels with and without nonconservative terms
    - Boundary kernels launched once per boundary tag
    - Zero sentinel in unused trace slots
    """

    sentinel = 0.0

    def __init__(self, semi, implementation_name: str = "Numba", **kwargs):
        super().__init__(semi, implementation_name=implementation_name, **kwargs)
        self._build_kernels()

    def _build_kernels(self) -> None:
        solver = self.solver
        vi = solver.volume_integral
        surface = solver.surface_flux

        if isinstance(vi, VolumeIntegralWeakForm):
            self._volume_kernel = get_weak_form_kernel(self.equations.flux)
        elif isinstance(vi, VolumeIntegralFluxDifferencing):
            self._volume_kernel = get_flux_differencing_kernel(
                vi.volume_flux.conservative, vi.volume_flux.nonconservative)
        elif isinstance(vi, VolumeIntegralShockCapturingHG):
            self._indicator_kernel = get_indicator_kernel(vi.indicator_variable)
            self._volume_kernel = get_shock_capturing_kernel(
                vi.volume_flux_dg.conservative, vi.volume_flux_dg.nonconservative,
                vi.volume_flux_fv.conservative, vi.volume_flux_fv.nonconservative)
            self._indicator = np.zeros((self.n_elements, self.n_element_nodes))
        else:
            raise TypeError(f"Unsupported volume integral {type(vi).__name__}")

        self._interface_kernel = get_interface_flux_kernel(surface.conservative, surface.nonconservative)
        self._mortar_kernel = get_mortar_flux_kernel(surface.conservative, surface.nonconservative)
        self._boundary_kernels = {
            tag: get_boundary_flux_kernel(flux, surface.has_nonconservative)
            for tag, flux in self.boundary_fluxes.items()
        }
        self._sources_kernel = get_sources_kernel(self.source_terms) if self.source_terms is not None else None

    def warmup(self) -> None:
        """Trigger JIT compilation of every kernel on the initial condition."""
        nvtx_mark("numba_warmup")
        u = self.semi.compute_coefficients(0.0)
        self.residual(u, 0.0)

    # =========================================================================
    # Stage bodies
    # =========================================================================

    def _reset_du(self, du):
        reset_du_kernel(du)

    def _volume_integral(self, du, u):
        topo = self.topology
        vi = self.solver.volume_integral

        if isinstance(vi, VolumeIntegralWeakForm):
            self._volume_kernel(du, u, topo.derivative_dhat, topo.lines, self.params)
        elif isinstance(vi, VolumeIntegralFluxDifferencing):
            self._volume_kernel(du, u, topo.derivative_split, topo.lines, self.params)
        else:
            alpha = self.cache.alpha
            self._indicator_kernel(self._indicator, u, self.params)
            blending_factor_kernel(alpha, self._indicator, topo.modal_matrix, topo.modal_clip1,
                                   topo.modal_clip2, topo.n_nodes, vi.alpha_max, vi.alpha_min)
            self._volume_kernel(du, u, alpha, topo.derivative_split, topo.inverse_weights,
                                topo.lines, self.params)

    def _prolong2interfaces(self, u):
        topo = self.topology
        prolong2interfaces_kernel(self.cache.interfaces_u, u, topo.interface_left, topo.interface_right,
                                  topo.interface_orientation, topo.face_nodes)

    def _interface_flux(self):
        topo = self.topology
        self._interface_kernel(self.cache.surface_flux_values, self.cache.interfaces_u, topo.interface_left,
                               topo.interface_right, topo.interface_orientation, self.params)

    def _prolong2boundaries(self, u):
        topo = self.topology
        prolong2boundaries_kernel(self.cache.boundaries_u, u, topo.boundary_element,
                                  topo.boundary_direction, topo.face_nodes)

    def _boundary_flux(self, t):
        topo = self.topology
        for tag, (start, stop) in topo.boundary_ranges.items():
            self._boundary_kernels[tag](
                self.cache.surface_flux_values, self.cache.boundaries_u, topo.boundary_element,
                topo.boundary_direction, topo.boundary_node_coordinates, start, stop, t, self.params)

    def _prolong2mortars(self, u):
        topo = self.topology
        prolong2mortars_kernel(self.cache.mortars_u, u, topo.mortar_large, topo.mortar_large_side,
                               topo.mortar_orientation, topo.mortar_small, topo.mortar_valid,
                               topo.face_nodes, topo.mortar_forward)

    def _mortar_flux(self):
        topo = self.topology
        self._mortar_kernel(self.cache.surface_flux_values, self.cache.mortars_u, topo.mortar_large,
                            topo.mortar_large_side, topo.mortar_orientation, topo.mortar_small,
                            topo.mortar_valid, topo.mortar_reverse, self.params)

    def _surface_integral(self, du):
        topo = self.topology
        surface_integral_kernel(du, self.cache.surface_flux_values, topo.face_nodes, topo.surface_factors)

    def _apply_jacobian(self, du):
        apply_jacobian_kernel(du, self.topology.inverse_jacobian)

    def _sources(self, du, u, t):
        if self._sources_kernel is None:
            return
        self._sources_kernel(du, u, self.topology.node_coordinates, t, self.params)

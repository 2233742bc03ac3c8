"""
Common driver of the host reference and device residual pipelines.

Subclasses implement the stage bodies (`_volume_integral`, ...) on
flattened (n_elements, n_variables, n_element_nodes) views; this class owns
argument checking, stage timing, NVTX ranges, progress events, the
post-stage finite checks and the single-evaluation guard.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

import numpy as np
from numpy.typing import NDArray

from .cache import DGCache
from .errors import ConfigurationError, check_finite
from .nvtx_helper import nvtx_range
from ..solver import VolumeIntegralShockCapturingHG


STAGES = (
    "reset_du",
    "volume_integral",
    "prolong2interfaces",
    "interface_flux",
    "prolong2boundaries",
    "boundary_flux",
    "prolong2mortars",
    "mortar_flux",
    "surface_integral",
    "apply_jacobian",
    "sources",
)


class ResidualPipelineBase:
    """
    Ordered DGSEM residual stages for one semidiscretization.

    Args:
        semi: Semidiscretization (not modified)
        spare_slots: Extra trace-buffer slots beyond the real face counts
        check_finite: Raise NumericalStabilityError on NaN/inf in real data after each stage
        implementation_name: Identifier used in reports
        verbose: Print per-stage timings
        progress_callback: Object with on_stage_start(stage) / on_stage_complete(stage, duration)
    """

    sentinel: float = 0.0

    def __init__(
        self,
        semi,
        spare_slots: int = 0,
        check_finite: bool = True,
        implementation_name: str = "",
        verbose: bool = False,
        progress_callback=None
    ):
        self.semi = semi
        self.topology = semi.topology
        self.equations = semi.equations
        self.solver = semi.solver
        self.params = semi.equations.params
        self.source_terms = semi.source_terms
        self.boundary_fluxes = semi.bind_boundary_conditions()

        self.check_finite_values = check_finite
        self.implementation_name = implementation_name or type(self).__name__
        self.verbose = verbose
        self.progress_callback = progress_callback

        topo = self.topology
        self.n_elements = topo.n_elements
        self.n_variables = semi.equations.n_variables
        self.n_element_nodes = topo.n_element_nodes

        self.cache = DGCache(
            topo, self.n_variables, self.sentinel, spare_slots=spare_slots,
            with_alpha=isinstance(self.solver.volume_integral, VolumeIntegralShockCapturingHG)
        )
        self._face_masks = self._element_face_masks()

        self.timing_metrics: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _element_face_masks(self) -> Dict[str, NDArray[np.bool_]]:
        """(n_elements, n_faces, 1, 1) masks of the surface flux slices each flux stage writes."""
        topo = self.topology
        shape = (topo.n_elements, topo.n_faces)
        interface = np.zeros(shape, dtype=bool)
        interface[topo.interface_left, 2 * topo.interface_orientation + 1] = True
        interface[topo.interface_right, 2 * topo.interface_orientation] = True

        boundary = np.zeros(shape, dtype=bool)
        boundary[topo.boundary_element, topo.boundary_direction] = True

        mortar = np.zeros(shape, dtype=bool)
        mortar[topo.mortar_large, 2 * topo.mortar_orientation + 1 - topo.mortar_large_side] = True
        small_face = 2 * topo.mortar_orientation + topo.mortar_large_side
        for c in range(topo.n_mortar_children):
            valid = topo.mortar_valid[:, c]
            mortar[topo.mortar_small[valid, c], small_face[valid]] = True

        return {
            "interface_flux": interface[:, :, None, None],
            "boundary_flux": boundary[:, :, None, None],
            "mortar_flux": mortar[:, :, None, None],
        }

    # =========================================================================
    # Timing and checks
    # =========================================================================

    def _time_step(self, step_name: str, func: Callable[..., Any]) -> Any:
        """Utility to time a function call and store the result."""
        t0 = time.perf_counter()
        result = func()
        t1 = time.perf_counter()
        self.timing_metrics[step_name] = t1 - t0

        if self.verbose:
            print(f"  > [{self.implementation_name}] '{step_name}' completed in "
                  f"{self.timing_metrics[step_name]:.6f} seconds.")

        return result

    def _run_stage(self, stage: str, func: Callable[..., Any], *args) -> None:
        if self.progress_callback:
            self.progress_callback.on_stage_start(stage=stage)

        with nvtx_range(stage):
            self._time_step(stage, lambda: func(*args))

        if self.check_finite_values:
            self._check_stage(stage, *args)

        if self.progress_callback:
            self.progress_callback.on_stage_complete(stage=stage, duration=self.timing_metrics[stage])

    def _check_stage(self, stage: str, *args) -> None:
        cache = self.cache
        if stage in ("volume_integral", "surface_integral", "apply_jacobian", "sources"):
            check_finite(stage, "du", args[0])
            if stage == "volume_integral" and cache.alpha is not None:
                check_finite(stage, "alpha", cache.alpha)
        elif stage == "prolong2interfaces":
            check_finite(stage, "interfaces_u", cache.interfaces_u, cache.valid_mask("interfaces_u"))
        elif stage == "prolong2boundaries":
            check_finite(stage, "boundaries_u", cache.boundaries_u, cache.valid_mask("boundaries_u"))
        elif stage == "prolong2mortars":
            check_finite(stage, "mortars_u", cache.mortars_u, cache.valid_mask("mortars_u"))
        elif stage in self._face_masks:
            check_finite(stage, "surface_flux_values", cache.surface_flux_values, self._face_masks[stage])

    def _nodal_view(self, array: NDArray, name: str, writable: bool) -> NDArray[np.float64]:
        self.semi.check_solution(array, name)
        if writable:
            if array.dtype != np.float64 or not array.flags.c_contiguous or not array.flags.writeable:
                raise ConfigurationError(f"{name} must be a writable C-contiguous float64 array")
        else:
            array = np.ascontiguousarray(array, dtype=np.float64)
        return array.reshape(self.n_elements, self.n_variables, self.n_element_nodes)

    # =========================================================================
    # Stages
    # =========================================================================

    def reset_du(self, du: NDArray) -> None:
        self._run_stage("reset_du", self._reset_du, self._nodal_view(du, "du", True))

    def volume_integral(self, du: NDArray, u: NDArray) -> None:
        """Overwrite du with the volume contribution (the reset happens here too)."""
        self._run_stage("volume_integral", self._volume_integral,
                        self._nodal_view(du, "du", True), self._nodal_view(u, "u", False))

    def prolong2interfaces(self, u: NDArray) -> None:
        self._run_stage("prolong2interfaces", self._prolong2interfaces, self._nodal_view(u, "u", False))

    def interface_flux(self) -> None:
        self._run_stage("interface_flux", self._interface_flux)

    def prolong2boundaries(self, u: NDArray) -> None:
        self._run_stage("prolong2boundaries", self._prolong2boundaries, self._nodal_view(u, "u", False))

    def boundary_flux(self, t: float) -> None:
        self._run_stage("boundary_flux", self._boundary_flux, float(t))

    def prolong2mortars(self, u: NDArray) -> None:
        self._run_stage("prolong2mortars", self._prolong2mortars, self._nodal_view(u, "u", False))

    def mortar_flux(self) -> None:
        self._run_stage("mortar_flux", self._mortar_flux)

    def surface_integral(self, du: NDArray) -> None:
        self._run_stage("surface_integral", self._surface_integral, self._nodal_view(du, "du", True))

    def apply_jacobian(self, du: NDArray) -> None:
        self._run_stage("apply_jacobian", self._apply_jacobian, self._nodal_view(du, "du", True))

    def sources(self, du: NDArray, u: NDArray, t: float) -> None:
        self._run_stage("sources", self._sources, self._nodal_view(du, "du", True),
                        self._nodal_view(u, "u", False), float(t))

    # =========================================================================
    # Full evaluation
    # =========================================================================

    def rhs(self, du: NDArray, u: NDArray, t: float) -> NDArray:
        """
        Evaluate du = R(u, t) into the caller's buffer, all stages in order.

        Only one evaluation may run against this pipeline's buffers at a time.
        """
        if not self._lock.acquire(blocking=False):
            raise RuntimeError(f"{self.implementation_name}: a residual evaluation is already in flight")
        try:
            self.timing_metrics = {}
            t0 = time.perf_counter()
            u = np.ascontiguousarray(u, dtype=np.float64)

            self.reset_du(du)
            self.volume_integral(du, u)
            self.prolong2interfaces(u)
            self.interface_flux()
            self.prolong2boundaries(u)
            self.boundary_flux(t)
            self.prolong2mortars(u)
            self.mortar_flux()
            self.surface_integral(du)
            self.apply_jacobian(du)
            self.sources(du, u, t)

            self.timing_metrics['rhs'] = time.perf_counter() - t0
        finally:
            self._lock.release()
        return du

    def residual(self, u: NDArray, t: float) -> NDArray[np.float64]:
        """Pure-function form: allocate du and return R(u, t)."""
        du = self.semi.allocate()
        return self.rhs(du, u, t)

    # =========================================================================
    # Stage bodies
    # =========================================================================

    def _reset_du(self, du):
        raise NotImplementedError

    def _volume_integral(self, du, u):
        raise NotImplementedError

    def _prolong2interfaces(self, u):
        raise NotImplementedError

    def _interface_flux(self):
        raise NotImplementedError

    def _prolong2boundaries(self, u):
        raise NotImplementedError

    def _boundary_flux(self, t):
        raise NotImplementedError

    def _prolong2mortars(self, u):
        raise NotImplementedError

    def _mortar_flux(self):
        raise NotImplementedError

    def _surface_integral(self, du):
        raise NotImplementedError

    def _apply_jacobian(self, du):
        raise NotImplementedError

    def _sources(self, du, u, t):
        raise NotImplementedError

"""
Semidiscretization: topology + equations + solver + boundary and source
terms, validated once before any residual pipeline is built.
"""

from typing import Callable, Dict, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from .boundary_conditions import BoundaryConditionPeriodic
from .equations.base import AbstractEquations
from .shared.errors import ConfigurationError
from .shared.topology import TopologyDescriptor
from .shared.tree_mesh import BOUNDARY_TAGS
from .solver import DGSEM, VolumeIntegralShockCapturingHG, VolumeIntegralWeakForm


class Semidiscretization:
    """
    Spatial discretisation of a hyperbolic system on a tree mesh topology.

    Args:
        topology: Immutable topology descriptor
        equations: Equation system
        initial_condition: njit `initial_condition(x, t, params)`
        solver: DGSEM configuration
        boundary_conditions: One condition for every boundary tag, or a
            mapping tag -> condition; None for fully periodic meshes
        source_terms: njit `source_terms(u, x, t, params)` or None
    """

    def __init__(
        self,
        topology: TopologyDescriptor,
        equations: AbstractEquations,
        initial_condition: Callable,
        solver: DGSEM,
        boundary_conditions=None,
        source_terms: Optional[Callable] = None
    ):
        self.topology = topology
        self.equations = equations
        self.initial_condition = initial_condition
        self.solver = solver
        self.source_terms = source_terms

        self._check_configuration()
        self.boundary_conditions = self._digest_boundary_conditions(boundary_conditions)
        self._raw_boundary_conditions = boundary_conditions

    # =========================================================================
    # Validation
    # =========================================================================

    def _check_configuration(self) -> None:
        topo, eq, solver = self.topology, self.equations, self.solver

        if eq.ndims != topo.ndims:
            raise ConfigurationError(f"{type(eq).__name__} is {eq.ndims}D but the topology is {topo.ndims}D")
        if solver.polydeg != topo.polydeg:
            raise ConfigurationError(f"Solver polydeg {solver.polydeg} does not match topology polydeg {topo.polydeg}")
        if solver.mortar != topo.mortar_type and topo.n_mortars:
            raise ConfigurationError(
                f"Solver mortar type '{solver.mortar}' does not match topology mortar operators '{topo.mortar_type}'")

        vi = solver.volume_integral
        pairs = [("surface_flux", solver.surface_flux)]
        pairs += [(f"{vi.name}.volume_flux[{i}]", p) for i, p in enumerate(vi.flux_pairs())]

        if eq.have_nonconservative_terms:
            if isinstance(vi, VolumeIntegralWeakForm):
                raise ConfigurationError(
                    f"{type(eq).__name__} has nonconservative terms; the weak form cannot represent them")
            missing = [name for name, p in pairs if not p.has_nonconservative]
            if missing:
                raise ConfigurationError(
                    f"{type(eq).__name__} has nonconservative terms but no nonconservative flux is given for {missing}")
        else:
            extra = [name for name, p in pairs if p.has_nonconservative]
            if extra:
                raise ConfigurationError(
                    f"{type(eq).__name__} has no nonconservative terms but a nonconservative flux is given for {extra}")

        if isinstance(vi, VolumeIntegralShockCapturingHG) and topo.n_nodes < 2:
            raise ConfigurationError("Shock capturing needs at least two nodes per direction")

    def _digest_boundary_conditions(self, boundary_conditions) -> Dict[str, object]:
        topo = self.topology
        present = topo.boundary_tags
        known = BOUNDARY_TAGS[:2 * topo.ndims]

        if boundary_conditions is None:
            if present:
                raise ConfigurationError(f"No boundary conditions given for boundary tags {list(present)}")
            return {}

        if not isinstance(boundary_conditions, dict):
            if isinstance(boundary_conditions, BoundaryConditionPeriodic) and present:
                raise ConfigurationError(f"Periodic boundary condition given for non-periodic tags {list(present)}")
            return {tag: boundary_conditions for tag in present}

        unknown = [tag for tag in boundary_conditions if tag not in known]
        if unknown:
            raise ConfigurationError(f"Unknown boundary tags {unknown}, expected a subset of {list(known)}")

        digested = {}
        for tag, bc in boundary_conditions.items():
            periodic = isinstance(bc, BoundaryConditionPeriodic)
            if tag in present and periodic:
                raise ConfigurationError(f"Boundary tag '{tag}' is a physical boundary but has a periodic condition")
            if tag not in present and not periodic:
                raise ConfigurationError(f"Boundary tag '{tag}' has no boundary faces (periodic direction)")
            if not periodic:
                digested[tag] = bc

        unmatched = [tag for tag in present if tag not in digested]
        if unmatched:
            raise ConfigurationError(f"No boundary condition for boundary tags {unmatched}")
        return digested

    def bind_boundary_conditions(self) -> Dict[str, Callable]:
        """Compiled boundary flux per boundary tag."""
        return {tag: bc.bind(self.equations, self.solver.surface_flux)
                for tag, bc in self.boundary_conditions.items()}

    # =========================================================================
    # Solution arrays
    # =========================================================================

    @property
    def u_shape(self) -> Tuple[int, ...]:
        topo = self.topology
        return (topo.n_elements, self.equations.n_variables) + (topo.n_nodes,) * topo.ndims

    def check_solution(self, u: NDArray, name: str = "u") -> None:
        if u.shape != self.u_shape:
            raise ConfigurationError(f"{name} has shape {u.shape}, topology and equations require {self.u_shape}")

    def allocate(self, fill: float = 0.0) -> NDArray[np.float64]:
        return np.full(self.u_shape, fill, dtype=np.float64)

    def compute_coefficients(self, t: float = 0.0) -> NDArray[np.float64]:
        """Nodal values of the initial condition at time t."""
        topo = self.topology
        u = self.allocate()
        u_flat = u.reshape(topo.n_elements, self.equations.n_variables, topo.n_element_nodes)
        params = self.equations.params
        for element in range(topo.n_elements):
            for node in range(topo.n_element_nodes):
                x = topo.node_coordinates[element, :, node]
                u_flat[element, :, node] = self.initial_condition(x, t, params)
        return u

    # =========================================================================
    # Value-semantic copies
    # =========================================================================

    def clone(self) -> "Semidiscretization":
        """Independent semidiscretization sharing no mutable state with this one."""
        return Semidiscretization(
            self.topology.clone(),
            self.equations.clone(),
            self.initial_condition,
            self.solver.clone(),
            boundary_conditions=self._raw_boundary_conditions,
            source_terms=self.source_terms,
        )

    def __repr__(self) -> str:
        s = self.topology.summary()
        return (f"Semidiscretization({type(self.equations).__name__}, {self.solver!r}, "
                f"elements={s['elements']}, interfaces={s['interfaces']}, "
                f"boundaries={s['boundaries']}, mortars={s['mortars']})")

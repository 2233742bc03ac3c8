"""
Trace and flux buffers owned by one residual pipeline instance.

Buffers may carry spare slots beyond the real face counts. Unused slots hold
the sentinel of the owning side (NaN on the host reference, 0.0 on the
device); the validity masks, not the sentinel, say which slots are real.
"""

from typing import Dict, Optional

import numpy as np
from numpy.typing import NDArray

from .topology import TopologyDescriptor


class DGCache:
    """
    Preallocated buffers for one residual evaluation at a time.

    Shapes (V = n_variables, npf = face nodes):
        interfaces_u:        (capacity_i, 2, V, npf)
        boundaries_u:        (capacity_b, V, npf)
        mortars_u:           (capacity_m, n_children, 2, V, npf)
        surface_flux_values: (n_elements, 2 * ndims, V, npf)
        alpha:               (n_elements,) or None without shock capturing
    """

    def __init__(
        self,
        topology: TopologyDescriptor,
        n_variables: int,
        sentinel: float,
        spare_slots: int = 0,
        with_alpha: bool = False
    ):
        self.topology = topology
        self.n_variables = n_variables
        self.sentinel = float(sentinel)
        self.spare_slots = int(spare_slots)

        npf = topology.n_face_nodes
        n_children = topology.n_mortar_children
        cap_i = topology.n_interfaces + self.spare_slots
        cap_b = topology.n_boundaries + self.spare_slots
        cap_m = topology.n_mortars + self.spare_slots

        self.interfaces_u = np.full((cap_i, 2, n_variables, npf), self.sentinel)
        self.boundaries_u = np.full((cap_b, n_variables, npf), self.sentinel)
        self.mortars_u = np.full((cap_m, n_children, 2, n_variables, npf), self.sentinel)
        self.surface_flux_values = np.full(
            (topology.n_elements, topology.n_faces, n_variables, npf), self.sentinel)
        self.alpha: Optional[NDArray[np.float64]] = \
            np.full(topology.n_elements, self.sentinel) if with_alpha else None

        self.interfaces_valid = np.zeros(cap_i, dtype=bool)
        self.interfaces_valid[:topology.n_interfaces] = True
        self.boundaries_valid = np.zeros(cap_b, dtype=bool)
        self.boundaries_valid[:topology.n_boundaries] = True
        self.mortars_valid = np.zeros((cap_m, n_children), dtype=bool)
        self.mortars_valid[:topology.n_mortars] = topology.mortar_valid

    def valid_mask(self, name: str) -> NDArray[np.bool_]:
        """Boolean mask broadcast to the full shape of buffer `name`."""
        buffer = getattr(self, name)
        if name == "interfaces_u":
            mask = self.interfaces_valid[:, None, None, None]
        elif name == "boundaries_u":
            mask = self.boundaries_valid[:, None, None]
        elif name == "mortars_u":
            mask = self.mortars_valid[:, :, None, None, None]
        else:
            mask = np.ones(1, dtype=bool)
        return np.broadcast_to(mask, buffer.shape)

    def capacities(self) -> Dict[str, int]:
        return {
            'interfaces': int(self.interfaces_valid.size),
            'boundaries': int(self.boundaries_valid.size),
            'mortars': int(self.mortars_valid.shape[0]),
        }

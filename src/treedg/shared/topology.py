"""
Topology descriptor: the immutable, per-configuration description of a
discretised tree mesh consumed by both residual pipelines.

Holds element geometry, the classification of every element face into
conforming interface, physical boundary or mortar, the node index tables
that map faces and lines onto the flattened element nodes, and the fixed
operator matrices of the basis.
"""

import dataclasses
from dataclasses import dataclass
from functools import reduce
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import h5py
import numpy as np
from numpy.typing import NDArray

from .basis import LobattoLegendreBasis
from .errors import ConfigurationError
from .tree_mesh import BOUNDARY_TAGS, TreeMesh


MORTAR_TYPES = ("l2", "identity")

_SCALAR_FIELDS = ("ndims", "polydeg", "mortar_type")


@dataclass(frozen=True, eq=False)
class TopologyDescriptor:
    """
    Immutable topology and operator set of one DGSEM discretisation.

    Node layout: element nodes are flattened in C order of (i_x, i_y, i_z).
    Local face f = 2 * axis + s, with s = 0 the negative and s = 1 the
    positive face. Mortar children are ordered by their (lower=0, upper=1)
    position along the tangential axes, in C order.
    """
    ndims: int
    polydeg: int
    mortar_type: str
    periodicity: NDArray[np.bool_]

    # Geometry
    element_levels: NDArray[np.int64]
    element_centers: NDArray[np.float64]
    element_lengths: NDArray[np.float64]
    inverse_jacobian: NDArray[np.float64]
    node_coordinates: NDArray[np.float64]

    # Node index tables
    lines: NDArray[np.int64]
    face_nodes: NDArray[np.int64]

    # Conforming interfaces
    interface_left: NDArray[np.int64]
    interface_right: NDArray[np.int64]
    interface_orientation: NDArray[np.int64]

    # Physical boundaries, sorted by direction
    boundary_element: NDArray[np.int64]
    boundary_direction: NDArray[np.int64]
    boundary_node_coordinates: NDArray[np.float64]

    # Mortars, recorded from the large element
    mortar_large: NDArray[np.int64]
    mortar_large_side: NDArray[np.int64]
    mortar_orientation: NDArray[np.int64]
    mortar_small: NDArray[np.int64]
    mortar_valid: NDArray[np.bool_]

    # Operators
    nodes: NDArray[np.float64]
    weights: NDArray[np.float64]
    inverse_weights: NDArray[np.float64]
    derivative_split: NDArray[np.float64]
    derivative_dhat: NDArray[np.float64]
    surface_factors: NDArray[np.float64]
    mortar_forward: NDArray[np.float64]
    mortar_reverse: NDArray[np.float64]
    modal_matrix: NDArray[np.float64]
    modal_clip1: NDArray[np.bool_]
    modal_clip2: NDArray[np.bool_]

    def __post_init__(self):
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value.flags.writeable = False

    # =========================================================================
    # Sizes
    # =========================================================================

    @property
    def n_elements(self) -> int:
        return int(self.inverse_jacobian.size)

    @property
    def n_nodes(self) -> int:
        return self.polydeg + 1

    @property
    def n_face_nodes(self) -> int:
        return self.n_nodes ** (self.ndims - 1)

    @property
    def n_element_nodes(self) -> int:
        return self.n_nodes ** self.ndims

    @property
    def n_faces(self) -> int:
        return 2 * self.ndims

    @property
    def n_mortar_children(self) -> int:
        return 2 ** (self.ndims - 1)

    @property
    def n_interfaces(self) -> int:
        return int(self.interface_left.size)

    @property
    def n_boundaries(self) -> int:
        return int(self.boundary_element.size)

    @property
    def n_mortars(self) -> int:
        return int(self.mortar_large.size)

    @property
    def boundary_tags(self) -> Tuple[str, ...]:
        return tuple(BOUNDARY_TAGS[d] for d in np.unique(self.boundary_direction))

    @property
    def boundary_ranges(self) -> Dict[str, Tuple[int, int]]:
        """Slice (start, stop) of the boundary arrays for every tag present."""
        ranges = {}
        for direction in np.unique(self.boundary_direction):
            start = int(np.searchsorted(self.boundary_direction, direction, side="left"))
            stop = int(np.searchsorted(self.boundary_direction, direction, side="right"))
            ranges[BOUNDARY_TAGS[direction]] = (start, stop)
        return ranges

    def summary(self) -> Dict[str, int]:
        return {
            'ndims': self.ndims,
            'polydeg': self.polydeg,
            'elements': self.n_elements,
            'interfaces': self.n_interfaces,
            'boundaries': self.n_boundaries,
            'mortars': self.n_mortars,
        }

    # =========================================================================
    # Value-semantic copies
    # =========================================================================

    def clone(self) -> "TopologyDescriptor":
        """Independent snapshot: no array is shared with the original."""
        values = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            values[f.name] = value.copy() if isinstance(value, np.ndarray) else value
        return TopologyDescriptor(**values)

    def as_equal_resolution_mortars(self, interface_ids: Sequence[int]) -> "TopologyDescriptor":
        """
        Re-express the given conforming interfaces as arity-1 mortars.

        The left element becomes the "large" side, only child slot 0 is
        valid and the mortar operators are identities, so the result must
        reproduce the conforming interface computation.
        """
        if self.n_mortars:
            raise ConfigurationError("Topology already contains mortars; cannot mix mortar operator sets")
        ids = np.unique(np.asarray(interface_ids, dtype=np.int64))
        if ids.size and (ids[0] < 0 or ids[-1] >= self.n_interfaces):
            raise ConfigurationError(f"Interface ids out of range [0, {self.n_interfaces})")

        keep = np.ones(self.n_interfaces, dtype=bool)
        keep[ids] = False
        n_children = self.n_mortar_children

        mortar_small = np.full((ids.size, n_children), -1, dtype=np.int64)
        mortar_small[:, 0] = self.interface_right[ids]
        mortar_valid = np.zeros((ids.size, n_children), dtype=bool)
        mortar_valid[:, 0] = True

        npf = self.n_face_nodes
        identity = np.zeros((n_children, npf, npf))
        identity[0] = np.eye(npf)

        return dataclasses.replace(
            self.clone(),
            mortar_type="identity",
            interface_left=self.interface_left[keep].copy(),
            interface_right=self.interface_right[keep].copy(),
            interface_orientation=self.interface_orientation[keep].copy(),
            mortar_large=self.interface_left[ids].copy(),
            mortar_large_side=np.zeros(ids.size, dtype=np.int64),
            mortar_orientation=self.interface_orientation[ids].copy(),
            mortar_small=mortar_small,
            mortar_valid=mortar_valid,
            mortar_forward=identity,
            mortar_reverse=identity.copy(),
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    def save(self, path: Path | str) -> Path:
        """Write to .npz or .h5 (HDF5)."""
        path = Path(path)
        suffix = path.suffix.lower()
        arrays = {f.name: getattr(self, f.name) for f in dataclasses.fields(self)
                  if f.name not in _SCALAR_FIELDS}

        if suffix == '.npz':
            np.savez(path, ndims=self.ndims, polydeg=self.polydeg,
                     mortar_type=np.str_(self.mortar_type), **arrays)
        elif suffix == '.h5':
            with h5py.File(path, 'w') as f:
                f.attrs['ndims'] = self.ndims
                f.attrs['polydeg'] = self.polydeg
                f.attrs['mortar_type'] = self.mortar_type
                for name, value in arrays.items():
                    f.create_dataset(name, data=value)
        else:
            raise ValueError(f"Unsupported topology format: {suffix}")
        return path

    @classmethod
    def load(cls, path: Path | str) -> "TopologyDescriptor":
        """Read a descriptor written by save()."""
        path = Path(path)
        suffix = path.suffix.lower()
        names = [f.name for f in dataclasses.fields(cls) if f.name not in _SCALAR_FIELDS]

        if suffix == '.npz':
            with np.load(path) as data:
                values = {name: np.array(data[name]) for name in names}
                values['ndims'] = int(data['ndims'])
                values['polydeg'] = int(data['polydeg'])
                values['mortar_type'] = str(data['mortar_type'])
        elif suffix == '.h5':
            with h5py.File(path, 'r') as f:
                values = {name: np.array(f[name][()]) for name in names}
                values['ndims'] = int(f.attrs['ndims'])
                values['polydeg'] = int(f.attrs['polydeg'])
                mortar_type = f.attrs['mortar_type']
                values['mortar_type'] = mortar_type.decode() if isinstance(mortar_type, bytes) else str(mortar_type)
        else:
            raise ValueError(f"Unsupported topology format: {suffix}")
        return cls(**values)


# =============================================================================
# Construction from a tree mesh
# =============================================================================

def _node_tables(ndims: int, n_nodes: int) -> Tuple[NDArray[np.int64], NDArray[np.int64]]:
    grid = np.arange(n_nodes ** ndims, dtype=np.int64).reshape((n_nodes,) * ndims)
    lines = np.stack([np.moveaxis(grid, axis, -1).reshape(-1, n_nodes) for axis in range(ndims)])
    face_nodes = np.stack([
        np.take(grid, 0 if side == 0 else n_nodes - 1, axis=axis).ravel()
        for axis in range(ndims) for side in (0, 1)
    ])
    return lines, face_nodes


def _kron_all(matrices: List[NDArray[np.float64]]) -> NDArray[np.float64]:
    return reduce(np.kron, matrices, np.ones((1, 1)))


def _mortar_operators(basis: LobattoLegendreBasis, ndims: int, mortar: str) -> Tuple[NDArray, NDArray]:
    children = list(np.ndindex(*(2,) * (ndims - 1)))
    npf = basis.n_nodes ** (ndims - 1)
    if mortar == "identity":
        forward = np.zeros((len(children), npf, npf))
        forward[0] = np.eye(npf)
        return forward, forward.copy()

    fwd = (basis.mortar_forward_lower, basis.mortar_forward_upper)
    rev = (basis.mortar_reverse_lower, basis.mortar_reverse_upper)
    forward = np.stack([_kron_all([fwd[b] for b in bits]) for bits in children])
    reverse = np.stack([_kron_all([rev[b] for b in bits]) for bits in children])
    return forward, reverse


def _modal_tables(basis: LobattoLegendreBasis, ndims: int) -> Tuple[NDArray, NDArray, NDArray]:
    n = basis.n_nodes
    modal_matrix = _kron_all([basis.inverse_vandermonde_legendre] * ndims)
    modes = np.stack(np.unravel_index(np.arange(n ** ndims), (n,) * ndims))
    clip1 = np.all(modes < n - 1, axis=0)
    clip2 = np.all(modes < n - 2, axis=0)
    return modal_matrix, clip1, clip2


def build_topology(mesh: TreeMesh, basis: LobattoLegendreBasis, mortar: str = "l2") -> TopologyDescriptor:
    """
    Classify every face of `mesh` and assemble the descriptor.

    Interfaces are recorded once, from the element on their negative side.
    Mortars are recorded from the large element. In 1D a level jump is a
    single point and is treated as a conforming interface.
    """
    if mortar not in MORTAR_TYPES:
        raise ConfigurationError(f"Unknown mortar type '{mortar}', expected one of {MORTAR_TYPES}")

    d = mesh.ndims
    n = basis.n_nodes
    children = list(np.ndindex(*(2,) * (d - 1)))

    interfaces: List[Tuple[int, int, int]] = []
    boundaries: List[Tuple[int, int]] = []
    mortars: List[Tuple[int, int, int, List[int]]] = []

    for element in range(mesh.n_elements):
        level = int(mesh.levels[element])
        index = tuple(int(i) for i in mesh.indices[element])

        for axis in range(d):
            for side, step in ((0, -1), (1, 1)):
                neighbor = mesh.neighbor_index(level, index, axis, step)
                if neighbor is None:
                    boundaries.append((2 * axis + side, element))
                    continue

                same = mesh.leaf_id(level, neighbor)
                if same is not None:
                    if step == 1:
                        interfaces.append((element, same, axis))
                    continue

                # Children adjacent to the shared face sit at the near end of the neighbour
                near = 0 if step == 1 else 1
                finer = []
                for bits in children:
                    child = list(bits)
                    child.insert(axis, near)
                    finer.append(mesh.leaf_id(level + 1, tuple(2 * i + c for i, c in zip(neighbor, child))))

                if d == 1:
                    if step == 1:
                        right = finer[0] if finer[0] is not None else \
                            mesh.leaf_id(level - 1, tuple(i // 2 for i in neighbor))
                        interfaces.append((element, right, axis))
                    continue

                if any(c is not None for c in finer):
                    if any(c is None for c in finer):
                        raise ConfigurationError(f"Partially refined neighbour of element {element}")
                    mortars.append((element, 0 if step == 1 else 1, axis, finer))
                elif mesh.leaf_id(level - 1, tuple(i // 2 for i in neighbor)) is None:
                    raise ConfigurationError(f"Mesh is not 2:1 balanced at element {element}")

    lines, face_nodes = _node_tables(d, n)

    lengths = mesh.cell_lengths()
    centers = mesh.cell_centers()
    reference = basis.nodes[np.stack(np.unravel_index(np.arange(n ** d), (n,) * d))]
    node_coordinates = centers[:, :, None] + 0.5 * lengths[:, None, None] * reference[None, :, :]

    interfaces_arr = np.array(interfaces, dtype=np.int64).reshape(-1, 3)

    boundaries_arr = np.array(boundaries, dtype=np.int64).reshape(-1, 2)
    order = np.argsort(boundaries_arr[:, 0], kind="stable")
    boundaries_arr = boundaries_arr[order]
    boundary_direction = boundaries_arr[:, 0].copy()
    boundary_element = boundaries_arr[:, 1].copy()
    boundary_node_coordinates = np.empty((boundary_element.size, d, n ** (d - 1)))
    for b, (element, direction) in enumerate(zip(boundary_element, boundary_direction)):
        boundary_node_coordinates[b] = node_coordinates[element][:, face_nodes[direction]]

    n_children = len(children)
    mortar_small = np.array([m[3] for m in mortars], dtype=np.int64).reshape(-1, n_children)

    forward, reverse = _mortar_operators(basis, d, mortar)
    modal_matrix, clip1, clip2 = _modal_tables(basis, d)

    return TopologyDescriptor(
        ndims=d,
        polydeg=basis.polydeg,
        mortar_type=mortar,
        periodicity=np.array(mesh.periodicity, dtype=bool),
        element_levels=mesh.levels.copy(),
        element_centers=centers,
        element_lengths=lengths,
        inverse_jacobian=2.0 / lengths,
        node_coordinates=node_coordinates,
        lines=lines,
        face_nodes=face_nodes,
        interface_left=interfaces_arr[:, 0].copy(),
        interface_right=interfaces_arr[:, 1].copy(),
        interface_orientation=interfaces_arr[:, 2].copy(),
        boundary_element=boundary_element,
        boundary_direction=boundary_direction,
        boundary_node_coordinates=boundary_node_coordinates,
        mortar_large=np.array([m[0] for m in mortars], dtype=np.int64),
        mortar_large_side=np.array([m[1] for m in mortars], dtype=np.int64),
        mortar_orientation=np.array([m[2] for m in mortars], dtype=np.int64),
        mortar_small=mortar_small,
        mortar_valid=mortar_small >= 0,
        nodes=basis.nodes.copy(),
        weights=basis.weights.copy(),
        inverse_weights=basis.inverse_weights.copy(),
        derivative_split=basis.derivative_split.copy(),
        derivative_dhat=basis.derivative_dhat.copy(),
        surface_factors=basis.surface_factors.copy(),
        mortar_forward=forward,
        mortar_reverse=reverse,
        modal_matrix=modal_matrix,
        modal_clip1=clip1,
        modal_clip2=clip2,
    )

"""
Cartesian tree mesh: a hypercube domain refined uniformly to an initial
level, with optional boxes refined once more.

Leaf cells are addressed by (level, integer index tuple at that level).
A cell is refined only as a whole (all 2^d children), and only one level
above the base, so neighbouring leaves never differ by more than one level.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError


BOUNDARY_TAGS = ("x_neg", "x_pos", "y_neg", "y_pos", "z_neg", "z_pos")


def _as_tuple(value, ndims: Optional[int] = None) -> Tuple[float, ...]:
    if np.isscalar(value):
        return (float(value),) * (ndims or 1)
    return tuple(float(v) for v in value)


class TreeMesh:
    """
    Hypercube tree mesh with at most one refinement level above the base.

    Args:
        coordinates_min: Lower domain corner (scalar in 1D)
        coordinates_max: Upper domain corner (scalar in 1D)
        initial_refinement_level: Base level L, giving 2^L cells per direction
        periodicity: Bool or per-direction bools
        refinement_patches: Boxes (lower, upper); base cells whose centre lies
            inside a box are split into 2^d children
    """

    def __init__(
        self,
        coordinates_min,
        coordinates_max,
        initial_refinement_level: int,
        periodicity=True,
        refinement_patches: Sequence[Tuple[Sequence[float], Sequence[float]]] = ()
    ):
        self.coordinates_min = np.array(_as_tuple(coordinates_min))
        self.coordinates_max = np.array(_as_tuple(coordinates_max, self.coordinates_min.size))
        self.ndims = self.coordinates_min.size
        if self.ndims not in (1, 2, 3) or self.coordinates_max.size != self.ndims:
            raise ConfigurationError(
                f"Domain corners must have 1, 2 or 3 matching coordinates, got "
                f"{self.coordinates_min.tolist()} and {self.coordinates_max.tolist()}")

        sides = self.coordinates_max - self.coordinates_min
        if np.any(sides <= 0.0):
            raise ConfigurationError(f"Empty domain: {self.coordinates_min} .. {self.coordinates_max}")
        if not np.allclose(sides, sides[0], rtol=1e-12, atol=0.0):
            raise ConfigurationError(f"Tree mesh domain must be a hypercube, side lengths are {sides.tolist()}")
        self.domain_length = float(sides[0])

        if initial_refinement_level < 0:
            raise ConfigurationError("initial_refinement_level must be non-negative")
        self.initial_refinement_level = int(initial_refinement_level)

        if isinstance(periodicity, (bool, np.bool_)):
            self.periodicity = (bool(periodicity),) * self.ndims
        else:
            self.periodicity = tuple(bool(p) for p in periodicity)
            if len(self.periodicity) != self.ndims:
                raise ConfigurationError(f"periodicity needs {self.ndims} entries, got {len(self.periodicity)}")

        self.refinement_patches = [
            (np.array(_as_tuple(lo, self.ndims)), np.array(_as_tuple(hi, self.ndims)))
            for lo, hi in refinement_patches
        ]

        self.levels: NDArray[np.int64]
        self.indices: NDArray[np.int64]
        self._leaf_ids: Dict[Tuple[int, Tuple[int, ...]], int] = {}
        self._build_leaves()

    # =========================================================================
    # Leaves
    # =========================================================================

    def n_cells_per_direction(self, level: int) -> int:
        return 2 ** level

    def cell_length(self, level: int) -> float:
        return self.domain_length / self.n_cells_per_direction(level)

    def _is_refined(self, base_index: Tuple[int, ...]) -> bool:
        if not self.refinement_patches:
            return False
        h = self.cell_length(self.initial_refinement_level)
        center = self.coordinates_min + (np.array(base_index) + 0.5) * h
        return any(np.all(center >= lo) and np.all(center <= hi) for lo, hi in self.refinement_patches)

    def _build_leaves(self) -> None:
        base = self.initial_refinement_level
        n_base = self.n_cells_per_direction(base)
        levels: List[int] = []
        indices: List[Tuple[int, ...]] = []

        for base_index in np.ndindex(*(n_base,) * self.ndims):
            if self._is_refined(base_index):
                for child in np.ndindex(*(2,) * self.ndims):
                    levels.append(base + 1)
                    indices.append(tuple(2 * b + c for b, c in zip(base_index, child)))
            else:
                levels.append(base)
                indices.append(tuple(base_index))

        self.levels = np.array(levels, dtype=np.int64)
        self.indices = np.array(indices, dtype=np.int64).reshape(len(levels), self.ndims)
        self._leaf_ids = {(lvl, idx): i for i, (lvl, idx) in enumerate(zip(levels, indices))}

    @property
    def n_elements(self) -> int:
        return int(self.levels.size)

    @property
    def max_level(self) -> int:
        return int(self.levels.max())

    def leaf_id(self, level: int, index: Tuple[int, ...]) -> Optional[int]:
        return self._leaf_ids.get((level, tuple(index)))

    def cell_lengths(self) -> NDArray[np.float64]:
        return self.domain_length / 2.0 ** self.levels

    def cell_centers(self) -> NDArray[np.float64]:
        lengths = self.cell_lengths()
        return self.coordinates_min[None, :] + (self.indices + 0.5) * lengths[:, None]

    # =========================================================================
    # Neighbour lookup
    # =========================================================================

    def neighbor_index(self, level: int, index: Tuple[int, ...], axis: int, step: int) -> Optional[Tuple[int, ...]]:
        """Index of the same-level cell across a face, wrapped when periodic, None outside the domain."""
        n = self.n_cells_per_direction(level)
        shifted = list(index)
        shifted[axis] += step
        if 0 <= shifted[axis] < n:
            return tuple(shifted)
        if self.periodicity[axis]:
            shifted[axis] %= n
            return tuple(shifted)
        return None

    def __repr__(self) -> str:
        return (f"TreeMesh(ndims={self.ndims}, n_elements={self.n_elements}, "
                f"initial_refinement_level={self.initial_refinement_level}, "
                f"periodicity={self.periodicity})")

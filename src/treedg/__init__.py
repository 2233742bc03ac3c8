"""
treedg - DGSEM residual evaluation on Cartesian tree meshes.

A sequential host reference and a Numba-parallel pipeline evaluate the
same ordered residual stages and are cross-validated stage by stage.
"""

from .shared.basis import LobattoLegendreBasis
from .shared.tree_mesh import TreeMesh
from .shared.topology import TopologyDescriptor, build_topology
from .shared.errors import ConfigurationError, NumericalStabilityError
from .shared.transfer import copy_to_device, copy_to_host
from .shared.residual_base import STAGES
from .solver import (
    DGSEM,
    FluxPair,
    VolumeIntegralWeakForm,
    VolumeIntegralFluxDifferencing,
    VolumeIntegralShockCapturingHG,
)
from .boundary_conditions import (
    BoundaryConditionDirichlet,
    BoundaryConditionSlipWall,
    BoundaryConditionPeriodic,
    boundary_condition_periodic,
    boundary_condition_slip_wall,
)
from .semidiscretization import Semidiscretization
from .cpu import DGResidualCPU
from .numba_parallel import DGResidualNumba

__version__ = "0.3.0"

__all__ = [
    'LobattoLegendreBasis',
    'TreeMesh',
    'TopologyDescriptor',
    'build_topology',
    'ConfigurationError',
    'NumericalStabilityError',
    'copy_to_device',
    'copy_to_host',
    'STAGES',
    'DGSEM',
    'FluxPair',
    'VolumeIntegralWeakForm',
    'VolumeIntegralFluxDifferencing',
    'VolumeIntegralShockCapturingHG',
    'BoundaryConditionDirichlet',
    'BoundaryConditionSlipWall',
    'BoundaryConditionPeriodic',
    'boundary_condition_periodic',
    'boundary_condition_slip_wall',
    'Semidiscretization',
    'DGResidualCPU',
    'DGResidualNumba',
]

"""
Sequential host reference of the DGSEM residual.

Plain Python loops over elements and faces; the ground truth that the
parallel pipeline is validated against.
"""

from .dg_cpu import DGResidualCPU, blending_factor

__all__ = [
    'DGResidualCPU',
    'blending_factor',
]

"""
Cross-validation suite for the residual pipelines.

Runs every configured case on the host reference and the Numba pipeline
and records the stage-by-stage comparison.
"""

from .config_loader import CaseConfig, ConfigLoader
from .cases import build_semidiscretization
from .result_recorder import ResultRecorder
from .runner import ValidationRunner, ProgressTracker

__all__ = [
    'CaseConfig',
    'ConfigLoader',
    'build_semidiscretization',
    'ResultRecorder',
    'ValidationRunner',
    'ProgressTracker'
]

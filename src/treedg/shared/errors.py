"""
Error types raised by the residual pipelines.

Configuration problems are reported before any stage runs; numerical
problems are reported after the stage that produced them.
"""

from typing import Optional

import numpy as np


class ConfigurationError(ValueError):
    """Inconsistent topology, equation, solver or buffer configuration."""


class NumericalStabilityError(RuntimeError):
    """Non-finite value found in a non-padded region of a pipeline buffer."""

    def __init__(self, stage: str, buffer: str, n_bad: int, first_index: Optional[tuple] = None):
        self.stage = stage
        self.buffer = buffer
        self.n_bad = n_bad
        self.first_index = first_index
        msg = f"{n_bad} non-finite value(s) in '{buffer}' after stage '{stage}'"
        if first_index is not None:
            msg += f" (first at index {first_index})"
        super().__init__(msg)


def check_finite(stage: str, name: str, array: np.ndarray, valid: Optional[np.ndarray] = None) -> None:
    """
    Raise NumericalStabilityError if `array` holds NaN/inf where `valid` is True.

    `valid` must broadcast to `array.shape`; None means every position is real data.
    """
    bad = ~np.isfinite(array)
    if valid is not None:
        bad &= np.broadcast_to(valid, array.shape)
    n_bad = int(np.count_nonzero(bad))
    if n_bad:
        first = tuple(int(i) for i in np.argwhere(bad)[0])
        raise NumericalStabilityError(stage, name, n_bad, first)

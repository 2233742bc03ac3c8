"""
Host/device transfer layer.

The device path works on its own C-contiguous float64 copies of the
solution and residual. A copy to the device and back is bit-identical and
preserves shape and index order; both calls return only once the copy is
complete.
"""

from typing import Tuple

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError
from .nvtx_helper import nvtx_range


def _checked_copy(array, name: str) -> NDArray[np.float64]:
    array = np.asarray(array)
    if array.dtype != np.float64:
        raise ConfigurationError(f"{name} must be float64, got {array.dtype}")
    return np.array(array, dtype=np.float64, order='C', copy=True)


def _check_pair(du: NDArray, u: NDArray) -> None:
    if du.shape != u.shape:
        raise ConfigurationError(f"du shape {du.shape} does not match u shape {u.shape}")


def copy_to_device(du, u) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return device copies (du_device, u_device)."""
    with nvtx_range("memory_transfer"):
        du_device = _checked_copy(du, "du")
        u_device = _checked_copy(u, "u")
        _check_pair(du_device, u_device)
    return du_device, u_device


def copy_to_host(du_device, u_device) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return host copies (du, u) of the device buffers."""
    with nvtx_range("memory_transfer"):
        du = _checked_copy(du_device, "du_device")
        u = _checked_copy(u_device, "u_device")
        _check_pair(du, u)
    return du, u

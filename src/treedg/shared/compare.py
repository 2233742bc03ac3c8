"""
Comparison of host reference and device buffers.

Unused slots hold NaN on the host and 0.0 on the device. When a validity
mask is given it decides which positions are real; without one, the
sentinel pair (host NaN, device 0.0) marks a padded position.
"""

from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray


DEFAULT_RTOL = float(np.sqrt(np.finfo(np.float64).eps))
DEFAULT_ATOL = 1e-12


def diff_stats(ref, test, atol: float, rtol: float) -> Dict[str, Any]:
    """Elementwise max absolute / relative error and pass flag."""
    ref = np.asarray(ref, dtype=float)
    test = np.asarray(test, dtype=float)

    if ref.size == 0:
        return {"max_abs": 0.0, "max_rel": 0.0, "status": True, "atol": atol, "rtol": rtol}

    diff = np.abs(test - ref)
    max_abs = float(np.nanmax(diff)) if not np.all(np.isnan(diff)) else np.nan

    mask = np.abs(ref) > atol
    max_rel = float(np.nanmax(diff[mask] / np.abs(ref[mask]))) if np.any(mask) else 0.0

    status = bool(np.isfinite(max_abs) and ((max_abs <= atol) or (max_rel <= rtol)))

    return {
        "max_abs": max_abs,
        "max_rel": max_rel,
        "status": status,
        "atol": atol,
        "rtol": rtol,
    }


def isapprox(a: NDArray, b: NDArray, rtol: float = DEFAULT_RTOL, atol: float = DEFAULT_ATOL) -> bool:
    """Norm-based approximate equality: ||a - b|| <= max(atol, rtol * max(||a||, ||b||))."""
    if a.size == 0:
        return True
    if not (np.all(np.isfinite(a)) and np.all(np.isfinite(b))):
        return False
    dist = np.linalg.norm(a - b)
    return bool(dist <= max(atol, rtol * max(np.linalg.norm(a), np.linalg.norm(b))))


def compare_padded(
    device: NDArray,
    host: NDArray,
    valid: Optional[NDArray[np.bool_]] = None,
    rtol: float = DEFAULT_RTOL,
    atol: float = DEFAULT_ATOL
) -> Dict[str, Any]:
    """
    Compare a device buffer with its host reference.

    With `valid`, invalid positions must hold the sentinels (host NaN,
    device 0.0) and valid positions must agree approximately; a NaN in a
    valid position is a failure. Without `valid`, a host NaN facing a
    device 0.0 counts as padding, any other host NaN is a failure, and the
    remaining positions must agree approximately.

    Returns diff_stats of the compared positions plus `padded`, the number
    of positions treated as padding.
    """
    device = np.asarray(device, dtype=float)
    host = np.asarray(host, dtype=float)
    if device.shape != host.shape:
        raise ValueError(f"Shape mismatch: device {device.shape} vs host {host.shape}")

    host_nan = np.isnan(host)

    if valid is not None:
        valid = np.broadcast_to(np.asarray(valid, dtype=bool), host.shape)
        padded = ~valid
        sentinels_ok = bool(np.all(host_nan[padded]) and np.all(device[padded] == 0.0))
        compared = valid
    else:
        padded = host_nan & (device == 0.0)
        sentinels_ok = not np.any(host_nan & ~padded)
        compared = ~host_nan

    d = device[compared]
    h = host[compared]
    stats = diff_stats(h, d, atol, rtol)
    stats["status"] = bool(sentinels_ok and isapprox(d, h, rtol=rtol, atol=atol))
    stats["padded"] = int(np.count_nonzero(padded))
    return stats

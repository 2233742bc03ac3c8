"""
NVTX ranges around residual pipeline stages.

Profiling is optional: without the `nvtx` package (extra `profiling`)
every helper is a no-op and the pipelines run unchanged.
"""

from contextlib import contextmanager
from typing import Optional

try:
    import nvtx
    nvtx_available = True
except ImportError:
    nvtx = None
    nvtx_available = False


# =============================================================================
# Stage Colors
# =============================================================================

NVTX_COLORS = {
    "reset_du": 0x95a5a6,            # Gray
    "volume_integral": 0x2ecc71,     # Green
    "prolong2interfaces": 0x3498db,  # Blue
    "interface_flux": 0x2980b9,      # Dark blue
    "prolong2boundaries": 0xf1c40f,  # Yellow
    "boundary_flux": 0xf39c12,       # Orange
    "prolong2mortars": 0x9b59b6,     # Purple
    "mortar_flux": 0x8e44ad,         # Dark purple
    "surface_integral": 0xe74c3c,    # Red
    "apply_jacobian": 0x1abc9c,      # Teal
    "sources": 0xe67e22,             # Orange
    "memory_transfer": 0x34495e,     # Slate
}

DEFAULT_COLOR = 0x7f8c8d


@contextmanager
def nvtx_range(name: str, color: Optional[int] = None, domain: str = "treedg"):
    """
    Wrap a block in an NVTX range (visible in Nsight Systems).

    Args:
        name: Range name; stage names pick their color from NVTX_COLORS
        color: Explicit color as hex int
        domain: NVTX domain used for grouping
    """
    if nvtx_available:
        if color is None:
            color = NVTX_COLORS.get(name, DEFAULT_COLOR)
        nvtx.push_range(name, color=color, domain=domain)
        try:
            yield
        finally:
            nvtx.pop_range(domain=domain)
    else:
        yield


def nvtx_mark(message: str, color: Optional[int] = None):
    if nvtx_available:
        nvtx.mark(message, color=color or DEFAULT_COLOR)


def get_nvtx_status() -> dict:
    """NVTX availability, reported by the validation CLI."""
    return {
        "available": nvtx_available,
        "version": getattr(nvtx, "__version__", None) if nvtx_available else None,
        "colors_defined": len(NVTX_COLORS)
    }

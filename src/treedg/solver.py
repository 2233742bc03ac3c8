"""
DGSEM solver configuration: flux pairs and volume integral schemes.

All configuration objects are frozen dataclasses holding the njit flux
callables; they are resolved once when a pipeline is built.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Optional, Union

from .shared.basis import LobattoLegendreBasis
from .shared.errors import ConfigurationError
from .shared.topology import MORTAR_TYPES


@dataclass(frozen=True)
class FluxPair:
    """
    Conservative two-point flux and optional nonconservative flux.

    `nonconservative` is None for equations without nonconservative terms;
    the pipelines then compile kernels without that part.
    """
    conservative: Callable
    nonconservative: Optional[Callable] = None

    @classmethod
    def of(cls, flux: Union["FluxPair", tuple, Callable]) -> "FluxPair":
        """Accept a FluxPair, a (conservative, nonconservative) tuple or a single callable."""
        if isinstance(flux, FluxPair):
            return flux
        if isinstance(flux, tuple):
            if len(flux) != 2:
                raise ConfigurationError(f"Flux tuple must be (conservative, nonconservative), got {len(flux)} entries")
            return cls(flux[0], flux[1])
        if not callable(flux):
            raise ConfigurationError(f"Flux must be callable, got {type(flux).__name__}")
        return cls(flux)

    @property
    def has_nonconservative(self) -> bool:
        return self.nonconservative is not None


@dataclass(frozen=True)
class VolumeIntegralWeakForm:
    """Weak-form volume integral with the physical flux (conservative systems only)."""
    name = "weak_form"

    def flux_pairs(self):
        return ()


@dataclass(frozen=True)
class VolumeIntegralFluxDifferencing:
    """Split-form flux differencing with a two-point volume flux."""
    volume_flux: FluxPair
    name = "flux_differencing"

    def __post_init__(self):
        object.__setattr__(self, "volume_flux", FluxPair.of(self.volume_flux))

    def flux_pairs(self):
        return (self.volume_flux,)


@dataclass(frozen=True)
class VolumeIntegralShockCapturingHG:
    """
    Hennemann-Gassner blending of flux differencing and a subcell
    finite-volume scheme.

    Args:
        indicator_variable: njit `variable(u, params)` used by the indicator
        volume_flux_dg: Two-point flux of the high-order part
        volume_flux_fv: Numerical flux between finite-volume subcells
        alpha_max: Upper bound of the blending factor
        alpha_min: Blending factors below this snap to 0, above 1 - alpha_min to 1
    """
    indicator_variable: Callable
    volume_flux_dg: FluxPair
    volume_flux_fv: FluxPair
    alpha_max: float = 0.5
    alpha_min: float = 0.001
    name = "shock_capturing_hg"

    def __post_init__(self):
        object.__setattr__(self, "volume_flux_dg", FluxPair.of(self.volume_flux_dg))
        object.__setattr__(self, "volume_flux_fv", FluxPair.of(self.volume_flux_fv))
        if not callable(self.indicator_variable):
            raise ConfigurationError("indicator_variable must be callable")
        if not 0.0 <= self.alpha_max <= 1.0:
            raise ConfigurationError(f"alpha_max must lie in [0, 1], got {self.alpha_max}")
        if not 0.0 <= self.alpha_min < 0.5:
            raise ConfigurationError(f"alpha_min must lie in [0, 0.5), got {self.alpha_min}")

    def flux_pairs(self):
        return (self.volume_flux_dg, self.volume_flux_fv)


VolumeIntegral = Union[VolumeIntegralWeakForm, VolumeIntegralFluxDifferencing, VolumeIntegralShockCapturingHG]


@dataclass(frozen=True, repr=False)
class DGSEM:
    """
    Discontinuous Galerkin spectral element method on LGL nodes.

    Args:
        polydeg: Polynomial degree N (N + 1 nodes per direction)
        surface_flux: Interface flux, FluxPair or (conservative, nonconservative) tuple
        volume_integral: Volume integral scheme
        mortar: "l2" (L2 projection) or "identity" (equal-resolution faces only)
    """
    polydeg: int
    surface_flux: FluxPair
    volume_integral: Optional[VolumeIntegral] = None
    mortar: str = "l2"
    basis: LobattoLegendreBasis = field(init=False, compare=False)

    def __post_init__(self):
        if self.mortar not in MORTAR_TYPES:
            raise ConfigurationError(f"Unknown mortar type '{self.mortar}', expected one of {MORTAR_TYPES}")
        object.__setattr__(self, "polydeg", int(self.polydeg))
        object.__setattr__(self, "surface_flux", FluxPair.of(self.surface_flux))
        if self.volume_integral is None:
            object.__setattr__(self, "volume_integral", VolumeIntegralWeakForm())
        object.__setattr__(self, "basis", LobattoLegendreBasis(self.polydeg))

    @property
    def n_nodes(self) -> int:
        return self.basis.n_nodes

    def clone(self) -> "DGSEM":
        """Independent copy with its own basis arrays; flux callables are shared (immutable)."""
        return replace(self)

    def __repr__(self) -> str:
        return (f"DGSEM(polydeg={self.polydeg}, volume_integral={self.volume_integral.name}, "
                f"mortar='{self.mortar}')")

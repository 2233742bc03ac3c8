"""
Configuration Loader for the cross-validation suite.

Loads and validates the validation case configuration and generates the
case matrix based on filters.
"""

import json
from pathlib import Path
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from ..shared.compare import DEFAULT_ATOL, DEFAULT_RTOL


CASE_KINDS = ("advection", "euler_weak_blast", "hypdiff_poisson", "swe_convergence", "swe_stone_throw")
VOLUME_INTEGRALS = ("weak_form", "flux_differencing", "shock_capturing")


@dataclass
class CaseConfig:
    """Single validation case: one semidiscretization evaluated by both pipelines."""
    name: str
    kind: str
    ndims: int
    polydeg: int
    initial_refinement_level: int
    volume_integral: str = "weak_form"
    refinement_patches: List[List[List[float]]] = field(default_factory=list)
    time: float = 0.0
    description: str = ""

    @property
    def base_elements(self) -> int:
        """Element count before refinement patches."""
        return 2 ** (self.initial_refinement_level * self.ndims)

    @property
    def display_name(self) -> str:
        return f"{self.name} ({self.ndims}D, N={self.polydeg}, level {self.initial_refinement_level})"


@dataclass
class ExecutionConfig:
    """Execution parameters."""
    runs_per_test: int = 1
    warmup_runs: int = 1
    spare_slots: int = 2
    abort_on_failure: bool = False
    verbose: bool = True


@dataclass
class Tolerances:
    rtol: float = DEFAULT_RTOL
    atol: float = DEFAULT_ATOL


@dataclass
class Filters:
    """Case filtering configuration."""
    cases_enabled: List[str] = field(default_factory=list)
    cases_disabled: List[str] = field(default_factory=list)
    dimensions_enabled: List[int] = field(default_factory=list)
    max_elements: Optional[int] = None


class ConfigLoader:
    """
    Loads and processes the validation configuration.

    The JSON file holds `execution`, `tolerances`, `filters` and a `cases`
    list; every case names one of the known case kinds.
    """

    def __init__(self, config_file: Path):
        """
        Initialize config loader.

        Args:
            config_file: Path to the validation cases JSON file
        """
        self.config_file = Path(config_file)
        if not self.config_file.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_file}")

        with open(self.config_file, 'r') as f:
            self.raw_config = json.load(f)

        self.execution = self._parse_execution()
        self.tolerances = self._parse_tolerances()
        self.filters = self._parse_filters()
        self.cases = self._parse_cases()

    def _parse_execution(self) -> ExecutionConfig:
        """Parse execution configuration."""
        exec_config = self.raw_config.get('execution', {})
        return ExecutionConfig(
            runs_per_test=exec_config.get('runs_per_test', 1),
            warmup_runs=exec_config.get('warmup_runs', 1),
            spare_slots=exec_config.get('spare_slots', 2),
            abort_on_failure=exec_config.get('abort_on_failure', False),
            verbose=exec_config.get('verbose', True)
        )

    def _parse_tolerances(self) -> Tolerances:
        tol = self.raw_config.get('tolerances', {})
        return Tolerances(
            rtol=float(tol.get('rtol', DEFAULT_RTOL)),
            atol=float(tol.get('atol', DEFAULT_ATOL))
        )

    def _parse_filters(self) -> Filters:
        """Parse filter configuration."""
        filters = self.raw_config.get('filters', {})
        cases = filters.get('cases', {})
        dimensions = filters.get('dimensions', {})

        return Filters(
            cases_enabled=cases.get('enabled', []),
            cases_disabled=cases.get('disabled', []),
            dimensions_enabled=dimensions.get('enabled', []),
            max_elements=filters.get('max_elements')
        )

    def _parse_cases(self) -> List[CaseConfig]:
        """Parse case definitions."""
        cases = []
        for c in self.raw_config.get('cases', []):
            case = CaseConfig(
                name=c['name'],
                kind=c['kind'],
                ndims=c['ndims'],
                polydeg=c['polydeg'],
                initial_refinement_level=c['initial_refinement_level'],
                volume_integral=c.get('volume_integral', 'weak_form'),
                refinement_patches=c.get('refinement_patches', []),
                time=c.get('time', 0.0),
                description=c.get('description', '')
            )
            if case.kind not in CASE_KINDS:
                raise ValueError(f"Case '{case.name}': unknown kind '{case.kind}', expected one of {CASE_KINDS}")
            if case.volume_integral not in VOLUME_INTEGRALS:
                raise ValueError(f"Case '{case.name}': unknown volume integral '{case.volume_integral}'")
            cases.append(case)

        names = [c.name for c in cases]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate case names: {duplicates}")
        return cases

    def _is_case_enabled(self, case: CaseConfig) -> bool:
        """Check if case passes filters."""
        if self.filters.cases_enabled:
            if case.name not in self.filters.cases_enabled:
                return False

        if case.name in self.filters.cases_disabled:
            return False

        if self.filters.dimensions_enabled and case.ndims not in self.filters.dimensions_enabled:
            return False

        return True

    def generate_test_matrix(
        self,
        case_filter: Optional[str] = None,
        max_elements_override: Optional[int] = None
    ) -> List[CaseConfig]:
        """
        Generate the case matrix based on configuration and filters.

        Args:
            case_filter: CLI override to run only one named case
            max_elements_override: CLI override for the maximum base element count

        Returns:
            List of CaseConfig objects to run
        """
        effective_max = max_elements_override or self.filters.max_elements

        selected = []
        for case in self.cases:
            if case_filter and case.name != case_filter:
                continue
            if not self._is_case_enabled(case):
                continue
            if effective_max and case.base_elements > effective_max:
                continue
            selected.append(case)
        return selected

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration summary for display."""
        test_matrix = self.generate_test_matrix()

        return {
            'config_file': str(self.config_file),
            'cases_total': len(self.cases),
            'cases_enabled': len(test_matrix),
            'runs_per_test': self.execution.runs_per_test,
            'warmup_runs': self.execution.warmup_runs,
            'spare_slots': self.execution.spare_slots,
            'rtol': self.tolerances.rtol,
            'atol': self.tolerances.atol,
        }

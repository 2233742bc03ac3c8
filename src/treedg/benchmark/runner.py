"""
Cross-validation Runner.

For every case: build the semidiscretization, clone it for the device,
copy U/dU to the device, run each residual stage on both pipelines and
compare the stage's output buffers with the padding-aware rule. Each
comparison becomes one recorded row.
"""

import signal
import time
import traceback
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..cpu import DGResidualCPU
from ..numba_parallel import DGResidualNumba
from ..shared.compare import compare_padded
from ..shared.nvtx_helper import get_nvtx_status
from ..shared.residual_base import STAGES
from ..shared.transfer import copy_to_device, copy_to_host
from .cases import build_semidiscretization
from .config_loader import CaseConfig, ConfigLoader
from .result_recorder import ResultRecorder


# Arguments each stage takes, in order
STAGE_ARGS: Dict[str, Tuple[str, ...]] = {
    "reset_du": ("du",),
    "volume_integral": ("du", "u"),
    "prolong2interfaces": ("u",),
    "interface_flux": (),
    "prolong2boundaries": ("u",),
    "boundary_flux": ("t",),
    "prolong2mortars": ("u",),
    "mortar_flux": (),
    "surface_integral": ("du",),
    "apply_jacobian": ("du",),
    "sources": ("du", "u", "t"),
}

# Buffers written by each stage
STAGE_OUTPUTS: Dict[str, Tuple[str, ...]] = {
    "reset_du": ("du",),
    "volume_integral": ("du", "alpha"),
    "prolong2interfaces": ("interfaces_u",),
    "interface_flux": ("surface_flux_values",),
    "prolong2boundaries": ("boundaries_u",),
    "boundary_flux": ("surface_flux_values",),
    "prolong2mortars": ("mortars_u",),
    "mortar_flux": ("surface_flux_values",),
    "surface_integral": ("du",),
    "apply_jacobian": ("du",),
    "sources": ("du",),
}


@dataclass
class CaseResult:
    """Aggregated result for one case (all runs)."""
    case: CaseConfig
    rows_passed: int
    rows_failed: int
    duration: float
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.rows_failed == 0


class ProgressTracker:
    """Tracks case progress, provides time estimations and counts stage events."""

    def __init__(self, total_cases: int):
        self.total_cases = total_cases
        self.completed_cases = 0
        self.stage_events = 0
        self.current_stage: Optional[str] = None
        self.start_time = time.time()

    def on_stage_start(self, stage: str) -> None:
        self.current_stage = stage

    def on_stage_complete(self, stage: str, duration: float) -> None:
        self.stage_events += 1
        self.current_stage = None

    def complete_case(self) -> None:
        self.completed_cases += 1

    def get_elapsed(self) -> float:
        return time.time() - self.start_time

    def get_eta(self) -> Optional[float]:
        """Estimated time remaining in seconds."""
        if self.completed_cases == 0:
            return None
        avg_per_case = self.get_elapsed() / self.completed_cases
        return avg_per_case * (self.total_cases - self.completed_cases)

    def get_progress_percent(self) -> float:
        if self.total_cases == 0:
            return 100.0
        return 100.0 * self.completed_cases / self.total_cases

    def format_time(self, seconds: Optional[float]) -> str:
        """Format seconds as human-readable string."""
        if seconds is None:
            return "calculating..."

        if seconds < 60:
            return f"{seconds:.0f}s"
        elif seconds < 3600:
            return str(timedelta(seconds=int(seconds)))[2:]
        else:
            return str(timedelta(seconds=int(seconds)))


class ValidationRunner:
    """Stage-by-stage cross-validation of the host and device pipelines."""

    def __init__(self, config: ConfigLoader, recorder: ResultRecorder):
        """
        Initialize validation runner.

        Args:
            config: Configuration loader with the case matrix
            recorder: Result recorder for saving comparison rows
        """
        self.config = config
        self.recorder = recorder
        self._abort_requested = False

    def _signal_handler(self, signum, frame):
        """First Ctrl+C stops after the current case, the second exits."""
        if self._abort_requested:
            print("\n\n[!] Force exit requested.")
            raise KeyboardInterrupt
        print("\n\n[!] Interrupt received. Will stop after current case completes.")
        print("    Press Ctrl+C again to force exit.")
        self._abort_requested = True

    # =========================================================================
    # Single case
    # =========================================================================

    @staticmethod
    def _invoke(pipeline, stage: str, du, u, t: float) -> None:
        values = {"du": du, "u": u, "t": t}
        getattr(pipeline, stage)(*(values[name] for name in STAGE_ARGS[stage]))

    def _compare_stage(self, stage, host, device, du_h, du_d, u_d, written) -> List[Dict]:
        tol = self.config.tolerances
        rows = []
        for buffer in STAGE_OUTPUTS[stage]:
            if buffer == "du":
                du_back, _ = copy_to_host(du_d, u_d)
                stats = compare_padded(du_back, du_h, rtol=tol.rtol, atol=tol.atol)
            elif buffer == "alpha":
                if host.cache.alpha is None:
                    continue
                stats = compare_padded(device.cache.alpha, host.cache.alpha, rtol=tol.rtol, atol=tol.atol)
            elif buffer == "surface_flux_values":
                # faces written so far by the flux stages of this evaluation
                written |= host._face_masks[stage][:, :, 0, 0]
                sel = np.broadcast_to(written[:, :, None, None], host.cache.surface_flux_values.shape)
                stats = compare_padded(device.cache.surface_flux_values[sel], host.cache.surface_flux_values[sel],
                                       rtol=tol.rtol, atol=tol.atol)
            else:
                stats = compare_padded(getattr(device.cache, buffer), getattr(host.cache, buffer),
                                       valid=host.cache.valid_mask(buffer), rtol=tol.rtol, atol=tol.atol)
            stats["buffer"] = buffer
            rows.append(stats)
        return rows

    def _record(self, case: CaseConfig, run: int, stage: str, stats: Dict, host_s: float, device_s: float) -> None:
        self.recorder.add_record(
            case=case.name,
            run=run,
            stage=stage,
            buffer=stats["buffer"],
            max_abs=stats["max_abs"],
            max_rel=stats["max_rel"],
            padded=stats.get("padded", 0),
            status=stats["status"],
            host_seconds=host_s,
            device_seconds=device_s,
        )

    def _run_case(self, case: CaseConfig, progress: ProgressTracker) -> CaseResult:
        execution = self.config.execution
        start = time.time()
        passed = failed = 0

        try:
            semi = build_semidiscretization(case)
            host = DGResidualCPU(semi, spare_slots=execution.spare_slots)
            device = DGResidualNumba(semi.clone(), spare_slots=execution.spare_slots,
                                     progress_callback=progress)

            if execution.verbose:
                print(f"          {semi}")

            for w in range(execution.warmup_runs):
                device.warmup()

            t = case.time
            u = semi.compute_coefficients(t)
            du_h = semi.allocate()

            for run in range(1, execution.runs_per_test + 1):
                du_d, u_d = copy_to_device(du_h, u)
                written = np.zeros((semi.topology.n_elements, semi.topology.n_faces), dtype=bool)

                for stage in STAGES:
                    self._invoke(host, stage, du_h, u, t)
                    self._invoke(device, stage, du_d, u_d, t)
                    for stats in self._compare_stage(stage, host, device, du_h, du_d, u_d, written):
                        self._record(case, run, stage, stats,
                                     host.timing_metrics[stage], device.timing_metrics[stage])
                        if stats["status"]:
                            passed += 1
                        else:
                            failed += 1
                            print(f"          [!] run {run} {stage}/{stats['buffer']}: "
                                  f"max abs {stats['max_abs']:.3e}, max rel {stats['max_rel']:.3e} FAIL")

                host.rhs(du_h, u, t)
                device.rhs(du_d, u_d, t)
                du_back, _ = copy_to_host(du_d, u_d)
                stats = compare_padded(du_back, du_h, rtol=self.config.tolerances.rtol,
                                       atol=self.config.tolerances.atol)
                stats["buffer"] = "du"
                self._record(case, run, "rhs", stats, host.timing_metrics["rhs"], device.timing_metrics["rhs"])
                if stats["status"]:
                    passed += 1
                else:
                    failed += 1

                if execution.verbose:
                    print(f"          Run {run}/{execution.runs_per_test}: "
                          f"host {host.timing_metrics['rhs']:.4f}s | device {device.timing_metrics['rhs']:.4f}s "
                          f"| {'OK' if failed == 0 else 'FAIL'}")

        except Exception as e:
            traceback.print_exc()
            return CaseResult(case, passed, failed, time.time() - start, error=str(e))

        return CaseResult(case, passed, failed, time.time() - start)

    # =========================================================================
    # Suite
    # =========================================================================

    def run(
        self,
        case_filter: Optional[str] = None,
        max_elements: Optional[int] = None,
        dry_run: bool = False
    ) -> Tuple[List[CaseResult], Optional[str]]:
        """Execute the validation suite."""
        cases = self.config.generate_test_matrix(case_filter=case_filter, max_elements_override=max_elements)
        if not cases:
            return [], "No cases match the specified filters"

        self._print_header(cases, dry_run)
        if dry_run:
            self._print_test_matrix(cases)
            return [], None

        progress = ProgressTracker(total_cases=len(cases))
        results: List[CaseResult] = []
        width = len(str(len(cases)))

        previous_handler = signal.signal(signal.SIGINT, self._signal_handler)
        try:
            for i, case in enumerate(cases, 1):
                if self._abort_requested:
                    break

                print(f"\n[{i:>{width}}/{len(cases)}] {case.display_name}")
                result = self._run_case(case, progress)
                results.append(result)
                progress.complete_case()

                status = "PASS" if result.success else "FAIL"
                print(f"          -> {result.rows_passed} passed, {result.rows_failed} failed "
                      f"in {result.duration:.2f}s [{status}] | Progress: {progress.get_progress_percent():.1f}% "
                      f"| ETA: {progress.format_time(progress.get_eta())}")

                if not result.success and self.config.execution.abort_on_failure:
                    self.recorder.save()
                    return results, result.error or f"Case {case.name} failed"
        finally:
            signal.signal(signal.SIGINT, previous_handler)

        self.recorder.save()
        self._print_summary(results, progress)
        return results, None

    def _print_header(self, cases: List[CaseConfig], dry_run: bool) -> None:
        line = "=" * 79
        print(f"\n{line}")
        print(" treedg - Host/Device Residual Cross-Validation")
        print(line)
        print(f" Server: {self.recorder.get_server_display_name()} ({self.recorder.server_hash})")
        cfg = self.recorder.server_config
        print(f" CPU: {cfg.get('cpu_model', 'Unknown')} ({cfg.get('cpu_cores', 0)} cores, "
              f"{cfg.get('numba_threads', 0)} Numba threads)")
        print()
        print(f" Config: {self.config.config_file.name}")
        print(f" Cases: {len(cases)} | Runs per case: {self.config.execution.runs_per_test} "
              f"(+ {self.config.execution.warmup_runs} warmup)")
        print(f" Tolerances: rtol={self.config.tolerances.rtol:.2e}, atol={self.config.tolerances.atol:.2e}")
        nvtx_status = get_nvtx_status()
        nvtx_label = f"available ({nvtx_status['version']})" if nvtx_status['available'] else "not installed"
        print(f" NVTX: {nvtx_label}")
        if dry_run:
            print(f"\n [DRY RUN - No cases will be executed]")
        print(line)

    def _print_test_matrix(self, cases: List[CaseConfig]) -> None:
        print("\nCase Matrix:")
        print("-" * 79)
        for i, case in enumerate(cases, 1):
            print(f"    [{i:>3}] {case.name:<32} | {case.kind:<18} | {case.volume_integral}")
        print("-" * 79)
        print(f"Total: {len(cases)} cases")

    def _print_summary(self, results: List[CaseResult], progress: ProgressTracker) -> None:
        line = "=" * 79
        failed = [r for r in results if not r.success]
        print(f"\n{line}")
        print(" VALIDATION COMPLETE" if not failed else " VALIDATION FAILED")
        print(line)
        print(f" Total time: {progress.format_time(progress.get_elapsed())}")
        print(f" Cases: {len(results)} ({len(failed)} failed)")
        print(f" Records saved: {self.recorder.get_record_count()}")
        print(f" Output files: {self.recorder.csv_file.name}, {self.recorder.data_file.name}")
        for r in failed:
            print(f"   - {r.case.name}: {r.error or f'{r.rows_failed} comparisons failed'}")

        failed_rows = self.recorder.failed_records()
        if not failed_rows.empty:
            print(" Failing stages:")
            for (stage, buffer), group in failed_rows.groupby(["stage", "buffer"], sort=False):
                print(f"   {stage:<20} {buffer:<16} {len(group):>4} rows, max_abs={group['max_abs'].max():.3e}")
        print(line)

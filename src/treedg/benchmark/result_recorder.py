"""
Result Recorder for the cross-validation suite.

Collects one row per (case, run, stage) comparison and writes them as CSV
and JSON through pandas, together with the machine description.

File naming convention: validation_{server_hash}.csv / .json
"""

import hashlib
import json
import os
import platform
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

import numba
import pandas as pd


RECORD_COLUMNS = [
    "case", "run", "stage", "buffer", "max_abs", "max_rel", "padded",
    "status", "host_seconds", "device_seconds",
]


def detect_cpu_model() -> str:
    """Detect CPU model (Linux /proc/cpuinfo, platform fallback)."""
    try:
        with open('/proc/cpuinfo', 'r') as f:
            for line in f:
                if line.startswith('model name'):
                    return line.split(':', 1)[1].strip()
    except OSError:
        pass
    return platform.processor() or "Unknown"


def detect_server_hardware() -> Dict[str, Any]:
    """Detect the host configuration relevant to the timings."""
    return {
        "hostname": platform.node(),
        "os": f"{platform.system()} {platform.release()}",
        "architecture": platform.machine(),
        "python_version": platform.python_version(),
        "cpu_model": detect_cpu_model(),
        "cpu_cores": os.cpu_count() or 0,
        "numba_version": numba.__version__,
        "numba_threads": numba.config.NUMBA_NUM_THREADS,
    }


def generate_server_hash(config: Dict[str, Any]) -> str:
    hash_keys = ["hostname", "cpu_model", "cpu_cores", "numba_threads"]
    hash_input = "|".join(str(config.get(k, "")) for k in sorted(hash_keys))
    return hashlib.sha256(hash_input.encode()).hexdigest()[:12]


class ResultRecorder:
    """
    Records validation rows to CSV and JSON.

    Rows accumulate in memory; `save()` rewrites both files atomically.
    """

    VERSION = "1.0"

    def __init__(self, data_dir: Path):
        """
        Initialize result recorder.

        Args:
            data_dir: Directory for the result files
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.server_config = detect_server_hardware()
        self.server_hash = generate_server_hash(self.server_config)

        self.data_file = self.data_dir / f"validation_{self.server_hash}.json"
        self.csv_file = self.data_dir / f"validation_{self.server_hash}.csv"

        self.records: List[Dict[str, Any]] = []

    def add_record(self, **row: Any) -> Dict[str, Any]:
        """Add one comparison row; missing columns are stored as None."""
        unknown = set(row) - set(RECORD_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown record columns: {sorted(unknown)}")
        record = {column: row.get(column) for column in RECORD_COLUMNS}
        self.records.append(record)
        return record

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.records, columns=RECORD_COLUMNS)

    def save(self) -> None:
        """Write all rows to CSV and JSON."""
        df = self.to_dataframe()

        temp_csv = self.csv_file.with_suffix('.csv.tmp')
        df.to_csv(temp_csv, index=False)
        temp_csv.replace(self.csv_file)

        data = {
            "version": self.VERSION,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "server_hash": self.server_hash,
            "server_config": self.server_config,
            "records": json.loads(df.to_json(orient="records")),
        }
        temp_file = self.data_file.with_suffix('.json.tmp')
        with open(temp_file, 'w') as f:
            json.dump(data, f, indent=2)
        temp_file.replace(self.data_file)

    def clear_records(self) -> int:
        """Clear all validation records and remove the result files."""
        count = len(self.records)
        self.records = []
        for path in (self.data_file, self.csv_file):
            if path.exists():
                path.unlink()
        return count

    def get_record_count(self) -> int:
        return len(self.records)

    def failed_records(self) -> pd.DataFrame:
        df = self.to_dataframe()
        return df[~df["status"].astype(bool)]

    def get_server_display_name(self) -> str:
        return self.server_config.get('hostname', 'UNKNOWN').upper()

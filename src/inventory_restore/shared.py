"""inventory_restore.shared

Shared utilities used by the restore pipeline and the CLI.
Includes the exception taxonomy, RejectWriter, RestoreCounters, and
report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import psycopg


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class StoreUnavailableError(Exception):
    """Raised when no usable store connection is available for an operation."""


class MalformedBatchError(ValueError):
    """Raised when a restore request does not have the expected shape."""


# Retried by ResilientExecutor.
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    StoreUnavailableError,
)

# Anything the store layer can raise once retries are exhausted.
STORE_ERRORS: tuple[type[BaseException], ...] = (psycopg.Error, StoreUnavailableError)


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

REJECT_FIELDNAMES = [
    "legacy_id",
    "productName",
    "branchName",
    "expireDate",
    "_record_json",
    "_reject_reason",
]


class RejectWriter:
    """Lazy-open CSV writer for rejected records.

    Every row has the same columns whatever the record looked like: a few
    identifying fields for grepping, plus the whole record as JSON.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row: Any, reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._fh, fieldnames=REJECT_FIELDNAMES)
            self._writer.writeheader()
        fields = row if isinstance(row, dict) else {}
        self._writer.writerow({
            "legacy_id": fields.get("id"),
            "productName": fields.get("productName"),
            "branchName": fields.get("branchName"),
            "expireDate": fields.get("expireDate"),
            "_record_json": json.dumps(row, default=str),
            "_reject_reason": reason,
        })
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# RestoreCounters
# ---------------------------------------------------------------------------

@dataclass
class RestoreCounters:
    records_read: int = 0
    rejected_invalid: int = 0
    skipped_existing_legacy: int = 0
    skipped_existing_content: int = 0
    skipped_duplicate_in_batch: int = 0
    imported: int = 0
    insert_failures: int = 0
    branches_submitted: int = 0
    bulk_fallbacks: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.records_read - self.imported

    def merge(self, other: RestoreCounters) -> None:
        """Add other's counts into self (used to aggregate per-batch runs)."""
        for name, value in other.__dict__.items():
            if name == "warnings":
                self.warnings.extend(value)
            else:
                setattr(self, name, getattr(self, name) + value)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["skipped"] = self.skipped
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: dict[str, Any],
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path

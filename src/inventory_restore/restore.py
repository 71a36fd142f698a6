"""inventory_restore.restore

restore_batch: one bounded, in-memory batch of legacy backup records → live store.

Pipeline (per invocation):
  Received → Provisioning → Deduplicating → Committing(bulk)
           → [Committing(sequential) on bulk failure] → Reported

  - Per-record problems never raise; they are counted as skipped.
  - Only a malformed request (not a list of records, or a non-string or
    blank override branch) fails the call.
  - Invocations are serialized process-wide; a partial unique index on the
    legacy marker guards against overlapping restores in other processes.
  - Nothing is persisted about the run itself: re-submitting a batch after a
    crash re-detects already-written rows and skips them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from inventory_restore.commit import INSERT_FAILED, BatchCommitter
from inventory_restore.config import DEFAULT_SETTINGS, RestoreSettings
from inventory_restore.connection import ResilientExecutor
from inventory_restore.dedup import (
    CONTENT_KEY_EXISTS,
    DUPLICATE_IN_BATCH,
    LEGACY_ID_EXISTS,
    filter_batch,
    parse_batch,
)
from inventory_restore.normalize import trim
from inventory_restore.provision import ensure_branches, referenced_branch_names
from inventory_restore.shared import MalformedBatchError, RejectWriter, RestoreCounters
from inventory_restore.status import status_deriver

log = logging.getLogger(__name__)

_RESTORE_LOCK = threading.Lock()


@dataclass(frozen=True)
class RestoreSummary:
    imported: int
    skipped: int
    total_processed: int

    def to_dict(self) -> dict[str, int]:
        return {
            "imported": self.imported,
            "skipped": self.skipped,
            "totalProcessed": self.total_processed,
        }


def _validate_request(records: Any, override_branch: Any) -> str | None:
    if not isinstance(records, (list, tuple)):
        raise MalformedBatchError("invalid payload: products array required")
    if override_branch is None:
        return None
    if not isinstance(override_branch, str):
        raise MalformedBatchError("invalid payload: overrideBranch must be a string")
    override = trim(override_branch)
    if override is None:
        raise MalformedBatchError("invalid payload: overrideBranch must not be blank")
    return override


def restore_batch(
    executor: ResilientExecutor,
    records: Any,
    override_branch: str | None = None,
    *,
    settings: RestoreSettings = DEFAULT_SETTINGS,
    now: datetime | None = None,
    dry_run: bool = False,
    counters: RestoreCounters | None = None,
    rejects: RejectWriter | None = None,
) -> RestoreSummary:
    """Restore one batch of legacy records; returns imported/skipped/total.

    With dry_run the store is read for dedup but nothing is written;
    ``imported`` then counts the records that would have been written.

    Raises:
        MalformedBatchError: records is not a list, or override_branch is not a
            string or is blank.
    """
    override = _validate_request(records, override_branch)
    counters = counters if counters is not None else RestoreCounters()
    now = now or datetime.now(timezone.utc)
    derive = status_deriver(settings.status_scheme)

    with _RESTORE_LOCK:
        log.info(
            "Processing restoration batch: %d items. Override branch: %s",
            len(records), override or "None",
        )
        counters.records_read += len(records)

        candidates, invalid = parse_batch(records, override, settings.default_unit)
        counters.rejected_invalid += len(invalid)

        if not dry_run:
            counters.branches_submitted += ensure_branches(
                executor,
                referenced_branch_names(candidates, override),
                warnings=counters.warnings,
            )

        dedup = filter_batch(executor, candidates, derive, now)
        if dedup.lookup_failed:
            counters.warnings.append("duplicate check failed; store keys not consulted")
        counters.skipped_existing_legacy += dedup.count(LEGACY_ID_EXISTS)
        counters.skipped_existing_content += dedup.count(CONTENT_KEY_EXISTS)
        counters.skipped_duplicate_in_batch += dedup.count(DUPLICATE_IN_BATCH)

        if dry_run:
            imported = len(dedup.accepted)
        else:
            committed = BatchCommitter(executor).commit(dedup.accepted)
            imported = committed.imported
            counters.insert_failures += len(committed.failed)
            if committed.fell_back:
                counters.bulk_fallbacks += 1
            if rejects is not None:
                for record in committed.failed:
                    rejects.write(
                        record.raw if record.raw is not None else record.as_params(),
                        INSERT_FAILED,
                    )

        counters.imported += imported

        if rejects is not None:
            for raw, reason in invalid + dedup.rejected:
                rejects.write(raw, reason)

    summary = RestoreSummary(
        imported=imported,
        skipped=len(records) - imported,
        total_processed=len(records),
    )
    log.info(
        "Batch done: imported=%d skipped=%d total=%d",
        summary.imported, summary.skipped, summary.total_processed,
    )
    return summary

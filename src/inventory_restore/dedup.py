"""inventory_restore.dedup

Batch deduplication against the store and within the batch.

Two identity keys per candidate:
  - legacy marker  "Imported from backup. Old ID: {id}"  (only when id present)
  - content key    product|barcode|branch|expiry-midnight (always)

Algorithm:
  1. Parse every raw record; structurally invalid ones are rejected.
  2. One store round-trip fetches every row whose notes equal a candidate
     marker OR whose expiry falls on a candidate's UTC day.  Name and branch
     are not filtered in SQL: btrim/lower there do not agree with Python's
     whitespace and Unicode case rules.
  3. Existing markers and content keys are recomputed from those rows with
     the same normalization used for candidates.
  4. Candidates are walked in input order: skip on existing marker (legacy
     identity wins even if content differs), existing content key, or a
     content key / marker already accepted earlier in this batch.
  5. Survivors are materialized with a derived status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

import psycopg

from inventory_restore.connection import ResilientExecutor
from inventory_restore.records import (
    InventoryRecord,
    LegacyRecord,
    content_key,
    materialize,
    parse_legacy_record,
)
from inventory_restore.shared import STORE_ERRORS

log = logging.getLogger(__name__)

LEGACY_ID_EXISTS = "legacy_id_exists"
CONTENT_KEY_EXISTS = "content_key_exists"
DUPLICATE_IN_BATCH = "duplicate_in_batch"

_EXISTING_MATCHES_SQL = """
    SELECT product_name, barcode, branch, exp_date, notes
    FROM inventory_item
    WHERE notes = ANY(%(markers)s::text[])
       OR date_trunc('day', exp_date AT TIME ZONE 'UTC') = ANY(%(exp_days)s::timestamp[])
"""


@dataclass
class ExistingKeys:
    markers: set[str] = field(default_factory=set)
    content_keys: set[str] = field(default_factory=set)


@dataclass
class DedupResult:
    accepted: list[InventoryRecord] = field(default_factory=list)
    # (raw record, reason) for everything not accepted
    rejected: list[tuple[Any, str]] = field(default_factory=list)
    lookup_failed: bool = False

    def count(self, reason: str) -> int:
        return sum(1 for _, r in self.rejected if r == reason)


# ---------------------------------------------------------------------------
# Store lookup
# ---------------------------------------------------------------------------

def _lookup_params(candidates: list[LegacyRecord]) -> dict[str, list[Any]]:
    return {
        "markers": sorted({c.legacy_marker for c in candidates if c.legacy_marker}),
        # naive UTC midnights, compared against exp_date truncated in UTC
        "exp_days": sorted({c.exp_date.replace(tzinfo=None) for c in candidates}),
    }


def fetch_existing_keys(
    conn: psycopg.Connection,
    candidates: list[LegacyRecord],
) -> ExistingKeys:
    """One query for every stored row that could collide with a candidate."""
    keys = ExistingKeys()
    if not candidates:
        return keys
    rows = conn.execute(_EXISTING_MATCHES_SQL, _lookup_params(candidates)).fetchall()
    for product_name, barcode, branch, exp_date, notes in rows:
        if notes:
            keys.markers.add(notes)
        keys.content_keys.add(content_key(product_name, barcode, branch, exp_date))
    return keys


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------

def parse_batch(
    records: Iterable[Any],
    override_branch: str | None,
    default_unit: str,
) -> tuple[list[LegacyRecord], list[tuple[Any, str]]]:
    candidates: list[LegacyRecord] = []
    rejected: list[tuple[Any, str]] = []
    for raw in records:
        record, reason = parse_legacy_record(raw, override_branch, default_unit)
        if record is None:
            rejected.append((raw, reason))
        else:
            candidates.append(record)
    return candidates, rejected


def select_new(
    candidates: list[LegacyRecord],
    existing: ExistingKeys,
) -> tuple[list[LegacyRecord], list[tuple[Any, str]]]:
    """Pure in-memory filter: returns (accepted, rejected) in input order."""
    seen_keys: set[str] = set()
    seen_markers: set[str] = set()
    accepted: list[LegacyRecord] = []
    rejected: list[tuple[Any, str]] = []
    for cand in candidates:
        marker = cand.legacy_marker
        key = cand.content_key
        if marker and marker in existing.markers:
            rejected.append((cand.raw, LEGACY_ID_EXISTS))
        elif key in existing.content_keys:
            rejected.append((cand.raw, CONTENT_KEY_EXISTS))
        elif key in seen_keys or (marker and marker in seen_markers):
            rejected.append((cand.raw, DUPLICATE_IN_BATCH))
        else:
            seen_keys.add(key)
            if marker:
                seen_markers.add(marker)
            accepted.append(cand)
    return accepted, rejected


def filter_batch(
    executor: ResilientExecutor,
    candidates: list[LegacyRecord],
    derive: Callable[[datetime, datetime], str],
    now: datetime,
) -> DedupResult:
    """Return the materialized subset of candidates that is new to the store."""
    result = DedupResult()

    existing = ExistingKeys()
    if candidates:
        try:
            existing = executor.run(lambda conn: fetch_existing_keys(conn, candidates))
        except STORE_ERRORS as exc:
            log.warning("Duplicate check failed; continuing without store keys: %s", exc)
            result.lookup_failed = True

    accepted, result.rejected = select_new(candidates, existing)
    result.accepted = [materialize(c, derive(c.exp_date, now)) for c in accepted]
    return result

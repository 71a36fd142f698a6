"""inventory_restore.provision

Branch (reference data) provisioning.

ensure_branches: before any inventory_item referencing a branch is written,
  submit every referenced branch name as one bulk insert that skips names
  already present (case-insensitive via the lower(btrim(name)) unique index).
  Idempotent and safe under concurrent invocation.  Failure is non-fatal.

sync_branches: create branches for every distinct branch name already used by
  inventory_item rows that has no matching branch row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

import psycopg

from inventory_restore.connection import ResilientExecutor
from inventory_restore.normalize import trim_cap
from inventory_restore.records import BRANCH_MAX, LegacyRecord
from inventory_restore.shared import STORE_ERRORS

log = logging.getLogger(__name__)

BRANCH_STATUS_ACTIVE = "Active"
DEFAULT_MANAGER = "Unassigned"
RESTORE_ADDRESS = "Restored from Backup"
SYNC_ADDRESS = "Auto-created from Inventory"

_INSERT_BRANCH_SQL = """
    INSERT INTO branch (name, status, manager, address)
    VALUES (%s, %s, %s, %s)
    ON CONFLICT DO NOTHING
"""


@dataclass
class BranchSyncResult:
    created: int = 0
    names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"created": self.created, "names": self.names}


# ---------------------------------------------------------------------------
# Name collection
# ---------------------------------------------------------------------------

def _unique_names(names: Iterable[Any]) -> list[str]:
    """Trimmed, capped, non-empty names; first spelling wins per lower-case key."""
    seen: set[str] = set()
    out: list[str] = []
    for name in names:
        v = trim_cap(name, BRANCH_MAX) if isinstance(name, str) else None
        if not v or v.lower() in seen:
            continue
        seen.add(v.lower())
        out.append(v)
    return out


def referenced_branch_names(
    records: Iterable[LegacyRecord],
    override_branch: str | None = None,
) -> list[str]:
    """Branch names a batch will write: the override alone, else each record's branch."""
    if override_branch:
        return _unique_names([override_branch])
    return _unique_names(r.branch for r in records)


def _insert_branches(
    conn: psycopg.Connection,
    names: list[str],
    address: str,
) -> None:
    with conn.cursor() as cur:
        cur.executemany(
            _INSERT_BRANCH_SQL,
            [(name, BRANCH_STATUS_ACTIVE, DEFAULT_MANAGER, address) for name in names],
        )


# ---------------------------------------------------------------------------
# ensure_branches
# ---------------------------------------------------------------------------

def ensure_branches(
    executor: ResilientExecutor,
    names: Iterable[Any],
    address: str = RESTORE_ADDRESS,
    warnings: list[str] | None = None,
) -> int:
    """Create any missing branches.  Returns the number of names submitted.

    A store failure is logged (and appended to warnings) but never raised: the
    branch may already exist, and a real problem resurfaces at insert time.
    """
    unique = _unique_names(names)
    if not unique:
        return 0

    log.info("Ensuring %d branches exist: %s", len(unique), ", ".join(unique))
    try:
        executor.run(lambda conn: _insert_branches(conn, unique, address))
    except STORE_ERRORS as exc:
        log.warning("Branch provisioning failed (non-fatal): %s", exc)
        if warnings is not None:
            warnings.append(f"branch provisioning failed: {exc}")
    return len(unique)


# ---------------------------------------------------------------------------
# sync_branches
# ---------------------------------------------------------------------------

def _missing_branch_names(conn: psycopg.Connection) -> list[str]:
    inventory_names = [
        row[0]
        for row in conn.execute(
            """
            SELECT DISTINCT btrim(branch)
            FROM inventory_item
            WHERE branch IS NOT NULL AND btrim(branch) <> ''
            ORDER BY 1
            """
        ).fetchall()
    ]
    existing = {
        row[0].strip().lower()
        for row in conn.execute("SELECT name FROM branch").fetchall()
    }
    return [n for n in _unique_names(inventory_names) if n.lower() not in existing]


def sync_branches(executor: ResilientExecutor) -> BranchSyncResult:
    """Create a branch row for every inventory branch name that has none."""
    missing = executor.run(_missing_branch_names)
    if not missing:
        log.info("All branches are already synced")
        return BranchSyncResult()

    executor.run(lambda conn: _insert_branches(conn, missing, SYNC_ADDRESS))
    log.info("Synced %d branches: %s", len(missing), ", ".join(missing))
    return BranchSyncResult(created=len(missing), names=missing)

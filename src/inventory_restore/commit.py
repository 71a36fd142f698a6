"""inventory_restore.commit

Batch persistence with bulk → sequential fallback.

BatchCommitter tries its strategies in order.  The first strategy that
completes decides the outcome; a strategy signals "not applicable" by raising
a store error, which moves on to the next one.

  BulkInsert       : one executemany in one transaction; all or nothing.
  SequentialInsert : one transaction per record; a rejected record is
                     logged and dropped, the loop continues.  Records are
                     written one after another, never concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol, Sequence

import psycopg

from inventory_restore.connection import ResilientExecutor
from inventory_restore.records import InventoryRecord
from inventory_restore.shared import STORE_ERRORS

log = logging.getLogger(__name__)

INSERT_FAILED = "insert_failed"

_INSERT_ITEM_SQL = """
    INSERT INTO inventory_item
      (product_name, barcode, quantity, unit, mfg_date, exp_date,
       branch, status, notes, created_at)
    VALUES
      (%(product_name)s, %(barcode)s, %(quantity)s, %(unit)s, %(mfg_date)s,
       %(exp_date)s, %(branch)s, %(status)s, %(notes)s,
       COALESCE(%(created_at)s::timestamptz, now()))
"""


@dataclass
class CommitResult:
    imported: int = 0
    strategy: str | None = None
    failed: list[InventoryRecord] = field(default_factory=list)
    fell_back: bool = False


class CommitStrategy(Protocol):
    name: str

    def commit(self, records: Sequence[InventoryRecord]) -> CommitResult: ...


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def insert_items(conn: psycopg.Connection, records: Sequence[InventoryRecord]) -> None:
    with conn.cursor() as cur:
        cur.executemany(_INSERT_ITEM_SQL, [r.as_params() for r in records])


def insert_item(conn: psycopg.Connection, record: InventoryRecord) -> None:
    conn.execute(_INSERT_ITEM_SQL, record.as_params())


class BulkInsert:
    name = "bulk"

    def __init__(self, executor: ResilientExecutor) -> None:
        self._executor = executor

    def commit(self, records: Sequence[InventoryRecord]) -> CommitResult:
        self._executor.run(lambda conn: insert_items(conn, records))
        return CommitResult(imported=len(records), strategy=self.name)


class SequentialInsert:
    name = "sequential"

    def __init__(self, executor: ResilientExecutor) -> None:
        self._executor = executor

    def commit(self, records: Sequence[InventoryRecord]) -> CommitResult:
        result = CommitResult(strategy=self.name)
        for record in records:
            try:
                self._executor.run(lambda conn, r=record: insert_item(conn, r))
            except STORE_ERRORS as exc:
                log.error("Individual insert failed for %s: %s", record.product_name, exc)
                result.failed.append(record)
                continue
            result.imported += 1
        return result


# ---------------------------------------------------------------------------
# Committer
# ---------------------------------------------------------------------------

class BatchCommitter:
    """Persist records with the first strategy that does not fail outright."""

    def __init__(
        self,
        executor: ResilientExecutor,
        strategies: Sequence[CommitStrategy] | None = None,
    ) -> None:
        self._strategies = list(strategies) if strategies is not None else [
            BulkInsert(executor),
            SequentialInsert(executor),
        ]

    def commit(self, records: Sequence[InventoryRecord]) -> CommitResult:
        if not records:
            return CommitResult()

        last_exc: BaseException | None = None
        for idx, strategy in enumerate(self._strategies):
            try:
                result = strategy.commit(records)
            except STORE_ERRORS as exc:
                last_exc = exc
                log.warning(
                    "%s commit of %d records failed, falling back: %s",
                    strategy.name, len(records), exc,
                )
                continue
            result.fell_back = idx > 0
            log.info(
                "Committed %d/%d records via %s insert",
                result.imported, len(records), strategy.name,
            )
            return result

        log.error("All commit strategies failed: %s", last_exc)
        return CommitResult(failed=list(records), fell_back=True)

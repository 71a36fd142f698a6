"""inventory_restore.cli

Unified CLI entrypoint for inventory backup restore.

Modes (--mode):
  restore_backup : restore a JSON inventory backup file (default)
  sync_branches  : create branch rows for branch names used by inventory items
  health_check   : connect and print the connection health snapshot

Usage (restore_backup):
    python -m inventory_restore.cli \\
        --mode restore_backup \\
        --db-dsn "$DB_DSN" \\
        --backup-path "backups/inventory_backup_20260117_120945.json" \\
        --config-path config/restore.yml

Usage (sync_branches):
    python -m inventory_restore.cli --mode sync_branches --db-dsn "$DB_DSN"
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import click

from inventory_restore.config import RestoreSettings, SettingsValidationError, load_settings
from inventory_restore.connection import ConnectionManager, ResilientExecutor
from inventory_restore.provision import sync_branches
from inventory_restore.restore import restore_batch
from inventory_restore.shared import STORE_ERRORS, RejectWriter, RestoreCounters, write_run_report


# ---------------------------------------------------------------------------
# Backup file loading
# ---------------------------------------------------------------------------

def load_backup(path: Path) -> list[Any]:
    """Return the product list from a backup document or bare JSON list.

    Raises ValueError for anything that is not a backup.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("products")
    if not isinstance(data, list):
        raise ValueError("invalid backup format: products array required")
    return data


def _chunks(items: list[Any], size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ---------------------------------------------------------------------------
# Mode runners
# ---------------------------------------------------------------------------

def _run_restore_backup(
    run_id: str,
    executor: ResilientExecutor,
    settings: RestoreSettings,
    backup_path: str,
    override_branch: str | None,
    dry_run: bool,
    counters: RestoreCounters,
    rejects: RejectWriter,
) -> None:
    try:
        products = load_backup(Path(backup_path))
    except (OSError, ValueError) as exc:
        click.echo(f"[{run_id}] FATAL: cannot read backup {backup_path}: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"[{run_id}] Pre-scan: {len(products)} products, "
        f"batch size {settings.batch_size}"
    )
    for idx, batch in enumerate(_chunks(products, settings.batch_size), start=1):
        summary = restore_batch(
            executor,
            batch,
            override_branch,
            settings=settings,
            dry_run=dry_run,
            counters=counters,
            rejects=rejects,
        )
        click.echo(
            f"[{run_id}] batch {idx}: imported={summary.imported} "
            f"skipped={summary.skipped} total={summary.total_processed}"
        )


# ---------------------------------------------------------------------------
# Unified CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="restore_backup",
    type=click.Choice(["restore_backup", "sync_branches", "health_check"]),
    show_default=True,
    help="Run mode",
)
@click.option("--db-dsn", required=True, help="PostgreSQL DSN")
@click.option("--config-path", default=None, type=click.Path(), help="YAML settings file")
# restore_backup flags
@click.option("--backup-path", default=None, type=click.Path(), help="[restore_backup] Backup JSON file")
@click.option("--override-branch", default=None, help="[restore_backup] Assign every record to this branch")
@click.option("--dry-run", is_flag=True, default=False, help="[restore_backup] Dedup only; write nothing")
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/restore_rejects.csv",
    show_default=True,
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
# shared flags
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    db_dsn: str,
    config_path: str | None,
    backup_path: str | None,
    override_branch: str | None,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Inventory backup restore CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except (OSError, SettingsValidationError) as exc:
        click.echo(f"[{run_id}] FATAL: invalid settings: {exc}", err=True)
        sys.exit(1)

    if mode == "restore_backup" and not backup_path:
        click.echo(f"[{run_id}] FATAL: --backup-path is required for restore_backup", err=True)
        sys.exit(1)
    if override_branch is not None and not override_branch.strip():
        click.echo(f"[{run_id}] FATAL: --override-branch must not be blank", err=True)
        sys.exit(1)

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    manager = ConnectionManager(db_dsn, settings)
    executor = ResilientExecutor(manager, settings)
    try:
        if mode == "health_check":
            manager.ensure_ready()
            snapshot = manager.health_snapshot()
            click.echo(json.dumps(snapshot))
            if not snapshot["connected"]:
                sys.exit(1)
            return

        if not manager.ensure_ready():
            click.echo(
                f"[{run_id}] FATAL: store unavailable: {manager.state.error}", err=True
            )
            sys.exit(1)

        if mode == "sync_branches":
            try:
                result = sync_branches(executor)
            except STORE_ERRORS as exc:
                click.echo(f"[{run_id}] FATAL: branch sync failed: {exc}", err=True)
                sys.exit(1)
            click.echo(f"[{run_id}] Synced {result.created} branches: {', '.join(result.names)}")
            report_path = write_run_report(
                run_id, started_at, mode, False, {}, result.to_dict(), Path(report_dir),
            )
            click.echo(f"[{run_id}] Report written to {report_path}")
            return

        counters = RestoreCounters()
        rejects = RejectWriter(Path(rejects_path))
        try:
            _run_restore_backup(
                run_id, executor, settings, backup_path, override_branch,
                dry_run, counters, rejects,
            )
        finally:
            rejects.close()

        click.echo(
            f"[{run_id}] Done: imported={counters.imported} skipped={counters.skipped} "
            f"total={counters.records_read}"
        )
        if rejects.count:
            click.echo(f"[{run_id}] {rejects.count} rejected record(s) written to {rejects_path}")
        report_path = write_run_report(
            run_id, started_at, mode, dry_run,
            {"backup_path": backup_path}, counters.to_dict(), Path(report_dir),
        )
        click.echo(f"[{run_id}] Report written to {report_path}")
    finally:
        manager.close()


if __name__ == "__main__":
    main()

"""Integration tests for the inventory-restore CLI modes."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from inventory_restore.cli import main

BACKUP = {
    "products": [
        {
            "id": 1,
            "productName": "Milk",
            "barcode": "123",
            "branchName": "East",
            "currentQuantity": 10,
            "mfgDate": "2026-01-01T00:00:00Z",
            "expireDate": "2030-01-15T00:00:00Z",
        },
        {
            "id": 2,
            "productName": "Bread",
            "branchName": "West-7",
            "currentQuantity": "4",
            "mfgDate": 1767225600000,
            "expireDate": 1893456000000,
        },
        {"id": 3, "productName": "", "branchName": "East"},
    ],
}


def _write_backup(tmp_path: Path, data) -> Path:
    path = tmp_path / "inventory_backup.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _args(dsn: str, tmp_path: Path, *extra: str) -> list[str]:
    return [
        "--db-dsn", dsn,
        "--rejects-path", str(tmp_path / "rejects.csv"),
        "--report-dir", str(tmp_path / "reports"),
        "--run-id", "test-run",
        *extra,
    ]


def test_restore_backup_mode(db_conn, tmp_path):
    conn, dsn = db_conn
    backup = _write_backup(tmp_path, BACKUP)

    result = CliRunner().invoke(
        main, _args(dsn, tmp_path, "--mode", "restore_backup", "--backup-path", str(backup)),
    )

    assert result.exit_code == 0, result.output
    assert "Done: imported=2 skipped=1 total=3" in result.output
    assert conn.execute("SELECT count(*) FROM inventory_item").fetchone()[0] == 2
    assert conn.execute("SELECT count(*) FROM branch").fetchone()[0] == 2

    report = json.loads((tmp_path / "reports" / "test-run.json").read_text())
    assert report["mode"] == "restore_backup"
    assert report["counters"]["imported"] == 2
    assert report["counters"]["rejected_invalid"] == 1
    assert "missing_product_name" in (tmp_path / "rejects.csv").read_text()


def test_restore_backup_twice_imports_nothing_new(db_conn, tmp_path):
    conn, dsn = db_conn
    backup = _write_backup(tmp_path, BACKUP["products"])
    runner = CliRunner()
    args = _args(dsn, tmp_path, "--backup-path", str(backup))

    assert runner.invoke(main, args).exit_code == 0
    second = runner.invoke(main, args)

    assert second.exit_code == 0, second.output
    assert "Done: imported=0 skipped=3 total=3" in second.output
    assert conn.execute("SELECT count(*) FROM inventory_item").fetchone()[0] == 2


def test_dry_run_flag(db_conn, tmp_path):
    conn, dsn = db_conn
    backup = _write_backup(tmp_path, BACKUP)
    result = CliRunner().invoke(
        main, _args(dsn, tmp_path, "--backup-path", str(backup), "--dry-run"),
    )
    assert result.exit_code == 0, result.output
    assert "Done: imported=2" in result.output
    assert conn.execute("SELECT count(*) FROM inventory_item").fetchone()[0] == 0


def test_override_branch_flag(db_conn, tmp_path):
    conn, dsn = db_conn
    backup = _write_backup(tmp_path, BACKUP)
    result = CliRunner().invoke(
        main,
        _args(dsn, tmp_path, "--backup-path", str(backup), "--override-branch", "Central"),
    )
    assert result.exit_code == 0, result.output
    assert conn.execute("SELECT DISTINCT branch FROM inventory_item").fetchall() == [("Central",)]


def test_missing_backup_file_exits_1(db_conn, tmp_path):
    _, dsn = db_conn
    result = CliRunner().invoke(
        main, _args(dsn, tmp_path, "--backup-path", str(tmp_path / "nope.json")),
    )
    assert result.exit_code == 1
    assert "cannot read backup" in result.output


def test_backup_without_products_exits_1(db_conn, tmp_path):
    _, dsn = db_conn
    backup = _write_backup(tmp_path, {"exportedAt": "2026-01-17"})
    result = CliRunner().invoke(main, _args(dsn, tmp_path, "--backup-path", str(backup)))
    assert result.exit_code == 1
    assert "products array required" in result.output


def test_restore_requires_backup_path(db_conn, tmp_path):
    _, dsn = db_conn
    result = CliRunner().invoke(main, _args(dsn, tmp_path))
    assert result.exit_code == 1
    assert "--backup-path is required" in result.output


def test_sync_branches_mode(db_conn, tmp_path):
    conn, dsn = db_conn
    conn.execute(
        """
        INSERT INTO inventory_item (product_name, quantity, mfg_date, exp_date, branch, status)
        VALUES ('Milk', 1, now(), now(), 'Harbor', 'Safe')
        """
    )
    result = CliRunner().invoke(main, _args(dsn, tmp_path, "--mode", "sync_branches"))
    assert result.exit_code == 0, result.output
    assert "Synced 1 branches: Harbor" in result.output
    report = json.loads((tmp_path / "reports" / "test-run.json").read_text())
    assert report["counters"] == {"created": 1, "names": ["Harbor"]}


def test_health_check_mode(db_conn, tmp_path):
    _, dsn = db_conn
    result = CliRunner().invoke(main, _args(dsn, tmp_path, "--mode", "health_check"))
    assert result.exit_code == 0, result.output
    assert '{"connected": true, "initializing": false, "error": null}' in result.output


def test_health_check_unreachable_exits_1(db_conn, tmp_path):
    _, dsn = db_conn
    config = tmp_path / "restore.yml"
    config.write_text("connect_attempts: 1\nconnect_backoff_seconds: 0\n", encoding="utf-8")
    bad_dsn = dsn.replace("dbname=", "dbname=does_not_exist_")
    result = CliRunner().invoke(
        main,
        _args(bad_dsn, tmp_path, "--mode", "health_check", "--config-path", str(config)),
    )
    assert result.exit_code == 1
    assert '"connected": false' in result.output


def test_invalid_config_exits_1(db_conn, tmp_path):
    _, dsn = db_conn
    config = tmp_path / "restore.yml"
    config.write_text("status_scheme: weekly\n", encoding="utf-8")
    result = CliRunner().invoke(
        main, _args(dsn, tmp_path, "--mode", "health_check", "--config-path", str(config)),
    )
    assert result.exit_code == 1
    assert "invalid settings" in result.output


def test_blank_override_branch_exits_1(db_conn, tmp_path):
    conn, dsn = db_conn
    backup = _write_backup(tmp_path, BACKUP)
    result = CliRunner().invoke(
        main, _args(dsn, tmp_path, "--backup-path", str(backup), "--override-branch", "   "),
    )
    assert result.exit_code == 1
    assert "--override-branch must not be blank" in result.output
    assert conn.execute("SELECT count(*) FROM inventory_item").fetchone()[0] == 0

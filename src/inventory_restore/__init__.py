"""Bulk restore of legacy inventory backups into the live store."""

from inventory_restore.connection import ConnectionManager, ResilientExecutor
from inventory_restore.provision import sync_branches
from inventory_restore.restore import RestoreSummary, restore_batch

__all__ = [
    "ConnectionManager",
    "ResilientExecutor",
    "RestoreSummary",
    "restore_batch",
    "sync_branches",
]

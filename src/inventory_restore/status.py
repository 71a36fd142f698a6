"""inventory_restore.status

Expiry-date → lifecycle bucket derivation.

Two schemes exist:
  fine   : Expired / Critical / Warning / Good / Safe (live item creation)
  coarse : Expired / Critical / Active (historical backup-restore scheme)

Both are pure: the caller supplies ``now``.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Callable

EXPIRED = "Expired"
CRITICAL = "Critical"
WARNING = "Warning"
GOOD = "Good"
SAFE = "Safe"
ACTIVE = "Active"

FINE_STATUSES = (EXPIRED, CRITICAL, WARNING, GOOD, SAFE)
COARSE_STATUSES = (EXPIRED, CRITICAL, ACTIVE)

_SECONDS_PER_DAY = 86400.0


def days_until(exp_date: datetime, now: datetime) -> int:
    """Whole days from now to exp_date, rounded up."""
    return math.ceil((exp_date - now).total_seconds() / _SECONDS_PER_DAY)


def derive_status_fine(exp_date: datetime, now: datetime) -> str:
    diff_days = days_until(exp_date, now)
    if diff_days < 0:
        return EXPIRED
    if diff_days <= 15:
        return CRITICAL
    if diff_days <= 45:
        return WARNING
    if diff_days <= 60:
        return GOOD
    return SAFE


def derive_status_coarse(exp_date: datetime, now: datetime) -> str:
    diff_days = days_until(exp_date, now)
    if diff_days < 0:
        return EXPIRED
    if diff_days <= 30:
        return CRITICAL
    return ACTIVE


derive_status = derive_status_fine

STATUS_SCHEMES: dict[str, Callable[[datetime, datetime], str]] = {
    "fine": derive_status_fine,
    "coarse": derive_status_coarse,
}


def status_deriver(scheme: str) -> Callable[[datetime, datetime], str]:
    """Return the derivation function registered under scheme."""
    try:
        return STATUS_SCHEMES[scheme]
    except KeyError:
        raise ValueError(f"unknown status scheme: {scheme!r}") from None

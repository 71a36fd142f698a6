"""Normalization functions for legacy inventory backup records.

All functions accept loosely-typed legacy values and return the appropriate
type or None.  Nothing in here raises on malformed input.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

_MS_PER_SECOND = 1000.0
_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: Any) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None.

    Non-string scalars (legacy exports store some barcodes as numbers) are
    stringified first.  Containers and bools are not text and yield None.
    """
    if value is None or isinstance(value, (bool, dict, list, tuple, set)):
        return None
    v = str(value).strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: cap
# ---------------------------------------------------------------------------

def trim_cap(value: Any, max_len: int) -> str | None:
    """Trim, then cap to max_len characters (re-trimming the cut edge)."""
    v = trim(value)
    if v is None:
        return None
    return v[:max_len].strip() or None


# ---------------------------------------------------------------------------
# Rule 3: normalize_key_part  (for content-key composition)
# ---------------------------------------------------------------------------

def normalize_key_part(value: str | None) -> str:
    """Lowercase and trim; None becomes the empty string."""
    v = trim(value)
    return v.lower() if v else ""


# ---------------------------------------------------------------------------
# Rule 4: parse_legacy_ts
# ---------------------------------------------------------------------------

def _from_epoch_ms(ms: float) -> datetime | None:
    if not math.isfinite(ms):
        return None
    try:
        return datetime.fromtimestamp(ms / _MS_PER_SECOND, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_legacy_ts(value: Any) -> datetime | None:
    """Parse a legacy timestamp into an aware UTC datetime.

    Accepts epoch milliseconds (int/float or numeric string) and ISO-8601
    strings.  Naive ISO values are taken as UTC.  Anything else → None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch_ms(float(value))
    if isinstance(value, datetime):
        ts = value
    else:
        v = trim(value)
        if v is None:
            return None
        if _NUMERIC_RE.match(v):
            return _from_epoch_ms(float(v))
        try:
            ts = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    try:
        return ts.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # offset pushes the instant past year 1 or year 9999
        return None


# ---------------------------------------------------------------------------
# Rule 5: to_midnight
# ---------------------------------------------------------------------------

def to_midnight(value: datetime) -> datetime:
    """Truncate to 00:00 UTC of the value's UTC calendar day.

    Applied to every expiry date before it is stored or compared.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Rule 6: coerce_quantity
# ---------------------------------------------------------------------------

def coerce_quantity(value: Any) -> int:
    """Floor to an int and clamp negatives to zero; garbage → 0.

    Magnitude is not bounded here: a value the store cannot hold is rejected
    at insert time, not silently rewritten.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(0, value)
    try:
        num = float(trim(value) or "") if not isinstance(value, float) else value
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(num):
        return 0
    return max(0, math.floor(num))


# ---------------------------------------------------------------------------
# Rule 7: parse_legacy_id
# ---------------------------------------------------------------------------

def parse_legacy_id(value: Any) -> int | None:
    """Return the legacy numeric id, or None when absent or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    v = trim(value)
    if v is None or not v.isdigit():
        return None
    return int(v)

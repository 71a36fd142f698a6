"""inventory_restore.records

Parse/validate boundary for legacy backup records.

Raw legacy payloads (loosely-typed dicts) never travel past
``parse_legacy_record``: it yields either a ``LegacyRecord`` with every field
already trimmed, capped, coerced and date-normalized, or a reject reason.

Legacy record shape (all fields optional / untrusted):
    id, productName, barcode, branchName, currentQuantity, productType|unit,
    mfgDate, expireDate, createdAt
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from inventory_restore.normalize import (
    coerce_quantity,
    normalize_key_part,
    parse_legacy_id,
    parse_legacy_ts,
    to_midnight,
    trim_cap,
)

LEGACY_MARKER_PREFIX = "Imported from backup. Old ID: "

PRODUCT_NAME_MAX = 255
BARCODE_MAX = 100
BRANCH_MAX = 100
UNIT_MAX = 50
NOTES_MAX = 500

# Reject reasons produced at the parse boundary.
NOT_A_RECORD = "not_a_record"
MISSING_PRODUCT_NAME = "missing_product_name"
MISSING_BRANCH_NAME = "missing_branch_name"
UNPARSEABLE_EXP_DATE = "unparseable_exp_date"
UNPARSEABLE_MFG_DATE = "unparseable_mfg_date"


# ---------------------------------------------------------------------------
# Identity keys
# ---------------------------------------------------------------------------

def legacy_marker(legacy_id: int) -> str:
    """Provenance marker stored in notes; must stay byte-identical across releases."""
    return f"{LEGACY_MARKER_PREFIX}{legacy_id}"[:NOTES_MAX]


def content_key(
    product_name: str | None,
    barcode: str | None,
    branch: str | None,
    exp_date: datetime,
) -> str:
    """Natural content key: product|barcode|branch|expiry-midnight.

    Used for both incoming candidates and stored rows, so the same
    normalization must be applied on both sides.
    """
    return "|".join((
        normalize_key_part(product_name),
        (barcode or "").strip(),
        normalize_key_part(branch),
        to_midnight(exp_date).isoformat(),
    ))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegacyRecord:
    """A validated, normalized legacy record ready for dedup."""

    product_name: str
    barcode: str | None
    branch: str
    quantity: int
    unit: str
    mfg_date: datetime
    exp_date: datetime
    legacy_id: int | None
    created_at: datetime | None
    raw: Any = None

    @property
    def legacy_marker(self) -> str | None:
        if self.legacy_id is None:
            return None
        return legacy_marker(self.legacy_id)

    @property
    def content_key(self) -> str:
        return content_key(self.product_name, self.barcode, self.branch, self.exp_date)


@dataclass(frozen=True)
class InventoryRecord:
    """Destination row shape for inventory_item."""

    product_name: str
    barcode: str | None
    quantity: int
    unit: str
    mfg_date: datetime
    exp_date: datetime
    branch: str
    status: str
    notes: str | None
    created_at: datetime | None = None
    # source legacy record, for reject reporting
    raw: Any = field(default=None, compare=False, repr=False)

    def as_params(self) -> dict[str, Any]:
        return {
            "product_name": self.product_name,
            "barcode": self.barcode,
            "quantity": self.quantity,
            "unit": self.unit,
            "mfg_date": self.mfg_date,
            "exp_date": self.exp_date,
            "branch": self.branch,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# Parse boundary
# ---------------------------------------------------------------------------

def parse_legacy_record(
    raw: Any,
    override_branch: str | None = None,
    default_unit: str = "pcs",
) -> tuple[LegacyRecord | None, str | None]:
    """Return (record, None) for a usable legacy record, else (None, reason)."""
    if not isinstance(raw, dict):
        return None, NOT_A_RECORD

    product_name = trim_cap(raw.get("productName"), PRODUCT_NAME_MAX)
    if not product_name:
        return None, MISSING_PRODUCT_NAME

    branch = trim_cap(override_branch if override_branch else raw.get("branchName"), BRANCH_MAX)
    if not branch:
        return None, MISSING_BRANCH_NAME

    exp_date = parse_legacy_ts(raw.get("expireDate"))
    if exp_date is None:
        return None, UNPARSEABLE_EXP_DATE

    mfg_date = parse_legacy_ts(raw.get("mfgDate"))
    if mfg_date is None:
        return None, UNPARSEABLE_MFG_DATE

    unit = raw.get("productType")
    if unit is None:
        unit = raw.get("unit")

    record = LegacyRecord(
        product_name=product_name,
        barcode=trim_cap(raw.get("barcode"), BARCODE_MAX),
        branch=branch,
        quantity=coerce_quantity(raw.get("currentQuantity")),
        unit=trim_cap(unit, UNIT_MAX) or default_unit,
        mfg_date=mfg_date,
        exp_date=to_midnight(exp_date),
        legacy_id=parse_legacy_id(raw.get("id")),
        created_at=parse_legacy_ts(raw.get("createdAt")),
        raw=raw,
    )
    return record, None


def materialize(record: LegacyRecord, status: str) -> InventoryRecord:
    """Shape an accepted legacy record as an inventory_item row."""
    return InventoryRecord(
        product_name=record.product_name,
        barcode=record.barcode,
        quantity=record.quantity,
        unit=record.unit,
        mfg_date=record.mfg_date,
        exp_date=record.exp_date,
        branch=record.branch,
        status=status,
        notes=record.legacy_marker,
        created_at=record.created_at,
        raw=record.raw,
    )

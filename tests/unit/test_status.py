"""Unit tests for expiry-status derivation."""

from datetime import datetime, timedelta, timezone

import pytest

from inventory_restore.status import (
    ACTIVE,
    CRITICAL,
    EXPIRED,
    GOOD,
    SAFE,
    WARNING,
    days_until,
    derive_status,
    derive_status_coarse,
    derive_status_fine,
    status_deriver,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _in_days(n: float) -> datetime:
    return NOW + timedelta(days=n)


class TestDaysUntil:
    def test_exact_days(self):
        assert days_until(_in_days(5), NOW) == 5

    def test_partial_day_rounds_up(self):
        assert days_until(_in_days(4.2), NOW) == 5

    def test_just_past_is_zero(self):
        assert days_until(NOW - timedelta(hours=1), NOW) == 0


class TestDeriveStatusFine:
    @pytest.mark.parametrize(
        "days, expected",
        [
            (-1, EXPIRED),
            (-30, EXPIRED),
            (0, CRITICAL),
            (15, CRITICAL),
            (16, WARNING),
            (45, WARNING),
            (46, GOOD),
            (60, GOOD),
            (61, SAFE),
            (400, SAFE),
        ],
    )
    def test_buckets(self, days, expected):
        assert derive_status_fine(_in_days(days), NOW) == expected

    def test_canonical_alias(self):
        assert derive_status is derive_status_fine

    def test_deterministic_given_inputs(self):
        exp = _in_days(20)
        assert derive_status_fine(exp, NOW) == derive_status_fine(exp, NOW)


class TestDeriveStatusCoarse:
    @pytest.mark.parametrize(
        "days, expected",
        [(-1, EXPIRED), (0, CRITICAL), (30, CRITICAL), (31, ACTIVE), (90, ACTIVE)],
    )
    def test_buckets(self, days, expected):
        assert derive_status_coarse(_in_days(days), NOW) == expected


class TestStatusDeriver:
    def test_lookup(self):
        assert status_deriver("fine") is derive_status_fine
        assert status_deriver("coarse") is derive_status_coarse

    def test_unknown_scheme_raises(self):
        with pytest.raises(ValueError, match="unknown status scheme"):
            status_deriver("medium")

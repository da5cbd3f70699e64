"""Tests for effective status derivation."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from creditledger.models.credit_note import (
    REDEEMABLE_STATUSES,
    TERMINAL_STATUSES,
    CreditNoteStatus,
    derive_effective_status,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
PAST = NOW - timedelta(seconds=1)
FUTURE = NOW + timedelta(days=1)


@pytest.mark.parametrize(
    ("stored", "remaining", "expires_at", "expected"),
    [
        ("active", "50", None, CreditNoteStatus.ACTIVE),
        ("active", "50", FUTURE, CreditNoteStatus.ACTIVE),
        ("active", "50", PAST, CreditNoteStatus.EXPIRED),
        ("active", "50", NOW, CreditNoteStatus.EXPIRED),
        ("partially_redeemed", "10", PAST, CreditNoteStatus.EXPIRED),
        ("partially_redeemed", "10", FUTURE, CreditNoteStatus.PARTIALLY_REDEEMED),
        ("partially_redeemed", "0", PAST, CreditNoteStatus.FULLY_REDEEMED),
        ("fully_redeemed", "0", None, CreditNoteStatus.FULLY_REDEEMED),
        ("cancelled", "40", PAST, CreditNoteStatus.CANCELLED),
        ("deleted", "40", None, CreditNoteStatus.DELETED),
        ("expired", "5", None, CreditNoteStatus.EXPIRED),
    ],
)
def test_derive_effective_status(stored, remaining, expires_at, expected):
    assert derive_effective_status(stored, Decimal(remaining), expires_at, NOW) == expected


def test_naive_expiry_is_treated_as_utc():
    naive = PAST.replace(tzinfo=None)
    assert derive_effective_status("active", Decimal("1"), naive, NOW) == CreditNoteStatus.EXPIRED


def test_unknown_status_rejected():
    with pytest.raises(ValueError):
        derive_effective_status("void", Decimal("1"), None, NOW)


def test_status_groups():
    assert REDEEMABLE_STATUSES == {
        CreditNoteStatus.ACTIVE,
        CreditNoteStatus.PARTIALLY_REDEEMED,
    }
    assert CreditNoteStatus.EXPIRED not in TERMINAL_STATUSES
    assert not REDEEMABLE_STATUSES & TERMINAL_STATUSES

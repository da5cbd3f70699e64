"""CreditNote model: a store-credit instrument with an original and remaining balance."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from creditledger.core.database import Base
from creditledger.models.shared import UUIDType, as_utc, generate_uuid, utc_now


class CreditNoteStatus(str, Enum):
    ACTIVE = "active"
    PARTIALLY_REDEEMED = "partially_redeemed"
    FULLY_REDEEMED = "fully_redeemed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    DELETED = "deleted"


# Stored statuses a redemption may still move away from.
REDEEMABLE_STATUSES = frozenset({CreditNoteStatus.ACTIVE, CreditNoteStatus.PARTIALLY_REDEEMED})

TERMINAL_STATUSES = frozenset(
    {
        CreditNoteStatus.FULLY_REDEEMED,
        CreditNoteStatus.CANCELLED,
        CreditNoteStatus.DELETED,
    }
)


def derive_effective_status(
    stored_status: str | CreditNoteStatus,
    remaining_amount: Decimal,
    expires_at: datetime | None,
    now: datetime | None = None,
) -> CreditNoteStatus:
    """Compute the status a caller should act on right now.

    Expiry is never written back; an ``active`` or ``partially_redeemed`` note
    whose ``expires_at`` has passed reads as ``expired`` from that instant on.
    """
    status = CreditNoteStatus(stored_status)
    if status in (CreditNoteStatus.DELETED, CreditNoteStatus.CANCELLED):
        return status
    if Decimal(str(remaining_amount)) <= 0:
        return CreditNoteStatus.FULLY_REDEEMED
    if expires_at is not None and as_utc(expires_at) <= (now or utc_now()):  # type: ignore[operator]
        return CreditNoteStatus.EXPIRED
    return status


class CreditNote(Base):
    """A single issued store-credit instrument."""

    __tablename__ = "credit_notes"
    __table_args__ = (
        Index("ix_credit_notes_merchant_id_status", "merchant_id", "status"),
        Index("ix_credit_notes_merchant_id_created_at", "merchant_id", "created_at"),
        Index("ix_credit_notes_merchant_id_owner_ref", "merchant_id", "owner_ref"),
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= original_amount",
            name="ck_credit_notes_remaining_within_original",
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    note_number = Column(String(50), unique=True, index=True, nullable=False)
    merchant_id = Column(String(255), nullable=False)

    owner_ref = Column(String(255), nullable=False)
    owner_name = Column(String(255), nullable=True)
    owner_email = Column(String(255), nullable=True)

    original_amount = Column(Numeric(12, 4), nullable=False)
    remaining_amount = Column(Numeric(12, 4), nullable=False)
    currency = Column(String(3), nullable=False)

    status = Column(String(30), nullable=False, default=CreditNoteStatus.ACTIVE.value)
    token = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    original_order_ref = Column(String(255), nullable=True)

    # Bumped on every balance or status write; guards the compare-and-swap.
    version = Column(Integer, nullable=False, default=1)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
    )

    @property
    def effective_status(self) -> CreditNoteStatus:
        return derive_effective_status(
            str(self.status),
            Decimal(str(self.remaining_amount)),
            self.expires_at,  # type: ignore[arg-type]
        )

    @property
    def redeemed_amount(self) -> Decimal:
        return Decimal(str(self.original_amount)) - Decimal(str(self.remaining_amount))

"""Redemption model: one balance-reducing application against a credit note."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func

from creditledger.core.database import Base
from creditledger.models.shared import UUIDType, generate_uuid, utc_now


class Redemption(Base):
    """Append-only record of a successful partial or full redemption."""

    __tablename__ = "credit_note_redemptions"
    __table_args__ = (
        UniqueConstraint(
            "credit_note_id", "external_ref", name="uq_credit_note_redemptions_note_external_ref"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    credit_note_id = Column(
        UUIDType,
        ForeignKey("credit_notes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(12, 4), nullable=False)
    balance_after = Column(Numeric(12, 4), nullable=False)
    external_ref = Column(String(255), nullable=True, index=True)
    actor_ref = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

"""Redemption repository: read side of the append-only redemption history.

Rows are only ever written by ``CreditNoteRepository.apply_redemption`` in
the same transaction as the balance change.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from creditledger.models.credit_note import CreditNote
from creditledger.models.redemption import Redemption


class RedemptionRepository:
    """Repository for Redemption model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, redemption_id: UUID, merchant_id: str) -> Redemption | None:
        """Get a redemption whose credit note belongs to ``merchant_id``."""
        return (
            self.db.query(Redemption)
            .join(CreditNote, CreditNote.id == Redemption.credit_note_id)
            .filter(Redemption.id == redemption_id, CreditNote.merchant_id == merchant_id)
            .first()
        )

    def get_by_credit_note_id(
        self,
        credit_note_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Redemption]:
        """Redemptions of one credit note, oldest first."""
        return (
            self.db.query(Redemption)
            .filter(Redemption.credit_note_id == credit_note_id)
            .order_by(Redemption.created_at.asc(), Redemption.balance_after.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count_for_credit_note(self, credit_note_id: UUID) -> int:
        return (
            self.db.query(func.count(Redemption.id))
            .filter(Redemption.credit_note_id == credit_note_id)
            .scalar()
            or 0
        )

    def total_for_credit_note(self, credit_note_id: UUID) -> Decimal:
        """Sum of every redemption applied to one credit note."""
        total = (
            self.db.query(func.coalesce(func.sum(Redemption.amount), 0))
            .filter(Redemption.credit_note_id == credit_note_id)
            .scalar()
        )
        return Decimal(str(total))

"""Issuance service: creates credit notes and drives their non-redemption lifecycle."""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from creditledger.core.config import settings
from creditledger.models.credit_note import CreditNote
from creditledger.models.shared import utc_now
from creditledger.models.webhook import Webhook
from creditledger.repositories.credit_note_repository import (
    CreditNoteRepository,
    NoteNumberTakenError,
    validate_amount,
)
from creditledger.repositories.merchant_settings_repository import MerchantSettingsRepository
from creditledger.services.errors import GenerationExhaustedError
from creditledger.services.note_number import NoteNumberGenerator
from creditledger.services.token_codec import TokenCodec, TokenSummary
from creditledger.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


class IssuanceService:
    """Service for issuing, cancelling and deleting credit notes."""

    def __init__(
        self,
        db: Session,
        codec: TokenCodec | None = None,
        generator: NoteNumberGenerator | None = None,
    ):
        self.db = db
        self.codec = codec or TokenCodec()
        self.generator = generator or NoteNumberGenerator(db)
        self.credit_note_repo = CreditNoteRepository(db)
        self.settings_repo = MerchantSettingsRepository(db)
        self.webhook_service = WebhookService(db)
        # Webhooks recorded by this instance; the caller queues their delivery.
        self.recorded_webhooks: list[Webhook] = []

    def issue(
        self,
        merchant_id: str,
        owner_ref: str,
        original_amount: Decimal,
        currency: str | None = None,
        expires_in_days: int | None = None,
        reason: str | None = None,
        actor_ref: str | None = None,
        owner_name: str | None = None,
        owner_email: str | None = None,
        original_order_ref: str | None = None,
        now: datetime | None = None,
    ) -> CreditNote:
        """Issue a credit note with its full balance remaining.

        Args:
            merchant_id: Owning merchant.
            owner_ref: Opaque reference to the customer the credit belongs to.
            original_amount: Positive amount, at most 4 decimal places.
            currency: ISO-4217 code. Defaults to the merchant's configured currency.
            expires_in_days: Days until expiry. ``None`` applies the merchant default,
                zero means the note never expires, negative values issue a note that
                is already expired.
            reason: Free-text issuance reason.
            actor_ref: Staff member or system issuing the note (logged only).

        Returns:
            The committed CreditNote.

        Raises:
            InvalidAmountError: if the amount is not positive or too precise.
            GenerationExhaustedError: if no unique note number could be allocated.
        """
        amount = validate_amount(original_amount)
        now = now or utc_now()
        merchant_settings = self.settings_repo.get_by_merchant(merchant_id)
        if currency is None:
            currency = (
                str(merchant_settings.currency)
                if merchant_settings is not None and merchant_settings.currency
                else settings.DEFAULT_CURRENCY
            )
        if expires_in_days is None and merchant_settings is not None:
            expires_in_days = merchant_settings.default_expiry_days  # type: ignore[assignment]
        expires_at = now + timedelta(days=expires_in_days) if expires_in_days else None

        attempts = settings.NOTE_NUMBER_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            note_number = self.generator.allocate(merchant_id, now=now)
            token = self.codec.encode(
                TokenSummary(
                    note_number=note_number,
                    amount=amount,
                    owner_ref=owner_ref,
                    merchant_id=merchant_id,
                    issued_at=now,
                )
            )
            try:
                credit_note = self.credit_note_repo.insert_instrument(
                    merchant_id=merchant_id,
                    note_number=note_number,
                    owner_ref=owner_ref,
                    original_amount=amount,
                    currency=currency.upper(),
                    token=token,
                    expires_at=expires_at,
                    reason=reason,
                    owner_name=owner_name,
                    owner_email=owner_email,
                    original_order_ref=original_order_ref,
                    created_at=now,
                )
            except NoteNumberTakenError:
                logger.warning(
                    "Note number %s taken at insert (attempt %d/%d)",
                    note_number,
                    attempt,
                    attempts,
                )
                continue
            break
        else:
            raise GenerationExhaustedError(
                f"Could not insert a credit note with a unique number after {attempts} attempts",
                attempts=attempts,
            )

        logger.info(
            "Issued credit note %s for %s %s to owner %s by %s",
            credit_note.note_number,
            credit_note.original_amount,
            credit_note.currency,
            owner_ref,
            actor_ref or "system",
        )
        self.recorded_webhooks += self.webhook_service.notify(
            merchant_id, "credit_note.issued", credit_note
        )
        return credit_note

    def cancel(
        self, merchant_id: str, credit_note_id: UUID, actor_ref: str | None = None
    ) -> CreditNote:
        """Cancel a note; its remaining balance is frozen and can never be redeemed."""
        credit_note = self.credit_note_repo.cancel(
            credit_note_id, merchant_id, timeout=settings.LEDGER_DEFAULT_TIMEOUT_SECONDS
        )
        logger.info("Credit note %s cancelled by %s", credit_note.note_number, actor_ref)
        self.recorded_webhooks += self.webhook_service.notify(
            merchant_id, "credit_note.cancelled", credit_note
        )
        return credit_note

    def delete(
        self, merchant_id: str, credit_note_id: UUID, actor_ref: str | None = None
    ) -> CreditNote:
        """Soft-delete a note. The row is kept for audit but hidden from every read."""
        credit_note = self.credit_note_repo.soft_delete(
            credit_note_id, merchant_id, timeout=settings.LEDGER_DEFAULT_TIMEOUT_SECONDS
        )
        logger.info("Credit note %s deleted by %s", credit_note.note_number, actor_ref)
        self.recorded_webhooks += self.webhook_service.notify(
            merchant_id, "credit_note.deleted", credit_note
        )
        return credit_note

"""Redemption engine.

Turns whatever the caller presents (a scanned token or a typed note number)
into the authoritative ledger row, then hands the debit to the ledger store.
The amount inside a token is never used for the debit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from creditledger.core.config import settings
from creditledger.models.credit_note import (
    CreditNote,
    CreditNoteStatus,
    derive_effective_status,
)
from creditledger.models.redemption import Redemption
from creditledger.models.webhook import Webhook
from creditledger.repositories.credit_note_repository import (
    CreditNoteRepository,
    check_redeemable,
)
from creditledger.services.credit_note_query_service import CreditNoteQueryService
from creditledger.services.errors import LedgerError
from creditledger.services.token_codec import TokenCodec, TokenSummary
from creditledger.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


def _effective_status(credit_note: CreditNote, now: datetime | None) -> CreditNoteStatus:
    return derive_effective_status(
        str(credit_note.status),
        Decimal(str(credit_note.remaining_amount)),
        credit_note.expires_at,  # type: ignore[arg-type]
        now,
    )


@dataclass
class RedemptionResult:
    applied_amount: Decimal
    new_remaining_balance: Decimal
    credit_note: CreditNote
    redemption: Redemption


@dataclass
class RedemptionValidation:
    """Outcome of a dry-run redemption check."""

    valid: bool
    credit_note: CreditNote | None = None
    effective_status: CreditNoteStatus | None = None
    max_redeemable: Decimal | None = None
    token: TokenSummary | None = None
    error: LedgerError | None = None


class RedemptionService:
    """Validates presented credentials and applies redemptions."""

    def __init__(self, db: Session, codec: TokenCodec | None = None):
        self.db = db
        self.credit_note_repo = CreditNoteRepository(db)
        self.query_service = CreditNoteQueryService(db, codec=codec)
        self.webhook_service = WebhookService(db)
        # Webhooks recorded by this instance; the caller queues their delivery.
        self.recorded_webhooks: list[Webhook] = []

    def redeem(
        self,
        merchant_id: str,
        credential: str,
        requested_amount: Decimal | None = None,
        external_ref: str | None = None,
        actor_ref: str | None = None,
        timeout: float | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Redeem ``requested_amount`` (or the whole remaining balance).

        Raises:
            TokenIntegrityError, MalformedTokenError, ExpiredTokenError: bad token.
            CreditNoteNotFoundError: unknown, deleted or another merchant's note.
            CreditNoteExpiredError, CreditNoteNotRedeemableError,
            InvalidAmountError, InsufficientBalanceError,
            DuplicateRedemptionError, ConcurrencyConflictError,
            LedgerTimeoutError: as raised by the ledger store.
        """
        credit_note, summary = self.query_service.resolve(merchant_id, credential, now=now)
        if summary is not None:
            self._check_token_amount(credit_note, summary)

        amount = (
            requested_amount
            if requested_amount is not None
            else Decimal(str(credit_note.remaining_amount))
        )
        credit_note, redemption = self.credit_note_repo.apply_redemption(
            credit_note.id,  # type: ignore[arg-type]
            merchant_id,
            amount,
            external_ref=external_ref,
            actor_ref=actor_ref,
            timeout=timeout if timeout is not None else settings.LEDGER_DEFAULT_TIMEOUT_SECONDS,
            now=now,
        )
        self.recorded_webhooks += self.webhook_service.notify(
            merchant_id, "credit_note.redeemed", credit_note, redemption
        )
        return RedemptionResult(
            applied_amount=Decimal(str(redemption.amount)),
            new_remaining_balance=Decimal(str(credit_note.remaining_amount)),
            credit_note=credit_note,
            redemption=redemption,
        )

    def validate(
        self,
        merchant_id: str,
        credential: str,
        requested_amount: Decimal | None = None,
        now: datetime | None = None,
    ) -> RedemptionValidation:
        """Run every redemption check without writing anything.

        The verdict is only good for the instant it was computed: expiry is
        evaluated lazily, so callers must still handle failures from ``redeem``.
        """
        summary: TokenSummary | None = None
        credit_note: CreditNote | None = None
        try:
            credit_note, summary = self.query_service.resolve(merchant_id, credential, now=now)
            remaining = Decimal(str(credit_note.remaining_amount))
            check_redeemable(
                credit_note,
                requested_amount if requested_amount is not None else remaining,
                now,
            )
        except LedgerError as exc:
            return RedemptionValidation(
                valid=False,
                credit_note=credit_note,
                effective_status=_effective_status(credit_note, now) if credit_note else None,
                token=summary,
                error=exc,
            )

        return RedemptionValidation(
            valid=True,
            credit_note=credit_note,
            effective_status=_effective_status(credit_note, now),
            max_redeemable=remaining,
            token=summary,
        )

    @staticmethod
    def _check_token_amount(credit_note: CreditNote, summary: TokenSummary) -> None:
        if summary.amount != Decimal(str(credit_note.original_amount)):
            logger.warning(
                "Token for %s claims %s but the ledger issued %s; using ledger balance",
                credit_note.note_number,
                summary.amount,
                credit_note.original_amount,
            )

"""Read-side views over the ledger.

Everything here is scoped by ``merchant_id`` and never returns soft-deleted
rows. A credit note of another merchant is indistinguishable from a missing
one, whichever key (id, note number or token) the caller supplies.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from creditledger.models.credit_note import CreditNote, CreditNoteStatus
from creditledger.models.redemption import Redemption
from creditledger.repositories.credit_note_repository import (
    CreditNoteFilters,
    CreditNoteRepository,
)
from creditledger.repositories.redemption_repository import RedemptionRepository
from creditledger.services.errors import CreditNoteNotFoundError
from creditledger.services.token_codec import LEGACY_PREFIX, TokenCodec, TokenSummary

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200


@dataclass
class CreditNotePage:
    items: list[CreditNote]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


@dataclass
class CurrencyBalance:
    currency: str
    outstanding_amount: Decimal
    credit_note_count: int


@dataclass
class OwnerBalance:
    owner_ref: str
    balances: list[CurrencyBalance] = field(default_factory=list)


def looks_like_token(credential: str) -> bool:
    return credential.startswith("{") or credential.startswith(LEGACY_PREFIX)


class CreditNoteQueryService:
    """Merchant-scoped queries for the console, the terminal and the API."""

    def __init__(self, db: Session, codec: TokenCodec | None = None):
        self.db = db
        self.codec = codec or TokenCodec()
        self.credit_note_repo = CreditNoteRepository(db)
        self.redemption_repo = RedemptionRepository(db)

    def list_credit_notes(
        self,
        merchant_id: str,
        search: str | None = None,
        statuses: list[CreditNoteStatus] | None = None,
        owner_ref: str | None = None,
        currency: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        order_by: str | None = None,
        limit: int = 50,
        offset: int = 0,
        now: datetime | None = None,
    ) -> CreditNotePage:
        """One page of credit notes plus the total matching count.

        Status filters apply to the effective status, so ``expired`` finds
        notes whose stored status still reads ``active``.
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        filters = CreditNoteFilters(
            search=search,
            statuses=statuses,
            owner_ref=owner_ref,
            currency=currency,
            created_from=created_from,
            created_to=created_to,
        )
        items = self.credit_note_repo.get_all(
            merchant_id, filters, skip=offset, limit=limit, order_by=order_by, now=now
        )
        total = self.credit_note_repo.count(merchant_id, filters, now=now)
        return CreditNotePage(items=items, total=total, limit=limit, offset=offset)

    def get_credit_note(self, merchant_id: str, credit_note_id: UUID) -> CreditNote:
        credit_note = self.credit_note_repo.get_by_id(credit_note_id, merchant_id)
        if credit_note is None:
            raise CreditNoteNotFoundError("Credit note not found")
        return credit_note

    def resolve(
        self,
        merchant_id: str,
        credential: str,
        now: datetime | None = None,
    ) -> tuple[CreditNote, TokenSummary | None]:
        """Find the credit note a scanned token or typed note number refers to.

        Returns the note and, for tokens, the decoded summary. Token decode
        errors propagate; a token minted for another merchant is reported as
        not found.
        """
        raw = credential.strip()
        summary: TokenSummary | None = None
        if looks_like_token(raw):
            summary = self.codec.decode(raw, now=now)
            if summary.merchant_id and summary.merchant_id != merchant_id:
                logger.warning(
                    "Token for %s presented by another merchant", summary.note_number
                )
                raise CreditNoteNotFoundError("Credit note not found")
            credit_note = self.credit_note_repo.get_by_number(summary.note_number, merchant_id)
        else:
            credit_note = self.credit_note_repo.get_by_number(raw, merchant_id)

        if credit_note is None:
            raise CreditNoteNotFoundError("Credit note not found")

        if summary is not None and summary.owner_ref != credit_note.owner_ref:
            logger.warning(
                "Token owner %s does not match credit note %s",
                summary.owner_ref,
                credit_note.note_number,
            )
            if not summary.legacy:
                raise CreditNoteNotFoundError("Credit note not found")
        return credit_note, summary

    def lookup(self, merchant_id: str, code: str, now: datetime | None = None) -> CreditNote:
        """Find a credit note by id, note number or token."""
        raw = code.strip()
        try:
            credit_note_id = UUID(raw)
        except ValueError:
            return self.resolve(merchant_id, raw, now=now)[0]
        return self.get_credit_note(merchant_id, credit_note_id)

    def owner_balance(
        self,
        merchant_id: str,
        owner_ref: str,
        currency: str | None = None,
    ) -> OwnerBalance:
        """Outstanding balance per currency across the owner's live credit notes."""
        totals = self.credit_note_repo.outstanding_balance_for_owner(
            merchant_id, owner_ref, currency=currency
        )
        return OwnerBalance(
            owner_ref=owner_ref,
            balances=[
                CurrencyBalance(currency=code, outstanding_amount=amount, credit_note_count=count)
                for code, (amount, count) in sorted(totals.items())
            ],
        )

    def list_redemptions(
        self,
        merchant_id: str,
        credit_note_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> list[Redemption]:
        credit_note = self.get_credit_note(merchant_id, credit_note_id)
        return self.redemption_repo.get_by_credit_note_id(
            credit_note.id, skip=skip, limit=limit  # type: ignore[arg-type]
        )

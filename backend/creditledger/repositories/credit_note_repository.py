"""CreditNote repository: the ledger store.

Owns every balance-affecting write. ``apply_redemption``, ``cancel`` and
``soft_delete`` read the row (under ``FOR UPDATE`` where the dialect has it)
and then write through a compare-and-swap on ``version``, so two writers
that saw the same row can never both commit.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from creditledger.core.config import settings
from creditledger.core.database import apply_statement_timeout
from creditledger.core.sorting import apply_order_by
from creditledger.models.credit_note import (
    REDEEMABLE_STATUSES,
    CreditNote,
    CreditNoteStatus,
    derive_effective_status,
)
from creditledger.models.redemption import Redemption
from creditledger.models.shared import utc_now
from creditledger.services.errors import (
    ConcurrencyConflictError,
    CreditNoteExpiredError,
    CreditNoteNotFoundError,
    CreditNoteNotRedeemableError,
    DuplicateRedemptionError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTransitionError,
    LedgerTimeoutError,
)

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = (
    "created_at",
    "updated_at",
    "expires_at",
    "note_number",
    "original_amount",
    "remaining_amount",
    "owner_name",
)

# Amounts are stored as Numeric(12, 4); anything finer would be rounded by
# the database and break the sum-of-redemptions invariant.
AMOUNT_EXPONENT = -4
AMOUNT_QUANTUM = Decimal(1).scaleb(AMOUNT_EXPONENT)


class NoteNumberTakenError(Exception):
    """The insert lost a race for its note number."""


@dataclass
class CreditNoteFilters:
    search: str | None = None
    statuses: list[CreditNoteStatus] | None = None
    owner_ref: str | None = None
    currency: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


def validate_amount(amount: Decimal) -> Decimal:
    """Reject non-positive amounts and amounts the store cannot hold exactly."""
    try:
        amount = Decimal(str(amount))
    except ArithmeticError:
        raise InvalidAmountError(f"Amount {amount!r} is not a number") from None
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError("Amount must be positive")
    if amount.as_tuple().exponent >= AMOUNT_EXPONENT:  # type: ignore[operator]
        return amount
    # Trailing zeros beyond the fourth place are not extra precision.
    try:
        stored = amount.quantize(AMOUNT_QUANTUM)
    except ArithmeticError:
        raise InvalidAmountError("Amount is too large") from None
    if stored != amount:
        raise InvalidAmountError("Amount supports at most 4 decimal places")
    return stored


def check_redeemable(
    credit_note: CreditNote, amount: Decimal, now: datetime | None = None
) -> Decimal:
    """Validate a redemption of ``amount`` against the note's current row.

    Returns the normalized amount. Checks run in a fixed order so a caller
    always sees the most permanent reason first.
    """
    effective = derive_effective_status(
        str(credit_note.status),
        Decimal(str(credit_note.remaining_amount)),
        credit_note.expires_at,  # type: ignore[arg-type]
        now,
    )
    if effective == CreditNoteStatus.DELETED:
        raise CreditNoteNotFoundError("Credit note not found")
    if effective == CreditNoteStatus.EXPIRED:
        raise CreditNoteExpiredError(
            "Credit note has expired", expires_at=str(credit_note.expires_at)
        )
    if effective not in REDEEMABLE_STATUSES:
        raise CreditNoteNotRedeemableError(
            f"Credit note is {effective.value}", status=effective.value
        )

    amount = validate_amount(amount)
    remaining = Decimal(str(credit_note.remaining_amount))
    if amount > remaining:
        raise InsufficientBalanceError(
            f"Requested {amount} exceeds available balance {remaining}",
            available=remaining,
        )
    return amount


class CreditNoteRepository:
    """Repository for CreditNote model."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _visible(self, merchant_id: str) -> Query:  # type: ignore[type-arg]
        return self.db.query(CreditNote).filter(
            CreditNote.merchant_id == merchant_id,
            CreditNote.deleted_at.is_(None),
        )

    def get_by_id(self, credit_note_id: UUID, merchant_id: str) -> CreditNote | None:
        """Get a non-deleted credit note owned by ``merchant_id``."""
        return self._visible(merchant_id).filter(CreditNote.id == credit_note_id).first()

    def get_by_number(self, note_number: str, merchant_id: str) -> CreditNote | None:
        """Get a non-deleted credit note by its note number."""
        return (
            self._visible(merchant_id)
            .filter(func.upper(CreditNote.note_number) == note_number.strip().upper())
            .first()
        )

    def get_by_token(self, token: str, merchant_id: str) -> CreditNote | None:
        """Get a non-deleted credit note by its exact redemption token."""
        return self._visible(merchant_id).filter(CreditNote.token == token.strip()).first()

    def note_number_exists(self, note_number: str) -> bool:
        """Check a note number across every merchant, deleted rows included."""
        return (
            self.db.query(CreditNote.id).filter(CreditNote.note_number == note_number).first()
            is not None
        )

    def _filtered(
        self,
        merchant_id: str,
        filters: CreditNoteFilters,
        now: datetime | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = self._visible(merchant_id)
        if filters.search:
            term = filters.search.strip().lower()
            query = query.filter(
                or_(
                    *(
                        func.lower(column).contains(term, autoescape=True)
                        for column in (
                            CreditNote.note_number,
                            CreditNote.owner_ref,
                            CreditNote.owner_name,
                            CreditNote.owner_email,
                            CreditNote.reason,
                        )
                    )
                )
            )
        if filters.owner_ref:
            query = query.filter(CreditNote.owner_ref == filters.owner_ref)
        if filters.currency:
            query = query.filter(CreditNote.currency == filters.currency.upper())
        if filters.created_from:
            query = query.filter(CreditNote.created_at >= filters.created_from)
        if filters.created_to:
            query = query.filter(CreditNote.created_at <= filters.created_to)
        if filters.statuses:
            now = now or utc_now()
            query = query.filter(
                or_(*(self._effective_status_clause(s, now) for s in filters.statuses))
            )
        return query

    @staticmethod
    def _effective_status_clause(status: CreditNoteStatus, now: datetime) -> Any:
        """SQL equivalent of ``derive_effective_status`` for one status."""
        not_expired = or_(CreditNote.expires_at.is_(None), CreditNote.expires_at > now)
        open_statuses = [s.value for s in REDEEMABLE_STATUSES]
        if status == CreditNoteStatus.EXPIRED:
            return or_(
                CreditNote.status == CreditNoteStatus.EXPIRED.value,
                and_(
                    CreditNote.status.in_(open_statuses),
                    CreditNote.remaining_amount > 0,
                    CreditNote.expires_at.is_not(None),
                    CreditNote.expires_at <= now,
                ),
            )
        if status in REDEEMABLE_STATUSES:
            return and_(
                CreditNote.status == status.value,
                CreditNote.remaining_amount > 0,
                not_expired,
            )
        if status == CreditNoteStatus.FULLY_REDEEMED:
            return or_(
                CreditNote.status == status.value,
                and_(
                    CreditNote.status.in_(open_statuses),
                    CreditNote.remaining_amount <= 0,
                ),
            )
        return CreditNote.status == status.value

    def get_all(
        self,
        merchant_id: str,
        filters: CreditNoteFilters | None = None,
        skip: int = 0,
        limit: int = 50,
        order_by: str | None = None,
        now: datetime | None = None,
    ) -> list[CreditNote]:
        """List visible credit notes with filters, sorting and pagination."""
        query = self._filtered(merchant_id, filters or CreditNoteFilters(), now)
        query = apply_order_by(query, CreditNote, order_by, SORTABLE_FIELDS)
        return query.offset(skip).limit(limit).all()

    def count(
        self,
        merchant_id: str,
        filters: CreditNoteFilters | None = None,
        now: datetime | None = None,
    ) -> int:
        """Count visible credit notes matching the same filters as ``get_all``."""
        query = self._filtered(merchant_id, filters or CreditNoteFilters(), now)
        return query.with_entities(func.count(CreditNote.id)).scalar() or 0

    def outstanding_balance_for_owner(
        self,
        merchant_id: str,
        owner_ref: str,
        currency: str | None = None,
    ) -> dict[str, tuple[Decimal, int]]:
        """Sum remaining balances per currency over an owner's live credit notes.

        Cancelled and soft-deleted notes are excluded; expired notes are not.
        """
        query = self._visible(merchant_id).filter(
            CreditNote.owner_ref == owner_ref,
            CreditNote.status != CreditNoteStatus.CANCELLED.value,
        )
        if currency:
            query = query.filter(CreditNote.currency == currency.upper())

        totals: dict[str, tuple[Decimal, int]] = {}
        for cn in query.all():
            total, count = totals.get(str(cn.currency), (Decimal("0"), 0))
            totals[str(cn.currency)] = (total + Decimal(str(cn.remaining_amount)), count + 1)
        return totals

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_instrument(
        self,
        *,
        merchant_id: str,
        note_number: str,
        owner_ref: str,
        original_amount: Decimal,
        currency: str,
        token: str,
        expires_at: datetime | None = None,
        reason: str | None = None,
        owner_name: str | None = None,
        owner_email: str | None = None,
        original_order_ref: str | None = None,
        created_at: datetime | None = None,
    ) -> CreditNote:
        """Insert a fresh instrument with its full balance.

        Raises:
            NoteNumberTakenError: another writer committed the same note number
                between allocation and this insert.
        """
        credit_note = CreditNote(
            merchant_id=merchant_id,
            note_number=note_number,
            owner_ref=owner_ref,
            owner_name=owner_name,
            owner_email=owner_email,
            original_amount=original_amount,
            remaining_amount=original_amount,
            currency=currency,
            status=CreditNoteStatus.ACTIVE.value,
            token=token,
            reason=reason,
            original_order_ref=original_order_ref,
            expires_at=expires_at,
            version=1,
        )
        if created_at is not None:
            credit_note.created_at = created_at  # type: ignore[assignment]
            credit_note.updated_at = created_at  # type: ignore[assignment]
        self.db.add(credit_note)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self.note_number_exists(note_number):
                raise NoteNumberTakenError(note_number) from None
            raise
        self.db.refresh(credit_note)
        return credit_note

    def apply_redemption(
        self,
        credit_note_id: UUID,
        merchant_id: str,
        amount: Decimal,
        external_ref: str | None = None,
        actor_ref: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        now: datetime | None = None,
    ) -> tuple[CreditNote, Redemption]:
        """Atomically debit ``amount`` and append its redemption record.

        Balance, status and the redemption row commit together or not at all.

        Raises:
            CreditNoteNotFoundError, CreditNoteExpiredError,
            CreditNoteNotRedeemableError, InvalidAmountError,
            InsufficientBalanceError, DuplicateRedemptionError,
            ConcurrencyConflictError, LedgerTimeoutError.
        """

        applied: list[Decimal] = []
        redemption_holder: list[Redemption] = []

        def attempt(credit_note: CreditNote) -> dict[str, Any]:
            debit = check_redeemable(credit_note, amount, now)
            if external_ref:
                self._check_not_duplicate(credit_note, external_ref)
            remaining = Decimal(str(credit_note.remaining_amount)) - debit
            status = (
                CreditNoteStatus.FULLY_REDEEMED
                if remaining == 0
                else CreditNoteStatus.PARTIALLY_REDEEMED
            )
            applied.append(debit)
            return {"remaining_amount": remaining, "status": status.value}

        def after_swap(credit_note: CreditNote, values: dict[str, Any]) -> None:
            redemption = Redemption(
                credit_note_id=credit_note.id,
                amount=applied[-1],
                balance_after=values["remaining_amount"],
                external_ref=external_ref,
                actor_ref=actor_ref,
            )
            self.db.add(redemption)
            redemption_holder.append(redemption)

        try:
            credit_note = self._write_with_retry(
                credit_note_id,
                merchant_id,
                attempt,
                after_swap=after_swap,
                timeout=timeout,
                max_attempts=max_attempts,
            )
        except IntegrityError:
            # A concurrent writer recorded the same external_ref first.
            if external_ref:
                existing = self._find_redemption(credit_note_id, external_ref)
                if existing is not None:
                    raise DuplicateRedemptionError(
                        f"Redemption for external reference {external_ref!r} already applied",
                        redemption_id=str(existing.id),
                    ) from None
            raise

        redemption = redemption_holder[-1]
        self.db.refresh(redemption)
        logger.info(
            "Redeemed %s from %s; remaining %s",
            redemption.amount,
            credit_note.note_number,
            credit_note.remaining_amount,
        )
        return credit_note, redemption

    def cancel(
        self,
        credit_note_id: UUID,
        merchant_id: str,
        timeout: float | None = None,
    ) -> CreditNote:
        """Cancel an active or partially redeemed note, freezing its balance."""

        def attempt(credit_note: CreditNote) -> dict[str, Any]:
            if CreditNoteStatus(str(credit_note.status)) not in REDEEMABLE_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot cancel a credit note that is {credit_note.status}"
                )
            return {"status": CreditNoteStatus.CANCELLED.value, "cancelled_at": utc_now()}

        credit_note = self._write_with_retry(credit_note_id, merchant_id, attempt, timeout=timeout)
        logger.info("Cancelled credit note %s", credit_note.note_number)
        return credit_note

    def soft_delete(
        self,
        credit_note_id: UUID,
        merchant_id: str,
        timeout: float | None = None,
    ) -> CreditNote:
        """Hide a non-terminal note from every read; the row is kept for audit."""

        def attempt(credit_note: CreditNote) -> dict[str, Any]:
            if credit_note.effective_status in (
                CreditNoteStatus.CANCELLED,
                CreditNoteStatus.FULLY_REDEEMED,
            ):
                raise InvalidTransitionError(
                    f"Cannot delete a credit note that is {credit_note.effective_status.value}"
                )
            return {"status": CreditNoteStatus.DELETED.value, "deleted_at": utc_now()}

        credit_note = self._write_with_retry(credit_note_id, merchant_id, attempt, timeout=timeout)
        logger.info("Deleted credit note %s", credit_note.note_number)
        return credit_note

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_update(self, credit_note_id: UUID, merchant_id: str) -> CreditNote:
        credit_note = (
            self.db.query(CreditNote)
            .filter(CreditNote.id == credit_note_id, CreditNote.merchant_id == merchant_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if credit_note is None or credit_note.deleted_at is not None:
            raise CreditNoteNotFoundError("Credit note not found")
        return credit_note

    def _compare_and_swap(
        self, credit_note_id: UUID, seen_version: int, values: dict[str, Any]
    ) -> bool:
        result = self.db.execute(
            update(CreditNote)
            .where(CreditNote.id == credit_note_id, CreditNote.version == seen_version)
            .values(version=seen_version + 1, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    def _write_with_retry(
        self,
        credit_note_id: UUID,
        merchant_id: str,
        attempt: Callable[[CreditNote], dict[str, Any]],
        after_swap: Callable[[CreditNote, dict[str, Any]], None] | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
    ) -> CreditNote:
        """Run read, validate, compare-and-swap and commit with bounded retries.

        ``attempt`` validates the freshly read row and returns the column values
        to write; it raises a ``LedgerError`` to abort. ``after_swap`` adds rows
        that must commit in the same transaction as the swap.
        """
        attempts = max_attempts or settings.LEDGER_MAX_RETRIES
        deadline = time.monotonic() + timeout if timeout else None

        for attempt_number in range(1, attempts + 1):
            if deadline is not None and time.monotonic() >= deadline:
                self.db.rollback()
                raise LedgerTimeoutError(
                    "Ledger write did not complete within the timeout", timeout=timeout
                )
            try:
                if deadline is not None:
                    apply_statement_timeout(self.db, deadline - time.monotonic())
                credit_note = self._load_for_update(credit_note_id, merchant_id)
                values = attempt(credit_note)
                if not self._compare_and_swap(credit_note_id, int(credit_note.version), values):
                    self.db.rollback()
                    logger.warning(
                        "Concurrent update on credit note %s (attempt %d/%d)",
                        credit_note_id,
                        attempt_number,
                        attempts,
                    )
                    continue
                if after_swap is not None:
                    after_swap(credit_note, values)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(credit_note)
            return credit_note

        raise ConcurrencyConflictError(
            "Credit note was modified concurrently; retry the request", attempts=attempts
        )

    def _find_redemption(self, credit_note_id: UUID, external_ref: str) -> Redemption | None:
        return (
            self.db.query(Redemption)
            .filter(
                Redemption.credit_note_id == credit_note_id,
                Redemption.external_ref == external_ref,
            )
            .first()
        )

    def _check_not_duplicate(self, credit_note: CreditNote, external_ref: str) -> None:
        existing = self._find_redemption(credit_note.id, external_ref)  # type: ignore[arg-type]
        if existing is not None:
            raise DuplicateRedemptionError(
                f"Redemption for external reference {external_ref!r} already applied",
                redemption_id=str(existing.id),
            )

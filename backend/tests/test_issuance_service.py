"""Tests for IssuanceService business logic."""

import threading
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from creditledger.core.database import get_db
from creditledger.models.credit_note import CreditNoteStatus
from creditledger.models.shared import as_utc
from creditledger.repositories.credit_note_repository import (
    CreditNoteRepository,
    NoteNumberTakenError,
)
from creditledger.repositories.merchant_settings_repository import MerchantSettingsRepository
from creditledger.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from creditledger.repositories.webhook_repository import WebhookRepository
from creditledger.schemas.merchant_settings import MerchantSettingsUpdate
from creditledger.schemas.webhook import WebhookEndpointCreate
from creditledger.services.errors import (
    CreditNoteNotFoundError,
    GenerationExhaustedError,
    InvalidAmountError,
    InvalidTransitionError,
)
from creditledger.services.issuance_service import IssuanceService
from creditledger.services.note_number import NoteNumberGenerator
from creditledger.services.token_codec import TokenCodec
from tests.conftest import MERCHANT_ID, OTHER_MERCHANT_ID

NOW = datetime(2026, 10, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def db_session():
    """Create a database session for direct service testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def codec():
    return TokenCodec(secret="issuance-secret", max_age_hours=0)


@pytest.fixture
def service(db_session, codec):
    return IssuanceService(db_session, codec=codec)


class TestIssue:
    def test_issue_defaults(self, service, codec):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("50.00"), now=NOW)

        assert cn.merchant_id == MERCHANT_ID
        assert cn.owner_ref == "cust-1"
        assert cn.original_amount == Decimal("50.00")
        assert cn.remaining_amount == Decimal("50.00")
        assert cn.currency == "USD"
        assert cn.status == CreditNoteStatus.ACTIVE.value
        assert cn.expires_at is None
        assert cn.note_number.startswith("CN-2026-")

        summary = codec.decode(str(cn.token))
        assert summary.note_number == cn.note_number
        assert summary.amount == Decimal("50.00")
        assert summary.owner_ref == "cust-1"
        assert summary.merchant_id == MERCHANT_ID
        assert summary.issued_at == NOW

    def test_issue_with_details(self, service):
        cn = service.issue(
            MERCHANT_ID,
            "cust-2",
            Decimal("12.3456"),
            currency="eur",
            expires_in_days=30,
            reason="Late delivery",
            owner_name="Dana",
            owner_email="dana@example.com",
            original_order_ref="ORD-77",
            now=NOW,
        )
        assert cn.currency == "EUR"
        assert cn.original_amount == Decimal("12.3456")
        assert as_utc(cn.expires_at) == NOW + timedelta(days=30)
        assert cn.reason == "Late delivery"
        assert cn.owner_name == "Dana"
        assert cn.owner_email == "dana@example.com"
        assert cn.original_order_ref == "ORD-77"

    def test_negative_expiry_issues_expired_note(self, service):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("100.00"), expires_in_days=-1)
        assert cn.status == CreditNoteStatus.ACTIVE.value
        assert cn.effective_status == CreditNoteStatus.EXPIRED

    @pytest.mark.parametrize("amount", ["0", "-10", "1.23456"])
    def test_invalid_amount(self, service, db_session, amount):
        with pytest.raises(InvalidAmountError):
            service.issue(MERCHANT_ID, "cust-1", Decimal(amount))
        assert CreditNoteRepository(db_session).count(MERCHANT_ID) == 0

    def test_merchant_defaults(self, service, db_session):
        MerchantSettingsRepository(db_session).upsert(
            MERCHANT_ID,
            MerchantSettingsUpdate(note_prefix="SHOP", default_expiry_days=90, currency="gbp"),
        )
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("10.00"), now=NOW)
        assert cn.note_number.startswith("SHOP-2026-")
        assert cn.currency == "GBP"
        assert as_utc(cn.expires_at) == NOW + timedelta(days=90)

        other = service.issue(OTHER_MERCHANT_ID, "cust-1", Decimal("10.00"), now=NOW)
        assert other.note_number.startswith("CN-2026-")
        assert other.currency == "USD"
        assert other.expires_at is None

    def test_explicit_zero_expiry_overrides_merchant_default(self, service, db_session):
        MerchantSettingsRepository(db_session).upsert(
            MERCHANT_ID, MerchantSettingsUpdate(default_expiry_days=90)
        )
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("10.00"), expires_in_days=0)
        assert cn.expires_at is None

    def test_thousand_issuances_have_distinct_numbers(self, service, db_session):
        numbers = {
            service.issue(MERCHANT_ID, f"cust-{i}", Decimal("1.00"), now=NOW).note_number
            for i in range(1000)
        }
        assert len(numbers) == 1000
        assert CreditNoteRepository(db_session).count(MERCHANT_ID) == 1000

    def test_threaded_issuances_have_distinct_numbers(self, file_session_factory, codec):
        workers = 8
        per_worker = 125
        barrier = threading.Barrier(workers)
        numbers: list[str] = []
        failures: list[Exception] = []
        lock = threading.Lock()

        def issue_batch(worker: int):
            db = file_session_factory()
            try:
                service = IssuanceService(db, codec=codec)
                barrier.wait()
                for i in range(per_worker):
                    cn = service.issue(
                        MERCHANT_ID, f"cust-{worker}-{i}", Decimal("1.00"), now=NOW
                    )
                    with lock:
                        numbers.append(str(cn.note_number))
            except Exception as exc:
                with lock:
                    failures.append(exc)
            finally:
                db.close()

        threads = [threading.Thread(target=issue_batch, args=(w,)) for w in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert failures == []
        assert len(numbers) == workers * per_worker
        assert len(set(numbers)) == workers * per_worker

        session = file_session_factory()
        try:
            assert CreditNoteRepository(session).count(MERCHANT_ID) == workers * per_worker
        finally:
            session.close()

    def test_unique_violation_at_insert_reallocates(self, db_session, codec):
        sequence = iter([7, 7, 8])
        generator = NoteNumberGenerator(db_session, randbelow=lambda _: next(sequence))
        service = IssuanceService(db_session, codec=codec, generator=generator)
        first = service.issue(MERCHANT_ID, "cust-1", Decimal("5.00"), now=NOW)
        assert first.note_number == "CN-2026-0007"

        # The existence check misses the committed row, so only the unique
        # constraint catches the collision.
        with patch.object(
            CreditNoteRepository, "note_number_exists", side_effect=[False, True, False]
        ):
            second = service.issue(MERCHANT_ID, "cust-2", Decimal("5.00"), now=NOW)
        assert second.note_number == "CN-2026-0008"
        assert CreditNoteRepository(db_session).count(MERCHANT_ID) == 2

    def test_trailing_zeros_are_accepted(self, service):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("12.500000"))
        assert cn.original_amount == Decimal("12.5")
        assert cn.remaining_amount == Decimal("12.5")

    def test_insert_race_reallocates(self, service, db_session):
        real_insert = CreditNoteRepository.insert_instrument
        calls = []

        def lose_first_race(self, **kwargs):
            if not calls:
                calls.append(kwargs["note_number"])
                raise NoteNumberTakenError(kwargs["note_number"])
            return real_insert(self, **kwargs)

        with patch.object(CreditNoteRepository, "insert_instrument", lose_first_race):
            cn = service.issue(MERCHANT_ID, "cust-1", Decimal("5.00"))
        assert len(calls) == 1
        assert cn.remaining_amount == Decimal("5.00")

    def test_insert_race_is_bounded(self, service, db_session):
        with (
            patch.object(
                CreditNoteRepository,
                "insert_instrument",
                side_effect=NoteNumberTakenError("CN-2026-0001"),
            ) as insert,
            pytest.raises(GenerationExhaustedError),
        ):
            service.issue(MERCHANT_ID, "cust-1", Decimal("5.00"))
        assert insert.call_count == 10

    def test_issue_queues_webhook(self, service, db_session):
        WebhookEndpointRepository(db_session).create(
            WebhookEndpointCreate(url="https://hooks.example.com/ledger"), MERCHANT_ID
        )
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("5.00"))
        webhooks = service.recorded_webhooks
        assert [w.webhook_type for w in webhooks] == ["credit_note.issued"]
        assert webhooks[0].object_id == cn.id
        assert webhooks[0].payload["note_number"] == cn.note_number
        assert webhooks[0].payload["remaining_amount"] == str(cn.remaining_amount)

    def test_webhook_failure_does_not_undo_issue(self, service, db_session):
        with patch.object(
            WebhookRepository, "create", side_effect=RuntimeError("queue down")
        ):
            WebhookEndpointRepository(db_session).create(
                WebhookEndpointCreate(url="https://hooks.example.com/ledger"), MERCHANT_ID
            )
            cn = service.issue(MERCHANT_ID, "cust-1", Decimal("5.00"))
        assert CreditNoteRepository(db_session).get_by_id(cn.id, MERCHANT_ID) is not None


class TestCancelAndDelete:
    def test_cancel(self, service, db_session):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        cancelled = service.cancel(MERCHANT_ID, cn.id, actor_ref="clerk")
        assert cancelled.status == CreditNoteStatus.CANCELLED.value
        assert cancelled.remaining_amount == Decimal("40.00")

    def test_cancel_other_merchant(self, service):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        with pytest.raises(CreditNoteNotFoundError):
            service.cancel(OTHER_MERCHANT_ID, cn.id)

    def test_delete_then_cancel(self, service):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        service.delete(MERCHANT_ID, cn.id)
        with pytest.raises(CreditNoteNotFoundError):
            service.cancel(MERCHANT_ID, cn.id)

    def test_delete_cancelled(self, service):
        cn = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        service.cancel(MERCHANT_ID, cn.id)
        with pytest.raises(InvalidTransitionError):
            service.delete(MERCHANT_ID, cn.id)

    def test_lifecycle_webhooks(self, service, db_session):
        WebhookEndpointRepository(db_session).create(
            WebhookEndpointCreate(url="https://hooks.example.com/ledger"), MERCHANT_ID
        )
        first = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        service.cancel(MERCHANT_ID, first.id)
        second = service.issue(MERCHANT_ID, "cust-1", Decimal("40.00"))
        service.delete(MERCHANT_ID, second.id)

        assert [(w.object_id, w.webhook_type) for w in service.recorded_webhooks] == [
            (first.id, "credit_note.issued"),
            (first.id, "credit_note.cancelled"),
            (second.id, "credit_note.issued"),
            (second.id, "credit_note.deleted"),
        ]

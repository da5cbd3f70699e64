"""Tests for WebhookService: event recording, signing, delivery and retries."""

import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import httpx
import pytest

from creditledger.core.config import settings
from creditledger.core.database import get_db
from creditledger.models.shared import utc_now
from creditledger.models.webhook import Webhook
from creditledger.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from creditledger.repositories.webhook_repository import WebhookRepository
from creditledger.schemas.webhook import WebhookEndpointCreate
from creditledger.services.issuance_service import IssuanceService
from creditledger.services.webhook_service import (
    WEBHOOK_EVENT_TYPES,
    WebhookService,
    credit_note_payload,
    generate_hmac_signature,
)
from tests.conftest import MERCHANT_ID, OTHER_MERCHANT_ID


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
def service(db_session):
    return WebhookService(db_session)


@pytest.fixture
def active_endpoint(db_session):
    return WebhookEndpointRepository(db_session).create(
        WebhookEndpointCreate(url="https://hooks.example.com/ledger"), MERCHANT_ID
    )


@pytest.fixture
def credit_note(db_session):
    return IssuanceService(db_session).issue(MERCHANT_ID, "cust-1", Decimal("50.00"))


def mock_http_client(status_code: int = 200, text: str = "OK"):
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.text = text
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    mock_client.post.return_value = mock_response
    return mock_client


def test_hmac_signature_is_stable():
    first = generate_hmac_signature(b'{"a":1}', "secret")
    assert first == generate_hmac_signature(b'{"a":1}', "secret")
    assert first != generate_hmac_signature(b'{"a":2}', "secret")
    assert len(first) == 64


class TestSendWebhook:
    def test_one_per_active_endpoint(self, service, db_session, active_endpoint):
        WebhookEndpointRepository(db_session).create(
            WebhookEndpointCreate(url="https://other.example.com/hook"), MERCHANT_ID
        )
        WebhookEndpointRepository(db_session).create(
            WebhookEndpointCreate(url="https://elsewhere.example.com/hook"), OTHER_MERCHANT_ID
        )
        webhooks = service.send_webhook(MERCHANT_ID, "credit_note.issued", payload={"x": 1})
        assert len(webhooks) == 2
        assert all(w.status == "pending" for w in webhooks)
        assert webhooks[0].payload == {"webhook_type": "credit_note.issued", "x": 1}

    def test_no_endpoints(self, service):
        assert service.send_webhook(MERCHANT_ID, "credit_note.issued") == []

    def test_unknown_type(self, service, active_endpoint):
        with pytest.raises(ValueError):
            service.send_webhook(MERCHANT_ID, "invoice.created")

    def test_event_types(self):
        assert set(WEBHOOK_EVENT_TYPES) == {
            "credit_note.issued",
            "credit_note.redeemed",
            "credit_note.cancelled",
            "credit_note.deleted",
        }


class TestNotify:
    def test_payload(self, credit_note):
        payload = credit_note_payload(credit_note)
        assert payload["credit_note_id"] == str(credit_note.id)
        assert payload["note_number"] == credit_note.note_number
        assert Decimal(payload["remaining_amount"]) == Decimal("50.00")
        assert payload["status"] == "active"
        assert "redemption" not in payload

    def test_notify_swallows_failures(self, service, credit_note, active_endpoint):
        with patch.object(service, "send_webhook", side_effect=RuntimeError("boom")):
            assert service.notify(MERCHANT_ID, "credit_note.issued", credit_note) == []

    def test_notify_records_event(self, service, credit_note, active_endpoint):
        webhooks = service.notify(MERCHANT_ID, "credit_note.cancelled", credit_note)
        assert len(webhooks) == 1
        assert webhooks[0].object_id == credit_note.id
        assert webhooks[0].webhook_type == "credit_note.cancelled"


class TestDeliverWebhook:
    def test_success_is_signed(self, service, db_session, active_endpoint):
        webhook = WebhookRepository(db_session).create(
            webhook_endpoint_id=active_endpoint.id,
            webhook_type="credit_note.issued",
            payload={"webhook_type": "credit_note.issued"},
        )
        mock_client = mock_http_client(200)
        with patch(
            "creditledger.services.webhook_service.httpx.Client", return_value=mock_client
        ):
            assert service.deliver_webhook(webhook.id) is True

        _, kwargs = mock_client.post.call_args
        body = kwargs["content"]
        assert json.loads(body) == {"webhook_type": "credit_note.issued"}
        headers = kwargs["headers"]
        assert headers["X-Ledger-Signature"] == generate_hmac_signature(
            body, settings.webhook_secret
        )
        assert headers["X-Ledger-Event"] == "credit_note.issued"
        assert headers["X-Ledger-Webhook-Id"] == str(webhook.id)

        updated = WebhookRepository(db_session).get_by_id(webhook.id)
        assert updated.status == "succeeded"
        assert updated.http_status == 200

    def test_rejected(self, service, db_session, active_endpoint):
        webhook = WebhookRepository(db_session).create(
            webhook_endpoint_id=active_endpoint.id,
            webhook_type="credit_note.issued",
            payload={},
        )
        with patch(
            "creditledger.services.webhook_service.httpx.Client",
            return_value=mock_http_client(500, "Internal Server Error"),
        ):
            assert service.deliver_webhook(webhook.id) is False

        updated = WebhookRepository(db_session).get_by_id(webhook.id)
        assert updated.status == "failed"
        assert updated.http_status == 500
        assert updated.response == "Internal Server Error"

    def test_connection_error(self, service, db_session, active_endpoint):
        webhook = WebhookRepository(db_session).create(
            webhook_endpoint_id=active_endpoint.id,
            webhook_type="credit_note.issued",
            payload={},
        )
        mock_client = mock_http_client()
        mock_client.post.side_effect = httpx.ConnectError("Connection refused")
        with patch(
            "creditledger.services.webhook_service.httpx.Client", return_value=mock_client
        ):
            assert service.deliver_webhook(webhook.id) is False

        updated = WebhookRepository(db_session).get_by_id(webhook.id)
        assert updated.status == "failed"
        assert "Connection refused" in updated.response

    def test_unknown_webhook(self, service):
        assert service.deliver_webhook(uuid4()) is False


class TestRetries:
    def _failed_webhook(self, db_session, endpoint, retries=0, last_retried_at=None):
        webhook = Webhook(
            webhook_endpoint_id=endpoint.id,
            webhook_type="credit_note.redeemed",
            payload={},
            status="failed",
            retries=retries,
            last_retried_at=last_retried_at,
        )
        db_session.add(webhook)
        db_session.commit()
        db_session.refresh(webhook)
        return webhook

    def test_retry_due(self, service, db_session, active_endpoint):
        webhook = self._failed_webhook(
            db_session, active_endpoint, retries=1, last_retried_at=utc_now() - timedelta(hours=1)
        )
        with patch(
            "creditledger.services.webhook_service.httpx.Client",
            return_value=mock_http_client(200),
        ):
            assert service.retry_failed_webhooks() == 1

        updated = WebhookRepository(db_session).get_by_id(webhook.id)
        assert updated.retries == 2
        assert updated.status == "succeeded"

    def test_backoff_not_elapsed(self, service, db_session, active_endpoint):
        self._failed_webhook(
            db_session, active_endpoint, retries=3, last_retried_at=utc_now() - timedelta(minutes=1)
        )
        assert service.retry_failed_webhooks() == 0

    def test_exhausted_retries_are_skipped(self, service, db_session, active_endpoint):
        self._failed_webhook(db_session, active_endpoint, retries=5)
        assert service.retry_failed_webhooks() == 0

    def test_stale_pending_are_delivered(self, service, db_session, active_endpoint):
        webhook = Webhook(
            webhook_endpoint_id=active_endpoint.id,
            webhook_type="credit_note.issued",
            payload={},
            created_at=utc_now() - timedelta(minutes=30),
        )
        db_session.add(webhook)
        fresh = Webhook(
            webhook_endpoint_id=active_endpoint.id,
            webhook_type="credit_note.issued",
            payload={},
        )
        db_session.add(fresh)
        db_session.commit()

        with patch(
            "creditledger.services.webhook_service.httpx.Client",
            return_value=mock_http_client(200),
        ):
            assert service.deliver_stale_pending_webhooks(older_than_minutes=5) == 1

        assert WebhookRepository(db_session).get_by_id(webhook.id).status == "succeeded"
        assert WebhookRepository(db_session).get_by_id(fresh.id).status == "pending"

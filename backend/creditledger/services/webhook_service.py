"""Webhook delivery service: the ledger's notification collaborator."""

import hashlib
import hmac
import json
import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from creditledger.core.config import settings
from creditledger.models.credit_note import CreditNote
from creditledger.models.redemption import Redemption
from creditledger.models.shared import as_utc, utc_now
from creditledger.models.webhook import Webhook
from creditledger.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from creditledger.repositories.webhook_repository import WebhookRepository

logger = logging.getLogger(__name__)

WEBHOOK_EVENT_TYPES = [
    "credit_note.issued",
    "credit_note.redeemed",
    "credit_note.cancelled",
    "credit_note.deleted",
]


def generate_hmac_signature(payload_bytes: bytes, secret: str) -> str:
    """Generate HMAC-SHA256 signature for a webhook payload."""
    return hmac.new(
        secret.encode("utf-8"),
        payload_bytes,
        hashlib.sha256,
    ).hexdigest()


def credit_note_payload(
    credit_note: CreditNote, redemption: Redemption | None = None
) -> dict[str, Any]:
    """Event body for a credit note, with the redemption when there is one."""
    payload: dict[str, Any] = {
        "credit_note_id": str(credit_note.id),
        "note_number": credit_note.note_number,
        "owner_ref": credit_note.owner_ref,
        "currency": credit_note.currency,
        "original_amount": str(credit_note.original_amount),
        "remaining_amount": str(credit_note.remaining_amount),
        "status": credit_note.effective_status.value,
    }
    if redemption is not None:
        payload["redemption"] = {
            "id": str(redemption.id),
            "amount": str(redemption.amount),
            "external_ref": redemption.external_ref,
            "actor_ref": redemption.actor_ref,
        }
    return payload


class WebhookService:
    """Service for webhook delivery and management."""

    def __init__(self, db: Session):
        self.db = db
        self.endpoint_repo = WebhookEndpointRepository(db)
        self.webhook_repo = WebhookRepository(db)

    def send_webhook(
        self,
        merchant_id: str,
        webhook_type: str,
        object_id: UUID | None = None,
        payload: dict[str, Any] | None = None,
    ) -> list[Webhook]:
        """Create pending webhook records for the merchant's active endpoints."""
        if webhook_type not in WEBHOOK_EVENT_TYPES:
            raise ValueError(f"Unknown webhook type {webhook_type!r}")

        webhooks: list[Webhook] = []
        for endpoint in self.endpoint_repo.get_active(merchant_id):
            webhook = self.webhook_repo.create(
                webhook_endpoint_id=endpoint.id,  # type: ignore[arg-type]
                webhook_type=webhook_type,
                object_id=object_id,
                payload={"webhook_type": webhook_type, **(payload or {})},
            )
            webhooks.append(webhook)
        return webhooks

    def notify(
        self,
        merchant_id: str,
        webhook_type: str,
        credit_note: CreditNote,
        redemption: Redemption | None = None,
    ) -> list[Webhook]:
        """Record a ledger event after its commit. Never raises.

        The ledger write has already committed, so a notification failure is
        logged and swallowed rather than surfaced to the caller.
        """
        try:
            return self.send_webhook(
                merchant_id=merchant_id,
                webhook_type=webhook_type,
                object_id=credit_note.id,  # type: ignore[arg-type]
                payload=credit_note_payload(credit_note, redemption),
            )
        except Exception:
            logger.exception(
                "Failed to record %s webhook for credit note %s",
                webhook_type,
                credit_note.id,
            )
            self.db.rollback()
            return []

    def deliver_webhook(self, webhook_id: UUID) -> bool:
        """POST one webhook to its endpoint and record the outcome."""
        webhook = self.webhook_repo.get_by_id(webhook_id)
        if not webhook:
            logger.error("Webhook %s not found", webhook_id)
            return False

        endpoint = self.endpoint_repo.get_by_id(webhook.webhook_endpoint_id)  # type: ignore[arg-type]
        if not endpoint:
            logger.error(
                "Endpoint %s not found for webhook %s",
                webhook.webhook_endpoint_id,
                webhook_id,
            )
            self.webhook_repo.mark_failed(webhook_id, response="Endpoint not found")
            return False

        payload_bytes = json.dumps(webhook.payload, default=str).encode("utf-8")
        signature = generate_hmac_signature(payload_bytes, settings.webhook_secret)
        headers = {
            "Content-Type": "application/json",
            "X-Ledger-Signature": signature,
            "X-Ledger-Signature-Algorithm": "hmac-sha256",
            "X-Ledger-Webhook-Id": str(webhook.id),
            "X-Ledger-Event": str(webhook.webhook_type),
        }

        try:
            with httpx.Client(timeout=30.0) as client:
                resp = client.post(str(endpoint.url), content=payload_bytes, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery failed for %s: %s", webhook_id, exc)
            self.webhook_repo.mark_failed(webhook_id, response=str(exc)[:1000])
            return False

        if 200 <= resp.status_code < 300:
            self.webhook_repo.mark_succeeded(webhook_id, resp.status_code)
            return True

        logger.warning(
            "Webhook %s rejected by %s with HTTP %d", webhook_id, endpoint.url, resp.status_code
        )
        self.webhook_repo.mark_failed(
            webhook_id,
            http_status=resp.status_code,
            response=resp.text[:1000] if resp.text else None,
        )
        return False

    def deliver_stale_pending_webhooks(self, older_than_minutes: int = 5) -> int:
        """Deliver pending webhooks whose delivery job was lost."""
        cutoff = utc_now() - timedelta(minutes=older_than_minutes)
        stale = self.webhook_repo.get_stale_pending(cutoff)
        for webhook in stale:
            self.deliver_webhook(webhook.id)  # type: ignore[arg-type]
        return len(stale)

    def retry_failed_webhooks(self) -> int:
        """Re-deliver failed webhooks whose backoff (2^retries minutes) has elapsed."""
        retried_count = 0
        now = utc_now()

        for webhook in self.webhook_repo.get_failed_for_retry():
            if webhook.last_retried_at:
                backoff = timedelta(minutes=2 ** int(webhook.retries))
                if now < as_utc(webhook.last_retried_at) + backoff:  # type: ignore[operator]
                    continue

            self.webhook_repo.increment_retry(webhook.id)  # type: ignore[arg-type]
            self.deliver_webhook(webhook.id)  # type: ignore[arg-type]
            retried_count += 1

        return retried_count

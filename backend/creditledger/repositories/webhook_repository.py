"""Webhook repository for data access."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from creditledger.models.shared import utc_now
from creditledger.models.webhook import Webhook


class WebhookRepository:
    """Repository for Webhook model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        webhook_endpoint_id: UUID,
        webhook_type: str,
        payload: dict[str, Any],
        object_id: UUID | None = None,
    ) -> Webhook:
        webhook = Webhook(
            webhook_endpoint_id=webhook_endpoint_id,
            webhook_type=webhook_type,
            object_id=object_id,
            payload=payload,
        )
        self.db.add(webhook)
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

    def get_by_id(self, webhook_id: UUID) -> Webhook | None:
        return self.db.query(Webhook).filter(Webhook.id == webhook_id).first()

    def get_stale_pending(self, created_before: datetime) -> list[Webhook]:
        """Pending webhooks whose delivery job was apparently never run."""
        return (
            self.db.query(Webhook)
            .filter(Webhook.status == "pending", Webhook.created_at < created_before)
            .order_by(Webhook.created_at.asc())
            .all()
        )

    def get_failed_for_retry(self) -> list[Webhook]:
        """Get failed webhooks eligible for retry (retries < max_retries)."""
        return (
            self.db.query(Webhook)
            .filter(
                Webhook.status == "failed",
                Webhook.retries < Webhook.max_retries,
            )
            .order_by(Webhook.created_at.asc())
            .all()
        )

    def mark_succeeded(self, webhook_id: UUID, http_status: int) -> Webhook | None:
        webhook = self.get_by_id(webhook_id)
        if not webhook:
            return None

        webhook.status = "succeeded"  # type: ignore[assignment]
        webhook.http_status = http_status  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

    def mark_failed(
        self,
        webhook_id: UUID,
        http_status: int | None = None,
        response: str | None = None,
    ) -> Webhook | None:
        webhook = self.get_by_id(webhook_id)
        if not webhook:
            return None

        webhook.status = "failed"  # type: ignore[assignment]
        webhook.http_status = http_status  # type: ignore[assignment]
        webhook.response = response  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

    def increment_retry(self, webhook_id: UUID) -> Webhook | None:
        """Increment the retry count and update last_retried_at."""
        webhook = self.get_by_id(webhook_id)
        if not webhook:
            return None

        webhook.retries = webhook.retries + 1  # type: ignore[assignment]
        webhook.last_retried_at = utc_now()  # type: ignore[assignment]
        webhook.status = "pending"  # type: ignore[assignment]
        self.db.commit()
        self.db.refresh(webhook)
        return webhook

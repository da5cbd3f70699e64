"""WebhookEndpoint repository for data access."""

from uuid import UUID

from sqlalchemy.orm import Session

from creditledger.models.webhook_endpoint import WebhookEndpoint
from creditledger.schemas.webhook import WebhookEndpointCreate


class WebhookEndpointRepository:
    """Repository for WebhookEndpoint model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, merchant_id: str, skip: int = 0, limit: int = 100) -> list[WebhookEndpoint]:
        return (
            self.db.query(WebhookEndpoint)
            .filter(WebhookEndpoint.merchant_id == merchant_id)
            .order_by(WebhookEndpoint.created_at.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_by_id(
        self, endpoint_id: UUID, merchant_id: str | None = None
    ) -> WebhookEndpoint | None:
        query = self.db.query(WebhookEndpoint).filter(WebhookEndpoint.id == endpoint_id)
        if merchant_id is not None:
            query = query.filter(WebhookEndpoint.merchant_id == merchant_id)
        return query.first()

    def get_active(self, merchant_id: str) -> list[WebhookEndpoint]:
        """Get the merchant's active webhook endpoints."""
        return (
            self.db.query(WebhookEndpoint)
            .filter(
                WebhookEndpoint.merchant_id == merchant_id,
                WebhookEndpoint.status == "active",
            )
            .order_by(WebhookEndpoint.created_at.desc())
            .all()
        )

    def create(self, data: WebhookEndpointCreate, merchant_id: str) -> WebhookEndpoint:
        endpoint = WebhookEndpoint(url=data.url, merchant_id=merchant_id)
        self.db.add(endpoint)
        self.db.commit()
        self.db.refresh(endpoint)
        return endpoint

    def delete(self, endpoint_id: UUID, merchant_id: str) -> bool:
        endpoint = self.get_by_id(endpoint_id, merchant_id)
        if not endpoint:
            return False

        self.db.delete(endpoint)
        self.db.commit()
        return True

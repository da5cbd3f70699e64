"""WebhookEndpoint model: where a merchant wants ledger events delivered."""

from sqlalchemy import Column, DateTime, String, func

from creditledger.core.database import Base
from creditledger.models.shared import UUIDType, generate_uuid


class WebhookEndpoint(Base):
    __tablename__ = "webhook_endpoints"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(String(255), nullable=False, index=True)
    url = Column(String(2048), nullable=False)
    status = Column(String(50), nullable=False, default="active")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

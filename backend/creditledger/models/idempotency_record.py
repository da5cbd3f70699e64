"""IdempotencyRecord model for replaying retried issuance and redemption calls."""

from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint, func

from creditledger.core.database import Base
from creditledger.models.shared import UUIDType, generate_uuid, utc_now


class IdempotencyRecord(Base):
    """Stores the response of a merchant's request under its Idempotency-Key."""

    __tablename__ = "idempotency_records"
    __table_args__ = (
        UniqueConstraint("merchant_id", "idempotency_key", name="uq_merchant_idempotency_key"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(String(255), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False, index=True)
    request_method = Column(String(10), nullable=False)
    request_path = Column(String(500), nullable=False)
    response_status = Column(Integer, nullable=True)
    response_body = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, server_default=func.now())

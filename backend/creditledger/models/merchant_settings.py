"""MerchantSettings model for per-merchant issuance defaults."""

from sqlalchemy import Column, DateTime, Integer, String, func

from creditledger.core.database import Base
from creditledger.models.shared import UUIDType, generate_uuid

DEFAULT_NOTE_PREFIX = "CN"


class MerchantSettings(Base):
    """Issuance defaults for one merchant: note prefix, expiry and currency."""

    __tablename__ = "merchant_settings"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    merchant_id = Column(String(255), unique=True, index=True, nullable=False)
    note_prefix = Column(String(10), nullable=False, default=DEFAULT_NOTE_PREFIX)
    default_expiry_days = Column(Integer, nullable=True)
    currency = Column(String(3), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

"""MerchantSettings repository for data access."""

from sqlalchemy.orm import Session

from creditledger.models.merchant_settings import MerchantSettings
from creditledger.schemas.merchant_settings import MerchantSettingsUpdate


class MerchantSettingsRepository:
    """Repository for MerchantSettings model."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_merchant(self, merchant_id: str) -> MerchantSettings | None:
        return (
            self.db.query(MerchantSettings)
            .filter(MerchantSettings.merchant_id == merchant_id)
            .first()
        )

    def upsert(self, merchant_id: str, data: MerchantSettingsUpdate) -> MerchantSettings:
        """Create the merchant's settings row or update the provided fields."""
        merchant_settings = self.get_by_merchant(merchant_id)
        if merchant_settings is None:
            merchant_settings = MerchantSettings(merchant_id=merchant_id)
            self.db.add(merchant_settings)

        update_data = data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(merchant_settings, key, value)

        self.db.commit()
        self.db.refresh(merchant_settings)
        return merchant_settings

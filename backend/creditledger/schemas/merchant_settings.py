"""MerchantSettings schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MerchantSettingsUpdate(BaseModel):
    note_prefix: str | None = Field(default=None, pattern=r"^[A-Z0-9]{2,10}$")
    default_expiry_days: int | None = Field(default=None, ge=1, le=3650)
    currency: str | None = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class MerchantSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    merchant_id: str
    note_prefix: str
    default_expiry_days: int | None = None
    currency: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

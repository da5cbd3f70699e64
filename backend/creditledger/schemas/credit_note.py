"""CreditNote schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from creditledger.models.credit_note import CreditNoteStatus


def reject_float(value: Any) -> Any:
    """Amounts must arrive as decimal strings or integers, never binary floats."""
    if isinstance(value, float):
        raise ValueError("amounts must be sent as decimal strings, not floats")
    return value


class CreditNoteIssue(BaseModel):
    owner_ref: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=4)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    expires_in_days: int | None = Field(default=None, ge=-3650, le=3650)
    reason: str | None = Field(default=None, max_length=2000)
    owner_name: str | None = Field(default=None, max_length=255)
    owner_email: str | None = Field(default=None, max_length=255)
    original_order_ref: str | None = Field(default=None, max_length=255)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_not_float(cls, value: Any) -> Any:
        return reject_float(value)


class CreditNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    note_number: str
    merchant_id: str
    owner_ref: str
    owner_name: str | None = None
    owner_email: str | None = None
    original_amount: Decimal
    remaining_amount: Decimal
    redeemed_amount: Decimal
    currency: str
    status: str
    effective_status: CreditNoteStatus
    token: str
    reason: str | None = None
    original_order_ref: str | None = None
    expires_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class CreditNotePageResponse(BaseModel):
    items: list[CreditNoteResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class CurrencyBalance(BaseModel):
    currency: str
    outstanding_amount: Decimal
    credit_note_count: int


class OwnerBalanceResponse(BaseModel):
    owner_ref: str
    balances: list[CurrencyBalance]

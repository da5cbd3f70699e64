"""Redemption schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from creditledger.models.credit_note import CreditNoteStatus
from creditledger.schemas.credit_note import CreditNoteResponse, reject_float


class RedemptionRequest(BaseModel):
    credential: str = Field(
        min_length=1,
        max_length=4096,
        description="Scanned token (JSON or legacy) or a note number.",
    )
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=4)
    external_ref: str | None = Field(default=None, max_length=255)
    timeout_seconds: float | None = Field(default=None, gt=0, le=60)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_not_float(cls, value: Any) -> Any:
        return reject_float(value)


class RedemptionValidateRequest(BaseModel):
    credential: str = Field(min_length=1, max_length=4096)
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=4)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_not_float(cls, value: Any) -> Any:
        return reject_float(value)


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    credit_note_id: UUID
    amount: Decimal
    balance_after: Decimal
    external_ref: str | None = None
    actor_ref: str | None = None
    created_at: datetime


class RedemptionResultResponse(BaseModel):
    applied_amount: Decimal
    remaining_balance: Decimal
    credit_note: CreditNoteResponse
    redemption: RedemptionResponse


class RedemptionValidationResponse(BaseModel):
    valid: bool
    credit_note_id: UUID | None = None
    note_number: str | None = None
    effective_status: CreditNoteStatus | None = None
    remaining_amount: Decimal | None = None
    max_redeemable: Decimal | None = None
    currency: str | None = None
    expires_at: datetime | None = None
    token_amount: Decimal | None = None
    legacy_token: bool = False
    error_code: str | None = None
    error_message: str | None = None

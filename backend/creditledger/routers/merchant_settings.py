"""Merchant settings API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from creditledger.core.auth import CallerIdentity, get_caller
from creditledger.core.config import settings
from creditledger.core.database import get_db
from creditledger.models.merchant_settings import MerchantSettings
from creditledger.repositories.merchant_settings_repository import MerchantSettingsRepository
from creditledger.schemas.merchant_settings import (
    MerchantSettingsResponse,
    MerchantSettingsUpdate,
)

router = APIRouter()


@router.get(
    "/",
    response_model=MerchantSettingsResponse,
    summary="Get merchant settings",
    responses={401: {"description": "Missing merchant identity"}},
)
async def get_merchant_settings(
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> MerchantSettings | MerchantSettingsResponse:
    """Current issuance defaults; unconfigured merchants get the service defaults."""
    merchant_settings = MerchantSettingsRepository(db).get_by_merchant(caller.merchant_id)
    if merchant_settings is None:
        return MerchantSettingsResponse(
            merchant_id=caller.merchant_id,
            note_prefix=settings.NOTE_NUMBER_PREFIX,
            currency=settings.DEFAULT_CURRENCY,
        )
    return merchant_settings


@router.put(
    "/",
    response_model=MerchantSettingsResponse,
    summary="Update merchant settings",
    responses={
        401: {"description": "Missing merchant identity"},
        422: {"description": "Validation error"},
    },
)
async def update_merchant_settings(
    data: MerchantSettingsUpdate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> MerchantSettings:
    """Update issuance defaults. Existing note numbers are never renamed."""
    return MerchantSettingsRepository(db).upsert(caller.merchant_id, data)

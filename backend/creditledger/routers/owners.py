"""Owner balance API endpoint."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from creditledger.core.auth import CallerIdentity, get_caller
from creditledger.core.database import get_db
from creditledger.schemas.credit_note import CurrencyBalance, OwnerBalanceResponse
from creditledger.services.credit_note_query_service import CreditNoteQueryService

router = APIRouter()


@router.get(
    "/{owner_ref}/balance",
    response_model=OwnerBalanceResponse,
    summary="Outstanding balance of an owner",
    responses={401: {"description": "Missing merchant identity"}},
)
async def get_owner_balance(
    owner_ref: str,
    currency: str | None = Query(default=None, min_length=3, max_length=3),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> OwnerBalanceResponse:
    """Sum of remaining balances per currency, excluding cancelled and deleted notes."""
    balance = CreditNoteQueryService(db).owner_balance(
        caller.merchant_id, owner_ref, currency=currency
    )
    return OwnerBalanceResponse(
        owner_ref=balance.owner_ref,
        balances=[
            CurrencyBalance(
                currency=b.currency,
                outstanding_amount=b.outstanding_amount,
                credit_note_count=b.credit_note_count,
            )
            for b in balance.balances
        ],
    )

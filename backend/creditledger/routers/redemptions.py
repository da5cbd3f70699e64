"""Redemption API endpoints used by checkout terminals and integrations."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from creditledger.core.auth import CallerIdentity, get_caller
from creditledger.core.config import settings
from creditledger.core.database import get_db
from creditledger.core.http_errors import ledger_http_error
from creditledger.core.idempotency import (
    IdempotencyResult,
    check_idempotency,
    record_idempotency_response,
    release_idempotency_key,
)
from creditledger.core.rate_limiter import RateLimiter
from creditledger.routers.credit_notes import schedule_deliveries
from creditledger.schemas.credit_note import CreditNoteResponse
from creditledger.schemas.redemption import (
    RedemptionRequest,
    RedemptionResponse,
    RedemptionResultResponse,
    RedemptionValidateRequest,
    RedemptionValidationResponse,
)
from creditledger.services.errors import LedgerError
from creditledger.services.redemption_service import RedemptionService

router = APIRouter()

# Module-level rate limiter instance for redemption pre-checks
validation_rate_limiter = RateLimiter(
    max_requests=settings.RATE_LIMIT_VALIDATIONS_PER_MINUTE,
    window_seconds=60,
)


def _check_rate_limit(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    """Dependency that limits how fast one merchant can probe credentials."""
    if not validation_rate_limiter.is_allowed(caller.merchant_id):
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Maximum "
            f"{settings.RATE_LIMIT_VALIDATIONS_PER_MINUTE} validations per minute.",
            headers={"Retry-After": "60"},
        )
    return caller


@router.post(
    "/",
    response_model=RedemptionResultResponse,
    status_code=201,
    summary="Redeem credit note",
    responses={
        401: {"description": "Missing merchant identity"},
        404: {"description": "Credit note not found"},
        409: {"description": "Not redeemable, duplicate or concurrent redemption"},
        410: {"description": "Credit note expired"},
        422: {"description": "Invalid amount, insufficient balance or bad token"},
        504: {"description": "Ledger write timed out"},
    },
)
async def redeem(
    data: RedemptionRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> RedemptionResultResponse | JSONResponse:
    """Redeem part or all of a credit note.

    ``credential`` is a scanned token or a note number. Without ``amount`` the
    whole remaining balance is redeemed. An ``external_ref`` can only be used
    once per credit note; the ``Idempotency-Key`` header replays the original
    response for a retried request.
    """
    idempotency = check_idempotency(request, db, caller.merchant_id)
    if isinstance(idempotency, JSONResponse):
        return idempotency

    service = RedemptionService(db)
    try:
        result = service.redeem(
            merchant_id=caller.merchant_id,
            credential=data.credential,
            requested_amount=data.amount,
            external_ref=data.external_ref,
            actor_ref=caller.actor_ref,
            timeout=data.timeout_seconds,
        )
    except LedgerError as exc:
        release_idempotency_key(db, caller.merchant_id, idempotency)
        raise ledger_http_error(exc) from exc

    schedule_deliveries(background_tasks, service.recorded_webhooks)

    body = RedemptionResultResponse(
        applied_amount=result.applied_amount,
        remaining_balance=result.new_remaining_balance,
        credit_note=CreditNoteResponse.model_validate(result.credit_note),
        redemption=RedemptionResponse.model_validate(result.redemption),
    )
    if isinstance(idempotency, IdempotencyResult):
        record_idempotency_response(
            db, caller.merchant_id, idempotency.key, 201, body.model_dump(mode="json")
        )
    return body


@router.post(
    "/validate",
    response_model=RedemptionValidationResponse,
    summary="Check a redemption without applying it",
    responses={
        401: {"description": "Missing merchant identity"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def validate_redemption(
    data: RedemptionValidateRequest,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(_check_rate_limit),
) -> RedemptionValidationResponse:
    """Report whether a redemption would currently succeed.

    Always answers 200; ``valid`` and ``error_code`` carry the verdict. The
    answer can change by the time the redemption is submitted.
    """
    validation = RedemptionService(db).validate(
        caller.merchant_id, data.credential, requested_amount=data.amount
    )
    credit_note = validation.credit_note
    return RedemptionValidationResponse(
        valid=validation.valid,
        credit_note_id=credit_note.id if credit_note else None,  # type: ignore[arg-type]
        note_number=str(credit_note.note_number) if credit_note else None,
        effective_status=validation.effective_status,
        remaining_amount=credit_note.remaining_amount if credit_note else None,  # type: ignore[arg-type]
        max_redeemable=validation.max_redeemable,
        currency=str(credit_note.currency) if credit_note else None,
        expires_at=credit_note.expires_at if credit_note else None,  # type: ignore[arg-type]
        token_amount=validation.token.amount if validation.token else None,
        legacy_token=bool(validation.token and validation.token.legacy),
        error_code=validation.error.code if validation.error else None,
        error_message=validation.error.message if validation.error else None,
    )

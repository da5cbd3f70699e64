"""CreditNote API endpoints."""

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from creditledger.core.auth import CallerIdentity, get_caller
from creditledger.core.database import get_db
from creditledger.core.http_errors import ledger_http_error
from creditledger.core.idempotency import (
    IdempotencyResult,
    check_idempotency,
    record_idempotency_response,
    release_idempotency_key,
)
from creditledger.models.credit_note import CreditNote, CreditNoteStatus
from creditledger.models.redemption import Redemption
from creditledger.models.webhook import Webhook
from creditledger.schemas.credit_note import (
    CreditNoteIssue,
    CreditNotePageResponse,
    CreditNoteResponse,
)
from creditledger.schemas.redemption import RedemptionResponse
from creditledger.services.credit_note_query_service import CreditNoteQueryService
from creditledger.services.errors import LedgerError
from creditledger.services.issuance_service import IssuanceService
from creditledger.tasks import enqueue_webhook_deliveries

logger = logging.getLogger(__name__)

router = APIRouter()

LEDGER_ERRORS = {
    404: {"description": "Credit note not found"},
    409: {"description": "Transition not allowed or concurrent modification"},
}


def schedule_deliveries(background_tasks: BackgroundTasks, webhooks: list[Webhook]) -> None:
    """Queue delivery of the webhooks this request just recorded."""
    if webhooks:
        background_tasks.add_task(enqueue_webhook_deliveries, [str(w.id) for w in webhooks])


@router.post(
    "/",
    response_model=CreditNoteResponse,
    status_code=201,
    summary="Issue credit note",
    responses={
        401: {"description": "Missing merchant identity"},
        422: {"description": "Validation error"},
        503: {"description": "No unique note number could be allocated"},
    },
)
async def issue_credit_note(
    data: CreditNoteIssue,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> CreditNote | JSONResponse:
    """Issue a new credit note with its full balance remaining.

    Supports the ``Idempotency-Key`` header: a retried request with the same
    key returns the originally issued note instead of issuing a second one.
    """
    idempotency = check_idempotency(request, db, caller.merchant_id)
    if isinstance(idempotency, JSONResponse):
        return idempotency

    service = IssuanceService(db)
    try:
        credit_note = service.issue(
            merchant_id=caller.merchant_id,
            owner_ref=data.owner_ref,
            original_amount=data.amount,
            currency=data.currency,
            expires_in_days=data.expires_in_days,
            reason=data.reason,
            actor_ref=caller.actor_ref,
            owner_name=data.owner_name,
            owner_email=data.owner_email,
            original_order_ref=data.original_order_ref,
        )
    except LedgerError as exc:
        release_idempotency_key(db, caller.merchant_id, idempotency)
        raise ledger_http_error(exc) from exc

    schedule_deliveries(background_tasks, service.recorded_webhooks)

    if isinstance(idempotency, IdempotencyResult):
        body = CreditNoteResponse.model_validate(credit_note).model_dump(mode="json")
        record_idempotency_response(db, caller.merchant_id, idempotency.key, 201, body)

    return credit_note


@router.get(
    "/",
    response_model=CreditNotePageResponse,
    summary="List credit notes",
    responses={401: {"description": "Missing merchant identity"}},
)
async def list_credit_notes(
    response: Response,
    search: str | None = Query(default=None, max_length=255),
    status: list[CreditNoteStatus] | None = Query(default=None),
    owner_ref: str | None = None,
    currency: str | None = Query(default=None, min_length=3, max_length=3),
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    order_by: str | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> CreditNotePageResponse:
    """List credit notes, filtered on their effective status."""
    service = CreditNoteQueryService(db)
    page = service.list_credit_notes(
        caller.merchant_id,
        search=search,
        statuses=status,
        owner_ref=owner_ref,
        currency=currency,
        created_from=created_from,
        created_to=created_to,
        order_by=order_by,
        limit=limit,
        offset=offset,
    )
    response.headers["X-Total-Count"] = str(page.total)
    return CreditNotePageResponse(
        items=[CreditNoteResponse.model_validate(cn) for cn in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.get(
    "/lookup",
    response_model=CreditNoteResponse,
    summary="Look up credit note by id, note number or token",
    responses={
        401: {"description": "Missing merchant identity"},
        404: {"description": "Credit note not found"},
        422: {"description": "Token could not be verified"},
    },
)
async def lookup_credit_note(
    code: str = Query(min_length=1, max_length=4096),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> CreditNote:
    """Resolve whatever a terminal scanned or a clerk typed."""
    try:
        return CreditNoteQueryService(db).lookup(caller.merchant_id, code)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc


@router.get(
    "/{credit_note_id}",
    response_model=CreditNoteResponse,
    summary="Get credit note",
    responses={
        401: {"description": "Missing merchant identity"},
        404: {"description": "Credit note not found"},
    },
)
async def get_credit_note(
    credit_note_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> CreditNote:
    try:
        return CreditNoteQueryService(db).get_credit_note(caller.merchant_id, credit_note_id)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc


@router.get(
    "/{credit_note_id}/redemptions",
    response_model=list[RedemptionResponse],
    summary="List redemptions of a credit note",
    responses={
        401: {"description": "Missing merchant identity"},
        404: {"description": "Credit note not found"},
    },
)
async def list_credit_note_redemptions(
    credit_note_id: UUID,
    response: Response,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> list[Redemption]:
    """Redemption history, oldest first."""
    service = CreditNoteQueryService(db)
    try:
        redemptions = service.list_redemptions(
            caller.merchant_id, credit_note_id, skip=skip, limit=limit
        )
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    response.headers["X-Total-Count"] = str(
        service.redemption_repo.count_for_credit_note(credit_note_id)
    )
    return redemptions


@router.post(
    "/{credit_note_id}/cancel",
    response_model=CreditNoteResponse,
    summary="Cancel credit note",
    responses={401: {"description": "Missing merchant identity"}, **LEDGER_ERRORS},
)
async def cancel_credit_note(
    credit_note_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> CreditNote:
    """Cancel an active or partially redeemed credit note, freezing its balance."""
    service = IssuanceService(db)
    try:
        credit_note = service.cancel(
            caller.merchant_id, credit_note_id, actor_ref=caller.actor_ref
        )
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    schedule_deliveries(background_tasks, service.recorded_webhooks)
    return credit_note


@router.delete(
    "/{credit_note_id}",
    status_code=204,
    summary="Delete credit note",
    responses={401: {"description": "Missing merchant identity"}, **LEDGER_ERRORS},
)
async def delete_credit_note(
    credit_note_id: UUID,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> Response:
    """Soft-delete a credit note. It is kept for audit and hidden from every view."""
    service = IssuanceService(db)
    try:
        service.delete(caller.merchant_id, credit_note_id, actor_ref=caller.actor_ref)
    except LedgerError as exc:
        raise ledger_http_error(exc) from exc
    schedule_deliveries(background_tasks, service.recorded_webhooks)
    return Response(status_code=204)

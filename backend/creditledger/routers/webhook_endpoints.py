"""Webhook endpoint API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from creditledger.core.auth import CallerIdentity, get_caller
from creditledger.core.database import get_db
from creditledger.models.webhook_endpoint import WebhookEndpoint
from creditledger.repositories.webhook_endpoint_repository import WebhookEndpointRepository
from creditledger.schemas.webhook import WebhookEndpointCreate, WebhookEndpointResponse

router = APIRouter()


@router.post(
    "/",
    response_model=WebhookEndpointResponse,
    status_code=201,
    summary="Create webhook endpoint",
    responses={
        401: {"description": "Missing merchant identity"},
        422: {"description": "Validation error"},
    },
)
async def create_webhook_endpoint(
    data: WebhookEndpointCreate,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> WebhookEndpoint:
    """Register a URL to receive credit note events."""
    return WebhookEndpointRepository(db).create(data, caller.merchant_id)


@router.get(
    "/",
    response_model=list[WebhookEndpointResponse],
    summary="List webhook endpoints",
    responses={401: {"description": "Missing merchant identity"}},
)
async def list_webhook_endpoints(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> list[WebhookEndpoint]:
    return WebhookEndpointRepository(db).get_all(caller.merchant_id, skip=skip, limit=limit)


@router.delete(
    "/{endpoint_id}",
    status_code=204,
    summary="Delete webhook endpoint",
    responses={
        401: {"description": "Missing merchant identity"},
        404: {"description": "Webhook endpoint not found"},
    },
)
async def delete_webhook_endpoint(
    endpoint_id: UUID,
    db: Session = Depends(get_db),
    caller: CallerIdentity = Depends(get_caller),
) -> Response:
    if not WebhookEndpointRepository(db).delete(endpoint_id, caller.merchant_id):
        raise HTTPException(status_code=404, detail="Webhook endpoint not found")
    return Response(status_code=204)

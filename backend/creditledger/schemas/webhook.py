"""Webhook and WebhookEndpoint schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class WebhookEndpointCreate(BaseModel):
    url: str = Field(max_length=2048, pattern=r"^https?://")


class WebhookEndpointResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    url: str
    status: str
    created_at: datetime
    updated_at: datetime


class WebhookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    webhook_endpoint_id: UUID
    webhook_type: str
    object_id: UUID | None = None
    payload: dict[str, Any]
    status: str
    retries: int
    max_retries: int
    last_retried_at: datetime | None = None
    http_status: int | None = None
    response: str | None = None
    created_at: datetime
    updated_at: datetime

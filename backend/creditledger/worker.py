import logging
from typing import Any
from uuid import UUID

from arq import cron

from creditledger.core.config import settings
from creditledger.core.database import SessionLocal
from creditledger.repositories.idempotency_repository import IdempotencyRepository
from creditledger.services.webhook_service import WebhookService
from creditledger.tasks import redis_settings

logger = logging.getLogger(__name__)


async def deliver_webhook_task(ctx: dict[str, Any], webhook_id: str) -> bool:
    """Background task: deliver one webhook right after its ledger event."""
    db = SessionLocal()
    try:
        return WebhookService(db).deliver_webhook(UUID(webhook_id))
    finally:
        db.close()


async def retry_failed_webhooks_task(ctx: dict[str, Any]) -> int:
    """Background task: retry failed webhooks with exponential backoff.

    Runs every 5 minutes. Also delivers webhooks left pending because their
    delivery job was never queued.
    """
    db = SessionLocal()
    try:
        service = WebhookService(db)
        stale = service.deliver_stale_pending_webhooks()
        count = service.retry_failed_webhooks()
        if stale or count:
            logger.info("Delivered %d stale and retried %d failed webhooks", stale, count)
        return stale + count
    finally:
        db.close()


async def purge_idempotency_records_task(ctx: dict[str, Any]) -> int:
    """Background task: drop Idempotency-Key records past their retention window.

    Runs daily.
    """
    db = SessionLocal()
    try:
        count = IdempotencyRepository(db).delete_expired(settings.IDEMPOTENCY_MAX_AGE_HOURS)
        if count > 0:
            logger.info("Purged %d idempotency records", count)
        return count
    finally:
        db.close()


class WorkerSettings:
    functions = [
        deliver_webhook_task,
        retry_failed_webhooks_task,
        purge_idempotency_records_task,
    ]
    cron_jobs = [
        cron(
            retry_failed_webhooks_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
        cron(purge_idempotency_records_task, hour=3, minute=0),  # daily
    ]
    redis_settings = redis_settings

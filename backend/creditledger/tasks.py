import logging
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from creditledger.core.config import settings

logger = logging.getLogger(__name__)

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_webhook_deliveries(webhook_ids: list[str]) -> None:
    """Enqueue one delivery job per webhook. Failures are logged, never raised.

    Runs after the response is sent; a webhook whose job could not be queued
    stays pending until the retry cron delivers it.
    """
    for webhook_id in webhook_ids:
        try:
            await enqueue_task("deliver_webhook_task", webhook_id)
        except Exception:
            logger.exception("Failed to enqueue delivery for webhook %s", webhook_id)

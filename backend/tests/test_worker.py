"""Tests for worker background tasks and cron job registration."""

from datetime import timedelta
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest

from creditledger.core import database as db_module
from creditledger.core.database import get_db
from creditledger.models.idempotency_record import IdempotencyRecord
from creditledger.models.shared import utc_now
from creditledger.repositories.idempotency_repository import IdempotencyRepository
from creditledger.tasks import enqueue_webhook_deliveries
from creditledger.worker import (
    WorkerSettings,
    deliver_webhook_task,
    purge_idempotency_records_task,
    retry_failed_webhooks_task,
)
from tests.conftest import MERCHANT_ID


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


class TestDeliverWebhookTask:
    @pytest.mark.asyncio
    async def test_delivers_by_id(self, db_session):
        mock_service = MagicMock()
        mock_service.deliver_webhook.return_value = True
        webhook_id = uuid4()

        with patch("creditledger.worker.WebhookService", return_value=mock_service):
            result = await deliver_webhook_task({}, str(webhook_id))

        assert result is True
        mock_service.deliver_webhook.assert_called_once_with(webhook_id)

    @pytest.mark.asyncio
    async def test_unknown_webhook(self, db_session):
        with patch("creditledger.worker.SessionLocal", db_module.SessionLocal):
            assert await deliver_webhook_task({}, str(uuid4())) is False


class TestRetryFailedWebhooksTask:
    @pytest.mark.asyncio
    async def test_counts_stale_and_failed(self, db_session):
        mock_service = MagicMock()
        mock_service.deliver_stale_pending_webhooks.return_value = 2
        mock_service.retry_failed_webhooks.return_value = 3

        with patch("creditledger.worker.WebhookService", return_value=mock_service):
            result = await retry_failed_webhooks_task({})

        assert result == 5
        mock_service.deliver_stale_pending_webhooks.assert_called_once()
        mock_service.retry_failed_webhooks.assert_called_once()

    @pytest.mark.asyncio
    async def test_propagates_errors(self, db_session):
        mock_service = MagicMock()
        mock_service.deliver_stale_pending_webhooks.side_effect = RuntimeError("DB error")

        with (
            patch("creditledger.worker.WebhookService", return_value=mock_service),
            pytest.raises(RuntimeError, match="DB error"),
        ):
            await retry_failed_webhooks_task({})

    @pytest.mark.asyncio
    async def test_integration_with_real_service(self, db_session):
        with patch("creditledger.worker.SessionLocal", db_module.SessionLocal):
            assert await retry_failed_webhooks_task({}) == 0


class TestPurgeIdempotencyRecordsTask:
    @pytest.mark.asyncio
    async def test_purges_old_records(self, db_session):
        repo = IdempotencyRepository(db_session)
        repo.create(
            merchant_id=MERCHANT_ID,
            idempotency_key="fresh",
            request_method="POST",
            request_path="/v1/redemptions/",
        )
        db_session.add(
            IdempotencyRecord(
                merchant_id=MERCHANT_ID,
                idempotency_key="old",
                request_method="POST",
                request_path="/v1/redemptions/",
                created_at=utc_now() - timedelta(days=3),
            )
        )
        db_session.commit()

        with patch("creditledger.worker.SessionLocal", db_module.SessionLocal):
            assert await purge_idempotency_records_task({}) == 1

        db_session.expire_all()
        assert repo.get_by_key(MERCHANT_ID, "old") is None
        assert repo.get_by_key(MERCHANT_ID, "fresh") is not None


class TestEnqueueWebhookDeliveries:
    @pytest.mark.asyncio
    async def test_enqueues_each(self):
        with patch("creditledger.tasks.enqueue_task") as enqueue:
            await enqueue_webhook_deliveries(["a", "b"])
        assert [c.args for c in enqueue.call_args_list] == [
            ("deliver_webhook_task", "a"),
            ("deliver_webhook_task", "b"),
        ]

    @pytest.mark.asyncio
    async def test_queue_failure_is_logged(self):
        with patch(
            "creditledger.tasks.enqueue_task", side_effect=ConnectionError("redis down")
        ) as enqueue:
            await enqueue_webhook_deliveries(["a", "b"])
        assert enqueue.call_count == 2


class TestWorkerSettings:
    def test_functions_registered(self):
        names = {f.__name__ for f in WorkerSettings.functions}
        assert names == {
            "deliver_webhook_task",
            "retry_failed_webhooks_task",
            "purge_idempotency_records_task",
        }

    def test_cron_jobs(self):
        assert len(WorkerSettings.cron_jobs) == 2
        retry_job, purge_job = WorkerSettings.cron_jobs
        assert retry_job.coroutine is retry_failed_webhooks_task
        assert retry_job.minute == {0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55}
        assert purge_job.coroutine is purge_idempotency_records_task
        assert purge_job.hour == 3
        assert purge_job.minute == 0

"""Tests for the automation trigger endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

OWNER_ID = UUID("a1b2c3d4-e5f6-7890-abcd-ef1234567890")
RECORD_ID = "12345678-1234-5678-1234-567812345678"


@pytest.mark.unit
class TestCronSecret:
    async def test_missing_secret_is_401(self, client) -> None:
        response = await client.post("/v1/automations/process-queue")

        assert response.status_code == 401

    async def test_wrong_secret_is_401(self, client) -> None:
        response = await client.post(
            "/v1/automations/process-queue", headers={"X-Cron-Secret": "nope"}
        )

        assert response.status_code == 401

    async def test_no_secret_configured_allows_calls(self, client, test_settings) -> None:
        test_settings.cron_secret = None

        response = await client.post("/v1/automations/process-queue")

        assert response.status_code == 200


@pytest.mark.unit
class TestProcessQueue:
    async def test_runs_processor(self, cron_client, queue_processor) -> None:
        response = await cron_client.post("/v1/automations/process-queue")

        assert response.status_code == 200
        assert response.json() == {"processed": 3, "failed": 1, "remaining": 0, "loops": 1}
        queue_processor.run.assert_awaited_once_with(batch_size=None, owner_id=None)

    async def test_batch_size_and_owner_filter(self, cron_client, queue_processor) -> None:
        response = await cron_client.post(
            "/v1/automations/process-queue",
            json={"batch_size": 25, "owner_id": str(OWNER_ID)},
        )

        assert response.status_code == 200
        queue_processor.run.assert_awaited_once_with(batch_size=25, owner_id=OWNER_ID)

    async def test_batch_size_out_of_range(self, cron_client) -> None:
        response = await cron_client.post("/v1/automations/process-queue", json={"batch_size": 0})

        assert response.status_code == 422

    async def test_status_counts(self, cron_client) -> None:
        with patch("src.api.routers.automations.ScheduledMessageRepository") as repo_cls:
            repo_cls.return_value.status_counts = AsyncMock(
                return_value={"pending": 4, "sent": 10, "failed": 1}
            )
            response = await cron_client.get("/v1/automations/process-queue")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 15
        assert body["by_status"] == {"pending": 4, "sent": 10, "failed": 1}


@pytest.mark.unit
class TestScheduled:
    async def test_unknown_type_is_400(self, cron_client) -> None:
        response = await cron_client.post("/v1/automations/scheduled", json={"type": "nope"})

        assert response.status_code == 400

    async def test_runs_birthday_scan(self, cron_client, scheduled_runners) -> None:
        response = await cron_client.post(
            "/v1/automations/scheduled", json={"type": "birthday.check"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["type"] == "birthday.check"
        assert body["messages_queued"] == 2
        assert body["total_eligible"] == 2
        assert body["already_processed"] is False
        scheduled_runners["birthday.check"].assert_awaited_once()

    async def test_already_processed_is_reported(self, cron_client) -> None:
        response = await cron_client.post(
            "/v1/automations/scheduled", json={"type": "inactive_client.check"}
        )

        assert response.json()["already_processed"] is True

    async def test_promotion_scan_counts(self, cron_client) -> None:
        response = await cron_client.post(
            "/v1/automations/scheduled", json={"type": "promotion.broadcast"}
        )

        assert response.json()["promotions_found"] == 4

    async def test_status(self, cron_client) -> None:
        with patch("src.api.routers.automations.AutomationExecutionRepository") as executions:
            with patch("src.api.routers.automations.ScheduledMessageRepository") as messages:
                executions.return_value.count_for_date = AsyncMock(return_value=2)
                messages.return_value.count_pending = AsyncMock(return_value=7)
                response = await cron_client.get("/v1/automations/scheduled")

        assert response.status_code == 200
        body = response.json()
        assert body["executions_today"] == 2
        assert body["pending_messages"] == 7


@pytest.mark.unit
class TestDatabaseEvents:
    async def test_new_client_enqueues_welcome(self, cron_client) -> None:
        with patch("workers.tasks.automation_tasks.enqueue_welcome") as task:
            task.delay = MagicMock()
            response = await cron_client.post(
                "/v1/automations/events",
                json={"type": "INSERT", "table": "clients", "record": {"id": RECORD_ID}},
            )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "action": "welcome"}
        task.delay.assert_called_once_with(client_id=RECORD_ID)

    async def test_new_order_enqueues_confirmation(self, cron_client) -> None:
        with patch("workers.tasks.automation_tasks.enqueue_order_confirmation") as task:
            task.delay = MagicMock()
            response = await cron_client.post(
                "/v1/automations/events",
                json={"type": "INSERT", "table": "orders", "record": {"id": RECORD_ID}},
            )

        assert response.json()["action"] == "order_confirmation"
        task.delay.assert_called_once_with(order_id=RECORD_ID)

    async def test_new_promotion_is_broadcast_after_settle_delay(self, cron_client) -> None:
        with patch("workers.tasks.automation_tasks.broadcast_promotion") as task:
            task.apply_async = MagicMock()
            response = await cron_client.post(
                "/v1/automations/events",
                json={
                    "type": "INSERT",
                    "table": "promotions",
                    "record": {"id": RECORD_ID, "is_active": True},
                },
            )

        assert response.json()["action"] == "promotion_broadcast"
        task.apply_async.assert_called_once_with(kwargs={"promotion_id": RECORD_ID}, countdown=5)

    async def test_inactive_promotion_is_ignored(self, cron_client) -> None:
        with patch("workers.tasks.automation_tasks.broadcast_promotion") as task:
            response = await cron_client.post(
                "/v1/automations/events",
                json={
                    "type": "INSERT",
                    "table": "promotions",
                    "record": {"id": RECORD_ID, "is_active": False},
                },
            )

        assert response.json()["action"] is None
        task.apply_async.assert_not_called()

    async def test_update_is_acknowledged_without_action(self, cron_client) -> None:
        response = await cron_client.post(
            "/v1/automations/events",
            json={
                "type": "UPDATE",
                "table": "orders",
                "record": {"id": RECORD_ID, "status": "delivered"},
                "old_record": {"id": RECORD_ID, "status": "pending"},
            },
        )

        assert response.status_code == 200
        assert response.json()["action"] is None

    async def test_unknown_table_is_ignored(self, cron_client) -> None:
        response = await cron_client.post(
            "/v1/automations/events",
            json={"type": "INSERT", "table": "invoices", "record": {"id": RECORD_ID}},
        )

        assert response.json()["action"] is None

    async def test_missing_record_id_is_400(self, cron_client) -> None:
        response = await cron_client.post(
            "/v1/automations/events",
            json={"type": "INSERT", "table": "clients", "record": {"name": "Ana"}},
        )

        assert response.status_code == 400

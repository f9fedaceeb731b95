"""Unit tests for workers/tasks/inbound_tasks.py."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from src.cache.dedup import InMemoryDedupStore, RedisDedupStore
from src.inbound.ingestor import IngestResult, IngestStatus
from workers.tasks import inbound_tasks
from workers.tasks.inbound_tasks import _async_handle_inbound_message

CONVERSATION_ID = UUID("12345678-1234-5678-1234-567812345678")

MESSAGE = {
    "platform": "instagram",
    "provider_message_id": "mid.1",
    "sender_id": "99",
    "recipient_id": "1784",
    "text": "Hola!",
    "timestamp": "2026-03-06T12:00:00Z",
}


@pytest.fixture
def ingestor_cls(mock_session_factory: MagicMock, mock_settings: MagicMock):
    with patch(
        "workers.tasks.inbound_tasks.get_task_session_factory",
        return_value=mock_session_factory,
    ):
        with patch("workers.tasks.inbound_tasks.get_task_settings", return_value=mock_settings):
            with patch("src.inbound.ingestor.InboundIngestor") as cls:
                cls.return_value.handle = AsyncMock(
                    return_value=IngestResult(
                        status=IngestStatus.STORED, conversation_id=CONVERSATION_ID
                    )
                )
                yield cls


@pytest.mark.unit
class TestAsyncHandleInboundMessage:
    async def test_validates_and_ingests(self, ingestor_cls: MagicMock) -> None:
        result = await _async_handle_inbound_message(MESSAGE)

        assert result["status"] == "stored"
        assert result["conversation_id"] == str(CONVERSATION_ID)
        incoming = ingestor_cls.return_value.handle.call_args.args[0]
        assert incoming.platform == "instagram"
        assert incoming.provider_message_id == "mid.1"

    async def test_uses_process_local_dedup_by_default(self, ingestor_cls: MagicMock) -> None:
        await _async_handle_inbound_message(MESSAGE)
        await _async_handle_inbound_message(MESSAGE)

        first = ingestor_cls.call_args_list[0].kwargs["dedup"]
        second = ingestor_cls.call_args_list[1].kwargs["dedup"]
        assert isinstance(first, InMemoryDedupStore)
        assert first is second
        assert first is inbound_tasks._local_dedup()

    async def test_shared_dedup_when_enabled(
        self, ingestor_cls: MagicMock, mock_settings: MagicMock
    ) -> None:
        mock_settings.feature_flags.enable_redis_dedup = True

        with patch("src.cache.client.RedisManager") as manager_cls:
            manager_cls.return_value.close = AsyncMock()
            await _async_handle_inbound_message(MESSAGE)

        assert isinstance(ingestor_cls.call_args.kwargs["dedup"], RedisDedupStore)
        manager_cls.assert_called_once_with("redis://localhost:6379/0", key_prefix="test:")
        manager_cls.return_value.close.assert_awaited_once()

    async def test_redis_is_closed_when_ingest_fails(
        self, ingestor_cls: MagicMock, mock_settings: MagicMock
    ) -> None:
        mock_settings.feature_flags.enable_redis_dedup = True
        ingestor_cls.return_value.handle = AsyncMock(side_effect=RuntimeError("db down"))

        with patch("src.cache.client.RedisManager") as manager_cls:
            manager_cls.return_value.close = AsyncMock()
            with pytest.raises(RuntimeError):
                await _async_handle_inbound_message(MESSAGE)

        manager_cls.return_value.close.assert_awaited_once()

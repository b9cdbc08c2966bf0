"""Unit tests for the pipeline orchestrator."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from cdc_search_sync.config.models import DLQConfig, SyncConfig
from cdc_search_sync.errors import IndexRejectedError
from cdc_search_sync.pipeline.runner import SyncPipeline

from .helpers import InMemoryIndex, delete_event, insert_event


def _make_config(**overrides: object) -> SyncConfig:
    return SyncConfig(pipeline_id="test-pipeline", health_enabled=False, **overrides)


def _mock_message(
    value: str,
    topic: str = "content-service.contents",
    partition: int = 0,
    offset: int = 1,
) -> MagicMock:
    msg = MagicMock()
    msg.topic.return_value = topic
    msg.partition.return_value = partition
    msg.offset.return_value = offset
    msg.value.return_value = value.encode()
    return msg


@pytest.mark.asyncio
class TestHandleMessage:
    async def test_upsert_then_delete(self):
        index = InMemoryIndex()
        pipeline = SyncPipeline(_make_config(), index=index)
        ack = MagicMock()

        await pipeline.handle_message(_mock_message(insert_event("p1", title="x")), ack)
        assert index.documents["p1"]["title"] == "x"
        await pipeline.handle_message(_mock_message(delete_event("p1")), ack)

        assert index.documents == {}
        assert ack.call_count == 2
        assert pipeline.stats.upserts == 1
        assert pipeline.stats.deletes == 1

    async def test_retryable_failure_not_acknowledged(self):
        index = InMemoryIndex()
        index.fail_with = httpx.ConnectError("refused")
        pipeline = SyncPipeline(_make_config(), index=index)
        ack = MagicMock()

        await pipeline.handle_message(_mock_message(insert_event()), ack)

        ack.assert_not_called()
        assert pipeline.stats.pending == 1

    async def test_terminal_failure_dead_lettered(self):
        index = InMemoryIndex()
        index.fail_with = IndexRejectedError(400, "mapper_parsing_exception", "bad")
        dlq = MagicMock()
        pipeline = SyncPipeline(_make_config(), index=index, dlq=dlq)
        raw = insert_event("p9")

        await pipeline.handle_message(_mock_message(raw, offset=12), MagicMock())

        dlq.send.assert_called_once()
        kwargs = dlq.send.call_args.kwargs
        assert kwargs["source_topic"] == "content-service.contents"
        assert kwargs["offset"] == 12
        assert kwargs["value"] == raw.encode()
        assert kwargs["failure"] == "terminal_sync_failure"
        assert kwargs["doc_id"] == "p9"

    async def test_malformed_dead_lettered(self):
        dlq = MagicMock()
        pipeline = SyncPipeline(_make_config(), index=InMemoryIndex(), dlq=dlq)
        await pipeline.handle_message(_mock_message("not json"), MagicMock())
        assert dlq.send.call_args.kwargs["failure"] == "malformed"

    async def test_unsupported_operation_not_dead_lettered(self):
        dlq = MagicMock()
        pipeline = SyncPipeline(_make_config(), index=InMemoryIndex(), dlq=dlq)
        await pipeline.handle_message(
            _mock_message('{"operationType": "drop"}'), MagicMock()
        )
        dlq.send.assert_not_called()


@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_and_shutdown_with_injected_consumer(self):
        index = InMemoryIndex()
        consumer = MagicMock()
        consumer.consume = AsyncMock()
        dlq = MagicMock()
        pipeline = SyncPipeline(_make_config(), index=index, consumer=consumer, dlq=dlq)

        await pipeline._start_async()

        consumer.consume.assert_awaited_once()
        dlq.flush.assert_called_once()
        assert index.started is False

    async def test_shutdown_runs_when_consumer_fails(self):
        index = InMemoryIndex()
        consumer = MagicMock()
        consumer.consume = AsyncMock(side_effect=RuntimeError("broker gone"))
        pipeline = SyncPipeline(_make_config(), index=index, consumer=consumer)

        with pytest.raises(RuntimeError, match="broker gone"):
            await pipeline._start_async()
        assert index.started is False

    async def test_builds_dlq_and_consumer_from_config(self):
        config = _make_config(dlq=DLQConfig(enabled=True))
        pipeline = SyncPipeline(config, index=InMemoryIndex())

        with (
            patch("cdc_search_sync.pipeline.runner.create_producer") as producer,
            patch("cdc_search_sync.pipeline.runner.ChangeStreamConsumer") as cls,
        ):
            cls.return_value.consume = AsyncMock()
            await pipeline._start_async()

        producer.assert_called_once_with(config.kafka)
        kwargs = cls.call_args.kwargs
        assert kwargs["topics"] == ["content-service.contents"]
        assert kwargs["handler"] == pipeline.handle_message
        producer.return_value.flush.assert_called_once()

    async def test_stop_signals_consumer(self):
        consumer = MagicMock()
        pipeline = SyncPipeline(
            _make_config(), index=InMemoryIndex(), consumer=consumer
        )
        pipeline.stop()
        consumer.stop.assert_called_once()


@pytest.mark.asyncio
class TestHealth:
    async def test_health_reports_components(self):
        index = InMemoryIndex()
        await index.start()
        consumer = MagicMock()
        consumer.running = True
        pipeline = SyncPipeline(_make_config(), index=index, consumer=consumer)

        h = await pipeline.health()

        assert h["pipeline_id"] == "test-pipeline"
        assert h["consumer"] == {"status": "running"}
        assert h["index"]["status"] == "running"
        assert h["stats"]["acked"] == 0

    async def test_health_index_error(self):
        index = MagicMock()
        index.health = AsyncMock(side_effect=RuntimeError("down"))
        pipeline = SyncPipeline(_make_config(), index=index)

        h = await pipeline.health()

        assert h["index"] == {"status": "error", "error": "down"}
        assert h["consumer"] == {"status": "stopped"}

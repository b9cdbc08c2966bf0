"""Pipeline orchestrator: Kafka change stream to processor to search index."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from confluent_kafka import Message

from cdc_search_sync.config.models import SyncConfig
from cdc_search_sync.observability.http_health import HealthServer
from cdc_search_sync.observability.metrics import SyncStats
from cdc_search_sync.sinks.base import SearchIndex
from cdc_search_sync.sinks.elasticsearch import ElasticsearchIndex
from cdc_search_sync.streaming.consumer import Acknowledge, ChangeStreamConsumer
from cdc_search_sync.streaming.dlq import DLQHandler, create_producer
from cdc_search_sync.sync.dispatcher import SyncDispatcher
from cdc_search_sync.sync.processor import (
    MessageContext,
    ProcessingOutcome,
    SyncProcessor,
)

logger = structlog.get_logger()


class SyncPipeline:
    """Owns the lifetime of the index client, consumer and health server.

    Collaborators can be injected (tests, alternative index engines); anything
    not supplied is built from the config in ``_start_async``.
    """

    def __init__(
        self,
        config: SyncConfig,
        *,
        index: SearchIndex | None = None,
        consumer: ChangeStreamConsumer | None = None,
        dlq: DLQHandler | None = None,
    ) -> None:
        self._config = config
        self._index: SearchIndex = index or ElasticsearchIndex(
            config.index, config.retry
        )
        self._consumer = consumer
        self._dlq = dlq
        self._stats = SyncStats()
        self._processor = SyncProcessor(
            SyncDispatcher(
                self._index, write_timeout=config.index.write_timeout_seconds
            ),
            stats=self._stats,
            on_terminal=self._dead_letter,
        )
        self._health_server: HealthServer | None = None

    @property
    def processor(self) -> SyncProcessor:
        return self._processor

    @property
    def stats(self) -> SyncStats:
        return self._stats

    def start(self) -> None:
        """Start the pipeline (blocking)."""
        asyncio.run(self._start_async())

    async def _start_async(self) -> None:
        await self._index.start()

        if self._dlq is None and self._config.dlq.enabled:
            self._dlq = DLQHandler(
                create_producer(self._config.kafka), self._config.dlq
            )

        if self._consumer is None:
            self._consumer = ChangeStreamConsumer(
                topics=self._config.kafka.topics,
                kafka_config=self._config.kafka,
                handler=self.handle_message,
                retry_config=self._config.retry,
            )

        if self._config.health_enabled:
            self._health_server = HealthServer(
                port=self._config.health_port,
                readiness_check=self.health,
                stats=self._stats.snapshot,
            )
            await self._health_server.start()

        logger.info(
            "pipeline.started",
            pipeline_id=self._config.pipeline_id,
            topics=self._config.kafka.topics,
            index=self._index.index_name,
        )
        try:
            await self._consumer.consume()
        finally:
            await self._shutdown()

    async def handle_message(self, msg: Message, acknowledge: Acknowledge) -> None:
        """Consumer handler: run one Kafka message through the processor."""
        context = MessageContext(
            topic=msg.topic(), partition=msg.partition(), offset=msg.offset()
        )
        await self._processor.process(msg.value(), acknowledge, context)

    def _dead_letter(
        self,
        outcome: ProcessingOutcome,
        raw: bytes | str | None,
        context: MessageContext,
    ) -> None:
        if self._dlq is None or context.topic is None:
            return
        self._dlq.send(
            source_topic=context.topic,
            partition=context.partition if context.partition is not None else -1,
            offset=context.offset if context.offset is not None else -1,
            value=raw,
            failure=str(outcome.failure),
            reason=outcome.reason,
            doc_id=outcome.document_key,
        )

    async def _shutdown(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
        if self._dlq is not None:
            try:
                self._dlq.flush()
            except Exception as exc:
                logger.error("pipeline.dlq_flush_error", error=str(exc))
        try:
            await self._index.stop()
        except Exception as exc:
            logger.error("pipeline.index_stop_error", error=str(exc))
        logger.info(
            "pipeline.stopped",
            pipeline_id=self._config.pipeline_id,
            stats=self._stats.snapshot(),
        )

    def stop(self) -> None:
        """Signal the pipeline to stop."""
        if self._consumer is not None:
            self._consumer.stop()

    async def health(self) -> dict[str, Any]:
        """Aggregate health of the consumer and the index."""
        try:
            index_health = await self._index.health()
        except Exception as exc:
            index_health = {"status": "error", "error": str(exc)}
        running = self._consumer is not None and self._consumer.running
        return {
            "pipeline_id": self._config.pipeline_id,
            "consumer": {"status": "running" if running else "stopped"},
            "index": index_health,
            "stats": self._stats.snapshot(),
        }

"""Kafka consumer for change-stream events with manual acknowledgment."""

from __future__ import annotations

import asyncio
import signal
import threading
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from confluent_kafka import (
    Consumer,
    KafkaError,
    KafkaException,
    Message,
    TopicPartition,
)

from cdc_search_sync.config.models import KafkaConfig, RetryConfig
from cdc_search_sync.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()

Acknowledge = Callable[[], None]
MessageHandler = Callable[[Message, Acknowledge], Awaitable[None]]


class ChangeStreamConsumer:
    """Polls raw change events and commits only what the handler acknowledges.

    A message the handler leaves unacknowledged is redelivered: its partition
    is rewound to the message offset after a backoff that grows with each
    consecutive failure on that partition, and the rest of the batch for that
    partition is dropped so it is re-read in order.
    """

    def __init__(
        self,
        topics: list[str],
        kafka_config: KafkaConfig,
        handler: MessageHandler,
        *,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._topics = topics
        self._kafka_config = kafka_config
        self._handler = handler
        self._retry = retry_config or RetryConfig()
        self._running = False
        self._poll_batch_size = kafka_config.poll_batch_size
        self._failures: dict[tuple[str, int], int] = {}

        conf: dict[str, Any] = {
            "bootstrap.servers": kafka_config.bootstrap_servers,
            "group.id": kafka_config.group_id,
            "auto.offset.reset": kafka_config.auto_offset_reset,
            "enable.auto.commit": False,
            "session.timeout.ms": kafka_config.session_timeout_ms,
            "max.poll.interval.ms": kafka_config.max_poll_interval_ms,
            "fetch.min.bytes": kafka_config.fetch_min_bytes,
            "fetch.wait.max.ms": kafka_config.fetch_max_wait_ms,
        }
        conf.update(build_kafka_auth_config(kafka_config))
        self._consumer = Consumer(conf)

    @property
    def running(self) -> bool:
        return self._running

    async def consume(self, *, poll_timeout: float = 1.0) -> None:
        """Async consume loop: polls in a worker thread, awaits the handler."""
        self._running = True
        self._consumer.subscribe(
            self._topics,
            on_assign=self._handle_assign,
            on_revoke=self._handle_revoke,
        )
        self._install_signal_handlers()

        loop = asyncio.get_running_loop()
        logger.info("consumer.started", topics=self._topics)
        try:
            while self._running:
                messages = await loop.run_in_executor(
                    None, self._consumer.consume, self._poll_batch_size, poll_timeout
                )
                if messages:
                    await self.process_batch(messages)
        finally:
            self._consumer.close()
            logger.info("consumer.stopped")

    async def process_batch(self, messages: list[Message]) -> None:
        """Hand each message to the handler; rewind partitions left pending."""
        rewound: set[tuple[str, int]] = set()
        for msg in messages:
            err = msg.error()
            if err and err.code() == KafkaError._PARTITION_EOF:  # type: ignore[attr-defined]
                continue
            if err:
                raise KafkaException(err)

            topic = msg.topic()
            partition = msg.partition()
            assert topic is not None
            assert partition is not None
            tp = (topic, partition)
            if tp in rewound:
                continue

            if not await self._dispatch(msg):
                rewound.add(tp)
                await self._redeliver(msg)

    async def _dispatch(self, msg: Message) -> bool:
        acked = False

        def _acknowledge() -> None:
            nonlocal acked
            self.commit(msg)
            acked = True

        try:
            await self._handler(msg, _acknowledge)
        except Exception as exc:
            logger.error(
                "consumer.handler_error",
                topic=msg.topic(),
                partition=msg.partition(),
                offset=msg.offset(),
                acknowledged=acked,
                error=str(exc),
            )
        if acked:
            self._failures.pop((msg.topic(), msg.partition()), None)  # type: ignore[arg-type]
        return acked

    async def _redeliver(self, msg: Message) -> None:
        topic = msg.topic()
        partition = msg.partition()
        offset = msg.offset()
        assert topic is not None
        assert partition is not None
        assert offset is not None

        attempts = self._failures.get((topic, partition), 0) + 1
        self._failures[(topic, partition)] = attempts
        delay = min(
            self._retry.redelivery_backoff_seconds
            * self._retry.multiplier ** (attempts - 1),
            self._retry.max_wait_seconds,
        )
        logger.warning(
            "consumer.redelivery_scheduled",
            topic=topic,
            partition=partition,
            offset=offset,
            attempt=attempts,
            delay_seconds=delay,
        )
        self._consumer.seek(TopicPartition(topic, partition, offset))
        if delay > 0:
            await asyncio.sleep(delay)

    def commit(self, msg: Message) -> None:
        """Commit *msg* as processed (committed offset = next to fetch)."""
        topic = msg.topic()
        partition = msg.partition()
        offset = msg.offset()
        assert topic is not None
        assert partition is not None
        assert offset is not None
        self._consumer.commit(
            offsets=[TopicPartition(topic, partition, offset + 1)],
            asynchronous=self._kafka_config.commit_asynchronous,
        )

    def _handle_assign(self, consumer: Any, partitions: list[Any]) -> None:
        tps = [(tp.topic, tp.partition) for tp in partitions]
        logger.info("consumer.partitions_assigned", partitions=tps)

    def _handle_revoke(self, consumer: Any, partitions: list[Any]) -> None:
        tps = [(tp.topic, tp.partition) for tp in partitions]
        for tp in tps:
            self._failures.pop(tp, None)
        logger.info("consumer.partitions_revoked", partitions=tps)

    def _install_signal_handlers(self) -> None:
        # signal.signal only works from the main thread.
        if threading.current_thread() is not threading.main_thread():
            return

        def _shutdown(signum: int, frame: Any) -> None:
            logger.info("consumer.shutdown_signal", signal=signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

    def stop(self) -> None:
        """Signal the consume loop to stop."""
        self._running = False

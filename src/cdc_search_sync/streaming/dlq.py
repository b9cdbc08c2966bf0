"""Dead-letter routing for terminally failed change events."""

from __future__ import annotations

import time
from typing import Any

import structlog
from confluent_kafka import Producer

from cdc_search_sync.config.models import DLQConfig, KafkaConfig
from cdc_search_sync.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()


def dlq_topic_name(source_topic: str, suffix: str = "dlq") -> str:
    """Build a DLQ topic name: ``<source_topic>.<suffix>``."""
    return f"{source_topic}.{suffix}"


def create_producer(config: KafkaConfig) -> Producer:
    """Create an idempotent Kafka producer for dead-letter writes."""
    conf: dict[str, Any] = {
        "bootstrap.servers": config.bootstrap_servers,
        "enable.idempotence": config.enable_idempotence,
        "acks": config.acks,
    }
    conf.update(build_kafka_auth_config(config))
    return Producer(conf)


class DLQHandler:
    """Copies skipped messages to a dead-letter topic for manual replay.

    Runs before the original message is acknowledged. A failed dead-letter
    write is logged and never blocks the acknowledgment.
    """

    def __init__(self, producer: Producer, config: DLQConfig | None = None) -> None:
        self._producer = producer
        self._config = config or DLQConfig()

    def send(
        self,
        *,
        source_topic: str,
        partition: int,
        offset: int,
        value: bytes | str | None,
        failure: str,
        reason: str,
        doc_id: str | None = None,
    ) -> None:
        if not self._config.enabled:
            return

        dlq = dlq_topic_name(source_topic, self._config.topic_suffix)
        headers: dict[str, str] = {}
        if self._config.include_headers:
            headers = {
                "dlq.source.topic": source_topic,
                "dlq.source.partition": str(partition),
                "dlq.source.offset": str(offset),
                "dlq.failure.kind": failure,
                "dlq.failure.reason": reason,
                "dlq.timestamp": str(int(time.time() * 1000)),
            }
            if doc_id is not None:
                headers["dlq.doc_id"] = doc_id

        payload = value.encode() if isinstance(value, str) else value
        try:
            self._producer.produce(
                topic=dlq,
                value=payload,
                headers=[(k, v.encode()) for k, v in headers.items()],
            )
            self._producer.poll(0)
        except Exception as exc:
            logger.error(
                "dlq.write_failed",
                topic=dlq,
                source_topic=source_topic,
                partition=partition,
                offset=offset,
                error=str(exc),
            )
            return
        logger.warning(
            "dlq.message_sent",
            topic=dlq,
            source_topic=source_topic,
            partition=partition,
            offset=offset,
            failure=failure,
        )

    def flush(self, timeout: float = 30.0) -> None:
        """Flush pending dead-letter writes. Called during shutdown."""
        self._producer.flush(timeout=timeout)

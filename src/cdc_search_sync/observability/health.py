"""One-shot health probes for the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
import structlog
from confluent_kafka.admin import AdminClient

from cdc_search_sync.config.models import IndexConfig, KafkaConfig, SyncConfig
from cdc_search_sync.streaming.auth import build_kafka_auth_config

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class PlatformHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


def check_kafka(config: KafkaConfig) -> ComponentHealth:
    """Probe Kafka broker connectivity and topic presence."""
    try:
        admin_conf: dict[str, Any] = {"bootstrap.servers": config.bootstrap_servers}
        admin_conf.update(build_kafka_auth_config(config))
        admin = AdminClient(admin_conf)
        meta = admin.list_topics(timeout=5)
    except Exception as exc:
        return ComponentHealth(name="kafka", status=Status.UNHEALTHY, detail=str(exc))
    missing = [t for t in config.topics if t not in meta.topics]
    if missing:
        return ComponentHealth(
            name="kafka",
            status=Status.UNHEALTHY,
            detail=f"missing topic(s): {', '.join(missing)}",
        )
    return ComponentHealth(
        name="kafka",
        status=Status.HEALTHY,
        detail=f"{len(meta.brokers)} broker(s)",
    )


def check_index(config: IndexConfig) -> ComponentHealth:
    """Probe Elasticsearch cluster health and target index existence."""
    name = "elasticsearch"
    auth = None
    headers: dict[str, str] = {}
    if config.api_key is not None:
        headers["Authorization"] = f"ApiKey {config.api_key.get_secret_value()}"
    elif config.username is not None and config.password is not None:
        auth = (config.username, config.password.get_secret_value())
    try:
        with httpx.Client(
            base_url=config.url.rstrip("/"),
            headers=headers,
            auth=auth,
            verify=config.verify_certs,
            timeout=5,
        ) as client:
            resp = client.get("/_cluster/health")
            resp.raise_for_status()
            cluster = resp.json().get("status", "unknown")
            exists = client.head(f"/{config.index_name}").status_code == 200
    except Exception as exc:
        return ComponentHealth(name=name, status=Status.UNHEALTHY, detail=str(exc))
    if cluster == "red":
        return ComponentHealth(name=name, status=Status.UNHEALTHY, detail="cluster red")
    if not exists:
        return ComponentHealth(
            name=name,
            status=Status.UNHEALTHY,
            detail=f"index '{config.index_name}' not found",
        )
    detail = f"cluster {cluster}"
    return ComponentHealth(name=name, status=Status.HEALTHY, detail=detail)


def check_platform_health(config: SyncConfig) -> PlatformHealth:
    """Run every probe and collect the results."""
    result = PlatformHealth(
        components=[check_kafka(config.kafka), check_index(config.index)]
    )
    logger.info("health.checked", summary=result.summary)
    return result

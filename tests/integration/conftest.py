"""Docker Compose fixtures for integration tests."""

from __future__ import annotations

import subprocess
import time
import uuid
from collections.abc import Iterator

import httpx
import pytest
from confluent_kafka.admin import AdminClient, NewTopic

from cdc_search_sync.config.models import (
    DLQConfig,
    IndexConfig,
    KafkaConfig,
    RetryConfig,
    SyncConfig,
)

COMPOSE_FILE = "docker/docker-compose.yml"
ES_URL = "http://localhost:9200"
BOOTSTRAP = "localhost:9092"


def _compose(*args: str) -> None:
    subprocess.run(
        ["docker", "compose", "-f", COMPOSE_FILE, *args],
        check=True,
        capture_output=True,
    )


def _wait_for_http(url: str, *, timeout: int = 120) -> None:
    """Poll an HTTP endpoint until it returns 2xx."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            resp = httpx.get(url, timeout=5)
            if resp.status_code < 300:
                return
        except httpx.HTTPError:
            pass
        time.sleep(2)
    raise TimeoutError(f"{url} not ready after {timeout}s")


def _wait_for_kafka(bootstrap: str = BOOTSTRAP, *, timeout: int = 120) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            AdminClient({"bootstrap.servers": bootstrap}).list_topics(timeout=5)
            return
        except Exception:
            time.sleep(2)
    raise TimeoutError(f"Kafka at {bootstrap} not ready after {timeout}s")


@pytest.fixture(scope="session")
def docker_services():
    """Start Docker Compose services and wait until healthy."""
    _compose("up", "-d")
    try:
        _wait_for_kafka()
        _wait_for_http(f"{ES_URL}/_cluster/health?wait_for_status=yellow")
        yield
    finally:
        _compose("down", "-v")


@pytest.fixture
def index_name(docker_services) -> Iterator[str]:
    """A fresh index per test, deleted afterwards."""
    name = f"contents-it-{uuid.uuid4().hex[:8]}"
    yield name
    httpx.delete(f"{ES_URL}/{name}", timeout=10)


@pytest.fixture
def topic(docker_services) -> str:
    name = f"content-it-{uuid.uuid4().hex[:8]}"
    admin = AdminClient({"bootstrap.servers": BOOTSTRAP})
    futures = admin.create_topics([NewTopic(name, num_partitions=1)])
    for future in futures.values():
        future.result(timeout=30)
    return name


@pytest.fixture
def sync_config(index_name: str, topic: str) -> SyncConfig:
    return SyncConfig(
        pipeline_id="it-sync",
        kafka=KafkaConfig(
            bootstrap_servers=BOOTSTRAP,
            group_id=f"it-{uuid.uuid4().hex[:8]}",
            topics=[topic],
        ),
        index=IndexConfig(url=ES_URL, index_name=index_name, refresh="wait_for"),
        retry=RetryConfig(redelivery_backoff_seconds=0.1),
        dlq=DLQConfig(enabled=True),
        health_enabled=False,
    )

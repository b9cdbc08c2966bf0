"""Unit tests for structlog configuration."""

from __future__ import annotations

import json
from collections.abc import Iterator

import pytest
import structlog

from cdc_search_sync.config.models import LoggingConfig
from cdc_search_sync.observability.logging_setup import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def test_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(LoggingConfig(level="INFO", json_output=True))
    structlog.get_logger().info("processor.skipped", doc_id="abc123")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "processor.skipped"
    assert record["doc_id"] == "abc123"
    assert record["level"] == "info"
    assert "timestamp" in record


def test_level_filtering(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(LoggingConfig(level="WARNING"))
    log = structlog.get_logger()
    log.info("dropped")
    log.warning("kept")

    out = capsys.readouterr().out
    assert "dropped" not in out
    assert "kept" in out


def test_console_output(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(LoggingConfig(json_output=False))
    structlog.get_logger().info("pipeline.started", pipeline_id="p1")
    assert "pipeline.started" in capsys.readouterr().out

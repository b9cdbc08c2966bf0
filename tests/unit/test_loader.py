"""Unit tests for the YAML config loader and env var resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from cdc_search_sync.config.loader import load_sync_config, load_yaml, resolve_env_vars

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "examples" / "sync-config.yaml"


class TestResolveEnvVars:
    def test_plain_string_unchanged(self):
        assert resolve_env_vars("hello") == "hello"

    def test_substitutes_env_var(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ES_HOST", "es.prod")
        assert resolve_env_vars("${ES_HOST}") == "es.prod"

    def test_default_when_var_missing(self):
        assert resolve_env_vars("${MISSING_VAR:-fallback}") == "fallback"

    def test_env_var_overrides_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ES_PORT", "9999")
        assert resolve_env_vars("${ES_PORT:-9200}") == "9999"

    def test_empty_default(self):
        assert resolve_env_vars("${MISSING_VAR:-}") == ""

    def test_missing_var_no_default_raises(self):
        with pytest.raises(ValueError, match="UNDEFINED_VAR"):
            resolve_env_vars("${UNDEFINED_VAR}")

    def test_embedded_in_string(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ES_HOST", "search")
        result = resolve_env_vars("http://${ES_HOST}:${ES_PORT:-9200}")
        assert result == "http://search:9200"

    def test_recursive_structures(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("KAFKA_TOPIC", "content")
        data = {"topics": ["${KAFKA_TOPIC}"], "nested": {"n": 3, "ok": True}}
        assert resolve_env_vars(data) == {
            "topics": ["content"],
            "nested": {"n": 3, "ok": True},
        }


class TestLoadYaml:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml(path) == {}

    def test_syntax_error_reports_position(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("kafka:\n  topics: [a, b\n")
        with pytest.raises(ValueError, match="line"):
            load_yaml(path)

    def test_top_level_list_rejected(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(TypeError, match="mapping"):
            load_yaml(path)


class TestLoadSyncConfig:
    def test_defaults_only(self):
        config = load_sync_config()
        assert config.pipeline_id == "content-sync"
        assert config.kafka.group_id == "content-group"
        assert config.kafka.topics == ["content-service.contents"]
        assert config.index.index_name == "content-service.contents"
        assert config.dlq.enabled is False

    def test_overrides_deep_merged(self, tmp_path: Path):
        path = tmp_path / "sync.yaml"
        path.write_text(
            "index:\n  url: http://es:9200\nretry:\n  max_attempts: 7\n"
        )
        config = load_sync_config(path)
        assert config.index.url == "http://es:9200"
        assert config.index.index_name == "content-service.contents"
        assert config.retry.max_attempts == 7
        assert config.retry.initial_wait_seconds == 0.5

    def test_env_substitution(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SYNC_GROUP", "reindex-group")
        path = tmp_path / "sync.yaml"
        path.write_text("kafka:\n  group_id: ${SYNC_GROUP}\n")
        assert load_sync_config(path).kafka.group_id == "reindex-group"

    def test_invalid_values_raise_value_error(self, tmp_path: Path):
        path = tmp_path / "sync.yaml"
        path.write_text("index:\n  index_name: Content\n")
        with pytest.raises(ValueError, match="Invalid sync config"):
            load_sync_config(path)

    def test_unknown_top_level_key_rejected(self, tmp_path: Path):
        path = tmp_path / "sync.yaml"
        path.write_text("sinks: []\n")
        with pytest.raises(ValueError, match="Invalid sync config"):
            load_sync_config(path)

    def test_example_config_loads(self):
        config = load_sync_config(EXAMPLE_CONFIG)
        assert config.pipeline_id == "content-sync"

"""Unit tests for the failure taxonomy."""

from __future__ import annotations

import json

import pytest

from cdc_search_sync.errors import (
    DecodeError,
    FailureKind,
    IndexRejectedError,
    MapError,
    is_unrecoverable,
)


class TestFailureKind:
    @pytest.mark.parametrize("kind", [k for k in FailureKind if k.name != "RETRYABLE"])
    def test_terminal_kinds(self, kind: FailureKind):
        assert kind.terminal

    def test_retryable_not_terminal(self):
        assert not FailureKind.RETRYABLE.terminal


class TestStageErrors:
    def test_str(self):
        err = MapError(FailureKind.INVALID_KEY, "documentKey is missing")
        assert str(err) == "invalid_key: documentKey is missing"

    def test_decode_error_is_stage_error(self):
        err = DecodeError(FailureKind.MALFORMED, "x")
        assert err.kind is FailureKind.MALFORMED

    def test_index_rejected_message(self):
        exc = IndexRejectedError(400, "mapper_parsing_exception", "bad date")
        assert "400" in str(exc)
        assert exc.error_type == "mapper_parsing_exception"


class TestIsUnrecoverable:
    def test_json_decode_error(self):
        with pytest.raises(json.JSONDecodeError) as exc_info:
            json.loads("")
        assert is_unrecoverable(exc_info.value)

    def test_unicode_error(self):
        with pytest.raises(UnicodeDecodeError) as exc_info:
            b"\xff".decode("utf-8")
        assert is_unrecoverable(exc_info.value)

    @pytest.mark.parametrize(
        "message",
        ["Malformed JSON at 3", "invalid UTF-8 sequence", "Unterminated string"],
    )
    def test_signatures_case_insensitive(self, message: str):
        assert is_unrecoverable(RuntimeError(message))

    def test_connection_error_recoverable(self):
        assert not is_unrecoverable(ConnectionError("connection reset by peer"))

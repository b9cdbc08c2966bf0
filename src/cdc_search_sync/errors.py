"""Failure taxonomy shared by every pipeline stage.

Stages do not raise for expected failures; they return one of the error
values below and the processor decides whether to acknowledge.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class FailureKind(StrEnum):
    """Why a message did not (or not yet) reach the index."""

    MALFORMED = "malformed"
    MISSING_OPERATION = "missing_operation"
    MISSING_BODY = "missing_body"
    INVALID_KEY = "invalid_key"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    TERMINAL_SYNC_FAILURE = "terminal_sync_failure"
    RETRYABLE = "retryable"

    @property
    def terminal(self) -> bool:
        """Terminal failures are acknowledged; redelivery cannot fix them."""
        return self is not FailureKind.RETRYABLE


@dataclass(frozen=True, slots=True)
class StageError:
    kind: FailureKind
    reason: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.reason}"


@dataclass(frozen=True, slots=True)
class DecodeError(StageError):
    """The payload could not be parsed as JSON."""


@dataclass(frozen=True, slots=True)
class MapError(StageError):
    """The decoded event cannot be projected onto an index operation."""


class IndexRejectedError(Exception):
    """The index engine refused a document permanently (4xx other than 404/429)."""

    def __init__(self, status_code: int, error_type: str, reason: str) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.reason = reason
        super().__init__(
            f"index rejected document ({status_code} {error_type}): {reason}"
        )


# Exception texts that redelivery can never fix.
UNRECOVERABLE_SIGNATURES: tuple[str, ...] = (
    "malformed json",
    "invalid utf-8",
    "invalid encoding",
    "expecting value",
    "unterminated string",
    "codec can't decode",
)


def is_unrecoverable(exc: BaseException) -> bool:
    """Return True if *exc* carries a known unrecoverable-error signature."""
    if isinstance(exc, UnicodeError):
        return True
    text = str(exc).lower()
    return any(sig in text for sig in UNRECOVERABLE_SIGNATURES)

"""Per-message acknowledgment policy.

Every consumed message walks the states below and ends in exactly one of
ACKED or PENDING::

    RECEIVED -> SANITIZED -> DECODED -> MAPPED -> APPLIED -> ACKED
                                |          |          |
                                +----------+----------+--> ACKED   (terminal)
                                                      +--> PENDING (retryable)

Terminal failures (malformed payloads, unusable events, documents the index
rejects) are logged and acknowledged so they never stall the partition.
PENDING is the only outcome that leaves a message unacknowledged; the
consumer then arranges redelivery.  Exceptions that escape a stage without
being classified count as retryable unless their text carries a known
unrecoverable signature.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from cdc_search_sync.codec.extended_json import decode
from cdc_search_sync.codec.sanitizer import sanitize
from cdc_search_sync.errors import FailureKind, StageError, is_unrecoverable
from cdc_search_sync.mapping.documents import Operation
from cdc_search_sync.mapping.mapper import map_event
from cdc_search_sync.observability.metrics import SyncStats
from cdc_search_sync.sync.dispatcher import SyncDispatcher, SyncOutcome

logger = structlog.get_logger()

Acknowledge = Callable[[], None]


class MessageState(StrEnum):
    RECEIVED = "received"
    SANITIZED = "sanitized"
    DECODED = "decoded"
    MAPPED = "mapped"
    APPLIED = "applied"
    ACKED = "acked"
    PENDING = "pending"


@dataclass(frozen=True, slots=True)
class MessageContext:
    """Where a message came from, for logs and dead-letter headers."""

    topic: str | None = None
    partition: int | None = None
    offset: int | None = None


@dataclass(frozen=True, slots=True)
class ProcessingOutcome:
    state: MessageState
    reached: MessageState
    failure: FailureKind | None = None
    reason: str = ""
    operation: Operation | None = None
    document_key: str | None = None

    @property
    def acknowledged(self) -> bool:
        return self.state is MessageState.ACKED


TerminalHook = Callable[[ProcessingOutcome, bytes | str | None, MessageContext], None]


class SyncProcessor:
    """Runs sanitize -> decode -> map -> apply and settles the message."""

    def __init__(
        self,
        dispatcher: SyncDispatcher,
        *,
        stats: SyncStats | None = None,
        on_terminal: TerminalHook | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._stats = stats or SyncStats()
        self._on_terminal = on_terminal

    @property
    def stats(self) -> SyncStats:
        return self._stats

    async def process(
        self,
        raw: bytes | str | None,
        acknowledge: Acknowledge,
        context: MessageContext | None = None,
    ) -> ProcessingOutcome:
        """Process one raw message and acknowledge it unless it must be retried."""
        ctx = context or MessageContext()
        try:
            outcome = await self._run(raw, ctx)
        except Exception as exc:
            outcome = self._unclassified(exc)

        self._settle(outcome, raw, ctx)
        if outcome.acknowledged:
            acknowledge()
        return outcome

    async def _run(
        self, raw: bytes | str | None, ctx: MessageContext
    ) -> ProcessingOutcome:
        logger.debug("processor.received", raw=raw, topic=ctx.topic, offset=ctx.offset)

        text = sanitize(raw)

        decoded = decode(text)
        if isinstance(decoded, StageError):
            return _terminal(MessageState.SANITIZED, decoded)

        event = map_event(decoded)
        if isinstance(event, StageError):
            return _terminal(MessageState.DECODED, event)

        result = await self._dispatcher.apply(event)
        if result.outcome is SyncOutcome.SUCCESS:
            return ProcessingOutcome(
                state=MessageState.ACKED,
                reached=MessageState.APPLIED,
                operation=event.operation,
                document_key=event.document_key,
            )
        if result.outcome is SyncOutcome.RETRYABLE:
            return ProcessingOutcome(
                state=MessageState.PENDING,
                reached=MessageState.MAPPED,
                failure=FailureKind.RETRYABLE,
                reason=result.reason,
                operation=event.operation,
                document_key=event.document_key,
            )
        return ProcessingOutcome(
            state=MessageState.ACKED,
            reached=MessageState.MAPPED,
            failure=FailureKind.TERMINAL_SYNC_FAILURE,
            reason=result.reason,
            operation=event.operation,
            document_key=event.document_key,
        )

    @staticmethod
    def _unclassified(exc: Exception) -> ProcessingOutcome:
        reason = f"{type(exc).__name__}: {exc}"
        if is_unrecoverable(exc):
            return ProcessingOutcome(
                state=MessageState.ACKED,
                reached=MessageState.RECEIVED,
                failure=FailureKind.TERMINAL_SYNC_FAILURE,
                reason=reason,
            )
        return ProcessingOutcome(
            state=MessageState.PENDING,
            reached=MessageState.RECEIVED,
            failure=FailureKind.RETRYABLE,
            reason=reason,
        )

    def _settle(
        self,
        outcome: ProcessingOutcome,
        raw: bytes | str | None,
        ctx: MessageContext,
    ) -> None:
        self._stats.record(outcome)
        if outcome.failure is None:
            return

        log_ctx = {
            "doc_id": outcome.document_key,
            "operation": outcome.operation,
            "failure": str(outcome.failure),
            "reason": outcome.reason,
            "stage": str(outcome.reached),
            "topic": ctx.topic,
            "partition": ctx.partition,
            "offset": ctx.offset,
        }
        if outcome.failure is FailureKind.RETRYABLE:
            logger.warning("processor.pending", **log_ctx)
            return
        if outcome.failure is FailureKind.UNSUPPORTED_OPERATION:
            logger.warning("processor.skipped", **log_ctx)
            return

        logger.error("processor.skipped", **log_ctx)
        if self._on_terminal is not None:
            self._on_terminal(outcome, raw, ctx)


def _terminal(reached: MessageState, error: StageError) -> ProcessingOutcome:
    return ProcessingOutcome(
        state=MessageState.ACKED,
        reached=reached,
        failure=error.kind,
        reason=error.reason,
    )

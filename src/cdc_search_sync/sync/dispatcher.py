"""Applies mapped change events to the search index."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum

import structlog

from cdc_search_sync.errors import IndexRejectedError, is_unrecoverable
from cdc_search_sync.mapping.documents import ChangeEvent, Operation
from cdc_search_sync.sinks.base import SearchIndex

logger = structlog.get_logger()


class SyncOutcome(StrEnum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True, slots=True)
class SyncResult:
    outcome: SyncOutcome
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is SyncOutcome.SUCCESS


class SyncDispatcher:
    """Upserts or deletes by id, and classifies index failures.

    Both writes are idempotent by id, so duplicate and out-of-order delivery
    of events for the same document is safe without any sequencing here.
    """

    def __init__(self, index: SearchIndex, *, write_timeout: float = 30.0) -> None:
        self._index = index
        self._write_timeout = write_timeout

    async def apply(self, event: ChangeEvent) -> SyncResult:
        try:
            async with asyncio.timeout(self._write_timeout):
                return await self._apply(event)
        except TimeoutError:
            reason = f"index write timed out after {self._write_timeout}s"
            return SyncResult(SyncOutcome.RETRYABLE, reason)
        except IndexRejectedError as exc:
            return SyncResult(SyncOutcome.TERMINAL, str(exc))
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
            if is_unrecoverable(exc):
                return SyncResult(SyncOutcome.TERMINAL, reason)
            return SyncResult(SyncOutcome.RETRYABLE, reason)

    async def _apply(self, event: ChangeEvent) -> SyncResult:
        if event.operation in (Operation.INSERT, Operation.UPDATE):
            if event.document is None:
                return SyncResult(SyncOutcome.TERMINAL, "no document to upsert")
            await self._index.upsert(event.document_key, event.document.to_index())
            logger.info(
                "dispatcher.upserted",
                index=self._index.index_name,
                doc_id=event.document_key,
                operation=str(event.operation),
            )
            return SyncResult(SyncOutcome.SUCCESS)

        if event.operation is Operation.DELETE:
            existed = await self._index.delete(event.document_key)
            logger.info(
                "dispatcher.deleted",
                index=self._index.index_name,
                doc_id=event.document_key,
                existed=existed,
            )
            return SyncResult(SyncOutcome.SUCCESS)

        return SyncResult(
            SyncOutcome.TERMINAL, f"cannot apply operation {event.operation}"
        )

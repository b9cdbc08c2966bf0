"""In-process sync counters exposed on the health server."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cdc_search_sync.sync.processor import ProcessingOutcome


@dataclass
class SyncStats:
    """Running totals of message outcomes since process start.

    Only the consume loop's task records into it; readers get a snapshot.
    """

    acked: int = 0
    pending: int = 0
    upserts: int = 0
    deletes: int = 0
    failures: Counter[str] = field(default_factory=Counter)
    last_acked_at: float | None = None
    started_at: float = field(default_factory=time.time)

    def record(self, outcome: ProcessingOutcome) -> None:
        if outcome.acknowledged:
            self.acked += 1
            self.last_acked_at = time.time()
        else:
            self.pending += 1
        if outcome.failure is not None:
            self.failures[str(outcome.failure)] += 1
        elif outcome.operation is not None:
            if outcome.operation == "delete":
                self.deletes += 1
            else:
                self.upserts += 1

    def snapshot(self) -> dict[str, Any]:
        return {
            "acked": self.acked,
            "pending": self.pending,
            "upserts": self.upserts,
            "deletes": self.deletes,
            "failures": dict(self.failures),
            "last_acked_at": self.last_acked_at,
            "uptime_seconds": round(time.time() - self.started_at, 3),
        }

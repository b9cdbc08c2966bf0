"""Search index protocol consumed by the sync dispatcher.

Any index engine that can overwrite a document by id and delete by id can
back the pipeline; both calls must be idempotent.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SearchIndex(Protocol):
    """Protocol every target index client must satisfy."""

    @property
    def index_name(self) -> str:
        """Name of the target index."""
        ...

    async def start(self) -> None:
        """Open connections."""
        ...

    async def upsert(self, doc_id: str, body: dict[str, Any]) -> None:
        """Create or fully overwrite the document stored under *doc_id*."""
        ...

    async def delete(self, doc_id: str) -> bool:
        """Remove *doc_id*; return False if it did not exist (not an error)."""
        ...

    async def stop(self) -> None:
        """Release connections."""
        ...

    async def health(self) -> dict[str, Any]:
        """Return a health-check status dict."""
        ...

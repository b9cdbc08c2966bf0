"""Test doubles and raw event builders shared by the unit tests."""

from __future__ import annotations

import json
from typing import Any


class InMemoryIndex:
    """Dict-backed SearchIndex with the same overwrite/delete-by-id semantics."""

    def __init__(self, index_name: str = "test-index") -> None:
        self._index_name = index_name
        self.documents: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None
        self.started = False

    @property
    def index_name(self) -> str:
        return self._index_name

    async def start(self) -> None:
        self.started = True

    async def upsert(self, doc_id: str, body: dict[str, Any]) -> None:
        self.calls.append(("upsert", doc_id))
        if self.fail_with is not None:
            raise self.fail_with
        self.documents[doc_id] = json.loads(json.dumps(body))

    async def delete(self, doc_id: str) -> bool:
        self.calls.append(("delete", doc_id))
        if self.fail_with is not None:
            raise self.fail_with
        return self.documents.pop(doc_id, None) is not None

    async def stop(self) -> None:
        self.started = False

    async def health(self) -> dict[str, Any]:
        return {
            "index": self._index_name,
            "status": "running" if self.started else "stopped",
        }


def insert_event(doc_id: str = "abc123", **fields: Any) -> str:
    """Raw insert event JSON with an $oid-wrapped _id."""
    document = {"_id": {"$oid": doc_id}, **fields}
    return json.dumps({"operationType": "insert", "fullDocument": document})


def delete_event(doc_id: str = "abc123") -> str:
    return json.dumps(
        {"operationType": "delete", "documentKey": {"_id": {"$oid": doc_id}}}
    )



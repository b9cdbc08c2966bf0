"""Projection of decoded change events onto index operations."""

from __future__ import annotations

from typing import Any

import structlog

from cdc_search_sync.codec.extended_json import (
    as_identifier,
    as_instant,
    as_long,
    as_text,
)
from cdc_search_sync.errors import FailureKind, MapError
from cdc_search_sync.mapping.documents import (
    ChangeEvent,
    CommunityEngagement,
    NormalizedDocument,
    Operation,
)

logger = structlog.get_logger()


def map_event(decoded: Any) -> ChangeEvent | MapError:
    """Turn a decoded change-stream event into a ``ChangeEvent``."""
    if not isinstance(decoded, dict):
        return MapError(
            FailureKind.MISSING_OPERATION,
            f"expected a change event object, got {type(decoded).__name__}",
        )

    raw_operation = decoded.get("operationType")
    if raw_operation is None:
        return MapError(FailureKind.MISSING_OPERATION, "operationType is missing")

    operation = Operation.parse(as_text(raw_operation) or "")
    if operation in (Operation.INSERT, Operation.UPDATE):
        return _map_upsert(operation, decoded.get("fullDocument"))
    if operation is Operation.DELETE:
        return _map_delete(decoded.get("documentKey"))

    return MapError(
        FailureKind.UNSUPPORTED_OPERATION,
        f"unsupported operationType {as_text(raw_operation)!r}",
    )


def _map_upsert(operation: Operation, full_document: Any) -> ChangeEvent | MapError:
    if not isinstance(full_document, dict):
        return MapError(
            FailureKind.MISSING_BODY, f"fullDocument is missing for {operation}"
        )
    document = map_document(full_document)
    if isinstance(document, MapError):
        return document
    return ChangeEvent(operation=operation, document_key=document.id, document=document)


def _map_delete(document_key: Any) -> ChangeEvent | MapError:
    if not isinstance(document_key, dict):
        return MapError(FailureKind.INVALID_KEY, "documentKey is missing")
    doc_id = as_identifier(document_key.get("_id"))
    if not doc_id:
        # Never delete on a guessed key.
        return MapError(
            FailureKind.INVALID_KEY, "documentKey._id is not an $oid identifier"
        )
    return ChangeEvent(operation=Operation.DELETE, document_key=doc_id)


def map_document(source: dict[str, Any]) -> NormalizedDocument | MapError:
    """Map a ``fullDocument`` post-image onto a ``NormalizedDocument``."""
    doc_id = _document_id(source.get("_id"))
    if not doc_id:
        return MapError(FailureKind.INVALID_KEY, "fullDocument._id is missing")

    return NormalizedDocument(
        id=doc_id,
        title=as_text(source.get("title")),
        content=as_text(source.get("content")),
        thumbnail=as_text(source.get("thumbnail")),
        keyword=as_text(source.get("keyword")),
        slug=as_text(source.get("slug")),
        tags=_tags(source.get("tags")),
        author_uuid=as_text(source.get("author_uuid", source.get("authorUuid"))),
        is_deleted=_flag(source.get("isDeleted"), default=False),
        is_draft=_flag(source.get("isDraft"), default=False),
        created_date=as_instant(
            source.get("created_date"), "fullDocument.created_date"
        ),
        last_modified_date=as_instant(
            source.get("last_modified_date"), "fullDocument.last_modified_date"
        ),
        community_engagement=_engagement(source),
    )


def _document_id(raw: Any) -> str | None:
    if raw is None:
        return None
    return as_identifier(raw) or as_text(raw)


def _tags(raw: Any) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raw = [raw]
    return tuple(text for item in raw if (text := as_text(item)) is not None)


def _flag(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    logger.warning("mapper.invalid_flag", value=repr(raw), default=default)
    return default


def _engagement(source: dict[str, Any]) -> CommunityEngagement | None:
    if "communityEngagement" not in source:
        return None
    raw = source["communityEngagement"]
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning("mapper.invalid_engagement", value=repr(raw))
        return None

    prefix = "fullDocument.communityEngagement"
    return CommunityEngagement(
        like_count=as_long(raw.get("likeCount"), f"{prefix}.likeCount"),
        comment_count=as_long(raw.get("commentCount"), f"{prefix}.commentCount"),
        report_count=as_long(raw.get("reportCount"), f"{prefix}.reportCount"),
        fire_count=as_long(raw.get("fireCount"), f"{prefix}.fireCount"),
        love_count=as_long(raw.get("loveCount"), f"{prefix}.loveCount"),
        last_updated=as_instant(raw.get("lastUpdated"), f"{prefix}.lastUpdated"),
    )

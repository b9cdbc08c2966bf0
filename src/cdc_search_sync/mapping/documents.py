"""Normalized content documents as stored in the search index."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

# Index mapping declares these dates as date_hour_minute_second.
INDEX_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


class Operation(StrEnum):
    """Change-stream operation kinds."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> Operation:
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


def format_index_date(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).strftime(INDEX_DATE_FORMAT)


@dataclass(frozen=True, slots=True)
class CommunityEngagement:
    like_count: int = 0
    comment_count: int = 0
    report_count: int = 0
    fire_count: int = 0
    love_count: int = 0
    last_updated: datetime | None = None

    def to_index(self) -> dict[str, Any]:
        return {
            "likeCount": self.like_count,
            "commentCount": self.comment_count,
            "reportCount": self.report_count,
            "fireCount": self.fire_count,
            "loveCount": self.love_count,
            "lastUpdated": format_index_date(self.last_updated),
        }


@dataclass(frozen=True, slots=True)
class NormalizedDocument:
    """A content record projected onto the index schema.

    ``id`` doubles as the index ``_id`` and is never empty.
    """

    id: str
    title: str | None = None
    content: str | None = None
    thumbnail: str | None = None
    keyword: str | None = None
    slug: str | None = None
    tags: tuple[str, ...] = ()
    author_uuid: str | None = None
    is_deleted: bool = False
    is_draft: bool = False
    created_date: datetime | None = None
    last_modified_date: datetime | None = None
    community_engagement: CommunityEngagement | None = None

    def __post_init__(self) -> None:
        if not self.id:
            msg = "NormalizedDocument.id must not be empty"
            raise ValueError(msg)

    def to_index(self) -> dict[str, Any]:
        """Index source body.  The id travels in the URL, not the body."""
        return {
            "title": self.title,
            "content": self.content,
            "thumbnail": self.thumbnail,
            "keyword": self.keyword,
            "slug": self.slug,
            "tags": list(self.tags),
            "communityEngagement": (
                self.community_engagement.to_index()
                if self.community_engagement is not None
                else None
            ),
            "isDeleted": self.is_deleted,
            "isDraft": self.is_draft,
            "author_uuid": self.author_uuid,
            "created_date": format_index_date(self.created_date),
            "last_modified_date": format_index_date(self.last_modified_date),
        }


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One mapped change: what to do to which index document."""

    operation: Operation
    document_key: str
    document: NormalizedDocument | None = field(default=None, repr=False)

"""Content domain models — pure Pydantic v2 data types.

A ContentEntry is the durable shape of one reconciled link in the
content store. Entries are owned by the store; other components only
propose them.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from curator.intake.models import Category, ContentFormat


class ContentEntry(BaseModel):
    """A persisted, reconciled content record."""

    id: str
    category: Category
    url: str
    canonical_url: str
    title: str = ""
    description: str = ""
    subcategory: str | None = None
    source: str | None = None
    author: str | None = None
    content_format: ContentFormat | None = None
    video_id: str | None = None
    published_at: datetime | None = None
    received_at: datetime | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    featured: bool = False
    needs_review: bool = False
    excerpt: str = ""
    last_modified: datetime | None = None

    @field_validator("excerpt")
    @classmethod
    def _strip_excerpt(cls, value: str) -> str:
        return value.strip()

    @property
    def sort_date(self) -> datetime | None:
        return self.published_at or self.received_at


class MergeResult(BaseModel):
    """Outcome of reconciling incoming records into a corpus snapshot."""

    entries: list[ContentEntry] = Field(default_factory=list)
    added_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0


class CommitResult(BaseModel):
    """Outcome of one store write."""

    changed: bool = False
    commit_ref: str | None = None
    paths: list[str] = Field(default_factory=list)

"""Pure data models for the intake side of the pipeline.

All Pydantic models and enums live here. No I/O, no business logic.
Services import from this module; this module only imports from stdlib
and third-party packages.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class InputSource(StrEnum):
    """Where a raw input came from."""

    EMAIL = "email"
    FEED = "feed"
    MANUAL = "manual"


class ContentFormat(StrEnum):
    """Resource format detected by the extractor."""

    ARTICLE = "article"
    VIDEO = "video"
    PDF = "pdf"
    REPORT = "report"


class Category(StrEnum):
    """Closed set of content categories.

    ``UNKNOWN`` is never persisted; it marks records below the review
    threshold.
    """

    NEWS = "news"
    CATALOG = "catalog"
    VIDEO = "video"
    UNKNOWN = "unknown"

    @classmethod
    def persistable(cls) -> tuple[Category, ...]:
        return (cls.NEWS, cls.CATALOG, cls.VIDEO)


class PublishState(StrEnum):
    """Confidence band a classified record falls into."""

    AUTO_PUBLISH = "auto_publish"
    NEEDS_REVIEW = "needs_review"
    EXCLUDED = "excluded"


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------


class RawInput(BaseModel):
    """One inbound unit: an email or a feed payload with candidate URLs."""

    sender: str = "unknown"
    received_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    published_at: datetime | None = None
    urls: list[str] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    source: InputSource = InputSource.EMAIL


class ExtractedMetadata(BaseModel):
    """Best-effort metadata. Every field may be missing."""

    author: str | None = None
    publish_date: datetime | None = None
    source_domain: str | None = None
    content_format: ContentFormat | None = None
    video_id: str | None = None


class ExtractedRecord(BaseModel):
    """Output of the extractor. Only ``url`` is guaranteed."""

    url: str
    title: str | None = None
    description: str | None = None
    body: str | None = None
    metadata: ExtractedMetadata = Field(default_factory=ExtractedMetadata)
    received_at: datetime | None = None

    @property
    def is_partial(self) -> bool:
        return not (self.title or self.description or self.body)


class ClassifiedRecord(ExtractedRecord):
    """An extracted record with a category and confidence score.

    ``title``, ``description`` and ``url`` are normalized display fields;
    they are never ``None`` after classification.
    """

    title: str = ""
    description: str = ""
    category: Category = Category.UNKNOWN
    subcategory: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: str | None = None
    featured: bool = False
    publish_state: PublishState = PublishState.EXCLUDED

    @property
    def date(self) -> datetime | None:
        """Date used for ordering: publish date, else received date."""
        return self.metadata.publish_date or self.received_at

"""Reconciliation: merge classified records into a corpus snapshot.

The snapshot is passed in explicitly; nothing here touches the store or
module-level state. Rules:

- The canonical URL is the dedup key.
- Existing entries win: curated fields are kept and only absent fields
  are filled from the incoming record.
- Output is ordered newest first; undated entries follow in encounter
  order.
- Merging the same batch twice is a no-op.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from curator.content.models import ContentEntry, MergeResult
from curator.errors import MergeConflict
from curator.intake.models import Category, ClassifiedRecord, PublishState
from curator.intake.urls import canonicalize_url, entry_id_for_url

logger = logging.getLogger(__name__)

_EXCERPT_LIMIT = 500

# Identity, bookkeeping and boolean curated fields; never filled from an
# incoming record. Other curated fields (title, description) are only
# filled while empty.
_FIXED_FIELDS = frozenset(
    {"id", "category", "canonical_url", "last_modified", "confidence", "needs_review", "featured"}
)


def entry_from_record(record: ClassifiedRecord, *, now: datetime | None = None) -> ContentEntry:
    """Build a new ContentEntry for a classified record.

    Raises:
        ValueError: The record is ``unknown`` and cannot be persisted.
    """
    if record.category == Category.UNKNOWN:
        raise ValueError(f"Cannot persist unknown-category record {record.url}")
    canonical = canonicalize_url(record.url)
    return ContentEntry(
        id=entry_id_for_url(canonical),
        category=record.category,
        url=record.url,
        canonical_url=canonical,
        title=record.title,
        description=record.description,
        subcategory=record.subcategory,
        source=record.source,
        author=record.metadata.author,
        content_format=record.metadata.content_format,
        video_id=record.metadata.video_id,
        published_at=record.metadata.publish_date,
        received_at=record.received_at,
        confidence=record.confidence,
        featured=record.featured,
        needs_review=record.publish_state == PublishState.NEEDS_REVIEW,
        excerpt=make_excerpt(record.body) or record.description,
        last_modified=now or datetime.now(tz=UTC),
    )


def fill_missing(existing: ContentEntry, incoming: ContentEntry) -> ContentEntry:
    """Return ``existing`` with absent fields filled from ``incoming``.

    Returns the same object when nothing changes.
    """
    updates: dict[str, object] = {}
    for name in ContentEntry.model_fields:
        if name in _FIXED_FIELDS:
            continue
        current = getattr(existing, name)
        candidate = getattr(incoming, name)
        if _is_absent(current) and not _is_absent(candidate):
            updates[name] = candidate
    if not updates:
        return existing
    return existing.model_copy(update=updates)


def merge(
    existing: Iterable[ContentEntry],
    incoming: Sequence[ClassifiedRecord],
    *,
    now: datetime | None = None,
) -> MergeResult:
    """Merge ``incoming`` into the ``existing`` snapshot.

    Args:
        existing: Current corpus entries (any categories).
        incoming: Classified records from this run. ``unknown`` records
            are skipped.
        now: Timestamp for ``last_modified`` on new or changed entries.

    Returns:
        MergeResult with the full ordered entry set.

    Raises:
        MergeConflict: Two different canonical URLs map to one id within
            a category.
    """
    stamp = now or datetime.now(tz=UTC)
    by_key: dict[str, ContentEntry] = {}
    ids: dict[tuple[Category, str], str] = {}

    for entry in existing:
        key = entry.canonical_url or canonicalize_url(entry.url)
        if key in by_key:
            logger.warning("Duplicate key in corpus snapshot, keeping first: %s", key)
            continue
        _claim_id(ids, entry, key)
        by_key[key] = entry

    added = updated = skipped = 0
    for record in incoming:
        if record.category == Category.UNKNOWN:
            skipped += 1
            continue
        candidate = entry_from_record(record, now=stamp)
        key = candidate.canonical_url
        current = by_key.get(key)
        if current is None:
            _claim_id(ids, candidate, key)
            by_key[key] = candidate
            added += 1
            continue

        filled = fill_missing(current, candidate)
        if filled is current:
            skipped += 1
            continue
        by_key[key] = filled.model_copy(update={"last_modified": stamp})
        updated += 1

    entries = order_entries(by_key.values())
    logger.debug(
        "Merged %d incoming: %d added, %d updated, %d skipped",
        len(incoming),
        added,
        updated,
        skipped,
    )
    return MergeResult(
        entries=entries,
        added_count=added,
        updated_count=updated,
        skipped_count=skipped,
    )


def order_entries(entries: Iterable[ContentEntry]) -> list[ContentEntry]:
    """Newest first; undated entries last in their original order."""

    def _key(entry: ContentEntry) -> tuple[int, float]:
        when = entry.sort_date
        if when is None:
            return (1, 0.0)
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        return (0, -when.timestamp())

    return sorted(entries, key=_key)


def make_excerpt(body: str | None, limit: int = _EXCERPT_LIMIT) -> str:
    if not body:
        return ""
    text = re.sub(r"\s+", " ", body).strip()
    if len(text) <= limit:
        return text
    return text[:limit].rsplit(" ", 1)[0] + "..."


def _claim_id(ids: dict[tuple[Category, str], str], entry: ContentEntry, key: str) -> None:
    slot = (entry.category, entry.id)
    owner = ids.get(slot)
    if owner is not None and owner != key:
        raise MergeConflict(
            f"Entry id {entry.id!r} in {entry.category.value} claimed by {owner} and {key}"
        )
    ids[slot] = key


def _is_absent(value: object) -> bool:
    return value is None or value == ""

"""Video feed payloads (RSS/Atom, e.g. a YouTube channel feed)."""

from __future__ import annotations

import logging
import time
from calendar import timegm
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import feedparser

from curator.errors import ExtractionError, InvalidInput
from curator.intake.extractor import HttpFetcher
from curator.intake.models import InputSource, RawInput
from curator.intake.parsers.base import InputParser, parse_received_at
from curator.intake.retry import RetryPolicy, TransientError
from curator.intake.urls import validate_url, video_watch_url

logger = logging.getLogger(__name__)


class FeedParser(InputParser):
    """Reads ``{feed: <xml or url>, since?, maxItems?}`` payloads.

    Each feed entry becomes its own RawInput carrying the entry's publish
    date, in the order the feed lists them. A feed given by URL is
    downloaded through ``fetcher`` under ``retry``.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        *,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetcher = fetcher or HttpFetcher()
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

    @property
    def source(self) -> InputSource:
        return InputSource.FEED

    def accepts(self, payload: dict[str, Any]) -> bool:
        return "feed" in payload

    def parse(self, payload: dict[str, Any]) -> list[RawInput]:
        document = payload.get("feed")
        if not isinstance(document, str) or not document.strip():
            raise InvalidInput("'feed' must be a feed document or URL")

        feed = feedparser.parse(self._load(document.strip()))
        if feed.bozo and not feed.entries:
            raise InvalidInput(f"Unreadable feed: {feed.get('bozo_exception')}")

        since = payload.get("since")
        cutoff = parse_received_at(since) if since else None
        max_items = payload.get("maxItems")
        site_name = feed.feed.get("title", "") or "feed"
        sender = str(payload.get("sender") or site_name)
        received_at = parse_received_at(payload.get("receivedAt"))

        inputs: list[RawInput] = []
        for entry in feed.entries:
            link = _entry_link(entry)
            if not link:
                continue
            published = _entry_date(entry)
            if cutoff and published and published < cutoff:
                continue
            inputs.append(
                RawInput(
                    sender=sender,
                    received_at=received_at,
                    published_at=published,
                    urls=[link],
                    subject=site_name,
                    body=entry.get("title", ""),
                    source=InputSource.FEED,
                )
            )
            if isinstance(max_items, int) and len(inputs) >= max_items:
                break

        logger.info("Parsed %d entries from feed %s", len(inputs), site_name)
        return inputs

    def _load(self, document: str) -> str:
        """Return the feed text, downloading it when ``document`` is a URL."""
        if not document.lower().startswith(("http://", "https://")):
            return document
        url = validate_url(document)
        try:
            response = self._retry.call(
                lambda: self._fetcher.fetch(url), label=f"feed {url}", sleep=self._sleep
            )
        except (TransientError, ExtractionError) as exc:
            raise InvalidInput(f"Could not fetch feed {url}: {exc}") from exc
        return response.text


def _entry_link(entry: feedparser.FeedParserDict) -> str:
    video_id = entry.get("yt_videoid")
    if video_id:
        return video_watch_url(video_id)
    return entry.get("link", "")


def _entry_date(entry: feedparser.FeedParserDict) -> datetime | None:
    for field in ("published_parsed", "updated_parsed"):
        time_struct = entry.get(field)
        if time_struct:
            try:
                return datetime.fromtimestamp(timegm(time_struct), tz=UTC)
            except (ValueError, OverflowError):
                continue
    return None

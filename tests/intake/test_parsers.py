"""Tests for input parsers: email, free text and video feeds."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from curator.errors import InvalidInput, UnreachableResource
from curator.intake.extractor import FetchResponse, FetchTimeout
from curator.intake.models import InputSource
from curator.intake.parsers import create_parser, parse_payload
from curator.intake.parsers.base import parse_received_at
from curator.intake.parsers.email import EmailParser, TextParser, raw_input_from_text
from curator.intake.parsers.feed import FeedParser
from curator.intake.retry import NO_RETRY, RetryPolicy

YOUTUBE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <title>Future Channel</title>
  <entry>
    <id>yt:video:aaaaaaaaaaa</id>
    <yt:videoId>aaaaaaaaaaa</yt:videoId>
    <title>Newest talk</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=aaaaaaaaaaa"/>
    <published>2025-06-02T10:00:00+00:00</published>
  </entry>
  <entry>
    <id>yt:video:bbbbbbbbbbb</id>
    <yt:videoId>bbbbbbbbbbb</yt:videoId>
    <title>Older talk</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=bbbbbbbbbbb"/>
    <published>2024-01-01T10:00:00+00:00</published>
  </entry>
</feed>
"""

RSS_FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel>
  <title>Tech Blog</title>
  <item><title>Post one</title><link>https://blog.example.com/one</link></item>
  <item><title>Post two</title><link>https://blog.example.com/two</link></item>
</channel></rss>
"""


# ── Email ──────────────────────────────────────────────────────────────


class TestEmailParser:
    def test_nested_email_shape(self):
        payload = {
            "email": {
                "subject": "Links",
                "body": "Read https://example.com/a and https://example.com/b.",
                "from": "editor@example.com",
                "date": "Tue, 01 Jul 2025 09:30:00 +0000",
            }
        }
        (raw,) = EmailParser().parse(payload)

        assert raw.sender == "editor@example.com"
        assert raw.subject == "Links"
        assert raw.urls == ["https://example.com/a", "https://example.com/b"]
        assert raw.received_at == datetime(2025, 7, 1, 9, 30, tzinfo=UTC)
        assert raw.source == InputSource.EMAIL

    def test_explicit_urls_win_over_body(self):
        payload = {"email": {"content": "https://ignored.com/x", "urls": ["https://kept.com/y"]}}
        (raw,) = EmailParser().parse(payload)
        assert raw.urls == ["https://kept.com/y"]
        assert raw.subject == "No Subject"
        assert raw.sender == "unknown"

    def test_flat_shape(self):
        payload = {
            "sender": "bot@example.com",
            "receivedAt": "2025-06-01T12:00:00Z",
            "urls": ["https://example.com/a"],
        }
        (raw,) = EmailParser().parse(payload)
        assert raw.sender == "bot@example.com"
        assert raw.received_at == datetime(2025, 6, 1, 12, tzinfo=UTC)

    def test_rejects_non_string_urls(self):
        with pytest.raises(InvalidInput):
            EmailParser().parse({"urls": [1, 2]})


class TestTextParser:
    def test_content_shape(self):
        (raw,) = TextParser().parse({"content": "Check https://example.com/ai-breakthrough"})
        assert raw.sender == "api-request"
        assert raw.urls == ["https://example.com/ai-breakthrough"]
        assert raw.source == InputSource.MANUAL

    def test_rejects_non_string(self):
        with pytest.raises(InvalidInput):
            TextParser().parse({"content": 42})

    def test_raw_input_from_text_without_urls(self):
        assert raw_input_from_text("nothing here", "me").urls == []


# ── Feeds ──────────────────────────────────────────────────────────────


class _FeedFetcher:
    """Serves a feed document after ``failures`` transient errors."""

    def __init__(self, text: str = RSS_FEED, failures: int = 0, error: Exception | None = None):
        self.text = text
        self.failures = failures
        self.error = error
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchResponse:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        if len(self.calls) <= self.failures:
            raise FetchTimeout("timed out after 1s")
        return FetchResponse(url=url, content_type="application/rss+xml", text=self.text)


class TestFeedParser:
    def test_youtube_feed(self):
        inputs = FeedParser().parse({"feed": YOUTUBE_FEED, "receivedAt": "2025-07-01T00:00:00Z"})

        assert [raw.urls for raw in inputs] == [
            ["https://www.youtube.com/watch?v=aaaaaaaaaaa"],
            ["https://www.youtube.com/watch?v=bbbbbbbbbbb"],
        ]
        for raw in inputs:
            assert raw.source == InputSource.FEED
            assert raw.sender == "Future Channel"
            assert raw.received_at == datetime(2025, 7, 1, tzinfo=UTC)

    def test_entries_keep_their_publish_dates(self):
        newest, older = FeedParser().parse({"feed": YOUTUBE_FEED})

        assert newest.published_at == datetime(2025, 6, 2, 10, tzinfo=UTC)
        assert older.published_at == datetime(2024, 1, 1, 10, tzinfo=UTC)
        assert newest.body == "Newest talk"

    def test_undated_entries(self):
        inputs = FeedParser().parse({"feed": RSS_FEED})
        assert [raw.published_at for raw in inputs] == [None, None]

    def test_since_filter(self):
        (raw,) = FeedParser().parse({"feed": YOUTUBE_FEED, "since": "2025-01-01T00:00:00Z"})
        assert raw.urls == ["https://www.youtube.com/watch?v=aaaaaaaaaaa"]

    def test_max_items(self):
        (raw,) = FeedParser().parse({"feed": RSS_FEED, "maxItems": 1})
        assert raw.urls == ["https://blog.example.com/one"]

    def test_rejects_empty(self):
        with pytest.raises(InvalidInput):
            FeedParser().parse({"feed": ""})

    def test_feed_url_fetched_through_fetcher(self):
        fetcher = _FeedFetcher()
        inputs = FeedParser(fetcher).parse({"feed": "https://blog.example.com/rss"})

        assert fetcher.calls == ["https://blog.example.com/rss"]
        assert [raw.urls for raw in inputs] == [
            ["https://blog.example.com/one"],
            ["https://blog.example.com/two"],
        ]

    def test_feed_url_retried_on_timeout(self):
        fetcher = _FeedFetcher(failures=2)
        sleeps: list[float] = []
        parser = FeedParser(fetcher, retry=RetryPolicy(max_attempts=3, backoff_seconds=0.5), sleep=sleeps.append)

        inputs = parser.parse({"feed": "https://blog.example.com/rss"})

        assert len(fetcher.calls) == 3
        assert sleeps == [0.5, 1.0]
        assert len(inputs) == 2

    def test_feed_url_gives_up_after_retries(self):
        fetcher = _FeedFetcher(failures=5)
        parser = FeedParser(fetcher, retry=RetryPolicy(max_attempts=2, backoff_seconds=0.0), sleep=lambda _: None)

        with pytest.raises(InvalidInput, match="Could not fetch feed https://blog.example.com/rss"):
            parser.parse({"feed": "https://blog.example.com/rss"})
        assert len(fetcher.calls) == 2

    def test_unreachable_feed_url(self):
        fetcher = _FeedFetcher(error=UnreachableResource("https://blog.example.com/rss", "HTTP 404"))

        with pytest.raises(InvalidInput, match="Could not fetch feed"):
            FeedParser(fetcher, retry=NO_RETRY).parse({"feed": "https://blog.example.com/rss"})
        assert len(fetcher.calls) == 1


# ── Dispatch ───────────────────────────────────────────────────────────


class TestDispatch:
    def test_create_parser(self):
        assert isinstance(create_parser("email"), EmailParser)
        assert isinstance(create_parser(InputSource.FEED), FeedParser)
        assert isinstance(create_parser("manual"), TextParser)
        with pytest.raises(ValueError):
            create_parser("carrier-pigeon")

    def test_parse_payload_picks_parser(self):
        (raw,) = parse_payload({"content": "see https://example.com/x", "sender": "me"})
        assert raw.source == InputSource.MANUAL
        assert raw.sender == "me"

    def test_unrecognised_payload(self):
        with pytest.raises(InvalidInput):
            parse_payload({"hello": "world"})


class TestReceivedAt:
    def test_epoch_millis(self):
        assert parse_received_at(1_700_000_000_000) == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_naive_iso_is_utc(self):
        assert parse_received_at("2025-06-01T08:00:00").tzinfo == UTC

    def test_missing_is_now(self):
        before = datetime.now(tz=UTC)
        assert parse_received_at(None) >= before

    def test_garbage(self):
        with pytest.raises(InvalidInput):
            parse_received_at("yesterday-ish")

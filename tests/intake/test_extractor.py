"""Tests for the content extractor and HTTP fetcher."""

from __future__ import annotations

import socket
import urllib.error
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from curator.errors import InvalidURL, UnreachableResource
from curator.intake.extractor import (
    ContentExtractor,
    FetchResponse,
    FetchTimeout,
    HttpFetcher,
    date_from_url,
    detect_format,
    parse_date,
)
from curator.intake.models import ContentFormat
from curator.intake.retry import RetryPolicy, TransientError

RETRY = RetryPolicy(max_attempts=3, backoff_seconds=0.01)


class FakeFetcher:
    """Scripted fetcher: each URL maps to a list of responses or exceptions."""

    def __init__(self, script: dict[str, list[object]] | None = None, json_data: dict | None = None):
        self.script = script or {}
        self.json_data = json_data
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchResponse:
        self.calls.append(url)
        steps = self.script[url]
        step = steps.pop(0) if len(steps) > 1 else steps[0]
        if isinstance(step, Exception):
            raise step
        return step  # type: ignore[return-value]

    def fetch_json(self, url: str) -> dict:
        self.calls.append(url)
        if isinstance(self.json_data, Exception):
            raise self.json_data
        return self.json_data or {}


def _html(url: str, text: str = "<html></html>", content_type: str = "text/html") -> FetchResponse:
    return FetchResponse(url=url, status=200, content_type=content_type, text=text)


def _extractor(fetcher: FakeFetcher, **kwargs) -> ContentExtractor:
    return ContentExtractor(fetcher, retry=RETRY, sleep=lambda _: None, **kwargs)  # type: ignore[arg-type]


# ── Validation ──────────────────────────────────────────────────────────


class TestInvalidUrl:
    def test_raises_without_network(self):
        fetcher = FakeFetcher()
        with pytest.raises(InvalidURL):
            _extractor(fetcher).extract("not a url")
        assert fetcher.calls == []

    def test_relative_url(self):
        with pytest.raises(InvalidURL):
            _extractor(FakeFetcher()).extract("/news/story")


# ── Videos ─────────────────────────────────────────────────────────────


class TestVideo:
    def test_oembed_metadata(self):
        fetcher = FakeFetcher(json_data={"title": " The Future of AI ", "author_name": "FutureFast"})
        record = _extractor(fetcher).extract("https://youtu.be/dQw4w9WgXcQ?si=x")

        assert record.url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert record.title == "The Future of AI"
        assert record.metadata.author == "FutureFast"
        assert record.metadata.video_id == "dQw4w9WgXcQ"
        assert record.metadata.content_format == ContentFormat.VIDEO
        assert len(fetcher.calls) == 1
        assert "oembed" in fetcher.calls[0]

    def test_oembed_failure_falls_back_to_url_only(self):
        fetcher = FakeFetcher(json_data=UnreachableResource("oembed", "HTTP 404"))
        record = _extractor(fetcher).extract("https://www.youtube.com/watch?v=dQw4w9WgXcQ")

        assert record.title is None
        assert record.metadata.video_id == "dQw4w9WgXcQ"

    def test_oembed_disabled(self):
        fetcher = FakeFetcher()
        record = _extractor(fetcher, use_oembed=False).extract("https://youtu.be/dQw4w9WgXcQ")
        assert fetcher.calls == []
        assert record.metadata.content_format == ContentFormat.VIDEO


# ── Pages ──────────────────────────────────────────────────────────────


class TestPages:
    URL = "https://example.com/news/story"

    @patch("curator.intake.extractor.trafilatura")
    def test_html_metadata(self, mock_traf: MagicMock):
        mock_traf.extract_metadata.return_value = SimpleNamespace(
            title="Robots Take Over: A Report",
            description="Robots are here.",
            author="Jane Doe",
            date="2025-06-01",
        )
        mock_traf.extract.return_value = "Body text about robots."
        fetcher = FakeFetcher({self.URL: [_html(self.URL, "<html>...</html>")]})

        record = _extractor(fetcher).extract(self.URL)

        assert record.title == "Robots Take Over: A Report"
        assert record.description == "Robots are here."
        assert record.body == "Body text about robots."
        assert record.metadata.author == "Jane Doe"
        assert record.metadata.publish_date.isoformat() == "2025-06-01T00:00:00+00:00"
        assert record.metadata.source_domain == "example.com"
        assert record.metadata.content_format == ContentFormat.REPORT

    @patch("curator.intake.extractor.trafilatura")
    def test_description_falls_back_to_body(self, mock_traf: MagicMock):
        mock_traf.extract_metadata.return_value = SimpleNamespace(
            title="Title", description=None, author=None, date=None
        )
        mock_traf.extract.return_value = "First sentence.   Second\nsentence."
        fetcher = FakeFetcher({self.URL: [_html(self.URL, "<html>x</html>")]})

        record = _extractor(fetcher).extract(self.URL)

        assert record.description == "First sentence. Second sentence."
        assert record.metadata.content_format == ContentFormat.ARTICLE

    def test_real_html_page(self):
        html = (
            "<html><head><title>Hello World</title>"
            '<meta name="description" content="A short page about greetings.">'
            "</head><body><article><p>"
            + "Greetings are a universal part of human communication. " * 10
            + "</p></article></body></html>"
        )
        fetcher = FakeFetcher({self.URL: [_html(self.URL, html)]})

        record = _extractor(fetcher).extract(self.URL)

        assert record.title == "Hello World"
        assert record.description == "A short page about greetings."

    def test_unparsable_body_gives_partial_record(self):
        fetcher = FakeFetcher({self.URL: [_html(self.URL, "   ")]})
        record = _extractor(fetcher).extract(self.URL)

        assert record.url == self.URL
        assert record.is_partial
        assert record.metadata.source_domain == "example.com"

    def test_pdf_uses_file_name(self):
        url = "https://example.org/files/future-of-work_report.pdf"
        fetcher = FakeFetcher({url: [_html(url, "%PDF-1.7", "application/pdf")]})
        record = _extractor(fetcher).extract(url)

        assert record.metadata.content_format == ContentFormat.PDF
        assert record.title == "Future Of Work Report"


# ── Failures and retries ───────────────────────────────────────────────


class TestFailures:
    URL = "https://example.com/slow"

    def test_timeout_gives_partial_record(self):
        fetcher = FakeFetcher({self.URL: [FetchTimeout("timed out")]})
        record = _extractor(fetcher).extract(self.URL)

        assert record.is_partial
        assert record.url == self.URL
        assert len(fetcher.calls) == 3

    def test_transient_then_success(self):
        fetcher = FakeFetcher(
            {self.URL: [TransientError("HTTP 503"), _html(self.URL, "   ")]}
        )
        record = _extractor(fetcher).extract(self.URL)
        assert record.url == self.URL
        assert len(fetcher.calls) == 2

    def test_transient_exhausted_is_unreachable(self):
        fetcher = FakeFetcher({self.URL: [TransientError("HTTP 503")]})
        with pytest.raises(UnreachableResource) as excinfo:
            _extractor(fetcher).extract(self.URL)
        assert excinfo.value.url == self.URL
        assert len(fetcher.calls) == 3

    def test_unreachable_is_not_retried(self):
        fetcher = FakeFetcher({self.URL: [UnreachableResource(self.URL, "Name or service not known")]})
        with pytest.raises(UnreachableResource):
            _extractor(fetcher).extract(self.URL)
        assert len(fetcher.calls) == 1


# ── HttpFetcher ────────────────────────────────────────────────────────


def _http_error(code: int) -> urllib.error.HTTPError:
    return urllib.error.HTTPError("https://example.com", code, "error", None, None)  # type: ignore[arg-type]


class TestHttpFetcher:
    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_success(self, mock_urlopen: MagicMock):
        response = MagicMock()
        response.read.return_value = b"<html>hi</html>"
        response.headers.get_content_charset.return_value = "utf-8"
        response.headers.get.return_value = "text/html; charset=utf-8"
        response.status = 200
        mock_urlopen.return_value.__enter__.return_value = response

        result = HttpFetcher(timeout=5).fetch("https://example.com")

        assert result.text == "<html>hi</html>"
        assert result.content_type.startswith("text/html")
        request = mock_urlopen.call_args[0][0]
        assert request.get_header("User-agent").startswith("Curator/")
        assert mock_urlopen.call_args[1]["timeout"] == 5

    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_truncates_large_bodies(self, mock_urlopen: MagicMock):
        response = MagicMock()
        response.read.return_value = b"a" * 20
        response.headers.get_content_charset.return_value = None
        response.headers.get.return_value = "text/plain"
        mock_urlopen.return_value.__enter__.return_value = response

        result = HttpFetcher(max_bytes=10).fetch("https://example.com")
        assert result.text == "a" * 10

    @pytest.mark.parametrize("code", [429, 500, 503])
    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_retryable_status(self, mock_urlopen: MagicMock, code: int):
        mock_urlopen.side_effect = _http_error(code)
        with pytest.raises(TransientError):
            HttpFetcher().fetch("https://example.com")

    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_not_found_is_unreachable(self, mock_urlopen: MagicMock):
        mock_urlopen.side_effect = _http_error(404)
        with pytest.raises(UnreachableResource, match="HTTP 404"):
            HttpFetcher().fetch("https://example.com")

    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_timeout(self, mock_urlopen: MagicMock):
        mock_urlopen.side_effect = urllib.error.URLError(socket.timeout("timed out"))
        with pytest.raises(FetchTimeout):
            HttpFetcher().fetch("https://example.com")

    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_refused_is_unreachable(self, mock_urlopen: MagicMock):
        mock_urlopen.side_effect = urllib.error.URLError(ConnectionRefusedError("refused"))
        with pytest.raises(UnreachableResource):
            HttpFetcher().fetch("https://example.com")

    @patch("curator.intake.extractor.urllib.request.urlopen")
    def test_reset_is_transient(self, mock_urlopen: MagicMock):
        mock_urlopen.side_effect = ConnectionResetError("reset")
        with pytest.raises(TransientError):
            HttpFetcher().fetch("https://example.com")


# ── Helpers ────────────────────────────────────────────────────────────


class TestHelpers:
    def test_detect_format(self):
        assert detect_format("https://a.com/x.pdf") == ContentFormat.PDF
        assert detect_format("https://a.com/x", "application/pdf; q=1") == ContentFormat.PDF
        assert detect_format("https://a.com/2025-ai-report") == ContentFormat.REPORT
        assert detect_format("https://youtu.be/dQw4w9WgXcQ") == ContentFormat.VIDEO
        assert detect_format("https://a.com/story", "text/html") == ContentFormat.ARTICLE

    def test_parse_date(self):
        assert parse_date("2024-01-01T10:00:00Z").isoformat() == "2024-01-01T10:00:00+00:00"
        assert parse_date("not a date") is None
        assert parse_date(None) is None


class TestDateFromUrl:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://techcrunch.com/2025/06/01/robots/", datetime(2025, 6, 1, tzinfo=UTC)),
            ("https://aibusiness.com/news/2024-11-05-model-launch", datetime(2024, 11, 5, tzinfo=UTC)),
            ("https://example.com/2023/02/28", datetime(2023, 2, 28, tzinfo=UTC)),
        ],
    )
    def test_dated_paths(self, url: str, expected: datetime):
        assert date_from_url(url) == expected

    @pytest.mark.parametrize(
        "url",
        [
            "https://example.com/news/story",
            "https://example.com/2019/06/01/too-old/",
            "https://example.com/2025/13/01/bad-month/",
            "https://example.com/2025/02/30/no-such-day/",
            "https://example.com/9999/01/01/far-future/",
            "https://example.com/story?date=2025-06-01",
            "https://example.com/id/120250601999",
        ],
    )
    def test_undated_or_implausible(self, url: str):
        assert date_from_url(url) is None

    @patch("curator.intake.extractor.trafilatura")
    def test_html_without_date_uses_url(self, mock_traf: MagicMock):
        url = "https://venturebeat.com/2025/03/14/agents/"
        mock_traf.extract_metadata.return_value = SimpleNamespace(
            title="Agents", description="About agents.", author=None, date=None
        )
        mock_traf.extract.return_value = "Agents everywhere."
        record = _extractor(FakeFetcher({url: [_html(url, "<html>x</html>")]})).extract(url)

        assert record.metadata.publish_date == datetime(2025, 3, 14, tzinfo=UTC)

    @patch("curator.intake.extractor.trafilatura")
    def test_page_date_beats_url(self, mock_traf: MagicMock):
        url = "https://venturebeat.com/2025/03/14/agents/"
        mock_traf.extract_metadata.return_value = SimpleNamespace(
            title="Agents", description="About agents.", author=None, date="2025-03-15"
        )
        mock_traf.extract.return_value = "Agents everywhere."
        record = _extractor(FakeFetcher({url: [_html(url, "<html>x</html>")]})).extract(url)

        assert record.metadata.publish_date == datetime(2025, 3, 15, tzinfo=UTC)

    def test_partial_record_on_timeout_uses_url(self):
        url = "https://techcrunch.com/2025/06/01/slow-story/"
        record = _extractor(FakeFetcher({url: [FetchTimeout("timed out")]})).extract(url)

        assert record.is_partial
        assert record.metadata.publish_date == datetime(2025, 6, 1, tzinfo=UTC)

    def test_document_record_uses_url(self):
        url = "https://example.org/files/2024-09-30-annual-report.pdf"
        record = _extractor(FakeFetcher({url: [_html(url, "%PDF-1.7", "application/pdf")]})).extract(url)

        assert record.metadata.content_format == ContentFormat.PDF
        assert record.metadata.publish_date == datetime(2024, 9, 30, tzinfo=UTC)

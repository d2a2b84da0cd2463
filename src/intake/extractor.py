"""Content extraction: URL → ExtractedRecord.

Uses ``urllib.request`` for HTTP fetching and ``trafilatura`` for
article text and page metadata. Video URLs short-circuit to the oEmbed
endpoint instead of scraping HTML.

Failure policy:

- malformed URL → :class:`InvalidURL`, no network call
- timeout or unparsable body → record with only ``url`` populated
- DNS failure, refused connection, non-2xx after retries →
  :class:`UnreachableResource`
"""

from __future__ import annotations

import json
import logging
import re
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import PurePosixPath

import trafilatura
from pydantic import BaseModel

from curator.errors import UnreachableResource
from curator.intake.models import ContentFormat, ExtractedMetadata, ExtractedRecord
from curator.intake.retry import NO_RETRY, RetryPolicy, TransientError
from curator.intake.urls import (
    extract_video_id,
    is_video_url,
    source_domain,
    validate_url,
    video_watch_url,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "Curator/0.1 (+content intake pipeline)"

_OEMBED_ENDPOINT = "https://www.youtube.com/oembed"

_REPORT_WORDS = ("report", "whitepaper", "white-paper", "white paper")

_DESCRIPTION_LIMIT = 300

_URL_DATE_MIN_YEAR = 2020

_URL_DATE_PATTERNS = (
    re.compile(r"/(\d{4})/(\d{2})/(\d{2})(?=/|$)"),
    re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)"),
)


class FetchTimeout(TransientError):
    """The remote did not answer within the timeout."""


class FetchResponse(BaseModel):
    """A fetched HTTP resource."""

    url: str
    status: int = 200
    content_type: str = ""
    text: str = ""


class HttpFetcher:
    """Minimal HTTP GET client with size and time limits."""

    def __init__(
        self,
        *,
        timeout: int = 15,
        user_agent: str = _USER_AGENT,
        max_bytes: int = 2_000_000,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes

    def fetch(self, url: str) -> FetchResponse:
        """GET ``url``.

        Raises:
            FetchTimeout: The request timed out.
            TransientError: 5xx/429 or a reset connection; worth retrying.
            UnreachableResource: DNS failure, refused connection, other 4xx.
        """
        request = urllib.request.Request(  # noqa: S310
            url,
            headers={"User-Agent": self.user_agent, "Accept": "*/*"},
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:  # noqa: S310
                raw = response.read(self.max_bytes + 1)
                charset = response.headers.get_content_charset() or "utf-8"
                content_type = response.headers.get("Content-Type", "")
                status = getattr(response, "status", 200)
        except urllib.error.HTTPError as exc:
            if exc.code == 429 or exc.code >= 500:
                raise TransientError(f"HTTP {exc.code}") from exc
            raise UnreachableResource(url, f"HTTP {exc.code}") from exc
        except urllib.error.URLError as exc:
            reason = exc.reason
            if isinstance(reason, (TimeoutError, socket.timeout)):
                raise FetchTimeout(f"timed out after {self.timeout}s") from exc
            if isinstance(reason, ConnectionResetError):
                raise TransientError(f"connection reset: {reason}") from exc
            raise UnreachableResource(url, f"{reason}") from exc
        except (TimeoutError, socket.timeout) as exc:
            raise FetchTimeout(f"timed out after {self.timeout}s") from exc
        except ConnectionResetError as exc:
            raise TransientError(f"connection reset: {exc}") from exc

        if len(raw) > self.max_bytes:
            logger.debug("Truncating %s at %d bytes", url, self.max_bytes)
            raw = raw[: self.max_bytes]
        return FetchResponse(
            url=url,
            status=status,
            content_type=content_type,
            text=raw.decode(charset, errors="replace"),
        )

    def fetch_json(self, url: str) -> dict:
        response = self.fetch(url)
        data = json.loads(response.text)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {url}")
        return data


class ContentExtractor:
    """Fetches a URL and turns it into normalized metadata.

    Stateless apart from its collaborators; safe to call from several
    worker threads at once.
    """

    def __init__(
        self,
        fetcher: HttpFetcher | None = None,
        *,
        retry: RetryPolicy | None = None,
        use_oembed: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._fetcher = fetcher or HttpFetcher()
        self._retry = retry or NO_RETRY
        self._use_oembed = use_oembed
        self._sleep = sleep

    def extract(self, url: str) -> ExtractedRecord:
        """Extract metadata for a single URL.

        Raises:
            InvalidURL: ``url`` is not an absolute HTTP(S) URL.
            UnreachableResource: The resource could not be reached.
        """
        url = validate_url(url)
        if is_video_url(url):
            return self._extract_video(url)

        try:
            response = self._retry.call(
                lambda: self._fetcher.fetch(url), label=f"fetch {url}", sleep=self._sleep
            )
        except FetchTimeout as exc:
            logger.warning("Timed out fetching %s (%s); keeping URL only", url, exc)
            return _partial_record(url)
        except TransientError as exc:
            raise UnreachableResource(url, str(exc)) from exc

        content_format = detect_format(url, response.content_type)
        if content_format == ContentFormat.PDF:
            return _document_record(url, content_format)

        try:
            record = parse_html(response.text, url)
        except Exception as exc:
            logger.warning("Could not parse %s: %s", url, exc)
            return _partial_record(url)

        if record.metadata.content_format is None:
            record.metadata.content_format = content_format
        return record

    # ── Video ────────────────────────────────────────────────────

    def _extract_video(self, url: str) -> ExtractedRecord:
        video_id = extract_video_id(url)
        watch_url = video_watch_url(video_id) if video_id else url
        metadata = ExtractedMetadata(
            source_domain="youtube.com",
            content_format=ContentFormat.VIDEO,
            video_id=video_id,
        )
        record = ExtractedRecord(url=watch_url, metadata=metadata)
        if not self._use_oembed or not video_id:
            return record

        query = urllib.parse.urlencode({"url": watch_url, "format": "json"})
        oembed_url = f"{_OEMBED_ENDPOINT}?{query}"
        try:
            data = self._retry.call(
                lambda: self._fetcher.fetch_json(oembed_url),
                label=f"oembed {video_id}",
                sleep=self._sleep,
            )
        except (TransientError, UnreachableResource, ValueError) as exc:
            logger.info("oEmbed lookup failed for %s: %s", video_id, exc)
            return record

        title = data.get("title")
        author = data.get("author_name")
        record.title = title.strip() if isinstance(title, str) and title.strip() else None
        record.metadata.author = author if isinstance(author, str) and author else None
        return record


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def detect_format(url: str, content_type: str = "") -> ContentFormat:
    """Classify a resource by content-type header or URL shape."""
    ctype = content_type.split(";")[0].strip().lower()
    path = urllib.parse.urlsplit(url).path.lower()
    if ctype == "application/pdf" or path.endswith(".pdf"):
        return ContentFormat.PDF
    if ctype.startswith("video/") or is_video_url(url):
        return ContentFormat.VIDEO
    if any(word in path for word in _REPORT_WORDS):
        return ContentFormat.REPORT
    return ContentFormat.ARTICLE


def parse_html(html: str, url: str) -> ExtractedRecord:
    """Pull title, description, author, date and body out of an HTML page.

    Raises:
        ValueError: The page yields neither metadata nor text.
    """
    if not html or not html.strip():
        raise ValueError("empty body")

    meta = trafilatura.extract_metadata(html, default_url=url)
    body = trafilatura.extract(
        html,
        include_comments=False,
        include_tables=True,
        output_format="txt",
    )
    if meta is None and not body:
        raise ValueError("no metadata or text found")

    title = _clean(getattr(meta, "title", None))
    description = _clean(getattr(meta, "description", None))
    author = _clean(getattr(meta, "author", None))
    publish_date = parse_date(getattr(meta, "date", None)) or date_from_url(url)

    if not description and body:
        description = _summarize(body)

    content_format = None
    lowered = (title or "").lower()
    if any(word in lowered for word in _REPORT_WORDS):
        content_format = ContentFormat.REPORT

    return ExtractedRecord(
        url=url,
        title=title,
        description=description,
        body=body or None,
        metadata=ExtractedMetadata(
            author=author,
            publish_date=publish_date,
            source_domain=source_domain(url) or None,
            content_format=content_format,
        ),
    )


def parse_date(value: object) -> datetime | None:
    """Parse an ISO-ish date string into an aware datetime (UTC if naive)."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def date_from_url(url: str) -> datetime | None:
    """Publish date encoded in a URL path (``/2025/06/01/`` or ``2025-06-01``).

    Years before 2020 or more than one year ahead are ignored, as are
    impossible calendar dates.
    """
    path = urllib.parse.urlsplit(url).path
    latest_year = datetime.now(tz=UTC).year + 1
    for pattern in _URL_DATE_PATTERNS:
        for match in pattern.finditer(path):
            year, month, day = (int(part) for part in match.groups())
            if not _URL_DATE_MIN_YEAR <= year <= latest_year:
                continue
            try:
                return datetime(year, month, day, tzinfo=UTC)
            except ValueError:
                continue
    return None


def _partial_record(url: str) -> ExtractedRecord:
    return ExtractedRecord(
        url=url,
        metadata=ExtractedMetadata(
            source_domain=source_domain(url) or None,
            publish_date=date_from_url(url),
        ),
    )


def _document_record(url: str, content_format: ContentFormat) -> ExtractedRecord:
    """Record for a binary document: title from the file name only."""
    name = PurePosixPath(urllib.parse.unquote(urllib.parse.urlsplit(url).path)).stem
    title = re.sub(r"[-_]+", " ", name).strip()
    return ExtractedRecord(
        url=url,
        title=title.title() if title else None,
        metadata=ExtractedMetadata(
            source_domain=source_domain(url) or None,
            content_format=content_format,
            publish_date=date_from_url(url),
        ),
    )


def _clean(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    text = re.sub(r"\s+", " ", value).strip()
    return text or None


def _summarize(body: str) -> str:
    text = re.sub(r"\s+", " ", body).strip()
    if len(text) <= _DESCRIPTION_LIMIT:
        return text
    return text[:_DESCRIPTION_LIMIT].rsplit(" ", 1)[0] + "..."

"""URL helpers: validation, canonicalization, video ids, and slugs.

The canonical URL is the dedup key for the whole pipeline, so every
function here is pure and deterministic.
"""

from __future__ import annotations

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from curator.errors import InvalidURL

TRACKING_PARAMS = frozenset(
    {
        "utm_source",
        "utm_medium",
        "utm_campaign",
        "utm_term",
        "utm_content",
        "utm_id",
        "utm_name",
        "utm_reader",
        "utm_referrer",
        "utm_swu",
        "gclid",
        "dclid",
        "fbclid",
        "msclkid",
        "mc_cid",
        "mc_eid",
        "igshid",
        "ref",
        "ref_src",
        "ref_url",
        "si",
        "feature",
        "_hsenc",
        "_hsmi",
        "mkt_tok",
    }
)

VIDEO_HOSTS = frozenset(
    {
        "youtube.com",
        "www.youtube.com",
        "m.youtube.com",
        "music.youtube.com",
        "youtu.be",
        "www.youtu.be",
        "youtube-nocookie.com",
        "www.youtube-nocookie.com",
    }
)

_DEFAULT_PORTS = {"http": 80, "https": 443}

_VIDEO_PATTERNS = [
    re.compile(r"(?:youtube(?:-nocookie)?\.com/(?:embed|live|shorts|v)/)([A-Za-z0-9_-]{6,})"),
    re.compile(r"youtu\.be/([A-Za-z0-9_-]{6,})"),
    re.compile(r"youtube\.com/watch\?(?:.*&)?v=([A-Za-z0-9_-]{6,})"),
]

_URL_IN_TEXT = re.compile(r"https?://[^\s<>\"'`\])}]+", re.IGNORECASE)
_TRAILING_PUNCT = ".,;:!?*"

_SLUG_MAX = 60


def validate_url(url: str) -> str:
    """Return the stripped URL or raise :class:`InvalidURL`.

    Only absolute ``http``/``https`` URLs with a host are accepted. No
    network access happens here.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidURL(str(url), "empty URL")
    candidate = url.strip()
    if any(ch.isspace() for ch in candidate):
        raise InvalidURL(candidate, "URL contains whitespace")
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise InvalidURL(candidate, str(exc)) from exc
    if parts.scheme.lower() not in ("http", "https"):
        raise InvalidURL(candidate, f"unsupported scheme {parts.scheme!r}")
    if not parts.hostname:
        raise InvalidURL(candidate, "missing host")
    if "." not in parts.hostname and parts.hostname != "localhost":
        raise InvalidURL(candidate, "host is not a domain name")
    if port == 0:
        raise InvalidURL(candidate, "invalid port")
    return candidate


def is_valid_url(url: str) -> bool:
    try:
        validate_url(url)
    except InvalidURL:
        return False
    return True


def source_domain(url: str) -> str:
    """Host without ``www.``, lower-cased. Empty string when unparsable."""
    try:
        host = urlsplit(url.strip()).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_video_url(url: str) -> bool:
    try:
        host = (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return False
    return host in VIDEO_HOSTS and extract_video_id(url) is not None


def extract_video_id(url: str) -> str | None:
    """Return the YouTube video id for watch/short/embed/live URLs."""
    if not url:
        return None
    for pattern in _VIDEO_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def video_watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def canonicalize_url(url: str) -> str:
    """Canonicalize a URL for dedup.

    - Lowercase scheme and host, drop default ports
    - Drop the fragment and a trailing slash on the path
    - Strip tracking query parameters; sort the rest
    - Video URLs collapse to the ``watch?v=<id>`` form
    """
    if not url:
        return ""
    raw = url.strip()
    if is_video_url(raw):
        video_id = extract_video_id(raw)
        if video_id:
            return video_watch_url(video_id)

    parts = urlsplit(raw)
    scheme = (parts.scheme or "https").lower()
    host = (parts.hostname or "").lower()
    netloc = host
    if parts.port and parts.port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{parts.port}"

    path = re.sub(r"/{2,}", "/", parts.path or "")
    if len(path) > 1:
        path = path.rstrip("/")
    if path == "/":
        path = ""

    kept = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS and not k.lower().startswith("utm_")
    ]
    kept.sort()
    query = urlencode(kept, doseq=True)

    return urlunsplit((scheme, netloc, path, query, ""))


def url_hash(url: str, length: int = 8) -> str:
    """Short stable hash of the canonical URL."""
    canon = canonicalize_url(url)
    return hashlib.sha256(canon.encode("utf-8")).hexdigest()[:length]


def slugify(text: str, max_length: int = _SLUG_MAX) -> str:
    """Lowercase, hyphen-separated ASCII slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")
    return slug


def entry_id_for_url(url: str) -> str:
    """Stable entry id derived from the canonical URL.

    Videos use their platform id; everything else combines a readable
    host/path slug with a short hash of the canonical URL, so the same
    logical URL always maps to the same id.
    """
    canon = canonicalize_url(url)
    video_id = extract_video_id(canon) if is_video_url(canon) else None
    if video_id:
        return f"youtube-{video_id}"

    parts = urlsplit(canon)
    host = parts.hostname or ""
    if host.startswith("www."):
        host = host[4:]
    segments = [s for s in parts.path.split("/") if s]
    tail = segments[-1] if segments else ""
    tail = re.sub(r"\.(html?|php|aspx?|pdf)$", "", tail, flags=re.IGNORECASE)
    readable = slugify(f"{host} {tail}", max_length=_SLUG_MAX - 9)
    return f"{readable}-{url_hash(canon)}"


def extract_urls_from_text(text: str) -> list[str]:
    """Find http(s) URLs in free text, in order, without duplicates."""
    if not text:
        return []
    seen: set[str] = set()
    urls: list[str] = []
    for match in _URL_IN_TEXT.finditer(text):
        candidate = match.group(0).rstrip(_TRAILING_PUNCT)
        if candidate and candidate not in seen:
            seen.add(candidate)
            urls.append(candidate)
    return urls

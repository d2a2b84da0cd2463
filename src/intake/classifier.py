"""Classification: ExtractedRecord → ClassifiedRecord.

Deterministic URL/domain rules run first. Ambiguous records fall back
to a keyword score over the extracted text, or to an optional LLM
backend when one is configured. The classifier never raises; the worst
case is ``unknown`` with confidence 0.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod

from pydantic import BaseModel, Field, ValidationError, model_validator

from curator.intake.models import (
    Category,
    ClassifiedRecord,
    ContentFormat,
    ExtractedRecord,
    PublishState,
)
from curator.intake.urls import VIDEO_HOSTS, source_domain
from curator.llm import LLMError, call_claude, strip_json_fences

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Confidence policy
# ---------------------------------------------------------------------------


class ConfidencePolicy(BaseModel):
    """Maps a confidence score onto a publish state.

    ``>= publish_threshold`` auto-publishes, ``[review, publish)`` needs
    review, anything lower is excluded and reclassified ``unknown``.
    """

    review_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    publish_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> ConfidencePolicy:
        if self.review_threshold > self.publish_threshold:
            raise ValueError("review_threshold must not exceed publish_threshold")
        return self

    def state_for(self, confidence: float) -> PublishState:
        if confidence >= self.publish_threshold:
            return PublishState.AUTO_PUBLISH
        if confidence >= self.review_threshold:
            return PublishState.NEEDS_REVIEW
        return PublishState.EXCLUDED


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------

RESEARCH_DOMAINS = frozenset(
    {
        "arxiv.org",
        "researchgate.net",
        "ssrn.com",
        "papers.ssrn.com",
        "nber.org",
        "weforum.org",
        "mckinsey.com",
        "gartner.com",
        "deloitte.com",
        "pwc.com",
        "oecd.org",
    }
)

NEWS_DOMAINS = frozenset(
    {
        "techcrunch.com",
        "wired.com",
        "theverge.com",
        "reuters.com",
        "bloomberg.com",
        "forbes.com",
        "cnbc.com",
        "bbc.co.uk",
        "bbc.com",
        "nytimes.com",
        "wsj.com",
        "venturebeat.com",
        "arstechnica.com",
        "zdnet.com",
        "engadget.com",
        "axios.com",
        "theguardian.com",
        "businessinsider.com",
    }
)

KNOWN_SOURCES: dict[str, str] = {
    "techcrunch.com": "TechCrunch",
    "wired.com": "Wired",
    "forbes.com": "Forbes",
    "hbr.org": "Harvard Business Review",
    "mit.edu": "MIT",
    "stanford.edu": "Stanford",
    "youtube.com": "YouTube",
    "youtu.be": "YouTube",
    "arxiv.org": "arXiv",
    "theverge.com": "The Verge",
    "nytimes.com": "The New York Times",
    "wsj.com": "The Wall Street Journal",
    "mckinsey.com": "McKinsey",
    "weforum.org": "World Economic Forum",
}

_NEWS_KEYWORDS = (
    "announces",
    "announced",
    "launches",
    "launched",
    "unveils",
    "raises",
    "acquires",
    "acquisition",
    "funding",
    "breaking",
    "today",
    "ceo",
    "startup",
    "says",
    "released",
    "partnership",
)

_CATALOG_KEYWORDS = (
    "report",
    "whitepaper",
    "white paper",
    "research",
    "study",
    "survey",
    "guide",
    "playbook",
    "framework",
    "outlook",
    "analysis",
    "paper",
    "index",
)

_NEWS_PATH = re.compile(r"/(news|blog|press|articles?)/|/20\d{2}/\d{1,2}/")
_CATALOG_PATH = re.compile(r"/(research|reports?|insights|publications?|papers?|library)/")

SUBCATEGORIES: list[tuple[str, tuple[str, ...]]] = [
    ("AI", ("ai", "artificial intelligence", "machine learning", "gpt", "llm", "neural")),
    ("Web3", ("web3", "blockchain", "crypto", "bitcoin", "ethereum", "defi")),
    ("Robotics", ("robot", "robotics", "automation", "manufacturing", "autonomous")),
    ("Future of Work", ("future of work", "remote work", "employment", "jobs", "workforce")),
    ("Metaverse", ("metaverse", "vr", "virtual reality", "ar", "augmented reality")),
    ("RealEstate", ("real estate", "property", "housing", "construction")),
]

DEFAULT_SUBCATEGORY = "Tech Innovation"

_TITLE_LIMIT = 200
_TEXT_WINDOW = 4000


def _count_hits(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for kw in keywords if re.search(rf"\b{re.escape(kw)}\b", text))


def detect_subcategory(text: str) -> str:
    lowered = text.lower()
    for name, keywords in SUBCATEGORIES:
        if _count_hits(lowered, keywords):
            return name
    return DEFAULT_SUBCATEGORY


def source_name(domain: str) -> str:
    """Display name for a publication domain."""
    if not domain:
        return ""
    if domain in KNOWN_SOURCES:
        return KNOWN_SOURCES[domain]
    base = re.sub(r"\.(com|org|edu|net|io|co|ai)(\.[a-z]{2})?$", "", domain)
    return " ".join(part.capitalize() for part in re.split(r"[.\-]", base) if part)


# ---------------------------------------------------------------------------
# Verdicts and backends
# ---------------------------------------------------------------------------


class Verdict(BaseModel):
    """A backend's opinion on one record."""

    category: Category
    confidence: float = Field(ge=0.0, le=1.0)
    subcategory: str | None = None
    title: str | None = None
    description: str | None = None
    source: str | None = None
    featured: bool | None = None


class ClassificationBackend(ABC):
    """External classification capability (e.g. an LLM service)."""

    @abstractmethod
    def classify(self, record: ExtractedRecord) -> Verdict:
        """Return a verdict or raise on any backend failure."""


_LLM_SYSTEM_PROMPT = """\
You classify links for a technology website covering AI, Web3, Robotics,
the future of work and related trends. Categories:
- "news": recent articles, announcements, developments
- "catalog": reports, guides, whitepapers, research documents
- "video": video content, talks, tutorials
Subcategory is one of: AI, Web3, Robotics, Future of Work, Metaverse,
Tech Innovation, Blockchain, Crypto, RealEstate, Culture, Workforce.
Respond with JSON only:
{"category": "...", "subcategory": "...", "title": "cleaned title (max 80 chars)",
 "description": "compelling description (max 200 chars)", "source": "publication",
 "featured": true|false, "confidence": 0.0-1.0}"""


class LLMBackend(ClassificationBackend):
    """Classifies through Claude; any failure raises ``LLMError``."""

    def __init__(self, *, model: str | None = None, api_key: str = "", timeout: int = 60) -> None:
        self.model = model
        self.api_key = api_key
        self.timeout = timeout

    def classify(self, record: ExtractedRecord) -> Verdict:
        prompt = "\n".join(
            [
                f"URL: {record.url}",
                f"Title: {record.title or ''}",
                f"Description: {record.description or ''}",
                f"Domain: {record.metadata.source_domain or ''}",
                f"Format: {record.metadata.content_format or ''}",
            ]
        )
        text = call_claude(
            _LLM_SYSTEM_PROMPT,
            prompt,
            model=self.model,
            api_key=self.api_key,
            timeout=self.timeout,
            label=f"classify {record.url}",
        )
        try:
            data = json.loads(strip_json_fences(text))
        except json.JSONDecodeError as exc:
            raise LLMError(f"Malformed classification JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise LLMError("Classification response is not a JSON object")
        if data.get("category") == "youtube":
            data["category"] = Category.VIDEO.value
        try:
            return Verdict.model_validate(data)
        except ValidationError as exc:
            raise LLMError(f"Invalid classification payload: {exc}") from exc


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------


class Classifier:
    """Assigns a category, confidence and publish state to records."""

    def __init__(
        self,
        policy: ConfidencePolicy | None = None,
        backend: ClassificationBackend | None = None,
    ) -> None:
        self.policy = policy or ConfidencePolicy()
        self._backend = backend

    def classify(self, record: ExtractedRecord) -> ClassifiedRecord:
        """Classify one record. Never raises."""
        try:
            verdict = self._decide(record)
            return self._finalize(record, verdict)
        except Exception:
            logger.warning("Classification failed for %s", getattr(record, "url", "?"), exc_info=True)
            return ClassifiedRecord(
                url=getattr(record, "url", "") or "",
                title=(getattr(record, "title", None) or ""),
                category=Category.UNKNOWN,
                confidence=0.0,
                publish_state=PublishState.EXCLUDED,
            )

    def _decide(self, record: ExtractedRecord) -> Verdict:
        forced = rule_verdict(record)
        if forced is not None:
            return forced
        if self._backend is not None:
            try:
                return self._backend.classify(record)
            except Exception as exc:
                logger.info("Classification backend failed for %s (%s); using rules", record.url, exc)
        return score_verdict(record)

    def _finalize(self, record: ExtractedRecord, verdict: Verdict) -> ClassifiedRecord:
        domain = record.metadata.source_domain or source_domain(record.url)
        text = " ".join(filter(None, [record.title, record.description]))
        subcategory = verdict.subcategory or detect_subcategory(text)

        confidence = round(min(max(verdict.confidence, 0.0), 1.0), 4)
        state = self.policy.state_for(confidence)
        category = verdict.category if state != PublishState.EXCLUDED else Category.UNKNOWN
        if category == Category.UNKNOWN:
            state = PublishState.EXCLUDED

        featured = verdict.featured if verdict.featured is not None else subcategory == "AI"

        title = _display(verdict.title) or _display(record.title) or source_name(domain) or record.url
        description = _display(verdict.description) or _display(record.description) or ""

        return ClassifiedRecord(
            url=record.url,
            title=title[:_TITLE_LIMIT],
            description=description,
            body=record.body,
            metadata=record.metadata.model_copy(),
            received_at=record.received_at,
            category=category,
            subcategory=subcategory,
            confidence=confidence,
            source=verdict.source or source_name(domain) or None,
            featured=featured,
            publish_state=state,
        )


def rule_verdict(record: ExtractedRecord) -> Verdict | None:
    """Deterministic domain/format rules. ``None`` when ambiguous."""
    domain = (record.metadata.source_domain or source_domain(record.url)).lower()
    fmt = record.metadata.content_format

    if fmt == ContentFormat.VIDEO or domain in VIDEO_HOSTS or f"www.{domain}" in VIDEO_HOSTS:
        return Verdict(category=Category.VIDEO, confidence=0.95)
    if fmt == ContentFormat.PDF:
        return Verdict(category=Category.CATALOG, confidence=0.85)
    if domain in RESEARCH_DOMAINS:
        return Verdict(category=Category.CATALOG, confidence=0.85)
    if fmt == ContentFormat.REPORT:
        return Verdict(category=Category.CATALOG, confidence=0.8)
    if domain in NEWS_DOMAINS:
        return Verdict(category=Category.NEWS, confidence=0.85)
    return None


def score_verdict(record: ExtractedRecord) -> Verdict:
    """Keyword and URL-shape score for ambiguous records."""
    text = " ".join(
        filter(None, [record.title, record.description, (record.body or "")[:_TEXT_WINDOW]])
    ).lower()
    path = record.url.lower()

    news = _count_hits(text, _NEWS_KEYWORDS)
    catalog = _count_hits(text, _CATALOG_KEYWORDS)
    if _NEWS_PATH.search(path):
        news += 2
    if _CATALOG_PATH.search(path):
        catalog += 2

    total = news + catalog
    if total == 0:
        # Text but no signal reads as news pending review; nothing at all is unknown.
        confidence = 0.45 if text.strip() else 0.0
        return Verdict(category=Category.NEWS, confidence=confidence)

    category = Category.CATALOG if catalog > news else Category.NEWS
    best = max(news, catalog)
    other = min(news, catalog)
    strength = min(best, 4) / 4
    purity = (best - other) / best
    confidence = 0.4 + 0.5 * strength * purity
    return Verdict(category=category, confidence=round(confidence, 4))


def _display(value: str | None) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def build_classifier(
    policy: ConfidencePolicy | None = None,
    *,
    backend: str = "rules",
    model: str | None = None,
    api_key: str = "",
    timeout: int = 60,
) -> Classifier:
    """Create a classifier for the named backend (``rules`` or ``llm``)."""
    if backend == "rules":
        return Classifier(policy)
    if backend == "llm":
        return Classifier(policy, LLMBackend(model=model, api_key=api_key, timeout=timeout))
    raise ValueError(f"Unknown classifier backend: {backend!r}")

"""Input parsers — fan-in from trigger payloads to RawInput."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from curator.errors import InvalidInput
from curator.intake.models import InputSource, RawInput
from curator.intake.parsers.base import InputParser

if TYPE_CHECKING:
    from curator.intake.extractor import HttpFetcher
    from curator.intake.retry import RetryPolicy


def create_parser(
    source: InputSource | str,
    *,
    fetcher: HttpFetcher | None = None,
    retry: RetryPolicy | None = None,
) -> InputParser:
    """Create a parser for the given source.

    ``fetcher`` and ``retry`` only apply to sources that download their
    payload (feeds given by URL).

    Raises:
        ValueError: If the source is unknown.
    """
    if isinstance(source, str):
        source = InputSource(source)

    from curator.intake.parsers.email import EmailParser, TextParser
    from curator.intake.parsers.feed import FeedParser

    if source == InputSource.FEED:
        return FeedParser(fetcher, retry=retry)
    if source == InputSource.EMAIL:
        return EmailParser()
    if source == InputSource.MANUAL:
        return TextParser()

    raise ValueError(f"Unknown input source: {source!r}")


def parse_payload(
    payload: dict[str, Any],
    *,
    fetcher: HttpFetcher | None = None,
    retry: RetryPolicy | None = None,
) -> list[RawInput]:
    """Parse one payload with the first parser that accepts its shape.

    Raises:
        InvalidInput: No parser recognises the payload, or the accepting
            parser rejects it.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Payload must be a JSON object")
    for source in InputSource:
        parser = create_parser(source, fetcher=fetcher, retry=retry)
        if parser.accepts(payload):
            return parser.parse(payload)
    raise InvalidInput("Missing content, email, feed or urls in payload")

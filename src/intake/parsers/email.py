"""Inbound email and plain-text payloads."""

from __future__ import annotations

import logging
from typing import Any

from curator.errors import InvalidInput
from curator.intake.models import InputSource, RawInput
from curator.intake.parsers.base import InputParser, parse_received_at, string_list
from curator.intake.urls import extract_urls_from_text

logger = logging.getLogger(__name__)


class EmailParser(InputParser):
    """Reads ``{email: {...}}`` and flat ``{sender, receivedAt, urls}`` payloads.

    When an email carries no explicit URL list, URLs are pulled from its
    body.
    """

    @property
    def source(self) -> InputSource:
        return InputSource.EMAIL

    def accepts(self, payload: dict[str, Any]) -> bool:
        return isinstance(payload.get("email"), dict) or "urls" in payload

    def parse(self, payload: dict[str, Any]) -> list[RawInput]:
        if "email" in payload:
            message = payload["email"]
            if not isinstance(message, dict):
                raise InvalidInput("'email' must be an object")
            subject = str(message.get("subject") or "No Subject")
            body = str(message.get("body") or message.get("content") or "")
            sender = str(message.get("from") or message.get("sender") or "unknown")
            received = message.get("date") or message.get("receivedAt")
            urls = string_list(message.get("urls"), "urls")
        else:
            subject = str(payload.get("subject") or "")
            body = str(payload.get("body") or "")
            sender = str(payload.get("sender") or "unknown")
            received = payload.get("receivedAt") or payload.get("received_at")
            urls = string_list(payload.get("urls"), "urls")

        if not urls:
            urls = extract_urls_from_text(body)
            logger.debug("Found %d URL(s) in email body from %s", len(urls), sender)

        return [
            RawInput(
                sender=sender,
                received_at=parse_received_at(received),
                urls=urls,
                subject=subject,
                body=body,
                source=InputSource.EMAIL,
            )
        ]


class TextParser(InputParser):
    """Reads ``{content, sender}`` payloads of free text containing links."""

    @property
    def source(self) -> InputSource:
        return InputSource.MANUAL

    def accepts(self, payload: dict[str, Any]) -> bool:
        return "content" in payload

    def parse(self, payload: dict[str, Any]) -> list[RawInput]:
        content = payload.get("content")
        if not isinstance(content, str):
            raise InvalidInput("'content' must be a string")
        sender = str(payload.get("sender") or "api-request")
        return [raw_input_from_text(content, sender)]


def raw_input_from_text(text: str, sender: str = "api-request") -> RawInput:
    """Build a RawInput from free text, collecting the URLs it mentions."""
    return RawInput(
        sender=sender,
        urls=extract_urls_from_text(text),
        subject="Text Content",
        body=text,
        source=InputSource.MANUAL,
    )

"""Base class for input parsers."""

from __future__ import annotations

import email.utils
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from curator.errors import InvalidInput
from curator.intake.models import InputSource, RawInput


class InputParser(ABC):
    """Base class for source-specific input parsers.

    Each source turns one trigger payload into zero or more
    :class:`RawInput` objects. ``accepts`` lets the dispatcher pick the
    parser for a payload shape.
    """

    @property
    @abstractmethod
    def source(self) -> InputSource:
        """The input source this parser handles."""

    @abstractmethod
    def accepts(self, payload: dict[str, Any]) -> bool:
        """Whether ``payload`` has the shape this parser reads."""

    @abstractmethod
    def parse(self, payload: dict[str, Any]) -> list[RawInput]:
        """Convert a payload into raw inputs.

        Raises:
            InvalidInput: The payload is missing required fields.
        """


def parse_received_at(value: object) -> datetime:
    """Parse an ISO 8601 or RFC 2822 timestamp; now (UTC) when absent."""
    if value is None or value == "":
        return datetime.now(tz=UTC)
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        # Epoch milliseconds, as sent by JavaScript clients.
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = email.utils.parsedate_to_datetime(text)
            except (TypeError, ValueError) as exc:
                raise InvalidInput(f"Unparsable timestamp: {value!r}") from exc
    else:
        raise InvalidInput(f"Unparsable timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def string_list(value: object, field: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidInput(f"'{field}' must be a list of strings")
    return [v.strip() for v in value if v.strip()]

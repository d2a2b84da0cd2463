"""Markdown-with-YAML-header codec for category files.

Layout of ``content/<category>.md``::

    ---
    category: news
    count: 2
    entries:
    - id: example-com-story-1a2b3c4d
      url: https://example.com/story
      ...
    ---

    <!-- entry: example-com-story-1a2b3c4d -->
    Free-text excerpt.

The header carries every ContentEntry field except the excerpt; the body
carries the excerpts. Serialization is deterministic, so identical
entries always produce identical bytes.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

from curator.content.models import ContentEntry
from curator.intake.models import Category

_DELIMITER = "---"
_MARKER_RE = re.compile(r"^<!-- entry: (\S+) -->$", re.MULTILINE)

# Wide enough that PyYAML never folds long titles across lines.
_YAML_WIDTH = 4096


class FrontmatterError(ValueError):
    """The file has no parsable YAML header."""


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a document into its YAML header and body.

    Returns ``({}, text)`` when there is no header.

    Raises:
        FrontmatterError: The header is present but not valid YAML or
            not a mapping.
    """
    if not text.startswith(_DELIMITER + "\n"):
        return {}, text
    end = text.find(f"\n{_DELIMITER}\n", len(_DELIMITER))
    if end == -1:
        if text.rstrip("\n").endswith(f"\n{_DELIMITER}"):
            end = text.rstrip("\n").rfind(f"\n{_DELIMITER}")
        else:
            raise FrontmatterError("unterminated front matter")
    header = text[len(_DELIMITER) + 1 : end + 1]
    body = text[end + len(_DELIMITER) + 2 :]
    # join_frontmatter separates header and body with one blank line.
    if body.startswith("\n"):
        body = body[1:]
    try:
        data = yaml.safe_load(header) or {}
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"invalid YAML header: {exc}") from exc
    if not isinstance(data, dict):
        raise FrontmatterError("front matter is not a mapping")
    return data, body


def join_frontmatter(data: dict[str, Any], body: str = "") -> str:
    header = yaml.safe_dump(
        data,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=_YAML_WIDTH,
    )
    text = f"{_DELIMITER}\n{header}{_DELIMITER}\n"
    if body:
        text += f"\n{body}"
    return text


def render_category(category: Category, entries: list[ContentEntry]) -> str:
    """Serialize one category's entries, preserving their order."""
    records = [
        entry.model_dump(mode="json", exclude={"excerpt", "category"}, exclude_none=True)
        for entry in entries
    ]
    header: dict[str, Any] = {
        "category": category.value,
        "count": len(entries),
        "entries": records,
    }
    sections = [
        f"<!-- entry: {entry.id} -->\n{entry.excerpt}\n" if entry.excerpt else f"<!-- entry: {entry.id} -->\n"
        for entry in entries
    ]
    return join_frontmatter(header, "\n".join(sections))


def parse_category(text: str, category: Category | None = None) -> list[ContentEntry]:
    """Parse a category file back into entries.

    Raises:
        FrontmatterError: On a malformed header or entry.
    """
    data, body = split_frontmatter(text)
    if not data:
        return []
    declared = data.get("category")
    try:
        file_category = Category(declared) if declared else category
    except ValueError as exc:
        raise FrontmatterError(f"unknown category {declared!r}") from exc
    if file_category is None:
        raise FrontmatterError("category file has no category")
    if category is not None and file_category != category:
        raise FrontmatterError(f"expected category {category.value!r}, found {file_category.value!r}")

    raw_entries = data.get("entries") or []
    if not isinstance(raw_entries, list):
        raise FrontmatterError("'entries' must be a list")

    excerpts = _parse_excerpts(body)
    entries: list[ContentEntry] = []
    for raw in raw_entries:
        if not isinstance(raw, dict):
            raise FrontmatterError("entry is not a mapping")
        payload = dict(raw)
        payload["category"] = file_category.value
        payload["excerpt"] = excerpts.get(str(payload.get("id", "")), "")
        try:
            entries.append(ContentEntry.model_validate(payload))
        except ValueError as exc:
            raise FrontmatterError(f"invalid entry {payload.get('id')!r}: {exc}") from exc
    return entries


def _parse_excerpts(body: str) -> dict[str, str]:
    excerpts: dict[str, str] = {}
    markers = list(_MARKER_RE.finditer(body))
    for idx, match in enumerate(markers):
        start = match.end()
        end = markers[idx + 1].start() if idx + 1 < len(markers) else len(body)
        excerpts[match.group(1)] = body[start:end].strip()
    return excerpts

"""Versioned category store.

Each persistable category lives in one markdown file,
``<content_dir>/<category>.md``. A write replaces whole category files
and commits every changed file as one version through the backend.
Writing content identical to what is stored is a no-op: no commit, no
new version.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from curator.content.backends import StoreBackend
from curator.content.frontmatter import FrontmatterError, parse_category, render_category
from curator.content.models import CommitResult, ContentEntry
from curator.errors import StoreError
from curator.intake.models import Category

logger = logging.getLogger(__name__)


class ContentStore:
    """Category-file CRUD over a versioned backend."""

    def __init__(self, backend: StoreBackend, content_dir: str = "content") -> None:
        self.backend = backend
        self.content_dir = content_dir.strip("/")

    def path_for(self, category: Category) -> str:
        if category not in Category.persistable():
            raise StoreError(
                f"Category {category.value!r} is never persisted", status="invalid"
            )
        if not self.content_dir:
            return f"{category.value}.md"
        return f"{self.content_dir}/{category.value}.md"

    # ── Read operations ──────────────────────────────────────────

    def read_raw(self, category: Category) -> str | None:
        return self.backend.read(self.path_for(category))

    def read_all(self, category: Category) -> list[ContentEntry]:
        """All entries stored for ``category``, in stored order.

        Raises:
            StoreError: The category file exists but cannot be parsed.
        """
        path = self.path_for(category)
        text = self.backend.read(path)
        if text is None:
            return []
        try:
            return parse_category(text, category)
        except FrontmatterError as exc:
            raise StoreError(f"Corrupt category file {path}: {exc}", status="invalid", path=path) from exc

    def snapshot(self) -> list[ContentEntry]:
        """Every stored entry across persistable categories."""
        entries: list[ContentEntry] = []
        for category in Category.persistable():
            entries.extend(self.read_all(category))
        return entries

    def get(self, entry_id: str) -> ContentEntry | None:
        for entry in self.snapshot():
            if entry.id == entry_id:
                return entry
        return None

    # ── Write operations ─────────────────────────────────────────

    def write(
        self,
        entries: Iterable[ContentEntry],
        *,
        categories: Iterable[Category] | None = None,
        message: str | None = None,
    ) -> CommitResult:
        """Replace category files with ``entries`` and commit the changes.

        Args:
            entries: The complete, ordered entry set for every category
                being written.
            categories: Categories to replace. Defaults to those present
                in ``entries``; a listed category with no entries is
                written empty.
            message: Commit message. Generated when omitted.

        Raises:
            StoreError: An entry is ``unknown`` or the backend fails.
        """
        grouped: dict[Category, list[ContentEntry]] = {}
        for category in categories or ():
            self.path_for(category)
            grouped.setdefault(category, [])
        for entry in entries:
            if entry.category not in Category.persistable():
                raise StoreError(
                    f"Refusing to persist {entry.url} with category {entry.category.value!r}",
                    status="invalid",
                )
            grouped.setdefault(entry.category, []).append(entry)

        files: dict[str, str] = {}
        for category in sorted(grouped, key=lambda c: c.value):
            path = self.path_for(category)
            rendered = render_category(category, grouped[category])
            if self.backend.read(path) == rendered:
                logger.debug("No change in %s", path)
                continue
            files[path] = rendered

        if not files:
            logger.info("Store unchanged, nothing to commit")
            return CommitResult(changed=False)

        if message is None:
            message = self._default_message(files)
        ref = self.backend.commit(files, message)
        return CommitResult(changed=True, commit_ref=ref, paths=sorted(files))

    def _default_message(self, files: dict[str, str]) -> str:
        names = ", ".join(path.rsplit("/", 1)[-1] for path in sorted(files))
        stamp = datetime.now(tz=UTC).strftime("%Y-%m-%d %H:%M UTC")
        return f"Update {names} ({stamp})"

"""Tests for ContentStore — category files over a versioned backend."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from curator.content.backends import FileSystemBackend, StoreBackend
from curator.content.models import ContentEntry
from curator.content.store import ContentStore
from curator.errors import StoreError
from curator.intake.models import Category


class MemoryBackend(StoreBackend):
    """In-memory backend that records every commit."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files = dict(files or {})
        self.commits: list[tuple[dict[str, str], str]] = []

    def read(self, path: str) -> str | None:
        return self.files.get(path)

    def commit(self, files: dict[str, str], message: str) -> str:
        self.files.update(files)
        self.commits.append((dict(files), message))
        return f"ref-{len(self.commits)}"


def _entry(slug: str, category: Category = Category.NEWS, **kwargs: object) -> ContentEntry:
    url = f"https://example.com/{slug}"
    data: dict[str, object] = {
        "id": slug,
        "category": category,
        "url": url,
        "canonical_url": url,
        "title": slug.title(),
    }
    data.update(kwargs)
    return ContentEntry.model_validate(data)


class TestPaths:
    def test_category_path(self):
        store = ContentStore(MemoryBackend())
        assert store.path_for(Category.NEWS) == "content/news.md"

    def test_custom_content_dir(self):
        store = ContentStore(MemoryBackend(), content_dir="/site/data/")
        assert store.path_for(Category.VIDEO) == "site/data/video.md"

    def test_unknown_has_no_path(self):
        with pytest.raises(StoreError) as excinfo:
            ContentStore(MemoryBackend()).path_for(Category.UNKNOWN)
        assert excinfo.value.status == "invalid"


class TestWrite:
    def test_writes_and_reads_back(self):
        backend = MemoryBackend()
        store = ContentStore(backend)
        entries = [_entry("a"), _entry("b", Category.CATALOG)]

        result = store.write(entries)

        assert result.changed is True
        assert result.commit_ref == "ref-1"
        assert result.paths == ["content/catalog.md", "content/news.md"]
        assert len(backend.commits) == 1
        assert store.read_all(Category.NEWS) == [entries[0]]
        assert store.read_all(Category.CATALOG) == [entries[1]]

    def test_identical_write_is_noop(self):
        backend = MemoryBackend()
        store = ContentStore(backend)
        entries = [_entry("a")]
        store.write(entries)

        result = store.write(entries)

        assert result.changed is False
        assert result.commit_ref is None
        assert result.paths == []
        assert len(backend.commits) == 1

    def test_only_changed_categories_committed(self):
        backend = MemoryBackend()
        store = ContentStore(backend)
        store.write([_entry("a"), _entry("v", Category.VIDEO)])

        result = store.write([_entry("a"), _entry("b"), _entry("v", Category.VIDEO)])

        assert result.paths == ["content/news.md"]
        assert list(backend.commits[-1][0]) == ["content/news.md"]

    def test_whole_category_replaced(self):
        store = ContentStore(MemoryBackend())
        store.write([_entry("a"), _entry("b")])
        store.write([_entry("c")])
        assert [e.id for e in store.read_all(Category.NEWS)] == ["c"]

    def test_listed_category_written_empty(self):
        store = ContentStore(MemoryBackend())
        store.write([_entry("a")])
        result = store.write([], categories=[Category.NEWS])
        assert result.changed is True
        assert store.read_all(Category.NEWS) == []

    def test_unknown_rejected(self):
        backend = MemoryBackend()
        with pytest.raises(StoreError):
            ContentStore(backend).write([_entry("x", Category.UNKNOWN)])
        assert backend.commits == []

    def test_custom_message(self):
        backend = MemoryBackend()
        ContentStore(backend).write([_entry("a")], message="Add a")
        assert backend.commits[0][1] == "Add a"

    def test_default_message_names_files(self):
        backend = MemoryBackend()
        ContentStore(backend).write([_entry("a")])
        assert backend.commits[0][1].startswith("Update news.md")


class TestRead:
    def test_missing_file_is_empty(self):
        assert ContentStore(MemoryBackend()).read_all(Category.NEWS) == []

    def test_corrupt_file_raises(self):
        backend = MemoryBackend({"content/news.md": "---\nentries: [\n---\n"})
        with pytest.raises(StoreError) as excinfo:
            ContentStore(backend).read_all(Category.NEWS)
        assert excinfo.value.status == "invalid"
        assert excinfo.value.path == "content/news.md"

    def test_snapshot_and_get(self):
        store = ContentStore(MemoryBackend())
        store.write([_entry("a"), _entry("v", Category.VIDEO), _entry("r", Category.CATALOG)])

        assert {e.id for e in store.snapshot()} == {"a", "v", "r"}
        found = store.get("v")
        assert found is not None and found.category == Category.VIDEO
        assert store.get("missing") is None


class TestWithFileSystem:
    def test_files_on_disk(self, tmp_path: Path):
        store = ContentStore(FileSystemBackend(tmp_path))
        entry = _entry("a", published_at=datetime(2025, 6, 1, tzinfo=UTC), excerpt="Hello")
        store.write([entry])

        text = (tmp_path / "content" / "news.md").read_text(encoding="utf-8")
        assert text.startswith("---\ncategory: news\ncount: 1\n")
        assert "<!-- entry: a -->\nHello\n" in text
        assert ContentStore(FileSystemBackend(tmp_path)).read_all(Category.NEWS) == [entry]

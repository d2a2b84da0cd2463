"""Content domain — reconciled entries and their versioned store."""

from curator.content.backends import FileSystemBackend, GitHubBackend, StoreBackend
from curator.content.models import CommitResult, ContentEntry, MergeResult
from curator.content.reconcile import merge
from curator.content.store import ContentStore

__all__ = [
    "CommitResult",
    "ContentEntry",
    "ContentStore",
    "FileSystemBackend",
    "GitHubBackend",
    "MergeResult",
    "StoreBackend",
    "merge",
]

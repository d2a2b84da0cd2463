"""Durable backends for the content store.

Both backends expose the same two operations: read a file at a path and
commit a set of files as a single version. Failures surface as
:class:`StoreError` with a machine-readable status and are never retried
here.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import socket
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path

from curator.errors import StoreError

logger = logging.getLogger(__name__)

VERSIONS_FILENAME = ".curator-versions.json"


class StoreBackend(ABC):
    """Versioned file storage."""

    @abstractmethod
    def read(self, path: str) -> str | None:
        """Return the file content at ``path``, or None if it does not exist."""

    @abstractmethod
    def commit(self, files: dict[str, str], message: str) -> str:
        """Write all ``files`` as one version and return its commit ref."""


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


def _stage(path: Path, content: str) -> str:
    """Write ``content`` to a temp file beside ``path``; return its name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return tmp


def _atomic_write(path: Path, content: str) -> None:
    """Write via a temp file in the same directory, then rename."""
    tmp = _stage(path, content)
    try:
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class FileSystemBackend(StoreBackend):
    """Stores files under a local directory.

    Each commit appends a record to ``.curator-versions.json``; the commit
    ref is a digest of the parent ref and the written content.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._log_path = root / VERSIONS_FILENAME

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise StoreError(f"Path escapes store root: {path}", status="forbidden", path=path)
        return target

    def read(self, path: str) -> str | None:
        target = self._resolve(path)
        if not target.exists():
            return None
        try:
            return target.read_text(encoding="utf-8")
        except PermissionError as exc:
            raise StoreError(f"Permission denied reading {path}", status="forbidden", path=path) from exc
        except OSError as exc:
            raise StoreError(f"Failed to read {path}: {exc}", path=path) from exc

    def history(self) -> list[dict]:
        """Return the commit log, oldest first."""
        if not self._log_path.exists():
            return []
        try:
            data = json.loads(self._log_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            raise StoreError(f"Corrupt version log at {self._log_path}: {exc}", status="invalid") from exc
        return data if isinstance(data, list) else []

    def commit(self, files: dict[str, str], message: str) -> str:
        history = self.history()
        parent = history[-1]["ref"] if history else ""

        digest = hashlib.sha256(parent.encode("utf-8"))
        for path in sorted(files):
            digest.update(path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(files[path].encode("utf-8"))
        ref = digest.hexdigest()[:12]

        targets = {path: self._resolve(path) for path in sorted(files)}
        staged: list[tuple[str, Path]] = []
        try:
            # Every file is staged before any is replaced.
            try:
                for path, target in targets.items():
                    staged.append((_stage(target, files[path]), target))
                for tmp, target in staged:
                    os.replace(tmp, target)
            finally:
                for tmp, _ in staged:
                    Path(tmp).unlink(missing_ok=True)
            history.append(
                {
                    "ref": ref,
                    "parent": parent,
                    "message": message,
                    "paths": sorted(files),
                    "committed_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            _atomic_write(self._log_path, json.dumps(history, indent=2) + "\n")
        except PermissionError as exc:
            raise StoreError(f"Permission denied writing to {self.root}", status="forbidden") from exc
        except OSError as exc:
            raise StoreError(f"Failed to write to {self.root}: {exc}") from exc

        logger.info("Committed %d file(s) to %s (%s)", len(files), self.root, ref)
        return ref


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------

_STATUS_BY_CODE = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "conflict",
}


class GitHubBackend(StoreBackend):
    """Commits files to a GitHub repository branch via the REST API.

    A single changed file goes through the contents endpoint
    (create-or-update at a path); several files are combined into one
    commit through the git data endpoints.
    """

    def __init__(
        self,
        *,
        owner: str,
        repo: str,
        token: str,
        branch: str = "main",
        api_url: str = "https://api.github.com",
        timeout: int = 30,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.token = token
        self.branch = branch
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.token and self.owner and self.repo)

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        """Make an authenticated request to the GitHub API."""
        if not self.is_configured:
            raise StoreError("GitHub backend is not configured", status="unauthorized")

        url = f"{self.api_url}/repos/{self.owner}/{self.repo}{path}"
        body = json.dumps(data).encode("utf-8") if data is not None else None
        req = urllib.request.Request(
            url,
            data=body,
            method=method,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
                "Content-Type": "application/json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            status = _STATUS_BY_CODE.get(exc.code, "error")
            raise StoreError(
                f"GitHub {method} {path} failed: HTTP {exc.code}", status=status, path=path
            ) from exc
        except urllib.error.URLError as exc:
            status = "timeout" if isinstance(exc.reason, (TimeoutError, socket.timeout)) else "error"
            raise StoreError(f"GitHub {method} {path} failed: {exc.reason}", status=status, path=path) from exc
        except (TimeoutError, socket.timeout) as exc:
            raise StoreError(f"GitHub {method} {path} timed out", status="timeout", path=path) from exc

        try:
            data = json.loads(raw.decode("utf-8") or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreError(
                f"GitHub {method} {path} returned an unreadable body: {exc}", path=path
            ) from exc
        if not isinstance(data, dict):
            raise StoreError(f"GitHub {method} {path} returned {type(data).__name__}, not an object", path=path)
        return data

    def _contents_path(self, path: str) -> str:
        quoted = urllib.parse.quote(path.lstrip("/"))
        ref = urllib.parse.quote(self.branch)
        return f"/contents/{quoted}?ref={ref}"

    def _get_file(self, path: str) -> dict | None:
        try:
            return self._request("GET", self._contents_path(path))
        except StoreError as exc:
            if exc.status == "not_found":
                return None
            raise

    def read(self, path: str) -> str | None:
        meta = self._get_file(path)
        if meta is None:
            return None
        encoded = meta.get("content") or ""
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Undecodable content for {path}: {exc}", path=path) from exc

    def commit(self, files: dict[str, str], message: str) -> str:
        if not files:
            raise StoreError("Nothing to commit", status="invalid")
        if len(files) == 1:
            ((path, content),) = files.items()
            return self.put_file(path, content, message)
        return self._commit_tree(files, message)

    def put_file(self, path: str, content: str, message: str) -> str:
        """Create or update one file; returns the commit sha."""
        existing = self._get_file(path)
        payload: dict = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if existing and existing.get("sha"):
            payload["sha"] = existing["sha"]
        result = self._request("PUT", f"/contents/{urllib.parse.quote(path.lstrip('/'))}", payload)
        sha = _pluck(result, "commit", "sha", path=path)
        logger.info("Committed %s to %s/%s@%s (%s)", path, self.owner, self.repo, self.branch, sha)
        return sha

    def _commit_tree(self, files: dict[str, str], message: str) -> str:
        branch = urllib.parse.quote(self.branch)
        ref_path = f"/git/ref/heads/{branch}"
        parent_sha = _pluck(self._request("GET", ref_path), "object", "sha", path=ref_path)
        parent_path = f"/git/commits/{parent_sha}"
        base_tree = _pluck(self._request("GET", parent_path), "tree", "sha", path=parent_path)

        tree_items = []
        for path, content in sorted(files.items()):
            blob = self._request(
                "POST",
                "/git/blobs",
                {
                    "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
                    "encoding": "base64",
                },
            )
            blob_sha = _pluck(blob, "sha", path=path)
            tree_items.append({"path": path, "mode": "100644", "type": "blob", "sha": blob_sha})

        tree = self._request("POST", "/git/trees", {"base_tree": base_tree, "tree": tree_items})
        commit = self._request(
            "POST",
            "/git/commits",
            {"message": message, "tree": _pluck(tree, "sha", path="/git/trees"), "parents": [parent_sha]},
        )
        commit_sha = _pluck(commit, "sha", path="/git/commits")
        self._request("PATCH", f"/git/refs/heads/{branch}", {"sha": commit_sha, "force": False})
        logger.info(
            "Committed %d files to %s/%s@%s (%s)",
            len(files),
            self.owner,
            self.repo,
            self.branch,
            commit_sha,
        )
        return commit_sha


def _pluck(data: dict, *keys: str, path: str) -> str:
    """Nested string field of an API response, or a StoreError naming it."""
    value: object = data
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            value = None
            break
        value = value[key]
    if not isinstance(value, str) or not value:
        raise StoreError(
            f"Unexpected GitHub response for {path}: missing {'.'.join(keys)}", path=path
        )
    return value

"""Unified configuration loaded from .curator.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from curator.content.backends import StoreBackend
    from curator.intake.classifier import ConfidencePolicy
    from curator.intake.extractor import HttpFetcher
    from curator.intake.retry import RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".curator.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "curator" / "config.toml"


class StoreSectionConfig(BaseModel):
    """[store] section."""

    backend: str = "filesystem"  # "filesystem" or "github"
    directory: str = "."
    content_dir: str = "content"
    github_repo: str = ""  # "owner/repo"
    github_token: str = ""
    branch: str = "main"
    api_url: str = "https://api.github.com"
    timeout: int = 30

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token and "/" in self.github_repo)


class ExtractorSectionConfig(BaseModel):
    """[extractor] section."""

    timeout: int = 15
    user_agent: str = "Curator/0.1 (+content intake pipeline)"
    max_bytes: int = 2_000_000
    use_oembed: bool = True


class RetrySectionConfig(BaseModel):
    """[retry] section."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=0.5, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff_seconds: float = Field(default=8.0, ge=0.0)


class ClassifierSectionConfig(BaseModel):
    """[classifier] section."""

    review_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    publish_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    backend: str = "rules"  # "rules" or "llm"
    model: str | None = None
    api_key: str = ""
    timeout: int = 60

    @model_validator(mode="after")
    def _check_thresholds(self) -> ClassifierSectionConfig:
        if self.review_threshold > self.publish_threshold:
            raise ValueError(
                "review_threshold must not exceed publish_threshold "
                f"({self.review_threshold} > {self.publish_threshold})"
            )
        return self


class WorkflowSectionConfig(BaseModel):
    """[workflow] section."""

    max_workers: int = Field(default=4, ge=1)


class CuratorConfig(BaseModel):
    """Top-level configuration model for the curator pipeline."""

    store: StoreSectionConfig = Field(default_factory=StoreSectionConfig)
    extractor: ExtractorSectionConfig = Field(default_factory=ExtractorSectionConfig)
    retry: RetrySectionConfig = Field(default_factory=RetrySectionConfig)
    classifier: ClassifierSectionConfig = Field(default_factory=ClassifierSectionConfig)
    workflow: WorkflowSectionConfig = Field(default_factory=WorkflowSectionConfig)

    def to_retry_policy(self) -> RetryPolicy:
        """Convert the [retry] section into a RetryPolicy."""
        from curator.intake.retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.retry.max_attempts,
            backoff_seconds=self.retry.backoff_seconds,
            multiplier=self.retry.multiplier,
            max_backoff_seconds=self.retry.max_backoff_seconds,
        )

    def to_http_fetcher(self) -> HttpFetcher:
        """Build the HTTP fetcher described by the [extractor] section."""
        from curator.intake.extractor import HttpFetcher

        return HttpFetcher(
            timeout=self.extractor.timeout,
            user_agent=self.extractor.user_agent,
            max_bytes=self.extractor.max_bytes,
        )

    def to_confidence_policy(self) -> ConfidencePolicy:
        """Convert the [classifier] thresholds into a ConfidencePolicy."""
        from curator.intake.classifier import ConfidencePolicy

        return ConfidencePolicy(
            review_threshold=self.classifier.review_threshold,
            publish_threshold=self.classifier.publish_threshold,
        )

    def to_store_backend(self) -> StoreBackend:
        """Build the configured store backend."""
        from curator.content.backends import FileSystemBackend, GitHubBackend

        if self.store.backend == "github":
            owner, _, repo = self.store.github_repo.partition("/")
            return GitHubBackend(
                owner=owner,
                repo=repo,
                token=self.store.github_token,
                branch=self.store.branch,
                api_url=self.store.api_url,
                timeout=self.store.timeout,
            )
        if self.store.backend == "filesystem":
            return FileSystemBackend(Path(self.store.directory).expanduser())
        raise ValueError(f"Unknown store backend: {self.store.backend!r}")


def load_config(path: str | Path | None = None) -> CuratorConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .curator.toml in CWD
    3. ~/.config/curator/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged CuratorConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG_PATH.exists():
            data = _load_toml(GLOBAL_CONFIG_PATH)
            logger.info("Loaded config from %s", GLOBAL_CONFIG_PATH)

    config = CuratorConfig.model_validate(data) if data else CuratorConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: CuratorConfig, **cli_kwargs: object) -> CuratorConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "store_dir": ("store", "directory"),
        "store_backend": ("store", "backend"),
        "branch": ("store", "branch"),
        "classifier_backend": ("classifier", "backend"),
        "max_workers": ("workflow", "max_workers"),
        "review_threshold": ("classifier", "review_threshold"),
        "publish_threshold": ("classifier", "publish_threshold"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = value

    return CuratorConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: CuratorConfig) -> CuratorConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "CURATOR_STORE_DIR": ("store", "directory"),
        "CURATOR_CONTENT_DIR": ("store", "content_dir"),
        "CURATOR_STORE_BACKEND": ("store", "backend"),
        "GITHUB_TOKEN": ("store", "github_token"),
        "GITHUB_REPO": ("store", "github_repo"),
        "GITHUB_BRANCH": ("store", "branch"),
        "CURATOR_CLASSIFIER_BACKEND": ("classifier", "backend"),
        "CURATOR_CLASSIFIER_MODEL": ("classifier", "model"),
        "ANTHROPIC_API_KEY": ("classifier", "api_key"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    workers_raw = os.environ.get("CURATOR_MAX_WORKERS")
    if workers_raw is not None:
        data["workflow"]["max_workers"] = int(workers_raw)

    for key, field in [
        ("CURATOR_REVIEW_THRESHOLD", "review_threshold"),
        ("CURATOR_PUBLISH_THRESHOLD", "publish_threshold"),
    ]:
        val = os.environ.get(key)
        if val is not None:
            data["classifier"][field] = float(val)

    return CuratorConfig.model_validate(data)

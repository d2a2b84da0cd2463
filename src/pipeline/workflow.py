"""Workflow orchestrator: RawInput batch → persisted content entries.

One run moves through ``extracting → classifying → reconciling →
persisting`` and ends ``done`` or ``failed``. Each stage handles the
whole batch before the next begins. Per-item failures are collected as
strings and the item is dropped; only store failures and cancellation
fail the run.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any, NamedTuple

from curator.content.reconcile import merge
from curator.content.store import ContentStore
from curator.errors import CuratorError, InvalidURL, StoreError
from curator.intake.classifier import Classifier
from curator.intake.extractor import ContentExtractor
from curator.intake.models import (
    Category,
    ClassifiedRecord,
    ExtractedRecord,
    PublishState,
    RawInput,
)
from curator.intake.parsers.email import raw_input_from_text
from curator.intake.urls import canonicalize_url, validate_url
from curator.pipeline.models import WorkflowResult, WorkflowStage

if TYPE_CHECKING:
    from curator.config import CuratorConfig

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Run cancelled; nothing persisted"


class CategoryLocks:
    """One lock per category; several are always taken in sorted order."""

    def __init__(self) -> None:
        self._locks: dict[Category, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, category: Category) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(category, threading.Lock())

    @contextmanager
    def hold(self, categories: Iterable[Category]) -> Iterator[list[Category]]:
        ordered = sorted(set(categories), key=lambda c: c.value)
        acquired: list[threading.Lock] = []
        try:
            for category in ordered:
                lock = self.lock_for(category)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


_LOCK_REGISTRY: dict[str, CategoryLocks] = {}
_REGISTRY_GUARD = threading.Lock()


def locks_for(store_key: str) -> CategoryLocks:
    """Shared lock set for every workflow writing to the same store."""
    with _REGISTRY_GUARD:
        return _LOCK_REGISTRY.setdefault(store_key, CategoryLocks())


class _WorkItem(NamedTuple):
    url: str
    received_at: datetime
    published_at: datetime | None = None


class _Outcome(NamedTuple):
    item: Any
    value: Any = None
    error: str | None = None
    skipped: bool = False


class ContentWorkflow:
    """Runs batches of raw inputs through the intake pipeline."""

    def __init__(
        self,
        extractor: ContentExtractor,
        classifier: Classifier,
        store: ContentStore,
        *,
        max_workers: int = 4,
        locks: CategoryLocks | None = None,
    ) -> None:
        self.extractor = extractor
        self.classifier = classifier
        self.store = store
        self.max_workers = max(1, max_workers)
        self.locks = locks or CategoryLocks()
        self.stage = WorkflowStage.IDLE

    @classmethod
    def from_config(cls, config: CuratorConfig) -> ContentWorkflow:
        """Wire extractor, classifier and store from configuration."""
        from curator.intake.classifier import build_classifier

        extractor = ContentExtractor(
            config.to_http_fetcher(),
            retry=config.to_retry_policy(),
            use_oembed=config.extractor.use_oembed,
        )
        classifier = build_classifier(
            config.to_confidence_policy(),
            backend=config.classifier.backend,
            model=config.classifier.model,
            api_key=config.classifier.api_key,
            timeout=config.classifier.timeout,
        )
        store = ContentStore(config.to_store_backend(), config.store.content_dir)
        if config.store.backend == "github":
            store_key = f"github:{config.store.github_repo}@{config.store.branch}"
        else:
            store_key = f"filesystem:{config.store.directory}"
        return cls(
            extractor,
            classifier,
            store,
            max_workers=config.workflow.max_workers,
            locks=locks_for(store_key),
        )

    # ── Entry points ─────────────────────────────────────────────

    def process_text(
        self,
        text: str,
        sender: str = "unknown",
        *,
        cancel: threading.Event | None = None,
    ) -> WorkflowResult:
        """Run the pipeline over the URLs found in free text."""
        raw = raw_input_from_text(text, sender)
        if not raw.urls:
            return WorkflowResult(
                success=False,
                errors=["No URLs found in the provided text"],
                stage=WorkflowStage.FAILED,
            )
        return self.run(raw, cancel=cancel)

    def run(
        self,
        batch: RawInput | Sequence[RawInput],
        *,
        cancel: threading.Event | None = None,
    ) -> WorkflowResult:
        """Process a batch end to end.

        Args:
            batch: One RawInput or a sequence of them.
            cancel: Once set, no further items are dispatched and nothing
                is persisted.

        Returns:
            WorkflowResult. ``success`` is False only on a store failure
            or cancellation.
        """
        inputs = [batch] if isinstance(batch, RawInput) else list(batch)
        cancel = cancel or threading.Event()
        result = WorkflowResult()

        items = self._collect(inputs, result)
        logger.info("Starting run: %d URL(s) from %d input(s)", len(items), len(inputs))

        self._advance(result, WorkflowStage.EXTRACTING)
        extracted = self._fan_out(self._extract, items, cancel, result, "extract")

        self._advance(result, WorkflowStage.CLASSIFYING)
        classified = self._fan_out(self._classify, extracted, cancel, result, "classify")
        if cancel.is_set():
            return self._cancelled(result)

        persistable: list[ClassifiedRecord] = []
        for record in classified:
            if record.publish_state == PublishState.EXCLUDED:
                result.excluded.append(record.url)
                logger.info("Excluded %s (confidence %.2f)", record.url, record.confidence)
                continue
            if record.publish_state == PublishState.NEEDS_REVIEW:
                result.needs_review.append(record.url)
            persistable.append(record)
        result.processed_count = len(persistable)

        if not persistable:
            logger.info("No records to persist")
            result.success = True
            self._advance(result, WorkflowStage.DONE)
            return result

        try:
            self._persist(persistable, result, cancel)
        except StoreError as exc:
            logger.error("Store failure (%s): %s", exc.status, exc)
            result.errors.append(f"Store failed ({exc.status}): {exc}")
            result.success = False
            self._advance(result, WorkflowStage.FAILED)
            return result

        if result.stage == WorkflowStage.FAILED:
            return result
        result.success = True
        self._advance(result, WorkflowStage.DONE)
        logger.info(
            "Run complete: %d processed, %d error(s), %d file(s) written",
            result.processed_count,
            len(result.errors),
            len(result.created_files),
        )
        return result

    # ── Stages ───────────────────────────────────────────────────

    def _collect(self, inputs: list[RawInput], result: WorkflowResult) -> list[_WorkItem]:
        """Validate and dedupe URLs across the batch by canonical URL."""
        seen: set[str] = set()
        items: list[_WorkItem] = []
        for raw in inputs:
            for url in raw.urls:
                try:
                    valid = validate_url(url)
                except InvalidURL as exc:
                    logger.warning("%s", exc)
                    result.errors.append(str(exc))
                    continue
                key = canonicalize_url(valid)
                if key in seen:
                    logger.debug("Skipping duplicate URL %s", valid)
                    continue
                seen.add(key)
                items.append(_WorkItem(valid, raw.received_at, raw.published_at))
        return items

    def _extract(self, item: _WorkItem) -> ExtractedRecord:
        record = self.extractor.extract(item.url)
        if record.received_at is None:
            record = record.model_copy(update={"received_at": item.received_at})
        if record.metadata.publish_date is None and item.published_at is not None:
            metadata = record.metadata.model_copy(update={"publish_date": item.published_at})
            record = record.model_copy(update={"metadata": metadata})
        return record

    def _classify(self, record: ExtractedRecord) -> ClassifiedRecord:
        return self.classifier.classify(record)

    def _persist(
        self,
        records: list[ClassifiedRecord],
        result: WorkflowResult,
        cancel: threading.Event,
    ) -> None:
        keys = {canonicalize_url(r.url) for r in records}
        # Categories the run can change: where records land, plus where
        # their keys already live.
        touched = {r.category for r in records}
        touched.update(e.category for e in self.store.snapshot() if e.canonical_url in keys)

        with self.locks.hold(touched) as held:
            self._advance(result, WorkflowStage.RECONCILING)
            snapshot = self.store.snapshot()
            merged = merge(snapshot, records)
            logger.info(
                "Reconciled: %d added, %d updated, %d unchanged",
                merged.added_count,
                merged.updated_count,
                merged.skipped_count,
            )
            if cancel.is_set():
                self._cancelled(result)
                return

            self._advance(result, WorkflowStage.PERSISTING)
            entries = [e for e in merged.entries if e.category in held]
            message = f"Add content from intake: {merged.added_count} new, {merged.updated_count} updated"
            commit = self.store.write(entries, categories=held, message=message)

        result.created_files = commit.paths
        result.commit_ref = commit.commit_ref

    # ── Helpers ──────────────────────────────────────────────────

    def _fan_out(
        self,
        fn: Callable[[Any], Any],
        items: Sequence[Any],
        cancel: threading.Event,
        result: WorkflowResult,
        label: str,
    ) -> list[Any]:
        """Run ``fn`` over ``items`` on the worker pool, preserving order."""
        if not items:
            return []
        workers = min(self.max_workers, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"curator-{label}") as pool:
            outcomes = list(pool.map(lambda item: _guarded(fn, item, cancel), items))

        values: list[Any] = []
        for outcome in outcomes:
            if outcome.skipped:
                continue
            if outcome.error is not None:
                result.errors.append(outcome.error)
                continue
            values.append(outcome.value)
        return values

    def _advance(self, result: WorkflowResult, stage: WorkflowStage) -> None:
        logger.debug("Stage %s → %s", result.stage.value, stage.value)
        self.stage = stage
        result.stage = stage

    def _cancelled(self, result: WorkflowResult) -> WorkflowResult:
        logger.warning(CANCELLED_MESSAGE)
        result.errors.append(CANCELLED_MESSAGE)
        result.success = False
        result.created_files = []
        result.commit_ref = None
        self._advance(result, WorkflowStage.FAILED)
        return result


def _guarded(fn: Callable[[Any], Any], item: Any, cancel: threading.Event) -> _Outcome:
    """Run one unit of work, turning per-item failures into an error string."""
    if cancel.is_set():
        return _Outcome(item, skipped=True)
    url = getattr(item, "url", item)
    try:
        return _Outcome(item, value=fn(item))
    except CuratorError as exc:
        logger.warning("%s", exc)
        return _Outcome(item, error=str(exc))
    except Exception as exc:
        logger.warning("Unexpected failure processing %s", url, exc_info=True)
        return _Outcome(item, error=f"Failed to process {url}: {exc}")

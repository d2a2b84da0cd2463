"""Trigger interface: JSON payload in, WorkflowResult JSON out.

Accepted payload shapes::

    {"sender": ..., "receivedAt": ..., "urls": [...]}
    {"inputs": [<any single shape>, ...]}
    {"email": {"subject", "body"|"content", "from"|"sender", "date", "urls"}}
    {"content": "text with links", "sender": ...}
    {"feed": "<rss/atom document or url>"}
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from curator.errors import InvalidInput
from curator.intake.models import RawInput
from curator.intake.parsers import parse_payload
from curator.pipeline.models import WorkflowResult, WorkflowStage

if TYPE_CHECKING:
    from curator.config import CuratorConfig
    from curator.intake.extractor import HttpFetcher
    from curator.intake.retry import RetryPolicy
    from curator.pipeline.workflow import ContentWorkflow

logger = logging.getLogger(__name__)


def parse_trigger(
    payload: dict[str, Any],
    *,
    fetcher: HttpFetcher | None = None,
    retry: RetryPolicy | None = None,
) -> tuple[list[RawInput], list[str]]:
    """Turn a trigger payload into raw inputs.

    Items of an ``inputs`` batch are parsed independently: a malformed
    item is reported in the returned error list and the rest still run.

    Returns:
        ``(inputs, rejected)`` where ``rejected`` holds one message per
        batch item that could not be parsed.

    Raises:
        InvalidInput: The payload shape is not recognised, or no item of
            a batch could be parsed.
    """
    if not isinstance(payload, dict):
        raise InvalidInput("Payload must be a JSON object")
    if "inputs" not in payload:
        return parse_payload(payload, fetcher=fetcher, retry=retry), []

    batch = payload["inputs"]
    if not isinstance(batch, list):
        raise InvalidInput("'inputs' must be a list")
    inputs: list[RawInput] = []
    rejected: list[str] = []
    for index, item in enumerate(batch):
        try:
            inputs.extend(parse_payload(item, fetcher=fetcher, retry=retry))
        except InvalidInput as exc:
            logger.warning("Rejected batch item %d: %s", index, exc)
            rejected.append(f"inputs[{index}]: {exc}")
    if rejected and not inputs:
        raise InvalidInput("; ".join(rejected))
    return inputs, rejected


def handle_trigger(
    payload: dict[str, Any],
    *,
    workflow: ContentWorkflow | None = None,
    config: CuratorConfig | None = None,
    cancel: threading.Event | None = None,
) -> dict[str, Any]:
    """Run one workflow for a trigger payload and return its JSON result."""
    if workflow is None and config is None:
        from curator.config import load_config

        config = load_config()

    fetcher = config.to_http_fetcher() if config else None
    retry = config.to_retry_policy() if config else None
    try:
        inputs, rejected = parse_trigger(payload, fetcher=fetcher, retry=retry)
    except InvalidInput as exc:
        logger.warning("Rejected trigger payload: %s", exc)
        failed = WorkflowResult(success=False, errors=[str(exc)], stage=WorkflowStage.FAILED)
        return failed.to_payload()

    if workflow is None:
        from curator.pipeline.workflow import ContentWorkflow

        workflow = ContentWorkflow.from_config(config)

    logger.info(
        "Trigger accepted: %d input(s), %d URL(s)",
        len(inputs),
        sum(len(raw.urls) for raw in inputs),
    )
    result = workflow.run(inputs, cancel=cancel)
    if rejected:
        result.errors = [*rejected, *result.errors]
    return result.to_payload()

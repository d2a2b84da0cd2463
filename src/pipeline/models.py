"""Run-level models for the content workflow."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WorkflowStage(StrEnum):
    """Stages of one run, in order. ``DONE`` and ``FAILED`` are terminal."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    CLASSIFYING = "classifying"
    RECONCILING = "reconciling"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class WorkflowResult(BaseModel):
    """Outcome of one run. Serialized with camelCase keys; never persisted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = False
    processed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    created_files: list[str] = Field(default_factory=list)
    commit_ref: str | None = None
    needs_review: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)
    stage: WorkflowStage = WorkflowStage.IDLE

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

"""Pipeline — orchestration of a content intake run.

  workflow — RawInput batch → extracted, classified, reconciled, persisted
  trigger  — JSON payload → workflow run → WorkflowResult JSON
"""

from curator.pipeline.models import WorkflowResult, WorkflowStage
from curator.pipeline.trigger import handle_trigger
from curator.pipeline.workflow import CategoryLocks, ContentWorkflow

__all__ = [
    "CategoryLocks",
    "ContentWorkflow",
    "WorkflowResult",
    "WorkflowStage",
    "handle_trigger",
]

"""Intake — turn inbound references into classified records."""

from curator.intake.models import (
    Category,
    ClassifiedRecord,
    ContentFormat,
    ExtractedMetadata,
    ExtractedRecord,
    InputSource,
    PublishState,
    RawInput,
)

__all__ = [
    "Category",
    "ClassifiedRecord",
    "ContentFormat",
    "ExtractedMetadata",
    "ExtractedRecord",
    "InputSource",
    "PublishState",
    "RawInput",
]

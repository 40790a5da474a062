"""Core domain types and contracts for the processing orchestrator."""

from .types import (
    ChunkPlan,
    ContentRichness,
    FailureKind,
    ModelAttempt,
    ParameterizedPrompt,
    Priority,
    ProcessingMethod,
    ProcessingMode,
    ProcessingRequest,
    ProcessingResponse,
    QueueItem,
    ResponseStatus,
    StaticPrompt,
    Strategy,
    Template,
    TranscriptResult,
    TranscriptSource,
    Verbosity,
    VideoMetadata,
    VideoPayload,
    VideoReference,
)

__all__ = [
    "ChunkPlan",
    "ContentRichness",
    "FailureKind",
    "ModelAttempt",
    "ParameterizedPrompt",
    "Priority",
    "ProcessingMethod",
    "ProcessingMode",
    "ProcessingRequest",
    "ProcessingResponse",
    "QueueItem",
    "ResponseStatus",
    "StaticPrompt",
    "Strategy",
    "Template",
    "TranscriptResult",
    "TranscriptSource",
    "Verbosity",
    "VideoMetadata",
    "VideoPayload",
    "VideoReference",
]

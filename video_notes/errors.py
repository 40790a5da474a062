from __future__ import annotations

from typing import Sequence

from .core.types import FailureKind, ModelAttempt


class VideoNotesError(Exception):
    """Base class for errors raised by the processing orchestrator."""


class InvalidVideoReference(VideoNotesError, ValueError):
    """Raised when a URL does not point at a YouTube video."""


class TranscriptUnavailable(VideoNotesError):
    """Raised by caption sources when a video has no usable caption track."""


class MetadataUnavailable(VideoNotesError):
    """Raised by metadata sources when a lookup fails."""


class GenerationError(VideoNotesError):
    """A single backend call failed."""

    def __init__(self, message: str, *, kind: FailureKind = FailureKind.OTHER, model: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.model = model


class AllModelsExhausted(VideoNotesError):
    """Every model in the fallback hierarchy failed for one call."""

    def __init__(self, attempts: Sequence[ModelAttempt]) -> None:
        self.attempts = tuple(attempts)
        tried = [a.model_name for a in self.attempts if not a.skipped]
        if tried:
            message = f"All models failed ({', '.join(tried)}). Check your API quota and try again later."
        else:
            message = "No model in the hierarchy can serve this request."
        super().__init__(message)

    @property
    def all_quota(self) -> bool:
        tried = [a for a in self.attempts if not a.skipped]
        return bool(tried) and all(a.failure_kind == FailureKind.QUOTA_EXCEEDED for a in tried)


class AllChunksFailed(VideoNotesError):
    """Every chunk of a long video failed to generate."""

    def __init__(self, chunk_count: int) -> None:
        super().__init__(f"All {chunk_count} chunks failed to process")
        self.chunk_count = chunk_count


class ProcessingCancelled(VideoNotesError):
    """The request was cancelled or timed out before any output was produced."""

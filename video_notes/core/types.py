from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


class ProcessingMode(str, Enum):
    AUTO = "auto"
    HYBRID = "hybrid"
    TRANSCRIPT_ONLY = "transcript-only"
    VIDEO_ONLY = "video-only"


class ProcessingMethod(str, Enum):
    HYBRID = "hybrid"
    TRANSCRIPT_ONLY = "transcript-only"
    VIDEO_ONLY = "video-only"
    FALLBACK = "fallback"


class Strategy(str, Enum):
    SINGLE_SOURCE = "single-source"
    HYBRID = "hybrid"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class TranscriptSource(str, Enum):
    OFFICIAL_CAPTIONS = "official-captions"
    GENERATED_AUDIO = "generated-audio"
    UNAVAILABLE = "unavailable"


class ContentRichness(str, Enum):
    MINIMAL = "minimal"
    BASIC = "basic"
    DETAILED = "detailed"
    COMPREHENSIVE = "comprehensive"


class FailureKind(str, Enum):
    QUOTA_EXCEEDED = "quota-exceeded"
    UNSUPPORTED_INPUT = "unsupported-input"
    OTHER = "other"


class ResponseStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class QueueItemState(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Verbosity(str, Enum):
    CONCISE = "concise"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"


@dataclass(frozen=True)
class VideoReference:
    url: str
    video_id: str

    @classmethod
    def parse(cls, url: str) -> "VideoReference":
        from ..ingest.youtube import parse_video_url

        return parse_video_url(url)

    @property
    def canonical_url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


@dataclass(frozen=True)
class VideoMetadata:
    title: str
    duration_seconds: float
    channel_name: str = ""
    language: str = "en"
    content_richness: ContentRichness = ContentRichness.MINIMAL
    has_captions: bool = False
    tags: tuple[str, ...] = ()
    description: str = ""
    view_count: int | None = None

    @classmethod
    def placeholder(cls) -> "VideoMetadata":
        return cls(title="Untitled video", duration_seconds=0.0, channel_name="Unknown channel")


@dataclass(frozen=True)
class TranscriptSegment:
    start_seconds: float
    end_seconds: float | None
    text: str
    speaker: str | None = None

    def end_or_default(self, default_length: float) -> float:
        if self.end_seconds is not None:
            return self.end_seconds
        return self.start_seconds + default_length


@dataclass(frozen=True)
class TranscriptResult:
    source: TranscriptSource
    text: str = ""
    word_count: int = 0
    confidence: float = 0.0
    segments: tuple[TranscriptSegment, ...] = ()

    @property
    def available(self) -> bool:
        return self.source != TranscriptSource.UNAVAILABLE and bool(self.text)

    @classmethod
    def unavailable(cls) -> "TranscriptResult":
        return cls(source=TranscriptSource.UNAVAILABLE)


@dataclass(frozen=True)
class ModelAttempt:
    model_name: str
    succeeded: bool
    failure_kind: FailureKind | None = None
    skipped: bool = False
    message: str | None = None


@dataclass(frozen=True)
class ChunkPlan:
    chunk_index: int
    start_seconds: float
    end_seconds: float
    transcript_slice: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.end_seconds - self.start_seconds)


@dataclass(frozen=True)
class VideoPayload:
    """Video content handed to a video-capable backend."""

    url: str
    start_seconds: float | None = None
    end_seconds: float | None = None
    mime_type: str = "video/*"


@dataclass(frozen=True)
class GenerationResult:
    text: str
    token_usage: int
    model: str
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass(frozen=True)
class InvocationResult:
    text: str
    token_usage: int
    model_used: str
    attempts: tuple[ModelAttempt, ...] = ()


@dataclass(frozen=True)
class PromptContext:
    duration_seconds: float | None = None
    verbosity: Verbosity = Verbosity.STANDARD
    domain: str = "general"
    video_url: str | None = None


@dataclass(frozen=True)
class StaticPrompt:
    text: str

    def render(self, context: PromptContext) -> str:
        return self.text


@dataclass(frozen=True)
class ParameterizedPrompt:
    build: Callable[[float | None, Verbosity, str, str | None], str]

    def render(self, context: PromptContext) -> str:
        return self.build(context.duration_seconds, context.verbosity, context.domain, context.video_url)


@dataclass(frozen=True)
class Template:
    id: str
    name: str
    prompt: StaticPrompt | ParameterizedPrompt
    description: str = ""

    def render(self, context: PromptContext) -> str:
        return self.prompt.render(context)


@dataclass(frozen=True)
class ProcessingRequest:
    video: VideoReference
    template: Template
    custom_instructions: str | None = None
    processing_mode: ProcessingMode = ProcessingMode.AUTO
    verbosity: Verbosity = Verbosity.STANDARD

    @property
    def fingerprint(self) -> tuple[str, str, str]:
        return (self.video.video_id, self.template.id, self.processing_mode.value)


@dataclass(frozen=True)
class ProcessingResponse:
    id: str
    status: ResponseStatus
    processing_time_ms: int
    token_usage: int = 0
    cost_cents: float = 0.0
    processing_method: ProcessingMethod | None = None
    data_sources_used: tuple[str, ...] = ()
    text: str | None = None
    error: str | None = None
    model_used: str | None = None
    chunk_count: int = 0
    video_title: str | None = None
    duration_seconds: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ResponseStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "text": self.text,
            "error": self.error,
            "processing_time_ms": self.processing_time_ms,
            "token_usage": self.token_usage,
            "cost_cents": self.cost_cents,
            "processing_method": self.processing_method.value if self.processing_method else None,
            "data_sources_used": list(self.data_sources_used),
            "model_used": self.model_used,
            "chunk_count": self.chunk_count,
            "video_title": self.video_title,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class QueueItem:
    id: str
    request: ProcessingRequest
    priority: Priority = Priority.MEDIUM
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    retry_count: int = 0
    max_retries: int = 3

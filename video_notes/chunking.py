from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass, field

from .constants import (
    CHUNK_WIDTH_SECONDS,
    DEFAULT_MAX_CONCURRENT_CHUNKS,
    DEFAULT_SEGMENT_SECONDS,
    LONG_VIDEO_THRESHOLD_SECONDS,
)
from .core.contracts import ProgressSink
from .core.types import ChunkPlan, VideoMetadata, VideoPayload, VideoReference
from .errors import AllChunksFailed, AllModelsExhausted, ProcessingCancelled
from .invoker import ModelInvoker
from .prompts.default import build_chunk_prompt
from .timestamps import format_clock
from .transcript import split_transcript

logger = logging.getLogger(__name__)

SECTION_SEPARATOR = "\n\n---\n\n"
_TOP_HEADING = re.compile(r"^#\s+\S.*$")


@dataclass(frozen=True)
class ChunkingConfig:
    long_video_threshold_seconds: float = LONG_VIDEO_THRESHOLD_SECONDS
    chunk_width_seconds: float = CHUNK_WIDTH_SECONDS
    max_concurrent_chunks: int = DEFAULT_MAX_CONCURRENT_CHUNKS
    default_segment_seconds: float = DEFAULT_SEGMENT_SECONDS

    def __post_init__(self) -> None:
        if self.chunk_width_seconds <= 0:
            raise ValueError("chunk_width_seconds must be positive")
        if self.max_concurrent_chunks < 1:
            raise ValueError("max_concurrent_chunks must be at least 1")

    def needs_chunking(self, duration_seconds: float) -> bool:
        return duration_seconds > self.long_video_threshold_seconds


def plan_chunks(duration_seconds: float, chunk_width: float, transcript: str | None = None) -> list[ChunkPlan]:
    """Partition ``[0, duration)`` into ``ceil(duration / width)`` contiguous windows."""
    if chunk_width <= 0:
        raise ValueError("chunk_width must be positive")
    if duration_seconds <= 0:
        return []
    count = math.ceil(duration_seconds / chunk_width)
    slices: list[str | None] = list(split_transcript(transcript, count)) if transcript else [None] * count
    return [
        ChunkPlan(
            chunk_index=idx,
            start_seconds=idx * chunk_width,
            end_seconds=min((idx + 1) * chunk_width, duration_seconds),
            transcript_slice=slices[idx] or None,
        )
        for idx in range(count)
    ]


def chunk_label(plan: ChunkPlan, chunk_count: int) -> str:
    return (
        f"chunk {plan.chunk_index + 1}/{chunk_count} "
        f"[{format_clock(plan.start_seconds)}-{format_clock(plan.end_seconds)}]"
    )


def failure_placeholder(index: int, message: str) -> str:
    return f"[Chunk {index + 1} processing failed: {message}]"


def skipped_placeholder(index: int) -> str:
    return f"[Chunk {index + 1} not processed: request cancelled or timed out]"


def _strip_top_heading(section: str) -> str:
    lines = section.strip().splitlines()
    while lines and not lines[0].strip():
        lines.pop(0)
    if lines and _TOP_HEADING.match(lines[0].strip()):
        lines.pop(0)
    return "\n".join(lines).strip()


def merge_chunks(title: str, sections: list[str]) -> str:
    """Join chunk outputs in order under one title; later chunks lose their own top heading."""
    body = [section.strip() if idx == 0 else _strip_top_heading(section) for idx, section in enumerate(sections)]
    header = f"# {title}\n\n*Processed in {len(sections)} parts.*"
    return header + "\n\n" + SECTION_SEPARATOR.join(body)


@dataclass
class Cancellation:
    """Deadline (event-loop time) and/or event checked before each chunk starts."""

    deadline: float | None = None
    event: asyncio.Event | None = None

    @classmethod
    def after(cls, timeout: float | None, event: asyncio.Event | None = None) -> "Cancellation":
        deadline = asyncio.get_running_loop().time() + timeout if timeout is not None else None
        return cls(deadline=deadline, event=event)

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(self.deadline - asyncio.get_running_loop().time(), 0.0)

    @property
    def tripped(self) -> bool:
        if self.event is not None and self.event.is_set():
            return True
        return self.deadline is not None and asyncio.get_running_loop().time() >= self.deadline


@dataclass(frozen=True)
class ChunkOutcome:
    plan: ChunkPlan
    text: str | None = None
    token_usage: int = 0
    model_used: str | None = None
    error: str | None = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.text is not None


@dataclass(frozen=True)
class ChunkedResult:
    text: str
    token_usage: int
    chunk_count: int
    outcomes: tuple[ChunkOutcome, ...]
    data_sources: tuple[str, ...]
    model_used: str | None = None

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded and not o.skipped)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.skipped)


@dataclass
class ChunkedProcessor:
    invoker: ModelInvoker
    config: ChunkingConfig = field(default_factory=ChunkingConfig)
    progress: ProgressSink | None = None

    def plan(self, metadata: VideoMetadata, transcript: str | None = None) -> list[ChunkPlan]:
        return plan_chunks(metadata.duration_seconds, self.config.chunk_width_seconds, transcript)

    async def process(
        self,
        video: VideoReference,
        base_prompt: str,
        transcript: str | None,
        metadata: VideoMetadata,
        *,
        source_label: str,
        include_video: bool = False,
        video_fallback: bool = True,
        cancellation: Cancellation | None = None,
    ) -> ChunkedResult:
        plans = self.plan(metadata, transcript)
        total = len(plans)
        if total == 0:
            raise ValueError("Cannot chunk a video without a positive duration")
        logger.info("Processing %s in %d chunks of %ss", video.video_id, total, self.config.chunk_width_seconds)

        cancellation = cancellation or Cancellation()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_chunks)
        completed = 0

        async def _run(plan: ChunkPlan) -> ChunkOutcome:
            nonlocal completed
            async with semaphore:
                if cancellation.tripped:
                    logger.warning("Skipping chunk %d of %d: cancelled", plan.chunk_index + 1, total)
                    return ChunkOutcome(plan=plan, skipped=True)
                outcome = await self._process_one(video, base_prompt, plan, total, include_video, video_fallback)
            completed += 1
            self._notify(completed / total * 100, f"Processed chunk {plan.chunk_index + 1} of {total}")
            return outcome

        outcomes = await asyncio.gather(*(_run(plan) for plan in plans))

        succeeded = [o for o in outcomes if o.succeeded]
        if not succeeded:
            if any(not o.skipped for o in outcomes):
                raise AllChunksFailed(total)
            raise ProcessingCancelled(f"Cancelled before any of {total} chunks completed")

        sections = []
        sources = []
        for outcome in outcomes:
            label = f"{chunk_label(outcome.plan, total)}: {source_label}"
            if outcome.succeeded:
                sections.append(outcome.text or "")
                sources.append(label)
            elif outcome.skipped:
                sections.append(skipped_placeholder(outcome.plan.chunk_index))
                sources.append(f"{label} (not processed)")
            else:
                sections.append(failure_placeholder(outcome.plan.chunk_index, outcome.error or "unknown error"))
                sources.append(f"{label} (failed)")

        return ChunkedResult(
            text=merge_chunks(metadata.title, sections),
            token_usage=sum(o.token_usage for o in outcomes),
            chunk_count=total,
            outcomes=tuple(outcomes),
            data_sources=tuple(sources),
            model_used=succeeded[-1].model_used,
        )

    async def _process_one(
        self,
        video: VideoReference,
        base_prompt: str,
        plan: ChunkPlan,
        total: int,
        include_video: bool,
        video_fallback: bool,
    ) -> ChunkOutcome:
        payload = None
        if include_video or (plan.transcript_slice is None and video_fallback):
            payload = VideoPayload(url=video.canonical_url, start_seconds=plan.start_seconds, end_seconds=plan.end_seconds)
        prompt = build_chunk_prompt(base_prompt, plan, total, has_video=payload is not None)
        try:
            result = await self.invoker.invoke(prompt, video=payload)
        except AllModelsExhausted as exc:
            logger.warning("Chunk %d of %d failed: %s", plan.chunk_index + 1, total, exc)
            return ChunkOutcome(plan=plan, error=str(exc))
        return ChunkOutcome(plan=plan, text=result.text, token_usage=result.token_usage, model_used=result.model_used)

    def _notify(self, percent: float, message: str) -> None:
        if self.progress is not None:
            self.progress.notify_progress(percent, message)

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Sequence, TypeVar

from .analysis import AnalysisResponse, parse_analysis
from .chunking import Cancellation, ChunkedProcessor, ChunkingConfig
from .config import AppConfig, QueueConfig
from .core.contracts import CaptionSource, GenerationBackend, MetadataSource, ProgressSink
from .core.types import (
    Priority,
    ProcessingMethod,
    ProcessingMode,
    ProcessingRequest,
    ProcessingResponse,
    PromptContext,
    ResponseStatus,
    Strategy,
    Template,
    TranscriptResult,
    TranscriptSource,
    Verbosity,
    VideoMetadata,
    VideoPayload,
    VideoReference,
)
from .costs import CostEstimator
from .dedup import RequestDeduplicator
from .errors import AllModelsExhausted, MetadataUnavailable, ProcessingCancelled, VideoNotesError
from .ingest.data_api import YouTubeDataApiMetadataSource
from .ingest.youtube import YtDlpCaptionSource, YtDlpInfoClient, YtDlpMetadataSource
from .invoker import ModelInvoker
from .planner import Planner, PlanReport
from .progress import NullProgressSink
from .prompts.default import (
    HEALTH_CHECK_PROMPT,
    build_analysis_prompt,
    build_degraded_prompt,
    build_hybrid_prompt,
    build_metadata_context,
    build_transcript_prompt,
    build_video_analysis_prompt,
)
from .providers.gemini import GeminiBackend
from .queue import PriorityRetryQueue, QueueStatus
from .selector import ModeSelector
from .telemetry import RequestRecord, RunMonitor
from .templates import detect_domain
from .timestamps import link_timestamps
from .transcript import TranscriptAcquirer

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOURCE_LABELS = {
    TranscriptSource.OFFICIAL_CAPTIONS: "official captions",
    TranscriptSource.GENERATED_AUDIO: "AI audio transcript",
}
VIDEO_SOURCE = "video analysis"
METADATA_SOURCE = "video metadata"
FALLBACK_SOURCE = "URL pattern analysis"
HYBRID_FALLBACK_SOURCE = "hybrid fallback"


def default_metadata_source(config: AppConfig, info: YtDlpInfoClient | None = None) -> MetadataSource:
    """YouTube Data API when a key is configured, otherwise yt-dlp."""
    if config.youtube_api_key:
        return YouTubeDataApiMetadataSource(config.youtube_api_key)
    return YtDlpMetadataSource(info)


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    message: str
    model_used: str | None = None

    @property
    def status(self) -> str:
        return "healthy" if self.healthy else "unhealthy"


@dataclass(frozen=True)
class _Outcome:
    text: str
    token_usage: int
    method: ProcessingMethod
    sources: tuple[str, ...]
    model_used: str | None = None
    chunk_count: int = 0


class Orchestrator:
    """Turns a ``ProcessingRequest`` into a ``ProcessingResponse``.

    Identical concurrent requests share one computation. Metadata and a
    transcript are gathered first, then the request runs through the chunked,
    hybrid or single-source path. Only ``VideoNotesError`` failures become
    failed responses; anything else propagates.
    """

    def __init__(
        self,
        *,
        invoker: ModelInvoker,
        captions: CaptionSource,
        metadata: MetadataSource,
        selector: ModeSelector | None = None,
        chunking: ChunkingConfig | None = None,
        costs: CostEstimator | None = None,
        progress: ProgressSink | None = None,
        queue: QueueConfig | None = None,
        link_timestamps: bool = False,
        request_timeout: float | None = None,
        monitor: RunMonitor | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._invoker = invoker
        self._metadata = metadata
        self._selector = selector or ModeSelector()
        self._chunking = chunking or ChunkingConfig()
        self._costs = costs or CostEstimator()
        self._progress = progress or NullProgressSink()
        self._link_timestamps = link_timestamps
        self._request_timeout = request_timeout
        self.monitor = monitor or RunMonitor()

        self._transcripts = TranscriptAcquirer(captions, invoker)
        self._chunker = ChunkedProcessor(invoker, self._chunking, self._progress)
        self._dedup: RequestDeduplicator[ProcessingResponse] = RequestDeduplicator()
        queue_cfg = queue or QueueConfig()
        self._queue = PriorityRetryQueue(
            self.process_video,
            workers=queue_cfg.workers,
            dequeue_delay=queue_cfg.dequeue_delay_seconds,
            max_retries=queue_cfg.max_retries,
            keep_finished=queue_cfg.keep_finished,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        backends: Sequence[GenerationBackend] | None = None,
        captions: CaptionSource | None = None,
        metadata: MetadataSource | None = None,
        progress: ProgressSink | None = None,
        monitor: RunMonitor | None = None,
    ) -> "Orchestrator":
        monitor = monitor or RunMonitor()
        if backends is None:
            backends = [GeminiBackend(api_key=config.api_key, model=model, monitor=monitor) for model in config.models]
        info = YtDlpInfoClient()
        if captions is None:
            captions = YtDlpCaptionSource(info)
        if metadata is None:
            metadata = default_metadata_source(config, info)
        return cls(
            invoker=ModelInvoker(backends),
            captions=captions,
            metadata=metadata,
            selector=ModeSelector(config.selector),
            chunking=config.chunking,
            costs=CostEstimator(config.pricing),
            progress=progress,
            queue=config.queue,
            link_timestamps=config.link_timestamps,
            request_timeout=config.request_timeout_seconds,
            monitor=monitor,
        )

    # Exposed operations

    async def process_video(
        self,
        request: ProcessingRequest,
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ProcessingResponse:
        return await self._dedup.submit(request.fingerprint, lambda: self._run(request, timeout, cancel))

    async def analyze_video(
        self,
        video: VideoReference,
        templates: Sequence[Template] = (),
        *,
        timeout: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AnalysisResponse:
        """Produce a structured whole-video analysis, with notes for each template inside it."""
        started = time.perf_counter()
        cancellation = Cancellation.after(timeout if timeout is not None else self._request_timeout, cancel)
        logger.info("Analyzing %s with %d template(s)", video.video_id, len(templates))

        def _elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            metadata = await self._fetch_metadata(video)
            self._checkpoint(cancellation)
            transcript = await self._transcripts.acquire(video)
            self._checkpoint(cancellation)
            context = PromptContext(
                duration_seconds=metadata.duration_seconds or None,
                verbosity=Verbosity.COMPREHENSIVE,
                domain=detect_domain(metadata),
                video_url=video.canonical_url,
            )
            prompt = build_analysis_prompt(
                build_metadata_context(metadata),
                {template.id: template.render(context).strip() for template in templates},
                transcript.text if transcript.available else None,
            )
            if transcript.available:
                work = self._invoker.invoke(prompt)
                official = transcript.source == TranscriptSource.OFFICIAL_CAPTIONS
                method = ProcessingMethod.TRANSCRIPT_ONLY if official else ProcessingMethod.VIDEO_ONLY
            else:
                work = self._invoker.invoke(prompt, video=VideoPayload(url=video.canonical_url), requires_video=True)
                method = ProcessingMethod.VIDEO_ONLY
            result = await self._bounded(work, cancellation)
        except VideoNotesError as exc:
            logger.error("Analysis of %s failed: %s", video.video_id, exc)
            self.monitor.record_request(
                RequestRecord(
                    video_id=video.video_id,
                    status=ResponseStatus.FAILED.value,
                    processing_time_ms=_elapsed(),
                    error=str(exc),
                )
            )
            return AnalysisResponse(
                video_id=video.video_id,
                status=ResponseStatus.FAILED,
                processing_time_ms=_elapsed(),
                error=str(exc),
            )

        analysis = parse_analysis(result.text)
        cost = self._costs.estimate(result.token_usage, method)
        self.monitor.record_request(
            RequestRecord(
                video_id=video.video_id,
                status=ResponseStatus.COMPLETED.value,
                method=method.value,
                tokens=result.token_usage,
                cost_cents=cost,
                processing_time_ms=_elapsed(),
            )
        )
        logger.info(
            "Analysis of %s found %d concepts and %d chapters",
            video.video_id,
            len(analysis.concepts),
            len(analysis.chapters),
        )
        return AnalysisResponse(
            video_id=video.video_id,
            status=ResponseStatus.COMPLETED,
            processing_time_ms=_elapsed(),
            analysis=analysis,
            token_usage=result.token_usage,
            cost_cents=cost,
            model_used=result.model_used,
        )

    def enqueue(self, request: ProcessingRequest, priority: Priority = Priority.MEDIUM) -> str:
        return self._queue.enqueue(request, priority)

    def queue_status(self) -> QueueStatus:
        return self._queue.status()

    @property
    def queue(self) -> PriorityRetryQueue:
        return self._queue

    async def health_check(self) -> HealthStatus:
        try:
            result = await self._invoker.invoke(HEALTH_CHECK_PROMPT)
        except AllModelsExhausted as exc:
            return HealthStatus(healthy=False, message=str(exc))
        return HealthStatus(healthy=True, message=f"{result.model_used} is responding", model_used=result.model_used)

    async def plan(self, video: VideoReference, mode: ProcessingMode = ProcessingMode.AUTO) -> PlanReport:
        planner = Planner(metadata=self._metadata, selector=self._selector, chunking=self._chunking)
        return await planner.plan(video, mode)

    def build_prompt(self, request: ProcessingRequest, metadata: VideoMetadata) -> str:
        context = PromptContext(
            duration_seconds=metadata.duration_seconds or None,
            verbosity=request.verbosity,
            domain=detect_domain(metadata),
            video_url=request.video.canonical_url,
        )
        parts = [request.template.render(context).strip()]
        instructions = (request.custom_instructions or "").strip()
        if instructions:
            parts.append(f"Additional requirements: {instructions}")
        parts.append(build_metadata_context(metadata))
        return "\n\n".join(parts)

    # Internals

    async def _run(
        self,
        request: ProcessingRequest,
        timeout: float | None,
        cancel: asyncio.Event | None,
    ) -> ProcessingResponse:
        started = time.perf_counter()
        response_id = uuid.uuid4().hex
        video = request.video
        logger.info(
            "Processing %s with template %s (%s)",
            video.video_id,
            request.template.id,
            request.processing_mode.value,
        )
        cancellation = Cancellation.after(timeout if timeout is not None else self._request_timeout, cancel)
        metadata: VideoMetadata | None = None

        def _elapsed() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            self._notify(0, "Fetching video metadata")
            metadata = await self._fetch_metadata(video)
            outcome = await self._generate(request, metadata, cancellation)
        except VideoNotesError as exc:
            logger.error("Processing %s failed: %s", video.video_id, exc)
            self.monitor.record_request(
                RequestRecord(
                    video_id=video.video_id,
                    status=ResponseStatus.FAILED.value,
                    processing_time_ms=_elapsed(),
                    error=str(exc),
                )
            )
            return ProcessingResponse(
                id=response_id,
                status=ResponseStatus.FAILED,
                processing_time_ms=_elapsed(),
                error=str(exc),
                video_title=metadata.title if metadata else None,
                duration_seconds=metadata.duration_seconds if metadata else None,
            )

        text = link_timestamps(outcome.text, video.video_id) if self._link_timestamps else outcome.text
        cost = self._costs.estimate(outcome.token_usage, outcome.method)
        self._notify(100, "Completed")
        self.monitor.record_request(
            RequestRecord(
                video_id=video.video_id,
                status=ResponseStatus.COMPLETED.value,
                method=outcome.method.value,
                tokens=outcome.token_usage,
                cost_cents=cost,
                chunks=outcome.chunk_count,
                processing_time_ms=_elapsed(),
            )
        )
        logger.info(
            "Finished %s via %s: %d tokens, %.4f cents",
            video.video_id,
            outcome.method.value,
            outcome.token_usage,
            cost,
        )
        return ProcessingResponse(
            id=response_id,
            status=ResponseStatus.COMPLETED,
            processing_time_ms=_elapsed(),
            token_usage=outcome.token_usage,
            cost_cents=cost,
            processing_method=outcome.method,
            data_sources_used=outcome.sources,
            text=text,
            model_used=outcome.model_used,
            chunk_count=outcome.chunk_count,
            video_title=metadata.title,
            duration_seconds=metadata.duration_seconds,
        )

    async def _fetch_metadata(self, video: VideoReference) -> VideoMetadata:
        try:
            metadata = await self._metadata.fetch_metadata(video.video_id)
        except MetadataUnavailable as exc:
            logger.warning("Metadata lookup failed for %s: %s", video.video_id, exc)
            metadata = None
        if metadata is None:
            logger.warning("Using placeholder metadata for %s", video.video_id)
            return VideoMetadata.placeholder()
        return metadata

    async def _generate(
        self,
        request: ProcessingRequest,
        metadata: VideoMetadata,
        cancellation: Cancellation,
    ) -> _Outcome:
        video = request.video
        base_prompt = self.build_prompt(request, metadata)
        strategy = self._selector.select(metadata, request.processing_mode)

        self._checkpoint(cancellation)
        if request.processing_mode == ProcessingMode.VIDEO_ONLY:
            transcript = TranscriptResult.unavailable()
        else:
            self._notify(10, "Acquiring transcript")
            transcript = await self._transcripts.acquire(video)

        self._checkpoint(cancellation)
        if self._chunking.needs_chunking(metadata.duration_seconds):
            return await self._chunked(request, metadata, base_prompt, strategy, transcript, cancellation)

        self._notify(40, "Generating notes")
        if strategy == Strategy.HYBRID:
            work = self._hybrid(request, metadata, base_prompt, transcript)
        else:
            work = self._single_source(request, metadata, base_prompt, transcript)
        return await self._bounded(work, cancellation)

    async def _single_source(
        self,
        request: ProcessingRequest,
        metadata: VideoMetadata,
        base_prompt: str,
        transcript: TranscriptResult,
    ) -> _Outcome:
        video = request.video
        mode = request.processing_mode
        metadata_sources = (METADATA_SOURCE,) if metadata.duration_seconds else ()

        if transcript.available and mode != ProcessingMode.VIDEO_ONLY:
            result = await self._invoker.invoke(build_transcript_prompt(base_prompt, transcript.text))
            official = transcript.source == TranscriptSource.OFFICIAL_CAPTIONS
            return _Outcome(
                text=result.text,
                token_usage=result.token_usage,
                method=ProcessingMethod.TRANSCRIPT_ONLY if official else ProcessingMethod.VIDEO_ONLY,
                sources=(SOURCE_LABELS[transcript.source], *metadata_sources),
                model_used=result.model_used,
            )

        if mode != ProcessingMode.TRANSCRIPT_ONLY:
            try:
                result = await self._invoker.invoke(
                    base_prompt,
                    video=VideoPayload(url=video.canonical_url),
                    requires_video=True,
                )
            except AllModelsExhausted as exc:
                logger.warning("Video-only pass failed for %s, using degraded prompt: %s", video.video_id, exc)
            else:
                return _Outcome(
                    text=result.text,
                    token_usage=result.token_usage,
                    method=ProcessingMethod.VIDEO_ONLY,
                    sources=(VIDEO_SOURCE, *metadata_sources),
                    model_used=result.model_used,
                )
        else:
            logger.warning("Transcript-only requested but no transcript for %s; using degraded prompt", video.video_id)

        result = await self._invoker.invoke(build_degraded_prompt(base_prompt, video.canonical_url))
        return _Outcome(
            text=result.text,
            token_usage=result.token_usage,
            method=ProcessingMethod.FALLBACK,
            sources=(FALLBACK_SOURCE, *metadata_sources),
            model_used=result.model_used,
        )

    async def _hybrid(
        self,
        request: ProcessingRequest,
        metadata: VideoMetadata,
        base_prompt: str,
        transcript: TranscriptResult,
    ) -> _Outcome:
        video = request.video
        sources: list[str] = []
        if transcript.available:
            sources.append(SOURCE_LABELS[transcript.source])
            transcript_text = transcript.text
        else:
            transcript_text = "[Transcript unavailable]"

        visual_tokens = 0
        try:
            visual = await self._invoker.invoke(
                build_video_analysis_prompt(video.canonical_url),
                video=VideoPayload(url=video.canonical_url),
                requires_video=True,
            )
        except AllModelsExhausted as exc:
            logger.warning("Visual analysis failed for %s: %s", video.video_id, exc)
            visual_text = "[Visual analysis unavailable]"
        else:
            visual_text = visual.text
            visual_tokens = visual.token_usage
            sources.append(VIDEO_SOURCE)
        sources.append(METADATA_SOURCE)

        try:
            result = await self._invoker.invoke(build_hybrid_prompt(base_prompt, transcript_text, visual_text))
        except AllModelsExhausted as exc:
            logger.warning("Hybrid synthesis failed for %s, falling back to single source: %s", video.video_id, exc)
            fallback = await self._single_source(request, metadata, base_prompt, transcript)
            return replace(
                fallback,
                token_usage=fallback.token_usage + visual_tokens,
                sources=(*fallback.sources, HYBRID_FALLBACK_SOURCE),
            )

        return _Outcome(
            text=result.text,
            token_usage=visual_tokens + result.token_usage,
            method=ProcessingMethod.HYBRID,
            sources=tuple(sources),
            model_used=result.model_used,
        )

    async def _chunked(
        self,
        request: ProcessingRequest,
        metadata: VideoMetadata,
        base_prompt: str,
        strategy: Strategy,
        transcript: TranscriptResult,
        cancellation: Cancellation,
    ) -> _Outcome:
        use_transcript = transcript.available and request.processing_mode != ProcessingMode.VIDEO_ONLY
        transcript_only = request.processing_mode == ProcessingMode.TRANSCRIPT_ONLY
        if transcript_only and not use_transcript:
            return await self._bounded(self._single_source(request, metadata, base_prompt, transcript), cancellation)

        if strategy == Strategy.HYBRID:
            method = ProcessingMethod.HYBRID
            include_video = True
            label = f"{SOURCE_LABELS[transcript.source]} + {VIDEO_SOURCE}" if use_transcript else VIDEO_SOURCE
        elif use_transcript:
            official = transcript.source == TranscriptSource.OFFICIAL_CAPTIONS
            method = ProcessingMethod.TRANSCRIPT_ONLY if official else ProcessingMethod.VIDEO_ONLY
            include_video = False
            label = SOURCE_LABELS[transcript.source]
        else:
            method = ProcessingMethod.VIDEO_ONLY
            include_video = True
            label = VIDEO_SOURCE

        result = await self._chunker.process(
            request.video,
            base_prompt,
            transcript.text if use_transcript else None,
            metadata,
            source_label=label,
            include_video=include_video,
            video_fallback=not transcript_only,
            cancellation=cancellation,
        )
        return _Outcome(
            text=result.text,
            token_usage=result.token_usage,
            method=method,
            sources=result.data_sources,
            model_used=result.model_used,
            chunk_count=result.chunk_count,
        )

    @staticmethod
    def _checkpoint(cancellation: Cancellation) -> None:
        if cancellation.tripped:
            raise ProcessingCancelled("Request was cancelled or timed out")

    @staticmethod
    async def _bounded(work: Awaitable[T], cancellation: Cancellation) -> T:
        """Await ``work`` until it finishes, the deadline passes or the cancel event is set."""
        if cancellation.deadline is None and cancellation.event is None:
            return await work

        task = asyncio.ensure_future(work)
        waiters: set[asyncio.Future] = {task}
        stop = None
        if cancellation.event is not None:
            stop = asyncio.ensure_future(cancellation.event.wait())
            waiters.add(stop)
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=cancellation.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if stop is not None:
                stop.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        # Let the abandoned generation unwind before reporting.
        await asyncio.gather(task, return_exceptions=True)
        if cancellation.event is not None and cancellation.event.is_set():
            raise ProcessingCancelled("Request was cancelled")
        raise ProcessingCancelled("Request timed out")

    def _notify(self, percent: float, message: str) -> None:
        self._progress.notify_progress(percent, message)

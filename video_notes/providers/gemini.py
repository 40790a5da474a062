from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..constants import DEFAULT_RATE_LIMIT, MAX_OUTPUT_TOKENS, MODEL_CAPABILITIES, RATE_LIMITS
from ..core.types import FailureKind, GenerationResult, VideoPayload
from ..errors import GenerationError
from ..rate_limiter import TokenBucket
from ..telemetry import RequestEvent, RunMonitor

logger = logging.getLogger(__name__)

_QUOTA_MARKERS = ("quota", "rate limit", "rate-limit", "resource_exhausted", "resource exhausted", "too many requests")
_UNSUPPORTED_MARKERS = ("unsupported", "not supported", "mime", "video", "invalid argument", "file_data")


def classify_failure(exc: BaseException, *, has_video: bool) -> FailureKind:
    """Map a provider exception onto the fallback chain's failure kinds."""
    code = getattr(exc, "code", None)
    status = str(getattr(exc, "status", "") or "")
    message = f"{status} {exc}".lower()
    if code == 429 or any(marker in message for marker in _QUOTA_MARKERS):
        return FailureKind.QUOTA_EXCEEDED
    if has_video and any(marker in message for marker in _UNSUPPORTED_MARKERS):
        return FailureKind.UNSUPPORTED_INPUT
    return FailureKind.OTHER


def _offset(seconds: float) -> str:
    return f"{int(seconds)}s"


class GeminiBackend:
    """One Gemini model behind the ``GenerationBackend`` interface."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str,
        client: Optional[object] = None,
        types_module: Optional[object] = None,
        monitor: RunMonitor | None = None,
        limiter: TokenBucket | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        else:
            if not api_key:
                raise ValueError("GEMINI_API_KEY is required unless a client is provided")
            self._client = genai.Client(api_key=api_key)
        self._types = types_module or genai_types
        self.name = model
        self._monitor = monitor
        self._limiter = limiter or TokenBucket(
            per_minute=RATE_LIMITS.get(model, DEFAULT_RATE_LIMIT),
            label=model,
        )

    def __repr__(self) -> str:
        return f"GeminiBackend(model={self.name!r})"

    def supports_video(self) -> bool:
        return "video" in MODEL_CAPABILITIES.get(self.name, frozenset())

    def _build_parts(self, prompt: str, video: VideoPayload | None) -> list[object]:
        parts: list[object] = []
        if video is not None:
            file_part = self._types.Part(
                file_data=self._types.FileData(file_uri=video.url, mime_type=video.mime_type)
            )
            self._attach_video_metadata(file_part, video)
            parts.append(file_part)
        parts.append(self._types.Part(text=prompt))
        return parts

    def _attach_video_metadata(self, part: object, video: VideoPayload) -> None:
        fields = {}
        if video.start_seconds is not None:
            fields["start_offset"] = _offset(video.start_seconds)
        if video.end_seconds is not None:
            fields["end_offset"] = _offset(video.end_seconds)
        if not fields:
            return
        part.video_metadata = self._types.VideoMetadata(**fields)

    async def generate(self, prompt: str, video: VideoPayload | None = None) -> GenerationResult:
        await self._limiter.acquire()
        modality = "video" if video is not None else "text"
        contents = self._types.Content(role="user", parts=self._build_parts(prompt, video))
        config = self._types.GenerateContentConfig(max_output_tokens=MAX_OUTPUT_TOKENS.get(self.name))

        started = datetime.now(timezone.utc)
        try:
            resp = await self._client.aio.models.generate_content(
                model=self.name,
                contents=contents,
                config=config,
            )
        except (genai_errors.APIError, httpx.HTTPError, OSError, asyncio.TimeoutError, ValueError) as exc:
            kind = classify_failure(exc, has_video=video is not None)
            message = str(exc) or type(exc).__name__
            self._record_event(modality=modality, started=started, response=None, failure=kind, error=message)
            raise GenerationError(message, kind=kind, model=self.name) from exc

        text = (getattr(resp, "text", "") or "").strip()
        input_tokens, output_tokens, total_tokens = self._usage(resp)
        self._record_event(
            modality=modality,
            started=started,
            response=resp,
            failure=None if text else FailureKind.OTHER,
        )
        if not text:
            raise GenerationError("Model returned an empty response", kind=FailureKind.OTHER, model=self.name)
        return GenerationResult(
            text=text,
            token_usage=total_tokens or 0,
            model=self.name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    @staticmethod
    def _usage(response: object) -> tuple[int | None, int | None, int | None]:
        usage = getattr(response, "usage_metadata", None)

        def _token(attr: str) -> Optional[int]:
            if usage is None:
                return None
            value = getattr(usage, attr, None)
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        input_tokens = _token("prompt_token_count")
        output_tokens = _token("candidates_token_count")
        total_tokens = _token("total_token_count")
        if total_tokens is None and input_tokens is not None and output_tokens is not None:
            total_tokens = input_tokens + output_tokens
        return input_tokens, output_tokens, total_tokens

    def _record_event(
        self,
        *,
        modality: str,
        started: datetime,
        response: object,
        failure: FailureKind | None,
        error: str | None = None,
    ) -> None:
        if self._monitor is None:
            return
        input_tokens, output_tokens, total_tokens = self._usage(response)
        self._monitor.record_call(
            RequestEvent(
                model=self.name,
                modality=modality,
                started_at=started,
                finished_at=datetime.now(timezone.utc),
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=total_tokens,
                failure=failure,
                error=error,
            )
        )

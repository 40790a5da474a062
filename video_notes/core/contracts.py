from __future__ import annotations

from typing import Protocol

from .types import GenerationResult, VideoMetadata, VideoPayload


class CaptionSource(Protocol):
    async def fetch_captions(self, video_id: str) -> str:
        ...


class MetadataSource(Protocol):
    async def fetch_metadata(self, video_id: str) -> VideoMetadata | None:
        ...


class GenerationBackend(Protocol):
    name: str

    def supports_video(self) -> bool:
        ...

    async def generate(self, prompt: str, video: VideoPayload | None = None) -> GenerationResult:
        ...


class ProgressSink(Protocol):
    def notify_progress(self, percent: float, message: str) -> None:
        ...

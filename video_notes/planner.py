from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .chunking import ChunkingConfig, chunk_label, plan_chunks
from .core.contracts import MetadataSource
from .core.types import ChunkPlan, ProcessingMode, Strategy, VideoMetadata, VideoReference
from .errors import MetadataUnavailable
from .selector import ModeSelector
from .templates import detect_domain


@dataclass
class PlanReport:
    video: VideoReference
    metadata: VideoMetadata
    metadata_found: bool
    mode: ProcessingMode
    strategy: Strategy
    hybrid_reasons: list[str]
    domain: str
    chunks: list[ChunkPlan]

    def to_dict(self) -> dict[str, Any]:
        return {
            "video": {"url": self.video.url, "video_id": self.video.video_id},
            "metadata": {
                "found": self.metadata_found,
                "title": self.metadata.title,
                "channel": self.metadata.channel_name,
                "duration_seconds": self.metadata.duration_seconds,
                "language": self.metadata.language,
                "content_richness": self.metadata.content_richness.value,
                "has_captions": self.metadata.has_captions,
                "tags": list(self.metadata.tags),
            },
            "mode": self.mode.value,
            "strategy": self.strategy.value,
            "hybrid_reasons": list(self.hybrid_reasons),
            "domain": self.domain,
            "chunks": [self._chunk_to_dict(c, len(self.chunks)) for c in self.chunks],
        }

    @staticmethod
    def _chunk_to_dict(plan: ChunkPlan, total: int) -> dict[str, Any]:
        return {
            "index": plan.chunk_index,
            "start_seconds": plan.start_seconds,
            "end_seconds": plan.end_seconds,
            "label": chunk_label(plan, total),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)


class Planner:
    """Dry-run helper for the CLI ``plan`` command: no generation calls are made."""

    def __init__(self, *, metadata: MetadataSource, selector: ModeSelector, chunking: ChunkingConfig) -> None:
        self._metadata = metadata
        self._selector = selector
        self._chunking = chunking

    async def plan(self, video: VideoReference, mode: ProcessingMode = ProcessingMode.AUTO) -> PlanReport:
        try:
            found = await self._metadata.fetch_metadata(video.video_id)
        except MetadataUnavailable:
            found = None
        metadata = found or VideoMetadata.placeholder()
        chunks: list[ChunkPlan] = []
        if self._chunking.needs_chunking(metadata.duration_seconds):
            chunks = plan_chunks(metadata.duration_seconds, self._chunking.chunk_width_seconds)
        reasons = self._selector.hybrid_reasons(metadata) if mode == ProcessingMode.AUTO else []
        return PlanReport(
            video=video,
            metadata=metadata,
            metadata_found=found is not None,
            mode=mode,
            strategy=self._selector.select(metadata, mode),
            hybrid_reasons=reasons,
            domain=detect_domain(metadata),
            chunks=chunks,
        )

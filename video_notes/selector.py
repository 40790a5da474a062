from __future__ import annotations

import logging
from dataclasses import dataclass

from .constants import (
    EDUCATIONAL_TAGS,
    HYBRID_MAX_DURATION_SECONDS,
    HYBRID_MIN_DURATION_SECONDS,
    VISUAL_KEYWORDS,
)
from .core.types import ContentRichness, ProcessingMode, Strategy, VideoMetadata

logger = logging.getLogger(__name__)

_RICH = {ContentRichness.DETAILED, ContentRichness.COMPREHENSIVE}


@dataclass(frozen=True)
class SelectorConfig:
    educational_tags: tuple[str, ...] = EDUCATIONAL_TAGS
    visual_keywords: tuple[str, ...] = VISUAL_KEYWORDS
    min_duration_seconds: float = HYBRID_MIN_DURATION_SECONDS
    max_duration_seconds: float = HYBRID_MAX_DURATION_SECONDS

    def __post_init__(self) -> None:
        if self.min_duration_seconds > self.max_duration_seconds:
            raise ValueError("min_duration_seconds must not exceed max_duration_seconds")


class ModeSelector:
    def __init__(self, config: SelectorConfig | None = None) -> None:
        self.config = config or SelectorConfig()

    def is_educational(self, metadata: VideoMetadata) -> bool:
        wanted = {tag.lower() for tag in self.config.educational_tags}
        for tag in metadata.tags:
            lowered = tag.lower()
            if lowered in wanted or any(w in lowered for w in wanted):
                return True
        return False

    def has_visual_hints(self, metadata: VideoMetadata) -> bool:
        description = metadata.description.lower()
        return any(keyword.lower() in description for keyword in self.config.visual_keywords)

    def hybrid_reasons(self, metadata: VideoMetadata) -> list[str]:
        """Return the auto-mode heuristics that vote for hybrid processing."""
        rich = metadata.content_richness in _RICH
        reasons = []
        if self.is_educational(metadata) and metadata.has_captions:
            reasons.append("educational tags with captions")
        if rich and self.has_visual_hints(metadata):
            reasons.append("rich metadata mentions visual material")
        in_window = self.config.min_duration_seconds <= metadata.duration_seconds <= self.config.max_duration_seconds
        if in_window and metadata.has_captions and rich:
            reasons.append("captioned mid-length video with rich metadata")
        return reasons

    def select(self, metadata: VideoMetadata, requested: ProcessingMode) -> Strategy:
        if requested == ProcessingMode.HYBRID:
            return Strategy.HYBRID
        if requested in (ProcessingMode.TRANSCRIPT_ONLY, ProcessingMode.VIDEO_ONLY):
            return Strategy.SINGLE_SOURCE

        reasons = self.hybrid_reasons(metadata)
        if reasons:
            logger.info("Auto mode chose hybrid: %s", "; ".join(reasons))
            return Strategy.HYBRID
        logger.info("Auto mode chose single-source processing")
        return Strategy.SINGLE_SOURCE

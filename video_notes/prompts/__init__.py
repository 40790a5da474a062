from .default import (
    DEFAULT_TEMPLATES,
    HEALTH_CHECK_PROMPT,
    build_audio_transcript_prompt,
    build_chunk_prompt,
    build_degraded_prompt,
    build_hybrid_prompt,
    build_metadata_context,
    build_transcript_prompt,
    build_video_analysis_prompt,
    richness_hint,
)

__all__ = [
    "DEFAULT_TEMPLATES",
    "HEALTH_CHECK_PROMPT",
    "build_audio_transcript_prompt",
    "build_chunk_prompt",
    "build_degraded_prompt",
    "build_hybrid_prompt",
    "build_metadata_context",
    "build_transcript_prompt",
    "build_video_analysis_prompt",
    "richness_hint",
]

from __future__ import annotations

import html
import logging
import re

from .constants import GENERATED_TRANSCRIPT_CONFIDENCE, OFFICIAL_CAPTION_CONFIDENCE
from .core.contracts import CaptionSource
from .core.types import TranscriptResult, TranscriptSegment, TranscriptSource, VideoPayload, VideoReference
from .errors import AllModelsExhausted, TranscriptUnavailable
from .invoker import ModelInvoker
from .prompts.default import build_audio_transcript_prompt

logger = logging.getLogger(__name__)

_MARKER_LINE = re.compile(r"^\[(\d{1,2}):(\d{2})(?::(\d{2}))?\]\s*")
# Bracketed tags that are not speech; timestamps and [inaudible] are kept.
_NON_SPEECH = re.compile(r"\[(?:music|applause|laughter|laughs|cheering|silence|noise|background noise)\]", re.I)
_SPEAKER = re.compile(r"^(\[[^\]]+\]|[A-Z][\w .'-]{0,40}):\s+")


def clean_transcript_text(text: str) -> str:
    """Normalize caption or generated text; filler words are left in place."""
    text = html.unescape(text or "")
    text = _NON_SPEECH.sub(" ", text)
    lines = []
    for line in text.splitlines():
        collapsed = re.sub(r"[ \t\u00a0]+", " ", line).strip()
        if collapsed:
            lines.append(collapsed)
    return "\n".join(lines)


def parse_timed_segments(text: str) -> list[TranscriptSegment]:
    """Split ``[MM:SS]`` marked text into segments; the last one has no end time."""
    starts: list[tuple[float, str | None, list[str]]] = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        match = _MARKER_LINE.match(line)
        if match:
            if match.group(3) is not None:
                start = int(match.group(1)) * 3600 + int(match.group(2)) * 60 + int(match.group(3))
            else:
                start = int(match.group(1)) * 60 + int(match.group(2))
            rest = line[match.end():]
            speaker = None
            speaker_match = _SPEAKER.match(rest)
            if speaker_match:
                speaker = speaker_match.group(1).strip("[]")
                rest = rest[speaker_match.end():]
            starts.append((float(start), speaker, [rest] if rest else []))
        elif starts:
            starts[-1][2].append(line)

    segments: list[TranscriptSegment] = []
    for idx, (start, speaker, body) in enumerate(starts):
        end = starts[idx + 1][0] if idx + 1 < len(starts) else None
        segments.append(TranscriptSegment(start_seconds=start, end_seconds=end, text=" ".join(body), speaker=speaker))
    return segments


def split_transcript(text: str, parts: int) -> list[str]:
    """Split text into ``parts`` consecutive slices of roughly equal word count."""
    if parts <= 0:
        raise ValueError("parts must be positive")
    words = (text or "").split()
    size = len(words) / parts
    return [" ".join(words[round(i * size):round((i + 1) * size)]) for i in range(parts)]


def _result(source: TranscriptSource, text: str, confidence: float) -> TranscriptResult:
    return TranscriptResult(
        source=source,
        text=text,
        word_count=len(text.split()),
        confidence=confidence,
        segments=tuple(parse_timed_segments(text)),
    )


class TranscriptAcquirer:
    """Official captions first, then a generated audio transcript, else unavailable."""

    def __init__(self, captions: CaptionSource, invoker: ModelInvoker) -> None:
        self._captions = captions
        self._invoker = invoker

    async def acquire(self, video: VideoReference) -> TranscriptResult:
        try:
            raw = await self._captions.fetch_captions(video.video_id)
        except TranscriptUnavailable as exc:
            logger.warning("No official captions for %s: %s", video.video_id, exc)
        else:
            text = clean_transcript_text(raw)
            if text:
                logger.info("Using official captions for %s (%d words)", video.video_id, len(text.split()))
                return _result(TranscriptSource.OFFICIAL_CAPTIONS, text, OFFICIAL_CAPTION_CONFIDENCE)
            logger.warning("Official captions for %s were empty after cleaning", video.video_id)

        prompt = build_audio_transcript_prompt(video.canonical_url, video.video_id)
        try:
            generated = await self._invoker.invoke(
                prompt,
                video=VideoPayload(url=video.canonical_url),
                requires_video=True,
            )
        except AllModelsExhausted as exc:
            logger.warning("Audio transcript generation failed for %s: %s", video.video_id, exc)
            return TranscriptResult.unavailable()

        text = clean_transcript_text(generated.text)
        if not text:
            logger.warning("Generated transcript for %s was empty", video.video_id)
            return TranscriptResult.unavailable()
        logger.info("Generated audio transcript for %s with %s", video.video_id, generated.model_used)
        return _result(TranscriptSource.GENERATED_AUDIO, text, GENERATED_TRANSCRIPT_CONFIDENCE)

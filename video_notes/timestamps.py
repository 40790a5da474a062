from __future__ import annotations

import re

_MARKER = re.compile(r"\[(?:(\d{1,2}):)?(\d{1,2}):(\d{2})\]")


def format_timestamp(seconds: float) -> str:
    """Format seconds the way YouTube does: ``M:SS`` or ``H:MM:SS``."""
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_clock(seconds: float) -> str:
    """Zero-padded ``MM:SS`` (minutes may exceed 59) used in prompts."""
    total = max(int(round(seconds)), 0)
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def parse_timestamp(value: str) -> int:
    parts = [int(p) for p in value.strip().strip("[]").split(":")]
    if not 2 <= len(parts) <= 3:
        raise ValueError(f"Unrecognised timestamp {value!r}")
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + part
    return seconds


def timestamp_url(video_id: str, seconds: float) -> str:
    return f"https://www.youtube.com/watch?v={video_id}&t={int(seconds)}s"


def link_timestamps(text: str, video_id: str) -> str:
    """Replace ``[MM:SS]`` / ``[H:MM:SS]`` markers with markdown deep links."""

    def _replace(match: re.Match[str]) -> str:
        hours, minutes, secs = match.group(1), match.group(2), match.group(3)
        total = int(hours or 0) * 3600 + int(minutes) * 60 + int(secs)
        return f"[{format_timestamp(total)}]({timestamp_url(video_id, total)})"

    # Skip markers already followed by a link target.
    return re.sub(_MARKER.pattern + r"(?!\()", _replace, text)

from __future__ import annotations

import asyncio
import html
import json
import logging
import re
from collections import OrderedDict
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

import httpx
import yt_dlp
from yt_dlp.utils import DownloadError

from ..constants import INFO_CACHE_SIZE
from ..core.types import ContentRichness, VideoMetadata, VideoReference
from ..errors import InvalidVideoReference, MetadataUnavailable, TranscriptUnavailable

logger = logging.getLogger(__name__)


_YOUTUBE_HOSTS = {
    "youtu.be",
    "youtube.com",
    "www.youtube.com",
    "m.youtube.com",
    "music.youtube.com",
    "youtube-nocookie.com",
    "www.youtube-nocookie.com",
}
_VIDEO_ID = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES = ("embed", "v", "shorts", "live")

_CAPTION_FORMATS = ("json3", "vtt")


def parse_video_url(url: str) -> VideoReference:
    """Validate a YouTube URL (or bare video id) and extract its video id."""
    raw = (url or "").strip()
    if not raw:
        raise InvalidVideoReference("Video URL is empty")
    if _VIDEO_ID.match(raw):
        return VideoReference(url=f"https://www.youtube.com/watch?v={raw}", video_id=raw)

    parsed = urlparse(raw if "://" in raw else f"https://{raw}")
    host = parsed.netloc.lower().split(":")[0]
    if host not in _YOUTUBE_HOSTS:
        raise InvalidVideoReference(f"Not a YouTube URL: {url!r}")

    candidate: str | None = None
    segments = [s for s in parsed.path.split("/") if s]
    if host == "youtu.be":
        candidate = segments[0] if segments else None
    elif segments and segments[0] == "watch":
        candidate = (parse_qs(parsed.query).get("v") or [None])[0]
    elif len(segments) >= 2 and segments[0] in _PATH_PREFIXES:
        candidate = segments[1]

    if not candidate or not _VIDEO_ID.match(candidate):
        raise InvalidVideoReference(f"Could not find a video id in {url!r}")
    return VideoReference(url=raw if "://" in raw else f"https://{raw}", video_id=candidate)


def assess_content_richness(description: str, tags: list[str] | tuple[str, ...]) -> ContentRichness:
    score = 0
    length = len(description or "")
    if length >= 1000:
        score += 2
    elif length >= 200:
        score += 1
    if len(tags) >= 10:
        score += 2
    elif len(tags) >= 5:
        score += 1
    if score >= 3:
        return ContentRichness.COMPREHENSIVE
    if score == 2:
        return ContentRichness.DETAILED
    if score == 1:
        return ContentRichness.BASIC
    return ContentRichness.MINIMAL


def parse_json3_captions(payload: str) -> str:
    data = json.loads(payload or "{}")
    lines: list[str] = []
    for event in data.get("events", []):
        segs = event.get("segs") or []
        text = "".join(seg.get("utf8", "") for seg in segs).replace("\n", " ").strip()
        if text:
            lines.append(text)
    return "\n".join(lines)


def parse_webvtt(payload: str) -> str:
    lines: list[str] = []
    for raw_line in (payload or "").splitlines():
        line = raw_line.strip()
        if not line or line == "WEBVTT" or "-->" in line or line.isdigit():
            continue
        if re.match(r"^(Kind|Language|NOTE|STYLE)\b", line):
            continue
        text = html.unescape(re.sub(r"<[^>]+>", "", line)).strip()
        # Auto-generated tracks repeat the previous cue as a rolling line.
        if text and (not lines or lines[-1] != text):
            lines.append(text)
    return "\n".join(lines)


class YtDlpInfoClient:
    """Fetch yt-dlp info dicts without downloading media, keeping the most recent few."""

    def __init__(
        self,
        *,
        options_factory: Callable[[], dict[str, Any]] | None = None,
        cache_size: int = INFO_CACHE_SIZE,
    ) -> None:
        self._options_factory = options_factory
        self._cache_size = max(cache_size, 0)
        self._cache: OrderedDict[str, dict[str, Any]] = OrderedDict()

    def _options(self) -> dict[str, Any]:
        if self._options_factory is not None:
            return self._options_factory()
        return {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
        }

    def _extract(self, url: str) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(self._options()) as downloader:
            info = downloader.extract_info(url, download=False)
        return info if isinstance(info, dict) else {}

    async def info(self, video_id: str) -> dict[str, Any]:
        if video_id in self._cache:
            self._cache.move_to_end(video_id)
            return self._cache[video_id]
        url = f"https://www.youtube.com/watch?v={video_id}"
        try:
            info = await asyncio.to_thread(self._extract, url)
        except DownloadError as exc:
            raise MetadataUnavailable(f"yt-dlp could not read {video_id}: {exc}") from exc
        if self._cache_size:
            self._cache[video_id] = info
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return info


class YtDlpMetadataSource:
    def __init__(self, client: YtDlpInfoClient | None = None) -> None:
        self._client = client or YtDlpInfoClient()

    async def fetch_metadata(self, video_id: str) -> VideoMetadata | None:
        info = await self._client.info(video_id)
        if not info:
            return None
        tags = tuple(str(t) for t in info.get("tags") or ())
        description = info.get("description") or ""
        return VideoMetadata(
            title=info.get("title") or "Untitled video",
            duration_seconds=float(info.get("duration") or 0),
            channel_name=info.get("channel") or info.get("uploader") or "",
            language=info.get("language") or "en",
            content_richness=assess_content_richness(description, tags),
            has_captions=bool(info.get("subtitles")),
            tags=tags,
            description=description,
            view_count=info.get("view_count"),
        )


class YtDlpCaptionSource:
    """Read caption tracks advertised by yt-dlp; manual tracks win over automatic ones."""

    def __init__(
        self,
        client: YtDlpInfoClient | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        preferred_languages: tuple[str, ...] = ("en",),
        timeout: float = 20.0,
    ) -> None:
        self._client = client or YtDlpInfoClient()
        self._http = http
        self._preferred = preferred_languages
        self._timeout = timeout

    async def fetch_captions(self, video_id: str) -> str:
        try:
            info = await self._client.info(video_id)
        except MetadataUnavailable as exc:
            raise TranscriptUnavailable(str(exc)) from exc

        track = self._select_track(info)
        if track is None:
            raise TranscriptUnavailable(f"No caption track for {video_id}")
        ext, url = track
        payload = await self._download(url)
        text = parse_json3_captions(payload) if ext == "json3" else parse_webvtt(payload)
        if not text.strip():
            raise TranscriptUnavailable(f"Caption track for {video_id} is empty")
        return text

    def _select_track(self, info: dict[str, Any]) -> tuple[str, str] | None:
        languages = [info.get("language"), *self._preferred]
        for field_name in ("subtitles", "automatic_captions"):
            tracks: dict[str, list[dict[str, Any]]] = info.get(field_name) or {}
            for lang in languages:
                if not lang:
                    continue
                for key in (lang, *[k for k in tracks if k.startswith(f"{lang}-")]):
                    chosen = self._pick_format(tracks.get(key) or [])
                    if chosen is not None:
                        return chosen
        return None

    @staticmethod
    def _pick_format(formats: list[dict[str, Any]]) -> tuple[str, str] | None:
        for wanted in _CAPTION_FORMATS:
            for entry in formats:
                if entry.get("ext") == wanted and entry.get("url"):
                    return wanted, entry["url"]
        return None

    async def _download(self, url: str) -> str:
        try:
            if self._http is not None:
                response = await self._http.get(url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as http:
                    response = await http.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TranscriptUnavailable(f"Caption download failed: {exc}") from exc
        return response.text

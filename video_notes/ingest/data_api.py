from __future__ import annotations

import logging
import re

import httpx

from ..core.types import VideoMetadata
from ..errors import MetadataUnavailable
from .youtube import assess_content_richness

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$"
)


def parse_iso8601_duration(value: str) -> float:
    """Convert a YouTube ``contentDetails.duration`` such as ``PT1H2M3S`` to seconds."""
    match = _ISO_DURATION.match((value or "").strip())
    if not match or value.strip() in {"P", "PT"}:
        raise ValueError(f"Unrecognised ISO-8601 duration {value!r}")
    parts = {k: float(v) if v else 0.0 for k, v in match.groupdict().items()}
    return parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]


class YouTubeDataApiMetadataSource:
    """Metadata lookups against the YouTube Data API v3 ``videos`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        http: httpx.AsyncClient | None = None,
        base_url: str = API_BASE,
        timeout: float = 15.0,
    ) -> None:
        if not api_key:
            raise ValueError("YouTube Data API key is required")
        self._api_key = api_key
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def fetch_metadata(self, video_id: str) -> VideoMetadata | None:
        params = {
            "part": "snippet,contentDetails,statistics",
            "id": video_id,
            "key": self._api_key,
        }
        url = f"{self._base_url}/videos"
        try:
            if self._http is not None:
                response = await self._http.get(url, params=params, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as http:
                    response = await http.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MetadataUnavailable(f"YouTube Data API lookup failed for {video_id}: {exc}") from exc

        items = payload.get("items") or []
        if not items:
            logger.debug("Data API returned no items for %s", video_id)
            return None
        return self._to_metadata(items[0])

    @staticmethod
    def _to_metadata(item: dict) -> VideoMetadata:
        snippet = item.get("snippet") or {}
        details = item.get("contentDetails") or {}
        stats = item.get("statistics") or {}

        try:
            duration = parse_iso8601_duration(details.get("duration", ""))
        except ValueError:
            duration = 0.0
        tags = tuple(str(t) for t in snippet.get("tags") or ())
        description = snippet.get("description") or ""
        view_count = stats.get("viewCount")
        return VideoMetadata(
            title=snippet.get("title") or "Untitled video",
            duration_seconds=duration,
            channel_name=snippet.get("channelTitle") or "",
            language=snippet.get("defaultAudioLanguage") or snippet.get("defaultLanguage") or "en",
            content_richness=assess_content_richness(description, tags),
            has_captions=str(details.get("caption", "false")).lower() == "true",
            tags=tags,
            description=description,
            view_count=int(view_count) if view_count is not None else None,
        )

"""Video reference validation plus caption and metadata sources."""

from .data_api import YouTubeDataApiMetadataSource, parse_iso8601_duration
from .youtube import (
    YtDlpCaptionSource,
    YtDlpInfoClient,
    YtDlpMetadataSource,
    assess_content_richness,
    parse_video_url,
)

__all__ = [
    "YouTubeDataApiMetadataSource",
    "YtDlpCaptionSource",
    "YtDlpInfoClient",
    "YtDlpMetadataSource",
    "assess_content_richness",
    "parse_iso8601_duration",
    "parse_video_url",
]

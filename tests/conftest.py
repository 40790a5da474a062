import asyncio
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from video_notes.core.types import (  # noqa: E402
    FailureKind,
    GenerationResult,
    ProcessingMode,
    ProcessingRequest,
    StaticPrompt,
    Template,
    VideoMetadata,
    VideoPayload,
    VideoReference,
)
from video_notes.errors import GenerationError, MetadataUnavailable, TranscriptUnavailable  # noqa: E402


class ScriptedBackend:
    """Generation backend double.

    ``outcomes`` is consumed one entry per call: a string is returned as the
    response text, a ``FailureKind`` is raised as a ``GenerationError``. Once
    exhausted, ``default`` applies to every further call.
    """

    def __init__(self, name, *, video=True, outcomes=(), default="ok", tokens=100, delay=0.0):
        self.name = name
        self._video = video
        self._outcomes = list(outcomes)
        self._default = default
        self._tokens = tokens
        self._delay = delay
        self.calls: list[tuple[str, VideoPayload | None]] = []

    def supports_video(self) -> bool:
        return self._video

    async def generate(self, prompt, video=None):
        self.calls.append((prompt, video))
        if self._delay:
            await asyncio.sleep(self._delay)
        outcome = self._outcomes.pop(0) if self._outcomes else self._default
        if callable(outcome) and not isinstance(outcome, FailureKind):
            outcome = outcome(prompt, video)
        if isinstance(outcome, FailureKind):
            raise GenerationError(f"{self.name} failed: {outcome.value}", kind=outcome, model=self.name)
        return GenerationResult(text=outcome, token_usage=self._tokens, model=self.name)


class FakeCaptions:
    def __init__(self, text=None):
        self.text = text
        self.calls: list[str] = []

    async def fetch_captions(self, video_id):
        self.calls.append(video_id)
        if self.text is None:
            raise TranscriptUnavailable(f"no captions for {video_id}")
        return self.text


class FakeMetadata:
    def __init__(self, metadata=None, *, error=False):
        self.metadata = metadata
        self.error = error
        self.calls: list[str] = []

    async def fetch_metadata(self, video_id):
        self.calls.append(video_id)
        if self.error:
            raise MetadataUnavailable("lookup failed")
        return self.metadata


class RecordingProgress:
    def __init__(self):
        self.events: list[tuple[float, str]] = []

    def notify_progress(self, percent, message):
        self.events.append((percent, message))


VIDEO_ID = "dQw4w9WgXcQ"


def make_metadata(**overrides) -> VideoMetadata:
    values = dict(
        title="Sample Video",
        duration_seconds=600.0,
        channel_name="Sample Channel",
        tags=("music", "vlog"),
        description="A short description.",
        has_captions=True,
    )
    values.update(overrides)
    return VideoMetadata(**values)


def make_request(mode=ProcessingMode.AUTO, *, video_id=VIDEO_ID, template_id="basic-summary", instructions=None):
    return ProcessingRequest(
        video=VideoReference(url=f"https://www.youtube.com/watch?v={video_id}", video_id=video_id),
        template=Template(id=template_id, name="Test", prompt=StaticPrompt("Summarize the video.")),
        custom_instructions=instructions,
        processing_mode=mode,
    )


@pytest.fixture
def caption_text() -> str:
    return " ".join(f"word{i}" for i in range(400))

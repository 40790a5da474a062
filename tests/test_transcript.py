import asyncio

import pytest

from conftest import FakeCaptions, ScriptedBackend
from video_notes.core.types import FailureKind, TranscriptSource, VideoReference
from video_notes.invoker import ModelInvoker
from video_notes.transcript import (
    TranscriptAcquirer,
    clean_transcript_text,
    parse_timed_segments,
    split_transcript,
)

VIDEO = VideoReference(url="https://youtu.be/abcdefghijk", video_id="abcdefghijk")


def test_clean_transcript_text_strips_non_speech_and_whitespace():
    raw = "[Music]  Hello&amp;welcome \n\n   to the   show [Applause]\n"

    assert clean_transcript_text(raw) == "Hello&welcome\nto the show"


def test_clean_keeps_timestamps_and_inaudible_markers():
    assert clean_transcript_text("[01:02] something [inaudible]") == "[01:02] something [inaudible]"


def test_parse_timed_segments():
    text = "[00:05] Alice: hello there\ncontinued line\n[1:02:03] Goodbye"

    segments = parse_timed_segments(text)

    assert len(segments) == 2
    assert segments[0].start_seconds == 5
    assert segments[0].end_seconds == 3723
    assert segments[0].speaker == "Alice"
    assert segments[0].text == "hello there continued line"
    assert segments[1].end_seconds is None
    assert segments[1].end_or_default(30) == 3753


def test_split_transcript_preserves_every_word():
    text = " ".join(str(i) for i in range(10))

    parts = split_transcript(text, 3)

    assert len(parts) == 3
    assert " ".join(parts).split() == text.split()
    with pytest.raises(ValueError):
        split_transcript(text, 0)


def test_official_captions_win():
    backend = ScriptedBackend("m")
    acquirer = TranscriptAcquirer(FakeCaptions("hello   world"), ModelInvoker([backend]))

    result = asyncio.run(acquirer.acquire(VIDEO))

    assert result.source == TranscriptSource.OFFICIAL_CAPTIONS
    assert result.text == "hello world"
    assert result.word_count == 2
    assert result.confidence == pytest.approx(0.95)
    assert backend.calls == []


def test_generated_transcript_when_captions_missing():
    backend = ScriptedBackend("m", default="[00:01] spoken words")
    acquirer = TranscriptAcquirer(FakeCaptions(None), ModelInvoker([backend]))

    result = asyncio.run(acquirer.acquire(VIDEO))

    assert result.source == TranscriptSource.GENERATED_AUDIO
    assert result.confidence == pytest.approx(0.9)
    assert result.segments[0].text == "spoken words"
    prompt, payload = backend.calls[0]
    assert "abcdefghijk" in prompt
    assert payload.url == VIDEO.canonical_url


def test_empty_captions_fall_through_to_generation():
    backend = ScriptedBackend("m", default="generated")
    acquirer = TranscriptAcquirer(FakeCaptions("[Music]"), ModelInvoker([backend]))

    result = asyncio.run(acquirer.acquire(VIDEO))

    assert result.source == TranscriptSource.GENERATED_AUDIO


def test_unavailable_when_generation_fails():
    acquirer = TranscriptAcquirer(
        FakeCaptions(None),
        ModelInvoker([ScriptedBackend("m", default=FailureKind.QUOTA_EXCEEDED)]),
    )

    result = asyncio.run(acquirer.acquire(VIDEO))

    assert result.source == TranscriptSource.UNAVAILABLE
    assert not result.available


def test_unavailable_without_video_capable_model():
    backend = ScriptedBackend("text", video=False)
    acquirer = TranscriptAcquirer(FakeCaptions(None), ModelInvoker([backend]))

    result = asyncio.run(acquirer.acquire(VIDEO))

    assert not result.available
    assert backend.calls == []

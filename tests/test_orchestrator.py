import asyncio
import logging

import pytest

from conftest import (
    VIDEO_ID,
    FakeCaptions,
    FakeMetadata,
    RecordingProgress,
    ScriptedBackend,
    make_metadata,
    make_request,
)
from video_notes.core.types import FailureKind, ProcessingMethod, ProcessingMode, ResponseStatus
from video_notes.costs import CostEstimator
from video_notes.invoker import ModelInvoker
from video_notes.orchestrator import Orchestrator
from video_notes.progress import LoggingProgressSink, NullProgressSink


async def _no_sleep(_seconds):
    return None


def _orchestrator(backends, *, captions=None, metadata=None, progress=None, **kwargs):
    return Orchestrator(
        invoker=ModelInvoker(backends),
        captions=captions or FakeCaptions(None),
        metadata=metadata or FakeMetadata(make_metadata()),
        progress=progress,
        sleep=_no_sleep,
        **kwargs,
    )


def test_short_video_with_captions_uses_transcript_only(caption_text):
    backend = ScriptedBackend("m1", default="# Notes\nbody")
    progress = RecordingProgress()
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text), progress=progress)

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.status == ResponseStatus.COMPLETED
    assert response.processing_method == ProcessingMethod.TRANSCRIPT_ONLY
    assert response.data_sources_used == ("official captions", "video metadata")
    assert response.text == "# Notes\nbody"
    assert response.token_usage == 100
    assert response.cost_cents == pytest.approx(CostEstimator().estimate(100, ProcessingMethod.TRANSCRIPT_ONLY))
    assert response.model_used == "m1"
    assert response.chunk_count == 0
    assert response.video_title == "Sample Video"
    assert response.processing_time_ms >= 0
    assert len(backend.calls) == 1
    prompt, payload = backend.calls[0]
    assert payload is None
    assert "word399" in prompt
    assert progress.events[0] == (0, "Fetching video metadata")
    assert progress.events[-1] == (100, "Completed")


def test_long_hybrid_video_is_chunked(caption_text):
    backend = ScriptedBackend("m1", default="# Part\nsection text")
    metadata = FakeMetadata(make_metadata(title="Long Lecture", duration_seconds=75 * 60))
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text), metadata=metadata)

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.HYBRID)))

    assert response.succeeded
    assert response.processing_method == ProcessingMethod.HYBRID
    assert response.chunk_count == 4
    assert len(response.data_sources_used) == 4
    for idx, source in enumerate(response.data_sources_used, start=1):
        assert source.startswith(f"chunk {idx}/4")
        assert source.endswith("official captions + video analysis")
    assert response.text.startswith("# Long Lecture")
    assert response.text.count("\n\n---\n\n") == 3
    assert response.token_usage == 400
    # Hybrid chunks carry both the transcript slice and the video window.
    assert len(backend.calls) == 4
    assert all(payload is not None and payload.end_seconds for _, payload in backend.calls)
    assert all("TRANSCRIPT FOR THIS PART:" in prompt for prompt, _ in backend.calls)


def test_long_plain_video_chunks_transcript_only(caption_text):
    backend = ScriptedBackend("m1", default="section")
    metadata = FakeMetadata(make_metadata(duration_seconds=50 * 60))
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text), metadata=metadata)

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.processing_method == ProcessingMethod.TRANSCRIPT_ONLY
    assert response.chunk_count == 3
    assert all(payload is None for _, payload in backend.calls)
    assert response.data_sources_used[0] == "chunk 1/3 [00:00-20:00]: official captions"


def test_all_models_over_quota_fails_request():
    backends = [ScriptedBackend(f"m{i}", default=FailureKind.QUOTA_EXCEEDED) for i in range(3)]
    orchestrator = _orchestrator(backends)

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.status == ResponseStatus.FAILED
    assert "quota" in response.error.lower()
    assert response.text is None
    assert response.token_usage == 0
    assert response.video_title == "Sample Video"


def test_request_outcomes_are_recorded_in_telemetry(caption_text):
    good = _orchestrator([ScriptedBackend("m1", default="notes")], captions=FakeCaptions(caption_text))
    bad = _orchestrator([ScriptedBackend("m1", default=FailureKind.QUOTA_EXCEEDED)])

    asyncio.run(good.process_video(make_request()))
    asyncio.run(bad.process_video(make_request()))

    completed = good.monitor.requests()[0]
    assert completed.status == "completed"
    assert completed.method == "transcript-only"
    assert completed.tokens == 100
    failed = bad.monitor.requests()[0]
    assert failed.status == "failed" and failed.method is None
    assert bad.monitor.summarize().requests_failed == 1


def test_degraded_prompt_when_no_video_model_and_no_captions():
    backend = ScriptedBackend("text-only", video=False, default="best effort notes")
    orchestrator = _orchestrator([backend])

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.succeeded
    assert response.processing_method == ProcessingMethod.FALLBACK
    assert response.data_sources_used == ("URL pattern analysis", "video metadata")
    assert len(backend.calls) == 1
    assert VIDEO_ID in backend.calls[0][0]


def test_video_only_mode_skips_captions():
    captions = FakeCaptions("should not be used")
    backend = ScriptedBackend("m1", default="visual notes")
    orchestrator = _orchestrator([backend], captions=captions)

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.VIDEO_ONLY)))

    assert response.processing_method == ProcessingMethod.VIDEO_ONLY
    assert response.data_sources_used == ("video analysis", "video metadata")
    assert captions.calls == []
    assert backend.calls[0][1].url.endswith(VIDEO_ID)


def test_transcript_only_mode_never_sends_video():
    backend = ScriptedBackend("text-only", video=False, default="notes")
    orchestrator = _orchestrator([backend])

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.TRANSCRIPT_ONLY)))

    assert response.processing_method == ProcessingMethod.FALLBACK
    assert all(payload is None for _, payload in backend.calls)


def test_long_transcript_only_video_without_transcript_never_chunks_video():
    # The audio transcript attempt fails, so no transcript exists at all.
    backend = ScriptedBackend("m1", outcomes=[FailureKind.OTHER], default="best effort notes")
    metadata = FakeMetadata(make_metadata(duration_seconds=50 * 60))
    orchestrator = _orchestrator([backend], metadata=metadata)

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.TRANSCRIPT_ONLY)))

    assert response.succeeded
    assert response.processing_method == ProcessingMethod.FALLBACK
    assert response.chunk_count == 0
    assert response.text == "best effort notes"
    assert len(backend.calls) == 2
    assert backend.calls[1][1] is None


def test_long_transcript_only_video_with_short_transcript_stays_text_only():
    backend = ScriptedBackend("m1", default="section")
    metadata = FakeMetadata(make_metadata(duration_seconds=75 * 60))
    orchestrator = _orchestrator([backend], captions=FakeCaptions("just two"), metadata=metadata)

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.TRANSCRIPT_ONLY)))

    assert response.processing_method == ProcessingMethod.TRANSCRIPT_ONLY
    assert response.chunk_count == 4
    assert all(payload is None for _, payload in backend.calls)


def test_transport_fault_on_first_model_falls_back_to_next(caption_text):
    def _reset(prompt, video):
        raise ConnectionResetError("socket closed")

    first = ScriptedBackend("m1", default=_reset)
    second = ScriptedBackend("m2", default="notes from m2")
    orchestrator = _orchestrator([first, second], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.succeeded
    assert response.model_used == "m2"
    assert response.text == "notes from m2"
    assert len(second.calls) == 1

def test_generated_transcript_reports_video_only_method():
    backend = ScriptedBackend("m1", outcomes=["[00:01] spoken words"], default="notes")
    orchestrator = _orchestrator([backend])

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.processing_method == ProcessingMethod.VIDEO_ONLY
    assert response.data_sources_used == ("AI audio transcript", "video metadata")
    assert response.token_usage == 100


def test_short_hybrid_combines_transcript_and_visual_pass(caption_text):
    backend = ScriptedBackend("m1", outcomes=["visual description", "combined notes"])
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.HYBRID)))

    assert response.processing_method == ProcessingMethod.HYBRID
    assert response.data_sources_used == ("official captions", "video analysis", "video metadata")
    assert response.text == "combined notes"
    assert response.token_usage == 200
    assert backend.calls[0][1] is not None
    assert "visual description" in backend.calls[1][0]


def test_hybrid_synthesis_failure_falls_back_to_single_source(caption_text):
    backend = ScriptedBackend("m1", outcomes=["visual", FailureKind.OTHER, "single source notes"])
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.process_video(make_request(ProcessingMode.HYBRID)))

    assert response.succeeded
    assert response.processing_method == ProcessingMethod.TRANSCRIPT_ONLY
    assert response.data_sources_used[-1] == "hybrid fallback"
    assert response.text == "single source notes"
    assert response.token_usage == 200


def test_missing_metadata_uses_placeholder(caption_text):
    backend = ScriptedBackend("m1")
    orchestrator = _orchestrator(
        [backend],
        captions=FakeCaptions(caption_text),
        metadata=FakeMetadata(error=True),
    )

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.succeeded
    assert response.video_title == "Untitled video"
    assert response.data_sources_used == ("official captions",)


def test_identical_concurrent_requests_share_work(caption_text):
    backend = ScriptedBackend("m1", default="shared", delay=0.01)
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    async def _go():
        return await asyncio.gather(
            orchestrator.process_video(make_request()),
            orchestrator.process_video(make_request(instructions="ignored for dedup")),
        )

    first, second = asyncio.run(_go())

    assert first is second
    assert len(backend.calls) == 1


def test_different_modes_are_not_deduplicated(caption_text):
    backend = ScriptedBackend("m1", default="notes", delay=0.01)
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    async def _go():
        return await asyncio.gather(
            orchestrator.process_video(make_request(ProcessingMode.TRANSCRIPT_ONLY)),
            orchestrator.process_video(make_request(ProcessingMode.VIDEO_ONLY)),
        )

    first, second = asyncio.run(_go())

    assert first.id != second.id


def test_timeout_fails_the_request(caption_text):
    backend = ScriptedBackend("slow", default="late", delay=1.0)
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.process_video(make_request(), timeout=0.05))

    assert response.status == ResponseStatus.FAILED
    assert "timed out" in response.error


def test_cancel_event_stops_processing(caption_text):
    backend = ScriptedBackend("m1")
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    async def _go():
        cancel = asyncio.Event()
        cancel.set()
        return await orchestrator.process_video(make_request(), cancel=cancel)

    response = asyncio.run(_go())

    assert response.status == ResponseStatus.FAILED
    assert backend.calls == []


def test_cancel_event_interrupts_a_running_generation(caption_text):
    backend = ScriptedBackend("slow", default="late", delay=5.0)
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    async def _go():
        cancel = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, cancel.set)
        started = loop.time()
        response = await orchestrator.process_video(make_request(), cancel=cancel)
        return response, loop.time() - started

    response, elapsed = asyncio.run(_go())

    assert response.status == ResponseStatus.FAILED
    assert "cancelled" in response.error
    assert len(backend.calls) == 1
    assert elapsed < 2.0


def test_timestamps_become_links_when_enabled(caption_text):
    backend = ScriptedBackend("m1", default="- [01:05] Intro")
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text), link_timestamps=True)

    response = asyncio.run(orchestrator.process_video(make_request()))

    assert f"[1:05](https://www.youtube.com/watch?v={VIDEO_ID}&t=65s)" in response.text


def test_build_prompt_appends_instructions_and_context():
    orchestrator = _orchestrator([ScriptedBackend("m1")])

    prompt = orchestrator.build_prompt(make_request(instructions="Focus on dates"), make_metadata())

    assert prompt.startswith("Summarize the video.")
    assert "Additional requirements: Focus on dates" in prompt
    assert "VIDEO CONTEXT:" in prompt


def test_health_check():
    healthy = _orchestrator([ScriptedBackend("m1", default="Hi")])
    unhealthy = _orchestrator([ScriptedBackend("m1", default=FailureKind.QUOTA_EXCEEDED)])

    ok = asyncio.run(healthy.health_check())
    bad = asyncio.run(unhealthy.health_check())

    assert ok.healthy and ok.status == "healthy" and ok.model_used == "m1"
    assert not bad.healthy and bad.status == "unhealthy"
    assert "quota" in bad.message.lower()


def test_queue_runs_requests_through_orchestrator(caption_text):
    backend = ScriptedBackend("m1", default="queued notes")
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    async def _go():
        item_id = orchestrator.enqueue(make_request())
        status = orchestrator.queue_status()
        await orchestrator.queue.join()
        return item_id, status

    item_id, status = asyncio.run(_go())

    assert status.length == 1
    assert orchestrator.queue.result(item_id).text == "queued notes"
    assert orchestrator.queue_status().length == 0


def test_plan_reports_chunks_without_generating():
    backend = ScriptedBackend("m1")
    orchestrator = _orchestrator([backend], metadata=FakeMetadata(make_metadata(duration_seconds=4500)))

    report = asyncio.run(orchestrator.plan(make_request().video, ProcessingMode.AUTO))

    assert len(report.chunks) == 4
    assert report.metadata_found
    assert report.to_dict()["chunks"][0]["label"] == "chunk 1/4 [00:00-20:00]"
    assert backend.calls == []


def test_logging_progress_sink_reports_stages(caption_text, caplog):
    orchestrator = _orchestrator(
        [ScriptedBackend("m1")],
        captions=FakeCaptions(caption_text),
        progress=LoggingProgressSink(),
    )

    with caplog.at_level(logging.INFO, logger="video_notes.progress"):
        asyncio.run(orchestrator.process_video(make_request()))

    messages = [r.getMessage() for r in caplog.records if r.name == "video_notes.progress"]
    assert messages[0] == "[  0%] Fetching video metadata"
    assert messages[-1] == "[100%] Completed"


def test_default_progress_sink_is_silent(caption_text, caplog):
    long_video = FakeMetadata(make_metadata(duration_seconds=50 * 60))
    orchestrator = _orchestrator([ScriptedBackend("m1")], captions=FakeCaptions(caption_text), metadata=long_video)

    with caplog.at_level(logging.INFO, logger="video_notes.progress"):
        response = asyncio.run(orchestrator.process_video(make_request()))

    assert response.chunk_count == 3
    assert not [r for r in caplog.records if r.name == "video_notes.progress"]
    assert NullProgressSink().notify_progress(50, "halfway") is None


ANALYSIS_JSON = '{"primarySubject": "Music", "conceptMap": {"concepts": [{"name": "Tempo"}]}, "allTemplateOutputs": {"basic-summary": "notes"}}'


def test_analyze_video_uses_transcript_and_parses_json(caption_text):
    backend = ScriptedBackend("m1", default=f"```json\n{ANALYSIS_JSON}\n```")
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))
    request = make_request()

    response = asyncio.run(orchestrator.analyze_video(request.video, [request.template]))

    assert response.status == ResponseStatus.COMPLETED
    assert response.analysis.primary_subject == "Music"
    assert [concept.name for concept in response.analysis.concepts] == ["Tempo"]
    assert response.analysis.template_outputs == {"basic-summary": "notes"}
    assert response.token_usage == 100
    assert response.model_used == "m1"
    prompt, payload = backend.calls[0]
    assert payload is None
    assert "word399" in prompt
    assert "Summarize the video." in prompt
    assert orchestrator.monitor.requests()[0].method == "transcript-only"


def test_analyze_video_without_transcript_sends_the_video():
    backend = ScriptedBackend("m1", outcomes=[FailureKind.OTHER], default="not json at all")
    orchestrator = _orchestrator([backend], captions=FakeCaptions(None))

    response = asyncio.run(orchestrator.analyze_video(make_request().video))

    assert response.status == ResponseStatus.COMPLETED
    assert response.analysis.parsed is False
    assert len(backend.calls) == 2
    assert backend.calls[1][1].url == f"https://www.youtube.com/watch?v={VIDEO_ID}"


def test_analyze_video_falls_back_across_models(caption_text):
    first = ScriptedBackend("m1", default=FailureKind.QUOTA_EXCEEDED)
    second = ScriptedBackend("m2", default=ANALYSIS_JSON)
    orchestrator = _orchestrator([first, second], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.analyze_video(make_request().video))

    assert response.succeeded
    assert response.model_used == "m2"


def test_analyze_video_reports_exhausted_models(caption_text):
    backend = ScriptedBackend("m1", default=FailureKind.QUOTA_EXCEEDED)
    orchestrator = _orchestrator([backend], captions=FakeCaptions(caption_text))

    response = asyncio.run(orchestrator.analyze_video(make_request().video))

    assert response.status == ResponseStatus.FAILED
    assert response.analysis is None
    assert "All models failed" in response.error
    assert orchestrator.monitor.requests()[0].status == "failed"

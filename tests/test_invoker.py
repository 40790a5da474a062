import asyncio

import pytest

from conftest import ScriptedBackend
from video_notes.core.types import FailureKind, VideoPayload
from video_notes.errors import AllModelsExhausted
from video_notes.invoker import ModelInvoker


def test_invoker_requires_backends():
    with pytest.raises(ValueError):
        ModelInvoker([])


def test_first_backend_answers():
    first = ScriptedBackend("m1", default="notes")
    second = ScriptedBackend("m2")
    invoker = ModelInvoker([first, second])

    result = asyncio.run(invoker.invoke("prompt"))

    assert result.text == "notes"
    assert result.model_used == "m1"
    assert len(result.attempts) == 1 and result.attempts[0].succeeded
    assert second.calls == []


def test_quota_failure_falls_through_to_next_model():
    first = ScriptedBackend("m1", outcomes=[FailureKind.QUOTA_EXCEEDED])
    second = ScriptedBackend("m2", default="from m2", tokens=42)
    invoker = ModelInvoker([first, second])

    result = asyncio.run(invoker.invoke("prompt"))

    assert result.model_used == "m2"
    assert result.token_usage == 42
    assert [a.model_name for a in result.attempts] == ["m1", "m2"]
    assert result.attempts[0].failure_kind == FailureKind.QUOTA_EXCEEDED
    assert len(first.calls) == 1


def test_video_requests_skip_text_only_models():
    text_only = ScriptedBackend("text", video=False)
    video = ScriptedBackend("video", default="seen")
    invoker = ModelInvoker([text_only, video])
    payload = VideoPayload(url="https://www.youtube.com/watch?v=abcdefghijk")

    result = asyncio.run(invoker.invoke("describe", video=payload))

    assert result.model_used == "video"
    assert text_only.calls == []
    assert result.attempts[0].skipped
    assert result.attempts[0].failure_kind == FailureKind.UNSUPPORTED_INPUT
    assert video.calls[0][1] == payload


def test_requires_video_without_payload_still_filters():
    text_only = ScriptedBackend("text", video=False)
    invoker = ModelInvoker([text_only])

    with pytest.raises(AllModelsExhausted) as excinfo:
        asyncio.run(invoker.invoke("describe", requires_video=True))

    assert text_only.calls == []
    assert "No model" in str(excinfo.value)
    assert not excinfo.value.all_quota


def test_all_quota_failures_raise_with_attempts():
    backends = [ScriptedBackend(f"m{i}", default=FailureKind.QUOTA_EXCEEDED) for i in range(3)]
    invoker = ModelInvoker(backends)

    with pytest.raises(AllModelsExhausted) as excinfo:
        asyncio.run(invoker.invoke("prompt"))

    error = excinfo.value
    assert [a.model_name for a in error.attempts] == ["m0", "m1", "m2"]
    assert error.all_quota
    assert "quota" in str(error).lower()
    # Each model is tried exactly once.
    assert all(len(b.calls) == 1 for b in backends)


def test_mixed_failures_are_not_all_quota():
    invoker = ModelInvoker(
        [
            ScriptedBackend("m1", default=FailureKind.QUOTA_EXCEEDED),
            ScriptedBackend("m2", default=FailureKind.OTHER),
        ]
    )

    with pytest.raises(AllModelsExhausted) as excinfo:
        asyncio.run(invoker.invoke("prompt"))

    assert not excinfo.value.all_quota


def test_can_serve_video():
    assert not ModelInvoker([ScriptedBackend("a", video=False)]).can_serve_video()
    assert ModelInvoker([ScriptedBackend("a", video=False), ScriptedBackend("b")]).can_serve_video()
    assert ModelInvoker([ScriptedBackend("a"), ScriptedBackend("b")]).model_names == ["a", "b"]


def _reset(prompt, video):
    raise ConnectionResetError("socket closed")


def test_transport_fault_falls_through_to_next_model():
    first = ScriptedBackend("m1", outcomes=[_reset])
    second = ScriptedBackend("m2", default="from m2")
    invoker = ModelInvoker([first, second])

    result = asyncio.run(invoker.invoke("prompt"))

    assert result.model_used == "m2"
    assert result.attempts[0].failure_kind == FailureKind.OTHER
    assert result.attempts[0].message == "socket closed"
    assert len(second.calls) == 1


def test_timeout_on_every_model_exhausts_the_chain():
    def _slow(prompt, video):
        raise asyncio.TimeoutError()

    invoker = ModelInvoker([ScriptedBackend("m1", default=_slow), ScriptedBackend("m2", default=_slow)])

    with pytest.raises(AllModelsExhausted) as excinfo:
        asyncio.run(invoker.invoke("prompt"))

    assert [a.message for a in excinfo.value.attempts] == ["TimeoutError", "TimeoutError"]


def test_programming_errors_are_not_swallowed():
    def _bug(prompt, video):
        raise KeyError("missing")

    invoker = ModelInvoker([ScriptedBackend("m1", default=_bug), ScriptedBackend("m2")])

    with pytest.raises(KeyError):
        asyncio.run(invoker.invoke("prompt"))

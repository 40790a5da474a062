from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List

from .core.types import FailureKind


@dataclass(frozen=True)
class RequestEvent:
    """One call to a generation backend."""

    model: str
    modality: str
    started_at: datetime
    finished_at: datetime
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None

    @property
    def latency_seconds(self) -> float:
        return max((self.finished_at - self.started_at).total_seconds(), 0.0)

    def to_dict(self) -> Dict[str, object]:
        return {
            "model": self.model,
            "modality": self.modality,
            "started_at": self.started_at.isoformat(),
            "latency_seconds": round(self.latency_seconds, 3),
            "tokens": {
                "input": self.input_tokens,
                "output": self.output_tokens,
                "total": self.total_tokens,
            },
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
        }


@dataclass(frozen=True)
class RequestRecord:
    """Outcome of one processed video, success or not."""

    video_id: str
    status: str
    method: str | None = None
    tokens: int = 0
    cost_cents: float = 0.0
    chunks: int = 0
    processing_time_ms: int = 0
    error: str | None = None
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "video_id": self.video_id,
            "status": self.status,
            "method": self.method,
            "tokens": self.tokens,
            "cost_cents": self.cost_cents,
            "chunks": self.chunks,
            "processing_time_ms": self.processing_time_ms,
            "recorded_at": self.recorded_at.isoformat(),
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class ModelStats:
    calls: int = 0
    failures: int = 0
    total_tokens: int = 0
    latency_seconds: float = 0.0

    def add(self, event: RequestEvent) -> "ModelStats":
        return ModelStats(
            calls=self.calls + 1,
            failures=self.failures + (0 if event.succeeded else 1),
            total_tokens=self.total_tokens + (event.total_tokens or 0),
            latency_seconds=self.latency_seconds + event.latency_seconds,
        )


@dataclass(frozen=True)
class RunSummary:
    backend_calls: int
    failed_calls: int
    total_tokens: int
    by_model: Dict[str, ModelStats]
    failures_by_kind: Dict[str, int]
    requests_completed: int
    requests_failed: int
    requests_by_method: Dict[str, int]
    total_cost_cents: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "backend_calls": self.backend_calls,
            "failed_calls": self.failed_calls,
            "total_tokens": self.total_tokens,
            "by_model": {
                model: {
                    "calls": stats.calls,
                    "failures": stats.failures,
                    "total_tokens": stats.total_tokens,
                    "latency_seconds": round(stats.latency_seconds, 3),
                }
                for model, stats in self.by_model.items()
            },
            "failures_by_kind": dict(self.failures_by_kind),
            "requests_completed": self.requests_completed,
            "requests_failed": self.requests_failed,
            "requests_by_method": dict(self.requests_by_method),
            "total_cost_cents": self.total_cost_cents,
        }


class RunMonitor:
    """Collects backend calls and request outcomes for an orchestrator."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._calls: List[RequestEvent] = []
        self._requests: List[RequestRecord] = []

    def record_call(self, event: RequestEvent) -> None:
        with self._lock:
            self._calls.append(event)

    def record_request(self, record: RequestRecord) -> None:
        with self._lock:
            self._requests.append(record)

    def calls(self) -> List[RequestEvent]:
        with self._lock:
            return list(self._calls)

    def requests(self) -> List[RequestRecord]:
        with self._lock:
            return list(self._requests)

    def summarize(self) -> RunSummary:
        calls = self.calls()
        requests = self.requests()

        by_model: Dict[str, ModelStats] = {}
        for event in calls:
            by_model[event.model] = by_model.get(event.model, ModelStats()).add(event)
        failures = Counter(event.failure.value for event in calls if event.failure is not None)
        completed = [record for record in requests if record.status == "completed"]

        return RunSummary(
            backend_calls=len(calls),
            failed_calls=sum(failures.values()),
            total_tokens=sum(event.total_tokens or 0 for event in calls),
            by_model=by_model,
            failures_by_kind=dict(failures),
            requests_completed=len(completed),
            requests_failed=len(requests) - len(completed),
            requests_by_method=dict(Counter(record.method for record in completed if record.method)),
            total_cost_cents=sum(record.cost_cents for record in completed),
        )

    def write_summary(self, to: Path, *, extra: Dict[str, Any] | None = None) -> Path:
        payload: Dict[str, Any] = {
            "summary": self.summarize().to_dict(),
            "calls": [event.to_dict() for event in self.calls()],
            "requests": [record.to_dict() for record in self.requests()],
        }
        if extra:
            payload.update(extra)
        to.parent.mkdir(parents=True, exist_ok=True)
        to.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str))
        return to

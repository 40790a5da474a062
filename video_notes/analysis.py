from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from .core.types import ResponseStatus

logger = logging.getLogger(__name__)

ANALYSIS_VERSION = "1.0"

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class Chapter:
    title: str
    start_seconds: float
    end_seconds: float
    summary: str = ""
    key_points: tuple[str, ...] = ()
    importance: str = "medium"


@dataclass(frozen=True)
class Concept:
    name: str
    definition: str = ""
    aliases: tuple[str, ...] = ()
    timestamps: tuple[float, ...] = ()
    related: tuple[str, ...] = ()
    importance: str = "supporting"
    difficulty: str = "intermediate"


@dataclass(frozen=True)
class ConceptLink:
    source: str
    target: str
    kind: str
    strength: float = 0.0


@dataclass(frozen=True)
class SuggestedQuestion:
    question: str
    kind: str = "conceptual"
    difficulty: str = "medium"
    timestamp: float | None = None
    answer: str = ""


@dataclass(frozen=True)
class KeyMoment:
    time: float
    title: str
    description: str = ""
    kind: str = "highlight"


@dataclass(frozen=True)
class ComprehensiveAnalysis:
    """Structured view of one video, parsed from the model's JSON answer.

    ``parsed`` is False when the answer was not a JSON object; every other
    field then holds its default. ``raw`` keeps the decoded payload so
    sections not modelled here (transcript segments, key frames) stay
    reachable.
    """

    primary_subject: str = "General"
    secondary_subjects: tuple[str, ...] = ()
    content_tags: tuple[str, ...] = ()
    difficulty_level: str = "intermediate"
    language: str = "en"
    word_count: int = 0
    main_topics: tuple[str, ...] = ()
    chapters: tuple[Chapter, ...] = ()
    concepts: tuple[Concept, ...] = ()
    relationships: tuple[ConceptLink, ...] = ()
    suggested_questions: tuple[SuggestedQuestion, ...] = ()
    key_timestamps: tuple[KeyMoment, ...] = ()
    has_slides: bool = False
    has_charts: bool = False
    has_diagrams: bool = False
    template_outputs: Mapping[str, str] = field(default_factory=dict)
    analysis_version: str = ANALYSIS_VERSION
    transcript_confidence: float = 0.0
    analysis_completeness: float = 0.0
    parsed: bool = True
    raw: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ComprehensiveAnalysis":
        return cls(parsed=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_subject": self.primary_subject,
            "secondary_subjects": list(self.secondary_subjects),
            "content_tags": list(self.content_tags),
            "difficulty_level": self.difficulty_level,
            "language": self.language,
            "word_count": self.word_count,
            "main_topics": list(self.main_topics),
            "chapters": [vars(chapter) for chapter in self.chapters],
            "concepts": [vars(concept) for concept in self.concepts],
            "relationships": [vars(link) for link in self.relationships],
            "suggested_questions": [vars(question) for question in self.suggested_questions],
            "key_timestamps": [vars(moment) for moment in self.key_timestamps],
            "visual": {
                "has_slides": self.has_slides,
                "has_charts": self.has_charts,
                "has_diagrams": self.has_diagrams,
            },
            "template_outputs": dict(self.template_outputs),
            "analysis_version": self.analysis_version,
            "transcript_confidence": self.transcript_confidence,
            "analysis_completeness": self.analysis_completeness,
            "parsed": self.parsed,
        }


@dataclass(frozen=True)
class AnalysisResponse:
    video_id: str
    status: ResponseStatus
    processing_time_ms: int
    analysis: ComprehensiveAnalysis | None = None
    token_usage: int = 0
    cost_cents: float = 0.0
    model_used: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ResponseStatus.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "video_id": self.video_id,
            "status": self.status.value,
            "processing_time_ms": self.processing_time_ms,
            "token_usage": self.token_usage,
            "cost_cents": self.cost_cents,
            "model_used": self.model_used,
            "error": self.error,
            "analysis": self.analysis.to_dict() if self.analysis else None,
        }


def _text(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) and value else default


def _number(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _strings(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def _numbers(value: Any) -> tuple[float, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(float(item) for item in value if isinstance(item, (int, float)) and not isinstance(item, bool))


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _records(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _chapter(data: Mapping[str, Any]) -> Chapter:
    return Chapter(
        title=_text(data.get("title"), "Untitled"),
        start_seconds=_number(data.get("startTime")),
        end_seconds=_number(data.get("endTime")),
        summary=_text(data.get("summary")),
        key_points=_strings(data.get("keyPoints")),
        importance=_text(data.get("importance"), "medium"),
    )


def _concept(data: Mapping[str, Any]) -> Concept | None:
    name = _text(data.get("name"))
    if not name:
        return None
    return Concept(
        name=name,
        definition=_text(data.get("definition")),
        aliases=_strings(data.get("aliases")),
        timestamps=_numbers(data.get("timestamps")),
        related=_strings(data.get("relatedConcepts")),
        importance=_text(data.get("importance"), "supporting"),
        difficulty=_text(data.get("difficulty"), "intermediate"),
    )


def _link(data: Mapping[str, Any]) -> ConceptLink | None:
    source, target = _text(data.get("from")), _text(data.get("to"))
    if not source or not target:
        return None
    return ConceptLink(
        source=source,
        target=target,
        kind=_text(data.get("type"), "related"),
        strength=_number(data.get("strength")),
    )


def _question(data: Mapping[str, Any]) -> SuggestedQuestion | None:
    question = _text(data.get("question"))
    if not question:
        return None
    timestamp = data.get("relatedTimestamp")
    return SuggestedQuestion(
        question=question,
        kind=_text(data.get("type"), "conceptual"),
        difficulty=_text(data.get("difficulty"), "medium"),
        timestamp=_number(timestamp) if timestamp is not None else None,
        answer=_text(data.get("suggestedAnswer")),
    )


def _moment(data: Mapping[str, Any]) -> KeyMoment | None:
    title = _text(data.get("title"))
    if not title:
        return None
    return KeyMoment(
        time=_number(data.get("time")),
        title=title,
        description=_text(data.get("description")),
        kind=_text(data.get("type"), "highlight"),
    )


def strip_code_fence(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


def parse_analysis(text: str) -> ComprehensiveAnalysis:
    """Parse a model answer into a ``ComprehensiveAnalysis``.

    Missing or malformed sections fall back to their defaults. An answer that
    is not a JSON object yields ``ComprehensiveAnalysis.empty()``.
    """
    try:
        payload = json.loads(strip_code_fence(text))
    except json.JSONDecodeError as exc:
        logger.warning("Could not parse analysis JSON: %s", exc)
        logger.debug("Raw analysis answer: %s", text)
        return ComprehensiveAnalysis.empty()
    if not isinstance(payload, dict):
        logger.warning("Analysis answer is %s, not a JSON object", type(payload).__name__)
        return ComprehensiveAnalysis.empty()

    transcript = _section(payload, "fullTranscript")
    visual = _section(payload, "visualAnalysis")
    structure = _section(payload, "contentStructure")
    concept_map = _section(payload, "conceptMap")
    outputs = payload.get("allTemplateOutputs")

    return ComprehensiveAnalysis(
        primary_subject=_text(payload.get("primarySubject"), "General"),
        secondary_subjects=_strings(payload.get("secondarySubjects")),
        content_tags=_strings(payload.get("contentTags")),
        difficulty_level=_text(payload.get("difficultyLevel"), "intermediate"),
        language=_text(transcript.get("language"), "en"),
        word_count=int(_number(transcript.get("wordCount"))),
        main_topics=_strings(structure.get("mainTopics")),
        chapters=tuple(_chapter(item) for item in _records(structure.get("chapters"))),
        concepts=tuple(c for c in map(_concept, _records(concept_map.get("concepts"))) if c),
        relationships=tuple(r for r in map(_link, _records(concept_map.get("relationships"))) if r),
        suggested_questions=tuple(q for q in map(_question, _records(payload.get("suggestedQuestions"))) if q),
        key_timestamps=tuple(m for m in map(_moment, _records(payload.get("keyTimestamps"))) if m),
        has_slides=visual.get("hasSlides") is True,
        has_charts=visual.get("hasCharts") is True,
        has_diagrams=visual.get("hasDiagrams") is True,
        template_outputs=(
            {key: value for key, value in outputs.items() if isinstance(value, str)} if isinstance(outputs, dict) else {}
        ),
        analysis_version=_text(payload.get("analysisVersion"), ANALYSIS_VERSION),
        transcript_confidence=_number(payload.get("transcriptConfidence")),
        analysis_completeness=_number(payload.get("analysisCompleteness")),
        raw=payload,
    )

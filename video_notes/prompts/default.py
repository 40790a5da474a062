from __future__ import annotations

import json
from textwrap import dedent
from typing import Mapping

from ..core.types import (
    ChunkPlan,
    ContentRichness,
    ParameterizedPrompt,
    StaticPrompt,
    Template,
    Verbosity,
    VideoMetadata,
)
from ..timestamps import format_clock, format_timestamp

HEALTH_CHECK_PROMPT = "Hello"

_DEPTH_BY_DURATION = (
    (300, "short video", "Extract the core concepts concisely", "Focus on essential information only"),
    (900, "medium-length video", "Identify all major topics and themes presented", "Include supporting details for each major point"),
    (1800, "longer video", "Provide comprehensive coverage of all significant concepts and subtopics", "Include examples, context and detailed explanations"),
)
_EXTENDED = (
    "extended video",
    "Cover all major sections, concepts and their interconnections",
    "Include comprehensive examples and the relationships between concepts",
)

_VERBOSITY_GUIDANCE = {
    Verbosity.CONCISE: "Keep every section brief; prefer short bullet points.",
    Verbosity.STANDARD: "Balance brevity with enough detail to be useful on its own.",
    Verbosity.COMPREHENSIVE: "Be exhaustive; capture every point worth remembering.",
}

_DOMAIN_FOCUS = {
    "programming": "Include code snippets, commands and configuration exactly as shown.",
    "diy": "List tools and materials, and call out safety notes for each step.",
    "academic": "Define every technical term and keep equations in LaTeX.",
    "fitness": "Give sets, reps, timing and form cues for each exercise.",
    "general": "Keep steps concrete and actionable.",
}


def _basic_summary(duration: float | None, verbosity: Verbosity, domain: str, video_url: str | None) -> str:
    seconds = duration if duration and duration > 0 else 300
    label, guidance, detail = _EXTENDED
    for limit, *values in _DEPTH_BY_DURATION:
        if seconds < limit:
            label, guidance, detail = values
            break
    return dedent(
        f"""\
        Generate a structured video summary following this format:

        **Video Summary**

        **Main Topic**: [Single sentence describing the core subject]

        **Key Points**:
        [{guidance}. Let the content determine the number of points]

        **Important Details**:
        [{detail}]

        **Structure**: [How the {label} content was organized]

        **Conclusion**: [Main takeaway or final message]

        Video duration: {int(seconds // 60)} minutes.
        {_VERBOSITY_GUIDANCE[verbosity]}

        Start the output with "**Video Summary**". Write in a third-person, factual tone.
        No preambles or meta-commentary. Format as clean markdown."""
    )


def _tutorial_guide(duration: float | None, verbosity: Verbosity, domain: str, video_url: str | None) -> str:
    focus = _DOMAIN_FOCUS.get(domain, _DOMAIN_FOCUS["general"])
    return dedent(
        f"""\
        Transform this video into a step-by-step tutorial guide:

        # Tutorial Guide: [Topic from Video]

        ## Prerequisites
        [Knowledge, tools or materials needed before starting]

        ## Learning Goals
        [What the reader will be able to do afterwards]

        ## Step-by-Step Instructions
        ### Step 1: [Title]
        **Description**: [What this step accomplishes]
        **Instructions**: [Numbered actions]
        **Tips**: [Hints or warnings]

        [Continue for all steps, citing [MM:SS] timestamps where each step starts]

        ## Verification
        [How to confirm the tutorial was completed successfully]

        ## Troubleshooting
        [Common problems and their fixes]

        ## Summary
        [Recap and next steps]

        Tutorial domain: {domain}. {focus}
        {_VERBOSITY_GUIDANCE[verbosity]}"""
    )


_STUDY_NOTES = dedent(
    """\
    STRICT OUTPUT FORMAT, NO INTRODUCTORY TEXT:

    ## Video Overview
    - **Title**: [Video Title]
    - **Speaker/Channel**: [Who is presenting]
    - **Main Topic**: [What is being taught]

    ## Learning Objectives
    [3-5 specific things viewers should learn]

    ## Detailed Notes
    ### [Section/Topic]
    - Key concepts and definitions
    - Important facts, with [MM:SS] timestamps

    ## Key Terms
    [Term: definition pairs]

    ## Review Questions
    [5 questions that test understanding, with answers]

    ## Summary
    [One paragraph recap]"""
)

_PRESENTATION_SLIDES = dedent(
    """\
    Convert this video into presentation slides in markdown. Separate slides with "---".

    Slide 1 is a title slide with the topic and presenter.
    Each following slide has a "## " heading, 3-5 bullet points and a "Speaker notes:" line.
    Finish with a summary slide and a questions slide.
    Keep bullets under 12 words each."""
)

_RESEARCH_PAPER = dedent(
    """\
    Convert this video content into an academic research paper format:

    # Research Paper: [Topic from Video]

    ## Abstract
    [150-200 word summary of content, method and findings]

    ## Introduction
    ### Background
    ### Purpose
    ### Research Questions

    ## Methodology
    [How information was gathered or analyzed in the video]

    ## Findings
    [Main results and evidence, citing [MM:SS] timestamps]

    ## Discussion
    [Implications, limitations and open questions]

    ## Conclusion

    ## References
    [Sources mentioned in the video]"""
)


DEFAULT_TEMPLATES: dict[str, Template] = {
    template.id: template
    for template in (
        Template(
            id="basic-summary",
            name="Basic Summary",
            prompt=ParameterizedPrompt(_basic_summary),
            description="Content-driven summary whose depth scales with video length",
        ),
        Template(
            id="study-notes",
            name="Study Notes",
            prompt=StaticPrompt(_STUDY_NOTES),
            description="Structured learning notes with key terms and review questions",
        ),
        Template(
            id="tutorial-guide",
            name="Tutorial Guide",
            prompt=ParameterizedPrompt(_tutorial_guide),
            description="Step-by-step instructions adapted to the tutorial's domain",
        ),
        Template(
            id="presentation-slides",
            name="Presentation Slides",
            prompt=StaticPrompt(_PRESENTATION_SLIDES),
            description="Slide deck outline with speaker notes",
        ),
        Template(
            id="research-paper",
            name="Research Paper Format",
            prompt=StaticPrompt(_RESEARCH_PAPER),
            description="Academic paper with abstract, methodology, findings and conclusions",
        ),
    )
}


_RICHNESS_HINTS = {
    ContentRichness.MINIMAL: "Metadata is sparse; rely on the spoken and visual content.",
    ContentRichness.BASIC: "Use the description to confirm topic names and spellings.",
    ContentRichness.DETAILED: "The description is detailed; cross-check names, links and section titles against it.",
    ContentRichness.COMPREHENSIVE: (
        "The description is comprehensive; align your structure with any chapters or outline it lists."
    ),
}


def richness_hint(richness: ContentRichness) -> str:
    return _RICHNESS_HINTS[richness]


def build_metadata_context(metadata: VideoMetadata) -> str:
    lines = [
        "VIDEO CONTEXT:",
        f"- Title: {metadata.title}",
        f"- Channel: {metadata.channel_name or 'unknown'}",
        f"- Duration: {format_timestamp(metadata.duration_seconds)}",
        f"- Language: {metadata.language}",
    ]
    if metadata.tags:
        lines.append(f"- Tags: {', '.join(metadata.tags[:15])}")
    if metadata.description:
        description = metadata.description.strip()
        if len(description) > 500:
            description = description[:500].rstrip() + "..."
        lines.append(f"- Description: {description}")
    lines.append(f"- Note: {richness_hint(metadata.content_richness)}")
    return "\n".join(lines)


def build_audio_transcript_prompt(video_url: str, video_id: str) -> str:
    return dedent(
        f"""\
        You are an expert audio transcription specialist. Process this video with exclusive focus on the spoken audio.

        Video URL: {video_url} (ID: {video_id})

        INSTRUCTIONS:
        1. Ignore visual elements completely; transcribe only spoken words.
        2. Identify speaker changes when possible.
        3. Capture technical terminology and proper nouns accurately.

        FORMAT:
        [MM:SS] Speaker: [Exact spoken content]
        [MM:SS] [New Speaker]: [Different speaker content]

        Include "um" and "uh" if they are frequent. Mark unclear speech as [inaudible] rather than guessing."""
    )


def build_video_analysis_prompt(video_url: str) -> str:
    return dedent(
        f"""\
        Analyze the visual content of this video: {video_url}

        Describe, with [MM:SS] timestamps:
        - Slide titles and on-screen text
        - Diagrams, charts and code shown on screen
        - Demonstrations and notable visual events

        Do not transcribe speech. Output a concise markdown timeline."""
    )


def build_hybrid_prompt(base_prompt: str, transcript: str, visual_analysis: str) -> str:
    return (
        f"{base_prompt}\n\n"
        "Combine the video context above with the two sources below into one response. "
        "Prefer the transcript for what was said and the visual analysis for what was shown.\n\n"
        f"TRANSCRIPT:\n{transcript}\n\n"
        f"VISUAL ANALYSIS:\n{visual_analysis}"
    )


def build_transcript_prompt(base_prompt: str, transcript: str) -> str:
    return f"{base_prompt}\n\nBase your response on this transcript:\n\n{transcript}"


def build_degraded_prompt(base_prompt: str, video_url: str) -> str:
    return (
        f"{base_prompt}\n\n"
        f"No transcript or video access is available for {video_url}.\n"
        "Work only from the video context above. Say clearly which parts are inferred, and do not invent quotes or timestamps."
    )


def build_chunk_prompt(base_prompt: str, plan: ChunkPlan, chunk_count: int, *, has_video: bool = True) -> str:
    window = f"{format_clock(plan.start_seconds)} and {format_clock(plan.end_seconds)}"
    parts = [
        base_prompt,
        "",
        f"IMPORTANT: This is part {plan.chunk_index + 1} of {chunk_count}. "
        f"Focus on content between {window}. Your response will be combined with the other parts.",
    ]
    if plan.transcript_slice:
        parts.extend(["", "TRANSCRIPT FOR THIS PART:", plan.transcript_slice])
    elif has_video:
        parts.extend(["", "No transcript is available for this part; work from the video itself."])
    else:
        parts.extend(["", "No transcript text covers this part. Keep this section brief and do not invent content."])
    return "\n".join(parts)


_ANALYSIS_SCHEMA = {
    "fullTranscript": {
        "segments": [
            {"startTime": 0, "endTime": 30, "text": "transcript text", "speaker": "speaker if identifiable", "isImportant": True}
        ],
        "totalDuration": 600,
        "language": "en",
        "wordCount": 1200,
    },
    "visualAnalysis": {
        "keyFrames": [{"timestamp": 45, "description": "slide showing a chart", "extractedText": "on-screen text", "type": "slide"}],
        "hasSlides": True,
        "hasCharts": False,
        "hasDiagrams": True,
    },
    "contentStructure": {
        "chapters": [
            {
                "title": "Introduction",
                "startTime": 0,
                "endTime": 120,
                "summary": "Overview of main concepts",
                "keyPoints": ["point 1", "point 2"],
                "importance": "high",
            }
        ],
        "mainTopics": ["topic 1", "topic 2"],
    },
    "conceptMap": {
        "concepts": [
            {
                "name": "Machine Learning",
                "definition": "Technique for learning patterns from data",
                "aliases": ["ML"],
                "timestamps": [45, 120],
                "relatedConcepts": ["Neural Networks"],
                "importance": "core",
                "difficulty": "intermediate",
            }
        ],
        "relationships": [{"from": "Machine Learning", "to": "Artificial Intelligence", "type": "prerequisite", "strength": 0.9}],
    },
    "primarySubject": "Technology",
    "secondarySubjects": ["Programming"],
    "contentTags": ["tutorial", "beginner-friendly"],
    "difficultyLevel": "intermediate",
    "suggestedQuestions": [
        {
            "question": "What is the main benefit of this approach?",
            "type": "conceptual",
            "difficulty": "medium",
            "relatedTimestamp": 180,
            "suggestedAnswer": "brief answer",
        }
    ],
    "keyTimestamps": [{"time": 120, "title": "Key Definition", "description": "Concept explained", "type": "definition"}],
    "analysisVersion": "1.0",
    "transcriptConfidence": 0.9,
    "analysisCompleteness": 0.9,
}


def build_analysis_prompt(context: str, template_prompts: Mapping[str, str], transcript: str | None = None) -> str:
    """Ask for the whole-video JSON analysis; each template's notes land under ``allTemplateOutputs``."""
    schema = dict(_ANALYSIS_SCHEMA)
    schema["allTemplateOutputs"] = {
        template_id: f"Notes written with this approach: {prompt}" for template_id, prompt in template_prompts.items()
    }
    source = "the TRANSCRIPT below" if transcript else "the video itself"
    parts = [
        f"You are analyzing a video for comprehensive understanding. Extract ALL information from {source} "
        "into this EXACT JSON structure, replacing the example values with real content:",
        json.dumps(schema, indent=2),
        context,
        "Return ONLY valid JSON. No markdown and no explanations.",
    ]
    if transcript:
        parts.extend(["TRANSCRIPT:", transcript])
    return "\n\n".join(parts)

import pytest

from conftest import make_metadata
from video_notes.core.types import PromptContext, Verbosity
from video_notes.prompts.default import DEFAULT_TEMPLATES
from video_notes.templates import TemplateLoader, detect_domain


def test_builtin_templates_are_available(tmp_path):
    loader = TemplateLoader(tmp_path)

    ids = [template.id for template in loader.available()]

    assert ids == list(DEFAULT_TEMPLATES)
    assert loader.get().id == "basic-summary"


def test_basic_summary_scales_with_duration_and_verbosity(tmp_path):
    template = TemplateLoader(tmp_path).get("basic-summary")

    short = template.render(PromptContext(duration_seconds=120, verbosity=Verbosity.CONCISE))
    long = template.render(PromptContext(duration_seconds=3 * 3600, verbosity=Verbosity.COMPREHENSIVE))

    assert short != long
    assert short.strip() and long.strip()


def test_override_file_replaces_prompt_but_keeps_name(tmp_path):
    (tmp_path / "study-notes-prompt.txt").write_text("Custom study prompt\n")
    loader = TemplateLoader(tmp_path)

    template = loader.get("study-notes")

    assert template.render(PromptContext()) == "Custom study prompt"
    assert template.name == DEFAULT_TEMPLATES["study-notes"].name


def test_extra_override_files_become_templates(tmp_path):
    (tmp_path / "meeting-minutes-prompt.txt").write_text("Write minutes.")
    loader = TemplateLoader(tmp_path)

    assert loader.get("meeting-minutes").name == "Meeting Minutes"
    assert "meeting-minutes" in [t.id for t in loader.available()]


def test_unknown_template(tmp_path):
    with pytest.raises(KeyError):
        TemplateLoader(tmp_path).get("does-not-exist")


def test_detect_domain():
    assert detect_domain(make_metadata(title="Python API tutorial", tags=("coding",))) == "programming"
    assert detect_domain(make_metadata(title="Full body workout", tags=("fitness",))) == "fitness"
    assert detect_domain(make_metadata(title="Holiday vlog", tags=(), description="")) == "general"


def test_tutorial_guide_mentions_domain(tmp_path):
    template = TemplateLoader(tmp_path).get("tutorial-guide")

    programming = template.render(PromptContext(domain="programming"))
    general = template.render(PromptContext(domain="general"))

    assert programming != general

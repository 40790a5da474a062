import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .config import AppConfig
from .constants import ANALYSIS_TEMPLATE_IDS, DEFAULT_TEMPLATE_ID
from .core.types import Priority, ProcessingMode, ProcessingRequest, ProcessingResponse, Verbosity, VideoReference
from .errors import InvalidVideoReference
from .orchestrator import Orchestrator, default_metadata_source
from .planner import Planner
from .progress import LoggingProgressSink
from .selector import ModeSelector
from .templates import TemplateLoader
from .timestamps import format_timestamp


_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    context_settings=_CONTEXT_SETTINGS,
    help="Turn YouTube videos into AI-generated notes.",
)

console = Console(stderr=True)


class RichProgressSink:
    """Progress sink that drives a single rich progress bar."""

    def __init__(self, progress: Progress, description: str) -> None:
        self._progress = progress
        self._task: TaskID = progress.add_task(description, total=100)

    def notify_progress(self, percent: float, message: str) -> None:
        self._progress.update(self._task, completed=min(max(percent, 0.0), 100.0), description=message)


def _progress() -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}", justify="left"),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        BarColumn(bar_width=None),
        TimeElapsedColumn(),
        console=console,
        expand=True,
        transient=True,
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    for noisy in ("httpx", "httpcore", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _load_config(config_path: Path | None, *, require_api_key: bool = True) -> AppConfig:
    try:
        return AppConfig.from_sources(config_path, require_api_key=require_api_key)
    except (ValueError, FileNotFoundError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _build_orchestrator(config: AppConfig, progress=None) -> Orchestrator:
    return Orchestrator.from_config(config, progress=progress)


def _build_planner(config: AppConfig) -> Planner:
    return Planner(
        metadata=default_metadata_source(config),
        selector=ModeSelector(config.selector),
        chunking=config.chunking,
    )


def _parse_video(url: str) -> VideoReference:
    try:
        return VideoReference.parse(url)
    except InvalidVideoReference as exc:
        raise typer.BadParameter(str(exc), param_hint="URL") from exc


def _parse_choice(enum_cls, value: str, hint: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError as exc:
        choices = "|".join(member.value for member in enum_cls)
        raise typer.BadParameter(f"Must be one of {choices}", param_hint=hint) from exc


def _build_request(
    url: str,
    *,
    template_id: str,
    mode: str,
    instructions: Optional[str],
    verbosity: str,
    templates_dir: Path,
) -> ProcessingRequest:
    try:
        template = TemplateLoader(templates_dir).get(template_id)
    except KeyError as exc:
        raise typer.BadParameter(str(exc), param_hint="--template") from exc
    return ProcessingRequest(
        video=_parse_video(url),
        template=template,
        custom_instructions=instructions,
        processing_mode=_parse_choice(ProcessingMode, mode, "--mode"),
        verbosity=_parse_choice(Verbosity, verbosity, "--verbosity"),
    )


def _print_response(response: ProcessingResponse) -> None:
    if not response.succeeded:
        console.print(f"[bold red]Failed:[/] {response.error}")
        return
    typer.echo(response.text or "")
    console.print(
        f"[dim]{response.processing_method.value if response.processing_method else 'unknown'} via "
        f"{response.model_used or 'unknown model'}; {response.token_usage:,} tokens; "
        f"{response.cost_cents:.4f} cents; {response.processing_time_ms} ms[/]"
    )
    if response.data_sources_used:
        console.print(f"[dim]Sources: {', '.join(response.data_sources_used)}[/]")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    _configure_logging(verbose)


@app.command(help="Generate notes for one YouTube video.")
def process(
    url: str = typer.Argument(..., help="YouTube URL or 11-character video id."),
    template: str = typer.Option(DEFAULT_TEMPLATE_ID, "--template", "-t", help="Template id (see `templates`)."),
    mode: str = typer.Option("auto", "--mode", "-m", case_sensitive=False, help="auto|hybrid|transcript-only|video-only"),
    instructions: Optional[str] = typer.Option(None, "--instructions", "-i", help="Extra requirements for the notes."),
    verbosity: str = typer.Option("standard", "--verbosity", case_sensitive=False, help="concise|standard|comprehensive"),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0, help="Stop starting new chunks after this many seconds."),
    json_output: bool = typer.Option(False, "--json/--no-json", help="Emit the response as JSON."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the notes to this file."),
    summary_path: Optional[Path] = typer.Option(None, "--summary-path", help="Write request telemetry JSON here."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path)
    request = _build_request(
        url,
        template_id=template,
        mode=mode,
        instructions=instructions,
        verbosity=verbosity,
        templates_dir=config.templates_dir,
    )

    with _progress() as progress:
        sink = RichProgressSink(progress, f"Processing {request.video.video_id}")
        orchestrator = _build_orchestrator(config, progress=sink)
        response = asyncio.run(orchestrator.process_video(request, timeout=timeout))

    if summary_path is not None:
        try:
            orchestrator.monitor.write_summary(summary_path.expanduser(), extra={"response": response.to_dict()})
        except OSError as exc:
            console.print(f"Warning: failed to write summary to {summary_path}: {exc}")

    if json_output:
        typer.echo(json.dumps(response.to_dict(), indent=2, sort_keys=True))
    else:
        if output is not None and response.succeeded:
            target = output.expanduser()
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text((response.text or "") + "\n", encoding="utf-8")
            console.print(f"Wrote {target}")
        _print_response(response)

    if not response.succeeded:
        raise typer.Exit(code=1)


@app.command(help="Produce a structured JSON analysis of one video (chapters, concepts, questions).")
def analyze(
    url: str = typer.Argument(..., help="YouTube URL or 11-character video id."),
    template_ids: List[str] = typer.Option(
        list(ANALYSIS_TEMPLATE_IDS), "--template", "-t", help="Template whose notes to include; repeatable."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0, help="Give up after this many seconds."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON to this file."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path)
    video = _parse_video(url)
    loader = TemplateLoader(config.templates_dir)
    try:
        chosen = [loader.get(template_id) for template_id in template_ids]
    except KeyError as exc:
        raise typer.BadParameter(str(exc), param_hint="--template") from exc

    with _progress() as progress:
        sink = RichProgressSink(progress, f"Analyzing {video.video_id}")
        orchestrator = _build_orchestrator(config, progress=sink)
        response = asyncio.run(orchestrator.analyze_video(video, chosen, timeout=timeout))

    if not response.succeeded:
        console.print(f"[bold red]Failed:[/] {response.error}")
        raise typer.Exit(code=1)

    rendered = json.dumps(response.to_dict(), indent=2, sort_keys=True)
    if output is not None:
        target = output.expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(rendered + "\n", encoding="utf-8")
        console.print(f"Wrote {target}")
    else:
        typer.echo(rendered)
    if response.analysis is not None and not response.analysis.parsed:
        console.print("[yellow]The model did not return valid JSON; the analysis is empty.[/]")


@app.command(help="Preview metadata, processing strategy and chunk plan without generating.")
def plan(
    url: str = typer.Argument(..., help="YouTube URL or 11-character video id."),
    mode: str = typer.Option("auto", "--mode", "-m", case_sensitive=False, help="auto|hybrid|transcript-only|video-only"),
    json_output: bool = typer.Option(False, "--json/--no-json", help="Emit JSON instead of human-readable text."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path, require_api_key=False)
    video = _parse_video(url)
    requested = _parse_choice(ProcessingMode, mode, "--mode")
    report = asyncio.run(_build_planner(config).plan(video, requested))

    if json_output:
        typer.echo(report.to_json())
        return

    meta = report.metadata
    typer.echo(f"Video: {report.video.video_id}")
    typer.echo(f"Title: {meta.title}{'' if report.metadata_found else ' (metadata unavailable)'}")
    typer.echo(f"Duration: {format_timestamp(meta.duration_seconds)}")
    typer.echo(f"Captions: {'yes' if meta.has_captions else 'no'}")
    typer.echo(f"Richness: {meta.content_richness.value}")
    typer.echo(f"Domain: {report.domain}")
    typer.echo(f"Strategy: {report.strategy.value}")
    for reason in report.hybrid_reasons:
        typer.echo(f"  - {reason}")
    typer.echo(f"Chunks planned: {len(report.chunks)}")
    for chunk in report.chunks:
        typer.echo(
            f"  {chunk.chunk_index + 1}: {format_timestamp(chunk.start_seconds)} - {format_timestamp(chunk.end_seconds)}"
        )


@app.command(help="Check that at least one model in the fallback chain responds.")
def health(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path)
    orchestrator = _build_orchestrator(config)
    status = asyncio.run(orchestrator.health_check())
    typer.echo(f"{status.status}: {status.message}")
    if not status.healthy:
        raise typer.Exit(code=1)


@app.command(help="List available note templates.")
def templates(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path, require_api_key=False)
    table = Table()
    table.add_column("id", no_wrap=True)
    table.add_column("name")
    table.add_column("description")
    for template in TemplateLoader(config.templates_dir).available():
        table.add_row(template.id, template.name, template.description)
    Console().print(table)


@app.command(help="Queue every URL in FILE (one per line) and wait for the queue to drain.")
def batch(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file with one URL per line."),
    template: str = typer.Option(DEFAULT_TEMPLATE_ID, "--template", "-t", help="Template id (see `templates`)."),
    mode: str = typer.Option("auto", "--mode", "-m", case_sensitive=False, help="auto|hybrid|transcript-only|video-only"),
    priority: str = typer.Option("medium", "--priority", "-p", case_sensitive=False, help="low|medium|high"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Write one markdown file per video."),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to a video-notes YAML file."),
):
    config = _load_config(config_path)
    chosen_priority = _parse_choice(Priority, priority, "--priority")
    urls = [line.strip() for line in source.read_text().splitlines() if line.strip() and not line.startswith("#")]
    requests = [
        _build_request(
            url,
            template_id=template,
            mode=mode,
            instructions=None,
            verbosity=Verbosity.STANDARD.value,
            templates_dir=config.templates_dir,
        )
        for url in urls
    ]
    # Every item's terminal record must survive until it is reported below.
    keep = max(config.queue.keep_finished, len(requests))
    config = replace(config, queue=replace(config.queue, keep_finished=keep))
    orchestrator = _build_orchestrator(config, progress=LoggingProgressSink())

    async def _drain() -> list[tuple[ProcessingRequest, str]]:
        ids = [(request, orchestrator.enqueue(request, chosen_priority)) for request in requests]
        await orchestrator.queue.join()
        return ids

    queued = asyncio.run(_drain())
    failures = 0
    for request, item_id in queued:
        record = orchestrator.queue.pop_finished(item_id)
        state = record.state.value if record else "unknown"
        response = record.response if record else None
        typer.echo(f"{request.video.video_id}: {state}")
        if response is not None and response.succeeded and output_dir is not None:
            target = output_dir.expanduser() / f"{request.video.video_id}.md"
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text((response.text or "") + "\n", encoding="utf-8")
        if response is None or not response.succeeded:
            failures += 1
    if failures:
        raise typer.Exit(code=1)


@app.command(help="Create a starter configuration file in the current directory.")
def init(
    path: Path = typer.Option(Path("video-notes.yaml"), "--path", help="Where to write the config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing file"),
):
    target = path.expanduser()
    if target.exists() and not force:
        raise typer.BadParameter(f"{target} already exists; use --force to overwrite", param_hint="--force")

    content = (
        "# video-notes configuration\n"
        "models:\n"
        "  - gemini-2.5-flash\n"
        "  - gemini-2.5-flash-lite\n"
        "  - gemini-2.0-flash\n"
        "chunking:\n"
        "  max_concurrent_chunks: 1\n"
        "queue:\n"
        "  max_retries: 3\n"
        "  dequeue_delay_seconds: 1.0\n"
        "  keep_finished: 100\n"
        "link_timestamps: false\n"
    )
    target.write_text(content)
    typer.echo(f"Wrote {target}")


def main():
    app()


if __name__ == "__main__":
    main()

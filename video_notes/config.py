from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional
import os
import yaml

from .chunking import ChunkingConfig
from .constants import (
    DEFAULT_DEQUEUE_DELAY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL_HIERARCHY,
    DEFAULT_QUEUE_KEEP_FINISHED,
    DEFAULT_QUEUE_WORKERS,
    TEMPLATES_DIR,
)
from .costs import UnitPricing
from .selector import SelectorConfig


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return bool(value)


def _as_int(value: Any, *, key: str, minimum: int | None = None) -> int | None:
    if value is None:
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key}: expected integer value, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise ValueError(f"{key}: expected integer >= {minimum}, got {parsed}")
    return parsed


def _as_float(value: Any, *, key: str, minimum: float | None = None) -> float | None:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key}: expected number, got {value!r}") from exc
    if minimum is not None and parsed < minimum:
        raise ValueError(f"{key}: expected number >= {minimum}, got {parsed}")
    return parsed


def _as_str_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [str(part).strip() for part in value]
    else:
        raise ValueError(f"Expected a list of strings, got {value!r}")
    return tuple(item for item in items if item)


@dataclass(frozen=True)
class QueueConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    dequeue_delay_seconds: float = DEFAULT_DEQUEUE_DELAY_SECONDS
    workers: int = DEFAULT_QUEUE_WORKERS
    keep_finished: int = DEFAULT_QUEUE_KEEP_FINISHED


@dataclass(frozen=True)
class AppConfig:
    api_key: str | None = None
    youtube_api_key: str | None = None
    models: tuple[str, ...] = DEFAULT_MODEL_HIERARCHY
    templates_dir: Path = TEMPLATES_DIR
    selector: SelectorConfig = field(default_factory=SelectorConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    pricing: UnitPricing = field(default_factory=UnitPricing)
    link_timestamps: bool = False
    request_timeout_seconds: float | None = None
    config_path: Path | None = None

    @staticmethod
    def from_sources(config_path: Path | None = None, *, require_api_key: bool = True) -> "AppConfig":
        api_key = os.getenv("GEMINI_API_KEY")
        if require_api_key and not api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set")
        youtube_api_key = os.getenv("YOUTUBE_API_KEY") or None

        env_config = os.getenv("VIDEO_NOTES_CONFIG")
        candidates: list[Path] = []
        if config_path is not None:
            candidates.append(Path(config_path).expanduser())
        elif env_config:
            candidates.append(Path(env_config).expanduser())
        else:
            candidates.extend([Path("video-notes.yaml"), Path("video-notes.yml")])

        resolved_config: Path | None = None
        config_data: dict[str, Any] = {}
        for candidate in candidates:
            if candidate.exists():
                resolved_config = candidate
                try:
                    config_data = yaml.safe_load(candidate.read_text()) or {}
                except yaml.YAMLError as exc:  # pragma: no cover - invalid user input
                    raise ValueError(f"Failed to parse configuration file {candidate}: {exc}") from exc
                break

        if config_path is not None and resolved_config is None:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        if not isinstance(config_data, dict):
            raise ValueError(f"Configuration file {resolved_config} must contain a mapping")

        def _section(name: str) -> dict[str, Any]:
            value = config_data.get(name) or {}
            if not isinstance(value, dict):
                raise ValueError(f"{name}: expected a mapping")
            return value

        selector_cfg = _section("selector")
        chunking_cfg = _section("chunking")
        queue_cfg = _section("queue")
        pricing_cfg = _section("pricing")

        models = _as_str_tuple(config_data.get("models"), DEFAULT_MODEL_HIERARCHY)
        templates_raw = config_data.get("templates_dir")
        templates_dir = Path(str(templates_raw)).expanduser() if templates_raw else Path(TEMPLATES_DIR)
        link_timestamps = _as_bool(config_data.get("link_timestamps"))
        timeout = _as_float(config_data.get("request_timeout_seconds"), key="request_timeout_seconds", minimum=0)

        defaults = SelectorConfig()
        selector = SelectorConfig(
            educational_tags=_as_str_tuple(selector_cfg.get("educational_tags"), defaults.educational_tags),
            visual_keywords=_as_str_tuple(selector_cfg.get("visual_keywords"), defaults.visual_keywords),
            min_duration_seconds=_or(
                _as_float(selector_cfg.get("min_duration_seconds"), key="selector.min_duration_seconds", minimum=0),
                defaults.min_duration_seconds,
            ),
            max_duration_seconds=_or(
                _as_float(selector_cfg.get("max_duration_seconds"), key="selector.max_duration_seconds", minimum=0),
                defaults.max_duration_seconds,
            ),
        )

        chunk_defaults = ChunkingConfig()
        chunk_values = {
            "long_video_threshold_seconds": _as_float(
                chunking_cfg.get("long_video_threshold_seconds"), key="chunking.long_video_threshold_seconds", minimum=0
            ),
            "chunk_width_seconds": _as_float(
                chunking_cfg.get("chunk_width_seconds"), key="chunking.chunk_width_seconds", minimum=1
            ),
            "max_concurrent_chunks": _as_int(
                chunking_cfg.get("max_concurrent_chunks"), key="chunking.max_concurrent_chunks", minimum=1
            ),
            "default_segment_seconds": _as_float(
                chunking_cfg.get("default_segment_seconds"), key="chunking.default_segment_seconds", minimum=1
            ),
        }

        queue_values = {
            "max_retries": _as_int(queue_cfg.get("max_retries"), key="queue.max_retries", minimum=0),
            "dequeue_delay_seconds": _as_float(
                queue_cfg.get("dequeue_delay_seconds"), key="queue.dequeue_delay_seconds", minimum=0
            ),
            "workers": _as_int(queue_cfg.get("workers"), key="queue.workers", minimum=1),
            "keep_finished": _as_int(queue_cfg.get("keep_finished"), key="queue.keep_finished", minimum=1),
        }

        price_defaults = UnitPricing()
        input_price = _as_float(pricing_cfg.get("input_per_1k"), key="pricing.input_per_1k", minimum=0)
        output_price = _as_float(pricing_cfg.get("output_per_1k"), key="pricing.output_per_1k", minimum=0)

        # Environment overrides
        models_env = os.getenv("VIDEO_NOTES_MODELS")
        if models_env:
            models = _as_str_tuple(models_env, models)

        templates_dir_env = os.getenv("VIDEO_NOTES_TEMPLATES_DIR")
        if templates_dir_env:
            templates_dir = Path(templates_dir_env).expanduser()

        link_env = os.getenv("VIDEO_NOTES_LINK_TIMESTAMPS")
        if link_env is not None:
            link_timestamps = _as_bool(link_env)

        timeout_env = os.getenv("VIDEO_NOTES_REQUEST_TIMEOUT")
        if timeout_env:
            timeout = _as_float(timeout_env, key="VIDEO_NOTES_REQUEST_TIMEOUT", minimum=0)

        chunk_env = os.getenv("VIDEO_NOTES_MAX_CONCURRENT_CHUNKS")
        if chunk_env:
            chunk_values["max_concurrent_chunks"] = _as_int(
                chunk_env, key="VIDEO_NOTES_MAX_CONCURRENT_CHUNKS", minimum=1
            )

        workers_env = os.getenv("VIDEO_NOTES_QUEUE_WORKERS")
        if workers_env:
            queue_values["workers"] = _as_int(workers_env, key="VIDEO_NOTES_QUEUE_WORKERS", minimum=1)

        if not models:
            raise ValueError("models: at least one model is required")

        return AppConfig(
            api_key=api_key,
            youtube_api_key=youtube_api_key,
            models=models,
            templates_dir=templates_dir,
            selector=selector,
            chunking=ChunkingConfig(
                **{k: _or(v, getattr(chunk_defaults, k)) for k, v in chunk_values.items()}
            ),
            queue=QueueConfig(**{k: _or(v, getattr(QueueConfig(), k)) for k, v in queue_values.items()}),
            pricing=UnitPricing(
                input_per_1k=_or(input_price, price_defaults.input_per_1k),
                output_per_1k=_or(output_price, price_defaults.output_per_1k),
            ),
            link_timestamps=link_timestamps,
            request_timeout_seconds=timeout or None,
            config_path=resolved_config,
        )

    @staticmethod
    def from_env(config_path: Path | None = None) -> "AppConfig":
        return AppConfig.from_sources(config_path=config_path)


def _or(value: Optional[Any], default: Any) -> Any:
    return default if value is None else value

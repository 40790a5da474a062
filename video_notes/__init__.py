"""Turn YouTube videos into AI-generated notes."""

from .config import AppConfig
from .core.types import (
    Priority,
    ProcessingMode,
    ProcessingRequest,
    ProcessingResponse,
    Template,
    VideoReference,
)
from .errors import AllModelsExhausted, InvalidVideoReference, VideoNotesError
from .invoker import ModelInvoker
from .orchestrator import HealthStatus, Orchestrator
from .templates import TemplateLoader

__all__ = [
    "AllModelsExhausted",
    "AppConfig",
    "HealthStatus",
    "InvalidVideoReference",
    "ModelInvoker",
    "Orchestrator",
    "Priority",
    "ProcessingMode",
    "ProcessingRequest",
    "ProcessingResponse",
    "Template",
    "TemplateLoader",
    "VideoNotesError",
    "VideoReference",
]

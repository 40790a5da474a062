from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from .core.contracts import GenerationBackend
from .core.types import FailureKind, InvocationResult, ModelAttempt, VideoPayload
from .errors import AllModelsExhausted, GenerationError

logger = logging.getLogger(__name__)


class ModelInvoker:
    """Walks an ordered list of backends until one answers.

    Failures of a single backend are recorded as ``ModelAttempt`` entries and
    never retried against the same model. ``AllModelsExhausted`` is raised only
    once every backend has been skipped or has failed.
    """

    def __init__(self, backends: Sequence[GenerationBackend]) -> None:
        if not backends:
            raise ValueError("At least one generation backend is required")
        self._backends = list(backends)

    @property
    def backends(self) -> list[GenerationBackend]:
        return list(self._backends)

    @property
    def model_names(self) -> list[str]:
        return [backend.name for backend in self._backends]

    def can_serve_video(self) -> bool:
        return any(backend.supports_video() for backend in self._backends)

    async def invoke(
        self,
        prompt: str,
        *,
        video: VideoPayload | None = None,
        requires_video: bool = False,
    ) -> InvocationResult:
        needs_video = requires_video or video is not None
        attempts: list[ModelAttempt] = []
        for backend in self._backends:
            if needs_video and not backend.supports_video():
                logger.debug("Skipping %s: no video support", backend.name)
                attempts.append(
                    ModelAttempt(
                        model_name=backend.name,
                        succeeded=False,
                        failure_kind=FailureKind.UNSUPPORTED_INPUT,
                        skipped=True,
                    )
                )
                continue
            try:
                result = await backend.generate(prompt, video)
            except GenerationError as exc:
                attempts.append(self._failed(backend.name, exc.kind, exc))
                continue
            except (OSError, asyncio.TimeoutError) as exc:
                # Transport faults from any backend count as a failed attempt.
                attempts.append(self._failed(backend.name, FailureKind.OTHER, exc))
                continue

            attempts.append(ModelAttempt(model_name=backend.name, succeeded=True))
            logger.info("Model %s answered (%d tokens)", backend.name, result.token_usage)
            return InvocationResult(
                text=result.text,
                token_usage=result.token_usage,
                model_used=backend.name,
                attempts=tuple(attempts),
            )

        error = AllModelsExhausted(attempts)
        logger.error("%s", error)
        raise error

    @staticmethod
    def _failed(model: str, kind: FailureKind, exc: BaseException) -> ModelAttempt:
        message = str(exc) or type(exc).__name__
        logger.warning("Model %s failed (%s): %s", model, kind.value, message)
        return ModelAttempt(model_name=model, succeeded=False, failure_kind=kind, message=message)

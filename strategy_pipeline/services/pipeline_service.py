"""PipelineService: caller-side orchestration around PipelineRunner.

Follows existing patterns from the generation layer:
- Constructor dependency injection (runner, store, exporter)
- Whole-pipeline re-invocation on transient failures via tenacity (the runner never retries)
- Only finished artifacts are handed to the ArtifactStore
"""

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)
from tenacity.wait import wait_base

from strategy_pipeline.core.config import Settings, get_settings
from strategy_pipeline.pipeline.markdown_exporter import MarkdownExporter
from strategy_pipeline.pipeline.progress import ProgressReporter
from strategy_pipeline.pipeline.runner import PipelineFailure, PipelineResult, PipelineRunner, PipelineSuccess
from strategy_pipeline.schemas.artifacts import ConceptArtifact, RefinementConstraints, RequirementDocument
from strategy_pipeline.schemas.pipeline import FrameworkKind, PipelineType

logger = structlog.get_logger(__name__)

# Failure types worth a fresh attempt; schema and empty-result failures are not
RETRYABLE_ERROR_TYPES = frozenset({"TransportError", "ServiceError"})


@runtime_checkable
class ArtifactStore(Protocol):
    """Persistence collaborator. Receives finished artifacts only."""

    async def save(self, pipeline_type: PipelineType, artifact: BaseModel) -> None: ...


class InMemoryArtifactStore:
    """ArtifactStore keeping saved artifacts in a list, in save order."""

    def __init__(self):
        self.saved: list[tuple[PipelineType, BaseModel]] = []

    async def save(self, pipeline_type: PipelineType, artifact: BaseModel) -> None:
        self.saved.append((pipeline_type, artifact))


def _is_retryable(result: PipelineResult) -> bool:
    return isinstance(result, PipelineFailure) and result.error_type in RETRYABLE_ERROR_TYPES


def _last_result(retry_state) -> PipelineResult:
    return retry_state.outcome.result()


def _log_retry(retry_state) -> None:
    failure: PipelineFailure = retry_state.outcome.result()
    logger.warning(
        "pipeline_retrying",
        pipeline_type=failure.pipeline_type.value,
        attempt=retry_state.attempt_number,
        failed_at_stage=failure.failed_at_stage,
        error_type=failure.error_type,
    )


class PipelineService:
    """Runs pipelines for callers, retries transient failures, stores finished artifacts."""

    def __init__(
        self,
        runner: PipelineRunner,
        store: ArtifactStore | None = None,
        exporter: MarkdownExporter | None = None,
        settings: Settings | None = None,
        wait: wait_base | None = None,
    ):
        """Initialize with a runner and optional collaborators.

        Args:
            runner: PipelineRunner (with its GenerationClient)
            store: Receives each finished artifact; None disables persistence
            exporter: Markdown renderer (defaults to one in the configured language)
            settings: Overrides get_settings() (retry attempts and wait)
            wait: tenacity wait strategy between attempts (defaults to a fixed wait)
        """
        self.runner = runner
        self.store = store
        self.settings = settings or runner.settings or get_settings()
        self.exporter = exporter or MarkdownExporter(language=self.settings.output_language)
        self.wait = wait or wait_fixed(self.settings.pipeline_retry_wait_seconds)

    async def run(self, pipeline_type: PipelineType | str, form_input: BaseModel | Mapping[str, Any]) -> PipelineResult:
        """Run a pipeline, re-invoking it from the first stage on transient failure.

        Each attempt is a fresh execution; no stage output carries over.

        Returns:
            PipelineSuccess, or the PipelineFailure of the last attempt

        Raises:
            InputValidationError: Input does not fit the pipeline's input form
            PipelineDefinitionError: Unknown pipeline type or malformed stage list
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(self.settings.pipeline_retry_attempts, 1)),
            wait=self.wait,
            retry=retry_if_result(_is_retryable),
            retry_error_callback=_last_result,
            before_sleep=_log_retry,
        )
        result = await retrying(self.runner.run, pipeline_type, form_input)
        await self._store(result)
        return result

    def start(
        self, pipeline_type: PipelineType | str, form_input: BaseModel | Mapping[str, Any]
    ) -> tuple[ProgressReporter, "asyncio.Task[PipelineResult]"]:
        """Start a single attempt in the background and return a live progress view.

        Must be called from a running event loop. The task result is the
        PipelineResult; a finished artifact is stored before the task completes.
        """
        execution = self.runner.create_execution(pipeline_type)
        reporter = ProgressReporter(execution)

        async def _run() -> PipelineResult:
            result = await self.runner.run(pipeline_type, form_input, execution=execution)
            await self._store(result)
            return result

        return reporter, asyncio.create_task(_run())

    # ------------------------------------------------------------- shortcuts

    async def analyze_framework(self, kind: FrameworkKind | str, form_input: BaseModel | Mapping[str, Any]) -> PipelineResult:
        return await self.run(PipelineType.framework(kind), form_input)

    async def generate_concept(
        self,
        analyses: Sequence[BaseModel | Mapping[str, Any]],
        conditions: RefinementConstraints | Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        return await self.run(
            PipelineType.CONCEPT_GENERATION,
            {"analyses": list(analyses), "conditions": conditions},
        )

    async def refine_concept(
        self,
        concept: ConceptArtifact | Mapping[str, Any],
        constraints: RefinementConstraints | Mapping[str, Any],
    ) -> PipelineResult:
        return await self.run(PipelineType.CONCEPT_REFINEMENT, {"concept": concept, "constraints": constraints})

    async def generate_requirements(
        self,
        concept: ConceptArtifact | Mapping[str, Any],
        constraints: RefinementConstraints | Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        payload: dict[str, Any] = {"concept": concept}
        if constraints is not None:
            payload["constraints"] = constraints
        return await self.run(PipelineType.REQUIREMENT_GENERATION, payload)

    async def refine_requirements(
        self,
        requirement: RequirementDocument | Mapping[str, Any],
        constraints: RefinementConstraints | Mapping[str, Any],
    ) -> PipelineResult:
        return await self.run(
            PipelineType.REQUIREMENT_REFINEMENT,
            {"requirement": requirement, "constraints": constraints},
        )

    def render(self, artifact: BaseModel | dict, title: str | None = None) -> str:
        return self.exporter.to_structured_text(artifact, title=title)

    async def _store(self, result: PipelineResult) -> None:
        if self.store is None or not isinstance(result, PipelineSuccess):
            return
        await self.store.save(result.pipeline_type, result.artifact)
        logger.info(
            "artifact_saved",
            pipeline_type=result.pipeline_type.value,
            execution_id=result.execution_id,
        )

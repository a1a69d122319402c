"""PipelineRunner: generic sequential executor for any declared stage sequence.

Per stage:
1. Mark the StageRun processing
2. Build the prompt from the original input and all prior validated outputs
3. Invoke the generation client (the only suspension point)
4. Validate the parsed response against the stage's output model
5. Mark the StageRun completed and continue

The first failing stage is marked error and the execution halts. The artifact
is assembled only when every stage completed. The runner never retries.
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from strategy_pipeline.core.config import Settings, get_settings
from strategy_pipeline.core.exceptions import (
    EmptyResultError,
    GenerationError,
    InputValidationError,
    PipelineDefinitionError,
    SchemaValidationError,
)
from strategy_pipeline.generation.client import GenerationClient
from strategy_pipeline.pipeline.assembler import assemble_artifact
from strategy_pipeline.pipeline.execution import PipelineExecution, StageRun
from strategy_pipeline.pipeline.stages import get_stage_definitions
from strategy_pipeline.schemas.pipeline import INPUT_MODELS, PipelineType

logger = structlog.get_logger(__name__)

# Failures that end an execution with a PipelineFailure result
STAGE_FAILURES = (GenerationError, SchemaValidationError, EmptyResultError)


@dataclass(frozen=True)
class PipelineSuccess:
    pipeline_type: PipelineType
    artifact: BaseModel
    stages: dict[str, dict]
    execution_id: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class PipelineFailure:
    """Halted execution: completed_stages holds copies of the completed StageRuns,
    a strict prefix of the stage sequence, and failed_at_stage is the first stage
    not in it. Their validated outputs stay reachable as run.output."""

    pipeline_type: PipelineType
    failed_at_stage: str
    error: str
    error_type: str
    completed_stages: tuple[StageRun, ...] = ()
    execution_id: str = ""

    @property
    def ok(self) -> bool:
        return False


PipelineResult = PipelineSuccess | PipelineFailure


class PipelineRunner:
    """Runs pipelines against a GenerationClient.

    Holds no per-execution state, so one runner can serve concurrent
    executions; each run() owns its own PipelineExecution.
    """

    def __init__(self, client: GenerationClient, settings: Settings | None = None):
        """Initialize with a generation client.

        Args:
            client: GenerationClient implementation (GenerationClientFake in tests,
                    AnthropicGenerationClient in production)
            settings: Overrides get_settings() (language, candidate cap)
        """
        self.client = client
        self.settings = settings or get_settings()

    def create_execution(self, pipeline_type: PipelineType | str, execution_id: str | None = None) -> PipelineExecution:
        """Create a fresh execution with every stage waiting.

        Callers that want to observe progress create the execution first, attach
        a ProgressReporter, then pass it to run().
        """
        pipeline_type = self._resolve_type(pipeline_type)
        stages = get_stage_definitions(
            pipeline_type,
            language=self.settings.output_language,
            max_candidates=self.settings.max_concept_candidates,
        )
        return PipelineExecution(pipeline_type, stages, execution_id=execution_id)

    def parse_input(self, pipeline_type: PipelineType | str, form_input: BaseModel | Mapping[str, Any]) -> BaseModel:
        """Validate caller input against the pipeline's input form.

        Raises:
            InputValidationError: Input does not fit the form
        """
        pipeline_type = self._resolve_type(pipeline_type)
        model = INPUT_MODELS[pipeline_type]
        if isinstance(form_input, model):
            return form_input
        if isinstance(form_input, BaseModel):
            form_input = form_input.model_dump()
        try:
            return model.model_validate(form_input)
        except ValidationError as exc:
            raise InputValidationError(f"Invalid input for {pipeline_type}: {exc}") from exc

    async def run(
        self,
        pipeline_type: PipelineType | str,
        form_input: BaseModel | Mapping[str, Any],
        execution: PipelineExecution | None = None,
    ) -> PipelineResult:
        """Execute every stage of a pipeline in order.

        Args:
            pipeline_type: Pipeline variant to run
            form_input: Input form (model instance or plain mapping)
            execution: Pre-created execution to drive (for live progress)

        Returns:
            PipelineSuccess with the assembled artifact, or PipelineFailure naming
            the failing stage and the StageRuns completed before it

        Raises:
            InputValidationError: Input does not fit the pipeline's input form
            PipelineDefinitionError: Unknown type, empty stage list, or an execution
                                     that belongs to another type or already ran
        """
        pipeline_type = self._resolve_type(pipeline_type)
        original_input = self.parse_input(pipeline_type, form_input)

        if execution is None:
            execution = self.create_execution(pipeline_type)
        elif execution.pipeline_type != pipeline_type:
            raise PipelineDefinitionError(
                f"Execution {execution.execution_id} belongs to {execution.pipeline_type}, not {pipeline_type}"
            )
        elif execution.has_started:
            raise PipelineDefinitionError(f"Execution {execution.execution_id} has already run")

        with structlog.contextvars.bound_contextvars(
            execution_id=execution.execution_id,
            pipeline_type=pipeline_type.value,
        ):
            for stage in execution.stages:
                execution.mark_processing(stage.id)
                logger.info("stage_started", stage_id=stage.id, stage_title=stage.title)

                try:
                    prompt = stage.build_prompt(execution.outputs, original_input)
                    raw = await self.client.invoke(prompt)
                    output = stage.validate_output(raw)
                except STAGE_FAILURES as exc:
                    execution.mark_error(stage.id, str(exc), error_type=type(exc).__name__)
                    logger.warning(
                        "stage_failed",
                        stage_id=stage.id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    return self._failure(execution, stage.id, exc)
                except Exception as exc:
                    # Unexpected errors still leave the stage terminal before propagating
                    execution.mark_error(stage.id, str(exc), error_type=type(exc).__name__)
                    logger.exception("stage_crashed", stage_id=stage.id, error_type=type(exc).__name__)
                    raise

                execution.mark_completed(stage.id, output)
                logger.info("stage_completed", stage_id=stage.id)

            artifact = assemble_artifact(
                pipeline_type,
                execution.outputs,
                original_input,
                max_candidates=self.settings.max_concept_candidates,
            )
            logger.info("pipeline_completed", stage_count=len(execution.runs))
            return PipelineSuccess(
                pipeline_type=pipeline_type,
                artifact=artifact,
                stages=execution.outputs,
                execution_id=execution.execution_id,
            )

    @staticmethod
    def _resolve_type(pipeline_type: PipelineType | str) -> PipelineType:
        try:
            return PipelineType(pipeline_type)
        except ValueError as exc:
            raise PipelineDefinitionError(f"Unknown pipeline type: {pipeline_type}") from exc

    @staticmethod
    def _failure(execution: PipelineExecution, stage_id: str, exc: Exception) -> PipelineFailure:
        completed = tuple(copy.deepcopy(execution.completed_runs))
        logger.warning(
            "pipeline_failed",
            failed_at_stage=stage_id,
            completed_stages=[run.stage_id for run in completed],
            error_type=type(exc).__name__,
        )
        return PipelineFailure(
            pipeline_type=execution.pipeline_type,
            failed_at_stage=stage_id,
            error=str(exc),
            error_type=type(exc).__name__,
            completed_stages=completed,
            execution_id=execution.execution_id,
        )

"""Pipeline execution state: one StageRun per stage, owned by one PipelineExecution.

StageRun lifecycle:
    waiting -> processing -> completed | error

completed and error are terminal. A stage may only start processing once every
earlier stage has completed, which makes the sequential ordering checkable.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from strategy_pipeline.core.exceptions import PipelineDefinitionError, StrategyPipelineError
from strategy_pipeline.pipeline.stages import StageDefinition, validate_stage_sequence
from strategy_pipeline.schemas.pipeline import PipelineType, StageStatus


class InvalidStageTransitionError(StrategyPipelineError):
    """Raised when a StageRun is moved along an edge the lifecycle does not allow."""

    def __init__(self, stage_id: str, current: StageStatus, target: StageStatus):
        self.stage_id = stage_id
        self.current = current
        self.target = target
        super().__init__(f"Stage '{stage_id}' cannot move from {current} to {target}")


@dataclass
class StageRun:
    """Status record for one stage within one execution.

    output is set iff status is completed; error_message iff status is error.
    """

    stage_id: str
    title: str
    description: str
    status: StageStatus = StageStatus.WAITING
    output: dict | None = None
    error_message: str | None = None
    error_type: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (StageStatus.COMPLETED, StageStatus.ERROR)


class PipelineExecution:
    """Ordered StageRuns for a single pipeline invocation.

    Not persisted and not shared: the task running the invocation is the only
    writer. Readers (ProgressReporter) can wait for the next change.
    """

    TRANSITIONS = {
        StageStatus.WAITING: [StageStatus.PROCESSING],
        StageStatus.PROCESSING: [StageStatus.COMPLETED, StageStatus.ERROR],
        StageStatus.COMPLETED: [],  # Terminal state
        StageStatus.ERROR: [],  # Terminal state
    }

    def __init__(
        self,
        pipeline_type: PipelineType,
        stages: Sequence[StageDefinition],
        execution_id: str | None = None,
    ):
        validate_stage_sequence(stages)
        self.pipeline_type = pipeline_type
        self.execution_id = execution_id or uuid4().hex
        self.stages: tuple[StageDefinition, ...] = tuple(stages)
        self.runs: list[StageRun] = [
            StageRun(stage_id=stage.id, title=stage.title, description=stage.description) for stage in stages
        ]
        self._index = {run.stage_id: position for position, run in enumerate(self.runs)}
        self._version = 0
        self._changed = asyncio.Event()

    # ------------------------------------------------------------------ reads

    @property
    def version(self) -> int:
        """Incremented on every StageRun transition."""
        return self._version

    @property
    def has_started(self) -> bool:
        return any(run.status != StageStatus.WAITING for run in self.runs)

    @property
    def is_successful(self) -> bool:
        return all(run.status == StageStatus.COMPLETED for run in self.runs)

    @property
    def failed_run(self) -> StageRun | None:
        return next((run for run in self.runs if run.status == StageStatus.ERROR), None)

    @property
    def is_finished(self) -> bool:
        return self.is_successful or self.failed_run is not None

    @property
    def completed_runs(self) -> list[StageRun]:
        """Completed runs; always a prefix of the stage sequence."""
        return [run for run in self.runs if run.status == StageStatus.COMPLETED]

    @property
    def outputs(self) -> dict[str, dict]:
        """Validated outputs of completed stages, keyed by stage id, in stage order."""
        return {run.stage_id: run.output for run in self.completed_runs}

    def run_for(self, stage_id: str) -> StageRun:
        try:
            return self.runs[self._index[stage_id]]
        except KeyError as exc:
            raise PipelineDefinitionError(f"Unknown stage id: {stage_id}") from exc

    async def wait_for_change(self, seen_version: int) -> None:
        """Wait until version differs from seen_version."""
        while self._version == seen_version:
            await self._changed.wait()

    # ----------------------------------------------------------------- writes

    def mark_processing(self, stage_id: str, now: datetime | None = None) -> StageRun:
        """Move a stage to processing. Every earlier stage must be completed.

        Args:
            stage_id: Stage to start
            now: Current time (for deterministic testing)
        """
        position = self._index.get(stage_id)
        if position is None:
            raise PipelineDefinitionError(f"Unknown stage id: {stage_id}")
        for earlier in self.runs[:position]:
            if earlier.status != StageStatus.COMPLETED:
                raise InvalidStageTransitionError(stage_id, self.runs[position].status, StageStatus.PROCESSING)

        run = self._transition(stage_id, StageStatus.PROCESSING)
        run.started_at = now or datetime.now(UTC)
        self._notify()
        return run

    def mark_completed(self, stage_id: str, output: dict, now: datetime | None = None) -> StageRun:
        run = self._transition(stage_id, StageStatus.COMPLETED)
        run.output = output
        run.finished_at = now or datetime.now(UTC)
        self._notify()
        return run

    def mark_error(
        self,
        stage_id: str,
        message: str,
        error_type: str | None = None,
        now: datetime | None = None,
    ) -> StageRun:
        run = self._transition(stage_id, StageStatus.ERROR)
        run.error_message = message
        run.error_type = error_type
        run.finished_at = now or datetime.now(UTC)
        self._notify()
        return run

    def _transition(self, stage_id: str, target: StageStatus) -> StageRun:
        run = self.run_for(stage_id)
        if target not in self.TRANSITIONS[run.status]:
            raise InvalidStageTransitionError(stage_id, run.status, target)
        run.status = target
        return run

    def _notify(self) -> None:
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

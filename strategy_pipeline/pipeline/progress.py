"""Progress reporting: read-only projection of a live PipelineExecution.

Never writes to the execution and never invents a status: a stage that has
not been reached reports whatever its StageRun holds (waiting).
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass

from strategy_pipeline.pipeline.execution import PipelineExecution
from strategy_pipeline.schemas.pipeline import StageStatus


@dataclass(frozen=True)
class StageSummary:
    stage_id: str
    title: str
    description: str
    status: StageStatus
    error_message: str | None = None

    def to_dict(self) -> dict:
        data = {
            "stage_id": self.stage_id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
        }
        if self.error_message is not None:
            data["error_message"] = self.error_message
        return data


def compute_percent_complete(statuses: list[StageStatus]) -> int:
    """Integer percentage 0-100 of completed stages.

    Pure function -- deterministic, no side effects.
    """
    if not statuses:
        return 0
    completed = sum(1 for status in statuses if status == StageStatus.COMPLETED)
    return int((completed / len(statuses)) * 100)


class ProgressReporter:
    """Read model over one execution, for progress displays."""

    def __init__(self, execution: PipelineExecution):
        self.execution = execution

    @property
    def is_finished(self) -> bool:
        return self.execution.is_finished

    def snapshot(self) -> list[StageSummary]:
        """Current status of every stage, in stage order."""
        return [
            StageSummary(
                stage_id=run.stage_id,
                title=run.title,
                description=run.description,
                status=run.status,
                error_message=run.error_message,
            )
            for run in self.execution.runs
        ]

    def percent_complete(self) -> int:
        return compute_percent_complete([run.status for run in self.execution.runs])

    async def stream(self) -> AsyncIterator[list[StageSummary]]:
        """Yield the current snapshot, then a fresh one each time the execution changes.

        Stops after the snapshot that shows the execution finished. An
        abandoned execution never finishes, so consumers own their timeout.
        """
        while True:
            seen = self.execution.version
            yield self.snapshot()
            if self.execution.is_finished:
                return
            await self.execution.wait_for_change(seen)

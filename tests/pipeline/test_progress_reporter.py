"""Tests for the progress read model over live executions."""

import asyncio

import pytest

from strategy_pipeline.generation.client_fake import GenerationClientFake
from strategy_pipeline.pipeline.progress import ProgressReporter, compute_percent_complete
from strategy_pipeline.schemas.pipeline import PipelineType, StageStatus

pytestmark = pytest.mark.unit


class TestComputePercentComplete:
    def test_empty_returns_zero(self):
        assert compute_percent_complete([]) == 0

    def test_partial(self):
        statuses = [StageStatus.COMPLETED, StageStatus.PROCESSING, StageStatus.WAITING]
        assert compute_percent_complete(statuses) == 33

    def test_all_completed(self):
        assert compute_percent_complete([StageStatus.COMPLETED] * 3) == 100

    def test_error_does_not_count(self):
        assert compute_percent_complete([StageStatus.COMPLETED, StageStatus.ERROR]) == 50


class TestSnapshot:
    def test_initial_snapshot_all_waiting(self, make_runner):
        execution = make_runner(GenerationClientFake([])).create_execution(PipelineType.FRAMEWORK_3C)

        snapshot = ProgressReporter(execution).snapshot()

        assert [summary.to_dict() for summary in snapshot] == [
            {
                "stage_id": run.stage_id,
                "title": run.title,
                "description": run.description,
                "status": "waiting",
            }
            for run in execution.runs
        ]

    @pytest.mark.asyncio
    async def test_snapshot_after_failure(self, make_runner, three_c_input):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="service_error", fail_at=1)
        runner = make_runner(client)
        execution = runner.create_execution(PipelineType.FRAMEWORK_3C)
        reporter = ProgressReporter(execution)

        await runner.run(PipelineType.FRAMEWORK_3C, three_c_input, execution=execution)

        snapshot = reporter.snapshot()
        assert [summary.status for summary in snapshot] == [
            StageStatus.COMPLETED,
            StageStatus.ERROR,
            StageStatus.WAITING,
        ]
        assert "529" in snapshot[1].error_message
        assert "error_message" not in snapshot[2].to_dict()
        assert reporter.is_finished
        assert reporter.percent_complete() == 33


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_observes_every_stage_until_finished(self, make_runner, fake_3c_client, three_c_input):
        runner = make_runner(fake_3c_client)
        execution = runner.create_execution(PipelineType.FRAMEWORK_3C)
        reporter = ProgressReporter(execution)

        async def collect():
            return [snapshot async for snapshot in reporter.stream()]

        collector = asyncio.create_task(collect())
        await asyncio.sleep(0)
        await runner.run(PipelineType.FRAMEWORK_3C, three_c_input, execution=execution)
        snapshots = await asyncio.wait_for(collector, timeout=1)

        assert [summary.status for summary in snapshots[0]] == [StageStatus.WAITING] * 3
        assert [summary.status for summary in snapshots[-1]] == [StageStatus.COMPLETED] * 3
        seen_processing = {
            summary.stage_id
            for snapshot in snapshots
            for summary in snapshot
            if summary.status == StageStatus.PROCESSING
        }
        assert seen_processing == {"initial_analysis", "deep_analysis", "final_recommendations"}

    @pytest.mark.asyncio
    async def test_stream_never_reports_unreached_stage_as_started(self, make_runner, three_c_input):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="transport_error", fail_at=0)
        runner = make_runner(client)
        execution = runner.create_execution(PipelineType.FRAMEWORK_3C)
        reporter = ProgressReporter(execution)

        async def collect():
            return [snapshot async for snapshot in reporter.stream()]

        collector = asyncio.create_task(collect())
        await asyncio.sleep(0)
        await runner.run(PipelineType.FRAMEWORK_3C, three_c_input, execution=execution)
        snapshots = await asyncio.wait_for(collector, timeout=1)

        for snapshot in snapshots:
            assert snapshot[1].status == StageStatus.WAITING
            assert snapshot[2].status == StageStatus.WAITING
        assert snapshots[-1][0].status == StageStatus.ERROR

    @pytest.mark.asyncio
    async def test_stream_of_finished_execution_yields_once(self, make_runner, fake_3c_client, three_c_input):
        runner = make_runner(fake_3c_client)
        execution = runner.create_execution(PipelineType.FRAMEWORK_3C)
        await runner.run(PipelineType.FRAMEWORK_3C, three_c_input, execution=execution)

        snapshots = [snapshot async for snapshot in ProgressReporter(execution).stream()]

        assert len(snapshots) == 1

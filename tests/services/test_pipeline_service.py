"""Tests for PipelineService: caller-level retry, artifact hand-off and shortcuts."""

import asyncio

import pytest
from tenacity import wait_fixed, wait_none
from tenacity.wait import wait_base

from strategy_pipeline.core.exceptions import InputValidationError
from strategy_pipeline.generation.client_fake import HAPPY_PATH_OUTPUTS, GenerationClientFake
from strategy_pipeline.pipeline.runner import PipelineFailure, PipelineSuccess
from strategy_pipeline.schemas.artifacts import AnalysisResult, ConceptArtifact, RequirementDocument
from strategy_pipeline.schemas.pipeline import PipelineType, StageStatus
from strategy_pipeline.services.pipeline_service import ArtifactStore, InMemoryArtifactStore, PipelineService

pytestmark = pytest.mark.unit


@pytest.fixture
def store():
    return InMemoryArtifactStore()


@pytest.fixture
def make_service(make_runner, settings, store):
    """Factory: PipelineService with the given client, retry attempts and no wait."""

    def _make(client, attempts: int = 1):
        service_settings = settings.model_copy(update={"pipeline_retry_attempts": attempts})
        return PipelineService(make_runner(client), store=store, settings=service_settings, wait=wait_none())

    return _make


def test_in_memory_store_satisfies_protocol(store):
    assert isinstance(store, ArtifactStore)


def test_default_wait_is_fixed_interval(make_runner, settings):
    service_settings = settings.model_copy(update={"pipeline_retry_wait_seconds": 0.5})

    service = PipelineService(make_runner(GenerationClientFake([])), settings=service_settings)

    assert isinstance(service.wait, wait_base)
    assert isinstance(service.wait, wait_fixed)
    assert service.wait.wait_fixed == 0.5


class TestRun:
    @pytest.mark.asyncio
    async def test_success_saved_to_store(self, make_service, store, fake_3c_client, three_c_input):
        result = await make_service(fake_3c_client).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineSuccess)
        assert store.saved == [(PipelineType.FRAMEWORK_3C, result.artifact)]

    @pytest.mark.asyncio
    async def test_failure_not_saved(self, make_service, store, three_c_input):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="transport_error", fail_at=1)

        result = await make_service(client).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineFailure)
        assert store.saved == []

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, make_service, three_c_input):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="transport_error", fail_at=0)

        result = await make_service(client).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineFailure)
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_reruns_whole_pipeline(self, make_service, store, three_c_input):
        failing = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="transport_error", fail_at=1)
        happy = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C)
        client = GenerationClientFake(failing.script + happy.script)

        result = await make_service(client, attempts=2).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineSuccess)
        # 2 calls in the failed attempt, then all 3 stages again from the start
        assert client.call_count == 5
        assert client.prompts[2] == client.prompts[0]
        assert len(store.saved) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_return_last_failure(self, make_service, three_c_input):
        first = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="service_error", fail_at=0)
        second = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario="transport_error", fail_at=0)
        client = GenerationClientFake(first.script + second.script)

        result = await make_service(client, attempts=2).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineFailure)
        assert result.error_type == "TransportError"
        assert client.call_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("scenario", ["malformed_response", "missing_keys"])
    async def test_non_transient_failures_not_retried(self, make_service, three_c_input, scenario):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C, scenario=scenario, fail_at=0)

        result = await make_service(client, attempts=3).run(PipelineType.FRAMEWORK_3C, three_c_input)

        assert isinstance(result, PipelineFailure)
        assert client.call_count == 1

    @pytest.mark.asyncio
    async def test_input_errors_raised_not_retried(self, make_service):
        client = GenerationClientFake([])

        with pytest.raises(InputValidationError):
            await make_service(client, attempts=3).run(PipelineType.FRAMEWORK_3C, {"company": "only"})
        assert client.call_count == 0


class TestShortcuts:
    @pytest.mark.asyncio
    async def test_analyze_framework(self, make_service, three_c_input):
        client = GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C)

        result = await make_service(client).analyze_framework("3C", three_c_input)

        assert isinstance(result.artifact, AnalysisResult)

    @pytest.mark.asyncio
    async def test_generate_concept(self, make_service):
        client = GenerationClientFake.for_pipeline(PipelineType.CONCEPT_GENERATION)

        result = await make_service(client).generate_concept(
            [{"title": "自社3C分析", "analysis_type": "3C", "content": {"company": "経理SaaS"}}],
            conditions={"timeline": "6か月"},
        )

        assert isinstance(result.artifact, ConceptArtifact)
        assert result.artifact.applied_constraints.timeline == "6か月"

    @pytest.mark.asyncio
    async def test_refine_concept(self, make_service, concept_artifact):
        client = GenerationClientFake.for_pipeline(PipelineType.CONCEPT_REFINEMENT)

        result = await make_service(client).refine_concept(concept_artifact, {"budget": "100万円"})

        assert result.artifact.previous.title == concept_artifact.title

    @pytest.mark.asyncio
    async def test_generate_and_refine_requirements(self, make_service, concept_artifact):
        generated = await make_service(
            GenerationClientFake.for_pipeline(PipelineType.REQUIREMENT_GENERATION)
        ).generate_requirements(concept_artifact)
        refined = await make_service(
            GenerationClientFake.for_pipeline(PipelineType.REQUIREMENT_REFINEMENT)
        ).refine_requirements(generated.artifact, {"timeline": "3か月"})

        assert isinstance(generated.artifact, RequirementDocument)
        assert isinstance(refined.artifact, RequirementDocument)

    def test_render_uses_configured_language(self, make_service, requirement_document):
        text = make_service(GenerationClientFake([])).render(requirement_document)

        assert text.startswith(f"# {HAPPY_PATH_OUTPUTS['requirements']['title']}\n")
        assert "## 技術スタック\n" in text


@pytest.mark.asyncio
async def test_start_returns_live_reporter(make_service, store, fake_3c_client, three_c_input):
    reporter, task = make_service(fake_3c_client).start(PipelineType.FRAMEWORK_3C, three_c_input)

    snapshots = [snapshot async for snapshot in reporter.stream()]
    result = await asyncio.wait_for(task, timeout=1)

    assert isinstance(result, PipelineSuccess)
    assert [summary.status for summary in snapshots[-1]] == [StageStatus.COMPLETED] * 3
    assert store.saved[0][1] is result.artifact

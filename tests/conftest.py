"""Shared test fixtures for all test groups."""

import copy

import pytest

from strategy_pipeline.core.config import Settings
from strategy_pipeline.generation.client_fake import HAPPY_PATH_OUTPUTS, GenerationClientFake
from strategy_pipeline.pipeline.runner import PipelineRunner
from strategy_pipeline.schemas.artifacts import ConceptArtifact, RequirementDocument
from strategy_pipeline.schemas.pipeline import PipelineType


@pytest.fixture
def settings():
    """Settings independent of the environment and any .env file."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        output_language="ja",
        max_concept_candidates=3,
        pipeline_retry_attempts=1,
        pipeline_retry_wait_seconds=0,
    )


@pytest.fixture
def three_c_input():
    """3C input form as a caller would submit it."""
    return {
        "company": "中小企業向け経理SaaSを提供する従業員80名の企業",
        "customer": "経理担当者が1〜2名の中小企業",
        "competitors": "大手会計ソフトベンダーと低価格の新興SaaS",
    }


@pytest.fixture
def concept_artifact():
    """Concept artifact as produced by the concept generation pipeline."""
    primary = HAPPY_PATH_OUTPUTS["propose"]["candidates"][0]
    return ConceptArtifact(
        **primary,
        summary=HAPPY_PATH_OUTPUTS["summarize"],
        correlation=HAPPY_PATH_OUTPUTS["correlate"],
    )


@pytest.fixture
def requirement_document():
    """Complete requirement document with every optional section."""
    return RequirementDocument.model_validate(copy.deepcopy(HAPPY_PATH_OUTPUTS["requirements"]))


@pytest.fixture
def fake_3c_client():
    """GenerationClientFake scripted for one happy-path 3C run."""
    return GenerationClientFake.for_pipeline(PipelineType.FRAMEWORK_3C)


@pytest.fixture
def make_runner(settings):
    """Factory: PipelineRunner around the given client with test settings."""

    def _make(client):
        return PipelineRunner(client, settings=settings)

    return _make

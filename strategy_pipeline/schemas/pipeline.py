"""Pipeline types, stage status values and per-pipeline input forms."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from strategy_pipeline.schemas.artifacts import (
    ConceptArtifact,
    NonEmptyText,
    RefinementConstraints,
    RequirementDocument,
)


class FrameworkKind(StrEnum):
    """Analysis frameworks supported by the framework-analysis pipelines."""

    THREE_C = "3C"
    FOUR_P = "4P"
    PEST = "PEST"


class PipelineType(StrEnum):
    """Seven pipeline variants. Each maps to one ordered stage sequence."""

    FRAMEWORK_3C = "framework_3c"
    FRAMEWORK_4P = "framework_4p"
    FRAMEWORK_PEST = "framework_pest"
    CONCEPT_GENERATION = "concept_generation"
    CONCEPT_REFINEMENT = "concept_refinement"
    REQUIREMENT_GENERATION = "requirement_generation"
    REQUIREMENT_REFINEMENT = "requirement_refinement"

    @classmethod
    def framework(cls, kind: FrameworkKind | str) -> "PipelineType":
        """Return the framework-analysis pipeline for an analysis kind ("3C", "4P", "PEST")."""
        return _FRAMEWORK_PIPELINES[FrameworkKind(kind)]

    @property
    def framework_kind(self) -> FrameworkKind | None:
        for kind, pipeline_type in _FRAMEWORK_PIPELINES.items():
            if pipeline_type is self:
                return kind
        return None


_FRAMEWORK_PIPELINES: dict[FrameworkKind, PipelineType] = {
    FrameworkKind.THREE_C: PipelineType.FRAMEWORK_3C,
    FrameworkKind.FOUR_P: PipelineType.FRAMEWORK_4P,
    FrameworkKind.PEST: PipelineType.FRAMEWORK_PEST,
}


class StageStatus(StrEnum):
    """StageRun lifecycle. COMPLETED and ERROR are terminal."""

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


# ==================== INPUT FORMS ====================


class ThreeCInput(BaseModel):
    company: NonEmptyText
    customer: NonEmptyText
    competitors: NonEmptyText


class FourPInput(BaseModel):
    product: NonEmptyText
    price: NonEmptyText
    place: NonEmptyText
    promotion: NonEmptyText


class PestInput(BaseModel):
    political: NonEmptyText
    economic: NonEmptyText
    social: NonEmptyText
    technological: NonEmptyText


class SourceAnalysis(BaseModel):
    """A previously saved framework analysis used as concept-generation input."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    analysis_type: str
    content: dict[str, Any]
    result: dict[str, Any] | None = None


class ConceptGenerationInput(BaseModel):
    analyses: list[SourceAnalysis] = Field(..., min_length=1)
    conditions: RefinementConstraints | None = None


class ConceptRefinementInput(BaseModel):
    concept: ConceptArtifact
    constraints: RefinementConstraints


class RequirementGenerationInput(BaseModel):
    concept: ConceptArtifact
    constraints: RefinementConstraints = Field(default_factory=RefinementConstraints)


class RequirementRefinementInput(BaseModel):
    requirement: RequirementDocument
    constraints: RefinementConstraints


INPUT_MODELS: dict[PipelineType, type[BaseModel]] = {
    PipelineType.FRAMEWORK_3C: ThreeCInput,
    PipelineType.FRAMEWORK_4P: FourPInput,
    PipelineType.FRAMEWORK_PEST: PestInput,
    PipelineType.CONCEPT_GENERATION: ConceptGenerationInput,
    PipelineType.CONCEPT_REFINEMENT: ConceptRefinementInput,
    PipelineType.REQUIREMENT_GENERATION: RequirementGenerationInput,
    PipelineType.REQUIREMENT_REFINEMENT: RequirementRefinementInput,
}

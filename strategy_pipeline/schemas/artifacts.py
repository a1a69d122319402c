"""Pydantic schemas for stage outputs and finished artifacts.

Stage output models are the structural contracts a parsed service response
must satisfy before it may cross a stage boundary:
- Framework analyses: InitialAnalysisContent -> <Kind>DeepAnalysisContent -> FinalRecommendationsContent
- Concept generation: ConceptSummaryContent -> ConceptCorrelationContent -> ConceptProposalContent
- Refinements: ConceptCandidate, RequirementDocument (complete replacements)

Artifacts are the merged results handed to the persistence collaborator:
AnalysisResult, ConceptArtifact, RequirementDocument.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

NonEmptyText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class StageOutput(BaseModel):
    """Base for stage output contracts. Unknown keys are dropped on validation."""

    model_config = ConfigDict(extra="ignore")


# ==================== SHARED ====================


class RefinementConstraints(BaseModel):
    """Free-form conditions applied when generating or refining an artifact.

    The four named fields mirror the refinement form; any extra key the caller
    supplies is kept and passed to the prompt as-is.
    """

    model_config = ConfigDict(extra="allow")

    budget: str | None = None
    timeline: str | None = None
    team_size: str | None = None
    technical_constraints: str | None = None


# ==================== FRAMEWORK ANALYSIS ====================


class InitialAnalysisContent(StageOutput):
    key_points: list[str] = Field(..., description="Most important observations across all dimensions")
    opportunities: list[str] = Field(..., description="Opportunities the situation opens up")
    challenges: list[str] = Field(..., description="Challenges and weaknesses to address")


class ThreeCDeepAnalysisContent(StageOutput):
    company_insights: list[str] = Field(..., description="Insights about our own company")
    customer_insights: list[str] = Field(..., description="Insights about customers and the market")
    competitor_insights: list[str] = Field(..., description="Insights about competitors")
    recommendations: list[str] = Field(..., description="Recommendations drawn from the insights")


class FourPDeepAnalysisContent(StageOutput):
    product_insights: list[str] = Field(..., description="Insights about the product")
    price_insights: list[str] = Field(..., description="Insights about pricing")
    place_insights: list[str] = Field(..., description="Insights about distribution channels")
    promotion_insights: list[str] = Field(..., description="Insights about promotion")
    recommendations: list[str] = Field(..., description="Recommendations drawn from the insights")


class PestDeepAnalysisContent(StageOutput):
    political_insights: list[str] = Field(..., description="Insights about political factors")
    economic_insights: list[str] = Field(..., description="Insights about economic factors")
    social_insights: list[str] = Field(..., description="Insights about social factors")
    technological_insights: list[str] = Field(..., description="Insights about technological factors")
    recommendations: list[str] = Field(..., description="Recommendations drawn from the insights")


class FinalRecommendationsContent(StageOutput):
    strategic_moves: list[str] = Field(..., description="Strategic moves to make")
    action_items: list[str] = Field(..., description="Concrete next actions")
    risk_factors: list[str] = Field(..., description="Risks to watch while executing")


class AnalysisResult(BaseModel):
    """Framework analysis artifact: one section per stage, in stage order."""

    initial_analysis: InitialAnalysisContent
    deep_analysis: dict[str, list[str]]
    final_recommendations: FinalRecommendationsContent


# ==================== CONCEPT ====================


class ConceptSummaryContent(StageOutput):
    key_points: list[str] = Field(..., description="Key points shared by the source analyses")
    opportunities: list[str] = Field(..., description="Opportunities found in the source analyses")
    challenges: list[str] = Field(..., description="Challenges found in the source analyses")


class ConceptCorrelationContent(StageOutput):
    insights: list[str] = Field(..., description="Insights that only appear when frameworks are combined")
    opportunities: list[str] = Field(..., description="Cross-framework opportunities")
    risks: list[str] = Field(..., description="Cross-framework risks")


class ConceptCandidate(StageOutput):
    title: NonEmptyText = Field(..., description="Short product concept name")
    value_proposition: str = Field(..., description="Value delivered to the customer")
    target_customer: str = Field(..., description="Who the concept is for")
    advantage: str = Field(..., description="Why we win against alternatives")


class ConceptProposalContent(StageOutput):
    candidates: list[ConceptCandidate] = Field(..., description="Concept candidates, best first")


class ConceptArtifact(ConceptCandidate):
    """Concept artifact: the primary candidate plus the context it came from.

    previous holds the headline fields before the latest refinement.
    """

    alternatives: list[ConceptCandidate] = Field(default_factory=list)
    summary: ConceptSummaryContent | None = None
    correlation: ConceptCorrelationContent | None = None
    applied_constraints: RefinementConstraints | None = None
    previous: ConceptCandidate | None = None


# ==================== REQUIREMENT DOCUMENT ====================


class Purpose(StageOutput):
    background: str
    goals: list[str] = Field(default_factory=list)
    expected_effects: list[str] = Field(default_factory=list)


class Feature(StageOutput):
    name: NonEmptyText
    priority: Literal["high", "medium", "low"]
    description: str
    acceptance_criteria: list[str] = Field(default_factory=list)

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class NonFunctionalRequirements(StageOutput):
    performance: list[str] = Field(default_factory=list)
    security: list[str] = Field(default_factory=list)
    availability: list[str] = Field(default_factory=list)
    scalability: list[str] = Field(default_factory=list)
    maintainability: list[str] = Field(default_factory=list)


class ExternalApi(StageOutput):
    name: str
    purpose: str
    endpoint: str
    auth_method: str


class InternalApi(StageOutput):
    name: str
    purpose: str
    endpoint: str
    request_response: str


class ApiRequirements(StageOutput):
    external_apis: list[ExternalApi] = Field(default_factory=list)
    internal_apis: list[InternalApi] = Field(default_factory=list)


class Screen(StageOutput):
    name: str
    path: str
    description: str
    main_features: list[str] = Field(default_factory=list)


class TechStack(StageOutput):
    frontend: list[str]
    backend: list[str]
    database: list[str]
    infrastructure: list[str]


class UiUxRequirements(StageOutput):
    design_system: str
    layout: str
    responsive: bool
    accessibility: list[str] = Field(default_factory=list)
    special_features: list[str] = Field(default_factory=list)


class SchedulePhase(StageOutput):
    name: str
    duration: str
    tasks: list[str] = Field(default_factory=list)


class Schedule(StageOutput):
    phases: list[SchedulePhase]


class RequirementDocument(StageOutput):
    """Web application requirement document.

    Required: title, overview, target_users, features (at least one), tech_stack, schedule.
    The remaining sections are optional and omitted from rendering when absent.
    """

    title: NonEmptyText
    purpose: Purpose | None = None
    overview: str
    target_users: str
    features: list[Feature] = Field(..., min_length=1)
    non_functional_requirements: NonFunctionalRequirements | None = None
    api_requirements: ApiRequirements | None = None
    screen_list: list[Screen] | None = None
    tech_stack: TechStack
    ui_ux_requirements: UiUxRequirements | None = None
    schedule: Schedule

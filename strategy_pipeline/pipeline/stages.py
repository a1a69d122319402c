"""Stage definitions: the declarative, ordered stage sequence of each pipeline type.

A StageDefinition pairs a prompt builder with the output contract the parsed
service response must satisfy. Adding a pipeline type means declaring its
stages here; the runner's control flow never changes.
"""

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from pydantic import BaseModel, ValidationError

from strategy_pipeline.core.exceptions import (
    EmptyResultError,
    PipelineDefinitionError,
    SchemaValidationError,
)
from strategy_pipeline.pipeline import prompts
from strategy_pipeline.schemas.artifacts import (
    ConceptCandidate,
    ConceptCorrelationContent,
    ConceptProposalContent,
    ConceptSummaryContent,
    FinalRecommendationsContent,
    FourPDeepAnalysisContent,
    InitialAnalysisContent,
    PestDeepAnalysisContent,
    RequirementDocument,
    StageOutput,
    ThreeCDeepAnalysisContent,
)
from strategy_pipeline.schemas.pipeline import FrameworkKind, PipelineType

PromptBuilder = Callable[[Mapping[str, dict], BaseModel], str]

DEEP_ANALYSIS_MODELS: dict[FrameworkKind, type[StageOutput]] = {
    FrameworkKind.THREE_C: ThreeCDeepAnalysisContent,
    FrameworkKind.FOUR_P: FourPDeepAnalysisContent,
    FrameworkKind.PEST: PestDeepAnalysisContent,
}

# Progress display text per language: stage_id -> (title, description)
STAGE_TEXT: dict[str, dict[str, tuple[str, str]]] = {
    "ja": {
        "initial_analysis": ("初期分析", "入力内容から要点・機会・課題を抽出します"),
        "deep_analysis": ("詳細分析", "初期分析を基に各要素の洞察を深掘りします"),
        "final_recommendations": ("最終提案", "戦略的施策とアクションを提案します"),
        "summarize": ("分析データの統合", "選択された分析を統合し、要点を抽出します"),
        "correlate": ("相関分析", "フレームワーク間の関係から洞察を導きます"),
        "propose": ("コンセプト生成", "商品コンセプトの候補を生成します"),
        "refine_concept": ("コンセプト調整", "条件に合わせてコンセプトを調整します"),
        "generate_requirements": ("要件書生成", "詳細な要件定義を行います"),
        "refine_requirements": ("要件書の更新", "変更内容を反映した要件書を作成します"),
    },
    "en": {
        "initial_analysis": ("Initial analysis", "Extract key points, opportunities and challenges from the input"),
        "deep_analysis": ("Deep analysis", "Deepen the initial analysis into per-dimension insights"),
        "final_recommendations": ("Final recommendations", "Propose strategic moves and action items"),
        "summarize": ("Integrate analyses", "Integrate the selected analyses and extract key points"),
        "correlate": ("Correlate frameworks", "Derive insights from connections between frameworks"),
        "propose": ("Generate concepts", "Generate product concept candidates"),
        "refine_concept": ("Refine concept", "Adjust the concept to the given conditions"),
        "generate_requirements": ("Generate requirements", "Write the detailed requirement document"),
        "refine_requirements": ("Update requirements", "Rewrite the requirement document with the requested changes"),
    },
}


@dataclass(frozen=True)
class StageDefinition:
    """One generative call plus the contract its validated output must meet.

    non_empty_fields names list fields that must hold at least one item;
    an empty list there raises EmptyResultError rather than SchemaValidationError.
    """

    id: str
    title: str
    description: str
    prompt_builder: PromptBuilder
    output_model: type[StageOutput]
    non_empty_fields: tuple[str, ...] = field(default=())

    def build_prompt(self, prior_outputs: Mapping[str, dict], original_input: BaseModel) -> str:
        """Build this stage's prompt from validated prior outputs and the original input.

        Prior outputs are deep-copied so a builder can never mutate them.
        """
        return self.prompt_builder(copy.deepcopy(dict(prior_outputs)), original_input)

    def validate_output(self, raw: Any) -> dict:
        """Check a parsed response against the output contract.

        Returns:
            The validated output as plain JSON-compatible data (unknown keys dropped)

        Raises:
            SchemaValidationError: Missing key or wrong value kind
            EmptyResultError: A non_empty_fields list came back empty
        """
        try:
            validated = self.output_model.model_validate(raw)
        except ValidationError as exc:
            raise SchemaValidationError(self.id, _describe_problems(exc)) from exc

        for field_name in self.non_empty_fields:
            if not getattr(validated, field_name):
                raise EmptyResultError(self.id, field_name)

        return validated.model_dump(mode="json")


def _describe_problems(exc: ValidationError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        problems.append(f"{location}: {error['msg']}")
    return problems


def validate_stage_sequence(stages: Sequence[StageDefinition]) -> None:
    """Fail fast on an empty or malformed stage list.

    Raises:
        PipelineDefinitionError: No stages, blank id, or duplicate ids
    """
    if not stages:
        raise PipelineDefinitionError("Pipeline has no stages")
    seen: set[str] = set()
    for stage in stages:
        if not stage.id:
            raise PipelineDefinitionError("Stage id must be non-empty")
        if stage.id in seen:
            raise PipelineDefinitionError(f"Duplicate stage id: {stage.id}")
        seen.add(stage.id)


# ==================== PROMPT BUILDERS ====================


def _build_initial_analysis(kind: FrameworkKind, language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    return prompts.INITIAL_ANALYSIS_PROMPT.format(
        framework_name=prompts.FRAMEWORK_NAMES[kind],
        framework_input=prompts.format_framework_input(kind, form),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(InitialAnalysisContent),
    )


def _build_deep_analysis(kind: FrameworkKind, language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    model = DEEP_ANALYSIS_MODELS[kind]
    insight_keys = ", ".join(name for name in model.model_fields if name.endswith("_insights"))
    return prompts.DEEP_ANALYSIS_PROMPT.format(
        framework_name=prompts.FRAMEWORK_NAMES[kind],
        framework_input=prompts.format_framework_input(kind, form),
        initial_analysis=prompts.to_prompt_json(prior["initial_analysis"]),
        insight_keys=insight_keys,
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(model),
    )


def _build_final_recommendations(
    kind: FrameworkKind, language: str, prior: Mapping[str, dict], form: BaseModel
) -> str:
    return prompts.FINAL_RECOMMENDATIONS_PROMPT.format(
        framework_name=prompts.FRAMEWORK_NAMES[kind],
        initial_analysis=prompts.to_prompt_json(prior["initial_analysis"]),
        deep_analysis=prompts.to_prompt_json(prior["deep_analysis"]),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(FinalRecommendationsContent),
    )


def _conditions_text(conditions: BaseModel | None) -> str:
    if conditions is None:
        return "(none)"
    data = conditions.model_dump(mode="json", exclude_none=True)
    return prompts.to_prompt_json(data) if data else "(none)"


def _build_concept_summary(language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    analyses = [analysis.model_dump(mode="json", exclude_none=True) for analysis in form.analyses]
    return prompts.CONCEPT_SUMMARIZE_PROMPT.format(
        analyses=prompts.to_prompt_json(analyses),
        conditions=_conditions_text(form.conditions),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(ConceptSummaryContent),
    )


def _build_concept_correlation(language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    frameworks = sorted({analysis.analysis_type for analysis in form.analyses})
    return prompts.CONCEPT_CORRELATE_PROMPT.format(
        frameworks=", ".join(frameworks),
        summary=prompts.to_prompt_json(prior["summarize"]),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(ConceptCorrelationContent),
    )


def _build_concept_proposal(language: str, max_candidates: int, prior: Mapping[str, dict], form: BaseModel) -> str:
    return prompts.CONCEPT_PROPOSE_PROMPT.format(
        summary=prompts.to_prompt_json(prior["summarize"]),
        correlation=prompts.to_prompt_json(prior["correlate"]),
        conditions=_conditions_text(form.conditions),
        max_candidates=max_candidates,
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(ConceptProposalContent),
    )


def _concept_headline(concept: BaseModel) -> dict:
    return ConceptCandidate.model_validate(concept.model_dump()).model_dump(mode="json")


def _build_concept_refinement(language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    return prompts.CONCEPT_REFINE_PROMPT.format(
        concept=prompts.to_prompt_json(_concept_headline(form.concept)),
        constraints=_conditions_text(form.constraints),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(ConceptCandidate),
    )


def _build_requirement_generation(language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    return prompts.REQUIREMENT_GENERATE_PROMPT.format(
        concept=prompts.to_prompt_json(_concept_headline(form.concept)),
        constraints=_conditions_text(form.constraints),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(RequirementDocument),
    )


def _build_requirement_refinement(language: str, prior: Mapping[str, dict], form: BaseModel) -> str:
    return prompts.REQUIREMENT_REFINE_PROMPT.format(
        requirement=prompts.to_prompt_json(form.requirement),
        constraints=_conditions_text(form.constraints),
        language=prompts.LANGUAGE_NAMES[language],
        shape=prompts.describe_shape(RequirementDocument),
    )


# ==================== STAGE SEQUENCES ====================


def _stage(
    stage_id: str,
    language: str,
    builder: PromptBuilder,
    output_model: type[StageOutput],
    non_empty_fields: tuple[str, ...] = (),
) -> StageDefinition:
    title, description = STAGE_TEXT[language][stage_id]
    return StageDefinition(
        id=stage_id,
        title=title,
        description=description,
        prompt_builder=builder,
        output_model=output_model,
        non_empty_fields=non_empty_fields,
    )


def _framework_stages(kind: FrameworkKind, language: str, max_candidates: int) -> tuple[StageDefinition, ...]:
    return (
        _stage("initial_analysis", language, partial(_build_initial_analysis, kind, language), InitialAnalysisContent),
        _stage("deep_analysis", language, partial(_build_deep_analysis, kind, language), DEEP_ANALYSIS_MODELS[kind]),
        _stage(
            "final_recommendations",
            language,
            partial(_build_final_recommendations, kind, language),
            FinalRecommendationsContent,
        ),
    )


def _concept_generation_stages(language: str, max_candidates: int) -> tuple[StageDefinition, ...]:
    return (
        _stage("summarize", language, partial(_build_concept_summary, language), ConceptSummaryContent),
        _stage("correlate", language, partial(_build_concept_correlation, language), ConceptCorrelationContent),
        _stage(
            "propose",
            language,
            partial(_build_concept_proposal, language, max_candidates),
            ConceptProposalContent,
            non_empty_fields=("candidates",),
        ),
    )


def _concept_refinement_stages(language: str, max_candidates: int) -> tuple[StageDefinition, ...]:
    return (_stage("refine_concept", language, partial(_build_concept_refinement, language), ConceptCandidate),)


def _requirement_generation_stages(language: str, max_candidates: int) -> tuple[StageDefinition, ...]:
    return (
        _stage(
            "generate_requirements",
            language,
            partial(_build_requirement_generation, language),
            RequirementDocument,
        ),
    )


def _requirement_refinement_stages(language: str, max_candidates: int) -> tuple[StageDefinition, ...]:
    return (
        _stage(
            "refine_requirements",
            language,
            partial(_build_requirement_refinement, language),
            RequirementDocument,
        ),
    )


_STAGE_FACTORIES: dict[PipelineType, Callable[[str, int], tuple[StageDefinition, ...]]] = {
    PipelineType.FRAMEWORK_3C: partial(_framework_stages, FrameworkKind.THREE_C),
    PipelineType.FRAMEWORK_4P: partial(_framework_stages, FrameworkKind.FOUR_P),
    PipelineType.FRAMEWORK_PEST: partial(_framework_stages, FrameworkKind.PEST),
    PipelineType.CONCEPT_GENERATION: _concept_generation_stages,
    PipelineType.CONCEPT_REFINEMENT: _concept_refinement_stages,
    PipelineType.REQUIREMENT_GENERATION: _requirement_generation_stages,
    PipelineType.REQUIREMENT_REFINEMENT: _requirement_refinement_stages,
}


def get_stage_definitions(
    pipeline_type: PipelineType | str,
    language: str = "ja",
    max_candidates: int = 3,
) -> tuple[StageDefinition, ...]:
    """Resolve the ordered stage sequence for a pipeline type.

    Args:
        pipeline_type: Pipeline variant (enum member or its string value)
        language: "ja" or "en"; drives stage titles and the prompt output language
        max_candidates: Upper bound on concept candidates requested from the service

    Raises:
        PipelineDefinitionError: Unknown pipeline type or language, or malformed sequence
    """
    try:
        pipeline_type = PipelineType(pipeline_type)
    except ValueError as exc:
        raise PipelineDefinitionError(f"Unknown pipeline type: {pipeline_type}") from exc
    if language not in STAGE_TEXT:
        raise PipelineDefinitionError(f"Unsupported language: {language}")

    factory = _STAGE_FACTORIES.get(pipeline_type)
    if factory is None:
        raise PipelineDefinitionError(f"No stages declared for pipeline type: {pipeline_type}")

    stages = factory(language, max_candidates)
    validate_stage_sequence(stages)
    return stages

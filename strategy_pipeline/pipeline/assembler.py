"""Artifact assembly: pure mapping from validated stage outputs to the final artifact.

Called by the runner only after every stage completed. No I/O, no service calls.
"""

from collections.abc import Callable, Mapping

from pydantic import BaseModel

from strategy_pipeline.core.exceptions import PipelineDefinitionError
from strategy_pipeline.schemas.artifacts import (
    AnalysisResult,
    ConceptArtifact,
    ConceptCandidate,
    RequirementDocument,
)
from strategy_pipeline.schemas.pipeline import PipelineType

Assembler = Callable[[Mapping[str, dict], BaseModel, int], BaseModel]


def _require(outputs: Mapping[str, dict], stage_id: str) -> dict:
    if stage_id not in outputs:
        raise PipelineDefinitionError(f"Missing output of stage '{stage_id}' during assembly")
    return outputs[stage_id]


def _assemble_analysis(outputs: Mapping[str, dict], original_input: BaseModel, max_candidates: int) -> AnalysisResult:
    return AnalysisResult(
        initial_analysis=_require(outputs, "initial_analysis"),
        deep_analysis=_require(outputs, "deep_analysis"),
        final_recommendations=_require(outputs, "final_recommendations"),
    )


def _assemble_concept(outputs: Mapping[str, dict], original_input: BaseModel, max_candidates: int) -> ConceptArtifact:
    # First candidate becomes the concept; the rest are kept as alternatives
    candidates = _require(outputs, "propose")["candidates"][: max(max_candidates, 1)]
    primary, alternatives = candidates[0], candidates[1:]
    return ConceptArtifact(
        **primary,
        alternatives=alternatives,
        summary=_require(outputs, "summarize"),
        correlation=_require(outputs, "correlate"),
        applied_constraints=original_input.conditions,
    )


def _assemble_refined_concept(
    outputs: Mapping[str, dict], original_input: BaseModel, max_candidates: int
) -> ConceptArtifact:
    prior: ConceptArtifact = original_input.concept
    refined = _require(outputs, "refine_concept")
    previous = ConceptCandidate.model_validate(prior.model_dump())
    return prior.model_copy(
        update={
            **refined,
            "applied_constraints": original_input.constraints,
            "previous": previous,
        },
        deep=True,
    )


def _assemble_requirements(stage_id: str) -> Assembler:
    def assemble(outputs: Mapping[str, dict], original_input: BaseModel, max_candidates: int) -> RequirementDocument:
        return RequirementDocument.model_validate(_require(outputs, stage_id))

    return assemble


_ASSEMBLERS: dict[PipelineType, Assembler] = {
    PipelineType.FRAMEWORK_3C: _assemble_analysis,
    PipelineType.FRAMEWORK_4P: _assemble_analysis,
    PipelineType.FRAMEWORK_PEST: _assemble_analysis,
    PipelineType.CONCEPT_GENERATION: _assemble_concept,
    PipelineType.CONCEPT_REFINEMENT: _assemble_refined_concept,
    PipelineType.REQUIREMENT_GENERATION: _assemble_requirements("generate_requirements"),
    PipelineType.REQUIREMENT_REFINEMENT: _assemble_requirements("refine_requirements"),
}


def assemble_artifact(
    pipeline_type: PipelineType,
    outputs: Mapping[str, dict],
    original_input: BaseModel,
    max_candidates: int = 3,
) -> BaseModel:
    """Merge validated stage outputs into the pipeline's artifact.

    Args:
        pipeline_type: Pipeline variant that produced the outputs
        outputs: Validated outputs keyed by stage id
        original_input: Parsed input form of the invocation
        max_candidates: Concept candidates kept beyond this count are dropped

    Returns:
        AnalysisResult, ConceptArtifact or RequirementDocument

    Raises:
        PipelineDefinitionError: Unknown pipeline type or a stage output is missing
    """
    assembler = _ASSEMBLERS.get(pipeline_type)
    if assembler is None:
        raise PipelineDefinitionError(f"No assembler for pipeline type: {pipeline_type}")
    return assembler(outputs, original_input, max_candidates)

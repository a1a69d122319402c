"""Staged generation pipeline: stage definitions, execution state, runner, assembly and rendering."""

from strategy_pipeline.pipeline.assembler import assemble_artifact
from strategy_pipeline.pipeline.execution import InvalidStageTransitionError, PipelineExecution, StageRun
from strategy_pipeline.pipeline.markdown_exporter import MarkdownExporter
from strategy_pipeline.pipeline.progress import ProgressReporter, StageSummary
from strategy_pipeline.pipeline.runner import PipelineFailure, PipelineResult, PipelineRunner, PipelineSuccess
from strategy_pipeline.pipeline.stages import StageDefinition, get_stage_definitions

__all__ = [
    "InvalidStageTransitionError",
    "MarkdownExporter",
    "PipelineExecution",
    "PipelineFailure",
    "PipelineResult",
    "PipelineRunner",
    "PipelineSuccess",
    "ProgressReporter",
    "StageDefinition",
    "StageRun",
    "StageSummary",
    "assemble_artifact",
    "get_stage_definitions",
]

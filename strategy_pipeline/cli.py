"""Command-line entry point.

Usage:
    strategy-pipeline run framework_3c --input form.json [--fake] [--format json|markdown]
    strategy-pipeline stages concept_generation
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import structlog

from strategy_pipeline.core.config import get_settings
from strategy_pipeline.core.exceptions import InputValidationError, PipelineDefinitionError
from strategy_pipeline.core.logging import configure_structlog
from strategy_pipeline.generation.client_fake import GenerationClientFake
from strategy_pipeline.generation.client_real import AnthropicGenerationClient
from strategy_pipeline.pipeline.runner import PipelineRunner, PipelineSuccess
from strategy_pipeline.pipeline.stages import get_stage_definitions
from strategy_pipeline.schemas.pipeline import PipelineType
from strategy_pipeline.services.pipeline_service import PipelineService

logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_PIPELINE_FAILED = 1
EXIT_BAD_INPUT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="strategy-pipeline",
        description="Generate strategy artifacts through staged generation pipelines",
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: DEBUG when DEBUG=true, else INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pipeline_choices = [pipeline_type.value for pipeline_type in PipelineType]

    run_parser = subparsers.add_parser("run", help="Run a pipeline and print the artifact")
    run_parser.add_argument("pipeline", choices=pipeline_choices)
    run_parser.add_argument("--input", "-i", default="-", help="JSON input form file ('-' reads stdin)")
    run_parser.add_argument("--format", "-f", choices=["json", "markdown"], default="markdown")
    run_parser.add_argument("--title", default=None, help="Document heading for markdown output")
    run_parser.add_argument("--fake", action="store_true", help="Use canned responses instead of the API")

    stages_parser = subparsers.add_parser("stages", help="List the stages of a pipeline")
    stages_parser.add_argument("pipeline", choices=pipeline_choices)

    return parser


def _read_input(source: str) -> dict:
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InputValidationError(f"Input is not valid JSON: {exc.msg} (line {exc.lineno})") from exc


def _build_service(pipeline_type: PipelineType, fake: bool) -> PipelineService:
    settings = get_settings()
    if fake:
        client = GenerationClientFake.for_pipeline(pipeline_type)
    else:
        client = AnthropicGenerationClient()
    return PipelineService(PipelineRunner(client, settings=settings), settings=settings)


async def _run(args: argparse.Namespace) -> int:
    pipeline_type = PipelineType(args.pipeline)
    form_input = _read_input(args.input)
    service = _build_service(pipeline_type, args.fake)
    result = await service.run(pipeline_type, form_input)

    if not isinstance(result, PipelineSuccess):
        print(
            json.dumps(
                {
                    "failed_at_stage": result.failed_at_stage,
                    "error": result.error,
                    "error_type": result.error_type,
                    "completed_stages": [run.stage_id for run in result.completed_stages],
                },
                ensure_ascii=False,
                indent=2,
            ),
            file=sys.stderr,
        )
        return EXIT_PIPELINE_FAILED

    if args.format == "json":
        print(json.dumps(result.artifact.model_dump(mode="json"), ensure_ascii=False, indent=2))
    else:
        print(service.render(result.artifact, title=args.title), end="")
    return EXIT_OK


def _list_stages(args: argparse.Namespace) -> int:
    settings = get_settings()
    stages = get_stage_definitions(
        args.pipeline,
        language=settings.output_language,
        max_candidates=settings.max_concept_candidates,
    )
    for position, stage in enumerate(stages, start=1):
        print(f"{position}. {stage.id}: {stage.title} - {stage.description}")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_structlog(
        log_level=args.log_level or ("DEBUG" if settings.debug else "INFO"),
        json_logs=not settings.debug,
    )

    try:
        if args.command == "stages":
            return _list_stages(args)
        return asyncio.run(_run(args))
    except (InputValidationError, PipelineDefinitionError, OSError) as exc:
        logger.error("cli_input_rejected", error=str(exc), error_type=type(exc).__name__)
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_BAD_INPUT


if __name__ == "__main__":
    sys.exit(main())

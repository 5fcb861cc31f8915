"""Legacy Bridge command-line entry point.

Usage:
    legacy-bridge run PAYROLL.cbl
    legacy-bridge run src/*.cbl --target-language Python --no-explanation
    legacy-bridge run PAYROLL.cbl --type analyze_only --architecture
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from legacy_bridge.config import settings
from legacy_bridge.llm import AnthropicGenerator, OpenAIEmbedder
from legacy_bridge.memory import MemoryStore
from legacy_bridge.pipeline import OrchestratorConfig, WorkflowOrchestrator, WorkflowType
from legacy_bridge.stages import build_default_stages

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="legacy-bridge", description="Modernize legacy COBOL/AS400 source files"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run a workflow over one or more source files")
    run.add_argument("files", nargs="+", type=Path, metavar="FILE")
    run.add_argument(
        "--type",
        dest="workflow_type",
        default=WorkflowType.FULL_MODERNIZATION.value,
        choices=[t.value for t in WorkflowType],
    )
    run.add_argument("--target-language", default="Java")
    run.add_argument("--target-framework", default=None)
    run.add_argument(
        "--style",
        dest="modernization_style",
        default="gradual",
        choices=["gradual", "conservative", "aggressive", "api-first"],
    )
    run.add_argument("--no-validation", action="store_true")
    run.add_argument("--no-explanation", action="store_true")
    run.add_argument(
        "--architecture",
        action="store_true",
        help="Also print the architecture report built from the processed files",
    )
    return parser


def build_orchestrator(args: argparse.Namespace) -> WorkflowOrchestrator:
    memory = MemoryStore.get()
    embedder = OpenAIEmbedder() if settings.openai_api_key else None
    if embedder is None:
        logger.warning("OPENAI_API_KEY is empty — memory integration disabled")
    stages = build_default_stages(AnthropicGenerator(), memory, embedder)
    config = OrchestratorConfig(
        enable_validation=not args.no_validation,
        enable_explanation=not args.no_explanation,
    )
    return WorkflowOrchestrator(stages, memory=memory, embedder=embedder, config=config)


async def run(args: argparse.Namespace) -> int:
    inputs = []
    for path in args.files:
        if not path.is_file():
            print(f"ERROR: file not found: {path}", file=sys.stderr)
            return 2
        inputs.append({"code": path.read_text(errors="replace"), "file_name": path.name})

    orchestrator = build_orchestrator(args)
    options = {
        "target_language": args.target_language,
        "target_framework": args.target_framework,
        "modernization_style": args.modernization_style,
    }
    try:
        if len(inputs) == 1:
            outcome = await orchestrator.execute_workflow(inputs[0], args.workflow_type, **options)
            outcomes = [outcome]
            report = {"results": [o.to_dict() for o in outcomes]}
        else:
            batch = await orchestrator.execute_batch_workflow(inputs, args.workflow_type, **options)
            outcomes = batch.results
            report = {
                "batch_id": batch.batch_id,
                "summary": batch.summary,
                "results": [o.to_dict() for o in outcomes],
            }

        if args.architecture:
            report["architecture"] = await MemoryStore.get().analyze_architecture()
    finally:
        orchestrator.shutdown()

    print(json.dumps(report, indent=2, default=str))
    return 0 if all(o.success for o in outcomes) else 1


def main() -> None:
    args = build_parser().parse_args()
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is empty — generation calls will fail")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

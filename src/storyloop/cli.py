"""Command line interface for the storyloop pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Sequence

import yaml
from dotenv import load_dotenv

from .config import LLMConfig, PipelineConfig, StageModels
from .io import ArtifactIO, load_brief
from .notify import speak
from .story import CycleController, GatePolicy, StoryStages, decide_gate
from .story.prompts import PromptBuilder
from .story.schemas import Critique, Plan, Retell

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storyloop",
        description="Draft, critique and revise micro-fiction until it passes the publish gate.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    subparsers = parser.add_subparsers(dest="command")

    run = _add_command(subparsers, "run", "End-to-end: draft → critique → aggregate → revise → retell → gate.")
    run.add_argument("--bible", required=True, help="Story bible (YAML or JSON).")
    run.add_argument("--out", default=None, help="Output root for numbered run directories.")
    _register_model_arguments(run, writer=True, judges=True, aggregator=True)
    _register_gate_arguments(run)
    run.add_argument(
        "--parallel-judges",
        action="store_true",
        help="Query both judges concurrently.",
    )

    draft = _add_command(subparsers, "draft", "Create a first draft from the story bible.")
    draft.add_argument("--bible", required=True, help="Story bible (YAML or JSON).")
    draft.add_argument("--out", required=True, help="Draft output file.")
    _register_model_arguments(draft, writer=True)

    critique = _add_command(subparsers, "critique", "Run both judges' focus groups.")
    critique.add_argument("--story", required=True, help="Story file to critique.")
    critique.add_argument("--out", required=True, help="Output directory.")
    _register_model_arguments(critique, judges=True)

    aggregate = _add_command(subparsers, "aggregate", "Merge overlapping issues into a plan.")
    aggregate.add_argument("--story", required=True, help="Story file the critiques refer to.")
    aggregate.add_argument("--a", required=True, help="Critique A JSON.")
    aggregate.add_argument("--b", required=True, help="Critique B JSON.")
    aggregate.add_argument("--out", required=True, help="Output plan JSON.")
    _register_model_arguments(aggregate, aggregator=True)

    revise = _add_command(subparsers, "revise", "Apply must-fix items from a plan.")
    revise.add_argument("--bible", required=True, help="Story bible (YAML or JSON).")
    revise.add_argument("--story", required=True, help="Story file to revise.")
    revise.add_argument("--plan", required=True, help="Plan JSON from 'aggregate'.")
    revise.add_argument("--out", required=True, help="Revised story output file.")
    _register_model_arguments(revise, writer=True)

    retell = _add_command(subparsers, "retell", "Ask both judges for two-sentence retells.")
    retell.add_argument("--story", required=True, help="Story file to retell.")
    retell.add_argument("--out", required=True, help="Output directory.")
    _register_model_arguments(retell, judges=True)

    gate = _add_command(subparsers, "gate", "Decide publish from critiques and retells.", dry=False)
    gate.add_argument("--a", required=True, help="Critique A JSON.")
    gate.add_argument("--b", required=True, help="Critique B JSON.")
    gate.add_argument("--ra", required=True, help="Retell A JSON.")
    gate.add_argument("--rb", required=True, help="Retell B JSON.")
    _register_gate_arguments(gate)

    return parser


def _add_command(subparsers, name: str, help_text: str, *, dry: bool = True) -> argparse.ArgumentParser:
    sub = subparsers.add_parser(
        name,
        help=help_text,
        description=help_text,
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    sub.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub.add_argument("--speak", action="store_true", help="Announce progress with macOS 'say'.")
    if dry:
        sub.add_argument("--dry", action="store_true", help="Print prompts and skip API calls.")
    return sub


def _register_model_arguments(
    parser: argparse.ArgumentParser,
    *,
    writer: bool = False,
    judges: bool = False,
    aggregator: bool = False,
) -> None:
    if writer:
        parser.add_argument("--writer", default=None, help="Writer model (e.g. openai/gpt-4o-mini).")
    if judges:
        parser.add_argument(
            "--judge-a",
            dest="judge_a",
            default=None,
            help="Judge A model (e.g. anthropic/claude-sonnet-4-5).",
        )
        parser.add_argument(
            "--judge-b",
            dest="judge_b",
            default=None,
            help="Judge B model (e.g. openrouter/deepseek/deepseek-chat).",
        )
    if aggregator:
        parser.add_argument("--aggregator", default=None, help="Aggregator model (e.g. openai/gpt-5).")


def _register_gate_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--require-retell-match",
        dest="require_retell_match",
        action="store_true",
        help="Also require both judges' retells to match before publishing.",
    )


def _build_config(args: argparse.Namespace) -> PipelineConfig:
    models = StageModels.resolve(
        writer=getattr(args, "writer", None),
        judge_a=getattr(args, "judge_a", None),
        judge_b=getattr(args, "judge_b", None),
        aggregator=getattr(args, "aggregator", None),
    )
    config = PipelineConfig(
        models=models,
        llm=LLMConfig(),
        parallel_judges=getattr(args, "parallel_judges", False),
        require_retell_match=getattr(args, "require_retell_match", False),
    )
    if args.command == "run":
        config = config.with_output_root(args.out)
    return config


def _build_stages(config: PipelineConfig) -> StoryStages:
    return StoryStages(
        config.llm.build_gateway(),
        config.models,
        prompts=PromptBuilder(word_limit=config.word_limit),
        writer_temperature=config.writer_temperature,
        parallel_judges=config.parallel_judges,
    )


def _judge_targets(stages: StoryStages, out_dir: Path, stage: str) -> tuple[Path, Path]:
    first, second = stages.judges
    return out_dir / f"{stage}_{first.name}.json", out_dir / f"{stage}_{second.name}.json"


# ----------------------------------------------------------------------
# Command handlers
# ----------------------------------------------------------------------

def handle_run(args: argparse.Namespace) -> int:
    config = _build_config(args)
    brief = load_brief(args.bible)
    stages = _build_stages(config)
    if args.dry:
        print(stages.draft_prompt(brief))
        print("Dry run - skipping API calls")
        return EXIT_OK

    logger.debug("Models: %s", config.models.to_dict())
    speak("Starting end-to-end run", args.speak)
    result = CycleController(stages, config).run(brief)
    if result.published:
        print(f"Published '{result.title}' -> {result.run_dir}")
        speak("Publish approved", args.speak)
        return EXIT_OK
    reason = result.record.outcome.reason if result.record.outcome else "unknown"
    print(f"Publish: NO ({reason}) -> {result.run_dir}")
    speak("Max cycles reached", args.speak)
    return EXIT_FAILURE


def handle_draft(args: argparse.Namespace) -> int:
    config = _build_config(args)
    brief = load_brief(args.bible)
    stages = _build_stages(config)
    if args.dry:
        print(stages.draft_prompt(brief))
        return EXIT_OK

    speak("Drafting story", args.speak)
    draft = stages.draft(brief)
    ArtifactIO().write_text(Path(args.out), draft + "\n")
    print(f"Draft saved to {args.out}")
    speak("Draft complete", args.speak)
    return EXIT_OK


def handle_critique(args: argparse.Namespace) -> int:
    config = _build_config(args)
    io_helper = ArtifactIO()
    story = io_helper.read_text(Path(args.story))
    if args.dry:
        print("Dry run - skipping API calls")
        return EXIT_OK

    stages = _build_stages(config)
    speak("Running focus groups", args.speak)
    stages.critique(story, _judge_targets(stages, Path(args.out), "critique"))
    print(f"Critiques saved to {args.out}")
    speak("Critiques complete", args.speak)
    return EXIT_OK


def handle_aggregate(args: argparse.Namespace) -> int:
    config = _build_config(args)
    io_helper = ArtifactIO()
    story = io_helper.read_text(Path(args.story))
    critique_a = io_helper.read_model(Path(args.a), Critique)
    critique_b = io_helper.read_model(Path(args.b), Critique)
    stages = _build_stages(config)
    if args.dry:
        print(stages.prompts.aggregator(story, critique_a, critique_b))
        return EXIT_OK

    speak("Aggregating feedback", args.speak)
    stages.aggregate(story, critique_a, critique_b, target=Path(args.out))
    print(f"Plan saved to {args.out}")
    speak("Aggregation complete", args.speak)
    return EXIT_OK


def handle_revise(args: argparse.Namespace) -> int:
    config = _build_config(args)
    io_helper = ArtifactIO()
    brief = load_brief(args.bible)
    story = io_helper.read_text(Path(args.story))
    plan = io_helper.read_model(Path(args.plan), Plan)
    stages = _build_stages(config)
    if args.dry:
        print(stages.prompts.revise(brief.data, story, plan))
        return EXIT_OK

    speak("Revising story", args.speak)
    revised = stages.revise(brief, story, plan)
    io_helper.write_text(Path(args.out), revised + "\n")
    print(f"Revised story saved to {args.out}")
    speak("Revision complete", args.speak)
    return EXIT_OK


def handle_retell(args: argparse.Namespace) -> int:
    config = _build_config(args)
    story = ArtifactIO().read_text(Path(args.story))
    if args.dry:
        print("Dry run - skipping API calls")
        return EXIT_OK

    stages = _build_stages(config)
    speak("Running retell test", args.speak)
    stages.retell(story, _judge_targets(stages, Path(args.out), "retell"))
    print(f"Retells saved to {args.out}")
    speak("Retell test complete", args.speak)
    return EXIT_OK


def handle_gate(args: argparse.Namespace) -> int:
    io_helper = ArtifactIO()
    result = decide_gate(
        io_helper.read_model(Path(args.a), Critique),
        io_helper.read_model(Path(args.b), Critique),
        io_helper.read_model(Path(args.ra), Retell),
        io_helper.read_model(Path(args.rb), Retell),
        GatePolicy(require_retell_match=args.require_retell_match),
    )

    print("Publish Gate Results:")
    print(f"  Average Ratings: {result.avg_ratings}")
    print(f"  Total Confusions: {result.total_confusions}")
    print(f"  Retell Match: {'yes' if result.retell_match else 'no'}")
    print(f"  Scores Pass: {'yes' if result.scores_pass else 'no'}")
    print(f"  Confusions Pass: {'yes' if result.confusions_pass else 'no'}")
    if result.publish:
        print("PUBLISH: YES")
        speak("Publish approved", args.speak)
        return EXIT_OK
    print(f"PUBLISH: NO ({result.reason})")
    speak("Publish rejected", args.speak)
    return EXIT_FAILURE


COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "run": handle_run,
    "draft": handle_draft,
    "critique": handle_critique,
    "aggregate": handle_aggregate,
    "revise": handle_revise,
    "retell": handle_retell,
    "gate": handle_gate,
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command) if args.command else None
    if handler is None:
        parser.print_help()
        return EXIT_OK

    _configure_logging(args.verbose)
    try:
        return handler(args)
    except (FileNotFoundError, ValueError, RuntimeError, yaml.YAMLError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

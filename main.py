"""CLI entry point: python main.py "Write a haiku about rain" --model gpt-4o-mini"""

import argparse
import asyncio
import sys

from possibilities.engine import build_engine
from possibilities.generation.config import MultiModelResult
from possibilities.generation.scoring import format_confidence
from possibilities.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from possibilities.model_providers.config import GenerationOptions, Message
from possibilities.model_providers.exceptions import PossibilityError


def format_results(result: MultiModelResult, width: int = 60) -> str:
    lines = ["=" * width]
    for rank, candidate in enumerate(result.candidates, 1):
        lines.append(
            f"#{rank}  {candidate.model}  temp={candidate.temperature}  "
            f"confidence={format_confidence(candidate.confidence)}"
        )
        lines.append(candidate.content.strip())
        lines.append("-" * width)
    for model_id, error in result.failed_models.items():
        lines.append(f"FAILED {model_id}: {error}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Possibilities - ranked candidate responses from several models"
    )
    parser.add_argument("prompt", help="User message to respond to")
    parser.add_argument(
        "--model", action="append", dest="models",
        help="Model id (repeatable, default: gpt-4o-mini)",
    )
    parser.add_argument(
        "--variations", type=int, default=None,
        help="Variations per model (default: 3)",
    )
    parser.add_argument(
        "--max-tokens", type=int, default=None,
        help="Token budget per possibility (default: 100)",
    )
    parser.add_argument("--system", default=None, help="Optional system prompt")
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log engine activity to stdout",
    )
    return parser


async def run(args: argparse.Namespace, engine=None) -> MultiModelResult:
    engine = engine or build_engine()
    messages = [Message.user(args.prompt)]
    if args.system:
        messages.insert(0, Message.system(args.system))
    return await engine.generate_multi_model(
        messages,
        args.models or ["gpt-4o-mini"],
        variations_per_model=args.variations,
        base_options=GenerationOptions(max_tokens=args.max_tokens),
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(LoggingConfig(
        level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING,
        format=LogFormat.CONSOLE,
    ))

    try:
        result = asyncio.run(run(args))
    except PossibilityError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(format_results(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())

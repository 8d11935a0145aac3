"""CLI for lesson generation.

Usage:
    lessongen-generate \
        --source data/article.txt \
        --level B1 \
        --lesson-type discussion \
        --output output/lesson.json

    python -m lessongen.cli.generate_lesson --request request.json --output out.json

Features:
- Progressive generation: each section builds on the context of earlier ones
- Per-section token caps with bounded retries
- Progress reporting
- Token usage and quality report
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from lessongen import SUPPORTED_LESSON_TYPES, SUPPORTED_LEVELS, constants
from lessongen.exceptions import LessonGenerationError
from lessongen.generators.orchestrator import PipelineOrchestrator
from lessongen.generators.retry_policy import load_policies
from lessongen.utils.file_io import read_json, read_text, write_json
from lessongen.utils.llm_client import LLMGenerationClient
from lessongen.utils.logging_config import configure_logging
from lessongen.utils.usage_monitor import UsageMonitor
from lessongen.validators.schema import GenerateLessonRequest, ProgressEvent, SourceMetadata

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate a multi-section language lesson from source text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # B1 discussion lesson from an article
  lessongen-generate \\
      --source data/climate_article.txt \\
      --level B1 --lesson-type discussion \\
      --output output/climate_b1.json

  # Travel lesson with the source's own title, using Claude
  lessongen-generate \\
      --source data/lisbon.txt --title "A Weekend in Lisbon" \\
      --level A2 --lesson-type travel \\
      --model claude-sonnet-4-5 \\
      --output output/lisbon_a2.json

  # Full request as JSON (camelCase keys accepted)
  lessongen-generate --request requests/golf.json --output output/golf.json
        """,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--source",
        type=Path,
        help="Plain text file with the source material",
    )
    source.add_argument(
        "--request",
        type=Path,
        help="JSON file holding a full lesson request",
    )

    parser.add_argument(
        "--level",
        choices=SUPPORTED_LEVELS,
        default="B1",
        help="CEFR level (default: B1)",
    )

    parser.add_argument(
        "--lesson-type",
        choices=SUPPORTED_LESSON_TYPES,
        default="discussion",
        help="Lesson type (default: discussion)",
    )

    parser.add_argument(
        "--language",
        default="English",
        help="Target language (default: English)",
    )

    parser.add_argument(
        "--title",
        default=None,
        help="Original title of the source material",
    )

    parser.add_argument(
        "--output",
        required=True,
        type=Path,
        help="Output JSON file path",
    )

    parser.add_argument(
        "--model",
        default=None,
        help=f"LLM model (default: {constants.LLM_MODEL})",
    )

    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help=f"Attempt ceiling per section (default: {constants.MAX_ATTEMPTS})",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=constants.LOG_JSON,
        help="Emit structured JSON logs",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> GenerateLessonRequest:
    """Build the lesson request from a request file or from the source options.

    Raises:
        FileNotFoundError: If the input file doesn't exist
        pydantic.ValidationError: If the request is invalid
    """
    if args.request:
        return GenerateLessonRequest.model_validate(read_json(args.request))

    metadata = SourceMetadata(title=args.title) if args.title else None
    return GenerateLessonRequest(
        source_text=read_text(args.source),
        lesson_type=args.lesson_type,
        cefr_level=args.level,
        target_language=args.language,
        source_metadata=metadata,
    )


def print_progress(event: ProgressEvent) -> None:
    section = f" [{event.section}]" if event.section else ""
    print(f"[{event.progress_percent:3d}%] {event.phase}{section}: {event.step}")


def main(argv=None) -> int:
    """Main CLI entry point."""
    args = parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else constants.LOG_LEVEL,
        log_file=args.log_file,
        json_format=args.json_logs,
        console_output=True,
    )

    try:
        request = build_request(args)
    except FileNotFoundError as e:
        logger.error(f"Input file not found: {e}")
        return 1
    except ValidationError as e:
        logger.error(f"Invalid lesson request: {e}")
        return 1

    logger.info("=" * 80)
    logger.info("Lesson Generation Pipeline")
    logger.info("=" * 80)
    logger.info(f"Lesson type: {request.lesson_type.value}")
    logger.info(f"Level: {request.cefr_level.value}")
    logger.info(f"Language: {request.target_language}")
    logger.info(f"Source: {len(request.source_text)} characters")
    logger.info(f"Output: {args.output}")
    logger.info("=" * 80)

    try:
        client = LLMGenerationClient(model=args.model)
        policies = load_policies(
            constants.RETRY_POLICY_OVERRIDES,
            max_attempts=args.max_attempts or constants.MAX_ATTEMPTS,
        )
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    orchestrator = PipelineOrchestrator(client, policies=policies)
    monitor = UsageMonitor()

    try:
        lesson = orchestrator.generate(request, on_progress=print_progress, monitor=monitor)
    except LessonGenerationError as e:
        logger.error(f"Lesson generation failed: {e}")
        write_json(
            {"error": e.error.model_dump(mode="json"), "token_report": monitor.get_usage_report()},
            args.output,
        )
        monitor.print_report()
        return 1

    write_json(lesson.model_dump(mode="json"), args.output)
    monitor.print_report()

    usage = client.get_usage_summary()
    logger.info(f"Lesson '{lesson.title}' written to {args.output}")
    logger.info(f"Estimated cost: ${usage['estimated_cost_usd']:.4f} ({usage['total_tokens']} tokens)")
    return 0


if __name__ == "__main__":
    sys.exit(main())

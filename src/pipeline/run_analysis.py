"""
CLI entry point for analyzing a sales conversation.

The input file holds the conversation metadata and either transcript
segments or nothing (when ``--audio`` is given):

    {
      "metadata": {"conversation_id": "c-1", "opportunity_id": "o-1", "product_line": "ichef"},
      "segments": [{"speaker": "Sales", "text": "...", "start": 0.0, "end": 4.2}],
      "conversation_count": 2,
      "previous_scores": [35, 38]
    }

Usage:
    python -m src.pipeline.run_analysis --input conversation.json
    python -m src.pipeline.run_analysis --input meta.json --audio call.mp3 --output result.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from src.alerts.evaluator import AlertEvaluator, InMemoryAlertStore, build_evaluation_context
from src.config import settings
from src.errors import AnalysisError
from src.llm.client import OpenAIClient
from src.logging_context import AnalysisIdFilter
from src.pipeline.orchestrator import Orchestrator
from src.schemas.transcript_schema import ConversationMetadata, ProductLine, Transcript
from src.transcription.assembler import TranscriptAssembler
from src.transcription.whisper import WhisperTranscriber

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Score a sales conversation and evaluate deal alerts."
    )
    parser.add_argument(
        "--input",
        type=str,
        required=True,
        help="Path to the conversation JSON file (metadata and segments).",
    )
    parser.add_argument(
        "--audio",
        type=str,
        default=None,
        help="Transcribe this audio file instead of reading segments from the input.",
    )
    parser.add_argument(
        "--product-line",
        choices=[p.value for p in ProductLine],
        default=None,
        help="Override the product line in the metadata.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Overall analysis deadline in seconds.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Path to write the result JSON (default: stdout).",
    )
    parser.add_argument(
        "--performance",
        action="store_true",
        help="Print the pipeline performance report to stderr.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging output.",
    )
    return parser.parse_args(argv)


def load_input(path: Path) -> dict[str, Any]:
    with path.open(encoding="utf-8") as f:
        return json.load(f)


async def analyze(args: argparse.Namespace, payload: dict[str, Any]) -> dict[str, Any]:
    metadata = ConversationMetadata.model_validate(payload["metadata"])
    if args.product_line:
        metadata = metadata.model_copy(update={"product_line": ProductLine(args.product_line)})

    if args.audio:
        audio = Path(args.audio).read_bytes()
        assembler = TranscriptAssembler(settings.transcription)
        transcript = await assembler.transcribe(
            audio, WhisperTranscriber(settings.transcription, settings.model, filename=Path(args.audio).name)
        )
    else:
        transcript = Transcript(segments=payload.get("segments", []))

    orchestrator = Orchestrator(client=OpenAIClient(settings.model), config=settings)
    result = await orchestrator.run(transcript, metadata, timeout=args.timeout)

    ctx = build_evaluation_context(
        result,
        transcript_text=transcript.full_text,
        conversation_count=payload.get("conversation_count", 1),
        previous_scores=payload.get("previous_scores", []),
        opportunity_name=metadata.opportunity_name or "",
    )
    alerts = AlertEvaluator(settings.alerts).evaluate_and_store(ctx, InMemoryAlertStore())

    if args.performance:
        sys.stderr.write(orchestrator.monitor.format_report() + "\n")

    return {
        "result": result.model_dump(mode="json"),
        "alerts": [alert.model_dump(mode="json") for alert in alerts],
    }


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)

    root = logging.getLogger()
    if args.verbose:
        root.setLevel(logging.DEBUG)
    # Tag every line with the conversation being analyzed.
    for handler in root.handlers:
        handler.addFilter(AnalysisIdFilter())
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(analysis_id)s] [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    input_path = Path(args.input)
    if not input_path.exists():
        logger.error("Input file not found: %s", input_path)
        sys.exit(1)
    if args.audio and not Path(args.audio).is_file():
        logger.error("Audio file not found: %s", args.audio)
        sys.exit(1)

    try:
        payload = load_input(input_path)
        output = asyncio.run(analyze(args, payload))
    except (json.JSONDecodeError, KeyError, ValidationError) as exc:
        logger.error("Invalid input file %s: %s", input_path, exc)
        sys.exit(1)
    except AnalysisError as exc:
        logger.error("Analysis failed: %s", exc)
        sys.exit(2)

    text = json.dumps(output, ensure_ascii=False, indent=2)
    if args.output:
        output_path = Path(args.output)
        output_path.write_text(text, encoding="utf-8")
        logger.info("Result written to %s", output_path)
    else:
        sys.stdout.write(text + "\n")


if __name__ == "__main__":
    main()

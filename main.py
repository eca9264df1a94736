"""
Sales-call analyzer entry point.

Usage:
    Analyze a conversation:  python main.py --input conversation.json [--audio call.mp3]
    Offline demo:            python main.py console [--scenario stalled]
"""

import logging
import sys

logger = logging.getLogger(__name__)


def _run_analysis(argv: list[str]) -> None:
    """Run the full pipeline against the configured model (requires API keys)."""
    from src.pipeline.run_analysis import main

    main(argv)


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import main

    main()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        sys.argv = [sys.argv[0]] + sys.argv[2:]
        _run_console_mode()
    else:
        _run_analysis(sys.argv[1:])

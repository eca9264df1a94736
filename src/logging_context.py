"""Analysis ID logging context for tracing one pipeline run across modules.

Agents of the same analysis run concurrently, and several analyses may
share one event loop. Every log record is tagged with the analysis ID of
the task that produced it.

Usage:
    from src.logging_context import get_analysis_logger, set_analysis_id

    set_analysis_id("conv-0042")
    logger = get_analysis_logger(__name__)
    logger.info("Running buyer agent")  # record.analysis_id == "conv-0042"
"""

import logging
from contextvars import ContextVar

_analysis_id: ContextVar[str] = ContextVar("analysis_id", default="NO_ANALYSIS_ID")


def set_analysis_id(analysis_id: str) -> None:
    """Set the analysis ID for the current async context."""
    _analysis_id.set(analysis_id)


def get_analysis_id() -> str:
    return _analysis_id.get()


class AnalysisIdFilter(logging.Filter):
    """Injects analysis_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.analysis_id = _analysis_id.get()  # type: ignore[attr-defined]
        return True


def get_analysis_logger(name: str) -> logging.Logger:
    """Return a logger with the AnalysisIdFilter attached.

    Formatters can then include ``%(analysis_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, AnalysisIdFilter) for f in logger.filters):
        logger.addFilter(AnalysisIdFilter())
    return logger

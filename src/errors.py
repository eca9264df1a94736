"""Exception hierarchy for the analysis pipeline.

Input and configuration problems are raised to the caller. Model service
and parse failures are absorbed by the agent harness and surface as
degraded slots instead.
"""

from typing import Any, Optional


class AnalysisError(Exception):
    """Base class for all pipeline errors."""


class TranscriptValidationError(AnalysisError):
    """The transcript is empty or malformed. Raised before any model call."""


class LLMServiceError(AnalysisError):
    """A model call failed and will not be retried further."""

    def __init__(self, message: str, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransientLLMError(LLMServiceError):
    """A model call failed in a way that is worth retrying."""


class PipelineError(AnalysisError):
    """The pipeline cannot produce a result (e.g. Context agent exhausted retries)."""


class PipelineCancelledError(AnalysisError):
    """The analysis was cancelled or hit its deadline before the first pass finished."""

    def __init__(self, message: str, state: Optional[Any] = None) -> None:
        super().__init__(message)
        self.state = state


class CyclicDependencyError(AnalysisError):
    """The agent dependency graph contains a cycle."""

    def __init__(self, agent_ids: list[str]) -> None:
        super().__init__(f"Cyclic dependency detected among agents: {', '.join(agent_ids)}")
        self.agent_ids = agent_ids


class AgentRegistrationError(AnalysisError):
    """An agent was registered twice or depends on an unknown agent."""


class TranscriptionError(AnalysisError):
    """Audio could not be transcribed."""

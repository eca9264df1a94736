"""
Shared execution harness for all analysis agents.

An agent renders a prompt from the analysis state, makes one model call
(with timeout and retries), and parses the reply into its output record.
Agents never raise for model or parse failures and never write to the
state; they return an ``AgentSlot`` for the orchestrator to store.
"""

import time
from typing import Optional

from src.config import ModelConfig, PipelineConfig
from src.errors import LLMServiceError
from src.llm.client import LLMClient, call_with_retry
from src.llm.result_parser import ResultParser
from src.logging_context import get_analysis_logger
from src.prompts.prompt_templates import (
    build_agent_prompt,
    build_refinement_section,
    format_metadata,
    format_transcript,
)
from src.prompts.system_prompts import build_system_prompt
from src.schemas.agent_outputs import AgentRecord
from src.schemas.analysis_schema import (
    AgentRole,
    AgentSlot,
    AnalysisState,
    Confidence,
    FailureKind,
)

logger = get_analysis_logger(__name__)


class BaseAgent:
    """Base class for the six analysis roles."""

    role: AgentRole
    output_model: type[AgentRecord]
    priority: int = 0

    def __init__(
        self,
        client: LLMClient,
        model_config: Optional[ModelConfig] = None,
        pipeline_config: Optional[PipelineConfig] = None,
        parser: Optional[ResultParser] = None,
    ) -> None:
        self.client = client
        self.model_config = model_config or ModelConfig()
        self.pipeline_config = pipeline_config or PipelineConfig()
        self.parser = parser or ResultParser()

    @property
    def agent_id(self) -> str:
        return self.role.value

    def is_applicable(self, state: AnalysisState) -> bool:
        return True

    def system_prompt(self, state: AnalysisState) -> str:
        return build_system_prompt(self.role, state.metadata.product_line)

    def context_sections(self, state: AnalysisState) -> list[str]:
        """Role-specific prompt sections built from earlier agents' output."""
        return []

    def postprocess(self, record: AgentRecord, state: AnalysisState) -> AgentRecord:
        return record

    def default_record(self, state: AnalysisState) -> AgentRecord:
        return self.postprocess(self.output_model(), state)

    def user_prompt(self, state: AnalysisState) -> str:
        sections = [format_metadata(state.metadata)]
        sections.extend(self.context_sections(state))
        sections.append(format_transcript(state.transcript))
        feedback = state.refinement_feedback.get(self.role)
        if feedback:
            sections.append(build_refinement_section(feedback, state.record(self.role)))
        return build_agent_prompt(sections)

    async def execute(self, state: AnalysisState) -> AgentSlot:
        system_prompt = self.system_prompt(state)
        user_prompt = self.user_prompt(state)
        started = time.monotonic()

        try:
            raw = await call_with_retry(
                lambda: self.client.complete(system_prompt, user_prompt),
                max_retries=self.model_config.max_retries,
                base_delay=self.model_config.retry_base_delay,
                timeout=self.model_config.timeout_seconds,
                label=f"{self.agent_id} agent",
            )
        except LLMServiceError as exc:
            logger.error("%s agent model call failed: %s", self.agent_id, exc)
            return AgentSlot(
                record=self.default_record(state),
                confidence=Confidence.LOW,
                failure=FailureKind.SERVICE,
                error=str(exc),
                attempts=exc.attempts,
            )

        parsed = self.parser.parse(raw, self.output_model)
        record = self.postprocess(parsed.record, state)
        elapsed = time.monotonic() - started

        if not parsed.ok:
            logger.warning(
                "%s agent reply could not be parsed: %s", self.agent_id, "; ".join(parsed.errors)
            )
            return AgentSlot(
                record=record,
                confidence=Confidence.LOW,
                failure=FailureKind.PARSE,
                error="; ".join(parsed.errors) or "unparseable reply",
            )

        logger.info(
            "%s agent finished in %.2fs (confidence=%s)",
            self.agent_id, elapsed, parsed.confidence.value,
        )
        return AgentSlot(record=record, confidence=parsed.confidence)

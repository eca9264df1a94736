"""
Coach agent: coaching notes and in-call alerts for the sales rep.

Runs last and reads every other agent's output.
"""

from typing import cast

from src.agents.base_agent import BaseAgent
from src.prompts.prompt_templates import format_record, format_section
from src.prompts.system_prompts import COACH_COMPETITOR_PROMPT
from src.schemas.agent_outputs import AgentRecord, CoachOutput
from src.schemas.analysis_schema import AgentRole, AnalysisState


class CoachAgent(BaseAgent):
    """Actionable coaching built on the whole analysis."""

    role = AgentRole.COACH
    output_model = CoachOutput
    priority = 50

    def system_prompt(self, state: AnalysisState) -> str:
        prompt = super().system_prompt(state)
        if state.has_competitor:
            prompt += COACH_COMPETITOR_PROMPT
        return prompt

    def context_sections(self, state: AnalysisState) -> list[str]:
        sections = [
            format_record("Context Analysis", state.context_data),
            format_record("Buyer Analysis", state.buyer_data),
            format_record("Seller Analysis", state.seller_data),
            format_record("Summary", state.summary_data),
            format_record("CRM Extraction", state.crm_data),
        ]
        if state.has_competitor:
            sections.append(
                format_section("Competitor Keywords Detected", ", ".join(state.competitor_keywords))
            )
        return sections

    def postprocess(self, record: AgentRecord, state: AnalysisState) -> AgentRecord:
        record = cast(CoachOutput, record)
        if not state.has_competitor and record.competitor_talk_tracks is not None:
            record = record.model_copy(update={"competitor_talk_tracks": None})
        return record

"""
Buyer agent: scores the customer's buying position (PDCM).

The PDCM record it produces is the input to the six-dimension score
mapping. When competitors were mentioned it also analyses them.
"""

from typing import cast

from src.agents.base_agent import BaseAgent
from src.prompts.prompt_templates import format_record, format_section
from src.prompts.system_prompts import BUYER_COMPETITOR_PROMPT
from src.schemas.agent_outputs import AgentRecord, BuyerOutput
from src.schemas.analysis_schema import AgentRole, AnalysisState


class BuyerAgent(BaseAgent):
    """Pain, Decision, Champion and Metrics assessment of the customer."""

    role = AgentRole.BUYER
    output_model = BuyerOutput
    priority = 90

    def system_prompt(self, state: AnalysisState) -> str:
        prompt = super().system_prompt(state)
        if state.has_competitor:
            prompt += BUYER_COMPETITOR_PROMPT
        return prompt

    def context_sections(self, state: AnalysisState) -> list[str]:
        sections = [format_record("Context Analysis", state.context_data)]
        if state.has_competitor:
            sections.append(
                format_section("Competitor Keywords Detected", ", ".join(state.competitor_keywords))
            )
        return sections

    def postprocess(self, record: AgentRecord, state: AnalysisState) -> AgentRecord:
        record = cast(BuyerOutput, record)
        if not state.has_competitor and record.competitor_analysis is not None:
            record = record.model_copy(update={"competitor_analysis": None})
        return record

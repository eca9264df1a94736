"""Seller agent: judges the rep's progress and recommends the next move."""

from src.agents.base_agent import BaseAgent
from src.prompts.prompt_templates import format_record
from src.schemas.agent_outputs import SellerOutput
from src.schemas.analysis_schema import AgentRole, AnalysisState


class SellerAgent(BaseAgent):
    role = AgentRole.SELLER
    output_model = SellerOutput
    priority = 80

    def context_sections(self, state: AnalysisState) -> list[str]:
        return [format_record("Context Analysis", state.context_data)]

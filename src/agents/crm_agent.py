"""CRM extraction agent: pipeline stage, budget, decision makers and timeline."""

from src.agents.base_agent import BaseAgent
from src.prompts.prompt_templates import format_record
from src.schemas.agent_outputs import CRMOutput
from src.schemas.analysis_schema import AgentRole, AnalysisState


class CRMAgent(BaseAgent):
    role = AgentRole.CRM
    output_model = CRMOutput
    priority = 60

    def context_sections(self, state: AnalysisState) -> list[str]:
        return [
            format_record("Context Analysis", state.context_data),
            format_record("Buyer Analysis", state.buyer_data),
        ]

"""
Summary agent: customer follow-up SMS and internal recap.

The SMS goes to the customer as-is, so its length bound is enforced here
rather than trusted to the model.
"""

from typing import cast

from src.agents.base_agent import BaseAgent
from src.logging_context import get_analysis_logger
from src.prompts.prompt_templates import format_record
from src.prompts.system_prompts import build_system_prompt
from src.schemas.agent_outputs import AgentRecord, SummaryOutput
from src.schemas.analysis_schema import AgentRole, AnalysisState
from src.utils import normalize_text, truncate_chars

logger = get_analysis_logger(__name__)


class SummaryAgent(BaseAgent):
    role = AgentRole.SUMMARY
    output_model = SummaryOutput
    priority = 70

    def system_prompt(self, state: AnalysisState) -> str:
        return build_system_prompt(
            self.role,
            state.metadata.product_line,
            sms_max_chars=self.pipeline_config.sms_max_chars,
        )

    def context_sections(self, state: AnalysisState) -> list[str]:
        return [
            format_record("Buyer Analysis", state.buyer_data),
            format_record("Seller Analysis", state.seller_data),
        ]

    def postprocess(self, record: AgentRecord, state: AnalysisState) -> AgentRecord:
        record = cast(SummaryOutput, record)
        limit = self.pipeline_config.sms_max_chars
        sms = normalize_text(record.sms_text)
        if len(sms) > limit:
            logger.info("SMS text trimmed from %d to %d characters", len(sms), limit)
            sms = truncate_chars(sms, limit)
        return record.model_copy(update={"sms_text": sms})

"""
Context agent: establishes the situation before any judgement is made.

Runs first. Every other agent reads its decision-maker, urgency and
barrier findings.
"""

from src.agents.base_agent import BaseAgent
from src.schemas.agent_outputs import ContextOutput
from src.schemas.analysis_schema import AgentRole


class ContextAgent(BaseAgent):
    """Meeting situation, decision maker and urgency."""

    role = AgentRole.CONTEXT
    output_model = ContextOutput
    priority = 100

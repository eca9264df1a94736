from src.agents.base_agent import BaseAgent
from src.agents.buyer_agent import BuyerAgent
from src.agents.coach_agent import CoachAgent
from src.agents.context_agent import ContextAgent
from src.agents.crm_agent import CRMAgent
from src.agents.seller_agent import SellerAgent
from src.agents.summary_agent import SummaryAgent
from src.agents.registry import create_agent, register_agent, get_registered_agents

__all__ = [
    "BaseAgent", "ContextAgent", "BuyerAgent", "SellerAgent", "SummaryAgent",
    "CRMAgent", "CoachAgent",
    "create_agent", "register_agent", "get_registered_agents",
]

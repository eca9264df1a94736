"""
Agent registry: analysis roles resolved by name at runtime.

The pipeline builds its dependency graph from registered factories, so a
new role (or a test double) can be plugged in without touching the
orchestrator.
"""

import logging
from typing import Any, Callable

from src.errors import AgentRegistrationError

logger = logging.getLogger(__name__)

_AGENT_REGISTRY: dict[str, Callable[..., Any]] = {}


def register_agent(name: str, factory: Callable[..., Any], replace: bool = False) -> None:
    """Register an agent factory by name.

    Raises:
        AgentRegistrationError: If the name is taken and ``replace`` is False.
    """
    if name in _AGENT_REGISTRY and not replace:
        raise AgentRegistrationError(f"Agent '{name}' is already registered")
    _AGENT_REGISTRY[name] = factory
    logger.debug("Agent registered: %s", name)


def create_agent(name: str, **kwargs: Any) -> Any:
    """Create an agent instance by registered name.

    Raises:
        KeyError: If the agent name is not registered.
    """
    if name not in _AGENT_REGISTRY:
        registered = list(_AGENT_REGISTRY.keys())
        raise KeyError(f"Agent '{name}' not registered. Available: {registered}")
    return _AGENT_REGISTRY[name](**kwargs)


def get_registered_agents() -> list[str]:
    """Return names of all registered agents."""
    return list(_AGENT_REGISTRY.keys())


def _auto_register() -> None:
    """Auto-register the built-in analysis roles. Called once at import time."""
    from src.agents.buyer_agent import BuyerAgent
    from src.agents.coach_agent import CoachAgent
    from src.agents.context_agent import ContextAgent
    from src.agents.crm_agent import CRMAgent
    from src.agents.seller_agent import SellerAgent
    from src.agents.summary_agent import SummaryAgent

    for agent_cls in (ContextAgent, BuyerAgent, SellerAgent, SummaryAgent, CRMAgent, CoachAgent):
        register_agent(agent_cls.role.value, agent_cls, replace=True)


_auto_register()

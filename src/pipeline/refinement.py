"""
Quality checks that decide which agents get a second attempt.

A policy only reports problems; the orchestrator owns the loop counter
and decides what to re-run. The reasons are fed back into the re-run
prompt.
"""

import logging
from typing import Protocol

from src.schemas.analysis_schema import AgentRole, AnalysisState, Confidence

logger = logging.getLogger(__name__)


class RefinementPolicy(Protocol):
    def review(self, state: AnalysisState) -> dict[AgentRole, str]:
        """Return ``{role: reason}`` for every agent whose output is insufficient."""
        ...


class DefaultRefinementPolicy:
    """Re-run agents with failed, unparseable or hollow output.

    Skipped agents are not requested directly; they re-run as dependents
    of the agent that caused the skip.
    """

    def review(self, state: AnalysisState) -> dict[AgentRole, str]:
        problems: dict[AgentRole, str] = {}

        for role, slot in state.slots.items():
            if slot.skipped:
                continue
            if slot.degraded:
                problems[role] = f"previous attempt failed ({slot.failure.value})"
            elif slot.confidence == Confidence.LOW:
                problems[role] = "previous output had low confidence"

        buyer = state.buyer_data
        if buyer is not None and AgentRole.BUYER not in problems:
            reason = self._check_buyer(state)
            if reason:
                problems[AgentRole.BUYER] = reason

        summary = state.summary_data
        if summary is not None and AgentRole.SUMMARY not in problems and not summary.sms_text:
            problems[AgentRole.SUMMARY] = "customer SMS text is empty"

        coach = state.coach_data
        if coach is not None and AgentRole.COACH not in problems and not coach.coaching_notes:
            problems[AgentRole.COACH] = "coaching notes are empty"

        if problems:
            logger.info(
                "Quality check flagged: %s",
                ", ".join(f"{role.value} ({reason})" for role, reason in problems.items()),
            )
        return problems

    @staticmethod
    def _check_buyer(state: AnalysisState) -> str:
        buyer = state.buyer_data
        pdcm = buyer.pdcm_scores
        if pdcm.is_empty():
            return "all PDCM scores are zero"
        if not pdcm.pain.main_pain and not pdcm.pain.evidence:
            return "no customer pain identified"
        if not pdcm.champion.attitude and not pdcm.champion.evidence:
            return "customer attitude not assessed"
        return ""

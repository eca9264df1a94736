"""
Maps the Buyer agent's PDCM assessment onto the six-dimension score.

Pure and deterministic: the same PDCM record and config always give the
same result.

    Pain                 -> Identify Pain
    Decision             -> Decision Process
    Decision.has_authority -> Economic Buyer
    Champion             -> Champion, Decision Criteria
    Metrics              -> Metrics
"""

import math
from typing import Optional

from src.config import ScoringConfig
from src.schemas.agent_outputs import PDCMScores
from src.schemas.analysis_schema import (
    DimensionScore,
    QualificationScore,
    QualificationScores,
    QualificationStatus,
)

GAP_TEMPLATES: dict[str, str] = {
    "metrics": "No quantified business impact agreed with the customer",
    "economic_buyer": "Budget owner not identified or not engaged",
    "decision_criteria": "Customer's selection criteria are unclear",
    "decision_process": "Decision steps and timeline are unknown",
    "identify_pain": "Customer pain is vague or unconfirmed",
    "champion": "No internal advocate for the purchase",
}

RECOMMENDATION_TEMPLATES: dict[str, str] = {
    "metrics": "Work through the monthly cost of the current process with the customer",
    "economic_buyer": "Ask who signs off on the purchase and arrange a meeting with them",
    "decision_criteria": "Ask what matters most when choosing a system",
    "decision_process": "Confirm who is involved in the decision and by when",
    "identify_pain": "Dig into the biggest daily operational problem and its cost",
    "champion": "Find the person who benefits most and equip them to sell internally",
}


def _round_half_up(value: float) -> int:
    # Epsilon absorbs float error in weighted sums such as 0.15 * 90.
    return int(math.floor(value + 0.5 + 1e-9))


def percent_to_dimension(percent: float) -> int:
    """Convert a 0-100 score to the 0-5 dimension scale."""
    return min(max(_round_half_up(percent / 20), 0), 5)


def economic_buyer_percent(pdcm: PDCMScores, config: ScoringConfig) -> int:
    """Economic-buyer strength derived from decision authority alone."""
    if pdcm.decision.has_authority:
        return config.authority_confirmed_score
    return config.authority_unconfirmed_score


def qualification_status(overall: int, config: ScoringConfig) -> QualificationStatus:
    if overall >= config.high_threshold:
        return QualificationStatus.HIGH
    if overall >= config.medium_threshold:
        return QualificationStatus.MEDIUM
    if overall >= config.low_threshold:
        return QualificationStatus.LOW
    return QualificationStatus.AT_RISK


class ScoreMapper:
    """PDCM to six-dimension qualification score."""

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self.config = config or ScoringConfig()

    def dimension_percents(self, pdcm: PDCMScores) -> dict[str, int]:
        return {
            "metrics": pdcm.metrics.score,
            "economic_buyer": economic_buyer_percent(pdcm, self.config),
            "decision_criteria": pdcm.champion.score,
            "decision_process": pdcm.decision.score,
            "identify_pain": pdcm.pain.score,
            "champion": pdcm.champion.score,
        }

    def overall_score(self, percents: dict[str, int]) -> int:
        weights = self.config.weights()
        total = sum(weights[name] * percents[name] for name in weights)
        return min(max(_round_half_up(total), 0), 100)

    def map(self, pdcm: PDCMScores) -> QualificationScore:
        percents = self.dimension_percents(pdcm)
        evidence = self._evidence(pdcm)
        dimensions = {}
        for name, percent in percents.items():
            score = percent_to_dimension(percent)
            weak = score <= self.config.weak_dimension_score
            dimensions[name] = DimensionScore(
                score=score,
                evidence=evidence[name],
                gaps=[GAP_TEMPLATES[name]] if weak else [],
                recommendations=[RECOMMENDATION_TEMPLATES[name]] if weak else [],
            )

        overall = self.overall_score(percents)
        return QualificationScore(
            dimensions=QualificationScores(**dimensions),
            overall_score=overall,
            status=qualification_status(overall, self.config),
        )

    @staticmethod
    def _evidence(pdcm: PDCMScores) -> dict[str, list[str]]:
        pain, decision, champion, metrics = pdcm.pain, pdcm.decision, pdcm.champion, pdcm.metrics

        metric_evidence = [
            item.description or item.calculation
            for item in metrics.quantified_items
            if item.description or item.calculation
        ]
        if metrics.roi_message:
            metric_evidence.append(metrics.roi_message)

        buyer_evidence = []
        if decision.contact_role:
            authority = "has authority" if decision.has_authority else "no confirmed authority"
            buyer_evidence.append(f"{decision.contact_role} ({authority})")
        if decision.budget_awareness:
            buyer_evidence.append(decision.budget_awareness)

        process_evidence = [text for text in (decision.timeline, decision.risk) if text]
        criteria_evidence = [champion.primary_criteria] if champion.primary_criteria else []

        pain_evidence = list(pain.evidence)
        if pain.main_pain and pain.main_pain not in pain_evidence:
            pain_evidence.insert(0, pain.main_pain)

        return {
            "metrics": metric_evidence,
            "economic_buyer": buyer_evidence,
            "decision_criteria": criteria_evidence,
            "decision_process": process_evidence,
            "identify_pain": pain_evidence,
            "champion": list(champion.evidence),
        }

"""
Assembles the final AnalysisResult from a finished analysis state.

Key findings, next steps and risks are derived from agent output with
fixed rules; no model call happens here.
"""

from typing import Optional

from src.schemas.agent_outputs import (
    BuyerOutput,
    CoachOutput,
    ContextOutput,
    CRMOutput,
    SellerOutput,
    SummaryOutput,
)
from src.schemas.analysis_schema import (
    AnalysisResult,
    AnalysisState,
    Confidence,
    NextStep,
    QualificationScore,
    Risk,
    Severity,
)

WEAK_QUALIFICATION_SCORE = 40
LOW_TRUST_SCORE = 40
NEGATIVE_ATTITUDES = ("negative", "resistant", "hostile", "skeptical", "sceptical", "抗拒", "負面", "懷疑")
FINDING_LABELS = ("Main pain", "Decision maker", "Budget", "Timeline", "Motivation", "Competitors mentioned")


def finding_text(finding: str) -> str:
    """The content of a key finding without its fixed label."""
    label, sep, value = finding.partition(": ")
    if sep and label in FINDING_LABELS:
        return value
    return finding


def extract_key_findings(state: AnalysisState) -> list[str]:
    context: Optional[ContextOutput] = state.context_data
    buyer: Optional[BuyerOutput] = state.buyer_data
    crm: Optional[CRMOutput] = state.crm_data
    summary: Optional[SummaryOutput] = state.summary_data

    findings: list[str] = []
    if buyer and buyer.pdcm_scores.pain.main_pain:
        findings.append(f"Main pain: {buyer.pdcm_scores.pain.main_pain}")
    if context and context.decision_maker:
        confirmed = "confirmed" if context.decision_maker_confirmed else "unconfirmed"
        findings.append(f"Decision maker: {context.decision_maker} ({confirmed})")
    if crm and crm.budget.mentioned:
        findings.append(f"Budget: {crm.budget.range or 'discussed'}")
    if buyer and buyer.pdcm_scores.decision.timeline:
        findings.append(f"Timeline: {buyer.pdcm_scores.decision.timeline}")
    if context and context.customer_motivation:
        findings.append(f"Motivation: {context.customer_motivation}")
    if summary:
        findings.extend(summary.key_decisions)
    if state.has_competitor:
        findings.append(f"Competitors mentioned: {', '.join(state.competitor_keywords)}")
    return _dedupe(findings)


def extract_next_steps(state: AnalysisState) -> list[NextStep]:
    seller: Optional[SellerOutput] = state.seller_data
    crm: Optional[CRMOutput] = state.crm_data
    summary: Optional[SummaryOutput] = state.summary_data
    coach: Optional[CoachOutput] = state.coach_data

    steps: list[NextStep] = []
    seen: set[str] = set()

    def add(action: str, owner: str, priority: str = "Medium") -> None:
        action = action.strip()
        if action and action not in seen:
            seen.add(action)
            steps.append(NextStep(action=action, owner=owner, priority=priority))

    if seller:
        add(seller.next_action.action, "sales", "High")
    if crm:
        for step in crm.next_steps:
            add(step, "sales")
    if summary:
        for item in summary.action_items.sales:
            add(item, "sales")
        for item in summary.action_items.customer:
            add(item, "customer")
    if coach and coach.follow_up.timing:
        method = f" via {coach.follow_up.method}" if coach.follow_up.method else ""
        add(f"Follow up {coach.follow_up.timing}{method}", "sales", "Low")
    return steps


def extract_risks(state: AnalysisState, qualification: QualificationScore) -> list[Risk]:
    buyer: Optional[BuyerOutput] = state.buyer_data
    seller: Optional[SellerOutput] = state.seller_data
    risks: list[Risk] = []

    if qualification.overall_score < WEAK_QUALIFICATION_SCORE:
        risks.append(Risk(
            risk=f"Low qualification score ({qualification.overall_score}) indicates weak qualification",
            severity=Severity.HIGH,
            mitigation="Revisit pain, authority and metrics before investing further",
        ))

    if buyer is not None and _low_trust(buyer):
        risks.append(Risk(
            risk="Low customer trust in the solution",
            severity=Severity.HIGH,
            mitigation="Share references from similar stores and address concerns directly",
        ))

    if state.has_competitor:
        risks.append(Risk(
            risk=f"Competitors mentioned: {', '.join(state.competitor_keywords)}",
            severity=Severity.MEDIUM,
            mitigation="Prepare a differentiation talk track for the next conversation",
        ))

    if seller is not None and seller.safety_alert:
        risks.append(Risk(
            risk="Seller flagged a deal safety concern",
            severity=Severity.HIGH,
            mitigation=seller.strategy_reason or "Review the deal with the sales manager",
        ))
    return risks


def _low_trust(buyer: BuyerOutput) -> bool:
    champion = buyer.pdcm_scores.champion
    attitude = champion.attitude.lower()
    if any(word in attitude for word in NEGATIVE_ATTITUDES):
        return True
    # A zero champion score with no attitude means the buyer record is a default.
    return 0 < champion.score < LOW_TRUST_SCORE


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


def build_result(
    state: AnalysisState,
    qualification: QualificationScore,
    interrupted: bool = False,
) -> AnalysisResult:
    summary = state.summary_data
    coach = state.coach_data
    buyer = state.buyer_data
    degraded = [role.value for role in state.degraded_roles()]
    low_confidence = (
        interrupted
        or bool(degraded)
        or any(slot.confidence == Confidence.LOW for slot in state.slots.values())
    )

    return AnalysisResult(
        conversation_id=state.metadata.conversation_id,
        opportunity_id=state.metadata.opportunity_id,
        qualification=qualification,
        key_findings=extract_key_findings(state),
        next_steps=extract_next_steps(state),
        risks=extract_risks(state, qualification),
        sms_text=summary.sms_text if summary else "",
        summary_markdown=summary.markdown if summary else "",
        coaching_notes=coach.coaching_notes if coach else "",
        crm=state.crm_data,
        competitor_analysis=buyer.competitor_analysis if buyer and state.has_competitor else None,
        has_competitor=state.has_competitor,
        agent_outputs={
            role.value: slot.record.model_dump(mode="json") for role, slot in state.slots.items()
        },
        refinement_count=state.refinement_count,
        low_confidence=low_confidence,
        degraded_agents=degraded,
        interrupted=interrupted,
    )

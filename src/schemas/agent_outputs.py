"""Typed records produced by each analysis agent.

Every field has a safe default, so ``Model()`` is always a valid
"nothing found" record. Unknown keys from the model reply are ignored
and percentage scores are clamped to 0-100.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


def _clamp_percent(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"not a number: {value!r}") from None
    return int(round(min(max(number, 0.0), 100.0)))


Percent = Annotated[int, BeforeValidator(_clamp_percent)]


class AgentRecord(BaseModel):
    """Base for agent output records."""

    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Context agent
# ---------------------------------------------------------------------------


class ContextOutput(AgentRecord):
    decision_maker: str = ""
    decision_maker_confirmed: bool = False
    urgency_level: str = "low"
    deadline_date: Optional[str] = None
    customer_motivation: str = ""
    barriers: list[str] = Field(default_factory=list)
    meta_consistent: bool = True
    meeting_type: str = ""
    decision_makers_present: list[str] = Field(default_factory=list)
    budget_constraint: Optional[str] = None
    timeline_constraint: Optional[str] = None
    store_info: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Buyer agent
# ---------------------------------------------------------------------------


class PainScore(AgentRecord):
    score: Percent = 0
    level: str = "P4"
    main_pain: str = ""
    urgency: str = ""
    quantified_loss: Optional[str] = None
    evidence: list[str] = Field(default_factory=list)


class DecisionScore(AgentRecord):
    score: Percent = 0
    contact_role: str = ""
    has_authority: bool = False
    budget_awareness: str = ""
    timeline: str = ""
    risk: str = ""


class ChampionScore(AgentRecord):
    score: Percent = 0
    attitude: str = ""
    customer_type: str = ""
    primary_criteria: str = ""
    switch_concerns: str = ""
    evidence: list[str] = Field(default_factory=list)


class QuantifiedItem(AgentRecord):
    category: str = ""
    description: str = ""
    monthly_value: float = 0.0
    calculation: str = ""
    customer_confirmed: bool = False


class MetricsScore(AgentRecord):
    score: Percent = 0
    level: str = "M4"
    quantified_items: list[QuantifiedItem] = Field(default_factory=list)
    total_monthly_impact: float = 0.0
    annual_impact: float = 0.0
    roi_message: str = ""


class PDCMScores(AgentRecord):
    """Four-dimension Pain/Decision/Champion/Metrics assessment."""

    pain: PainScore = Field(default_factory=PainScore)
    decision: DecisionScore = Field(default_factory=DecisionScore)
    champion: ChampionScore = Field(default_factory=ChampionScore)
    metrics: MetricsScore = Field(default_factory=MetricsScore)
    total_score: Percent = 0
    deal_probability: str = "low"

    def is_empty(self) -> bool:
        return not any(
            (self.pain.score, self.decision.score, self.champion.score, self.metrics.score)
        )


class NotClosedReason(AgentRecord):
    type: str = ""
    detail: str = ""
    breakthrough_suggestion: str = ""


class CompetitorAnalysis(AgentRecord):
    detected_competitors: list[str] = Field(default_factory=list)
    customer_attitude: str = ""
    threat_level: str = "low"
    our_advantages: list[str] = Field(default_factory=list)
    suggested_responses: list[str] = Field(default_factory=list)


class BuyerOutput(AgentRecord):
    pdcm_scores: PDCMScores = Field(default_factory=PDCMScores)
    pcm_state: str = ""
    not_closed_reason: NotClosedReason = Field(default_factory=NotClosedReason)
    switch_concerns: str = ""
    customer_type: str = ""
    missed_opportunities: list[str] = Field(default_factory=list)
    current_system: str = ""
    competitor_analysis: Optional[CompetitorAnalysis] = None


# ---------------------------------------------------------------------------
# Seller agent
# ---------------------------------------------------------------------------


class SkillsDiagnosis(AgentRecord):
    pain_addressed: bool = False
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class NextAction(AgentRecord):
    action: str = ""
    suggested_script: str = ""
    deadline: str = ""


class SellerOutput(AgentRecord):
    progress_score: Percent = 0
    has_clear_ask: bool = False
    recommended_strategy: str = ""
    strategy_reason: str = ""
    safety_alert: bool = False
    skills_diagnosis: SkillsDiagnosis = Field(default_factory=SkillsDiagnosis)
    next_action: NextAction = Field(default_factory=NextAction)


# ---------------------------------------------------------------------------
# Summary agent
# ---------------------------------------------------------------------------


class HookPoint(AgentRecord):
    customer_interest: str = ""
    customer_quote: str = ""


class ActionItems(AgentRecord):
    sales: list[str] = Field(default_factory=list)
    customer: list[str] = Field(default_factory=list)


class SummaryOutput(AgentRecord):
    sms_text: str = ""
    hook_point: HookPoint = Field(default_factory=HookPoint)
    tone_used: str = ""
    markdown: str = ""
    pain_points: list[str] = Field(default_factory=list)
    solutions: list[str] = Field(default_factory=list)
    key_decisions: list[str] = Field(default_factory=list)
    action_items: ActionItems = Field(default_factory=ActionItems)


# ---------------------------------------------------------------------------
# CRM extraction agent
# ---------------------------------------------------------------------------


class BudgetInfo(AgentRecord):
    range: Optional[str] = None
    mentioned: bool = False
    decision_maker: Optional[str] = None


class DecisionMakerEntry(AgentRecord):
    name: str = ""
    role: str = ""
    influence: str = ""


class TimelineInfo(AgentRecord):
    decision_date: Optional[str] = None
    urgency: str = "low"
    notes: str = ""


class CRMOutput(AgentRecord):
    stage_name: str = ""
    stage_confidence: float = 0.0
    stage_reasoning: str = ""
    budget: BudgetInfo = Field(default_factory=BudgetInfo)
    decision_makers: list[DecisionMakerEntry] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    timeline: TimelineInfo = Field(default_factory=TimelineInfo)
    next_steps: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Coach agent
# ---------------------------------------------------------------------------


class Improvement(AgentRecord):
    area: str = ""
    suggestion: str = ""


class DetectedObjection(AgentRecord):
    type: str = ""
    customer_quote: str = ""
    timestamp_hint: str = ""


class FollowUp(AgentRecord):
    timing: str = ""
    method: str = ""
    notes: str = ""


class CoachOutput(AgentRecord):
    alert_triggered: bool = False
    alert_type: str = "none"
    alert_severity: str = "low"
    alert_message: str = ""
    coaching_notes: str = ""
    strengths: list[str] = Field(default_factory=list)
    improvements: list[Improvement] = Field(default_factory=list)
    detected_objections: list[DetectedObjection] = Field(default_factory=list)
    objection_handling: list[str] = Field(default_factory=list)
    suggested_talk_tracks: list[str] = Field(default_factory=list)
    follow_up: FollowUp = Field(default_factory=FollowUp)
    manager_alert: bool = False
    manager_alert_reason: str = ""
    competitor_talk_tracks: Optional[list[str]] = None

"""Per-analysis state and the final qualification result."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from src.schemas.agent_outputs import (
    AgentRecord,
    BuyerOutput,
    CoachOutput,
    CompetitorAnalysis,
    ContextOutput,
    CRMOutput,
    SellerOutput,
    SummaryOutput,
)
from src.schemas.transcript_schema import ConversationMetadata, Transcript


class AgentRole(str, Enum):
    CONTEXT = "context"
    BUYER = "buyer"
    SELLER = "seller"
    SUMMARY = "summary"
    CRM = "crm"
    COACH = "coach"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FailureKind(str, Enum):
    """Why an agent slot holds a default record."""

    SERVICE = "service"
    PARSE = "parse"
    SKIPPED = "skipped"


class QualificationStatus(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    AT_RISK = "At Risk"


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass
class AgentSlot:
    """One agent's latest output plus how much it can be trusted."""

    record: AgentRecord
    confidence: Confidence = Confidence.HIGH
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    attempts: int = 1

    @property
    def degraded(self) -> bool:
        return self.failure is not None

    @property
    def skipped(self) -> bool:
        return self.failure == FailureKind.SKIPPED


@dataclass
class AnalysisState:
    """Mutable accumulator for one analysis request.

    Agents read the transcript, metadata and earlier slots; only the
    orchestrator writes slots. A populated slot is replaced on refinement
    but never cleared.
    """

    transcript: Transcript
    metadata: ConversationMetadata
    max_refinements: int = 2
    refinement_count: int = 0
    has_competitor: bool = False
    competitor_keywords: list[str] = field(default_factory=list)
    slots: dict[AgentRole, AgentSlot] = field(default_factory=dict)
    refinement_feedback: dict[AgentRole, str] = field(default_factory=dict)

    def set_slot(self, role: AgentRole, slot: AgentSlot) -> None:
        if slot is None:
            raise ValueError(f"Cannot clear slot for {role.value}")
        self.slots[role] = slot

    def get_slot(self, role: AgentRole) -> Optional[AgentSlot]:
        return self.slots.get(role)

    def record(self, role: AgentRole) -> Optional[AgentRecord]:
        slot = self.slots.get(role)
        return slot.record if slot else None

    @property
    def context_data(self) -> Optional[ContextOutput]:
        return self.record(AgentRole.CONTEXT)  # type: ignore[return-value]

    @property
    def buyer_data(self) -> Optional[BuyerOutput]:
        return self.record(AgentRole.BUYER)  # type: ignore[return-value]

    @property
    def seller_data(self) -> Optional[SellerOutput]:
        return self.record(AgentRole.SELLER)  # type: ignore[return-value]

    @property
    def summary_data(self) -> Optional[SummaryOutput]:
        return self.record(AgentRole.SUMMARY)  # type: ignore[return-value]

    @property
    def crm_data(self) -> Optional[CRMOutput]:
        return self.record(AgentRole.CRM)  # type: ignore[return-value]

    @property
    def coach_data(self) -> Optional[CoachOutput]:
        return self.record(AgentRole.COACH)  # type: ignore[return-value]

    def degraded_roles(self) -> list[AgentRole]:
        return [role for role, slot in self.slots.items() if slot.degraded]


class DimensionScore(BaseModel):
    """One qualification dimension on a 0-5 scale."""

    score: int = Field(ge=0, le=5)
    evidence: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class QualificationScores(BaseModel):
    metrics: DimensionScore
    economic_buyer: DimensionScore
    decision_criteria: DimensionScore
    decision_process: DimensionScore
    identify_pain: DimensionScore
    champion: DimensionScore

    def as_dict(self) -> dict[str, int]:
        return {name: dim.score for name, dim in self}


class QualificationScore(BaseModel):
    """Six-dimension score plus the weighted overall."""

    dimensions: QualificationScores
    overall_score: int = Field(ge=0, le=100)
    status: QualificationStatus


class NextStep(BaseModel):
    action: str
    owner: str = "sales"
    priority: str = "Medium"


class Risk(BaseModel):
    risk: str
    severity: Severity
    mitigation: str = ""


class AnalysisResult(BaseModel):
    """Everything one analysis produces for downstream consumers."""

    conversation_id: str
    opportunity_id: str
    qualification: QualificationScore
    key_findings: list[str] = Field(default_factory=list)
    next_steps: list[NextStep] = Field(default_factory=list)
    risks: list[Risk] = Field(default_factory=list)
    sms_text: str = ""
    summary_markdown: str = ""
    coaching_notes: str = ""
    crm: Optional[CRMOutput] = None
    competitor_analysis: Optional[CompetitorAnalysis] = None
    has_competitor: bool = False
    agent_outputs: dict[str, dict[str, Any]] = Field(default_factory=dict)
    refinement_count: int = 0
    low_confidence: bool = False
    degraded_agents: list[str] = Field(default_factory=list)
    interrupted: bool = False
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def overall_score(self) -> int:
        return self.qualification.overall_score

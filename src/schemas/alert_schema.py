"""Alert records produced by the rule engine and kept in an alert store."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    CLOSE_NOW = "close_now"
    MISSING_DM = "missing_dm"
    MANAGER_ESCALATION = "manager_escalation"


class AlertSeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class AlertStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class AlertContext(BaseModel):
    """Display-only details attached to an alert."""

    meddic_score: Optional[int] = None
    dimension_scores: dict[str, int] = Field(default_factory=dict)
    trigger_reason: str = ""
    suggested_action: str = ""
    related_data: dict[str, Any] = Field(default_factory=dict)


class AlertResult(BaseModel):
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    context: AlertContext = Field(default_factory=AlertContext)


class EvaluationContext(BaseModel):
    """Inputs every alert rule sees."""

    opportunity_id: str
    conversation_id: str
    opportunity_name: str = ""
    overall_score: int = 0
    dimension_scores: dict[str, int] = Field(default_factory=dict)
    key_findings: list[str] = Field(default_factory=list)
    transcript_text: str = ""
    conversation_count: int = 1
    recent_scores: list[int] = Field(default_factory=list)  # most recent first


class StoredAlert(BaseModel):
    id: str
    opportunity_id: str
    conversation_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    context: AlertContext = Field(default_factory=AlertContext)
    status: AlertStatus = AlertStatus.PENDING
    created_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution: Optional[str] = None

"""
Alert evaluation, storage and lifecycle.

``evaluate`` is pure: it applies every rule and returns what fired.
``evaluate_and_store`` adds de-duplication against the store: a rule that
fires while an alert of the same type is still pending for the
opportunity does not create a second one.

Status lifecycle:
    pending -> acknowledged -> resolved | dismissed
    pending -> resolved | dismissed
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol

from src.alerts.rules import DEFAULT_RULES, AlertRule
from src.config import AlertConfig
from src.errors import AnalysisError
from src.schemas.alert_schema import (
    AlertResult,
    AlertStatus,
    AlertType,
    EvaluationContext,
    StoredAlert,
)
from src.schemas.analysis_schema import AnalysisResult

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AlertStatus, set[AlertStatus]] = {
    AlertStatus.PENDING: {AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.ACKNOWLEDGED: {AlertStatus.RESOLVED, AlertStatus.DISMISSED},
    AlertStatus.RESOLVED: set(),
    AlertStatus.DISMISSED: set(),
}


class InvalidAlertTransitionError(AnalysisError):
    """Raised when an alert cannot move to the requested status."""


class AlertNotFoundError(AnalysisError):
    """Raised when an alert ID is not in the store."""


class AlertStore(Protocol):
    def find_pending(self, opportunity_id: str, alert_type: AlertType) -> Optional[StoredAlert]:
        ...

    def save(self, alert: StoredAlert) -> StoredAlert:
        ...

    def get(self, alert_id: str) -> Optional[StoredAlert]:
        ...

    def list_alerts(
        self, opportunity_id: Optional[str] = None, status: Optional[AlertStatus] = None
    ) -> list[StoredAlert]:
        ...


class InMemoryAlertStore:
    """Dict-backed store for tests, the CLI and single-process use."""

    def __init__(self) -> None:
        self._alerts: dict[str, StoredAlert] = {}

    def find_pending(self, opportunity_id: str, alert_type: AlertType) -> Optional[StoredAlert]:
        for alert in self._alerts.values():
            if (
                alert.opportunity_id == opportunity_id
                and alert.type == alert_type
                and alert.status == AlertStatus.PENDING
            ):
                return alert
        return None

    def save(self, alert: StoredAlert) -> StoredAlert:
        self._alerts[alert.id] = alert
        return alert

    def get(self, alert_id: str) -> Optional[StoredAlert]:
        return self._alerts.get(alert_id)

    def list_alerts(
        self, opportunity_id: Optional[str] = None, status: Optional[AlertStatus] = None
    ) -> list[StoredAlert]:
        return [
            alert for alert in self._alerts.values()
            if (opportunity_id is None or alert.opportunity_id == opportunity_id)
            and (status is None or alert.status == status)
        ]


def build_evaluation_context(
    result: AnalysisResult,
    transcript_text: str = "",
    conversation_count: int = 1,
    previous_scores: Optional[list[int]] = None,
    opportunity_name: str = "",
) -> EvaluationContext:
    """Context for one finished analysis.

    ``previous_scores`` are earlier overall scores for the opportunity,
    most recent first; the current score is prepended.
    """
    return EvaluationContext(
        opportunity_id=result.opportunity_id,
        conversation_id=result.conversation_id,
        opportunity_name=opportunity_name,
        overall_score=result.overall_score,
        dimension_scores=result.qualification.dimensions.as_dict(),
        key_findings=list(result.key_findings),
        transcript_text=transcript_text,
        conversation_count=conversation_count,
        recent_scores=[result.overall_score] + list(previous_scores or []),
    )


class AlertEvaluator:
    """Applies alert rules in a fixed order."""

    def __init__(
        self,
        config: Optional[AlertConfig] = None,
        rules: Optional[list[AlertRule]] = None,
    ) -> None:
        self.config = config or AlertConfig()
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def evaluate(self, ctx: EvaluationContext) -> list[AlertResult]:
        alerts = []
        for rule in self.rules:
            alert = rule(ctx, self.config)
            if alert is not None:
                alerts.append(alert)
        if alerts:
            logger.info(
                "Opportunity %s triggered %d alert(s): %s",
                ctx.opportunity_id, len(alerts), ", ".join(a.type.value for a in alerts),
            )
        return alerts

    def evaluate_and_store(self, ctx: EvaluationContext, store: AlertStore) -> list[StoredAlert]:
        """Evaluate and persist new alerts. Returns only the newly created ones."""
        created = []
        for alert in self.evaluate(ctx):
            existing = store.find_pending(ctx.opportunity_id, alert.type)
            if existing is not None:
                logger.debug(
                    "Skipping %s for %s: alert %s already pending",
                    alert.type.value, ctx.opportunity_id, existing.id,
                )
                continue
            stored = StoredAlert(
                id=str(uuid.uuid4()),
                opportunity_id=ctx.opportunity_id,
                conversation_id=ctx.conversation_id,
                type=alert.type,
                severity=alert.severity,
                title=alert.title,
                message=alert.message,
                context=alert.context,
                created_at=datetime.now(timezone.utc),
            )
            created.append(store.save(stored))
        return created


def _transition(
    store: AlertStore,
    alert_id: str,
    target: AlertStatus,
    **updates: object,
) -> StoredAlert:
    alert = store.get(alert_id)
    if alert is None:
        raise AlertNotFoundError(f"Alert '{alert_id}' not found")
    if target not in ALLOWED_TRANSITIONS[alert.status]:
        raise InvalidAlertTransitionError(
            f"Cannot move alert '{alert_id}' from '{alert.status.value}' to '{target.value}'"
        )
    updated = alert.model_copy(update={"status": target, **updates})
    logger.debug("Alert %s: %s -> %s", alert_id, alert.status.value, target.value)
    return store.save(updated)


def acknowledge(store: AlertStore, alert_id: str, user: str) -> StoredAlert:
    return _transition(
        store, alert_id, AlertStatus.ACKNOWLEDGED,
        acknowledged_at=datetime.now(timezone.utc), acknowledged_by=user,
    )


def resolve(store: AlertStore, alert_id: str, user: str, resolution: str = "") -> StoredAlert:
    return _transition(
        store, alert_id, AlertStatus.RESOLVED,
        resolved_at=datetime.now(timezone.utc), resolved_by=user, resolution=resolution,
    )


def dismiss(store: AlertStore, alert_id: str, user: str, reason: str = "") -> StoredAlert:
    return _transition(
        store, alert_id, AlertStatus.DISMISSED,
        resolved_at=datetime.now(timezone.utc), resolved_by=user, resolution=reason,
    )

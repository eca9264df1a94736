"""
Alert rules evaluated after every analysis.

Each rule is a plain function ``(context, config) -> AlertResult | None``.
Rules are independent: one firing never stops another from being checked.
"""

import logging
from typing import Callable, Optional

from src.config import AlertConfig
from src.pipeline.result_builder import finding_text
from src.schemas.alert_schema import (
    AlertContext,
    AlertResult,
    AlertSeverity,
    AlertType,
    EvaluationContext,
)

logger = logging.getLogger(__name__)

AlertRule = Callable[[EvaluationContext, AlertConfig], Optional[AlertResult]]


def find_buying_signals(ctx: EvaluationContext, keywords: tuple[str, ...]) -> list[str]:
    """Buying-signal keywords present in the key findings or the transcript.

    Fixed finding labels such as ``Budget:`` are not content and never match.
    """
    haystack = "\n".join([finding_text(f) for f in ctx.key_findings] + [ctx.transcript_text])
    lowered = haystack.lower()
    return [kw for kw in keywords if kw.lower() in lowered]


def _name(ctx: EvaluationContext) -> str:
    return ctx.opportunity_name or ctx.opportunity_id


def close_now_rule(ctx: EvaluationContext, config: AlertConfig) -> Optional[AlertResult]:
    """Strong qualification, a champion, and talk of budget or signing."""
    champion = ctx.dimension_scores.get("champion", 0)
    if ctx.overall_score < config.close_now_min_score or champion < config.close_now_min_champion:
        return None
    signals = find_buying_signals(ctx, config.buying_signals)
    if not signals:
        return None

    return AlertResult(
        type=AlertType.CLOSE_NOW,
        severity=AlertSeverity.HIGH,
        title=f"Close opportunity: {_name(ctx)}",
        message=(
            f"Qualification score {ctx.overall_score} with champion {champion}/5 "
            f"and buying signals ({', '.join(signals)}). Push for a close."
        ),
        context=AlertContext(
            meddic_score=ctx.overall_score,
            dimension_scores=dict(ctx.dimension_scores),
            trigger_reason=(
                f"score {ctx.overall_score} >= {config.close_now_min_score}, "
                f"champion {champion} >= {config.close_now_min_champion}, "
                f"signals: {', '.join(signals)}"
            ),
            suggested_action="Schedule a contract meeting and send the proposal within 24 hours",
            related_data={"buying_signals": signals},
        ),
    )


def missing_dm_rule(ctx: EvaluationContext, config: AlertConfig) -> Optional[AlertResult]:
    """Several conversations in and still no economic buyer."""
    economic_buyer = ctx.dimension_scores.get("economic_buyer", 0)
    if economic_buyer > config.missing_dm_max_economic_buyer:
        return None
    if ctx.conversation_count < config.missing_dm_min_conversations:
        return None

    return AlertResult(
        type=AlertType.MISSING_DM,
        severity=AlertSeverity.MEDIUM,
        title=f"Decision maker not engaged: {_name(ctx)}",
        message=(
            f"After {ctx.conversation_count} conversations the economic buyer score is "
            f"only {economic_buyer}/5. Identify and reach the decision maker."
        ),
        context=AlertContext(
            meddic_score=ctx.overall_score,
            dimension_scores=dict(ctx.dimension_scores),
            trigger_reason=(
                f"economic buyer {economic_buyer} <= {config.missing_dm_max_economic_buyer}, "
                f"conversations {ctx.conversation_count} >= {config.missing_dm_min_conversations}"
            ),
            suggested_action="Ask the contact to introduce the owner or budget holder",
            related_data={"conversation_count": ctx.conversation_count},
        ),
    )


def manager_escalation_rule(ctx: EvaluationContext, config: AlertConfig) -> Optional[AlertResult]:
    """The most recent scores are all low."""
    window = ctx.recent_scores[: config.escalation_window]
    if len(window) < config.escalation_window:
        return None
    if not all(score < config.escalation_max_score for score in window):
        return None

    return AlertResult(
        type=AlertType.MANAGER_ESCALATION,
        severity=AlertSeverity.HIGH,
        title=f"Manager attention needed: {_name(ctx)}",
        message=(
            f"The last {len(window)} conversations all scored below "
            f"{config.escalation_max_score} ({', '.join(str(s) for s in window)})."
        ),
        context=AlertContext(
            meddic_score=ctx.overall_score,
            dimension_scores=dict(ctx.dimension_scores),
            trigger_reason=f"last {len(window)} scores < {config.escalation_max_score}",
            suggested_action="Review the deal with the rep and decide whether to re-plan or drop it",
            related_data={"recent_scores": window},
        ),
    )


DEFAULT_RULES: list[AlertRule] = [
    close_now_rule,
    missing_dm_rule,
    manager_escalation_rule,
]

"""Shared test fixtures and helpers."""

import asyncio
import json
from datetime import date
from typing import Any, Callable, Optional, Union

import pytest

from src.config import AppConfig, ModelConfig, PipelineConfig
from src.schemas.transcript_schema import (
    ConversationMetadata,
    ProductLine,
    Transcript,
    TranscriptSegment,
)

ROLE_MARKERS = {
    "You are the Context agent": "context",
    "You are the Buyer agent": "buyer",
    "You are the Seller agent": "seller",
    "You are the Summary agent": "summary",
    "You are the CRM Extraction agent": "crm",
    "You are the Coach agent": "coach",
}

Reply = Union[str, BaseException, Callable[[str, str], str]]


def role_of(system_prompt: str) -> str:
    for marker, role in ROLE_MARKERS.items():
        if marker in system_prompt:
            return role
    return "unknown"


def as_reply(payload: dict[str, Any]) -> str:
    """Wrap a dict the way the prompts ask the model to."""
    return f"<JSON>{json.dumps(payload, ensure_ascii=False)}</JSON>"


GOOD_PAYLOADS: dict[str, dict[str, Any]] = {
    "context": {
        "decision_maker": "Owner",
        "decision_maker_confirmed": True,
        "urgency_level": "high",
        "customer_motivation": "Checkout is too slow at peak hours",
        "barriers": [],
    },
    "buyer": {
        "pdcm_scores": {
            "pain": {"score": 80, "level": "P1", "main_pain": "Slow checkout",
                     "evidence": ["We lose twenty tables a day"]},
            "decision": {"score": 70, "contact_role": "Owner", "has_authority": True,
                         "timeline": "This month"},
            "champion": {"score": 80, "attitude": "positive", "evidence": ["Let's sign"]},
            "metrics": {"score": 60, "level": "M2", "roi_message": "Twenty more tables a day"},
            "total_score": 75,
            "deal_probability": "high",
        },
        "pcm_state": "ready",
    },
    "seller": {
        "progress_score": 75,
        "has_clear_ask": True,
        "next_action": {"action": "Send the contract", "deadline": "today"},
    },
    "summary": {
        "sms_text": "Thanks for today! Contract on its way. [SHORT_URL]",
        "markdown": "- Pain: slow checkout",
        "key_decisions": ["Sign this month"],
    },
    "crm": {
        "stage_name": "Negotiation",
        "stage_confidence": 0.8,
        "budget": {"range": "approved", "mentioned": True},
        "next_steps": ["Send the contract"],
    },
    "coach": {
        "coaching_notes": "Close today while the owner is committed.",
        "strengths": ["Found the pain"],
    },
}


def good_replies() -> dict[str, Reply]:
    return {role: as_reply(payload) for role, payload in GOOD_PAYLOADS.items()}


class FakeLLMClient:
    """Scripted model replies keyed by agent role.

    A role's script is a single reply or a list consumed one per call (the
    last entry repeats). A reply is a string, an exception to raise, or a
    callable ``(system_prompt, user_prompt) -> str``.
    """

    def __init__(self, replies: Optional[dict[str, Any]] = None, delay: float = 0.0) -> None:
        self.replies: dict[str, Any] = replies if replies is not None else good_replies()
        self.delay = delay
        self.calls: list[str] = []
        self.prompts: dict[str, list[tuple[str, str]]] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def count(self, role: str) -> int:
        return self.calls.count(role)

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        role = role_of(system_prompt)
        self.calls.append(role)
        self.prompts.setdefault(role, []).append((system_prompt, user_prompt))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            script = self.replies.get(role, "{}")
            if isinstance(script, list):
                index = min(self.count(role) - 1, len(script) - 1)
                reply = script[index]
            else:
                reply = script
            if isinstance(reply, BaseException):
                raise reply
            if callable(reply):
                return reply(system_prompt, user_prompt)
            return reply
        finally:
            self.in_flight -= 1


def make_config(**pipeline: Any) -> AppConfig:
    """Config with instant retries and an optional pipeline override."""
    return AppConfig(
        model=ModelConfig(max_retries=2, retry_base_delay=0.0, timeout_seconds=5.0),
        pipeline=PipelineConfig(**pipeline),
    )


def make_segment(text: str, start: float = 0.0, end: Optional[float] = None,
                 speaker: str = "Customer") -> TranscriptSegment:
    return TranscriptSegment(
        speaker=speaker, text=text, start=start, end=end if end is not None else start + 5.0
    )


def make_transcript(lines: Optional[list[tuple[str, str]]] = None) -> Transcript:
    """Build a transcript from (speaker, text) tuples spaced ten seconds apart."""
    if lines is None:
        lines = [
            ("Sales", "What slows you down most during service?"),
            ("Owner", "Checkout. At peak hours we lose twenty tables a day."),
            ("Sales", "Our QR ordering halves the time to order."),
            ("Owner", "Sounds good, let's talk about the contract next week."),
        ]
    return Transcript(segments=[
        make_segment(text, start=i * 10.0, end=i * 10.0 + 8.0, speaker=speaker)
        for i, (speaker, text) in enumerate(lines)
    ])


def make_metadata(
    conversation_id: str = "conv-001",
    opportunity_id: str = "opp-001",
    product_line: ProductLine = ProductLine.ICHEF,
) -> ConversationMetadata:
    return ConversationMetadata(
        conversation_id=conversation_id,
        opportunity_id=opportunity_id,
        sales_rep="rep@example.com",
        conversation_date=date(2025, 3, 15),
        product_line=product_line,
        opportunity_name="Test Bistro",
    )


@pytest.fixture
def fake_client():
    return FakeLLMClient()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def transcript():
    return make_transcript()


@pytest.fixture
def metadata():
    return make_metadata()

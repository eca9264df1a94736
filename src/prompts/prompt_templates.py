"""Dynamic prompt sections assembled from the analysis state."""

import json
from typing import Optional

from pydantic import BaseModel

from src.schemas.transcript_schema import ConversationMetadata, Transcript


def format_section(title: str, body: str) -> str:
    return f"## {title}\n{body.strip()}\n"


def format_record(title: str, record: Optional[BaseModel]) -> str:
    """Render an upstream agent record as a JSON prompt section."""
    if record is None:
        return format_section(title, "(not available)")
    payload = json.dumps(record.model_dump(mode="json"), ensure_ascii=False, indent=2)
    return format_section(title, payload)


def format_metadata(metadata: ConversationMetadata) -> str:
    lines = [
        f"Conversation: {metadata.conversation_id}",
        f"Opportunity: {metadata.opportunity_name or metadata.opportunity_id}",
    ]
    if metadata.sales_rep:
        lines.append(f"Sales rep: {metadata.sales_rep}")
    if metadata.conversation_date:
        lines.append(f"Date: {metadata.conversation_date.isoformat()}")
    return format_section("Conversation Metadata", "\n".join(lines))


def format_transcript(transcript: Transcript) -> str:
    return format_section("Transcript", transcript.format())


def build_refinement_section(reason: str, previous: Optional[BaseModel]) -> str:
    """Ask the model to redo an analysis a quality check rejected."""
    parts = []
    if previous is not None:
        parts.append(format_record("Previous Analysis (needs improvement)", previous))
    parts.append(
        format_section(
            "Refinement Request",
            "IMPORTANT: The previous analysis was incomplete. "
            f"Problem found: {reason}. "
            "Provide more specific evidence quoted from the transcript and fill "
            "every field you can support.",
        )
    )
    return "\n".join(parts)


def build_agent_prompt(sections: list[str]) -> str:
    return "\n".join(section for section in sections if section)

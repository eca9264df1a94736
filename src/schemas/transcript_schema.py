"""Transcript and conversation metadata schemas."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from src.utils import format_time


class ProductLine(str, Enum):
    ICHEF = "ichef"
    BEAUTY = "beauty"


class TranscriptSegment(BaseModel):
    """One speaker turn with start/end offsets in seconds."""

    speaker: str = "Speaker"
    text: str
    start: float = Field(ge=0.0)
    end: float = Field(ge=0.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "TranscriptSegment":
        if self.start > self.end:
            raise ValueError(f"segment start {self.start} is after end {self.end}")
        return self

    def shifted(self, offset: float) -> "TranscriptSegment":
        """Return a copy moved forward by ``offset`` seconds."""
        return self.model_copy(update={"start": self.start + offset, "end": self.end + offset})

    def format_line(self) -> str:
        return f"[{format_time(self.start)}] {self.speaker or 'Speaker'}: {self.text}"


class ConversationMetadata(BaseModel):
    """Identifiers and descriptors attached to one analyzed conversation."""

    conversation_id: str
    opportunity_id: str
    sales_rep: str = ""
    conversation_date: Optional[date] = None
    product_line: ProductLine = ProductLine.ICHEF
    opportunity_name: Optional[str] = None


class Transcript(BaseModel):
    """An assembled, time-ordered transcript."""

    segments: list[TranscriptSegment] = Field(default_factory=list)
    duration: Optional[float] = None
    language: Optional[str] = None

    @property
    def full_text(self) -> str:
        return " ".join(seg.text for seg in self.segments)

    def format(self) -> str:
        """Render as ``[MM:SS] speaker: text`` lines for prompts."""
        return "\n".join(seg.format_line() for seg in self.segments)

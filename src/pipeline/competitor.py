"""Local competitor-mention scan run before any agent."""

from typing import Iterable

from src.schemas.transcript_schema import Transcript


def detect_competitor_keywords(transcript: Transcript, keywords: Iterable[str]) -> list[str]:
    """Return the keywords that occur in the transcript, in keyword order.

    All-lowercase keywords match case-insensitively; keywords with capitals
    (acronyms such as "POS") must match exactly so they do not fire inside
    ordinary words.
    """
    text = transcript.full_text
    lowered = text.lower()
    found = []
    for keyword in keywords:
        if keyword == keyword.lower():
            hit = keyword in lowered
        else:
            hit = keyword in text
        if hit and keyword not in found:
            found.append(keyword)
    return found

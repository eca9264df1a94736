"""
Chunked transcription assembly.

Speech-to-text services cap the upload size, so long recordings are split
into byte windows, transcribed concurrently, and merged back into one
timeline. Each chunk's timestamps start at zero; merging shifts them by
the total duration of all earlier chunks.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from src.config import TranscriptionConfig
from src.schemas.transcript_schema import Transcript, TranscriptSegment

logger = logging.getLogger(__name__)


@dataclass
class ChunkTranscription:
    """Transcription of one audio chunk, timestamps relative to the chunk."""

    index: int
    segments: list[TranscriptSegment] = field(default_factory=list)
    duration: Optional[float] = None
    text: str = ""
    language: Optional[str] = None

    @property
    def effective_duration(self) -> float:
        """Reported duration, or the last segment's end when none was reported."""
        if self.duration is not None:
            return self.duration
        if not self.segments:
            return 0.0
        return max(seg.end for seg in self.segments)


class SpeechToText(Protocol):
    async def transcribe_chunk(self, audio: bytes, index: int) -> ChunkTranscription:
        ...


def split_audio(data: bytes, chunk_size: int) -> list[bytes]:
    """Split audio bytes into sequential windows of at most ``chunk_size`` bytes."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    return [data[offset:offset + chunk_size] for offset in range(0, len(data), chunk_size)]


class TranscriptAssembler:
    """Splits, transcribes and merges long recordings."""

    def __init__(self, config: Optional[TranscriptionConfig] = None) -> None:
        self.config = config or TranscriptionConfig()

    def should_chunk(self, data: bytes) -> bool:
        return len(data) > self.config.chunk_size_bytes

    @staticmethod
    def merge(chunks: list[ChunkTranscription]) -> list[TranscriptSegment]:
        """Merge chunk transcriptions into one globally timestamped list.

        Chunks are ordered by index regardless of arrival order.
        """
        merged: list[TranscriptSegment] = []
        offset = 0.0
        for chunk in sorted(chunks, key=lambda c: c.index):
            for seg in sorted(chunk.segments, key=lambda s: s.start):
                merged.append(seg.shifted(offset))
            offset += chunk.effective_duration
        return merged

    def assemble(self, chunks: list[ChunkTranscription]) -> Transcript:
        ordered = sorted(chunks, key=lambda c: c.index)
        language = next((c.language for c in ordered if c.language), None)
        return Transcript(
            segments=self.merge(ordered),
            duration=sum(c.effective_duration for c in ordered),
            language=language,
        )

    async def transcribe(self, data: bytes, stt: SpeechToText) -> Transcript:
        """Transcribe a recording, chunking it if it exceeds the size limit."""
        if not self.should_chunk(data):
            chunk = await stt.transcribe_chunk(data, 0)
            return self.assemble([chunk])

        pieces = split_audio(data, self.config.chunk_size_bytes)
        logger.info(
            "Audio is %.1fMB, transcribing %d chunks in parallel",
            len(data) / 1_000_000, len(pieces),
        )
        tasks = [
            asyncio.ensure_future(stt.transcribe_chunk(piece, index))
            for index, piece in enumerate(pieces)
        ]
        try:
            chunks = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        transcript = self.assemble(list(chunks))
        logger.info(
            "Merged %d chunks into %d segments (%.0fs)",
            len(chunks), len(transcript.segments), transcript.duration or 0.0,
        )
        return transcript

"""
Whisper transcription over an OpenAI-compatible audio endpoint.

Works with OpenAI or Groq (set ``TRANSCRIPTION_BASE_URL``). Whisper does
not diarize, so every segment is attributed to a generic speaker.
"""

import logging
import os
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from src.config import ModelConfig, TranscriptionConfig
from src.errors import LLMServiceError, TranscriptionError, TransientLLMError
from src.llm.client import call_with_retry
from src.schemas.transcript_schema import TranscriptSegment
from src.transcription.assembler import ChunkTranscription

logger = logging.getLogger(__name__)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class WhisperTranscriber:
    """Transcribes one audio chunk per request (verbose JSON with segments)."""

    def __init__(
        self,
        config: Optional[TranscriptionConfig] = None,
        retry_config: Optional[ModelConfig] = None,
        api_key: Optional[str] = None,
        filename: str = "audio.mp3",
    ) -> None:
        self.config = config or TranscriptionConfig()
        self.retry_config = retry_config or ModelConfig()
        self.filename = filename
        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("TRANSCRIPTION_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=self.config.base_url or None,
            max_retries=0,
        )

    async def transcribe_chunk(self, audio: bytes, index: int) -> ChunkTranscription:
        if len(audio) > self.config.max_upload_bytes:
            raise TranscriptionError(
                f"Chunk {index} is {len(audio)} bytes, over the "
                f"{self.config.max_upload_bytes}-byte upload limit"
            )
        try:
            response = await call_with_retry(
                lambda: self._request(audio, index),
                max_retries=self.retry_config.max_retries,
                base_delay=self.retry_config.retry_base_delay,
                timeout=self.retry_config.timeout_seconds * 5,
                label=f"transcription chunk {index}",
            )
        except LLMServiceError as exc:
            raise TranscriptionError(f"Chunk {index} failed: {exc}") from exc

        segments = []
        for seg in _field(response, "segments") or []:
            text = str(_field(seg, "text", "")).strip()
            start = float(_field(seg, "start", 0.0))
            end = float(_field(seg, "end", 0.0))
            # Zero-length and silent segments carry nothing to analyze.
            if text and end > start:
                segments.append(TranscriptSegment(speaker="Speaker", text=text, start=start, end=end))
        duration = _field(response, "duration")
        logger.debug("Chunk %d: %d segments, duration=%s", index, len(segments), duration)
        return ChunkTranscription(
            index=index,
            segments=segments,
            duration=float(duration) if duration is not None else None,
            text=_field(response, "text", "") or "",
            language=_field(response, "language"),
        )

    async def _request(self, audio: bytes, index: int) -> Any:
        try:
            return await self._client.audio.transcriptions.create(
                file=(f"{index:03d}-{self.filename}", audio),
                model=self.config.model,
                language=self.config.language,
                response_format="verbose_json",
                temperature=0,
            )
        except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError) as exc:
            raise TransientLLMError(f"{type(exc).__name__}: {exc}") from exc
        except openai.InternalServerError as exc:
            raise TransientLLMError(f"Server error {exc.status_code}: {exc}") from exc
        except openai.APIError as exc:
            raise LLMServiceError(f"{type(exc).__name__}: {exc}") from exc

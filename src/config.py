"""
Centralized configuration with environment variable overrides.

Model settings, pipeline bounds, scoring weights, alert thresholds and
transcription limits all live here. Agents and rules receive these
objects explicitly; nothing reads the environment at call time.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_COMPETITOR_KEYWORDS = "競爭對手,competitor,其他廠商,POS,別的系統,其他品牌"
DEFAULT_BUYING_SIGNALS = "預算,budget,採購,購買,簽約,合約,時程,時間表,timeline,導入,實施"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _keyword_list(env_var: str, default: str) -> tuple[str, ...]:
    """Parse a comma-separated keyword list, dropping blanks."""
    raw = os.getenv(env_var, default)
    return tuple(word.strip() for word in raw.split(",") if word.strip())


@dataclass(frozen=True)
class ModelConfig:
    """LLM client settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    llm_max_tokens: int = _safe_int("LLM_MAX_TOKENS", "4096")
    timeout_seconds: float = _safe_float("LLM_TIMEOUT_SECONDS", "60.0")
    max_retries: int = _safe_int("LLM_MAX_RETRIES", "3")
    retry_base_delay: float = _safe_float("LLM_RETRY_BASE_DELAY", "1.0")
    base_url: str = os.getenv("OPENAI_BASE_URL", "")


@dataclass(frozen=True)
class PipelineConfig:
    """Bounds for the agent pipeline and refinement loop."""

    max_refinements: int = _safe_int("MAX_REFINEMENTS", "2")
    sms_max_chars: int = _safe_int("SMS_MAX_CHARS", "60")
    competitor_keywords: tuple[str, ...] = _keyword_list(
        "COMPETITOR_KEYWORDS", DEFAULT_COMPETITOR_KEYWORDS
    )


@dataclass(frozen=True)
class ScoringConfig:
    """Dimension weights and qualification status thresholds."""

    weight_metrics: float = _safe_float("WEIGHT_METRICS", "0.15")
    weight_economic_buyer: float = _safe_float("WEIGHT_ECONOMIC_BUYER", "0.20")
    weight_decision_criteria: float = _safe_float("WEIGHT_DECISION_CRITERIA", "0.15")
    weight_decision_process: float = _safe_float("WEIGHT_DECISION_PROCESS", "0.15")
    weight_identify_pain: float = _safe_float("WEIGHT_IDENTIFY_PAIN", "0.20")
    weight_champion: float = _safe_float("WEIGHT_CHAMPION", "0.15")
    high_threshold: int = _safe_int("STATUS_HIGH_THRESHOLD", "70")
    medium_threshold: int = _safe_int("STATUS_MEDIUM_THRESHOLD", "50")
    low_threshold: int = _safe_int("STATUS_LOW_THRESHOLD", "30")
    authority_confirmed_score: int = _safe_int("AUTHORITY_CONFIRMED_SCORE", "80")
    authority_unconfirmed_score: int = _safe_int("AUTHORITY_UNCONFIRMED_SCORE", "40")
    weak_dimension_score: int = _safe_int("WEAK_DIMENSION_SCORE", "2")

    def weights(self) -> dict[str, float]:
        return {
            "metrics": self.weight_metrics,
            "economic_buyer": self.weight_economic_buyer,
            "decision_criteria": self.weight_decision_criteria,
            "decision_process": self.weight_decision_process,
            "identify_pain": self.weight_identify_pain,
            "champion": self.weight_champion,
        }


@dataclass(frozen=True)
class AlertConfig:
    """Thresholds for the alert rules."""

    close_now_min_score: int = _safe_int("CLOSE_NOW_MIN_SCORE", "80")
    close_now_min_champion: int = _safe_int("CLOSE_NOW_MIN_CHAMPION", "4")
    missing_dm_max_economic_buyer: int = _safe_int("MISSING_DM_MAX_ECONOMIC_BUYER", "2")
    missing_dm_min_conversations: int = _safe_int("MISSING_DM_MIN_CONVERSATIONS", "2")
    escalation_max_score: int = _safe_int("ESCALATION_MAX_SCORE", "40")
    escalation_window: int = _safe_int("ESCALATION_WINDOW", "3")
    buying_signals: tuple[str, ...] = _keyword_list("BUYING_SIGNALS", DEFAULT_BUYING_SIGNALS)


@dataclass(frozen=True)
class TranscriptionConfig:
    """Speech-to-text settings for chunked audio transcription."""

    model: str = os.getenv("TRANSCRIPTION_MODEL", "whisper-large-v3-turbo")
    language: str = os.getenv("TRANSCRIPTION_LANGUAGE", "zh")
    chunk_size_bytes: int = _safe_int("CHUNK_SIZE_BYTES", "24000000")
    max_upload_bytes: int = _safe_int("MAX_UPLOAD_BYTES", "25000000")
    base_url: str = os.getenv("TRANSCRIPTION_BASE_URL", "")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    model: ModelConfig = field(default_factory=ModelConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "sales-call-analyzer")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.llm_temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.llm_temperature}"
        )
    if config.model.timeout_seconds <= 0:
        raise ValueError(
            f"LLM_TIMEOUT_SECONDS must be > 0, got {config.model.timeout_seconds}"
        )
    if config.model.max_retries < 0:
        raise ValueError(f"LLM_MAX_RETRIES must be >= 0, got {config.model.max_retries}")
    if config.model.retry_base_delay < 0:
        raise ValueError(
            f"LLM_RETRY_BASE_DELAY must be >= 0, got {config.model.retry_base_delay}"
        )
    if config.pipeline.max_refinements < 0:
        raise ValueError(
            f"MAX_REFINEMENTS must be >= 0, got {config.pipeline.max_refinements}"
        )
    if config.pipeline.sms_max_chars < 1:
        raise ValueError(f"SMS_MAX_CHARS must be >= 1, got {config.pipeline.sms_max_chars}")

    weight_total = sum(config.scoring.weights().values())
    if abs(weight_total - 1.0) > 1e-6:
        raise ValueError(f"Dimension weights must sum to 1.0, got {weight_total:.4f}")

    scoring = config.scoring
    if not 0 <= scoring.low_threshold <= scoring.medium_threshold <= scoring.high_threshold <= 100:
        raise ValueError(
            "STATUS thresholds must satisfy 0 <= LOW <= MEDIUM <= HIGH <= 100, got "
            f"{scoring.low_threshold}/{scoring.medium_threshold}/{scoring.high_threshold}"
        )

    if not 0 <= config.alerts.close_now_min_score <= 100:
        raise ValueError(
            f"CLOSE_NOW_MIN_SCORE must be between 0 and 100, got {config.alerts.close_now_min_score}"
        )
    if config.alerts.escalation_window < 1:
        raise ValueError(
            f"ESCALATION_WINDOW must be >= 1, got {config.alerts.escalation_window}"
        )

    if config.transcription.chunk_size_bytes < 1:
        raise ValueError(
            f"CHUNK_SIZE_BYTES must be >= 1, got {config.transcription.chunk_size_bytes}"
        )
    if config.transcription.chunk_size_bytes > config.transcription.max_upload_bytes:
        raise ValueError(
            "CHUNK_SIZE_BYTES must not exceed MAX_UPLOAD_BYTES, got "
            f"{config.transcription.chunk_size_bytes} > {config.transcription.max_upload_bytes}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()

"""
Structured-output extraction from free-form model replies.

Model replies wrap JSON in tags, code fences or prose. The parser tries a
fixed sequence of extraction strategies, validates the decoded object
against the target record type, and falls back to the record's defaults.
It never raises; callers read ``confidence`` to decide what to trust.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from src.schemas.analysis_schema import Confidence

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

_TAGGED = re.compile(r"<JSON>\s*(.*?)\s*</JSON>", re.DOTALL | re.IGNORECASE)
_FENCED = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


@dataclass
class ParseResult(Generic[RecordT]):
    record: RecordT
    confidence: Confidence
    errors: list[str] = field(default_factory=list)
    strategy: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.confidence != Confidence.LOW


def _from_tags(text: str) -> Optional[str]:
    match = _TAGGED.search(text)
    return match.group(1) if match else None


def _from_fence(text: str) -> Optional[str]:
    match = _FENCED.search(text)
    return match.group(1).strip() if match else None


def _whole_text(text: str) -> Optional[str]:
    stripped = text.strip()
    return stripped or None


def _balanced_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span, ignoring braces inside strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


_STRATEGIES: list[tuple[str, Callable[[str], Optional[str]]]] = [
    ("tagged", _from_tags),
    ("fenced", _from_fence),
    ("direct", _whole_text),
    ("braces", _balanced_object),
]


class ResultParser:
    """Extracts a typed record from raw model output."""

    def parse(self, raw_text: Optional[str], model_cls: type[RecordT]) -> ParseResult[RecordT]:
        errors: list[str] = []
        if not raw_text or not raw_text.strip():
            return self._fallback(model_cls, ["empty response"])

        for name, extract in _STRATEGIES:
            candidate = extract(raw_text)
            if candidate is None:
                continue
            try:
                decoded = json.loads(candidate)
            except json.JSONDecodeError as exc:
                errors.append(f"{name}: {exc.msg}")
                continue
            except RecursionError:
                errors.append(f"{name}: nesting too deep")
                continue
            if not isinstance(decoded, dict):
                errors.append(f"{name}: expected a JSON object, got {type(decoded).__name__}")
                continue
            return self._validate(decoded, model_cls, name, errors)

        logger.warning("No JSON object found for %s", model_cls.__name__)
        return self._fallback(model_cls, errors or ["no JSON object found"])

    def _validate(
        self,
        data: dict[str, Any],
        model_cls: type[RecordT],
        strategy: str,
        errors: list[str],
    ) -> ParseResult[RecordT]:
        try:
            record = model_cls.model_validate(data)
        except RecursionError:
            errors.append(f"{strategy}: nesting too deep")
            return self._fallback(model_cls, errors)
        except ValidationError as exc:
            invalid = {str(err["loc"][0]) for err in exc.errors() if err["loc"]}
            errors.extend(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        else:
            confidence = Confidence.MEDIUM if strategy == "braces" else Confidence.HIGH
            return ParseResult(record, confidence, errors, strategy)

        # Keep the fields that did validate.
        partial = {key: value for key, value in data.items() if key not in invalid}
        try:
            record = model_cls.model_validate(partial)
        except (ValidationError, RecursionError):
            return self._fallback(model_cls, errors)
        logger.info(
            "Partial parse for %s, dropped fields: %s", model_cls.__name__, sorted(invalid)
        )
        return ParseResult(record, Confidence.MEDIUM, errors, strategy)

    def _fallback(self, model_cls: type[RecordT], errors: list[str]) -> ParseResult[RecordT]:
        return ParseResult(model_cls(), Confidence.LOW, errors, None)

"""Parse model output into typed records, with a single corrective retry."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_OPEN = re.compile(r"^```[\w-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")

MakeCall = Callable[[Optional[str]], str]
RawSink = Callable[[int, str], Optional[Path]]


class InvalidStructuredResponse(ValueError):
    """Model output that could not be turned into the requested shape."""

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw


class MalformedDocument(InvalidStructuredResponse):
    """The text is not a JSON document."""


class SchemaViolation(InvalidStructuredResponse):
    """The JSON document does not match the declared shape."""

    def __init__(self, message: str, raw: str, fields: Tuple[str, ...]) -> None:
        super().__init__(message, raw)
        self.fields = fields


@dataclass(frozen=True, slots=True)
class FailedAttempt:
    raw: str
    location: Optional[Path]
    error: InvalidStructuredResponse


class StructuredResponseFailed(RuntimeError):
    """Both the original call and its retry returned unusable output."""

    def __init__(self, shape: str, attempts: Tuple[FailedAttempt, ...]) -> None:
        self.shape = shape
        self.attempts = attempts
        locations = ", ".join(str(a.location) for a in attempts if a.location is not None)
        message = f"{shape} response invalid after retry: {attempts[-1].error}"
        if locations:
            message += f" (raw saved to {locations})"
        super().__init__(message)

    @property
    def raw_responses(self) -> Tuple[str, ...]:
        return tuple(attempt.raw for attempt in self.attempts)


def strip_code_fence(payload: str) -> str:
    """Remove a surrounding Markdown code fence, with or without a language tag."""

    stripped = payload.strip()
    if not stripped.startswith("```"):
        return stripped
    inner = _FENCE_OPEN.sub("", stripped, count=1)
    return _FENCE_CLOSE.sub("", inner, count=1).strip()


def validate_response(raw: str, shape: Type[ModelT]) -> ModelT:
    """Parse ``raw`` as JSON and validate it against ``shape``."""

    cleaned = strip_code_fence(raw)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedDocument(f"Failed to parse model output as JSON: {exc}", raw) from exc

    try:
        return shape.model_validate(payload)
    except ValidationError as exc:
        fields = tuple(
            ".".join(str(part) for part in error["loc"]) or "<root>" for error in exc.errors()
        )
        raise SchemaViolation(
            f"{shape.__name__} schema violation in: {', '.join(fields)}",
            raw,
            fields,
        ) from exc


def call_with_one_retry(
    make_call: MakeCall,
    shape: Type[ModelT],
    reminder: str,
    *,
    raw_sink: RawSink | None = None,
) -> ModelT:
    """Run ``make_call`` and validate; on failure retry exactly once.

    ``make_call`` receives ``None`` for the first attempt and ``reminder`` for
    the retry, which it appends to the user prompt. ``raw_sink`` persists each
    rejected raw response and returns where it went.
    """

    failures: list[FailedAttempt] = []
    for attempt, suffix in enumerate((None, reminder), start=1):
        raw = make_call(suffix)
        try:
            return validate_response(raw, shape)
        except InvalidStructuredResponse as exc:
            location = raw_sink(attempt, raw) if raw_sink is not None else None
            failures.append(FailedAttempt(raw=raw, location=location, error=exc))
            if attempt == 1:
                logger.warning("%s response invalid (%s); retrying once", shape.__name__, exc)
    raise StructuredResponseFailed(shape.__name__, tuple(failures))


def raw_path_for(target: Path, attempt: int) -> Path:
    """Where the raw text of a rejected response for ``target`` is kept."""

    suffix = "_raw.txt" if attempt == 1 else "_raw_retry.txt"
    return target.with_name(f"{target.stem}{suffix}")


__all__ = [
    "InvalidStructuredResponse",
    "MalformedDocument",
    "SchemaViolation",
    "FailedAttempt",
    "StructuredResponseFailed",
    "strip_code_fence",
    "validate_response",
    "call_with_one_retry",
    "raw_path_for",
]

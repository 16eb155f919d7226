"""Token usage accounting across gateway calls."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

__all__ = ["UsageRecord", "UsageTracker", "extract_usage_metadata"]


@dataclass(frozen=True)
class UsageRecord:
    """Single invocation usage metrics."""

    model: Optional[str]
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class UsageTracker:
    """Accumulates token usage across model calls.

    Judges may run on worker threads, so appends are guarded by a lock.
    """

    def __init__(self) -> None:
        self._records: list[UsageRecord] = []
        self._lock = threading.Lock()

    @property
    def records(self) -> Sequence[UsageRecord]:  # pragma: no cover - simple accessor
        return tuple(self._records)

    def add_record(
        self,
        *,
        model: Optional[str],
        prompt_tokens: int,
        completion_tokens: int,
        total_tokens: Optional[int] = None,
    ) -> None:
        total = total_tokens if total_tokens is not None else prompt_tokens + completion_tokens
        record = UsageRecord(
            model=model,
            prompt_tokens=int(prompt_tokens),
            completion_tokens=int(completion_tokens),
            total_tokens=int(total),
        )
        with self._lock:
            self._records.append(record)

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            records = list(self._records)
        return {
            "calls": len(records),
            "prompt_tokens": sum(record.prompt_tokens for record in records),
            "completion_tokens": sum(record.completion_tokens for record in records),
            "total_tokens": sum(record.total_tokens for record in records),
            "by_model": _aggregate_by_model(records),
        }


def _aggregate_by_model(records: Sequence[UsageRecord]) -> Dict[str, Dict[str, int]]:
    aggregated: Dict[str, Dict[str, int]] = {}
    for record in records:
        bucket = aggregated.setdefault(
            record.model or "unknown",
            {"calls": 0, "prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        )
        bucket["calls"] += 1
        bucket["prompt_tokens"] += record.prompt_tokens
        bucket["completion_tokens"] += record.completion_tokens
        bucket["total_tokens"] += record.total_tokens
    return aggregated


def extract_usage_metadata(message: Any) -> Dict[str, int]:
    """Normalise usage metadata reported by different langchain chat models."""

    usage: Dict[str, Any] = {}

    if getattr(message, "usage_metadata", None):
        usage.update(message.usage_metadata)

    response_meta = getattr(message, "response_metadata", None) or {}
    if isinstance(response_meta, dict) and not usage:
        for key in ("token_usage", "usage"):
            maybe_usage = response_meta.get(key)
            if isinstance(maybe_usage, dict):
                usage.update(maybe_usage)
                break

    normalised: Dict[str, int] = {
        "prompt_tokens": int(usage.get("input_tokens") or usage.get("prompt_tokens") or 0),
        "completion_tokens": int(
            usage.get("output_tokens") or usage.get("completion_tokens") or 0
        ),
    }
    total_tokens = usage.get("total_tokens")
    if total_tokens is not None:
        normalised["total_tokens"] = int(total_tokens)
    return normalised

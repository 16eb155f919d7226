"""Dataclass-driven configuration for the storyloop pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

from .llm.providers import GatewayContext
from .paths import resolve_output_root
from .story.text import DEFAULT_WORD_LIMIT

__all__ = [
    "DEFAULT_WRITER_MODEL",
    "DEFAULT_JUDGE_A_MODEL",
    "DEFAULT_JUDGE_B_MODEL",
    "DEFAULT_AGGREGATOR_MODEL",
    "MODEL_ENVS",
    "StageModels",
    "LLMConfig",
    "PipelineConfig",
]

DEFAULT_WRITER_MODEL = "openai/gpt-4o-mini"
DEFAULT_JUDGE_A_MODEL = "anthropic/claude-sonnet-4-5"
DEFAULT_JUDGE_B_MODEL = "openrouter/deepseek/deepseek-chat"
DEFAULT_AGGREGATOR_MODEL = "openai/gpt-5"

MODEL_ENVS: Mapping[str, str] = {
    "writer": "WRITER_MODEL",
    "judge_a": "JUDGE_A_MODEL",
    "judge_b": "JUDGE_B_MODEL",
    "aggregator": "AGGREGATOR_MODEL",
}
DEFAULT_TIMEOUT = 120.0


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


def _env_int(name: str, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:  # pragma: no cover - defensive guard
        return default


def _resolve_model(stage: str, explicit: str | None, default: str) -> str:
    return explicit or os.getenv(MODEL_ENVS[stage]) or default


@dataclass(slots=True)
class StageModels:
    """``provider/model`` identifiers for each pipeline role."""

    writer: str = DEFAULT_WRITER_MODEL
    judge_a: str = DEFAULT_JUDGE_A_MODEL
    judge_b: str = DEFAULT_JUDGE_B_MODEL
    aggregator: str = DEFAULT_AGGREGATOR_MODEL

    @classmethod
    def resolve(
        cls,
        *,
        writer: str | None = None,
        judge_a: str | None = None,
        judge_b: str | None = None,
        aggregator: str | None = None,
    ) -> "StageModels":
        """Explicit value, then environment variable, then built-in default."""

        return cls(
            writer=_resolve_model("writer", writer, DEFAULT_WRITER_MODEL),
            judge_a=_resolve_model("judge_a", judge_a, DEFAULT_JUDGE_A_MODEL),
            judge_b=_resolve_model("judge_b", judge_b, DEFAULT_JUDGE_B_MODEL),
            aggregator=_resolve_model("aggregator", aggregator, DEFAULT_AGGREGATOR_MODEL),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "writer": self.writer,
            "judge_a": self.judge_a,
            "judge_b": self.judge_b,
            "aggregator": self.aggregator,
        }


@dataclass(slots=True)
class LLMConfig:
    """Transport settings shared by every provider backend."""

    timeout: float | None = field(
        default_factory=lambda: _env_float("STORYLOOP_TIMEOUT", DEFAULT_TIMEOUT)
    )
    max_tokens: int | None = field(default_factory=lambda: _env_int("STORYLOOP_MAX_TOKENS"))

    def build_gateway(self) -> GatewayContext:
        return GatewayContext(timeout=self.timeout, max_tokens=self.max_tokens)


@dataclass(slots=True)
class PipelineConfig:
    """Primary configuration entry point for a pipeline run."""

    output_root: Path = field(default_factory=lambda: resolve_output_root(create=False))
    models: StageModels = field(default_factory=StageModels.resolve)
    llm: LLMConfig = field(default_factory=LLMConfig)
    writer_temperature: float = 0.7
    word_limit: int = DEFAULT_WORD_LIMIT
    parallel_judges: bool = False
    require_retell_match: bool = False

    def __post_init__(self) -> None:
        self.output_root = Path(self.output_root).expanduser()

    def with_output_root(self, output_root: Path | str | None) -> "PipelineConfig":
        if output_root is None:
            return self
        return replace(self, output_root=Path(output_root).expanduser())

    def describe(self) -> dict[str, Any]:
        return {
            "models": self.models.to_dict(),
            "writer_temperature": self.writer_temperature,
            "word_limit": self.word_limit,
            "parallel_judges": self.parallel_judges,
            "require_retell_match": self.require_retell_match,
            "timeout": self.llm.timeout,
        }

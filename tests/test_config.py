from __future__ import annotations

from pathlib import Path

import pytest

from storyloop.config import (
    DEFAULT_AGGREGATOR_MODEL,
    DEFAULT_JUDGE_A_MODEL,
    DEFAULT_JUDGE_B_MODEL,
    DEFAULT_WRITER_MODEL,
    LLMConfig,
    PipelineConfig,
    StageModels,
)
from storyloop.llm.providers import GatewayContext


def test_stage_models_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    assert StageModels.resolve().to_dict() == {
        "writer": DEFAULT_WRITER_MODEL,
        "judge_a": DEFAULT_JUDGE_A_MODEL,
        "judge_b": DEFAULT_JUDGE_B_MODEL,
        "aggregator": DEFAULT_AGGREGATOR_MODEL,
    }

    monkeypatch.setenv("WRITER_MODEL", "openai/env-writer")
    monkeypatch.setenv("JUDGE_B_MODEL", "openrouter/env/judge")
    models = StageModels.resolve(writer="anthropic/flag-writer")

    assert models.writer == "anthropic/flag-writer"
    assert models.judge_b == "openrouter/env/judge"
    assert models.judge_a == DEFAULT_JUDGE_A_MODEL
    assert models.aggregator == DEFAULT_AGGREGATOR_MODEL


def test_default_models() -> None:
    assert DEFAULT_WRITER_MODEL == "openai/gpt-4o-mini"
    assert DEFAULT_JUDGE_A_MODEL == "anthropic/claude-sonnet-4-5"
    assert DEFAULT_JUDGE_B_MODEL == "openrouter/deepseek/deepseek-chat"
    assert DEFAULT_AGGREGATOR_MODEL == "openai/gpt-5"


def test_llm_config_env_fallbacks(monkeypatch: pytest.MonkeyPatch) -> None:
    assert LLMConfig().timeout == 120.0
    assert LLMConfig().max_tokens is None

    monkeypatch.setenv("STORYLOOP_TIMEOUT", "45")
    monkeypatch.setenv("STORYLOOP_MAX_TOKENS", "2048")
    cfg = LLMConfig()
    assert cfg.timeout == 45.0
    assert cfg.max_tokens == 2048

    gateway = cfg.build_gateway()
    assert isinstance(gateway, GatewayContext)
    assert gateway.timeout == 45.0
    assert gateway.max_tokens == 2048


def test_pipeline_config_output_root(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    assert PipelineConfig().output_root == Path("runs")

    monkeypatch.setenv("STORYLOOP_OUTPUT_ROOT", str(tmp_path / "env"))
    cfg = PipelineConfig()
    assert cfg.output_root == tmp_path / "env"
    assert cfg.output_root.exists() is False

    assert cfg.with_output_root(None) is cfg
    assert cfg.with_output_root(tmp_path / "flag").output_root == tmp_path / "flag"


def test_pipeline_config_describe(pipeline_config: PipelineConfig) -> None:
    described = pipeline_config.describe()

    assert described["models"]["judge_a"] == "anthropic/judge-one"
    assert described["word_limit"] == 180
    assert described["writer_temperature"] == 0.7
    assert described["require_retell_match"] is False

"""Shared fixtures for the test suite."""
from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Callable, Iterable

import pytest

from storyloop.config import PipelineConfig, StageModels
from storyloop.io import StoryBrief
from storyloop.llm.providers import ModelCall

ENV_VARS = {
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "OPENROUTER_API_KEY",
    "WRITER_MODEL",
    "JUDGE_A_MODEL",
    "JUDGE_B_MODEL",
    "AGGREGATOR_MODEL",
    "STORYLOOP_OUTPUT_ROOT",
    "STORYLOOP_TIMEOUT",
    "STORYLOOP_MAX_TOKENS",
}

JUDGE_A = "anthropic/judge-one"
JUDGE_B = "openrouter/vendor/judge-two"

STORY = (
    "[SETUP] Mara keeps the last lantern lit.\n"
    "[TURN] The harbor bell rings without a ship.\n"
    "[AFTERSHOCK] She walks the pier alone.\n"
    "[BUTTON] The light answers back."
)


@pytest.fixture(autouse=True)
def _clear_llm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure model and provider environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_critique(
    *,
    clarity: float = 2.0,
    stakes: float = 2.0,
    momentum: float = 2.0,
    ending_resonance: float = 2.0,
    confusions: int = 0,
    retell: str = "Mara keeps a lantern lit. The light answers back.",
) -> dict[str, Any]:
    return {
        "retell": retell,
        "stakes": "Whether anyone is still out there.",
        "confusions": [
            {"quote": "harbor bell", "why": f"unclear #{i}", "fix_hint": "line"}
            for i in range(confusions)
        ],
        "strengths": [{"quote": "The light answers back.", "why": "lands the ending"}],
        "ratings": {
            "clarity": clarity,
            "stakes": stakes,
            "momentum": momentum,
            "ending_resonance": ending_resonance,
        },
    }


def make_plan(*, optional: Iterable[str] = ("tighten the opening",)) -> dict[str, Any]:
    return {
        "must_fix": [
            {
                "issue": "The bell is unexplained",
                "evidence": ["The harbor bell rings without a ship."],
                "type": "line",
            }
        ],
        "optional": list(optional),
        "revision_plan": [
            {
                "action": "Hint at who rings the bell",
                "target_span": "The harbor bell rings without a ship.",
                "success_metric": "Both readers name the bell ringer",
            }
        ],
        "gate": {
            "min_avg_scores": {
                "clarity": 1.0,
                "stakes": 1.0,
                "momentum": 1.5,
                "ending_resonance": 1.0,
            },
            "max_confusions": 15,
        },
    }


def classify(call: ModelCall) -> str:
    """Name the pipeline stage a call belongs to from its prompts."""

    system = call.system_prompt or ""
    if system.startswith("You are a focus group"):
        return "critique"
    if system.startswith("Read the story and retell it"):
        return "retell"
    prompt = call.user_prompt
    if prompt.startswith("You are writing a piece of micro-fiction"):
        return "draft"
    if prompt.startswith("You merge two independent reader critiques"):
        return "aggregate"
    if prompt.startswith("You are revising a micro-fiction story"):
        return "revise"
    if prompt.startswith("Give this micro-fiction a short"):
        return "title"
    raise AssertionError(f"Unexpected call: {prompt[:60]!r}")


Responder = Callable[[ModelCall], str]


class ScriptedGateway:
    """Stand-in for :class:`GatewayContext` answering each stage from a script."""

    def __init__(self, **responders: Responder | str) -> None:
        defaults: dict[str, Responder | str] = {
            "draft": STORY,
            "critique": json.dumps(make_critique()),
            "aggregate": json.dumps(make_plan()),
            "revise": STORY,
            "retell": json.dumps({"retell": "Mara keeps a lantern lit. The light answers back."}),
            "title": "The Last Lantern",
        }
        defaults.update(responders)
        self._responders = defaults
        self.calls: list[tuple[str, ModelCall]] = []

    def invoke(self, call: ModelCall) -> str:
        stage = classify(call)
        self.calls.append((stage, call))
        responder = self._responders[stage]
        if callable(responder):
            return responder(call)
        return responder

    def stages_called(self) -> list[str]:
        return [stage for stage, _ in self.calls]

    def models_for(self, stage: str) -> list[str]:
        return [call.model for name, call in self.calls if name == stage]


@pytest.fixture
def stage_models() -> StageModels:
    return StageModels(
        writer="openai/writer-model",
        judge_a=JUDGE_A,
        judge_b=JUDGE_B,
        aggregator="openai/aggregator-model",
    )


@pytest.fixture
def pipeline_config(tmp_path, stage_models: StageModels) -> PipelineConfig:
    return PipelineConfig(output_root=tmp_path / "runs", models=stage_models)


@pytest.fixture
def brief() -> StoryBrief:
    return StoryBrief(
        data={
            "premise": "A lighthouse keeper hears a bell with no ship.",
            "voice": "spare, close third",
            "required": ["lantern", "bell"],
        }
    )


@pytest.fixture
def dummy_chat_model(monkeypatch: pytest.MonkeyPatch):
    """Patch the LangChain chat clients used by the provider backends."""

    from storyloop.llm import providers

    class DummyChatModel:
        instances: list["DummyChatModel"] = []
        reply = "ok"
        error: Exception | None = None

        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs
            self.invocations: list[tuple[Any, ...]] = []
            type(self).instances.append(self)

        def invoke(self, messages: Iterable[Any], **kwargs: Any) -> SimpleNamespace:
            self.invocations.append(tuple(messages))
            if self.error is not None:
                raise self.error
            return SimpleNamespace(
                content=self.reply,
                usage_metadata={"input_tokens": 11, "output_tokens": 7, "total_tokens": 18},
                response_metadata={},
            )

    class DummyAnthropic(DummyChatModel):
        instances: list[DummyChatModel] = []

    DummyChatModel.instances = []
    monkeypatch.setattr(providers, "ChatOpenAI", DummyChatModel)
    monkeypatch.setattr(providers, "ChatAnthropic", DummyAnthropic)
    return SimpleNamespace(openai=DummyChatModel, anthropic=DummyAnthropic)


@pytest.fixture
def critique_payload() -> Callable[..., dict[str, Any]]:
    return make_critique


@pytest.fixture
def plan_payload() -> Callable[..., dict[str, Any]]:
    return make_plan


@pytest.fixture
def scripted_gateway() -> type[ScriptedGateway]:
    return ScriptedGateway


@pytest.fixture
def story_text() -> str:
    return STORY

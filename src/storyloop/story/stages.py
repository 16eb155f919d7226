"""Model-backed pipeline stages: draft, critique, aggregate, revise, retell, title.

Each stage builds its prompt, sends a :class:`ModelCall` through the gateway
and, for structured stages, validates the reply (retrying once) before
writing it to the target path it was given.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Generic, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from ..io import ArtifactIO, StoryBrief
from ..llm.providers import ModelCall, ModelInvoker, split_model_identifier
from .prompts import CRITIQUE_REMINDER, RETELL_REMINDER, PromptBuilder
from .schemas import Critique, Plan, Retell
from .text import clean_title, slugify, unmatched_quotes
from .validation import call_with_one_retry, raw_path_for

if TYPE_CHECKING:  # pragma: no cover
    from ..config import StageModels

logger = logging.getLogger(__name__)

DocT = TypeVar("DocT", bound=BaseModel)

JUDGE_TEMPERATURE = 0.0
AGGREGATOR_TEMPERATURE = 0.0


class JudgeStageError(RuntimeError):
    """One or both judges failed; every judge still ran."""

    def __init__(self, stage: str, failures: Dict[str, Exception]) -> None:
        self.stage = stage
        self.failures = failures
        details = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
        super().__init__(f"{stage} failed for judge(s) {details}")


@dataclass(frozen=True, slots=True)
class JudgeSpec:
    name: str
    model: str


@dataclass(frozen=True)
class JudgePair(Generic[DocT]):
    first: DocT
    second: DocT
    paths: Tuple[Path, Path]


def judge_name(model: str) -> str:
    """Short judge label derived from the last segment of a model identifier."""

    _, model_name = split_model_identifier(model)
    return slugify(model_name.rsplit("/", 1)[-1])


def judge_specs(model_a: str, model_b: str) -> Tuple[JudgeSpec, JudgeSpec]:
    name_a, name_b = judge_name(model_a), judge_name(model_b)
    if name_a == name_b:
        name_a, name_b = f"{name_a}-a", f"{name_b}-b"
    return JudgeSpec(name_a, model_a), JudgeSpec(name_b, model_b)


def structured_call(
    invoker: ModelInvoker,
    call: ModelCall,
    shape: Type[DocT],
    reminder: str,
    target: Path,
    io_helper: ArtifactIO,
) -> DocT:
    """Validated call whose result is written to ``target`` before returning."""

    def make_call(suffix: Optional[str]) -> str:
        return invoker.invoke(call.with_reminder(suffix))

    def raw_sink(attempt: int, raw: str) -> Path:
        return io_helper.write_text(raw_path_for(target, attempt), raw)

    document = call_with_one_retry(make_call, shape, reminder, raw_sink=raw_sink)
    io_helper.write_json(target, document)
    return document


def run_judges(
    invoker: ModelInvoker,
    story: str,
    system_prompt: str,
    judges: Tuple[JudgeSpec, JudgeSpec],
    shape: Type[DocT],
    reminder: str,
    targets: Tuple[Path, Path],
    *,
    io_helper: ArtifactIO,
    stage: str,
    parallel: bool = False,
) -> JudgePair[DocT]:
    """Ask both judges for ``shape`` documents about ``story``."""

    def run_one(judge: JudgeSpec, target: Path) -> DocT:
        logger.info("%s: judge %s (%s)", stage, judge.name, judge.model)
        call = ModelCall(
            model=judge.model,
            system_prompt=system_prompt,
            user_prompt=story,
            temperature=JUDGE_TEMPERATURE,
            response_format="json",
        )
        return structured_call(invoker, call, shape, reminder, target, io_helper)

    results: Dict[str, DocT] = {}
    failures: Dict[str, Exception] = {}

    if parallel:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="judge") as pool:
            futures = [
                (judge, pool.submit(run_one, judge, target))
                for judge, target in zip(judges, targets)
            ]
            for judge, future in futures:
                try:
                    results[judge.name] = future.result()
                except Exception as exc:
                    failures[judge.name] = exc
    else:
        for judge, target in zip(judges, targets):
            try:
                results[judge.name] = run_one(judge, target)
            except Exception as exc:
                failures[judge.name] = exc

    if failures:
        for name, exc in failures.items():
            logger.error("%s: judge %s failed: %s", stage, name, exc)
        raise JudgeStageError(stage, failures) from next(iter(failures.values()))

    return JudgePair(
        first=results[judges[0].name],
        second=results[judges[1].name],
        paths=targets,
    )


class StoryStages:
    """Stage operations bound to one gateway and one set of stage models."""

    def __init__(
        self,
        gateway: ModelInvoker,
        models: "StageModels",
        *,
        prompts: PromptBuilder | None = None,
        io_helper: ArtifactIO | None = None,
        writer_temperature: float = 0.7,
        parallel_judges: bool = False,
    ) -> None:
        self.gateway = gateway
        self.models = models
        self.prompts = prompts or PromptBuilder()
        self.io = io_helper or ArtifactIO()
        self.writer_temperature = writer_temperature
        self.parallel_judges = parallel_judges
        self.judges = judge_specs(models.judge_a, models.judge_b)

    def draft_prompt(self, brief: StoryBrief) -> str:
        return self.prompts.writer(brief.data)

    def draft(self, brief: StoryBrief) -> str:
        call = ModelCall(
            model=self.models.writer,
            user_prompt=self.draft_prompt(brief),
            temperature=self.writer_temperature,
        )
        return _require_text(self.gateway.invoke(call), "Draft")

    def critique(self, story: str, targets: Tuple[Path, Path]) -> JudgePair[Critique]:
        pair = run_judges(
            self.gateway,
            story,
            self.prompts.focus_group(),
            self.judges,
            Critique,
            CRITIQUE_REMINDER,
            targets,
            io_helper=self.io,
            stage="critique",
            parallel=self.parallel_judges,
        )
        for judge, critique in zip(self.judges, (pair.first, pair.second)):
            quotes = [entry.quote for entry in (*critique.confusions, *critique.strengths)]
            missing = unmatched_quotes(story, quotes)
            if missing:
                logger.warning(
                    "Judge %s quoted %d passage(s) not found in the story", judge.name, len(missing)
                )
        return pair

    def retell(self, story: str, targets: Tuple[Path, Path]) -> JudgePair[Retell]:
        return run_judges(
            self.gateway,
            story,
            self.prompts.retell(),
            self.judges,
            Retell,
            RETELL_REMINDER,
            targets,
            io_helper=self.io,
            stage="retell",
            parallel=self.parallel_judges,
        )

    def aggregate(
        self,
        story: str,
        critique_a: Critique,
        critique_b: Critique,
        *,
        target: Path,
    ) -> Plan:
        call = ModelCall(
            model=self.models.aggregator,
            user_prompt=self.prompts.aggregator(story, critique_a, critique_b),
            temperature=AGGREGATOR_TEMPERATURE,
            response_format="json",
        )
        plan = structured_call(self.gateway, call, Plan, CRITIQUE_REMINDER, target, self.io)
        logger.info(
            "Plan: %d must-fix, %d optional, %d action(s)",
            len(plan.must_fix),
            len(plan.optional),
            len(plan.revision_plan),
        )
        return plan

    def revise(self, brief: StoryBrief, story: str, plan: Plan) -> str:
        call = ModelCall(
            model=self.models.writer,
            user_prompt=self.prompts.revise(brief.data, story, plan),
            temperature=self.writer_temperature,
        )
        return _require_text(self.gateway.invoke(call), "Revision")

    def title(self, story: str) -> str:
        call = ModelCall(
            model=self.models.writer,
            user_prompt=self.prompts.title(story),
            temperature=self.writer_temperature,
        )
        return clean_title(self.gateway.invoke(call))


def _require_text(text: str, label: str) -> str:
    cleaned = text.strip()
    if not cleaned:
        raise RuntimeError(f"{label} stage returned empty content.")
    return cleaned


__all__ = [
    "JUDGE_TEMPERATURE",
    "AGGREGATOR_TEMPERATURE",
    "JudgeStageError",
    "JudgeSpec",
    "JudgePair",
    "StoryStages",
    "judge_name",
    "judge_specs",
    "run_judges",
    "structured_call",
]

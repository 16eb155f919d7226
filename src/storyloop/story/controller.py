"""Cycle controller: draft once, then critique/aggregate/revise/retell/gate.

The loop is a LangGraph ``StateGraph``. After ``gate`` a conditional edge
routes to ``publish``, back to ``critique`` for another cycle, or to ``fail``
once ``MAX_CYCLES`` cycles have run. Every run owns one numbered directory
under the output root and ends with exactly one ``10-metadata.json``.

Artifacts of the first cycle use the plain layout names. Critiques, plans
and retells from later cycles get a ``_c<cycle>`` suffix so earlier cycles
stay on disk; revisions already carry their cycle number.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from langgraph.graph import END, START, StateGraph

from ..io import ArtifactIO, StoryBrief
from ..paths import FAILED_LABEL, claim_run_directory, rename_run_directory
from .gate import GatePolicy, decide_gate
from .stages import StoryStages
from .state import (
    ArtifactRecord,
    RunOutcome,
    RunPhase,
    RunRecord,
    RunResult,
    StoryWorkflowState,
    utc_timestamp,
)
from .text import check_revision, slugify, strip_beat_markers

if TYPE_CHECKING:  # pragma: no cover
    from ..config import PipelineConfig

logger = logging.getLogger(__name__)

MAX_CYCLES = 2
METADATA_FILENAME = "10-metadata.json"


def _cycle_suffix(cycle: int) -> str:
    return "" if cycle <= 1 else f"_c{cycle}"


class ArtifactNames:
    """File names inside a run directory."""

    draft = "01-draft.md"
    published = "08-published.md"
    title = "09-title.txt"
    metadata = METADATA_FILENAME

    @staticmethod
    def critique(position: int, judge: str, cycle: int) -> str:
        return f"{2 + position:02d}-critique_{judge}{_cycle_suffix(cycle)}.json"

    @staticmethod
    def plan(cycle: int) -> str:
        return f"04-plan{_cycle_suffix(cycle)}.json"

    @staticmethod
    def revised(cycle: int) -> str:
        return f"05-{cycle}-revised.md"

    @staticmethod
    def retell(position: int, judge: str, cycle: int) -> str:
        return f"{6 + position:02d}-retell_{judge}{_cycle_suffix(cycle)}.json"


class CycleController:
    """Owns the run directory, the run record and the draft lifecycle."""

    def __init__(
        self,
        stages: StoryStages,
        config: "PipelineConfig",
        *,
        io_helper: ArtifactIO | None = None,
        gate_policy: GatePolicy | None = None,
    ) -> None:
        self.stages = stages
        self.config = config
        self.io = io_helper or ArtifactIO()
        self.gate_policy = gate_policy or GatePolicy(
            require_retell_match=config.require_retell_match
        )
        self._record: Optional[RunRecord] = None
        self._brief: Optional[StoryBrief] = None
        self._graph = self._build_graph()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self, brief: StoryBrief) -> RunResult:
        """Execute one run. Failures after the directory claim end as FAILED."""

        index, run_dir = claim_run_directory(self.config.output_root)
        record = RunRecord(index=index, run_dir=run_dir)
        self._record = record
        self._brief = brief

        try:
            self._graph.invoke(
                {"brief": brief, "cycle": 0},
                config={
                    "recursion_limit": 10 + MAX_CYCLES * 6,
                    "configurable": {"thread_id": f"run-{run_dir.name}"},
                },
            )
        except Exception as exc:
            logger.exception("Run %s aborted during %s", run_dir.name, record.phase.value)
            self._finalize_failed(
                reason=f"{type(exc).__name__}: {exc}",
                error_type=type(exc).__name__,
            )
        return RunResult(record)

    @property
    def record(self) -> RunRecord:
        if self._record is None:
            raise RuntimeError("No run has been started.")
        return self._record

    # ------------------------------------------------------------------
    # LangGraph node implementations
    # ------------------------------------------------------------------
    def draft(self, state: StoryWorkflowState) -> StoryWorkflowState:
        self._enter(RunPhase.DRAFTING)
        draft_text = self.stages.draft(state["brief"])
        path = self.record.add_artifact("draft", ArtifactNames.draft)
        self.io.write_text(path, draft_text + "\n")

        updated = dict(state)
        updated["draft"] = draft_text
        updated["current_story"] = draft_text
        return updated

    def critique(self, state: StoryWorkflowState) -> StoryWorkflowState:
        cycle = state.get("cycle", 0) + 1
        self.record.cycles = cycle
        self._enter(RunPhase.CRITIQUING)
        logger.info("Cycle %d/%d", cycle, MAX_CYCLES)

        current_story = state.get("revision") or state["current_story"]
        targets = self._judge_targets("critique", ArtifactNames.critique, cycle)
        critiques = self.stages.critique(current_story, targets)

        updated = dict(state)
        updated["cycle"] = cycle
        updated["current_story"] = current_story
        updated["critiques"] = critiques
        return updated

    def aggregate(self, state: StoryWorkflowState) -> StoryWorkflowState:
        self._enter(RunPhase.AGGREGATING)
        cycle = state["cycle"]
        critiques = state["critiques"]
        target = self.record.add_artifact("plan", ArtifactNames.plan(cycle), cycle=cycle)
        plan = self.stages.aggregate(
            state["current_story"],
            critiques.first,
            critiques.second,
            target=target,
        )

        updated = dict(state)
        updated["plan"] = plan
        return updated

    def revise(self, state: StoryWorkflowState) -> StoryWorkflowState:
        self._enter(RunPhase.REVISING)
        cycle = state["cycle"]
        revision = self.stages.revise(state["brief"], state["current_story"], state["plan"])
        path = self.record.add_artifact("revised", ArtifactNames.revised(cycle), cycle=cycle)
        self.io.write_text(path, revision + "\n")

        check = check_revision(revision, word_limit=self.config.word_limit)
        self.record.revision_checks.append(check)
        if not check.within_limit:
            logger.warning(
                "Revision %d has %d words (limit %d)", cycle, check.word_count, check.word_limit
            )
        if check.missing_beats:
            logger.warning(
                "Revision %d is missing beat tags: %s", cycle, ", ".join(check.missing_beats)
            )

        updated = dict(state)
        updated["revision"] = revision
        return updated

    def retell(self, state: StoryWorkflowState) -> StoryWorkflowState:
        self._enter(RunPhase.RETELLING)
        cycle = state["cycle"]
        targets = self._judge_targets("retell", ArtifactNames.retell, cycle)
        retells = self.stages.retell(state["revision"], targets)

        updated = dict(state)
        updated["retells"] = retells
        return updated

    def gate(self, state: StoryWorkflowState) -> StoryWorkflowState:
        self._enter(RunPhase.GATING)
        critiques = state["critiques"]
        retells = state["retells"]
        result = decide_gate(
            critiques.first,
            critiques.second,
            retells.first,
            retells.second,
            self.gate_policy,
        )
        self.record.gates.append(result)
        if result.publish:
            logger.info("Gate passed in cycle %d", state["cycle"])
        else:
            logger.info("Gate failed in cycle %d: %s", state["cycle"], result.reason)

        updated = dict(state)
        updated["gate"] = result
        return updated

    def publish(self, state: StoryWorkflowState) -> StoryWorkflowState:
        cleaned = strip_beat_markers(state["revision"])
        title = self.stages.title(cleaned)
        record = self.record

        published_path = record.add_artifact("published", ArtifactNames.published, cycle=state["cycle"])
        self.io.write_text(published_path, f"# {title}\n\n{cleaned}\n")
        title_path = record.add_artifact("title", ArtifactNames.title, cycle=state["cycle"])
        self.io.write_text(title_path, title + "\n")

        self._finalize(
            RunOutcome(
                status=RunPhase.PUBLISHED.value,
                reason="gate passed",
                phase=RunPhase.PUBLISHED,
                title=title,
            ),
            label=slugify(title),
        )

        updated = dict(state)
        updated["title"] = title
        return updated

    def fail(self, state: StoryWorkflowState) -> StoryWorkflowState:
        gate = state["gate"]
        logger.info("Max cycles reached (%d). Publish: NO", MAX_CYCLES)
        self._finalize_failed(reason=f"max cycles reached; {gate.reason}")
        return dict(state)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _build_graph(self):
        graph = StateGraph(StoryWorkflowState)
        graph.add_node("draft", self.draft)
        graph.add_node("critique", self.critique)
        graph.add_node("aggregate", self.aggregate)
        graph.add_node("revise", self.revise)
        graph.add_node("retell", self.retell)
        graph.add_node("gate", self.gate)
        graph.add_node("publish", self.publish)
        graph.add_node("fail", self.fail)

        graph.add_edge(START, "draft")
        graph.add_edge("draft", "critique")
        graph.add_edge("critique", "aggregate")
        graph.add_edge("aggregate", "revise")
        graph.add_edge("revise", "retell")
        graph.add_edge("retell", "gate")
        graph.add_conditional_edges(
            "gate",
            self._route_after_gate,
            {"publish": "publish", "critique": "critique", "fail": "fail"},
        )
        graph.add_edge("publish", END)
        graph.add_edge("fail", END)
        return graph.compile()

    @staticmethod
    def _route_after_gate(state: StoryWorkflowState) -> str:
        if state["gate"].publish:
            return "publish"
        if state["cycle"] < MAX_CYCLES:
            return "critique"
        return "fail"

    def _enter(self, phase: RunPhase) -> None:
        self.record.phase = phase
        logger.info("[%s] %s", self.record.run_dir.name, phase.value)

    def _judge_targets(self, stage: str, namer, cycle: int) -> tuple[Path, Path]:
        paths = []
        for position, judge in enumerate(self.stages.judges):
            name = namer(position, judge.name, cycle)
            paths.append(self.record.add_artifact(stage, name, cycle=cycle, judge=judge.name))
        return paths[0], paths[1]

    def _finalize_failed(self, *, reason: str, error_type: str | None = None) -> RunOutcome:
        return self._finalize(
            RunOutcome(
                status=RunPhase.FAILED.value,
                reason=reason,
                phase=self.record.phase,
                error_type=error_type,
            ),
            label=FAILED_LABEL,
        )

    def _finalize(self, outcome: RunOutcome, *, label: str) -> RunOutcome:
        record = self.record
        if record.outcome is not None:
            logger.warning(
                "Run %s already finalized as %s; ignoring %s",
                record.run_dir.name,
                record.outcome.status,
                outcome.status,
            )
            return record.outcome

        record.outcome = outcome
        record.finished_at = utc_timestamp()
        metadata_artifact = _metadata_artifact(record.cycles)
        record.artifacts.append(metadata_artifact)
        try:
            self.io.write_json(record.path(ArtifactNames.metadata), self._metadata(record))
        except Exception:
            # not finalized until the metadata is on disk
            record.artifacts.remove(metadata_artifact)
            record.outcome = None
            record.finished_at = None
            raise
        record.phase = RunPhase.PUBLISHED if outcome.published else RunPhase.FAILED
        record.run_dir = rename_run_directory(record.run_dir, label)
        logger.info("Run finished: %s -> %s", outcome.status, record.run_dir)
        return outcome

    def _metadata(self, record: RunRecord) -> dict[str, Any]:
        payload = record.to_dict()
        payload["slug"] = slugify(record.outcome.title) if record.outcome and record.outcome.title else None
        payload["config"] = self.config.describe()
        payload["judges"] = {judge.name: judge.model for judge in self.stages.judges}
        brief = self._brief
        payload["brief"] = str(brief.source) if brief is not None and brief.source else None
        usage = getattr(self.stages.gateway, "usage", None)
        payload["usage"] = usage.summary() if usage is not None else None
        return payload


def _metadata_artifact(cycle: int) -> ArtifactRecord:
    return ArtifactRecord(stage="metadata", name=METADATA_FILENAME, cycle=cycle)


__all__ = ["MAX_CYCLES", "METADATA_FILENAME", "ArtifactNames", "CycleController"]

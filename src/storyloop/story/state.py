"""Run-level state for the cycle controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TypedDict

from ..io import StoryBrief
from .gate import GateResult
from .schemas import Critique, Plan, Retell
from .stages import JudgePair
from .text import RevisionCheck


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class RunPhase(str, Enum):
    INITIALIZING = "initializing"
    DRAFTING = "drafting"
    CRITIQUING = "critiquing"
    AGGREGATING = "aggregating"
    REVISING = "revising"
    RETELLING = "retelling"
    GATING = "gating"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in {RunPhase.PUBLISHED, RunPhase.FAILED}


@dataclass(slots=True)
class ArtifactRecord:
    stage: str
    name: str
    cycle: int = 0
    judge: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"stage": self.stage, "name": self.name, "cycle": self.cycle, "judge": self.judge}


@dataclass(slots=True)
class RunOutcome:
    status: str
    reason: str
    phase: RunPhase
    title: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def published(self) -> bool:
        return self.status == RunPhase.PUBLISHED.value


@dataclass
class RunRecord:
    """Everything the controller knows about one run."""

    index: int
    run_dir: Path
    started_at: str = field(default_factory=utc_timestamp)
    phase: RunPhase = RunPhase.INITIALIZING
    cycles: int = 0
    artifacts: list[ArtifactRecord] = field(default_factory=list)
    gates: list[GateResult] = field(default_factory=list)
    revision_checks: list[RevisionCheck] = field(default_factory=list)
    outcome: Optional[RunOutcome] = None
    finished_at: Optional[str] = None

    @property
    def finalized(self) -> bool:
        return self.outcome is not None

    @property
    def last_gate(self) -> Optional[GateResult]:
        return self.gates[-1] if self.gates else None

    def path(self, name: str) -> Path:
        return self.run_dir / name

    def add_artifact(self, stage: str, name: str, *, cycle: int = 0, judge: str | None = None) -> Path:
        self.artifacts.append(ArtifactRecord(stage=stage, name=name, cycle=cycle, judge=judge))
        return self.path(name)

    def to_dict(self) -> dict[str, Any]:
        outcome = self.outcome
        return {
            "status": outcome.status if outcome else None,
            "run_index": self.index,
            "title": outcome.title if outcome else None,
            "reason": outcome.reason if outcome else None,
            "phase": outcome.phase.value if outcome else self.phase.value,
            "error_type": outcome.error_type if outcome else None,
            "cycles": self.cycles,
            "gate": self.last_gate.to_dict() if self.last_gate else None,
            "gate_history": [gate.to_dict() for gate in self.gates],
            "revision_checks": [check.to_dict() for check in self.revision_checks],
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass(frozen=True)
class RunResult:
    record: RunRecord

    @property
    def published(self) -> bool:
        return bool(self.record.outcome and self.record.outcome.published)

    @property
    def run_dir(self) -> Path:
        return self.record.run_dir

    @property
    def title(self) -> Optional[str]:
        return self.record.outcome.title if self.record.outcome else None


class StoryWorkflowState(TypedDict, total=False):
    """State propagated through the cycle graph."""

    brief: StoryBrief
    draft: str
    current_story: str
    cycle: int
    critiques: JudgePair[Critique]
    plan: Plan
    revision: str
    retells: JudgePair[Retell]
    gate: GateResult
    title: str


__all__ = [
    "ArtifactRecord",
    "RunOutcome",
    "RunPhase",
    "RunRecord",
    "RunResult",
    "StoryWorkflowState",
    "utc_timestamp",
]

"""Structured schema definitions for judge and aggregator outputs."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RATING_DIMENSIONS = ("clarity", "stakes", "momentum", "ending_resonance")

FixHint = Literal["structural", "line"]


class FrozenBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Ratings(FrozenBaseModel):
    """Four sub-scores on a 0-3 scale."""

    clarity: float = Field(..., ge=0, le=3, strict=True)
    stakes: float = Field(..., ge=0, le=3, strict=True)
    momentum: float = Field(..., ge=0, le=3, strict=True)
    ending_resonance: float = Field(..., ge=0, le=3, strict=True)

    def as_dict(self) -> Dict[str, float]:
        return {dimension: getattr(self, dimension) for dimension in RATING_DIMENSIONS}


class Confusion(FrozenBaseModel):
    """A passage a judge found confusing."""

    quote: str = Field(..., description="Exact excerpt from the story under review.")
    why: str = Field(..., description="Why the passage confused the reader.")
    fix_hint: Optional[FixHint] = Field(
        default=None,
        description="Whether fixing it needs structural change or a line edit.",
    )


class Strength(FrozenBaseModel):
    """A passage a judge found effective."""

    quote: str = Field(..., description="Exact excerpt from the story under review.")
    why: str = Field(..., description="Why the passage works.")


class Critique(FrozenBaseModel):
    """Focus-group critique produced by a single judge."""

    retell: str = Field(..., description="Two-sentence retell of the story.")
    stakes: str = Field(..., description="One sentence naming what is at stake.")
    confusions: List[Confusion] = Field(default_factory=list)
    strengths: List[Strength] = Field(default_factory=list)
    ratings: Ratings


class MustFixItem(FrozenBaseModel):
    issue: str
    evidence: List[str]
    type: FixHint


class RevisionAction(FrozenBaseModel):
    action: str
    target_span: str
    success_metric: str


class MinAverageScores(FrozenBaseModel):
    clarity: float = Field(..., strict=True)
    stakes: float = Field(..., strict=True)
    momentum: float = Field(..., strict=True)
    ending_resonance: float = Field(..., strict=True)


class PlanGate(FrozenBaseModel):
    """Thresholds suggested by the aggregator.

    Persisted with the plan for reference only; publishing is decided by
    :func:`storyloop.story.gate.decide_gate` with its own policy.
    """

    min_avg_scores: MinAverageScores
    max_confusions: float = Field(..., strict=True)


class Plan(FrozenBaseModel):
    """Revision plan built from issues both judges raised."""

    must_fix: List[MustFixItem] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    revision_plan: List[RevisionAction] = Field(..., max_length=3)
    gate: PlanGate


class Retell(FrozenBaseModel):
    """Two-sentence comprehension check."""

    retell: str


__all__ = [
    "RATING_DIMENSIONS",
    "FrozenBaseModel",
    "Ratings",
    "Confusion",
    "Strength",
    "Critique",
    "MustFixItem",
    "RevisionAction",
    "MinAverageScores",
    "PlanGate",
    "Plan",
    "Retell",
]

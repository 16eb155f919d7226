"""Publish gate: a pure decision over two critiques and two retells.

The thresholds here are the ones that decide publication. The ``gate`` block
an aggregator writes into its plan is kept for reference and never read.
Retell agreement is always computed and reported, but it only blocks
publication when :attr:`GatePolicy.require_retell_match` is set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

from .schemas import RATING_DIMENSIONS, Critique, Retell

DEFAULT_MIN_AVG_SCORES: Mapping[str, float] = MappingProxyType(
    {"clarity": 1.0, "stakes": 1.0, "momentum": 1.5, "ending_resonance": 1.0}
)
DEFAULT_MAX_CONFUSIONS = 15


@dataclass(frozen=True)
class GatePolicy:
    min_avg_scores: Mapping[str, float] = field(default_factory=lambda: DEFAULT_MIN_AVG_SCORES)
    max_confusions: int = DEFAULT_MAX_CONFUSIONS
    require_retell_match: bool = False

    def __post_init__(self) -> None:
        missing = [dim for dim in RATING_DIMENSIONS if dim not in self.min_avg_scores]
        if missing:
            raise ValueError(f"Gate policy missing thresholds for: {', '.join(missing)}")


DEFAULT_GATE_POLICY = GatePolicy()


@dataclass(frozen=True)
class GateResult:
    avg_ratings: Dict[str, float]
    total_confusions: int
    retell_match: bool
    scores_pass: bool
    confusions_pass: bool
    publish: bool
    failures: Tuple[str, ...] = ()

    @property
    def reason(self) -> str:
        if self.publish:
            return "gate passed"
        return "; ".join(self.failures) or "gate failed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "avg_ratings": dict(self.avg_ratings),
            "total_confusions": self.total_confusions,
            "retell_match": self.retell_match,
            "scores_pass": self.scores_pass,
            "confusions_pass": self.confusions_pass,
            "publish": self.publish,
            "failures": list(self.failures),
        }


def normalize_retell(text: str) -> str:
    return text.strip().lower()


def decide_gate(
    critique_a: Critique,
    critique_b: Critique,
    retell_a: Retell,
    retell_b: Retell,
    policy: GatePolicy = DEFAULT_GATE_POLICY,
) -> GateResult:
    ratings_a = critique_a.ratings.as_dict()
    ratings_b = critique_b.ratings.as_dict()
    avg_ratings = {dim: (ratings_a[dim] + ratings_b[dim]) / 2 for dim in RATING_DIMENSIONS}

    total_confusions = len(critique_a.confusions) + len(critique_b.confusions)
    retell_match = normalize_retell(retell_a.retell) == normalize_retell(retell_b.retell)

    failures: list[str] = []
    for dim in RATING_DIMENSIONS:
        minimum = policy.min_avg_scores[dim]
        if avg_ratings[dim] < minimum:
            failures.append(f"avg {dim} {avg_ratings[dim]:.10g} < {minimum:g}")
    scores_pass = not failures

    confusions_pass = total_confusions <= policy.max_confusions
    if not confusions_pass:
        failures.append(f"total confusions {total_confusions} > {policy.max_confusions}")

    publish = scores_pass and confusions_pass
    if policy.require_retell_match and not retell_match:
        failures.append("retells do not match")
        publish = False

    return GateResult(
        avg_ratings=avg_ratings,
        total_confusions=total_confusions,
        retell_match=retell_match,
        scores_pass=scores_pass,
        confusions_pass=confusions_pass,
        publish=publish,
        failures=tuple(failures),
    )


__all__ = [
    "DEFAULT_MIN_AVG_SCORES",
    "DEFAULT_MAX_CONFUSIONS",
    "DEFAULT_GATE_POLICY",
    "GatePolicy",
    "GateResult",
    "decide_gate",
    "normalize_retell",
]

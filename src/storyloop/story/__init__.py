"""Story pipeline: schemas, stages, gate and the cycle controller."""

from .controller import MAX_CYCLES, ArtifactNames, CycleController
from .gate import DEFAULT_GATE_POLICY, GatePolicy, GateResult, decide_gate
from .schemas import Critique, Plan, Ratings, Retell
from .stages import JudgePair, JudgeSpec, JudgeStageError, StoryStages, run_judges
from .state import RunPhase, RunRecord, RunResult
from .validation import (
    InvalidStructuredResponse,
    MalformedDocument,
    SchemaViolation,
    StructuredResponseFailed,
    call_with_one_retry,
    validate_response,
)

__all__ = [
    "MAX_CYCLES",
    "ArtifactNames",
    "CycleController",
    "DEFAULT_GATE_POLICY",
    "GatePolicy",
    "GateResult",
    "decide_gate",
    "Critique",
    "Plan",
    "Ratings",
    "Retell",
    "JudgePair",
    "JudgeSpec",
    "JudgeStageError",
    "StoryStages",
    "run_judges",
    "RunPhase",
    "RunRecord",
    "RunResult",
    "InvalidStructuredResponse",
    "MalformedDocument",
    "SchemaViolation",
    "StructuredResponseFailed",
    "call_with_one_retry",
    "validate_response",
]

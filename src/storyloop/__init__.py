"""Micro-fiction pipeline with two-judge review and a publish gate."""

from .config import LLMConfig, PipelineConfig, StageModels
from .io import ArtifactIO, StoryBrief, load_brief
from .llm import GatewayContext, ModelCall, UnknownProviderError
from .paths import claim_run_directory, next_run_index, resolve_output_root
from .story import CycleController, GatePolicy, GateResult, StoryStages, decide_gate

__all__ = [
    "LLMConfig",
    "PipelineConfig",
    "StageModels",
    "ArtifactIO",
    "StoryBrief",
    "load_brief",
    "GatewayContext",
    "ModelCall",
    "UnknownProviderError",
    "claim_run_directory",
    "next_run_index",
    "resolve_output_root",
    "CycleController",
    "GatePolicy",
    "GateResult",
    "StoryStages",
    "decide_gate",
]

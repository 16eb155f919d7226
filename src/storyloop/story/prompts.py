"""Prompt templates for each model call in the pipeline."""

from __future__ import annotations

import json
import textwrap
from typing import Any, Mapping

from .schemas import Critique, Plan
from .text import BEAT_TAGS, DEFAULT_WORD_LIMIT

CRITIQUE_REMINDER = "Please return valid JSON matching the schema."
RETELL_REMINDER = 'Return valid JSON: {"retell": "..."}'


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, default=str)


def _schema(model: Any) -> str:
    return _dump(model.model_json_schema())


class PromptBuilder:
    """Assemble the deterministic prompts used by :class:`StoryStages`."""

    WRITER_TEMPLATE = textwrap.dedent(
        """
        You are writing a piece of micro-fiction from the Story Bible below.

        Rules:
        - At most {word_limit} words.
        - Mark each beat on its own line with one of these tags, in order: {beats}.
        - Honour every required element and avoid every forbidden one.
        - Return only the story text, no commentary.

        Story Bible:
        {brief_json}
        """
    ).strip()

    FOCUS_GROUP_SYSTEM = textwrap.dedent(
        """
        You are a focus group of attentive first-time readers. Read the story and
        respond with a single JSON object matching this schema:

        {schema}

        - "retell": exactly two sentences.
        - "stakes": one sentence.
        - Every "quote" must be copied verbatim from the story.
        - Ratings are 0-3 for clarity, stakes, momentum and ending_resonance.
        Output JSON only. Do not include markdown fences.
        """
    ).strip()

    RETELL_SYSTEM = textwrap.dedent(
        """
        Read the story and retell it in exactly two sentences.
        Respond with JSON only: {"retell": "..."}
        """
    ).strip()

    AGGREGATOR_TEMPLATE = textwrap.dedent(
        """
        You merge two independent reader critiques into one revision plan.
        Keep only issues that BOTH critiques raise independently; everything else
        is optional. Propose at most 3 revision actions. Respond with a single JSON
        object matching this schema, and nothing else:

        {schema}
        """
    ).strip()

    TITLE_TEMPLATE = textwrap.dedent(
        """
        Give this micro-fiction a short, evocative title (at most six words).
        Return only the title.

        Story:
        {story}
        """
    ).strip()

    def __init__(self, *, word_limit: int = DEFAULT_WORD_LIMIT) -> None:
        self.word_limit = word_limit

    def writer(self, brief: Mapping[str, Any]) -> str:
        return self.WRITER_TEMPLATE.format(
            word_limit=self.word_limit,
            beats=", ".join(f"[{tag}]" for tag in BEAT_TAGS),
            brief_json=_dump(dict(brief)),
        )

    def focus_group(self) -> str:
        return self.FOCUS_GROUP_SYSTEM.format(schema=_schema(Critique))

    def retell(self) -> str:
        return self.RETELL_SYSTEM

    def aggregator(self, story: str, critique_a: Critique, critique_b: Critique) -> str:
        header = self.AGGREGATOR_TEMPLATE.format(schema=_schema(Plan))
        return (
            f"{header}\n\n"
            f"Story:\n{story}\n\n"
            f"Critique A:\n{_dump(critique_a.model_dump(mode='json'))}\n\n"
            f"Critique B:\n{_dump(critique_b.model_dump(mode='json'))}\n\n"
            "Generate aggregation plan with only overlapping issues."
        )

    def revise(self, brief: Mapping[str, Any], story: str, plan: Plan) -> str:
        must_fix = [item.model_dump(mode="json") for item in plan.must_fix]
        actions = [item.model_dump(mode="json") for item in plan.revision_plan]
        return (
            "You are revising a micro-fiction story based on a must-fix plan.\n\n"
            f"Story Bible:\n{_dump(dict(brief))}\n\n"
            f"Current Story:\n{story}\n\n"
            f"Must-fix items:\n{_dump(must_fix)}\n\n"
            f"Revision plan:\n{_dump(actions)}\n\n"
            f"Apply ONLY the must-fix items. Keep ≤{self.word_limit} words and maintain "
            "beat tags. Return the revised story with no explanations."
        )

    def title(self, story: str) -> str:
        return self.TITLE_TEMPLATE.format(story=story)


__all__ = ["CRITIQUE_REMINDER", "RETELL_REMINDER", "PromptBuilder"]

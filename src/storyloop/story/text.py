"""Small text transforms applied to drafts and titles."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

BEAT_TAGS: Tuple[str, ...] = ("SETUP", "TURN", "AFTERSHOCK", "BUTTON")
DEFAULT_WORD_LIMIT = 180

_BEAT_PATTERN = re.compile(r"\[(?:%s)\]\s*" % "|".join(BEAT_TAGS))
VALID_SLUG_PATTERN = re.compile(r"[^\w\-\s]", re.UNICODE)
WHITESPACE_PATTERN = re.compile(r"[\s\-_]+")


def strip_beat_markers(text: str) -> str:
    return _BEAT_PATTERN.sub("", text).strip()


def slugify(title: str, *, max_length: int = 60) -> str:
    """Lower-cased, hyphenated form of ``title`` safe for directory names."""

    cleaned = VALID_SLUG_PATTERN.sub("", title).strip()
    cleaned = WHITESPACE_PATTERN.sub("-", cleaned.lower())
    cleaned = cleaned[:max_length].strip("-_")
    return cleaned or "untitled"


def clean_title(raw: str) -> str:
    """First non-empty line of a title response, without quotes or heading marks."""

    for line in raw.splitlines():
        candidate = line.strip().lstrip("#").strip().strip("\"'*").strip()
        if candidate:
            return candidate
    return "Untitled"


def word_count(text: str) -> int:
    return len(strip_beat_markers(text).split())


@dataclass(frozen=True)
class RevisionCheck:
    word_count: int
    word_limit: int
    missing_beats: Tuple[str, ...]

    @property
    def within_limit(self) -> bool:
        return self.word_count <= self.word_limit

    @property
    def ok(self) -> bool:
        return self.within_limit and not self.missing_beats

    def to_dict(self) -> dict[str, object]:
        return {
            "word_count": self.word_count,
            "word_limit": self.word_limit,
            "missing_beats": list(self.missing_beats),
        }


def check_revision(
    text: str,
    *,
    word_limit: int = DEFAULT_WORD_LIMIT,
    expected_beats: Sequence[str] = BEAT_TAGS,
) -> RevisionCheck:
    """Report word count and beat tags of a revision. Nothing is enforced."""

    missing = tuple(tag for tag in expected_beats if f"[{tag}]" not in text)
    return RevisionCheck(word_count=word_count(text), word_limit=word_limit, missing_beats=missing)


def unmatched_quotes(story: str, quotes: Iterable[str]) -> list[str]:
    """Quotes that do not appear verbatim in ``story`` (whitespace-normalised)."""

    haystack = " ".join(story.split())
    missing: list[str] = []
    for quote in quotes:
        needle = " ".join(quote.split())
        if needle and needle not in haystack:
            missing.append(quote)
    return missing


__all__ = [
    "BEAT_TAGS",
    "DEFAULT_WORD_LIMIT",
    "RevisionCheck",
    "check_revision",
    "clean_title",
    "slugify",
    "strip_beat_markers",
    "unmatched_quotes",
    "word_count",
]

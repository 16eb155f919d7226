from __future__ import annotations

from storyloop.story.text import (
    check_revision,
    clean_title,
    slugify,
    strip_beat_markers,
    unmatched_quotes,
    word_count,
)


def test_strip_beat_markers(story_text: str) -> None:
    cleaned = strip_beat_markers(story_text)

    assert "[" not in cleaned
    assert cleaned.splitlines()[0] == "Mara keeps the last lantern lit."
    assert cleaned.endswith("The light answers back.")


def test_slugify() -> None:
    assert slugify("The Last Lantern!") == "the-last-lantern"
    assert slugify("  Salt & Smoke -- A Tale ") == "salt-smoke-a-tale"
    assert slugify("???") == "untitled"
    assert len(slugify("word " * 40)) <= 60


def test_clean_title() -> None:
    assert clean_title('"The Last Lantern"\n') == "The Last Lantern"
    assert clean_title("\n# **Harbor Bell**\nextra") == "Harbor Bell"
    assert clean_title("   \n") == "Untitled"


def test_word_count_ignores_beat_tags(story_text: str) -> None:
    assert word_count("[SETUP] one two [BUTTON] three") == 3
    assert word_count(story_text) == 22


def test_check_revision_reports_without_enforcing(story_text: str) -> None:
    ok = check_revision(story_text)
    assert ok.ok
    assert ok.missing_beats == ()

    long_text = "[SETUP] " + "word " * 200
    check = check_revision(long_text, word_limit=180)
    assert not check.within_limit
    assert check.missing_beats == ("TURN", "AFTERSHOCK", "BUTTON")
    assert check.to_dict()["word_count"] == 200


def test_unmatched_quotes(story_text: str) -> None:
    quotes = ["The harbor bell   rings", "a bell that never rang", ""]

    assert unmatched_quotes(story_text, quotes) == ["a bell that never rang"]

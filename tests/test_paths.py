from __future__ import annotations

from pathlib import Path

import pytest

from storyloop.paths import (
    claim_run_directory,
    format_run_index,
    next_run_index,
    rename_run_directory,
    resolve_output_root,
)


def test_next_index_follows_highest_existing_prefix(tmp_path: Path) -> None:
    (tmp_path / "001_the-last-lantern").mkdir()
    (tmp_path / "002_failed").mkdir()
    (tmp_path / "notes").mkdir()

    assert next_run_index(tmp_path) == 3

    index, run_dir = claim_run_directory(tmp_path)
    assert index == 3
    assert run_dir == tmp_path / "003"
    assert run_dir.is_dir()


def test_first_run_starts_at_one(tmp_path: Path) -> None:
    root = tmp_path / "runs"

    index, run_dir = claim_run_directory(root)

    assert index == 1
    assert run_dir.name == "001"


def test_consecutive_claims_get_distinct_directories(tmp_path: Path) -> None:
    _, first = claim_run_directory(tmp_path)
    _, second = claim_run_directory(tmp_path)

    assert first != second
    assert [first.name, second.name] == ["001", "002"]


def test_format_run_index_pads_to_three_digits() -> None:
    assert format_run_index(7) == "007"
    assert format_run_index(1234) == "1234"


def test_rename_appends_suffix_on_collision(tmp_path: Path) -> None:
    (tmp_path / "004_story").mkdir()
    (tmp_path / "004_story-2").mkdir()
    run_dir = tmp_path / "004"
    run_dir.mkdir()

    renamed = rename_run_directory(run_dir, "story")

    assert renamed.name == "004_story-3"
    assert renamed.is_dir()
    assert not run_dir.exists()


def test_resolve_output_root_env_fallback(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STORYLOOP_OUTPUT_ROOT", str(tmp_path / "env-runs"))

    assert resolve_output_root() == tmp_path / "env-runs"
    assert (tmp_path / "env-runs").is_dir()
    assert resolve_output_root(tmp_path / "explicit", create=False) == tmp_path / "explicit"

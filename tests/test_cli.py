from __future__ import annotations

import json
from pathlib import Path

import pytest

from storyloop import cli
from storyloop.config import LLMConfig


@pytest.fixture(autouse=True)
def _isolated_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def bible(tmp_path: Path) -> Path:
    path = tmp_path / "bible.yaml"
    path.write_text(
        "premise: A lighthouse keeper hears a bell with no ship.\n"
        "voice: spare, close third\n",
        encoding="utf-8",
    )
    return path


def _write(path: Path, payload: dict) -> str:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def _gate_args(tmp_path: Path, critique_a: dict, critique_b: dict) -> list[str]:
    retell = {"retell": "One. Two."}
    return [
        "gate",
        "--a", _write(tmp_path / "a.json", critique_a),
        "--b", _write(tmp_path / "b.json", critique_b),
        "--ra", _write(tmp_path / "ra.json", retell),
        "--rb", _write(tmp_path / "rb.json", retell),
    ]


def test_gate_exit_codes(tmp_path: Path, critique_payload, capsys: pytest.CaptureFixture[str]) -> None:
    good = critique_payload()
    assert cli.main(_gate_args(tmp_path, good, good)) == 0
    assert "PUBLISH: YES" in capsys.readouterr().out

    weak = critique_payload(stakes=0.5)
    assert cli.main(_gate_args(tmp_path, weak, weak)) == 1
    out = capsys.readouterr().out
    assert "PUBLISH: NO" in out
    assert "avg stakes 0.5 < 1" in out


def test_gate_rejects_invalid_documents(tmp_path: Path, critique_payload, capsys) -> None:
    broken = critique_payload()
    del broken["ratings"]

    assert cli.main(_gate_args(tmp_path, broken, critique_payload())) == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_draft_dry_run_prints_prompt(tmp_path: Path, bible: Path, capsys) -> None:
    out = tmp_path / "draft.md"

    assert cli.main(["draft", "--bible", str(bible), "--out", str(out), "--dry"]) == 0

    printed = capsys.readouterr().out
    assert "lighthouse keeper" in printed
    assert "[SETUP]" in printed
    assert not out.exists()


def test_draft_dry_run_accepts_dated_bible(tmp_path: Path, capsys) -> None:
    dated = tmp_path / "dated.yaml"
    dated.write_text("premise: A keeper.\nsetting_date: 2024-01-01\n", encoding="utf-8")

    assert cli.main(["draft", "--bible", str(dated), "--out", str(tmp_path / "draft.md"), "--dry"]) == 0
    assert "2024-01-01" in capsys.readouterr().out


def test_run_dry_run_claims_no_directory(tmp_path: Path, bible: Path, capsys) -> None:
    root = tmp_path / "runs"

    assert cli.main(["run", "--bible", str(bible), "--out", str(root), "--dry"]) == 0
    assert not root.exists()


def test_unknown_provider_reports_error(tmp_path: Path, bible: Path, capsys) -> None:
    args = ["draft", "--bible", str(bible), "--out", str(tmp_path / "d.md"), "--writer", "mistral/large"]

    assert cli.main(args) == 1
    assert "Unknown provider: mistral" in capsys.readouterr().err


def test_missing_bible_reports_error(tmp_path: Path, capsys) -> None:
    args = ["draft", "--bible", str(tmp_path / "nope.yaml"), "--out", str(tmp_path / "d.md")]

    assert cli.main(args) == 1
    assert "Story brief not found" in capsys.readouterr().err


def test_run_end_to_end_with_scripted_models(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, bible: Path, scripted_gateway, capsys
) -> None:
    gateway = scripted_gateway()
    monkeypatch.setattr(LLMConfig, "build_gateway", lambda self: gateway)
    root = tmp_path / "runs"

    code = cli.main(
        [
            "run",
            "--bible", str(bible),
            "--out", str(root),
            "--judge-a", "anthropic/judge-one",
            "--judge-b", "openrouter/vendor/judge-two",
        ]
    )

    assert code == 0
    assert (root / "001_the-last-lantern" / "08-published.md").exists()
    assert "Published 'The Last Lantern'" in capsys.readouterr().out
    assert gateway.models_for("critique") == ["anthropic/judge-one", "openrouter/vendor/judge-two"]


def test_run_exits_one_when_gate_never_passes(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, bible: Path, scripted_gateway, critique_payload
) -> None:
    gateway = scripted_gateway(critique=json.dumps(critique_payload(confusions=8)))
    monkeypatch.setattr(LLMConfig, "build_gateway", lambda self: gateway)
    root = tmp_path / "runs"

    assert cli.main(["run", "--bible", str(bible), "--out", str(root)]) == 1
    assert (root / "001_failed" / "10-metadata.json").exists()


def test_critique_command_writes_named_files(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, scripted_gateway, story_text
) -> None:
    gateway = scripted_gateway()
    monkeypatch.setattr(LLMConfig, "build_gateway", lambda self: gateway)
    story = tmp_path / "story.md"
    story.write_text(story_text, encoding="utf-8")
    out = tmp_path / "out"

    code = cli.main(
        [
            "critique",
            "--story", str(story),
            "--out", str(out),
            "--judge-a", "anthropic/judge-one",
            "--judge-b", "openrouter/vendor/judge-two",
        ]
    )

    assert code == 0
    assert sorted(path.name for path in out.iterdir()) == [
        "critique_judge-one.json",
        "critique_judge-two.json",
    ]


def test_no_command_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "usage: storyloop" in capsys.readouterr().out

from __future__ import annotations

import pytest

from storyloop import notify


def test_speak_disabled_does_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(notify.subprocess, "run", lambda args, check: calls.append(args))

    assert notify.speak("hello", False) is False
    assert calls == []


def test_speak_uses_say_on_macos(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[list[str]] = []
    monkeypatch.setattr(notify.sys, "platform", "darwin")
    monkeypatch.setattr(notify.shutil, "which", lambda name: "/usr/bin/say")
    monkeypatch.setattr(notify.subprocess, "run", lambda args, check: calls.append(args))

    assert notify.speak("Publish approved", True) is True
    assert calls == [["/usr/bin/say", "Publish approved"]]


def test_speak_skipped_off_macos(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(notify.sys, "platform", "linux")

    assert notify.speak("hello", True) is False

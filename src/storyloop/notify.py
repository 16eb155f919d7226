"""Optional spoken progress notifications (macOS ``say``)."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)


def speak(text: str, enabled: bool) -> bool:
    """Speak ``text`` when enabled and a ``say`` binary is available."""

    if not enabled or sys.platform != "darwin":
        return False
    binary = shutil.which("say")
    if binary is None:
        logger.debug("'say' not found; skipping speech")
        return False
    try:
        subprocess.run([binary, text], check=False)
    except OSError as exc:
        logger.warning("Speech notification failed: %s", exc)
        return False
    return True


__all__ = ["speak"]

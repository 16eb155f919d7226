"""Path helpers: output root resolution and numbered run directories.

Each run claims ``<root>/<NNN>`` where ``NNN`` is one more than the highest
numeric prefix already present. On completion the directory is renamed to
``<NNN>_<title-slug>`` or ``<NNN>_failed``; a ``-2``, ``-3``... suffix is added
if that name is already taken.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

__all__ = [
    "DEFAULT_OUTPUT_ROOT",
    "RUN_INDEX_WIDTH",
    "FAILED_LABEL",
    "resolve_output_root",
    "ensure_directory",
    "existing_run_indices",
    "next_run_index",
    "format_run_index",
    "claim_run_directory",
    "rename_run_directory",
]

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_ROOT = Path("runs")
RUN_INDEX_WIDTH = 3
FAILED_LABEL = "failed"

_INDEX_PREFIX = re.compile(r"^(\d+)")


def _normalise(path: Path | str) -> Path:
    return Path(path).expanduser()


def ensure_directory(path: Path | str) -> Path:
    resolved = _normalise(path)
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def resolve_output_root(path: Path | str | None = None, *, create: bool = True) -> Path:
    candidate = _normalise(path or os.getenv("STORYLOOP_OUTPUT_ROOT") or DEFAULT_OUTPUT_ROOT)
    if create:
        candidate.mkdir(parents=True, exist_ok=True)
    return candidate


def existing_run_indices(root: Path) -> list[int]:
    if not root.exists():
        return []
    indices: list[int] = []
    for entry in root.iterdir():
        match = _INDEX_PREFIX.match(entry.name)
        if match:
            indices.append(int(match.group(1)))
    return sorted(indices)


def next_run_index(root: Path) -> int:
    indices = existing_run_indices(root)
    return (indices[-1] + 1) if indices else 1


def format_run_index(index: int) -> str:
    return f"{index:0{RUN_INDEX_WIDTH}d}"


def _index_in_use(root: Path, index: int) -> bool:
    prefix = format_run_index(index)
    return any(
        entry.name == prefix or entry.name.startswith(f"{prefix}_")
        for entry in root.iterdir()
    )


def claim_run_directory(root: Path | str) -> tuple[int, Path]:
    """Create and return the next unused numbered run directory."""

    root = ensure_directory(root)
    index = next_run_index(root)
    while True:
        if _index_in_use(root, index):
            index += 1
            continue
        candidate = root / format_run_index(index)
        try:
            candidate.mkdir(exist_ok=False)
        except FileExistsError:
            index += 1
            continue
        logger.info("Claimed run directory %s", candidate)
        return index, candidate


def rename_run_directory(run_dir: Path, label: str) -> Path:
    """Rename ``run_dir`` to ``<NNN>_<label>``, disambiguating collisions."""

    prefix = run_dir.name.split("_", 1)[0]
    base = f"{prefix}_{label}"
    target = run_dir.with_name(base)
    attempt = 2
    while target.exists() and target != run_dir:
        target = run_dir.with_name(f"{base}-{attempt}")
        attempt += 1
    if target != run_dir:
        run_dir.rename(target)
    return target

"""I/O helpers for loading story briefs and persisting run artefacts."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Type, TypeVar

import yaml
from pydantic import BaseModel

__all__ = ["StoryBrief", "ArtifactIO", "load_brief"]

ModelT = TypeVar("ModelT", bound=BaseModel)

YAML_SUFFIXES = {".yaml", ".yml"}
JSON_SUFFIXES = {".json"}


@dataclass(frozen=True)
class StoryBrief:
    """Story bible: premise, voice, constraints, beats and required elements."""

    data: Mapping[str, Any] = field(default_factory=dict)
    source: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2, default=str)


def _plain_scalars(value: Any) -> Any:
    """Render YAML dates and timestamps as ISO strings, as a JSON brief would carry them."""

    if isinstance(value, Mapping):
        return {key: _plain_scalars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain_scalars(item) for item in value]
    if isinstance(value, date):
        return value.isoformat()
    return value


def load_brief(path: Path | str, *, encoding: str = "utf-8") -> StoryBrief:
    """Load a YAML or JSON story brief."""

    source = Path(path).expanduser()
    if not source.exists():
        raise FileNotFoundError(f"Story brief not found: {source}")
    text = source.read_text(encoding=encoding)
    suffix = source.suffix.lower()
    if suffix in JSON_SUFFIXES:
        payload = json.loads(text)
    elif suffix in YAML_SUFFIXES or not suffix:
        payload = _plain_scalars(yaml.safe_load(text))
    else:
        raise ValueError(f"Unsupported brief format for {source}; use .yaml, .yml or .json")
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Story brief {source} must contain a mapping at the top level")
    return StoryBrief(data=payload, source=source)


class ArtifactIO:
    """Filesystem-backed helper for drafts, JSON documents and raw responses."""

    def __init__(self, *, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding=self.encoding)

    def write_text(self, path: Path, content: str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding=self.encoding)
        return path

    def write_json(self, path: Path, payload: Any) -> Path:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        return self.write_text(path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")

    def read_json(self, path: Path) -> Any:
        return json.loads(self.read_text(path))

    def read_model(self, path: Path, shape: Type[ModelT]) -> ModelT:
        return shape.model_validate(self.read_json(path))

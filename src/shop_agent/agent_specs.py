"""Agent specification markdown loader.

Specs live as ``<agent_name>.md`` files with ``## Role``, ``## Goals``,
``## Guardrails``, ``## Procedure``, ``## Examples`` and ``## Failure Tags``
sections. The directory is resolved once at startup and the library is
injected wherever prompts are built.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .logging import get_logger
from .settings import PACKAGE_DIR, GatewaySettings

logger = get_logger("agent_specs")

DEFAULT_SPECS_DIR = PACKAGE_DIR / "specs"

_SECTION = re.compile(r"^##\s+", re.MULTILINE)
_BULLET = re.compile(r"^\s*-\s*(.+)$")
_NUMBERED = re.compile(r"^\s*\d+\.\s*(.+)$")
_GUARDRAIL = re.compile(r"^\s*\d+\.\s+\*\*(.+?)\*\*:?\s*(.*)$")
_JSON_BLOCK = re.compile(r"```json\n(.*?)\n```", re.DOTALL)


@dataclass
class AgentSpec:
    name: str
    role: str = ""
    goals: list[str] = field(default_factory=list)
    guardrails: dict[str, str] = field(default_factory=dict)
    procedure: list[str] = field(default_factory=list)
    examples: list[Any] = field(default_factory=list)
    failure_tags: list[str] = field(default_factory=list)


def parse_agent_spec(name: str, content: str) -> AgentSpec:
    spec = AgentSpec(name=name)
    for section in _SECTION.split(content)[1:]:
        title, _, body = section.partition("\n")
        title = title.strip()
        body = body.strip()
        if title == "Role":
            spec.role = body
        elif title == "Goals":
            spec.goals = _matches(_BULLET, body)
        elif title == "Guardrails":
            spec.guardrails = _parse_guardrails(body)
        elif title == "Procedure":
            spec.procedure = _matches(_NUMBERED, body)
        elif title == "Examples":
            spec.examples = _parse_examples(name, body)
        elif title == "Failure Tags":
            spec.failure_tags = _matches(_BULLET, body)
    return spec


class AgentSpecLibrary:
    """Agent specs from one directory, parsed on first use of each name."""

    def __init__(self, specs_dir: Path | None) -> None:
        self._dir = specs_dir
        self._cache: dict[str, AgentSpec | None] = {}

    @classmethod
    def resolve(cls, settings: GatewaySettings) -> "AgentSpecLibrary":
        specs_dir = Path(settings.agent_specs_dir) if settings.agent_specs_dir else DEFAULT_SPECS_DIR
        if not specs_dir.is_dir():
            logger.warning("agent_specs_missing", extra={"extra": {"path": str(specs_dir)}})
            return cls(None)
        logger.info("agent_specs_resolved", extra={"extra": {"path": str(specs_dir)}})
        return cls(specs_dir)

    @property
    def directory(self) -> Path | None:
        return self._dir

    def get(self, name: str) -> AgentSpec | None:
        if name in self._cache:
            return self._cache[name]
        spec = None
        if self._dir is not None:
            path = self._dir / f"{name}.md"
            if path.is_file():
                spec = parse_agent_spec(name, path.read_text(encoding="utf-8"))
        self._cache[name] = spec
        return spec

    def names(self) -> list[str]:
        if self._dir is None:
            return []
        return sorted(path.stem for path in self._dir.glob("*.md"))


def _matches(pattern: re.Pattern[str], body: str) -> list[str]:
    out = []
    for line in body.splitlines():
        match = pattern.match(line)
        if match:
            out.append(match.group(1).strip())
    return out


def _parse_guardrails(body: str) -> dict[str, str]:
    rules: dict[str, str] = {}
    for line in body.splitlines():
        match = _GUARDRAIL.match(line)
        if match:
            rules[match.group(1).strip()] = match.group(2).strip()
    return rules


def _parse_examples(name: str, body: str) -> list[Any]:
    examples = []
    for block in _JSON_BLOCK.findall(body):
        try:
            examples.append(json.loads(block))
        except ValueError:
            logger.warning("agent_spec_bad_example", extra={"extra": {"agent": name}})
    return examples

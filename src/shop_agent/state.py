"""Request-scoped state containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .policy import SafetyVerdict


class Stage(str, Enum):
    START = "START"
    SAFETY_CHECK = "SAFETY_CHECK"
    BLOCKED = "BLOCKED"
    INTENT_ROUTE = "INTENT_ROUTE"
    CLARIFY = "CLARIFY"
    AGENT_DISPATCH = "AGENT_DISPATCH"
    RESPONSE_GENERATED = "RESPONSE_GENERATED"
    QUERY_GATE = "QUERY_GATE"
    QUERY_EXECUTE = "QUERY_EXECUTE"
    TOOL_POLICY_CHECK = "TOOL_POLICY_CHECK"
    TOOL_VALIDATE = "TOOL_VALIDATE"
    ANSWER_SYNTHESIS = "ANSWER_SYNTHESIS"
    RETURN_FOR_CONFIRMATION = "RETURN_FOR_CONFIRMATION"
    RETURN = "RETURN"


@dataclass
class TraceRecord:
    """Structured trace container for a single request."""

    request_id: str
    started_at: str
    finished_at: str | None = None
    latency_ms: int | None = None
    request: dict[str, Any] = field(default_factory=dict)
    stages: list[dict[str, Any]] = field(default_factory=list)
    llm: list[dict[str, Any]] = field(default_factory=list)
    queries: list[dict[str, Any]] = field(default_factory=list)
    final: dict[str, Any] = field(default_factory=dict)


@dataclass
class OrchestrationResult:
    response: dict[str, Any]
    selected_agents: list[str]
    confidence: float
    requires_confirmation: bool = False
    safety: SafetyVerdict | None = None
    warnings: list[str] = field(default_factory=list)
    stages: list[Stage] = field(default_factory=list)

    @property
    def final_stage(self) -> Stage | None:
        return self.stages[-1] if self.stages else None

    def metadata(self) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "selectedAgents": list(self.selected_agents),
            "confidence": self.confidence,
            "requiresConfirmation": self.requires_confirmation,
            "stages": [stage.value for stage in self.stages],
        }
        if self.safety is not None and self.safety.verdict != "ALLOW":
            meta["safety"] = self.safety.to_wire()
        if self.warnings:
            meta["warnings"] = list(self.warnings)
        return meta

"""Request orchestration.

One request walks a fixed state machine::

    START -> SAFETY_CHECK -> BLOCKED
                          -> INTENT_ROUTE -> CLARIFY
                                          -> AGENT_DISPATCH -> RESPONSE_GENERATED
    MONGO_QUERY: QUERY_GATE -> QUERY_EXECUTE -> ANSWER_SYNTHESIS
    TOOL_CALL:   TOOL_POLICY_CHECK -> TOOL_VALIDATE -> ANSWER_SYNTHESIS | RETURN_FOR_CONFIRMATION
    otherwise:   RETURN

Tool calls are returned for user confirmation and never executed here.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

from shop_contracts.registry import classify_response
from shop_contracts.schemas import (
    AgentRequest,
    AnswerResponse,
    MongoQueryResponse,
    NeedMoreInfoResponse,
    ToolCallResponse,
)

from .context import GatewayContext
from .intent_router import IntentResult, agent_for_intent
from .logging import get_logger
from .policy import SafetyVerdict, check_policy
from .query_executor import execute_query
from .query_gate import validate_query
from .state import OrchestrationResult, Stage, TraceRecord
from .tool_gateway import validate_tool_call
from .trace import (
    build_trace,
    finalize_trace,
    now_utc_iso,
    record_final,
    record_query,
    record_stage,
    write_trace,
)

logger = get_logger("orchestrator")

POLICY_AGENT = "01_policy_safety"
ROUTER_AGENT = "10_intent_router"
CLARIFY_QUESTIONS = [
    "Could you tell me a bit more about what you are looking for?",
    "Are you searching for a product, managing an order, or asking about your account?",
]
MAX_LISTED_ROWS = 10
MAX_CONTENT = 5000
FAILURE_CONFIDENCE = 0.5


@dataclass
class _Run:
    request: AgentRequest
    request_id: str
    trace: TraceRecord
    stages: list[Stage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    safety: SafetyVerdict | None = None


class Orchestrator:
    def __init__(self, context: GatewayContext) -> None:
        self._ctx = context

    async def run(self, request: AgentRequest, request_id: str | None = None) -> OrchestrationResult:
        request_id = request_id or str(uuid.uuid4())
        run = _Run(
            request=request,
            request_id=request_id,
            trace=build_trace(request_id, request.message, request.user_context),
        )
        started_at_ts = time.time()

        result = await self._walk(run)

        record_final(run.trace, result.response, result.metadata())
        finalize_trace(run.trace, started_at_ts)
        if self._ctx.settings.trace_enabled:
            write_trace(run.trace, self._ctx.settings.trace_dir)
        logger.info(
            "orchestration_complete",
            extra={
                "extra": {
                    "request_id": run.request_id,
                    "response_type": result.response.get("type"),
                    "final_stage": result.final_stage.value if result.final_stage else None,
                    "selected_agents": result.selected_agents,
                    "latency_ms": run.trace.latency_ms,
                }
            },
        )
        return result

    async def _walk(self, run: _Run) -> OrchestrationResult:
        request = run.request
        user_context = request.user_context
        self._enter(run, Stage.START)

        verdict = check_policy(request.message, (), user_context, self._ctx.policy_classifier)
        self._enter(run, Stage.SAFETY_CHECK, verdict=verdict.verdict)
        if verdict.blocked:
            self._enter(run, Stage.BLOCKED, policies=verdict.violated_policies)
            return self._answer(run, verdict.message(), [POLICY_AGENT], 1.0, safety=verdict)
        self._note_warning(run, verdict)

        intent = self._ctx.intent_classifier.classify(request.message)
        self._enter(run, Stage.INTENT_ROUTE, intent=intent.primary_intent, confidence=intent.confidence)
        if intent.needs_clarification:
            self._enter(run, Stage.CLARIFY)
            response = NeedMoreInfoResponse(questions=CLARIFY_QUESTIONS, request_id=run.request_id)
            return self._result(run, response.to_wire(), [ROUTER_AGENT], intent.confidence)

        agent = agent_for_intent(intent.primary_intent)
        self._enter(run, Stage.AGENT_DISPATCH, agent=agent)
        raw = await self._ctx.generator.generate(agent, request, intent, run.request_id, run.trace)
        if isinstance(raw, Mapping):
            # The gateway owns the request id; whatever the generator wrote is replaced.
            raw = {**raw, "requestId": run.request_id}
        classification = classify_response(raw)
        self._enter(run, Stage.RESPONSE_GENERATED, variant=classification.variant, ok=classification.ok)
        if not classification.ok:
            self._enter(run, Stage.ANSWER_SYNTHESIS)
            content = f"The assistant produced an invalid response ({classification.error}). Please try rephrasing."
            return self._answer(run, content, [agent], FAILURE_CONFIDENCE)

        value = classification.value
        if isinstance(value, MongoQueryResponse):
            return self._run_query(run, agent, intent, value)
        if isinstance(value, ToolCallResponse):
            return self._run_tool(run, agent, intent, value)
        self._enter(run, Stage.RETURN)
        return self._result(run, value.to_wire(), [agent], intent.confidence)

    def _run_query(
        self, run: _Run, agent: str, intent: IntentResult, value: MongoQueryResponse
    ) -> OrchestrationResult:
        gate = validate_query(value, run.request.user_context)
        self._enter(run, Stage.QUERY_GATE, collection=value.collection, valid=gate.is_valid, error_code=gate.error_code)
        if not gate.is_valid:
            self._enter(run, Stage.ANSWER_SYNTHESIS)
            return self._answer(run, f"I could not run that lookup: {gate.error}", [agent], intent.confidence)

        sanitized = gate.sanitized_query
        executed = execute_query(sanitized, self._ctx.store)
        record_query(
            run.trace,
            collection=sanitized.collection,
            query=sanitized.query,
            ok=executed.success,
            result_count=len(executed.data),
            error=executed.error,
        )
        self._enter(run, Stage.QUERY_EXECUTE, ok=executed.success, result_count=len(executed.data))
        self._enter(run, Stage.ANSWER_SYNTHESIS)
        if not executed.success:
            return self._answer(run, executed.error or "The lookup failed.", [agent], FAILURE_CONFIDENCE)
        content = summarize_rows(executed.data, executed.count, sanitized.purpose)
        return self._answer(run, content, [agent], intent.confidence)

    def _run_tool(
        self, run: _Run, agent: str, intent: IntentResult, value: ToolCallResponse
    ) -> OrchestrationResult:
        user_context = run.request.user_context
        envelope: dict[str, Any] = {
            "tool": value.tool,
            "payload": value.payload,
            "actorRole": user_context.effective_type,
            "timestamp": now_utc_iso(),
            "requestId": run.request_id,
            "humanSummary": value.human_summary,
        }
        verdict = check_policy(run.request.message, [envelope], user_context, self._ctx.policy_classifier)
        self._enter(run, Stage.TOOL_POLICY_CHECK, tool=value.tool, verdict=verdict.verdict)
        if verdict.blocked:
            self._enter(run, Stage.ANSWER_SYNTHESIS)
            return self._answer(run, verdict.message(), [agent, POLICY_AGENT], 1.0, safety=verdict)
        self._note_warning(run, verdict)

        checked = validate_tool_call(envelope, user_context)
        self._enter(run, Stage.TOOL_VALIDATE, tool=value.tool, valid=checked.is_valid, error_code=checked.error_code)
        for warning in checked.warnings:
            if warning not in run.warnings:
                run.warnings.append(warning)
        if not checked.is_valid:
            self._enter(run, Stage.ANSWER_SYNTHESIS)
            content = f"I could not prepare the {value.tool} action: " + "; ".join(checked.errors)
            return self._answer(run, content, [agent], intent.confidence)

        self._enter(run, Stage.RETURN_FOR_CONFIRMATION, tool=value.tool)
        response = value.to_wire()
        response["payload"] = checked.sanitized_tool["payload"]
        return self._result(run, response, [agent], intent.confidence, requires_confirmation=True)

    def _enter(self, run: _Run, stage: Stage, **detail: Any) -> None:
        run.stages.append(stage)
        record_stage(run.trace, stage, **detail)

    def _note_warning(self, run: _Run, verdict: SafetyVerdict) -> None:
        if verdict.verdict != "WARN":
            return
        run.safety = verdict
        if verdict.reason not in run.warnings:
            run.warnings.append(verdict.reason)

    def _answer(
        self,
        run: _Run,
        content: str,
        agents: list[str],
        confidence: float,
        safety: SafetyVerdict | None = None,
    ) -> OrchestrationResult:
        response = AnswerResponse(content=content[:MAX_CONTENT], request_id=run.request_id)
        return self._result(run, response.to_wire(), agents, confidence, safety=safety)

    def _result(
        self,
        run: _Run,
        response: dict[str, Any],
        agents: list[str],
        confidence: float,
        requires_confirmation: bool = False,
        safety: SafetyVerdict | None = None,
    ) -> OrchestrationResult:
        return OrchestrationResult(
            response=response,
            selected_agents=agents,
            confidence=confidence,
            requires_confirmation=requires_confirmation,
            safety=safety or run.safety,
            warnings=list(run.warnings),
            stages=list(run.stages),
        )


def summarize_rows(rows: list[dict[str, Any]], total: int | None, purpose: str) -> str:
    purpose = purpose or "your request"
    if not rows:
        return f"No results found for: {purpose}"
    if total is not None:
        header = f"Found {len(rows)} results (out of {total}) for: {purpose}"
    else:
        header = f"Found {len(rows)} results for: {purpose}"
    lines = [header]
    for row in rows[:MAX_LISTED_ROWS]:
        label = row.get("name") or row.get("title") or row.get("orderId") or row.get("_id")
        price = row.get("price")
        lines.append(f"- {label} ({price} KRW)" if price is not None else f"- {label}")
    if len(rows) > MAX_LISTED_ROWS:
        lines.append(f"...and {len(rows) - MAX_LISTED_ROWS} more")
    return "\n".join(lines)

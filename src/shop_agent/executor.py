"""Protocol adapter for incoming requests.

Keep this layer thin so protocol changes do not affect the orchestration
or the gates.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from shop_contracts.registry import classify_tool_call
from shop_contracts.schemas import AgentRequest, ToolResponse, UserContext, WireModel

from .context import GatewayContext
from .errors import PolicyViolation, ScopeViolation, UnsupportedOperation, ValidationError
from .orchestrator import Orchestrator
from .policy import check_policy
from .tool_gateway import validate_tool_call
from .trace import now_utc_iso


class AgentReply(BaseModel):
    success: bool
    response: dict[str, Any]
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConfirmRequest(WireModel):
    payload: dict[str, Any]
    user_context: UserContext = Field(default_factory=UserContext)
    human_summary: str = Field(..., min_length=1, max_length=200)
    request_id: str
    message: str | None = None


async def handle_agent(request: AgentRequest, context: GatewayContext, request_id: str) -> AgentReply:
    result = await Orchestrator(context).run(request, request_id)
    return AgentReply(success=True, response=result.response, metadata=result.metadata())


async def handle_confirm(tool: str, body: ConfirmRequest, context: GatewayContext, trace_id: str) -> ToolResponse:
    """Re-validate a user-confirmed tool call and hand it to the collaborator.

    Nothing from the original proposal is trusted: the envelope is rebuilt,
    classified, run through the policy gate and checked against the
    caller's identity again.
    """
    envelope = {
        "tool": tool,
        "payload": body.payload,
        "actorRole": body.user_context.effective_type,
        "timestamp": now_utc_iso(),
        "requestId": body.request_id,
        "humanSummary": body.human_summary,
    }
    classification = classify_tool_call(envelope)
    if not classification.ok:
        if classification.variant is None:
            raise UnsupportedOperation(classification.error or f"Unknown tool: {tool}")
        raise ValidationError(classification.error or "invalid tool call", {"path": classification.error_path})

    text = "\n".join(part for part in (body.message, body.human_summary) if part)
    verdict = check_policy(text, [envelope], body.user_context, context.policy_classifier)
    if verdict.blocked:
        raise PolicyViolation(verdict.message(), verdict.to_wire())

    checked = validate_tool_call(envelope, body.user_context)
    if not checked.is_valid:
        message = "; ".join(checked.errors)
        if checked.error_code == ScopeViolation.code:
            raise ScopeViolation(message)
        raise ValidationError(message)

    return await context.broker.dispatch(tool, checked.sanitized_tool["payload"], body.user_context, trace_id)

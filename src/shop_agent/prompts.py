"""Prompt assembly for the language-model response generator.

Keep prompts here so generator logic remains clean and testable. Agent
specific instructions come from the markdown spec library; the output
contract below is shared by every agent.
"""

from __future__ import annotations

import json
from typing import Any

from shop_contracts.schemas import ALLOWED_COLLECTIONS, AgentRequest
from shop_contracts.tools import list_tool_specs

from .agent_specs import AgentSpec
from .intent_router import IntentResult

GENERIC_SYSTEM = (
    "You are a shopping assistant for an online store. "
    "Help the user find products, manage their cart and follow up on orders. "
    "Never invent prices, stock or delivery dates."
)

OUTPUT_RULES = (
    "Respond with exactly one JSON object and nothing else. "
    "Its `type` must be one of ANSWER, BRIEFING_WITH_PRODUCTS, MONGO_QUERY, TOOL_CALL or NEED_MORE_INFO. "
    "Use MONGO_QUERY to read data: give `collection`, a MongoDB filter in `query`, optional "
    "`projection`, `options` ({limit <= 100, sort, skip}) and a one-sentence `purpose`. "
    "Never use $where, $function, $accumulator or other server-side code. "
    "Use TOOL_CALL for anything that changes state: give `tool`, `payload` and a one-sentence "
    "`humanSummary`; the user confirms before it runs. "
    "Use NEED_MORE_INFO with at most 3 `questions` when required details are missing."
)

MAX_HISTORY_MESSAGES = 6


def build_system_prompt(spec: AgentSpec | None) -> str:
    parts = [GENERIC_SYSTEM if spec is None or not spec.role else spec.role]
    if spec is not None:
        if spec.goals:
            parts.append("Goals:\n" + "\n".join(f"- {goal}" for goal in spec.goals))
        if spec.guardrails:
            parts.append(
                "Guardrails:\n" + "\n".join(f"- {title}: {rule}" for title, rule in spec.guardrails.items())
            )
        if spec.procedure:
            parts.append("Procedure:\n" + "\n".join(f"{i}. {step}" for i, step in enumerate(spec.procedure, 1)))
        if spec.examples:
            parts.append(
                "Examples:\n" + "\n".join(json.dumps(example, ensure_ascii=False) for example in spec.examples)
            )
    parts.append(f"Allowed collections: {', '.join(ALLOWED_COLLECTIONS)}.")
    parts.append("Available tools:\n" + "\n".join(f"- {t.name}: {t.description}" for t in list_tool_specs()))
    parts.append(OUTPUT_RULES)
    return "\n\n".join(parts)


def build_user_prompt(request: AgentRequest, intent: IntentResult) -> str:
    context: dict[str, Any] = {
        "intent": intent.to_wire(),
        "uiMode": request.ui_mode,
        "userType": request.user_context.effective_type,
        "isLoggedIn": request.user_context.is_logged_in,
    }
    history = request.conversation_history.messages[-MAX_HISTORY_MESSAGES:]
    if history:
        context["history"] = [{"role": m.role, "content": m.content} for m in history]
    return f"Context: {json.dumps(context, ensure_ascii=False)}\n\nUser message: {request.message}"


def build_messages(spec: AgentSpec | None, request: AgentRequest, intent: IntentResult) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": build_system_prompt(spec)},
        {"role": "user", "content": build_user_prompt(request, intent)},
    ]

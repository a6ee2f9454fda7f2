"""Response generators.

Design goals:
- The language model only ever proposes a response document; the
  orchestrator decides what happens to it.
- Make the flow testable by supporting an offline heuristic path.
"""

from __future__ import annotations

import json
import re
from typing import Any, Protocol

from openai import OpenAI

from shop_contracts.schemas import AgentRequest

from .agent_specs import AgentSpecLibrary
from .intent_router import IntentResult
from .logging import get_logger
from .prompts import build_messages
from .settings import GatewaySettings
from .state import TraceRecord
from .trace import record_llm_call

logger = get_logger("agent")

SEARCH_LIMIT = 20
RECOMMEND_LIMIT = 10
FALLBACK_ANSWER = "Sorry, I could not prepare an answer right now. Please try again in a moment."
HELP_ANSWER = (
    "I can help you search for products, get recommendations, manage your cart "
    "and follow up on orders. What would you like to do?"
)


class ResponseGenerator(Protocol):
    async def generate(
        self,
        agent: str,
        request: AgentRequest,
        intent: IntentResult,
        request_id: str,
        trace: TraceRecord | None = None,
    ) -> Any: ...


class HeuristicResponseGenerator:
    """Deterministic offline generator: enables the E2E flow without a model."""

    async def generate(
        self,
        agent: str,
        request: AgentRequest,
        intent: IntentResult,
        request_id: str,
        trace: TraceRecord | None = None,
    ) -> dict[str, Any]:
        slots = intent.extracted_slots
        name = intent.primary_intent

        if name == "search_product":
            keywords = slots.get("keywords") or request.message
            return {
                "type": "MONGO_QUERY",
                "collection": "products",
                "query": {"name": {"$regex": re.escape(keywords), "$options": "i"}},
                "options": {"limit": SEARCH_LIMIT},
                "purpose": f"Search products matching {keywords}"[:200],
            }
        if name == "get_recommendation":
            return {
                "type": "MONGO_QUERY",
                "collection": "products",
                "query": {},
                "options": {"limit": RECOMMEND_LIMIT, "sort": {"rating": -1}},
                "purpose": "Top rated products to recommend",
            }
        if name in ("add_to_cart", "purchase"):
            product_id = slots.get("productId")
            if not product_id:
                return _need_more_info("Which product would you like to add to your cart?", "productId")
            quantity = slots.get("quantity", 1)
            if name == "purchase":
                return {
                    "type": "TOOL_CALL",
                    "tool": "goToCheckout",
                    "payload": {"items": [{"productId": product_id, "quantity": quantity}]},
                    "humanSummary": f"Check out {quantity} x {product_id}",
                }
            return {
                "type": "TOOL_CALL",
                "tool": "addToCart",
                "payload": {"productId": product_id, "quantity": quantity},
                "humanSummary": f"Add {quantity} x {product_id} to your cart",
            }
        if name == "track_delivery":
            query = {"orderId": slots["orderId"]} if "orderId" in slots else {}
            return {
                "type": "MONGO_QUERY",
                "collection": "orders",
                "query": query,
                "options": {"limit": 5, "sort": {"createdAt": -1}},
                "purpose": "Look up the delivery status of your orders",
            }
        if name in ("cancel_order", "refund_request"):
            order_id = slots.get("orderId")
            if not order_id:
                return _need_more_info("Which order is this about? Please share the order number.", "orderId")
            if name == "cancel_order":
                return {
                    "type": "TOOL_CALL",
                    "tool": "requestCancel",
                    "payload": {"orderId": order_id},
                    "humanSummary": f"Request cancellation of order {order_id}",
                }
            return {
                "type": "TOOL_CALL",
                "tool": "requestRefund",
                "payload": {"orderId": order_id, "reason": request.message[:500]},
                "humanSummary": f"Request a refund for order {order_id}",
            }
        if name == "seller_analytics" and request.user_context.effective_type == "seller":
            return {
                "type": "MONGO_QUERY",
                "collection": "orders",
                "query": {},
                "options": {"limit": 50, "sort": {"createdAt": -1}},
                "purpose": "Recent orders for your store",
            }
        return {"type": "ANSWER", "content": HELP_ANSWER}


class OpenAIResponseGenerator:
    def __init__(self, settings: GatewaySettings, specs: AgentSpecLibrary, client: Any = None) -> None:
        self._settings = settings
        self._specs = specs
        self._client = client or OpenAI(api_key=settings.openai_api_key)

    async def generate(
        self,
        agent: str,
        request: AgentRequest,
        intent: IntentResult,
        request_id: str,
        trace: TraceRecord | None = None,
    ) -> Any:
        messages = build_messages(self._specs.get(agent), request, intent)
        try:
            response = self._client.chat.completions.create(
                model=self._settings.openai_model,
                messages=messages,
                temperature=self._settings.temperature,
                response_format={"type": "json_object"},
                timeout=self._settings.openai_timeout_s,
            )
            choice = response.choices[0]
            if trace is not None:
                record_llm_call(
                    trace,
                    model=self._settings.openai_model,
                    temperature=self._settings.temperature,
                    agent=agent,
                    messages_summary=_summarize_messages(messages),
                    finish_reason=choice.finish_reason,
                )
            return json.loads(choice.message.content or "{}")
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "llm_error",
                extra={"extra": {"request_id": request_id, "agent": agent, "error": str(exc)}},
            )
            return {"type": "ANSWER", "content": FALLBACK_ANSWER}


def build_generator(settings: GatewaySettings, specs: AgentSpecLibrary) -> ResponseGenerator:
    if settings.mock_llm or not settings.openai_api_key:
        return HeuristicResponseGenerator()
    return OpenAIResponseGenerator(settings, specs)


def _need_more_info(question: str, slot: str) -> dict[str, Any]:
    return {"type": "NEED_MORE_INFO", "questions": [question], "missingSlots": [slot]}


def _summarize_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {"role": msg.get("role"), "content_len": len(str(msg.get("content", "")))}
        for msg in messages
    ]

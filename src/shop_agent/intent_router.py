"""Keyword intent classification.

The router sits behind ``IntentClassifier.classify`` so a learned model can
replace the pattern tables without touching the orchestrator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

CLARIFY_THRESHOLD = 0.7
UNKNOWN_INTENT = "unknown"
UNKNOWN_CONFIDENCE = 0.5

CONSUMER_INTENTS: tuple[str, ...] = (
    "search_product",
    "get_recommendation",
    "compare_price",
    "add_to_cart",
    "purchase",
    "track_delivery",
    "cancel_order",
    "refund_request",
    "write_review",
    "check_rewards",
    "login_help",
    "signup_help",
)
SELLER_INTENTS: tuple[str, ...] = (
    "seller_analytics",
    "simulate_pricing",
    "analyze_efficiency",
    "create_listing",
)
BEHAVIOR_INTENTS: tuple[str, ...] = (
    "spend_analysis",
    "reflection",
)

INTENT_AGENT_MAP: dict[str, str] = {
    "search_product": "12_product_search",
    "get_recommendation": "13_reco_fit",
    "compare_price": "14_price_compare",
    "add_to_cart": "15_order_flow",
    "purchase": "15_order_flow",
    "track_delivery": "16_after_sales",
    "cancel_order": "16_after_sales",
    "refund_request": "16_after_sales",
    "write_review": "17_review_assistant",
    "check_rewards": "18_account_rewards",
    "login_help": "19_account_help",
    "signup_help": "19_account_help",
    "seller_analytics": "20_seller_analytics",
    "simulate_pricing": "21_pricing_simulator",
    "analyze_efficiency": "22_product_efficiency",
    "create_listing": "23_listing_assistant",
    "spend_analysis": "30_spend_behavior_analyst",
    "reflection": "31_reflection_coach",
}
DEFAULT_AGENT = "00_orchestrator"

# Evaluated in order; the first match becomes the primary intent.
INTENT_PATTERNS: tuple[tuple[str, re.Pattern[str], float], ...] = (
    ("add_to_cart", re.compile(r"add\b.*\bcart|장바구니", re.IGNORECASE), 0.90),
    ("search_product", re.compile(r"\b(search|find|look(ing)? for)\b|찾아|검색", re.IGNORECASE), 0.85),
    ("get_recommendation", re.compile(r"\b(recommend|suggest)|추천", re.IGNORECASE), 0.85),
    ("compare_price", re.compile(r"\bcompare\b|비교", re.IGNORECASE), 0.80),
    ("purchase", re.compile(r"\b(buy|purchase|checkout)\b|구매|결제", re.IGNORECASE), 0.90),
    ("track_delivery", re.compile(r"\b(track|delivery|shipping status)\b|배송", re.IGNORECASE), 0.85),
    ("cancel_order", re.compile(r"\bcancel|취소", re.IGNORECASE), 0.85),
    ("refund_request", re.compile(r"\brefund|환불", re.IGNORECASE), 0.85),
    ("write_review", re.compile(r"\breview|리뷰", re.IGNORECASE), 0.80),
    ("check_rewards", re.compile(r"\b(reward|points?)\b|적립금|포인트", re.IGNORECASE), 0.85),
    ("seller_analytics", re.compile(r"\banalytics\b|\bsales report\b|매출|수익", re.IGNORECASE), 0.80),
    ("spend_analysis", re.compile(r"\bspend(ing)?\b|소비", re.IGNORECASE), 0.75),
    ("signup_help", re.compile(r"\bsign ?up\b|\bregister an account\b|회원가입", re.IGNORECASE), 0.80),
    ("login_help", re.compile(r"\blog ?in\b|\bsign ?in\b|로그인", re.IGNORECASE), 0.80),
)

_QUANTITY = re.compile(r"(?<![\w-])(\d{1,6})(?![\w-])")
_PRODUCT_ID = re.compile(r"\b(?:item|product)\s+#?([A-Za-z0-9_-]+)", re.IGNORECASE)
_ORDER_ID = re.compile(r"\border\s+#?([A-Za-z0-9_-]*\d[A-Za-z0-9_-]*)", re.IGNORECASE)
_SEARCH_LEAD = re.compile(
    r"^\s*(please\s+)?(search\s+for|search|find\s+me|find|look(ing)?\s+for)\s+(an?\s+|the\s+|some\s+)?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class IntentResult:
    primary_intent: str
    confidence: float
    alternative_intents: list[dict[str, Any]] = field(default_factory=list)
    extracted_slots: dict[str, Any] = field(default_factory=dict)

    @property
    def needs_clarification(self) -> bool:
        return self.confidence < CLARIFY_THRESHOLD

    def to_wire(self) -> dict[str, Any]:
        return {
            "primaryIntent": self.primary_intent,
            "confidence": self.confidence,
            "alternativeIntents": list(self.alternative_intents),
            "extractedSlots": dict(self.extracted_slots),
        }


class IntentClassifier(Protocol):
    def classify(self, text: str) -> IntentResult: ...


class KeywordIntentClassifier:
    def __init__(self, patterns: tuple[tuple[str, re.Pattern[str], float], ...] = INTENT_PATTERNS) -> None:
        self._patterns = patterns

    def classify(self, text: str) -> IntentResult:
        text = text or ""
        matches = [(intent, conf) for intent, pattern, conf in self._patterns if pattern.search(text)]
        if not matches:
            return IntentResult(primary_intent=UNKNOWN_INTENT, confidence=UNKNOWN_CONFIDENCE)
        primary, confidence = matches[0]
        alternatives = [{"intent": intent, "confidence": conf} for intent, conf in matches[1:]]
        return IntentResult(
            primary_intent=primary,
            confidence=confidence,
            alternative_intents=alternatives,
            extracted_slots=extract_slots(text, primary),
        )


def extract_slots(text: str, intent: str) -> dict[str, Any]:
    slots: dict[str, Any] = {}
    product = _PRODUCT_ID.search(text)
    if product:
        slots["productId"] = product.group(1)
    order = _ORDER_ID.search(text)
    if order:
        slots["orderId"] = order.group(1)
    # Quantity is read only where it is meaningful, and never from an id.
    if intent in ("add_to_cart", "purchase"):
        scrubbed = text
        for match in (product, order):
            if match:
                scrubbed = scrubbed.replace(match.group(0), " ")
        quantity = _QUANTITY.search(scrubbed)
        if quantity:
            slots["quantity"] = int(quantity.group(1))
    if intent == "search_product":
        keywords = _SEARCH_LEAD.sub("", text).strip(" ?.!")
        if keywords:
            slots["keywords"] = keywords
    return slots


def agent_for_intent(intent: str) -> str:
    return INTENT_AGENT_MAP.get(intent, DEFAULT_AGENT)


def intent_taxonomy() -> dict[str, tuple[str, ...]]:
    return {
        "consumer": CONSUMER_INTENTS,
        "seller": SELLER_INTENTS,
        "behavior": BEHAVIOR_INTENTS,
    }

# Fields every intent entry in the declarative taxonomy must require.
INTENT_ENTRY_FIELDS: tuple[str, ...] = ("description", "defaultAgent", "requiredSlots", "responsePreference")

"""Pre-action safety policy.

Runs before any agent output or tool call is trusted. Rules are checked in
priority order and the first match wins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Protocol

from shop_contracts.schemas import UserContext

from .masking import CARD_PATTERN, RRN_PATTERN

Verdict = Literal["ALLOW", "WARN", "BLOCK"]

PII = "PII"
PROHIBITED = "PROHIBITED"
MANIPULATION = "MANIPULATION"
AGE_RESTRICTED = "AGE_RESTRICTED"

PII_KEYWORDS: tuple[str, ...] = (
    "주민번호",
    "주민등록번호",
    "계좌번호",
    "카드번호",
    "비밀번호",
    "social security number",
    "national id",
    "account number",
    "card number",
    "credit card number",
    "password",
)
PROHIBITED_KEYWORDS: tuple[str, ...] = ("마약", "무기", "불법", "narcotics", "firearm", "illegal drugs")
MANIPULATION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"지금\s*사지\s*않으면", re.IGNORECASE),
    re.compile(r"오늘만\s*특가", re.IGNORECASE),
    re.compile(r"후회한다", re.IGNORECASE),
    re.compile(r"\b(buy|order) (it )?now or\b", re.IGNORECASE),
    re.compile(r"\btoday only\b", re.IGNORECASE),
    re.compile(r"\byou('ll| will) regret\b", re.IGNORECASE),
)
AGE_RESTRICTED_PATTERN = re.compile(
    r"담배|주류|성인용품|\b(tobacco|cigarettes?|alcohol|liquor|adult products?)\b",
    re.IGNORECASE,
)

QUANTITY_TOOLS = ("addToCart", "goToCheckout")
EXCESSIVE_QUANTITY = 100


@dataclass(frozen=True)
class SafetyVerdict:
    verdict: Verdict
    reason: str
    violated_policies: list[str] = field(default_factory=list)
    alternative_guidance: str | None = None

    @property
    def blocked(self) -> bool:
        return self.verdict == "BLOCK"

    def message(self) -> str:
        if self.alternative_guidance:
            return f"{self.reason} {self.alternative_guidance}"
        return self.reason

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "verdict": self.verdict,
            "reason": self.reason,
            "violatedPolicies": list(self.violated_policies),
        }
        if self.alternative_guidance:
            out["alternativeGuidance"] = self.alternative_guidance
        return out


ALLOW = SafetyVerdict(verdict="ALLOW", reason="Request passes safety checks.")


class PolicyClassifier(Protocol):
    def classify(self, text: str) -> frozenset[str]: ...


class KeywordPolicyClassifier:
    """Flags policy-relevant content in free text."""

    def classify(self, text: str) -> frozenset[str]:
        lowered = (text or "").lower()
        flags: set[str] = set()
        if any(k in lowered for k in PII_KEYWORDS) or RRN_PATTERN.search(lowered) or CARD_PATTERN.search(lowered):
            flags.add(PII)
        if any(k in lowered for k in PROHIBITED_KEYWORDS):
            flags.add(PROHIBITED)
        if any(p.search(text or "") for p in MANIPULATION_PATTERNS):
            flags.add(MANIPULATION)
        if AGE_RESTRICTED_PATTERN.search(text or ""):
            flags.add(AGE_RESTRICTED)
        return frozenset(flags)


_default_classifier = KeywordPolicyClassifier()


def check_policy(
    message: str,
    proposed_tools: Iterable[Mapping[str, Any]] = (),
    user_context: UserContext | None = None,
    classifier: PolicyClassifier | None = None,
) -> SafetyVerdict:
    flags = (classifier or _default_classifier).classify(message)
    user_context = user_context or UserContext()

    if PII in flags:
        return SafetyVerdict(
            verdict="BLOCK",
            reason="For privacy protection, sensitive personal information cannot be processed in chat.",
            violated_policies=["PII_PROTECTION"],
            alternative_guidance="Please use the secure account forms, or contact customer service if needed.",
        )
    if PROHIBITED in flags:
        return SafetyVerdict(
            verdict="BLOCK",
            reason="Requests involving prohibited goods cannot be processed.",
            violated_policies=["PROHIBITED_GOODS"],
            alternative_guidance="Please browse the catalog for permitted products.",
        )
    if MANIPULATION in flags:
        return SafetyVerdict(
            verdict="WARN",
            reason="Request contains manipulative language that may pressure users into purchases.",
            violated_policies=["FORCED_PURCHASE"],
            alternative_guidance="Provide objective product information without pressure.",
        )
    for tool in proposed_tools:
        if tool.get("tool") in QUANTITY_TOOLS and _max_quantity(tool.get("payload")) > EXCESSIVE_QUANTITY:
            return SafetyVerdict(
                verdict="WARN",
                reason="Large quantity detected. Bulk purchases may require special handling.",
                violated_policies=["EXCESSIVE_QUANTITY"],
                alternative_guidance="For bulk purchases, please contact customer support.",
            )
    if AGE_RESTRICTED in flags and not user_context.age_verified:
        return SafetyVerdict(
            verdict="BLOCK",
            reason="Age-restricted products require age verification.",
            violated_policies=["MINOR_PROTECTION", "AGE_RESTRICTION"],
            alternative_guidance=(
                "Age verification is required for tobacco, alcohol and adult products. "
                "Please complete age verification first."
            ),
        )
    return ALLOW


def _max_quantity(payload: Any) -> int:
    if not isinstance(payload, Mapping):
        return 0
    quantities = [payload.get("quantity")]
    items = payload.get("items")
    if isinstance(items, list):
        quantities.extend(item.get("quantity") for item in items if isinstance(item, Mapping))
    numeric = [q for q in quantities if isinstance(q, (int, float)) and not isinstance(q, bool)]
    return int(max(numeric, default=0))

"""Shared wire schemas (executable source of truth).

The declarative JSON schemas under ``json_schemas/`` describe the same
contracts; the startup consistency check compares the two.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

UUID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
ID_PATTERN = r"^[a-zA-Z0-9_-]+$"

ADD_TO_CART_MAX_QUANTITY = 20
QUERY_LIMIT_POLICY_MAX = 100
NEED_MORE_INFO_MAX_QUESTIONS = 3

ALLOWED_COLLECTIONS: tuple[str, ...] = (
    "products",
    "categories",
    "orders",
    "reviews",
    "users",
    "carts",
    "wishlists",
    "coupons",
    "points",
)

ToolName = Literal[
    "addToCart",
    "toggleWishlist",
    "goToCheckout",
    "requestCancel",
    "requestRefund",
    "sellerProductRegister",
]
CollectionName = Literal[
    "products",
    "categories",
    "orders",
    "reviews",
    "users",
    "carts",
    "wishlists",
    "coupons",
    "points",
]
UserType = Literal["consumer", "seller"]


class WireModel(BaseModel):
    """Base for camelCase wire documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- request side -----------------------------------------------------------


class UserContext(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str | None = None
    seller_id: str | None = None
    is_logged_in: bool = False
    user_type: UserType | None = None
    age_verified: bool = False

    @property
    def effective_type(self) -> UserType:
        # Requests without an explicit type are scoped as consumers.
        return self.user_type or "consumer"


class ChatMessage(WireModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ConversationHistory(WireModel):
    messages: list[ChatMessage] = Field(default_factory=list)


class AgentRequest(WireModel):
    message: str = Field(..., min_length=1)
    user_context: UserContext = Field(default_factory=UserContext)
    ui_mode: Literal["briefing", "chat"] = "chat"
    conversation_history: ConversationHistory = Field(default_factory=ConversationHistory)


# --- response variants -------------------------------------------------------


class AnswerResponse(WireModel):
    type: Literal["ANSWER"] = "ANSWER"
    content: str = Field(..., min_length=1, max_length=5000)
    request_id: str = Field(..., pattern=UUID_PATTERN)


class BriefingReason(WireModel):
    label: Literal["Trend", "Fit", "Popularity", "Value", "Quality", "Price", "Shipping"]
    text: str = Field(..., min_length=1, max_length=200)


class Briefing(WireModel):
    title: str = Field(..., min_length=1, max_length=200)
    summary: str = Field(..., min_length=1, max_length=1000)
    reasons: list[BriefingReason] = Field(..., min_length=1)
    follow_ups: list[str] | None = None


class ProductCard(WireModel):
    id: str = Field(..., pattern=ID_PATTERN)
    title: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    currency: Literal["KRW"] = "KRW"
    image_url: str | None = None
    badges: list[str] | None = None
    reason: str = Field(..., min_length=1, max_length=200)
    detail_url: str = Field(..., pattern=r"^/products/[a-zA-Z0-9_-]+$")


class BriefingWithProductsResponse(WireModel):
    type: Literal["BRIEFING_WITH_PRODUCTS"] = "BRIEFING_WITH_PRODUCTS"
    briefing: Briefing
    products: list[ProductCard] = Field(..., min_length=1, max_length=20)
    request_id: str = Field(..., pattern=UUID_PATTERN)


class MongoQueryOptions(WireModel):
    limit: int | None = Field(default=None, ge=1, le=QUERY_LIMIT_POLICY_MAX)
    sort: dict[str, Any] | None = None
    skip: int | None = Field(default=None, ge=0)


class MongoQueryResponse(WireModel):
    type: Literal["MONGO_QUERY"] = "MONGO_QUERY"
    collection: CollectionName
    query: dict[str, Any] = Field(default_factory=dict)
    projection: dict[str, Any] | None = None
    options: MongoQueryOptions | None = None
    purpose: str = Field(..., min_length=1, max_length=200)
    request_id: str = Field(..., pattern=UUID_PATTERN)


class ToolCallResponse(WireModel):
    type: Literal["TOOL_CALL"] = "TOOL_CALL"
    tool: ToolName
    payload: dict[str, Any]
    human_summary: str = Field(..., min_length=1, max_length=200)
    request_id: str = Field(..., pattern=UUID_PATTERN)


Question = Annotated[str, Field(min_length=1, max_length=300)]


class NeedMoreInfoResponse(WireModel):
    type: Literal["NEED_MORE_INFO"] = "NEED_MORE_INFO"
    questions: list[Question] = Field(..., min_length=1, max_length=NEED_MORE_INFO_MAX_QUESTIONS)
    missing_slots: list[str] | None = None
    request_id: str = Field(..., pattern=UUID_PATTERN)


RESPONSE_VARIANTS: dict[str, type[WireModel]] = {
    "ANSWER": AnswerResponse,
    "BRIEFING_WITH_PRODUCTS": BriefingWithProductsResponse,
    "MONGO_QUERY": MongoQueryResponse,
    "TOOL_CALL": ToolCallResponse,
    "NEED_MORE_INFO": NeedMoreInfoResponse,
}


# --- tool payloads -----------------------------------------------------------


class PayloadModel(WireModel):
    """Tool payloads accept wire names only; unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=False, extra="forbid")


class AddToCartPayload(PayloadModel):
    product_id: str = Field(..., pattern=ID_PATTERN)
    quantity: int = Field(..., ge=1, le=ADD_TO_CART_MAX_QUANTITY, strict=True)
    options: dict[str, Any] | None = None


class ToggleWishlistPayload(PayloadModel):
    product_id: str = Field(..., pattern=ID_PATTERN)


class CheckoutItem(PayloadModel):
    product_id: str = Field(..., pattern=ID_PATTERN)
    quantity: int = Field(..., ge=1, le=ADD_TO_CART_MAX_QUANTITY, strict=True)


class GoToCheckoutPayload(PayloadModel):
    cart_id: str | None = Field(default=None, pattern=ID_PATTERN)
    items: list[CheckoutItem] | None = None

    @model_validator(mode="after")
    def _validate_source(self) -> "GoToCheckoutPayload":
        if self.cart_id is not None and self.items is not None:
            raise ValueError("Provide either cartId or items, not both.")
        return self


class RequestCancelPayload(PayloadModel):
    order_id: str = Field(..., pattern=ID_PATTERN)
    reason: str | None = Field(default=None, max_length=500)


class RequestRefundPayload(PayloadModel):
    order_id: str = Field(..., pattern=ID_PATTERN)
    reason: str = Field(..., min_length=1, max_length=500)
    evidence_urls: list[str] | None = Field(default=None, max_length=5)


class ProductDraft(PayloadModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=False, extra="allow")

    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0)
    category: str
    description: str | None = None
    stock: int | None = Field(default=None, ge=0)


class SellerProductRegisterPayload(PayloadModel):
    seller_id: str = Field(..., pattern=ID_PATTERN)
    product: ProductDraft


class ToolCall(WireModel):
    """Envelope handed from the agent to the tool gateway."""

    tool: ToolName
    payload: dict[str, Any]
    actor_role: UserType
    timestamp: str = Field(..., min_length=1)
    request_id: str = Field(..., pattern=UUID_PATTERN)
    human_summary: str = Field(..., min_length=1, max_length=200)

    @field_validator("timestamp")
    @classmethod
    def _validate_timestamp(cls, value: str) -> str:
        try:
            datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError("timestamp must be ISO-8601") from exc
        return value


# --- tool dispatch boundary ----------------------------------------------------


class ToolError(BaseModel):
    """Normalized error payload returned by collaborators."""
    code: str
    message: str
    details: dict[str, Any] | None = None


class ToolMeta(BaseModel):
    """Metadata attached to tool responses for observability."""
    tool_name: str
    trace_id: str
    latency_ms: int | None = None
    source: str | None = None


class ToolResponse(BaseModel):
    """Unified response wrapper for dispatched tools."""
    ok: bool
    data: Any | None = None
    error: ToolError | None = None
    meta: ToolMeta


@dataclass(frozen=True)
class ToolSpec:
    """Tool registry metadata shared by the gateway and the dispatch broker."""
    name: str
    description: str
    payload_model: type[PayloadModel]
    actor_roles: tuple[str, ...] = ("consumer", "seller")

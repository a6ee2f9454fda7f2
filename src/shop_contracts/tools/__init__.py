"""Tool registry for agent-proposed state changes."""

from __future__ import annotations

from ..schemas import (
    AddToCartPayload,
    GoToCheckoutPayload,
    RequestCancelPayload,
    RequestRefundPayload,
    SellerProductRegisterPayload,
    ToggleWishlistPayload,
    ToolSpec,
)

TOOL_SPECS: dict[str, ToolSpec] = {
    "addToCart": ToolSpec(
        name="addToCart",
        description="Add a product to the caller's cart.",
        payload_model=AddToCartPayload,
    ),
    "toggleWishlist": ToolSpec(
        name="toggleWishlist",
        description="Add or remove a product from the caller's wishlist.",
        payload_model=ToggleWishlistPayload,
    ),
    "goToCheckout": ToolSpec(
        name="goToCheckout",
        description="Start checkout for the caller's cart or a list of items.",
        payload_model=GoToCheckoutPayload,
    ),
    "requestCancel": ToolSpec(
        name="requestCancel",
        description="Request cancellation of one of the caller's orders.",
        payload_model=RequestCancelPayload,
    ),
    "requestRefund": ToolSpec(
        name="requestRefund",
        description="Request a refund for a delivered order.",
        payload_model=RequestRefundPayload,
    ),
    "sellerProductRegister": ToolSpec(
        name="sellerProductRegister",
        description="Register a new product listing for the calling seller.",
        payload_model=SellerProductRegisterPayload,
        actor_roles=("seller",),
    ),
}

ALLOWED_TOOLS: tuple[str, ...] = tuple(TOOL_SPECS)


def get_tool_spec(name: str) -> ToolSpec | None:
    return TOOL_SPECS.get(name)


def list_tool_specs() -> list[ToolSpec]:
    return list(TOOL_SPECS.values())

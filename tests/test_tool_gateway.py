import uuid

from shop_contracts.schemas import UserContext
from shop_agent.tool_gateway import validate_tool_call


def _call(tool, payload, role="consumer"):
    return {
        "tool": tool,
        "payload": payload,
        "actorRole": role,
        "timestamp": "2026-01-01T00:00:00Z",
        "requestId": str(uuid.uuid4()),
        "humanSummary": "Do the thing",
    }


def test_unknown_tool_names_allowed_set():
    result = validate_tool_call(_call("deleteAccount", {}))
    assert not result.is_valid
    assert result.error_code == "UNSUPPORTED_OPERATION"
    assert "addToCart" in result.errors[0]


def test_payload_errors_name_the_field():
    result = validate_tool_call(_call("addToCart", {"productId": "prod_1", "quantity": 25}))
    assert not result.is_valid
    assert result.error_code == "VALIDATION_ERROR"
    assert result.errors[0].startswith("payload.quantity:")


def test_bulk_quantity_warns_without_blocking():
    result = validate_tool_call(_call("addToCart", {"productId": "prod_1", "quantity": 15}))
    assert result.is_valid
    assert result.warnings == ["Large quantity detected. Consider bulk purchase options."]


def test_sanitized_tool_is_a_deep_copy():
    call = _call("addToCart", {"productId": "prod_1", "quantity": 2})
    result = validate_tool_call(call)
    result.sanitized_tool["payload"]["quantity"] = 99
    assert call["payload"]["quantity"] == 2


def test_checkout_rejects_cart_and_items_together():
    payload = {"cartId": "cart_1", "items": [{"productId": "prod_1", "quantity": 1}]}
    result = validate_tool_call(_call("goToCheckout", payload))
    assert not result.is_valid
    assert "cartId or items" in result.errors[0]


def test_refund_requires_reason():
    result = validate_tool_call(_call("requestRefund", {"orderId": "ord1"}))
    assert not result.is_valid
    assert result.errors[0].startswith("payload.reason:")


def test_payload_must_be_an_object():
    result = validate_tool_call(_call("toggleWishlist", ["prod_1"]))
    assert not result.is_valid
    assert result.error_code == "VALIDATION_ERROR"


def test_product_register_is_seller_only(consumer):
    payload = {"sellerId": "s1", "product": {"name": "Pan", "price": 1000, "category": "kitchen"}}
    result = validate_tool_call(_call("sellerProductRegister", payload), consumer)
    assert not result.is_valid
    assert result.error_code == "SCOPE_VIOLATION"


def test_product_register_for_another_seller_is_rejected(seller):
    payload = {"sellerId": "s2", "product": {"name": "Pan", "price": 1000, "category": "kitchen"}}
    result = validate_tool_call(_call("sellerProductRegister", payload, "seller"), seller)
    assert not result.is_valid
    assert result.error_code == "SCOPE_VIOLATION"


def test_product_register_for_own_store(seller):
    payload = {
        "sellerId": "s1",
        "product": {"name": "Pan", "price": 1000, "category": "kitchen", "color": "black"},
    }
    result = validate_tool_call(_call("sellerProductRegister", payload, "seller"), seller)
    assert result.is_valid
    assert result.sanitized_tool["payload"]["product"]["color"] == "black"


def test_missing_user_type_is_treated_as_consumer():
    payload = {"sellerId": "s1", "product": {"name": "Pan", "price": 1000, "category": "kitchen"}}
    anonymous = UserContext(seller_id="s1")
    assert validate_tool_call(_call("sellerProductRegister", payload), anonymous).error_code == "SCOPE_VIOLATION"


def test_snake_case_keys_are_rejected(consumer):
    result = validate_tool_call(_call("addToCart", {"product_id": "prod_1", "quantity": 1}), consumer)
    assert not result.is_valid
    assert "payload.productId: Field required" in result.errors


def test_unknown_payload_keys_are_rejected(consumer):
    payload = {"productId": "prod_1", "quantity": 1, "userId": "u2"}
    result = validate_tool_call(_call("addToCart", payload), consumer)
    assert not result.is_valid
    assert result.errors[0].startswith("payload.userId:")


def test_shadowed_seller_id_is_rejected(seller):
    payload = {
        "sellerId": "s1",
        "seller_id": "s2",
        "product": {"name": "Pan", "price": 1000, "category": "kitchen"},
    }
    result = validate_tool_call(_call("sellerProductRegister", payload, "seller"), seller)
    assert not result.is_valid
    assert result.errors[0].startswith("payload.seller_id:")


def test_sanitized_payload_is_the_validated_one(consumer):
    payload = {"cartId": "cart_1", "items": None}
    result = validate_tool_call(_call("goToCheckout", payload), consumer)
    assert result.is_valid
    assert result.sanitized_tool["payload"] == {"cartId": "cart_1"}

"""Validation of agent-proposed tool calls.

The gateway only decides whether a call is well-formed and permitted; the
owning collaborator executes it later, after user confirmation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import ValidationError

from shop_contracts.schemas import UserContext
from shop_contracts.tools import ALLOWED_TOOLS, get_tool_spec

from .errors import GatewayError, ScopeViolation, UnsupportedOperation
from .errors import ValidationError as PayloadInvalid
from .logging import get_logger

logger = get_logger("tool_gateway")

BULK_QUANTITY_HINT = 10


@dataclass
class ToolValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized_tool: dict[str, Any] | None = None
    error_code: str | None = None


def validate_tool_call(
    tool_call: Mapping[str, Any],
    user_context: UserContext | None = None,
) -> ToolValidationResult:
    name = tool_call.get("tool")
    payload = tool_call.get("payload")
    spec = get_tool_spec(name) if isinstance(name, str) else None
    if spec is None:
        exc = UnsupportedOperation(f"Unknown tool: {name}. Allowed tools: {', '.join(ALLOWED_TOOLS)}")
        return _reject(exc, name)

    if not isinstance(payload, Mapping):
        return _reject(PayloadInvalid("payload: must be an object"), name)

    errors: list[str] = []
    try:
        validated = spec.payload_model.model_validate(payload)
    except ValidationError as exc:
        for err in exc.errors():
            path = ".".join(str(part) for part in err.get("loc", ()))
            errors.append(f"payload.{path}: {err.get('msg')}" if path else f"payload: {err.get('msg')}")
    if errors:
        logger.info("tool_call_rejected", extra={"extra": {"tool": name, "errors": errors}})
        return ToolValidationResult(is_valid=False, errors=errors, error_code=PayloadInvalid.code)

    clean = validated.model_dump(by_alias=True, exclude_none=True)
    if user_context is not None:
        try:
            _check_actor(name, clean, spec.actor_roles, user_context)
        except GatewayError as exc:
            return _reject(exc, name)

    warnings: list[str] = []
    if name == "addToCart" and clean["quantity"] > BULK_QUANTITY_HINT:
        warnings.append("Large quantity detected. Consider bulk purchase options.")

    sanitized = copy.deepcopy(dict(tool_call))
    # Only the validated, wire-named payload travels on.
    sanitized["payload"] = clean
    return ToolValidationResult(is_valid=True, warnings=warnings, sanitized_tool=sanitized)


def _check_actor(
    name: str,
    payload: Mapping[str, Any],
    actor_roles: tuple[str, ...],
    user_context: UserContext,
) -> None:
    role = user_context.effective_type
    if role not in actor_roles:
        raise ScopeViolation(f"Tool {name} is only available to: {', '.join(actor_roles)}")
    if name == "sellerProductRegister" and payload.get("sellerId") != user_context.seller_id:
        raise ScopeViolation("Cannot register products for another seller")


def _reject(exc: GatewayError, name: Any) -> ToolValidationResult:
    event = "tool_scope_violation" if isinstance(exc, ScopeViolation) else "tool_call_rejected"
    log = logger.warning if isinstance(exc, ScopeViolation) else logger.info
    log(event, extra={"extra": {"tool": name, "error_code": exc.code, "error": exc.message}})
    return ToolValidationResult(is_valid=False, errors=[exc.message], error_code=exc.code)


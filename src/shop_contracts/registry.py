"""Classification of agent output by discriminant field.

Responses are discriminated on ``type`` and tool calls on ``tool``. Every
variant has exactly one validator model; the variant set is closed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import BaseModel, ValidationError

from .schemas import RESPONSE_VARIANTS, ToolCall
from .tools import ALLOWED_TOOLS, get_tool_spec


@dataclass(frozen=True)
class Classification:
    ok: bool
    variant: str | None = None
    value: BaseModel | None = None
    error_path: str | None = None
    error: str | None = None


def classify_response(obj: Any) -> Classification:
    """Classify an agent response document by its ``type`` field."""
    if not isinstance(obj, Mapping):
        return _failure(None, "", "response must be an object")
    variant = obj.get("type")
    if variant is None:
        return _failure(None, "type", "missing discriminant")
    model = RESPONSE_VARIANTS.get(variant) if isinstance(variant, str) else None
    if model is None:
        allowed = ", ".join(RESPONSE_VARIANTS)
        return _failure(None, "type", f"unknown response type {variant!r}; allowed: {allowed}")
    return _validate(variant, model, obj)


def classify_tool_call(obj: Any) -> Classification:
    """Classify a tool call envelope by its ``tool`` field.

    The envelope is validated first, then the payload against the tool's
    own payload model; payload errors are reported under ``payload.``.
    """
    if not isinstance(obj, Mapping):
        return _failure(None, "", "tool call must be an object")
    tool = obj.get("tool")
    if tool is None:
        return _failure(None, "tool", "missing discriminant")
    spec = get_tool_spec(tool) if isinstance(tool, str) else None
    if spec is None:
        allowed = ", ".join(ALLOWED_TOOLS)
        return _failure(None, "tool", f"unknown tool {tool!r}; allowed: {allowed}")
    envelope = _validate(tool, ToolCall, obj)
    if not envelope.ok:
        return envelope
    try:
        spec.payload_model.model_validate(obj.get("payload") or {})
    except ValidationError as exc:
        path, message = first_error(exc)
        return _failure(tool, _join("payload", path), message)
    return envelope


def first_error(exc: ValidationError) -> tuple[str, str]:
    """Return ``(dotted_path, message)`` for the first pydantic error."""
    errors = exc.errors()
    if not errors:
        return "", str(exc)
    err = errors[0]
    path = ".".join(str(part) for part in err.get("loc", ()))
    return path, err.get("msg", "invalid value")


def _validate(variant: str, model: type[BaseModel], obj: Any) -> Classification:
    try:
        value = model.model_validate(obj)
    except ValidationError as exc:
        path, message = first_error(exc)
        return _failure(variant, path, message)
    return Classification(ok=True, variant=variant, value=value)


def _failure(variant: str | None, path: str, message: str) -> Classification:
    detail = f"{path}: {message}" if path else message
    return Classification(ok=False, variant=variant, error_path=path, error=detail)


def _join(prefix: str, path: str | None) -> str:
    return f"{prefix}.{path}" if path else prefix


class ContractError(ValueError):
    """Raised by ``parse_response`` when a document matches no variant."""

    def __init__(self, classification: Classification) -> None:
        super().__init__(classification.error)
        self.path = classification.error_path
        self.variant = classification.variant


def parse_response(obj: Any) -> BaseModel:
    result = classify_response(obj)
    if not result.ok:
        raise ContractError(result)
    return result.value

"""Startup consistency check between declarative and executable schemas.

The JSON schemas under ``shop_contracts/json_schemas`` are what external
clients read; the pydantic models and registries are what the gateway
enforces. Both sides are reduced to the same set of facts and compared.
Every disagreement is collected and raised together as one ``SchemaDrift``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from shop_contracts import registry
from shop_contracts.schemas import (
    RESPONSE_VARIANTS,
    AddToCartPayload,
    MongoQueryOptions,
    NeedMoreInfoResponse,
    ToolCall,
    ToolCallResponse,
)
from shop_contracts.tools import ALLOWED_TOOLS

from .errors import SchemaDrift
from .intent_router import INTENT_ENTRY_FIELDS, agent_for_intent, intent_taxonomy
from .logging import get_logger
from .settings import GatewaySettings

logger = get_logger("schema_check")

DEFAULT_SCHEMA_DIR = Path(registry.__file__).resolve().parent / "json_schemas"
SCHEMA_FILES = ("action_schema.json", "response_schema.json", "intent_schema.json")


@dataclass
class SchemaFacts:
    tools: set[str] = field(default_factory=set)
    tool_call_required: set[str] = field(default_factory=set)
    variants: set[str] = field(default_factory=set)
    request_id_required: dict[str, bool] = field(default_factory=dict)
    add_to_cart_max: Any = None
    query_limit_max: Any = None
    tool_call_summary_required: bool = False
    need_more_info_max_questions: Any = None
    intents: dict[str, set[str]] = field(default_factory=dict)
    intent_agents: dict[str, str | None] = field(default_factory=dict)
    intent_required: dict[str, set[str]] = field(default_factory=dict)


@dataclass
class DeclarativeSchemas:
    action: dict[str, Any]
    response: dict[str, Any]
    intent: dict[str, Any]

    @classmethod
    def load(cls, directory: Path | None = None) -> "DeclarativeSchemas":
        directory = directory or DEFAULT_SCHEMA_DIR
        loaded: dict[str, dict[str, Any]] = {}
        problems: list[str] = []
        for filename in SCHEMA_FILES:
            path = directory / filename
            try:
                loaded[filename] = json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                problems.append(f"{filename}: file not found in {directory}")
            except ValueError as exc:
                problems.append(f"{filename}: invalid JSON ({exc})")
        if problems:
            raise SchemaDrift(problems)
        return cls(
            action=loaded["action_schema.json"],
            response=loaded["response_schema.json"],
            intent=loaded["intent_schema.json"],
        )

    def facts(self) -> SchemaFacts:
        facts = SchemaFacts()

        facts.tools = set(_get(self.action, "properties", "tool", "enum") or [])
        facts.tool_call_required = set(self.action.get("required") or [])
        for entry in _get(self.action, "properties", "payload", "oneOf") or []:
            if entry.get("title") == "addToCart":
                facts.add_to_cart_max = _get(entry, "properties", "quantity", "maximum")

        for entry in self.response.get("oneOf") or []:
            variant = _get(entry, "properties", "type", "const")
            if variant is None:
                continue
            required = set(entry.get("required") or [])
            facts.variants.add(variant)
            facts.request_id_required[variant] = "requestId" in required
            if variant == "MONGO_QUERY":
                facts.query_limit_max = _get(entry, "properties", "options", "properties", "limit", "maximum")
            elif variant == "TOOL_CALL":
                facts.tool_call_summary_required = "humanSummary" in required
            elif variant == "NEED_MORE_INFO":
                facts.need_more_info_max_questions = _get(entry, "properties", "questions", "maxItems")

        groups = _get(self.intent, "properties", "intentTaxonomy", "properties") or {}
        for group, body in groups.items():
            entries = body.get("properties") or {}
            facts.intents[group] = set(entries)
            for intent, entry in entries.items():
                facts.intent_agents[intent] = _get(entry, "properties", "defaultAgent", "const")
                facts.intent_required[intent] = set(entry.get("required") or [])
        return facts


class ExecutableSchemas:
    """Facts read from the pydantic models and in-code registries."""

    @staticmethod
    def facts() -> SchemaFacts:
        facts = SchemaFacts()
        facts.tools = set(ALLOWED_TOOLS)
        facts.tool_call_required = set(_json_schema(ToolCall).get("required") or [])
        facts.variants = set(RESPONSE_VARIANTS)
        for variant, model in RESPONSE_VARIANTS.items():
            facts.request_id_required[variant] = "requestId" in (_json_schema(model).get("required") or [])
        facts.add_to_cart_max = _constraint(_json_schema(AddToCartPayload)["properties"]["quantity"], "maximum")
        facts.query_limit_max = _constraint(_json_schema(MongoQueryOptions)["properties"]["limit"], "maximum")
        facts.tool_call_summary_required = "humanSummary" in (_json_schema(ToolCallResponse).get("required") or [])
        facts.need_more_info_max_questions = _constraint(
            _json_schema(NeedMoreInfoResponse)["properties"]["questions"], "maxItems"
        )
        for group, intents in intent_taxonomy().items():
            facts.intents[group] = set(intents)
            for intent in intents:
                facts.intent_agents[intent] = agent_for_intent(intent)
                facts.intent_required[intent] = set(INTENT_ENTRY_FIELDS)
        return facts


def collect_schema_drift(declared: SchemaFacts, executable: SchemaFacts) -> list[str]:
    mismatches: list[str] = []

    _compare_sets(mismatches, "tool enum", declared.tools, executable.tools)
    _compare_sets(mismatches, "tool call required fields", declared.tool_call_required, executable.tool_call_required)
    _compare_sets(mismatches, "response variants", declared.variants, executable.variants)
    for variant in sorted(declared.variants & executable.variants):
        if declared.request_id_required.get(variant) != executable.request_id_required.get(variant):
            mismatches.append(
                f"{variant}.requestId required: declarative={declared.request_id_required.get(variant)}, "
                f"executable={executable.request_id_required.get(variant)}"
            )
    _compare_value(mismatches, "addToCart.quantity maximum", declared.add_to_cart_max, executable.add_to_cart_max)
    _compare_value(
        mismatches, "MONGO_QUERY.options.limit maximum", declared.query_limit_max, executable.query_limit_max
    )
    _compare_value(
        mismatches,
        "TOOL_CALL.humanSummary required",
        declared.tool_call_summary_required,
        executable.tool_call_summary_required,
    )
    _compare_value(
        mismatches,
        "NEED_MORE_INFO.questions maxItems",
        declared.need_more_info_max_questions,
        executable.need_more_info_max_questions,
    )

    for group in sorted(set(declared.intents) | set(executable.intents)):
        _compare_sets(
            mismatches,
            f"{group} intents",
            declared.intents.get(group, set()),
            executable.intents.get(group, set()),
        )
    for intent in sorted(set(declared.intent_agents) & set(executable.intent_agents)):
        _compare_value(
            mismatches,
            f"intent {intent} defaultAgent",
            declared.intent_agents[intent],
            executable.intent_agents[intent],
        )
        missing = executable.intent_required.get(intent, set()) - declared.intent_required.get(intent, set())
        if missing:
            mismatches.append(f"intent {intent} entry does not require: {', '.join(sorted(missing))}")
    return mismatches


def assert_schema_consistency(settings: GatewaySettings | None = None) -> None:
    """Raise ``SchemaDrift`` listing every disagreement; log success otherwise."""
    directory = Path(settings.schema_dir) if settings and settings.schema_dir else DEFAULT_SCHEMA_DIR
    declared = DeclarativeSchemas.load(directory).facts()
    mismatches = collect_schema_drift(declared, ExecutableSchemas.facts())
    if mismatches:
        logger.error("schema_drift", extra={"extra": {"schema_dir": str(directory), "mismatches": mismatches}})
        raise SchemaDrift(mismatches)
    logger.info("schema_consistent", extra={"extra": {"schema_dir": str(directory)}})


def _json_schema(model: Any) -> dict[str, Any]:
    return model.model_json_schema(by_alias=True)


def _constraint(node: dict[str, Any], key: str) -> Any:
    # Optional fields render as anyOf [constrained, null].
    if key in node:
        return node[key]
    for option in node.get("anyOf", []):
        if key in option:
            return option[key]
    return None


def _get(node: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _compare_sets(mismatches: list[str], label: str, declared: set[str], executable: set[str]) -> None:
    only_declared = sorted(declared - executable)
    only_executable = sorted(executable - declared)
    if only_declared:
        mismatches.append(f"{label}: only in declarative schema: {', '.join(only_declared)}")
    if only_executable:
        mismatches.append(f"{label}: only in executable validators: {', '.join(only_executable)}")


def _compare_value(mismatches: list[str], label: str, declared: Any, executable: Any) -> None:
    if declared != executable:
        mismatches.append(f"{label}: declarative={declared}, executable={executable}")

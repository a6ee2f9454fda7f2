"""Process-wide collaborators, built once at startup and injected."""

from __future__ import annotations

from dataclasses import dataclass, field

from shop_contracts.adapters.mongo import DocumentStore, open_store

from .agent import ResponseGenerator, build_generator
from .agent_specs import AgentSpecLibrary
from .intent_router import IntentClassifier, KeywordIntentClassifier
from .policy import KeywordPolicyClassifier, PolicyClassifier
from .settings import GatewaySettings, get_settings
from .tool_broker import ToolBroker


@dataclass
class GatewayContext:
    settings: GatewaySettings
    specs: AgentSpecLibrary
    store: DocumentStore
    generator: ResponseGenerator
    broker: ToolBroker
    intent_classifier: IntentClassifier = field(default_factory=KeywordIntentClassifier)
    policy_classifier: PolicyClassifier = field(default_factory=KeywordPolicyClassifier)


def build_context(settings: GatewaySettings | None = None) -> GatewayContext:
    settings = settings or get_settings()
    specs = AgentSpecLibrary.resolve(settings)
    store = open_store(
        uri=settings.mongo_uri,
        database=settings.mongo_database,
        timeout_ms=settings.store_timeout_ms,
    )
    return GatewayContext(
        settings=settings,
        specs=specs,
        store=store,
        generator=build_generator(settings, specs),
        broker=ToolBroker(settings),
    )

from shop_contracts.schemas import AgentRequest
from shop_agent.agent_specs import DEFAULT_SPECS_DIR, AgentSpecLibrary, parse_agent_spec
from shop_agent.intent_router import KeywordIntentClassifier
from shop_agent.prompts import OUTPUT_RULES, build_messages, build_system_prompt
from shop_agent.settings import GatewaySettings

SPEC = """# 99_test

## Role
Test agent.

## Goals
- Be brief.
- Be right.

## Guardrails
1. **Read only**: never propose tool calls.

## Procedure
1. Read.
2. Answer.

## Examples
```json
{"type": "ANSWER", "content": "hi"}
```

## Failure Tags
- NOPE
"""


def test_parse_sections():
    spec = parse_agent_spec("99_test", SPEC)
    assert spec.role == "Test agent."
    assert spec.goals == ["Be brief.", "Be right."]
    assert spec.guardrails == {"Read only": "never propose tool calls."}
    assert spec.procedure == ["Read.", "Answer."]
    assert spec.examples == [{"type": "ANSWER", "content": "hi"}]
    assert spec.failure_tags == ["NOPE"]


def test_library_reads_shipped_specs():
    library = AgentSpecLibrary(DEFAULT_SPECS_DIR)
    spec = library.get("12_product_search")
    assert spec is not None
    assert "Read only" in spec.guardrails
    assert library.get("does_not_exist") is None
    assert "15_order_flow" in library.names()


def test_missing_directory_resolves_to_empty_library(tmp_path):
    library = AgentSpecLibrary.resolve(GatewaySettings(agent_specs_dir=str(tmp_path / "nope")))
    assert library.directory is None
    assert library.names() == []
    assert library.get("12_product_search") is None


def test_configured_directory_wins(tmp_path):
    (tmp_path / "99_test.md").write_text(SPEC, encoding="utf-8")
    library = AgentSpecLibrary.resolve(GatewaySettings(agent_specs_dir=str(tmp_path)))
    assert library.names() == ["99_test"]


def test_system_prompt_uses_spec():
    prompt = build_system_prompt(parse_agent_spec("99_test", SPEC))
    assert prompt.startswith("Test agent.")
    assert "- Read only: never propose tool calls." in prompt
    assert OUTPUT_RULES in prompt


def test_messages_carry_intent_and_history():
    request = AgentRequest.model_validate(
        {
            "message": "find a frying pan",
            "conversationHistory": {"messages": [{"role": "user", "content": "hi"}]},
        }
    )
    intent = KeywordIntentClassifier().classify(request.message)
    messages = build_messages(None, request, intent)
    assert [m["role"] for m in messages] == ["system", "user"]
    assert '"primaryIntent": "search_product"' in messages[1]["content"]
    assert '"history"' in messages[1]["content"]
    assert messages[1]["content"].endswith("User message: find a frying pan")

import json
import uuid

import pytest

from shop_contracts.adapters import AdapterError
from shop_contracts.schemas import AgentRequest
from shop_agent.orchestrator import Orchestrator, summarize_rows
from shop_agent.state import Stage


class StubGenerator:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def generate(self, agent, request, intent, request_id, trace=None):
        self.calls.append(agent)
        return self.response


def _request(message, user_context):
    return AgentRequest(message=message, user_context=user_context)


@pytest.mark.asyncio
async def test_frying_pan_search(context, consumer):
    request_id = str(uuid.uuid4())
    result = await Orchestrator(context).run(_request("find a frying pan", consumer), request_id)

    assert result.response["type"] == "ANSWER"
    assert result.response["requestId"] == request_id
    assert "Found 2 results (out of 2)" in result.response["content"]
    assert "Nonstick Frying Pan 28cm" in result.response["content"]
    assert result.selected_agents == ["12_product_search"]
    assert result.stages[-3:] == [Stage.QUERY_GATE, Stage.QUERY_EXECUTE, Stage.ANSWER_SYNTHESIS]
    assert not result.requires_confirmation


@pytest.mark.asyncio
async def test_two_hundred_units_are_rejected_with_warning(context, consumer):
    result = await Orchestrator(context).run(_request("Add 200 of item prod_1 to my cart", consumer))

    assert result.response["type"] == "ANSWER"
    assert "payload.quantity" in result.response["content"]
    assert not result.requires_confirmation
    assert result.safety.verdict == "WARN"
    assert result.safety.violated_policies == ["EXCESSIVE_QUANTITY"]
    assert result.stages[-3:] == [Stage.TOOL_POLICY_CHECK, Stage.TOOL_VALIDATE, Stage.ANSWER_SYNTHESIS]
    assert result.metadata()["safety"]["verdict"] == "WARN"


@pytest.mark.asyncio
async def test_valid_cart_add_returns_for_confirmation(context, consumer):
    request_id = str(uuid.uuid4())
    result = await Orchestrator(context).run(_request("add 2 of item prod_1 to my cart", consumer), request_id)

    assert result.requires_confirmation
    assert result.final_stage == Stage.RETURN_FOR_CONFIRMATION
    assert result.response["type"] == "TOOL_CALL"
    assert result.response["tool"] == "addToCart"
    assert result.response["payload"] == {"productId": "prod_1", "quantity": 2}
    assert result.response["requestId"] == request_id
    assert result.selected_agents == ["15_order_flow"]


@pytest.mark.asyncio
async def test_seller_cross_tenant_query_is_rejected(context, seller):
    context.generator = StubGenerator(
        {
            "type": "MONGO_QUERY",
            "collection": "orders",
            "query": {"sellerId": "s2"},
            "options": {"limit": 10},
            "purpose": "competitor orders",
        }
    )
    result = await Orchestrator(context).run(_request("show me the sales analytics", seller))

    assert result.response["type"] == "ANSWER"
    assert "Cannot access other sellers' data" in result.response["content"]
    assert Stage.QUERY_EXECUTE not in result.stages
    assert result.final_stage == Stage.ANSWER_SYNTHESIS


@pytest.mark.asyncio
async def test_malformed_sort_is_answered_not_raised(context, consumer):
    context.generator = StubGenerator(
        {
            "type": "MONGO_QUERY",
            "collection": "products",
            "query": {"name": "pan"},
            "options": {"limit": 10, "sort": {"price": "descending"}},
            "purpose": "pans by price",
        }
    )
    result = await Orchestrator(context).run(_request("find a frying pan", consumer))

    assert result.response["type"] == "ANSWER"
    assert "options.sort.price" in result.response["content"]
    assert Stage.QUERY_EXECUTE not in result.stages


@pytest.mark.asyncio
async def test_blocked_message_never_reaches_the_generator(context, consumer):
    generator = StubGenerator({"type": "ANSWER", "content": "unused"})
    context.generator = generator
    result = await Orchestrator(context).run(_request("my card is 1234-5678-9012-3456", consumer))

    assert generator.calls == []
    assert result.final_stage == Stage.BLOCKED
    assert result.selected_agents == ["01_policy_safety"]
    assert result.confidence == 1.0
    assert result.metadata()["safety"]["violatedPolicies"] == ["PII_PROTECTION"]


@pytest.mark.asyncio
async def test_low_confidence_asks_for_clarification(context, consumer):
    result = await Orchestrator(context).run(_request("hello there", consumer))

    assert result.response["type"] == "NEED_MORE_INFO"
    assert 1 <= len(result.response["questions"]) <= 3
    assert result.selected_agents == ["10_intent_router"]
    assert result.confidence == 0.5
    assert result.final_stage == Stage.CLARIFY


@pytest.mark.asyncio
async def test_invalid_generated_response_names_the_field(context, consumer):
    context.generator = StubGenerator({"type": "NEED_MORE_INFO", "questions": ["a", "b", "c", "d"]})
    result = await Orchestrator(context).run(_request("find a frying pan", consumer))

    assert result.response["type"] == "ANSWER"
    assert "questions" in result.response["content"]


@pytest.mark.asyncio
async def test_generator_request_id_is_replaced(context, consumer):
    context.generator = StubGenerator({"type": "ANSWER", "content": "Pans are great", "requestId": "bogus"})
    request_id = str(uuid.uuid4())
    result = await Orchestrator(context).run(_request("find a frying pan", consumer), request_id)

    assert result.response == {"type": "ANSWER", "content": "Pans are great", "requestId": request_id}
    assert result.final_stage == Stage.RETURN


class BrokenStore:
    def find(self, collection, query, projection=None, *, sort=None, skip=None, limit=None):
        raise AdapterError("STORE_ERROR", "AutoReconnect")

    def count(self, collection, query):
        raise AdapterError("STORE_ERROR", "AutoReconnect")


@pytest.mark.asyncio
async def test_store_failure_lowers_confidence(context, consumer):
    context.store = BrokenStore()
    result = await Orchestrator(context).run(_request("find a frying pan", consumer))

    assert result.response["type"] == "ANSWER"
    assert "products" in result.response["content"]
    assert result.confidence == 0.5


@pytest.mark.asyncio
async def test_trace_is_written_when_enabled(context, consumer, tmp_path):
    context.settings.trace_enabled = True
    context.settings.trace_dir = str(tmp_path)
    request_id = str(uuid.uuid4())
    await Orchestrator(context).run(_request("find a frying pan 010-1234-5678", consumer), request_id)

    files = list(tmp_path.glob(f"*_{request_id}.json"))
    assert len(files) == 1
    trace = json.loads(files[0].read_text(encoding="utf-8"))
    assert "[PHONE_MASKED]" in trace["request"]["message"]
    assert trace["final"]["response_type"] == "ANSWER"
    assert [stage["stage"] for stage in trace["stages"]][0] == "START"


def test_summarize_rows_without_results():
    assert summarize_rows([], None, "pans") == "No results found for: pans"

import mongomock
import pytest

from shop_contracts.adapters.mongo import MongoStore
from shop_contracts.schemas import UserContext
from shop_agent.agent import HeuristicResponseGenerator
from shop_agent.agent_specs import DEFAULT_SPECS_DIR, AgentSpecLibrary
from shop_agent.context import GatewayContext
from shop_agent.settings import GatewaySettings
from shop_agent.tool_broker import ToolBroker

PRODUCTS = [
    {"_id": "prod_1", "name": "Nonstick Frying Pan 28cm", "price": 32000, "sellerId": "s1", "rating": 4.5},
    {"_id": "prod_2", "name": "Cast Iron Frying Pan", "price": 45000, "sellerId": "s2", "rating": 4.8},
    {"_id": "prod_3", "name": "Stainless Saucepan", "price": 28000, "sellerId": "s1", "rating": 4.1},
    {"_id": "prod_4", "name": "Bamboo Cutting Board", "price": 15000, "sellerId": "s2", "rating": 3.9},
]
ORDERS = [
    {
        "_id": "ord_1",
        "orderId": "ord1",
        "userId": "u1",
        "sellerId": "s1",
        "status": "shipped",
        "paymentInfo": {"method": "card"},
        "cardNumber": "1234-5678-9012-3456",
    },
    {"_id": "ord_2", "orderId": "ord2", "userId": "u2", "sellerId": "s2", "status": "paid"},
]
USERS = [
    {"_id": "u1", "name": "Kim", "password": "hashed", "token": "t0k3n"},
]


@pytest.fixture
def database():
    db = mongomock.MongoClient()["shopbuddy"]
    db["products"].insert_many([dict(doc) for doc in PRODUCTS])
    db["orders"].insert_many([dict(doc) for doc in ORDERS])
    db["users"].insert_many([dict(doc) for doc in USERS])
    return db


@pytest.fixture
def store(database):
    return MongoStore(database)


@pytest.fixture
def consumer():
    return UserContext(user_id="u1", is_logged_in=True, user_type="consumer")


@pytest.fixture
def seller():
    return UserContext(seller_id="s1", is_logged_in=True, user_type="seller")


@pytest.fixture
def settings(tmp_path):
    return GatewaySettings(mock_llm=True, trace_enabled=False, trace_dir=str(tmp_path / "traces"))


@pytest.fixture
def context(settings, store):
    return GatewayContext(
        settings=settings,
        specs=AgentSpecLibrary(DEFAULT_SPECS_DIR),
        store=store,
        generator=HeuristicResponseGenerator(),
        broker=ToolBroker(settings),
    )

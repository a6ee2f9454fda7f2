import pytest

from shop_contracts.schemas import MongoQueryResponse, UserContext
from shop_agent.query_gate import DEFAULT_LIMIT, validate_query


def _request(collection="products", query=None, **extra):
    doc = {"collection": collection, "query": query if query is not None else {}, "purpose": "test"}
    doc.update(extra)
    return doc


def test_unknown_collection_lists_allowed(consumer):
    result = validate_query(_request("secrets"), consumer)
    assert not result.is_valid
    assert result.error_code == "UNSUPPORTED_OPERATION"
    assert "products" in result.error


@pytest.mark.parametrize(
    "query",
    [
        {"$where": "this.price < 10"},
        {"$WHERE": "1"},
        {"price": {"$function": {"body": "return true"}}},
        {"$expr": {"$eval": "db.dropDatabase()"}},
        {"$mapReduce": {"map": "function() {}", "reduce": "function() {}"}},
        {"$group": {"_id": "$category", "x": {"$accumulator": {"init": "function() {}"}}}},
    ],
)
def test_blocked_operators(consumer, query):
    result = validate_query(_request(query=query), consumer)
    assert not result.is_valid
    assert result.error_code == "VALIDATION_ERROR"


def test_group_without_accumulator_is_allowed(consumer):
    result = validate_query(_request(query={"$group": {"_id": "$category"}}), consumer)
    assert result.is_valid


def test_blocked_operator_in_projection(consumer):
    result = validate_query(_request(projection={"x": {"$function": {}}}), consumer)
    assert not result.is_valid


def test_default_limit_applied(consumer):
    result = validate_query(_request(), consumer)
    assert result.is_valid
    assert result.sanitized_query.limit == DEFAULT_LIMIT
    assert not result.sanitized_query.limit_supplied


def test_limit_above_ceiling_is_rejected_not_clamped(consumer):
    result = validate_query(_request(options={"limit": 600}), consumer)
    assert not result.is_valid
    assert "500" in result.error


@pytest.mark.parametrize("options", [{"limit": 0}, {"limit": -5}, {"limit": "10"}, {"skip": -1}, {"sort": []}])
def test_bad_options_are_rejected(consumer, options):
    assert not validate_query(_request(options=options), consumer).is_valid


@pytest.mark.parametrize("direction", [None, 0, 2, "asc", True, {"$meta": 1}, {"$natural": "x"}])
def test_bad_sort_directions_are_rejected(consumer, direction):
    result = validate_query(_request(options={"sort": {"price": direction}}), consumer)
    assert not result.is_valid
    assert result.error_code == "VALIDATION_ERROR"
    assert result.error.startswith("options.sort.price must be")


def test_sort_directions_are_accepted(consumer):
    sort = {"price": -1, "name": 1, "score": {"$meta": "textScore"}}
    result = validate_query(_request(options={"sort": sort}), consumer)
    assert result.is_valid
    assert result.sanitized_query.options["sort"] == sort


def test_consumer_scope_is_injected(consumer):
    result = validate_query(_request("orders"), consumer)
    assert result.is_valid
    assert result.sanitized_query.query == {"userId": "u1"}


def test_consumer_cannot_read_other_users(consumer):
    result = validate_query(_request("orders", {"userId": "u2"}), consumer)
    assert not result.is_valid
    assert result.error_code == "SCOPE_VIOLATION"


def test_scope_is_checked_inside_logical_operators(consumer):
    query = {"$or": [{"userId": "u1"}, {"userId": "u2"}]}
    result = validate_query(_request("orders", query), consumer)
    assert result.error_code == "SCOPE_VIOLATION"


@pytest.mark.parametrize("scope", [{"$eq": "u1"}, {"$in": ["u1"]}, {"$in": ["u1", "u1"]}])
def test_equality_forms_of_own_id_are_accepted(consumer, scope):
    result = validate_query(_request("orders", {"userId": scope}), consumer)
    assert result.is_valid
    assert result.sanitized_query.query == {"userId": scope}


def test_in_with_a_foreign_id_is_rejected(consumer):
    result = validate_query(_request("orders", {"userId": {"$in": ["u1", "u2"]}}), consumer)
    assert result.error_code == "SCOPE_VIOLATION"
    assert result.error == "Cannot access other users' data"


@pytest.mark.parametrize("scope", [{"$ne": "u1"}, {"$in": []}, {"$regex": "u"}, {"$eq": "u1", "$exists": True}])
def test_other_scope_operators_are_rejected(consumer, scope):
    result = validate_query(_request("orders", {"userId": scope}), consumer)
    assert result.error_code == "SCOPE_VIOLATION"
    assert result.error == "Scope filter on userId must be a literal id or $eq/$in of your own id"


def test_seller_in_scope_with_a_foreign_id_is_rejected(seller):
    result = validate_query(_request("products", {"sellerId": {"$in": ["s1", "s2"]}}), seller)
    assert result.error_code == "SCOPE_VIOLATION"
    assert "sellers'" in result.error


def test_consumer_without_id_is_rejected_on_scoped_collection():
    result = validate_query(_request("carts"), UserContext())
    assert result.error_code == "SCOPE_VIOLATION"


def test_unscoped_collection_is_left_alone(consumer):
    result = validate_query(_request("products", {"name": "Pan"}), consumer)
    assert result.sanitized_query.query == {"name": "Pan"}


def test_seller_cannot_read_other_sellers_orders(seller):
    result = validate_query(_request("orders", {"sellerId": "s2"}), seller)
    assert not result.is_valid
    assert result.error_code == "SCOPE_VIOLATION"
    assert "sellers'" in result.error


def test_seller_scope_is_injected(seller):
    result = validate_query(_request("products", {"price": {"$lt": 50000}}), seller)
    assert result.sanitized_query.query == {"price": {"$lt": 50000}, "sellerId": "s1"}


def test_inclusion_projection_drops_secrets(consumer):
    result = validate_query(_request("users", projection={"name": 1, "password": 1}), consumer)
    assert result.sanitized_query.projection == {"name": 1}


def test_exclusion_projection_excludes_every_secret(consumer):
    result = validate_query(_request("users", projection={"address": 0}), consumer)
    assert result.sanitized_query.projection == {
        "address": 0,
        "password": 0,
        "token": 0,
        "secret": 0,
        "apiKey": 0,
    }


def test_sanitized_query_is_a_deep_copy(consumer):
    request = _request("products", {"tags": {"$in": ["kitchen"]}})
    result = validate_query(request, consumer)
    request["query"]["tags"]["$in"].append("garden")
    assert result.sanitized_query.query == {"tags": {"$in": ["kitchen"]}}


def test_revalidation_is_idempotent(consumer):
    first = validate_query(_request("orders", projection={"status": 1, "token": 1}), consumer)
    second = validate_query(first.sanitized_query.to_request(), consumer)
    assert second.is_valid
    assert second.sanitized_query == first.sanitized_query


def test_accepts_a_classified_response(consumer):
    response = MongoQueryResponse(
        collection="products",
        query={"name": {"$regex": "pan", "$options": "i"}},
        options={"limit": 20},
        purpose="search",
        request_id="6f1c2a4e-0d5b-4c1a-9a57-3f0c8e1b2d44",
    )
    result = validate_query(response, consumer)
    assert result.is_valid
    assert result.sanitized_query.limit == 20
    assert result.sanitized_query.limit_supplied

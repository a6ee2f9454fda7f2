"""Sandbox for agent-generated read queries.

Every query the agent wants to run passes through ``validate_query``. The
result is either one human-readable rejection reason or a ``SanitizedQuery``:
a scoped, capped deep copy. The caller's document is never handed onward.

Checks, in order:

1. collection allow-list
2. operator blocklist on the serialized filter and projection
3. result-size ceiling (rejected above ``MAX_LIMIT``, never clamped)
4. identity scoping (inject own scope; reject any other tenant's id)
5. projection redaction of secret fields
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from pydantic import BaseModel

from shop_contracts.schemas import ALLOWED_COLLECTIONS, UserContext

from .errors import GatewayError, ScopeViolation, UnsupportedOperation, ValidationError
from .logging import get_logger
from .masking import SENSITIVE_FIELDS

logger = get_logger("query_gate")

DEFAULT_LIMIT = 100
MAX_LIMIT = 500

BLOCKED_OPERATORS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\$where", re.IGNORECASE),
    re.compile(r"\$eval", re.IGNORECASE),
    re.compile(r"\$function", re.IGNORECASE),
    re.compile(r"\$mapReduce", re.IGNORECASE),
    re.compile(r"\$group.*\$accumulator", re.IGNORECASE | re.DOTALL),
)

CONSUMER_SCOPED = frozenset({"orders", "carts", "wishlists", "reviews", "points"})
SELLER_SCOPED = frozenset({"products", "orders"})
LOGICAL_OPERATORS = ("$and", "$or", "$nor")


@dataclass(frozen=True)
class SanitizedQuery:
    """A query that has passed the gate. Only the gate constructs these."""

    collection: str
    query: dict[str, Any]
    projection: dict[str, Any] | None
    options: dict[str, Any]
    purpose: str = ""
    limit_supplied: bool = field(default=False, compare=False)

    @property
    def limit(self) -> int:
        return self.options["limit"]

    def to_request(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "collection": self.collection,
            "query": copy.deepcopy(self.query),
            "options": copy.deepcopy(self.options),
            "purpose": self.purpose,
        }
        if self.projection is not None:
            out["projection"] = copy.deepcopy(self.projection)
        return out


@dataclass
class QueryValidationResult:
    is_valid: bool
    error: str | None = None
    error_code: str | None = None
    sanitized_query: SanitizedQuery | None = None


def validate_query(request: Mapping[str, Any] | BaseModel, user_context: UserContext) -> QueryValidationResult:
    doc = _as_document(request)
    collection = doc.get("collection")
    try:
        _check_collection(collection)
        query = _as_filter(doc.get("query"))
        projection = doc.get("projection")
        if projection is not None and not isinstance(projection, Mapping):
            raise ValidationError("projection must be an object")
        _check_operators(query, projection)
        options, limit_supplied = _check_options(doc.get("options"))
        _apply_scope(collection, query, user_context)
        projection = _redact_projection(projection)
    except GatewayError as exc:
        _log_rejection(exc, collection, user_context)
        return QueryValidationResult(is_valid=False, error=exc.message, error_code=exc.code)

    sanitized = SanitizedQuery(
        collection=collection,
        query=query,
        projection=projection,
        options=options,
        purpose=str(doc.get("purpose") or ""),
        limit_supplied=limit_supplied,
    )
    return QueryValidationResult(is_valid=True, sanitized_query=sanitized)


def _as_document(request: Mapping[str, Any] | BaseModel) -> dict[str, Any]:
    if isinstance(request, BaseModel):
        return request.model_dump(by_alias=True, exclude_none=True)
    if isinstance(request, Mapping):
        return copy.deepcopy(dict(request))
    raise TypeError("query request must be a mapping or model")


def _as_filter(query: Any) -> dict[str, Any]:
    if query is None:
        return {}
    if not isinstance(query, Mapping):
        raise ValidationError("query must be an object")
    return copy.deepcopy(dict(query))


def _check_collection(collection: Any) -> None:
    if collection not in ALLOWED_COLLECTIONS:
        raise UnsupportedOperation(
            f'Collection "{collection}" is not allowed. Allowed collections: {", ".join(ALLOWED_COLLECTIONS)}'
        )


def _check_operators(query: dict[str, Any], projection: Any) -> None:
    for part in (query, projection):
        if part is None:
            continue
        serialized = json.dumps(part, default=str)
        for pattern in BLOCKED_OPERATORS:
            if pattern.search(serialized):
                raise ValidationError("Query contains operations that are not allowed")


def _check_options(options: Any) -> tuple[dict[str, Any], bool]:
    if options is None:
        options = {}
    if not isinstance(options, Mapping):
        raise ValidationError("options must be an object")
    out = copy.deepcopy(dict(options))
    limit = out.get("limit")
    limit_supplied = limit is not None
    if limit is None:
        limit = DEFAULT_LIMIT
    if not _is_int(limit) or limit < 1:
        raise ValidationError("options.limit must be a positive integer")
    if limit > MAX_LIMIT:
        raise ValidationError(f"Query limit cannot exceed {MAX_LIMIT}; narrow the query instead")
    out["limit"] = limit
    skip = out.get("skip")
    if skip is not None and (not _is_int(skip) or skip < 0):
        raise ValidationError("options.skip must be a non-negative integer")
    sort = out.get("sort")
    if sort is not None:
        if not isinstance(sort, Mapping):
            raise ValidationError("options.sort must be an object")
        for key, direction in sort.items():
            if not _is_sort_direction(direction):
                raise ValidationError(f"options.sort.{key} must be 1, -1 or a $meta expression")
    return out, limit_supplied


def _apply_scope(collection: str, query: dict[str, Any], user_context: UserContext) -> None:
    role = user_context.effective_type
    if role == "consumer" and collection in CONSUMER_SCOPED:
        _scope(query, "userId", user_context.user_id, "users'")
    elif role == "seller" and collection in SELLER_SCOPED:
        _scope(query, "sellerId", user_context.seller_id, "sellers'")


def _scope(query: dict[str, Any], field_name: str, own_id: str | None, owner: str) -> None:
    if not own_id:
        raise ScopeViolation(f"Sign-in is required to read this data ({field_name} unknown)")
    referenced = [value for ref in _scope_references(query, field_name) for value in _scope_values(ref, field_name)]
    if any(value != own_id for value in referenced):
        raise ScopeViolation(f"Cannot access other {owner} data")
    if field_name not in query:
        query[field_name] = own_id


def _scope_values(reference: Any, field_name: str) -> list[Any]:
    # Only equality forms can be proven to stay inside the caller's scope.
    if not isinstance(reference, Mapping):
        return [reference]
    if list(reference) == ["$eq"]:
        return [reference["$eq"]]
    if list(reference) == ["$in"] and isinstance(reference["$in"], list) and reference["$in"]:
        return list(reference["$in"])
    raise ScopeViolation(f"Scope filter on {field_name} must be a literal id or $eq/$in of your own id")


def _scope_references(query: Any, field_name: str) -> list[Any]:
    found: list[Any] = []
    if not isinstance(query, Mapping):
        return found
    if field_name in query:
        found.append(query[field_name])
    for op in LOGICAL_OPERATORS:
        clauses = query.get(op)
        if isinstance(clauses, list):
            for clause in clauses:
                found.extend(_scope_references(clause, field_name))
    return found


def _redact_projection(projection: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if projection is None:
        return None
    out = copy.deepcopy(dict(projection))
    inclusion = any(_truthy(v) for k, v in out.items() if k != "_id" and not _is_sensitive(k))
    for key in list(out):
        if _is_sensitive(key):
            del out[key]
    if not inclusion:
        # Exclusion projection (or only secrets requested): exclude every secret explicitly.
        for name in SENSITIVE_FIELDS:
            out[name] = 0
    return out


def _is_sensitive(key: str) -> bool:
    return key.split(".")[-1] in SENSITIVE_FIELDS


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    # Expressions such as {"$slice": 3} or {"$elemMatch": ...} keep the projection inclusive.
    return True


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_sort_direction(value: Any) -> bool:
    if isinstance(value, Mapping):
        return list(value) == ["$meta"] and isinstance(value["$meta"], str)
    return _is_int(value) and value in (1, -1)


def _log_rejection(exc: GatewayError, collection: Any, user_context: UserContext) -> None:
    fields = {
        "collection": collection,
        "error_code": exc.code,
        "error": exc.message,
        "user_type": user_context.effective_type,
    }
    if isinstance(exc, ScopeViolation):
        logger.warning("query_scope_violation", extra={"extra": fields})
    else:
        logger.info("query_rejected", extra={"extra": fields})

"""Execution of gate-approved read queries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from shop_contracts.adapters import AdapterError
from shop_contracts.adapters.mongo import DocumentStore

from .errors import ExecutionFailure, UnsupportedOperation
from .logging import get_logger
from .masking import mask_filter, mask_row
from .query_gate import SanitizedQuery

logger = get_logger("query_executor")


@dataclass
class QueryExecutionResult:
    success: bool
    data: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None
    error: str | None = None
    error_code: str | None = None


def execute_query(sanitized: SanitizedQuery, store: DocumentStore) -> QueryExecutionResult:
    """Run a ``SanitizedQuery`` and mask the rows.

    A total count is only computed when the caller supplied a limit.
    """
    if not isinstance(sanitized, SanitizedQuery):
        # Raw documents must go through validate_query first.
        exc = UnsupportedOperation("Only gate-sanitized queries can be executed")
        return QueryExecutionResult(success=False, error=exc.message, error_code=exc.code)

    options = sanitized.options
    start = time.time()
    try:
        rows = store.find(
            sanitized.collection,
            sanitized.query,
            sanitized.projection,
            sort=options.get("sort"),
            skip=options.get("skip"),
            limit=sanitized.limit,
        )
        count = store.count(sanitized.collection, sanitized.query) if sanitized.limit_supplied else None
    except AdapterError as exc:
        failure = ExecutionFailure(
            f'Query on "{sanitized.collection}" failed (purpose: {sanitized.purpose or "unspecified"})',
            {"collection": sanitized.collection, "store_error": exc.code},
        )
        result = QueryExecutionResult(success=False, error=failure.message, error_code=failure.code)
        log_query(sanitized, result, latency_ms=int((time.time() - start) * 1000))
        return result

    data = [mask_row(row, sanitized.collection) for row in rows]
    result = QueryExecutionResult(success=True, data=data, count=count)
    log_query(sanitized, result, latency_ms=int((time.time() - start) * 1000))
    return result


def log_query(sanitized: SanitizedQuery, result: QueryExecutionResult, latency_ms: int | None = None) -> None:
    logger.info(
        "mongo_query",
        extra={
            "extra": {
                "collection": sanitized.collection,
                "query": mask_filter(sanitized.query),
                "purpose": sanitized.purpose,
                "result_count": len(result.data),
                "total_count": result.count,
                "success": result.success,
                "error": result.error,
                "latency_ms": latency_ms,
            }
        },
    )

"""Dispatch of user-confirmed tool calls to the commerce collaborator.

This isolates transport details (HTTP, timeouts, error mapping) from the
gateway. The collaborator owns every business rule; the broker only
forwards an already validated payload.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from shop_contracts.schemas import ToolError, ToolMeta, ToolResponse, UserContext

from .logging import get_logger
from .settings import GatewaySettings

logger = get_logger("tool_broker")


class ToolBroker:
    def __init__(self, settings: GatewaySettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    async def dispatch(
        self,
        tool: str,
        payload: dict[str, Any],
        user_context: UserContext,
        trace_id: str,
    ) -> ToolResponse:
        url = f"{self._settings.commerce_base_url}/tools/{tool}"
        headers = {"x-trace-id": trace_id, "x-actor-role": user_context.effective_type}
        if user_context.user_id:
            headers["x-user-id"] = user_context.user_id
        if user_context.seller_id:
            headers["x-seller-id"] = user_context.seller_id

        start = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.request_timeout_s,
                transport=self._transport,
                trust_env=False,
            ) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as exc:
            latency_ms = int((time.time() - start) * 1000)
            logger.info(
                "tool_dispatch_failed",
                extra={"extra": {"trace_id": trace_id, "tool": tool, "latency_ms": latency_ms, "error": str(exc)}},
            )
            return _failure(tool, trace_id, latency_ms, "TOOL_UNAVAILABLE", str(exc))

        latency_ms = int((time.time() - start) * 1000)
        logger.info(
            "tool_dispatch",
            extra={
                "extra": {
                    "trace_id": trace_id,
                    "tool": tool,
                    "latency_ms": latency_ms,
                    "status_code": resp.status_code,
                }
            },
        )
        if resp.status_code >= 500:
            return _failure(tool, trace_id, latency_ms, "TOOL_UPSTREAM_5XX", f"Commerce service error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            return _failure(tool, trace_id, latency_ms, "TOOL_BAD_RESPONSE", str(exc))

        if resp.status_code >= 400:
            message = data.get("message") if isinstance(data, dict) else None
            return _failure(
                tool,
                trace_id,
                latency_ms,
                "TOOL_REJECTED",
                message or f"Commerce service rejected the call: {resp.status_code}",
            )
        return ToolResponse(
            ok=True,
            data=data,
            error=None,
            meta=ToolMeta(tool_name=tool, trace_id=trace_id, latency_ms=latency_ms, source="commerce"),
        )


def _failure(tool: str, trace_id: str, latency_ms: int, code: str, message: str) -> ToolResponse:
    return ToolResponse(
        ok=False,
        data=None,
        error=ToolError(code=code, message=message),
        meta=ToolMeta(tool_name=tool, trace_id=trace_id, latency_ms=latency_ms, source="commerce"),
    )

"""Trace recording utilities for end-to-end request replay."""

from __future__ import annotations

import json
import os
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shop_contracts.schemas import UserContext

from .masking import mask_filter, mask_pii
from .state import Stage, TraceRecord


def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def build_trace(request_id: str, message: str, user_context: UserContext | None = None) -> TraceRecord:
    trace = TraceRecord(request_id=request_id, started_at=now_utc_iso())
    user_context = user_context or UserContext()
    trace.request = {
        "message": mask_pii(message),
        "user": {
            "is_logged_in": user_context.is_logged_in,
            "user_type": user_context.effective_type,
        },
    }
    return trace


def record_stage(trace: TraceRecord, stage: Stage, **detail: Any) -> None:
    trace.stages.append({"stage": stage.value, **detail})


def record_llm_call(
    trace: TraceRecord,
    *,
    model: str,
    temperature: float,
    agent: str,
    messages_summary: list[dict[str, Any]] | None = None,
    finish_reason: str | None = None,
) -> None:
    trace.llm.append(
        {
            "model": model,
            "temperature": temperature,
            "agent": agent,
            "messages_summary": messages_summary or [],
            "finish_reason": finish_reason,
        }
    )


def record_query(
    trace: TraceRecord,
    *,
    collection: str,
    query: dict[str, Any],
    ok: bool,
    result_count: int,
    error: str | None,
) -> None:
    trace.queries.append(
        {
            "collection": collection,
            "query": mask_filter(query),
            "status": "ok" if ok else "error",
            "result_count": result_count,
            "error": error,
        }
    )


def record_final(trace: TraceRecord, response: dict[str, Any], meta: dict[str, Any] | None = None) -> None:
    trace.final = {
        "response_type": response.get("type"),
        "meta": meta or {},
    }


def finalize_trace(trace: TraceRecord, started_at_ts: float) -> None:
    trace.finished_at = now_utc_iso()
    trace.latency_ms = int((time.time() - started_at_ts) * 1000)


def write_trace(trace: TraceRecord, trace_dir: str) -> Path:
    os.makedirs(trace_dir, exist_ok=True)
    ts = trace.started_at.replace(":", "-")
    filename = f"{ts}_{trace.request_id}.json"
    path = Path(trace_dir) / filename
    path.write_text(json.dumps(asdict(trace), ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return path

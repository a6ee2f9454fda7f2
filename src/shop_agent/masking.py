"""Redaction helpers shared by the executor, logs and traces."""

from __future__ import annotations

import re
from typing import Any, Iterable

MASK = "[MASKED]"

SENSITIVE_FIELDS: frozenset[str] = frozenset({"password", "token", "secret", "apiKey"})
LOG_SENSITIVE_FIELDS: frozenset[str] = SENSITIVE_FIELDS | {"cardNumber", "paymentInfo"}

# Result rows are masked per collection no matter what the projection asked for.
COLLECTION_SENSITIVE_FIELDS: dict[str, frozenset[str]] = {
    "users": SENSITIVE_FIELDS,
    "orders": frozenset({"paymentInfo", "cardNumber"}),
}

PHONE_PATTERN = re.compile(r"(?<!\d)(01[016789]-?\d{3,4}-?\d{4})(?!\d)")
EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
RRN_PATTERN = re.compile(r"(?<!\d)(\d{6}-?[1-4]\d{6})(?!\d)")
CARD_PATTERN = re.compile(r"(?<!\d)(\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4})(?!\d)")


def redact(value: Any, fields: Iterable[str], *, strip: bool = False) -> Any:
    """Return a copy of ``value`` with ``fields`` masked at any depth.

    With ``strip`` the keys are removed instead of replaced by ``MASK``.
    """
    fields = frozenset(fields)
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for key, item in value.items():
            if key in fields:
                if not strip:
                    out[key] = MASK
                continue
            out[key] = redact(item, fields, strip=strip)
        return out
    if isinstance(value, (list, tuple)):
        return [redact(item, fields, strip=strip) for item in value]
    return value


def mask_row(row: dict[str, Any], collection: str) -> dict[str, Any]:
    fields = COLLECTION_SENSITIVE_FIELDS.get(collection)
    if not fields:
        return dict(row)
    return redact(row, fields, strip=True)


def mask_filter(query: Any) -> Any:
    return redact(query, LOG_SENSITIVE_FIELDS)


def mask_pii(text: str) -> str:
    masked = text or ""
    masked = PHONE_PATTERN.sub("[PHONE_MASKED]", masked)
    masked = EMAIL_PATTERN.sub("[EMAIL_MASKED]", masked)
    masked = RRN_PATTERN.sub("[RRN_MASKED]", masked)
    masked = CARD_PATTERN.sub("[CARD_MASKED]", masked)
    return masked
